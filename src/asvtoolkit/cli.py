"""
asvtoolkit CLI - Command Line Interface for amplicon denoising.

Usage:
    asv <command> [options]
"""

import logging

import click

from asvtoolkit import __version__
from asvtoolkit.utils.logging_utils import setup_logger


def _setup_logging(verbose: bool, log_file=None):
    setup_logger("asvtoolkit", log_file=log_file,
                 level=logging.DEBUG if verbose else logging.INFO)


@click.group()
@click.version_option(version=__version__, prog_name="asvtoolkit")
def main():
    """asvtoolkit - exact amplicon sequence variants from sequencing reads.

    Use 'asv <command> --help' for detailed usage of each command.
    """
    pass


# ============================================================================
# Denoising Commands
# ============================================================================

@main.command("learn-errors")
@click.option("-i", "--input", "input_files", required=True, multiple=True,
              help="FASTQ files (filtered and trimmed, one per sample)")
@click.option("-o", "--output", required=True, help="Output error model CSV")
@click.option("--config", "config_file", help="Config file (YAML/JSON)")
@click.option("--max-rounds", type=int, help="Maximum EM rounds")
@click.option("-t", "--threads", default=1, help="Number of worker processes (0=auto)")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
def learn_errors(input_files, output, config_file, max_rounds, threads, verbose):
    """Learn substitution error rates from the reads themselves."""
    _setup_logging(verbose)
    from asvtoolkit.workflows import run_learn_errors
    run_learn_errors(list(input_files), output, config_file, max_rounds, threads)


@main.command()
@click.option("-i", "--input", "input_file", required=True, help="FASTQ file of one sample")
@click.option("-e", "--errors", "errors_file", required=True, help="Error model CSV")
@click.option("-o", "--output", required=True, help="Output CSV of inferred sequences")
@click.option("--config", "config_file", help="Config file (YAML/JSON)")
@click.option("--omega-a", type=float, help="Formation p-value threshold")
@click.option("-t", "--threads", default=1, help="Number of worker processes (0=auto)")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
def denoise(input_file, errors_file, output, config_file, omega_a, threads, verbose):
    """Denoise one sample with a learned error model."""
    _setup_logging(verbose)
    from asvtoolkit.workflows import run_denoise
    run_denoise(input_file, errors_file, output, config_file, omega_a, threads)


@main.command()
@click.option("-1", "--fastq1", required=True, multiple=True, help="Forward FASTQ file(s)")
@click.option("-2", "--fastq2", multiple=True, help="Reverse FASTQ file(s), same order as -1")
@click.option("-o", "--output", required=True, help="Output directory")
@click.option("--config", "config_file", help="Config file (YAML/JSON)")
@click.option("-t", "--threads", default=1, help="Number of worker processes (0=auto)")
@click.option("--seed", type=int, help="Random seed for sample order during learning")
@click.option("--no-chimera-removal", is_flag=True, help="Skip bimera removal")
@click.option("--log-file", help="Also write the log to this file")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
def run(fastq1, fastq2, output, config_file, threads, seed, no_chimera_removal, log_file, verbose):
    """Run the full pipeline: learn errors, denoise, merge, remove chimeras.

    Writes seqtab.csv, seqtab_nochim.csv, asvs.fasta, track.csv, chimeras.csv
    and the learned error models to the output directory.
    """
    _setup_logging(verbose, log_file)
    from asvtoolkit.workflows import run_full_pipeline
    run_full_pipeline(list(fastq1), list(fastq2) or None, output, config_file, threads,
                      seed, no_chimera_removal)


# ============================================================================
# Table Commands
# ============================================================================

@main.command("remove-chimeras")
@click.option("-i", "--input", "input_file", required=True, help="Sequence table CSV")
@click.option("-o", "--output", required=True, help="Output table CSV")
@click.option("--method", type=click.Choice(["pooled", "consensus", "per-sample"]),
              default="consensus", help="Bimera removal method")
@click.option("--min-sample-fraction", type=float,
              help="Consensus: fraction of samples that must flag a sequence")
@click.option("--mismatch-tolerance", type=int, help="Mismatches allowed in a bimera fit")
@click.option("--report", help="Write the chimera calls to this CSV")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
def remove_chimeras(input_file, output, method, min_sample_fraction, mismatch_tolerance,
                    report, verbose):
    """Remove bimeras from a sequence table."""
    _setup_logging(verbose)
    from asvtoolkit.workflows import run_remove_chimeras
    run_remove_chimeras(input_file, output, method, min_sample_fraction, mismatch_tolerance, report)


# ============================================================================
# Simulation Commands
# ============================================================================

@main.command("sim-reads")
@click.option("-o", "--output", required=True, help="Output directory")
@click.option("-n", "--num-variants", default=5, help="Number of true sequences")
@click.option("-l", "--length", default=250, help="Amplicon length")
@click.option("--read-length", default=0, help="Paired read length (0 = single-end full length)")
@click.option("--samples", default=1, help="Number of samples")
@click.option("--min-distance", default=3, help="Substitutions between variant and ancestor")
@click.option("--seed", default=42, help="Random seed")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
def sim_reads(output, num_variants, length, read_length, samples, min_distance, seed, verbose):
    """Simulate a mock community and Illumina-like amplicon reads."""
    _setup_logging(verbose)
    from asvtoolkit.workflows import run_simulation
    run_simulation(output, num_variants, length, read_length, samples, min_distance, seed)


if __name__ == "__main__":
    main()
