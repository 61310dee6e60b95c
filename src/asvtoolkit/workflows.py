"""
File-based entry points behind the ``asv`` commands.

Each ``run_*`` function reads its inputs from disk, calls the library API and
writes the outputs; the library itself never touches the file system.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from .utils.config import DEFAULT_RANDOM_SEED, get_output_path, setup_thread_limits

logger = logging.getLogger(__name__)


def _load_config(config_file: Optional[str]):
    from .dada.config import PipelineConfig, get_default_config

    if config_file:
        logger.info(f"Config: {config_file}")
        return PipelineConfig.from_file(config_file)
    return get_default_config()


def run_learn_errors(
    input_files: Sequence[str],
    output: str,
    config_file: Optional[str] = None,
    max_rounds: Optional[int] = None,
    threads: int = 1,
) -> None:
    """
    Learn an error model from one or more FASTQ files and save it as CSV.

    Args:
        input_files: FASTQ files (one sample each), all of the same read direction
        output: Output CSV path
        config_file: YAML/JSON pipeline config
        max_rounds: Overrides learn.max_rounds
        threads: Worker processes, 0 for all cores but one
    """
    setup_thread_limits(1)
    from .dada.derep import dereplicate, subsample_for_learning
    from .dada.learn import learn_error_model
    from .dada.parallel import get_optimal_workers
    from .utils.io import read_fastq, write_error_model
    from .utils.validation import validate_read_files

    threads = get_optimal_workers(threads)
    config = _load_config(config_file)
    if max_rounds is not None:
        config.learn.max_rounds = max_rounds

    validate_read_files(list(input_files))
    samples = [dereplicate(read_fastq(path)) for path in input_files]
    subset = subsample_for_learning(samples, config.learn.nbases)
    model, diag = learn_error_model(
        subset,
        params=config.learn,
        denoise_params=config.denoise,
        align_params=config.align,
        num_workers=threads,
    )
    write_error_model(model, output)
    logger.info(f"Error learning finished after {diag.rounds} rounds "
                f"({'converged' if diag.converged else 'not converged'})")


def run_denoise(
    input_file: str,
    errors_file: str,
    output: str,
    config_file: Optional[str] = None,
    omega_a: Optional[float] = None,
    threads: int = 1,
) -> None:
    """
    Denoise one single-end sample with a saved error model.

    Writes one row per inferred sequence (sequence, abundance, n_uniques,
    birth statistics).
    """
    setup_thread_limits(1)
    from .dada.dada import denoise
    from .dada.derep import dereplicate
    from .dada.parallel import get_optimal_workers
    from .utils.io import read_error_model, read_fastq, write_dataframe
    from .utils.validation import validate_file_exists

    threads = get_optimal_workers(threads)
    config = _load_config(config_file)
    if omega_a is not None:
        config.denoise.omega_a = omega_a

    validate_file_exists(input_file, "FASTQ file")
    validate_file_exists(errors_file, "Error model")
    uniques = dereplicate(read_fastq(input_file))
    model = read_error_model(errors_file)
    clusters = denoise(uniques, model, config.denoise, config.align, num_workers=threads)

    df = clusters.to_dataframe().sort_values("abundance", ascending=False)
    write_dataframe(df, output, index=False)
    if clusters.excluded:
        logger.warning(f"{len(clusters.excluded)} degenerate unique sequences "
                       f"({clusters.excluded_abundance} reads) were excluded")


def run_full_pipeline(
    fastq1: Sequence[str],
    fastq2: Optional[Sequence[str]],
    output_dir: str,
    config_file: Optional[str] = None,
    threads: int = 1,
    seed: Optional[int] = None,
    no_chimera_removal: bool = False,
) -> None:
    """
    Reads of many samples -> ASV table, diagnostics and learned error models.

    Outputs (in ``output_dir``):
        - seqtab.csv, seqtab_nochim.csv: sample x sequence tables
        - asvs.fasta: final sequences, ASV1..ASVn in table column order
        - track.csv: reads retained per sample at each stage
        - chimeras.csv: bimera calls
        - errors_forward.csv, errors_reverse.csv: learned error models
        - config_used.yaml: configuration used
    """
    setup_thread_limits(1)
    from .dada.parallel import get_optimal_workers
    from .pipeline import SampleInput, run_pipeline
    from .utils.io import read_fastq, write_dataframe, write_error_model, write_fasta, write_table
    from .utils.validation import validate_read_files

    threads = get_optimal_workers(threads)
    config = _load_config(config_file)
    if seed is not None:
        config.seed = seed
    elif config.seed is None:
        config.seed = DEFAULT_RANDOM_SEED
    if no_chimera_removal:
        config.remove_chimeras = False

    reverse: List[str] = list(fastq2 or [])
    names = validate_read_files(list(fastq1), reverse or None)

    logger.info("Amplicon denoising pipeline")
    logger.info(f"Samples: {len(names)} ({'paired-end' if reverse else 'single-end'})")
    logger.info(f"Output: {output_dir}")

    samples = []
    for i, name in enumerate(names):
        fwd = read_fastq(fastq1[i])
        rev = read_fastq(reverse[i]) if reverse else None
        samples.append(SampleInput(name, fwd, rev))

    result = run_pipeline(samples, config, num_workers=threads)

    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    write_table(result.raw_table, get_output_path(output_dir, "seqtab"))
    write_table(result.table, get_output_path(output_dir, "seqtab_nochim"))
    write_fasta(list(result.table.columns), get_output_path(output_dir, "asvs"))
    write_dataframe(result.diagnostics, get_output_path(output_dir, "track"))
    write_dataframe(result.chimera_report.to_dataframe(), get_output_path(output_dir, "chimeras"),
                    index=False)
    for direction, model in result.models.items():
        write_error_model(model, get_output_path(output_dir, f"errors_{direction}"))
    config.to_yaml(get_output_path(output_dir, "config_used"))
    logger.info(f"Final table: {result.table.shape[0]} samples x {result.table.shape[1]} ASVs")


def run_remove_chimeras(
    input_file: str,
    output: str,
    method: str = "consensus",
    min_sample_fraction: Optional[float] = None,
    mismatch_tolerance: Optional[int] = None,
    report: Optional[str] = None,
) -> None:
    """Remove bimeras from a saved sequence table."""
    from .dada.config import ChimeraParams
    from .process.chimera import remove_chimeras_from_table
    from .utils.io import read_table, write_dataframe, write_table

    params = ChimeraParams(method=method)
    if min_sample_fraction is not None:
        params.min_sample_fraction = min_sample_fraction
    if mismatch_tolerance is not None:
        params.mismatch_tolerance = mismatch_tolerance

    table = read_table(input_file)
    clean, chim = remove_chimeras_from_table(table, params)
    write_table(clean, output)
    if report:
        write_dataframe(chim.to_dataframe(), report, index=False)
    logger.info(f"Removed {table.shape[1] - clean.shape[1]} of {table.shape[1]} sequences "
                f"({method})")


def run_simulation(
    output_dir: str,
    n_variants: int = 5,
    length: int = 250,
    read_length: int = 0,
    n_samples: int = 1,
    min_distance: int = 3,
    seed: int = DEFAULT_RANDOM_SEED,
) -> None:
    """
    Write a mock community and simulated reads.

    Outputs truth.fasta plus ``sample{i}_R1.fastq.gz`` (and ``_R2`` when
    ``read_length`` > 0, paired reads of that length).
    """
    import numpy as np

    from .simulate import IlluminaReadSimulator, mock_community, simulate_pairs, simulate_sample
    from .utils.io import write_fasta, write_fastq

    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    community = mock_community(n_variants, length, min_distance=min_distance, seed=seed)
    write_fasta(list(community), out / "truth.fasta", prefix="true")

    simulator = IlluminaReadSimulator(rng=np.random.default_rng(seed))
    for i in range(1, n_samples + 1):
        if read_length > 0:
            fwd, rev = simulate_pairs(community, read_length, simulator)
            write_fastq(fwd, out / f"sample{i}_R1.fastq.gz")
            write_fastq(rev, out / f"sample{i}_R2.fastq.gz")
        else:
            write_fastq(simulate_sample(community, simulator), out / f"sample{i}_R1.fastq.gz")
    logger.info(f"Simulated {n_samples} samples from {n_variants} variants in {output_dir}")
