"""Configuration constants and environment setup for asvtoolkit."""

import os

# Default parameters
DEFAULT_RANDOM_SEED = 42

# Phred scores are clipped to this range before any table lookup
MIN_QUALITY = 0
MAX_QUALITY = 40

# Phred offset used by Illumina 1.8+ FASTQ
PHRED_OFFSET = 33

# Reads sampled from the start of the sample list for error-model learning
DEFAULT_LEARN_NBASES = 100_000_000

# Default output file names of `asv run`
OUTPUT_FILES = {
    "seqtab": "seqtab.csv",
    "seqtab_nochim": "seqtab_nochim.csv",
    "asvs": "asvs.fasta",
    "track": "track.csv",
    "chimeras": "chimeras.csv",
    "errors_forward": "errors_forward.csv",
    "errors_reverse": "errors_reverse.csv",
    "config_used": "config_used.yaml",
}


def setup_thread_limits(n_threads: int = 1) -> None:
    """
    Set environment variables to prevent thread oversubscription.

    Worker processes each run numpy; without this every worker would start
    its own BLAS thread pool. Call before importing numpy/scipy.

    Args:
        n_threads: Number of threads to allow (default: 1)
    """
    thread_vars = [
        "OMP_NUM_THREADS",
        "OPENBLAS_NUM_THREADS",
        "MKL_NUM_THREADS",
        "VECLIB_MAXIMUM_THREADS",
        "NUMEXPR_NUM_THREADS",
    ]
    for var in thread_vars:
        os.environ[var] = str(n_threads)


def get_output_path(output_dir: str, key: str) -> str:
    """
    Resolve a standard output file name inside ``output_dir``.

    Raises:
        ValueError: If key is not a known output
    """
    if key not in OUTPUT_FILES:
        raise ValueError(
            f"Unknown output: {key}. "
            f"Known outputs: {list(OUTPUT_FILES.keys())}"
        )
    return os.path.join(output_dir, OUTPUT_FILES[key])
