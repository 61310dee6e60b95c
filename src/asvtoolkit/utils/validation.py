"""Input validation utilities for asvtoolkit."""

import logging
from pathlib import Path
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)

FASTQ_SUFFIXES = (".fastq", ".fq", ".fastq.gz", ".fq.gz")


def validate_file_exists(filepath: str, description: str = "File") -> None:
    """
    Validate that a file exists.

    Args:
        filepath: Path to check
        description: Description for error message

    Raises:
        FileNotFoundError: If file doesn't exist
    """
    if not Path(filepath).exists():
        raise FileNotFoundError(f"{description} not found: {filepath}")


def sample_name(path: str) -> str:
    """Sample name from a FASTQ path: file name without FASTQ suffixes and _R1/_R2."""
    name = Path(path).name
    for suffix in sorted(FASTQ_SUFFIXES, key=len, reverse=True):
        if name.endswith(suffix):
            name = name[: -len(suffix)]
            break
    for tag in ("_R1_001", "_R2_001", "_R1", "_R2", "_1", "_2"):
        if name.endswith(tag):
            return name[: -len(tag)]
    return name


def validate_read_files(
    forward: Sequence[str],
    reverse: Optional[Sequence[str]] = None,
) -> List[str]:
    """
    Check FASTQ inputs and derive unique sample names.

    Args:
        forward: Forward (or single-end) FASTQ files
        reverse: Reverse FASTQ files, paired with ``forward`` by position

    Returns:
        Sample names, one per forward file

    Raises:
        FileNotFoundError: If a file is missing
        ValueError: If the pairing or sample names are inconsistent
    """
    if not forward:
        raise ValueError("No input FASTQ files given")
    if reverse and len(reverse) != len(forward):
        raise ValueError(
            f"Got {len(forward)} forward but {len(reverse)} reverse FASTQ files")

    for path in list(forward) + list(reverse or []):
        validate_file_exists(path, "FASTQ file")
        if not str(path).endswith(FASTQ_SUFFIXES):
            logger.warning(f"{path}: unexpected extension, reading as FASTQ")

    names = [sample_name(p) for p in forward]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ValueError(f"Duplicate sample names: {duplicates}")
    return names
