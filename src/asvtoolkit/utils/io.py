"""File I/O utilities for asvtoolkit."""

import gzip
import logging
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Union

import pandas as pd

from asvtoolkit.dada.error_models import ErrorModel
from asvtoolkit.dada.errors import InputError
from asvtoolkit.dada.models import Read
from asvtoolkit.dada.seq_utils import decode_quality, encode_quality, validate_sequence
from asvtoolkit.utils.config import PHRED_OFFSET

logger = logging.getLogger(__name__)


def _open_text(path: Path, mode: str = "r"):
    """Open plain or gzip-compressed text by extension."""
    if path.suffix == ".gz":
        return gzip.open(path, mode + "t")
    return open(path, mode)


def iter_fastq(path: Union[str, Path], offset: int = PHRED_OFFSET) -> Iterator[Read]:
    """
    Stream reads from a FASTQ file (.fastq, .fq, optionally .gz).

    Raises:
        FileNotFoundError: If the file doesn't exist
        InputError: On a truncated or malformed record
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    with _open_text(path) as f:
        n = 0
        while True:
            header = f.readline()
            if not header:
                break
            if not header.strip():
                continue
            seq = f.readline().rstrip("\n\r")
            plus = f.readline()
            qual = f.readline().rstrip("\n\r")
            n += 1
            if not header.startswith("@") or not plus.startswith("+"):
                raise InputError(f"{path.name}: malformed FASTQ record {n}")
            if len(seq) != len(qual):
                raise InputError(
                    f"{path.name}: record {n} has {len(seq)} bases but {len(qual)} qualities")
            read_id = header[1:].split()[0] if header[1:].strip() else f"read{n}"
            yield Read(
                sequence=validate_sequence(seq),
                quality=tuple(decode_quality(qual, offset).tolist()),
                read_id=read_id,
            )


def read_fastq(path: Union[str, Path], offset: int = PHRED_OFFSET) -> List[Read]:
    """Load all reads of a FASTQ file."""
    reads = list(iter_fastq(path, offset))
    logger.info(f"Loaded {len(reads)} reads from {Path(path).name}")
    return reads


def write_fastq(reads: Iterable[Read], path: Union[str, Path], offset: int = PHRED_OFFSET) -> int:
    """Write reads as FASTQ; returns the number written."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    n = 0
    with _open_text(path, "w") as f:
        for read in reads:
            n += 1
            name = read.read_id or f"read{n}"
            f.write(f"@{name}\n{read.sequence}\n+\n{encode_quality(read.quality, offset)}\n")
    return n


def write_fasta(
    sequences: Sequence[str],
    path: Union[str, Path],
    prefix: str = "ASV",
    line_width: int = 0,
) -> None:
    """
    Write sequences as FASTA with ids ``{prefix}1, {prefix}2, ...``.

    Args:
        sequences: Sequences in output order
        path: Output file path
        prefix: Record id prefix
        line_width: Wrap width, 0 for one line per sequence
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with _open_text(path, "w") as f:
        for i, seq in enumerate(sequences, 1):
            f.write(f">{prefix}{i}\n")
            if line_width > 0:
                for start in range(0, len(seq), line_width):
                    f.write(seq[start:start + line_width] + "\n")
            else:
                f.write(seq + "\n")
    logger.info(f"Saved {len(sequences)} sequences to {path.name}")


def write_table(table: pd.DataFrame, path: Union[str, Path]) -> None:
    """Save a sample x sequence table as CSV (samples as rows)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    table.to_csv(path, index=True, index_label="sample")
    logger.info(f"Saved table ({table.shape[0]} x {table.shape[1]}) to {path.name}")


def read_table(path: Union[str, Path]) -> pd.DataFrame:
    """Load a table written by :func:`write_table`."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    table = pd.read_csv(path, index_col=0)
    table.index = table.index.astype(str)
    return table.fillna(0).astype("int64")


def write_error_model(model: ErrorModel, path: Union[str, Path]) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    model.to_dataframe().to_csv(path)
    logger.info(f"Saved error model to {path.name}")


def read_error_model(path: Union[str, Path], name: Optional[str] = None) -> ErrorModel:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    df = pd.read_csv(path, index_col=0)
    return ErrorModel.from_dataframe(df, name=name or path.stem)


def write_dataframe(df: pd.DataFrame, path: Union[str, Path], index: bool = True) -> None:
    """Save a report DataFrame as CSV."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=index)
    logger.info(f"Saved {len(df)} records to {path.name}")
