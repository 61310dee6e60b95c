"""
Dereplication: collapse identical reads into unique sequences.
"""

import logging
from typing import Dict, Iterable, List, Sequence, Tuple, Union

import numpy as np

from .errors import InputError
from .models import Read, UniqueSequence, UniqueSequenceSet
from .seq_utils import validate_sequence

logger = logging.getLogger(__name__)

ReadLike = Union[Read, Tuple[str, Sequence[int]]]


def _as_pair(read: ReadLike) -> Tuple[str, Sequence[int]]:
    if isinstance(read, Read):
        return read.sequence, read.quality
    seq, qual = read
    return seq, qual


class _Accumulator:
    """Running abundance and quality sum of one distinct sequence."""

    __slots__ = ("abundance", "quality_sum")

    def __init__(self, length: int):
        self.abundance = 0
        self.quality_sum = np.zeros(length, dtype=float)

    def add(self, quality, weight: int = 1):
        self.abundance += weight
        self.quality_sum += weight * np.asarray(quality, dtype=float)


def _finalize(table: Dict[str, _Accumulator]) -> List[UniqueSequence]:
    uniques = []
    for seq, acc in table.items():
        quality = acc.quality_sum / acc.abundance
        quality.setflags(write=False)
        uniques.append(UniqueSequence(sequence=seq, abundance=acc.abundance, quality=quality))
    uniques.sort(key=lambda u: (-u.abundance, u.sequence))
    return uniques


def dereplicate(reads: Iterable[ReadLike]) -> UniqueSequenceSet:
    """
    Collapse identical reads.

    Args:
        reads: ``Read`` objects or ``(sequence, quality_scores)`` pairs,
            already filtered and trimmed

    Returns:
        UniqueSequenceSet ordered by abundance (ties by sequence) with the
        read -> unique map

    Raises:
        InputError: If there are no reads, or a read's quality length does not
            match its sequence
    """
    table: Dict[str, _Accumulator] = {}
    read_seqs: List[str] = []

    for n, read in enumerate(reads):
        seq, qual = _as_pair(read)
        seq = validate_sequence(seq)
        if len(qual) != len(seq):
            raise InputError(
                f"Read {n}: sequence length {len(seq)} != quality length {len(qual)}")
        acc = table.get(seq)
        if acc is None:
            acc = table[seq] = _Accumulator(len(seq))
        acc.add(qual)
        read_seqs.append(seq)

    if not read_seqs:
        raise InputError("Cannot dereplicate an empty read set")

    uniques = _finalize(table)
    index = {u.sequence: i for i, u in enumerate(uniques)}
    read_map = np.fromiter((index[s] for s in read_seqs), dtype=np.int64, count=len(read_seqs))

    logger.debug(f"Dereplicated {len(read_seqs)} reads into {len(uniques)} unique sequences")
    return UniqueSequenceSet(uniques=uniques, read_map=read_map)


def dereplicate_weighted(
    records: Iterable[Tuple[str, int, Sequence[float]]],
) -> UniqueSequenceSet:
    """
    Dereplicate abundance-weighted records ``(sequence, abundance, quality)``.

    Dereplicating the uniques of an existing set returns the same set. The
    ``read_map`` expands each record into ``abundance`` reads, in input order.
    """
    table: Dict[str, _Accumulator] = {}
    expanded: List[str] = []

    for n, (seq, abundance, qual) in enumerate(records):
        seq = validate_sequence(seq)
        if abundance < 1:
            raise InputError(f"Record {n}: abundance must be >= 1, got {abundance}")
        if len(qual) != len(seq):
            raise InputError(
                f"Record {n}: sequence length {len(seq)} != quality length {len(qual)}")
        acc = table.get(seq)
        if acc is None:
            acc = table[seq] = _Accumulator(len(seq))
        acc.add(qual, weight=int(abundance))
        expanded.extend([seq] * int(abundance))

    if not table:
        raise InputError("Cannot dereplicate an empty record set")

    uniques = _finalize(table)
    index = {u.sequence: i for i, u in enumerate(uniques)}
    read_map = np.fromiter((index[s] for s in expanded), dtype=np.int64, count=len(expanded))
    return UniqueSequenceSet(uniques=uniques, read_map=read_map)


def rereplicate(uniques: UniqueSequenceSet) -> UniqueSequenceSet:
    """Dereplicate an already dereplicated set (used to check idempotence)."""
    return dereplicate_weighted((u.sequence, u.abundance, u.quality) for u in uniques)


def subsample_for_learning(
    samples: Sequence[UniqueSequenceSet],
    nbases: int,
) -> List[UniqueSequenceSet]:
    """
    Take whole samples, in order, until ``nbases`` read bases are covered.

    At least one sample is always returned.
    """
    chosen = []
    total = 0
    for sample in samples:
        chosen.append(sample)
        total += int(sum(u.abundance * u.length for u in sample))
        if total >= nbases:
            break
    logger.info(f"Learning error rates from {total} bases in {len(chosen)} samples")
    return chosen
