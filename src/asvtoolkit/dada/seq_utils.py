"""
Sequence and quality helpers shared by the aligner, denoiser and merger.
"""

from typing import Optional, Sequence

import numpy as np

from ..utils.config import MAX_QUALITY, MIN_QUALITY, PHRED_OFFSET

BASES = "ACGT"
BASE_INDEX = {b: i for i, b in enumerate(BASES)}
VALID_BASES = set("ACGTN")

# Row labels of the 16 x Q transition table: A2A, A2C, ..., T2T
TRANSITIONS = [f"{ref}2{obs}" for ref in BASES for obs in BASES]

_COMPLEMENT = str.maketrans("ACGTNacgtn-", "TGCANtgcan-")


def reverse_complement(seq: str) -> str:
    """Reverse complement; anything outside ACGTN is left as is."""
    return seq.translate(_COMPLEMENT)[::-1]


def validate_sequence(seq: str) -> str:
    """Uppercase ``seq`` and map non-ACGT characters to N."""
    seq = seq.upper().strip()
    if set(seq) <= VALID_BASES:
        return seq
    return "".join(c if c in VALID_BASES else "N" for c in seq)


def is_degenerate(seq: str) -> Optional[str]:
    """Return the reason ``seq`` cannot be aligned, or None."""
    if len(seq) == 0:
        return "zero-length sequence"
    if seq.count("N") == len(seq):
        return "all-N sequence"
    return None


def phred_to_prob(quality) -> np.ndarray:
    """Nominal error probability of Phred score(s)."""
    q = np.asarray(quality, dtype=float)
    return np.power(10.0, -q / 10.0)


def decode_quality(quality: str, offset: int = PHRED_OFFSET) -> np.ndarray:
    """FASTQ quality string -> integer Phred scores."""
    return np.frombuffer(quality.encode("ascii"), dtype=np.uint8).astype(int) - offset


def encode_quality(scores: Sequence[float], offset: int = PHRED_OFFSET) -> str:
    """Phred scores -> FASTQ quality string (rounded, clipped)."""
    q = np.clip(np.rint(np.asarray(scores, dtype=float)), MIN_QUALITY, MAX_QUALITY)
    return "".join(chr(int(v) + offset) for v in q)


def round_quality(quality, max_q: int = MAX_QUALITY) -> np.ndarray:
    """Round mean qualities to the integer columns of an error table."""
    q = np.rint(np.asarray(quality, dtype=float)).astype(int)
    return np.clip(q, MIN_QUALITY, max_q)


def encode_bases(seq: str) -> np.ndarray:
    """ACGT -> 0..3, anything else -> 4."""
    arr = np.full(len(seq), 4, dtype=np.int8)
    raw = np.frombuffer(seq.encode("ascii"), dtype=np.uint8)
    for i, b in enumerate(BASES):
        arr[raw == ord(b)] = i
    return arr
