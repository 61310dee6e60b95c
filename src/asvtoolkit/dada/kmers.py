"""
K-mer profile distance, used to skip alignments that cannot succeed.
"""

from typing import Optional

import numpy as np

from .seq_utils import encode_bases


def kmer_profile(seq: str, k: int = 5) -> np.ndarray:
    """Counts of every ACGT k-mer in ``seq`` (k-mers containing N are skipped)."""
    counts = np.zeros(4 ** k, dtype=np.int32)
    codes = encode_bases(seq).astype(np.int64)
    n = len(codes) - k + 1
    if n <= 0:
        return counts

    windows = np.lib.stride_tricks.sliding_window_view(codes, k)
    valid = (windows < 4).all(axis=1)
    weights = 4 ** np.arange(k - 1, -1, -1, dtype=np.int64)
    index = windows[valid] @ weights
    np.add.at(counts, index, 1)
    return counts


def kmer_distance(
    a: str,
    b: str,
    k: int = 5,
    profile_a: Optional[np.ndarray] = None,
    profile_b: Optional[np.ndarray] = None,
) -> float:
    """
    1 - shared k-mers / k-mers in the shorter sequence.

    0 for identical sequences, 1 when nothing is shared.
    """
    if profile_a is None:
        profile_a = kmer_profile(a, k)
    if profile_b is None:
        profile_b = kmer_profile(b, k)
    n = min(len(a), len(b)) - k + 1
    if n <= 0:
        return 1.0
    shared = int(np.minimum(profile_a, profile_b).sum())
    return 1.0 - min(shared, n) / n
