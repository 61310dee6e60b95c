"""
Banded global pairwise alignment (Gotoh, linear or affine gaps).

The same routine serves three callers:
- the denoiser (unique sequence vs cluster center, global, banded)
- the merger (forward vs reverse-complemented reverse, ends-free, unbanded)
- the chimera detector (candidate vs parent, ends-free, banded)

Traceback priority on equal scores is diagonal > up > left. The matrices are
filled over the reversed sequences, so among equally scoring alignments the
gaps end up as far right as possible (``AAAT`` vs ``AAT`` gives ``AA-T``).
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .config import AlignParams
from .errors import AlignmentDegenerate
from .seq_utils import is_degenerate, phred_to_prob

NEG_INF = float("-inf")

# Traceback states
DIAG = 0    # a[i-1] aligned to b[j-1]
UP = 1      # a[i-1] aligned to a gap
LEFT = 2    # gap aligned to b[j-1]

GAP = "-"


@dataclass(frozen=True)
class Alignment:
    """Two gapped strings of equal length and the alignment score."""
    aligned_a: str
    aligned_b: str
    score: float
    ends_free: bool = False

    def __len__(self) -> int:
        return len(self.aligned_a)

    @property
    def overlap_bounds(self) -> Tuple[int, int]:
        """Column range from the first to the last column where both have a base."""
        both = [k for k, (x, y) in enumerate(zip(self.aligned_a, self.aligned_b))
                if x != GAP and y != GAP]
        if not both:
            return 0, 0
        return both[0], both[-1] + 1

    @property
    def overlap(self) -> int:
        start, end = self.overlap_bounds
        return end - start

    def _core(self) -> Tuple[str, str]:
        """Columns that count towards distances (end gaps excluded in ends-free mode)."""
        if not self.ends_free:
            return self.aligned_a, self.aligned_b
        start, end = self.overlap_bounds
        return self.aligned_a[start:end], self.aligned_b[start:end]

    @property
    def matches(self) -> int:
        a, b = self._core()
        return sum(1 for x, y in zip(a, b) if x == y and x != GAP)

    @property
    def mismatches(self) -> int:
        a, b = self._core()
        return sum(1 for x, y in zip(a, b)
                   if x != y and x != GAP and y != GAP and x != "N" and y != "N")

    @property
    def indels(self) -> int:
        a, b = self._core()
        return sum(1 for x, y in zip(a, b) if x == GAP or y == GAP)

    @property
    def distance(self) -> int:
        """Mismatches plus gap columns (N never counts)."""
        return self.mismatches + self.indels


def _check(seq: str):
    reason = is_degenerate(seq)
    if reason is not None:
        raise AlignmentDegenerate(seq, reason)


def _substitution_scores(
    a: str,
    b: str,
    params: AlignParams,
    qual_a: Optional[Sequence[float]],
    qual_b: Optional[Sequence[float]],
):
    """Return a function s(i, j) scoring a[i] against b[j] (0-based)."""
    match, mismatch = params.match, params.mismatch

    if params.quality_aware and qual_a is not None and qual_b is not None:
        pa = phred_to_prob(qual_a).tolist()
        pb = phred_to_prob(qual_b).tolist()

        def score(i: int, j: int) -> float:
            x, y = a[i], b[j]
            if x == "N" or y == "N":
                return 0.0
            if x == y:
                return match
            return mismatch * (1.0 - min(pa[i], pb[j]))
    else:
        def score(i: int, j: int) -> float:
            x, y = a[i], b[j]
            if x == "N" or y == "N":
                return 0.0
            return match if x == y else mismatch

    return score


def align(
    seq_a: str,
    seq_b: str,
    params: Optional[AlignParams] = None,
    qual_a: Optional[Sequence[float]] = None,
    qual_b: Optional[Sequence[float]] = None,
) -> Alignment:
    """
    Align two sequences.

    Args:
        seq_a, seq_b: Sequences over ACGTN
        params: Scores, band and mode (default AlignParams())
        qual_a, qual_b: Per-base Phred scores, used when params.quality_aware

    Returns:
        Alignment with gapped strings and score; the score is the same for
        ``align(a, b)`` and ``align(b, a)``

    Raises:
        AlignmentDegenerate: If either sequence is empty or all N
    """
    if params is None:
        params = AlignParams()
    _check(seq_a)
    _check(seq_b)

    rev_a, rev_b, score = _gotoh(
        seq_a[::-1],
        seq_b[::-1],
        params,
        None if qual_a is None else qual_a[::-1],
        None if qual_b is None else qual_b[::-1],
    )
    return Alignment(
        aligned_a=rev_a[::-1],
        aligned_b=rev_b[::-1],
        score=score,
        ends_free=params.ends_free,
    )


def _gotoh(
    seq_a: str,
    seq_b: str,
    params: AlignParams,
    qual_a: Optional[Sequence[float]],
    qual_b: Optional[Sequence[float]],
) -> Tuple[str, str, float]:
    """Fill and trace back; gaps land leftmost on ties."""
    la, lb = len(seq_a), len(seq_b)
    if params.band >= 0:
        width = params.band + abs(la - lb)
    else:
        width = max(la, lb)

    go, ge = params.gap_open, params.gap_extend
    open_cost = go + ge
    free = params.ends_free
    sub = _substitution_scores(seq_a, seq_b, params, qual_a, qual_b)

    M = [[NEG_INF] * (lb + 1) for _ in range(la + 1)]
    X = [[NEG_INF] * (lb + 1) for _ in range(la + 1)]
    Y = [[NEG_INF] * (lb + 1) for _ in range(la + 1)]
    tM = [bytearray(lb + 1) for _ in range(la + 1)]
    tX = [bytearray(lb + 1) for _ in range(la + 1)]
    tY = [bytearray(lb + 1) for _ in range(la + 1)]

    M[0][0] = 0.0
    for i in range(1, min(la, width) + 1):
        X[i][0] = 0.0 if free else go + i * ge
        tX[i][0] = UP if i > 1 else DIAG
    for j in range(1, min(lb, width) + 1):
        Y[0][j] = 0.0 if free else go + j * ge
        tY[0][j] = LEFT if j > 1 else DIAG

    for i in range(1, la + 1):
        j_lo = max(1, i - width)
        j_hi = min(lb, i + width)
        Mi, Xi, Yi = M[i], X[i], Y[i]
        Mp, Xp, Yp = M[i - 1], X[i - 1], Y[i - 1]
        tMi, tXi, tYi = tM[i], tX[i], tY[i]
        for j in range(j_lo, j_hi + 1):
            # diagonal
            best = Mp[j - 1]
            ptr = DIAG
            v = Xp[j - 1]
            if v > best:
                best, ptr = v, UP
            v = Yp[j - 1]
            if v > best:
                best, ptr = v, LEFT
            if best > NEG_INF:
                Mi[j] = best + sub(i - 1, j - 1)
                tMi[j] = ptr

            # up: consume a[i-1] against a gap
            best = Mp[j] + open_cost
            ptr = DIAG
            v = Xp[j] + ge
            if v > best:
                best, ptr = v, UP
            v = Yp[j] + open_cost
            if v > best:
                best, ptr = v, LEFT
            Xi[j] = best
            tXi[j] = ptr

            # left: consume b[j-1] against a gap
            best = Mi[j - 1] + open_cost
            ptr = DIAG
            v = Xi[j - 1] + open_cost
            if v > best:
                best, ptr = v, UP
            v = Yi[j - 1] + ge
            if v > best:
                best, ptr = v, LEFT
            Yi[j] = best
            tYi[j] = ptr

    def best_state(i: int, j: int) -> Tuple[float, int]:
        best, state = M[i][j], DIAG
        if X[i][j] > best:
            best, state = X[i][j], UP
        if Y[i][j] > best:
            best, state = Y[i][j], LEFT
        return best, state

    end_i, end_j = la, lb
    score, state = best_state(la, lb)
    if free:
        for i in range(la - 1, 0, -1):
            v, s = best_state(i, lb)
            if v > score:
                score, state, end_i, end_j = v, s, i, lb
        for j in range(lb - 1, 0, -1):
            v, s = best_state(la, j)
            if v > score:
                score, state, end_i, end_j = v, s, la, j

    if score == NEG_INF:
        # Only reachable when the band excludes the end cell
        raise AlignmentDegenerate(seq_a[::-1], f"no alignment within band {params.band}")

    cols_a: List[str] = []
    cols_b: List[str] = []
    # trailing free end gaps
    for k in range(lb - 1, end_j - 1, -1):
        cols_a.append(GAP)
        cols_b.append(seq_b[k])
    for k in range(la - 1, end_i - 1, -1):
        cols_a.append(seq_a[k])
        cols_b.append(GAP)

    i, j = end_i, end_j
    while i > 0 and j > 0:
        if state == DIAG:
            prev = tM[i][j]
            cols_a.append(seq_a[i - 1])
            cols_b.append(seq_b[j - 1])
            i -= 1
            j -= 1
        elif state == UP:
            prev = tX[i][j]
            cols_a.append(seq_a[i - 1])
            cols_b.append(GAP)
            i -= 1
        else:
            prev = tY[i][j]
            cols_a.append(GAP)
            cols_b.append(seq_b[j - 1])
            j -= 1
        state = prev
    while i > 0:
        cols_a.append(seq_a[i - 1])
        cols_b.append(GAP)
        i -= 1
    while j > 0:
        cols_a.append(GAP)
        cols_b.append(seq_b[j - 1])
        j -= 1

    return "".join(reversed(cols_a)), "".join(reversed(cols_b)), float(score)


def hamming(a: str, b: str) -> int:
    """Mismatches between equal-length strings, N matching anything."""
    if len(a) != len(b):
        raise ValueError(f"Lengths differ: {len(a)} != {len(b)}")
    return sum(1 for x, y in zip(a, b) if x != y and x != "N" and y != "N")


def aligned_positions(alignment: Alignment) -> np.ndarray:
    """
    For each column, the 0-based position in ``aligned_b`` (or -1 for a gap).

    Used to look up per-position qualities of the second sequence.
    """
    positions = np.full(len(alignment), -1, dtype=np.int64)
    pos = 0
    for k, c in enumerate(alignment.aligned_b):
        if c != GAP:
            positions[k] = pos
            pos += 1
    return positions
