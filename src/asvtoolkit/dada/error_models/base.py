"""
Error model: substitution probabilities indexed by transition and quality.

An ErrorModel is an immutable snapshot. The rate table is copied on
construction and write-protected so that one instance can be handed to many
sample pipelines (or pickled to worker processes) without anyone mutating it.
"""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np
import pandas as pd

from ..seq_utils import BASE_INDEX, BASES, TRANSITIONS

_TOLERANCE = 1e-9


@dataclass(frozen=True, eq=False)
class ErrorModel:
    """
    16 x Q table of P(observed base | reference base, quality).

    Rows follow ``TRANSITIONS`` (A2A, A2C, ..., T2T); column ``q`` holds the
    rates for Phred score ``q``.
    """
    rates: np.ndarray
    name: str = "custom"

    def __post_init__(self):
        rates = np.array(self.rates, dtype=float, copy=True)
        if rates.ndim != 2 or rates.shape[0] != 16 or rates.shape[1] < 1:
            raise ValueError(f"Error table must have shape (16, Q), got {rates.shape}")
        if np.isnan(rates).any():
            raise ValueError("Error table contains NaN")
        if rates.min() < -_TOLERANCE or rates.max() > 1 + _TOLERANCE:
            raise ValueError("Error rates must lie in [0, 1]")
        rates = np.clip(rates, 0.0, 1.0)
        rates.setflags(write=False)
        object.__setattr__(self, "rates", rates)

    @property
    def max_q(self) -> int:
        return self.rates.shape[1] - 1

    @property
    def n_q(self) -> int:
        return self.rates.shape[1]

    def _q(self, q) -> np.ndarray:
        return np.clip(np.rint(np.asarray(q, dtype=float)).astype(int), 0, self.max_q)

    def rate(self, ref: str, obs: str, q: int) -> float:
        """P(obs | ref, q) for single bases."""
        row = BASE_INDEX[ref] * 4 + BASE_INDEX[obs]
        return float(self.rates[row, self._q(q)])

    def lookup(self, ref_idx: np.ndarray, obs_idx: np.ndarray, q: np.ndarray) -> np.ndarray:
        """Vectorized rates for arrays of base codes (0..3) and qualities."""
        rows = np.asarray(ref_idx, dtype=int) * 4 + np.asarray(obs_idx, dtype=int)
        return self.rates[rows, self._q(q)]

    def transition_matrix(self, q: int) -> np.ndarray:
        """4 x 4 matrix [ref, obs] at quality ``q``."""
        return self.rates[:, self._q(q)].reshape(4, 4)

    def substitution_rate(self, q: int) -> float:
        """Mean probability of any substitution at quality ``q``."""
        m = self.transition_matrix(q)
        return float((1.0 - np.diag(m)).mean())

    def with_quality_range(self, n_q: int) -> "ErrorModel":
        """Truncate, or extend by repeating the last column."""
        if n_q == self.n_q:
            return self
        if n_q < self.n_q:
            return ErrorModel(self.rates[:, :n_q], name=self.name)
        pad = np.repeat(self.rates[:, -1:], n_q - self.n_q, axis=1)
        return ErrorModel(np.hstack([self.rates, pad]), name=self.name)

    # =========================================================================
    # Invariants
    # =========================================================================

    def check(self, monotone: bool = True) -> List[str]:
        """Return the list of violated invariants (empty when sane)."""
        problems = []
        sums = self.rates.reshape(4, 4, -1).sum(axis=1)
        if not np.allclose(sums, 1.0, atol=1e-6):
            problems.append("rates of a reference base do not sum to 1")
        if monotone:
            for ref in range(4):
                for obs in range(4):
                    if ref == obs:
                        continue
                    row = self.rates[ref * 4 + obs]
                    if np.any(np.diff(row) > 1e-12):
                        problems.append(
                            f"{BASES[ref]}2{BASES[obs]} increases with quality")
        return problems

    def is_monotone(self) -> bool:
        return not self.check(monotone=True)

    def max_difference(self, other: "ErrorModel") -> float:
        n_q = min(self.n_q, other.n_q)
        return float(np.abs(self.rates[:, :n_q] - other.rates[:, :n_q]).max())

    def allclose(self, other: "ErrorModel", atol: float = 1e-12) -> bool:
        return self.rates.shape == other.rates.shape and np.allclose(
            self.rates, other.rates, atol=atol)

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(self.rates, index=pd.Index(TRANSITIONS, name="transition"),
                            columns=list(range(self.n_q)))

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame, name: Optional[str] = None) -> "ErrorModel":
        missing = [t for t in TRANSITIONS if t not in df.index]
        if missing:
            raise ValueError(f"Missing transitions: {missing}")
        df = df.loc[TRANSITIONS]
        df = df[sorted(df.columns, key=lambda c: int(c))]
        return cls(df.to_numpy(dtype=float), name=name or "loaded")
