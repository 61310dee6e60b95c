"""
Seed error tables used for round 0 of error learning.
"""

import numpy as np

from ...utils.config import MAX_QUALITY
from .base import ErrorModel


def _from_substitution_rates(p: np.ndarray, name: str) -> ErrorModel:
    """Spread a per-quality substitution probability evenly over the 3 other bases."""
    rates = np.empty((16, len(p)))
    for ref in range(4):
        for obs in range(4):
            rates[ref * 4 + obs] = (1.0 - p) if ref == obs else p / 3.0
    return ErrorModel(rates, name=name)


def nominal_error_model(max_q: int = MAX_QUALITY) -> ErrorModel:
    """Rates implied by the Phred definition, p = 10^(-q/10)."""
    q = np.arange(max_q + 1, dtype=float)
    return _from_substitution_rates(np.power(10.0, -q / 10.0), "nominal")


def uniform_error_model(rate: float = 0.01, max_q: int = MAX_QUALITY) -> ErrorModel:
    """The same substitution probability at every quality score."""
    if not 0 <= rate <= 1:
        raise ValueError(f"rate must be in [0, 1], got {rate}")
    return _from_substitution_rates(np.full(max_q + 1, rate), f"uniform_{rate:g}")


def noiseless_error_model(max_q: int = MAX_QUALITY, floor: float = 1e-7) -> ErrorModel:
    """Near-zero substitution rates; every variant is treated as real."""
    return _from_substitution_rates(np.full(max_q + 1, floor), "noiseless")
