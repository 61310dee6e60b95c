"""
Transition counting and rate re-estimation (the M step of error learning).
"""

import logging
from typing import Iterable, Optional

import numpy as np
from scipy.optimize import isotonic_regression

from ..config import LearnParams
from ..models import ClusterSet
from ..seq_utils import BASE_INDEX, round_quality
from .base import ErrorModel

logger = logging.getLogger(__name__)


def count_transitions(cluster_set: ClusterSet, max_q: int) -> np.ndarray:
    """
    Abundance-weighted (reference -> observed, quality) counts.

    Every member is walked along its stored alignment to the cluster center;
    columns where either side is a gap or an N are skipped.
    """
    counts = np.zeros((16, max_q + 1), dtype=float)
    uniques = cluster_set.uniques

    for unique_index, comparison in cluster_set.comparisons.items():
        unique = uniques[unique_index]
        quality = round_quality(unique.quality, max_q)
        pos = -1
        for ref, obs in zip(comparison.aligned_center, comparison.aligned_member):
            if obs != "-":
                pos += 1
            r = BASE_INDEX.get(ref)
            o = BASE_INDEX.get(obs)
            if r is None or o is None:
                continue
            counts[r * 4 + o, quality[pos]] += unique.abundance
    return counts


def accumulate_transitions(cluster_sets: Iterable[ClusterSet], max_q: int) -> np.ndarray:
    total = np.zeros((16, max_q + 1), dtype=float)
    for cs in cluster_sets:
        total += count_transitions(cs, max_q)
    return total


def estimate_error_model(
    counts: np.ndarray,
    previous: ErrorModel,
    params: Optional[LearnParams] = None,
) -> ErrorModel:
    """
    New rates from transition counts.

    Off-diagonal rate = (substitutions + 1) / (opportunities + 4). Qualities
    with no opportunities keep the previous rate. With ``params.monotone`` the
    rates are fitted non-increasing in quality (weighted by opportunities),
    then clipped to [min_rate, max_rate]; the diagonal takes the remainder.
    """
    if params is None:
        params = LearnParams()
    n_q = counts.shape[1]
    prev = previous.with_quality_range(n_q).rates
    rates = np.empty_like(prev)

    for ref in range(4):
        block = counts[ref * 4:(ref + 1) * 4]
        opportunities = block.sum(axis=0)
        observed = opportunities > 0
        off_total = np.zeros(n_q)
        for obs in range(4):
            if obs == ref:
                continue
            row = ref * 4 + obs
            laplace = (block[obs] + 1.0) / (opportunities + 4.0)
            rate = np.where(observed, laplace, prev[row])
            if params.monotone:
                fit = isotonic_regression(rate, weights=opportunities + 1.0, increasing=False)
                rate = np.asarray(fit.x)
            rate = np.clip(rate, params.min_rate, params.max_rate)
            rates[row] = rate
            off_total += rate
        rates[ref * 4 + ref] = 1.0 - off_total

    model = ErrorModel(rates, name="learned")
    logger.debug(
        f"Re-estimated error rates from {int(counts.sum())} aligned bases; "
        f"Q30 substitution rate {model.substitution_rate(min(30, model.max_q)):.2e}")
    return model
