"""
Unique-vs-center comparison: alignment, edit distance and the probability
that the center produced the unique sequence through substitution errors.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from .align import GAP, align
from .config import AlignParams, DenoiseParams
from .error_models import ErrorModel
from .errors import AlignmentDegenerate
from .kmers import kmer_distance, kmer_profile
from .models import Comparison, UniqueSequence
from .seq_utils import BASE_INDEX, round_quality

logger = logging.getLogger(__name__)


def generation_probability(
    aligned_center: str,
    aligned_member: str,
    member_quality: np.ndarray,
    error_model: ErrorModel,
) -> float:
    """
    Product over aligned base/base columns of P(member base | center base, q).

    Gap columns and N columns contribute a factor of 1.
    """
    q = round_quality(member_quality, error_model.max_q)
    refs, obss, quals = [], [], []
    pos = -1
    for ref, obs in zip(aligned_center, aligned_member):
        if obs != GAP:
            pos += 1
        if ref == GAP or obs == GAP:
            continue
        r = BASE_INDEX.get(ref)
        o = BASE_INDEX.get(obs)
        if r is None or o is None:
            continue
        refs.append(r)
        obss.append(o)
        quals.append(q[pos])
    if not refs:
        return 1.0
    rates = error_model.lookup(np.array(refs), np.array(obss), np.array(quals))
    if np.any(rates <= 0):
        return 0.0
    return float(np.exp(np.log(rates).sum()))


def compare_sequences(
    unique_index: int,
    unique: UniqueSequence,
    center: str,
    error_model: ErrorModel,
    align_params: AlignParams,
    center_quality: Optional[np.ndarray] = None,
) -> Comparison:
    """Align ``unique`` to ``center`` and score it under the error model."""
    aln = align(center, unique.sequence, align_params,
                qual_a=center_quality, qual_b=unique.quality)
    lam = generation_probability(aln.aligned_a, aln.aligned_b, unique.quality, error_model)
    return Comparison(
        unique_index=unique_index,
        score=aln.score,
        distance=aln.distance,
        lambda_=lam,
        aligned_center=aln.aligned_a,
        aligned_member=aln.aligned_b,
    )


class Comparer:
    """
    Compares unique sequences of one sample against cluster centers.

    Holds only read-only state (uniques, model, parameters, k-mer profiles),
    so a copy can live in each worker process.
    """

    def __init__(
        self,
        uniques: List[UniqueSequence],
        error_model: ErrorModel,
        align_params: AlignParams,
        denoise_params: DenoiseParams,
    ):
        self.uniques = uniques
        self.error_model = error_model
        self.align_params = align_params
        self.use_kmers = denoise_params.use_kmers
        self.kmer_size = denoise_params.kmer_size
        self.kdist_cutoff = denoise_params.kdist_cutoff
        self._profiles: Dict[int, np.ndarray] = {}

    def _profile(self, idx: int) -> np.ndarray:
        profile = self._profiles.get(idx)
        if profile is None:
            profile = self._profiles[idx] = kmer_profile(self.uniques[idx].sequence, self.kmer_size)
        return profile

    def screened_out(self, idx: int, center: str, center_profile: np.ndarray) -> bool:
        if not self.use_kmers:
            return False
        dist = kmer_distance(center, self.uniques[idx].sequence, self.kmer_size,
                             profile_a=center_profile, profile_b=self._profile(idx))
        return dist > self.kdist_cutoff

    def compare_many(
        self,
        center: str,
        center_quality: Optional[np.ndarray],
        indices: Iterable[int],
        screen: bool = True,
    ) -> List[Tuple[int, Optional[Comparison], Optional[str]]]:
        """
        Compare each unique in ``indices`` with ``center``.

        Returns ``(index, comparison, error)`` triples; ``comparison`` is None
        when the pair was screened out (error None) or could not be aligned
        (error holds the reason).
        """
        center_profile = kmer_profile(center, self.kmer_size) if (screen and self.use_kmers) else None
        results = []
        for idx in indices:
            if screen and self.screened_out(idx, center, center_profile):
                results.append((idx, None, None))
                continue
            try:
                comparison = compare_sequences(
                    idx, self.uniques[idx], center, self.error_model,
                    self.align_params, center_quality)
            except AlignmentDegenerate as err:
                results.append((idx, None, err.reason))
                continue
            results.append((idx, comparison, None))
        return results
