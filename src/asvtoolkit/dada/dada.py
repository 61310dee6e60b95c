"""
Denoising engine: divisive partitioning of unique sequences into clusters.

State machine over one sample:
1. one cluster seeded by the most abundant unique sequence
2. every unique is compared with every center and assigned to the best
   scoring one (new assignment built in full, then swapped in)
3. each cluster's members are tested against the error model; the single
   most significant member below ``omega_a`` seeds a new cluster
4. repeat until nothing is significant (or the budget runs out)

Comparisons are cached per (cluster, unique): a center only changes when
consensus refinement is enabled, in which case its cache is dropped.
"""

import logging
import math
import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
from scipy.special import gammainc
from scipy.stats import binom

from .config import AlignParams, DenoiseParams
from .error_models import ErrorModel
from .errors import ConvergenceWarning, InputError
from .models import (
    Budget, Cluster, ClusterSet, Comparison, ExcludedSequence, UniqueSequenceSet,
)
from .parallel import ComparisonPool
from .seq_utils import is_degenerate

logger = logging.getLogger(__name__)


# =============================================================================
# Abundance p-value
# =============================================================================

def abundance_pvalue(
    abundance: int,
    expected: float,
    distribution: str = "poisson",
    n_reads: Optional[int] = None,
    condition_on_observed: bool = True,
) -> float:
    """
    Probability of seeing ``abundance`` or more copies produced by errors.

    Args:
        abundance: Observed reads of the member sequence
        expected: Expected error-generated copies (lambda * cluster reads)
        distribution: "poisson" or "binomial" (n = n_reads, p = expected / n)
        n_reads: Cluster read count, required for the binomial tail
        condition_on_observed: Return P(X >= a | X >= 1)

    Returns:
        Tail probability in [0, 1]
    """
    if abundance < 1:
        return 1.0
    if expected <= 0:
        return 0.0

    if distribution == "poisson":
        tail = float(gammainc(abundance, expected))
        observed = -math.expm1(-expected)
    elif distribution == "binomial":
        if not n_reads:
            raise ValueError("binomial p-value needs n_reads")
        p = min(1.0, expected / n_reads)
        tail = float(binom.sf(abundance - 1, n_reads, p))
        observed = -math.expm1(n_reads * math.log1p(-p)) if p < 1 else 1.0
    else:
        raise ValueError(f"Unknown distribution: {distribution}")

    if not condition_on_observed:
        return min(1.0, tail)
    if observed <= 0:
        return 1.0
    return min(1.0, tail / observed)


# =============================================================================
# Partition state
# =============================================================================

@dataclass
class _ClusterState:
    cluster_id: int
    center: str
    seed_index: int
    center_quality: Optional[np.ndarray]
    birth_pvalue: float = 0.0
    birth_distance: int = 0
    birth_expected: float = float("nan")


@dataclass(frozen=True)
class _Candidate:
    cluster_id: int
    unique_index: int
    pvalue: float
    distance: int
    abundance: int
    expected: float


@dataclass
class Partition:
    """
    Clusters keyed by stable integer ids plus the unique -> cluster map.

    Only ``apply_assignment``, ``spawn`` and ``set_center`` mutate it, and the
    engine calls them at round boundaries.
    """
    uniques: UniqueSequenceSet
    active: List[int]
    clusters: Dict[int, _ClusterState] = field(default_factory=dict)
    assignment: Dict[int, int] = field(default_factory=dict)
    # cluster id -> unique index -> comparison (None: screened out)
    comparisons: Dict[int, Dict[int, Optional[Comparison]]] = field(default_factory=dict)
    next_id: int = 0

    def spawn(self, seed_index: int, birth: Optional[_Candidate] = None) -> int:
        unique = self.uniques[seed_index]
        cid = self.next_id
        self.next_id += 1
        state = _ClusterState(
            cluster_id=cid,
            center=unique.sequence,
            seed_index=seed_index,
            center_quality=unique.quality,
        )
        if birth is not None:
            state.birth_pvalue = birth.pvalue
            state.birth_distance = birth.distance
            state.birth_expected = birth.expected
        self.clusters[cid] = state
        self.comparisons[cid] = {}
        return cid

    def set_center(self, cid: int, center: str, quality: Optional[np.ndarray]):
        self.clusters[cid].center = center
        self.clusters[cid].center_quality = quality
        self.comparisons[cid] = {}

    def pending(self, cid: int) -> List[int]:
        done = self.comparisons[cid]
        return [u for u in self.active if u not in done]

    def cluster_abundances(self) -> Dict[int, int]:
        totals = {cid: 0 for cid in self.clusters}
        for u, cid in self.assignment.items():
            totals[cid] += self.uniques[u].abundance
        return totals

    def members(self) -> Dict[int, List[int]]:
        out: Dict[int, List[int]] = {cid: [] for cid in self.clusters}
        for u in self.active:
            cid = self.assignment.get(u)
            if cid is not None:
                out[cid].append(u)
        return out

    def centers(self) -> Dict[str, int]:
        return {state.center: cid for cid, state in self.clusters.items()}

    def compute_assignment(self) -> Dict[int, int]:
        """
        Best cluster of every active unique: highest score, then
        higher-abundance cluster, then lower cluster id.
        """
        previous = self.cluster_abundances()
        new: Dict[int, int] = {}
        for u in self.active:
            best_key = None
            best_cid = None
            for cid in sorted(self.clusters):
                comparison = self.comparisons[cid].get(u)
                if comparison is None:
                    continue
                key = (comparison.score, previous.get(cid, 0), -cid)
                if best_key is None or key > best_key:
                    best_key, best_cid = key, cid
            if best_cid is None:
                raise RuntimeError(f"Unique {u} has no comparison with any center")
            new[u] = best_cid
        return new

    def apply_assignment(self, assignment: Dict[int, int]) -> int:
        """Swap in a complete assignment; returns the number of uniques that moved."""
        moved = sum(1 for u, cid in assignment.items() if self.assignment.get(u) != cid)
        self.assignment = assignment
        return moved


# =============================================================================
# Engine
# =============================================================================

class DenoisingEngine:
    """Runs the partition loop for one UniqueSequenceSet."""

    def __init__(
        self,
        uniques: UniqueSequenceSet,
        error_model: ErrorModel,
        params: Optional[DenoiseParams] = None,
        align_params: Optional[AlignParams] = None,
        num_workers: int = 1,
    ):
        if len(uniques) == 0:
            raise InputError("Cannot denoise an empty sample")
        self.uniques = uniques
        self.error_model = error_model
        self.params = params or DenoiseParams()
        self.align_params = align_params or AlignParams()
        self.num_workers = num_workers

        self.excluded: List[ExcludedSequence] = []
        active = []
        for idx, unique in enumerate(uniques):
            reason = is_degenerate(unique.sequence)
            if reason is not None:
                self._exclude(idx, reason)
            else:
                active.append(idx)
        if not active:
            raise InputError("Every unique sequence in the sample is degenerate")
        self.partition = Partition(uniques=uniques, active=active)

    def _exclude(self, idx: int, reason: str):
        unique = self.uniques[idx]
        logger.warning(
            f"Excluding unique sequence {idx} (abundance {unique.abundance}): {reason}")
        self.excluded.append(ExcludedSequence(unique.sequence, unique.abundance, reason))

    # -------------------------------------------------------------------------
    # comparisons
    # -------------------------------------------------------------------------

    def _fill_comparisons(self, pool: ComparisonPool):
        part = self.partition
        for cid in sorted(part.clusters):
            pending = part.pending(cid)
            if not pending:
                continue
            state = part.clusters[cid]
            for idx, comparison, error in pool.compare(state.center, state.center_quality, pending):
                part.comparisons[cid][idx] = comparison

        # A unique screened out of every center is aligned against all of them
        orphans = [u for u in part.active
                   if all(part.comparisons[cid].get(u) is None for cid in part.clusters)]
        if not orphans:
            return
        failed = set(orphans)
        for cid in sorted(part.clusters):
            state = part.clusters[cid]
            results = pool.compare(state.center, state.center_quality, orphans, screen=False)
            for idx, comparison, error in results:
                if comparison is not None:
                    part.comparisons[cid][idx] = comparison
                    failed.discard(idx)
        for idx in sorted(failed):
            self._exclude(idx, "could not be aligned to any cluster center")
            part.active.remove(idx)
            part.assignment.pop(idx, None)

    # -------------------------------------------------------------------------
    # significance
    # -------------------------------------------------------------------------

    def _pvalue(self, comparison: Comparison, abundance: int, cluster_reads: int) -> Tuple[float, float]:
        p = self.params
        expected = comparison.lambda_ * cluster_reads
        pval = abundance_pvalue(abundance, expected, p.distribution, cluster_reads,
                                p.condition_on_observed)
        if p.bonferroni:
            pval = min(1.0, pval * len(self.partition.active))
        return pval, expected

    def _cluster_candidate(self, cid: int, members: List[int], cluster_reads: int) -> Optional[_Candidate]:
        part = self.partition
        centers = part.centers()
        eligible = []
        for u in members:
            unique = self.uniques[u]
            if unique.abundance < self.params.min_abundance or unique.sequence in centers:
                continue
            comparison = part.comparisons[cid].get(u)
            if comparison is None:
                continue
            eligible.append((u, unique.abundance, comparison))
        if not eligible:
            return None

        if self.params.candidate_selection == "max_distance":
            u, abundance, comparison = min(
                eligible, key=lambda e: (-e[2].distance, -e[1], e[0]))
            pval, expected = self._pvalue(comparison, abundance, cluster_reads)
            return _Candidate(cid, u, pval, comparison.distance, abundance, expected)

        best = None
        for u, abundance, comparison in eligible:
            pval, expected = self._pvalue(comparison, abundance, cluster_reads)
            cand = _Candidate(cid, u, pval, comparison.distance, abundance, expected)
            if best is None or (pval, -cand.distance, -abundance, u) < (
                    best.pvalue, -best.distance, -best.abundance, best.unique_index):
                best = cand
        return best

    def _most_significant(self) -> Optional[_Candidate]:
        part = self.partition
        members = part.members()
        abundances = part.cluster_abundances()
        best = None
        for cid in sorted(part.clusters):
            cand = self._cluster_candidate(cid, members[cid], abundances[cid])
            if cand is None:
                continue
            if best is None or (cand.pvalue, -cand.abundance, cand.unique_index) < (
                    best.pvalue, -best.abundance, best.unique_index):
                best = cand
        if best is None or best.pvalue >= self.params.omega_a:
            return None
        return best

    # -------------------------------------------------------------------------
    # consensus
    # -------------------------------------------------------------------------

    def _consensus(self, cid: int, members: List[int]) -> Optional[str]:
        """Abundance-weighted modal base per center column (insertions ignored)."""
        part = self.partition
        center = part.clusters[cid].center
        votes = [dict() for _ in center]
        for u in members:
            comparison = part.comparisons[cid].get(u)
            if comparison is None:
                continue
            weight = self.uniques[u].abundance
            pos = -1
            for ref, obs in zip(comparison.aligned_center, comparison.aligned_member):
                if ref == "-":
                    continue
                pos += 1
                votes[pos][obs] = votes[pos].get(obs, 0) + weight
        bases = []
        for pos, tally in enumerate(votes):
            if not tally:
                bases.append(center[pos])
                continue
            # ties keep the current center base
            top = max(tally.values())
            winner = center[pos] if tally.get(center[pos], 0) == top else min(
                b for b, n in tally.items() if n == top)
            if winner != "-":
                bases.append(winner)
        consensus = "".join(bases)
        if consensus == center or is_degenerate(consensus) is not None:
            return None
        if consensus in part.centers():
            return None
        return consensus

    def _refine_centers(self) -> bool:
        part = self.partition
        changed = False
        members = part.members()
        for cid in sorted(part.clusters):
            consensus = self._consensus(cid, members[cid])
            if consensus is None:
                continue
            seed = self.uniques[part.clusters[cid].seed_index]
            quality = seed.quality if len(seed.quality) == len(consensus) else None
            logger.debug(f"Cluster {cid}: center replaced by consensus")
            part.set_center(cid, consensus, quality)
            changed = True
        return changed

    # -------------------------------------------------------------------------
    # main loop
    # -------------------------------------------------------------------------

    def run(self, budget: Optional[Budget] = None) -> ClusterSet:
        budget = (budget or Budget()).start()
        part = self.partition
        part.spawn(part.active[0])
        rounds = 0
        converged = True

        with ComparisonPool(self.uniques.uniques, self.error_model, self.align_params,
                            self.params, self.num_workers) as pool:
            while True:
                self._fill_comparisons(pool)
                part.apply_assignment(part.compute_assignment())

                if self.params.use_consensus and self._refine_centers():
                    self._fill_comparisons(pool)
                    part.apply_assignment(part.compute_assignment())

                rounds += 1
                candidate = self._most_significant()
                if candidate is None:
                    break
                if self.params.max_clusters and len(part.clusters) >= self.params.max_clusters:
                    logger.info(f"Reached max_clusters={self.params.max_clusters}")
                    break
                if budget.exhausted(rounds):
                    converged = False
                    warnings.warn(
                        f"Denoising stopped after {rounds} rounds with significant "
                        f"sequences remaining", ConvergenceWarning)
                    break

                cid = part.spawn(candidate.unique_index, candidate)
                logger.debug(
                    f"Round {rounds}: new cluster {cid} from unique {candidate.unique_index} "
                    f"(abundance {candidate.abundance}, distance {candidate.distance}, "
                    f"p={candidate.pvalue:.3g})")

        return self._finalize(rounds, converged)

    def _finalize(self, rounds: int, converged: bool) -> ClusterSet:
        part = self.partition
        members = part.members()
        clusters = []
        comparisons: Dict[int, Comparison] = {}
        for cid in sorted(part.clusters):
            state = part.clusters[cid]
            member_list = sorted(members[cid])
            abundance = int(sum(self.uniques[u].abundance for u in member_list))
            clusters.append(Cluster(
                cluster_id=cid,
                center=state.center,
                seed_index=state.seed_index,
                members=member_list,
                abundance=abundance,
                birth_pvalue=state.birth_pvalue,
                birth_distance=state.birth_distance,
                birth_expected=state.birth_expected,
                quality=self._cluster_quality(state, member_list),
            ))
            for u in member_list:
                comparisons[u] = part.comparisons[cid][u]

        result = ClusterSet(
            uniques=self.uniques,
            clusters=clusters,
            cluster_of=dict(part.assignment),
            converged=converged,
            rounds=rounds,
            excluded=list(self.excluded),
            comparisons=comparisons,
        )
        logger.info(
            f"Denoised {self.uniques.total_reads} reads in {len(self.uniques)} uniques "
            f"into {len(clusters)} sequence variants ({rounds} rounds)")
        return result

    def _cluster_quality(self, state: _ClusterState, members: List[int]) -> np.ndarray:
        """Abundance-weighted mean quality of members as long as the center."""
        length = len(state.center)
        total = np.zeros(length)
        weight = 0
        for u in members:
            unique = self.uniques[u]
            if unique.length == length:
                total += unique.abundance * unique.quality
                weight += unique.abundance
        if weight:
            return total / weight
        if state.center_quality is not None and len(state.center_quality) == length:
            return np.array(state.center_quality, dtype=float)
        seed = self.uniques[state.seed_index]
        return np.full(length, float(np.mean(seed.quality)))


def denoise(
    uniques: UniqueSequenceSet,
    error_model: ErrorModel,
    params: Optional[DenoiseParams] = None,
    align_params: Optional[AlignParams] = None,
    budget: Optional[Budget] = None,
    num_workers: int = 1,
) -> ClusterSet:
    """
    Partition unique sequences into inferred true sequences.

    Args:
        uniques: Dereplicated sample
        error_model: Substitution rates (not modified)
        params: Formation threshold and p-value settings
        align_params: Alignment scores and band
        budget: Optional round / wall-clock limit; when it runs out the current
            partition is returned with ``converged = False``
        num_workers: Processes used for the comparisons

    Returns:
        ClusterSet whose abundances plus excluded abundances sum to the
        sample's read count
    """
    engine = DenoisingEngine(uniques, error_model, params, align_params, num_workers)
    return engine.run(budget)
