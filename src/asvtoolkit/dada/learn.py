"""
Self-consistent error learning.

Alternates denoising (with the current model) and rate re-estimation (from
the resulting partition) until the partition stops changing.
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

from .config import AlignParams, DenoiseParams, LearnParams
from .dada import denoise
from .error_models import ErrorModel, accumulate_transitions, estimate_error_model, get_error_model
from .errors import ConvergenceWarning, InputError
from .models import Budget, ClusterSet, UniqueSequenceSet
from .parallel import map_samples

logger = logging.getLogger(__name__)


@dataclass
class LearnDiagnostics:
    """Per-round record of the EM loop."""
    rounds: int = 0
    converged: bool = False
    clusters_per_round: List[int] = field(default_factory=list)
    max_rate_change: List[float] = field(default_factory=list)
    reads_moved: List[float] = field(default_factory=list)
    cluster_sets: List[ClusterSet] = field(default_factory=list, repr=False)


def _assigned_centers(cluster_set: ClusterSet) -> List[Optional[str]]:
    """Center sequence each unique is assigned to (None if excluded)."""
    centers: List[Optional[str]] = [None] * len(cluster_set.uniques)
    for cluster in cluster_set.clusters:
        for u in cluster.members:
            centers[u] = cluster.center
    return centers


def partition_change(previous: Sequence[ClusterSet], current: Sequence[ClusterSet]) -> float:
    """
    Fraction of reads whose cluster differs between two rounds.

    Clusters are matched by center sequence, so ids may differ between rounds.
    """
    moved = 0
    total = 0
    for before, after in zip(previous, current):
        old = _assigned_centers(before)
        new = _assigned_centers(after)
        for idx, unique in enumerate(after.uniques):
            total += unique.abundance
            if old[idx] != new[idx]:
                moved += unique.abundance
    return moved / total if total else 0.0


def _same_partition(previous: Sequence[ClusterSet], current: Sequence[ClusterSet]) -> bool:
    for before, after in zip(previous, current):
        if before.membership() != after.membership():
            return False
        if sorted(c.center for c in before.clusters) != sorted(c.center for c in after.clusters):
            return False
    return True


def learn_error_model(
    uniques: Union[UniqueSequenceSet, Sequence[UniqueSequenceSet]],
    prior: Optional[ErrorModel] = None,
    max_rounds: Optional[int] = None,
    convergence_tolerance: Optional[float] = None,
    params: Optional[LearnParams] = None,
    denoise_params: Optional[DenoiseParams] = None,
    align_params: Optional[AlignParams] = None,
    budget: Optional[Budget] = None,
    num_workers: int = 1,
) -> Tuple[ErrorModel, LearnDiagnostics]:
    """
    Learn substitution rates from the data itself.

    Args:
        uniques: One dereplicated sample or a list of samples learned jointly
        prior: Round-0 model; defaults to the ``params.seed_model`` seed table
        max_rounds: Overrides ``params.max_rounds``
        convergence_tolerance: Overrides ``params.convergence_tolerance``
            (fraction of reads allowed to change cluster between rounds)
        params: Learning parameters
        denoise_params: Passed to every denoising round
        align_params: Passed to every denoising round
        budget: Optional limit over the whole loop; the remaining time is
            handed to every denoising pass, and a pass cut short ends the loop
        num_workers: Samples denoised in parallel (comparison workers when
            learning from a single sample)

    Returns:
        (model, diagnostics). If the loop stops before the partition is
        stable a ConvergenceWarning is issued and ``diagnostics.converged``
        is False.
    """
    params = params or LearnParams()
    max_rounds = params.max_rounds if max_rounds is None else max_rounds
    tolerance = params.convergence_tolerance if convergence_tolerance is None else convergence_tolerance
    if max_rounds < 1:
        raise InputError(f"max_rounds must be >= 1, got {max_rounds}")

    samples = [uniques] if isinstance(uniques, UniqueSequenceSet) else list(uniques)
    if not samples:
        raise InputError("No samples to learn error rates from")
    for n, sample in enumerate(samples):
        if len(sample) == 0:
            raise InputError(f"Sample {n} has no unique sequences")

    budget = (budget or Budget()).start()
    model = prior if prior is not None else get_error_model(params.seed_model, params.max_q)
    model = model.with_quality_range(params.max_q + 1)
    diagnostics = LearnDiagnostics()
    previous: Optional[List[ClusterSet]] = None

    logger.info(f"Learning error rates from {len(samples)} sample(s), up to {max_rounds} rounds")

    # a lone sample spends the workers on its comparisons instead
    sample_workers = num_workers if len(samples) == 1 else 1

    for round_num in range(1, max_rounds + 1):
        round_budget = Budget(max_seconds=budget.remaining_seconds)
        tasks = [(sample, model, denoise_params, align_params, round_budget, sample_workers)
                 for sample in samples]
        cluster_sets = map_samples(denoise, tasks, num_workers)

        counts = accumulate_transitions(cluster_sets, params.max_q)
        new_model = estimate_error_model(counts, model, params)
        change = new_model.max_difference(model)

        diagnostics.rounds = round_num
        diagnostics.clusters_per_round.append(sum(len(cs) for cs in cluster_sets))
        diagnostics.max_rate_change.append(change)
        diagnostics.cluster_sets = cluster_sets

        if not all(cs.converged for cs in cluster_sets):
            logger.warning(f"Learning budget exhausted during round {round_num}")
            model = new_model
            break

        if previous is not None:
            moved = partition_change(previous, cluster_sets)
            diagnostics.reads_moved.append(moved)
            logger.info(
                f"Round {round_num}: {diagnostics.clusters_per_round[-1]} clusters, "
                f"{moved:.2%} of reads moved, max rate change {change:.2e}")
            stable = _same_partition(previous, cluster_sets) if tolerance <= 0 else moved <= tolerance
            if stable:
                diagnostics.converged = True
                model = new_model
                break
        else:
            logger.info(
                f"Round {round_num}: {diagnostics.clusters_per_round[-1]} clusters, "
                f"max rate change {change:.2e}")

        previous = cluster_sets
        model = new_model
        if budget.exhausted(round_num) and round_num < max_rounds:
            logger.warning(f"Learning budget exhausted after {round_num} rounds")
            break

    if not diagnostics.converged:
        warnings.warn(
            f"Error model did not converge after {diagnostics.rounds} rounds",
            ConvergenceWarning)

    return ErrorModel(model.rates, name="learned"), diagnostics
