"""
De novo bimera detection.

A sequence is a bimera when its left part matches one more abundant sequence
and its right part matches another, better than any single parent matches it
over the whole length.
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..dada.align import GAP, align
from ..dada.config import ChimeraParams
from ..dada.errors import AlignmentDegenerate
from ..dada.models import ChimeraCall, ChimeraReport, ExcludedSequence
from ..dada.seq_utils import is_degenerate

logger = logging.getLogger(__name__)

SequenceCounts = Union[Mapping[str, int], Sequence[Tuple[str, int]]]


def _as_counts(sequences: SequenceCounts) -> Dict[str, int]:
    items = sequences.items() if isinstance(sequences, Mapping) else sequences
    counts: Dict[str, int] = {}
    for seq, abundance in items:
        counts[seq] = counts.get(seq, 0) + int(abundance)
    return counts


def mismatch_profile(candidate: str, parent: str, params: ChimeraParams) -> np.ndarray:
    """
    Per-position mismatches of ``candidate`` against ``parent``.

    Substitutions and candidate bases opposite a gap count at their own
    position; parent bases missing from the candidate count at the next
    candidate position. N matches anything.
    """
    aln = align(parent, candidate, params.align)
    profile = np.zeros(len(candidate), dtype=np.int32)
    pos = 0
    pending = 0
    for p, c in zip(aln.aligned_a, aln.aligned_b):
        if c == GAP:
            # deletion inside the candidate only; end gaps are free
            if 0 < pos < len(candidate):
                pending += 1
            continue
        if p == GAP or (p != c and p != "N" and c != "N"):
            profile[pos] += 1
        profile[pos] += pending
        pending = 0
        pos += 1
    return profile


def best_bimera(
    candidate: str,
    parents: Sequence[str],
    params: ChimeraParams,
) -> Tuple[Optional[ChimeraCall], int]:
    """
    Best two-parent fit of ``candidate``.

    ``parents`` must be ordered by preference (most abundant first).

    Returns:
        (call, single_parent_mismatches); ``call`` is None when no breakpoint
        leaves both segments at least ``min_segment`` long
    """
    length = len(candidate)
    profiles = []
    kept = []
    for parent in parents:
        try:
            profiles.append(mismatch_profile(candidate, parent, params))
        except AlignmentDegenerate:
            continue
        kept.append(parent)
    if not kept:
        return None, length

    mm = np.vstack(profiles)
    # prefix[p, k] = mismatches of candidate[:k] against parent p
    prefix = np.zeros((len(kept), length + 1), dtype=np.int64)
    prefix[:, 1:] = np.cumsum(mm, axis=1)
    suffix = prefix[:, -1:] - prefix

    single = int(prefix[:, -1].min())
    lo = params.min_segment
    hi = length - params.min_segment
    if lo > hi or len(kept) < 2:
        return None, single

    best = None
    for k in range(lo, hi + 1):
        # argmin returns the first (most preferred) parent on ties
        left = int(np.argmin(prefix[:, k]))
        right = int(np.argmin(suffix[:, k]))
        if left == right:
            # same parent on both sides: try the runner-up on either side
            alt_left = _second_best(prefix[:, k], left)
            alt_right = _second_best(suffix[:, k], right)
            options = []
            if alt_left is not None:
                options.append((prefix[alt_left, k] + suffix[right, k], alt_left, right))
            if alt_right is not None:
                options.append((prefix[left, k] + suffix[alt_right, k], left, alt_right))
            if not options:
                continue
            total, left, right = min(options)
        else:
            total = prefix[left, k] + suffix[right, k]
        total = int(total)
        if best is None or total < best[0]:
            best = (total, k, left, right)

    if best is None:
        return None, single
    total, k, left, right = best
    call = ChimeraCall(
        sequence=candidate,
        abundance=0,
        left_parent=kept[left],
        right_parent=kept[right],
        breakpoint=k,
        mismatches=total,
        single_parent_mismatches=single,
    )
    return call, single


def _second_best(values: np.ndarray, exclude: int) -> Optional[int]:
    order = np.argsort(values, kind="stable")
    for idx in order:
        if idx != exclude:
            return int(idx)
    return None


def is_bimera(call: Optional[ChimeraCall], single: int, params: ChimeraParams) -> bool:
    if call is None:
        return False
    return call.mismatches <= params.mismatch_tolerance and call.mismatches < single


def detect_chimeras(
    sequences: SequenceCounts,
    params: Optional[ChimeraParams] = None,
) -> Tuple[Dict[str, int], ChimeraReport]:
    """
    Flag and remove bimeras from a ``{sequence: abundance}`` mapping.

    Candidates are tested from least to most abundant; the parents of a
    candidate are all sequences more abundant than ``min_parent_fold`` times
    its abundance. Counts of flagged sequences are dropped, not redistributed.

    Returns:
        (clean mapping in input order, ChimeraReport)
    """
    if params is None:
        params = ChimeraParams()
    counts = _as_counts(sequences)
    report = ChimeraReport()

    by_abundance = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    flagged = set()

    for seq, abundance in reversed(by_abundance):
        reason = is_degenerate(seq)
        if reason is not None:
            report.excluded.append(ExcludedSequence(seq, abundance, reason))
            continue
        threshold = params.min_parent_fold * abundance
        parents = [s for s, a in by_abundance
                   if a > threshold and s != seq and is_degenerate(s) is None]
        report.tested += 1
        if len(parents) < 2:
            continue
        call, single = best_bimera(seq, parents, params)
        if is_bimera(call, single, params):
            call = ChimeraCall(
                sequence=seq,
                abundance=abundance,
                left_parent=call.left_parent,
                right_parent=call.right_parent,
                breakpoint=call.breakpoint,
                mismatches=call.mismatches,
                single_parent_mismatches=single,
            )
            report.calls.append(call)
            flagged.add(seq)
            logger.debug(f"Bimera (abundance {abundance}) breakpoint {call.breakpoint}, "
                         f"{call.mismatches} vs {single} single-parent mismatches")

    clean = {seq: a for seq, a in counts.items() if seq not in flagged}
    logger.info(f"Identified {report.flagged} bimeras out of {report.tested} input sequences")
    return clean, report


def remove_chimeras_from_table(
    table: pd.DataFrame,
    params: Optional[ChimeraParams] = None,
    method: Optional[str] = None,
    min_sample_fraction: Optional[float] = None,
) -> Tuple[pd.DataFrame, ChimeraReport]:
    """
    Remove bimeras from a sample x sequence table.

    Args:
        table: Rows are samples, columns are sequences
        params: Chimera parameters
        method: Overrides ``params.method``:
            pooled - test column totals once
            consensus - test every sample; drop a column flagged in at least
                ``min_sample_fraction`` of the samples it occurs in
            per-sample - zero the flagged cells of each sample
        min_sample_fraction: Overrides ``params.min_sample_fraction``

    Returns:
        (filtered table, ChimeraReport)
    """
    if params is None:
        params = ChimeraParams()
    method = method or params.method
    fraction = params.min_sample_fraction if min_sample_fraction is None else min_sample_fraction

    if table.shape[1] == 0:
        return table.copy(), ChimeraReport()

    if method == "pooled":
        totals = table.sum(axis=0)
        _, report = detect_chimeras({s: int(n) for s, n in totals.items() if n > 0}, params)
        keep = [c for c in table.columns if c not in report.sequences]
        return table[keep].copy(), report

    per_sample: Dict[str, ChimeraReport] = {}
    for sample, row in table.iterrows():
        present = {s: int(n) for s, n in row.items() if n > 0}
        if present:
            _, per_sample[sample] = detect_chimeras(present, params)

    if method == "per-sample":
        out = table.copy()
        calls: List[ChimeraCall] = []
        for sample, report in per_sample.items():
            for call in report.calls:
                out.loc[sample, call.sequence] = 0
            calls.extend(report.calls)
        keep = [c for c in out.columns if out[c].sum() > 0]
        return out[keep], ChimeraReport(
            calls=calls, tested=sum(r.tested for r in per_sample.values()))

    if method != "consensus":
        raise ValueError(f"Unknown chimera removal method: {method}")

    present_in = (table > 0).sum(axis=0)
    flagged_in: Dict[str, int] = {}
    example_call: Dict[str, ChimeraCall] = {}
    for report in per_sample.values():
        for call in report.calls:
            flagged_in[call.sequence] = flagged_in.get(call.sequence, 0) + 1
            prev = example_call.get(call.sequence)
            if prev is None or call.abundance > prev.abundance:
                example_call[call.sequence] = call

    removed = [s for s, n in flagged_in.items() if n >= fraction * present_in[s]]
    calls = []
    for seq in removed:
        call = example_call[seq]
        calls.append(ChimeraCall(
            sequence=seq,
            abundance=int(table[seq].sum()),
            left_parent=call.left_parent,
            right_parent=call.right_parent,
            breakpoint=call.breakpoint,
            mismatches=call.mismatches,
            single_parent_mismatches=call.single_parent_mismatches,
        ))
    keep = [c for c in table.columns if c not in set(removed)]
    logger.info(f"Consensus chimera removal: {len(removed)} of {table.shape[1]} sequences removed")
    return table[keep].copy(), ChimeraReport(calls=calls, tested=table.shape[1])
