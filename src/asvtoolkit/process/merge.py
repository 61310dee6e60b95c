"""
Paired-read merging.

Denoised forward and reverse reads are merged cluster pair by cluster pair:
each read pair maps to (forward cluster, reverse cluster), and every distinct
combination is aligned once with the reverse cluster reverse-complemented.
"""

import logging
from collections import Counter
from dataclasses import replace
from typing import Optional, Sequence, Tuple

import numpy as np

from ..dada.align import GAP, align
from ..dada.config import MergeParams
from ..dada.errors import AlignmentDegenerate, InputError
from ..dada.models import ClusterSet, MergedPair, MergeResult, UniqueSequenceSet
from ..dada.seq_utils import phred_to_prob, reverse_complement

logger = logging.getLogger(__name__)

DenoisedSample = Tuple[UniqueSequenceSet, ClusterSet]


def _reject(reason: str, **fields) -> MergedPair:
    return MergedPair(forward_id=-1, reverse_id=-1, abundance=0,
                      accept=False, reject_reason=reason, **fields)


def _concatenate(fwd, fwd_qual, rev, rev_qual, spacer: int) -> MergedPair:
    quality = np.concatenate([np.asarray(fwd_qual, dtype=float), np.zeros(spacer),
                              np.asarray(rev_qual, dtype=float)])
    return MergedPair(forward_id=-1, reverse_id=-1, abundance=0,
                      sequence=fwd + "N" * spacer + rev, quality=quality, accept=True)


def merge_sequences(
    fwd: str,
    fwd_qual: Sequence[float],
    rev_rc: str,
    rev_rc_qual: Sequence[float],
    params: Optional[MergeParams] = None,
) -> MergedPair:
    """
    Merge a forward read with an already reverse-complemented reverse read.

    Args:
        fwd, fwd_qual: Forward sequence and Phred scores
        rev_rc, rev_rc_qual: Reverse-complemented reverse sequence and
            reversed Phred scores
        params: Overlap and mismatch limits

    Returns:
        MergedPair (ids and abundance unset). Rejected merges carry
        ``accept=False`` and a ``reject_reason``.
    """
    if params is None:
        params = MergeParams()
    if len(fwd_qual) != len(fwd) or len(rev_rc_qual) != len(rev_rc):
        raise InputError("Sequence and quality lengths differ")

    if params.just_concatenate:
        return _concatenate(fwd, fwd_qual, rev_rc, rev_rc_qual, params.concatenate_spacer)

    try:
        aln = align(fwd, rev_rc, params.align, qual_a=fwd_qual, qual_b=rev_rc_qual)
    except AlignmentDegenerate as err:
        return _reject(f"degenerate: {err.reason}")

    start, end = aln.overlap_bounds
    overlap = end - start
    if overlap < params.min_overlap:
        return _reject("insufficient overlap", overlap=overlap)

    pf = phred_to_prob(fwd_qual)
    pr = phred_to_prob(rev_rc_qual)

    bases = []
    quals = []
    mismatches = 0
    indels = 0
    weighted = 0.0
    i = j = 0
    for col, (a, b) in enumerate(zip(aln.aligned_a, aln.aligned_b)):
        qa = float(fwd_qual[i]) if a != GAP else None
        qb = float(rev_rc_qual[j]) if b != GAP else None

        if col < start:
            # reverse bases before the forward start are overhang
            if a != GAP:
                bases.append(a)
                quals.append(qa)
            elif not params.trim_overhang:
                bases.append(b)
                quals.append(qb)
        elif col >= end:
            # forward bases past the reverse end are overhang
            if b != GAP:
                bases.append(b)
                quals.append(qb)
            elif not params.trim_overhang:
                bases.append(a)
                quals.append(qa)
        elif a == GAP or b == GAP:
            indels += 1
            weighted += 1.0
            bases.append(a if a != GAP else b)
            quals.append(qa if a != GAP else qb)
        else:
            if a == b or b == "N":
                base = a
            elif a == "N":
                base = b
            else:
                mismatches += 1
                weighted += (1.0 - pf[i]) * (1.0 - pr[j])
                if qa > qb:
                    base = a
                elif qb > qa:
                    base = b
                else:
                    base = "N"
            bases.append(base)
            quals.append(max(qa, qb))

        if a != GAP:
            i += 1
        if b != GAP:
            j += 1

    # an absolute limit replaces the fractional one
    if params.max_mismatches is not None:
        limit = float(params.max_mismatches)
    else:
        limit = params.max_mismatch_fraction * overlap
    reason = None
    if weighted > limit + 1e-12:
        reason = "too many mismatches"

    return MergedPair(
        forward_id=-1,
        reverse_id=-1,
        abundance=0,
        sequence="".join(bases),
        quality=np.array(quals, dtype=float),
        overlap=overlap,
        mismatches=mismatches,
        indels=indels,
        weighted_mismatches=float(weighted),
        accept=reason is None,
        reject_reason=reason,
    )


def _read_clusters(sample: DenoisedSample) -> np.ndarray:
    """Cluster id of every read (-1 where the read's unique was excluded)."""
    uniques, clusters = sample
    lookup = np.full(len(uniques), -1, dtype=np.int64)
    for u, cid in clusters.cluster_of.items():
        lookup[u] = cid
    return lookup[uniques.read_map]


def merge_pairs(
    forward: DenoisedSample,
    reverse: DenoisedSample,
    params: Optional[MergeParams] = None,
) -> MergeResult:
    """
    Merge the denoised forward and reverse reads of one sample.

    Args:
        forward: (dereplicated forward reads, their denoising result)
        reverse: Same for the reverse reads; read ``i`` pairs with forward
            read ``i``
        params: Merge parameters

    Returns:
        MergeResult with one MergedPair per distinct cluster combination,
        most abundant first

    Raises:
        InputError: If the forward and reverse read counts differ
    """
    if params is None:
        params = MergeParams()
    n_fwd = len(forward[0].read_map)
    n_rev = len(reverse[0].read_map)
    if n_fwd != n_rev:
        raise InputError(f"Forward and reverse read counts differ: {n_fwd} != {n_rev}")

    fwd_ids = _read_clusters(forward)
    rev_ids = _read_clusters(reverse)
    paired = (fwd_ids >= 0) & (rev_ids >= 0)
    combos = Counter(zip(fwd_ids[paired].tolist(), rev_ids[paired].tolist()))

    pairs = []
    for (fid, rid), count in sorted(combos.items(), key=lambda kv: (-kv[1], kv[0])):
        fc = forward[1].get(fid)
        rc = reverse[1].get(rid)
        rev_qual = np.asarray(rc.quality, dtype=float)[::-1]
        merged = merge_sequences(fc.center, fc.quality, reverse_complement(rc.center),
                                 rev_qual, params)
        pairs.append(replace(merged, forward_id=fid, reverse_id=rid, abundance=count))

    result = MergeResult(pairs=pairs, unpaired_reads=int((~paired).sum()))
    logger.info(
        f"Merged {result.merged_reads}/{n_fwd} read pairs "
        f"({len(result.accepted)} accepted, {len(result.rejected)} rejected combinations)")
    return result
