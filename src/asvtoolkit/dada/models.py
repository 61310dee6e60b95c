"""
Core data structures.

Design rules:
1. Inputs (reads, unique sequences) are immutable: dataclass(frozen=True)
2. Results that are assembled step by step use plain dataclasses
3. Everything converts to a pandas DataFrame for reporting
"""

import time
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np
import pandas as pd


# =============================================================================
# Reads and unique sequences
# =============================================================================

@dataclass(frozen=True)
class Read:
    """One sequencing read: bases plus Phred scores."""
    sequence: str
    quality: Tuple[int, ...]
    read_id: Optional[str] = None

    @property
    def length(self) -> int:
        return len(self.sequence)


@dataclass(frozen=True)
class UniqueSequence:
    """A distinct sequence, its read count and per-position mean quality."""
    sequence: str
    abundance: int
    quality: np.ndarray = field(compare=False, repr=False)

    @property
    def length(self) -> int:
        return len(self.sequence)


@dataclass
class UniqueSequenceSet:
    """
    Dereplicated sample.

    ``uniques`` is ordered by abundance (descending), ties broken by sequence.
    ``read_map[i]`` is the index into ``uniques`` of input read ``i``.
    """
    uniques: List[UniqueSequence]
    read_map: np.ndarray = field(repr=False)

    def __len__(self) -> int:
        return len(self.uniques)

    def __iter__(self) -> Iterator[UniqueSequence]:
        return iter(self.uniques)

    def __getitem__(self, idx: int) -> UniqueSequence:
        return self.uniques[idx]

    @property
    def total_reads(self) -> int:
        return int(sum(u.abundance for u in self.uniques))

    @property
    def sequences(self) -> List[str]:
        return [u.sequence for u in self.uniques]

    @property
    def abundances(self) -> np.ndarray:
        return np.array([u.abundance for u in self.uniques], dtype=np.int64)

    def index_of(self, sequence: str) -> int:
        for idx, u in enumerate(self.uniques):
            if u.sequence == sequence:
                return idx
        raise KeyError(sequence)

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame({
            "sequence": self.sequences,
            "abundance": self.abundances,
            "length": [u.length for u in self.uniques],
            "mean_quality": [float(np.mean(u.quality)) if u.length else np.nan
                             for u in self.uniques],
        })


# =============================================================================
# Denoising
# =============================================================================

@dataclass(frozen=True)
class Comparison:
    """Result of aligning one unique sequence against one cluster center."""
    unique_index: int
    score: float
    distance: int
    lambda_: float
    aligned_center: str = field(repr=False)
    aligned_member: str = field(repr=False)


@dataclass
class Cluster:
    """One inferred true sequence and the unique sequences assigned to it."""
    cluster_id: int
    center: str
    seed_index: int
    members: List[int] = field(default_factory=list)
    abundance: int = 0
    birth_pvalue: float = 0.0
    birth_distance: int = 0
    birth_expected: float = float("nan")
    quality: Optional[np.ndarray] = field(default=None, repr=False)

    @property
    def n_uniques(self) -> int:
        return len(self.members)


@dataclass
class ExcludedSequence:
    """A unique sequence left out of a step, with the reason."""
    sequence: str
    abundance: int
    reason: str


@dataclass
class ClusterSet:
    """Output of the denoising engine for one sample."""
    uniques: UniqueSequenceSet = field(repr=False)
    clusters: List[Cluster]
    cluster_of: Dict[int, int]
    converged: bool = True
    rounds: int = 0
    excluded: List[ExcludedSequence] = field(default_factory=list)
    # unique index -> alignment to the center of its cluster
    comparisons: Dict[int, Comparison] = field(default_factory=dict, repr=False)

    def __len__(self) -> int:
        return len(self.clusters)

    def __iter__(self) -> Iterator[Cluster]:
        return iter(self.clusters)

    def get(self, cluster_id: int) -> Cluster:
        for cluster in self.clusters:
            if cluster.cluster_id == cluster_id:
                return cluster
        raise KeyError(cluster_id)

    @property
    def total_abundance(self) -> int:
        return int(sum(c.abundance for c in self.clusters))

    @property
    def excluded_abundance(self) -> int:
        return int(sum(e.abundance for e in self.excluded))

    def sequence_abundances(self) -> Dict[str, int]:
        """``{center sequence: abundance}``, most abundant first."""
        out: Dict[str, int] = {}
        for cluster in sorted(self.clusters, key=lambda c: (-c.abundance, c.cluster_id)):
            out[cluster.center] = out.get(cluster.center, 0) + cluster.abundance
        return out

    def membership(self) -> frozenset:
        """Partition as a set of member sets, for convergence checks."""
        return frozenset(frozenset(c.members) for c in self.clusters)

    def to_dataframe(self) -> pd.DataFrame:
        rows = []
        for c in self.clusters:
            rows.append({
                "cluster_id": c.cluster_id,
                "sequence": c.center,
                "abundance": c.abundance,
                "n_uniques": c.n_uniques,
                "birth_pvalue": c.birth_pvalue,
                "birth_distance": c.birth_distance,
                "birth_expected": c.birth_expected,
            })
        return pd.DataFrame(rows, columns=[
            "cluster_id", "sequence", "abundance", "n_uniques",
            "birth_pvalue", "birth_distance", "birth_expected",
        ])


@dataclass
class Budget:
    """
    Round-count and wall-clock limits for the iterative loops.

    ``start()`` is called by the loop owner; ``exhausted(rounds)`` is checked
    at every round boundary.
    """
    max_rounds: Optional[int] = None
    max_seconds: Optional[float] = None
    _started: Optional[float] = field(default=None, repr=False, compare=False)

    def start(self) -> "Budget":
        if self._started is None:
            self._started = time.monotonic()
        return self

    @property
    def elapsed(self) -> float:
        if self._started is None:
            return 0.0
        return time.monotonic() - self._started

    @property
    def remaining_seconds(self) -> Optional[float]:
        if self.max_seconds is None:
            return None
        return max(0.0, self.max_seconds - self.elapsed)

    def exhausted(self, rounds: int) -> bool:
        if self.max_rounds is not None and rounds >= self.max_rounds:
            return True
        if self.max_seconds is not None and self.elapsed >= self.max_seconds:
            return True
        return False


# =============================================================================
# Merging
# =============================================================================

@dataclass
class MergedPair:
    """A forward/reverse cluster combination and its merge outcome."""
    forward_id: int
    reverse_id: int
    abundance: int
    sequence: Optional[str] = None
    quality: Optional[np.ndarray] = field(default=None, repr=False)
    overlap: int = 0
    mismatches: int = 0
    indels: int = 0
    weighted_mismatches: float = 0.0
    accept: bool = False
    reject_reason: Optional[str] = None


@dataclass
class MergeResult:
    """All pair combinations of one sample."""
    pairs: List[MergedPair]
    # read pairs whose forward or reverse read was excluded by denoising
    unpaired_reads: int = 0

    @property
    def accepted(self) -> List[MergedPair]:
        return [p for p in self.pairs if p.accept]

    @property
    def rejected(self) -> List[MergedPair]:
        return [p for p in self.pairs if not p.accept]

    @property
    def merged_reads(self) -> int:
        return int(sum(p.abundance for p in self.accepted))

    @property
    def rejected_reads(self) -> int:
        return int(sum(p.abundance for p in self.rejected))

    def sequence_abundances(self) -> Dict[str, int]:
        """Merged sequences with abundances summed over identical results."""
        out: Dict[str, int] = {}
        for pair in sorted(self.accepted, key=lambda p: -p.abundance):
            out[pair.sequence] = out.get(pair.sequence, 0) + pair.abundance
        return out

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([{
            "forward_id": p.forward_id,
            "reverse_id": p.reverse_id,
            "abundance": p.abundance,
            "sequence": p.sequence,
            "overlap": p.overlap,
            "mismatches": p.mismatches,
            "indels": p.indels,
            "weighted_mismatches": p.weighted_mismatches,
            "accept": p.accept,
            "reject_reason": p.reject_reason,
        } for p in self.pairs])


# =============================================================================
# Chimeras
# =============================================================================

@dataclass(frozen=True)
class ChimeraCall:
    """Best two-parent reconstruction of a flagged sequence."""
    sequence: str
    abundance: int
    left_parent: str
    right_parent: str
    breakpoint: int
    mismatches: int
    single_parent_mismatches: int


@dataclass
class ChimeraReport:
    """Chimera calls plus per-candidate bookkeeping."""
    calls: List[ChimeraCall] = field(default_factory=list)
    tested: int = 0
    excluded: List[ExcludedSequence] = field(default_factory=list)

    @property
    def flagged(self) -> int:
        return len(self.calls)

    @property
    def flagged_reads(self) -> int:
        return int(sum(c.abundance for c in self.calls))

    @property
    def sequences(self) -> set:
        return {c.sequence for c in self.calls}

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([{
            "sequence": c.sequence,
            "abundance": c.abundance,
            "left_parent": c.left_parent,
            "right_parent": c.right_parent,
            "breakpoint": c.breakpoint,
            "mismatches": c.mismatches,
            "single_parent_mismatches": c.single_parent_mismatches,
        } for c in self.calls], columns=[
            "sequence", "abundance", "left_parent", "right_parent",
            "breakpoint", "mismatches", "single_parent_mismatches",
        ])
