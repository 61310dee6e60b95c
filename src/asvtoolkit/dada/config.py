"""
Configuration: one dataclass per pipeline stage plus the combined config.

Parameter groups:
A. Alignment (AlignParams): scores, band, overlap mode
B. Denoising (DenoiseParams): formation threshold and tail statistics
C. Error learning (LearnParams): EM rounds and rate estimation
D. Merging (MergeParams): overlap and mismatch limits
E. Chimeras (ChimeraParams): tolerance and parent abundance
"""

from dataclasses import asdict, dataclass, field
from typing import Literal, Optional
import json
import math

import yaml

from ..utils.config import DEFAULT_LEARN_NBASES, MAX_QUALITY


def _serialize_float(value: float):
    """JSON has no inf/nan; store them as strings."""
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if math.isnan(value):
        return "nan"
    return value


def _deserialize_float(value) -> float:
    if isinstance(value, str):
        return float(value)
    return value


@dataclass
class AlignParams:
    """A. Pairwise alignment scores (positive = good, penalties negative)."""
    match: float = 5.0
    mismatch: float = -4.0
    gap_open: float = 0.0           # extra cost of opening a gap; 0 = linear gaps
    gap_extend: float = -8.0        # cost per gap position
    band: int = 16                  # diagonal band half-width; <0 disables banding
    ends_free: bool = False         # free leading/trailing gaps (overlap mode)
    quality_aware: bool = False     # scale mismatches by 1 - min(p_a, p_b)

    @property
    def affine(self) -> bool:
        return self.gap_open != 0.0


@dataclass
class DenoiseParams:
    """B. Denoising engine parameters."""
    omega_a: float = 1e-40          # formation p-value threshold
    min_abundance: int = 1          # members below this are never tested
    distribution: Literal["poisson", "binomial"] = "poisson"
    condition_on_observed: bool = True   # P(X >= a | X >= 1)
    bonferroni: bool = True         # multiply p-values by the number of uniques
    candidate_selection: Literal["min_pvalue", "max_distance"] = "min_pvalue"
    use_consensus: bool = False     # recompute centers as weighted consensus
    use_kmers: bool = True          # k-mer prescreen before alignment
    kmer_size: int = 5
    kdist_cutoff: float = 0.42
    max_clusters: int = 0           # 0 = unlimited


@dataclass
class LearnParams:
    """C. Error-model learning parameters."""
    max_rounds: int = 10
    convergence_tolerance: float = 0.0   # fraction of reads allowed to change cluster
    seed_model: str = "nominal"
    max_q: int = MAX_QUALITY
    min_rate: float = 1e-7
    max_rate: float = 0.25
    monotone: bool = True
    nbases: int = DEFAULT_LEARN_NBASES   # bases pooled across samples for learning


@dataclass
class MergeParams:
    """D. Paired-read merging parameters."""
    min_overlap: int = 12
    max_mismatch_fraction: float = 0.0
    max_mismatches: Optional[int] = None
    trim_overhang: bool = False
    just_concatenate: bool = False
    concatenate_spacer: int = 10
    align: AlignParams = field(default_factory=lambda: AlignParams(band=-1, ends_free=True))


@dataclass
class ChimeraParams:
    """E. Chimera detection parameters."""
    mismatch_tolerance: int = 0
    min_parent_fold: float = 1.0    # parents must exceed fold * candidate abundance
    min_segment: int = 8            # shortest segment attributed to one parent
    method: Literal["pooled", "consensus", "per-sample"] = "consensus"
    min_sample_fraction: float = 0.9
    align: AlignParams = field(default_factory=lambda: AlignParams(band=16, ends_free=True))


# =============================================================================
# Combined configuration
# =============================================================================

@dataclass
class PipelineConfig:
    """Complete pipeline configuration."""

    align: AlignParams = field(default_factory=AlignParams)
    denoise: DenoiseParams = field(default_factory=DenoiseParams)
    learn: LearnParams = field(default_factory=LearnParams)
    merge: MergeParams = field(default_factory=MergeParams)
    chimera: ChimeraParams = field(default_factory=ChimeraParams)

    remove_chimeras: bool = True
    seed: Optional[int] = None

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict:
        """Plain dict, round-trips through from_dict."""
        d = asdict(self)
        d["denoise"]["omega_a"] = _serialize_float(self.denoise.omega_a)
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "PipelineConfig":
        config = cls()

        if "align" in d:
            config.align = AlignParams(**d["align"])
        if "denoise" in d:
            denoise_dict = d["denoise"].copy()
            if "omega_a" in denoise_dict:
                denoise_dict["omega_a"] = _deserialize_float(denoise_dict["omega_a"])
            config.denoise = DenoiseParams(**denoise_dict)
        if "learn" in d:
            config.learn = LearnParams(**d["learn"])
        if "merge" in d:
            merge_dict = d["merge"].copy()
            if "align" in merge_dict:
                merge_dict["align"] = AlignParams(**merge_dict["align"])
            config.merge = MergeParams(**merge_dict)
        if "chimera" in d:
            chimera_dict = d["chimera"].copy()
            if "align" in chimera_dict:
                chimera_dict["align"] = AlignParams(**chimera_dict["align"])
            config.chimera = ChimeraParams(**chimera_dict)
        if "remove_chimeras" in d:
            config.remove_chimeras = d["remove_chimeras"]
        if "seed" in d:
            config.seed = d["seed"]

        return config

    @classmethod
    def from_yaml(cls, path: str) -> "PipelineConfig":
        with open(path, "r") as f:
            d = yaml.safe_load(f) or {}
        return cls.from_dict(d)

    def to_yaml(self, path: str):
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False)

    @classmethod
    def from_json(cls, path: str) -> "PipelineConfig":
        with open(path, "r") as f:
            d = json.load(f)
        return cls.from_dict(d)

    def to_json(self, path: str):
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def from_file(cls, path: str) -> "PipelineConfig":
        """Load YAML or JSON by extension."""
        if str(path).endswith(".json"):
            return cls.from_json(path)
        return cls.from_yaml(path)

    # =========================================================================
    # Validation
    # =========================================================================

    def validate(self) -> list:
        """Return a list of problems; empty when the configuration is usable."""
        problems = []

        for name, params in (("align", self.align),
                             ("merge.align", self.merge.align),
                             ("chimera.align", self.chimera.align)):
            if params.match <= 0:
                problems.append(f"{name}.match must be > 0")
            if params.mismatch >= 0:
                problems.append(f"{name}.mismatch must be < 0")
            if params.gap_extend >= 0:
                problems.append(f"{name}.gap_extend must be < 0")
            if params.gap_open > 0:
                problems.append(f"{name}.gap_open must be <= 0")

        if not 0 < self.denoise.omega_a <= 1:
            problems.append("denoise.omega_a must be in (0, 1]")
        if self.denoise.min_abundance < 1:
            problems.append("denoise.min_abundance must be >= 1")
        if self.denoise.distribution not in ("poisson", "binomial"):
            problems.append(f"Unknown denoise.distribution: {self.denoise.distribution}")
        if self.denoise.candidate_selection not in ("min_pvalue", "max_distance"):
            problems.append(
                f"Unknown denoise.candidate_selection: {self.denoise.candidate_selection}")
        if self.denoise.kmer_size < 1:
            problems.append("denoise.kmer_size must be >= 1")
        if not 0 <= self.denoise.kdist_cutoff <= 1:
            problems.append("denoise.kdist_cutoff must be in [0, 1]")

        if self.learn.max_rounds < 1:
            problems.append("learn.max_rounds must be >= 1")
        if not 0 <= self.learn.convergence_tolerance < 1:
            problems.append("learn.convergence_tolerance must be in [0, 1)")
        if not 0 < self.learn.min_rate < self.learn.max_rate < 1:
            problems.append("learn rates must satisfy 0 < min_rate < max_rate < 1")

        if self.merge.min_overlap < 1:
            problems.append("merge.min_overlap must be >= 1")
        if not 0 <= self.merge.max_mismatch_fraction <= 1:
            problems.append("merge.max_mismatch_fraction must be in [0, 1]")
        if self.merge.max_mismatches is not None and self.merge.max_mismatches < 0:
            problems.append("merge.max_mismatches must be >= 0")

        if self.chimera.mismatch_tolerance < 0:
            problems.append("chimera.mismatch_tolerance must be >= 0")
        if self.chimera.min_parent_fold < 1:
            problems.append("chimera.min_parent_fold must be >= 1")
        if self.chimera.method not in ("pooled", "consensus", "per-sample"):
            problems.append(f"Unknown chimera.method: {self.chimera.method}")
        if not 0 < self.chimera.min_sample_fraction <= 1:
            problems.append("chimera.min_sample_fraction must be in (0, 1]")

        return problems


# =============================================================================
# Presets
# =============================================================================

def get_default_config() -> PipelineConfig:
    return PipelineConfig()


def get_sensitive_config() -> PipelineConfig:
    """Lower formation threshold; more rare variants survive."""
    config = PipelineConfig()
    config.denoise.omega_a = 1e-20
    return config


def get_pyro_config() -> PipelineConfig:
    """Homopolymer-prone platforms: cheaper gaps, wider band."""
    config = PipelineConfig()
    config.align.gap_open = -4.0
    config.align.gap_extend = -2.0
    config.align.band = 32
    return config
