"""
Amplicon read simulator.

Draws reads from known template sequences with Illumina-like errors:
- substitutions only
- error rate rising from the 5' to the 3' end
- quality scores reflecting the error probability

Used to build test communities with a known truth (templates, abundances,
planted chimeras).
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np

from .dada.models import Read
from .dada.seq_utils import reverse_complement
from .utils.config import DEFAULT_RANDOM_SEED, MAX_QUALITY

logger = logging.getLogger(__name__)

_BASES = np.array(["A", "C", "G", "T"])


def random_sequence(length: int, rng: np.random.Generator, gc: float = 0.5) -> str:
    """Random ACGT sequence with the given GC fraction."""
    p = [(1 - gc) / 2, gc / 2, gc / 2, (1 - gc) / 2]
    return "".join(rng.choice(_BASES, size=length, p=p))


def mutate(seq: str, n_differences: int, rng: np.random.Generator) -> str:
    """Copy of ``seq`` with substitutions at ``n_differences`` distinct positions."""
    if n_differences > len(seq):
        raise ValueError(f"Cannot place {n_differences} substitutions in {len(seq)} bases")
    out = list(seq)
    for pos in rng.choice(len(seq), size=n_differences, replace=False):
        alternatives = _BASES[_BASES != out[pos]]
        out[pos] = str(rng.choice(alternatives))
    return "".join(out)


def make_chimera(left: str, right: str, breakpoint: int) -> str:
    """``left[:breakpoint] + right[breakpoint:]`` for equal-length parents."""
    if not 0 < breakpoint < min(len(left), len(right)):
        raise ValueError(f"Breakpoint {breakpoint} outside the parents")
    return left[:breakpoint] + right[breakpoint:]


@dataclass
class IlluminaReadSimulator:
    """
    Substitution-only reads with position-dependent quality.

    Each position gets a quality score from a 5'->3' decaying profile plus
    jitter; the base is then substituted with the probability that score
    implies.
    """
    start_quality: int = 38
    end_quality: int = 25
    jitter: int = 3
    error_scale: float = 1.0
    rng: Optional[np.random.Generator] = None

    def __post_init__(self):
        if self.rng is None:
            self.rng = np.random.default_rng(DEFAULT_RANDOM_SEED)

    def qualities(self, length: int) -> np.ndarray:
        profile = np.linspace(self.start_quality, self.end_quality, num=max(length, 1))[:length]
        noise = self.rng.integers(-self.jitter, self.jitter + 1, size=length) if self.jitter else 0
        return np.clip(np.rint(profile + noise), 2, MAX_QUALITY).astype(int)

    def apply(self, sequence: str) -> Tuple[str, np.ndarray]:
        q = self.qualities(len(sequence))
        error_rates = np.minimum(1.0, self.error_scale * np.power(10.0, -q / 10.0))
        seq_array = np.array(list(sequence.upper()))
        errors = self.rng.random(len(sequence)) < error_rates
        for i in np.where(errors)[0]:
            alternatives = _BASES[_BASES != seq_array[i]]
            seq_array[i] = self.rng.choice(alternatives)
        return "".join(seq_array), q

    def read(self, template: str, read_id: Optional[str] = None) -> Read:
        seq, q = self.apply(template)
        return Read(sequence=seq, quality=tuple(q.tolist()), read_id=read_id)


def simulate_sample(
    templates: Mapping[str, int],
    simulator: Optional[IlluminaReadSimulator] = None,
    shuffle: bool = True,
) -> List[Read]:
    """
    Single-end reads: ``templates[seq]`` reads from each template.
    """
    simulator = simulator or IlluminaReadSimulator()
    reads = []
    for t_idx, (template, count) in enumerate(templates.items()):
        for n in range(count):
            reads.append(simulator.read(template, read_id=f"t{t_idx}_{n}"))
    if shuffle:
        order = simulator.rng.permutation(len(reads))
        reads = [reads[i] for i in order]
    logger.debug(f"Simulated {len(reads)} reads from {len(templates)} templates")
    return reads


def simulate_pairs(
    templates: Mapping[str, int],
    read_length: int,
    simulator: Optional[IlluminaReadSimulator] = None,
) -> Tuple[List[Read], List[Read]]:
    """
    Paired reads: the forward read is the first ``read_length`` template
    bases, the reverse read the first ``read_length`` bases of the reverse
    complement. Mates share an index.
    """
    simulator = simulator or IlluminaReadSimulator()
    forward, reverse = [], []
    for t_idx, (template, count) in enumerate(templates.items()):
        if read_length > len(template):
            raise ValueError(f"read_length {read_length} exceeds template length {len(template)}")
        rc = reverse_complement(template)
        for n in range(count):
            name = f"t{t_idx}_{n}"
            forward.append(simulator.read(template[:read_length], read_id=f"{name}/1"))
            reverse.append(simulator.read(rc[:read_length], read_id=f"{name}/2"))
    return forward, reverse


def mock_community(
    n_variants: int,
    length: int,
    abundances: Optional[List[int]] = None,
    min_distance: int = 3,
    seed: int = DEFAULT_RANDOM_SEED,
) -> Dict[str, int]:
    """
    ``n_variants`` related templates (each ``min_distance`` substitutions from
    a shared ancestor, so pairwise distances are around twice that) with
    geometric abundances unless given.
    """
    rng = np.random.default_rng(seed)
    ancestor = random_sequence(length, rng)
    if abundances is None:
        abundances = [max(1, int(1000 * 0.5 ** i)) for i in range(n_variants)]
    if len(abundances) != n_variants:
        raise ValueError("abundances must have one entry per variant")

    community: Dict[str, int] = {}
    while len(community) < n_variants:
        variant = ancestor if not community else mutate(ancestor, min_distance, rng)
        if variant not in community:
            community[variant] = abundances[len(community)]
    return community
