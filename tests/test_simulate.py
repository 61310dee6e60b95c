"""Tests for the simulate module."""

import numpy as np
import pytest

from asvtoolkit.dada.seq_utils import reverse_complement
from asvtoolkit.simulate import (
    IlluminaReadSimulator,
    make_chimera,
    mock_community,
    mutate,
    random_sequence,
    simulate_pairs,
    simulate_sample,
)


class TestSequences:
    """Test template generation."""

    def test_random_sequence(self):
        seq = random_sequence(200, np.random.default_rng(0))
        assert len(seq) == 200
        assert set(seq) <= set("ACGT")

    def test_mutate_exact_distance(self):
        """Test that mutate places exactly n substitutions."""
        rng = np.random.default_rng(1)
        seq = random_sequence(100, rng)
        variant = mutate(seq, 7, rng)
        assert sum(a != b for a, b in zip(seq, variant)) == 7

    def test_mutate_too_many(self):
        with pytest.raises(ValueError):
            mutate("ACGT", 5, np.random.default_rng(0))

    def test_make_chimera(self):
        assert make_chimera("AAAAAA", "CCCCCC", 2) == "AACCCC"


class TestMockCommunity:
    """Test mock community generation."""

    def test_geometric_abundances(self):
        community = mock_community(3, 80)
        assert list(community.values()) == [1000, 500, 250]

    def test_variants_distinct(self):
        community = mock_community(4, 80, min_distance=5, seed=3)
        seqs = list(community)
        assert len(set(seqs)) == 4
        ancestor = seqs[0]
        for variant in seqs[1:]:
            assert sum(a != b for a, b in zip(ancestor, variant)) == 5

    def test_seeded(self):
        assert mock_community(3, 50, seed=5) == mock_community(3, 50, seed=5)

    def test_bad_abundances(self):
        with pytest.raises(ValueError):
            mock_community(3, 50, abundances=[10, 5])


class TestReadSimulator:
    """Test Illumina-like read simulation."""

    def test_quality_profile(self):
        """Test that quality decays from the 5' end without jitter."""
        sim = IlluminaReadSimulator(jitter=0, rng=np.random.default_rng(0))
        q = sim.qualities(50)
        assert q[0] == 38
        assert q[-1] == 25
        assert np.all(np.diff(q) <= 0)

    def test_error_free(self):
        """Test that a zero error scale copies the template."""
        sim = IlluminaReadSimulator(error_scale=0.0, rng=np.random.default_rng(0))
        read = sim.read("ACGTACGTAC", read_id="r1")
        assert read.sequence == "ACGTACGTAC"
        assert read.read_id == "r1"
        assert len(read.quality) == 10

    def test_simulate_sample_counts(self):
        reads = simulate_sample({"ACGTAC": 3, "TTGGCC": 2})
        assert len(reads) == 5
        assert sum(r.read_id.startswith("t0_") for r in reads) == 3

    def test_simulate_pairs(self):
        """Test that mates come from opposite strands."""
        template = random_sequence(120, np.random.default_rng(2))
        sim = IlluminaReadSimulator(error_scale=0.0, rng=np.random.default_rng(2))
        fwd, rev = simulate_pairs({template: 4}, 70, sim)
        assert len(fwd) == len(rev) == 4
        assert fwd[0].sequence == template[:70]
        assert rev[0].sequence == reverse_complement(template)[:70]
        assert fwd[0].read_id.endswith("/1") and rev[0].read_id.endswith("/2")

    def test_read_length_too_long(self):
        with pytest.raises(ValueError):
            simulate_pairs({"ACGT": 1}, 10)
