"""Tests for dereplication."""

import numpy as np
import pytest

from asvtoolkit.dada.derep import (
    dereplicate,
    dereplicate_weighted,
    rereplicate,
    subsample_for_learning,
)
from asvtoolkit.dada.errors import InputError
from asvtoolkit.dada.models import Read


def _reads(seq, n, q=30):
    return [(seq, [q] * len(seq)) for _ in range(n)]


class TestDereplicate:
    """Test collapsing identical reads."""

    def test_counts_and_order(self):
        """Uniques are ordered by abundance, ties by sequence."""
        reads = _reads("ACGTAC", 3) + _reads("TTTTTT", 1) + _reads("GGGGGG", 1)
        uniques = dereplicate(reads)

        assert uniques.sequences == ["ACGTAC", "GGGGGG", "TTTTTT"]
        assert list(uniques.abundances) == [3, 1, 1]
        assert uniques.total_reads == 5

    def test_mean_quality(self):
        """Quality is the per-position mean over contributing reads."""
        reads = [("ACG", [10, 20, 30]), ("ACG", [30, 20, 10])]
        uniques = dereplicate(reads)

        assert len(uniques) == 1
        np.testing.assert_allclose(uniques[0].quality, [20, 20, 20])

    def test_accepts_read_objects(self):
        """Read objects and (sequence, quality) pairs are interchangeable."""
        reads = [Read("ACGT", (30, 30, 30, 30), "r1"), ("ACGT", [30, 30, 30, 30])]
        uniques = dereplicate(reads)
        assert uniques[0].abundance == 2

    def test_read_map(self):
        """read_map points every read at its unique."""
        reads = _reads("AAAA", 1) + _reads("CCCC", 2)
        uniques = dereplicate(reads)

        for i, (seq, _) in enumerate(reads):
            assert uniques[int(uniques.read_map[i])].sequence == seq
        assert uniques.index_of("CCCC") == 0
        with pytest.raises(KeyError):
            uniques.index_of("GGGG")

    def test_permutation_invariant(self):
        """Shuffling the reads does not change the result."""
        reads = (_reads("ACGTACGT", 4, q=30) + _reads("ACGTACGA", 2, q=20)
                 + _reads("TCGTACGT", 2, q=25))
        rng = np.random.default_rng(7)
        shuffled = [reads[i] for i in rng.permutation(len(reads))]

        a = dereplicate(reads)
        b = dereplicate(shuffled)
        assert a.sequences == b.sequences
        assert list(a.abundances) == list(b.abundances)
        for ua, ub in zip(a, b):
            np.testing.assert_allclose(ua.quality, ub.quality)

    def test_lowercase_and_iupac(self):
        """Sequences are uppercased; non-ACGT characters become N."""
        uniques = dereplicate([("acgR", [30, 30, 30, 30])])
        assert uniques[0].sequence == "ACGN"

    def test_empty_raises(self):
        """Empty input is an InputError."""
        with pytest.raises(InputError):
            dereplicate([])

    def test_length_mismatch_raises(self):
        """Quality length must match sequence length."""
        with pytest.raises(InputError):
            dereplicate([("ACGT", [30, 30])])

    def test_input_error_is_value_error(self):
        """InputError can be caught as ValueError."""
        with pytest.raises(ValueError):
            dereplicate([])


class TestRereplicate:
    """Test weighted dereplication."""

    def test_idempotent(self):
        """Dereplicating uniques again gives the same set."""
        reads = _reads("ACGTAC", 5, q=32) + _reads("ACGTAA", 2, q=12) + _reads("CCGTAC", 1)
        once = dereplicate(reads)
        twice = rereplicate(once)

        assert once.sequences == twice.sequences
        assert list(once.abundances) == list(twice.abundances)
        for a, b in zip(once, twice):
            np.testing.assert_allclose(a.quality, b.quality)

    def test_weighted_records(self):
        uniques = dereplicate_weighted([("AC", 3, [30, 30]), ("AC", 1, [10, 10])])
        assert uniques[0].abundance == 4
        np.testing.assert_allclose(uniques[0].quality, [25, 25])
        assert len(uniques.read_map) == 4

    def test_zero_abundance_raises(self):
        with pytest.raises(InputError):
            dereplicate_weighted([("AC", 0, [30, 30])])


class TestSubsample:
    """Test sample selection for error learning."""

    def test_stops_at_nbases(self):
        """Whole samples are taken until enough bases are covered."""
        samples = [dereplicate(_reads("ACGTACGTAC", 10)) for _ in range(5)]
        chosen = subsample_for_learning(samples, nbases=150)
        assert len(chosen) == 2

    def test_at_least_one(self):
        samples = [dereplicate(_reads("ACGT", 1))]
        assert len(subsample_for_learning(samples, nbases=10**9)) == 1
