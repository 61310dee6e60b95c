"""Tests for the pairwise aligner and k-mer screen."""

import pytest

from asvtoolkit.dada.align import align, aligned_positions, hamming
from asvtoolkit.dada.config import AlignParams
from asvtoolkit.dada.errors import AlignmentDegenerate
from asvtoolkit.dada.kmers import kmer_distance, kmer_profile


SEQ = "ACGTTGCAAGGCTTACCGATGCATGCCATGAACTGG"


class TestGlobalAlignment:
    """Test banded global alignment."""

    def test_identical(self):
        """Identical sequences align without gaps."""
        aln = align(SEQ, SEQ)
        assert aln.aligned_a == SEQ
        assert aln.aligned_b == SEQ
        assert aln.score == 5 * len(SEQ)
        assert aln.distance == 0

    def test_substitution(self):
        """A single substitution costs one mismatch."""
        other = SEQ[:10] + ("A" if SEQ[10] != "A" else "C") + SEQ[11:]
        aln = align(SEQ, other)
        assert aln.mismatches == 1
        assert aln.indels == 0
        assert aln.score == 5 * (len(SEQ) - 1) - 4

    def test_deletion(self):
        """A deleted base shows up as one gap column."""
        other = SEQ[:15] + SEQ[16:]
        aln = align(SEQ, other)
        assert aln.indels == 1
        assert aln.aligned_a.replace("-", "") == SEQ
        assert aln.aligned_b.replace("-", "") == other

    def test_score_symmetric(self):
        """align(a, b) and align(b, a) have the same score."""
        pairs = [
            (SEQ, SEQ[:15] + SEQ[16:]),
            (SEQ, SEQ[:5] + "TT" + SEQ[5:]),
            (SEQ, SEQ.replace("GC", "GA")),
        ]
        for a, b in pairs:
            assert align(a, b).score == align(b, a).score

    def test_affine_symmetric(self):
        params = AlignParams(gap_open=-6, gap_extend=-2)
        a, b = SEQ, SEQ[:10] + SEQ[13:]
        assert align(a, b, params).score == align(b, a, params).score

    def test_gaps_placed_rightmost(self):
        """Among equal-scoring alignments the gap sits at the right end of a run."""
        assert align("AAAT", "AAT").aligned_b == "AA-T"
        assert align("AAT", "AAAT").aligned_a == "AA-T"
        aln = align("CGAAATC", "CGAATC")
        assert aln.aligned_a == "CGAAATC"
        assert aln.aligned_b == "CGAA-TC"

    def test_gaps_rightmost_affine(self):
        params = AlignParams(gap_open=-6, gap_extend=-2)
        aln = align("GCTTTTA", "GCTTA", params)
        assert aln.aligned_b == "GCTT--A"

    def test_n_scores_zero(self):
        """N scores 0 against anything and is not a mismatch."""
        aln = align("ACGTN", "ACGTA")
        assert aln.score == 20
        assert aln.mismatches == 0

    def test_band_widened_by_length_difference(self):
        """Length differences are added to the band."""
        params = AlignParams(band=0)
        aln = align(SEQ, SEQ[:-4], params)
        assert aln.indels == 4

    def test_quality_aware_mismatch(self):
        """A mismatch between certain-error bases costs nothing."""
        params = AlignParams(quality_aware=True)
        aln = align("ACGT", "ACTT", params, qual_a=[0, 0, 0, 0], qual_b=[0, 0, 0, 0])
        assert aln.score == pytest.approx(15.0)

    def test_degenerate_raises(self):
        """Empty and all-N sequences cannot be aligned."""
        with pytest.raises(AlignmentDegenerate):
            align("", SEQ)
        with pytest.raises(AlignmentDegenerate) as exc:
            align(SEQ, "NNNN")
        assert exc.value.reason == "all-N sequence"


class TestEndsFree:
    """Test overlap alignment."""

    def test_overlap(self):
        """Leading and trailing gaps are free."""
        params = AlignParams(band=-1, ends_free=True)
        aln = align("AAAACCCCGGGG", "CCCCGGGGTTTT", params)
        assert aln.overlap == 8
        assert aln.mismatches == 0
        assert aln.indels == 0
        assert aln.score == 40

    def test_positions(self):
        params = AlignParams(band=-1, ends_free=True)
        aln = align("AAAACCCCGGGG", "CCCCGGGGTTTT", params)
        positions = aligned_positions(aln)
        assert positions[0] == -1
        assert positions[4] == 0


class TestHelpers:
    """Test small alignment helpers."""

    def test_hamming(self):
        assert hamming("ACGT", "ACGA") == 1
        assert hamming("ACGT", "NCGT") == 0
        with pytest.raises(ValueError):
            hamming("ACG", "ACGT")

    def test_kmer_distance(self):
        """Identical sequences are at distance 0, unrelated ones near 1."""
        assert kmer_distance(SEQ, SEQ) == 0.0
        assert kmer_distance("A" * 30, "C" * 30) == 1.0

    def test_kmer_profile_skips_n(self):
        profile = kmer_profile("ACGTNACGTA", k=5)
        assert profile.sum() == 1
