"""Tests for the sequence table and read tracking."""

import pandas as pd
import pytest

from asvtoolkit.process.report import (
    DIAGNOSTIC_COLUMNS,
    SampleDiagnostics,
    diagnostics_frame,
    retention,
)
from asvtoolkit.process.table import build_table, collapse_no_mismatch, table_totals


class TestBuildTable:
    """Test combining per-sample counts."""

    def test_first_appearance_order(self):
        """Columns follow first appearance; absent cells are 0."""
        table, columns = build_table({
            "s1": {"ACGT": 2, "GGTT": 1},
            "s2": [("TTAA", 3), ("ACGT", 1)],
        })
        assert columns == ["ACGT", "GGTT", "TTAA"]
        assert list(table.columns) == columns
        assert list(table.index) == ["s1", "s2"]
        assert table.index.name == "sample"
        assert table.loc["s2", "GGTT"] == 0
        assert table.loc["s2", "TTAA"] == 3

    def test_disjoint_sample_appends_columns(self):
        """A sample sharing no sequences only adds columns; old cells are kept."""
        samples = {"s1": {"ACGT": 2, "GGTT": 1}, "s2": {"GGTT": 4}}
        before, before_cols = build_table(samples)
        after, after_cols = build_table({**samples, "s3": {"CCCC": 7, "AAAA": 1}})

        assert after_cols == before_cols + ["CCCC", "AAAA"]
        pd.testing.assert_frame_equal(after.loc[["s1", "s2"], before_cols], before)
        assert after.loc[["s1", "s2"], ["CCCC", "AAAA"]].values.sum() == 0
        assert after.loc["s3", before_cols].sum() == 0
        assert after.loc["s3", "CCCC"] == 7

    def test_row_sums(self):
        table, _ = build_table({"a": {"AC": 5, "GT": 7}, "b": {"AC": 1}})
        assert table_totals(table).tolist() == [12, 1]
        assert all(str(t) == "int64" for t in table.dtypes)

    def test_repeated_pairs_summed(self):
        table, _ = build_table({"a": [("AC", 2), ("AC", 3)]})
        assert table.loc["a", "AC"] == 5

    def test_empty_sample(self):
        """A sample without sequences is an all-zero row."""
        table, _ = build_table({"a": {"AC": 2}, "b": {}})
        assert table.loc["b"].sum() == 0

    def test_negative_raises(self):
        with pytest.raises(ValueError):
            build_table({"a": {"AC": -1}})


class TestCollapse:
    """Test folding sequences that differ only in end length."""

    def test_contained_sequence_folded(self):
        table = pd.DataFrame(
            {"CGTA": [1, 2], "ACGTAC": [4, 6], "TTTT": [5, 0]},
            index=pd.Index(["s1", "s2"], name="sample"),
        )
        out = collapse_no_mismatch(table)
        assert list(out.columns) == ["ACGTAC", "TTTT"]
        assert out["ACGTAC"].tolist() == [5, 8]
        assert out.values.sum() == table.values.sum()

    def test_nothing_to_collapse(self):
        table = pd.DataFrame({"AAAA": [1], "CCCC": [2]})
        out = collapse_no_mismatch(table)
        pd.testing.assert_frame_equal(out, table)


class TestDiagnostics:
    """Test the read tracking frame."""

    def test_frame_columns(self):
        df = diagnostics_frame({
            "a": SampleDiagnostics(input=100, merged=90, nonchim=80),
            "b": SampleDiagnostics(),
        })
        assert list(df.columns) == DIAGNOSTIC_COLUMNS
        assert df.loc["a", "nonchim"] == 80

    def test_retention(self):
        """Samples without input reads retain nothing."""
        df = diagnostics_frame({
            "a": SampleDiagnostics(input=100, nonchim=80),
            "b": SampleDiagnostics(),
        })
        kept = retention(df)
        assert kept["a"] == pytest.approx(0.8)
        assert kept["b"] == 0.0
