"""Tests for file I/O and input validation."""

import pandas as pd
import pytest

from asvtoolkit.dada.error_models import nominal_error_model
from asvtoolkit.dada.errors import InputError
from asvtoolkit.dada.models import Read
from asvtoolkit.utils.io import (
    iter_fastq,
    read_error_model,
    read_fastq,
    read_table,
    write_fasta,
    write_error_model,
    write_fastq,
    write_table,
)
from asvtoolkit.utils.validation import sample_name, validate_read_files


READS = [
    Read("ACGTN", (30, 31, 32, 2, 0), "r1"),
    Read("GGCCA", (40, 40, 20, 10, 5), "r2"),
]


class TestFastq:
    """Test FASTQ reading and writing."""

    @pytest.mark.parametrize("name", ["reads.fastq", "reads.fastq.gz"])
    def test_write_read(self, tmp_path, name):
        """Test that plain and gzipped FASTQ files load back."""
        path = tmp_path / name
        assert write_fastq(READS, path) == 2
        loaded = read_fastq(path)
        assert [r.sequence for r in loaded] == ["ACGTN", "GGCCA"]
        assert loaded[0].quality == (30, 31, 32, 2, 0)
        assert loaded[1].read_id == "r2"

    def test_lowercase_and_iupac(self, tmp_path):
        """Test that bases are uppercased and ambiguity codes become N."""
        path = tmp_path / "r.fq"
        path.write_text("@x extra\nacgR\n+\nIIII\n")
        read = next(iter_fastq(path))
        assert read.sequence == "ACGN"
        assert read.read_id == "x"

    def test_truncated_record(self, tmp_path):
        path = tmp_path / "bad.fastq"
        path.write_text("@x\nACGT\n+\nII\n")
        with pytest.raises(InputError):
            read_fastq(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_fastq(tmp_path / "none.fastq")


class TestOutputs:
    """Test FASTA, table and error model files."""

    def test_fasta(self, tmp_path):
        path = tmp_path / "asvs.fasta"
        write_fasta(["ACGT", "GGGGCC"], path, line_width=4)
        assert path.read_text() == ">ASV1\nACGT\n>ASV2\nGGGG\nCC\n"

    def test_table(self, tmp_path):
        table = pd.DataFrame({"ACGT": [1, 0], "GGCC": [3, 4]},
                             index=pd.Index(["s1", "s2"], name="sample"))
        path = tmp_path / "seqtab.csv"
        write_table(table, path)
        loaded = read_table(path)
        assert list(loaded.columns) == ["ACGT", "GGCC"]
        assert loaded.loc["s2", "GGCC"] == 4

    def test_error_model(self, tmp_path):
        model = nominal_error_model(max_q=20)
        path = tmp_path / "errors_forward.csv"
        write_error_model(model, path)
        loaded = read_error_model(path)
        assert loaded.allclose(model)
        assert loaded.name == "errors_forward"


class TestValidation:
    """Test sample naming and input file checks."""

    @pytest.mark.parametrize("path,expected", [
        ("data/soil_R1.fastq.gz", "soil"),
        ("soil_R2_001.fq", "soil"),
        ("gut_1.fastq", "gut"),
        ("plain.fastq", "plain"),
    ])
    def test_sample_name(self, path, expected):
        assert sample_name(path) == expected

    def test_pairing(self, tmp_path):
        fwd = [tmp_path / "a_R1.fastq", tmp_path / "b_R1.fastq"]
        rev = [tmp_path / "a_R2.fastq"]
        for p in fwd + rev:
            p.write_text("")
        with pytest.raises(ValueError):
            validate_read_files([str(p) for p in fwd], [str(p) for p in rev])
        assert validate_read_files([str(p) for p in fwd]) == ["a", "b"]

    def test_duplicate_names(self, tmp_path):
        (tmp_path / "x").mkdir()
        paths = [tmp_path / "s_R1.fastq", tmp_path / "x" / "s_R1.fastq"]
        for p in paths:
            p.write_text("")
        with pytest.raises(ValueError, match="Duplicate"):
            validate_read_files([str(p) for p in paths])

    def test_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            validate_read_files([str(tmp_path / "gone_R1.fastq")])
