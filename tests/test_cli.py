"""Tests for the asv command line interface."""

import subprocess
import sys

import pytest


def _asv(*args):
    return subprocess.run(
        [sys.executable, "-m", "asvtoolkit.cli", *args],
        capture_output=True,
        text=True,
    )


class TestCLICommands:
    """Test CLI command availability."""

    def test_main_help(self):
        """Test asv --help lists every command."""
        result = _asv("--help")
        assert result.returncode == 0
        for command in ("learn-errors", "denoise", "run", "remove-chimeras", "sim-reads"):
            assert command in result.stdout

    def test_version(self):
        from asvtoolkit import __version__

        result = _asv("--version")
        assert result.returncode == 0
        assert __version__ in result.stdout

    def test_learn_errors_help(self):
        """Test learn-errors --help."""
        result = _asv("learn-errors", "--help")
        assert result.returncode == 0
        assert "Learn substitution error rates" in result.stdout
        assert "--max-rounds" in result.stdout

    def test_denoise_help(self):
        """Test denoise --help."""
        result = _asv("denoise", "--help")
        assert result.returncode == 0
        assert "--errors" in result.stdout
        assert "--omega-a" in result.stdout

    def test_run_help(self):
        """Test run --help."""
        result = _asv("run", "--help")
        assert result.returncode == 0
        assert "Run the full pipeline" in result.stdout
        assert "--fastq2" in result.stdout
        assert "--no-chimera-removal" in result.stdout

    def test_remove_chimeras_help(self):
        """Test remove-chimeras --help."""
        result = _asv("remove-chimeras", "--help")
        assert result.returncode == 0
        assert "--min-sample-fraction" in result.stdout

    def test_sim_reads_help(self):
        """Test sim-reads --help."""
        result = _asv("sim-reads", "--help")
        assert result.returncode == 0
        assert "Simulate a mock community" in result.stdout

    def test_missing_input(self, tmp_path):
        """Test that a missing FASTQ file fails."""
        result = _asv("run", "-1", str(tmp_path / "none_R1.fastq"), "-o", str(tmp_path / "out"))
        assert result.returncode != 0


class TestWorkflows:
    """Test the file-based workflows end to end."""

    @pytest.mark.slow
    def test_simulate_then_run(self, tmp_path):
        """Test that sim-reads output runs through the pipeline."""
        sim_dir = tmp_path / "sim"
        out_dir = tmp_path / "out"
        result = _asv("sim-reads", "-o", str(sim_dir), "-n", "2", "-l", "120",
                      "--samples", "2", "--min-distance", "6")
        assert result.returncode == 0, result.stderr
        assert (sim_dir / "truth.fasta").exists()

        result = _asv("run", "-1", str(sim_dir / "sample1_R1.fastq.gz"),
                      "-1", str(sim_dir / "sample2_R1.fastq.gz"), "-o", str(out_dir))
        assert result.returncode == 0, result.stderr
        for name in ("seqtab.csv", "seqtab_nochim.csv", "asvs.fasta", "track.csv",
                     "chimeras.csv", "errors_forward.csv", "config_used.yaml"):
            assert (out_dir / name).exists()

        from asvtoolkit.utils.io import read_table

        truth = [line.strip() for line in (sim_dir / "truth.fasta").read_text().splitlines()
                 if not line.startswith(">")]
        table = read_table(out_dir / "seqtab_nochim.csv")
        assert set(table.columns) == set(truth)
        assert list(table.index) == ["sample1", "sample2"]

    def test_remove_chimeras_workflow(self, tmp_path):
        """Test remove-chimeras on a saved table."""
        import numpy as np
        import pandas as pd

        from asvtoolkit.simulate import random_sequence
        from asvtoolkit.utils.io import read_table, write_table
        from asvtoolkit.workflows import run_remove_chimeras

        a = random_sequence(100, np.random.default_rng(12))
        b = "".join("ACGT"[("ACGT".index(c) + 1) % 4] if i % 20 == 10 else c
                    for i, c in enumerate(a))
        chimera = a[:50] + b[50:]
        table = pd.DataFrame({a: [500], b: [400], chimera: [5]},
                             index=pd.Index(["s1"], name="sample"))
        write_table(table, tmp_path / "seqtab.csv")

        run_remove_chimeras(str(tmp_path / "seqtab.csv"), str(tmp_path / "clean.csv"),
                            method="pooled", report=str(tmp_path / "calls.csv"))
        clean = read_table(tmp_path / "clean.csv")
        assert list(clean.columns) == [a, b]
        assert len(pd.read_csv(tmp_path / "calls.csv")) == 1


class TestThreads:
    """Test worker and thread settings of the commands."""

    def test_import_does_not_load_numpy(self):
        """Thread limits set by a command still apply to numpy."""
        code = "import sys, asvtoolkit.cli; print('numpy' in sys.modules)"
        result = subprocess.run([sys.executable, "-c", code], capture_output=True, text=True)
        assert result.returncode == 0, result.stderr
        assert result.stdout.strip() == "False"

    def test_denoise_resolves_auto_threads(self, tmp_path, monkeypatch):
        """Test that threads=0 reaches the comparisons as a core count."""
        from asvtoolkit import workflows
        from asvtoolkit.dada import dada
        from asvtoolkit.dada.error_models import nominal_error_model
        from asvtoolkit.dada.models import Read
        from asvtoolkit.dada.parallel import get_optimal_workers
        from asvtoolkit.utils.io import write_error_model, write_fastq

        requested = []

        class RecordingPool(dada.ComparisonPool):
            def __init__(self, uniques, error_model, align_params, denoise_params,
                         num_workers=1, **kwargs):
                requested.append(num_workers)
                super().__init__(uniques, error_model, align_params, denoise_params, 1, **kwargs)

        monkeypatch.setattr(dada, "ComparisonPool", RecordingPool)
        monkeypatch.setattr(workflows, "setup_thread_limits", lambda n_threads=1: None)

        seq = "ACGTTGCAAGGCTTACCGATGCATGCCATGAACTGG"
        reads = [Read(seq, (35,) * len(seq), f"r{i}") for i in range(20)]
        write_fastq(reads, tmp_path / "s1.fastq")
        write_error_model(nominal_error_model(), tmp_path / "errors.csv")

        workflows.run_denoise(str(tmp_path / "s1.fastq"), str(tmp_path / "errors.csv"),
                              str(tmp_path / "asvs.csv"), threads=0)
        assert requested == [get_optimal_workers(0)]
        assert (tmp_path / "asvs.csv").exists()
