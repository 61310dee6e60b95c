"""Tests for pipeline configuration and shared constants."""

import os

import pytest

from asvtoolkit.dada.config import (
    AlignParams,
    PipelineConfig,
    get_default_config,
    get_pyro_config,
    get_sensitive_config,
)
from asvtoolkit.utils.config import OUTPUT_FILES, get_output_path


class TestPipelineConfig:
    """Test serialization and validation."""

    def test_defaults_valid(self):
        assert get_default_config().validate() == []

    def test_presets_valid(self):
        """Test that every preset passes validation."""
        for config in (get_sensitive_config(), get_pyro_config()):
            assert config.validate() == []
        assert get_sensitive_config().denoise.omega_a > get_default_config().denoise.omega_a
        assert get_pyro_config().align.affine

    def test_dict_round_trip(self):
        config = PipelineConfig(seed=3)
        config.denoise.omega_a = 1e-30
        config.merge.max_mismatches = 2
        back = PipelineConfig.from_dict(config.to_dict())
        assert back == config

    def test_small_float_survives(self):
        """Test that tiny thresholds are kept exactly."""
        config = PipelineConfig()
        config.denoise.omega_a = 1e-300
        assert PipelineConfig.from_dict(config.to_dict()).denoise.omega_a == 1e-300

    @pytest.mark.parametrize("name", ["config.yaml", "config.json"])
    def test_file_round_trip(self, tmp_path, name):
        """Test YAML and JSON files."""
        config = get_pyro_config()
        config.chimera.method = "pooled"
        path = tmp_path / name
        if name.endswith(".json"):
            config.to_json(str(path))
        else:
            config.to_yaml(str(path))
        assert PipelineConfig.from_file(str(path)) == config

    def test_partial_dict(self):
        """Test that missing sections keep their defaults."""
        config = PipelineConfig.from_dict({"align": {"band": 8}})
        assert config.align == AlignParams(band=8)
        assert config.merge == PipelineConfig().merge

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert PipelineConfig.from_yaml(str(path)) == PipelineConfig()

    def test_unknown_key(self):
        with pytest.raises(TypeError):
            PipelineConfig.from_dict({"denoise": {"omega": 0.1}})

    def test_validate_problems(self):
        """Test that each bad value is reported."""
        config = PipelineConfig()
        config.align.mismatch = 1.0
        config.denoise.omega_a = 0.0
        config.learn.max_rounds = 0
        config.chimera.method = "vote"
        problems = config.validate()
        assert len(problems) == 4
        assert any("align.mismatch" in p for p in problems)
        assert any("chimera.method" in p for p in problems)


class TestOutputPaths:
    """Test standard output names."""

    def test_known(self):
        assert get_output_path("out", "asvs") == os.path.join("out", "asvs.fasta")
        assert "config_used" in OUTPUT_FILES

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown output"):
            get_output_path("out", "nothing")


class TestLogging:
    """Test CLI logger setup and stage timing."""

    def test_file_handler(self, tmp_path):
        import logging

        from asvtoolkit.utils.logging_utils import setup_logger

        log_file = tmp_path / "logs" / "run.log"
        logger = setup_logger("asvtoolkit.test_file", log_file=str(log_file))
        logger.debug("round 1")
        for handler in logger.handlers:
            handler.flush()
        assert "round 1" in log_file.read_text()
        assert logger.handlers[0].level == logging.INFO
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()

    def test_log_stage(self, caplog):
        import logging

        from asvtoolkit.utils.logging_utils import log_stage

        logger = logging.getLogger("asvtoolkit.test_stage")
        with caplog.at_level(logging.INFO, logger="asvtoolkit.test_stage"):
            with log_stage(logger, "denoise"):
                pass
        messages = [r.getMessage() for r in caplog.records]
        assert messages[0] == "[denoise] started"
        assert messages[1].startswith("[denoise] finished in")
