"""Tests for settings, generation parameters and logging setup."""

import logging

import pytest
import structlog
from pydantic import ValidationError

from py_erosion.config import GeologySettings, Settings, TerrainGenerationParams
from py_erosion.utils.logging import configure_logging


class TestGenerationSettings:
    """Test generation value objects."""

    def test_defaults(self):
        params = TerrainGenerationParams()
        assert params.enable_hydraulic
        assert params.enable_thermal
        assert params.generate_rivers
        assert params.seed is None
        assert params.geology.rock_hardness == 0.7
        assert params.geology.erodibility == pytest.approx(0.3)

    @pytest.mark.parametrize("hardness", [-0.1, 1.5])
    def test_rock_hardness_range(self, hardness):
        with pytest.raises(ValidationError):
            GeologySettings(rock_hardness=hardness)

    def test_params_are_frozen(self):
        params = TerrainGenerationParams()
        with pytest.raises(ValidationError):
            params.seed = "other"

    def test_steps_per_slice_must_be_positive(self):
        with pytest.raises(ValidationError):
            TerrainGenerationParams(steps_per_slice=0)


class TestSettings:
    """Test environment-driven settings."""

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("EROSION_STEPS_PER_SLICE", "42")
        monkeypatch.setenv("EROSION_DEFAULT_SEED", "from-env")
        loaded = Settings()
        assert loaded.steps_per_slice == 42
        assert loaded.default_seed == "from-env"

    def test_invalid_environment_value(self, monkeypatch):
        monkeypatch.setenv("EROSION_STEPS_PER_SLICE", "0")
        with pytest.raises(ValidationError):
            Settings()


class TestLogging:
    """Test structured logging setup."""

    @pytest.fixture
    def restore_logging(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        structlog.reset_defaults()
        root.handlers[:] = handlers
        root.setLevel(level)

    @pytest.mark.parametrize("fmt", ["json", "plain"])
    def test_configure_logging(self, restore_logging, fmt):
        configure_logging(level="debug", fmt=fmt)
        assert logging.getLogger().level == logging.DEBUG
        assert structlog.is_configured()
        structlog.get_logger("py_erosion.test").info("Logging configured", fmt=fmt)
