"""Tests for settings and the option objects built from them."""

import numpy as np
import pytest
from pydantic import ValidationError

from py_worldgen.config import Settings, settings
from py_worldgen.core.alea_prng import AleaPRNG
from py_worldgen.core.hydrology import Hydrology, HydrologyOptions
from py_worldgen.core.surface import GridSurface
from py_worldgen.core.terrain import TerrainOptions
from py_worldgen.utils.logging import configure_logging


class TestSettings:
    """Test defaults and environment overrides."""

    def test_defaults(self, monkeypatch):
        for name in ("WORLDGEN_WORLD_WIDTH", "WORLDGEN_SEED", "WORLDGEN_USE_SLOPE_MODIFIER"):
            monkeypatch.delenv(name, raising=False)
        config = Settings()
        assert config.world_width == 64
        assert config.seed == 1
        assert config.min_river_length == 3
        assert config.river_attempts == 2000
        assert config.use_slope_modifier is False

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("WORLDGEN_WORLD_WIDTH", "128")
        monkeypatch.setenv("WORLDGEN_USE_SLOPE_MODIFIER", "true")
        config = Settings()
        assert config.world_width == 128
        assert config.use_slope_modifier is True

    def test_invalid_width(self, monkeypatch):
        monkeypatch.setenv("WORLDGEN_WORLD_WIDTH", "0")
        with pytest.raises(ValidationError):
            Settings()


class TestOptionsFromSettings:
    """Test that pipeline options follow the global settings."""

    def test_terrain_options(self, monkeypatch):
        monkeypatch.setattr(settings, "world_width", 20)
        monkeypatch.setattr(settings, "river_count", 4)
        options = TerrainOptions.from_settings()
        assert options.width == 20
        assert options.river_count == 4

    def test_hydrology_options(self, monkeypatch):
        monkeypatch.setattr(settings, "erosion_amount", 0.2)
        monkeypatch.setattr(settings, "use_slope_modifier", True)
        options = HydrologyOptions.from_settings()
        assert options.erosion_amount == 0.2
        assert options.use_slope_modifier is True


class TestLogging:
    """Test logging configuration."""

    @pytest.mark.parametrize("fmt", ["json", "console"])
    def test_configure(self, fmt):
        configure_logging("debug", fmt)


class TestHydrologyTicks:
    """Test the configured tick count."""

    def test_run_uses_configured_ticks(self, monkeypatch):
        monkeypatch.setattr(settings, "hydrology_ticks", 2)
        calls = []
        hydrology = Hydrology(GridSurface(6, 6, np.linspace(0.0, 1.0, 36)), prng=AleaPRNG(1))
        monkeypatch.setattr(hydrology, "tick", lambda: calls.append(1))
        hydrology.run()
        assert len(calls) == 2
