"""Tests for settings and logging setup."""

import json
import logging

import pytest
import structlog
from pydantic import ValidationError
from py_voronoi.config import Settings, settings
from py_voronoi.core import ConstructionController
from py_voronoi.log_config import configure_logging


class TestSettings:
    """Test environment-driven settings."""

    def test_defaults(self, monkeypatch):
        """Test default values."""
        for name in ("MIN_SEPARATION", "RAY_EXTENSION", "SUPER_TRIANGLE_SCALE"):
            monkeypatch.delenv(f"VORONOI_{name}", raising=False)
        config = Settings(_env_file=None)
        assert config.min_separation == 0.01
        assert config.max_sample_attempts == 30
        assert config.super_triangle_scale == 20.0
        assert config.ray_extension == 4.0
        assert config.log_format == "json"

    def test_environment_override(self, monkeypatch):
        """Test that prefixed environment variables are read."""
        monkeypatch.setenv("VORONOI_MIN_SEPARATION", "0.05")
        monkeypatch.setenv("VORONOI_LOG_LEVEL", "DEBUG")
        config = Settings(_env_file=None)
        assert config.min_separation == 0.05
        assert config.log_level == "DEBUG"

    def test_invalid_values(self, monkeypatch):
        """Test that out-of-range values are rejected."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, super_triangle_scale=0.5)
        monkeypatch.setenv("VORONOI_MIN_SEPARATION", "-1")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_controller_uses_settings(self, monkeypatch):
        """Test that unset controller options fall back to the settings."""
        monkeypatch.setattr(settings, "min_separation", 0.2)
        monkeypatch.setattr(settings, "ray_extension", 7.0)
        controller = ConstructionController()
        assert controller.seeds.min_separation == 0.2
        assert controller.clipper.ray_extension == 7.0

        explicit = ConstructionController(min_separation=0.03)
        assert explicit.seeds.min_separation == 0.03


class TestLogging:
    """Test structlog configuration."""

    @pytest.fixture(autouse=True)
    def reset_structlog(self):
        yield
        structlog.reset_defaults()

    def test_json_output(self, caplog):
        """Test that events are rendered as JSON through the stdlib logger."""
        configure_logging(level="info", fmt="json")
        with caplog.at_level(logging.INFO):
            structlog.get_logger("py_voronoi.test").info("Construction complete", seeds=4)

        record = next(r for r in caplog.records if r.name == "py_voronoi.test")
        payload = json.loads(record.getMessage())
        assert payload["event"] == "Construction complete"
        assert payload["seeds"] == 4
        assert payload["level"] == "info"
        assert "timestamp" in payload

    def test_level_filter(self, caplog):
        """Test that events below the configured level are dropped."""
        configure_logging(level="WARNING", fmt="console")
        assert logging.getLogger().level == logging.WARNING
        with caplog.at_level(logging.WARNING):
            structlog.get_logger("py_voronoi.quiet").info("Step inserted seed")
        assert not [r for r in caplog.records if r.name == "py_voronoi.quiet"]
