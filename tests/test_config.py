"""
Unit tests for environment-driven settings.
"""
import pytest
import structlog

from src.fogmap.config import Settings
from src.fogmap.logging_setup import configure_logging


@pytest.mark.unit
class TestSettings:
    """Test suite for Settings.from_env."""

    def test_defaults(self, monkeypatch):
        for name in ("FOGMAP_ACCURACY_THRESHOLD_M", "FOGMAP_MAX_CELLS", "FOGMAP_PUBLISH_EVENTS"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings.from_env()
        assert settings.accuracy_threshold_m == 500.0
        assert settings.degraded_accuracy_threshold_m == 1000.0
        assert settings.degrade_after == 5
        assert settings.max_retries == 5
        assert settings.max_cells is None
        assert settings.publish_events is False

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("FOGMAP_ACCURACY_THRESHOLD_M", "250")
        monkeypatch.setenv("FOGMAP_MAX_CELLS", "5000")
        monkeypatch.setenv("FOGMAP_PUBLISH_EVENTS", "true")
        monkeypatch.setenv("FOGMAP_LOG_LEVEL", "DEBUG")

        settings = Settings.from_env()

        assert settings.accuracy_threshold_m == 250.0
        assert settings.max_cells == 5000
        assert settings.publish_events is True
        assert settings.log_level == "DEBUG"

    def test_empty_value_uses_default(self, monkeypatch):
        monkeypatch.setenv("FOGMAP_CELLS_PER_LEVEL", "")
        assert Settings.from_env().cells_per_level == 100

    @pytest.mark.parametrize("value,expected", [("1", True), ("yes", True), ("off", False), ("0", False)])
    def test_bool_parsing(self, monkeypatch, value, expected):
        monkeypatch.setenv("FOGMAP_LOG_JSON", value)
        assert Settings.from_env().log_json is expected

    def test_invalid_number(self, monkeypatch):
        monkeypatch.setenv("FOGMAP_MAX_RETRIES", "many")
        with pytest.raises(ValueError):
            Settings.from_env()


@pytest.mark.unit
class TestConfigureLogging:
    """Test suite for structlog setup."""

    @pytest.mark.parametrize("level,json", [("DEBUG", False), ("warning", True), ("not-a-level", False)])
    def test_configure(self, level, json):
        configure_logging(level, json)
        structlog.get_logger().info("test.configured", requested=level)
