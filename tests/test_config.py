"""
Tests for engine settings and logging configuration.
"""

import sys

import pytest
from loguru import logger
from pydantic import ValidationError

from pricache.core.cache_models import PriorityClass
from pricache.core.config import CacheEngineSettings
from pricache.core.logging import configure_logging, qualify_scope


class TestCacheEngineSettings:
    def test_defaults(self):
        settings = CacheEngineSettings()
        assert settings.limit_bytes == 5 * 1024 * 1024
        assert settings.max_entries is None
        assert settings.default_ttl_minutes == 60.0
        assert settings.fetch_ttl_minutes == 10.0
        assert settings.maintenance_interval_seconds == 30 * 60
        assert settings.high_water_ratio == 0.75
        assert settings.maintenance_threshold is PriorityClass.MEDIUM
        assert settings.registry_storage_key == "__pricache_registry__"
        assert not settings.coalesce_requests
        assert settings.log_level == "WARNING"
        assert settings.debug_scopes == ()

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("PRICACHE_LIMIT_BYTES", "2048")
        monkeypatch.setenv("PRICACHE_MAINTENANCE_THRESHOLD", "HIGH")
        monkeypatch.setenv("PRICACHE_COALESCE_REQUESTS", "true")
        monkeypatch.setenv("PRICACHE_BYPASS_PATTERNS", '["/live", "/stream"]')

        settings = CacheEngineSettings()

        assert settings.limit_bytes == 2048
        assert settings.maintenance_threshold is PriorityClass.HIGH
        assert settings.coalesce_requests
        assert settings.bypass_patterns == ("/live", "/stream")

    @pytest.mark.parametrize(
        "overrides",
        [
            {"limit_bytes": 0},
            {"high_water_ratio": 1.5},
            {"fetch_timeout_seconds": 0},
            {"max_entries": 0},
        ],
    )
    def test_rejects_invalid_values(self, overrides):
        with pytest.raises(ValidationError):
            CacheEngineSettings(**overrides)

    def test_rejects_unknown_priority(self):
        with pytest.raises(ValidationError):
            CacheEngineSettings(maintenance_threshold="urgent")

    def test_default_fetch_policy(self):
        policy = CacheEngineSettings(fetch_ttl_minutes=3).default_fetch_policy()
        assert policy.ttl_minutes == 3
        assert policy.priority is PriorityClass.MEDIUM


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def restore_logger(self):
        yield
        logger.remove()
        logger.add(sys.stderr)

    @staticmethod
    def emit(module: str, level: str, message: str) -> None:
        logger.patch(lambda record: record.update(name=module)).log(level, message)

    def test_qualify_scope(self):
        assert qualify_scope("fetch") == "pricache.core.fetch"
        assert qualify_scope("core.eviction") == "pricache.core.eviction"
        assert qualify_scope("pricache.core.registry") == "pricache.core.registry"
        assert qualify_scope("cli") == "pricache.cli"

    def test_level_applies_without_scopes(self, capsys):
        configure_logging("WARNING")
        self.emit("pricache.core.fetch", "DEBUG", "refresh started")
        self.emit("pricache.core.fetch", "WARNING", "serving stale")

        err = capsys.readouterr().err
        assert "refresh started" not in err
        assert "serving stale" in err

    def test_debug_scope_lets_module_debug_through(self, capsys):
        configure_logging("WARNING", debug_scopes=["fetch"])
        self.emit("pricache.core.fetch", "DEBUG", "refresh started")
        self.emit("pricache.core.fetch_extra", "DEBUG", "other module")
        self.emit("pricache.core.eviction", "DEBUG", "evicted")
        self.emit("pricache.core.eviction", "ERROR", "eviction failed")

        err = capsys.readouterr().err
        assert "refresh started" in err
        assert "other module" not in err
        assert "evicted" not in err
        assert "eviction failed" in err

    def test_scopes_below_debug_stay_quiet(self, capsys):
        configure_logging("INFO", debug_scopes=["fetch"])
        self.emit("pricache.core.fetch", "TRACE", "wire bytes")

        assert "wire bytes" not in capsys.readouterr().err
