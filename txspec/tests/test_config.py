"""
Tests for environment-driven configuration
"""

import pytest

from txspec.core.config import EngineConfig
from txspec.core.types import OverflowMode


def test_defaults(monkeypatch):
    for name in ("TXSPEC_OVERFLOW", "TXSPEC_REPORT_ALL", "TXSPEC_MAX_WORKERS", "TXSPEC_CACHE_DIR"):
        monkeypatch.delenv(name, raising=False)
    config = EngineConfig.from_env()
    assert config == EngineConfig()
    assert config.overflow is OverflowMode.CHECKED


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("TXSPEC_OVERFLOW", "Wrapping")
    monkeypatch.setenv("TXSPEC_REPORT_ALL", "true")
    monkeypatch.setenv("TXSPEC_MAX_WORKERS", "3")
    monkeypatch.setenv("TXSPEC_CACHE_DIR", str(tmp_path))
    config = EngineConfig.from_env()
    assert config.overflow is OverflowMode.WRAPPING
    assert config.report_all is True
    assert config.max_workers == 3
    assert config.cache_dir == str(tmp_path)


def test_bad_overflow_mode(monkeypatch):
    monkeypatch.setenv("TXSPEC_OVERFLOW", "clamp")
    with pytest.raises(ValueError):
        EngineConfig.from_env()
