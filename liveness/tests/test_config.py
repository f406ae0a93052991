from __future__ import annotations

import pytest

from liveness.config import (DEFAULT_LIVENESS_INTERVAL, ModuleConfig, get_config, load_config, parse_duration,
                             summary)
from liveness.errors import ConfigError
from liveness.types import ZERO_ADDRESS

FALLBACK = "0x" + "ab" * 20


@pytest.mark.parametrize(
    "raw,seconds",
    [("30d", 2_592_000), ("12h", 43_200), ("90m", 5_400), ("3600s", 3_600), ("3600", 3_600), (" 2W ", 1_209_600), (7, 7)],
)
def test_parse_duration(raw, seconds):
    assert parse_duration(raw) == seconds


@pytest.mark.parametrize("raw", ["", "d", "1.5h", "-3", "3y", True, -1])
def test_parse_duration_rejects(raw):
    with pytest.raises(ConfigError):
        parse_duration(raw)


def test_defaults_without_environment():
    cfg = load_config({})
    assert cfg.module.liveness_interval == DEFAULT_LIVENESS_INTERVAL
    assert cfg.module.min_owners == 1
    assert cfg.module.threshold_percentage == 75
    assert cfg.module.fallback_owner == ZERO_ADDRESS
    assert cfg.logging.level == "INFO"
    assert cfg.logging.json is None


def test_environment_is_read():
    cfg = load_config(
        {
            "LIVENESS_INTERVAL": "7d",
            "LIVENESS_MIN_OWNERS": "3",
            "LIVENESS_FALLBACK_OWNER": FALLBACK,
            "LIVENESS_THRESHOLD_PERCENTAGE": "66",
            "LIVENESS_LOG_LEVEL": "debug",
            "LIVENESS_LOG_FORMAT": "json",
        }
    )
    assert cfg.module == ModuleConfig(
        liveness_interval=7 * 86_400, min_owners=3, fallback_owner=bytes.fromhex("ab" * 20), threshold_percentage=66
    )
    assert cfg.logging.level == "DEBUG"
    assert cfg.logging.json is True


def test_overrides_win_over_environment():
    cfg = load_config({"LIVENESS_MIN_OWNERS": "3"}, overrides={"min_owners": 2, "log_json": False})
    assert cfg.module.min_owners == 2
    assert cfg.logging.json is False


@pytest.mark.parametrize(
    "env",
    [
        {"LIVENESS_MIN_OWNERS": "0"},
        {"LIVENESS_MIN_OWNERS": "three"},
        {"LIVENESS_THRESHOLD_PERCENTAGE": "101"},
        {"LIVENESS_INTERVAL": "0"},
        {"LIVENESS_FALLBACK_OWNER": "0x1234"},
        {"LIVENESS_FALLBACK_OWNER": "0x" + "00" * 19 + "01"},
    ],
)
def test_invalid_environment(env):
    with pytest.raises(ConfigError):
        load_config(env)


def test_module_config_requires_fallback_at_validation():
    with pytest.raises(ConfigError):
        ModuleConfig().validate()
    cfg = ModuleConfig().with_fallback(FALLBACK)
    assert cfg.validate() is cfg


def test_summary_and_to_dict():
    cfg = load_config({"LIVENESS_FALLBACK_OWNER": FALLBACK, "LIVENESS_INTERVAL": "36h"})
    line = summary(cfg)
    assert "interval=36h" in line
    assert f"fallback={FALLBACK}" in line
    assert cfg.to_dict()["module"]["fallback_owner"] == FALLBACK
    assert "fallback=unset" in summary(load_config({}))


def test_get_config_is_cached(monkeypatch):
    monkeypatch.setenv("LIVENESS_MIN_OWNERS", "4")
    get_config.cache_clear()
    try:
        first = get_config()
        monkeypatch.setenv("LIVENESS_MIN_OWNERS", "5")
        assert get_config() is first
        assert first.module.min_owners == 4
    finally:
        get_config.cache_clear()
