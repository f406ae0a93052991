"""
liveness.config — configuration for the liveness module and its tooling.

This module centralizes:
  • Protocol parameters (liveness interval, owner floor, fallback owner,
    threshold percentage)
  • Logging knobs (level, format)

Configuration may be provided via environment variables. Safe defaults are
chosen so a local simulation works out of the box; the fallback owner has no
default and must be supplied before a module can be deployed.

Environment variables (all optional):
  LIVENESS_INTERVAL               -> duration: "30d", "12h", "90m", "3600s", "3600" (default: 30d)
  LIVENESS_MIN_OWNERS             -> integer ≥ 1 (default: 1)
  LIVENESS_FALLBACK_OWNER         -> 0x-prefixed 20-byte address (default: unset)
  LIVENESS_THRESHOLD_PERCENTAGE   -> integer in [1,100] (default: 75)
  LIVENESS_LOG_LEVEL              -> DEBUG/INFO/WARNING/ERROR (default: INFO)
  LIVENESS_LOG_FORMAT             -> json/text (default: auto)

Programmatic usage:
    from liveness.config import get_config
    cfg = get_config()
    module = LivenessModule(host, safe, guard, config=cfg.module)
"""

from __future__ import annotations

import os
import re
from dataclasses import asdict, dataclass, replace
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional, Union

from .errors import ConfigError
from .types import Address, ZERO_ADDRESS, is_reserved, to_address, to_hex

DEFAULT_LIVENESS_INTERVAL = 30 * 86_400
DEFAULT_MIN_OWNERS = 1
DEFAULT_THRESHOLD_PERCENTAGE = 75

# ----------------------------- helpers -------------------------------------

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhdw])?\s*$", re.IGNORECASE)
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3_600, "d": 86_400, "w": 604_800}


def parse_duration(s: Union[str, int]) -> int:
    """
    Parse human-friendly durations into seconds:
      "30d", "12h", "90m", "3600s", "3600", 3600 -> int
    """
    if isinstance(s, bool):
        raise ConfigError(f"invalid duration: {s!r}")
    if isinstance(s, int):
        if s < 0:
            raise ConfigError("duration must be non-negative")
        return s
    m = _DURATION_RE.match(str(s))
    if not m:
        raise ConfigError(f"invalid duration: {s!r}")
    return int(m.group(1)) * _UNIT_SECONDS[(m.group(2) or "s").lower()]


def _int_value(name: str, v: Any) -> int:
    if isinstance(v, bool):
        raise ConfigError(f"{name} must be an integer, got {v!r}")
    try:
        return int(v)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be an integer, got {v!r}") from e


def _optional_bool(v: Optional[str]) -> Optional[bool]:
    if v is None:
        return None
    s = v.strip().lower()
    if s == "json":
        return True
    if s == "text":
        return False
    return None


# ------------------------------ dataclasses ---------------------------------


@dataclass(frozen=True)
class ModuleConfig:
    liveness_interval: int = DEFAULT_LIVENESS_INTERVAL
    min_owners: int = DEFAULT_MIN_OWNERS
    fallback_owner: Address = ZERO_ADDRESS
    threshold_percentage: int = DEFAULT_THRESHOLD_PERCENTAGE

    def with_fallback(self, fallback_owner: Any) -> "ModuleConfig":
        return replace(self, fallback_owner=to_address(fallback_owner))

    def validate(self) -> "ModuleConfig":
        return _validate_module(self)


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    json: Optional[bool] = None


@dataclass(frozen=True)
class LivenessConfig:
    module: ModuleConfig
    logging: LoggingConfig

    def to_dict(self) -> Dict[str, object]:
        d = asdict(self)
        d["module"]["fallback_owner"] = to_hex(self.module.fallback_owner)
        return d


# ------------------------------ loader --------------------------------------


def _validate_module(c: ModuleConfig, *, require_fallback: bool = True) -> ModuleConfig:
    if c.liveness_interval <= 0:
        raise ConfigError("liveness_interval must be > 0")
    if c.min_owners < 1:
        raise ConfigError("min_owners must be ≥ 1")
    if not (1 <= c.threshold_percentage <= 100):
        raise ConfigError("threshold_percentage must be in [1,100]")
    if require_fallback and is_reserved(c.fallback_owner):
        raise ConfigError(
            "fallback_owner must be set to a non-reserved address",
            data={"fallback_owner": to_hex(c.fallback_owner)},
        )
    return c


def load_config(
    env: Optional[Mapping[str, str]] = None,
    *,
    overrides: Optional[Mapping[str, Any]] = None,
) -> LivenessConfig:
    """
    Build a LivenessConfig from environment and optional overrides.

    Args:
        env: mapping to read variables from (default: os.environ)
        overrides: explicit field overrides; keys support:
          'liveness_interval', 'min_owners', 'fallback_owner',
          'threshold_percentage', 'log_level', 'log_json'

    The module section is range-checked here except for the fallback owner,
    which may be left unset until deployment (`ModuleConfig.validate()`).
    """
    env = os.environ if env is None else env
    overrides = dict(overrides or {})

    fallback_raw = overrides.get("fallback_owner", env.get("LIVENESS_FALLBACK_OWNER"))
    fallback = ZERO_ADDRESS if fallback_raw in (None, "") else to_address(fallback_raw)

    module = ModuleConfig(
        liveness_interval=parse_duration(
            overrides.get("liveness_interval", env.get("LIVENESS_INTERVAL", DEFAULT_LIVENESS_INTERVAL))
        ),
        min_owners=_int_value(
            "min_owners", overrides.get("min_owners", env.get("LIVENESS_MIN_OWNERS", DEFAULT_MIN_OWNERS))
        ),
        fallback_owner=fallback,
        threshold_percentage=_int_value(
            "threshold_percentage",
            overrides.get(
                "threshold_percentage",
                env.get("LIVENESS_THRESHOLD_PERCENTAGE", DEFAULT_THRESHOLD_PERCENTAGE),
            ),
        ),
    )
    _validate_module(module, require_fallback=fallback != ZERO_ADDRESS)

    log_json = overrides.get("log_json")
    logging_cfg = LoggingConfig(
        level=str(overrides.get("log_level", env.get("LIVENESS_LOG_LEVEL", "INFO"))).upper(),
        json=log_json if isinstance(log_json, bool) else _optional_bool(env.get("LIVENESS_LOG_FORMAT")),
    )
    return LivenessConfig(module=module, logging=logging_cfg)


@lru_cache(maxsize=1)
def get_config() -> LivenessConfig:
    """Cached global config read from the process environment."""
    return load_config()


# ----------------------------- pretty-print ---------------------------------


def _fmt_duration(n: int) -> str:
    for unit, div in (("w", 604_800), ("d", 86_400), ("h", 3_600), ("m", 60)):
        if n >= div and n % div == 0:
            return f"{n // div}{unit}"
    return f"{n}s"


def summary(cfg: Optional[LivenessConfig] = None) -> str:
    """One-line summary of the protocol knobs."""
    cfg = cfg or get_config()
    m = cfg.module
    fb = to_hex(m.fallback_owner) if m.fallback_owner != ZERO_ADDRESS else "unset"
    return (
        "liveness{"
        f"interval={_fmt_duration(m.liveness_interval)}, min_owners={m.min_owners}, "
        f"threshold={m.threshold_percentage}%, fallback={fb}, log={cfg.logging.level}"
        "}"
    )


__all__ = [
    "DEFAULT_LIVENESS_INTERVAL",
    "DEFAULT_MIN_OWNERS",
    "DEFAULT_THRESHOLD_PERCENTAGE",
    "ModuleConfig",
    "LoggingConfig",
    "LivenessConfig",
    "parse_duration",
    "load_config",
    "get_config",
    "summary",
]
