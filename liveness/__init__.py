"""
liveness — owner liveness and inactive-owner removal for Safe multisigs.

Components:
- guard.LivenessGuard:   records when each owner last showed liveness
- module.LivenessModule: removes owners past the liveness interval and keeps
                         the Safe's threshold at the required ratio
- wallet.Safe:           the multisig the two are attached to
- host.Host:             journaled storage, clock and events shared by all

This package exposes only lightweight metadata at import time; components are
loaded on first attribute access.
"""

from __future__ import annotations

from importlib import import_module as _imp
from typing import Any, Dict, Tuple

from .version import __version__, git_describe

_exports: Dict[str, Tuple[str, str]] = {
    "Host": ("host", "Host"),
    "LivenessGuard": ("guard", "LivenessGuard"),
    "LivenessModule": ("module", "LivenessModule"),
    "required_threshold": ("module", "required_threshold"),
    "previous_owner_hints": ("module", "previous_owner_hints"),
    "Safe": ("wallet.safe", "Safe"),
    "SafeTransaction": ("wallet.safe", "SafeTransaction"),
    "OwnerKey": ("wallet.signatures", "OwnerKey"),
    "ModuleConfig": ("config", "ModuleConfig"),
    "load_config": ("config", "load_config"),
    "ManualClock": ("clock", "ManualClock"),
}

__all__ = ("__version__", "git_describe") + tuple(_exports.keys())


def __getattr__(name: str) -> Any:
    if name in _exports:
        submod, symbol = _exports[name]
        mod = _imp(f"{__name__}.{submod}")
        return getattr(mod, symbol)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:  # pragma: no cover
    return sorted(list(globals().keys()) + list(__all__))
