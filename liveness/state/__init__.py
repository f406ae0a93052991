"""
liveness.state — journaled storage and event sinks.

Submodules:
- journal: storage overlays, checkpoints, staged logs
- events:  event records and sink backends
"""

from __future__ import annotations

from importlib import import_module as _imp
from typing import Any, Dict, Tuple

_exports: Dict[str, Tuple[str, str]] = {
    "Journal": ("journal", "Journal"),
    "StagedLog": ("journal", "StagedLog"),
    "EventRecord": ("events", "EventRecord"),
    "EventSink": ("events", "EventSink"),
    "InMemoryEventSink": ("events", "InMemoryEventSink"),
    "JsonlEventSink": ("events", "JsonlEventSink"),
    "NullEventSink": ("events", "NullEventSink"),
}

__all__ = tuple(_exports.keys())


def __getattr__(name: str) -> Any:
    if name in _exports:
        submod, symbol = _exports[name]
        mod = _imp(f"{__name__}.{submod}")
        return getattr(mod, symbol)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:  # pragma: no cover
    return sorted(list(globals().keys()) + list(__all__))
