"""
liveness.logging
----------------

Structured logging for the liveness components:
- JSON or concise colored text formats
- Context-local fields via `contextvars` (trace_id, safe, component, tx_hash)
- Safe JSON serialization (bytes → 0x-hex)
- Helpers to bind/unbind context fields and open trace scopes

Usage
-----
    from liveness import logging as llog

    llog.configure(json=False, level="INFO")  # once at process start
    log = llog.get_logger(__name__)

    with llog.trace_scope():
        llog.bind(safe=safe.address)
        log.info("removing owners", extra={"count": 2})

Library modules only ever call `logging.getLogger(__name__)`; nothing here
runs at import time.
"""

from __future__ import annotations

import datetime as _dt
import io
import json
import logging
import os
import sys
import traceback
import types
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

# ----------------------------
# Context
# ----------------------------

_LOG_CONTEXT: ContextVar[Dict[str, Any]] = ContextVar("_LOG_CONTEXT", default={})

DEFAULT_CONTEXT_KEYS = (
    "trace_id",
    "safe",
    "component",
    "tx_hash",
)

_RECORD_ATTRS = frozenset(
    (
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
    )
)


def context() -> Dict[str, Any]:
    """Return a *copy* of the active logging context."""
    return dict(_LOG_CONTEXT.get())


def bind(**fields: Any) -> None:
    """Merge fields into the active context."""
    cur = dict(_LOG_CONTEXT.get())
    cur.update({k: _coerce_value(v) for k, v in fields.items()})
    _LOG_CONTEXT.set(cur)


def unbind(*keys: str) -> None:
    cur = dict(_LOG_CONTEXT.get())
    for k in keys:
        cur.pop(k, None)
    _LOG_CONTEXT.set(cur)


def clear_context() -> None:
    _LOG_CONTEXT.set({})


@contextmanager
def trace_scope(trace_id: Optional[str] = None):
    """
    Ensure a trace_id is present for the duration of the scope. Restores the
    prior context on exit.
    """
    prev = dict(_LOG_CONTEXT.get())
    try:
        bind(trace_id=trace_id or short_uuid())
        yield
    finally:
        _LOG_CONTEXT.set(prev)


def short_uuid() -> str:
    return uuid.uuid4().hex[:12]


# ----------------------------
# Formatters
# ----------------------------


def _coerce_value(v: Any) -> Any:
    if v is None or isinstance(v, (bool, int, float, str)):
        return v
    if isinstance(v, (bytes, bytearray)):
        return "0x" + bytes(v).hex()
    if isinstance(v, (list, tuple)):
        return [_coerce_value(x) for x in v]
    if isinstance(v, dict):
        return {str(k): _coerce_value(x) for k, x in v.items()}
    if isinstance(v, Path):
        return str(v)
    if is_dataclass(v) and not isinstance(v, type):
        return _coerce_value(asdict(v))
    return str(v)


def _utcnow_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat(timespec="milliseconds")


def _extras(record: logging.LogRecord) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k, v in record.__dict__.items():
        if k.startswith("_") or k in _RECORD_ATTRS:
            continue
        out[k] = _coerce_value(v)
    return out


ANSI = types.SimpleNamespace(
    RESET="\x1b[0m",
    BOLD="\x1b[1m",
    RED="\x1b[31m",
    GREEN="\x1b[32m",
    YELLOW="\x1b[33m",
    MAGENTA="\x1b[35m",
    CYAN="\x1b[36m",
    GREY="\x1b[90m",
    WHITE="\x1b[37m",
)

_LEVEL_COLOR = {
    logging.DEBUG: ANSI.GREY,
    logging.INFO: ANSI.GREEN,
    logging.WARNING: ANSI.YELLOW,
    logging.ERROR: ANSI.RED,
    logging.CRITICAL: ANSI.BOLD + ANSI.MAGENTA,
}


def _supports_color(stream: io.TextIOBase) -> bool:
    try:
        return stream.isatty() and os.environ.get("NO_COLOR") is None
    except (AttributeError, ValueError):
        return False


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": _utcnow_iso(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(context())
        for k, v in _extras(record).items():
            payload.setdefault(k, v)
        if record.exc_info:
            payload["err"] = "".join(traceback.format_exception(*record.exc_info)).rstrip()
        return json.dumps(payload, separators=(",", ":"), default=str)


class TextFormatter(logging.Formatter):
    """
    Human-friendly one-liner:
      2026-01-05T12:34:56.789Z | INFO  | liveness.module | safe=0x.. | removed owner owner=0x..
    """

    def __init__(self, stream: io.TextIOBase):
        super().__init__()
        self._color = _supports_color(stream)

    def format(self, record: logging.LogRecord) -> str:
        ctx = context()
        ctx_str = " ".join(f"{k}={ctx[k]}" for k in DEFAULT_CONTEXT_KEYS if ctx.get(k) is not None)
        extras = " ".join(f"{k}={v}" for k, v in _extras(record).items() if k not in ctx)

        lvl = f"{record.levelname:<5}"
        name = record.name
        ts = _utcnow_iso()
        if self._color:
            lvl = f"{_LEVEL_COLOR.get(record.levelno, ANSI.WHITE)}{lvl}{ANSI.RESET}"
            name = f"{ANSI.CYAN}{name}{ANSI.RESET}"
            ts = f"{ANSI.GREY}{ts}{ANSI.RESET}"

        line = f"{ts} | {lvl} | {name}"
        if ctx_str:
            line += f" | {ctx_str}"
        line += f" | {record.getMessage()}"
        if extras:
            line += f" {extras}"
        if record.exc_info:
            line += "\n" + "".join(traceback.format_exception(*record.exc_info)).rstrip()
        return line


# ----------------------------
# Public setup API
# ----------------------------


def configure(
    *,
    json: Optional[bool] = None,
    level: str | int = "INFO",
    stream: io.TextIOBase = sys.stderr,
    file_path: Optional[Path | str] = None,
) -> None:
    """
    Configure the `liveness` logger hierarchy.

    json=None picks JSON when LIVENESS_LOG_FORMAT=json or the stream is not a
    TTY. `file_path` additionally tees JSON lines to a file.
    """
    chosen_json = _decide_json(json, stream)
    lvl = _coerce_level(level)

    root = logging.getLogger("liveness")
    root.setLevel(lvl)
    for h in list(root.handlers):
        root.removeHandler(h)

    console = logging.StreamHandler(stream)
    console.setLevel(lvl)
    console.setFormatter(JSONFormatter() if chosen_json else TextFormatter(stream))
    root.addHandler(console)

    if file_path:
        p = Path(file_path).expanduser()
        p.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(p, encoding="utf-8")
        fh.setLevel(lvl)
        fh.setFormatter(JSONFormatter())
        root.addHandler(fh)


def configure_from_config(cfg: Any) -> None:
    """Configure from `liveness.config.LivenessConfig`."""
    configure(json=cfg.logging.json, level=cfg.logging.level)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "liveness")


def with_fields(logger: logging.Logger, **fields: Any) -> "ContextAdapter":
    """Return a logger adapter that injects constant fields on each call."""
    return ContextAdapter(logger, extra={k: _coerce_value(v) for k, v in fields.items()})


class ContextAdapter(logging.LoggerAdapter):
    """LoggerAdapter merging its constant fields with call-site `extra`."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> Tuple[Any, Dict[str, Any]]:
        extra = kwargs.get("extra") or {}
        kwargs["extra"] = {**self.extra, **extra} if isinstance(extra, dict) else dict(self.extra)
        return msg, kwargs


# ----------------------------
# Internals
# ----------------------------


_LEVEL_TO_INT = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "NOTSET": logging.NOTSET,
}


def _coerce_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    return _LEVEL_TO_INT.get(level.upper(), logging.INFO)


def _decide_json(json_flag: Optional[bool], stream: io.TextIOBase) -> bool:
    if json_flag is not None:
        return json_flag
    env = os.environ.get("LIVENESS_LOG_FORMAT", "").strip().lower()
    if env in ("json", "text"):
        return env == "json"
    return not _supports_color(stream)


__all__ = [
    "context",
    "bind",
    "unbind",
    "clear_context",
    "trace_scope",
    "short_uuid",
    "JSONFormatter",
    "TextFormatter",
    "configure",
    "configure_from_config",
    "get_logger",
    "with_fields",
    "ContextAdapter",
]
