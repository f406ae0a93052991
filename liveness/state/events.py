"""
liveness.state.events — pluggable event sinks.

Events emitted by the Safe, the guard and the module are staged in the
journal and delivered here only when the call that produced them commits.
Backends:

- InMemoryEventSink: fast, test/dev friendly; keeps all records in RAM.
- JsonlEventSink: append-only JSONL file; the audit trail for simulations.
- NullEventSink: drops everything.

Ordering: `index` strictly increases across appended records.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from typing import (Any, Dict, Iterable, List, Optional, Protocol,
                    runtime_checkable)

from .journal import StagedLog

log = logging.getLogger(__name__)


def _b2h(b: bytes) -> str:
    return "0x" + bytes(b).hex()


def _h2b(h: str) -> bytes:
    if h.startswith("0x") or h.startswith("0X"):
        h = h[2:]
    return bytes.fromhex(h)


# =============================================================================
# Public data model
# =============================================================================


@dataclass(frozen=True)
class EventRecord:
    """
    A delivered event.

    Fields
    ------
    index : int
        Position in the sink, 0-based, in commit order.
    timestamp : int
        Host time at which the producing call committed.
    address : bytes
        Emitting component.
    name : bytes
        Event name, e.g. b"OwnerRecorded".
    args : dict
        Event arguments (bytes, int, bool or tuples of bytes).
    """

    index: int
    timestamp: int
    address: bytes
    name: bytes
    args: Dict[str, Any]

    def to_json(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "timestamp": self.timestamp,
            "address": _b2h(self.address),
            "name": self.name.decode("utf-8", errors="replace"),
            "args": {k: _encode_arg(v) for k, v in self.args.items()},
        }


def _encode_arg(v: Any) -> Any:
    if isinstance(v, (bytes, bytearray)):
        return _b2h(v)
    if isinstance(v, (list, tuple)):
        return [_encode_arg(x) for x in v]
    return v


# =============================================================================
# Sink interface
# =============================================================================


@runtime_checkable
class EventSink(Protocol):
    def append(self, staged: StagedLog, *, timestamp: int) -> EventRecord:
        """Append one staged log. Returns the stored record."""

    def get_logs(
        self,
        *,
        address: Optional[bytes] = None,
        name: Optional[bytes] = None,
        limit: Optional[int] = None,
    ) -> Iterable[EventRecord]:
        """Iterate matching records in ascending index order."""

    def close(self) -> None:
        """Release resources (files, buffers)."""


def _record_matches(rec: EventRecord, address: Optional[bytes], name: Optional[bytes]) -> bool:
    if address is not None and rec.address != address:
        return False
    if name is not None and rec.name != name:
        return False
    return True


# =============================================================================
# In-memory sink
# =============================================================================


class InMemoryEventSink:
    """A simple, thread-safe in-memory sink."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: List[EventRecord] = []

    def append(self, staged: StagedLog, *, timestamp: int) -> EventRecord:
        with self._lock:
            rec = EventRecord(
                index=len(self._records),
                timestamp=int(timestamp),
                address=staged.address,
                name=staged.name,
                args=dict(staged.args),
            )
            self._records.append(rec)
        return rec

    def get_logs(
        self,
        *,
        address: Optional[bytes] = None,
        name: Optional[bytes] = None,
        limit: Optional[int] = None,
    ) -> Iterable[EventRecord]:
        with self._lock:
            snapshot = list(self._records)
        n = 0
        for rec in snapshot:
            if not _record_matches(rec, address, name):
                continue
            yield rec
            n += 1
            if limit is not None and n >= limit:
                break

    def names(self) -> List[bytes]:
        with self._lock:
            return [r.name for r in self._records]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def close(self) -> None:
        with self._lock:
            self._records.clear()


# =============================================================================
# JSONL sink (durable)
# =============================================================================


class JsonlEventSink:
    """
    Append-only JSONL sink; one `EventRecord.to_json()` object per line.
    Records appended by earlier runs are counted so indices keep increasing.
    """

    def __init__(self, path: str) -> None:
        self._path = path
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        self._lock = threading.RLock()
        self._count = 0
        if os.path.exists(path):
            with open(path, "r", encoding="utf-8") as fh:
                self._count = sum(1 for line in fh if line.strip())
        self._fh = open(path, "a", encoding="utf-8", buffering=1)

    def append(self, staged: StagedLog, *, timestamp: int) -> EventRecord:
        with self._lock:
            rec = EventRecord(
                index=self._count,
                timestamp=int(timestamp),
                address=staged.address,
                name=staged.name,
                args=dict(staged.args),
            )
            self._fh.write(json.dumps(rec.to_json(), separators=(",", ":")) + "\n")
            self._count += 1
        return rec

    def get_logs(
        self,
        *,
        address: Optional[bytes] = None,
        name: Optional[bytes] = None,
        limit: Optional[int] = None,
    ) -> Iterable[EventRecord]:
        with self._lock:
            self._fh.flush()
            with open(self._path, "r", encoding="utf-8") as fh:
                lines = [ln for ln in fh if ln.strip()]
        n = 0
        for line in lines:
            rec = self._decode(line)
            if not _record_matches(rec, address, name):
                continue
            yield rec
            n += 1
            if limit is not None and n >= limit:
                break

    @staticmethod
    def _decode(line: str) -> EventRecord:
        obj = json.loads(line)
        args: Dict[str, Any] = {}
        for k, v in obj.get("args", {}).items():
            if isinstance(v, str) and v.startswith("0x"):
                args[k] = _h2b(v)
            elif isinstance(v, list):
                args[k] = tuple(_h2b(x) if isinstance(x, str) else x for x in v)
            else:
                args[k] = v
        return EventRecord(
            index=int(obj["index"]),
            timestamp=int(obj["timestamp"]),
            address=_h2b(obj["address"]),
            name=obj["name"].encode("utf-8"),
            args=args,
        )

    def close(self) -> None:
        with self._lock:
            try:
                self._fh.close()
            except OSError:
                log.warning("failed to close event log %s", self._path, exc_info=True)


class NullEventSink:
    """No-op sink."""

    def append(self, staged: StagedLog, *, timestamp: int) -> EventRecord:
        return EventRecord(-1, int(timestamp), staged.address, staged.name, dict(staged.args))

    def get_logs(self, **_: Any) -> Iterable[EventRecord]:
        return iter(())

    def close(self) -> None:
        return


__all__ = [
    "EventRecord",
    "EventSink",
    "InMemoryEventSink",
    "JsonlEventSink",
    "NullEventSink",
]
