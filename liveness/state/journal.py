"""
liveness.state.journal — journaling storage writes and logs, checkpoints,
revert/commit.

All mutable protocol state (Safe owner list and threshold, guard liveness
records, module flags) lives in one storage map keyed by (address, key). The
journal layers a stack of overlays on top of that map. Writes and emitted logs
go to the top overlay; reads consult overlays from top → base. `commit()`
merges the top overlay into the next layer, `revert()` discards it, and
`flush()` applies the root overlay to the base map and hands its logs to the
sink.

Key properties
--------------
- Pure Python, no I/O; deterministic.
- Storage overlay per (address, key) with explicit deletion markers (None).
- Logs are staged with the writes that produced them, so a reverted call
  leaves neither storage changes nor events behind.
- Nested checkpoints (begin/commit/revert) with O(changes) merge cost.

Intended usage
--------------
    j = Journal()
    marker = j.begin()
    j.storage_set(addr, b"k", b"v")
    j.log(addr, b"Changed", {"k": b"v"})
    j.commit_to(marker - 1)
    j.flush()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, MutableMapping, Optional


def _b(x: bytes | bytearray | memoryview, *, name: str) -> bytes:
    if not isinstance(x, (bytes, bytearray, memoryview)):
        raise TypeError(f"{name} must be bytes-like")
    return bytes(x)


@dataclass(frozen=True)
class StagedLog:
    """A log emitted by a component, not yet delivered to the event sink."""

    address: bytes
    name: bytes
    args: Dict[str, Any]


# =============================================================================
# Overlay model
# =============================================================================


@dataclass
class _Overlay:
    """
    A single journal layer.

    - `storage`: staged storage changes. `None` means deletion for that key.
    - `logs`: logs emitted while this layer was on top, in emission order.
    """

    storage: Dict[bytes, Dict[bytes, Optional[bytes]]] = field(default_factory=dict)
    logs: List[StagedLog] = field(default_factory=list)

    def storage_lookup(self, addr: bytes, key: bytes) -> tuple[bool, Optional[bytes]]:
        m = self.storage.get(addr)
        if m is None or key not in m:
            return False, None
        return True, m[key]

    def storage_set_local(self, addr: bytes, key: bytes, value: Optional[bytes]) -> None:
        self.storage.setdefault(addr, {})[key] = value


# =============================================================================
# Journal
# =============================================================================


class Journal:
    """
    A write journal with nested checkpoints.

    Parameters
    ----------
    base : MutableMapping[bytes, Dict[bytes, bytes]] | None
        The persisted storage map (address -> key -> value).
    on_flush : Callable[[List[StagedLog]], None] | None
        Receives the logs of every flushed root layer, in emission order.
    """

    def __init__(
        self,
        base: Optional[MutableMapping[bytes, Dict[bytes, bytes]]] = None,
        *,
        on_flush: Optional[Callable[[List[StagedLog]], None]] = None,
    ) -> None:
        self._base: MutableMapping[bytes, Dict[bytes, bytes]] = {} if base is None else base
        self._on_flush = on_flush
        self._layers: List[_Overlay] = [_Overlay()]

    # --------------------------------------------------------------------- #
    # Checkpointing
    # --------------------------------------------------------------------- #

    def depth(self) -> int:
        """Number of overlays (>= 1)."""
        return len(self._layers)

    def begin(self) -> int:
        """Start a new checkpoint. Returns the new depth marker."""
        self._layers.append(_Overlay())
        return len(self._layers)

    def commit(self) -> None:
        """Merge the top overlay into its parent. The root layer needs `flush()`."""
        if len(self._layers) <= 1:
            raise RuntimeError("no checkpoint to commit")
        top = self._layers.pop()
        self._merge_layers(self._layers[-1], top)

    def revert(self) -> None:
        """Discard the top overlay (or clear it if it's the root)."""
        if len(self._layers) > 1:
            self._layers.pop()
        else:
            self._layers[0] = _Overlay()

    def commit_to(self, marker: int) -> None:
        """Commit repeatedly until the current depth equals `marker`."""
        if marker < 1:
            raise ValueError("marker must be >= 1")
        while len(self._layers) > marker:
            self.commit()

    def revert_to(self, marker: int) -> None:
        """Revert repeatedly until the current depth equals `marker`."""
        if marker < 1:
            raise ValueError("marker must be >= 1")
        while len(self._layers) > marker:
            self.revert()

    def flush(self) -> None:
        """
        Apply the root overlay to the base map and deliver its logs.
        Only valid when no checkpoint is open.
        """
        if len(self._layers) != 1:
            raise RuntimeError(f"cannot flush with {len(self._layers) - 1} open checkpoint(s)")
        root = self._layers[0]
        self._layers[0] = _Overlay()
        for addr, m in root.storage.items():
            dst = self._base.setdefault(addr, {})
            for k, v in m.items():
                if v is None:
                    dst.pop(k, None)
                else:
                    dst[k] = v
            if not dst:
                self._base.pop(addr, None)
        if root.logs and self._on_flush is not None:
            self._on_flush(list(root.logs))

    # --------------------------------------------------------------------- #
    # Storage API
    # --------------------------------------------------------------------- #

    def storage_get(self, address: bytes, key: bytes) -> Optional[bytes]:
        addr = _b(address, name="address")
        k = _b(key, name="key")
        for layer in reversed(self._layers):
            found, v = layer.storage_lookup(addr, k)
            if found:
                return v
        return self._base.get(addr, {}).get(k)

    def storage_set(self, address: bytes, key: bytes, value: bytes) -> None:
        addr = _b(address, name="address")
        k = _b(key, name="key")
        self._layers[-1].storage_set_local(addr, k, _b(value, name="value"))

    def storage_delete(self, address: bytes, key: bytes) -> None:
        addr = _b(address, name="address")
        k = _b(key, name="key")
        self._layers[-1].storage_set_local(addr, k, None)

    # --------------------------------------------------------------------- #
    # Logs
    # --------------------------------------------------------------------- #

    def log(self, address: bytes, name: bytes, args: Dict[str, Any]) -> None:
        self._layers[-1].logs.append(
            StagedLog(_b(address, name="address"), _b(name, name="name"), dict(args))
        )

    def pending_logs(self) -> List[StagedLog]:
        """All logs staged in any open layer, bottom → top."""
        out: List[StagedLog] = []
        for layer in self._layers:
            out.extend(layer.logs)
        return out

    # --------------------------------------------------------------------- #
    # Internals
    # --------------------------------------------------------------------- #

    @staticmethod
    def _merge_layers(parent: _Overlay, child: _Overlay) -> None:
        for addr, m in child.storage.items():
            for k, v in m.items():
                parent.storage_set_local(addr, k, v)
        parent.logs.extend(child.logs)


__all__ = ["Journal", "StagedLog"]
