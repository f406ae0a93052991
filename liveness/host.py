"""
liveness.host — the execution host shared by the Safe, guard and module.

The host owns everything the components must not own individually:

- one journaled storage map, so a single call that touches the Safe, the guard
  and the module commits or reverts as a unit;
- the clock every liveness comparison reads;
- the event sink that receives logs of committed calls;
- a registry of deployed components by address, used when the Safe resolves
  its guard or a caller resolves the Safe.

Every public entry point of a component wraps its body in `host.atomic()`.
Nested scopes stack as journal checkpoints: an inner failure that the caller
catches leaves no trace, while a failure escaping the outermost scope discards
the whole call.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from .clock import Clock, SystemClock
from .errors import ConfigError
from .state.events import EventSink, InMemoryEventSink
from .state.journal import Journal, StagedLog
from .types import Address, to_hex

log = logging.getLogger(__name__)


class Host:
    def __init__(self, *, clock: Optional[Clock] = None, sink: Optional[EventSink] = None) -> None:
        self.clock: Clock = clock if clock is not None else SystemClock()
        self.events: EventSink = sink if sink is not None else InMemoryEventSink()
        self.journal = Journal(on_flush=self._deliver)
        self._contracts: Dict[Address, Any] = {}

    # ------------------------------------------------------------------ #
    # Time
    # ------------------------------------------------------------------ #

    def now(self) -> int:
        return int(self.clock.now())

    # ------------------------------------------------------------------ #
    # Atomic call boundary
    # ------------------------------------------------------------------ #

    @contextmanager
    def atomic(self) -> Iterator[int]:
        """
        Run the body inside a journal checkpoint. On success the checkpoint
        is merged into its parent (and flushed to the base state when it was
        the outermost scope); on any exception it is discarded.
        """
        marker = self.journal.begin()
        try:
            yield marker
        except BaseException:
            self.journal.revert_to(marker - 1)
            raise
        else:
            self.journal.commit_to(marker - 1)
            if marker == 2:
                self.journal.flush()

    def in_call(self) -> bool:
        return self.journal.depth() > 1

    # ------------------------------------------------------------------ #
    # Storage & logs (component-scoped)
    # ------------------------------------------------------------------ #

    def storage_get(self, address: Address, key: bytes) -> Optional[bytes]:
        return self.journal.storage_get(address, key)

    def storage_set(self, address: Address, key: bytes, value: bytes) -> None:
        self._require_call("storage_set")
        self.journal.storage_set(address, key, value)

    def storage_delete(self, address: Address, key: bytes) -> None:
        self._require_call("storage_delete")
        self.journal.storage_delete(address, key)

    def emit(self, address: Address, name: bytes, args: Dict[str, Any]) -> None:
        self._require_call("emit")
        self.journal.log(address, name, args)

    def _require_call(self, op: str) -> None:
        if not self.in_call():
            raise RuntimeError(f"{op} outside of host.atomic()")

    def _deliver(self, logs: List[StagedLog]) -> None:
        ts = self.now()
        for staged in logs:
            self.events.append(staged, timestamp=ts)

    # ------------------------------------------------------------------ #
    # Registry
    # ------------------------------------------------------------------ #

    def deploy(self, contract: Any) -> Address:
        addr = contract.address
        if addr in self._contracts:
            raise ConfigError(
                "address already has a deployed component",
                data={"address": to_hex(addr)},
            )
        self._contracts[addr] = contract
        log.debug("deployed %s at %s", type(contract).__name__, to_hex(addr))
        return addr

    def contract_at(self, address: Address) -> Optional[Any]:
        return self._contracts.get(address)


__all__ = ["Host"]
