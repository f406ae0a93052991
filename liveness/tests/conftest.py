from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional

import pytest

from liveness.clock import ManualClock, days
from liveness.config import ModuleConfig
from liveness.guard import LivenessGuard
from liveness.host import Host
from liveness.module import LivenessModule
from liveness.scenario import bootstrap
from liveness.state.events import InMemoryEventSink
from liveness.wallet.safe import Safe
from liveness.wallet.signatures import OwnerKey

START = 1_700_000_000
INTERVAL = days(30)


def make_keys(n: int, prefix: str = "owner") -> List[OwnerKey]:
    return [OwnerKey.from_seed(f"{prefix}-{i}") for i in range(n)]


@dataclass
class Protected:
    host: Host
    clock: ManualClock
    sink: InMemoryEventSink
    keys: List[OwnerKey]
    safe: Safe
    guard: LivenessGuard
    module: LivenessModule

    @property
    def owners(self) -> List[bytes]:
        return self.safe.get_owners()

    def key(self, address: bytes) -> OwnerKey:
        for k in self.keys:
            if k.address == address:
                return k
        raise KeyError(address.hex())

    def event_names(self, address: Optional[bytes] = None) -> List[bytes]:
        return [r.name for r in self.sink.get_logs(address=address)]


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture
def sink() -> InMemoryEventSink:
    return InMemoryEventSink()


@pytest.fixture
def host(clock: ManualClock, sink: InMemoryEventSink) -> Host:
    return Host(clock=clock, sink=sink)


@pytest.fixture
def fallback() -> OwnerKey:
    return OwnerKey.from_seed("fallback")


@pytest.fixture
def make_protected(host: Host, clock: ManualClock, sink: InMemoryEventSink, fallback: OwnerKey) -> Callable[..., Protected]:
    """
    Deploy a Safe with `n` owners at START, its liveness guard installed and a
    liveness module enabled. One protected Safe per test.
    """

    def _make(
        n: int = 5,
        *,
        min_owners: int = 1,
        interval: int = INTERVAL,
        threshold_percentage: int = 75,
    ) -> Protected:
        keys = make_keys(n)
        cfg = ModuleConfig(
            liveness_interval=interval,
            min_owners=min_owners,
            fallback_owner=fallback.address,
            threshold_percentage=threshold_percentage,
        )
        safe, guard, module = bootstrap(host, keys, config=cfg)
        return Protected(host=host, clock=clock, sink=sink, keys=keys, safe=safe, guard=guard, module=module)

    return _make
