"""
liveness.scenario — build a protected Safe from a declarative description.

Used by the CLI (`liveness plan`, `liveness simulate`) and by tests. A scenario
is a JSON document:

    {
      "owners": [{"name": "alice", "last_live": 1700000000}, {"name": "bob"}],
      "fallback_owner": "council",
      "deployed_at": 1690000000,
      "now": 1703000000,
      "liveness_interval": "30d",
      "min_owners": 1,
      "threshold_percentage": 75,
      "threshold": null,
      "remove": ["bob"]
    }

Owners are named; each name maps to a deterministic Ed25519 key
(`OwnerKey.from_seed(name)`). `fallback_owner` is a name or a hex address.
Owners without `last_live` keep the timestamp stamped when the guard was
installed at `deployed_at`. `threshold` defaults to the required threshold;
`remove` defaults to every owner whose liveness has expired, in list order.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import msgspec

from .clock import ManualClock
from .config import ModuleConfig, parse_duration
from .errors import ConfigError
from .guard import LivenessGuard
from .host import Host
from .module import LivenessModule, required_threshold
from .state.events import EventSink
from .types import Address, to_address, to_hex
from .wallet.safe import Safe, SafeTransaction
from .wallet.signatures import OwnerKey, sign_all

# =============================================================================
# Document model
# =============================================================================


class OwnerSpec(msgspec.Struct, forbid_unknown_fields=True):
    name: str
    last_live: Optional[int] = None


class Scenario(msgspec.Struct, forbid_unknown_fields=True):
    owners: List[OwnerSpec]
    fallback_owner: str
    now: int
    deployed_at: int = 0
    liveness_interval: Union[int, str] = "30d"
    min_owners: int = 1
    threshold_percentage: int = 75
    threshold: Optional[int] = None
    remove: Optional[List[str]] = None


def decode_scenario(raw: Union[bytes, str]) -> Scenario:
    try:
        sc = msgspec.json.decode(raw, type=Scenario)
    except msgspec.ValidationError as e:
        raise ConfigError(f"invalid scenario: {e}") from e
    except msgspec.DecodeError as e:
        raise ConfigError(f"scenario is not valid JSON: {e}") from e
    _check_scenario(sc)
    return sc


def load_scenario(path: Union[str, Path]) -> Scenario:
    p = Path(path)
    try:
        raw = p.read_bytes()
    except OSError as e:
        raise ConfigError(f"cannot read scenario {p}: {e}") from e
    return decode_scenario(raw)


def _check_scenario(sc: Scenario) -> None:
    if not sc.owners:
        raise ConfigError("scenario needs at least one owner")
    names = [o.name for o in sc.owners]
    if len(set(names)) != len(names):
        raise ConfigError("owner names must be unique")
    if sc.now < sc.deployed_at:
        raise ConfigError("now must not be before deployed_at")
    for o in sc.owners:
        if o.last_live is not None and not (sc.deployed_at <= o.last_live <= sc.now):
            raise ConfigError(
                f"last_live of {o.name} must lie between deployed_at and now",
                data={"owner": o.name, "last_live": o.last_live},
            )
    for name in sc.remove or ():
        if name not in names:
            raise ConfigError(f"cannot remove unknown owner {name!r}")


# =============================================================================
# Deployment
# =============================================================================


def execute(safe: Safe, keys: Sequence[OwnerKey], method: str, *args: Any, sender: Optional[Address] = None) -> bool:
    """Self-call `method` on the Safe, signed by every key in `keys`."""
    tx = SafeTransaction.self_call(safe.address, method, *args)
    tx_hash = safe.get_transaction_hash(tx, safe.nonce)
    sigs = sign_all(keys, tx_hash)
    return safe.exec_transaction(sender if sender is not None else keys[0].address, tx, sigs)


@dataclass
class Deployment:
    host: Host
    clock: ManualClock
    keys: Dict[str, OwnerKey]
    safe: Safe
    guard: LivenessGuard
    module: LivenessModule
    fallback_label: str = "fallback"

    def address_of(self, name: str) -> Address:
        return self.keys[name].address

    def name_of(self, address: Address) -> str:
        for name, key in self.keys.items():
            if key.address == address:
                return name
        if address == self.module.fallback_owner:
            return self.fallback_label
        return to_hex(address)

    def owner_names(self) -> List[str]:
        return [self.name_of(a) for a in self.safe.get_owners()]


def bootstrap(
    host: Host,
    keys: Sequence[OwnerKey],
    *,
    config: ModuleConfig,
    threshold: Optional[int] = None,
) -> tuple:
    """
    Deploy a Safe owned by `keys`, install a liveness guard and enable a
    liveness module. Returns (safe, guard, module).
    """
    owners = [k.address for k in keys]
    t = threshold if threshold is not None else required_threshold(len(owners), config.threshold_percentage)
    safe = Safe(host, owners, t)
    guard = LivenessGuard(host, safe)
    execute(safe, keys, "set_guard", guard.address)
    module = LivenessModule(host, safe, guard, config=config)
    execute(safe, keys, "enable_module", module.address)
    return safe, guard, module


def _fallback_address(raw: str) -> Address:
    if raw.startswith(("0x", "0X")):
        return to_address(raw)
    return OwnerKey.from_seed(raw).address


def deploy(sc: Scenario, *, sink: Optional[EventSink] = None) -> Deployment:
    """Replay a scenario up to `sc.now` on a fresh in-memory host."""
    clock = ManualClock(sc.deployed_at)
    host = Host(clock=clock, sink=sink)
    keys = {o.name: OwnerKey.from_seed(o.name) for o in sc.owners}
    config = ModuleConfig(
        liveness_interval=parse_duration(sc.liveness_interval),
        min_owners=sc.min_owners,
        fallback_owner=_fallback_address(sc.fallback_owner),
        threshold_percentage=sc.threshold_percentage,
    )
    safe, guard, module = bootstrap(host, list(keys.values()), config=config, threshold=sc.threshold)

    for o in sorted((o for o in sc.owners if o.last_live is not None), key=lambda o: o.last_live):
        clock.set(o.last_live)
        guard.show_liveness(keys[o.name].address)
    clock.set(sc.now)
    return Deployment(
        host=host, clock=clock, keys=keys, safe=safe, guard=guard, module=module, fallback_label=sc.fallback_owner
    )


def removal_targets(dep: Deployment, sc: Scenario) -> List[Address]:
    if sc.remove is not None:
        return [dep.address_of(n) for n in sc.remove]
    return [a for a in dep.safe.get_owners() if dep.module.can_remove(a)]


def owner_rows(dep: Deployment) -> Iterable[Dict[str, Any]]:
    now = dep.host.now()
    interval = dep.module.liveness_interval
    for addr in dep.safe.get_owners():
        last = dep.guard.last_live(addr)
        yield {
            "name": dep.name_of(addr),
            "address": to_hex(addr),
            "last_live": last,
            "idle": now - last,
            "removable_at": last + interval + 1,
            "removable": dep.module.can_remove(addr),
        }


__all__ = [
    "OwnerSpec",
    "Scenario",
    "decode_scenario",
    "load_scenario",
    "Deployment",
    "execute",
    "bootstrap",
    "deploy",
    "removal_targets",
    "owner_rows",
]
