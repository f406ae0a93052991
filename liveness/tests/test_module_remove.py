from __future__ import annotations

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from liveness.clock import ManualClock
from liveness.config import ModuleConfig
from liveness.errors import (ArityMismatch, FallbackSwapFailed, FloorBreached, HookTampered, ModuleError,
                             OwnershipAlreadyTransferred, RemovalFailed, StillActive, ThresholdDrifted)
from liveness.host import Host
from liveness.module import previous_owner_hints, required_threshold
from liveness.scenario import bootstrap, execute
from liveness.state.events import InMemoryEventSink
from liveness.types import SENTINEL_OWNERS, ZERO_ADDRESS
from liveness.wallet.owners import previous_owner
from liveness.wallet.signatures import OwnerKey

from .conftest import INTERVAL, START, make_keys


def _expire(p, extra: int = 1) -> None:
    p.clock.advance(INTERVAL + extra)


def _remove(p, targets):
    p.module.remove_owners(p.module.plan_removal(targets), targets)


def _snapshot(p):
    return (p.safe.get_owners(), p.safe.get_threshold(), len(p.sink), p.module.ownership_transferred_to_fallback)


# ===================================================
# Liveness window
# ===================================================


def test_owner_is_still_active_at_the_interval_boundary(make_protected):
    p = make_protected(5)
    target = p.owners[2]
    p.clock.advance(INTERVAL)
    with pytest.raises(StillActive) as ei:
        _remove(p, [target])
    assert ei.value.data["last_live"] == START
    assert ei.value.data["removable_after"] == START + INTERVAL

    p.clock.advance(1)
    _remove(p, [target])
    assert target not in p.owners


def test_show_liveness_refreshes_the_window(make_protected):
    p = make_protected(5)
    target = p.owners[0]
    p.clock.advance(INTERVAL - 5)
    p.guard.show_liveness(target)
    p.clock.advance(10)
    with pytest.raises(StillActive):
        _remove(p, [target])
    assert p.module.can_remove(p.owners[1])
    assert not p.module.can_remove(target)


def test_signing_a_transaction_refreshes_the_window(make_protected):
    p = make_protected(5)
    idle, *active = p.keys
    p.clock.advance(INTERVAL - 10)
    assert execute(p.safe, active, "change_threshold", 4)
    p.clock.advance(11)

    for k in active:
        with pytest.raises(StillActive):
            _remove(p, [k.address])
    _remove(p, [idle.address])
    assert p.owners == [k.address for k in active]


def test_one_active_owner_blocks_the_whole_batch(make_protected):
    p = make_protected(5)
    _expire(p)
    p.guard.show_liveness(p.owners[3])
    before = _snapshot(p)
    with pytest.raises(StillActive) as ei:
        _remove(p, p.owners[1:4])
    assert ei.value.data["owner"] == "0x" + p.owners[3].hex()
    assert _snapshot(p) == before


# ===================================================
# Successful removal
# ===================================================


def test_single_removal_recomputes_threshold(make_protected):
    p = make_protected(5)
    _expire(p)
    target = p.owners[1]
    _remove(p, [target])
    assert len(p.owners) == 4
    assert p.safe.get_threshold() == required_threshold(4) == 3
    assert target not in p.owners
    removed = [r.args["owner"] for r in p.sink.get_logs(address=p.module.address, name=b"RemovedOwner")]
    assert removed == [target]


def test_batch_removal_in_input_order(make_protected):
    p = make_protected(8)
    _expire(p)
    targets = [p.owners[6], p.owners[0], p.owners[3]]
    _remove(p, targets)
    assert len(p.owners) == 5
    assert p.safe.get_threshold() == 4
    removed = [r.args["owner"] for r in p.sink.get_logs(address=p.module.address, name=b"RemovedOwner")]
    assert removed == targets


def test_removing_everyone_hands_the_safe_to_the_fallback(make_protected, fallback):
    p = make_protected(5)
    _expire(p)
    _remove(p, p.owners)

    assert p.owners == [fallback.address]
    assert p.safe.get_threshold() == 1
    assert p.module.ownership_transferred_to_fallback
    names = p.event_names(p.module.address)
    assert names == [b"RemovedOwner"] * 4 + [b"OwnershipTransferredToFallback"]
    last = list(p.sink.get_logs(address=p.module.address))[-1]
    assert last.args == {"fallback": fallback.address}

    with pytest.raises(OwnershipAlreadyTransferred):
        p.module.remove_owners([], [])
    # checked before the arity of the arguments
    with pytest.raises(OwnershipAlreadyTransferred):
        p.module.remove_owners([SENTINEL_OWNERS], [])


def test_collapse_to_fallback_ignores_the_floor(make_protected, fallback):
    p = make_protected(5, min_owners=3)
    _expire(p)
    _remove(p, p.owners)
    assert p.owners == [fallback.address]


def test_removal_is_permissionless_and_does_not_touch_the_guard(make_protected):
    p = make_protected(4)
    _expire(p)
    target = p.owners[0]
    _remove(p, [target])
    assert p.safe.get_guard() == p.guard.address
    assert p.guard.last_live(p.owners[0]) == START


# ===================================================
# Rejections
# ===================================================


def test_floor_breached(make_protected):
    p = make_protected(5, min_owners=2)
    _expire(p)
    before = _snapshot(p)
    with pytest.raises(FloorBreached) as ei:
        _remove(p, p.owners[:4])
    assert ei.value.data == {"owners": 1, "min_owners": 2}
    assert _snapshot(p) == before


def test_floor_allows_exactly_min_owners(make_protected):
    p = make_protected(5, min_owners=2)
    _expire(p)
    _remove(p, p.owners[:3])
    assert len(p.owners) == 2
    assert p.safe.get_threshold() == 2


def test_stale_hints_fail_the_removal(make_protected):
    p = make_protected(5)
    _expire(p)
    owners = p.owners
    targets = [owners[1], owners[2]]
    # hints computed one by one against the original list
    hints = [owners[0], owners[1]]
    before = _snapshot(p)
    with pytest.raises(RemovalFailed) as ei:
        p.module.remove_owners(hints, targets)
    assert ei.value.data["reason"] == "INVALID_PREV_OWNER"
    assert _snapshot(p) == before


def test_wrong_hint_for_the_fallback_swap(make_protected):
    p = make_protected(2)
    _expire(p)
    first, second = p.owners
    before = _snapshot(p)
    with pytest.raises(FallbackSwapFailed):
        p.module.remove_owners([SENTINEL_OWNERS, first], [first, second])
    assert _snapshot(p) == before


def test_non_owner_target_fails_the_removal(make_protected):
    p = make_protected(5)
    _expire(p)
    stranger = OwnerKey.from_seed("stranger").address
    with pytest.raises(RemovalFailed):
        p.module.remove_owners([SENTINEL_OWNERS], [stranger])


def test_guard_removed_from_the_safe(make_protected):
    p = make_protected(5)
    assert execute(p.safe, p.keys, "set_guard", ZERO_ADDRESS)
    _expire(p)
    with pytest.raises(HookTampered):
        _remove(p, [p.owners[0]])


def test_hook_is_checked_before_threshold(make_protected):
    p = make_protected(5)
    assert execute(p.safe, p.keys, "change_threshold", 2)
    assert execute(p.safe, p.keys[:2], "set_guard", ZERO_ADDRESS)
    _expire(p)
    with pytest.raises(HookTampered):
        _remove(p, [p.owners[0]])


def test_threshold_drift_blocks_removal(make_protected):
    p = make_protected(5)
    assert execute(p.safe, p.keys, "change_threshold", 5)
    _expire(p)
    before = _snapshot(p)
    with pytest.raises(ThresholdDrifted) as ei:
        _remove(p, [p.owners[0]])
    assert ei.value.data == {"threshold": 5, "required": 4, "owners": 5}
    assert _snapshot(p) == before


def test_arity_mismatch(make_protected):
    p = make_protected(5)
    _expire(p)
    with pytest.raises(ArityMismatch):
        p.module.remove_owners([SENTINEL_OWNERS], p.owners[:2])
    with pytest.raises(ArityMismatch):
        p.module.remove_owners([], [p.owners[0]])


def test_every_rejection_is_a_module_error(make_protected):
    p = make_protected(5)
    with pytest.raises(ModuleError) as ei:
        _remove(p, [p.owners[0]])
    assert ei.value.code == "STILL_ACTIVE"
    assert ei.value.to_dict()["code"] == "STILL_ACTIVE"


def test_module_must_stay_enabled(make_protected):
    p = make_protected(5)
    assert execute(p.safe, p.keys, "disable_module", p.module.address)
    _expire(p)
    with pytest.raises(RemovalFailed) as ei:
        _remove(p, [p.owners[0]])
    assert ei.value.data["reason"] == "MODULE_NOT_ENABLED"


# ===================================================
# Planning helpers
# ===================================================


def test_can_remove(make_protected):
    p = make_protected(3)
    assert not p.module.can_remove(p.owners[0])
    _expire(p)
    assert p.module.can_remove(p.owners[0])
    assert p.module.can_remove("0x" + p.owners[1].hex())
    assert not p.module.can_remove(OwnerKey.from_seed("stranger").address)


def test_plan_removal_tracks_the_shrinking_list(make_protected, fallback):
    p = make_protected(4)
    a, b, c, d = p.owners
    assert p.module.plan_removal([b, c]) == [a, a]
    assert p.module.plan_removal([d, a, b, c]) == [c, SENTINEL_OWNERS, SENTINEL_OWNERS, SENTINEL_OWNERS]
    with pytest.raises(ValueError):
        p.module.plan_removal([b, b])


def test_hints_agree_with_the_single_owner_helper():
    a, b, c = (k.address for k in make_keys(3))
    fb = OwnerKey.from_seed("fallback").address
    assert previous_owner_hints([a, b, c], [c]) == [previous_owner([a, b, c], c)]
    assert previous_owner_hints([a, b, c], [b, c]) == [a, previous_owner([a, c], c)]
    assert previous_owner_hints([a], [a, fb], fallback_owner=fb) == [SENTINEL_OWNERS, SENTINEL_OWNERS]
    with pytest.raises(ValueError, match="at this point of the batch"):
        previous_owner_hints([a], [a, a])


# ===================================================
# Properties
# ===================================================


def _fresh(n: int, min_owners: int = 1):
    clock = ManualClock(START)
    host = Host(clock=clock, sink=InMemoryEventSink())
    keys = make_keys(n)
    fallback = OwnerKey.from_seed("fallback").address
    cfg = ModuleConfig(liveness_interval=INTERVAL, min_owners=min_owners, fallback_owner=fallback)
    safe, guard, module = bootstrap(host, keys, config=cfg)
    clock.advance(INTERVAL + 1)
    return safe, module, fallback


@settings(max_examples=25, deadline=None, suppress_health_check=[HealthCheck.too_slow])
@given(st.integers(min_value=2, max_value=9).flatmap(lambda n: st.permutations(list(range(n)))))
def test_removing_all_owners_in_any_order_ends_with_the_fallback(order):
    safe, module, fallback = _fresh(len(order))
    owners = safe.get_owners()
    targets = [owners[i] for i in order]
    module.remove_owners(module.plan_removal(targets), targets)
    assert safe.get_owners() == [fallback]
    assert safe.get_threshold() == 1
    assert module.ownership_transferred_to_fallback


@settings(max_examples=25, deadline=None, suppress_health_check=[HealthCheck.too_slow])
@given(st.data())
def test_partial_removal_keeps_the_threshold_in_step(data):
    n = data.draw(st.integers(min_value=2, max_value=9), label="owners")
    k = data.draw(st.integers(min_value=1, max_value=n - 1), label="removed")
    safe, module, _ = _fresh(n)
    owners = safe.get_owners()
    targets = data.draw(st.permutations(owners), label="order")[:k]
    module.remove_owners(module.plan_removal(targets), targets)
    remaining = safe.get_owners()
    assert remaining == [o for o in owners if o not in targets]
    assert safe.get_threshold() == required_threshold(n - k)
    assert not module.ownership_transferred_to_fallback
