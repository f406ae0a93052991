from __future__ import annotations

import cbor2
import pytest

from liveness.errors import ConfigError, WalletError
from liveness.scenario import execute
from liveness.types import SENTINEL_OWNERS, ZERO_ADDRESS, derive_address
from liveness.wallet.interface import WalletLike
from liveness.wallet.safe import P_VERIFIED, Safe, SafeTransaction, decode_call, encode_call
from liveness.wallet.signatures import OwnerKey, Signature, sign_all

from .conftest import make_keys


@pytest.fixture
def keys():
    return make_keys(4)


@pytest.fixture
def safe(host, keys):
    return Safe(host, [k.address for k in keys], 3)


def _signed(safe, keys, tx):
    return sign_all(keys, safe.get_transaction_hash(tx, safe.nonce))


# ===================================================
# Setup & views
# ===================================================


def test_setup(safe, keys, sink):
    assert safe.get_owners() == [k.address for k in keys]
    assert safe.get_threshold() == 3
    assert safe.nonce == 0
    assert safe.get_guard() == ZERO_ADDRESS
    assert safe.get_modules() == []
    assert sink.names() == [b"ChangedThreshold", b"SafeSetup"]


@pytest.mark.parametrize("threshold,reason", [(0, "THRESHOLD_ZERO"), (5, "THRESHOLD_EXCEEDS_OWNERS")])
def test_setup_rejects_bad_threshold(host, keys, threshold, reason):
    with pytest.raises(WalletError) as ei:
        Safe(host, [k.address for k in keys], threshold)
    assert ei.value.reason == reason
    assert host.contract_at(derive_address("safe")) is None


def test_second_safe_at_same_address_is_refused(host, safe, keys):
    with pytest.raises((ConfigError, WalletError)):
        Safe(host, [keys[0].address], 1)


def test_calldata_roundtrip_and_validation():
    data = encode_call("remove_owner", SENTINEL_OWNERS, b"\x02" * 20, 2)
    assert decode_call(data) == ("remove_owner", [SENTINEL_OWNERS, b"\x02" * 20, 2])
    with pytest.raises(ValueError):
        encode_call("selfdestruct")
    with pytest.raises(WalletError):
        decode_call(b"\xff\x00")


# ===================================================
# exec_transaction
# ===================================================


def test_self_call_adds_owner_and_bumps_nonce(safe, keys, sink):
    newcomer = OwnerKey.from_seed("newcomer")
    assert execute(safe, keys[:3], "add_owner_with_threshold", newcomer.address, 4)
    assert safe.get_owners()[0] == newcomer.address
    assert safe.get_threshold() == 4
    assert safe.nonce == 1
    assert b"AddedOwner" in sink.names()
    assert sink.names()[-1] == b"ExecutionSuccess"


def test_verified_signers_are_dropped_after_execution(host, safe, keys):
    hashes = []
    for i in range(3):
        tx = SafeTransaction(to=derive_address(f"somewhere-{i}"))
        tx_hash = safe.get_transaction_hash(tx, safe.nonce)
        assert safe.exec_transaction(keys[0].address, tx, sign_all(keys, tx_hash))
        hashes.append(tx_hash)
    assert all(safe.verified_signers(h) is None for h in hashes)
    assert all(host.storage_get(safe.address, P_VERIFIED + h) is None for h in hashes)


def test_not_enough_signatures(safe, keys):
    tx = SafeTransaction(to=derive_address("somewhere"))
    with pytest.raises(WalletError) as ei:
        safe.exec_transaction(keys[0].address, tx, _signed(safe, keys[:2], tx))
    assert ei.value.reason == "SIGNATURES_BELOW_THRESHOLD"
    assert safe.nonce == 0


def test_signatures_must_be_sorted_and_unique(safe, keys):
    tx = SafeTransaction(to=derive_address("somewhere"))
    sigs = _signed(safe, keys[:3], tx)
    with pytest.raises(WalletError) as ei:
        safe.exec_transaction(keys[0].address, tx, list(reversed(sigs)))
    assert ei.value.reason == "UNSORTED_SIGNERS"
    with pytest.raises(WalletError) as ei:
        safe.exec_transaction(keys[0].address, tx, [sigs[0], sigs[0], sigs[1]])
    assert ei.value.reason == "UNSORTED_SIGNERS"


def test_signer_must_be_owner(safe, keys):
    tx = SafeTransaction(to=derive_address("somewhere"))
    outsider = OwnerKey.from_seed("outsider")
    with pytest.raises(WalletError) as ei:
        safe.exec_transaction(keys[0].address, tx, _signed(safe, keys[:2] + [outsider], tx))
    assert ei.value.reason == "NOT_OWNER"


def test_tampered_signature_is_rejected(safe, keys):
    tx = SafeTransaction(to=derive_address("somewhere"))
    sigs = _signed(safe, keys[:3], tx)
    bad = Signature(sigs[0].signer, sigs[0].public_key, bytes(64))
    with pytest.raises(WalletError) as ei:
        safe.exec_transaction(keys[0].address, tx, [bad] + sigs[1:])
    assert ei.value.reason == "INVALID_SIGNATURE"


def test_signature_for_other_nonce_is_rejected(safe, keys):
    tx = SafeTransaction(to=derive_address("somewhere"))
    stale = sign_all(keys, safe.get_transaction_hash(tx, safe.nonce + 1))
    with pytest.raises(WalletError):
        safe.exec_transaction(keys[0].address, tx, stale)


def test_failing_inner_call_consumes_nonce(safe, keys, sink):
    # removing with a wrong predecessor fails inside the call
    assert not execute(safe, keys, "remove_owner", keys[2].address, keys[0].address, 3)
    assert safe.get_owners() == [k.address for k in keys]
    assert safe.nonce == 1
    assert sink.names()[-1] == b"ExecutionFailure"
    assert b"RemovedOwner" not in sink.names()


def test_unknown_method_and_bad_arity_fail_the_inner_call(safe, keys):
    for data in (cbor2.dumps(["mint", []]), cbor2.dumps(["change_threshold", [1, 2]]), b"\x01\x02"):
        tx = SafeTransaction(to=safe.address, data=data)
        assert safe.exec_transaction(keys[0].address, tx, _signed(safe, keys, tx)) is False
    assert safe.nonce == 3


def test_remove_owner_respects_threshold(safe, keys):
    assert not execute(safe, keys, "remove_owner", SENTINEL_OWNERS, keys[0].address, 4)
    assert execute(safe, keys, "remove_owner", SENTINEL_OWNERS, keys[0].address, 2)
    assert safe.get_owners() == [k.address for k in keys[1:]]
    assert safe.get_threshold() == 2


def test_swap_owner(safe, keys):
    newcomer = OwnerKey.from_seed("newcomer")
    assert execute(safe, keys, "swap_owner", keys[0].address, keys[1].address, newcomer.address)
    assert safe.get_owners() == [keys[0].address, newcomer.address, keys[2].address, keys[3].address]
    assert safe.get_threshold() == 3


# ===================================================
# Authorization, guard & modules
# ===================================================


def test_primitives_only_callable_by_the_safe(safe, keys, host):
    with host.atomic():
        for call in (
            lambda: safe.change_threshold(keys[0].address, 1),
            lambda: safe.remove_owner(keys[0].address, SENTINEL_OWNERS, keys[0].address, 1),
            lambda: safe.set_guard(keys[0].address, ZERO_ADDRESS),
            lambda: safe.enable_module(keys[0].address, keys[0].address),
        ):
            with pytest.raises(WalletError) as ei:
                call()
            assert ei.value.reason == "NOT_AUTHORIZED"


def test_set_guard_requires_guard_interface(safe, keys):
    assert not execute(safe, keys, "set_guard", derive_address("not-deployed"))
    assert safe.get_guard() == ZERO_ADDRESS


def test_exec_from_module_requires_enabled_module(safe, keys):
    module = derive_address("some-module")
    with pytest.raises(WalletError) as ei:
        safe.exec_from_module(module, "change_threshold", 1)
    assert ei.value.reason == "MODULE_NOT_ENABLED"

    assert execute(safe, keys, "enable_module", module)
    assert safe.is_module_enabled(module)
    ok, err = safe.exec_from_module(module, "change_threshold", 2)
    assert ok and err is None
    assert safe.get_threshold() == 2

    assert not execute(safe, keys[:2], "enable_module", module)
    assert execute(safe, keys[:2], "disable_module", module)
    assert safe.get_modules() == []


def test_rejected_module_call_leaves_no_trace(safe, keys, sink):
    module = derive_address("some-module")
    execute(safe, keys, "enable_module", module)
    before = list(sink.names())
    ok, err = safe.exec_from_module(module, "remove_owner", keys[3].address, keys[0].address, 3)
    assert not ok
    assert err.reason == "INVALID_PREV_OWNER"
    assert safe.get_owners() == [k.address for k in keys]
    assert sink.names()[len(before):] == [b"ExecutionFromModuleFailure"]


def test_safe_satisfies_the_wallet_protocol(safe):
    assert isinstance(safe, WalletLike)
