"""
liveness.wallet.safe — an in-process model of a Safe multisig.

The liveness guard and module are written against this surface (see
`liveness.wallet.interface.WalletLike`). The model keeps the behaviors the
protocol depends on:

- an ordered, sentinel-terminated owner list mutated through predecessor hints
- a threshold with `1 <= threshold <= owner_count`
- a nonce-bound transaction hash signed by owners (Ed25519)
- a guard called before and after every `exec_transaction`
- enabled modules that may invoke the owner-management primitives directly

Storage layout (under the Safe's address):

    b"threshold"             -> u64
    b"nonce"                 -> u64
    b"guard"                 -> address (absent = no guard)
    b"modules"               -> concatenated module addresses
    b"verified." + tx_hash   -> concatenated signer addresses, only while
                                that transaction executes
    b"owner." ...            -> see liveness.wallet.owners

Owner-management primitives are only callable by the Safe itself, which
happens either through a self-call in `exec_transaction` (CBOR calldata
`[method, [args...]]`) or through `exec_from_module`.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import cbor2

from ..errors import WalletError
from ..types import ADDRESS_LEN, ZERO_ADDRESS, Address, derive_address, from_u64, is_reserved, to_hex, u64
from .owners import OwnerList
from .signatures import Signature

log = logging.getLogger(__name__)

K_THRESHOLD = b"threshold"
K_NONCE = b"nonce"
K_GUARD = b"guard"
K_MODULES = b"modules"
P_VERIFIED = b"verified."

TX_DOMAIN = "liveness.safe-tx.v1"

OP_CALL = 0

# method name -> number of arguments after the implicit caller
ADMIN_METHODS: Dict[str, int] = {
    "add_owner_with_threshold": 2,
    "remove_owner": 3,
    "swap_owner": 3,
    "change_threshold": 1,
    "set_guard": 1,
    "enable_module": 1,
    "disable_module": 1,
}


# =============================================================================
# Calldata & transactions
# =============================================================================


def encode_call(method: str, *args: Any) -> bytes:
    """Canonical CBOR calldata for a Safe self-call."""
    if method not in ADMIN_METHODS:
        raise ValueError(f"unknown safe method: {method}")
    return cbor2.dumps([method, list(args)], canonical=True)


def decode_call(data: bytes) -> Tuple[str, List[Any]]:
    try:
        obj = cbor2.loads(data)
    except (cbor2.CBORDecodeError, ValueError) as e:
        raise WalletError("malformed calldata", reason="BAD_CALLDATA") from e
    if (
        not isinstance(obj, list)
        or len(obj) != 2
        or not isinstance(obj[0], str)
        or not isinstance(obj[1], list)
    ):
        raise WalletError("calldata must be [method, [args...]]", reason="BAD_CALLDATA")
    return obj[0], obj[1]


@dataclass(frozen=True)
class SafeTransaction:
    to: Address
    value: int = 0
    data: bytes = b""
    operation: int = OP_CALL

    @classmethod
    def self_call(cls, safe_address: Address, method: str, *args: Any) -> "SafeTransaction":
        return cls(to=safe_address, data=encode_call(method, *args))

    def to_json(self) -> Dict[str, Any]:
        return {
            "to": to_hex(self.to),
            "value": self.value,
            "data": to_hex(self.data),
            "operation": self.operation,
        }


def _require_address(x: Any, what: str) -> Address:
    if not isinstance(x, (bytes, bytearray)) or len(x) != ADDRESS_LEN:
        raise WalletError(f"{what} must be a {ADDRESS_LEN}-byte address", reason="INVALID_ADDRESS")
    return bytes(x)


def _require_int(x: Any, what: str) -> int:
    if isinstance(x, bool) or not isinstance(x, int):
        raise WalletError(f"{what} must be an integer", reason="BAD_CALLDATA")
    return x


# =============================================================================
# Safe
# =============================================================================


class Safe:
    """
    Multisig wallet bound to a Host.

    >>> safe = Safe(host, [k.address for k in keys], threshold=3)
    >>> tx = SafeTransaction.self_call(safe.address, "set_guard", guard.address)
    >>> safe.exec_transaction(sender, tx, sign_all(keys, safe.get_transaction_hash(tx, safe.nonce)))
    """

    def __init__(
        self,
        host,
        owners: Sequence[Address],
        threshold: int,
        *,
        label: str = "safe",
        address: Optional[Address] = None,
    ) -> None:
        self.host = host
        self.address: Address = address if address is not None else derive_address(label)
        self._owners = OwnerList(host, self.address)
        with host.atomic():
            self._owners.setup([_require_address(o, "owner") for o in owners])
            self._set_threshold(_require_int(threshold, "threshold"))
            host.emit(self.address, b"SafeSetup", {"owners": tuple(owners), "threshold": threshold})
            host.deploy(self)
        log.info("safe deployed", extra={"safe": to_hex(self.address), "owners": len(owners), "threshold": threshold})

    # ------------------------------------------------------------------ #
    # Views
    # ------------------------------------------------------------------ #

    @property
    def nonce(self) -> int:
        v = self.host.storage_get(self.address, K_NONCE)
        return from_u64(v) if v else 0

    def get_owners(self) -> List[Address]:
        return self._owners.list()

    def get_threshold(self) -> int:
        v = self.host.storage_get(self.address, K_THRESHOLD)
        return from_u64(v) if v else 0

    def is_owner(self, owner: Address) -> bool:
        return self._owners.contains(owner)

    def get_guard(self) -> Address:
        return self.host.storage_get(self.address, K_GUARD) or ZERO_ADDRESS

    def get_modules(self) -> List[Address]:
        raw = self.host.storage_get(self.address, K_MODULES) or b""
        return [raw[i : i + ADDRESS_LEN] for i in range(0, len(raw), ADDRESS_LEN)]

    def is_module_enabled(self, module: Address) -> bool:
        return module in self.get_modules()

    def verified_signers(self, tx_hash: bytes) -> Optional[Tuple[Address, ...]]:
        """Signers accepted by `check_signatures` for the transaction being executed."""
        raw = self.host.storage_get(self.address, P_VERIFIED + tx_hash)
        if raw is None:
            return None
        return tuple(raw[i : i + ADDRESS_LEN] for i in range(0, len(raw), ADDRESS_LEN))

    # ------------------------------------------------------------------ #
    # Signatures
    # ------------------------------------------------------------------ #

    def get_transaction_hash(self, tx: SafeTransaction, nonce: int) -> bytes:
        payload = [TX_DOMAIN, self.address, tx.to, tx.value, tx.data, tx.operation, nonce]
        return hashlib.sha3_256(cbor2.dumps(payload, canonical=True)).digest()

    def recover_signers(self, tx_hash: bytes, signatures: Sequence[Signature]) -> Tuple[Address, ...]:
        """
        Validate every signature over `tx_hash` and return the signers in
        order. Signers must be current owners in strictly ascending address
        order, which also rules out duplicates.
        """
        last = ZERO_ADDRESS
        out: List[Address] = []
        for sig in signatures:
            if not sig.verify(tx_hash):
                raise WalletError("invalid signature", reason="INVALID_SIGNATURE", data={"signer": to_hex(sig.signer)})
            if sig.signer <= last:
                raise WalletError(
                    "signatures must be sorted by signer and unique",
                    reason="UNSORTED_SIGNERS",
                    data={"signer": to_hex(sig.signer)},
                )
            if not self.is_owner(sig.signer):
                raise WalletError("signer is not an owner", reason="NOT_OWNER", data={"signer": to_hex(sig.signer)})
            out.append(sig.signer)
            last = sig.signer
        return tuple(out)

    def check_signatures(self, tx_hash: bytes, signatures: Sequence[Signature]) -> Tuple[Address, ...]:
        threshold = self.get_threshold()
        if len(signatures) < threshold:
            raise WalletError(
                "not enough signatures",
                reason="SIGNATURES_BELOW_THRESHOLD",
                data={"have": len(signatures), "threshold": threshold},
            )
        return self.recover_signers(tx_hash, signatures)

    # ------------------------------------------------------------------ #
    # Execution paths
    # ------------------------------------------------------------------ #

    def exec_transaction(self, sender: Address, tx: SafeTransaction, signatures: Sequence[Signature]) -> bool:
        """
        Execute an owner-approved transaction. Signature or guard failures
        abort the whole call; a failing inner call is reported as `False`
        with the nonce still consumed.
        """
        with self.host.atomic():
            nonce = self.nonce
            tx_hash = self.get_transaction_hash(tx, nonce)
            self.host.storage_set(self.address, K_NONCE, u64(nonce + 1))

            signers = self.check_signatures(tx_hash, signatures)
            self.host.storage_set(self.address, P_VERIFIED + tx_hash, b"".join(signers))

            guard = self._resolve_guard()
            if guard is not None:
                guard.check_transaction(self.address, tx, signatures, sender)

            success = self._execute(tx)
            self.host.emit(
                self.address,
                b"ExecutionSuccess" if success else b"ExecutionFailure",
                {"tx_hash": tx_hash},
            )

            if guard is not None:
                guard.check_after_execution(self.address, tx_hash, success)

            self.host.storage_delete(self.address, P_VERIFIED + tx_hash)

        log.debug(
            "executed transaction",
            extra={"safe": to_hex(self.address), "tx_hash": to_hex(tx_hash), "success": success},
        )
        return success

    def exec_from_module(self, caller: Address, method: str, *args: Any) -> Tuple[bool, Optional[WalletError]]:
        """
        Run an owner-management primitive on behalf of an enabled module.

        Returns (success, error). A rejected primitive leaves no state
        behind; only the failure event is kept. A caller that is not an
        enabled module is rejected outright.
        """
        with self.host.atomic():
            if not self.is_module_enabled(caller):
                raise WalletError("caller is not an enabled module", reason="MODULE_NOT_ENABLED", data={"module": to_hex(caller)})
            try:
                with self.host.atomic():
                    self._dispatch(method, list(args))
            except WalletError as e:
                log.info("module call rejected", extra={"module_address": to_hex(caller), "method": method, "reason": e.reason})
                self.host.emit(self.address, b"ExecutionFromModuleFailure", {"module": caller})
                return False, e
            self.host.emit(self.address, b"ExecutionFromModuleSuccess", {"module": caller})
        return True, None

    def _resolve_guard(self):
        addr = self.get_guard()
        if addr == ZERO_ADDRESS:
            return None
        return self.host.contract_at(addr)

    def _execute(self, tx: SafeTransaction) -> bool:
        if tx.operation != OP_CALL:
            log.info("unsupported operation", extra={"operation": tx.operation})
            return False
        # Calls to other addresses carry no modeled side effects.
        if tx.to != self.address or not tx.data:
            return True
        try:
            method, args = decode_call(tx.data)
            with self.host.atomic():
                self._dispatch(method, args)
        except WalletError as e:
            log.info("self-call failed", extra={"safe": to_hex(self.address), "reason": e.reason})
            return False
        return True

    def _dispatch(self, method: str, args: List[Any]) -> None:
        arity = ADMIN_METHODS.get(method)
        if arity is None:
            raise WalletError(f"unknown method {method!r}", reason="UNKNOWN_METHOD")
        if len(args) != arity:
            raise WalletError(
                f"{method} takes {arity} arguments, got {len(args)}",
                reason="BAD_CALLDATA",
            )
        getattr(self, method)(self.address, *args)

    # ------------------------------------------------------------------ #
    # Owner management (self-call only)
    # ------------------------------------------------------------------ #

    def _authorized(self, caller: Address) -> None:
        if caller != self.address:
            raise WalletError("method can only be called from this contract", reason="NOT_AUTHORIZED")

    def add_owner_with_threshold(self, caller: Address, owner: Address, threshold: int) -> None:
        self._authorized(caller)
        owner = _require_address(owner, "owner")
        with self.host.atomic():
            self._owners.insert_head(owner)
            self.host.emit(self.address, b"AddedOwner", {"owner": owner})
            if _require_int(threshold, "threshold") != self.get_threshold():
                self._set_threshold(threshold)

    def remove_owner(self, caller: Address, prev_owner: Address, owner: Address, threshold: int) -> None:
        self._authorized(caller)
        prev_owner = _require_address(prev_owner, "prev_owner")
        owner = _require_address(owner, "owner")
        threshold = _require_int(threshold, "threshold")
        with self.host.atomic():
            if self._owners.count() - 1 < threshold:
                raise WalletError(
                    "threshold cannot exceed owner count",
                    reason="THRESHOLD_EXCEEDS_OWNERS",
                    data={"threshold": threshold, "owners": self._owners.count() - 1},
                )
            self._owners.remove_after(prev_owner, owner)
            self.host.emit(self.address, b"RemovedOwner", {"owner": owner})
            if threshold != self.get_threshold():
                self._set_threshold(threshold)

    def swap_owner(self, caller: Address, prev_owner: Address, old_owner: Address, new_owner: Address) -> None:
        self._authorized(caller)
        prev_owner = _require_address(prev_owner, "prev_owner")
        old_owner = _require_address(old_owner, "old_owner")
        new_owner = _require_address(new_owner, "new_owner")
        with self.host.atomic():
            self._owners.swap_after(prev_owner, old_owner, new_owner)
            self.host.emit(self.address, b"RemovedOwner", {"owner": old_owner})
            self.host.emit(self.address, b"AddedOwner", {"owner": new_owner})

    def change_threshold(self, caller: Address, threshold: int) -> None:
        self._authorized(caller)
        with self.host.atomic():
            self._set_threshold(_require_int(threshold, "threshold"))

    def _set_threshold(self, threshold: int) -> None:
        count = self._owners.count()
        if threshold > count:
            raise WalletError(
                "threshold cannot exceed owner count",
                reason="THRESHOLD_EXCEEDS_OWNERS",
                data={"threshold": threshold, "owners": count},
            )
        if threshold < 1:
            raise WalletError("threshold must be at least 1", reason="THRESHOLD_ZERO")
        self.host.storage_set(self.address, K_THRESHOLD, u64(threshold))
        self.host.emit(self.address, b"ChangedThreshold", {"threshold": threshold})

    # ------------------------------------------------------------------ #
    # Guard & modules (self-call only)
    # ------------------------------------------------------------------ #

    def set_guard(self, caller: Address, guard: Address) -> None:
        self._authorized(caller)
        guard = _require_address(guard, "guard")
        with self.host.atomic():
            if guard != ZERO_ADDRESS:
                impl = self.host.contract_at(guard)
                if impl is None or not (
                    callable(getattr(impl, "check_transaction", None))
                    and callable(getattr(impl, "check_after_execution", None))
                ):
                    raise WalletError(
                        "guard does not implement the guard interface",
                        reason="GUARD_NOT_SUPPORTED",
                        data={"guard": to_hex(guard)},
                    )
                self.host.storage_set(self.address, K_GUARD, guard)
            else:
                self.host.storage_delete(self.address, K_GUARD)
            self.host.emit(self.address, b"ChangedGuard", {"guard": guard})

    def enable_module(self, caller: Address, module: Address) -> None:
        self._authorized(caller)
        module = _require_address(module, "module")
        with self.host.atomic():
            if is_reserved(module):
                raise WalletError("invalid module address", reason="INVALID_MODULE", data={"module": to_hex(module)})
            modules = self.get_modules()
            if module in modules:
                raise WalletError("module already enabled", reason="MODULE_ALREADY_ENABLED", data={"module": to_hex(module)})
            modules.append(module)
            self.host.storage_set(self.address, K_MODULES, b"".join(modules))
            self.host.emit(self.address, b"EnabledModule", {"module": module})

    def disable_module(self, caller: Address, module: Address) -> None:
        self._authorized(caller)
        module = _require_address(module, "module")
        with self.host.atomic():
            modules = self.get_modules()
            if module not in modules:
                raise WalletError("module not enabled", reason="MODULE_NOT_ENABLED", data={"module": to_hex(module)})
            modules.remove(module)
            if modules:
                self.host.storage_set(self.address, K_MODULES, b"".join(modules))
            else:
                self.host.storage_delete(self.address, K_MODULES)
            self.host.emit(self.address, b"DisabledModule", {"module": module})


__all__ = [
    "ADMIN_METHODS",
    "OP_CALL",
    "encode_call",
    "decode_call",
    "SafeTransaction",
    "Safe",
]
