"""
liveness.guard — per-owner liveness timestamps for a Safe.

The guard is installed as the Safe's transaction guard. On every
`exec_transaction` the Safe calls:

    check_transaction(safe, tx, signatures, sender)   before the inner call
    check_after_execution(safe, tx_hash, success)     after the inner call

The pre-hook re-derives the signers through the Safe's own signature check
and stamps each of them with the current time. The post-hook gives owners
added by the transaction a fresh record and drops the records of owners it
removed. Owners can also refresh themselves without transacting through
`show_liveness`.

Storage layout (under the guard's address):

    b"live." + owner    -> u64 timestamp (absent = never recorded)
    b"owners.before"    -> owners snapshot, only during an execution

Events:
    OwnerRecorded        {owner}
    ParticipantsRecorded {tx_hash, signers}
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence, Tuple

from .errors import SignerMismatch, UnauthorizedRecorder
from .types import ADDRESS_LEN, Address, derive_address, from_u64, to_hex, u64
from .version import __version__ as VERSION
from .wallet.interface import WalletLike

log = logging.getLogger(__name__)

P_LIVE = b"live."
K_OWNERS_BEFORE = b"owners.before"


class LivenessGuard:
    """
    Records when each Safe owner last showed liveness.

    Only the Safe may record transaction participants; anybody may refresh
    their own timestamp, though only owners' records are ever consulted.
    """

    def __init__(self, host, safe: WalletLike, *, label: str = "liveness-guard", address: Optional[Address] = None) -> None:
        self.host = host
        self._safe = safe
        self.address: Address = address if address is not None else derive_address(label)
        with host.atomic():
            now = host.now()
            for owner in safe.get_owners():
                self._stamp(owner, now)
                host.emit(self.address, b"OwnerRecorded", {"owner": owner})
            host.deploy(self)
        log.info(
            "liveness guard deployed",
            extra={"guard": to_hex(self.address), "safe": to_hex(safe.address)},
        )

    # ------------------------------------------------------------------ #
    # Views
    # ------------------------------------------------------------------ #

    @property
    def safe(self) -> WalletLike:
        return self._safe

    @property
    def version(self) -> str:
        return VERSION

    def last_live(self, owner: Address) -> int:
        v = self.host.storage_get(self.address, P_LIVE + owner)
        return from_u64(v) if v else 0

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    def show_liveness(self, caller: Address) -> None:
        with self.host.atomic():
            self._stamp(caller, self.host.now())
            self.host.emit(self.address, b"OwnerRecorded", {"owner": caller})
        log.debug("liveness shown", extra={"owner": to_hex(caller)})

    def record_participants(self, caller: Address, signers: Sequence[Address], tx_hash: bytes) -> None:
        """
        Stamp every signer of `tx_hash` with the current time.

        `signers` must be exactly the set the Safe accepted when it checked
        the signatures of that transaction, which it only keeps while the
        transaction executes.
        """
        with self.host.atomic():
            self._require_safe(caller)
            signers = tuple(signers)
            expected = self._safe.verified_signers(tx_hash)
            if expected is None or tuple(expected) != signers:
                raise SignerMismatch(
                    data={
                        "tx_hash": to_hex(tx_hash),
                        "signers": [to_hex(s) for s in signers],
                        "verified": [to_hex(s) for s in (expected or ())],
                    }
                )
            now = self.host.now()
            for s in signers:
                self._stamp(s, now)
            self.host.emit(self.address, b"ParticipantsRecorded", {"tx_hash": tx_hash, "signers": signers})
        log.debug("participants recorded", extra={"tx_hash": to_hex(tx_hash), "count": len(signers)})

    # ------------------------------------------------------------------ #
    # Safe guard hooks
    # ------------------------------------------------------------------ #

    def check_transaction(self, caller: Address, tx: Any, signatures: Sequence[Any], msg_sender: Address) -> None:
        with self.host.atomic():
            self._require_safe(caller)
            self.host.storage_set(self.address, K_OWNERS_BEFORE, b"".join(self._safe.get_owners()))
            # The Safe bumps its nonce before calling the guard.
            tx_hash = self._safe.get_transaction_hash(tx, self._safe.nonce - 1)
            signers = self._safe.recover_signers(tx_hash, signatures)
            self.record_participants(caller, signers, tx_hash)

    def check_after_execution(self, caller: Address, tx_hash: bytes, success: bool) -> None:
        with self.host.atomic():
            self._require_safe(caller)
            before = set(self._owners_before())
            self.host.storage_delete(self.address, K_OWNERS_BEFORE)
            after = self._safe.get_owners()
            now = self.host.now()
            for owner in after:
                if owner not in before:
                    self._stamp(owner, now)
                    self.host.emit(self.address, b"OwnerRecorded", {"owner": owner})
            current = set(after)
            for owner in before - current:
                self.host.storage_delete(self.address, P_LIVE + owner)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _require_safe(self, caller: Address) -> None:
        if caller != self._safe.address:
            raise UnauthorizedRecorder(data={"caller": to_hex(caller), "safe": to_hex(self._safe.address)})

    def _stamp(self, owner: Address, ts: int) -> None:
        self.host.storage_set(self.address, P_LIVE + owner, u64(ts))

    def _owners_before(self) -> Tuple[Address, ...]:
        raw = self.host.storage_get(self.address, K_OWNERS_BEFORE) or b""
        return tuple(raw[i : i + ADDRESS_LEN] for i in range(0, len(raw), ADDRESS_LEN))


__all__ = ["LivenessGuard", "P_LIVE", "VERSION"]
