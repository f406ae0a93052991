"""
liveness.wallet.owners — the Safe's ordered owner set.

Layout (under the Safe's address, never change once deployed):

    b"owner." + addr   -> next address in the list (20 bytes)
    b"owner.count"     -> u64

The list is singly linked and sentinel-terminated:

    SENTINEL -> o1 -> o2 -> ... -> on -> SENTINEL

An address is an owner iff it has a non-empty `next` slot and is not the
sentinel. Every mutation names the owner's predecessor ("previous owner
hint"); the mutation is rejected unless the hint points at the target in the
current list, so callers must recompute hints after every change.
"""

from __future__ import annotations

from typing import List, Sequence

from ..errors import WalletError
from ..types import SENTINEL_OWNERS, ZERO_ADDRESS, Address, from_u64, to_hex, u64

P_OWNER = b"owner."
K_OWNER_COUNT = b"owner.count"


class OwnerList:
    """Storage-backed owner set of one Safe. All writes need an open host call."""

    def __init__(self, host, safe_address: Address) -> None:
        self._host = host
        self._safe = safe_address

    # ---- storage helpers ---- #

    def _next(self, addr: Address) -> Address:
        v = self._host.storage_get(self._safe, P_OWNER + addr)
        return v if v else ZERO_ADDRESS

    def _set_next(self, addr: Address, nxt: Address) -> None:
        if nxt == ZERO_ADDRESS:
            self._host.storage_delete(self._safe, P_OWNER + addr)
        else:
            self._host.storage_set(self._safe, P_OWNER + addr, nxt)

    def _set_count(self, n: int) -> None:
        self._host.storage_set(self._safe, K_OWNER_COUNT, u64(n))

    def _require_valid_owner(self, owner: Address) -> None:
        if owner in (ZERO_ADDRESS, SENTINEL_OWNERS, self._safe):
            raise WalletError(
                "address cannot be an owner",
                reason="INVALID_OWNER",
                data={"owner": to_hex(owner)},
            )

    # ---- reads ---- #

    def count(self) -> int:
        v = self._host.storage_get(self._safe, K_OWNER_COUNT)
        return from_u64(v) if v else 0

    def contains(self, owner: Address) -> bool:
        return owner != SENTINEL_OWNERS and self._next(owner) != ZERO_ADDRESS

    def list(self) -> List[Address]:
        out: List[Address] = []
        cur = self._next(SENTINEL_OWNERS)
        while cur not in (SENTINEL_OWNERS, ZERO_ADDRESS):
            out.append(cur)
            cur = self._next(cur)
        return out

    def is_initialized(self) -> bool:
        return self._next(SENTINEL_OWNERS) != ZERO_ADDRESS

    # ---- writes ---- #

    def setup(self, owners: Sequence[Address]) -> None:
        if self.is_initialized():
            raise WalletError("owners already set up", reason="SETUP_DONE")
        if not owners:
            raise WalletError("at least one owner is required", reason="NO_OWNERS")
        current = SENTINEL_OWNERS
        for owner in owners:
            self._require_valid_owner(owner)
            if owner == current or self.contains(owner):
                raise WalletError(
                    "duplicate owner", reason="DUPLICATE_OWNER", data={"owner": to_hex(owner)}
                )
            self._set_next(current, owner)
            current = owner
        self._set_next(current, SENTINEL_OWNERS)
        self._set_count(len(owners))

    def insert_head(self, owner: Address) -> None:
        self._require_valid_owner(owner)
        if self.contains(owner):
            raise WalletError("duplicate owner", reason="DUPLICATE_OWNER", data={"owner": to_hex(owner)})
        self._set_next(owner, self._next(SENTINEL_OWNERS))
        self._set_next(SENTINEL_OWNERS, owner)
        self._set_count(self.count() + 1)

    def remove_after(self, prev: Address, owner: Address) -> None:
        if owner in (ZERO_ADDRESS, SENTINEL_OWNERS):
            raise WalletError("invalid owner", reason="INVALID_OWNER", data={"owner": to_hex(owner)})
        if self._next(prev) != owner:
            raise WalletError(
                "previous owner does not point to owner",
                reason="INVALID_PREV_OWNER",
                data={"prev": to_hex(prev), "owner": to_hex(owner)},
            )
        self._set_next(prev, self._next(owner))
        self._set_next(owner, ZERO_ADDRESS)
        self._set_count(self.count() - 1)

    def swap_after(self, prev: Address, old: Address, new: Address) -> None:
        self._require_valid_owner(new)
        if self.contains(new):
            raise WalletError("duplicate owner", reason="DUPLICATE_OWNER", data={"owner": to_hex(new)})
        if old in (ZERO_ADDRESS, SENTINEL_OWNERS):
            raise WalletError("invalid owner", reason="INVALID_OWNER", data={"owner": to_hex(old)})
        if self._next(prev) != old:
            raise WalletError(
                "previous owner does not point to owner",
                reason="INVALID_PREV_OWNER",
                data={"prev": to_hex(prev), "owner": to_hex(old)},
            )
        self._set_next(new, self._next(old))
        self._set_next(prev, new)
        self._set_next(old, ZERO_ADDRESS)


def previous_owner(owners: Sequence[Address], owner: Address) -> Address:
    """Predecessor hint for `owner` in an ordered owner list."""
    for i, o in enumerate(owners):
        if o == owner:
            return SENTINEL_OWNERS if i == 0 else owners[i - 1]
    raise ValueError(f"{to_hex(owner)} is not in the owner list")


__all__ = ["OwnerList", "previous_owner", "P_OWNER", "K_OWNER_COUNT"]
