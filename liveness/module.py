"""
liveness.module — removal of inactive Safe owners.

The module is enabled on the Safe and reads the liveness guard. Anybody may
call `remove_owners`; the liveness check itself is the rate limit. One call
processes a whole batch atomically:

1. the module must not have handed the Safe to the fallback owner yet
2. hints and targets must have the same length
3. the Safe's guard must still be the liveness guard
4. the Safe's threshold must equal `required_threshold(owner_count)`
5. every target must have been inactive for longer than the interval

Each target is then removed in input order with the threshold recomputed for
the shrunken owner set. When a step would remove the last owner, that owner
is swapped for the fallback owner instead, the threshold becomes 1 and the
module is spent. After the loop the batch must leave at least `min_owners`
owners unless it collapsed the Safe to the fallback owner.

Any failure reverts every removal, swap and event of the call.

Storage layout (under the module's address):

    b"transferred"  -> b"\\x01" once ownership went to the fallback owner

Events:
    RemovedOwner                    {owner}
    OwnershipTransferredToFallback  {fallback}
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, List, Optional, Sequence, Tuple

from .config import ModuleConfig
from .errors import (ArityMismatch, ConfigError, FallbackSwapFailed, FloorBreached, HookTampered,
                     MinOwnersExceedsMembership, ModuleError, OwnershipAlreadyTransferred, RemovalFailed,
                     StillActive, ThresholdDrifted, WalletError)
from .logging import bind, trace_scope
from .types import Address, AddressLike, derive_address, to_address, to_addresses, to_hex
from .version import __version__ as VERSION
from .wallet.interface import WalletLike
from .wallet.owners import previous_owner

log = logging.getLogger(__name__)

K_TRANSFERRED = b"transferred"


# =============================================================================
# Pure helpers
# =============================================================================


def required_threshold(owner_count: int, percentage: int = 75) -> int:
    """
    Smallest threshold that is at least `percentage`% of `owner_count`.

    >>> [required_threshold(n) for n in (1, 3, 8, 17, 20)]
    [1, 3, 6, 13, 15]
    """
    if owner_count < 1:
        raise ValueError(f"owner count must be >= 1, got {owner_count}")
    if not 1 <= percentage <= 100:
        raise ValueError(f"percentage must be in [1,100], got {percentage}")
    return (owner_count * percentage + 99) // 100


def previous_owner_hints(
    owners: Sequence[Address],
    targets: Sequence[Address],
    *,
    fallback_owner: Optional[Address] = None,
) -> List[Address]:
    """
    Predecessor hints for removing `targets` one after another from `owners`.

    Each hint is computed against the owner list as it will look after the
    earlier removals in the batch. Removing the last owner swaps it for
    `fallback_owner` when one is given.
    """
    current = list(owners)
    hints: List[Address] = []
    for target in targets:
        try:
            hints.append(previous_owner(current, target))
        except ValueError:
            raise ValueError(f"{to_hex(target)} is not an owner at this point of the batch") from None
        if len(current) == 1:
            current = [fallback_owner] if fallback_owner is not None else []
        else:
            current.remove(target)
    return hints


# =============================================================================
# Module
# =============================================================================


class LivenessModule:
    """
    Safe module that removes owners who have not shown liveness.

    Parameters may come from a `ModuleConfig` (see `liveness.config`), from
    keyword arguments, or both; keyword arguments win.
    """

    def __init__(
        self,
        host,
        safe: WalletLike,
        guard,
        *,
        config: Optional[ModuleConfig] = None,
        liveness_interval: Optional[int] = None,
        min_owners: Optional[int] = None,
        fallback_owner: Optional[AddressLike] = None,
        threshold_percentage: Optional[int] = None,
        label: str = "liveness-module",
        address: Optional[Address] = None,
    ) -> None:
        cfg = config or ModuleConfig()
        overrides: dict = {}
        if liveness_interval is not None:
            overrides["liveness_interval"] = liveness_interval
        if min_owners is not None:
            overrides["min_owners"] = min_owners
        if fallback_owner is not None:
            overrides["fallback_owner"] = to_address(fallback_owner)
        if threshold_percentage is not None:
            overrides["threshold_percentage"] = threshold_percentage
        cfg = replace(cfg, **overrides).validate()

        if guard.safe.address != safe.address:
            raise ConfigError(
                "guard watches a different safe",
                data={"safe": to_hex(safe.address), "guard_safe": to_hex(guard.safe.address)},
            )

        self.host = host
        self._safe = safe
        self._guard = guard
        self._cfg = cfg
        self.address: Address = address if address is not None else derive_address(label)

        owner_count = len(safe.get_owners())
        if cfg.min_owners >= owner_count:
            raise MinOwnersExceedsMembership(data={"min_owners": cfg.min_owners, "owners": owner_count})
        self._require_threshold(owner_count)

        host.deploy(self)
        log.info(
            "liveness module deployed",
            extra={
                "safe": to_hex(safe.address),
                "interval": cfg.liveness_interval,
                "min_owners": cfg.min_owners,
                "fallback": to_hex(cfg.fallback_owner),
            },
        )

    # ------------------------------------------------------------------ #
    # Getters
    # ------------------------------------------------------------------ #

    @property
    def safe(self) -> WalletLike:
        return self._safe

    @property
    def liveness_guard(self):
        return self._guard

    @property
    def liveness_interval(self) -> int:
        return self._cfg.liveness_interval

    @property
    def min_owners(self) -> int:
        return self._cfg.min_owners

    @property
    def fallback_owner(self) -> Address:
        return self._cfg.fallback_owner

    @property
    def threshold_percentage(self) -> int:
        return self._cfg.threshold_percentage

    @property
    def ownership_transferred_to_fallback(self) -> bool:
        return self.host.storage_get(self.address, K_TRANSFERRED) == b"\x01"

    @property
    def version(self) -> str:
        return VERSION

    def get_required_threshold(self, owner_count: int) -> int:
        return required_threshold(owner_count, self._cfg.threshold_percentage)

    # ------------------------------------------------------------------ #
    # Planning
    # ------------------------------------------------------------------ #

    def can_remove(self, owner: AddressLike) -> bool:
        """True if `owner` is a Safe owner whose liveness has expired."""
        owner = to_address(owner)
        if not self._safe.is_owner(owner):
            return False
        return self.host.now() - self._guard.last_live(owner) > self._cfg.liveness_interval

    def plan_removal(self, owners_to_remove: Sequence[AddressLike]) -> List[Address]:
        """Predecessor hints for `remove_owners` against the current owner list."""
        return previous_owner_hints(
            self._safe.get_owners(),
            to_addresses(owners_to_remove),
            fallback_owner=self._cfg.fallback_owner,
        )

    # ------------------------------------------------------------------ #
    # Removal
    # ------------------------------------------------------------------ #

    def remove_owners(
        self,
        previous_owners: Sequence[AddressLike],
        owners_to_remove: Sequence[AddressLike],
    ) -> None:
        prevs = to_addresses(previous_owners)
        targets = to_addresses(owners_to_remove)

        with trace_scope():
            bind(safe=self._safe.address, component="liveness-module")
            try:
                with self.host.atomic():
                    self._remove_owners(prevs, targets)
            except ModuleError as e:
                log.info("owner removal rejected", extra={"code": e.code, "targets": len(targets)})
                raise
            log.info(
                "owners removed",
                extra={"removed": len(targets), "owners": len(self._safe.get_owners())},
            )

    def _remove_owners(self, prevs: Tuple[Address, ...], targets: Tuple[Address, ...]) -> None:
        if self.ownership_transferred_to_fallback:
            raise OwnershipAlreadyTransferred(data={"fallback": to_hex(self._cfg.fallback_owner)})
        if len(prevs) != len(targets):
            raise ArityMismatch(data={"previous_owners": len(prevs), "owners_to_remove": len(targets)})
        self._require_guard()
        self._require_threshold(len(self._safe.get_owners()))

        now = self.host.now()
        for owner in targets:
            last = self._guard.last_live(owner)
            if now - last <= self._cfg.liveness_interval:
                raise StillActive(
                    data={
                        "owner": to_hex(owner),
                        "last_live": last,
                        "removable_after": last + self._cfg.liveness_interval,
                    }
                )

        for prev, owner in zip(prevs, targets):
            remaining = len(self._safe.get_owners())
            if remaining == 1:
                self._swap_to_fallback(prev, owner)
            else:
                self._remove_owner(prev, owner, self.get_required_threshold(remaining - 1))

        self._verify_final_state()

    def _remove_owner(self, prev: Address, owner: Address, threshold: int) -> None:
        ok, err = self._exec("remove_owner", prev, owner, threshold)
        if not ok:
            raise RemovalFailed(data={"prev": to_hex(prev), "owner": to_hex(owner), **_reason(err)})
        self.host.emit(self.address, b"RemovedOwner", {"owner": owner})
        log.info("removed owner", extra={"owner": to_hex(owner), "threshold": threshold})

    def _swap_to_fallback(self, prev: Address, owner: Address) -> None:
        fallback = self._cfg.fallback_owner
        ok, err = self._exec("swap_owner", prev, owner, fallback)
        if not ok:
            raise FallbackSwapFailed(data={"prev": to_hex(prev), "owner": to_hex(owner), **_reason(err)})
        ok, err = self._exec("change_threshold", 1)
        if not ok:
            raise FallbackSwapFailed(data={"owner": to_hex(owner), **_reason(err)})
        self.host.storage_set(self.address, K_TRANSFERRED, b"\x01")
        self.host.emit(self.address, b"OwnershipTransferredToFallback", {"fallback": fallback})
        log.info("ownership transferred to fallback owner", extra={"fallback": to_hex(fallback)})

    def _exec(self, method: str, *args: Any) -> Tuple[bool, Optional[WalletError]]:
        try:
            return self._safe.exec_from_module(self.address, method, *args)
        except WalletError as e:
            return False, e

    # ------------------------------------------------------------------ #
    # Invariants
    # ------------------------------------------------------------------ #

    def _verify_final_state(self) -> None:
        owners = self._safe.get_owners()
        n = len(owners)
        if n < self._cfg.min_owners and not (n == 1 and owners[0] == self._cfg.fallback_owner):
            raise FloorBreached(data={"owners": n, "min_owners": self._cfg.min_owners})
        self._require_threshold(n)
        self._require_guard()

    def _require_guard(self) -> None:
        installed = self._safe.get_guard()
        if installed != self._guard.address:
            raise HookTampered(data={"installed": to_hex(installed), "expected": to_hex(self._guard.address)})

    def _require_threshold(self, owner_count: int) -> None:
        actual = self._safe.get_threshold()
        expected = self.get_required_threshold(owner_count)
        if actual != expected:
            raise ThresholdDrifted(data={"threshold": actual, "required": expected, "owners": owner_count})


def _reason(err: Optional[WalletError]) -> dict:
    return {"reason": err.reason} if err is not None and err.reason else {}


__all__ = ["LivenessModule", "required_threshold", "previous_owner_hints", "VERSION"]
