"""
liveness.wallet.interface — what the guard and module need from a wallet.

`Safe` satisfies this protocol; tests or alternative wallet models may
provide their own implementation.
"""

from __future__ import annotations

from typing import Any, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from ..types import Address


@runtime_checkable
class WalletLike(Protocol):
    address: Address

    @property
    def nonce(self) -> int: ...

    def get_owners(self) -> List[Address]: ...

    def get_threshold(self) -> int: ...

    def is_owner(self, owner: Address) -> bool: ...

    def get_guard(self) -> Address: ...

    def get_transaction_hash(self, tx: Any, nonce: int) -> bytes: ...

    def recover_signers(self, tx_hash: bytes, signatures: Sequence[Any]) -> Tuple[Address, ...]: ...

    def verified_signers(self, tx_hash: bytes) -> Optional[Tuple[Address, ...]]: ...

    def exec_from_module(self, caller: Address, method: str, *args: Any) -> Tuple[bool, Optional[Exception]]: ...


__all__ = ["WalletLike"]
