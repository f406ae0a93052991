"""
liveness.wallet — the Safe multisig the liveness protocol governs.

Submodules:
- owners:     sentinel-linked owner list
- signatures: Ed25519 owner keys and signatures
- safe:       the Safe model (threshold, nonce, guard, modules, execution)
- interface:  the WalletLike protocol consumed by the guard and module
"""

from __future__ import annotations

from importlib import import_module as _imp
from typing import Any, Dict, Tuple

_exports: Dict[str, Tuple[str, str]] = {
    "OwnerList": ("owners", "OwnerList"),
    "previous_owner": ("owners", "previous_owner"),
    "OwnerKey": ("signatures", "OwnerKey"),
    "Signature": ("signatures", "Signature"),
    "sign_all": ("signatures", "sign_all"),
    "address_from_public_key": ("signatures", "address_from_public_key"),
    "Safe": ("safe", "Safe"),
    "SafeTransaction": ("safe", "SafeTransaction"),
    "encode_call": ("safe", "encode_call"),
    "decode_call": ("safe", "decode_call"),
    "WalletLike": ("interface", "WalletLike"),
}

__all__ = tuple(_exports.keys())


def __getattr__(name: str) -> Any:
    if name in _exports:
        submod, symbol = _exports[name]
        mod = _imp(f"{__name__}.{submod}")
        return getattr(mod, symbol)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:  # pragma: no cover
    return sorted(list(globals().keys()) + list(__all__))
