"""
liveness.types — addresses and small value helpers.

Identities are raw 20-byte addresses. Hex strings (with or without "0x") are
accepted at the edges and normalized to bytes; everything inside the package
works on immutable `bytes`.

Two addresses are reserved and can never be owners:

- ZERO_ADDRESS     (20 zero bytes): "unset" guard / module / owner
- SENTINEL_OWNERS  (0x…01)        : head and tail marker of the owner list
"""

from __future__ import annotations

import hashlib
from typing import Iterable, Tuple, Union

from .errors import ConfigError

ADDRESS_LEN = 20

ZERO_ADDRESS = b"\x00" * ADDRESS_LEN
SENTINEL_OWNERS = b"\x00" * (ADDRESS_LEN - 1) + b"\x01"

Address = bytes
AddressLike = Union[bytes, bytearray, memoryview, str]

_U64_MAX = (1 << 64) - 1


def _strip_0x(s: str) -> str:
    return s[2:] if s.startswith(("0x", "0X")) else s


def to_bytes(value: AddressLike) -> bytes:
    """
    Coerce `value` to bytes.
    - If str, interpret as hex (with or without '0x'); odd-length hex is rejected.
    - If a bytes-like object, copy to immutable bytes.
    """
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        h = _strip_0x(value.strip())
        if len(h) % 2 != 0:
            raise ConfigError(f"hex string must have even length, got {len(h)}")
        try:
            return bytes.fromhex(h)
        except ValueError as e:
            raise ConfigError(f"invalid hex string: {value!r}") from e
    raise ConfigError(f"cannot convert type {type(value).__name__} to bytes")


def to_address(value: AddressLike) -> Address:
    b = to_bytes(value)
    if len(b) != ADDRESS_LEN:
        raise ConfigError(
            f"address must be {ADDRESS_LEN} bytes, got {len(b)}",
            data={"value": b.hex()},
        )
    return b


def to_addresses(values: Iterable[AddressLike]) -> Tuple[Address, ...]:
    return tuple(to_address(v) for v in values)


def to_hex(b: Union[bytes, bytearray, memoryview]) -> str:
    """Encode bytes as 0x-prefixed lowercase hex."""
    return "0x" + bytes(b).hex()


def is_reserved(addr: bytes) -> bool:
    return addr in (ZERO_ADDRESS, SENTINEL_OWNERS)


def derive_address(label: Union[str, bytes]) -> Address:
    """
    Deterministic address for a named component (safe, guard, module) or a
    test identity. Not tied to any key material.
    """
    if isinstance(label, str):
        label = label.encode("utf-8")
    return hashlib.sha3_256(b"liveness.address.v1|" + label).digest()[-ADDRESS_LEN:]


# Fixed-width integer codecs used by the storage layouts.


def u64(x: int) -> bytes:
    if not 0 <= x <= _U64_MAX:
        raise ValueError(f"u64 out of range: {x}")
    return x.to_bytes(8, "big")


def from_u64(b: bytes) -> int:
    return int.from_bytes(b, "big")


__all__ = [
    "ADDRESS_LEN",
    "ZERO_ADDRESS",
    "SENTINEL_OWNERS",
    "Address",
    "AddressLike",
    "to_bytes",
    "to_address",
    "to_addresses",
    "to_hex",
    "is_reserved",
    "derive_address",
    "u64",
    "from_u64",
]
