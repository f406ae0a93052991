"""
liveness.wallet.signatures — owner keys and transaction signatures.

Owners sign the 32-byte Safe transaction hash with Ed25519. An owner's address
is derived from its public key:

    address = sha3_256(public_key)[-20:]

so the Safe can recover the signer of every signature without a registry.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey, Ed25519PublicKey)

from ..types import ADDRESS_LEN, Address, to_hex

PUBLIC_KEY_LEN = 32
SIGNATURE_LEN = 64


def address_from_public_key(public_key: bytes) -> Address:
    if len(public_key) != PUBLIC_KEY_LEN:
        raise ValueError(f"public key must be {PUBLIC_KEY_LEN} bytes, got {len(public_key)}")
    return hashlib.sha3_256(public_key).digest()[-ADDRESS_LEN:]


@dataclass(frozen=True)
class Signature:
    """One owner's approval of a transaction hash."""

    signer: Address
    public_key: bytes
    signature: bytes

    def verify(self, message: bytes) -> bool:
        """True when the key matches `signer` and the signature checks out."""
        if len(self.signature) != SIGNATURE_LEN:
            return False
        try:
            if address_from_public_key(self.public_key) != self.signer:
                return False
            Ed25519PublicKey.from_public_bytes(self.public_key).verify(self.signature, message)
        except (InvalidSignature, ValueError):
            return False
        return True

    def to_json(self) -> dict:
        return {
            "signer": to_hex(self.signer),
            "publicKey": to_hex(self.public_key),
            "signature": to_hex(self.signature),
        }


class OwnerKey:
    """
    An Ed25519 signing key for a Safe owner.

        key = OwnerKey.from_seed(b"alice")
        sig = key.sign(tx_hash)
    """

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._sk = private_key
        self.public_key: bytes = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        self.address: Address = address_from_public_key(self.public_key)

    @classmethod
    def generate(cls) -> "OwnerKey":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_seed(cls, seed: Union[str, bytes]) -> "OwnerKey":
        """Deterministic key from an arbitrary label (tests, simulations)."""
        if isinstance(seed, str):
            seed = seed.encode("utf-8")
        raw = hashlib.sha3_256(b"liveness.owner-key.v1|" + seed).digest()
        return cls(Ed25519PrivateKey.from_private_bytes(raw))

    def sign(self, message: bytes) -> Signature:
        return Signature(signer=self.address, public_key=self.public_key, signature=self._sk.sign(message))

    def __repr__(self) -> str:
        return f"OwnerKey(address={to_hex(self.address)})"


def sign_all(keys, message: bytes, *, sort: bool = True) -> list:
    """Sign `message` with every key; sorted by signer address unless told otherwise."""
    sigs = [k.sign(message) for k in keys]
    if sort:
        sigs.sort(key=lambda s: s.signer)
    return sigs


__all__ = [
    "PUBLIC_KEY_LEN",
    "SIGNATURE_LEN",
    "address_from_public_key",
    "Signature",
    "OwnerKey",
    "sign_all",
]
