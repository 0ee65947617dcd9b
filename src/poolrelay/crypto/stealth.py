"""Ed25519 stealth keys and base58 addresses."""

from __future__ import annotations

import base64
import binascii
import secrets
from dataclasses import dataclass
from typing import NewType

import base58
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from ..domain.errors import IntegrityFault

SeedB64 = NewType("SeedB64", str)

SEED_LENGTH = 32
PUBLIC_KEY_LENGTH = 32


def public_key_to_address(public_key: Ed25519PublicKey) -> str:
    raw = public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return base58.b58encode(raw).decode("ascii")


def load_verifier(address: str) -> Ed25519PublicKey:
    """Load the public key behind a base58 address. Raises ValueError if malformed."""
    raw = base58.b58decode(address)
    if len(raw) != PUBLIC_KEY_LENGTH:
        raise ValueError(f"Address must decode to {PUBLIC_KEY_LENGTH} bytes")
    return Ed25519PublicKey.from_public_bytes(raw)


class Ed25519Signer:
    """Holds a private key; exposes only its address and a sign method."""

    def __init__(self, private_key: Ed25519PrivateKey):
        self._private_key = private_key
        self.address = public_key_to_address(private_key.public_key())

    def sign(self, data: bytes) -> bytes:
        return self._private_key.sign(data)

    def __repr__(self) -> str:
        return f"Ed25519Signer(address={self.address!r})"


def load_signer_from_b58(secret_b58: str) -> Ed25519Signer:
    """Load a signer from base58 of a 32-byte seed or a 64-byte seed+public key.

    For the 64-byte form the trailing public key must match the seed.
    """
    raw = base58.b58decode(secret_b58)
    if len(raw) == 64:
        seed, public = raw[:32], raw[32:]
    elif len(raw) == SEED_LENGTH:
        seed, public = raw, None
    else:
        raise ValueError("Secret key must be a 32-byte seed or a 64-byte keypair")

    private_key = Ed25519PrivateKey.from_private_bytes(seed)
    signer = Ed25519Signer(private_key)
    if public is not None and base58.b58encode(public).decode("ascii") != signer.address:
        raise ValueError("Secret key public half does not match its seed")
    return signer


@dataclass(frozen=True)
class StealthKeypair:
    address: str
    signer: Ed25519Signer


class StealthAddressVault:
    """Creates single-use stealth keys and reproduces them from stored seeds.

    Derivation is pure: the same seed always yields the same address. The
    seed is the only secret; it is stored base64-encoded on the claim and
    never leaves the service.
    """

    @staticmethod
    def create_seed() -> bytes:
        return secrets.token_bytes(SEED_LENGTH)

    @staticmethod
    def derive(seed: bytes) -> StealthKeypair:
        if len(seed) != SEED_LENGTH:
            raise ValueError(f"Seed must be {SEED_LENGTH} bytes")
        signer = Ed25519Signer(Ed25519PrivateKey.from_private_bytes(seed))
        return StealthKeypair(address=signer.address, signer=signer)

    @staticmethod
    def encode_seed(seed: bytes) -> SeedB64:
        return SeedB64(base64.b64encode(seed).decode("utf-8"))

    @staticmethod
    def decode_seed(seed_b64: str) -> bytes:
        return base64.b64decode(seed_b64, validate=True)

    def create(self) -> tuple[StealthKeypair, SeedB64]:
        seed = self.create_seed()
        return self.derive(seed), self.encode_seed(seed)

    def reconstruct(self, seed_b64: str, expected_address: str) -> StealthKeypair:
        """Rebuild the keypair and check it still matches the stored address."""
        try:
            keypair = self.derive(self.decode_seed(seed_b64))
        except (binascii.Error, ValueError) as e:
            raise IntegrityFault(f"Stored stealth seed is unusable: {e}") from e
        if keypair.address != expected_address:
            raise IntegrityFault("Stealth seed does not reproduce the stored address")
        return keypair
