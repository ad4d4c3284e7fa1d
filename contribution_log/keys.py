"""
Contribution Log — Public Keys & Keypairs
===========================================

Every principal on the ledger (the authority, a payer, a program, an
account address) is identified by a 32-byte public key.  Keys are shown
to humans in base58, the alphabet the ledger's wallets and explorers use.

ARCHITECTURE:
  - ``Pubkey``  — immutable 32-byte identifier (hashable, comparable).
  - ``Keypair`` — Ed25519 signing key; only its ``pubkey`` is ever
    stored on the ledger.
  - ``verify_signature`` — checks a signature against a ``Pubkey``.

IMPLEMENTATION:
  Uses ``cryptography.hazmat.primitives.asymmetric.ed25519`` (PyCA)
  for key generation, signing and verification.  Base58 is
  implemented inline (Bitcoin alphabet).
"""

import os
from dataclasses import dataclass, field
from typing import Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey, Ed25519PublicKey,
)


PUBKEY_LENGTH = 32

_B58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_B58_INDEX = {c: i for i, c in enumerate(_B58_ALPHABET)}


# ────────────────────────────────────────────────────────────
#  Base58 (Bitcoin alphabet)
# ────────────────────────────────────────────────────────────

def b58encode(data: bytes) -> str:
    """Base58-encode *data*, preserving leading zero bytes as ``1``."""
    n = int.from_bytes(data, "big")
    out = []
    while n > 0:
        n, rem = divmod(n, 58)
        out.append(_B58_ALPHABET[rem])
    pad = len(data) - len(data.lstrip(b"\x00"))
    return "1" * pad + "".join(reversed(out))


def b58decode(text: str) -> bytes:
    """
    Decode a base58 string.

    Raises ``ValueError`` on characters outside the alphabet.
    """
    n = 0
    for ch in text:
        if ch not in _B58_INDEX:
            raise ValueError(f"Invalid base58 character: {ch!r}")
        n = n * 58 + _B58_INDEX[ch]
    body = n.to_bytes((n.bit_length() + 7) // 8, "big") if n else b""
    pad = len(text) - len(text.lstrip("1"))
    return b"\x00" * pad + body


# ────────────────────────────────────────────────────────────
#  Pubkey
# ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Pubkey:
    """A 32-byte ledger public key."""
    raw: bytes

    def __post_init__(self):
        if not isinstance(self.raw, (bytes, bytearray)):
            raise TypeError(f"Pubkey requires bytes, got {type(self.raw).__name__}")
        if len(self.raw) != PUBKEY_LENGTH:
            raise ValueError(
                f"Pubkey must be {PUBKEY_LENGTH} bytes, got {len(self.raw)}"
            )
        object.__setattr__(self, "raw", bytes(self.raw))

    @classmethod
    def from_string(cls, text: str) -> "Pubkey":
        """Parse a base58 public key."""
        return cls(b58decode(text))

    @classmethod
    def new_unique(cls) -> "Pubkey":
        """A random key, for accounts that never need to sign."""
        return cls(os.urandom(PUBKEY_LENGTH))

    @classmethod
    def default(cls) -> "Pubkey":
        """The all-zero key (system program id)."""
        return cls(b"\x00" * PUBKEY_LENGTH)

    def __bytes__(self) -> bytes:
        return self.raw

    def __str__(self) -> str:
        return b58encode(self.raw)

    def __repr__(self) -> str:
        return f"Pubkey({self})"


def as_pubkey(value: Union["Pubkey", "Keypair", str, bytes]) -> Pubkey:
    """Coerce a key-like value (Pubkey, Keypair, base58 text, raw bytes)."""
    if isinstance(value, Pubkey):
        return value
    if isinstance(value, Keypair):
        return value.pubkey
    if isinstance(value, str):
        return Pubkey.from_string(value)
    return Pubkey(value)


# ────────────────────────────────────────────────────────────
#  Keypair
# ────────────────────────────────────────────────────────────

@dataclass
class Keypair:
    """
    Ed25519 keypair.

    ``seed`` is the 32-byte private key; it is never logged or
    serialized by this package.
    """
    seed: bytes = field(repr=False)
    pubkey: Pubkey = field(init=False)

    def __post_init__(self):
        private_key = Ed25519PrivateKey.from_private_bytes(self.seed)
        self.pubkey = Pubkey(private_key.public_key().public_bytes(
            serialization.Encoding.Raw,
            serialization.PublicFormat.Raw,
        ))

    @classmethod
    def generate(cls) -> "Keypair":
        """Generate a fresh keypair from the OS CSPRNG."""
        private_key = Ed25519PrivateKey.generate()
        return cls(seed=private_key.private_bytes(
            serialization.Encoding.Raw,
            serialization.PrivateFormat.Raw,
            serialization.NoEncryption(),
        ))

    @classmethod
    def from_seed(cls, seed: bytes) -> "Keypair":
        """Deterministic keypair from a 32-byte seed."""
        if len(seed) != 32:
            raise ValueError(f"Keypair seed must be 32 bytes, got {len(seed)}")
        return cls(seed=bytes(seed))

    def sign(self, message: bytes) -> bytes:
        """64-byte Ed25519 signature of *message*."""
        return Ed25519PrivateKey.from_private_bytes(self.seed).sign(message)

    def __str__(self) -> str:
        return str(self.pubkey)


# ────────────────────────────────────────────────────────────
#  Signature verification
# ────────────────────────────────────────────────────────────

def verify_signature(pubkey: Pubkey, message: bytes, signature: bytes) -> bool:
    """True if *signature* is a valid Ed25519 signature of *message* by *pubkey*."""
    try:
        Ed25519PublicKey.from_public_bytes(bytes(pubkey)).verify(signature, message)
    except (InvalidSignature, ValueError):
        return False
    return True
