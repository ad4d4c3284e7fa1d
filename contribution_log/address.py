"""
Contribution Log — Program-Derived Addresses
==============================================

The log is a global singleton: its storage account lives at ONE address
computed from a fixed label and the program id.  Nothing about the
address is cached in process memory; it is re-derived on every access.

DERIVATION:
  For bump = 255, 254, ..., 0:
    candidate = SHA-256(seed_1 || ... || seed_n || bump || program_id
                        || "ProgramDerivedAddress")
  The first candidate that is NOT a valid Ed25519 point wins.  Off-curve
  addresses have no private key, so only the program can act for them.

CURVE CHECK:
  A 32-byte string is "on curve" when it decompresses to a point of
  edwards25519:  -x^2 + y^2 = 1 + d*x^2*y^2  (mod 2^255 - 19).
  Decompression succeeds iff (y^2 - 1) / (d*y^2 + 1) is a square.
"""

import hashlib
from typing import Sequence, Tuple

from .errors import AddressDerivationError
from .keys import Pubkey


LOG_STATE_SEED = b"log_state"

MAX_SEEDS = 16
MAX_SEED_LEN = 32
PDA_MARKER = b"ProgramDerivedAddress"

_P = 2 ** 255 - 19
_D = (-121665 * pow(121666, _P - 2, _P)) % _P


def is_on_curve(data: bytes) -> bool:
    """True if *data* decompresses to an edwards25519 point."""
    if len(data) != 32:
        return False
    # Sign bit is ignored; non-canonical y is reduced mod p.
    y = (int.from_bytes(data, "little") & ((1 << 255) - 1)) % _P
    y2 = y * y % _P
    u = (y2 - 1) % _P
    v = (_D * y2 + 1) % _P
    x2 = u * pow(v, _P - 2, _P) % _P
    if x2 == 0:
        return True
    return pow(x2, (_P - 1) // 2, _P) == 1


def _check_seeds(seeds: Sequence[bytes]) -> None:
    if len(seeds) > MAX_SEEDS:
        raise AddressDerivationError(
            f"Too many seeds: {len(seeds)} (max {MAX_SEEDS})"
        )
    for seed in seeds:
        if len(seed) > MAX_SEED_LEN:
            raise AddressDerivationError(
                f"Seed length {len(seed)} exceeds {MAX_SEED_LEN} bytes"
            )


def create_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey:
    """
    Hash *seeds* (the last of which is normally the bump) with the program id.

    Raises ``AddressDerivationError`` if the result lies on the curve.
    """
    _check_seeds(seeds)
    h = hashlib.sha256()
    for seed in seeds:
        h.update(seed)
    h.update(bytes(program_id))
    h.update(PDA_MARKER)
    digest = h.digest()
    if is_on_curve(digest):
        raise AddressDerivationError("Derived address lies on the ed25519 curve")
    return Pubkey(digest)


def find_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Tuple[Pubkey, int]:
    """
    Search bump values from 255 down to 0 for an off-curve address.

    Returns ``(address, bump)``.  Deterministic: the same seeds and
    program id always produce the same pair.
    """
    # Validate with room for the bump seed.
    _check_seeds(list(seeds) + [b"\x00"])
    for bump in range(255, -1, -1):
        try:
            address = create_program_address(list(seeds) + [bytes([bump])], program_id)
        except AddressDerivationError:
            continue
        return address, bump
    raise AddressDerivationError()


def log_state_address(program_id: Pubkey) -> Tuple[Pubkey, int]:
    """The canonical ``(address, bump)`` of the singleton log state."""
    return find_program_address([LOG_STATE_SEED], program_id)
