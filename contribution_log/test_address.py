"""
Contribution Log — Address Derivation & Key Tests
===================================================

  - Program-derived addresses are deterministic and off-curve
  - The log address depends only on the fixed label and program id
  - Base58 / Pubkey / Keypair basics
"""

import hashlib

import pytest

from contribution_log.address import (
    LOG_STATE_SEED,
    create_program_address,
    find_program_address,
    is_on_curve,
    log_state_address,
)
from contribution_log.config import DEFAULT_PROGRAM_ID
from contribution_log.errors import AddressDerivationError
from contribution_log.keys import Keypair, Pubkey, as_pubkey, b58decode, b58encode


class TestCurveCheck:
    """Ed25519 point decompression."""

    def test_real_public_keys_are_on_curve(self):
        for _ in range(10):
            assert is_on_curve(bytes(Keypair.generate().pubkey))

    def test_basepoint_is_on_curve(self):
        # y = 4/5, encoded little-endian with sign bit clear
        p = 2 ** 255 - 19
        y = 4 * pow(5, p - 2, p) % p
        assert is_on_curve(y.to_bytes(32, "little"))

    def test_identity_is_on_curve(self):
        assert is_on_curve((1).to_bytes(32, "little"))

    def test_wrong_length_is_not_on_curve(self):
        assert not is_on_curve(b"\x01" * 31)

    def test_some_hashes_are_off_curve(self):
        digests = [hashlib.sha256(bytes([i])).digest() for i in range(64)]
        assert any(not is_on_curve(d) for d in digests)
        assert any(is_on_curve(d) for d in digests)


class TestProgramAddress:
    """Deterministic singleton addressing."""

    def test_log_address_is_deterministic(self):
        assert log_state_address(DEFAULT_PROGRAM_ID) == log_state_address(DEFAULT_PROGRAM_ID)

    def test_log_address_is_off_curve(self):
        address, _ = log_state_address(DEFAULT_PROGRAM_ID)
        assert not is_on_curve(bytes(address))

    def test_bump_reproduces_address(self):
        address, bump = find_program_address([LOG_STATE_SEED], DEFAULT_PROGRAM_ID)
        assert create_program_address([LOG_STATE_SEED, bytes([bump])], DEFAULT_PROGRAM_ID) == address

    def test_bump_is_highest_viable(self):
        _, bump = find_program_address([LOG_STATE_SEED], DEFAULT_PROGRAM_ID)
        for higher in range(bump + 1, 256):
            with pytest.raises(AddressDerivationError):
                create_program_address([LOG_STATE_SEED, bytes([higher])], DEFAULT_PROGRAM_ID)

    def test_program_id_changes_address(self):
        other = Pubkey(b"\x07" * 32)
        assert log_state_address(other)[0] != log_state_address(DEFAULT_PROGRAM_ID)[0]

    def test_seed_too_long(self):
        with pytest.raises(AddressDerivationError, match="exceeds"):
            find_program_address([b"x" * 33], DEFAULT_PROGRAM_ID)

    def test_too_many_seeds(self):
        with pytest.raises(AddressDerivationError, match="Too many"):
            find_program_address([b"s"] * 16, DEFAULT_PROGRAM_ID)


class TestKeys:
    """Key encodings."""

    def test_default_program_id_round_trips(self):
        text = "Fg6PaFpoGXkYsidMpWTK6W2BeZ7FEfcYkg476zPFsLnS"
        assert str(Pubkey.from_string(text)) == text

    def test_system_program_is_all_ones(self):
        assert str(Pubkey.default()) == "1" * 32

    def test_b58_leading_zeros(self):
        data = b"\x00\x00\x01\x02"
        assert b58decode(b58encode(data)) == data
        assert b58encode(data).startswith("11")

    def test_b58_rejects_invalid_characters(self):
        with pytest.raises(ValueError, match="base58"):
            b58decode("0OIl")

    def test_pubkey_length_enforced(self):
        with pytest.raises(ValueError):
            Pubkey(b"\x01" * 31)

    def test_keypair_from_seed_is_deterministic(self):
        seed = b"\x42" * 32
        assert Keypair.from_seed(seed).pubkey == Keypair.from_seed(seed).pubkey

    def test_keypair_repr_hides_seed(self):
        kp = Keypair.from_seed(b"\x42" * 32)
        assert "42" * 4 not in repr(kp)

    def test_as_pubkey_coercions(self):
        kp = Keypair.generate()
        assert as_pubkey(kp) == kp.pubkey
        assert as_pubkey(str(kp.pubkey)) == kp.pubkey
        assert as_pubkey(bytes(kp.pubkey)) == kp.pubkey
