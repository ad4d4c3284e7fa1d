"""
Contribution Log — Signed Instruction Tests
=============================================

  - Ed25519 sign / verify through ``Keypair`` and ``verify_signature``
  - The canonical message binds instruction, program, signer, args,
    time and nonce
  - ``SignatureVerifier``: freshness window, forgery, replay

Run:  python -m pytest contribution_log/test_signing.py -v
"""

import pytest

from contribution_log.config import DEFAULT_PROGRAM_ID
from contribution_log.errors import MissingSignature
from contribution_log.keys import Keypair, b58decode, b58encode, verify_signature
from contribution_log.signing import (
    SignatureVerifier,
    instruction_message,
    sign_instruction,
)


NOW = 1_700_000_000
ALICE = Keypair.from_seed(b"\x21" * 32)
MALLORY = Keypair.from_seed(b"\x22" * 32)


class FakeClock:
    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def verifier(clock) -> SignatureVerifier:
    return SignatureVerifier(DEFAULT_PROGRAM_ID, max_age_seconds=60, clock=clock)


def _sign(keypair, args=("abc123",), issued_at=NOW, nonce="n-1", instruction="log_contribution"):
    return sign_instruction(keypair, instruction, DEFAULT_PROGRAM_ID, list(args),
                            issued_at=issued_at, nonce=nonce)


class TestKeypairSignatures:

    def test_sign_and_verify(self):
        sig = ALICE.sign(b"hello")
        assert len(sig) == 64
        assert verify_signature(ALICE.pubkey, b"hello", sig)

    def test_wrong_key_or_message(self):
        sig = ALICE.sign(b"hello")
        assert not verify_signature(MALLORY.pubkey, b"hello", sig)
        assert not verify_signature(ALICE.pubkey, b"hellO", sig)

    def test_truncated_signature(self):
        assert not verify_signature(ALICE.pubkey, b"hello", ALICE.sign(b"hello")[:10])


class TestInstructionMessage:

    def test_canonical_bytes(self):
        msg = instruction_message("initialize", DEFAULT_PROGRAM_ID, ALICE.pubkey, [], 5, "n")
        assert msg == (
            '{"args":[],"instruction":"initialize","issued_at":5,"nonce":"n",'
            f'"program_id":"{DEFAULT_PROGRAM_ID}","signer":"{ALICE.pubkey}"}}'
        ).encode()

    def test_sign_instruction_fields(self):
        fields = _sign(ALICE)
        assert (fields["issued_at"], fields["nonce"]) == (NOW, "n-1")
        message = instruction_message(
            "log_contribution", DEFAULT_PROGRAM_ID, ALICE.pubkey, ["abc123"], NOW, "n-1",
        )
        assert verify_signature(ALICE.pubkey, message, b58decode(fields["signature"]))

    def test_fresh_nonce_per_call(self):
        a = sign_instruction(ALICE, "initialize", DEFAULT_PROGRAM_ID, [])
        b = sign_instruction(ALICE, "initialize", DEFAULT_PROGRAM_ID, [])
        assert a["nonce"] != b["nonce"]
        assert a["signature"] != b["signature"]


class TestSignatureVerifier:

    def _verify(self, verifier, fields, signer=ALICE, args=("abc123",),
                instruction="log_contribution"):
        verifier.verify(signer.pubkey, instruction, list(args),
                        fields["issued_at"], fields["nonce"], fields["signature"])

    def test_valid_signature_accepted(self, verifier):
        self._verify(verifier, _sign(ALICE))

    def test_other_signer_rejected(self, verifier):
        with pytest.raises(MissingSignature, match="Invalid signature"):
            self._verify(verifier, _sign(MALLORY), signer=ALICE)

    def test_changed_argument_rejected(self, verifier):
        with pytest.raises(MissingSignature, match="Invalid signature"):
            self._verify(verifier, _sign(ALICE, args=["abc123"]), args=["evil"])

    def test_changed_instruction_rejected(self, verifier):
        fields = _sign(ALICE, args=[], instruction="initialize")
        with pytest.raises(MissingSignature):
            self._verify(verifier, fields, args=[])

    def test_other_program_rejected(self, clock):
        other = SignatureVerifier(Keypair.from_seed(b"\x23" * 32).pubkey, clock=clock)
        with pytest.raises(MissingSignature):
            self._verify(other, _sign(ALICE))

    def test_malformed_signature(self, verifier):
        fields = dict(_sign(ALICE), signature="0OIl")
        with pytest.raises(MissingSignature, match="Malformed"):
            self._verify(verifier, fields)

    def test_bit_flip_rejected(self, verifier):
        fields = _sign(ALICE)
        raw = bytearray(b58decode(fields["signature"]))
        raw[0] ^= 1
        with pytest.raises(MissingSignature):
            self._verify(verifier, dict(fields, signature=b58encode(bytes(raw))))

    @pytest.mark.parametrize("offset", [-61, 61])
    def test_outside_window(self, verifier, offset):
        with pytest.raises(MissingSignature, match="window"):
            self._verify(verifier, _sign(ALICE, issued_at=NOW + offset))

    @pytest.mark.parametrize("offset", [-60, 0, 60])
    def test_inside_window(self, verifier, offset):
        self._verify(verifier, _sign(ALICE, issued_at=NOW + offset))

    def test_replay_rejected(self, verifier):
        fields = _sign(ALICE)
        self._verify(verifier, fields)
        with pytest.raises(MissingSignature, match="already been used"):
            self._verify(verifier, fields)

    def test_distinct_nonces_accepted(self, verifier):
        self._verify(verifier, _sign(ALICE, nonce="a"))
        self._verify(verifier, _sign(ALICE, nonce="b"))

    def test_expired_signatures_forgotten(self, verifier, clock):
        self._verify(verifier, _sign(ALICE, nonce="old"))
        clock.now = NOW + 200
        self._verify(verifier, _sign(ALICE, issued_at=NOW + 200, nonce="new"))
        assert len(verifier._seen) == 1
