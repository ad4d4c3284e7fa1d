"""
Contribution Log — Signed Instructions
========================================

Over HTTP a signer proves control of its key by signing the exact
instruction it submits.  The signed message is the canonical JSON of:

    {"instruction", "program_id", "signer", "args": [...], "issued_at", "nonce"}

(keys sorted, compact separators, UTF-8).  The signature travels as
base58 next to the request fields.  The nonce is a fresh UUID per
request, so submitting the same instruction twice in one second still
yields two distinct signatures.

VERIFICATION (``SignatureVerifier``):
  1. ``issued_at`` must lie within ``max_age_seconds`` of the verifier's
     clock.
  2. The signature must verify against the claimed signer's public key
     for the message rebuilt from the request fields, so a signature
     cannot be moved to another instruction, argument or program.
  3. A signature is accepted once.  Signatures older than the window
     are forgotten, since step 1 already rejects them.

Any failure raises ``MissingSignature``.
"""

import json
import threading
import time
import uuid
from typing import Any, Callable, Dict, Optional, Sequence

from .errors import MissingSignature
from .keys import Keypair, Pubkey, b58decode, b58encode, verify_signature


DEFAULT_MAX_AGE_SECONDS = 120


def instruction_message(
    instruction: str,
    program_id: Pubkey,
    signer: Pubkey,
    args: Sequence[str],
    issued_at: int,
    nonce: str,
) -> bytes:
    """Canonical bytes a signer signs for one instruction."""
    return json.dumps({
        "instruction": instruction,
        "program_id": str(program_id),
        "signer": str(signer),
        "args": list(args),
        "issued_at": issued_at,
        "nonce": nonce,
    }, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def sign_instruction(
    keypair: Keypair,
    instruction: str,
    program_id: Pubkey,
    args: Sequence[str],
    issued_at: Optional[int] = None,
    nonce: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Sign one instruction with *keypair*.

    Returns the request fields that accompany it:
    ``{"issued_at", "nonce", "signature"}``.
    """
    if issued_at is None:
        issued_at = int(time.time())
    if nonce is None:
        nonce = uuid.uuid4().hex
    message = instruction_message(instruction, program_id, keypair.pubkey, args, issued_at, nonce)
    return {
        "issued_at": issued_at,
        "nonce": nonce,
        "signature": b58encode(keypair.sign(message)),
    }


class SignatureVerifier:
    """
    Checks signed instructions for one program.

    Args:
        program_id:      Program the instructions are addressed to.
        max_age_seconds: Accepted distance between ``issued_at`` and now.
        clock:           Callable returning the current unix time.
    """

    def __init__(
        self,
        program_id: Pubkey,
        max_age_seconds: int = DEFAULT_MAX_AGE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.program_id = program_id
        self.max_age_seconds = max_age_seconds
        self.clock = clock
        self._seen: Dict[bytes, int] = {}
        self._lock = threading.Lock()

    def verify(
        self,
        signer: Pubkey,
        instruction: str,
        args: Sequence[str],
        issued_at: int,
        nonce: str,
        signature: str,
    ) -> None:
        """Raise ``MissingSignature`` unless *signature* authorizes this instruction."""
        now = self.clock()
        if abs(now - issued_at) > self.max_age_seconds:
            raise MissingSignature(
                f"Signature issued at {issued_at} is outside the "
                f"{self.max_age_seconds}s window"
            )
        try:
            raw = b58decode(signature)
        except ValueError as e:
            raise MissingSignature(f"Malformed signature: {e}")

        message = instruction_message(
            instruction, self.program_id, signer, args, issued_at, nonce
        )
        if not verify_signature(signer, message, raw):
            raise MissingSignature(f"Invalid signature for {signer}")

        with self._lock:
            cutoff = now - self.max_age_seconds
            self._seen = {sig: ts for sig, ts in self._seen.items() if ts >= cutoff}
            if raw in self._seen:
                raise MissingSignature("Signature has already been used")
            self._seen[raw] = issued_at
