"""
Contribution Log — Randomized Codec Proofs
============================================

Randomized-trial verification of the binary layout in
``contribution_log.codec`` against the real implementation.

PROPERTIES VERIFIED:
  C1.  Round trip:        decode(encode(s)) == s
  C2.  Exact sizing:      record_size(r) == len(encode_record(r)) and
                          state_size(s) == len(encode_log_state(s))
  C3.  Truncation:        every strict prefix of a non-empty log is rejected
                          with CorruptLayout
  C4.  Slack tolerance:   arbitrary bytes after the logical end are ignored
  C5.  Tail append:       encode(s + r) == header' || body(s) || encode(r)
"""

from __future__ import annotations

import os
import secrets
from dataclasses import dataclass
from typing import List

from contribution_log.codec import (
    HEADER_SIZE,
    MAX_HASH_LEN,
    ContributionRecord,
    LogState,
    decode_log_state,
    encode_log_state,
    encode_record,
    record_size,
    state_size,
)
from contribution_log.errors import CorruptLayout
from contribution_log.keys import Pubkey


_HASH_ALPHABET = "0123456789abcdefé"


@dataclass
class ProofResult:
    """Result of a single randomized proof."""
    name: str
    passed: bool
    trials: int
    detail: str


def _random_hash() -> str:
    # Mix in a two-byte character so byte length and char count diverge.
    out = ""
    target = 1 + secrets.randbelow(MAX_HASH_LEN)
    while True:
        ch = secrets.choice(_HASH_ALPHABET)
        if len((out + ch).encode("utf-8")) > target:
            return out or "0"
        out += ch


def _random_record(contributor: Pubkey) -> ContributionRecord:
    ts = secrets.randbelow(2 ** 64) - 2 ** 63
    return ContributionRecord(contributor, ts, _random_hash())


def _random_state(max_records: int = 8) -> LogState:
    authority = Pubkey.new_unique()
    count = secrets.randbelow(max_records + 1)
    return LogState(authority, [_random_record(authority) for _ in range(count)])


# ══════════════════════════════════════════════════
#  C1 — Round Trip
# ══════════════════════════════════════════════════

def proof_c1_round_trip(trials: int = 200) -> ProofResult:
    """∀ s:  decode(encode(s)) = s"""
    for _ in range(trials):
        s = _random_state()
        if decode_log_state(encode_log_state(s)) != s:
            return ProofResult("C1_RoundTrip", False, trials, f"Mismatch for {s}")
    return ProofResult("C1_RoundTrip", True, trials,
                       f"{trials} random states round-tripped")


# ══════════════════════════════════════════════════
#  C2 — Exact Sizing
# ══════════════════════════════════════════════════

def proof_c2_exact_sizing(trials: int = 200) -> ProofResult:
    """Sizing functions agree with the bytes actually produced."""
    for _ in range(trials):
        s = _random_state()
        for r in s.contributions:
            if record_size(r) != len(encode_record(r)):
                return ProofResult("C2_ExactSizing", False, trials,
                                   f"record_size mismatch for {r}")
        if state_size(s) != len(encode_log_state(s)):
            return ProofResult("C2_ExactSizing", False, trials,
                               f"state_size mismatch for {s}")
    return ProofResult("C2_ExactSizing", True, trials,
                       f"{trials} states sized exactly")


# ══════════════════════════════════════════════════
#  C3 — Truncation
# ══════════════════════════════════════════════════

def proof_c3_truncation(trials: int = 50) -> ProofResult:
    """No strict prefix of an encoded log decodes to the full log."""
    checked = 0
    for _ in range(trials):
        s = _random_state(max_records=3)
        if not s.contributions:
            continue
        buf = encode_log_state(s)
        for cut in range(len(buf)):
            checked += 1
            try:
                decode_log_state(buf[:cut])
            except CorruptLayout:
                continue
            return ProofResult("C3_Truncation", False, trials,
                               f"Prefix of {cut}/{len(buf)} bytes decoded")
    return ProofResult("C3_Truncation", True, trials,
                       f"{checked} truncated buffers rejected")


# ══════════════════════════════════════════════════
#  C4 — Slack Tolerance
# ══════════════════════════════════════════════════

def proof_c4_slack(trials: int = 100) -> ProofResult:
    """Capacity slack past the logical end never changes the decoded log."""
    for _ in range(trials):
        s = _random_state()
        slack = os.urandom(secrets.randbelow(256))
        if decode_log_state(encode_log_state(s) + slack) != s:
            return ProofResult("C4_SlackTolerance", False, trials,
                               f"{len(slack)} slack bytes changed the log")
    return ProofResult("C4_SlackTolerance", True, trials,
                       f"{trials} states decoded through random slack")


# ══════════════════════════════════════════════════
#  C5 — Tail Append
# ══════════════════════════════════════════════════

def proof_c5_tail_append(trials: int = 100) -> ProofResult:
    """Appending rewrites only the count; prior record bytes are untouched."""
    for _ in range(trials):
        s = _random_state()
        before = encode_log_state(s)
        r = _random_record(s.authority)
        after = encode_log_state(LogState(s.authority, s.contributions + [r]))
        if after[:HEADER_SIZE - 4] != before[:HEADER_SIZE - 4]:
            return ProofResult("C5_TailAppend", False, trials, "Header prefix changed")
        if after[HEADER_SIZE:len(before)] != before[HEADER_SIZE:]:
            return ProofResult("C5_TailAppend", False, trials, "Existing records changed")
        if after[len(before):] != encode_record(r):
            return ProofResult("C5_TailAppend", False, trials, "Tail is not the new record")
    return ProofResult("C5_TailAppend", True, trials,
                       f"{trials} appends preserved every prior byte")


# ══════════════════════════════════════════════════
#  Run all proofs
# ══════════════════════════════════════════════════

ALL_PROOFS = [
    proof_c1_round_trip,
    proof_c2_exact_sizing,
    proof_c3_truncation,
    proof_c4_slack,
    proof_c5_tail_append,
]


def run_all_proofs(verbose: bool = True) -> List[ProofResult]:
    results = []
    for fn in ALL_PROOFS:
        r = fn()
        results.append(r)
        if verbose:
            mark = "✓" if r.passed else "✗"
            print(f"  [{mark}] {r.name}: {r.detail}")
    return results


if __name__ == "__main__":
    print("=" * 60)
    print("CONTRIBUTION LOG — Randomized Codec Proofs")
    print("=" * 60)
    results = run_all_proofs(verbose=True)
    print("-" * 60)
    print(f"Total trials: {sum(r.trials for r in results)}")
    if all(r.passed for r in results):
        print("RESULT: ✓ All 5 codec properties verified.")
    else:
        print("RESULT: ✗ FAILURES:")
        for r in results:
            if not r.passed:
                print(f"  {r.name}: {r.detail}")
