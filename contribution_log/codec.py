"""
Contribution Log — Record Codec
=================================

Fixed binary layout of the log state account.  Every byte on the ledger
passes through this module in both directions and must round-trip
exactly.

LAYOUT (all integers little-endian):

    offset 0   :  8 bytes   discriminator  = SHA-256("account:LogState")[:8]
    offset 8   : 32 bytes   authority public key
    offset 40  :  4 bytes   record count N (u32)
    offset 44  :  N records, each:
                   32 bytes  contributor public key
                    8 bytes  timestamp (i64)
                    4 bytes  code-hash length L (u32)
                    L bytes  code hash, UTF-8

SIZING:
  ``record_size`` is the true encoded length of one record
  (44 + L), never an in-memory approximation.  ``required_space``
  gives the exact account size needed to hold the current state plus
  one more record; the lifecycle manager grows the account to that
  size before every append.

Bytes past the logical end of the layout (capacity slack left by a
larger allocation) are ignored by ``decode_log_state``.
"""

import hashlib
import struct
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from .errors import CorruptLayout
from .keys import PUBKEY_LENGTH, Pubkey


DISCRIMINATOR = hashlib.sha256(b"account:LogState").digest()[:8]

MAX_HASH_LEN = 64

HEADER_SIZE = len(DISCRIMINATOR) + PUBKEY_LENGTH + 4          # 44
COUNT_OFFSET = len(DISCRIMINATOR) + PUBKEY_LENGTH              # 40
RECORD_PREFIX_SIZE = PUBKEY_LENGTH + 8 + 4                     # 44

_HEADER = struct.Struct("<8s32sI")
_COUNT = struct.Struct("<I")
_RECORD_PREFIX = struct.Struct("<32sqI")


@dataclass(frozen=True)
class ContributionRecord:
    """One immutable entry of the log."""
    contributor: Pubkey
    timestamp: int
    code_hash: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contributor": str(self.contributor),
            "timestamp": self.timestamp,
            "code_hash": self.code_hash,
        }


@dataclass
class LogState:
    """
    The singleton log: one authority, an append-only list of records.

    Instances are views decoded from account bytes; the ledger account
    is the source of truth.
    """
    authority: Pubkey
    contributions: List[ContributionRecord] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.contributions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "authority": str(self.authority),
            "count": len(self.contributions),
            "contributions": [c.to_dict() for c in self.contributions],
        }


# ────────────────────────────────────────────────────────────
#  Sizing
# ────────────────────────────────────────────────────────────

def record_size(record: ContributionRecord) -> int:
    """Exact encoded length of *record*."""
    return RECORD_PREFIX_SIZE + len(record.code_hash.encode("utf-8"))


def state_size(state: LogState) -> int:
    """Exact encoded length of the header plus every current record."""
    return HEADER_SIZE + sum(record_size(r) for r in state.contributions)


def required_space(state: LogState, new_record: ContributionRecord) -> int:
    """Account size needed to hold *state* after appending *new_record*."""
    return state_size(state) + record_size(new_record)


# ────────────────────────────────────────────────────────────
#  Encode
# ────────────────────────────────────────────────────────────

def encode_record(record: ContributionRecord) -> bytes:
    raw_hash = record.code_hash.encode("utf-8")
    return _RECORD_PREFIX.pack(
        bytes(record.contributor), record.timestamp, len(raw_hash)
    ) + raw_hash


def encode_count(count: int) -> bytes:
    """The 4-byte record count stored at ``COUNT_OFFSET``."""
    return _COUNT.pack(count)


def encode_log_state(state: LogState) -> bytes:
    """Serialize the full account body (header + all records)."""
    parts = [_HEADER.pack(DISCRIMINATOR, bytes(state.authority), len(state.contributions))]
    parts.extend(encode_record(r) for r in state.contributions)
    return b"".join(parts)


# ────────────────────────────────────────────────────────────
#  Decode
# ────────────────────────────────────────────────────────────

def decode_record(buf: bytes, offset: int) -> Tuple[ContributionRecord, int]:
    """
    Decode one record starting at *offset*.

    Returns ``(record, next_offset)``; raises ``CorruptLayout`` on
    truncation, an out-of-range hash length, or invalid UTF-8.
    """
    end = offset + RECORD_PREFIX_SIZE
    if end > len(buf):
        raise CorruptLayout(f"Truncated record prefix at offset {offset}")
    contributor, timestamp, length = _RECORD_PREFIX.unpack_from(buf, offset)
    if length == 0 or length > MAX_HASH_LEN:
        raise CorruptLayout(f"Invalid code hash length {length} at offset {offset}")
    if end + length > len(buf):
        raise CorruptLayout(f"Truncated code hash at offset {end}")
    try:
        code_hash = bytes(buf[end:end + length]).decode("utf-8")
    except UnicodeDecodeError as e:
        raise CorruptLayout(f"Code hash at offset {end} is not UTF-8: {e}")
    return ContributionRecord(Pubkey(contributor), timestamp, code_hash), end + length


def decode_log_state(buf: bytes) -> LogState:
    """Deserialize an account body; trailing capacity slack is ignored."""
    if len(buf) < HEADER_SIZE:
        raise CorruptLayout(
            f"Account data is {len(buf)} bytes, header needs {HEADER_SIZE}"
        )
    discriminator, authority, count = _HEADER.unpack_from(buf, 0)
    if discriminator != DISCRIMINATOR:
        raise CorruptLayout("Account discriminator does not match LogState")

    records: List[ContributionRecord] = []
    offset = HEADER_SIZE
    for _ in range(count):
        record, offset = decode_record(buf, offset)
        records.append(record)
    return LogState(authority=Pubkey(authority), contributions=records)
