"""
Contribution Log — Codec Tests
================================

Byte-level layout of the log state account:
  - Header offsets, discriminator, little-endian integers
  - Exact record sizing (variable-length code hash)
  - CorruptLayout on malformed or truncated buffers
  - Capacity slack past the logical end is ignored

Run:  python -m pytest contribution_log/test_codec.py -v
"""

import hashlib
import struct

import pytest

from contribution_log.codec import (
    COUNT_OFFSET,
    DISCRIMINATOR,
    HEADER_SIZE,
    RECORD_PREFIX_SIZE,
    ContributionRecord,
    LogState,
    decode_log_state,
    decode_record,
    encode_count,
    encode_log_state,
    encode_record,
    record_size,
    required_space,
    state_size,
)
from contribution_log.errors import CorruptLayout
from contribution_log.keys import Pubkey


AUTHORITY = Pubkey(bytes(range(32)))


def _state(*hashes: str, ts: int = 1_700_000_000) -> LogState:
    return LogState(
        authority=AUTHORITY,
        contributions=[ContributionRecord(AUTHORITY, ts + i, h) for i, h in enumerate(hashes)],
    )


class TestLayout:
    """Fixed header and record layout."""

    def test_discriminator_is_account_hash_prefix(self):
        assert DISCRIMINATOR == hashlib.sha256(b"account:LogState").digest()[:8]
        assert len(DISCRIMINATOR) == 8

    def test_header_constants(self):
        assert HEADER_SIZE == 44
        assert COUNT_OFFSET == 40
        assert RECORD_PREFIX_SIZE == 44

    def test_empty_log_is_header_only(self):
        buf = encode_log_state(LogState(AUTHORITY))
        assert len(buf) == HEADER_SIZE
        assert buf[0:8] == DISCRIMINATOR
        assert buf[8:40] == bytes(AUTHORITY)
        assert buf[40:44] == b"\x00\x00\x00\x00"

    def test_record_fields_at_documented_offsets(self):
        buf = encode_log_state(_state("abc123", ts=-2))
        assert struct.unpack_from("<I", buf, 40)[0] == 1
        assert buf[44:76] == bytes(AUTHORITY)
        assert struct.unpack_from("<q", buf, 76)[0] == -2
        assert struct.unpack_from("<I", buf, 84)[0] == 6
        assert buf[88:94] == b"abc123"
        assert len(buf) == 94

    def test_encode_count(self):
        assert encode_count(258) == b"\x02\x01\x00\x00"


class TestSizing:
    """Sizes are the true encoded lengths."""

    def test_record_size_varies_with_hash_length(self):
        short = ContributionRecord(AUTHORITY, 0, "a")
        full = ContributionRecord(AUTHORITY, 0, "f" * 64)
        assert record_size(short) == 45
        assert record_size(full) == 108
        assert record_size(short) == len(encode_record(short))
        assert record_size(full) == len(encode_record(full))

    def test_record_size_counts_utf8_bytes(self):
        r = ContributionRecord(AUTHORITY, 0, "é")
        assert record_size(r) == RECORD_PREFIX_SIZE + 2

    def test_state_size_matches_encoding(self):
        s = _state("a", "bb" * 10, "c" * 64)
        assert state_size(s) == len(encode_log_state(s))

    def test_required_space_formula(self):
        s = _state("abc123")
        new = ContributionRecord(AUTHORITY, 5, "xyz")
        assert required_space(s, new) == 44 + (44 + 6) + (44 + 3)


class TestDecode:
    """Decoding and its failure modes."""

    def test_round_trip_scenario_state(self):
        s = _state("abc123", "deadbeef" * 8)
        assert decode_log_state(encode_log_state(s)) == s

    def test_trailing_slack_is_ignored(self):
        s = _state("abc123")
        assert decode_log_state(encode_log_state(s) + b"\xff" * 37) == s

    def test_short_header_rejected(self):
        with pytest.raises(CorruptLayout, match="header"):
            decode_log_state(encode_log_state(LogState(AUTHORITY))[:43])

    def test_wrong_discriminator_rejected(self):
        buf = bytearray(encode_log_state(_state("abc")))
        buf[0] ^= 0xFF
        with pytest.raises(CorruptLayout, match="discriminator"):
            decode_log_state(bytes(buf))

    def test_count_beyond_data_rejected(self):
        buf = bytearray(encode_log_state(_state("abc")))
        buf[40:44] = encode_count(2)
        with pytest.raises(CorruptLayout, match="Truncated"):
            decode_log_state(bytes(buf))

    def test_truncated_hash_rejected(self):
        buf = encode_log_state(_state("abcdef"))
        with pytest.raises(CorruptLayout, match="Truncated code hash"):
            decode_log_state(buf[:-1])

    def test_zero_length_hash_rejected(self):
        buf = bytearray(encode_log_state(_state("a")))
        buf[84:88] = b"\x00\x00\x00\x00"
        with pytest.raises(CorruptLayout, match="length 0"):
            decode_log_state(bytes(buf[:88]))

    def test_oversized_hash_length_rejected(self):
        buf = bytearray(encode_log_state(_state("a")))
        buf[84:88] = struct.pack("<I", 65)
        with pytest.raises(CorruptLayout, match="length 65"):
            decode_log_state(bytes(buf) + b"a" * 64)

    def test_invalid_utf8_rejected(self):
        buf = bytearray(encode_log_state(_state("ab")))
        buf[88] = 0xC3
        buf[89] = 0x28
        with pytest.raises(CorruptLayout, match="UTF-8"):
            decode_log_state(bytes(buf))

    def test_decode_record_returns_next_offset(self):
        buf = encode_log_state(_state("one", "three"))
        first, offset = decode_record(buf, HEADER_SIZE)
        second, end = decode_record(buf, offset)
        assert (first.code_hash, second.code_hash) == ("one", "three")
        assert end == len(buf)
