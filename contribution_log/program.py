"""
Contribution Log — Program Entry Points
=========================================

The two instructions of the contribution log, each one atomic ledger
transaction:

  initialize(caller)
      Derive the log address, allocate the account, record *caller*
      as the permanent authority.

  log_contribution(authority, code_hash)
      1. Validate 1 <= len(code_hash) <= 64 (UTF-8 bytes).
      2. Authority gate: signer must equal the stored authority.
      3. Build the record {signer, clock.unix_timestamp, code_hash}.
      4. Grow the account to exactly header + all records + new record.
      5. Write the record at the tail and bump the count.

Any failure at any step rolls the whole transaction back; earlier
records are never rewritten, only the count and the new tail bytes.

Reading (``fetch_log_state``) needs no signer and no transaction.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional

from .authority import check_authority
from .codec import (
    COUNT_OFFSET,
    HEADER_SIZE,
    MAX_HASH_LEN,
    ContributionRecord,
    LogState,
    encode_count,
    encode_record,
    required_space,
    state_size,
)
from .config import DEFAULT_PROGRAM_ID
from .errors import CodeHashTooLong, EmptyCodeHash
from .keys import Pubkey
from .ledger import Ledger
from .lifecycle import AccountLifecycleManager, read_log_state


@dataclass
class Receipt:
    """Outcome of a committed instruction."""
    signature: str
    logs: List[str] = field(default_factory=list)
    value: Any = None


def validate_code_hash(code_hash: str) -> None:
    """Raise ``EmptyCodeHash`` / ``CodeHashTooLong`` for out-of-range input."""
    if not code_hash:
        raise EmptyCodeHash()
    length = len(code_hash.encode("utf-8"))
    if length > MAX_HASH_LEN:
        raise CodeHashTooLong(
            f"The provided code hash is too long ({length} bytes). Max {MAX_HASH_LEN} characters."
        )


class ContributionLogProgram:
    """
    The contribution log program bound to one ledger.

    Args:
        ledger:        Ledger the program executes against.
        program_id:    Id owning the log account (feeds address derivation).
        initial_space: Bytes allocated by ``initialize``.
    """

    def __init__(
        self,
        ledger: Ledger,
        program_id: Pubkey = DEFAULT_PROGRAM_ID,
        initial_space: int = HEADER_SIZE,
    ):
        self.ledger = ledger
        self.program_id = program_id
        self.lifecycle = AccountLifecycleManager(program_id, initial_space)

    @property
    def address(self) -> Pubkey:
        return self.lifecycle.address

    # ── Instructions ──

    def initialize(self, caller: Pubkey) -> Receipt:
        """Create the singleton log with *caller* as authority."""
        with self.ledger.transaction(self.program_id, "initialize", caller) as ctx:
            state = self.lifecycle.create(ctx, caller)
            ctx.msg(f"Contribution log initialized. Authority: {state.authority}")
        return Receipt(ctx.entry.signature, ctx.entry.data["logs"], state)

    def log_contribution(self, authority: Pubkey, code_hash: str) -> Receipt:
        """Append one record signed by *authority*."""
        with self.ledger.transaction(self.program_id, "log_contribution", authority) as ctx:
            validate_code_hash(code_hash)
            state = self.lifecycle.load(ctx)
            check_authority(state, authority)

            record = ContributionRecord(
                contributor=authority,
                timestamp=ctx.unix_timestamp,
                code_hash=code_hash,
            )
            self.lifecycle.ensure_capacity(ctx, required_space(state, record), payer=authority)

            address = self.address
            ctx.write(address, encode_record(record), offset=state_size(state))
            ctx.write(address, encode_count(len(state.contributions) + 1), offset=COUNT_OFFSET)
            ctx.msg(f"Contribution logged by authority: {authority}")
        return Receipt(ctx.entry.signature, ctx.entry.data["logs"], record)

    # ── Reads ──

    def fetch_log_state(self) -> LogState:
        """Decode the whole log from committed ledger state."""
        return read_log_state(self.ledger.get_account(self.address), self.program_id)

    def account_space(self) -> Optional[int]:
        """Allocated bytes of the log account, ``None`` before initialize."""
        account = self.ledger.get_account(self.address)
        return account.space if account else None
