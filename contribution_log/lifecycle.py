"""
Contribution Log — Account Lifecycle
======================================

Owns the storage discipline of the log state account:

  CREATE
    - Allocate the account at the derived address with room for the
      header and zero records.
    - The caller funds rent exemption for that size.
    - An address that already holds the log fails with
      ``AlreadyInitialized``.

  GROW (before every append)
    - The caller computes the exact byte count the account must hold
      after the append.
    - If the allocation is smaller, the payer funds the rent delta and
      the account is reallocated to exactly that size.
    - The account never shrinks.  Bytes in a grown region carry no
      meaning until the codec writes over them.

Both steps run inside the caller's ledger transaction; a failure
anywhere (e.g. ``InsufficientFunds``) rolls back the whole allocation.
"""

from typing import Optional

from .address import log_state_address
from .codec import HEADER_SIZE, LogState, decode_log_state, encode_log_state
from .errors import CorruptLayout, LogNotInitialized
from .keys import Pubkey
from .ledger import TransactionContext, minimum_balance
from .persistent_store import Account


class AccountLifecycleManager:
    """
    Creates and grows the singleton log state account.

    Args:
        program_id:    Program that owns the account.
        initial_space: Bytes allocated at creation (at least the header).
    """

    def __init__(self, program_id: Pubkey, initial_space: int = HEADER_SIZE):
        if initial_space < HEADER_SIZE:
            raise ValueError(
                f"initial_space must be >= {HEADER_SIZE} bytes (header), got {initial_space}"
            )
        self.program_id = program_id
        self.initial_space = initial_space

    @property
    def address(self) -> Pubkey:
        """Derived fresh on every access."""
        return log_state_address(self.program_id)[0]

    def create(self, ctx: TransactionContext, caller: Pubkey) -> LogState:
        """Allocate and initialize the log with *caller* as authority."""
        address = self.address
        ctx.allocate(address, self.initial_space, self.program_id)
        self._fund(ctx, caller, address, self.initial_space)
        state = LogState(authority=caller)
        ctx.write(address, encode_log_state(state))
        return state

    def ensure_capacity(
        self, ctx: TransactionContext, required_bytes: int, payer: Pubkey
    ) -> int:
        """
        Grow the account to *required_bytes* if it is smaller.

        Returns the resulting capacity.  Raises ``InsufficientFunds``
        when *payer* cannot cover the rent delta or a platform size
        limit would be exceeded.
        """
        address = self.address
        account = self._account(ctx, address)
        if account.space >= required_bytes:
            return account.space
        # Fund first so an unfunded growth never reaches the allocator.
        self._fund(ctx, payer, address, required_bytes)
        return ctx.resize(address, required_bytes).space

    def load(self, ctx: TransactionContext) -> LogState:
        """Decode the current log state inside a transaction."""
        return read_log_state(self._account(ctx, self.address), self.program_id)

    def _account(self, ctx: TransactionContext, address: Pubkey) -> Account:
        account = ctx.get_account(address)
        if account is None:
            raise LogNotInitialized(f"No log state account at {address}")
        return account

    @staticmethod
    def _fund(ctx: TransactionContext, payer: Pubkey, address: Pubkey, space: int) -> None:
        shortfall = minimum_balance(space) - ctx.balance(address)
        if shortfall > 0:
            ctx.transfer(payer, address, shortfall)


def read_log_state(account: Optional[Account], program_id: Pubkey) -> LogState:
    """
    Decode a log state account read from the ledger.

    Raises ``LogNotInitialized`` for a missing or empty account and
    ``CorruptLayout`` for foreign or malformed data.
    """
    if account is None or not account.data:
        raise LogNotInitialized()
    if account.owner != program_id:
        raise CorruptLayout(
            f"Account {account.address} is owned by {account.owner}, not {program_id}"
        )
    return decode_log_state(bytes(account.data))
