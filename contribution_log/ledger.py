"""
Contribution Log — Local Ledger
=================================

A single-process rendition of the ledger platform contract the program
depends on.  The program never talks to consensus, fees or transport;
it needs exactly four things from the platform, and this module
provides them:

  1. ACCOUNTS — 32-byte addresses holding lamports, an owner and data.
  2. RENT     — storage must be pre-funded:
                ``minimum_balance(len) = (128 + len) * 3480 * 2``
  3. CLOCK    — a signed 64-bit unix timestamp, read once per transaction.
  4. ATOMIC TRANSACTIONS — every invocation runs serialized; any failure
                rolls back every byte it touched.

LIMITS:
  - An account may grow by at most 10 240 bytes per reallocation.
  - An account may never exceed 10 MiB of data.
  Exceeding either is reported as ``InsufficientFunds``: the platform
  cannot supply the requested resources.

Every transaction (committed or failed) is appended to the
``TransactionLog`` with its program log messages.
"""

import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

from .errors import AlreadyInitialized, ContributionLogError, InsufficientFunds
from .keys import Pubkey
from .persistent_store import Account, AccountStore, MemoryAccountStore
from .tx_log import TransactionLog, TxLogEntry


SYSTEM_PROGRAM_ID = Pubkey.default()

LAMPORTS_PER_BYTE_YEAR = 3480
EXEMPTION_THRESHOLD_YEARS = 2
ACCOUNT_STORAGE_OVERHEAD = 128

MAX_PERMITTED_DATA_INCREASE = 10_240
MAX_ACCOUNT_DATA_LEN = 10 * 1024 * 1024


def minimum_balance(data_len: int) -> int:
    """Lamports an account of *data_len* bytes must hold to be rent-exempt."""
    return (ACCOUNT_STORAGE_OVERHEAD + data_len) * LAMPORTS_PER_BYTE_YEAR * EXEMPTION_THRESHOLD_YEARS


def _system_clock() -> int:
    return int(time.time())


class TransactionContext:
    """
    Handle passed to program code for the duration of one transaction.

    All reads and writes go through the ledger's store while its
    transaction is open, so a rollback undoes them together.
    """

    def __init__(
        self,
        store: AccountStore,
        program_id: Pubkey,
        instruction: str,
        signer: Pubkey,
        unix_timestamp: int,
    ):
        self._store = store
        self.program_id = program_id
        self.instruction = instruction
        self.signer = signer
        self.unix_timestamp = unix_timestamp
        self.logs: List[str] = [f"Program {program_id} invoke [1]"]
        self.entry: Optional[TxLogEntry] = None

    # ── accounts ──

    def get_account(self, address: Pubkey) -> Optional[Account]:
        return self._store.get(address)

    def balance(self, address: Pubkey) -> int:
        account = self._store.get(address)
        return account.lamports if account else 0

    def transfer(self, source: Pubkey, dest: Pubkey, lamports: int) -> None:
        """Move *lamports* from *source* to *dest* (created if absent)."""
        if lamports < 0:
            raise ValueError("Transfer amount must be non-negative")
        if lamports == 0:
            return
        src = self._store.get(source)
        if src is None or src.lamports < lamports:
            have = src.lamports if src else 0
            raise InsufficientFunds(
                f"Insufficient funds: {source} has {have} lamports, needs {lamports}"
            )
        dst = self._store.get(dest) or Account(dest, 0, SYSTEM_PROGRAM_ID)
        src.lamports -= lamports
        dst.lamports += lamports
        self._store.put(src)
        self._store.put(dst)

    def credit(self, address: Pubkey, lamports: int) -> None:
        """Mint new lamports into *address* (faucet only)."""
        account = self._store.get(address) or Account(address, 0, SYSTEM_PROGRAM_ID)
        account.lamports += lamports
        self._store.put(account)

    def allocate(self, address: Pubkey, space: int, owner: Pubkey) -> Account:
        """
        Give *address* ``space`` bytes of data owned by *owner*.

        An address that already carries data or belongs to a program is
        in use.  A bare system account (lamports only) is taken over.
        """
        if space > MAX_ACCOUNT_DATA_LEN:
            raise InsufficientFunds(
                f"Requested {space} bytes exceeds the {MAX_ACCOUNT_DATA_LEN}-byte account limit"
            )
        account = self._store.get(address)
        if account is not None and (account.data or account.owner != SYSTEM_PROGRAM_ID):
            raise AlreadyInitialized(f"Allocate: account {address} already in use")
        account = account or Account(address, 0, SYSTEM_PROGRAM_ID)
        account.owner = owner
        account.data = bytearray(space)
        self._store.put(account)
        return account

    def resize(self, address: Pubkey, new_len: int) -> Account:
        """Change the data length of a program-owned account, keeping its prefix."""
        account = self._store.get(address)
        if account is None:
            raise KeyError(f"Unknown account: {address}")
        if account.owner != self.program_id:
            raise PermissionError(f"Account {address} is not owned by {self.program_id}")
        growth = new_len - len(account.data)
        if growth > MAX_PERMITTED_DATA_INCREASE:
            raise InsufficientFunds(
                f"Realloc of {growth} bytes exceeds the per-call limit of "
                f"{MAX_PERMITTED_DATA_INCREASE}"
            )
        if new_len > MAX_ACCOUNT_DATA_LEN:
            raise InsufficientFunds(
                f"Account size {new_len} exceeds the {MAX_ACCOUNT_DATA_LEN}-byte limit"
            )
        if growth > 0:
            account.data.extend(bytes(growth))
        else:
            del account.data[new_len:]
        self._store.put(account)
        return account

    def write(self, address: Pubkey, body: bytes, offset: int = 0) -> None:
        """Overwrite data bytes in place; never changes the allocation."""
        account = self._store.get(address)
        if account is None:
            raise KeyError(f"Unknown account: {address}")
        if account.owner != self.program_id:
            raise PermissionError(f"Account {address} is not owned by {self.program_id}")
        end = offset + len(body)
        if end > len(account.data):
            raise ValueError(
                f"Write of {len(body)} bytes at {offset} overruns {len(account.data)}-byte account"
            )
        account.data[offset:end] = body
        self._store.put(account)

    # ── program log ──

    def msg(self, text: str) -> None:
        self.logs.append(f"Program log: {text}")


class Ledger:
    """
    Serialized, transactional account ledger.

    Args:
        store:  Account storage backend (in-memory by default).
        clock:  Callable returning the current unix timestamp.
        tx_log: Transaction log receiving one entry per transaction.
    """

    def __init__(
        self,
        store: Optional[AccountStore] = None,
        clock: Optional[Callable[[], int]] = None,
        tx_log: Optional[TransactionLog] = None,
    ):
        self.store = store or MemoryAccountStore()
        self.clock = clock or _system_clock
        self.tx_log = tx_log if tx_log is not None else TransactionLog()
        self._lock = threading.Lock()

    def get_account(self, address: Pubkey) -> Optional[Account]:
        """Committed state of *address* (a private copy)."""
        with self._lock:
            return self.store.get(address)

    def balance(self, address: Pubkey) -> int:
        account = self.get_account(address)
        return account.lamports if account else 0

    def airdrop(self, address: Pubkey, lamports: int) -> TxLogEntry:
        """Mint *lamports* into *address* (local funding faucet)."""
        if lamports <= 0:
            raise ValueError("Airdrop amount must be positive")
        with self.transaction(SYSTEM_PROGRAM_ID, "airdrop", address) as ctx:
            ctx.credit(address, lamports)
            ctx.msg(f"Airdropped {lamports} lamports to {address}")
        return ctx.entry

    @contextmanager
    def transaction(
        self, program_id: Pubkey, instruction: str, signer: Pubkey
    ) -> Iterator[TransactionContext]:
        """
        Run one atomic transaction.

        Commits when the block exits normally.  On any exception, including
        cancellation, every touched account is restored and the failure is
        recorded before the exception propagates unchanged.
        """
        with self._lock:
            ctx = TransactionContext(
                self.store, program_id, instruction, signer, int(self.clock())
            )
            self.store.begin()
            try:
                yield ctx
            except BaseException as e:
                # Cancellation (KeyboardInterrupt, CancelledError) rolls back too.
                self.store.rollback()
                if isinstance(e, ContributionLogError):
                    error = e.to_dict()
                else:
                    error = {"error": type(e).__name__, "code": None, "message": str(e)}
                ctx.logs.append(f"Program {program_id} failed: {error['message']}")
                ctx.entry = self._record(ctx, "failed", error)
                raise
            else:
                self.store.commit()
                ctx.logs.append(f"Program {program_id} success")
                ctx.entry = self._record(ctx, "committed", None)

    def _record(
        self, ctx: TransactionContext, status: str, error: Optional[Dict[str, Any]]
    ) -> TxLogEntry:
        return self.tx_log.append_entry({
            "source": "Ledger",
            "event": "TX_COMMITTED" if status == "committed" else "TX_FAILED",
            "program_id": str(ctx.program_id),
            "instruction": ctx.instruction,
            "signer": str(ctx.signer),
            "status": status,
            "unix_timestamp": ctx.unix_timestamp,
            "logs": list(ctx.logs),
            "error": error,
        })

    def close(self) -> None:
        self.store.close()
        self.tx_log.close()
