"""
Contribution Log — Account Storage Backends
=============================================

The ledger keeps every account (address → lamports, owner, data) in an
``AccountStore``.  Stores are transactional: the ledger opens a
transaction with ``begin()``, and either ``commit()``s or
``rollback()``s it.  A rolled-back transaction leaves every byte it
touched exactly as before, including accounts it created.

ARCHITECTURE:
  - ``AccountStore``        — abstract interface.
  - ``MemoryAccountStore``  — dict + undo journal (tests, single process).
  - ``SQLiteAccountStore``  — persistent table, native SQL transactions.

SQLITE:
  - WAL journal for crash safety.
  - ``isolation_level=None``: transactions are opened and closed
    explicitly with BEGIN IMMEDIATE / COMMIT / ROLLBACK.
  - Accounts are never deleted; there is no DELETE statement.
"""

import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .keys import Pubkey


@dataclass
class Account:
    """A ledger account: balance, owning program, and raw data."""
    address: Pubkey
    lamports: int
    owner: Pubkey
    data: bytearray = field(default_factory=bytearray)

    def copy(self) -> "Account":
        return Account(self.address, self.lamports, self.owner, bytearray(self.data))

    @property
    def space(self) -> int:
        """Allocated data capacity in bytes."""
        return len(self.data)


class AccountStore(ABC):
    """Transactional key → Account mapping."""

    @abstractmethod
    def get(self, address: Pubkey) -> Optional[Account]:
        """Return a private copy of the account, or ``None``."""

    @abstractmethod
    def put(self, account: Account) -> None:
        """Insert or replace an account."""

    @abstractmethod
    def addresses(self) -> List[Pubkey]:
        """All stored addresses."""

    @abstractmethod
    def begin(self) -> None: ...

    @abstractmethod
    def commit(self) -> None: ...

    @abstractmethod
    def rollback(self) -> None: ...

    def close(self) -> None:
        pass


# ────────────────────────────────────────────────────────────
#  In-memory backend
# ────────────────────────────────────────────────────────────

class MemoryAccountStore(AccountStore):
    """
    Dict-backed store.  While a transaction is open, the first write to
    each address journals its prior value (or absence) for rollback.
    """

    def __init__(self) -> None:
        self._accounts: Dict[Pubkey, Account] = {}
        self._journal: Optional[Dict[Pubkey, Optional[Account]]] = None

    def get(self, address: Pubkey) -> Optional[Account]:
        account = self._accounts.get(address)
        return account.copy() if account else None

    def put(self, account: Account) -> None:
        if self._journal is not None and account.address not in self._journal:
            prior = self._accounts.get(account.address)
            self._journal[account.address] = prior.copy() if prior else None
        self._accounts[account.address] = account.copy()

    def addresses(self) -> List[Pubkey]:
        return list(self._accounts)

    def begin(self) -> None:
        if self._journal is not None:
            raise RuntimeError("Transaction already open")
        self._journal = {}

    def commit(self) -> None:
        self._journal = None

    def rollback(self) -> None:
        if self._journal is None:
            return
        for address, prior in self._journal.items():
            if prior is None:
                self._accounts.pop(address, None)
            else:
                self._accounts[address] = prior
        self._journal = None


# ────────────────────────────────────────────────────────────
#  SQLite backend
# ────────────────────────────────────────────────────────────

class SQLiteAccountStore(AccountStore):
    """
    SQLite-backed persistent account storage.

    Table schema:
      ``accounts(address BLOB PRIMARY KEY, lamports INTEGER,
        owner BLOB, data BLOB)``
    """

    def __init__(self, db_path: str = "contribution_log.db") -> None:
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False, isolation_level=None)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._create_table()

    def _create_table(self) -> None:
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS accounts (
                address BLOB PRIMARY KEY,
                lamports INTEGER NOT NULL,
                owner BLOB NOT NULL,
                data BLOB NOT NULL
            )
        """)

    def get(self, address: Pubkey) -> Optional[Account]:
        row = self._conn.execute(
            "SELECT lamports, owner, data FROM accounts WHERE address = ?",
            (bytes(address),),
        ).fetchone()
        if row is None:
            return None
        return Account(address, row[0], Pubkey(row[1]), bytearray(row[2]))

    def put(self, account: Account) -> None:
        self._conn.execute(
            "INSERT INTO accounts (address, lamports, owner, data) VALUES (?, ?, ?, ?) "
            "ON CONFLICT(address) DO UPDATE SET "
            "lamports = excluded.lamports, owner = excluded.owner, data = excluded.data",
            (
                bytes(account.address),
                account.lamports,
                bytes(account.owner),
                bytes(account.data),
            ),
        )

    def addresses(self) -> List[Pubkey]:
        cursor = self._conn.execute("SELECT address FROM accounts ORDER BY address")
        return [Pubkey(row[0]) for row in cursor]

    def begin(self) -> None:
        self._conn.execute("BEGIN IMMEDIATE")

    def commit(self) -> None:
        self._conn.execute("COMMIT")

    def rollback(self) -> None:
        if self._conn.in_transaction:
            self._conn.execute("ROLLBACK")

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
