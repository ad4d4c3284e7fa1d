"""
Contribution Log — Transaction Log
====================================

Every transaction the ledger executes, committed or rolled back, is
recorded in an append-only, hash-chained log together with the program
log messages it emitted.  This is the system's event trail: operators
read it to see who initialized the log, who appended, and why a
submission failed.

CHAIN:
  ``entry_hash_i = SHA-256(index || timestamp || data || entry_hash_{i-1})``
  Modifying any entry breaks the chain for every later entry.

ENTRY DATA:
  ``{"source", "event", "instruction", "signer", "status",
    "logs": [...], "error": {...} | None, ...}``

BACKENDS:
  - ``TransactionLog``            — in memory (tests, throwaway nodes).
  - ``PersistentTransactionLog``  — SQLite ``tx_log`` table, normally in
    the same database file as the accounts, so the trail and the state
    it explains are restored together.
"""

import hashlib
import json
import sqlite3
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


GENESIS_HASH = hashlib.sha256(b"CONTRIBUTION-LOG-GENESIS").hexdigest()


@dataclass
class TxLogEntry:
    """One recorded transaction."""
    index: int
    timestamp: float
    data: Dict[str, Any]
    prev_hash: str
    entry_hash: str = ""

    def compute_hash(self) -> str:
        content = json.dumps({
            "index": self.index,
            "timestamp": self.timestamp,
            "data": self.data,
            "prev_hash": self.prev_hash,
        }, sort_keys=True, default=str)
        return hashlib.sha256(content.encode()).hexdigest()

    @property
    def signature(self) -> str:
        """Short transaction id shown to clients."""
        return self.entry_hash[:32]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "signature": self.signature,
            "timestamp": self.timestamp,
            "data": self.data,
        }


class TransactionLog:
    """Append-only, hash-chained record of ledger transactions."""

    def __init__(self):
        self._entries: List[TxLogEntry] = []

    def append_entry(self, data: Dict[str, Any]) -> TxLogEntry:
        """Append *data*; the timestamp is taken at write time."""
        prev_hash = self._entries[-1].entry_hash if self._entries else GENESIS_HASH
        entry = TxLogEntry(
            index=len(self._entries),
            timestamp=time.time(),
            data=data,
            prev_hash=prev_hash,
        )
        entry.entry_hash = entry.compute_hash()
        self._write(entry)
        self._entries.append(entry)
        return entry

    def _write(self, entry: TxLogEntry) -> None:
        pass

    def verify_integrity(self) -> bool:
        """Recompute every hash and check the linkage."""
        return _verify_chain(self._entries)

    def get_entries(
        self,
        instruction: Optional[str] = None,
        signer: Optional[str] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[TxLogEntry]:
        """Read-only query; filters combine with AND, *limit* keeps the newest."""
        if limit is not None and limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")
        results = self._entries
        if instruction:
            results = [e for e in results if e.data.get("instruction") == instruction]
        if signer:
            results = [e for e in results if e.data.get("signer") == signer]
        if status:
            results = [e for e in results if e.data.get("status") == status]
        if limit:
            results = results[-limit:]
        return list(results)

    def last(self) -> Optional[TxLogEntry]:
        return self._entries[-1] if self._entries else None

    def close(self) -> None:
        pass

    def __len__(self):
        return len(self._entries)


# ────────────────────────────────────────────────────────────
#  SQLite-backed log
# ────────────────────────────────────────────────────────────

class SQLiteTxLogBackend:
    """
    Append-only table of transaction log entries.

    Table schema:
      ``tx_log(idx INTEGER PRIMARY KEY, timestamp REAL,
        data TEXT, prev_hash TEXT, entry_hash TEXT)``

    Only INSERT and SELECT are ever issued.
    """

    def __init__(self, db_path: str = "contribution_log.db") -> None:
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS tx_log (
                idx INTEGER PRIMARY KEY,
                timestamp REAL NOT NULL,
                data TEXT NOT NULL,
                prev_hash TEXT NOT NULL,
                entry_hash TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def append(self, entry: TxLogEntry) -> None:
        self._conn.execute(
            "INSERT INTO tx_log (idx, timestamp, data, prev_hash, entry_hash) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                entry.index,
                entry.timestamp,
                json.dumps(entry.data, sort_keys=True, default=str),
                entry.prev_hash,
                entry.entry_hash,
            ),
        )
        self._conn.commit()

    def get_all(self) -> List[TxLogEntry]:
        cursor = self._conn.execute(
            "SELECT idx, timestamp, data, prev_hash, entry_hash FROM tx_log ORDER BY idx"
        )
        return [
            TxLogEntry(index=row[0], timestamp=row[1], data=json.loads(row[2]),
                       prev_hash=row[3], entry_hash=row[4])
            for row in cursor
        ]

    def close(self) -> None:
        self._conn.close()


class PersistentTransactionLog(TransactionLog):
    """
    ``TransactionLog`` whose entries survive restarts.

    Existing entries are loaded on open and the chain continues from the
    last stored hash; every append is written through to SQLite before it
    is returned.  ``verify_integrity`` re-reads the table, so edits made
    to the database file are detected.
    """

    def __init__(self, db_path: str = "contribution_log.db"):
        super().__init__()
        self._backend = SQLiteTxLogBackend(db_path)
        self._entries = self._backend.get_all()

    def _write(self, entry: TxLogEntry) -> None:
        self._backend.append(entry)

    def verify_integrity(self) -> bool:
        return _verify_chain(self._backend.get_all())

    def close(self) -> None:
        self._backend.close()


def _verify_chain(entries: List[TxLogEntry]) -> bool:
    prev = GENESIS_HASH
    for entry in entries:
        if entry.prev_hash != prev or entry.entry_hash != entry.compute_hash():
            return False
        prev = entry.entry_hash
    return True
