"""
Contribution Log — Configuration
==================================

All runtime settings come from environment variables with the
``CONTRIB_LOG_`` prefix:

  CONTRIB_LOG_PROGRAM_ID         base58 program id (owner of the log account)
  CONTRIB_LOG_DB_PATH            SQLite file for accounts and the transaction
                                 log; unset → in-memory
  CONTRIB_LOG_INITIAL_SPACE      bytes allocated at initialize (>= 44)
  CONTRIB_LOG_AIRDROP_LIMIT      max lamports per faucet request
  CONTRIB_LOG_NODE_ID            node name reported by /health
  CONTRIB_LOG_SIGNATURE_MAX_AGE  seconds a signed request stays valid
  PORT                           HTTP port for ``python -m contribution_log.service``
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .codec import HEADER_SIZE
from .keys import Pubkey


DEFAULT_PROGRAM_ID = Pubkey.from_string("Fg6PaFpoGXkYsidMpWTK6W2BeZ7FEfcYkg476zPFsLnS")

LAMPORTS_PER_SOL = 1_000_000_000


@dataclass
class LedgerConfig:
    """Settings for one contribution-log node."""
    program_id: Pubkey = DEFAULT_PROGRAM_ID
    db_path: Optional[str] = None
    initial_space: int = HEADER_SIZE
    airdrop_limit: int = 10 * LAMPORTS_PER_SOL
    node_id: str = "node-0"
    signature_max_age: int = 120
    port: int = 8080

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "LedgerConfig":
        env = os.environ if environ is None else environ
        program_id = env.get("CONTRIB_LOG_PROGRAM_ID")
        return cls(
            program_id=Pubkey.from_string(program_id) if program_id else DEFAULT_PROGRAM_ID,
            db_path=env.get("CONTRIB_LOG_DB_PATH") or None,
            initial_space=int(env.get("CONTRIB_LOG_INITIAL_SPACE", str(HEADER_SIZE))),
            airdrop_limit=int(env.get("CONTRIB_LOG_AIRDROP_LIMIT", str(10 * LAMPORTS_PER_SOL))),
            node_id=env.get("CONTRIB_LOG_NODE_ID", "node-0"),
            signature_max_age=int(env.get("CONTRIB_LOG_SIGNATURE_MAX_AGE", "120")),
            port=int(env.get("PORT", "8080")),
        )
