"""
Contribution Log — FastAPI Service Layer
==========================================

Exposes the contribution log program and its local ledger over HTTP.

Endpoints:
  GET  /health           — liveness / readiness probe
  GET  /status           — program id, log address, counts, tx-log integrity
  POST /airdrop          — credit lamports to a principal (local faucet)
  GET  /balance/{key}    — lamports held by a principal
  POST /initialize       — create the singleton log (caller = authority)
  POST /contributions    — append a code hash (authority only)
  POST /milestones       — hash a project file tree and append it
  GET  /log              — read the whole log
  GET  /transactions     — query the transaction log

Signed entry points (initialize, contributions, milestones) carry the
signer's base58 public key, an ``issued_at`` unix time, a ``nonce`` and
a base58 Ed25519 signature over the instruction (see
``contribution_log.signing``).
The signature is checked before the program runs; failures return 401
and are recorded in the transaction log.

Errors are returned as ``{"detail": {"error", "code", "message"}}``.
"""

import time
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from contribution_log.address import log_state_address
from contribution_log.config import LedgerConfig
from contribution_log.errors import (
    AddressDerivationError,
    AlreadyInitialized,
    AuthorityMismatch,
    CodeHashTooLong,
    ContributionLogError,
    CorruptLayout,
    EmptyCodeHash,
    InsufficientFunds,
    LogNotInitialized,
    MissingSignature,
)
from contribution_log.keys import Pubkey
from contribution_log.ledger import Ledger
from contribution_log.milestone import project_hash
from contribution_log.persistent_store import MemoryAccountStore, SQLiteAccountStore
from contribution_log.program import ContributionLogProgram
from contribution_log.signing import SignatureVerifier
from contribution_log.tx_log import PersistentTransactionLog, TransactionLog


_STATUS_BY_ERROR = {
    EmptyCodeHash: 400,
    CodeHashTooLong: 400,
    AuthorityMismatch: 403,
    AlreadyInitialized: 409,
    InsufficientFunds: 402,
    LogNotInitialized: 404,
    MissingSignature: 401,
    CorruptLayout: 500,
    AddressDerivationError: 500,
}


# ── Request Models ──

class AirdropRequest(BaseModel):
    """Fund a principal on the local ledger."""
    address: str
    lamports: int


class InitializeRequest(BaseModel):
    """Create the log; the caller becomes the authority."""
    caller: str
    issued_at: int
    nonce: str
    signature: str


class ContributionRequest(BaseModel):
    """Append one code hash."""
    authority: str
    code_hash: str
    issued_at: int
    nonce: str
    signature: str


class MilestoneRequest(BaseModel):
    """Commit a whole project tree as one contribution; the signature covers its hash."""
    authority: str
    file_tree: Dict[str, Any]
    issued_at: int
    nonce: str
    signature: str


def _error_response(e: ContributionLogError) -> HTTPException:
    return HTTPException(status_code=_STATUS_BY_ERROR.get(type(e), 500), detail=e.to_dict())


def _parse_key(text: str, field_name: str) -> Pubkey:
    try:
        return Pubkey.from_string(text)
    except ValueError as e:
        raise HTTPException(
            status_code=400,
            detail={"error": "InvalidPubkey", "code": None,
                    "message": f"{field_name}: {e}"},
        )


def create_app(
    config: Optional[LedgerConfig] = None,
    clock: Optional[Callable[[], int]] = None,
) -> FastAPI:
    """Build a service instance with its own ledger and program."""
    config = config or LedgerConfig.from_env()
    if config.db_path:
        store = SQLiteAccountStore(config.db_path)
        tx_log = PersistentTransactionLog(config.db_path)
    else:
        store = MemoryAccountStore()
        tx_log = TransactionLog()
    ledger = Ledger(store=store, clock=clock, tx_log=tx_log)
    program = ContributionLogProgram(ledger, config.program_id, config.initial_space)
    verifier = SignatureVerifier(config.program_id, config.signature_max_age)
    start_time = time.time()

    app = FastAPI(
        title="Contribution Log",
        description="Authority-gated, append-only contribution log",
        version="0.1.0",
    )
    app.state.config = config
    app.state.ledger = ledger
    app.state.program = program

    ledger.tx_log.append_entry({
        "source": "Service",
        "event": "NODE_STARTED",
        "node_id": config.node_id,
        "program_id": str(config.program_id),
        "persistent": bool(config.db_path),
    })

    def authorize(signer: Pubkey, instruction: str, args: List[str], req: Any):
        try:
            verifier.verify(signer, instruction, args, req.issued_at, req.nonce, req.signature)
        except MissingSignature as e:
            ledger.tx_log.append_entry({
                "source": "Service",
                "event": "SIGNATURE_REJECTED",
                "instruction": instruction,
                "signer": str(signer),
                "status": "rejected",
                "error": e.to_dict(),
            })
            raise _error_response(e)

    @app.get("/health")
    async def health_check():
        """Liveness/readiness probe."""
        return {
            "status": "healthy",
            "node_id": config.node_id,
            "uptime_seconds": round(time.time() - start_time, 2),
        }

    @app.get("/status")
    async def system_status():
        """Program, log account and transaction-log summary."""
        address, bump = log_state_address(config.program_id)
        status: Dict[str, Any] = {
            "node_id": config.node_id,
            "program_id": str(config.program_id),
            "log_address": str(address),
            "bump": bump,
            "initialized": False,
            "authority": None,
            "contributions": 0,
            "account_space": program.account_space(),
            "transactions": len(ledger.tx_log),
            "tx_log_integrity": ledger.tx_log.verify_integrity(),
        }
        try:
            state = program.fetch_log_state()
        except LogNotInitialized:
            return status
        except ContributionLogError as e:
            raise _error_response(e)
        status.update(
            initialized=True,
            authority=str(state.authority),
            contributions=len(state),
        )
        return status

    @app.post("/airdrop")
    async def airdrop(req: AirdropRequest):
        """Credit lamports from the local faucet."""
        address = _parse_key(req.address, "address")
        if req.lamports <= 0 or req.lamports > config.airdrop_limit:
            raise HTTPException(
                status_code=400,
                detail={"error": "InvalidAirdrop", "code": None,
                        "message": f"lamports must be in [1, {config.airdrop_limit}]"},
            )
        entry = ledger.airdrop(address, req.lamports)
        return {
            "address": str(address),
            "balance": ledger.balance(address),
            "signature": entry.signature,
        }

    @app.get("/balance/{address}")
    async def balance(address: str):
        key = _parse_key(address, "address")
        return {"address": str(key), "lamports": ledger.balance(key)}

    @app.post("/initialize")
    async def initialize(req: InitializeRequest):
        """Create the singleton log; the caller becomes its authority."""
        caller = _parse_key(req.caller, "caller")
        authorize(caller, "initialize", [], req)
        try:
            receipt = program.initialize(caller)
        except ContributionLogError as e:
            raise _error_response(e)
        return {
            "signature": receipt.signature,
            "log_address": str(program.address),
            "authority": str(receipt.value.authority),
            "logs": receipt.logs,
        }

    @app.post("/contributions")
    async def log_contribution(req: ContributionRequest):
        """Append a code hash to the log (authority only)."""
        authority = _parse_key(req.authority, "authority")
        authorize(authority, "log_contribution", [req.code_hash], req)
        try:
            receipt = program.log_contribution(authority, req.code_hash)
        except ContributionLogError as e:
            raise _error_response(e)
        return {
            "signature": receipt.signature,
            "contribution": receipt.value.to_dict(),
            "logs": receipt.logs,
        }

    @app.post("/milestones")
    async def commit_milestone(req: MilestoneRequest):
        """Hash a project tree deterministically and log the digest."""
        authority = _parse_key(req.authority, "authority")
        try:
            digest = project_hash(req.file_tree)
        except ValueError as e:
            raise HTTPException(
                status_code=400,
                detail={"error": "InvalidFileTree", "code": None, "message": str(e)},
            )
        authorize(authority, "log_contribution", [digest], req)
        try:
            receipt = program.log_contribution(authority, digest)
        except ContributionLogError as e:
            raise _error_response(e)
        return {
            "signature": receipt.signature,
            "hash": digest,
            "contribution": receipt.value.to_dict(),
        }

    @app.get("/log")
    async def read_log():
        """The whole log, decoded from the account."""
        try:
            state = program.fetch_log_state()
        except ContributionLogError as e:
            raise _error_response(e)
        return {"log_address": str(program.address), **state.to_dict()}

    @app.get("/transactions")
    async def transactions(
        instruction: Optional[str] = None,
        signer: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = Query(50, ge=0),
    ):
        """Query the append-only transaction log."""
        if signer is not None:
            signer = str(_parse_key(signer, "signer"))
        entries = ledger.tx_log.get_entries(
            instruction=instruction, signer=signer, status=status, limit=limit,
        )
        return {
            "total_entries": len(ledger.tx_log),
            "integrity": ledger.tx_log.verify_integrity(),
            "entries": [e.to_dict() for e in entries],
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=app.state.config.port)
