"""
Contribution Log — HTTP Client
================================

``ContributionLogClient`` talks to a running contribution-log service
(``contribution_log.service``) and mirrors the program's Python API:
the same entry points, the same return shapes, and the same exception
classes.  A failed call re-raises the service's structured error as
the matching ``ContributionLogError`` subclass, so callers handle
``AuthorityMismatch`` identically whether the program runs in-process
or behind HTTP.

Nothing is retried: every entry point is one transaction and
resubmission is up to the caller.
"""

import json
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, List, Optional

from .codec import ContributionRecord, LogState
from .errors import ContributionLogError, error_from_dict
from .keys import Keypair, Pubkey, as_pubkey
from .milestone import project_hash
from .signing import sign_instruction
from .tx_log import TransactionLog


class ContributionLogClient:
    """
    Args:
        base_url:        Service root, e.g. ``http://localhost:8080``.
        timeout_seconds: Per-request socket timeout.
        audit_log:       Optional local trail of requests and failures.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 30.0,
        audit_log: Optional[TransactionLog] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout_seconds
        self.audit_log = audit_log
        self._program_id: Optional[Pubkey] = None

    # ── Entry points ──

    def initialize(self, caller: Keypair) -> Dict[str, Any]:
        return self._request("POST", "/initialize", {
            "caller": str(caller.pubkey),
            **self._sign(caller, "initialize", []),
        })

    def log_contribution(self, authority: Keypair, code_hash: str) -> ContributionRecord:
        resp = self._request("POST", "/contributions", {
            "authority": str(authority.pubkey),
            "code_hash": code_hash,
            **self._sign(authority, "log_contribution", [code_hash]),
        })
        return _record_from_dict(resp["contribution"])

    def commit_milestone(self, authority: Keypair, file_tree: Dict[str, Any]) -> Dict[str, Any]:
        """Log the tree's hash; the signature covers the locally computed digest."""
        return self._request("POST", "/milestones", {
            "authority": str(authority.pubkey),
            "file_tree": file_tree,
            **self._sign(authority, "log_contribution", [project_hash(file_tree)]),
        })

    # ── Reads ──

    def fetch_log_state(self) -> LogState:
        data = self._request("GET", "/log")
        return LogState(
            authority=Pubkey.from_string(data["authority"]),
            contributions=[_record_from_dict(c) for c in data["contributions"]],
        )

    def status(self) -> Dict[str, Any]:
        return self._request("GET", "/status")

    def health(self) -> Dict[str, Any]:
        return self._request("GET", "/health")

    def transactions(self, **filters: Any) -> List[Dict[str, Any]]:
        query = urllib.parse.urlencode({k: v for k, v in filters.items() if v is not None})
        path = "/transactions" + (f"?{query}" if query else "")
        return self._request("GET", path)["entries"]

    # ── Funding ──

    def airdrop(self, address, lamports: int) -> int:
        """Fund *address*; returns its new balance."""
        resp = self._request("POST", "/airdrop", {
            "address": str(as_pubkey(address)),
            "lamports": lamports,
        })
        return resp["balance"]

    def balance(self, address) -> int:
        return self._request("GET", f"/balance/{as_pubkey(address)}")["lamports"]

    # ── Signing ──

    def program_id(self) -> Pubkey:
        """The node's program id, fetched once."""
        if self._program_id is None:
            self._program_id = Pubkey.from_string(self.status()["program_id"])
        return self._program_id

    def _sign(self, keypair: Keypair, instruction: str, args: List[str]) -> Dict[str, Any]:
        return sign_instruction(keypair, instruction, self.program_id(), args)

    # ── Transport ──

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        body = json.dumps(payload).encode("utf-8") if payload is not None else None
        req = urllib.request.Request(
            f"{self.base_url}{path}",
            data=body,
            headers={"Content-Type": "application/json"},
            method=method,
        )
        self._log("CLIENT_SEND", f"{method} {path}")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                return json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8", errors="replace")
            self._log("CLIENT_ERROR", f"HTTP {e.code}: {error_body}")
            raise _error_from_body(e.code, error_body) from None

    def _log(self, event: str, detail: str):
        if self.audit_log is not None:
            self.audit_log.append_entry({
                "source": "ContributionLogClient",
                "event": event,
                "base_url": self.base_url,
                "detail": detail,
            })


def _record_from_dict(data: Dict[str, Any]) -> ContributionRecord:
    return ContributionRecord(
        contributor=Pubkey.from_string(data["contributor"]),
        timestamp=data["timestamp"],
        code_hash=data["code_hash"],
    )


def _error_from_body(status: int, body: str) -> ContributionLogError:
    try:
        detail = json.loads(body).get("detail")
    except ValueError:
        detail = None
    if isinstance(detail, dict):
        return error_from_dict(detail)
    return ContributionLogError(f"HTTP {status}: {detail if detail is not None else body}")
