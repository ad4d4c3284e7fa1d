"""
Contribution Log — Integration Test Suite (Live Node)
=======================================================

End-to-end checks against a running node
(``python -m contribution_log.service``).  Skipped unless
CONTRIB_LOG_BASE_URL points at one, e.g.::

    CONTRIB_LOG_BASE_URL=http://localhost:8080 python -m pytest test_integration.py -v

  ✅ Health & Status
  ✅ Faucet funding
  ✅ Initialize (or AlreadyInitialized on a shared node)
  ✅ Authority-gated, signed append
  ✅ Forged signatures rejected
  ✅ Rejections leave the log unchanged
  ✅ Transaction log integrity
"""

import os

import pytest
import requests

from contribution_log.keys import Keypair, Pubkey
from contribution_log.signing import sign_instruction


BASE_URL = os.environ.get("CONTRIB_LOG_BASE_URL", "").rstrip("/")

pytestmark = pytest.mark.skipif(not BASE_URL, reason="CONTRIB_LOG_BASE_URL not set")

SOL = 1_000_000_000


@pytest.fixture(scope="module")
def program_id() -> Pubkey:
    body = requests.get(f"{BASE_URL}/status", timeout=10).json()
    return Pubkey.from_string(body["program_id"])


@pytest.fixture(scope="module")
def principal() -> Keypair:
    keypair = Keypair.generate()
    r = requests.post(f"{BASE_URL}/airdrop",
                      json={"address": str(keypair.pubkey), "lamports": SOL}, timeout=10)
    assert r.status_code == 200, r.text
    return keypair


def contribution(keypair: Keypair, program_id: Pubkey, code_hash: str) -> dict:
    return {
        "authority": str(keypair.pubkey),
        "code_hash": code_hash,
        **sign_instruction(keypair, "log_contribution", program_id, [code_hash]),
    }


@pytest.fixture(scope="module")
def authority(principal: Keypair, program_id: Pubkey) -> str:
    """The log authority: *principal* if the node was fresh, else the existing one."""
    body = {"caller": str(principal.pubkey),
            **sign_instruction(principal, "initialize", program_id, [])}
    r = requests.post(f"{BASE_URL}/initialize", json=body, timeout=10)
    assert r.status_code in (200, 409), r.text
    return requests.get(f"{BASE_URL}/log", timeout=10).json()["authority"]


def test_health():
    r = requests.get(f"{BASE_URL}/health", timeout=10)
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"


def test_status_reports_program():
    body = requests.get(f"{BASE_URL}/status", timeout=10).json()
    assert body["program_id"]
    assert body["log_address"]
    assert body["tx_log_integrity"] is True


def test_append_as_authority(principal, authority, program_id):
    if authority != str(principal.pubkey):
        pytest.skip("log owned by another principal on this node")
    before = requests.get(f"{BASE_URL}/log", timeout=10).json()["count"]
    r = requests.post(f"{BASE_URL}/contributions",
                      json=contribution(principal, program_id, "integration-abc123"),
                      timeout=10)
    assert r.status_code == 200, r.text
    after = requests.get(f"{BASE_URL}/log", timeout=10).json()
    assert after["count"] == before + 1
    assert after["contributions"][-1]["code_hash"] == "integration-abc123"


def test_outsider_rejected(authority, program_id):
    outsider = Keypair.generate()
    before = requests.get(f"{BASE_URL}/log", timeout=10).json()
    r = requests.post(f"{BASE_URL}/contributions",
                      json=contribution(outsider, program_id, "evil"), timeout=10)
    assert r.status_code == 403
    assert r.json()["detail"]["error"] == "AuthorityMismatch"
    assert requests.get(f"{BASE_URL}/log", timeout=10).json() == before


@pytest.mark.parametrize("code_hash, name", [
    ("", "EmptyCodeHash"),
    ("y" * 65, "CodeHashTooLong"),
])
def test_invalid_hash_rejected(principal, program_id, code_hash, name):
    r = requests.post(f"{BASE_URL}/contributions",
                      json=contribution(principal, program_id, code_hash), timeout=10)
    assert r.status_code == 400
    assert r.json()["detail"]["error"] == name


def test_forged_signature_rejected(authority, program_id):
    """An outsider cannot append in the authority's name."""
    outsider = Keypair.generate()
    before = requests.get(f"{BASE_URL}/log", timeout=10).json()
    body = contribution(outsider, program_id, "forged")
    body["authority"] = authority
    r = requests.post(f"{BASE_URL}/contributions", json=body, timeout=10)
    assert r.status_code == 401
    assert r.json()["detail"]["error"] == "MissingSignature"
    assert requests.get(f"{BASE_URL}/log", timeout=10).json() == before


def test_transaction_log_integrity(authority):
    body = requests.get(f"{BASE_URL}/transactions", params={"limit": 5}, timeout=10).json()
    assert body["integrity"] is True
    assert body["total_entries"] >= len(body["entries"])
