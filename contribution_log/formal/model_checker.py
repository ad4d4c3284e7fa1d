"""
Contribution Log — Bounded Model Checker
==========================================

Exhaustive breadth-first exploration of the log's state machine,
driving the REAL program against a local ledger:

    NonExistent → Initialized(0) → Active(1) → Active(2) → ...

A state is a frozen snapshot of every ledger account plus the outcome
of the transaction that produced it.  From each state the checker
replays every action in the alphabet on a fresh ledger restored from
the snapshot:

    initialize(p)                for each principal p
    log_contribution(p, h)       for each principal p, each hash length

State invariants (checked in every reachable state):
    S1  CapacityCoversLayout   account space >= encoded header + records
    S2  ContributorIsAuthority every record's contributor == authority
    S3  HashLengthBounds       every code hash is 1..64 bytes
    S4  RentExempt             account lamports >= minimum_balance(space)
    S5  LamportConservation    total lamports == total airdropped
    S6  Decodable              the account always decodes

Transition invariants (checked on every explored edge s → s'):
    T1  AuthorityImmutable     authority never changes once set
    T2  AppendOnlyPrefix       records(s) is a prefix of records(s')
    T3  UnitGrowth             |records(s')| - |records(s)| ∈ {0, 1}
    T4  CapacityMonotone       account space never shrinks
    T5  FailureIsNoop          a failed transaction changes no account

The exploration is bounded by ``max_records``.

Run directly:
    python -m contribution_log.formal.model_checker
"""

from __future__ import annotations

import hashlib
from collections import deque
from dataclasses import dataclass
from typing import Callable, Dict, List, NamedTuple, Optional, Sequence, Set, Tuple

from contribution_log.address import log_state_address
from contribution_log.codec import HEADER_SIZE, LogState, state_size
from contribution_log.config import DEFAULT_PROGRAM_ID
from contribution_log.errors import ContributionLogError
from contribution_log.keys import Keypair, Pubkey
from contribution_log.ledger import Ledger, minimum_balance
from contribution_log.lifecycle import read_log_state
from contribution_log.persistent_store import Account, MemoryAccountStore
from contribution_log.program import ContributionLogProgram


MODEL_CLOCK = 1_700_000_000


class LedgerSnapshot(NamedTuple):
    """Immutable, hashable image of the ledger after one transaction."""
    accounts: Tuple[Tuple[bytes, int, bytes, bytes], ...]   # (address, lamports, owner, data)
    outcome: str                                           # "genesis" | "ok" | error name


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Model
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class ContributionLogModel:
    """
    Parameters
    ----------
    principals   : names of the signers; each gets a deterministic keypair
    hash_lengths : code-hash lengths tried on every append (0 and 65 are invalid)
    funds        : lamports airdropped to every principal at genesis
    max_records  : bound on the log length explored
    """

    def __init__(
        self,
        principals: Sequence[str] = ("alice", "mallory"),
        hash_lengths: Sequence[int] = (0, 1, 64, 65),
        funds: Optional[int] = None,
        max_records: int = 3,
        program_id: Pubkey = DEFAULT_PROGRAM_ID,
    ):
        self.principals = tuple(principals)
        self.keys: Dict[str, Pubkey] = {
            name: Keypair.from_seed(hashlib.sha256(name.encode()).digest()).pubkey
            for name in self.principals
        }
        self.hash_lengths = tuple(hash_lengths)
        # Default: enough for initialize + two 64-byte appends, not three.
        self.funds = funds if funds is not None else (
            minimum_balance(HEADER_SIZE) + minimum_balance(2 * 108) - minimum_balance(0)
        )
        self.max_records = max_records
        self.program_id = program_id
        self.log_address = bytes(log_state_address(program_id)[0])
        self.total_supply = self.funds * len(self.principals)

    # ── Ledger <-> snapshot ──

    def _restore(self, s: LedgerSnapshot) -> Tuple[Ledger, ContributionLogProgram]:
        store = MemoryAccountStore()
        for address, lamports, owner, data in s.accounts:
            store.put(Account(Pubkey(address), lamports, Pubkey(owner), bytearray(data)))
        ledger = Ledger(store=store, clock=lambda: MODEL_CLOCK)
        return ledger, ContributionLogProgram(ledger, self.program_id)

    @staticmethod
    def _snapshot(ledger: Ledger, outcome: str) -> LedgerSnapshot:
        accounts = []
        for address in ledger.store.addresses():
            a = ledger.store.get(address)
            accounts.append((bytes(a.address), a.lamports, bytes(a.owner), bytes(a.data)))
        return LedgerSnapshot(accounts=tuple(sorted(accounts)), outcome=outcome)

    def _log_account(self, s: LedgerSnapshot) -> Optional[Tuple[bytes, int, bytes, bytes]]:
        for entry in s.accounts:
            if entry[0] == self.log_address:
                return entry
        return None

    def decode(self, s: LedgerSnapshot) -> Optional[LogState]:
        entry = self._log_account(s)
        if entry is None or not entry[3]:
            return None
        address, lamports, owner, data = entry
        return read_log_state(
            Account(Pubkey(address), lamports, Pubkey(owner), bytearray(data)),
            self.program_id,
        )

    # ── Init ──

    def initial_states(self) -> Set[LedgerSnapshot]:
        ledger, _ = self._restore(LedgerSnapshot((), "genesis"))
        for key in self.keys.values():
            ledger.airdrop(key, self.funds)
        return {self._snapshot(ledger, "genesis")}

    # ── Next ──

    def _apply(self, s: LedgerSnapshot, action: Callable[[ContributionLogProgram], object]) -> LedgerSnapshot:
        ledger, program = self._restore(s)
        try:
            action(program)
        except ContributionLogError as e:
            return self._snapshot(ledger, e.name)
        return self._snapshot(ledger, "ok")

    def successors(self, s: LedgerSnapshot) -> Set[LedgerSnapshot]:
        nxt: Set[LedgerSnapshot] = set()
        state = self.decode(s)
        for name in self.principals:
            key = self.keys[name]
            nxt.add(self._apply(s, lambda p, k=key: p.initialize(k)))
            if state is not None and len(state) >= self.max_records:
                continue
            for length in self.hash_lengths:
                code_hash = "h" * length
                nxt.add(self._apply(s, lambda p, k=key, h=code_hash: p.log_contribution(k, h)))
        return nxt

    # ── Safety properties ──

    def invariants(self) -> List[Tuple[str, Callable[[LedgerSnapshot], bool]]]:

        def s1_capacity(s: LedgerSnapshot) -> bool:
            """S1 — allocated space covers the exact encoding."""
            state = self.decode(s)
            return state is None or len(self._log_account(s)[3]) >= state_size(state)

        def s2_contributor(s: LedgerSnapshot) -> bool:
            """S2 — only the authority appears as contributor."""
            state = self.decode(s)
            return state is None or all(r.contributor == state.authority for r in state.contributions)

        def s3_hash_bounds(s: LedgerSnapshot) -> bool:
            """S3 — stored hashes satisfy the input validation."""
            state = self.decode(s)
            return state is None or all(
                1 <= len(r.code_hash.encode("utf-8")) <= 64 for r in state.contributions
            )

        def s4_rent_exempt(s: LedgerSnapshot) -> bool:
            """S4 — the log account is always rent-exempt."""
            entry = self._log_account(s)
            return entry is None or not entry[3] or entry[1] >= minimum_balance(len(entry[3]))

        def s5_conservation(s: LedgerSnapshot) -> bool:
            """S5 — lamports move between accounts, never appear or vanish."""
            return sum(a[1] for a in s.accounts) == self.total_supply

        def s6_decodable(s: LedgerSnapshot) -> bool:
            """S6 — the account never holds a malformed layout."""
            try:
                self.decode(s)
            except ContributionLogError:
                return False
            return True

        return [
            ("S1_CapacityCoversLayout", s1_capacity),
            ("S2_ContributorIsAuthority", s2_contributor),
            ("S3_HashLengthBounds", s3_hash_bounds),
            ("S4_RentExempt", s4_rent_exempt),
            ("S5_LamportConservation", s5_conservation),
            ("S6_Decodable", s6_decodable),
        ]

    def transition_invariants(self) -> List[Tuple[str, Callable[[LedgerSnapshot, LedgerSnapshot], bool]]]:

        def t1_authority(s: LedgerSnapshot, t: LedgerSnapshot) -> bool:
            a, b = self.decode(s), self.decode(t)
            return a is None or (b is not None and a.authority == b.authority)

        def t2_prefix(s: LedgerSnapshot, t: LedgerSnapshot) -> bool:
            a, b = self.decode(s), self.decode(t)
            if a is None:
                return True
            return b is not None and b.contributions[:len(a)] == a.contributions

        def t3_unit_growth(s: LedgerSnapshot, t: LedgerSnapshot) -> bool:
            a, b = self.decode(s), self.decode(t)
            before = len(a) if a else 0
            after = len(b) if b else 0
            return after - before in (0, 1)

        def t4_capacity(s: LedgerSnapshot, t: LedgerSnapshot) -> bool:
            a, b = self._log_account(s), self._log_account(t)
            return a is None or (b is not None and len(b[3]) >= len(a[3]))

        def t5_failure_noop(s: LedgerSnapshot, t: LedgerSnapshot) -> bool:
            return t.outcome == "ok" or t.accounts == s.accounts

        return [
            ("T1_AuthorityImmutable", t1_authority),
            ("T2_AppendOnlyPrefix", t2_prefix),
            ("T3_UnitGrowth", t3_unit_growth),
            ("T4_CapacityMonotone", t4_capacity),
            ("T5_FailureIsNoop", t5_failure_noop),
        ]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  BFS Model Checker (generic)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass
class CheckResult:
    """Result of a model-checking run."""
    model_name: str
    states_explored: int
    transitions_explored: int
    properties_checked: int
    violations: List[Dict]           # list of {property, state[, next]}
    outcomes: Dict[str, int]         # outcome name → number of states
    all_passed: bool = True


def check_model(
    model_name: str,
    initial_states: Set,
    successors: Callable,
    invariants: List[Tuple[str, Callable]],
    transition_invariants: Sequence[Tuple[str, Callable]] = (),
    max_states: int = 50_000,
) -> CheckResult:
    """
    BFS exhaustive model checker.

    Checks every state invariant at each reachable state and every
    transition invariant on each explored edge.
    """
    visited: Set = set()
    queue: deque = deque()
    violations: List[Dict] = []
    outcomes: Dict[str, int] = {}
    checks = 0
    edges = 0

    for s0 in initial_states:
        if s0 not in visited:
            visited.add(s0)
            queue.append(s0)

    while queue:
        if len(visited) > max_states:
            break  # safety cap

        state = queue.popleft()
        outcome = getattr(state, "outcome", "")
        outcomes[outcome] = outcomes.get(outcome, 0) + 1

        for name, pred in invariants:
            checks += 1
            if not pred(state):
                violations.append({"property": name, "state": state})

        for succ in successors(state):
            edges += 1
            for name, pred in transition_invariants:
                checks += 1
                if not pred(state, succ):
                    violations.append({"property": name, "state": state, "next": succ})
            if succ not in visited:
                visited.add(succ)
                queue.append(succ)

    return CheckResult(
        model_name=model_name,
        states_explored=len(visited),
        transitions_explored=edges,
        properties_checked=checks,
        violations=violations,
        outcomes=outcomes,
        all_passed=len(violations) == 0,
    )


def run_model(verbose: bool = True, **model_kwargs) -> CheckResult:
    """Build the default model and check it."""
    m = ContributionLogModel(**model_kwargs)
    result = check_model(
        "ContributionLog",
        m.initial_states(),
        m.successors,
        m.invariants(),
        m.transition_invariants(),
    )
    if verbose:
        print(f"[M1] {result.model_name}: {result.states_explored} states, "
              f"{result.transitions_explored} transitions, "
              f"{result.properties_checked} checks — "
              f"{'✓ ALL PASS' if result.all_passed else '✗ VIOLATIONS'}")
        for outcome, count in sorted(result.outcomes.items()):
            print(f"       {outcome}: {count}")
    return result


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  CLI entry-point
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

if __name__ == "__main__":
    print("=" * 60)
    print("CONTRIBUTION LOG — Bounded Model Checker")
    print("=" * 60)
    r = run_model(verbose=True)
    print("-" * 60)
    if r.all_passed:
        print("RESULT: ✓ All 11 safety properties hold in all reachable states.")
    else:
        print("RESULT: ✗ VIOLATIONS FOUND:")
        for v in r.violations:
            print(f"  {v['property']}")
