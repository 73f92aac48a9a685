"""
Escrow Conservation Conformance Tests

INVARIANT: At all times,
    balance(escrow, currency) = Σ_{loans} escrow_balance(loan)

and for every loan resolved after approval with amount A:
    paid to borrower + refunded to lender = A

Funds enter escrow only on approval and leave it only on accept, close or
decline. Every action either moves exactly these amounts or nothing at all.

These tests use property-based testing to drive arbitrary action sequences,
including ones that are rejected, through a fresh engine.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Tuple

from hypothesis import given, settings, note, HealthCheck
from hypothesis import strategies as st

from microloan import (
    LoanStatus, LoanError, ESCROW_WALLET, SYSTEM_WALLET,
    Move, build_transaction, create_micro_loan,
)


OWNER = "owner"
BORROWERS = ["alice", "bob", "carol"]
ACTORS = [OWNER] + BORROWERS + ["mallory"]


def _fresh_engine(owner_funds: int):
    engine = create_micro_loan(OWNER, currency="ETH", initial_time=datetime(2025, 1, 1))
    engine.ledger.execute(build_transaction(engine.ledger, [
        Move(Decimal(owner_funds), "ETH", SYSTEM_WALLET, OWNER, "initial_funding")
    ]))
    return engine


# =============================================================================
# STRATEGIES
# =============================================================================

@st.composite
def loan_action(draw):
    """One lifecycle action: (kind, caller, loan index, amount)."""
    kind = draw(st.sampled_from(["request", "approve", "accept", "close", "decline"]))
    caller = draw(st.sampled_from(ACTORS))
    loan_index = draw(st.integers(min_value=0, max_value=5))
    amount = draw(st.integers(min_value=-2, max_value=60))
    return kind, caller, loan_index, amount


action_sequences = st.lists(loan_action(), min_size=1, max_size=40)


def _apply(engine, action: Tuple[str, str, int, int], loan_ids: List[int]) -> None:
    kind, caller, loan_index, amount = action
    loan_id = loan_ids[loan_index % len(loan_ids)] if loan_ids else loan_index + 1
    if kind == "request":
        loan_ids.append(engine.request_loan(caller, amount)["loan_id"])
    elif kind == "approve":
        engine.approve_request(caller, loan_id, amount)
    elif kind == "accept":
        engine.loan_accept(caller, loan_id)
    elif kind == "close":
        engine.loan_close(caller, loan_id)
    else:
        engine.decline_request(caller, loan_id)


def _run(engine, actions) -> List[int]:
    loan_ids: List[int] = []
    for action in actions:
        try:
            _apply(engine, action, loan_ids)
            note(f"applied {action}")
        except LoanError as exc:
            note(f"rejected {action}: {type(exc).__name__}")
        assert engine.verify_escrow()["valid"], f"escrow drift after {action}"
    return loan_ids


def _escrow_flows(engine, symbol: str) -> Dict[str, Decimal]:
    """Escrow inflow and outflows of one loan, keyed by move kind."""
    flows: Dict[str, Decimal] = {}
    for tx in engine.ledger.transaction_log:
        if tx.origin.unit_symbol != symbol:
            continue
        for move in tx.moves:
            # contract ids end in _escrow, _payout, _surplus or _refund
            kind = "in" if move.dest == ESCROW_WALLET else move.contract_id.rsplit("_", 1)[-1]
            flows[kind] = flows.get(kind, Decimal("0")) + move.quantity
    return flows


# =============================================================================
# PROPERTIES
# =============================================================================

class TestEscrowConservation:
    """Escrow balance always matches the loan records."""

    @given(actions=action_sequences, owner_funds=st.integers(min_value=0, max_value=100))
    @settings(max_examples=150, suppress_health_check=[HealthCheck.too_slow])
    def test_escrow_matches_records(self, actions, owner_funds):
        engine = _fresh_engine(owner_funds) if owner_funds else create_micro_loan(OWNER)
        _run(engine, actions)

        result = engine.verify_escrow()
        assert result["discrepancy"] == Decimal("0")

    @given(actions=action_sequences)
    @settings(max_examples=150, suppress_health_check=[HealthCheck.too_slow])
    def test_currency_supply_conserved(self, actions):
        engine = _fresh_engine(100)
        _run(engine, actions)
        assert engine.ledger.verify_double_entry({"ETH": Decimal("0")})["valid"]

    @given(actions=action_sequences)
    @settings(max_examples=150, suppress_health_check=[HealthCheck.too_slow])
    def test_escrow_balance_by_status(self, actions):
        engine = _fresh_engine(100)
        _run(engine, actions)
        for loan in engine.registry.list_loans():
            if loan.status == LoanStatus.APPROVED:
                assert loan.escrow_balance == loan.approved_amount
            else:
                assert loan.escrow_balance == Decimal("0")

    @given(actions=action_sequences)
    @settings(max_examples=150, suppress_health_check=[HealthCheck.too_slow])
    def test_resolved_escrow_fully_paid_out(self, actions):
        engine = _fresh_engine(100)
        _run(engine, actions)
        for loan in engine.registry.list_loans():
            if loan.approved_amount is None or not loan.is_terminal:
                continue
            flows = _escrow_flows(engine, loan.symbol)
            assert flows["in"] == loan.approved_amount
            out = sum((v for k, v in flows.items() if k != "in"), Decimal("0"))
            assert out == loan.approved_amount
            if loan.status == LoanStatus.ACCEPTED:
                assert flows["payout"] == min(loan.requested_amount, loan.approved_amount)
                assert "refund" not in flows
            else:
                assert flows["refund"] == loan.approved_amount

    @given(actions=action_sequences)
    @settings(max_examples=100, suppress_health_check=[HealthCheck.too_slow])
    def test_no_wallet_goes_negative(self, actions):
        engine = _fresh_engine(100)
        _run(engine, actions)
        for wallet in engine.ledger.list_wallets():
            if wallet == SYSTEM_WALLET:
                continue
            assert engine.ledger.get_balance(wallet, "ETH") >= 0
