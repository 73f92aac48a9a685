"""
conftest.py - Shared pytest fixtures for MicroLoan tests

Provides common fixtures used across unit, functional and conformance tests:
- Basic ledgers (empty, funded)
- Registry and engine setups with a funded owner
- Issuance and loan-walking helpers
"""

import pytest
from datetime import datetime
from decimal import Decimal

from microloan import (
    Ledger, Move, LoanRegistry, LoanLifecycleEngine,
    cash, build_transaction, create_micro_loan,
    ExecuteResult, SYSTEM_WALLET,
)


OWNER = "owner"
ALICE = "alice"
BOB = "bob"
MALLORY = "mallory"

OWNER_FUNDS = Decimal("1000")


# =============================================================================
# HELPER FIXTURES
# =============================================================================

@pytest.fixture
def issue():
    """Return a function issuing currency from SYSTEM_WALLET to a wallet."""
    def _issue(ledger: Ledger, wallet: str, amount, currency: str = "ETH") -> None:
        if not ledger.is_registered(wallet):
            ledger.register_wallet(wallet)
        result = ledger.execute(build_transaction(ledger, [
            Move(Decimal(amount), currency, SYSTEM_WALLET, wallet, f"issue_{wallet}_{len(ledger.transaction_log)}")
        ]))
        assert result == ExecuteResult.APPLIED
    return _issue


@pytest.fixture
def balance():
    """Return a function reading an ETH balance from an engine's ledger."""
    def _balance(engine: LoanLifecycleEngine, wallet: str) -> Decimal:
        return engine.ledger.get_balance(wallet, engine.currency)
    return _balance


# =============================================================================
# LEDGER FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Fresh ledger with no registrations."""
    return Ledger("test", verbose=False, test_mode=True)


@pytest.fixture
def basic_ledger():
    """Ledger with ETH and two wallets."""
    ledger = Ledger("test", datetime(2025, 1, 1), verbose=False, test_mode=True)
    ledger.register_unit(cash("ETH", "Ether"))
    ledger.register_wallet(ALICE)
    ledger.register_wallet(BOB)
    return ledger


@pytest.fixture
def funded_ledger(basic_ledger):
    """Basic ledger with alice holding 10,000 ETH."""
    basic_ledger.set_balance(ALICE, "ETH", Decimal("10000"))
    return basic_ledger


# =============================================================================
# LOAN FIXTURES
# =============================================================================

@pytest.fixture
def registry(basic_ledger):
    """LoanRegistry over the basic ledger."""
    return LoanRegistry(basic_ledger, "ETH")


@pytest.fixture
def engine():
    """
    Engine with a funded owner and registered participants.

    owner holds 1000 ETH; alice, bob and mallory hold nothing.
    """
    engine = create_micro_loan(OWNER, currency="ETH", test_mode=True,
                               initial_time=datetime(2025, 1, 1))
    engine.ledger.set_balance(OWNER, "ETH", OWNER_FUNDS)
    for wallet in (ALICE, BOB, MALLORY):
        engine.ledger.register_wallet(wallet)
    return engine


@pytest.fixture
def issued_engine(issue):
    """
    Engine whose funds all come from logged SYSTEM_WALLET issuance.

    Replay of this ledger reproduces every balance.
    """
    engine = create_micro_loan(OWNER, currency="ETH", initial_time=datetime(2025, 1, 1))
    issue(engine.ledger, OWNER, OWNER_FUNDS)
    return engine


@pytest.fixture
def requested(engine):
    """Engine with one loan of 10 requested by alice. Returns (engine, loan_id)."""
    event = engine.request_loan(ALICE, 10)
    return engine, event["loan_id"]


@pytest.fixture
def approved(requested):
    """Engine with alice's loan of 10 approved with 15. Returns (engine, loan_id)."""
    engine, loan_id = requested
    engine.approve_request(OWNER, loan_id, 15)
    return engine, loan_id
