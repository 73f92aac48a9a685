"""
loan.py - Loan Record Unit

=== LOAN MODEL ===

A Loan is stored as a LOAN unit whose state is the loan record. The unit never
carries balances; funds live in the loan currency and move between the lender,
the escrow wallet and the borrower.

    REQUESTED --approve--> APPROVED --accept--> ACCEPTED
        |                     |
        +--close/decline------+--close/decline--> CLOSED / DECLINED

=== ESCROW RECONCILIATION ===

On accept, the escrowed amount A is split against the requested amount R:

    payout  = min(R, A)        escrow -> borrower
    surplus = max(0, A - R)    escrow -> lender

    payout + surplus == A

=== PURE FUNCTIONS ===

    compute_settlement(requested, approved) -> (payout, surplus)
    to_amount(value) -> Decimal
    create_loan_unit(loan_id, borrower, requested_amount, currency) -> Unit
"""
from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, Tuple

from .core import (
    Unit, UnitState, InvalidAmount,
    UNIT_TYPE_LOAN, MAX_AMOUNT, _freeze_state,
)


# =============================================================================
# ENUMS
# =============================================================================

class LoanStatus(str, Enum):
    """Status of a loan record."""
    REQUESTED = "requested"     # Borrower asked, nothing escrowed
    APPROVED = "approved"       # Lender escrowed funds
    ACCEPTED = "accepted"       # Borrower drew the funds
    DECLINED = "declined"       # Lender rejected or withdrew
    CLOSED = "closed"           # Borrower cancelled

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({LoanStatus.ACCEPTED, LoanStatus.DECLINED, LoanStatus.CLOSED})

OPEN_STATUSES = frozenset({LoanStatus.REQUESTED, LoanStatus.APPROVED})


# =============================================================================
# LOAN RECORD
# =============================================================================

LOAN_SYMBOL_PREFIX = "LOAN_"


def loan_symbol(loan_id: int) -> str:
    """Unit symbol of the loan record with the given id."""
    return f"{LOAN_SYMBOL_PREFIX}{loan_id}"


@dataclass(frozen=True, slots=True)
class Loan:
    """
    Immutable snapshot of a loan record.

    Attributes:
        loan_id: Unique id, assigned by the registry
        borrower: Wallet that requested the loan
        requested_amount: Amount asked for
        currency: Cash unit the loan is denominated in
        status: Current LoanStatus
        lender: Wallet that funded the loan (None until approval)
        approved_amount: Amount escrowed by the lender (None until approval)
        escrow_balance: Funds currently held in escrow for this loan
    """
    loan_id: int
    borrower: str
    requested_amount: Decimal
    currency: str
    status: LoanStatus = LoanStatus.REQUESTED
    lender: Optional[str] = None
    approved_amount: Optional[Decimal] = None
    escrow_balance: Decimal = Decimal("0")

    @property
    def symbol(self) -> str:
        return loan_symbol(self.loan_id)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_state(self) -> UnitState:
        """Unit state representation stored in the ledger."""
        return {
            'loan_id': self.loan_id,
            'borrower': self.borrower,
            'requested_amount': self.requested_amount,
            'currency': self.currency,
            'status': self.status.value,
            'lender': self.lender,
            'approved_amount': self.approved_amount,
            'escrow_balance': self.escrow_balance,
        }

    @classmethod
    def from_state(cls, state: UnitState) -> Loan:
        return cls(
            loan_id=state['loan_id'],
            borrower=state['borrower'],
            requested_amount=state['requested_amount'],
            currency=state['currency'],
            status=LoanStatus(state['status']),
            lender=state.get('lender'),
            approved_amount=state.get('approved_amount'),
            escrow_balance=state.get('escrow_balance', Decimal("0")),
        )


# =============================================================================
# PURE FUNCTIONS
# =============================================================================

def to_amount(value) -> Decimal:
    """
    Convert a caller-supplied amount to a positive whole Decimal no larger
    than MAX_AMOUNT.

    Accepts int, Decimal or a numeric string. bool and float are refused so
    that True or 0.1 never pass as an amount.

    Raises:
        InvalidAmount: If the value is not a positive whole number, or is
            above MAX_AMOUNT
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmount(f"amount must be a whole number, got {value!r}")
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount(f"amount must be a whole number, got {value!r}")
    if not amount.is_finite() or amount != amount.to_integral_value():
        raise InvalidAmount(f"amount must be a whole number, got {value!r}")
    if amount <= 0:
        raise InvalidAmount(f"amount must be positive, got {value!r}")
    if amount > MAX_AMOUNT:
        raise InvalidAmount(f"amount exceeds maximum of {MAX_AMOUNT}, got {value!r}")
    return amount.quantize(Decimal("1"))


def compute_settlement(requested: Decimal, approved: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Split an escrowed amount between borrower payout and lender surplus.

    Args:
        requested: Amount the borrower asked for
        approved: Amount the lender escrowed

    Returns:
        (payout, surplus) with payout = min(requested, approved) and
        surplus = approved - payout

    Example:
        compute_settlement(Decimal("10"), Decimal("15"))  # (10, 5)
        compute_settlement(Decimal("10"), Decimal("5"))   # (5, 0)
    """
    payout = min(requested, approved)
    return payout, approved - payout


def create_loan_unit(
    loan_id: int,
    borrower: str,
    requested_amount: Decimal,
    currency: str,
) -> Unit:
    """
    Create the LOAN unit holding a freshly requested loan record.

    Raises:
        InvalidAmount: If requested_amount is not a positive whole number
        ValueError: If borrower or currency is empty
    """
    if not borrower or not borrower.strip():
        raise ValueError("borrower cannot be empty")
    if not currency or not currency.strip():
        raise ValueError("currency cannot be empty")
    loan = Loan(
        loan_id=loan_id,
        borrower=borrower,
        requested_amount=to_amount(requested_amount),
        currency=currency,
    )
    return Unit(
        symbol=loan.symbol,
        name=f"Loan {loan_id}: {loan.requested_amount} {currency} for {borrower}",
        unit_type=UNIT_TYPE_LOAN,
        min_balance=Decimal("0"),
        max_balance=Decimal("0"),  # Records only, never held
        decimal_places=0,
        _frozen_state=_freeze_state(loan.to_state()),
    )
