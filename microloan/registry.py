"""
registry.py - Loan Registry

Owns the mapping loan id -> Loan record. Records live in the ledger as LOAN
units; every write goes through Ledger.execute() so that a record update and
the moves belonging to it commit together.

The registry allocates ids and stores records. It performs no business
validation: who may do what, and from which status, is decided by the
lifecycle engine before update() is called.
"""

from __future__ import annotations
from dataclasses import replace
from decimal import Decimal
from typing import Iterable, List, Optional

from .core import (
    Move, Transaction, PendingTransaction, UnitStateChange,
    TransactionOrigin, OriginType, ExecuteResult,
    NotFound, TransferRejected,
    UNIT_TYPE_LOAN, build_transaction,
)
from .ledger import Ledger
from .loan import (
    Loan, LoanStatus, OPEN_STATUSES, LOAN_SYMBOL_PREFIX,
    loan_symbol, create_loan_unit,
)


class LoanRegistry:
    """
    Identifier allocation and storage of loan records.

    Ids start at 1 and only ever increase. A registry attached to a ledger
    that already holds loans continues after the highest existing id.

    Example:
        registry = LoanRegistry(ledger, currency="ETH")
        loan_id = registry.create("alice", Decimal("10"))
        registry.get(loan_id).status  # LoanStatus.REQUESTED
    """

    def __init__(self, ledger: Ledger, currency: str):
        if currency not in ledger.units:
            raise ValueError(f"Currency {currency} not registered")
        self.ledger = ledger
        self.currency = currency
        self._next_id = self._highest_loan_id() + 1

    def _highest_loan_id(self) -> int:
        highest = 0
        for symbol, unit in self.ledger.units.items():
            if unit.unit_type == UNIT_TYPE_LOAN:
                highest = max(highest, unit.state['loan_id'])
        return highest

    # ========================================================================
    # STORAGE
    # ========================================================================

    def create(
        self,
        borrower: str,
        requested_amount: Decimal,
        origin: Optional[TransactionOrigin] = None,
    ) -> int:
        """
        Store a new loan in REQUESTED status and return its id.

        Raises:
            InvalidAmount: If requested_amount is not a positive whole number
            TransferRejected: If the ledger refuses the record
        """
        # Other registries on the same ledger may have stored loans since.
        loan_id = max(self._next_id, self._highest_loan_id() + 1)
        unit = create_loan_unit(loan_id, borrower, requested_amount, self.currency)
        # Allocated ids are never handed out again, even if the commit fails.
        self._next_id = loan_id + 1

        origin = origin or TransactionOrigin(OriginType.SYSTEM, "registry")
        if origin.unit_symbol is None:
            origin = replace(origin, unit_symbol=unit.symbol)

        pending = build_transaction(self.ledger, [], origin=origin, units_to_create=(unit,))
        self._commit(pending)
        return loan_id

    def get(self, loan_id: int) -> Loan:
        """
        Return the current record of a loan.

        Raises:
            NotFound: If loan_id is unknown
        """
        unit = self.ledger.units.get(loan_symbol(loan_id))
        if unit is None or unit.unit_type != UNIT_TYPE_LOAN:
            raise NotFound(f"Loan {loan_id} not found")
        return Loan.from_state(unit.state)

    def update(
        self,
        loan_id: int,
        status: LoanStatus,
        lender: Optional[str] = None,
        approved_amount: Optional[Decimal] = None,
        escrow_balance: Optional[Decimal] = None,
        moves: Iterable[Move] = (),
        origin: Optional[TransactionOrigin] = None,
    ) -> Transaction:
        """
        Replace the mutable fields of a loan record.

        Fields left as None keep their current value. The given moves are
        committed in the same ledger transaction as the record change, so
        either both happen or neither does.

        Returns:
            The executed Transaction

        Raises:
            NotFound: If loan_id is unknown
            TransferRejected: If the ledger refuses the transaction
        """
        current = self.get(loan_id)
        updated = replace(
            current,
            status=status,
            lender=current.lender if lender is None else lender,
            approved_amount=current.approved_amount if approved_amount is None else approved_amount,
            escrow_balance=current.escrow_balance if escrow_balance is None else escrow_balance,
        )
        change = UnitStateChange(
            unit=current.symbol,
            old_state=self.ledger.get_unit_state(current.symbol),
            new_state=updated.to_state(),
        )
        origin = origin or TransactionOrigin(OriginType.SYSTEM, "registry", current.symbol)
        pending = build_transaction(self.ledger, list(moves), [change], origin=origin)
        return self._commit(pending)

    def _commit(self, pending: PendingTransaction) -> Transaction:
        result = self.ledger.execute(pending)
        if result == ExecuteResult.REJECTED:
            raise TransferRejected(self.ledger.last_rejection or "transaction rejected")
        if result == ExecuteResult.ALREADY_APPLIED:
            raise TransferRejected(f"transaction already applied: intent_id={pending.intent_id}")
        return self.ledger.transaction_log[-1]

    # ========================================================================
    # QUERIES
    # ========================================================================

    def exists(self, loan_id: int) -> bool:
        unit = self.ledger.units.get(loan_symbol(loan_id))
        return unit is not None and unit.unit_type == UNIT_TYPE_LOAN

    def list_loans(self) -> List[Loan]:
        """All loans, terminal ones included, ordered by id."""
        loans = [
            Loan.from_state(unit.state)
            for symbol, unit in self.ledger.units.items()
            if unit.unit_type == UNIT_TYPE_LOAN and symbol.startswith(LOAN_SYMBOL_PREFIX)
        ]
        return sorted(loans, key=lambda loan: loan.loan_id)

    def loans_for(self, borrower: str) -> List[Loan]:
        return [loan for loan in self.list_loans() if loan.borrower == borrower]

    def open_loans(self) -> List[Loan]:
        return [loan for loan in self.list_loans() if loan.status in OPEN_STATUSES]

    def total_escrow(self) -> Decimal:
        """Sum of escrow_balance over all loans."""
        return sum((loan.escrow_balance for loan in self.list_loans()), Decimal("0"))

    def __len__(self) -> int:
        return len(self.list_loans())

    def __contains__(self, loan_id: int) -> bool:
        return self.exists(loan_id)
