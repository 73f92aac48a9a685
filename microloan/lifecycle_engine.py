"""
lifecycle_engine.py - Loan Lifecycle Engine

State machine and escrow accounting for micro-loans.

Every action follows the same order:
1. Look up the loan (NotFound)
2. Check the caller's role (Unauthorized)
3. Check the loan's status (InvalidState)
4. Check amounts (InvalidAmount)
5. Commit moves and the record change as one ledger transaction
6. Emit the event

Nothing is mutated before step 5, and step 5 is all-or-nothing. The engine
keeps no loan state of its own; the registry is the single source of truth.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, FrozenSet, List, Optional

from .core import (
    Move, TransactionOrigin, OriginType,
    Unauthorized, InvalidState,
    SYSTEM_WALLET, ESCROW_WALLET,
    cash,
)
from .events import (
    EventLog, LoanEvent,
    ADD_NEW_LOAN_REQUEST, REQUEST_APPROVED, REQUEST_ACCEPTED,
    REQUEST_CLOSED, REQUEST_REJECTED,
)
from .ledger import Ledger
from .loan import (
    Loan, LoanStatus, OPEN_STATUSES,
    compute_settlement, to_amount,
)
from .registry import LoanRegistry


RESERVED_WALLETS = frozenset({SYSTEM_WALLET, ESCROW_WALLET})


class LoanLifecycleEngine:
    """
    Loan lifecycle state machine with escrow accounting.

    The owner is the single lender: only the owner approves and declines.
    The borrower of a loan is the only one who accepts or closes it.

    Example:
        engine = create_micro_loan("owner", currency="ETH")
        event = engine.request_loan("alice", 10)
        engine.approve_request("owner", event["loan_id"], 15)
        engine.loan_accept("alice", event["loan_id"])
        # alice +10 ETH, owner refunded 5 ETH
    """

    def __init__(
        self,
        registry: LoanRegistry,
        owner: str,
        events: Optional[EventLog] = None,
        escrow_wallet: str = ESCROW_WALLET,
    ):
        """
        Initialize the engine.

        Args:
            registry: Loan registry (and through it, the ledger)
            owner: Wallet of the single lender
            events: Event sink (a new EventLog if not provided)
            escrow_wallet: Wallet holding escrowed funds
        """
        if not owner or not owner.strip():
            raise ValueError("owner cannot be empty")
        if owner in RESERVED_WALLETS or owner == escrow_wallet:
            raise ValueError(f"owner cannot be a reserved wallet: {owner}")

        self.registry = registry
        self.ledger = registry.ledger
        self.events = events if events is not None else EventLog()
        self.escrow_wallet = escrow_wallet
        self.verbose = self.ledger.verbose
        self._owner = owner

        self._ensure_wallet(owner)
        self._ensure_wallet(escrow_wallet)

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def currency(self) -> str:
        return self.registry.currency

    def get_loan(self, loan_id: int) -> Loan:
        return self.registry.get(loan_id)

    # ========================================================================
    # ACTIONS
    # ========================================================================

    def request_loan(self, caller: str, requested_amount) -> LoanEvent:
        """
        Create a loan request on behalf of caller. No funds move.

        Emits AddNewLoanRequest{borrower, amount, loan_id}.

        Raises:
            Unauthorized: If caller is empty or a reserved wallet
            InvalidAmount: If requested_amount is not a positive whole number
        """
        self._require_caller(caller)
        amount = to_amount(requested_amount)
        self._ensure_wallet(caller)

        loan_id = self.registry.create(
            caller, amount, origin=self._origin(caller, None, ADD_NEW_LOAN_REQUEST)
        )
        return self._emit(ADD_NEW_LOAN_REQUEST, loan_id, borrower=caller, amount=amount)

    def approve_request(self, caller: str, loan_id: int, funds_attached) -> LoanEvent:
        """
        Owner funds a requested loan by moving funds_attached into escrow.

        The approved amount may be lower, equal or higher than the requested
        amount; loan_accept() reconciles the difference.

        Emits RequestApproved{borrower, loan_id, amount}.

        Raises:
            NotFound, Unauthorized, InvalidState, InvalidAmount
            TransferRejected: If the owner cannot cover funds_attached
        """
        loan = self.registry.get(loan_id)
        self._require_owner(caller)
        self._require_status(loan, {LoanStatus.REQUESTED}, "approve")
        funds = to_amount(funds_attached)

        moves = [Move(funds, loan.currency, caller, self.escrow_wallet, f"approve_{loan.symbol}_escrow")]
        self.registry.update(
            loan.loan_id,
            LoanStatus.APPROVED,
            lender=caller,
            approved_amount=funds,
            escrow_balance=funds,
            moves=moves,
            origin=self._origin(caller, loan, REQUEST_APPROVED),
        )
        return self._emit(REQUEST_APPROVED, loan.loan_id, borrower=loan.borrower, amount=funds)

    def loan_accept(self, caller: str, loan_id: int) -> LoanEvent:
        """
        Borrower draws an approved loan.

        The borrower receives min(requested, approved); any surplus goes back
        to the lender in the same transaction. The event amount is the full
        approved escrow.

        Emits RequestAccepted{borrower, loan_id, amount}.

        Raises:
            NotFound, Unauthorized, InvalidState
        """
        loan = self.registry.get(loan_id)
        self._require_borrower(caller, loan)
        self._require_status(loan, {LoanStatus.APPROVED}, "accept")

        payout, surplus = compute_settlement(loan.requested_amount, loan.escrow_balance)
        moves = [Move(payout, loan.currency, self.escrow_wallet, loan.borrower, f"accept_{loan.symbol}_payout")]
        if surplus > 0:
            moves.append(
                Move(surplus, loan.currency, self.escrow_wallet, loan.lender, f"accept_{loan.symbol}_surplus")
            )

        self.registry.update(
            loan.loan_id,
            LoanStatus.ACCEPTED,
            escrow_balance=Decimal("0"),
            moves=moves,
            origin=self._origin(caller, loan, REQUEST_ACCEPTED),
        )
        return self._emit(REQUEST_ACCEPTED, loan.loan_id, borrower=loan.borrower, amount=loan.approved_amount)

    def loan_close(self, caller: str, loan_id: int) -> LoanEvent:
        """
        Borrower cancels a requested or approved loan.

        Any escrow goes back to the lender in full.

        Emits RequestClosed{loan_id}.

        Raises:
            NotFound, Unauthorized, InvalidState
        """
        loan = self.registry.get(loan_id)
        self._require_borrower(caller, loan)
        self._require_status(loan, OPEN_STATUSES, "close")

        self.registry.update(
            loan.loan_id,
            LoanStatus.CLOSED,
            escrow_balance=Decimal("0"),
            moves=self._refund_moves(loan, "close"),
            origin=self._origin(caller, loan, REQUEST_CLOSED),
        )
        return self._emit(REQUEST_CLOSED, loan.loan_id)

    def decline_request(self, caller: str, loan_id: int) -> LoanEvent:
        """
        Owner rejects a requested loan or withdraws from an approved one.

        Any escrow goes back in full to the lender who approved it.

        Emits RequestRejected{loan_id}.

        Raises:
            NotFound, Unauthorized, InvalidState
        """
        loan = self.registry.get(loan_id)
        self._require_owner(caller)
        self._require_status(loan, OPEN_STATUSES, "decline")

        self.registry.update(
            loan.loan_id,
            LoanStatus.DECLINED,
            escrow_balance=Decimal("0"),
            moves=self._refund_moves(loan, "decline"),
            origin=self._origin(caller, loan, REQUEST_REJECTED),
        )
        return self._emit(REQUEST_REJECTED, loan.loan_id)

    # ========================================================================
    # AUDIT
    # ========================================================================

    def verify_escrow(self) -> Dict[str, Any]:
        """
        Reconcile the escrow wallet against the loan records.

        Returns:
            Dict with keys:
            - 'valid': bool - escrow wallet balance equals outstanding escrow
            - 'escrow_wallet_balance': Decimal
            - 'escrow_outstanding': Decimal - sum of escrow_balance over loans
            - 'discrepancy': Decimal - wallet balance minus outstanding
        """
        wallet_balance = self.ledger.get_balance(self.escrow_wallet, self.currency)
        outstanding = self.registry.total_escrow()
        return {
            'valid': wallet_balance == outstanding,
            'escrow_wallet_balance': wallet_balance,
            'escrow_outstanding': outstanding,
            'discrepancy': wallet_balance - outstanding,
        }

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _refund_moves(self, loan: Loan, action: str) -> List[Move]:
        if loan.escrow_balance <= 0:
            return []
        return [Move(loan.escrow_balance, loan.currency, self.escrow_wallet, loan.lender,
                     f"{action}_{loan.symbol}_refund")]

    def _require_caller(self, caller: str) -> None:
        if not isinstance(caller, str) or not caller.strip():
            raise Unauthorized("caller identity is required")
        if caller in RESERVED_WALLETS or caller == self.escrow_wallet:
            raise Unauthorized(f"reserved wallet cannot act: {caller}")

    def _require_owner(self, caller: str) -> None:
        self._require_caller(caller)
        if caller != self._owner:
            raise Unauthorized(f"{caller} is not the owner")

    def _require_borrower(self, caller: str, loan: Loan) -> None:
        self._require_caller(caller)
        if caller != loan.borrower:
            raise Unauthorized(f"{caller} is not the borrower of loan {loan.loan_id}")

    @staticmethod
    def _require_status(loan: Loan, allowed: FrozenSet[LoanStatus], action: str) -> None:
        if loan.status not in allowed:
            raise InvalidState(
                f"cannot {action} loan {loan.loan_id} in status {loan.status.value}"
            )

    def _ensure_wallet(self, wallet_id: str) -> None:
        if not self.ledger.is_registered(wallet_id):
            self.ledger.register_wallet(wallet_id)

    @staticmethod
    def _origin(caller: str, loan: Optional[Loan], event_type: str) -> TransactionOrigin:
        return TransactionOrigin(
            origin_type=OriginType.USER_ACTION,
            source_id=caller,
            unit_symbol=loan.symbol if loan else None,
            event_type=event_type,
        )

    def _emit(self, name: str, loan_id: int, **params: Any) -> LoanEvent:
        event = self.events.emit(name, loan_id, **params)
        if self.verbose:
            print(f"[LOAN] {event!r}")
        return event


def create_micro_loan(
    owner: str,
    currency: str = "ETH",
    currency_name: str = "Ether",
    name: str = "microloan",
    initial_time: Optional[datetime] = None,
    verbose: bool = False,
    test_mode: bool = False,
) -> LoanLifecycleEngine:
    """
    Wire a ledger, registry, event log and engine for a single owner.

    The ledger gets the currency unit and the owner and escrow wallets.
    Participants fund their wallets through SYSTEM_WALLET issuance (or
    set_balance() in test mode).

    Returns:
        The engine; its ledger, registry and events are attributes
    """
    ledger = Ledger(name, initial_time=initial_time, verbose=verbose, test_mode=test_mode)
    ledger.register_unit(cash(currency, currency_name))
    registry = LoanRegistry(ledger, currency)
    return LoanLifecycleEngine(registry, owner, EventLog())
