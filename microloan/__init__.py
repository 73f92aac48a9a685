"""
microloan - Escrowed Micro-Loan Ledger

A single-lender loan workflow on top of an atomic double-entry ledger: a
borrower requests, the owner approves by escrowing funds, the borrower accepts
(drawing the escrow) or either side closes/declines (refunding the lender).

Usage:
    from decimal import Decimal
    from microloan import create_micro_loan, build_transaction, Move, SYSTEM_WALLET

    engine = create_micro_loan("owner", currency="ETH")
    ledger = engine.ledger

    # Fund the owner via SYSTEM_WALLET (proper issuance)
    ledger.execute(build_transaction(ledger, [
        Move(Decimal("100"), "ETH", SYSTEM_WALLET, "owner", "initial_balance")
    ]))

    request = engine.request_loan("alice", 10)
    engine.approve_request("owner", request["loan_id"], 15)
    engine.loan_accept("alice", request["loan_id"])
    # alice holds 10 ETH, owner 90 ETH, escrow 0
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    Unit,
    UnitStateChange,
    ExecuteResult,
    LedgerError,
    UnitNotRegistered,
    WalletNotRegistered,
    LoanError,
    NotFound,
    Unauthorized,
    InvalidState,
    InvalidAmount,
    TransferRejected,
    cash,
    SYSTEM_WALLET,
    ESCROW_WALLET,
    UNIT_TYPE_CASH,
    UNIT_TYPE_LOAN,
    MAX_AMOUNT,
)

# Ledger
from .ledger import Ledger

# Loan records
from .loan import (
    Loan,
    LoanStatus,
    TERMINAL_STATUSES,
    OPEN_STATUSES,
    loan_symbol,
    create_loan_unit,
    compute_settlement,
    to_amount,
)

# Events
from .events import (
    LoanEvent,
    EventLog,
    ADD_NEW_LOAN_REQUEST,
    REQUEST_APPROVED,
    REQUEST_ACCEPTED,
    REQUEST_CLOSED,
    REQUEST_REJECTED,
    EVENT_NAMES,
)

# Registry and engine
from .registry import LoanRegistry
from .lifecycle_engine import LoanLifecycleEngine, create_micro_loan


__all__ = [
    # Core
    'LedgerView', 'Move', 'Transaction', 'PendingTransaction',
    'TransactionOrigin', 'OriginType', 'build_transaction',
    'Unit', 'UnitStateChange', 'ExecuteResult', 'cash',
    'SYSTEM_WALLET', 'ESCROW_WALLET', 'UNIT_TYPE_CASH', 'UNIT_TYPE_LOAN', 'MAX_AMOUNT',
    # Exceptions
    'LedgerError',
    'UnitNotRegistered', 'WalletNotRegistered',
    'LoanError', 'NotFound', 'Unauthorized', 'InvalidState', 'InvalidAmount',
    'TransferRejected',
    # Ledger
    'Ledger',
    # Loans
    'Loan', 'LoanStatus', 'TERMINAL_STATUSES', 'OPEN_STATUSES',
    'loan_symbol', 'create_loan_unit', 'compute_settlement', 'to_amount',
    # Events
    'LoanEvent', 'EventLog', 'EVENT_NAMES',
    'ADD_NEW_LOAN_REQUEST', 'REQUEST_APPROVED', 'REQUEST_ACCEPTED',
    'REQUEST_CLOSED', 'REQUEST_REJECTED',
    # Registry and engine
    'LoanRegistry', 'LoanLifecycleEngine', 'create_micro_loan',
]

__version__ = '1.0.0'
