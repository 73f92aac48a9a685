"""
events.py - Loan Event Records

Events are just data: immutable, ordered, append-only records of completed
lifecycle actions, kept for external observers. The engine never reads them
back.

Core concepts:
1. LoanEvent: Immutable record of what happened to which loan
2. EventLog: Append-only sequence of LoanEvents
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional


# ============================================================================
# EVENT NAMES
# ============================================================================

ADD_NEW_LOAN_REQUEST = "AddNewLoanRequest"
REQUEST_APPROVED = "RequestApproved"
REQUEST_ACCEPTED = "RequestAccepted"
REQUEST_CLOSED = "RequestClosed"
REQUEST_REJECTED = "RequestRejected"

EVENT_NAMES = frozenset({
    ADD_NEW_LOAN_REQUEST,
    REQUEST_APPROVED,
    REQUEST_ACCEPTED,
    REQUEST_CLOSED,
    REQUEST_REJECTED,
})


# ============================================================================
# EVENT DATA STRUCTURE
# ============================================================================

@dataclass(frozen=True, slots=True)
class LoanEvent:
    """
    Immutable loan lifecycle event.

    Attributes:
        name: Event name (e.g. "RequestApproved")
        loan_id: Loan the event refers to
        sequence: Position in the event log (0 = first)
        params: Event fields as frozen tuple of (key, value) pairs
    """
    name: str
    loan_id: int
    sequence: int = 0
    params: tuple = ()

    @property
    def args(self) -> Dict[str, Any]:
        """All event fields, loan_id included, as a dictionary."""
        return {'loan_id': self.loan_id, **dict(self.params)}

    def __getitem__(self, key: str) -> Any:
        return self.args[key]

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={v}" for k, v in self.args.items())
        return f"{self.name}#{self.sequence}({fields})"


# ============================================================================
# EVENT LOG
# ============================================================================

class EventLog:
    """
    Append-only, ordered log of LoanEvents.

    There is no way to remove or replace an event once emitted.
    """

    def __init__(self):
        self._events: List[LoanEvent] = []

    def emit(self, name: str, loan_id: int, **params: Any) -> LoanEvent:
        """
        Append a new event and return it.

        Raises:
            ValueError: If name is not a known event name
        """
        if name not in EVENT_NAMES:
            raise ValueError(f"Unknown event name: {name}")
        event = LoanEvent(
            name=name,
            loan_id=loan_id,
            sequence=len(self._events),
            params=tuple(sorted(params.items())),
        )
        self._events.append(event)
        return event

    def events(self) -> List[LoanEvent]:
        """Copy of all events in emission order."""
        return list(self._events)

    def of_type(self, name: str) -> List[LoanEvent]:
        return [e for e in self._events if e.name == name]

    def for_loan(self, loan_id: int) -> List[LoanEvent]:
        return [e for e in self._events if e.loan_id == loan_id]

    def last(self) -> Optional[LoanEvent]:
        return self._events[-1] if self._events else None

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[LoanEvent]:
        return iter(list(self._events))
