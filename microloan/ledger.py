"""
ledger.py - Stateful Double-Entry Ledger

The Ledger class is the only module that mutates state. Every fund movement
and every loan record change reaches it as a PendingTransaction and is applied
atomically: all moves, unit creations and state changes succeed together or
none of them happen.

Key responsibilities:
    - Implements LedgerView protocol for safe read-only access
    - Executes transactions atomically with full validation
    - Maintains wallet balances and unit definitions (cash and loan records)
    - Keeps the append-only transaction log (clone, replay)
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Set, Optional, Tuple, Any
import copy
from decimal import Decimal, InvalidOperation

from .core import (
    # Types
    Transaction, Unit,
    PendingTransaction,
    ExecuteResult,
    Positions, UnitState,
    # Constants
    QUANTITY_EPSILON, SYSTEM_WALLET,
    # Exceptions
    LedgerError, UnitNotRegistered, WalletNotRegistered,
    # Helper functions
    _freeze_state,
)


class Ledger:
    """
    Double-entry ledger with full validation and audit trail.

    Design Principles:
        - Always validates: balance constraints, registration, timestamps and
          the expected old state of every unit state change.
        - Always logs: every applied transaction is recorded in the audit
          trail, enabling replay() for state reconstruction.

    Thread Safety:
        Not thread-safe. Actions are applied one at a time, each to completion.

    Example:
        ledger = Ledger("main")
        ledger.register_unit(cash("ETH", "Ether"))
        ledger.register_wallet("alice")
        ledger.register_wallet("bob")

        tx = build_transaction(ledger, [
            Move(Decimal("100"), "ETH", SYSTEM_WALLET, "alice", "issue_001")
        ])
        result = ledger.execute(tx)
    """

    POSITION_EPSILON = QUANTITY_EPSILON

    def __init__(
        self,
        name: str,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
        test_mode: bool = False
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            initial_time: Starting time for the ledger (default: 1970-01-01)
            verbose: Print applied and rejected transactions (default: True)
            test_mode: Allow set_balance() calls (default: False)
        """
        self.name = name
        self.balances: Dict[str, Dict[str, Decimal]] = {}
        self.units: Dict[str, Unit] = {}
        self.registered_wallets: Set[str] = set()
        self.seen_intent_ids: Set[str] = set()
        self.transaction_log: List[Transaction] = []
        self.last_rejection: Optional[str] = None
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self.verbose = verbose
        self._test_mode = test_mode
        self._next_sequence: int = 0
        # unit -> {wallet -> quantity}
        self._positions_by_unit: Dict[str, Dict[str, Decimal]] = defaultdict(dict)

        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = defaultdict(lambda: Decimal("0"))

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """
        Get the balance of a specific unit in a wallet.

        Raises:
            WalletNotRegistered: If wallet is not registered
            UnitNotRegistered: If unit is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return self.balances[wallet_id].get(unit_symbol, Decimal("0"))

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """
        Get a deep copy of a unit's internal state.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        unit_obj = self.units[unit_symbol]
        return self._deep_copy_state(unit_obj.state) if unit_obj.state else {}

    def get_positions(self, unit_symbol: str) -> Positions:
        """Get all non-zero positions for a specific unit across all wallets."""
        return dict(self._positions_by_unit.get(unit_symbol, {}))

    def list_wallets(self) -> Set[str]:
        """List all registered wallet IDs."""
        return self.registered_wallets.copy()

    def list_units(self) -> List[str]:
        """List all registered unit symbols."""
        return sorted(self.units.keys())

    def get_unit(self, symbol: str) -> Unit:
        """Return the Unit object for a given symbol."""
        if symbol not in self.units:
            raise UnitNotRegistered(f"Unit {symbol} not registered")
        return self.units[symbol]

    def total_supply(self, unit_symbol: str) -> Decimal:
        """
        Calculate total supply of a unit across all wallets.

        Wallets are summed in sorted order for deterministic accumulation.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return sum(
            (self.balances[w].get(unit_symbol, Decimal("0")) for w in sorted(self.registered_wallets)),
            Decimal("0"),
        )

    def verify_double_entry(
        self,
        expected_supplies: Dict[str, Decimal] = None,
        tolerance: Decimal = Decimal("1e-9")
    ) -> Dict[str, Any]:
        """
        Verify that conservation laws hold for all units.

        For every unit, the sum of all balances across all wallets (the system
        wallet included) must stay constant. With expected_supplies, current
        totals are compared against the given values.

        Returns:
            Dict with keys:
            - 'valid': bool - True if all conservation laws hold
            - 'supplies': Dict[str, Decimal] - Current total supply for each unit
            - 'discrepancies': List[Dict] - unit, expected, actual, difference
        """
        supplies = {}
        discrepancies = []

        for unit_symbol in self.units:
            current_supply = self.total_supply(unit_symbol)
            supplies[unit_symbol] = current_supply

            if expected_supplies and unit_symbol in expected_supplies:
                expected = expected_supplies[unit_symbol]
                difference = abs(current_supply - expected)
                if difference > tolerance:
                    discrepancies.append({
                        'unit': unit_symbol,
                        'expected': expected,
                        'actual': current_supply,
                        'difference': difference,
                    })

        if expected_supplies:
            for unit_symbol, expected in expected_supplies.items():
                if unit_symbol not in supplies:
                    discrepancies.append({
                        'unit': unit_symbol,
                        'expected': expected,
                        'actual': Decimal("0"),
                        'difference': abs(expected),
                        'error': 'unit not registered',
                    })

        return {
            'valid': len(discrepancies) == 0,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    def is_registered(self, wallet_id: str) -> bool:
        """Check if a wallet is registered."""
        return wallet_id in self.registered_wallets

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the ledger's logical clock. Time never moves backward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Register a new wallet in the ledger.

        Raises:
            ValueError: If wallet is already registered or the id is empty
        """
        if not wallet_id or not wallet_id.strip():
            raise ValueError("Wallet id cannot be empty")
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(lambda: Decimal("0"))
        return wallet_id

    def register_unit(self, unit: Unit) -> None:
        """
        Register a new unit in the ledger.

        Raises:
            ValueError: If unit symbol is already registered
        """
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        if self.verbose:
            print(f"📝 Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}]")

    def set_balance(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        """
        Set a wallet's balance for a unit directly.

        WARNING: bypasses double-entry accounting; only available in test mode.
        Use build_transaction() and execute() for real funding.

        Raises:
            LedgerError: If called when test_mode is False
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() is disabled in production mode. "
                "Use build_transaction() and execute() to modify balances. "
                "Set test_mode=True when creating Ledger for testing."
            )
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        if not isinstance(quantity, Decimal):
            quantity = Decimal(str(quantity))
        self.balances[wallet_id][unit_symbol] = quantity
        self._update_position_index(wallet_id, unit_symbol, quantity)

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """Format: exec:{ledger_name}:{sequence:012d}:{timestamp_micros}"""
        micros = int(self._current_time.timestamp() * 1_000_000)
        return f"exec:{self.name}:{sequence:012d}:{micros}"

    def _reject(self, reason: str, newly_registered_units: List[str]) -> ExecuteResult:
        for sym in newly_registered_units:
            del self.units[sym]
        self.last_rejection = reason
        if self.verbose:
            print(f"✗ REJECTED: {reason}")
        return ExecuteResult.REJECTED

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Execute a PendingTransaction atomically.

        All units_to_create, moves and state changes are applied together or
        not at all. A pending transaction whose intent_id was already applied
        is not applied twice.

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.ALREADY_APPLIED if transaction was already executed
            ExecuteResult.REJECTED if validation failed (reason in last_rejection)
        """
        self.last_rejection = None

        if pending.is_empty():
            return ExecuteResult.APPLIED

        if pending.intent_id in self.seen_intent_ids:
            if self.verbose:
                print(f"⚠️  ALREADY_APPLIED: intent_id={pending.intent_id}")
            return ExecuteResult.ALREADY_APPLIED

        # Units are visible to validation and removed again on rejection.
        newly_registered_units: List[str] = []
        for unit in pending.units_to_create:
            if unit.symbol in self.units:
                return self._reject(f"unit already registered: {unit.symbol}", newly_registered_units)
            self.units[unit.symbol] = unit
            newly_registered_units.append(unit.symbol)

        valid, reason = self._validate_pending(pending)
        if not valid:
            return self._reject(reason, newly_registered_units)

        sequence = self._next_sequence
        self._next_sequence += 1
        exec_id = self._generate_exec_id(sequence)

        tx = Transaction(
            moves=pending.moves,
            state_changes=pending.state_changes,
            origin=pending.origin,
            timestamp=pending.timestamp,
            intent_id=pending.intent_id,
            exec_id=exec_id,
            ledger_name=self.name,
            execution_time=self._current_time,
            sequence_number=sequence,
            units_to_create=pending.units_to_create,
        )

        self._execute_moves(tx.moves)

        for sc in tx.state_changes:
            old_unit = self.units[sc.unit]
            new_state = self._deep_copy_state(
                sc.new_state if isinstance(sc.new_state, dict) else {}
            )
            self.units[sc.unit] = replace(old_unit, _frozen_state=_freeze_state(new_state))

        self.transaction_log.append(tx)
        self.seen_intent_ids.add(pending.intent_id)

        if self.verbose:
            for unit in tx.units_to_create:
                print(f"📝 Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}]")
            print(f"✓ APPLIED: {tx!r}")
        return ExecuteResult.APPLIED

    def _validate_pending(self, pending: PendingTransaction) -> Tuple[bool, str]:
        """
        Validate pending transaction against all constraints.

        Checks performed:
        1. Timestamp (transaction must not be from the future)
        2. Unit and wallet registration
        3. State changes: target unit exists and old_state matches current state
        4. Balance constraints (min/max balance limits)

        Returns:
            (success, reason); reason is empty on success
        """
        if pending.timestamp > self._current_time:
            return False, "future timestamp"

        for move in pending.moves:
            if move.unit_symbol not in self.units:
                return False, f"unit not registered: {move.unit_symbol}"
            if not self.is_registered(move.source):
                return False, f"wallet not registered: {move.source}"
            if not self.is_registered(move.dest):
                return False, f"wallet not registered: {move.dest}"

        # Optimistic concurrency: a change built against a stale state is refused.
        for sc in pending.state_changes:
            if sc.unit not in self.units:
                return False, f"unit not registered: {sc.unit}"
            if sc.old_state is not None:
                current_state = self.units[sc.unit].state
                old_state = sc.old_state if isinstance(sc.old_state, dict) else {}
                for key in set(old_state.keys()) | set(current_state.keys()):
                    if old_state.get(key) != current_state.get(key):
                        return False, (
                            f"stale state for {sc.unit}.{key}: expected "
                            f"{old_state.get(key)!r}, found {current_state.get(key)!r}"
                        )

        net: Dict[Tuple[str, str], Decimal] = {}
        try:
            for move in pending.moves:
                unit = self.units[move.unit_symbol]
                key_src = (move.source, move.unit_symbol)
                key_dst = (move.dest, move.unit_symbol)
                net[key_src] = unit.round(net.get(key_src, Decimal("0")) - move.quantity)
                net[key_dst] = unit.round(net.get(key_dst, Decimal("0")) + move.quantity)
        except InvalidOperation:
            # quantize() needs more digits than the Decimal context holds
            return False, "quantity out of range"

        for (wallet, unit_sym), delta in net.items():
            current = self.balances[wallet].get(unit_sym, Decimal("0"))
            unit = self.units[unit_sym]
            try:
                proposed = unit.round(current + delta)
            except InvalidOperation:
                return False, "quantity out of range"

            # SYSTEM_WALLET is exempt from limits: it issues and redeems.
            if wallet == SYSTEM_WALLET:
                continue

            if proposed < unit.min_balance:
                return False, f"insufficient funds: {wallet} {unit_sym}: {proposed} < min {unit.min_balance}"
            if proposed > unit.max_balance:
                return False, f"{wallet} {unit_sym}: {proposed} > max {unit.max_balance}"

        return True, ""

    def _update_position_index(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        """Keep unit -> {wallet -> quantity} in sync; zero positions are dropped."""
        if abs(quantity) > self.POSITION_EPSILON:
            self._positions_by_unit[unit_symbol][wallet_id] = quantity
        else:
            self._positions_by_unit[unit_symbol].pop(wallet_id, None)

    def _execute_moves(self, moves) -> None:
        """Apply all moves to wallet balances and update the position index."""
        for move in moves:
            unit = self.units[move.unit_symbol]
            new_src_balance = unit.round(
                self.balances[move.source][move.unit_symbol] - move.quantity
            )
            self.balances[move.source][move.unit_symbol] = new_src_balance
            self._update_position_index(move.source, move.unit_symbol, new_src_balance)
            new_dst_balance = unit.round(
                self.balances[move.dest][move.unit_symbol] + move.quantity
            )
            self.balances[move.dest][move.unit_symbol] = new_dst_balance
            self._update_position_index(move.dest, move.unit_symbol, new_dst_balance)

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    @staticmethod
    def _deep_copy_state(state: Optional[UnitState]) -> Optional[UnitState]:
        if state is None:
            return None
        return copy.deepcopy(state)

    def clone(self) -> Ledger:
        """
        Create a fully independent deep copy of this ledger.

        Includes units and their state, wallets, balances, the transaction
        log, current time and configuration.
        """
        cloned = Ledger.__new__(Ledger)
        cloned.name = self.name
        cloned._current_time = self._current_time
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode
        cloned.last_rejection = self.last_rejection

        cloned.units = {}
        for symbol, unit in self.units.items():
            cloned.units[symbol] = replace(
                unit, _frozen_state=_freeze_state(self._deep_copy_state(unit.state))
            )

        cloned.registered_wallets = self.registered_wallets.copy()
        cloned.seen_intent_ids = self.seen_intent_ids.copy()
        cloned.transaction_log = list(self.transaction_log)
        cloned._next_sequence = self._next_sequence

        cloned.balances = {}
        for wallet, bals in self.balances.items():
            cloned.balances[wallet] = defaultdict(lambda: Decimal("0"), bals)

        cloned._positions_by_unit = defaultdict(dict)
        for unit_symbol, positions in self._positions_by_unit.items():
            cloned._positions_by_unit[unit_symbol] = dict(positions)

        return cloned

    def replay(self, from_tx: int = 0) -> Ledger:
        """
        Create a new ledger by re-executing the transaction log in order.

        Balances set via set_balance() are NOT replayed because they are not
        part of the log; fund wallets through SYSTEM_WALLET issuance when the
        history must be reproducible.

        Raises:
            LedgerError: If a logged transaction is rejected during replay
        """
        new_ledger = Ledger(
            name=f"{self.name}_replayed",
            initial_time=datetime(1970, 1, 1),
            verbose=self.verbose,
            test_mode=self._test_mode
        )

        units_created_in_log = set()
        first_old_states: Dict[str, UnitState] = {}
        for tx in self.transaction_log[from_tx:]:
            for unit in tx.units_to_create:
                units_created_in_log.add(unit.symbol)
            for sc in tx.state_changes:
                if sc.unit not in first_old_states and isinstance(sc.old_state, dict):
                    first_old_states[sc.unit] = sc.old_state

        # Pre-existing units start from the state their first logged change expects.
        for symbol, unit in self.units.items():
            if symbol in units_created_in_log:
                continue
            base_state = first_old_states.get(symbol, unit.state)
            new_ledger.units[symbol] = replace(
                unit, _frozen_state=_freeze_state(self._deep_copy_state(base_state))
            )

        for wallet in self.registered_wallets:
            if wallet != SYSTEM_WALLET:
                new_ledger.register_wallet(wallet)

        for tx in self.transaction_log[from_tx:]:
            if tx.timestamp > new_ledger._current_time:
                new_ledger.advance_time(tx.timestamp)

            pending = PendingTransaction(
                moves=tx.moves,
                state_changes=tx.state_changes,
                origin=tx.origin,
                timestamp=tx.timestamp,
                units_to_create=tx.units_to_create,
            )

            result = new_ledger.execute(pending)
            if result == ExecuteResult.REJECTED:
                raise LedgerError(f"Replay failed at tx {tx.exec_id}: {new_ledger.last_rejection}")

        return new_ledger
