"""
ledger.py - Stateful store for the lending system

Ledger owns every balance, unit definition and component registration, and
is the one place where any of them change. Everything else computes a
PendingTransaction against a read-only view and hands it to execute(),
which validates it in full, applies it in full or not at all, and appends
the result to transaction_log.
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Set, Optional, Tuple, Any, Iterable
import copy
import logging
from decimal import Decimal

from .core import (
    Move, Transaction, Unit, PendingTransaction, ExecuteResult,
    Positions, UnitState,
    SYSTEM_WALLET, ZERO,
    LedgerError, InsufficientBalance, BalanceConstraintViolation,
    TransferRuleViolation, UnitNotRegistered, WalletNotRegistered,
    _freeze_state,
)

logger = logging.getLogger(__name__)


def _zero_balances() -> Dict[str, Decimal]:
    return defaultdict(lambda: ZERO)


class Ledger:
    """
    Double-entry store with validation on every write and a full audit log.

    Satisfies LedgerView, so the ledger itself is what compute functions and
    transfer rules receive. A wallet is either a plain account or a
    component wallet, in which case the backing object is reachable through
    get_component() (the collateral custodian is one).

    SYSTEM_WALLET exists from the start and is the counterparty for every
    mint and burn, so each unit's balances sum to zero across all wallets.

    Single-threaded; callers serialise access.

        ledger = Ledger("main")
        minter = MinterCapability("COLLATERAL")
        ledger.register_unit(create_debt_token_unit("DEBT", minter))
        ledger.register_wallet("alice")
        ledger.execute(compute_mint(ledger, "DEBT", minter, "alice", 5))
    """

    def __init__(self, name: str, initial_time: Optional[datetime] = None):
        self.name = name
        self.transaction_log: List[Transaction] = []
        self._clock: datetime = initial_time or datetime(1970, 1, 1)
        self._units: Dict[str, Unit] = {}
        self._wallets: Dict[str, Dict[str, Decimal]] = {SYSTEM_WALLET: _zero_balances()}
        self._components: Dict[str, Any] = {}
        self._applied_intents: Set[str] = set()
        # unit -> {wallet -> non-zero quantity}
        self._holders: Dict[str, Dict[str, Decimal]] = defaultdict(dict)

    # ========================================================================
    # READS
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        return self._clock

    def _require_wallet(self, wallet_id: str) -> None:
        if wallet_id not in self._wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")

    def _require_unit(self, symbol: str) -> Unit:
        try:
            return self._units[symbol]
        except KeyError:
            raise UnitNotRegistered(f"Unit {symbol} not registered") from None

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        self._require_wallet(wallet_id)
        self._require_unit(unit_symbol)
        return self._wallets[wallet_id].get(unit_symbol, ZERO)

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """Deep copy of the unit's state; safe for callers to mutate."""
        return copy.deepcopy(self._require_unit(unit_symbol).state)

    def get_positions(self, unit_symbol: str) -> Positions:
        return dict(self._holders.get(unit_symbol, {}))

    def get_component(self, wallet_id: str) -> Optional[Any]:
        return self._components.get(wallet_id)

    def has_unit(self, symbol: str) -> bool:
        return symbol in self._units

    def is_registered(self, wallet_id: str) -> bool:
        return wallet_id in self._wallets

    def list_units(self) -> List[str]:
        return sorted(self._units)

    def list_wallets(self) -> Set[str]:
        return set(self._wallets)

    def total_supply(self, unit_symbol: str) -> Decimal:
        """
        Net quantity of a unit over every wallet, SYSTEM_WALLET included.

        Zero whenever double entry holds. Wallets are visited in sorted order
        so the result does not depend on registration order.
        """
        self._require_unit(unit_symbol)
        return sum(
            (self._wallets[w].get(unit_symbol, ZERO) for w in sorted(self._wallets)),
            ZERO,
        )

    def verify_double_entry(self) -> Dict[str, Any]:
        """
        Check conservation for every registered unit.

        Returns a dict with:
            valid:          True when every unit nets to zero
            supplies:       unit -> quantity outstanding outside SYSTEM_WALLET
            discrepancies:  [{'unit': ..., 'net': ...}] for units that do not
        """
        system = self._wallets[SYSTEM_WALLET]
        supplies = {sym: -system.get(sym, ZERO) for sym in sorted(self._units)}
        discrepancies = []
        for sym in supplies:
            net = self.total_supply(sym)
            if net != 0:
                discrepancies.append({'unit': sym, 'net': net})
        return {
            'valid': not discrepancies,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # CLOCK AND REGISTRATION
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        if new_time < self._clock:
            raise ValueError(f"Cannot move time backwards: {new_time} < {self._clock}")
        self._clock = new_time

    def register_wallet(self, wallet_id: str, component: Any = None) -> str:
        """
        Add a wallet, optionally backed by a component object.

        Assets can only be moved into a component wallet whose component
        implements CustodyReceiver.
        """
        if wallet_id in self._wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self._wallets[wallet_id] = _zero_balances()
        if component is not None:
            self._components[wallet_id] = component
            logger.debug("registered wallet %s backed by %s", wallet_id, type(component).__name__)
        else:
            logger.debug("registered wallet %s", wallet_id)
        return wallet_id

    def unregister_wallet(self, wallet_id: str) -> None:
        """
        Remove a wallet that currently holds nothing.

        Raises:
            WalletNotRegistered: If the wallet does not exist.
            ValueError: For SYSTEM_WALLET, or a wallet with a non-zero balance.
        """
        self._require_wallet(wallet_id)
        if wallet_id == SYSTEM_WALLET:
            raise ValueError("SYSTEM_WALLET cannot be unregistered")
        held = sorted(sym for sym, q in self._wallets[wallet_id].items() if q)
        if held:
            raise ValueError(f"Wallet {wallet_id} still holds {', '.join(held)}")
        del self._wallets[wallet_id]
        self._components.pop(wallet_id, None)
        logger.debug("unregistered wallet %s", wallet_id)

    def register_unit(self, unit: Unit) -> None:
        if unit.symbol in self._units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self._units[unit.symbol] = unit
        logger.debug(
            "registered unit %s [%s] rule=%s", unit.symbol, unit.unit_type,
            getattr(unit.transfer_rule, '__name__', None),
        )

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def execute(self, pending: PendingTransaction, strict: bool = False) -> ExecuteResult:
        """
        Apply a PendingTransaction atomically.

        Units in pending.units_to_create are registered first so that the
        transfer rules of the moves can see them; if validation fails, or
        anything raises, they are removed again and the ledger is exactly as
        it was. An intent_id that has already been applied is acknowledged
        with ALREADY_APPLIED and changes nothing.

        With strict=True a validation failure raises the specific LedgerError
        instead of returning REJECTED.
        """
        if pending.is_empty():
            return ExecuteResult.APPLIED
        if pending.intent_id in self._applied_intents:
            logger.info("ALREADY_APPLIED intent=%s", pending.intent_id)
            return ExecuteResult.ALREADY_APPLIED

        created: List[str] = []
        try:
            for unit in pending.units_to_create:
                self.register_unit(unit)
                created.append(unit.symbol)
            error = self._first_violation(pending)
        except Exception:
            self._forget_units(created)
            raise

        if error is not None:
            self._forget_units(created)
            logger.warning("REJECTED intent=%s: %s: %s",
                           pending.intent_id, type(error).__name__, error)
            if strict:
                raise error
            return ExecuteResult.REJECTED

        tx = self._commit(pending)
        logger.debug("APPLIED %r", tx)
        return ExecuteResult.APPLIED

    def _forget_units(self, symbols: Iterable[str]) -> None:
        for symbol in symbols:
            self._units.pop(symbol, None)

    def _first_violation(self, pending: PendingTransaction) -> Optional[LedgerError]:
        """The first reason pending cannot apply, or None."""
        if pending.timestamp > self._clock:
            return LedgerError(
                f"future timestamp: {pending.timestamp.isoformat()} > {self._clock.isoformat()}"
            )

        for move in pending.moves:
            if move.unit_symbol not in self._units:
                return UnitNotRegistered(f"unit not registered: {move.unit_symbol}")
            for wallet in (move.source, move.dest):
                if wallet not in self._wallets:
                    return WalletNotRegistered(f"wallet not registered: {wallet}")

        for sc in pending.state_changes:
            if sc.unit not in self._units:
                return UnitNotRegistered(f"unit not registered: {sc.unit}")
            if sc.old_state is not None and sc.old_state != self._units[sc.unit].state:
                return LedgerError(f"stale state for {sc.unit}")

        for move in pending.moves:
            rule = self._units[move.unit_symbol].transfer_rule
            if rule is None:
                continue
            try:
                rule(self, move)
            except TransferRuleViolation as violation:
                return violation

        return self._bounds_violation(pending.moves)

    def _bounds_violation(self, moves: Tuple[Move, ...]) -> Optional[LedgerError]:
        """Check each wallet's resulting balance against its unit's limits."""
        deltas: Dict[Tuple[str, str], Decimal] = defaultdict(lambda: ZERO)
        for move in moves:
            deltas[(move.source, move.unit_symbol)] -= move.quantity
            deltas[(move.dest, move.unit_symbol)] += move.quantity

        for (wallet, symbol), delta in sorted(deltas.items()):
            if wallet == SYSTEM_WALLET:
                continue
            unit = self._units[symbol]
            after = unit.round(self._wallets[wallet][symbol] + delta)
            if after < unit.min_balance:
                return InsufficientBalance(f"{wallet} {symbol}: {after} < min {unit.min_balance}")
            if after > unit.max_balance:
                return BalanceConstraintViolation(f"{wallet} {symbol}: {after} > max {unit.max_balance}")
        return None

    def _commit(self, pending: PendingTransaction) -> Transaction:
        sequence = len(self.transaction_log)
        tx = Transaction(
            moves=pending.moves,
            state_changes=pending.state_changes,
            origin=pending.origin,
            timestamp=pending.timestamp,
            intent_id=pending.intent_id,
            exec_id=f"exec:{self.name}:{sequence:08d}",
            ledger_name=self.name,
            execution_time=self._clock,
            sequence_number=sequence,
            units_to_create=pending.units_to_create,
        )

        for move in tx.moves:
            unit = self._units[move.unit_symbol]
            self._credit(move.source, unit, -move.quantity)
            self._credit(move.dest, unit, move.quantity)

        for sc in tx.state_changes:
            new_state = copy.deepcopy(sc.new_state) if isinstance(sc.new_state, dict) else {}
            self._units[sc.unit] = replace(self._units[sc.unit], _frozen_state=_freeze_state(new_state))

        self.transaction_log.append(tx)
        self._applied_intents.add(tx.intent_id)
        return tx

    def _credit(self, wallet: str, unit: Unit, amount: Decimal) -> None:
        balances = self._wallets[wallet]
        balance = unit.round(balances[unit.symbol] + amount)
        balances[unit.symbol] = balance
        holders = self._holders[unit.symbol]
        if balance:
            holders[wallet] = balance
        else:
            holders.pop(wallet, None)
