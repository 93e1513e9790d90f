"""
fake_view.py - In-memory LedgerView for unit tests

Lets transfer rules and compute functions run against hand-built balances
and units, with no Ledger involved.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Dict, Set, Optional, Any

from lending.core import Unit, Positions, UnitState


class FakeView:
    """
    Balances, units and components supplied up front, read back as a view.

        view = FakeView(
            balances={'alice': {'DEBT': Decimal("3")}},
            units=[create_debt_token_unit("DEBT", MinterCapability("COLLATERAL"))],
        )
        view.get_positions('DEBT')   # {'alice': Decimal("3")}
    """

    def __init__(
        self,
        balances: Dict[str, Dict[str, Decimal]],
        units: Optional[list] = None,
        components: Optional[Dict[str, Any]] = None,
        time: Optional[datetime] = None,
    ):
        self._balances = balances
        self._units: Dict[str, Unit] = {u.symbol: u for u in (units or [])}
        self._components = components or {}
        self._time = time or datetime(2024, 1, 1)

    @property
    def current_time(self) -> datetime:
        return self._time

    def get_balance(self, wallet: str, unit: str) -> Decimal:
        return self._balances.get(wallet, {}).get(unit, Decimal("0"))

    def get_unit_state(self, unit: str) -> UnitState:
        return self._units[unit].state

    def get_positions(self, unit: str) -> Positions:
        pairs = ((w, b.get(unit, Decimal("0"))) for w, b in self._balances.items())
        return {w: q for w, q in pairs if q}

    def list_wallets(self) -> Set[str]:
        return set(self._balances)

    def has_unit(self, symbol: str) -> bool:
        return symbol in self._units

    def get_component(self, wallet_id: str) -> Optional[Any]:
        return self._components.get(wallet_id)
