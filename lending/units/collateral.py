"""
collateral.py - Collateral Pool and Loan Accounting

This module implements the collateral ledger using the pure function pattern:

1. FROZEN DATACLASS (explicit inputs):
   - CollateralPosition: per-account (total_collateral, used_collateral)

2. PURE CALCULATION FUNCTIONS (calculate_*):
   - Take a position and an amount, return the new position or raise
   - No LedgerView, no hidden state

3. ADAPTER FUNCTIONS (load_position / _with_position):
   - The only code that reads or writes position maps in the pool state

4. CONVENIENCE FUNCTIONS (compute_*):
   - Load, calculate, and build one PendingTransaction carrying the custody
     or debt moves together with the position update, so bookkeeping and
     outbound effects commit atomically

Key Formulas:
    headroom = total_collateral - used_collateral      (total >= used checked first)
    loan A allowed       iff headroom >= A;   used += A
    repayment A allowed  iff A <= used;       used -= A
    withdrawal allowed   iff used <= total - unit_price

Pool state layout:
    custodian:         wallet holding deposited assets
    debt_symbol:       debt token unit minted against collateral
    unit_price:        collateral credited per deposited asset
    total_collateral:  account -> Decimal
    used_collateral:   account -> Decimal
    deposits:          asset_id -> depositing account
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Any, Optional

from ..core import (
    LedgerView, PendingTransaction, Unit, UnitStateChange, TransactionOrigin, OriginType,
    CUSTODY_ACCEPTED, UNIT_TYPE_COLLATERAL_POOL, ZERO,
    InsufficientCollateral, NotOwner, Underflow,
    build_transaction, to_amount, checked_add, checked_sub, _freeze_state,
)
from .asset import owner_of, custody_move
from .debt_token import MinterCapability, mint_moves, burn_moves


# ============================================================================
# FROZEN DATACLASS
# ============================================================================

@dataclass(frozen=True, slots=True)
class CollateralPosition:
    """
    Immutable snapshot of one account's collateral position.

    Attributes:
        total_collateral: Collateral credited for deposited assets
        used_collateral: Portion locked against outstanding debt
    """
    total_collateral: Decimal = ZERO
    used_collateral: Decimal = ZERO

    @property
    def headroom(self) -> Decimal:
        """
        Amount the account may still borrow.

        Raises:
            Underflow: If the position is corrupt (used > total).
        """
        return checked_sub(self.total_collateral, self.used_collateral)


class CollateralCustodian:
    """
    Component behind the custodian wallet.

    Declares the custody receiver capability so deposits can land in the
    pool. It accepts any asset; which assets count as collateral is decided
    by the pool state, not by the hook.
    """

    def on_custody_received(self, view: LedgerView, source: str, asset_id: int) -> str:
        return CUSTODY_ACCEPTED


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_deposit(position: CollateralPosition, unit_price: Decimal) -> CollateralPosition:
    """Credit one asset's worth of collateral."""
    return CollateralPosition(
        total_collateral=checked_add(position.total_collateral, unit_price),
        used_collateral=position.used_collateral,
    )


def calculate_loan(position: CollateralPosition, amount: Decimal) -> CollateralPosition:
    """
    Lock amount of headroom for a new loan.

    Raises:
        ValueError: If amount is not positive.
        Underflow: If used_collateral exceeds total_collateral.
        InsufficientCollateral: If headroom < amount.
    """
    if amount <= 0:
        raise ValueError(f"loan amount must be positive, got {amount}")
    headroom = position.headroom
    if headroom < amount:
        raise InsufficientCollateral(
            f"headroom {headroom} is less than requested loan {amount}"
        )
    return CollateralPosition(
        total_collateral=position.total_collateral,
        used_collateral=checked_add(position.used_collateral, amount),
    )


def calculate_repayment(position: CollateralPosition, amount: Decimal) -> CollateralPosition:
    """
    Release amount of locked collateral.

    Raises:
        ValueError: If amount is not positive.
        Underflow: If amount exceeds used_collateral.
    """
    if amount <= 0:
        raise ValueError(f"repayment amount must be positive, got {amount}")
    return CollateralPosition(
        total_collateral=position.total_collateral,
        used_collateral=checked_sub(position.used_collateral, amount),
    )


def calculate_withdrawal(position: CollateralPosition, unit_price: Decimal) -> CollateralPosition:
    """
    Remove one asset's worth of collateral.

    Raises:
        Underflow: If total_collateral is below unit_price.
        InsufficientCollateral: If the remaining collateral would not cover
            used_collateral.
    """
    new_total = checked_sub(position.total_collateral, unit_price)
    if position.used_collateral > new_total:
        raise InsufficientCollateral(
            f"withdrawal leaves {new_total} collateral against {position.used_collateral} used"
        )
    return CollateralPosition(
        total_collateral=new_total,
        used_collateral=position.used_collateral,
    )


# ============================================================================
# UNIT CREATION AND ADAPTERS
# ============================================================================

def create_collateral_pool(
    symbol: str,
    custodian: str,
    debt_symbol: str,
    unit_price,
) -> Unit:
    """
    Create the collateral pool unit.

    The debt token is minted through the MinterCapability its creator
    passes to compute_get_loan and compute_return_loan.

    Raises:
        ValueError: If unit_price is not a positive whole number.
    """
    unit_price = to_amount(unit_price, "unit_price")
    if unit_price == 0:
        raise ValueError("unit_price must be positive")
    return Unit(
        symbol=symbol,
        name="Collateral Pool",
        unit_type=UNIT_TYPE_COLLATERAL_POOL,
        _frozen_state=_freeze_state({
            'custodian': custodian,
            'debt_symbol': debt_symbol,
            'unit_price': unit_price,
            'total_collateral': {},
            'used_collateral': {},
            'deposits': {},
        }),
    )


def load_position(view: LedgerView, pool_symbol: str, account: str) -> CollateralPosition:
    """Read an account's position from the pool state (zero if absent)."""
    state = view.get_unit_state(pool_symbol)
    return _position_from_state(state, account)


def _position_from_state(state: Dict[str, Any], account: str) -> CollateralPosition:
    return CollateralPosition(
        total_collateral=state['total_collateral'].get(account, ZERO),
        used_collateral=state['used_collateral'].get(account, ZERO),
    )


def _with_position(state: Dict[str, Any], account: str, position: CollateralPosition) -> Dict[str, Any]:
    total = dict(state['total_collateral'])
    used = dict(state['used_collateral'])
    total[account] = position.total_collateral
    used[account] = position.used_collateral
    return {**state, 'total_collateral': total, 'used_collateral': used}


def _default_origin(pool_symbol: str, account: str, event_type: str) -> TransactionOrigin:
    return TransactionOrigin(OriginType.USER_ACTION, account, pool_symbol, event_type)


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

def compute_deposit_collateral(
    view: LedgerView,
    pool_symbol: str,
    account: str,
    asset_id: int,
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Move an owned asset into the custodian and credit collateral.

    If the custodian cannot accept custody the ledger rejects the whole
    transaction, so no collateral is credited.

    Raises:
        NotOwner: If account does not hold the asset.
        Overflow: If total_collateral would exceed MAX_AMOUNT.
    """
    state = view.get_unit_state(pool_symbol)
    if owner_of(view, asset_id) != account:
        raise NotOwner(f"{account} does not hold asset {asset_id}")

    position = calculate_deposit(_position_from_state(state, account), state['unit_price'])
    new_state = _with_position(state, account, position)
    new_state['deposits'] = {**state['deposits'], asset_id: account}

    moves = [custody_move(asset_id, account, state['custodian'], contract_id=pool_symbol)]
    changes = [UnitStateChange(unit=pool_symbol, old_state=state, new_state=new_state)]
    return build_transaction(
        view, moves, changes,
        origin=origin or _default_origin(pool_symbol, account, "DEPOSIT_COLLATERAL"),
    )


def compute_get_loan(
    view: LedgerView,
    pool_symbol: str,
    minter: MinterCapability,
    account: str,
    amount,
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Borrow amount against free collateral.

    Raises:
        Unauthorized: If minter is not the debt token's capability.
        ValueError: If amount is not a positive whole number.
        InsufficientCollateral: If headroom < amount.
        Underflow: If the stored position has used > total.
    """
    amount = to_amount(amount)
    state = view.get_unit_state(pool_symbol)
    position = calculate_loan(_position_from_state(state, account), amount)
    new_state = _with_position(state, account, position)

    moves = mint_moves(view, state['debt_symbol'], minter, account, amount)
    changes = [UnitStateChange(unit=pool_symbol, old_state=state, new_state=new_state)]
    return build_transaction(
        view, moves, changes,
        origin=origin or _default_origin(pool_symbol, account, "GET_LOAN"),
    )


def compute_return_loan(
    view: LedgerView,
    pool_symbol: str,
    minter: MinterCapability,
    account: str,
    amount,
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Repay amount of debt, burning tokens and freeing collateral.

    Raises:
        Unauthorized: If minter is not the debt token's capability.
        ValueError: If amount is not a positive whole number.
        InsufficientBalance: If the account holds less than amount in debt tokens.
        Underflow: If amount exceeds used_collateral.
    """
    amount = to_amount(amount)
    if amount == 0:
        raise ValueError("repayment amount must be positive")
    state = view.get_unit_state(pool_symbol)
    moves = burn_moves(view, state['debt_symbol'], minter, account, amount)
    position = calculate_repayment(_position_from_state(state, account), amount)
    new_state = _with_position(state, account, position)

    changes = [UnitStateChange(unit=pool_symbol, old_state=state, new_state=new_state)]
    return build_transaction(
        view, moves, changes,
        origin=origin or _default_origin(pool_symbol, account, "RETURN_LOAN"),
    )


def compute_withdraw_collateral(
    view: LedgerView,
    pool_symbol: str,
    account: str,
    asset_id: int,
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Return a deposited asset to its depositor.

    Raises:
        NotOwner: If account did not deposit the asset.
        InsufficientCollateral: If the remaining collateral would not cover
            outstanding debt.
    """
    state = view.get_unit_state(pool_symbol)
    if state['deposits'].get(asset_id) != account:
        raise NotOwner(f"{account} has not deposited asset {asset_id}")

    position = calculate_withdrawal(_position_from_state(state, account), state['unit_price'])
    new_state = _with_position(state, account, position)
    deposits = dict(state['deposits'])
    del deposits[asset_id]
    new_state['deposits'] = deposits

    moves = [custody_move(asset_id, state['custodian'], account, contract_id=pool_symbol)]
    changes = [UnitStateChange(unit=pool_symbol, old_state=state, new_state=new_state)]
    return build_transaction(
        view, moves, changes,
        origin=origin or _default_origin(pool_symbol, account, "WITHDRAW_COLLATERAL"),
    )


def get_headroom(view: LedgerView, pool_symbol: str, account: str) -> Decimal:
    """Convenience: current headroom for an account."""
    return load_position(view, pool_symbol, account).headroom
