"""
asset.py - Non-Fungible Asset Custody

Each asset id is its own ledger unit holding at most one token. The owner is
the only non-system wallet with a balance of 1; before issuance the unit does
not exist and the asset has no owner.

Every custody move into a component wallet (for example the collateral
custodian) is checked by custody_transfer_rule(): the component must implement
CustodyReceiver and accept the asset through on_custody_received(). Because
the rule runs inside Ledger validation, the check applies to deposits,
withdrawals, claim mints and direct transfers alike.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Optional

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, TransactionOrigin, OriginType,
    CustodyReceiver, CUSTODY_ACCEPTED, SYSTEM_WALLET, UNIT_TYPE_ASSET,
    NotOwner, RecipientCannotReceive, AssetAlreadyIssued,
    build_transaction, _freeze_state,
)

ONE = Decimal("1")

ASSET_SYMBOL_PREFIX = "ASSET_"


def asset_symbol(asset_id: int) -> str:
    """Ledger unit symbol for an asset id."""
    return f"{ASSET_SYMBOL_PREFIX}{asset_id}"


def custody_transfer_rule(view: LedgerView, move: Move) -> None:
    """
    Require component recipients to accept custody.

    End-user wallets (no component) and SYSTEM_WALLET always accept.

    Raises:
        RecipientCannotReceive: If the destination component does not
            implement CustodyReceiver or does not return CUSTODY_ACCEPTED.
    """
    if move.dest == SYSTEM_WALLET:
        return
    component = view.get_component(move.dest)
    if component is None:
        return
    if not isinstance(component, CustodyReceiver):
        raise RecipientCannotReceive(
            f"{move.dest} does not implement the custody receiver interface"
        )
    asset_id = view.get_unit_state(move.unit_symbol)['asset_id']
    response = component.on_custody_received(view, move.source, asset_id)
    if response != CUSTODY_ACCEPTED:
        raise RecipientCannotReceive(
            f"{move.dest} refused custody of asset {asset_id}"
        )


def create_asset_unit(asset_id: int, collection: str = "COLLATERAL_NFT") -> Unit:
    """
    Create the ledger unit for a single non-fungible asset.

    Raises:
        ValueError: If asset_id is negative.
    """
    if asset_id < 0:
        raise ValueError(f"asset_id must be non-negative, got {asset_id}")
    return Unit(
        symbol=asset_symbol(asset_id),
        name=f"{collection} #{asset_id}",
        unit_type=UNIT_TYPE_ASSET,
        min_balance=Decimal("0"),
        max_balance=ONE,
        decimal_places=0,
        transfer_rule=custody_transfer_rule,
        _frozen_state=_freeze_state({
            'asset_id': asset_id,
            'collection': collection,
        }),
    )


def owner_of(view: LedgerView, asset_id: int) -> Optional[str]:
    """Return the wallet holding the asset, or None if it was never issued."""
    symbol = asset_symbol(asset_id)
    if not view.has_unit(symbol):
        return None
    for wallet, quantity in view.get_positions(symbol).items():
        if wallet != SYSTEM_WALLET and quantity > 0:
            return wallet
    return None


def custody_move(asset_id: int, source: str, dest: str, contract_id: str) -> Move:
    """The single-token move that hands custody of asset_id from source to dest."""
    return Move(
        quantity=ONE,
        unit_symbol=asset_symbol(asset_id),
        source=source,
        dest=dest,
        contract_id=contract_id,
    )


def compute_transfer_custody(
    view: LedgerView,
    source: str,
    dest: str,
    asset_id: int,
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Move custody of an asset between wallets.

    The recipient capability check is left to custody_transfer_rule() so that
    the receiver hook runs exactly once, inside Ledger validation.

    Raises:
        NotOwner: If source does not hold the asset (or it was never issued).
    """
    if owner_of(view, asset_id) != source:
        raise NotOwner(f"{source} does not hold asset {asset_id}")
    move = custody_move(asset_id, source, dest, contract_id=f"custody_{asset_id}")
    if origin is None:
        origin = TransactionOrigin(OriginType.CONTRACT, "custody", asset_symbol(asset_id), "TRANSFER")
    return build_transaction(view, [move], origin=origin)


def compute_issue_asset(
    view: LedgerView,
    recipient: str,
    asset_id: int,
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Create an asset unit and issue its single token to recipient.

    Raises:
        AssetAlreadyIssued: If the asset id already exists.
    """
    unit = create_asset_unit(asset_id)
    if view.has_unit(unit.symbol):
        raise AssetAlreadyIssued(f"asset {asset_id} already issued")
    move = custody_move(asset_id, SYSTEM_WALLET, recipient, contract_id=f"issue_{asset_id}")
    if origin is None:
        origin = TransactionOrigin(OriginType.SYSTEM, "custody", unit.symbol, "ISSUE")
    return build_transaction(view, [move], origin=origin, units_to_create=(unit,))
