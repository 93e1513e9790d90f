"""
debt_token.py - Fungible Debt Token

Debt tokens are issued out of SYSTEM_WALLET when a loan is taken and
redeemed into it on repayment. Minting authority is an object, not a name:
the MinterCapability handed to create_debt_token_unit() is the only thing
that can produce moves the unit will accept, and it is held privately by
whoever created the unit (the lending protocol).

The capability is enforced twice:
    - mint_moves() / burn_moves() raise Unauthorized unless given the
      capability bound to the symbol
    - the unit's transfer rule redeems the one-time stamp every signed move
      carries, so the ledger refuses hand-built issuance, lookalike
      capabilities, replayed moves and account-to-account transfers

Total supply is the sum of non-system balances, i.e. minus the SYSTEM_WALLET
balance.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, TransactionOrigin, OriginType,
    SYSTEM_WALLET, UNIT_TYPE_DEBT_TOKEN,
    Unauthorized, InsufficientBalance, TransferRuleViolation,
    build_transaction, to_amount, checked_add, _freeze_state,
)


class _Stamp:
    __slots__ = ()

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


class MinterCapability:
    """
    Sole authority to mint and burn one debt token.

    holder is only a label (it becomes the contract_id of signed moves and
    the 'minter' entry of the unit state); knowing it grants nothing. Each
    signed move carries a fresh stamp that the unit's transfer rule redeems
    exactly once.
    """

    def __init__(self, holder: str):
        if not holder or not holder.strip():
            raise ValueError("debt token requires a minter")
        self.holder = holder
        self.symbol: Optional[str] = None
        self._outstanding: Dict[_Stamp, Tuple[str, Decimal, str, str]] = {}

    def __repr__(self) -> str:
        return f"MinterCapability({self.holder} for {self.symbol})"

    def _bind(self, symbol: str) -> None:
        if self.symbol is not None and self.symbol != symbol:
            raise ValueError(f"minter {self.holder} is already bound to {self.symbol}")
        self.symbol = symbol

    def _sign(self, quantity: Decimal, source: str, dest: str) -> Move:
        stamp = _Stamp()
        self._outstanding[stamp] = (self.symbol, quantity, source, dest)
        return Move(quantity, self.symbol, source, dest,
                    contract_id=self.holder, metadata={'stamp': stamp})

    def transfer_rule(self, view: LedgerView, move: Move) -> None:
        """
        Admit only mint and burn moves signed by this capability.

        Raises:
            TransferRuleViolation: If the move is a transfer between accounts,
                or its stamp is missing, foreign, already redeemed or does not
                match the move.
        """
        if SYSTEM_WALLET not in (move.source, move.dest):
            raise TransferRuleViolation(
                f"{move.unit_symbol} is not transferable between accounts"
            )
        stamp = (move.metadata or {}).get('stamp')
        signed = self._outstanding.pop(stamp, None) if isinstance(stamp, _Stamp) else None
        if signed != (move.unit_symbol, move.quantity, move.source, move.dest):
            raise TransferRuleViolation(
                f"{move.unit_symbol} issuance by {move.contract_id} not authorized"
            )


def create_debt_token_unit(symbol: str, minter: MinterCapability, name: str = "Debt Token") -> Unit:
    """
    Create the debt token unit and bind minter to it.

    Raises:
        ValueError: If minter is not a MinterCapability, or is already bound
            to another symbol.
    """
    if not isinstance(minter, MinterCapability):
        raise ValueError(f"debt token requires a MinterCapability minter, got {minter!r}")
    minter._bind(symbol)
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_DEBT_TOKEN,
        min_balance=Decimal("0"),
        decimal_places=0,
        transfer_rule=minter.transfer_rule,
        _frozen_state=_freeze_state({'minter': minter.holder}),
    )


def _require_minter(symbol: str, minter) -> MinterCapability:
    if not isinstance(minter, MinterCapability) or minter.symbol != symbol:
        raise Unauthorized(f"{minter!r} may not mint or burn {symbol}")
    return minter


def total_supply(view: LedgerView, symbol: str) -> Decimal:
    """Outstanding debt across all accounts."""
    return sum(
        (q for wallet, q in view.get_positions(symbol).items() if wallet != SYSTEM_WALLET),
        Decimal("0"),
    )


def mint_moves(view: LedgerView, symbol: str, minter: MinterCapability, account: str, amount) -> List[Move]:
    """
    Signed moves that issue amount debt tokens to account.

    Raises:
        Unauthorized: If minter is not the capability bound to symbol.
        ValueError: If amount is not a positive whole number.
        Overflow: If the account balance or total supply would exceed MAX_AMOUNT.
    """
    minter = _require_minter(symbol, minter)
    amount = to_amount(amount)
    if amount == 0:
        raise ValueError("mint amount must be positive")
    checked_add(view.get_balance(account, symbol), amount)
    checked_add(total_supply(view, symbol), amount)
    return [minter._sign(amount, SYSTEM_WALLET, account)]


def burn_moves(view: LedgerView, symbol: str, minter: MinterCapability, account: str, amount) -> List[Move]:
    """
    Signed moves that redeem amount debt tokens from account.

    Raises:
        Unauthorized: If minter is not the capability bound to symbol.
        ValueError: If amount is not a positive whole number.
        InsufficientBalance: If amount exceeds the account balance.
    """
    minter = _require_minter(symbol, minter)
    amount = to_amount(amount)
    if amount == 0:
        raise ValueError("burn amount must be positive")
    balance = view.get_balance(account, symbol)
    if amount > balance:
        raise InsufficientBalance(f"{account} holds {balance} {symbol}, cannot burn {amount}")
    return [minter._sign(amount, account, SYSTEM_WALLET)]


def compute_mint(
    view: LedgerView, symbol: str, minter: MinterCapability, account: str, amount,
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """Standalone mint transaction (see mint_moves)."""
    moves = mint_moves(view, symbol, minter, account, amount)
    if origin is None:
        origin = TransactionOrigin(OriginType.CONTRACT, minter.holder, symbol, "MINT")
    return build_transaction(view, moves, origin=origin)


def compute_burn(
    view: LedgerView, symbol: str, minter: MinterCapability, account: str, amount,
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """Standalone burn transaction (see burn_moves)."""
    moves = burn_moves(view, symbol, minter, account, amount)
    if origin is None:
        origin = TransactionOrigin(OriginType.CONTRACT, minter.holder, symbol, "BURN")
    return build_transaction(view, moves, origin=origin)
