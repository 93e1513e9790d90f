"""
Core types and pure functions for the lending ledger.

Contents:
- LedgerView and CustodyReceiver, the read-only and custody-capability
  protocols that units and components are written against
- Frozen records for moves, pending and executed transactions, and units
- The LedgerError hierarchy used by the lending operations
- Positions and UnitState aliases
- Amount helpers that keep quantities integral and within uint256

Nothing here writes to a ledger. Compute functions receive a view and
return a PendingTransaction describing what they want applied.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN, ROUND_DOWN, getcontext
from enum import Enum
import copy
import hashlib
from typing import (
    Dict, List, Set, Optional, Callable, Any, Protocol,
    Tuple, FrozenSet, runtime_checkable
)


# ============================================================================
# DECIMAL CONTEXT
# ============================================================================
#
# Amounts are unsigned 256-bit integers carried as Decimal. 2**256 has 78
# digits, so the context precision must exceed that for exact arithmetic.
#
_ctx = getcontext()
_ctx.prec = 80
_ctx.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance and redemption. Exempt from balance validation.
SYSTEM_WALLET = "system"

UNIT_TYPE_ASSET = "ASSET"
UNIT_TYPE_DEBT_TOKEN = "DEBT_TOKEN"
UNIT_TYPE_COLLATERAL_POOL = "COLLATERAL_POOL"
UNIT_TYPE_CLAIM_REGISTRY = "CLAIM_REGISTRY"

# Largest representable amount (uint256).
MAX_AMOUNT = Decimal(2) ** 256 - 1

ZERO = Decimal("0")

DECIMAL_ROUNDING = {
    UNIT_TYPE_ASSET: ROUND_DOWN,
    UNIT_TYPE_DEBT_TOKEN: ROUND_DOWN,
}

# Token a custody receiver returns to accept an incoming asset.
CUSTODY_ACCEPTED = "custody_accepted"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# wallet id -> quantity, for one unit
Positions = Dict[str, Decimal]

# Per-unit state: deposits, merkle root, minter and so on.
UnitState = Dict[str, Any]

# UnitState as sorted (key, value) pairs, so a Unit can stay frozen.
FrozenState = Tuple[Tuple[str, Any], ...]


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Root of every error the ledger and lending operations raise."""
    pass


class InsufficientBalance(LedgerError):
    """Raised when a debit would take a wallet below its available balance."""
    pass


class BalanceConstraintViolation(LedgerError):
    """A move would push a wallet outside the unit's balance bounds."""
    pass


class TransferRuleViolation(LedgerError):
    """A unit's transfer rule refused a move."""
    pass


class RecipientCannotReceive(TransferRuleViolation):
    """Raised when a component wallet does not accept asset custody."""
    pass


class UnitNotRegistered(LedgerError):
    """The unit symbol is unknown to the ledger."""
    pass


class WalletNotRegistered(LedgerError):
    """The wallet id is unknown to the ledger."""
    pass


class InsufficientCollateral(LedgerError):
    """Raised when an account lacks collateral headroom for a loan or withdrawal."""
    pass


class Unauthorized(LedgerError):
    """Raised when a caller lacks the capability for a restricted operation."""
    pass


class AlreadyClaimed(LedgerError):
    """Raised when an asset id has already been claimed."""
    pass


class InvalidProof(LedgerError):
    """Raised when a Merkle proof does not authenticate a claim."""
    pass


class NotOwner(LedgerError):
    """Raised when the caller does not hold custody of an asset."""
    pass


class AssetAlreadyIssued(LedgerError):
    """Raised when minting an asset id that already exists."""
    pass


class ArithmeticBoundsError(LedgerError):
    """Base for amount arithmetic leaving the [0, MAX_AMOUNT] range."""
    pass


class Underflow(ArithmeticBoundsError):
    pass


class Overflow(ArithmeticBoundsError):
    pass


class ReentrantCall(LedgerError):
    """Raised when a mutating entry point is re-entered mid-execution."""
    pass


# ============================================================================
# AMOUNT HELPERS
# ============================================================================

def to_amount(value: Any, name: str = "amount") -> Decimal:
    """
    Convert a value to an integral, non-negative Decimal amount.

    Raises:
        ValueError: If the value is not a finite non-negative whole number.
        Overflow: If the value exceeds MAX_AMOUNT.
    """
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer or Decimal, got bool {value}")
    if not isinstance(value, Decimal):
        if isinstance(value, float):
            raise ValueError(f"{name} must be an integer or Decimal, got float {value}")
        try:
            value = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"{name} is not a number: {value!r}") from None
    if value.is_nan() or value.is_infinite():
        raise ValueError(f"{name} must be finite, got {value}")
    if value != value.to_integral_value():
        raise ValueError(f"{name} must be a whole number of base units, got {value}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")
    if value > MAX_AMOUNT:
        raise Overflow(f"{name} {value} exceeds MAX_AMOUNT")
    return value


def checked_add(a: Decimal, b: Decimal) -> Decimal:
    """Add two amounts, raising Overflow instead of exceeding MAX_AMOUNT."""
    result = a + b
    if result > MAX_AMOUNT:
        raise Overflow(f"{a} + {b} exceeds MAX_AMOUNT")
    return result


def checked_sub(a: Decimal, b: Decimal) -> Decimal:
    """Subtract two amounts, raising Underflow instead of going negative."""
    if b > a:
        raise Underflow(f"{a} - {b} is negative")
    return a - b


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    What a transfer rule or compute function may look at.

    Only queries are exposed. Ledger satisfies this structurally, and the
    unit tests substitute a FakeView built from plain dicts.
    """

    @property
    def current_time(self) -> datetime:
        """Logical clock of the ledger."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        ...

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """A copy; mutating it has no effect on the ledger."""
        ...

    def get_positions(self, unit_symbol: str) -> Positions:
        """Wallets holding a non-zero quantity of the unit."""
        ...

    def list_wallets(self) -> Set[str]:
        ...

    def has_unit(self, symbol: str) -> bool:
        ...

    def get_component(self, wallet_id: str) -> Optional[Any]:
        """Object registered behind the wallet; None for plain accounts."""
        ...


@runtime_checkable
class CustodyReceiver(Protocol):
    """
    Capability declared by components that can hold asset custody.

    A component wallet without this interface cannot receive assets.
    The hook must return CUSTODY_ACCEPTED to take the asset.
    """

    def on_custody_received(self, view: LedgerView, source: str, asset_id: int) -> str:
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    What Ledger.execute did with a pending transaction.

    APPLIED means every move and state change landed. ALREADY_APPLIED means
    the intent_id was seen before and nothing changed. REJECTED means
    validation failed and the ledger is untouched.
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Who asked for a transaction."""
    USER_ACTION = "user_action"           # Caller-authenticated protocol call
    CONTRACT = "contract"                 # Component-generated (mint, burn, custody)
    SYSTEM = "system"                     # Initialization and issuance


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Audit attribution carried by every transaction.

    source_id is the caller or component, unit_symbol the unit whose logic
    produced the transaction, event_type the operation ("GET_LOAN", "CLAIM").
    request_id separates two calls that would otherwise hash identically.
    """
    origin_type: OriginType
    source_id: str
    unit_symbol: Optional[str] = None
    event_type: Optional[str] = None
    request_id: Optional[str] = None

    def __repr__(self) -> str:
        tags = [("unit", self.unit_symbol), ("event", self.event_type), ("request", self.request_id)]
        extra = "".join(f", {k}={v}" for k, v in tags if v)
        return f"Origin({self.origin_type.value}:{self.source_id}{extra})"


# ============================================================================
# UNIT STATE CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class UnitStateChange:
    """
    Full before and after snapshots of one unit's state.

    old_state must equal the unit's state at execution time, otherwise the
    ledger rejects the transaction as stale.
    """
    unit: str
    old_state: Any
    new_state: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """Fields whose value differs, as key -> (before, after)."""
        before = self.old_state if isinstance(self.old_state, dict) else {}
        after = self.new_state if isinstance(self.new_state, dict) else {}
        return {
            key: (before.get(key), after.get(key))
            for key in before.keys() | after.keys()
            if before.get(key) != after.get(key)
        }


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    quantity of unit_symbol leaving source and arriving at dest.

    contract_id names the component that produced the move. metadata is
    not part of the intent hash; the DEBT unit's rule reads the minter's
    stamp from it. quantity must be a positive finite Decimal.
    """
    quantity: Decimal
    unit_symbol: str
    source: str
    dest: str
    contract_id: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        for name in ('source', 'dest', 'unit_symbol', 'contract_id'):
            value = getattr(self, name)
            if not value or not value.strip():
                raise ValueError(f"Move {name} cannot be empty")
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be Decimal, got {type(self.quantity).__name__}")
        if not self.quantity.is_finite():
            raise ValueError(f"Move quantity must be finite, got {self.quantity}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.unit_symbol} x{self.quantity} {self.source}->{self.dest} by {self.contract_id})"


def _normalize_decimal(d: Decimal) -> str:
    """Decimal("2.0") and Decimal("2") must hash alike."""
    d = d.normalize()
    return str(int(d)) if d == d.to_integral_value() else format(d, 'f')


def _canon_mapping(value: dict) -> str:
    pairs = sorted(value.items(), key=lambda kv: str(kv[0]))
    return "{" + ",".join(_canonicalize(k) + ":" + _canonicalize(v) for k, v in pairs) + "}"


def _canon_sequence(value) -> str:
    return "[" + ",".join(map(_canonicalize, value)) + "]"


def _canon_set(value) -> str:
    return "<" + ",".join(_canonicalize(v) for v in sorted(value, key=str)) + ">"


# Checked in order; bool before int since bool subclasses int.
_CANONICAL_FORMS: Tuple[Tuple[Any, Callable[[Any], str]], ...] = (
    (bool, lambda v: "true" if v else "false"),
    (Decimal, lambda v: "D:" + _normalize_decimal(v)),
    ((int, float), lambda v: f"N:{v}"),
    (str, lambda v: "S:" + v),
    (bytes, lambda v: "B:" + v.hex()),
    (datetime, lambda v: "T:" + v.isoformat()),
    (dict, _canon_mapping),
    ((list, tuple), _canon_sequence),
    ((set, frozenset), _canon_set),
)


def _canonicalize(value: Any) -> str:
    """
    Stable text encoding of a value for content hashing.

    Dict ordering, Decimal exponent and container type (set vs frozenset)
    do not affect the result.
    """
    if value is None:
        return "null"
    for kinds, encode in _CANONICAL_FORMS:
        if isinstance(value, kinds):
            return encode(value)
    return f"R:{value!r}"


def _compute_intent_id(
    moves: Tuple[Move, ...],
    state_changes: Tuple[UnitStateChange, ...],
    origin: TransactionOrigin,
    units_to_create: Tuple['Unit', ...] = ()
) -> str:
    """
    Content hash of what a transaction intends to do.

    Covers origin (including request_id), unit creations, moves and state
    changes. Timestamps are excluded, so the same intent built at two
    different times hashes the same.
    """
    content = _canonicalize({
        'origin': (origin.origin_type.value, origin.source_id, origin.unit_symbol,
                   origin.event_type, origin.request_id),
        'create': sorted((u.symbol, u.unit_type) for u in units_to_create),
        'moves': sorted(
            (_normalize_decimal(m.quantity), m.unit_symbol, m.source, m.dest, m.contract_id)
            for m in moves
        ),
        'state': [(sc.unit, sc.old_state, sc.new_state)
                  for sc in sorted(state_changes, key=lambda s: s.unit)],
    })
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    Proposed ledger change, produced by a compute function.

    Nothing has happened yet; Ledger.execute() decides. Two pending
    transactions with the same content share an intent_id, which is how
    the ledger recognises a replay.
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    units_to_create: Tuple['Unit', ...] = ()
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            computed_id = _compute_intent_id(
                self.moves, self.state_changes, self.origin, self.units_to_create
            )
            object.__setattr__(self, 'intent_id', computed_id)

    def is_empty(self) -> bool:
        """No moves, no state changes, no units to create."""
        return not (self.moves or self.state_changes or self.units_to_create)

    def with_origin(self, origin: TransactionOrigin) -> PendingTransaction:
        """Same content under another origin; the intent_id is rehashed."""
        return PendingTransaction(
            moves=self.moves,
            state_changes=self.state_changes,
            origin=origin,
            timestamp=self.timestamp,
            units_to_create=self.units_to_create,
        )

    def __repr__(self) -> str:
        return f"PendingTransaction(intent={self.intent_id}, moves={len(self.moves)}, changes={len(self.state_changes)}, {self.origin})"


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    state_changes: Optional[List[UnitStateChange]] = None,
    origin: Optional[TransactionOrigin] = None,
    units_to_create: Optional[Tuple['Unit', ...]] = None,
) -> PendingTransaction:
    """
    Package moves, state changes and new units into a PendingTransaction.

    The snapshots in state_changes are deep-copied so later mutation by
    the caller cannot alter what was hashed. Without an origin the
    transaction is attributed to a generic contract.

        def compute_set_root(view, symbol, root):
            before = view.get_unit_state(symbol)
            after = {**before, 'merkle_root': root}
            return build_transaction(view, [], [UnitStateChange(symbol, before, after)])
    """
    snapshots = tuple(
        UnitStateChange(sc.unit, copy.deepcopy(sc.old_state), copy.deepcopy(sc.new_state))
        for sc in (state_changes or ())
    )
    return PendingTransaction(
        moves=tuple(moves),
        state_changes=snapshots,
        origin=origin or TransactionOrigin(OriginType.CONTRACT, "contract"),
        timestamp=view.current_time,
        units_to_create=tuple(units_to_create or ()),
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    A PendingTransaction after the ledger applied it.

    Adds where and when it ran: exec_id and sequence_number are unique
    within ledger_name, and execution_time is the ledger clock at apply
    time (timestamp is when the intent was built). contract_ids is
    derived from the moves when not given.
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    units_to_create: Tuple['Unit', ...] = ()
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not (self.moves or self.state_changes or self.units_to_create):
            raise ValueError("An executed transaction cannot be empty")
        if self.contract_ids is None:
            object.__setattr__(self, 'contract_ids', frozenset(m.contract_id for m in self.moves))

    def __repr__(self) -> str:
        header = (
            f"#{self.sequence_number} {self.exec_id} intent={self.intent_id} "
            f"at {self.execution_time.isoformat()} {self.origin}"
        )
        lines = [header]
        lines.extend(f"  + {unit.symbol} ({unit.name})" for unit in self.units_to_create)
        lines.extend(
            f"  {move.quantity} {move.unit_symbol}: {move.source} → {move.dest} [{move.contract_id}]"
            for move in self.moves
        )
        for sc in self.state_changes:
            for key, (before, after) in sorted(sc.changed_fields().items()):
                lines.append(f"  {sc.unit}.{key}: {before!r} → {after!r}")
        return "\n".join(lines)


# Called with each move touching the unit; raises TransferRuleViolation to refuse it.
TransferRule = Callable[[LedgerView, Move], None]


def _freeze_state(state: Optional[UnitState]) -> FrozenState:
    return tuple(sorted((state or {}).items()))


def _thaw_state(frozen: FrozenState) -> UnitState:
    return dict(frozen)


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Something the ledger tracks balances of.

    A unit is the asset, the debt token, or a state-only record such as the
    collateral pool or the claim registry. min_balance and max_balance bound
    every non-system wallet; ASSET units cap at 1 so custody is exclusive.
    decimal_places=None leaves quantities unrounded. transfer_rule, when
    set, sees every move of this unit before it applies.
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: Decimal = Decimal("0")
    max_balance: Decimal = Decimal("Infinity")
    decimal_places: Optional[int] = None
    transfer_rule: Optional[TransferRule] = None
    _frozen_state: FrozenState = ()

    @property
    def state(self) -> UnitState:
        """Fresh dict each time."""
        return _thaw_state(self._frozen_state)

    def round(self, value: Decimal) -> Decimal:
        if self.decimal_places is None:
            return value
        step = Decimal(1).scaleb(-self.decimal_places)
        mode = DECIMAL_ROUNDING.get(self.unit_type, ROUND_HALF_EVEN)
        return Decimal(str(value)).quantize(step, rounding=mode)
