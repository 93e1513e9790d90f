"""
protocol.py - External Interface of the Lending System

LendingProtocol owns one Ledger and exposes the caller-authenticated entry
points (deposit, withdraw, borrow, repay, claim, transfer) plus read-only
queries. Initialization is one-time: the Merkle root, the per-asset unit
price and the debt token's minter are fixed at construction and never
change. The minter capability itself never leaves the protocol.

Every entry point:
    1. takes the single-flight reentrancy guard
    2. asks the current LendingLogic for a PendingTransaction
    3. executes it strictly, so any failure raises its specific LedgerError
       and leaves no partial state

The logic object sits behind an indirection so it can be replaced with a new
version; only the configured admin may do so.

Example:
    allowlist = build_claim_allowlist([("alice", 0), ("bob", 1)])
    protocol = LendingProtocol(ProtocolConfig(
        merkle_root=allowlist.root, unit_price=2, admin="admin",
    ))
    protocol.claim("alice", 0, allowlist.proof_for(0))
    protocol.deposit_collateral("alice", 0)
    protocol.get_loan("alice", 2)
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Protocol, Sequence, runtime_checkable
import logging

from .core import (
    LedgerView, PendingTransaction, TransactionOrigin, OriginType,
    SYSTEM_WALLET, ZERO,
    Unauthorized, RecipientCannotReceive, ReentrantCall,
    to_amount,
)
from .ledger import Ledger
from .merkle import HASH_SIZE, MAX_PROOF_LENGTH
from .units.asset import owner_of, compute_transfer_custody, compute_issue_asset
from .units.debt_token import MinterCapability, create_debt_token_unit, total_supply as debt_total_supply
from .units.collateral import (
    CollateralCustodian, create_collateral_pool, load_position,
    compute_deposit_collateral, compute_get_loan, compute_return_loan,
    compute_withdraw_collateral,
)
from .units.claim_registry import create_claim_registry, is_claimed, compute_claim

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProtocolConfig:
    """
    One-time initialization parameters.

    Attributes:
        merkle_root: Root committing to the claim allowlist
        unit_price: Collateral credited per deposited asset
        admin: Principal allowed to upgrade logic and issue assets
        name: Ledger name
        pool_symbol: Collateral pool unit (also labels the debt token's minter)
        debt_symbol: Debt token unit
        registry_symbol: Claim registry unit
        custodian_wallet: Wallet that holds deposited assets
        initial_time: Starting logical time of the ledger
        max_proof_length: Longest claim proof accepted (the allowlist depth)
    """
    merkle_root: bytes
    unit_price: Decimal
    admin: str
    name: str = "lending"
    pool_symbol: str = "COLLATERAL"
    debt_symbol: str = "DEBT"
    registry_symbol: str = "CLAIMS"
    custodian_wallet: str = "collateral_pool"
    initial_time: Optional[datetime] = None
    max_proof_length: int = MAX_PROOF_LENGTH

    def __post_init__(self):
        object.__setattr__(self, 'unit_price', to_amount(self.unit_price, "unit_price"))
        if self.unit_price == 0:
            raise ValueError("unit_price must be positive")
        if not isinstance(self.merkle_root, (bytes, bytearray)) or len(self.merkle_root) != HASH_SIZE:
            raise ValueError("merkle_root must be 32 bytes")
        if not self.admin or not self.admin.strip():
            raise ValueError("admin cannot be empty")


@runtime_checkable
class LendingLogic(Protocol):
    """Versioned operation logic. Each method returns the transaction to execute."""

    version: str

    def deposit_collateral(self, view: LedgerView, config: ProtocolConfig, account: str,
                           asset_id: int, origin: TransactionOrigin) -> PendingTransaction: ...

    def withdraw_collateral(self, view: LedgerView, config: ProtocolConfig, account: str,
                            asset_id: int, origin: TransactionOrigin) -> PendingTransaction: ...

    def get_loan(self, view: LedgerView, config: ProtocolConfig, minter: MinterCapability,
                 account: str, amount: Decimal, origin: TransactionOrigin) -> PendingTransaction: ...

    def return_loan(self, view: LedgerView, config: ProtocolConfig, minter: MinterCapability,
                    account: str, amount: Decimal, origin: TransactionOrigin) -> PendingTransaction: ...

    def claim(self, view: LedgerView, config: ProtocolConfig, claimant: str, asset_id: int,
              proof: Sequence[bytes], origin: TransactionOrigin) -> PendingTransaction: ...

    def transfer_custody(self, view: LedgerView, config: ProtocolConfig, source: str, dest: str,
                         asset_id: int, origin: TransactionOrigin) -> PendingTransaction: ...


class LendingLogicV1:
    """Initial logic: delegates to the unit compute functions."""

    version = "1"

    def deposit_collateral(self, view, config, account, asset_id, origin):
        return compute_deposit_collateral(view, config.pool_symbol, account, asset_id, origin)

    def withdraw_collateral(self, view, config, account, asset_id, origin):
        return compute_withdraw_collateral(view, config.pool_symbol, account, asset_id, origin)

    def get_loan(self, view, config, minter, account, amount, origin):
        return compute_get_loan(view, config.pool_symbol, minter, account, amount, origin)

    def return_loan(self, view, config, minter, account, amount, origin):
        return compute_return_loan(view, config.pool_symbol, minter, account, amount, origin)

    def claim(self, view, config, claimant, asset_id, proof, origin):
        return compute_claim(view, config.registry_symbol, claimant, asset_id, proof, origin)

    def transfer_custody(self, view, config, source, dest, asset_id, origin):
        return compute_transfer_custody(view, source, dest, asset_id, origin)


class LendingProtocol:
    """
    Caller-authenticated facade over the lending ledger.

    Args:
        config: One-time initialization parameters
        logic: Operation logic (default: LendingLogicV1)
        custodian: Component backing the custodian wallet
            (default: CollateralCustodian). A component without the custody
            receiver capability makes every deposit fail.

    Thread Safety:
        Not thread-safe, like the Ledger it wraps.
    """

    def __init__(self, config: ProtocolConfig, logic: Optional[LendingLogic] = None,
                 custodian: Any = None):
        self.config = config
        self.ledger = Ledger(config.name, config.initial_time)
        self._logic: LendingLogic = logic or LendingLogicV1()
        self._active_operation: Optional[str] = None
        self._request_seq = 0

        if custodian is None:
            custodian = CollateralCustodian()
        self.ledger.register_wallet(config.custodian_wallet, component=custodian)
        self.ledger.register_unit(create_collateral_pool(
            config.pool_symbol, config.custodian_wallet, config.debt_symbol, config.unit_price,
        ))
        self._minter = MinterCapability(config.pool_symbol)
        self.ledger.register_unit(create_debt_token_unit(config.debt_symbol, self._minter))
        self.ledger.register_unit(create_claim_registry(
            config.registry_symbol, config.merkle_root, config.max_proof_length,
        ))
        logger.info("initialized %s: unit_price=%s root=%s", config.name,
                    config.unit_price, bytes(config.merkle_root).hex())

    # ========================================================================
    # INTERNALS
    # ========================================================================

    @contextmanager
    def _non_reentrant(self, operation: str):
        if self._active_operation is not None:
            raise ReentrantCall(
                f"{operation} called while {self._active_operation} is executing"
            )
        self._active_operation = operation
        try:
            yield
        finally:
            self._active_operation = None

    def _reserved_wallets(self):
        return {SYSTEM_WALLET, self.config.custodian_wallet}

    def _authenticate(self, caller: str) -> None:
        if not caller or not caller.strip():
            raise Unauthorized("caller cannot be empty")
        if caller in self._reserved_wallets():
            raise Unauthorized(f"{caller} is a reserved wallet")

    @contextmanager
    def _enrolling(self, *wallets: str):
        """
        Register unknown wallets for the duration of one operation.

        Wallets registered here are removed again if the operation raises,
        so a failed call leaves the wallet set as it found it.
        """
        added = [w for w in dict.fromkeys(wallets) if not self.ledger.is_registered(w)]
        for wallet in added:
            self.ledger.register_wallet(wallet)
        try:
            yield
        except Exception:
            for wallet in reversed(added):
                self.ledger.unregister_wallet(wallet)
            raise

    def _origin(self, caller: str, event_type: str, unit_symbol: Optional[str],
                origin_type: OriginType = OriginType.USER_ACTION) -> TransactionOrigin:
        self._request_seq += 1
        return TransactionOrigin(
            origin_type, caller, unit_symbol, event_type,
            request_id=str(self._request_seq),
        )

    def _submit(self, pending: PendingTransaction) -> None:
        self.ledger.execute(pending, strict=True)

    # ========================================================================
    # ENTRY POINTS
    # ========================================================================

    def deposit_collateral(self, caller: str, asset_id: int) -> None:
        """Move an owned asset into custody and credit collateral."""
        with self._non_reentrant("deposit_collateral"):
            self._authenticate(caller)
            with self._enrolling(caller):
                origin = self._origin(caller, "DEPOSIT_COLLATERAL", self.config.pool_symbol)
                self._submit(self._logic.deposit_collateral(self.ledger, self.config, caller, asset_id, origin))
        logger.info("%s deposited asset %s", caller, asset_id)

    def withdraw_collateral(self, caller: str, asset_id: int) -> None:
        """Take a deposited asset back if remaining collateral covers the debt."""
        with self._non_reentrant("withdraw_collateral"):
            self._authenticate(caller)
            with self._enrolling(caller):
                origin = self._origin(caller, "WITHDRAW_COLLATERAL", self.config.pool_symbol)
                self._submit(self._logic.withdraw_collateral(self.ledger, self.config, caller, asset_id, origin))
        logger.info("%s withdrew asset %s", caller, asset_id)

    def get_loan(self, caller: str, amount) -> None:
        """Borrow amount against free collateral."""
        with self._non_reentrant("get_loan"):
            self._authenticate(caller)
            with self._enrolling(caller):
                origin = self._origin(caller, "GET_LOAN", self.config.pool_symbol)
                self._submit(self._logic.get_loan(
                    self.ledger, self.config, self._minter, caller, amount, origin,
                ))
        logger.info("%s borrowed %s", caller, amount)

    def return_loan(self, caller: str, amount) -> None:
        """Repay amount of debt."""
        with self._non_reentrant("return_loan"):
            self._authenticate(caller)
            with self._enrolling(caller):
                origin = self._origin(caller, "RETURN_LOAN", self.config.pool_symbol)
                self._submit(self._logic.return_loan(
                    self.ledger, self.config, self._minter, caller, amount, origin,
                ))
        logger.info("%s repaid %s", caller, amount)

    def claim(self, caller: str, asset_id: int, proof: Sequence[bytes]) -> None:
        """Claim an allowlisted asset with its Merkle proof."""
        with self._non_reentrant("claim"):
            self._authenticate(caller)
            with self._enrolling(caller):
                origin = self._origin(caller, "CLAIM", self.config.registry_symbol)
                self._submit(self._logic.claim(self.ledger, self.config, caller, asset_id, proof, origin))
        logger.info("%s claimed asset %s", caller, asset_id)

    def transfer_custody(self, caller: str, to: str, asset_id: int) -> None:
        """
        Hand an owned asset to another account.

        Raises:
            RecipientCannotReceive: If to is the custodian; assets only enter
                custody through deposit_collateral.
        """
        with self._non_reentrant("transfer_custody"):
            self._authenticate(caller)
            if to == self.config.custodian_wallet:
                raise RecipientCannotReceive(
                    f"{to} only receives assets through deposit_collateral"
                )
            if to == SYSTEM_WALLET:
                raise RecipientCannotReceive(f"{to} cannot receive assets")
            with self._enrolling(caller, to):
                origin = self._origin(caller, "TRANSFER_CUSTODY", None)
                self._submit(self._logic.transfer_custody(self.ledger, self.config, caller, to, asset_id, origin))
        logger.info("%s transferred asset %s to %s", caller, asset_id, to)

    # ========================================================================
    # COLLABORATOR HOOKS (admin only)
    # ========================================================================

    def issue_asset(self, caller: str, to: str, asset_id: int) -> None:
        """
        Issue a new asset outside the claim allowlist (the sale channel).

        Raises:
            Unauthorized: If caller is not the admin.
            AssetAlreadyIssued: If asset_id exists.
        """
        with self._non_reentrant("issue_asset"):
            if caller != self.config.admin:
                raise Unauthorized(f"{caller} may not issue assets")
            if to in self._reserved_wallets():
                raise RecipientCannotReceive(f"{to} cannot receive newly issued assets")
            with self._enrolling(to):
                origin = self._origin(caller, "ISSUE", None, OriginType.SYSTEM)
                self._submit(compute_issue_asset(self.ledger, to, asset_id, origin))
        logger.info("issued asset %s to %s", asset_id, to)

    def upgrade_logic(self, caller: str, logic: LendingLogic) -> None:
        """
        Swap the operation logic for a new version.

        Raises:
            Unauthorized: If caller is not the admin.
            TypeError: If logic does not implement LendingLogic.
        """
        with self._non_reentrant("upgrade_logic"):
            if caller != self.config.admin:
                raise Unauthorized(f"{caller} may not upgrade logic")
            if not isinstance(logic, LendingLogic):
                raise TypeError(f"{type(logic).__name__} does not implement LendingLogic")
            previous = self._logic.version
            self._logic = logic
        logger.warning("logic upgraded from version %s to %s by %s", previous, logic.version, caller)

    # ========================================================================
    # QUERIES
    # ========================================================================

    @property
    def logic_version(self) -> str:
        return self._logic.version

    @property
    def merkle_root(self) -> bytes:
        return self.ledger.get_unit_state(self.config.registry_symbol)['merkle_root']

    def total_collateral(self, account: str) -> Decimal:
        return load_position(self.ledger, self.config.pool_symbol, account).total_collateral

    def used_collateral(self, account: str) -> Decimal:
        return load_position(self.ledger, self.config.pool_symbol, account).used_collateral

    def headroom(self, account: str) -> Decimal:
        return load_position(self.ledger, self.config.pool_symbol, account).headroom

    def balance_of(self, account: str) -> Decimal:
        """Debt token balance (zero for unknown accounts)."""
        if not self.ledger.is_registered(account):
            return ZERO
        return self.ledger.get_balance(account, self.config.debt_symbol)

    def debt_total_supply(self) -> Decimal:
        return debt_total_supply(self.ledger, self.config.debt_symbol)

    def owner_of(self, asset_id: int) -> Optional[str]:
        return owner_of(self.ledger, asset_id)

    def is_claimed(self, asset_id: int) -> bool:
        return is_claimed(self.ledger, self.config.registry_symbol, asset_id)
