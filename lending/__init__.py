"""
lending - Collateral Lending Ledger with Merkle-Gated Claims

An atomic ledger for non-fungible collateral custody, a minter-gated debt
token, and one-time asset claims authenticated by Merkle proofs.

Usage:
    from lending import LendingProtocol, ProtocolConfig, build_claim_allowlist

    allowlist = build_claim_allowlist([
        ("alice", 0), ("bob", 1), ("carol", 2), ("dave", 3),
    ])
    protocol = LendingProtocol(ProtocolConfig(
        merkle_root=allowlist.root, unit_price=1, admin="admin",
    ))

    protocol.claim("alice", 0, allowlist.proof_for(0))
    protocol.deposit_collateral("alice", 0)
    protocol.get_loan("alice", 1)
    protocol.return_loan("alice", 1)
"""

# Core types
from .core import (
    LedgerView,
    CustodyReceiver,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    Unit,
    UnitStateChange,
    ExecuteResult,
    to_amount,
    SYSTEM_WALLET,
    CUSTODY_ACCEPTED,
    MAX_AMOUNT,
    UNIT_TYPE_ASSET,
    UNIT_TYPE_DEBT_TOKEN,
    UNIT_TYPE_COLLATERAL_POOL,
    UNIT_TYPE_CLAIM_REGISTRY,
    # Errors
    LedgerError,
    InsufficientBalance,
    BalanceConstraintViolation,
    TransferRuleViolation,
    RecipientCannotReceive,
    UnitNotRegistered,
    WalletNotRegistered,
    InsufficientCollateral,
    Unauthorized,
    AlreadyClaimed,
    InvalidProof,
    NotOwner,
    AssetAlreadyIssued,
    ArithmeticBoundsError,
    Underflow,
    Overflow,
    ReentrantCall,
)

# Ledger
from .ledger import Ledger

# Merkle proofs
from .merkle import (
    ClaimAllowlist,
    MAX_PROOF_LENGTH,
    hash_pair,
    claim_leaf,
    verify_merkle_proof,
    build_merkle_root,
    build_merkle_proof,
    build_claim_allowlist,
)

# Asset custody
from .units.asset import (
    asset_symbol,
    create_asset_unit,
    custody_transfer_rule,
    owner_of,
    compute_transfer_custody,
    compute_issue_asset,
)

# Debt token
from .units.debt_token import (
    MinterCapability,
    create_debt_token_unit,
    total_supply as debt_total_supply,
    compute_mint,
    compute_burn,
)

# Collateral pool
from .units.collateral import (
    CollateralPosition,
    CollateralCustodian,
    create_collateral_pool,
    load_position,
    calculate_deposit,
    calculate_loan,
    calculate_repayment,
    calculate_withdrawal,
    compute_deposit_collateral,
    compute_get_loan,
    compute_return_loan,
    compute_withdraw_collateral,
    get_headroom,
)

# Claims
from .units.claim_registry import (
    create_claim_registry,
    is_claimed,
    verify_claim,
    compute_claim,
)

# Protocol
from .protocol import (
    ProtocolConfig,
    LendingLogic,
    LendingLogicV1,
    LendingProtocol,
)

__all__ = [
    # Core
    'LedgerView', 'CustodyReceiver', 'Move', 'Transaction', 'PendingTransaction',
    'TransactionOrigin', 'OriginType', 'build_transaction', 'Unit', 'UnitStateChange',
    'ExecuteResult', 'to_amount',
    'SYSTEM_WALLET', 'CUSTODY_ACCEPTED', 'MAX_AMOUNT',
    'UNIT_TYPE_ASSET', 'UNIT_TYPE_DEBT_TOKEN', 'UNIT_TYPE_COLLATERAL_POOL',
    'UNIT_TYPE_CLAIM_REGISTRY',
    # Errors
    'LedgerError', 'InsufficientBalance', 'BalanceConstraintViolation',
    'TransferRuleViolation', 'RecipientCannotReceive', 'UnitNotRegistered',
    'WalletNotRegistered', 'InsufficientCollateral', 'Unauthorized', 'AlreadyClaimed',
    'InvalidProof', 'NotOwner', 'AssetAlreadyIssued', 'ArithmeticBoundsError',
    'Underflow', 'Overflow', 'ReentrantCall',
    # Ledger
    'Ledger',
    # Merkle
    'ClaimAllowlist', 'MAX_PROOF_LENGTH', 'hash_pair', 'claim_leaf', 'verify_merkle_proof',
    'build_merkle_root', 'build_merkle_proof', 'build_claim_allowlist',
    # Asset custody
    'asset_symbol', 'create_asset_unit', 'custody_transfer_rule', 'owner_of',
    'compute_transfer_custody', 'compute_issue_asset',
    # Debt token
    'MinterCapability', 'create_debt_token_unit', 'debt_total_supply',
    'compute_mint', 'compute_burn',
    # Collateral
    'CollateralPosition', 'CollateralCustodian', 'create_collateral_pool', 'load_position',
    'calculate_deposit', 'calculate_loan', 'calculate_repayment', 'calculate_withdrawal',
    'compute_deposit_collateral', 'compute_get_loan', 'compute_return_loan',
    'compute_withdraw_collateral', 'get_headroom',
    # Claims
    'create_claim_registry', 'is_claimed', 'verify_claim', 'compute_claim',
    # Protocol
    'ProtocolConfig', 'LendingLogic', 'LendingLogicV1', 'LendingProtocol',
]

__version__ = '1.0.0'
