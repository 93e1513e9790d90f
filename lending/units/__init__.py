"""
Units module - Factories and compute functions for the lending components.

- asset: non-fungible asset custody with the receiver capability check
- debt_token: minter-gated fungible debt token
- collateral: collateral pool and loan accounting
- claim_registry: Merkle-gated one-time claims

All unit factories and related functions are re-exported here for convenience.
"""

from .asset import (
    asset_symbol,
    create_asset_unit,
    custody_transfer_rule,
    owner_of,
    compute_transfer_custody,
    compute_issue_asset,
)

from .debt_token import (
    MinterCapability,
    create_debt_token_unit,
    total_supply as debt_total_supply,
    compute_mint,
    compute_burn,
)

from .collateral import (
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

from .claim_registry import (
    create_claim_registry,
    is_claimed,
    verify_claim,
    compute_claim,
)

__all__ = [
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
]
