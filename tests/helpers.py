"""
helpers.py - Shared constants and builders for lending tests
"""

from decimal import Decimal

from lending import (
    Ledger, LendingProtocol, ProtocolConfig, CollateralCustodian, LedgerError, MinterCapability,
    create_collateral_pool, create_debt_token_unit, create_claim_registry,
)


# The four (claimant, asset id) pairs fixed at genesis.
ALLOWLIST_ENTRIES = [
    ("alice", 0),
    ("bob", 1),
    ("carol", 2),
    ("dave", 3),
]

UNIT_PRICE = Decimal("2")
ADMIN = "admin"
POOL = "COLLATERAL"
DEBT = "DEBT"
CLAIMS = "CLAIMS"
CUSTODIAN = "collateral_pool"


def make_protocol(allowlist, unit_price=UNIT_PRICE, **kwargs) -> LendingProtocol:
    """Create a protocol committed to the given allowlist."""
    return LendingProtocol(
        ProtocolConfig(merkle_root=allowlist.root, unit_price=unit_price, admin=ADMIN),
        **kwargs,
    )


def make_ledger(allowlist, unit_price=UNIT_PRICE, custodian=None, minter=None) -> Ledger:
    """
    Bare ledger with pool, debt token and claim registry registered.

    Pass minter to keep hold of the debt token's capability; the registry
    only accepts proofs as long as the allowlist's own.
    """
    ledger = Ledger("test")
    ledger.register_wallet(CUSTODIAN, component=custodian or CollateralCustodian())
    for wallet in ("alice", "bob", "carol", "dave", "mallory"):
        ledger.register_wallet(wallet)
    ledger.register_unit(create_collateral_pool(POOL, CUSTODIAN, DEBT, unit_price))
    ledger.register_unit(create_debt_token_unit(DEBT, minter or MinterCapability(POOL)))
    ledger.register_unit(create_claim_registry(CLAIMS, allowlist.root, allowlist.depth))
    return ledger


def claim_all(protocol: LendingProtocol, allowlist) -> None:
    """Claim every allowlisted asset for its listed claimant."""
    for claimant, asset_id in allowlist.entries:
        protocol.claim(claimant, asset_id, allowlist.proof_for(asset_id))


def snapshot(protocol: LendingProtocol, accounts) -> dict:
    """Capture positions, debt balances, asset owners and wallets for comparison."""
    return {
        'positions': {
            a: (protocol.total_collateral(a), protocol.used_collateral(a)) for a in accounts
        },
        'balances': {a: protocol.balance_of(a) for a in accounts},
        'owners': {asset_id: protocol.owner_of(asset_id) for _, asset_id in ALLOWLIST_ENTRIES},
        'claimed': {asset_id: protocol.is_claimed(asset_id) for _, asset_id in ALLOWLIST_ENTRIES},
        'supply': protocol.debt_total_supply(),
        'log_length': len(protocol.ledger.transaction_log),
        'wallets': protocol.ledger.list_wallets(),
    }


OPERATIONS = ["claim", "deposit", "withdraw", "borrow", "repay", "transfer"]


def apply_operation(protocol: LendingProtocol, allowlist, op, account, value, other="erin"):
    """
    Run one protocol operation, letting it fail the way a user call would.

    Asset ids are folded into the allowlist range so custody operations hit
    real assets. Returns the error raised, or None on success.
    """
    if op not in OPERATIONS:
        raise KeyError(op)
    asset_id = value % len(ALLOWLIST_ENTRIES)
    try:
        if op == "claim":
            protocol.claim(account, asset_id, allowlist.proof_for(asset_id))
        elif op == "deposit":
            protocol.deposit_collateral(account, asset_id)
        elif op == "withdraw":
            protocol.withdraw_collateral(account, asset_id)
        elif op == "borrow":
            protocol.get_loan(account, value)
        elif op == "repay":
            protocol.return_loan(account, value)
        elif op == "transfer":
            protocol.transfer_custody(account, other, asset_id)
    except (LedgerError, ValueError) as e:
        return e
    return None
