#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Collateral Lending Step by Step

A walkthrough of the lending protocol. Each step builds on the previous one.
Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:   Genesis         - The allowlist, its Merkle root, one-time claims
  4-6:   Lending         - Deposits, loans, the collateral bound
  7-8:   Safety          - Rejected operations, custody capability checks
  9-10:  Audit           - The transaction log, conservation proof

Run:
    python demo.py             # Interactive mode (press Enter for each step)
    python demo.py --quick     # Run all steps without pausing
    python demo.py --verbose   # Also show ledger logging
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import logging
import sys

from lending import (
    LendingProtocol, ProtocolConfig, build_claim_allowlist, compute_mint,
    LedgerError, InsufficientCollateral, AlreadyClaimed, InvalidProof,
    RecipientCannotReceive,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Knobs for the walkthrough; change them and rerun."""
    start_time: datetime = datetime(2025, 3, 3, 10, 0)
    unit_price: Decimal = Decimal("2")
    admin: str = "admin"


CONFIG = DemoConfig()

ALLOWLIST_ENTRIES = [("alice", 0), ("bob", 1), ("carol", 2), ("dave", 3)]

QUICK_MODE = "--quick" in sys.argv
VERBOSE = "--verbose" in sys.argv


def wait_for_enter():
    """Block on Enter, except with --quick."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Banner for one step plus what it demonstrates."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def show_position(protocol: LendingProtocol, account: str):
    print(f"  {account:<8} total={protocol.total_collateral(account)}"
          f"  used={protocol.used_collateral(account)}"
          f"  debt={protocol.balance_of(account)}")


# ============================================================================
# PHASE 1: GENESIS (Steps 1-3)
# ============================================================================

def step_01_allowlist():
    """Commit the claim allowlist to a Merkle root."""
    step_header(1, "The Allowlist",
        "Four (claimant, asset id) pairs are committed by a single 32-byte root.")

    print(">>> allowlist = build_claim_allowlist([('alice', 0), ('bob', 1), ('carol', 2), ('dave', 3)])")
    allowlist = build_claim_allowlist(ALLOWLIST_ENTRIES)

    section_header("Commitment")
    print(f"Merkle root: {allowlist.root.hex()}")
    for claimant, asset_id in allowlist.entries:
        proof = allowlist.proof_for(asset_id)
        print(f"  {claimant:<6} asset {asset_id}: proof of {len(proof)} sibling hashes")

    section_header("Key Insight")
    print("""
    The protocol stores only the root. Each claimant brings their own proof,
    and nobody can add an entry without changing the root.
    """)
    return allowlist


def step_02_initialize(allowlist):
    """Create the protocol with its one-time configuration."""
    step_header(2, "Initialization",
        "The root, the unit price and the debt token's minter are fixed forever.")

    print(">>> protocol = LendingProtocol(ProtocolConfig(")
    print("...     merkle_root=allowlist.root, unit_price=2, admin='admin'))")
    protocol = LendingProtocol(ProtocolConfig(
        merkle_root=allowlist.root,
        unit_price=CONFIG.unit_price,
        admin=CONFIG.admin,
        initial_time=CONFIG.start_time,
    ))

    section_header("Initial State")
    print(f"Units:      {protocol.ledger.list_units()}")
    print(f"Wallets:    {sorted(protocol.ledger.list_wallets())}")
    print(f"Logic:      v{protocol.logic_version}")
    print(f"Debt supply {protocol.debt_total_supply()}")
    return protocol


def step_03_claims(protocol: LendingProtocol, allowlist):
    """Claim each asset once with its proof."""
    step_header(3, "One-Time Claims",
        "A valid proof mints the asset to its listed claimant, exactly once.")

    for claimant, asset_id in allowlist.entries:
        print(f">>> protocol.claim('{claimant}', {asset_id}, allowlist.proof_for({asset_id}))")
        protocol.claim(claimant, asset_id, allowlist.proof_for(asset_id))

    section_header("Owners")
    for _, asset_id in allowlist.entries:
        print(f"  asset {asset_id}: {protocol.owner_of(asset_id)}")

    section_header("Claiming Again")
    try:
        protocol.claim("alice", 0, allowlist.proof_for(0))
    except AlreadyClaimed as e:
        print(f"AlreadyClaimed: {e}")

    section_header("Claiming Someone Else's Entry")
    try:
        protocol.claim("mallory", 5, allowlist.proof_for(1))
    except InvalidProof as e:
        print(f"InvalidProof: {e}")
    return protocol


# ============================================================================
# PHASE 2: LENDING (Steps 4-6)
# ============================================================================

def step_04_deposit(protocol: LendingProtocol):
    """Move an asset into custody and receive collateral credit."""
    step_header(4, "Depositing Collateral",
        "Each deposited asset credits unit_price of collateral to its depositor.")

    print(">>> protocol.deposit_collateral('alice', 0)")
    protocol.deposit_collateral("alice", 0)
    print(f"\nAsset 0 is now held by: {protocol.owner_of(0)}")
    show_position(protocol, "alice")
    return protocol


def step_05_borrow_and_repay(protocol: LendingProtocol):
    """Borrow against headroom and repay part of it."""
    step_header(5, "Borrowing and Repaying",
        "Loans lock collateral and mint debt; repayment burns debt and frees it.")

    print(">>> protocol.get_loan('alice', 2)")
    protocol.get_loan("alice", 2)
    show_position(protocol, "alice")

    print("\n>>> protocol.return_loan('alice', 1)")
    protocol.return_loan("alice", 1)
    show_position(protocol, "alice")
    return protocol


def step_06_collateral_bound(protocol: LendingProtocol):
    """See the bound used <= total in action."""
    step_header(6, "The Collateral Bound",
        "A loan beyond headroom is refused, and so is a withdrawal exposing debt.")

    for label, call in [
        ("protocol.get_loan('alice', 2)", lambda: protocol.get_loan("alice", 2)),
        ("protocol.withdraw_collateral('alice', 0)", lambda: protocol.withdraw_collateral("alice", 0)),
        ("protocol.get_loan('bob', 3)", lambda: protocol.get_loan("bob", 3)),
    ]:
        print(f">>> {label}")
        try:
            call()
        except InsufficientCollateral as e:
            print(f"InsufficientCollateral: {e}\n")

    show_position(protocol, "alice")
    show_position(protocol, "bob")
    return protocol


# ============================================================================
# PHASE 3: SAFETY (Steps 7-8)
# ============================================================================

def step_07_rejections(protocol: LendingProtocol):
    """Failed operations change nothing."""
    step_header(7, "Rejected Operations",
        "Every operation is one atomic transaction: it applies fully or not at all.")

    before = len(protocol.ledger.transaction_log)
    attempts = [
        ("carol deposits bob's asset", lambda: protocol.deposit_collateral("carol", 1)),
        ("dave repays debt he never took", lambda: protocol.return_loan("dave", 1)),
        ("bob sends his asset straight to custody",
         lambda: protocol.transfer_custody("bob", protocol.config.custodian_wallet, 1)),
        ("mallory mints debt using the pool's name",
         lambda: compute_mint(protocol.ledger, protocol.config.debt_symbol,
                              protocol.config.pool_symbol, "mallory", 10 ** 6)),
    ]
    for description, call in attempts:
        try:
            call()
        except LedgerError as e:
            print(f"  {description:<42} -> {type(e).__name__}")

    print(f"\nTransactions logged during failures: {len(protocol.ledger.transaction_log) - before}")
    return protocol


def step_08_custody_capability():
    """A custodian without the receiver hook cannot take deposits."""
    step_header(8, "Custody Capability",
        "Assets only enter component wallets that declare they can receive them.")

    class Shelf:
        """A component with no on_custody_received hook."""

    allowlist = build_claim_allowlist(ALLOWLIST_ENTRIES)
    shelf_protocol = LendingProtocol(
        ProtocolConfig(merkle_root=allowlist.root, unit_price=CONFIG.unit_price, admin=CONFIG.admin),
        custodian=Shelf(),
    )
    shelf_protocol.claim("carol", 2, allowlist.proof_for(2))

    print(">>> shelf_protocol.deposit_collateral('carol', 2)")
    try:
        shelf_protocol.deposit_collateral("carol", 2)
    except RecipientCannotReceive as e:
        print(f"RecipientCannotReceive: {e}")
    print(f"Asset 2 still held by: {shelf_protocol.owner_of(2)}")
    print(f"Carol's collateral:    {shelf_protocol.total_collateral('carol')}")


# ============================================================================
# PHASE 4: AUDIT (Steps 9-10)
# ============================================================================

def step_09_transaction_log(protocol: LendingProtocol):
    """Every applied operation is recorded with its origin."""
    step_header(9, "The Transaction Log",
        "The log is the source of truth: what happened, who asked, in which order.")

    for tx in protocol.ledger.transaction_log:
        print(f"  [{tx.sequence_number}] {tx.origin.event_type:<20} by {tx.origin.source_id:<6}"
              f" intent={tx.intent_id}")

    section_header("Last Transaction")
    print(protocol.ledger.transaction_log[-1])
    return protocol


def step_10_conservation(protocol: LendingProtocol):
    """Prove that nothing was created or destroyed."""
    step_header(10, "Conservation Proof",
        "Every unit nets to zero across all wallets; debt equals locked collateral.")

    result = protocol.ledger.verify_double_entry()
    for unit, supply in result['supplies'].items():
        print(f"  {unit:<12} outstanding={supply}")
    print(f"\nDouble entry valid: {result['valid']}")

    used = sum((protocol.used_collateral(a) for a, _ in ALLOWLIST_ENTRIES), Decimal("0"))
    print(f"Debt supply {protocol.debt_total_supply()} == total used collateral {used}")


def main():
    """Walk through all ten steps."""
    if VERBOSE:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s %(levelname)s %(message)s")

    print("=" * 70)
    print("       COLLATERAL LENDING - INTERACTIVE TUTORIAL")
    print("=" * 70)
    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    allowlist = step_01_allowlist()
    wait_for_enter()

    protocol = step_02_initialize(allowlist)
    wait_for_enter()

    protocol = step_03_claims(protocol, allowlist)
    wait_for_enter()

    protocol = step_04_deposit(protocol)
    wait_for_enter()

    protocol = step_05_borrow_and_repay(protocol)
    wait_for_enter()

    protocol = step_06_collateral_bound(protocol)
    wait_for_enter()

    protocol = step_07_rejections(protocol)
    wait_for_enter()

    step_08_custody_capability()
    wait_for_enter()

    protocol = step_09_transaction_log(protocol)
    wait_for_enter()

    step_10_conservation(protocol)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See lending/units/*.py for the collateral, debt and claim logic
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
