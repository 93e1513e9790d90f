"""
conftest.py - Shared pytest fixtures for lending tests

Provides common fixtures used across unit, protocol and conformance tests:
- The fixed four-entry claim allowlist
- A freshly initialized protocol
- A protocol where every allowlisted asset has been claimed
- A bare ledger with the lending units registered, and its debt token minter
"""

import pytest

from lending import MinterCapability, build_claim_allowlist
from tests.helpers import ALLOWLIST_ENTRIES, POOL, make_protocol, make_ledger, claim_all


@pytest.fixture
def allowlist():
    return build_claim_allowlist(ALLOWLIST_ENTRIES)


@pytest.fixture
def protocol(allowlist):
    return make_protocol(allowlist)


@pytest.fixture
def claimed_protocol(allowlist):
    """Protocol where alice, bob, carol and dave each hold their asset."""
    p = make_protocol(allowlist)
    claim_all(p, allowlist)
    return p


@pytest.fixture
def minter():
    return MinterCapability(POOL)


@pytest.fixture
def ledger(allowlist, minter):
    return make_ledger(allowlist, minter=minter)
