"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending system.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Double-entry accounting and debt/collateral agreement
2. atomicity.py - Failed operations leave no trace
3. idempotency.py - Duplicate execution and one-time claims
4. determinism.py - Reproducible behavior
5. collateral_invariants.py - used <= total, borrowing and repayment bounds
6. claim_soundness.py - Only committed (claimant, asset) pairs can claim

These tests use hypothesis for property-based testing.
"""
