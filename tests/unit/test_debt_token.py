"""
test_debt_token.py - Unit tests for the minter-gated debt token

Tests:
- Factory validation and capability binding
- Minter capability on mint and burn
- Forged minters: by name, by lookalike capability, by hand-built move
- Replay of signed moves under a new origin
- Non-transferability between accounts
- Total supply bookkeeping
"""

import pytest
from decimal import Decimal
from tests.fake_view import FakeView
from lending import (
    Ledger, Move, ExecuteResult, TransactionOrigin, OriginType,
    SYSTEM_WALLET, MAX_AMOUNT, UNIT_TYPE_DEBT_TOKEN,
    build_transaction, create_debt_token_unit, debt_total_supply,
    MinterCapability, compute_mint, compute_burn,
    Unauthorized, InsufficientBalance, TransferRuleViolation, Overflow,
)
from lending.units.debt_token import mint_moves


@pytest.fixture
def minter():
    return MinterCapability("COLLATERAL")


@pytest.fixture
def ledger(minter):
    ledger = Ledger("debt")
    ledger.register_wallet("alice")
    ledger.register_wallet("bob")
    ledger.register_wallet("mallory")
    ledger.register_unit(create_debt_token_unit("DEBT", minter))
    return ledger


class TestCreateDebtToken:

    def test_unit_shape(self, minter):
        unit = create_debt_token_unit("DEBT", minter)
        assert unit.unit_type == UNIT_TYPE_DEBT_TOKEN
        assert unit.decimal_places == 0
        assert unit.min_balance == Decimal("0")
        assert unit.state == {'minter': "COLLATERAL"}
        assert minter.symbol == "DEBT"

    def test_minter_must_be_a_capability(self):
        with pytest.raises(ValueError, match="minter"):
            create_debt_token_unit("DEBT", "COLLATERAL")

    def test_holder_required(self):
        with pytest.raises(ValueError, match="minter"):
            MinterCapability("")

    def test_capability_binds_to_one_symbol(self, minter):
        create_debt_token_unit("DEBT", minter)
        with pytest.raises(ValueError, match="already bound"):
            create_debt_token_unit("OTHER", minter)


class TestMint:

    def test_minter_can_mint(self, ledger, minter):
        result = ledger.execute(compute_mint(ledger, "DEBT", minter, "alice", 5), strict=True)
        assert result == ExecuteResult.APPLIED
        assert ledger.get_balance("alice", "DEBT") == Decimal("5")
        assert debt_total_supply(ledger, "DEBT") == Decimal("5")

    def test_minter_name_is_not_authority(self, ledger):
        with pytest.raises(Unauthorized):
            compute_mint(ledger, "DEBT", "COLLATERAL", "mallory", 10 ** 6)
        assert ledger.get_balance("mallory", "DEBT") == Decimal("0")

    def test_unbound_lookalike_unauthorized(self, ledger):
        with pytest.raises(Unauthorized):
            compute_mint(ledger, "DEBT", MinterCapability("COLLATERAL"), "mallory", 5)

    def test_lookalike_bound_elsewhere_refused_by_ledger(self, ledger):
        lookalike = MinterCapability("COLLATERAL")
        create_debt_token_unit("DEBT", lookalike)  # never registered
        pending = compute_mint(ledger, "DEBT", lookalike, "mallory", 5)
        with pytest.raises(TransferRuleViolation, match="not authorized"):
            ledger.execute(pending, strict=True)
        assert ledger.get_balance("mallory", "DEBT") == Decimal("0")
        assert debt_total_supply(ledger, "DEBT") == Decimal("0")

    def test_zero_amount_rejected(self, ledger, minter):
        with pytest.raises(ValueError, match="positive"):
            compute_mint(ledger, "DEBT", minter, "alice", 0)

    def test_overflow_rejected(self, ledger, minter):
        ledger.execute(compute_mint(ledger, "DEBT", minter, "alice", MAX_AMOUNT), strict=True)
        with pytest.raises(Overflow):
            compute_mint(ledger, "DEBT", minter, "bob", 1)

    def test_identical_mint_is_idempotent(self, ledger, minter):
        ledger.execute(compute_mint(ledger, "DEBT", minter, "alice", 5), strict=True)
        result = ledger.execute(compute_mint(ledger, "DEBT", minter, "alice", 5), strict=True)
        assert result == ExecuteResult.ALREADY_APPLIED
        assert ledger.get_balance("alice", "DEBT") == Decimal("5")


class TestBurn:

    def test_burn_reduces_supply(self, ledger, minter):
        ledger.execute(compute_mint(ledger, "DEBT", minter, "alice", 5), strict=True)
        ledger.execute(compute_burn(ledger, "DEBT", minter, "alice", 2), strict=True)
        assert ledger.get_balance("alice", "DEBT") == Decimal("3")
        assert debt_total_supply(ledger, "DEBT") == Decimal("3")

    def test_burn_more_than_balance(self, ledger, minter):
        ledger.execute(compute_mint(ledger, "DEBT", minter, "alice", 1), strict=True)
        with pytest.raises(InsufficientBalance):
            compute_burn(ledger, "DEBT", minter, "alice", 2)

    def test_other_caller_cannot_burn(self, ledger):
        with pytest.raises(Unauthorized):
            compute_burn(ledger, "DEBT", "alice", "alice", 1)


class TestSignedMoves:

    def test_replay_under_new_origin_rejected(self, ledger, minter):
        pending = compute_mint(ledger, "DEBT", minter, "alice", 3)
        assert ledger.execute(pending, strict=True) == ExecuteResult.APPLIED
        replay = pending.with_origin(
            TransactionOrigin(OriginType.USER_ACTION, "mallory", "DEBT", "MINT", "99")
        )
        with pytest.raises(TransferRuleViolation, match="not authorized"):
            ledger.execute(replay, strict=True)
        assert ledger.get_balance("alice", "DEBT") == Decimal("3")

    def test_copied_stamp_on_altered_move_rejected(self, ledger, minter):
        signed = compute_mint(ledger, "DEBT", minter, "alice", 1).moves[0]
        altered = Move(Decimal("1000"), "DEBT", SYSTEM_WALLET, "mallory",
                       contract_id=signed.contract_id, metadata=signed.metadata)
        with pytest.raises(TransferRuleViolation, match="not authorized"):
            ledger.execute(build_transaction(ledger, [altered]), strict=True)
        assert ledger.get_balance("mallory", "DEBT") == Decimal("0")

    def test_separate_mints_each_apply(self, ledger, minter):
        first = compute_mint(ledger, "DEBT", minter, "alice", 3,
                             TransactionOrigin(OriginType.USER_ACTION, "alice", "DEBT", "MINT", "1"))
        second = compute_mint(ledger, "DEBT", minter, "alice", 3,
                              TransactionOrigin(OriginType.USER_ACTION, "alice", "DEBT", "MINT", "2"))
        assert ledger.execute(first) == ExecuteResult.APPLIED
        assert ledger.execute(second) == ExecuteResult.APPLIED
        assert ledger.get_balance("alice", "DEBT") == Decimal("6")


class TestTransferRule:

    def _view(self, minter):
        return FakeView(
            balances={"alice": {"DEBT": Decimal("3")}},
            units=[create_debt_token_unit("DEBT", minter)],
        )

    def test_account_to_account_rejected(self, minter):
        view = self._view(minter)
        move = Move(Decimal("1"), "DEBT", "alice", "bob", "COLLATERAL")
        with pytest.raises(TransferRuleViolation, match="not transferable"):
            minter.transfer_rule(view, move)

    def test_hand_built_issuance_rejected(self, minter):
        view = self._view(minter)
        move = Move(Decimal("1"), "DEBT", SYSTEM_WALLET, "alice", "COLLATERAL")
        with pytest.raises(TransferRuleViolation, match="not authorized"):
            minter.transfer_rule(view, move)

    def test_signed_move_redeems_once(self, minter):
        view = self._view(minter)
        [move] = mint_moves(view, "DEBT", minter, "alice", 1)
        minter.transfer_rule(view, move)
        with pytest.raises(TransferRuleViolation, match="not authorized"):
            minter.transfer_rule(view, move)

    def test_ledger_rejects_transfer(self, ledger, minter):
        ledger.execute(compute_mint(ledger, "DEBT", minter, "alice", 3), strict=True)
        move = Move(Decimal("1"), "DEBT", "alice", "bob", "COLLATERAL")
        assert ledger.execute(build_transaction(ledger, [move])) == ExecuteResult.REJECTED
        assert ledger.get_balance("bob", "DEBT") == Decimal("0")
