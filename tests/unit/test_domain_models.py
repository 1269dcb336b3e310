"""Unit tests for ledger enums, sign rules and actor context"""

import pytest
from wadiah_ledger.domain.exceptions import InsufficientBalance
from wadiah_ledger.domain.models import (
    ActorContext,
    RoundingPolicy,
    RoundingSettings,
    SIGN_RULES,
    SignRule,
    TransactionKind,
    sign_rule,
    signed_delta,
)


def test_every_kind_has_a_sign_rule():
    assert set(SIGN_RULES) == set(TransactionKind)


@pytest.mark.parametrize(
    "kind,expected",
    [
        (TransactionKind.DEPOSIT, SignRule.CREDIT),
        (TransactionKind.CHANGE_DEPOSIT, SignRule.CREDIT),
        (TransactionKind.ADJUSTMENT, SignRule.CREDIT),
        (TransactionKind.PAYMENT, SignRule.DEBIT),
        (TransactionKind.REFUND, SignRule.DEBIT),
        (TransactionKind.SEDEKAH, SignRule.NEUTRAL),
    ],
)
def test_sign_rules(kind, expected):
    assert sign_rule(kind) is expected


def test_signed_delta():
    assert signed_delta(TransactionKind.DEPOSIT, 5000) == 5000
    assert signed_delta(TransactionKind.PAYMENT, 5000) == -5000
    assert signed_delta("sedekah", 300) == 0


def test_unknown_kind_rejected():
    with pytest.raises(ValueError):
        sign_rule("withdrawal")


def test_labels():
    assert TransactionKind.CHANGE_DEPOSIT.label == "Simpan Kembalian"
    assert TransactionKind.SEDEKAH.label == "Sedekah/Diskon"
    assert RoundingPolicy.ROUND_DOWN.label == "Bulatkan Ke Bawah (Sedekah)"
    assert all(kind.label for kind in TransactionKind)
    assert all(policy.label for policy in RoundingPolicy)


@pytest.mark.parametrize(
    "role,can_waive",
    [("admin", True), ("cashier", True), ("staff", True), ("parent", False), ("partner", False), (None, False), ("bogus", False)],
)
def test_actor_consent_waiver_by_role(role, can_waive):
    actor = ActorContext.for_role("user-1", role)
    assert actor.actor_id == "user-1"
    assert actor.can_waive_consent is can_waive


def test_rounding_settings_from_settings():
    class _Settings:
        rounding_multiple = 1000
        default_rounding_policy = "to_wadiah"
        wadiah_enabled = False

    rounding = RoundingSettings.from_settings(_Settings())

    assert rounding.rounding_multiple == 1000
    assert rounding.default_policy is RoundingPolicy.TO_WADIAH
    assert rounding.wadiah_enabled is False


@pytest.mark.parametrize(
    "balance_before, amount, shortfall",
    [
        (10000, 15000, 5000),
        (0, 1000, 1000),
        (12000, 10000, 0),
    ],
)
def test_insufficient_balance_shortfall_never_negative(balance_before, amount, shortfall):
    assert InsufficientBalance(balance_before, amount).shortfall == shortfall
