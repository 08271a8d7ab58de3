"""Test amount calculation and the four stacking strategies."""
from decimal import Decimal

import pytest

from discounts.conflicts import group_discounts, resolve
from discounts.engine import (
    REASON_BEST_OF,
    REASON_CUMULATIVE,
    REASON_EXCLUSIVE_OVERRIDE,
    REASON_PRIORITY_EXCLUSIVE,
    REASON_PRIORITY_STACKABLE,
    apply_stacking_strategy,
    calculate_discount_amount,
    round_half_up,
)
from discounts.errors import InvalidAmountError, InvalidDiscountError
from tests.helpers import make_cart, make_discount


def _stack(discounts, base, cart=None):
    cart = cart or make_cart(subtotal=base)
    resolution = resolve(group_discounts(discounts), cart)
    return apply_stacking_strategy(resolution.groups, base, cart)


# ---------------------------------------------------------------------------
# Amount calculation
# ---------------------------------------------------------------------------

def test_percentage_amount():
    assert calculate_discount_amount(make_discount("d", percentage=10), 1000) == 100


def test_percentage_rounds_half_up():
    assert calculate_discount_amount(make_discount("d", percentage=10), 1005) == 101
    assert calculate_discount_amount(make_discount("d", percentage="12.5"), 100) == 13
    assert round_half_up(Decimal("2.5")) == 3


def test_percentage_cap():
    d = make_discount("d", percentage=50, max_discount_amount=500)
    assert calculate_discount_amount(d, 2000) == 500


def test_legacy_cap_key():
    d = make_discount("d", percentage=50, max_discount_cap=300)
    assert calculate_discount_amount(d, 2000) == 300


def test_zero_cap_is_respected():
    d = make_discount("d", percentage=50, max_discount_amount=0)
    assert calculate_discount_amount(d, 2000) == 0


def test_fixed_amount_clamped_to_base():
    assert calculate_discount_amount(make_discount("d", fixed_amount=300), 1000) == 300
    assert calculate_discount_amount(make_discount("d", fixed_amount=1500), 1000) == 1000


def test_percentage_wins_over_fixed():
    d = make_discount("d", percentage=10, fixed_amount=900)
    assert calculate_discount_amount(d, 1000) == 100


def test_missing_pricing_is_zero():
    assert calculate_discount_amount(make_discount("d"), 1000) == 0


def test_zero_base():
    assert calculate_discount_amount(make_discount("d", percentage=10), 0) == 0


def test_invalid_amounts_raise():
    with pytest.raises(InvalidAmountError):
        calculate_discount_amount(make_discount("d", percentage=10), -1)
    with pytest.raises(InvalidAmountError):
        calculate_discount_amount(make_discount("d", percentage=10), 10.5)
    with pytest.raises(InvalidDiscountError):
        make_discount("d", percentage=150)
    with pytest.raises(InvalidDiscountError):
        make_discount("d", fixed_amount=-5)
    with pytest.raises(InvalidDiscountError):
        make_discount("d", percentage=True)


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

def test_cumulative_chains_remaining():
    applications = _stack([
        make_discount("a", priority=10, stacking_mode="stackable", stacking_strategy="cumulative", percentage=10),
        make_discount("b", priority=5, stacking_mode="stackable", stacking_strategy="cumulative", percentage=10),
    ], 1000)
    assert [a.amount for a in applications] == [100, 90]
    assert sum(a.amount for a in applications) == 190
    assert all(a.reason == REASON_CUMULATIVE for a in applications)


def test_cumulative_ignores_non_stackable():
    applications = _stack([
        make_discount("a", priority=10, stacking_mode="stackable", stacking_strategy="cumulative", percentage=10),
        make_discount("n", priority=5, stacking_strategy="cumulative", fixed_amount=50),
    ], 1000)
    assert [a.discount.id for a in applications] == ["a"]


def test_best_of_picks_largest():
    applications = _stack([
        make_discount("small", priority=10, stacking_mode="stackable", stacking_strategy="best_of", percentage=10),
        make_discount("big", priority=5, stacking_mode="stackable", fixed_amount=150),
    ], 1000)
    assert len(applications) == 1
    assert applications[0].discount.id == "big"
    assert applications[0].amount == 150
    assert applications[0].reason == REASON_BEST_OF


def test_best_of_tie_keeps_first():
    applications = _stack([
        make_discount("first", priority=10, stacking_mode="stackable", stacking_strategy="best_of", fixed_amount=100),
        make_discount("second", priority=5, stacking_mode="stackable", fixed_amount=100),
    ], 1000)
    assert [a.discount.id for a in applications] == ["first"]


def test_best_of_all_zero_applies_nothing():
    applications = _stack([
        make_discount("a", stacking_mode="stackable", stacking_strategy="best_of"),
    ], 1000)
    assert applications == []


def test_priority_first_stops_at_exclusive():
    applications = _stack([
        make_discount("s", priority=10, stacking_mode="stackable", percentage=10),
        make_discount("x", priority=5, stacking_mode="exclusive", fixed_amount=100),
        make_discount("late", priority=1, stacking_mode="stackable", fixed_amount=10),
    ], 1000)
    assert [(a.discount.id, a.amount, a.reason) for a in applications] == [
        ("s", 100, REASON_PRIORITY_STACKABLE),
        ("x", 100, REASON_PRIORITY_EXCLUSIVE),
    ]


def test_priority_first_exclusive_alone():
    applications = _stack([
        make_discount("x", priority=10, stacking_mode="exclusive", percentage=20),
        make_discount("s", priority=5, stacking_mode="stackable", percentage=10),
    ], 1000)
    assert [a.discount.id for a in applications] == ["x"]
    assert applications[0].amount == 200


def test_priority_first_skips_non_stackable():
    applications = _stack([make_discount("n", fixed_amount=100)], 1000)
    assert applications == []


def test_exclusive_override_prefers_exclusive():
    applications = _stack([
        make_discount("s", priority=10, stacking_mode="stackable", stacking_strategy="exclusive_override", percentage=10),
        make_discount("x", priority=5, stacking_mode="exclusive", fixed_amount=250),
    ], 1000)
    assert [(a.discount.id, a.amount, a.reason) for a in applications] == [
        ("x", 250, REASON_EXCLUSIVE_OVERRIDE),
    ]


def test_exclusive_override_falls_back_to_cumulative():
    applications = _stack([
        make_discount("a", priority=10, stacking_mode="stackable", stacking_strategy="exclusive_override", percentage=10),
        make_discount("b", priority=5, stacking_mode="stackable", percentage=10),
    ], 1000)
    assert [a.amount for a in applications] == [100, 90]
    assert all(a.reason == REASON_CUMULATIVE for a in applications)


def test_remaining_chains_across_groups():
    applications = _stack([
        make_discount("cart", stacking_mode="stackable", fixed_amount=600),
        make_discount("loyal", stacking_mode="stackable", discount_type="customer_loyalty", fixed_amount=600),
    ], 1000)
    assert [a.amount for a in applications] == [600, 400]


def test_total_never_exceeds_base():
    applications = _stack([
        make_discount(f"d{i}", priority=i, stacking_mode="stackable", stacking_strategy="cumulative", fixed_amount=400)
        for i in range(5)
    ], 1000)
    assert sum(a.amount for a in applications) == 1000
    assert all(a.amount >= 0 for a in applications)


def test_empty_input_yields_nothing():
    assert _stack([], 1000) == []
