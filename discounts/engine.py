"""Stacking engine: turn resolved groups into discount applications.

Pure functions. Each strategy takes a group's admitted candidates (already in
priority order) and the amount still discountable, and returns the
applications for that group. apply_stacking_strategy() walks the groups in
order and carries the remaining amount from one group into the next.

All amounts are integers of currency minor units. No application ever exceeds
the amount it was computed against, which keeps every result's
total_discount <= base_amount.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Mapping, Sequence

from discounts.conflicts import Candidate
from discounts.enums import DiscountType, StackingStrategy
from discounts.models import (
    Cart,
    Discount,
    DiscountApplication,
    FixedAmountParams,
    PercentageParams,
    ensure_amount,
    ensure_cart,
)

logger = logging.getLogger(__name__)

REASON_BEST_OF = "Best-of strategy: highest discount selected"
REASON_PRIORITY_EXCLUSIVE = "Priority-first strategy: exclusive discount applied"
REASON_PRIORITY_STACKABLE = "Priority-first strategy: stackable discount applied"
REASON_CUMULATIVE = "Cumulative strategy: discount stacked"
REASON_EXCLUSIVE_OVERRIDE = "Exclusive override strategy: exclusive discount applied"


# ---------------------------------------------------------------------------
# Amount calculation
# ---------------------------------------------------------------------------

def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_discount_amount(discount: Discount, base_amount: int) -> int:
    """Amount ``discount`` takes off ``base_amount``.

    Percentage: round-half-up of base * pct / 100, capped by
    max_discount_amount (or max_discount_cap). Fixed: the fixed amount.
    Either way never more than ``base_amount``. Anything else is 0.
    """
    ensure_amount("base_amount", base_amount)
    params = discount.params

    if isinstance(params, PercentageParams):
        amount = round_half_up(Decimal(base_amount) * params.percentage / Decimal(100))
        if params.max_cap is not None and amount > params.max_cap:
            amount = params.max_cap
        return max(0, min(amount, base_amount))

    if isinstance(params, FixedAmountParams):
        return min(params.amount, base_amount)

    logger.debug(f"Discount {discount.id} has no percentage or fixed_amount; amount is 0")
    return 0


def _application(candidate: Candidate, amount: int, reason: str) -> DiscountApplication:
    return DiscountApplication(
        discount=candidate.discount,
        amount=amount,
        type=candidate.classification.type,
        reason=reason,
    )


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

def apply_best_of(candidates: Sequence[Candidate], remaining: int) -> list[DiscountApplication]:
    """Pick the single candidate with the strictly greatest amount."""
    best: Candidate | None = None
    best_amount = 0
    for candidate in candidates:
        amount = calculate_discount_amount(candidate.discount, remaining)
        if amount > best_amount:
            best, best_amount = candidate, amount

    if best is None:
        return []
    return [_application(best, best_amount, REASON_BEST_OF)]


def apply_priority_first(candidates: Sequence[Candidate], remaining: int) -> list[DiscountApplication]:
    """Stack stackables in priority order; the first exclusive ends the group."""
    applications: list[DiscountApplication] = []
    for candidate in candidates:
        mode = candidate.classification.stacking_mode

        if mode.is_exclusive:
            amount = calculate_discount_amount(candidate.discount, remaining)
            if amount > 0:
                applications.append(_application(candidate, amount, REASON_PRIORITY_EXCLUSIVE))
            break

        if mode.allows_stacking:
            amount = calculate_discount_amount(candidate.discount, remaining)
            if amount > 0:
                applications.append(_application(candidate, amount, REASON_PRIORITY_STACKABLE))
                remaining -= amount

    return applications


def apply_cumulative(candidates: Sequence[Candidate], remaining: int) -> list[DiscountApplication]:
    """Stack every stackable candidate; others are ignored."""
    applications: list[DiscountApplication] = []
    for candidate in candidates:
        if not candidate.classification.stacking_mode.allows_stacking:
            continue
        amount = calculate_discount_amount(candidate.discount, remaining)
        if amount > 0:
            applications.append(_application(candidate, amount, REASON_CUMULATIVE))
            remaining -= amount
    return applications


def apply_exclusive_override(candidates: Sequence[Candidate], remaining: int) -> list[DiscountApplication]:
    """Only the first exclusive candidate, else cumulative.

    An exclusive candidate that computes to 0 does not block the group; the
    cumulative fallback runs instead.
    """
    exclusive = next(
        (c for c in candidates if c.classification.stacking_mode.is_exclusive), None
    )
    if exclusive is not None:
        amount = calculate_discount_amount(exclusive.discount, remaining)
        if amount > 0:
            return [_application(exclusive, amount, REASON_EXCLUSIVE_OVERRIDE)]
    return apply_cumulative(candidates, remaining)


Strategy = Callable[[Sequence[Candidate], int], list[DiscountApplication]]

STRATEGIES: dict[StackingStrategy, Strategy] = {
    StackingStrategy.BEST_OF: apply_best_of,
    StackingStrategy.PRIORITY_FIRST: apply_priority_first,
    StackingStrategy.CUMULATIVE: apply_cumulative,
    StackingStrategy.EXCLUSIVE_OVERRIDE: apply_exclusive_override,
}


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

def apply_stacking_strategy(
    groups: Mapping[DiscountType, Sequence[Candidate]],
    base_amount: int,
    cart: Cart,
) -> list[DiscountApplication]:
    """Apply each group's strategy in order, chaining the remaining amount.

    A group's strategy is the one of its first (highest-priority) candidate.
    """
    ensure_cart(cart)
    remaining = ensure_amount("base_amount", base_amount)
    applications: list[DiscountApplication] = []

    for group_type, candidates in groups.items():
        if not candidates:
            continue
        strategy = candidates[0].classification.stacking_strategy
        group_applications = STRATEGIES[strategy](candidates, remaining)
        applied = sum(a.amount for a in group_applications)
        logger.debug(
            f"Cart {cart.id} group {group_type.value} ({strategy.value}): "
            f"{len(group_applications)} applied, {applied} off {remaining}"
        )
        applications.extend(group_applications)
        remaining = max(0, remaining - applied)

    return applications
