"""Spread a cart-level discount across cart lines.

Each line gets a share proportional to its total, rounded half-up; whatever
rounding leaves over (positive or negative) goes to the first line, so the
shares always sum to the discount amount.
"""

from decimal import Decimal
from typing import Sequence

from discounts.engine import round_half_up
from discounts.models import CartLine, ensure_amount


def distribute_discount(
    amount: int,
    lines: Sequence[CartLine],
    subtotal: int,
) -> dict[str, int]:
    """Line id -> share of ``amount``. Empty when there is nothing to split over."""
    ensure_amount("amount", amount)
    if subtotal <= 0 or not lines:
        return {}

    distribution: dict[str, int] = {}
    for line in lines:
        share = round_half_up(Decimal(amount) * Decimal(line.total) / Decimal(subtotal))
        distribution[line.id] = distribution.get(line.id, 0) + share

    difference = amount - sum(distribution.values())
    if difference:
        first = next(iter(distribution))
        distribution[first] += difference

    return distribution
