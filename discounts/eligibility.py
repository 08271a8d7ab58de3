"""Cart eligibility checks run before stacking.

A discount is eligible when the cart meets its minimum value, the customer is
in one of its customer groups (if it names any), and, for coupon discounts,
the cart carries the matching coupon code.
"""

import logging
from typing import Iterable

from discounts.models import Cart, Discount, ensure_cart, ensure_discounts

logger = logging.getLogger(__name__)


def meets_min_cart_value(discount: Discount, cart: Cart) -> bool:
    minimum = discount.min_cart_value
    return minimum is None or (cart.subtotal or 0) >= minimum


def matches_customer_groups(discount: Discount, cart: Cart) -> bool:
    if not discount.customer_groups or not cart.customer_groups:
        return True
    return bool(set(discount.customer_groups) & set(cart.customer_groups))


def matches_coupon_code(discount: Discount, cart: Cart) -> bool:
    if not discount.coupon:
        return True
    return bool(cart.coupon_code) and cart.coupon_code.strip().lower() == discount.coupon.strip().lower()


def is_eligible(discount: Discount, cart: Cart) -> bool:
    return (
        meets_min_cart_value(discount, cart)
        and matches_customer_groups(discount, cart)
        and matches_coupon_code(discount, cart)
    )


def filter_eligible(discounts: Iterable[Discount], cart: Cart) -> list[Discount]:
    """Keep eligible discounts in their original order."""
    ensure_cart(cart)
    eligible = []
    for discount in ensure_discounts(discounts):
        if is_eligible(discount, cart):
            eligible.append(discount)
        else:
            logger.debug(f"Discount {discount.id} not eligible for cart {cart.id}")
    return eligible
