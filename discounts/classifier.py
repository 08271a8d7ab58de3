"""Discount classification: pure functions over a discount's current data.

classify(discount) -> Classification {type, stacking_mode, stacking_strategy,
priority}. No side effects, so calling it twice on an unmodified discount
returns equal values.

The MAP predicate lives here too. The conflict resolver (which blocks) and the
compliance gate (which reports) must agree on what "MAP-protected" means, so
both call touches_map_protected().
"""

from dataclasses import dataclass
from typing import Any

from discounts.enums import DiscountType, StackingMode, StackingStrategy
from discounts.models import Cart, Discount

DEFAULT_PRIORITY = 1


@dataclass(frozen=True)
class Classification:
    type: DiscountType
    stacking_mode: StackingMode
    stacking_strategy: StackingStrategy
    priority: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "stacking_mode": self.stacking_mode.value,
            "stacking_strategy": self.stacking_strategy.value,
            "priority": self.priority,
        }


# ---------------------------------------------------------------------------
# Individual derivations
# ---------------------------------------------------------------------------

def discount_type(discount: Discount) -> DiscountType:
    """Infer the type; first match wins.

    coupon → COUPON_BASED; explicit data.discount_type (unknown → CART_LEVEL);
    shipping_discount → SHIPPING; payment_method_discount → PAYMENT_METHOD;
    loyalty_discount → CUSTOMER_LOYALTY; purchasable associations →
    ITEM_LEVEL; otherwise CART_LEVEL.
    """
    data = discount.data

    if discount.coupon:
        return DiscountType.COUPON_BASED

    if data.get("discount_type") is not None:
        return DiscountType.parse(data["discount_type"])

    if data.get("shipping_discount") is not None:
        return DiscountType.SHIPPING

    if data.get("payment_method_discount") is not None:
        return DiscountType.PAYMENT_METHOD

    if data.get("loyalty_discount") is not None:
        return DiscountType.CUSTOMER_LOYALTY

    if discount.purchasables:
        return DiscountType.ITEM_LEVEL

    return DiscountType.CART_LEVEL


def stacking_mode(discount: Discount) -> StackingMode:
    return StackingMode.parse(discount.data.get("stacking_mode"))


def stacking_strategy(discount: Discount) -> StackingStrategy:
    return StackingStrategy.parse(discount.data.get("stacking_strategy"))


def priority(discount: Discount) -> int:
    return discount.priority if discount.priority is not None else DEFAULT_PRIORITY


def classify(discount: Discount) -> Classification:
    """Derive type, stacking mode, stacking strategy and priority."""
    return Classification(
        type=discount_type(discount),
        stacking_mode=stacking_mode(discount),
        stacking_strategy=stacking_strategy(discount),
        priority=priority(discount),
    )


# ---------------------------------------------------------------------------
# Shared predicates
# ---------------------------------------------------------------------------

def is_manual_coupon(discount: Discount) -> bool:
    return bool(discount.coupon)


def is_automatic_promotion(classification: Classification) -> bool:
    return classification.type is DiscountType.AUTOMATIC_PROMOTION


def is_b2b_contract(discount: Discount) -> bool:
    return discount.b2b_contract


def map_protected_lines(cart: Cart) -> list[str]:
    """Ids of cart lines whose purchasable is MAP-protected."""
    return [
        line.id
        for line in cart.lines
        if line.purchasable is not None and line.purchasable.map_protected
    ]


def touches_map_protected(discount: Discount, cart: Cart) -> bool:
    """True if the discount is MAP-protected or any cart line is."""
    if discount.map_protected:
        return True
    return bool(map_protected_lines(cart))
