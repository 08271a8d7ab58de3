"""Enumerations for discount classification and compliance.

Values match the strings stored in a discount's data bag and in audit rows.
Every parser has an explicit fallback branch for unknown input, so a typo in
admin data degrades to the conservative default instead of raising.
"""

from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Discount classification
# ---------------------------------------------------------------------------

class DiscountType(str, Enum):
    CART_LEVEL = "cart_level"
    ITEM_LEVEL = "item_level"
    SHIPPING = "shipping"
    PAYMENT_METHOD = "payment_method"
    CUSTOMER_LOYALTY = "customer_loyalty"
    COUPON_BASED = "coupon_based"
    AUTOMATIC_PROMOTION = "automatic_promotion"

    @property
    def scope(self) -> str:
        """Which base amount the type discounts: "cart", "item" or "shipping"."""
        if self is DiscountType.ITEM_LEVEL:
            return "item"
        if self is DiscountType.SHIPPING:
            return "shipping"
        return "cart"

    @classmethod
    def parse(cls, value: Any) -> "DiscountType":
        """Unknown or missing → CART_LEVEL."""
        try:
            return cls(value)
        except ValueError:
            return cls.CART_LEVEL


class StackingMode(str, Enum):
    EXCLUSIVE = "exclusive"
    NON_STACKABLE = "non_stackable"
    STACKABLE = "stackable"

    @property
    def is_exclusive(self) -> bool:
        return self is StackingMode.EXCLUSIVE

    @property
    def allows_stacking(self) -> bool:
        return self is StackingMode.STACKABLE

    @classmethod
    def parse(cls, value: Any) -> "StackingMode":
        """Unknown or missing → NON_STACKABLE (never stack by accident)."""
        try:
            return cls(value)
        except ValueError:
            return cls.NON_STACKABLE


class StackingStrategy(str, Enum):
    BEST_OF = "best_of"
    PRIORITY_FIRST = "priority_first"
    CUMULATIVE = "cumulative"
    EXCLUSIVE_OVERRIDE = "exclusive_override"

    @classmethod
    def parse(cls, value: Any) -> "StackingStrategy":
        """Unknown or missing → PRIORITY_FIRST."""
        try:
            return cls(value)
        except ValueError:
            return cls.PRIORITY_FIRST


class PurchasableRole(str, Enum):
    """How a purchasable is attached to a discount (BOGO-style tagging)."""

    CONDITION = "condition"
    REWARD = "reward"
    GENERIC = "generic"

    @classmethod
    def parse(cls, value: Any) -> "PurchasableRole":
        try:
            return cls(value)
        except ValueError:
            return cls.GENERIC


# ---------------------------------------------------------------------------
# Compliance
# ---------------------------------------------------------------------------

class ViolationType(str, Enum):
    MAP_PROTECTION = "map_protection"
    JURISDICTION = "jurisdiction"
    DOUBLE_DISCOUNT = "double_discount"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class ResolutionLabel(str, Enum):
    """What the conflict resolver did with a candidate."""

    EXCLUSIVE_ADMITTED = "exclusive_admitted"
    EXCLUSIVE_SKIPPED = "exclusive_skipped"
    MANUAL_COUPON_OVERRIDE = "manual_coupon_override"
    B2B_OVERRIDE = "b2b_override"
    MAP_BLOCKED = "map_blocked"
    NON_STACKABLE_REPLACED = "non_stackable_replaced"
    ADMITTED = "admitted"

    @property
    def admits(self) -> bool:
        return self not in (ResolutionLabel.EXCLUSIVE_SKIPPED, ResolutionLabel.MAP_BLOCKED)
