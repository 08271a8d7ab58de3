"""Compliance gate: pure checks that return violations instead of raising.

Checks are stateless functions: (discount, cart) -> Violation | None. They
never throw on a business condition; the caller decides whether a violation
vetoes the discount, warns, or is surfaced to the customer.

Also here: price-before-discount tracking on the cart and the compliance
report built from a cart's audit rows.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from discounts.classifier import map_protected_lines, stacking_mode, touches_map_protected
from discounts.enums import Severity, StackingMode, ViolationType
from discounts.models import Cart, Discount, ensure_amount, ensure_cart

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Violation:
    """One reason a discount should not (or may not) apply."""

    type: ViolationType
    message: str
    severity: Severity

    @property
    def blocking(self) -> bool:
        return self.severity is Severity.ERROR

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "message": self.message,
            "severity": self.severity.value,
        }


# ---------------------------------------------------------------------------
# Jurisdiction
# ---------------------------------------------------------------------------

def cart_jurisdiction(cart: Cart) -> str | None:
    """Shipping address country, else customer default address, else channel default."""
    if cart.shipping_address is not None and cart.shipping_address.country:
        return cart.shipping_address.country.upper()
    if cart.customer_address is not None and cart.customer_address.country:
        return cart.customer_address.country.upper()
    if cart.channel is not None and cart.channel.default_country:
        return cart.channel.default_country.upper()
    return None


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------

def check_map_protection(discount: Discount, cart: Cart) -> Violation | None:
    if not touches_map_protected(discount, cart):
        return None
    lines = map_protected_lines(cart)
    detail = f" (lines: {', '.join(lines)})" if lines else ""
    return Violation(
        type=ViolationType.MAP_PROTECTION,
        message=f"Discount cannot be applied to MAP-protected items{detail}",
        severity=Severity.ERROR,
    )


def check_jurisdiction(discount: Discount, cart: Cart) -> Violation | None:
    """A discount limited to one jurisdiction must match the cart's.

    A cart whose jurisdiction cannot be resolved is not flagged.
    """
    required = discount.jurisdiction
    if not required:
        return None
    actual = cart_jurisdiction(cart)
    if actual and actual != required:
        return Violation(
            type=ViolationType.JURISDICTION,
            message=f"Discount is only valid in {required}",
            severity=Severity.ERROR,
        )
    return None


def check_double_discount(discount: Discount, cart: Cart) -> Violation | None:
    """Conflicts with what the cart already has applied.

    Flags the same discount applied twice, or an exclusive discount on
    either side of the pair.
    """
    candidate_exclusive = stacking_mode(discount).is_exclusive
    for rule in cart.applied_rules:
        applied_id = rule.get("discount_id")
        if applied_id is None:
            continue
        same = str(applied_id) == discount.id
        applied_exclusive = StackingMode.parse(rule.get("stacking_mode")).is_exclusive
        if same or candidate_exclusive or applied_exclusive:
            return Violation(
                type=ViolationType.DOUBLE_DISCOUNT,
                message=(
                    "This discount is already applied to the cart"
                    if same
                    else "This discount conflicts with an already applied discount"
                ),
                severity=Severity.WARNING,
            )
    return None


CHECKS = (check_map_protection, check_jurisdiction, check_double_discount)


def validate_compliance(discount: Discount, cart: Cart) -> list[Violation]:
    """Run every check; zero or more violations, never an exception."""
    ensure_cart(cart)
    violations = [v for v in (check(discount, cart) for check in CHECKS) if v is not None]
    if violations:
        logger.info(
            f"Discount {discount.id} on cart {cart.id}: "
            + "; ".join(f"{v.type.value}/{v.severity.value}" for v in violations)
        )
    return violations


def blocking_violations(violations: Iterable[Violation]) -> list[Violation]:
    return [v for v in violations if v.blocking]


# ---------------------------------------------------------------------------
# Price tracking
# ---------------------------------------------------------------------------

def track_price_before_discount(cart: Cart, price_before_discount: int) -> dict[str, Any]:
    """Record the undiscounted price on the cart's metadata bag."""
    ensure_cart(cart)
    ensure_amount("price_before_discount", price_before_discount)
    cart.metadata["price_before_discount"] = price_before_discount
    cart.metadata["price_tracked_at"] = datetime.now(timezone.utc).isoformat()
    return cart.metadata


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

def compliance_flags(entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Flags over audit rows: MAP-protected applications, missing price tracking."""
    flags = []

    map_violations = sum(1 for e in entries if e.get("map_protected"))
    if map_violations:
        flags.append({
            "type": "map_violation",
            "severity": Severity.ERROR.value,
            "count": map_violations,
            "message": f"{map_violations} discount(s) applied to MAP-protected items",
        })

    missing = sum(1 for e in entries if e.get("price_before_discount") is None)
    if missing:
        flags.append({
            "type": "missing_price_tracking",
            "severity": Severity.WARNING.value,
            "count": missing,
            "message": f"{missing} discount(s) missing price-before-discount tracking",
        })

    return flags


def build_compliance_report(cart: Cart, entries: list[dict[str, Any]]) -> dict[str, Any]:
    """Summarise a cart's audit rows (chronological) for compliance review."""
    ensure_cart(cart)
    if entries:
        price_after = entries[-1].get("price_after_discount")
    else:
        price_after = cart.subtotal
    return {
        "cart_id": cart.id,
        "total_discounts_applied": len(entries),
        "total_discount_amount": sum(e.get("discount_amount") or 0 for e in entries),
        "price_before_discount": cart.metadata.get("price_before_discount"),
        "price_after_discount": price_after,
        "discounts": [
            {
                "discount_id": e.get("discount_id"),
                "discount_name": e.get("discount_name") or "Unknown",
                "amount": e.get("discount_amount"),
                "reason": e.get("reason"),
                "applied_at": e.get("created_at"),
                "jurisdiction": e.get("jurisdiction"),
                "map_protected": e.get("map_protected"),
                "b2b_contract": e.get("b2b_contract"),
            }
            for e in entries
        ],
        "compliance_flags": compliance_flags(entries),
    }
