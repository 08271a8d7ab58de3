"""Discount stacking service: the entry point checkout code calls.

    service = DiscountStackingService(config)
    result = service.apply_discounts(discounts, cart, base_amount=cart.subtotal)

apply_discounts() is the bare pipeline (classify, group, resolve, stack).
evaluate() puts eligibility filtering and the compliance gate in front of it.
evaluate_and_record() also tracks the undiscounted price on the cart and
writes the audit trail.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Iterable

from discounts.classifier import classify
from discounts.compliance import (
    Violation,
    blocking_violations,
    track_price_before_discount,
    validate_compliance,
)
from discounts.config import StackingConfig
from discounts.conflicts import Resolution, group_discounts, resolve
from discounts.distribution import distribute_discount
from discounts.eligibility import filter_eligible
from discounts.engine import apply_stacking_strategy
from discounts.errors import AuditWriteError
from discounts.models import (
    Cart,
    Discount,
    DiscountApplication,
    DiscountStackingResult,
    ensure_amount,
    ensure_cart,
    ensure_discounts,
)

if TYPE_CHECKING:
    from discounts.audit import AuditRecorder

logger = logging.getLogger(__name__)


def build_applied_rules(
    applications: Iterable[DiscountApplication],
) -> tuple[dict[str, Any], ...]:
    """Summary rows stored on the cart's pricing snapshot."""
    rules = []
    for application in applications:
        classification = classify(application.discount)
        rules.append({
            "type": application.type.value,
            "discount_id": application.discount.id,
            "discount_name": application.discount.name,
            "amount": application.amount,
            "reason": application.reason,
            "stacking_mode": classification.stacking_mode.value,
            "priority": classification.priority,
        })
    return tuple(rules)


class DiscountStackingService:
    """Decides which discounts apply to a cart and how their amounts combine."""

    def __init__(
        self,
        config: StackingConfig | None = None,
        recorder: "AuditRecorder | None" = None,
    ):
        self.config = config or StackingConfig.default()
        self.recorder = recorder

    # -- Pure pipeline --

    def resolve(self, discounts: Iterable[Discount], cart: Cart, scope: str = "cart") -> Resolution:
        return resolve(
            group_discounts(discounts, scope),
            cart,
            manual_coupons_override_auto=self.config.resolution.manual_coupons_override_auto,
        )

    def apply_discounts(
        self,
        discounts: Iterable[Discount],
        cart: Cart,
        base_amount: int,
        scope: str = "cart",
    ) -> DiscountStackingResult:
        """Classify, group, resolve conflicts and apply stacking strategies."""
        ensure_cart(cart)
        ensure_amount("base_amount", base_amount)

        resolution = self.resolve(discounts, cart, scope)
        applications = apply_stacking_strategy(resolution.groups, base_amount, cart)

        return DiscountStackingResult.from_applications(
            applications,
            base_amount,
            applied_rules=build_applied_rules(applications),
            decisions=resolution.decisions,
        )

    # -- Screened pipeline --

    def screen(
        self, discounts: Iterable[Discount], cart: Cart
    ) -> tuple[list[Discount], dict[str, tuple[Violation, ...]]]:
        """Drop ineligible discounts and those with blocking violations.

        Returns (admissible, violations by discount id). Warnings are kept in
        the violations map but do not drop the discount.
        """
        candidates = ensure_discounts(discounts)
        if self.config.resolution.check_eligibility:
            candidates = filter_eligible(candidates, cart)

        admissible: list[Discount] = []
        violations: dict[str, tuple[Violation, ...]] = {}
        for discount in candidates:
            found = validate_compliance(discount, cart)
            if found:
                violations[discount.id] = tuple(found)
            if self.config.resolution.enforce_compliance and blocking_violations(found):
                logger.info(f"Discount {discount.id} vetoed by compliance on cart {cart.id}")
                continue
            admissible.append(discount)
        return admissible, violations

    def evaluate(
        self,
        discounts: Iterable[Discount],
        cart: Cart,
        base_amount: int | None = None,
        scope: str = "cart",
    ) -> DiscountStackingResult:
        """Eligibility + compliance screen, then apply_discounts.

        ``base_amount`` defaults to the cart subtotal.
        """
        ensure_cart(cart)
        base = cart.subtotal if base_amount is None else base_amount
        admissible, violations = self.screen(discounts, cart)
        result = self.apply_discounts(admissible, cart, base, scope)
        return replace(result, violations=violations)

    async def evaluate_and_record(
        self,
        discounts: Iterable[Discount],
        cart: Cart,
        base_amount: int | None = None,
        scope: str = "cart",
    ) -> tuple[DiscountStackingResult, list[dict]]:
        """evaluate(), then track price-before and write audit rows.

        Returns (result, audit entries). A failed audit write is logged and
        parked in the dead-letter queue; the pricing result is unaffected and
        the rows that were written are still returned.
        """
        result = self.evaluate(discounts, cart, base_amount, scope)
        track_price_before_discount(cart, result.base_amount)

        if self.recorder is None or not result.applications:
            return result, []

        applications = list(result.applications)
        if not self.config.audit.record_all:
            applications = [a for a in applications if a.discount.require_audit_trail]

        try:
            entries = await self.recorder.log_applications(
                applications,
                cart,
                result.base_amount,
                scope,
                decisions=result.decisions,
            )
        except AuditWriteError as e:
            logger.error(
                f"Audit trail incomplete for cart {cart.id}: {e} "
                f"(dead letters {', '.join(e.letter_ids)})"
            )
            return result, e.entries
        return result, entries

    # -- Helpers --

    def distribute(self, result: DiscountStackingResult, cart: Cart) -> dict[str, dict[str, int]]:
        """Per application: discount id -> {line id: share}."""
        ensure_cart(cart)
        return {
            application.discount.id: distribute_discount(
                application.amount, cart.lines, cart.subtotal or 0
            )
            for application in result.applications
        }
