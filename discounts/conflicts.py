"""Grouping and conflict resolution.

Discounts are classified once, grouped by type (restricted to the requested
scope), sorted by priority within each group, and then folded through an
ordered list of precedence rules. Each rule is a pure function

    (state, candidate, context) -> new state | None

returning None when it does not apply, so the first matching rule decides
what happens to a candidate. State is immutable: every step builds a new
admitted tuple rather than editing a running list.

Rule order:
    1. MAP protection blocks        (discount or any cart line)
    2. Exclusive wins once          (later exclusives in the group skipped)
    3. Manual coupon overrides auto (when configured)
    4. B2B contract overrides promotions
    5. Non-stackable replaces same-type non-stackable
    6. Admit
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from functools import reduce
from typing import Any, Callable, Iterable, Optional

from discounts.classifier import (
    Classification,
    classify,
    is_automatic_promotion,
    is_b2b_contract,
    is_manual_coupon,
    touches_map_protected,
)
from discounts.enums import DiscountType, ResolutionLabel, StackingMode
from discounts.models import Cart, Discount, ensure_cart, ensure_discounts

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Candidate:
    """A discount paired with the classification derived for this pass."""

    discount: Discount
    classification: Classification

    @property
    def id(self) -> str:
        return self.discount.id


@dataclass(frozen=True)
class ResolutionDecision:
    """What happened to one candidate, for results and audit rows."""

    discount_id: str
    group: DiscountType
    label: ResolutionLabel
    removed: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "discount_id": self.discount_id,
            "group": self.group.value,
            "label": self.label.value,
            "removed": list(self.removed),
        }


@dataclass(frozen=True)
class ResolutionContext:
    cart: Cart
    group: DiscountType
    manual_coupons_override_auto: bool = True


@dataclass(frozen=True)
class GroupState:
    admitted: tuple[Candidate, ...] = ()
    exclusive_admitted: bool = False
    decisions: tuple[ResolutionDecision, ...] = ()

    def record(
        self,
        candidate: Candidate,
        ctx: ResolutionContext,
        label: ResolutionLabel,
        admitted: tuple[Candidate, ...] | None = None,
        removed: tuple[Candidate, ...] = (),
        **changes: Any,
    ) -> "GroupState":
        decision = ResolutionDecision(
            discount_id=candidate.id,
            group=ctx.group,
            label=label,
            removed=tuple(c.id for c in removed),
        )
        return replace(
            self,
            admitted=self.admitted if admitted is None else admitted,
            decisions=self.decisions + (decision,),
            **changes,
        )


@dataclass(frozen=True)
class Resolution:
    """Admitted candidates per type group, in group order, plus decisions."""

    groups: dict[DiscountType, tuple[Candidate, ...]]
    decisions: tuple[ResolutionDecision, ...] = ()

    def decision_for(self, discount_id: str) -> ResolutionDecision | None:
        for decision in self.decisions:
            if decision.discount_id == discount_id:
                return decision
        return None

    @property
    def admitted(self) -> list[Candidate]:
        return [c for group in self.groups.values() for c in group]


Rule = Callable[[GroupState, Candidate, ResolutionContext], Optional[GroupState]]


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------

def group_discounts(
    discounts: Iterable[Discount], scope: str = "cart"
) -> dict[DiscountType, list[Candidate]]:
    """Classify and group by type, keeping only types whose scope matches.

    Group order follows the first appearance of each type.
    """
    grouped: dict[DiscountType, list[Candidate]] = {}
    for discount in ensure_discounts(discounts):
        classification = classify(discount)
        if classification.type.scope != scope:
            logger.debug(
                f"Discount {discount.id} ({classification.type.value}) "
                f"outside scope {scope!r}; skipped"
            )
            continue
        grouped.setdefault(classification.type, []).append(Candidate(discount, classification))
    return grouped


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def partition(
    admitted: tuple[Candidate, ...], remove: Callable[[Candidate], bool]
) -> tuple[tuple[Candidate, ...], tuple[Candidate, ...]]:
    """Split into (kept, removed), preserving order."""
    kept = tuple(c for c in admitted if not remove(c))
    removed = tuple(c for c in admitted if remove(c))
    return kept, removed


def rule_map_protection(state: GroupState, candidate: Candidate, ctx: ResolutionContext) -> GroupState | None:
    if not touches_map_protected(candidate.discount, ctx.cart):
        return None
    return state.record(candidate, ctx, ResolutionLabel.MAP_BLOCKED)


def rule_exclusive(state: GroupState, candidate: Candidate, ctx: ResolutionContext) -> GroupState | None:
    if not candidate.classification.stacking_mode.is_exclusive:
        return None
    if state.exclusive_admitted:
        return state.record(candidate, ctx, ResolutionLabel.EXCLUSIVE_SKIPPED)
    return state.record(
        candidate,
        ctx,
        ResolutionLabel.EXCLUSIVE_ADMITTED,
        admitted=state.admitted + (candidate,),
        exclusive_admitted=True,
    )


def rule_manual_coupon(state: GroupState, candidate: Candidate, ctx: ResolutionContext) -> GroupState | None:
    if not (is_manual_coupon(candidate.discount) and ctx.manual_coupons_override_auto):
        return None
    kept, removed = partition(
        state.admitted,
        lambda c: is_automatic_promotion(c.classification),
    )
    return state.record(
        candidate,
        ctx,
        ResolutionLabel.MANUAL_COUPON_OVERRIDE,
        admitted=kept + (candidate,),
        removed=removed,
    )


def rule_b2b_contract(state: GroupState, candidate: Candidate, ctx: ResolutionContext) -> GroupState | None:
    if not is_b2b_contract(candidate.discount):
        return None
    kept, removed = partition(state.admitted, lambda c: not is_b2b_contract(c.discount))
    return state.record(
        candidate,
        ctx,
        ResolutionLabel.B2B_OVERRIDE,
        admitted=kept + (candidate,),
        removed=removed,
    )


def rule_non_stackable(state: GroupState, candidate: Candidate, ctx: ResolutionContext) -> GroupState | None:
    if candidate.classification.stacking_mode is not StackingMode.NON_STACKABLE:
        return None
    kept, removed = partition(
        state.admitted,
        lambda c: c.classification.type is candidate.classification.type
        and c.classification.stacking_mode is StackingMode.NON_STACKABLE,
    )
    return state.record(
        candidate,
        ctx,
        ResolutionLabel.NON_STACKABLE_REPLACED if removed else ResolutionLabel.ADMITTED,
        admitted=kept + (candidate,),
        removed=removed,
    )


def rule_admit(state: GroupState, candidate: Candidate, ctx: ResolutionContext) -> GroupState:
    return state.record(candidate, ctx, ResolutionLabel.ADMITTED, admitted=state.admitted + (candidate,))


RULES: tuple[Rule, ...] = (
    rule_map_protection,
    rule_exclusive,
    rule_manual_coupon,
    rule_b2b_contract,
    rule_non_stackable,
    rule_admit,
)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def apply_rules(state: GroupState, candidate: Candidate, ctx: ResolutionContext) -> GroupState:
    """Run the first rule that applies to ``candidate``."""
    for rule in RULES:
        new_state = rule(state, candidate, ctx)
        if new_state is not None:
            return new_state
    raise AssertionError("rule_admit always applies")


def sort_by_priority(candidates: Iterable[Candidate]) -> list[Candidate]:
    """Highest priority first; ties keep their incoming order."""
    return sorted(candidates, key=lambda c: c.classification.priority, reverse=True)


def resolve_group(
    candidates: Iterable[Candidate],
    ctx: ResolutionContext,
) -> GroupState:
    return reduce(
        lambda state, candidate: apply_rules(state, candidate, ctx),
        sort_by_priority(candidates),
        GroupState(),
    )


def resolve(
    grouped: dict[DiscountType, list[Candidate]],
    cart: Cart,
    *,
    manual_coupons_override_auto: bool = True,
) -> Resolution:
    """Filter every group down to its admissible candidates.

    Groups stay partitioned by type and keep their order; candidates inside a
    group are in priority order.
    """
    ensure_cart(cart)
    groups: dict[DiscountType, tuple[Candidate, ...]] = {}
    decisions: tuple[ResolutionDecision, ...] = ()

    for group_type, candidates in grouped.items():
        ctx = ResolutionContext(
            cart=cart,
            group=group_type,
            manual_coupons_override_auto=manual_coupons_override_auto,
        )
        state = resolve_group(candidates, ctx)
        groups[group_type] = state.admitted
        decisions += state.decisions

        dropped = [d for d in state.decisions if not d.label.admits]
        if dropped:
            logger.info(
                f"Cart {cart.id} group {group_type.value}: dropped "
                + ", ".join(f"{d.discount_id} ({d.label.value})" for d in dropped)
            )

    return Resolution(groups=groups, decisions=decisions)
