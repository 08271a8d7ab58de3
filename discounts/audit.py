"""Audit recorder: persists every applied discount for compliance review.

Each application becomes one append-only row carrying the price before and
after it, its classification, the conflict-resolution outcome, the other
discounts it was applied with, and who asked (tenant, IP, user agent).

Writes are retried with exponential backoff. A write that still fails is
parked in the dead-letter queue and surfaced as AuditWriteError, so the
pricing path can carry on while the row waits for replay_failed_writes().
"""

import logging
from datetime import datetime
from typing import Any, Iterable, Sequence

from core.request_context import get_current_tenant, get_request_context
from core.resilience import DeadLetterQueue, retry_async
from discounts.classifier import classify, is_manual_coupon
from discounts.compliance import build_compliance_report, cart_jurisdiction
from discounts.config import AuditConfig
from discounts.config import config as service_config
from discounts.errors import AuditWriteError
from discounts.models import Cart, DiscountApplication, ensure_amount, ensure_cart
from discounts.repository import DiscountAuditRepository

logger = logging.getLogger(__name__)

AUDIT_QUEUE = "discount_audit"

# Failed audit writes for this process; replayed through the API
dead_letters = DeadLetterQueue(max_replays=service_config.audit.max_replays)


class AuditRecorder:
    """Writes and queries the discount audit trail for the current tenant."""

    def __init__(
        self,
        repository: DiscountAuditRepository,
        dlq: DeadLetterQueue | None = None,
        config: AuditConfig | None = None,
    ):
        self.repository = repository
        self.dlq = dlq if dlq is not None else dead_letters
        self.config = config or AuditConfig()

    # -- Writes --

    def build_entry(
        self,
        application: DiscountApplication,
        cart: Cart,
        price_before: int | None,
        price_after: int | None,
        scope: str = "cart",
        conflict_resolution: str | None = None,
        applied_with: list[dict[str, Any]] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> dict[str, Any]:
        """The row payload for one application (no I/O)."""
        discount = application.discount
        classification = classify(discount)
        context = get_request_context()

        return {
            "discount_id": discount.id,
            "discount_name": discount.name or None,
            "cart_id": cart.id,
            "order_id": None,
            "user_id": cart.user_id,
            "discount_type": application.type.value,
            "stacking_mode": classification.stacking_mode.value,
            "stacking_strategy": classification.stacking_strategy.value,
            "priority": classification.priority,
            "price_before_discount": price_before,
            "discount_amount": application.amount,
            "price_after_discount": price_after,
            "scope": scope,
            "reason": application.reason,
            "conflict_resolution": conflict_resolution,
            "applied_with": list(applied_with or []),
            "jurisdiction": (
                discount.jurisdiction
                or cart_jurisdiction(cart)
                or self.config.default_jurisdiction
            ),
            "map_protected": discount.map_protected,
            "b2b_contract": discount.b2b_contract,
            "manual_coupon": is_manual_coupon(discount),
            "ip_address": ip_address or context.ip_address,
            "user_agent": user_agent or context.user_agent,
            "metadata": {
                "cart_subtotal": cart.subtotal,
                "cart_currency": cart.currency,
                "customer_id": cart.customer_id,
                "channel": cart.channel.handle if cart.channel else None,
            },
        }

    async def _write(self, tenant_id: str, payload: dict[str, Any]) -> dict:
        try:
            entry, attempts = await retry_async(
                self.repository.append,
                tenant_id,
                payload,
                max_retries=self.config.max_retries,
                backoff_base=self.config.backoff_base,
                backoff_max=self.config.backoff_max,
            )
        except Exception as e:
            letter = self.dlq.enqueue(
                queue_name=AUDIT_QUEUE,
                tenant_id=tenant_id,
                payload=payload,
                error=str(e),
                attempts=self.config.max_retries + 1,
            )
            logger.error(
                f"Audit write failed for discount {payload['discount_id']} on cart "
                f"{payload['cart_id']} after {letter.attempts} attempts: {e}; "
                f"dead letter {letter.id}"
            )
            raise AuditWriteError(
                f"Could not record discount {payload['discount_id']}", letter_ids=[letter.id]
            ) from e

        if attempts > 1:
            logger.info(f"Audit write for discount {payload['discount_id']} succeeded on attempt {attempts}")
        return entry

    async def log_application(
        self,
        application: DiscountApplication,
        cart: Cart,
        price_before: int | None,
        price_after: int | None,
        scope: str = "cart",
        conflict_resolution: str | None = None,
        applied_with: list[dict[str, Any]] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        tenant_id: str | None = None,
    ) -> dict:
        """Persist one application. Raises AuditWriteError once retries run out."""
        ensure_cart(cart)
        payload = self.build_entry(
            application,
            cart,
            price_before,
            price_after,
            scope=scope,
            conflict_resolution=conflict_resolution,
            applied_with=applied_with,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return await self._write(tenant_id or get_current_tenant(), payload)

    async def log_applications(
        self,
        applications: Sequence[DiscountApplication],
        cart: Cart,
        base_amount: int,
        scope: str = "cart",
        conflict_resolution: str | None = None,
        decisions: Iterable[Any] = (),
        tenant_id: str | None = None,
    ) -> list[dict]:
        """Persist a batch, chaining prices in order.

        The first row's price_before is ``base_amount``; each following row
        starts from the previous row's price_after. A resolution decision for
        the discount, when given, overrides ``conflict_resolution``.

        A failed row does not stop the batch: every application is attempted,
        each failure is parked, and one AuditWriteError carrying all letter
        ids (and the rows that were written) is raised at the end.
        """
        ensure_cart(cart)
        ensure_amount("base_amount", base_amount)
        labels = {d.discount_id: d.label.value for d in decisions}

        entries = []
        letter_ids = []
        price = base_amount
        for index, application in enumerate(applications):
            price_after = max(0, price - application.amount)
            applied_with = [
                {"discount_id": other.discount.id, "amount": other.amount}
                for position, other in enumerate(applications)
                if position != index
            ]
            try:
                entries.append(await self.log_application(
                    application,
                    cart,
                    price,
                    price_after,
                    scope=scope,
                    conflict_resolution=labels.get(application.discount.id, conflict_resolution),
                    applied_with=applied_with,
                    tenant_id=tenant_id,
                ))
            except AuditWriteError as e:
                letter_ids.extend(e.letter_ids)
            price = price_after

        if letter_ids:
            raise AuditWriteError(
                f"{len(letter_ids)} of {len(applications)} audit row(s) for cart {cart.id} "
                f"parked for replay",
                letter_ids=letter_ids,
                entries=entries,
            )

        logger.info(f"Recorded {len(entries)} discount application(s) for cart {cart.id}")
        return entries

    # -- Reads --

    async def trail_for_discount(self, discount_id: str, limit: int | None = None) -> list[dict]:
        return await self.repository.for_discount(
            get_current_tenant(),
            str(discount_id),
            limit=limit or self.config.default_query_limit,
        )

    async def trail_for_cart(self, cart_id: str) -> list[dict]:
        return await self.repository.for_cart(get_current_tenant(), str(cart_id))

    async def trail_for_jurisdiction(
        self,
        jurisdiction: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[dict]:
        return await self.repository.for_jurisdiction(get_current_tenant(), jurisdiction, start, end)

    async def compliance_report(self, cart: Cart) -> dict[str, Any]:
        """Compliance summary of everything recorded for ``cart``."""
        ensure_cart(cart)
        entries = await self.trail_for_cart(cart.id)
        return build_compliance_report(cart, entries)

    # -- Dead letters --

    async def replay_failed_writes(self, limit: int = 50) -> dict[str, int]:
        """Re-attempt pending dead letters of the current tenant once each.

        Returns counts of letters replayed, resolved, returned to pending and
        discarded.
        """
        summary = {"replayed": 0, "resolved": 0, "pending": 0, "discarded": 0}
        letters = self.dlq.list_pending(
            queue_name=AUDIT_QUEUE, tenant_id=get_current_tenant(), limit=limit
        )
        for letter in letters:
            if not self.dlq.mark_retrying(letter.id):
                continue
            summary["replayed"] += 1
            try:
                await self.repository.append(letter.tenant_id, letter.payload)
            except Exception as e:
                status = self.dlq.mark_failed(letter.id, str(e))
                summary[status.value if status else "pending"] += 1
                logger.warning(f"Replay of dead letter {letter.id} failed: {e}")
                continue
            self.dlq.mark_resolved(letter.id)
            summary["resolved"] += 1

        if summary["replayed"]:
            logger.info(f"Dead-letter replay: {summary}")
        return summary
