"""Test the audit recorder against an in-memory database."""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import text

from core.request_context import RequestContext, reset_request_context, set_request_context
from core.resilience import DLQStatus
from discounts.audit import AUDIT_QUEUE, AuditRecorder
from discounts.enums import DiscountType
from discounts.errors import AuditWriteError
from discounts.models import DiscountApplication
from discounts.service import DiscountStackingService
from tests.helpers import make_cart, make_discount


def _application(discount_id, amount, **data):
    return DiscountApplication(
        discount=make_discount(discount_id, **data),
        amount=amount,
        type=DiscountType.CART_LEVEL,
        reason="Cumulative strategy: discount stacked",
    )


@pytest.mark.asyncio
async def test_log_applications_chains_prices(recorder):
    cart = make_cart(subtotal=1000, user_id="u-1")
    entries = await recorder.log_applications(
        [_application("a", 100), _application("b", 50)], cart, 1000, "cart"
    )
    assert [(e["price_before_discount"], e["price_after_discount"]) for e in entries] == [
        (1000, 900),
        (900, 850),
    ]
    assert entries[0]["applied_with"] == [{"discount_id": "b", "amount": 50}]
    assert entries[1]["applied_with"] == [{"discount_id": "a", "amount": 100}]
    assert entries[0]["user_id"] == "u-1"
    assert entries[0]["tenant_id"] == "default"
    assert entries[0]["metadata"]["cart_subtotal"] == 1000


@pytest.mark.asyncio
async def test_entry_records_classification_and_flags(recorder):
    cart = make_cart(subtotal=1000, country="de")
    [entry] = await recorder.log_applications(
        [_application("a", 100, b2b_contract=True, stacking_mode="stackable", priority=3)],
        cart,
        1000,
        conflict_resolution="admitted",
    )
    assert entry["stacking_mode"] == "stackable"
    assert entry["priority"] == 3
    assert entry["b2b_contract"] is True
    assert entry["manual_coupon"] is False
    assert entry["jurisdiction"] == "DE"
    assert entry["conflict_resolution"] == "admitted"


@pytest.mark.asyncio
async def test_discount_jurisdiction_wins(recorder):
    [entry] = await recorder.log_applications(
        [_application("a", 100, jurisdiction="us")], make_cart(subtotal=1000, country="DE"), 1000
    )
    assert entry["jurisdiction"] == "US"


@pytest.mark.asyncio
async def test_request_context_is_recorded(recorder):
    token = set_request_context(RequestContext(tenant_id="acme", ip_address="10.0.0.1", user_agent="pytest"))
    try:
        [entry] = await recorder.log_applications([_application("a", 100)], make_cart(subtotal=1000), 1000)
        trail = await recorder.trail_for_cart("cart-1")
    finally:
        reset_request_context(token)

    assert entry["tenant_id"] == "acme"
    assert entry["ip_address"] == "10.0.0.1"
    assert entry["user_agent"] == "pytest"
    assert len(trail) == 1
    # Other tenants see nothing
    assert await recorder.trail_for_cart("cart-1") == []


@pytest.mark.asyncio
async def test_trail_queries(recorder):
    await recorder.log_applications(
        [_application("a", 100), _application("b", 50)], make_cart("cart-1", subtotal=1000, country="US"), 1000
    )
    await recorder.log_applications(
        [_application("a", 10)], make_cart("cart-2", subtotal=100, country="US"), 100
    )

    by_cart = await recorder.trail_for_cart("cart-1")
    assert [e["discount_id"] for e in by_cart] == ["a", "b"]

    by_discount = await recorder.trail_for_discount("a")
    assert [e["cart_id"] for e in by_discount] == ["cart-2", "cart-1"]
    assert len(await recorder.trail_for_discount("a", limit=1)) == 1

    by_region = await recorder.trail_for_jurisdiction("us")
    assert len(by_region) == 3
    future = datetime.now(timezone.utc) + timedelta(days=1)
    assert await recorder.trail_for_jurisdiction("US", start=future) == []


@pytest.mark.asyncio
async def test_compliance_report_from_trail(recorder):
    cart = make_cart(subtotal=1000)
    service = DiscountStackingService(recorder=recorder)
    result, entries = await service.evaluate_and_record([
        make_discount("a", priority=10, stacking_mode="stackable", percentage=10),
        make_discount("b", priority=5, stacking_mode="stackable", fixed_amount=50),
    ], cart)
    assert len(entries) == 2

    report = await recorder.compliance_report(cart)
    assert report["total_discounts_applied"] == 2
    assert report["total_discount_amount"] == result.total_discount == 150
    assert report["price_before_discount"] == 1000
    assert report["price_after_discount"] == 850
    assert report["compliance_flags"] == []
    assert [e["conflict_resolution"] for e in entries] == ["admitted", "admitted"]


class FlakyRepository:
    """Fails the first ``failures`` appends, then stores in memory."""

    def __init__(self, failures):
        self.failures = failures
        self.rows = []

    async def append(self, tenant_id, data):
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("database unavailable")
        row = {"id": len(self.rows) + 1, "tenant_id": tenant_id, **data}
        self.rows.append(row)
        return row


@pytest.mark.asyncio
async def test_write_retries_then_succeeds(dlq, audit_config):
    repo = FlakyRepository(failures=2)
    recorder = AuditRecorder(repo, dlq, audit_config)
    [entry] = await recorder.log_applications([_application("a", 100)], make_cart(subtotal=1000), 1000)
    assert entry["discount_id"] == "a"
    assert len(dlq) == 0


@pytest.mark.asyncio
async def test_exhausted_write_goes_to_dead_letters(dlq, audit_config):
    repo = FlakyRepository(failures=10)
    recorder = AuditRecorder(repo, dlq, audit_config)
    with pytest.raises(AuditWriteError) as exc_info:
        await recorder.log_application(_application("a", 100), make_cart(subtotal=1000), 1000, 900)

    letter = dlq.get(exc_info.value.letter_id)
    assert letter.queue_name == AUDIT_QUEUE
    assert letter.payload["discount_id"] == "a"
    assert letter.attempts == audit_config.max_retries + 1
    assert "database unavailable" in letter.error


@pytest.mark.asyncio
async def test_replay_resolves_dead_letters(dlq, audit_config):
    repo = FlakyRepository(failures=audit_config.max_retries + 1)
    recorder = AuditRecorder(repo, dlq, audit_config)
    with pytest.raises(AuditWriteError):
        await recorder.log_application(_application("a", 100), make_cart(subtotal=1000), 1000, 900)

    summary = await recorder.replay_failed_writes()
    assert summary == {"replayed": 1, "resolved": 1, "pending": 0, "discarded": 0}
    assert repo.rows[0]["discount_id"] == "a"
    assert dlq.get_stats(AUDIT_QUEUE).resolved == 1


@pytest.mark.asyncio
async def test_replay_discards_after_budget(dlq, audit_config):
    repo = FlakyRepository(failures=100)
    recorder = AuditRecorder(repo, dlq, audit_config)
    with pytest.raises(AuditWriteError) as exc_info:
        await recorder.log_application(_application("a", 100), make_cart(subtotal=1000), 1000, 900)

    first = await recorder.replay_failed_writes()
    assert first["pending"] == 1
    second = await recorder.replay_failed_writes()
    assert second["discarded"] == 1
    assert dlq.get(exc_info.value.letter_id).status == DLQStatus.DISCARDED
    assert await recorder.replay_failed_writes() == {"replayed": 0, "resolved": 0, "pending": 0, "discarded": 0}


@pytest.mark.asyncio
async def test_failed_row_does_not_lose_the_rest_of_the_batch(recorder, session, dlq):
    await session.execute(text(
        "CREATE TRIGGER reject_b BEFORE INSERT ON discount_audit_trails "
        "WHEN NEW.discount_id = 'b' BEGIN SELECT RAISE(ABORT, 'row rejected'); END"
    ))
    cart = make_cart(subtotal=1000)
    applications = [_application("a", 100), _application("b", 50), _application("c", 25)]

    with pytest.raises(AuditWriteError) as exc_info:
        await recorder.log_applications(applications, cart, 1000)

    assert [e["discount_id"] for e in exc_info.value.entries] == ["a", "c"]
    assert len(exc_info.value.letter_ids) == 1
    stored = await recorder.trail_for_cart(cart.id)
    assert [e["discount_id"] for e in stored] == ["a", "c"]
    # c keeps its place in the price chain
    assert (stored[1]["price_before_discount"], stored[1]["price_after_discount"]) == (850, 825)

    [letter] = dlq.list_pending(queue_name=AUDIT_QUEUE)
    assert letter.payload["discount_id"] == "b"
    assert "row rejected" in letter.error

    await session.execute(text("DROP TRIGGER reject_b"))
    summary = await recorder.replay_failed_writes()
    assert summary["resolved"] == 1
    assert sorted(e["discount_id"] for e in await recorder.trail_for_cart(cart.id)) == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_every_failed_row_is_parked(dlq, audit_config):
    recorder = AuditRecorder(FlakyRepository(failures=100), dlq, audit_config)
    with pytest.raises(AuditWriteError) as exc_info:
        await recorder.log_applications(
            [_application("a", 100), _application("b", 50)], make_cart(subtotal=1000), 1000
        )
    assert len(exc_info.value.letter_ids) == 2
    assert exc_info.value.entries == []
    assert sorted(letter.payload["discount_id"] for letter in dlq.list_pending()) == ["a", "b"]


@pytest.mark.asyncio
async def test_entry_records_discount_map_flag(recorder):
    cart = make_cart(subtotal=1000)
    entry = await recorder.log_application(
        _application("m", 100, map_protected=True), cart, 1000, 900
    )
    assert entry["map_protected"] is True
    # A protected line elsewhere in the cart does not flag an unprotected discount
    [plain] = await recorder.log_applications(
        [_application("p", 100)], make_cart("cart-2", subtotal=1000, map_protected=True), 1000
    )
    assert plain["map_protected"] is False
