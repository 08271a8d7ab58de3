"""Test retry with backoff and the dead-letter queue."""
import pytest

from core.resilience import DeadLetterQueue, DLQStatus, retry_async


@pytest.mark.asyncio
async def test_retry_returns_result_and_attempts():
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise RuntimeError("not yet")
        return "ok"

    result, attempts = await retry_async(flaky, max_retries=3, backoff_base=0.0)
    assert result == "ok"
    assert attempts == 3


@pytest.mark.asyncio
async def test_retry_reraises_last_error():
    async def broken():
        raise ValueError("always")

    with pytest.raises(ValueError, match="always"):
        await retry_async(broken, max_retries=1, backoff_base=0.0)


@pytest.mark.asyncio
async def test_retry_passes_arguments():
    async def add(a, b=0):
        return a + b

    assert await retry_async(add, 1, b=2) == (3, 1)


def test_dlq_enqueue_and_list():
    dlq = DeadLetterQueue()
    first = dlq.enqueue("q", "t1", {"n": 1}, "boom")
    dlq.enqueue("q", "t2", {"n": 2}, "boom")
    dlq.enqueue("other", "t1", {"n": 3}, "boom")
    assert len(dlq) == 3
    assert [dl.id for dl in dlq.list_pending(queue_name="q", tenant_id="t1")] == [first.id]
    assert first.to_dict()["status"] == "pending"


def test_dlq_replay_lifecycle():
    dlq = DeadLetterQueue(max_replays=1)
    letter = dlq.enqueue("q", "t", {}, "boom")
    assert dlq.mark_retrying(letter.id)
    assert letter.status == DLQStatus.RETRYING
    # Claimed letters cannot be claimed twice
    assert not dlq.mark_retrying(letter.id)
    assert dlq.mark_failed(letter.id, "again") == DLQStatus.DISCARDED
    assert not letter.can_replay


def test_dlq_resolve_and_purge():
    dlq = DeadLetterQueue()
    letter = dlq.enqueue("q", "t", {}, "boom")
    dlq.mark_retrying(letter.id)
    assert dlq.mark_resolved(letter.id)
    assert letter.resolved_at is not None
    stats = dlq.get_stats("q")
    assert stats.resolved == 1 and stats.total == 1
    assert dlq.purge_resolved() == 1
    assert len(dlq) == 0


def test_dlq_unknown_ids():
    dlq = DeadLetterQueue()
    assert dlq.get("missing") is None
    assert dlq.mark_resolved("missing") is False
    assert dlq.mark_failed("missing", "x") is None
