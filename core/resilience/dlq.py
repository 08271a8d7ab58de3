"""
Dead Letter Queue for failed writes.

A write that still fails after its retries is parked here with the full
payload, so nothing a compliance report depends on is lost. Supports:
- Per-queue, per-tenant isolation
- Replay bookkeeping (attempt counting, back to pending, discard when exhausted)
- Statistics for operational alerting
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
import uuid


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DLQStatus(str, Enum):
    PENDING = "pending"
    RETRYING = "retrying"
    RESOLVED = "resolved"
    DISCARDED = "discarded"


@dataclass
class DeadLetter:
    """A write that could not be persisted."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    queue_name: str = ""
    tenant_id: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    error: str = ""
    attempts: int = 0
    max_replays: int = 3
    replay_count: int = 0
    status: DLQStatus = DLQStatus.PENDING
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    resolved_at: datetime | None = None

    @property
    def can_replay(self) -> bool:
        return self.status == DLQStatus.PENDING and self.replay_count < self.max_replays

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "queue_name": self.queue_name,
            "tenant_id": self.tenant_id,
            "payload": self.payload,
            "error": self.error,
            "attempts": self.attempts,
            "replay_count": self.replay_count,
            "max_replays": self.max_replays,
            "status": self.status.value,
            "can_replay": self.can_replay,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


@dataclass
class DLQStats:
    """Aggregate statistics for a DLQ."""
    queue_name: str
    total: int = 0
    pending: int = 0
    retrying: int = 0
    resolved: int = 0
    discarded: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "queue_name": self.queue_name,
            "total": self.total,
            "pending": self.pending,
            "retrying": self.retrying,
            "resolved": self.resolved,
            "discarded": self.discarded,
        }


class DeadLetterQueue:
    """In-memory DLQ. Process-local; swap the backing dict for a table to share it."""

    def __init__(self, max_replays: int = 3):
        self._letters: dict[str, DeadLetter] = {}
        self.max_replays = max_replays

    def __len__(self) -> int:
        return len(self._letters)

    def enqueue(
        self,
        queue_name: str,
        tenant_id: str,
        payload: dict[str, Any],
        error: str,
        attempts: int = 0,
    ) -> DeadLetter:
        """Park a failed write."""
        letter = DeadLetter(
            queue_name=queue_name,
            tenant_id=tenant_id,
            payload=payload,
            error=error,
            attempts=attempts,
            max_replays=self.max_replays,
        )
        self._letters[letter.id] = letter
        return letter

    def get(self, letter_id: str) -> DeadLetter | None:
        return self._letters.get(letter_id)

    def list_pending(
        self,
        queue_name: str | None = None,
        tenant_id: str | None = None,
        limit: int = 50,
    ) -> list[DeadLetter]:
        """Pending letters, oldest first, optionally filtered."""
        results = [dl for dl in self._letters.values() if dl.status == DLQStatus.PENDING]
        if queue_name:
            results = [dl for dl in results if dl.queue_name == queue_name]
        if tenant_id:
            results = [dl for dl in results if dl.tenant_id == tenant_id]
        results.sort(key=lambda dl: dl.created_at)
        return results[:limit]

    def mark_retrying(self, letter_id: str) -> bool:
        """Claim a letter for replay. False if it is not replayable."""
        letter = self._letters.get(letter_id)
        if not letter or not letter.can_replay:
            return False
        letter.status = DLQStatus.RETRYING
        letter.replay_count += 1
        letter.updated_at = _now()
        return True

    def mark_resolved(self, letter_id: str) -> bool:
        letter = self._letters.get(letter_id)
        if not letter:
            return False
        letter.status = DLQStatus.RESOLVED
        letter.resolved_at = _now()
        letter.updated_at = letter.resolved_at
        return True

    def mark_failed(self, letter_id: str, error: str) -> DLQStatus | None:
        """Record a failed replay.

        The letter returns to PENDING, or becomes DISCARDED once its replay
        budget is spent. Returns the new status, None if the id is unknown.
        """
        letter = self._letters.get(letter_id)
        if not letter:
            return None
        letter.error = error
        letter.updated_at = _now()
        if letter.replay_count >= letter.max_replays:
            letter.status = DLQStatus.DISCARDED
        else:
            letter.status = DLQStatus.PENDING
        return letter.status

    def get_stats(self, queue_name: str = "") -> DLQStats:
        letters = list(self._letters.values())
        if queue_name:
            letters = [dl for dl in letters if dl.queue_name == queue_name]

        stats = DLQStats(queue_name=queue_name or "all")
        stats.total = len(letters)
        stats.pending = sum(1 for dl in letters if dl.status == DLQStatus.PENDING)
        stats.retrying = sum(1 for dl in letters if dl.status == DLQStatus.RETRYING)
        stats.resolved = sum(1 for dl in letters if dl.status == DLQStatus.RESOLVED)
        stats.discarded = sum(1 for dl in letters if dl.status == DLQStatus.DISCARDED)
        return stats

    def purge_resolved(self, queue_name: str | None = None) -> int:
        """Remove resolved entries. Returns count removed."""
        to_remove = [
            dl_id for dl_id, dl in self._letters.items()
            if dl.status == DLQStatus.RESOLVED
            and (queue_name is None or dl.queue_name == queue_name)
        ]
        for dl_id in to_remove:
            del self._letters[dl_id]
        return len(to_remove)
