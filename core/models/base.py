"""Base model and mixins for all SQLAlchemy models.

Provides:
- Base: Declarative base class for all models
- AppendOnlyMixin: Integer primary key, tenant_id and an insert timestamp

Audit rows are written once and never updated, so the mixin carries no
updated_at column. The integer key doubles as a tiebreaker when two rows share
a timestamp.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base for all discount-service models."""
    pass


class AppendOnlyMixin:
    """Mixin for immutable, tenant-scoped rows.

    Adds:
    - id: Auto-incrementing integer primary key
    - tenant_id: Indexed string for tenant isolation
    - created_at: Timestamp set on insert (microsecond precision)
    """

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    tenant_id: Mapped[str] = mapped_column(
        String(64),
        index=True,
        nullable=False,
        default="default",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        index=True,
        nullable=False,
    )
