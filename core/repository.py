"""Async append-only repository for immutable records.

Generic base for tables whose rows are written once and only read afterwards
(audit trails, ledgers). There is no update or delete: a record,
once flushed, is the historical fact.

Example: DiscountAuditRepository extending AppendOnlyRepository.
"""

from datetime import datetime
from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.models.base import AppendOnlyMixin, Base

# ---------------------------------------------------------------------------
# Type variable for model classes
# ---------------------------------------------------------------------------

ModelT = TypeVar("ModelT", bound=Base)


# ---------------------------------------------------------------------------
# Base repository
# ---------------------------------------------------------------------------

class AppendOnlyRepository(Generic[ModelT]):
    """Generic async repository: append and filtered reads.

    Subclass and set `model` to a SQLAlchemy model using AppendOnlyMixin::

        class AuditRepository(AppendOnlyRepository[AuditRow]):
            model = AuditRow

            async def for_cart(self, tenant_id: str, cart_id: str):
                return await self.filter_by(tenant_id, {"cart_id": cart_id})
    """

    model: type[ModelT]

    def __init__(self, session: AsyncSession):
        self.session = session

    # -- Append --

    async def append(self, tenant_id: str, data: dict[str, Any]) -> dict:
        """Insert a new row and return its serialised form.

        The insert runs in a savepoint: a failed flush discards only this row
        and the session stays usable for the next append.
        """
        item = self.model(tenant_id=tenant_id, **data)
        async with self.session.begin_nested():
            self.session.add(item)
            await self.session.flush()
        return item.to_dict()

    # -- Filtered reads --

    async def filter_by(
        self,
        tenant_id: str,
        filters: dict[str, Any] | None = None,
        newest_first: bool = False,
        limit: int | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
    ) -> list[dict]:
        """Equality filters plus an optional created_at window.

        Ordering is by (created_at, id) so rows written within the same
        timestamp keep their insertion order.
        """
        model: type[AppendOnlyMixin] = self.model  # type: ignore[assignment]
        stmt = select(self.model).where(model.tenant_id == tenant_id)

        if filters:
            for col_name, value in filters.items():
                if not hasattr(self.model, col_name):
                    raise ValueError(f"Unknown column for {self.model.__name__}: {col_name}")
                stmt = stmt.where(getattr(self.model, col_name) == value)

        if created_from is not None:
            stmt = stmt.where(model.created_at >= created_from)
        if created_to is not None:
            stmt = stmt.where(model.created_at <= created_to)

        if newest_first:
            stmt = stmt.order_by(model.created_at.desc(), model.id.desc())
        else:
            stmt = stmt.order_by(model.created_at.asc(), model.id.asc())

        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        return [row.to_dict() for row in result.scalars().all()]

