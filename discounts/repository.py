"""Audit-trail repository: async database access with tenant isolation.

Extends AppendOnlyRepository with the three read paths compliance reviews
need: by discount, by cart and by jurisdiction over a time window.
"""

from datetime import datetime
from typing import Any

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_session
from core.repository import AppendOnlyRepository
from discounts.db_models import DiscountAuditTrail


# ---------------------------------------------------------------------------
# Audit repository
# ---------------------------------------------------------------------------

class DiscountAuditRepository(AppendOnlyRepository[DiscountAuditTrail]):
    """Repository for discount audit rows."""

    model = DiscountAuditTrail

    async def append(self, tenant_id: str, data: dict[str, Any]) -> dict:
        """Insert a row; accepts the serialised ``metadata`` key."""
        data = dict(data)
        if "metadata" in data:
            data["extra"] = data.pop("metadata")
        return await super().append(tenant_id, data)

    async def for_discount(
        self, tenant_id: str, discount_id: str, limit: int = 100
    ) -> list[dict]:
        """Most recent applications of a discount, newest first."""
        return await self.filter_by(
            tenant_id,
            {"discount_id": discount_id},
            newest_first=True,
            limit=limit,
        )

    async def for_cart(self, tenant_id: str, cart_id: str) -> list[dict]:
        """Every row for a cart in the order it was written."""
        return await self.filter_by(tenant_id, {"cart_id": cart_id})

    async def for_jurisdiction(
        self,
        tenant_id: str,
        jurisdiction: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[dict]:
        """Rows for a jurisdiction within [start, end], newest first."""
        return await self.filter_by(
            tenant_id,
            {"jurisdiction": jurisdiction.upper()},
            newest_first=True,
            created_from=start,
            created_to=end,
        )


# ---------------------------------------------------------------------------
# FastAPI dependency factory
# ---------------------------------------------------------------------------

def get_audit_repository(
    session: AsyncSession = Depends(get_session),
) -> DiscountAuditRepository:
    """FastAPI dependency for DiscountAuditRepository."""
    return DiscountAuditRepository(session)
