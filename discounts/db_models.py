"""SQLAlchemy model for the discount audit trail.

One row per applied discount. Rows are append-only (AppendOnlyMixin has no
updated_at) and serialise through to_dict(), the interface repositories and
routers use.
"""

from typing import Any

from sqlalchemy import JSON, Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.models.base import AppendOnlyMixin, Base


class DiscountAuditTrail(AppendOnlyMixin, Base):
    """An applied discount with its prices, classification and context."""

    __tablename__ = "discount_audit_trails"

    discount_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    discount_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cart_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    order_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    discount_type: Mapped[str] = mapped_column(String(32), nullable=False)
    stacking_mode: Mapped[str] = mapped_column(String(32), nullable=False)
    stacking_strategy: Mapped[str] = mapped_column(String(32), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    price_before_discount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    discount_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    price_after_discount: Mapped[int | None] = mapped_column(Integer, nullable=True)

    scope: Mapped[str] = mapped_column(String(16), nullable=False, default="cart")
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    conflict_resolution: Mapped[str | None] = mapped_column(String(64), nullable=True)
    applied_with: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    jurisdiction: Mapped[str | None] = mapped_column(String(8), nullable=True, index=True)
    map_protected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    b2b_contract: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    manual_coupon: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    # "metadata" is reserved on declarative classes
    extra: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "discount_id": self.discount_id,
            "discount_name": self.discount_name,
            "cart_id": self.cart_id,
            "order_id": self.order_id,
            "user_id": self.user_id,
            "discount_type": self.discount_type,
            "stacking_mode": self.stacking_mode,
            "stacking_strategy": self.stacking_strategy,
            "priority": self.priority,
            "price_before_discount": self.price_before_discount,
            "discount_amount": self.discount_amount,
            "price_after_discount": self.price_after_discount,
            "scope": self.scope,
            "reason": self.reason,
            "conflict_resolution": self.conflict_resolution,
            "applied_with": list(self.applied_with or []),
            "jurisdiction": self.jurisdiction,
            "map_protected": self.map_protected,
            "b2b_contract": self.b2b_contract,
            "manual_coupon": self.manual_coupon,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "metadata": dict(self.extra or {}),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
