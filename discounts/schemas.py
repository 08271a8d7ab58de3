"""Pydantic schemas for API request/response validation.

Request models mirror the domain dataclasses and convert with to_domain();
amounts are integers of currency minor units throughout.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from discounts.config import config
from discounts.enums import PurchasableRole
from discounts.models import (
    Address,
    Cart,
    CartLine,
    Channel,
    Discount,
    DiscountPurchasable,
    Purchasable,
)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class PurchasableIn(BaseModel):
    id: str
    price: int = Field(0, ge=0)
    data: dict[str, Any] = Field(default_factory=dict)


class CartLineIn(BaseModel):
    id: str
    purchasable: Optional[PurchasableIn] = None
    quantity: int = Field(1, ge=0)
    unit_price: Optional[int] = Field(None, ge=0)

    def to_domain(self) -> CartLine:
        purchasable = None
        if self.purchasable is not None:
            purchasable = Purchasable(
                id=self.purchasable.id,
                price=self.purchasable.price,
                data=dict(self.purchasable.data),
            )
        return CartLine(
            id=self.id,
            purchasable=purchasable,
            quantity=self.quantity,
            unit_price=self.unit_price,
        )


class AddressIn(BaseModel):
    country: Optional[str] = Field(None, min_length=2, max_length=2)


class ChannelIn(BaseModel):
    handle: str
    default_country: Optional[str] = Field(None, min_length=2, max_length=2)


class CartIn(BaseModel):
    id: str = Field(..., min_length=1)
    lines: list[CartLineIn] = Field(default_factory=list)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    subtotal: Optional[int] = Field(None, ge=0)
    customer_id: Optional[str] = None
    user_id: Optional[str] = None
    customer_groups: list[str] = Field(default_factory=list)
    channel: Optional[ChannelIn] = None
    shipping_address: Optional[AddressIn] = None
    billing_address: Optional[AddressIn] = None
    customer_address: Optional[AddressIn] = None
    coupon_code: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    applied_rules: list[dict[str, Any]] = Field(default_factory=list)

    def to_domain(self) -> Cart:
        def address(value: Optional[AddressIn]) -> Optional[Address]:
            return Address(country=value.country) if value is not None else None

        return Cart(
            id=self.id,
            lines=[line.to_domain() for line in self.lines],
            currency=(self.currency or config.default_currency).upper(),
            subtotal=self.subtotal,
            customer_id=self.customer_id,
            user_id=self.user_id,
            customer_groups=list(self.customer_groups),
            channel=(
                Channel(handle=self.channel.handle, default_country=self.channel.default_country)
                if self.channel is not None
                else None
            ),
            shipping_address=address(self.shipping_address),
            billing_address=address(self.billing_address),
            customer_address=address(self.customer_address),
            coupon_code=self.coupon_code,
            metadata=dict(self.metadata),
            applied_rules=[dict(r) for r in self.applied_rules],
        )


class DiscountPurchasableIn(BaseModel):
    purchasable_id: str
    role: PurchasableRole = PurchasableRole.GENERIC


class DiscountIn(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    priority: Optional[int] = None
    coupon: Optional[str] = None
    purchasables: list[DiscountPurchasableIn] = Field(default_factory=list)
    customer_groups: list[str] = Field(default_factory=list)

    def to_domain(self) -> Discount:
        return Discount(
            id=self.id,
            name=self.name,
            data=dict(self.data),
            priority=self.priority,
            coupon=self.coupon,
            purchasables=[
                DiscountPurchasable(purchasable_id=p.purchasable_id, role=p.role)
                for p in self.purchasables
            ],
            customer_groups=list(self.customer_groups),
        )


class EvaluateRequest(BaseModel):
    cart: CartIn
    discounts: list[DiscountIn] = Field(default_factory=list)
    base_amount: Optional[int] = Field(None, ge=0)
    scope: str = Field("cart", pattern=r"^(cart|item|shipping)$")
    record: bool = False


class ValidateRequest(BaseModel):
    discount: DiscountIn
    cart: CartIn


class ReportRequest(BaseModel):
    cart: CartIn


class ReplayRequest(BaseModel):
    limit: int = Field(50, ge=1, le=500)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class ApplicationOut(BaseModel):
    discount_id: str
    discount_name: str
    amount: int
    type: str
    reason: str


class ViolationOut(BaseModel):
    type: str
    message: str
    severity: str


class DecisionOut(BaseModel):
    discount_id: str
    group: str
    label: str
    removed: list[str] = Field(default_factory=list)


class EvaluateResponse(BaseModel):
    cart_id: str
    applications: list[ApplicationOut]
    total_discount: int
    remaining_amount: int
    base_amount: int
    applied_rules: list[dict[str, Any]]
    decisions: list[DecisionOut]
    violations: dict[str, list[ViolationOut]]
    distribution: dict[str, dict[str, int]]
    audit_entries: int = 0


class ValidateResponse(BaseModel):
    discount_id: str
    compliant: bool
    violations: list[ViolationOut]


class AuditEntryOut(BaseModel):
    id: int
    tenant_id: str
    discount_id: str
    discount_name: Optional[str] = None
    cart_id: str
    order_id: Optional[str] = None
    user_id: Optional[str] = None
    discount_type: str
    stacking_mode: str
    stacking_strategy: str
    priority: int
    price_before_discount: Optional[int] = None
    discount_amount: int
    price_after_discount: Optional[int] = None
    scope: str
    reason: Optional[str] = None
    conflict_resolution: Optional[str] = None
    applied_with: list[dict[str, Any]] = Field(default_factory=list)
    jurisdiction: Optional[str] = None
    map_protected: bool = False
    b2b_contract: bool = False
    manual_coupon: bool = False
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class AuditTrailResponse(BaseModel):
    data: list[AuditEntryOut]
    count: int
