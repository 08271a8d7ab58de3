"""Domain models for discount stacking.

Cart and Discount are the shapes handed in by checkout code; this package only
reads them (apart from the cart's metadata bag). DiscountApplication and
DiscountStackingResult are the immutable values the engine produces.

A discount's configuration arrives as an open data bag. The pricing-relevant
part is parsed into a small tagged union (PercentageParams | FixedAmountParams
| RawParams) so the engine can dispatch on a type instead of probing keys.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Sequence, Union

from discounts.config import config
from discounts.enums import DiscountType, PurchasableRole
from discounts.errors import InvalidAmountError, InvalidCartError, InvalidDiscountError


# ---------------------------------------------------------------------------
# Value parsing helpers
# ---------------------------------------------------------------------------

def _to_decimal(name: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise InvalidDiscountError(f"{name} must be numeric, got a boolean")
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidDiscountError(f"{name} must be numeric, got {value!r}") from e
    if not number.is_finite():
        raise InvalidDiscountError(f"{name} must be finite, got {value!r}")
    return number


def _to_minor_units(name: str, value: Any) -> int:
    number = _to_decimal(name, value)
    if number < 0:
        raise InvalidDiscountError(f"{name} must not be negative, got {value!r}")
    if number != number.to_integral_value():
        raise InvalidDiscountError(f"{name} must be whole minor units, got {value!r}")
    return int(number)


def ensure_amount(name: str, value: Any) -> int:
    """Validate a caller-supplied monetary amount (int minor units, >= 0)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmountError(f"{name} must be an integer of minor units, got {value!r}")
    if value < 0:
        raise InvalidAmountError(f"{name} must not be negative, got {value}")
    return value


# ---------------------------------------------------------------------------
# Discount parameters (tagged union)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PercentageParams:
    percentage: Decimal
    max_cap: int | None = None
    kind: str = field(default="percentage", init=False)


@dataclass(frozen=True)
class FixedAmountParams:
    amount: int
    kind: str = field(default="fixed_amount", init=False)


@dataclass(frozen=True)
class RawParams:
    """No pricing keys recognised; the bag is kept for forward compatibility."""

    fields: Mapping[str, Any]
    kind: str = field(default="raw", init=False)


DiscountParams = Union[PercentageParams, FixedAmountParams, RawParams]


def parse_params(data: Mapping[str, Any]) -> DiscountParams:
    """Select the parameter variant from a data bag.

    ``percentage`` wins over ``fixed_amount``; a key present with value None
    counts as absent. Malformed values raise InvalidDiscountError.
    """
    if data.get("percentage") is not None:
        percentage = _to_decimal("percentage", data["percentage"])
        if percentage < 0 or percentage > 100:
            raise InvalidDiscountError(f"percentage must be within 0..100, got {data['percentage']!r}")
        cap_value = data.get("max_discount_amount")
        if cap_value is None:
            cap_value = data.get("max_discount_cap")
        cap = _to_minor_units("max_discount_amount", cap_value) if cap_value is not None else None
        return PercentageParams(percentage=percentage, max_cap=cap)

    if data.get("fixed_amount") is not None:
        return FixedAmountParams(amount=_to_minor_units("fixed_amount", data["fixed_amount"]))

    return RawParams(fields=dict(data))


# ---------------------------------------------------------------------------
# Inbound entities
# ---------------------------------------------------------------------------

@dataclass
class DiscountPurchasable:
    """A purchasable associated with a discount."""

    purchasable_id: str
    role: PurchasableRole = PurchasableRole.GENERIC

    def __post_init__(self):
        self.role = PurchasableRole.parse(self.role)


@dataclass
class Discount:
    """A candidate discount.

    ``data`` is the open configuration bag (percentage, fixed_amount,
    max_discount_amount, stacking_mode, stacking_strategy, jurisdiction,
    map_protected, b2b_contract, discount_type, ...).
    """

    id: str
    name: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    priority: int | None = None
    coupon: str | None = None
    purchasables: list[DiscountPurchasable] = field(default_factory=list)
    customer_groups: list[str] = field(default_factory=list)

    def __post_init__(self):
        if self.id is None or str(self.id).strip() == "":
            raise InvalidDiscountError("Discount id is required")
        self.id = str(self.id)
        if self.data is None:
            self.data = {}
        if not isinstance(self.data, Mapping):
            raise InvalidDiscountError(
                f"Discount {self.id}: data must be a mapping, got {type(self.data).__name__}"
            )
        if self.priority is not None and (
            isinstance(self.priority, bool) or not isinstance(self.priority, int)
        ):
            raise InvalidDiscountError(f"Discount {self.id}: priority must be an integer")
        # Fail fast on unusable pricing values
        parse_params(self.data)

    @property
    def params(self) -> DiscountParams:
        return parse_params(self.data)

    @property
    def map_protected(self) -> bool:
        return bool(self.data.get("map_protected", False))

    @property
    def b2b_contract(self) -> bool:
        return self.data.get("b2b_contract") is True

    @property
    def jurisdiction(self) -> str | None:
        value = self.data.get("jurisdiction")
        return str(value).upper() if value else None

    @property
    def require_audit_trail(self) -> bool:
        return bool(self.data.get("require_audit_trail", False))

    @property
    def min_cart_value(self) -> int | None:
        value = self.data.get("min_cart_value")
        return _to_minor_units("min_cart_value", value) if value is not None else None

    def purchasables_with_role(self, role: PurchasableRole) -> list[DiscountPurchasable]:
        return [p for p in self.purchasables if p.role == role]


@dataclass
class Address:
    country: str | None = None  # ISO 3166-1 alpha-2


@dataclass
class Channel:
    handle: str
    default_country: str | None = None


@dataclass
class Purchasable:
    """The priced item a cart line points at (usually a variant)."""

    id: str
    price: int = 0
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def map_protected(self) -> bool:
        return bool(self.data.get("map_protected", False))


@dataclass
class CartLine:
    id: str
    purchasable: Purchasable | None = None
    quantity: int = 1
    unit_price: int | None = None

    @property
    def price(self) -> int:
        if self.unit_price is not None:
            return self.unit_price
        return self.purchasable.price if self.purchasable else 0

    @property
    def total(self) -> int:
        return self.price * self.quantity


@dataclass
class Cart:
    """Read-consistent snapshot of a cart for one evaluation."""

    id: str
    lines: list[CartLine] = field(default_factory=list)
    currency: str = field(default_factory=lambda: config.default_currency)
    subtotal: int | None = None
    customer_id: str | None = None
    user_id: str | None = None
    customer_groups: list[str] = field(default_factory=list)
    channel: Channel | None = None
    shipping_address: Address | None = None
    billing_address: Address | None = None
    customer_address: Address | None = None
    coupon_code: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    applied_rules: list[dict[str, Any]] = field(default_factory=list)

    def __post_init__(self):
        if self.id is None or str(self.id).strip() == "":
            raise InvalidCartError("Cart id is required")
        self.id = str(self.id)
        if self.subtotal is None:
            self.subtotal = sum(line.total for line in self.lines)
        else:
            ensure_amount("subtotal", self.subtotal)

    @property
    def applied_discount_ids(self) -> set[str]:
        return {str(r["discount_id"]) for r in self.applied_rules if r.get("discount_id") is not None}


# ---------------------------------------------------------------------------
# Outbound values
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DiscountApplication:
    """One discount actually applied, with its amount and why."""

    discount: Discount
    amount: int
    type: DiscountType
    reason: str

    def __post_init__(self):
        if isinstance(self.amount, bool) or not isinstance(self.amount, int) or self.amount < 0:
            raise InvalidAmountError(f"Application amount must be a non-negative int, got {self.amount!r}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "discount_id": self.discount.id,
            "discount_name": self.discount.name,
            "amount": self.amount,
            "type": self.type.value,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class DiscountStackingResult:
    """Outcome of one stacking pass.

    ``remaining_amount + total_discount == base_amount`` always holds.
    """

    applications: tuple[DiscountApplication, ...]
    total_discount: int
    remaining_amount: int
    base_amount: int
    applied_rules: tuple[dict[str, Any], ...] = ()
    decisions: tuple[Any, ...] = ()
    violations: Mapping[str, tuple[Any, ...]] = field(default_factory=dict)

    def __post_init__(self):
        if self.total_discount > self.base_amount:
            raise InvalidAmountError(
                f"Total discount {self.total_discount} exceeds base amount {self.base_amount}"
            )
        if self.remaining_amount + self.total_discount != self.base_amount:
            raise InvalidAmountError("remaining_amount + total_discount must equal base_amount")

    @classmethod
    def empty(cls, base_amount: int) -> "DiscountStackingResult":
        return cls(applications=(), total_discount=0, remaining_amount=base_amount, base_amount=base_amount)

    @classmethod
    def from_applications(
        cls,
        applications: Sequence[DiscountApplication],
        base_amount: int,
        **extra: Any,
    ) -> "DiscountStackingResult":
        """Build a result, deriving the totals from the applications."""
        total = sum(a.amount for a in applications)
        return cls(
            applications=tuple(applications),
            total_discount=total,
            remaining_amount=base_amount - total,
            base_amount=base_amount,
            **extra,
        )

    @property
    def applied_discount_ids(self) -> list[str]:
        return [a.discount.id for a in self.applications]

    def to_dict(self) -> dict[str, Any]:
        return {
            "applications": [a.to_dict() for a in self.applications],
            "total_discount": self.total_discount,
            "remaining_amount": self.remaining_amount,
            "base_amount": self.base_amount,
            "applied_rules": [dict(r) for r in self.applied_rules],
            "decisions": [d.to_dict() for d in self.decisions],
            "violations": {
                discount_id: [v.to_dict() for v in items]
                for discount_id, items in self.violations.items()
            },
        }


# ---------------------------------------------------------------------------
# Caller-contract guards
# ---------------------------------------------------------------------------

def ensure_cart(cart: Any) -> Cart:
    if cart is None:
        raise InvalidCartError("A cart is required to evaluate discounts")
    if not isinstance(cart, Cart):
        raise InvalidCartError(f"Expected Cart, got {type(cart).__name__}")
    return cart


def ensure_discounts(discounts: Any) -> list[Discount]:
    """Materialise a discount collection, rejecting anything that is not a Discount."""
    if discounts is None:
        raise InvalidDiscountError("Discount collection is required")
    if isinstance(discounts, (str, bytes, Mapping)):
        raise InvalidDiscountError(f"Expected a collection of Discount, got {type(discounts).__name__}")
    items = list(discounts)
    for index, item in enumerate(items):
        if not isinstance(item, Discount):
            raise InvalidDiscountError(
                f"Discount collection item {index} is {type(item).__name__}, not Discount"
            )
    return items
