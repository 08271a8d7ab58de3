"""Builders for discounts and carts used across the test modules."""
from discounts.models import Address, Cart, CartLine, Channel, Discount, Purchasable


def make_discount(id, priority=None, coupon=None, name=None, purchasables=None, customer_groups=None, **data):
    return Discount(
        id=id,
        name=name if name is not None else f"Discount {id}",
        data=data,
        priority=priority,
        coupon=coupon,
        purchasables=purchasables or [],
        customer_groups=customer_groups or [],
    )


def make_cart(id="cart-1", subtotal=None, lines=None, country=None, map_protected=False, **kwargs):
    if lines is None:
        purchasable = Purchasable(
            id="sku-1",
            price=subtotal if subtotal is not None else 1000,
            data={"map_protected": True} if map_protected else {},
        )
        lines = [CartLine(id="line-1", purchasable=purchasable, quantity=1)]
    if country is not None:
        kwargs.setdefault("shipping_address", Address(country=country))
    return Cart(id=id, lines=lines, subtotal=subtotal, **kwargs)


def make_line(id, price, quantity=1, map_protected=False):
    return CartLine(
        id=id,
        purchasable=Purchasable(
            id=f"sku-{id}", price=price, data={"map_protected": True} if map_protected else {}
        ),
        quantity=quantity,
    )


def make_channel(handle="webstore", country=None):
    return Channel(handle=handle, default_country=country)
