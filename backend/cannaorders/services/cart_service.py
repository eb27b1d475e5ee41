# Overview: Cart collaborator consumed by checkout; snapshots prices when lines are added.

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import Cart, CartItem, Product, ProductVariant
from ..time_utils import utcnow
from .concurrency import run_with_retry
from .errors import NotFoundError, ValidationError


@dataclass(frozen=True)
class CartLine:
    variant_id: int
    quantity: int
    unit_price_cents: int
    variant: ProductVariant

    @property
    def product(self) -> Product:
        return self.variant.product

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "variant_id": self.variant_id,
            "product_id": self.product.id,
            "product_name": self.product.name,
            "variant_name": self.variant.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


@dataclass(frozen=True)
class CartSummary:
    items: list[CartLine]
    subtotal_cents: int

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.items)

    def to_dict(self) -> dict:
        return {
            "items": [line.to_dict() for line in self.items],
            "subtotal_cents": self.subtotal_cents,
            "item_count": self.item_count,
        }


def _find_cart(user_id: str, dispensary_id: int) -> Cart | None:
    return db.session.query(Cart).filter_by(user_id=user_id, dispensary_id=dispensary_id).first()


def _is_expired(cart: Cart) -> bool:
    return cart.expires_at is not None and cart.expires_at <= utcnow()


def _touch(cart: Cart) -> None:
    ttl = current_app.config.get("CART_TTL_HOURS")
    cart.expires_at = utcnow() + timedelta(hours=ttl) if ttl else None


def add_item(user_id: str, dispensary_id: int, variant_id: int, quantity: int) -> Cart:
    """
    Add a variant to the user's cart, merging with an existing line.

    The unit price is the variant's price now; later catalog price changes
    do not touch lines already in the cart.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("quantity must be a positive integer")

    def _op() -> Cart:
        variant = db.session.get(ProductVariant, variant_id)
        if variant is None or not variant.is_active:
            raise NotFoundError(f"Variant {variant_id} not found", details={"variant_id": variant_id})
        if variant.product.dispensary_id != dispensary_id:
            raise NotFoundError(f"Variant {variant_id} not found", details={"variant_id": variant_id})

        cart = _find_cart(user_id, dispensary_id)
        if cart is None:
            cart = Cart(user_id=user_id, dispensary_id=dispensary_id)
            db.session.add(cart)
            db.session.flush()
        elif _is_expired(cart):
            for item in list(cart.items):
                db.session.delete(item)
            db.session.flush()

        line = next((i for i in cart.items if i.variant_id == variant_id), None)
        if line is None:
            cart.items.append(
                CartItem(variant_id=variant_id, quantity=quantity, unit_price_cents=variant.price_cents)
            )
        else:
            line.quantity += quantity

        _touch(cart)
        db.session.commit()
        return cart

    return run_with_retry(_op)


def get_cart_summary(user_id: str, dispensary_id: int) -> CartSummary:
    cart = _find_cart(user_id, dispensary_id)
    if cart is None or _is_expired(cart):
        return CartSummary(items=[], subtotal_cents=0)

    lines = [
        CartLine(
            variant_id=item.variant_id,
            quantity=item.quantity,
            unit_price_cents=item.unit_price_cents,
            variant=item.variant,
        )
        for item in cart.items
    ]
    return CartSummary(items=lines, subtotal_cents=sum(line.line_total_cents for line in lines))


def clear_cart(user_id: str, dispensary_id: int, *, commit: bool = True) -> None:
    """Remove every line; the cart row itself is kept."""
    cart = _find_cart(user_id, dispensary_id)
    if cart is None:
        return
    db.session.query(CartItem).filter_by(cart_id=cart.id).delete(synchronize_session=False)
    db.session.expire(cart, ["items"])
    if commit:
        db.session.commit()
