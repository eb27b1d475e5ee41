# Overview: Inventory ledger for product variants; the single mutation point for on-hand stock.

"""
Inventory invariants (authoritative)

- ProductVariant.quantity is a non-negative integer.
- Every mutation is a signed delta applied with one atomic UPDATE:
      quantity = max(0, quantity + delta)
  never a read-modify-write in Python.
- A decrement larger than on-hand clamps to zero and is logged as a
  warning so oversell attempts stay visible.
- Checkout decrements and cancellation restocks both come through
  adjust_inventory; nothing else writes quantity.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import case, update

from ..extensions import db
from ..models import Product, ProductVariant
from . import compliance_service
from .concurrency import begin_write, lock_for_update, run_with_retry
from .errors import NotFoundError, ValidationError


def _apply_delta(
    variant_id: int,
    delta: int,
    *,
    performed_by: str | None = None,
    reason: str | None = None,
    order_id: int | None = None,
) -> int:
    """Apply a delta inside the caller's transaction and return the new quantity."""
    row = lock_for_update(
        db.session.query(ProductVariant.quantity, Product.dispensary_id)
        .join(Product, Product.id == ProductVariant.product_id)
        .filter(ProductVariant.id == variant_id)
    ).first()
    if row is None:
        raise NotFoundError(f"Variant {variant_id} not found", details={"variant_id": variant_id})

    stmt = (
        update(ProductVariant)
        .where(ProductVariant.id == variant_id)
        .values(
            quantity=case(
                (ProductVariant.quantity + delta < 0, 0),
                else_=ProductVariant.quantity + delta,
            )
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        raise NotFoundError(f"Variant {variant_id} not found", details={"variant_id": variant_id})

    new_quantity = (
        db.session.query(ProductVariant.quantity).filter(ProductVariant.id == variant_id).scalar()
    )

    # Keep any loaded instance in step with the row
    loaded = db.session.identity_map.get(db.session.identity_key(ProductVariant, variant_id))
    if loaded is not None:
        db.session.expire(loaded, ["quantity"])

    previous_quantity = row.quantity
    clamped = previous_quantity + delta < 0
    if clamped:
        current_app.logger.warning(
            "Inventory decrement clamped at zero: variant=%s on_hand=%s delta=%s",
            variant_id, previous_quantity, delta,
        )

    if current_app.config.get("COMPLIANCE_LOG_INVENTORY_ADJUSTMENTS"):
        compliance_service.log_event(
            row.dispensary_id,
            "inventory_adjustment",
            {
                "variant_id": variant_id,
                "delta": delta,
                "previous_quantity": previous_quantity,
                "new_quantity": new_quantity,
                "clamped": clamped,
                "reason": reason,
            },
            performed_by,
            order_id=order_id,
        )

    return new_quantity


def adjust_inventory(
    variant_id: int,
    delta: int,
    *,
    performed_by: str | None = None,
    reason: str | None = None,
    order_id: int | None = None,
    commit: bool = True,
) -> int:
    """
    Atomically apply `delta` to a variant's on-hand quantity, clamped at zero.

    With commit=False the change joins the caller's unit of work (checkout,
    cancellation); otherwise it runs as its own retried transaction.

    Raises:
        NotFoundError: variant does not exist
        ValidationError: delta is not an integer
    """
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("delta must be an integer", details={"delta": delta})

    if not commit:
        return _apply_delta(
            variant_id, delta, performed_by=performed_by, reason=reason, order_id=order_id
        )

    def _op() -> int:
        begin_write()
        new_quantity = _apply_delta(
            variant_id, delta, performed_by=performed_by, reason=reason, order_id=order_id
        )
        db.session.commit()
        return new_quantity

    new_quantity = run_with_retry(_op)
    compliance_service.deliver_queued()
    return new_quantity


def get_quantity(variant_id: int) -> int:
    quantity = db.session.query(ProductVariant.quantity).filter(ProductVariant.id == variant_id).scalar()
    if quantity is None:
        raise NotFoundError(f"Variant {variant_id} not found", details={"variant_id": variant_id})
    return int(quantity)


def list_below_threshold(dispensary_id: int) -> list[ProductVariant]:
    """
    Active variants at or below their low-stock threshold.

    Read-only; adjustments never trigger notifications themselves.
    """
    return (
        db.session.query(ProductVariant)
        .join(Product, Product.id == ProductVariant.product_id)
        .filter(
            Product.dispensary_id == dispensary_id,
            ProductVariant.is_active.is_(True),
            ProductVariant.quantity <= ProductVariant.low_stock_threshold,
        )
        .order_by(ProductVariant.quantity.asc(), ProductVariant.id.asc())
        .all()
    )
