# Overview: Read-only order queries for customers, staff dashboards and downstream eligibility checks.

from __future__ import annotations

from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import Order, OrderItem, ORDER_STATUSES, PAYMENT_STATUSES
from .errors import NotFoundError, TenantAccessError, ValidationError


def _base_query(org_id: int | None):
    query = db.session.query(Order).options(selectinload(Order.items))
    if org_id is not None:
        query = query.filter(Order.org_id == org_id)
    return query


def list_orders_for_user(
    user_id: str,
    *,
    dispensary_id: int | None = None,
    status: str | None = None,
    org_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Order]:
    query = _base_query(org_id).filter(Order.user_id == user_id)
    if dispensary_id is not None:
        query = query.filter(Order.dispensary_id == dispensary_id)
    if status:
        _validate_status(status)
        query = query.filter(Order.status == status)
    return _page(query, limit, offset)


def list_orders_for_dispensary(
    dispensary_id: int,
    *,
    status: str | None = None,
    payment_status: str | None = None,
    org_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Order]:
    query = _base_query(org_id).filter(Order.dispensary_id == dispensary_id)
    if status:
        _validate_status(status)
        query = query.filter(Order.status == status)
    if payment_status:
        if payment_status not in PAYMENT_STATUSES:
            raise ValidationError(
                f"Invalid payment_status '{payment_status}'. Must be one of: {', '.join(PAYMENT_STATUSES)}"
            )
        query = query.filter(Order.payment_status == payment_status)
    return _page(query, limit, offset)


def get_order(order_id: int, *, org_id: int | None = None) -> Order:
    """Order with items and status history (history in insertion order)."""
    order = (
        db.session.query(Order)
        .options(selectinload(Order.items), selectinload(Order.status_history))
        .filter(Order.id == order_id)
        .first()
    )
    if order is None:
        raise NotFoundError(f"Order {order_id} not found", details={"order_id": order_id})
    if org_id is not None and order.org_id != org_id:
        raise TenantAccessError(f"Order {order_id} not found", details={"order_id": order_id})
    return order


def has_user_purchased_product(user_id: str, product_id: int) -> bool:
    """
    True if any order by the user contains the product.

    Cancelled and refunded orders do not count as a purchase.
    """
    hit = (
        db.session.query(Order.id)
        .join(OrderItem, OrderItem.order_id == Order.id)
        .filter(
            Order.user_id == user_id,
            OrderItem.product_id == product_id,
            Order.status.notin_(["cancelled", "refunded"]),
        )
        .first()
    )
    return hit is not None


def _validate_status(status: str) -> None:
    if status not in ORDER_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(ORDER_STATUSES)}"
        )


def _page(query, limit: int, offset: int) -> list[Order]:
    if offset < 0:
        offset = 0
    if limit < 1:
        limit = 1
    if limit > 500:
        limit = 500
    return query.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit).all()
