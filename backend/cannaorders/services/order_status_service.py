# Overview: Order lifecycle state machine; validates transitions and applies their side effects.

"""
Order Status State Machine

================================================================================
STATE MACHINE:
    pending -> confirmed -> preparing -> ready_for_pickup  -> completed -> refunded
                                      -> out_for_delivery  -> completed

    cancelled is reachable from every non-terminal state.
    completed may only move to refunded; cancelled and refunded are terminal.

RULES:
1. Only transitions in TRANSITIONS are allowed; anything else raises
   InvalidTransitionError before any write.
2. Entering confirmed/completed/cancelled stamps confirmed_at/completed_at/
   cancelled_at.
3. Entering cancelled restocks every order line exactly once. This is the
   only path that returns inventory to stock.
4. Every applied transition appends one OrderStatusHistory row and queues an
   order_status_changed compliance event in the same transaction.
================================================================================
"""

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import Order, OrderStatusHistory, ORDER_STATUSES
from ..time_utils import utcnow
from . import compliance_service
from .concurrency import begin_write, lock_for_update, run_with_retry
from .errors import InvalidTransitionError, NotFoundError, TenantAccessError
from .inventory_service import adjust_inventory


TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"preparing", "cancelled"}),
    "preparing": frozenset({"ready_for_pickup", "out_for_delivery", "cancelled"}),
    "ready_for_pickup": frozenset({"completed", "cancelled"}),
    "out_for_delivery": frozenset({"completed", "cancelled"}),
    "completed": frozenset({"refunded"}),
    "cancelled": frozenset(),
    "refunded": frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, allowed in TRANSITIONS.items() if not allowed)

_TIMESTAMP_FIELDS = {
    "confirmed": "confirmed_at",
    "completed": "completed_at",
    "cancelled": "cancelled_at",
}


def allowed_transitions(from_status: str) -> frozenset[str]:
    return TRANSITIONS.get(from_status, frozenset())


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in allowed_transitions(from_status)


def validate_transition(from_status: str, to_status: str) -> None:
    if to_status not in ORDER_STATUSES or not can_transition(from_status, to_status):
        raise InvalidTransitionError(from_status, to_status)


def record_status_change(
    order: Order,
    from_status: str | None,
    to_status: str,
    changed_by: str,
    notes: str | None = None,
) -> OrderStatusHistory:
    entry = OrderStatusHistory(
        order_id=order.id,
        from_status=from_status,
        to_status=to_status,
        changed_by=changed_by,
        notes=notes,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def _restock(order: Order, actor: str) -> None:
    for item in order.items:
        adjust_inventory(
            item.variant_id,
            item.quantity,
            performed_by=actor,
            reason=f"Order {order.order_number} cancelled",
            order_id=order.id,
            commit=False,
        )


def _transition_locked(order: Order, new_status: str, actor: str, notes: str | None) -> Order:
    old_status = order.status
    validate_transition(old_status, new_status)

    now = utcnow()
    order.status = new_status
    timestamp_field = _TIMESTAMP_FIELDS.get(new_status)
    if timestamp_field:
        setattr(order, timestamp_field, now)
    if new_status == "refunded":
        order.payment_status = "refunded"

    if new_status == "cancelled":
        _restock(order, actor)

    compliance_service.log_event(
        order.dispensary_id,
        "order_status_changed",
        {
            "order_id": order.id,
            "order_number": order.order_number,
            "from_status": old_status,
            "to_status": new_status,
            "notes": notes,
        },
        actor,
        order_id=order.id,
    )

    # Last step of the unit of work
    record_status_change(order, old_status, new_status, actor, notes)
    return order


def transition_order(
    order_id: int,
    new_status: str,
    actor: str,
    notes: str | None = None,
    *,
    org_id: int | None = None,
) -> Order:
    """
    Move an order to `new_status` as one atomic unit of work.

    The order row is locked for the duration, so two concurrent requests
    (e.g. a double-clicked cancel) serialize and the loser sees the new
    status and is rejected rather than restocking twice.

    Raises:
        NotFoundError: order missing (or outside org_id when given)
        InvalidTransitionError: pair not allowed; nothing is written
    """
    def _op() -> Order:
        begin_write()
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", details={"order_id": order_id})
        if org_id is not None and order.org_id != org_id:
            raise TenantAccessError(f"Order {order_id} not found", details={"order_id": order_id})

        _transition_locked(order, new_status, actor, notes)
        db.session.commit()
        return order

    order = run_with_retry(_op)
    compliance_service.deliver_queued()
    return order


def cancel_stale_pending_orders(older_than_hours: int, *, actor: str = "system") -> list[Order]:
    """
    Cancel orders left in pending for longer than the cut-off.

    Manual maintenance only; nothing schedules it. Each order goes through
    the normal state machine, so it is restocked and audited like any
    other cancellation.
    """
    cutoff = utcnow() - timedelta(hours=older_than_hours)
    ids = [
        row.id
        for row in db.session.query(Order.id)
        .filter(Order.status == "pending", Order.created_at < cutoff)
        .order_by(Order.id.asc())
        .all()
    ]
    db.session.rollback()

    cancelled = []
    for order_id in ids:
        try:
            cancelled.append(
                transition_order(
                    order_id,
                    "cancelled",
                    actor,
                    notes=f"Auto-cancelled: pending longer than {older_than_hours}h",
                )
            )
        except InvalidTransitionError:
            # Moved on since the scan
            continue
    return cancelled
