# Overview: Compliance sink, transactional outbox and regulatory reporting queries.

"""
Compliance record-keeping invariants (authoritative)

- Every sale and every order status change produces exactly one outbox
  row, written in the same DB transaction as the change it records.
- Delivery to the sink happens only after that transaction commits. A
  delivery failure never rolls back the business change; the row stays
  'pending' and is retried by flush_outbox().
- Outbox rows are never deleted. After COMPLIANCE_MAX_DELIVERY_ATTEMPTS
  failures a row becomes 'failed' and is logged at error level.
- Delivery is idempotent per outbox row.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy import func, or_, update

from ..extensions import db
from ..models import (
    ComplianceLog,
    ComplianceOutbox,
    DailySalesReport,
    Order,
    OrderItem,
    COMPLIANCE_EVENT_TYPES,
)
from ..time_utils import day_bounds, utc_today, utcnow
from .concurrency import begin_write, run_with_retry
from .errors import ComplianceSinkUnavailableError, ValidationError

_QUEUE_KEY = "compliance_outbox_ids"


class ComplianceSink:
    """
    Destination for regulatory audit records.

    deliver() may see the same outbox entry more than once (an abandoned
    claim is retried), so implementations must be idempotent per entry.id.
    """

    def deliver(self, entry: ComplianceOutbox) -> None:
        raise NotImplementedError


class DatabaseComplianceSink(ComplianceSink):
    """Writes audit records to the compliance_logs table."""

    def deliver(self, entry: ComplianceOutbox) -> None:
        existing = db.session.query(ComplianceLog.id).filter_by(outbox_id=entry.id).first()
        if existing:
            return
        db.session.add(
            ComplianceLog(
                dispensary_id=entry.dispensary_id,
                event_type=entry.event_type,
                details=entry.details,
                performed_by=entry.performed_by,
                order_id=entry.order_id,
                outbox_id=entry.id,
            )
        )
        db.session.flush()


def get_sink() -> ComplianceSink:
    sink = current_app.extensions.get("compliance_sink")
    if sink is None:
        sink = DatabaseComplianceSink()
        current_app.extensions["compliance_sink"] = sink
    return sink


@dataclass
class DeliveryReport:
    delivered: list[int] = field(default_factory=list)
    pending: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "delivered": self.delivered,
            "pending": self.pending,
            "failed": self.failed,
        }


# =============================================================================
# Enqueue (inside the caller's transaction)
# =============================================================================

def log_event(
    dispensary_id: int,
    event_type: str,
    details: dict,
    performed_by: str | None,
    order_id: int | None = None,
) -> ComplianceOutbox:
    """
    Queue a generic compliance event.

    Does not commit: the row becomes durable with the caller's transaction
    and is delivered by deliver_queued() once that transaction commits.
    """
    if event_type not in COMPLIANCE_EVENT_TYPES:
        raise ValidationError(f"Unknown compliance event type '{event_type}'")

    entry = ComplianceOutbox(
        dispensary_id=dispensary_id,
        event_type=event_type,
        details=details,
        performed_by=performed_by,
        order_id=order_id,
        status="pending",
        attempts=0,
    )
    db.session.add(entry)
    db.session.flush()
    db.session.info.setdefault(_QUEUE_KEY, []).append(entry.id)
    return entry


def sale_details(order: Order) -> dict:
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "user_id": order.user_id,
        "fulfillment_type": order.fulfillment_type,
        "items": [
            {
                "product_name": item.product_name,
                "variant_name": item.variant_name,
                "quantity": item.quantity,
                "unit_price_cents": item.unit_price_cents,
                "line_total_cents": item.line_total_cents,
                "batch_number": item.batch_number,
                "license_number": item.license_number,
            }
            for item in order.items
        ],
        "subtotal_cents": order.subtotal_cents,
        "tax_cents": order.tax_cents,
        "excise_tax_cents": order.excise_tax_cents,
        "discount_cents": order.discount_cents,
        "total_cents": order.total_cents,
    }


def log_sale(order: Order, performed_by: str) -> ComplianceOutbox:
    """Queue the sale record for a placed order, items included."""
    return log_event(order.dispensary_id, "sale", sale_details(order), performed_by, order_id=order.id)


# =============================================================================
# Delivery (after commit)
# =============================================================================

def _claim(entry_id: int) -> ComplianceOutbox | None:
    """
    Mark a pending row as being delivered, in its own short transaction.

    Counts the attempt up front. Returns None when the row is no longer
    pending or another worker holds a live claim on it.
    """
    timeout = current_app.config.get("COMPLIANCE_CLAIM_TIMEOUT_SECONDS", 300)

    def _op() -> int:
        now = utcnow()
        begin_write()
        stmt = (
            update(ComplianceOutbox)
            .where(
                ComplianceOutbox.id == entry_id,
                ComplianceOutbox.status == "pending",
                or_(
                    ComplianceOutbox.claimed_at.is_(None),
                    ComplianceOutbox.claimed_at < now - timedelta(seconds=timeout),
                ),
            )
            .values(claimed_at=now, last_attempt_at=now, attempts=ComplianceOutbox.attempts + 1)
            .execution_options(synchronize_session=False)
        )
        claimed = db.session.execute(stmt).rowcount
        db.session.commit()
        return claimed

    if not run_with_retry(_op):
        return None
    return db.session.get(ComplianceOutbox, entry_id)


def _record_failure(entry_id: int, exc: Exception, report: DeliveryReport) -> None:
    max_attempts = current_app.config.get("COMPLIANCE_MAX_DELIVERY_ATTEMPTS", 10)

    def _op() -> ComplianceOutbox | None:
        begin_write()
        entry = db.session.get(ComplianceOutbox, entry_id)
        if entry is None:
            return None
        entry.claimed_at = None
        entry.last_error = str(exc)[:255]
        if entry.attempts >= max_attempts:
            entry.status = "failed"
        db.session.commit()
        return entry

    try:
        entry = run_with_retry(_op)
    except Exception:
        # The claim stays until COMPLIANCE_CLAIM_TIMEOUT_SECONDS, then flush_outbox picks it up again
        db.session.rollback()
        report.pending.append(entry_id)
        current_app.logger.exception(
            "Could not record delivery failure for compliance event %s (%s); left pending",
            entry_id, exc,
        )
        return
    if entry is None:
        return

    if entry.status == "failed":
        report.failed.append(entry_id)
        current_app.logger.error(
            "Compliance event %s (%s, order=%s) failed permanently after %d attempts: %s",
            entry_id, entry.event_type, entry.order_id, entry.attempts, exc,
        )
    else:
        report.pending.append(entry_id)
        current_app.logger.warning(
            "Compliance event %s (%s, order=%s) not delivered, queued for retry (attempt %d): %s",
            entry_id, entry.event_type, entry.order_id, entry.attempts, exc,
        )


def _deliver_one(entry_id: int, sink: ComplianceSink, report: DeliveryReport) -> None:
    """
    Claim, deliver, settle.

    The sink is called with no write lock held, so a slow sink never stalls
    checkouts. If the process dies mid-delivery the row stays pending and
    is re-claimed after the claim timeout; sinks must therefore tolerate
    seeing the same outbox id twice.
    """
    try:
        entry = _claim(entry_id)
    except Exception:
        db.session.rollback()
        report.pending.append(entry_id)
        current_app.logger.exception("Could not claim compliance event %s; left pending", entry_id)
        return
    if entry is None:
        return

    try:
        sink.deliver(entry)

        begin_write()
        entry.status = "delivered"
        entry.delivered_at = utcnow()
        entry.claimed_at = None
        entry.last_error = None
        db.session.commit()
        report.delivered.append(entry_id)
    except Exception as exc:
        # Post-commit isolation: the business change is already durable
        db.session.rollback()
        if not isinstance(exc, ComplianceSinkUnavailableError):
            exc = ComplianceSinkUnavailableError(str(exc) or exc.__class__.__name__)
        _record_failure(entry_id, exc, report)


def deliver_pending(outbox_ids: list[int] | None = None, *, limit: int = 100) -> DeliveryReport:
    """Hand pending outbox rows to the sink, oldest first."""
    report = DeliveryReport()

    query = db.session.query(ComplianceOutbox.id).filter(ComplianceOutbox.status == "pending")
    if outbox_ids is not None:
        if not outbox_ids:
            return report
        query = query.filter(ComplianceOutbox.id.in_(outbox_ids))
    ids = [row.id for row in query.order_by(ComplianceOutbox.id.asc()).limit(limit).all()]
    db.session.rollback()

    sink = get_sink()
    for entry_id in ids:
        _deliver_one(entry_id, sink, report)
    return report


def deliver_queued() -> DeliveryReport:
    """
    Deliver the events this session queued in its last committed unit of work.

    Runs right after a business commit, so it never raises: anything that
    goes wrong is logged and the rows stay pending for flush_outbox().
    """
    ids = db.session.info.pop(_QUEUE_KEY, [])
    try:
        return deliver_pending(ids)
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Post-commit compliance delivery failed; events %s left pending", ids
        )
        return DeliveryReport(pending=list(ids))


def discard_queued() -> None:
    db.session.info.pop(_QUEUE_KEY, None)


def flush_outbox(*, limit: int = 500) -> DeliveryReport:
    """Retry every pending outbox row (CLI / scheduled job entry point)."""
    return deliver_pending(None, limit=limit)


def count_outbox(status: str = "pending") -> int:
    return db.session.query(func.count(ComplianceOutbox.id)).filter_by(status=status).scalar() or 0


# =============================================================================
# Reporting
# =============================================================================

def get_compliance_logs(
    dispensary_id: int,
    start: datetime,
    end: datetime,
    event_type: str | None = None,
) -> list[ComplianceLog]:
    query = db.session.query(ComplianceLog).filter(
        ComplianceLog.dispensary_id == dispensary_id,
        ComplianceLog.created_at >= start,
        ComplianceLog.created_at <= end,
    )
    if event_type:
        query = query.filter(ComplianceLog.event_type == event_type)
    return query.order_by(ComplianceLog.created_at.desc(), ComplianceLog.id.desc()).all()


def check_purchase_limit(dispensary_id: int, user_id: str, requested_units: int) -> dict:
    """
    Compare today's purchased units (UTC day) plus a request to the daily limit.

    Cancelled and refunded orders do not count. The check itself is logged.
    """
    if requested_units < 0:
        raise ValidationError("requested_units cannot be negative")

    limit = current_app.config.get("DAILY_PURCHASE_LIMIT_UNITS", 85)
    start, end = day_bounds(utc_today())

    daily_total = (
        db.session.query(func.coalesce(func.sum(OrderItem.quantity), 0))
        .join(Order, Order.id == OrderItem.order_id)
        .filter(
            Order.dispensary_id == dispensary_id,
            Order.user_id == user_id,
            Order.created_at >= start,
            Order.created_at < end,
            Order.status.notin_(["cancelled", "refunded"]),
        )
        .scalar()
    )
    daily_total = int(daily_total or 0)
    within_limit = daily_total + requested_units <= limit

    log_event(
        dispensary_id,
        "purchase_limit_check",
        {
            "user_id": user_id,
            "daily_total": daily_total,
            "requested_units": requested_units,
            "within_limit": within_limit,
            "limit": limit,
        },
        user_id,
    )
    db.session.commit()
    deliver_queued()

    return {"within_limit": within_limit, "daily_total": daily_total, "limit": limit}


def generate_daily_report(dispensary_id: int, report_date: date) -> DailySalesReport:
    """Build (or rebuild) the sales summary for one dispensary and UTC day."""
    start, end = day_bounds(report_date)
    orders = (
        db.session.query(Order)
        .filter(
            Order.dispensary_id == dispensary_id,
            Order.created_at >= start,
            Order.created_at < end,
        )
        .all()
    )

    completed = [o for o in orders if o.status == "completed"]
    cancelled = [o for o in orders if o.status == "cancelled"]
    refunded = [o for o in orders if o.status == "refunded"]

    total_revenue = sum(o.total_cents for o in completed)

    report = (
        db.session.query(DailySalesReport)
        .filter_by(dispensary_id=dispensary_id, report_date=report_date)
        .first()
    )
    if report is None:
        report = DailySalesReport(dispensary_id=dispensary_id, report_date=report_date)
        db.session.add(report)

    report.total_orders = len(completed)
    report.total_revenue_cents = total_revenue
    report.total_tax_cents = sum(o.tax_cents for o in completed)
    report.total_excise_tax_cents = sum(o.excise_tax_cents for o in completed)
    report.total_items_sold = sum(item.quantity for o in completed for item in o.items)
    # nearest-cent rounding (half-up)
    report.average_order_value_cents = (
        (total_revenue + len(completed) // 2) // len(completed) if completed else 0
    )
    report.unique_customers = len({o.user_id for o in completed})
    report.cancelled_orders = len(cancelled)
    report.refunded_amount_cents = sum(o.total_cents for o in refunded)

    db.session.commit()
    return report
