from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


COMPLIANCE_EVENT_TYPES = (
    "sale",
    "order_status_changed",
    "inventory_adjustment",
    "purchase_limit_check",
)


class ComplianceLog(db.Model):
    """
    Regulatory audit log written by the database compliance sink.

    Append-only: no updates or deletes.
    """
    __tablename__ = "compliance_logs"
    __table_args__ = (
        db.Index("ix_compliance_logs_dispensary_created", "dispensary_id", "created_at"),
        db.Index("ix_compliance_logs_event_created", "event_type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    dispensary_id = db.Column(db.Integer, db.ForeignKey("dispensaries.id"), nullable=False)
    event_type = db.Column(db.String(64), nullable=False)
    details = db.Column(db.JSON, nullable=False)
    performed_by = db.Column(db.String(64), nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    # Outbox row this log was delivered from; unique so redelivery is a no-op
    outbox_id = db.Column(db.Integer, db.ForeignKey("compliance_outbox.id"), nullable=True, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "dispensary_id": self.dispensary_id,
            "event_type": self.event_type,
            "details": self.details,
            "performed_by": self.performed_by,
            "order_id": self.order_id,
            "created_at": to_utc_z(self.created_at),
        }


class ComplianceOutbox(db.Model):
    """
    Durable queue of compliance events awaiting delivery to the sink.

    Rows are written in the same transaction as the business change they
    describe, then delivered after commit. Status: pending -> delivered,
    or pending -> failed once the attempt budget is spent.

    claimed_at is set while one worker is talking to the sink so a
    concurrent flush skips the row; a claim older than
    COMPLIANCE_CLAIM_TIMEOUT_SECONDS is considered abandoned.
    """
    __tablename__ = "compliance_outbox"
    __table_args__ = (
        db.Index("ix_compliance_outbox_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    dispensary_id = db.Column(db.Integer, db.ForeignKey("dispensaries.id"), nullable=False, index=True)
    event_type = db.Column(db.String(64), nullable=False)
    details = db.Column(db.JSON, nullable=False)
    performed_by = db.Column(db.String(64), nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_attempt_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    claimed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "dispensary_id": self.dispensary_id,
            "event_type": self.event_type,
            "details": self.details,
            "performed_by": self.performed_by,
            "order_id": self.order_id,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": to_utc_z(self.created_at),
            "last_attempt_at": to_utc_z(self.last_attempt_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "claimed_at": to_utc_z(self.claimed_at),
        }


class DailySalesReport(db.Model):
    __tablename__ = "daily_sales_reports"
    __table_args__ = (
        db.UniqueConstraint("dispensary_id", "report_date", name="uq_daily_sales_reports_dispensary_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    dispensary_id = db.Column(db.Integer, db.ForeignKey("dispensaries.id"), nullable=False, index=True)
    report_date = db.Column(db.Date, nullable=False)

    total_orders = db.Column(db.Integer, nullable=False, default=0)
    total_revenue_cents = db.Column(db.Integer, nullable=False, default=0)
    total_tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_excise_tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_items_sold = db.Column(db.Integer, nullable=False, default=0)
    average_order_value_cents = db.Column(db.Integer, nullable=False, default=0)
    unique_customers = db.Column(db.Integer, nullable=False, default=0)
    cancelled_orders = db.Column(db.Integer, nullable=False, default=0)
    refunded_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "dispensary_id": self.dispensary_id,
            "report_date": self.report_date.isoformat(),
            "total_orders": self.total_orders,
            "total_revenue_cents": self.total_revenue_cents,
            "total_tax_cents": self.total_tax_cents,
            "total_excise_tax_cents": self.total_excise_tax_cents,
            "total_items_sold": self.total_items_sold,
            "average_order_value_cents": self.average_order_value_cents,
            "unique_customers": self.unique_customers,
            "cancelled_orders": self.cancelled_orders,
            "refunded_amount_cents": self.refunded_amount_cents,
            "updated_at": to_utc_z(self.updated_at),
        }
