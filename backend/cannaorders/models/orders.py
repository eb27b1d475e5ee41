from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


ORDER_STATUSES = (
    "pending",
    "confirmed",
    "preparing",
    "ready_for_pickup",
    "out_for_delivery",
    "completed",
    "cancelled",
    "refunded",
)
PAYMENT_STATUSES = ("pending", "authorized", "captured", "failed", "refunded")
FULFILLMENT_TYPES = ("pickup", "delivery")


class Order(db.Model):
    """
    Durable record of a completed checkout.

    Monetary columns are written once at checkout and never updated;
    only the status, payment status and state timestamps change afterwards.
    total_cents = subtotal_cents + tax_cents + excise_tax_cents - discount_cents
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("dispensary_id", "order_number", name="uq_orders_dispensary_number"),
        db.Index("ix_orders_dispensary_created", "dispensary_id", "created_at"),
        db.Index("ix_orders_user_created", "user_id", "created_at"),
        db.CheckConstraint(
            "subtotal_cents >= 0 AND tax_cents >= 0 AND excise_tax_cents >= 0 "
            "AND discount_cents >= 0 AND total_cents >= 0",
            name="ck_orders_amounts_non_negative",
        ),
        db.CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in ORDER_STATUSES) + ")",
            name="ck_orders_status_known",
        ),
        db.CheckConstraint(
            "payment_status IN (" + ", ".join(f"'{s}'" for s in PAYMENT_STATUSES) + ")",
            name="ck_orders_payment_status_known",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable, e.g. "ORD-20261019-0007"
    order_number = db.Column(db.String(64), nullable=False, index=True)

    user_id = db.Column(db.String(64), nullable=False)
    dispensary_id = db.Column(db.Integer, db.ForeignKey("dispensaries.id"), nullable=False, index=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    excise_tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(32), nullable=False, default="pending", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending")
    fulfillment_type = db.Column(db.String(16), nullable=False, default="pickup")

    # Customer contact snapshot
    customer_name = db.Column(db.String(255), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)
    delivery_address = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    status_history = db.relationship(
        "OrderStatusHistory",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id",
    )
    dispensary = db.relationship("Dispensary")

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, *, include_items: bool = False, include_history: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "user_id": self.user_id,
            "dispensary_id": self.dispensary_id,
            "org_id": self.org_id,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "excise_tax_cents": self.excise_tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "status": self.status,
            "payment_status": self.payment_status,
            "fulfillment_type": self.fulfillment_type,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "delivery_address": self.delivery_address,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "confirmed_at": to_utc_z(self.confirmed_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        if include_history:
            data["status_history"] = [entry.to_dict() for entry in self.status_history]
        return data


class OrderItem(db.Model):
    """
    Order line. Product/variant data is a snapshot taken at checkout and
    is deliberately not joined back to the live catalog.
    """
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    # References only; the snapshot columns below are authoritative
    product_id = db.Column(db.Integer, nullable=False, index=True)
    variant_id = db.Column(db.Integer, nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    variant_name = db.Column(db.String(120), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    batch_number = db.Column(db.String(64), nullable=True)
    license_number = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "product_name": self.product_name,
            "variant_name": self.variant_name,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "line_total_cents": self.line_total_cents,
            "batch_number": self.batch_number,
            "license_number": self.license_number,
        }


class OrderStatusHistory(db.Model):
    """Append-only: rows are never updated or deleted (except with their order)."""
    __tablename__ = "order_status_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    from_status = db.Column(db.String(32), nullable=True)  # None for the initial entry
    to_status = db.Column(db.String(32), nullable=False)
    changed_by = db.Column(db.String(64), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "changed_by": self.changed_by,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class OrderSequence(db.Model):
    """
    Atomic per-dispensary, per-business-day order number counter.

    Incremented with a single UPDATE so two checkouts can never read the
    same value.
    """
    __tablename__ = "order_sequences"
    __table_args__ = (
        db.UniqueConstraint("dispensary_id", "business_date", name="uq_order_sequences_dispensary_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    dispensary_id = db.Column(db.Integer, db.ForeignKey("dispensaries.id"), nullable=False, index=True)
    business_date = db.Column(db.Date, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "dispensary_id": self.dispensary_id,
            "business_date": self.business_date.isoformat(),
            "next_number": self.next_number,
        }
