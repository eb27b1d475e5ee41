from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog product owned by a dispensary.

    Only the fields checkout snapshots into order lines live here; the rest of
    the catalog (categories, media, potency data) is managed elsewhere.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_dispensary_active", "dispensary_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    dispensary_id = db.Column(db.Integer, db.ForeignKey("dispensaries.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)

    # Cannabis compliance identifiers copied onto every order line
    batch_number = db.Column(db.String(64), nullable=True)
    license_number = db.Column(db.String(64), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    dispensary = db.relationship("Dispensary", backref=db.backref("products", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "dispensary_id": self.dispensary_id,
            "name": self.name,
            "batch_number": self.batch_number,
            "license_number": self.license_number,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class ProductVariant(db.Model):
    """
    Purchasable size/configuration of a product (e.g. "3.5g").

    `quantity` is the on-hand stock. It is only ever changed through
    inventory_service.adjust_inventory, never assigned directly.
    """
    __tablename__ = "product_variants"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_product_variants_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)

    price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=5)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("variants", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "price_cents": self.price_cents,
            "quantity": self.quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "is_active": self.is_active,
            "updated_at": to_utc_z(self.updated_at),
        }
