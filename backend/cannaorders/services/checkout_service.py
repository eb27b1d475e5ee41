# Overview: Checkout transaction engine; turns a cart into a priced order in one unit of work.

"""
Checkout invariants (authoritative)

- Order, order lines, inventory decrements, initial status history, the
  queued compliance sale event and the cart clear commit together or not
  at all.
- Order lines snapshot product/variant names, price and compliance
  identifiers; line_total_cents = unit_price_cents * quantity.
- Money is fixed at checkout and never recomputed afterwards.
- The compliance sink is called only after commit; its failure leaves the
  order committed and the event pending in the outbox.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import Dispensary, Order, OrderItem, FULFILLMENT_TYPES
from . import cart_service, compliance_service
from .concurrency import begin_write, run_with_retry
from .errors import EmptyCartError, ValidationError
from .inventory_service import adjust_inventory
from .order_number_service import next_order_number
from .order_status_service import record_status_change
from .pricing_service import compute_totals, rates_for_jurisdiction
from .tenant_service import require_dispensary_in_org


@dataclass(frozen=True)
class FulfillmentDetails:
    fulfillment_type: str
    customer_name: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None
    delivery_address: str | None = None
    notes: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "FulfillmentDetails":
        return cls(
            fulfillment_type=(data.get("fulfillment_type") or "pickup"),
            customer_name=data.get("customer_name"),
            customer_email=data.get("customer_email"),
            customer_phone=data.get("customer_phone"),
            delivery_address=data.get("delivery_address"),
            notes=data.get("notes"),
        )

    def validate(self) -> None:
        if self.fulfillment_type not in FULFILLMENT_TYPES:
            raise ValidationError(
                f"fulfillment_type must be one of: {', '.join(FULFILLMENT_TYPES)}",
                details={"fulfillment_type": self.fulfillment_type},
            )
        if self.fulfillment_type == "delivery" and not (self.delivery_address or "").strip():
            raise ValidationError("delivery_address is required for delivery orders")


def _place_order(
    user_id: str,
    org_id: int,
    dispensary: Dispensary,
    details: FulfillmentDetails,
    summary: cart_service.CartSummary,
) -> Order:
    totals = compute_totals(summary.subtotal_cents, rates_for_jurisdiction(dispensary.jurisdiction))

    order = Order(
        order_number=next_order_number(dispensary.id),
        user_id=user_id,
        dispensary_id=dispensary.id,
        org_id=org_id,
        subtotal_cents=totals.subtotal_cents,
        tax_cents=totals.tax_cents,
        excise_tax_cents=totals.excise_tax_cents,
        discount_cents=totals.discount_cents,
        total_cents=totals.total_cents,
        status="pending",
        payment_status="pending",
        fulfillment_type=details.fulfillment_type,
        customer_name=details.customer_name,
        customer_email=details.customer_email,
        customer_phone=details.customer_phone,
        delivery_address=details.delivery_address,
        notes=details.notes,
    )
    db.session.add(order)
    db.session.flush()

    for line in summary.items:
        product = line.product
        order.items.append(
            OrderItem(
                product_id=product.id,
                variant_id=line.variant_id,
                product_name=product.name,
                variant_name=line.variant.name,
                unit_price_cents=line.unit_price_cents,
                quantity=line.quantity,
                line_total_cents=line.line_total_cents,
                batch_number=product.batch_number,
                license_number=product.license_number,
            )
        )
        adjust_inventory(
            line.variant_id,
            -line.quantity,
            performed_by=user_id,
            reason=f"Order {order.order_number}",
            order_id=order.id,
            commit=False,
        )
    db.session.flush()

    record_status_change(order, None, "pending", user_id, "Order placed")
    compliance_service.log_sale(order, user_id)
    cart_service.clear_cart(user_id, dispensary.id, commit=False)
    return order


def checkout(user_id: str, org_id: int, dispensary_id: int, details: FulfillmentDetails) -> Order:
    """
    Convert the user's cart at a dispensary into a pending order.

    Raises:
        ValidationError: bad fulfillment details or unconfigured tax rates
        NotFoundError / TenantAccessError: dispensary missing or foreign
        EmptyCartError: nothing to buy; no writes happen
        ConcurrencyConflictError: lock contention outlived the retry budget
    """
    details.validate()

    def _op() -> Order:
        begin_write()
        dispensary = require_dispensary_in_org(dispensary_id, org_id)

        summary = cart_service.get_cart_summary(user_id, dispensary_id)
        if summary.is_empty:
            raise EmptyCartError("Cart is empty", details={"dispensary_id": dispensary_id})

        order = _place_order(user_id, org_id, dispensary, details, summary)
        db.session.commit()
        return order

    compliance_service.discard_queued()
    order = run_with_retry(_op)
    compliance_service.deliver_queued()
    return order
