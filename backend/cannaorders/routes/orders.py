# Overview: Flask API routes for checkout, order queries and status changes.

# backend/cannaorders/routes/orders.py
"""Order API routes with tenant scoping and staff-only status changes"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_context, require_staff, is_staff
from ..services import checkout_service, order_query_service, order_status_service
from ..services.checkout_service import FulfillmentDetails
from ..services.errors import OrderServiceError
from ..services.tenant_service import require_dispensary_in_org


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("/checkout")
@require_context
def checkout_route():
    """
    Convert the caller's cart at a dispensary into a pending order.

    Body: dispensary_id, fulfillment_type (pickup|delivery), customer_name,
    customer_email, customer_phone, delivery_address, notes
    """
    data = request.get_json(silent=True) or {}
    dispensary_id = data.get("dispensary_id")
    if not dispensary_id:
        return jsonify({"error": "dispensary_id required"}), 400

    try:
        order = checkout_service.checkout(
            g.user_id,
            g.tenant_id,
            dispensary_id,
            FulfillmentDetails.from_dict(data),
        )
        order = order_query_service.get_order(order.id)
        return jsonify({"order": order.to_dict(include_items=True, include_history=True)}), 201

    except OrderServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to check out")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_context
def list_my_orders_route():
    try:
        orders = order_query_service.list_orders_for_user(
            g.user_id,
            dispensary_id=request.args.get("dispensary_id", type=int),
            status=request.args.get("status"),
            org_id=g.tenant_id,
            limit=request.args.get("limit", 100, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({"orders": [o.to_dict(include_items=True) for o in orders]}), 200
    except OrderServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.get("/dispensary/<int:dispensary_id>")
@require_context
@require_staff
def list_dispensary_orders_route(dispensary_id: int):
    try:
        require_dispensary_in_org(dispensary_id, g.tenant_id)
        orders = order_query_service.list_orders_for_dispensary(
            dispensary_id,
            status=request.args.get("status"),
            payment_status=request.args.get("payment_status"),
            org_id=g.tenant_id,
            limit=request.args.get("limit", 100, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({"orders": [o.to_dict(include_items=True) for o in orders]}), 200
    except OrderServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.get("/purchased")
@require_context
def has_purchased_route():
    product_id = request.args.get("product_id", type=int)
    if not product_id:
        return jsonify({"error": "product_id required"}), 400

    purchased = order_query_service.has_user_purchased_product(g.user_id, product_id)
    return jsonify({"product_id": product_id, "purchased": purchased}), 200


@orders_bp.get("/<int:order_id>")
@require_context
def get_order_route(order_id: int):
    """Customers see their own orders; staff see any order in the tenant."""
    try:
        order = order_query_service.get_order(order_id, org_id=g.tenant_id)
        if order.user_id != g.user_id and not is_staff():
            return jsonify({"error": f"Order {order_id} not found", "details": {"order_id": order_id}}), 404
        return jsonify({"order": order.to_dict(include_items=True, include_history=True)}), 200
    except OrderServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.post("/<int:order_id>/status")
@require_context
@require_staff
def update_status_route(order_id: int):
    """
    Move an order through its lifecycle.

    Body: status (required), notes (optional)
    """
    data = request.get_json(silent=True) or {}
    new_status = data.get("status")
    if not new_status:
        return jsonify({"error": "status required"}), 400

    try:
        order_status_service.transition_order(
            order_id,
            new_status,
            g.user_id,
            data.get("notes"),
            org_id=g.tenant_id,
        )
        order = order_query_service.get_order(order_id)
        return jsonify({"order": order.to_dict(include_items=True, include_history=True)}), 200

    except OrderServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500
