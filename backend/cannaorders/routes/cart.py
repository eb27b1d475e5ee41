# Overview: Flask API routes for the shopping cart; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_context
from ..services import cart_service
from ..services.errors import OrderServiceError
from ..services.tenant_service import require_dispensary_in_org


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.get("")
@require_context
def get_cart_route():
    dispensary_id = request.args.get("dispensary_id", type=int)
    if not dispensary_id:
        return jsonify({"error": "dispensary_id required"}), 400

    try:
        require_dispensary_in_org(dispensary_id, g.tenant_id)
        summary = cart_service.get_cart_summary(g.user_id, dispensary_id)
        return jsonify({"cart": summary.to_dict()}), 200
    except OrderServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@cart_bp.post("/items")
@require_context
def add_cart_item_route():
    data = request.get_json(silent=True) or {}
    dispensary_id = data.get("dispensary_id")
    variant_id = data.get("variant_id")
    quantity = data.get("quantity", 1)

    if not all([dispensary_id, variant_id]):
        return jsonify({"error": "dispensary_id and variant_id required"}), 400

    try:
        require_dispensary_in_org(dispensary_id, g.tenant_id)
        cart_service.add_item(g.user_id, dispensary_id, variant_id, quantity)
        summary = cart_service.get_cart_summary(g.user_id, dispensary_id)
        return jsonify({"cart": summary.to_dict()}), 201
    except OrderServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("")
@require_context
def clear_cart_route():
    dispensary_id = request.args.get("dispensary_id", type=int)
    if not dispensary_id:
        return jsonify({"error": "dispensary_id required"}), 400

    try:
        require_dispensary_in_org(dispensary_id, g.tenant_id)
        cart_service.clear_cart(g.user_id, dispensary_id)
        return jsonify({"cleared": True}), 200
    except OrderServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to clear cart")
        return jsonify({"error": "Internal server error"}), 500
