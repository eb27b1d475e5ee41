# Overview: Flask API routes for inventory adjustments and low-stock reads.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_context, require_staff
from ..models import Product, ProductVariant
from ..services import inventory_service
from ..services.errors import OrderServiceError
from ..services.tenant_service import require_dispensary_in_org


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/variants/<int:variant_id>/adjust")
@require_context
@require_staff
def adjust_route(variant_id: int):
    """
    Apply a signed stock delta (receiving, shrinkage, recount corrections).

    Body: delta (int, required), reason (optional)
    """
    data = request.get_json(silent=True) or {}
    delta = data.get("delta")
    if delta is None:
        return jsonify({"error": "delta required"}), 400

    try:
        dispensary_id = (
            db.session.query(Product.dispensary_id)
            .join(ProductVariant, ProductVariant.product_id == Product.id)
            .filter(ProductVariant.id == variant_id)
            .scalar()
        )
        if dispensary_id is None:
            return jsonify({"error": f"Variant {variant_id} not found", "details": {"variant_id": variant_id}}), 404
        require_dispensary_in_org(dispensary_id, g.tenant_id)

        quantity = inventory_service.adjust_inventory(
            variant_id,
            delta,
            performed_by=g.user_id,
            reason=data.get("reason"),
        )
        return jsonify({"variant_id": variant_id, "quantity": quantity}), 200

    except OrderServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/low-stock")
@require_context
@require_staff
def low_stock_route():
    dispensary_id = request.args.get("dispensary_id", type=int)
    if not dispensary_id:
        return jsonify({"error": "dispensary_id required"}), 400

    try:
        require_dispensary_in_org(dispensary_id, g.tenant_id)
        variants = inventory_service.list_below_threshold(dispensary_id)
        return jsonify({"variants": [v.to_dict() for v in variants]}), 200
    except OrderServiceError as e:
        return jsonify(e.to_dict()), e.status_code
