# Overview: Flask API routes for the product catalog and stock adjustments.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import with_tenant_session
from ..services import stock_service
from ..validation import ServiceError, ValidationError

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/")
@with_tenant_session
def list_products_route():
    active_only = request.args.get("active_only", "false").lower() in ("1", "true", "yes")
    products = stock_service.list_products(g.db_session, active_only=active_only)
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@products_bp.post("/")
@with_tenant_session
def create_product_route():
    try:
        data = request.get_json() or {}
        product = stock_service.create_product(g.db_session, data)
        return jsonify({"product": product.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@with_tenant_session
def get_product_route(product_id: int):
    try:
        product = stock_service.get_product(g.db_session, product_id)
        return jsonify({"product": product.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.put("/<int:product_id>")
@with_tenant_session
def update_product_route(product_id: int):
    try:
        data = request.get_json() or {}
        product = stock_service.update_product(g.db_session, product_id, data)
        return jsonify({"product": product.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@with_tenant_session
def delete_product_route(product_id: int):
    try:
        outcome = stock_service.delete_product(g.db_session, product_id)
        return jsonify({"result": outcome}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/stock")
@with_tenant_session
def adjust_stock_route(product_id: int):
    """
    Body: {"quantity": 5, "mode": "add" | "subtract" | "set", "notes": "..."}

    409 with available/required details when a subtract would go below zero.
    """
    try:
        data = request.get_json() or {}
        if "quantity" not in data:
            raise ValidationError("quantity required")

        adjustment = stock_service.adjust_stock(
            g.db_session,
            product_id,
            data.get("quantity"),
            data.get("mode", stock_service.MODE_SUBTRACT),
            notes=data.get("notes") or "Manual stock adjustment",
            reference_type="manual",
        )
        return jsonify({
            "product": adjustment.product.to_dict(),
            "adjustment": adjustment.to_dict(),
        }), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/inventory-transactions")
@with_tenant_session
def list_inventory_transactions_route():
    product_id = request.args.get("product_id", type=int)
    limit = request.args.get("limit", default=100, type=int)
    rows = stock_service.list_inventory_transactions(g.db_session, product_id=product_id, limit=limit)
    return jsonify({"inventory_transactions": [r.to_dict() for r in rows]}), 200
