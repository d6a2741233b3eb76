# Overview: Flask API routes for purchase receipts and receiving goods into stock.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import with_tenant_session
from ..services import receive_service
from ..validation import ServiceError

receives_bp = Blueprint("receives", __name__, url_prefix="/api/purchase-receipts")


@receives_bp.post("/")
@with_tenant_session
def create_purchase_receipt_route():
    """Body: {"receipt": {receipt_number, supplier_name, ...}, "items": [{product_id, quantity, unit_price}]}"""
    try:
        data = request.get_json() or {}
        receipt = receive_service.create_purchase_receipt(
            g.db_session,
            data.get("receipt") or {},
            data.get("items") or [],
        )
        return jsonify({"receipt": receipt.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create purchase receipt")
        return jsonify({"error": "Internal server error"}), 500


@receives_bp.get("/<int:receipt_id>")
@with_tenant_session
def get_purchase_receipt_route(receipt_id: int):
    try:
        receipt = receive_service.get_purchase_receipt(g.db_session, receipt_id)
        return jsonify({"receipt": receipt.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@receives_bp.post("/<int:receipt_id>/receive")
@with_tenant_session
def receive_items_route(receipt_id: int):
    """Body: {"items": [{"id": <receipt item id>, "received_quantity": <running total>}]}"""
    try:
        data = request.get_json() or {}
        result = receive_service.receive_items(g.db_session, receipt_id, data.get("items") or [])
        return jsonify(result.to_dict()), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive purchase receipt items")
        return jsonify({"error": "Internal server error"}), 500
