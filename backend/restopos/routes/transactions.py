# Overview: Flask API routes for point-of-sale receipts.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import with_tenant_session
from ..services import receipt_service
from ..validation import ServiceError

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _with_items(transaction) -> dict:
    data = transaction.to_dict()
    data["items"] = [item.to_dict() for item in transaction.items]
    return data


@transactions_bp.post("/")
@with_tenant_session
def record_transaction_route():
    """Body: {"transaction": {...header...}, "items": [...]}"""
    try:
        data = request.get_json() or {}
        result = receipt_service.record_transaction(
            g.db_session,
            data.get("transaction") or {},
            data.get("items") or [],
        )
        return jsonify({"transaction": result.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("/")
@with_tenant_session
def list_transactions_route():
    limit = request.args.get("limit", default=100, type=int)
    rows = receipt_service.list_transactions(g.db_session, limit=limit)
    return jsonify({"transactions": [t.to_dict() for t in rows]}), 200


@transactions_bp.get("/<int:transaction_id>")
@with_tenant_session
def get_transaction_route(transaction_id: int):
    try:
        transaction = receipt_service.get_transaction(g.db_session, transaction_id)
        return jsonify({"transaction": _with_items(transaction)}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@transactions_bp.get("/code/<string:code>")
@with_tenant_session
def get_transaction_by_code_route(code: str):
    try:
        transaction = receipt_service.get_transaction_by_code(g.db_session, code)
        return jsonify({"transaction": _with_items(transaction)}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
