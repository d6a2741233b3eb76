# Overview: Flask API routes for dining tables.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import with_tenant_session
from ..services import table_service
from ..validation import ServiceError

tables_bp = Blueprint("tables", __name__, url_prefix="/api/tables")


@tables_bp.get("/")
@with_tenant_session
def list_tables_route():
    tables = table_service.list_tables(g.db_session, status=request.args.get("status"))
    return jsonify({"tables": [t.to_dict() for t in tables]}), 200


@tables_bp.post("/")
@with_tenant_session
def create_table_route():
    try:
        data = request.get_json() or {}
        table = table_service.create_table(g.db_session, data)
        return jsonify({"table": table.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create table")
        return jsonify({"error": "Internal server error"}), 500


@tables_bp.get("/<int:table_id>")
@with_tenant_session
def get_table_route(table_id: int):
    try:
        table = table_service.get_table(g.db_session, table_id)
        return jsonify({"table": table.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@tables_bp.put("/<int:table_id>/status")
@with_tenant_session
def set_table_status_route(table_id: int):
    """Administrative override; normal occupancy follows the orders."""
    try:
        data = request.get_json() or {}
        table = table_service.set_status(g.db_session, table_id, data.get("status"))
        return jsonify({"table": table.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update table status")
        return jsonify({"error": "Internal server error"}), 500
