# Overview: Flask API routes for store-wide settings.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import with_tenant_session
from ..services import settings_service
from ..validation import ServiceError

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("/store")
@with_tenant_session
def get_store_settings_route():
    try:
        settings = settings_service.get_store_settings(g.db_session)
        g.db_session.commit()
        return jsonify({"settings": settings.to_dict()}), 200
    except Exception:
        current_app.logger.exception("Failed to load store settings")
        return jsonify({"error": "Internal server error"}), 500


@settings_bp.put("/store")
@with_tenant_session
def update_store_settings_route():
    try:
        data = request.get_json() or {}
        settings = settings_service.update_store_settings(g.db_session, data)
        return jsonify({"settings": settings.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update store settings")
        return jsonify({"error": "Internal server error"}), 500
