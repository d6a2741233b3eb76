# Overview: Flask API routes for orders; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import with_tenant_session
from ..services import order_service
from ..validation import NotFoundError, ServiceError

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")
order_items_bp = Blueprint("order_items", __name__, url_prefix="/api/order-items")


@orders_bp.post("/")
@with_tenant_session
def create_order_route():
    """
    Body: {"order": {...header...}, "items": [{product_id, quantity, unit_price, ...}]}

    201 with the order, its items and the stock summary
    ({applied, failed, skipped}). Under the "continue" stock policy an order
    whose items could not all be deducted is still created; the shortfalls
    are listed in stock.failed.
    """
    try:
        data = request.get_json() or {}
        result = order_service.create_order(g.db_session, data.get("order") or {}, data.get("items") or [])
        return jsonify({"order": result.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/")
@with_tenant_session
def list_orders_route():
    orders = order_service.list_orders(
        g.db_session,
        table_id=request.args.get("table_id", type=int),
        status=request.args.get("status"),
        sales_channel=request.args.get("sales_channel"),
    )
    return jsonify({"orders": [o.to_dict() for o in orders]}), 200


@orders_bp.get("/<int:order_id>")
@with_tenant_session
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(g.db_session, order_id)
        items = order_service.get_order_items(g.db_session, order_id)
        return jsonify({"order": order.to_dict(), "items": [i.to_dict() for i in items]}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.get("/number/<string:order_number>")
@with_tenant_session
def get_order_by_number_route(order_number: str):
    try:
        order = order_service.get_order_by_number(g.db_session, order_number)
        return jsonify({"order": order.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.patch("/<int:order_id>")
@orders_bp.put("/<int:order_id>")
@with_tenant_session
def update_order_route(order_id: int):
    try:
        data = request.get_json() or {}
        order = order_service.update_order(g.db_session, order_id, data)
        return jsonify({"order": order.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<string:order_id>/status")
@with_tenant_session
def update_order_status_route(order_id: str):
    """
    Body: {"status": "paid"}

    order_id may be a client-side temporary id ("temp-..."): the response
    is a synthesized order and nothing is stored.
    """
    try:
        data = request.get_json() or {}
        order = order_service.update_status(g.db_session, order_id, data.get("status"))
        return jsonify({"order": order.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/items")
@with_tenant_session
def get_order_items_route(order_id: int):
    items = order_service.get_order_items(g.db_session, order_id)
    return jsonify({"items": [i.to_dict() for i in items]}), 200


@orders_bp.post("/<int:order_id>/items")
@with_tenant_session
def add_order_items_route(order_id: int):
    """Appends items. Header totals and stock are not touched."""
    try:
        data = request.get_json() or {}
        items = order_service.add_items(g.db_session, order_id, data.get("items") or [])
        return jsonify({"items": [i.to_dict() for i in items]}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add order items")
        return jsonify({"error": "Internal server error"}), 500


@order_items_bp.delete("/<int:item_id>")
@with_tenant_session
def remove_order_item_route(item_id: int):
    try:
        if not order_service.remove_item(g.db_session, item_id):
            raise NotFoundError("Order item not found", details={"item_id": item_id})
        return jsonify({"success": True}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to remove order item")
        return jsonify({"error": "Internal server error"}), 500
