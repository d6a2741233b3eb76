# Overview: Flask API routes for revenue reporting (read-only over committed orders).

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import with_tenant_session
from ..services import order_service, revenue_service
from ..time_utils import parse_iso_datetime, to_utc_z

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/revenue")
@with_tenant_session
def revenue_report_route():
    """
    Query: start, end (ISO-8601, inclusive, on ordered_at), limit (top products).

    Revenue buckets, payment methods and top products, computed with the
    net-revenue and discount-allocation formulas of revenue_service.
    active_orders counts every order still in service, whatever the range.
    """
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start and end must be ISO-8601 datetimes"}), 400

    limit = request.args.get("limit", default=current_app.config.get("TOP_PRODUCTS_LIMIT", 5), type=int)

    orders = order_service.list_orders(g.db_session, start=start, end=end)
    items = order_service.get_items_for_orders(g.db_session, [o.id for o in orders])

    report = revenue_service.build_revenue_report(
        orders,
        items,
        limit=limit,
        days=revenue_service.days_in_range(start, end),
        active_orders=order_service.count_active_orders(g.db_session),
    )
    report["range"] = {"start": to_utc_z(start), "end": to_utc_z(end)}
    report["order_count"] = len(orders)
    return jsonify(report), 200
