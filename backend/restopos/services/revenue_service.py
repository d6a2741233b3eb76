"""
Revenue / tax / discount arithmetic for reporting.

Pure functions over committed orders and order items; nothing here touches
the database. Works on model instances or plain mappings with the same
field names.

Formulas (historical dashboard figures depend on these exactly):
- net revenue = total - tax when the order's prices include tax, else total
- an order-level discount is spread over its items in item order:
    every item but the last: round_half_up(discount * line_total / sum(line_totals))
    last item:               discount - sum(already allocated)
  so the allocations always add up to the discount exactly
- item revenue = unit_price * quantity - allocated discount
"""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from ..money import ZERO, money_str, round_half_up, to_decimal
from ..repositories import ACTIVE_STATUSES

COMPLETED_STATUSES = ("paid", "completed")
CANCELLED_STATUSES = ("cancelled",)
DEFAULT_PAYMENT_METHOD = "cash"


def _get(obj, name: str, default=None):
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def net_revenue(order) -> Decimal:
    total = to_decimal(_get(order, "total"))
    tax = to_decimal(_get(order, "tax"))
    if _get(order, "price_include_tax") is True:
        return total - tax
    return total


@dataclass
class AllocatedLine:
    order_id: Optional[int]
    item_id: Optional[int]
    product_id: Optional[int]
    product_name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    discount: Decimal
    revenue: Decimal


def allocate_discount(order, items: list) -> list[AllocatedLine]:
    """Allocate the order discount over items, in the order given."""
    discount = to_decimal(_get(order, "discount"))
    line_totals = [
        to_decimal(_get(item, "unit_price")) * int(_get(item, "quantity") or 0)
        for item in items
    ]
    total_before = sum(line_totals, ZERO)

    allocations: list[Decimal] = []
    if discount <= 0:
        allocations = [ZERO] * len(items)
    else:
        allocated = ZERO
        for index, line_total in enumerate(line_totals):
            if index == len(line_totals) - 1:
                share = discount - allocated
            elif total_before > 0:
                share = round_half_up(discount * line_total / total_before)
            else:
                share = ZERO
            allocations.append(share)
            allocated += share

    lines = []
    for item, line_total, share in zip(items, line_totals, allocations):
        lines.append(AllocatedLine(
            order_id=_get(item, "order_id"),
            item_id=_get(item, "id"),
            product_id=_get(item, "product_id"),
            product_name=_get(item, "product_name") or "Unknown Product",
            quantity=int(_get(item, "quantity") or 0),
            unit_price=to_decimal(_get(item, "unit_price")),
            line_total=line_total,
            discount=share,
            revenue=line_total - share,
        ))
    return lines


def allocate_orders(orders: Iterable, items: Iterable) -> list[AllocatedLine]:
    """Group items per order (id order) and allocate each order's discount."""
    by_order: "OrderedDict[object, list]" = OrderedDict()
    for order in orders:
        by_order[_get(order, "id")] = []

    for item in items:
        bucket = by_order.get(_get(item, "order_id"))
        if bucket is not None:
            bucket.append(item)

    orders_by_id = {_get(order, "id"): order for order in orders}
    lines: list[AllocatedLine] = []
    for order_id, order_items in by_order.items():
        order_items.sort(key=lambda i: (_get(i, "id") is None, _get(i, "id") or 0))
        lines.extend(allocate_discount(orders_by_id[order_id], order_items))
    return lines


@dataclass
class ProductStat:
    name: str
    quantity: int
    revenue: Decimal
    unit_price: Optional[Decimal] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "quantity": self.quantity,
            "revenue": money_str(self.revenue),
            "unit_price": money_str(self.unit_price),
        }


def top_products(lines: Iterable, limit: int = 5) -> list[ProductStat]:
    """Group by product name, rank by revenue (descending), keep limit."""
    stats: dict[str, ProductStat] = {}
    for line in lines:
        name = _get(line, "product_name") or "Unknown Product"
        stat = stats.get(name)
        if stat is None:
            stat = stats[name] = ProductStat(name=name, quantity=0, revenue=ZERO)
        stat.quantity += int(_get(line, "quantity") or 0)
        stat.revenue += to_decimal(_get(line, "revenue"))
        if _get(line, "unit_price") is not None:
            stat.unit_price = to_decimal(_get(line, "unit_price"))

    ranked = sorted(stats.values(), key=lambda s: s.revenue, reverse=True)
    return ranked[:max(limit, 0)]


@dataclass
class RevenueBuckets:
    completed_revenue: Decimal = ZERO
    serving_revenue: Decimal = ZERO
    cancelled_revenue: Decimal = ZERO
    completed_count: int = 0
    serving_count: int = 0
    cancelled_count: int = 0

    @property
    def estimated_revenue(self) -> Decimal:
        return self.completed_revenue + self.serving_revenue

    def to_dict(self) -> dict:
        return {
            "completed_revenue": money_str(self.completed_revenue),
            "serving_revenue": money_str(self.serving_revenue),
            "cancelled_revenue": money_str(self.cancelled_revenue),
            "estimated_revenue": money_str(self.estimated_revenue),
            "completed_count": self.completed_count,
            "serving_count": self.serving_count,
            "cancelled_count": self.cancelled_count,
        }


def revenue_buckets(orders: Iterable) -> RevenueBuckets:
    buckets = RevenueBuckets()
    for order in orders:
        status = _get(order, "status")
        revenue = net_revenue(order)
        if status in COMPLETED_STATUSES:
            buckets.completed_revenue += revenue
            buckets.completed_count += 1
        elif status in ACTIVE_STATUSES:
            buckets.serving_revenue += revenue
            buckets.serving_count += 1
        elif status in CANCELLED_STATUSES:
            buckets.cancelled_revenue += revenue
            buckets.cancelled_count += 1
    return buckets


def payment_method_totals(orders: Iterable) -> dict[str, dict]:
    """Count and customer payment (net revenue + tax) per method, completed orders only."""
    totals: dict[str, dict] = {}
    for order in orders:
        if _get(order, "status") not in COMPLETED_STATUSES:
            continue
        method = _get(order, "payment_method") or DEFAULT_PAYMENT_METHOD
        entry = totals.setdefault(method, {"count": 0, "total": ZERO})
        entry["count"] += 1
        entry["total"] += net_revenue(order) + to_decimal(_get(order, "tax"))
    return totals


def days_in_range(start: Optional[datetime], end: Optional[datetime]) -> int:
    """Calendar days covered by start..end, both ends inclusive; 1 when either is open."""
    if start is None or end is None:
        return 1
    return max(1, (end.date() - start.date()).days + 1)


def build_revenue_report(
    orders: list,
    items: list,
    *,
    limit: int = 5,
    days: int = 1,
    active_orders: Optional[int] = None,
) -> dict:
    """
    Dashboard payload: buckets, payment methods and top products of completed orders.

    daily_average_revenue spreads completed revenue over days. active_orders
    defaults to the active orders among the given ones.
    """
    completed = [o for o in orders if _get(o, "status") in COMPLETED_STATUSES]
    completed_ids = {_get(o, "id") for o in completed}
    lines = allocate_orders(completed, [i for i in items if _get(i, "order_id") in completed_ids])
    buckets = revenue_buckets(orders)
    if active_orders is None:
        active_orders = buckets.serving_count

    return {
        "revenue": buckets.to_dict(),
        "daily_average_revenue": money_str(buckets.completed_revenue / max(1, days)),
        "active_orders": active_orders,
        "payment_methods": {
            method: {"count": entry["count"], "total": money_str(entry["total"])}
            for method, entry in payment_method_totals(orders).items()
        },
        "top_products": [stat.to_dict() for stat in top_products(lines, limit=limit)],
        "customer_count": sum(int(_get(o, "customer_count") or 1) for o in orders),
    }
