"""
Order aggregate: order header + items, status transitions and their side
effects on stock and table occupancy.

INVARIANTS:
- Header amounts (subtotal, tax, discount, total) are stored exactly as the
  client sent them. Nothing here recomputes them.
- create_order writes header, items, stock deductions and table occupancy in
  ONE transaction. Each stock deduction runs in its own SAVEPOINT:
    STOCK_FAILURE_POLICY = "continue"  shortfall is rolled back for that item
                                       only, logged, and reported in
                                       result.stock.failed
    STOCK_FAILURE_POLICY = "abort"     shortfall rolls back the whole order
- Once an order is paid, paid_at is set and never moved. Re-sending "paid"
  changes nothing but re-runs table reconciliation.
- A table-bound order's table is reconciled after every status change:
  occupied iff some order on it has an active status.
- add_items never touches stock or header totals; remove_item never returns
  stock. Both are deliberate.

Status legality is permissive by default (front of house corrects mistakes
freely). ENFORCE_STATUS_TRANSITIONS switches to ALLOWED_TRANSITIONS.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from flask import current_app, has_app_context
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Order, OrderItem, Table
from ..money import quantize_money
from ..repositories import ACTIVE_STATUSES, TABLE_CHANNEL, OrderRepository, ProductRepository, TableRepository
from ..time_utils import to_utc_z, utcnow
from ..validation import (
    ConflictError,
    InsufficientStockError,
    ModelValidationPolicy,
    NotFoundError,
    ServiceError,
    ValidationError,
    enforce_rules_amounts,
    enforce_rules_line_item,
    validate_payload,
)
from . import table_service
from .concurrency import run_with_retry
from .settings_service import get_store_settings
from .stock_service import MODE_SUBTRACT, StockSummary, _adjust_stock_inner

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_PREPARING = "preparing"
STATUS_READY = "ready"
STATUS_SERVED = "served"
STATUS_PAID = "paid"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

ORDER_STATUSES = (
    STATUS_PENDING,
    STATUS_CONFIRMED,
    STATUS_PREPARING,
    STATUS_READY,
    STATUS_SERVED,
    STATUS_PAID,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
)

ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_CONFIRMED, STATUS_PREPARING, STATUS_CANCELLED, STATUS_PAID},
    STATUS_CONFIRMED: {STATUS_PREPARING, STATUS_READY, STATUS_SERVED, STATUS_CANCELLED, STATUS_PAID},
    STATUS_PREPARING: {STATUS_READY, STATUS_SERVED, STATUS_CANCELLED, STATUS_PAID},
    STATUS_READY: {STATUS_SERVED, STATUS_CANCELLED, STATUS_PAID},
    STATUS_SERVED: {STATUS_PAID, STATUS_COMPLETED, STATUS_CANCELLED},
    STATUS_PAID: {STATUS_COMPLETED},
    STATUS_COMPLETED: set(),
    STATUS_CANCELLED: set(),
}

CHANNEL_TABLE = TABLE_CHANNEL
CHANNEL_POS = "pos"
SALES_CHANNELS = (CHANNEL_TABLE, CHANNEL_POS)

POLICY_CONTINUE = "continue"
POLICY_ABORT = "abort"
STOCK_POLICIES = (POLICY_CONTINUE, POLICY_ABORT)

TEMP_ORDER_PREFIX = "temp-"

_AMOUNT_FIELDS = ("subtotal", "tax", "discount", "total")

ORDER_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "order_number",
        "status",
        "table_id",
        "employee_id",
        "customer_name",
        "customer_count",
        "subtotal",
        "tax",
        "discount",
        "total",
        "payment_method",
        "payment_status",
        "price_include_tax",
        "sales_channel",
        "notes",
        "paid_at",
        "served_at",
    }),
    required_on_create=frozenset({"order_number"}),
)

ORDER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=ORDER_CREATE_POLICY.writable_fields - {"order_number"},
)

ORDER_ITEM_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"product_id", "quantity", "unit_price", "total", "discount", "notes"}),
    required_on_create=frozenset({"product_id", "quantity", "unit_price"}),
)


@dataclass
class OrderResult:
    order: Order
    items: list
    stock: StockSummary
    table: Optional[Table] = None

    def to_dict(self) -> dict:
        data = self.order.to_dict()
        data["items"] = [item.to_dict() for item in self.items]
        data["stock"] = self.stock.to_dict()
        data["table"] = self.table.to_dict() if self.table is not None else None
        return data


@dataclass
class TemporaryOrder:
    """Stand-in returned for client-side ids that were never persisted."""
    id: str
    order_number: str
    status: str
    payment_method: Optional[str]
    payment_status: str
    paid_at: Optional[datetime]
    sales_channel: str = CHANNEL_POS
    notes: str = "Temporary order - not persisted"
    is_temporary: bool = True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "status": self.status,
            "table_id": None,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "paid_at": to_utc_z(self.paid_at),
            "sales_channel": self.sales_channel,
            "notes": self.notes,
            "is_temporary": self.is_temporary,
        }


def _setting(key: str, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def _resolve_stock_policy(policy: Optional[str]) -> str:
    policy = policy or _setting("STOCK_FAILURE_POLICY", POLICY_CONTINUE)
    if policy not in STOCK_POLICIES:
        raise ValueError(f"STOCK_FAILURE_POLICY must be one of {STOCK_POLICIES}, got {policy!r}")
    return policy


def _require_status(status) -> str:
    if status not in ORDER_STATUSES:
        raise ValidationError(
            f"status must be one of {', '.join(ORDER_STATUSES)}",
            details={"status": status},
        )
    return status


def _parse_order_id(order_id) -> int:
    if isinstance(order_id, int) and not isinstance(order_id, bool):
        return order_id
    if isinstance(order_id, str) and order_id.strip().isdigit():
        return int(order_id.strip())
    raise NotFoundError("Order not found", details={"order_id": order_id})


def _validate_items(session: Session, items) -> list[dict]:
    """Validate item payloads and check every product exists. No writes."""
    if items is None:
        items = []
    if not isinstance(items, list):
        raise ValidationError("items must be a list")

    patches = []
    for index, raw in enumerate(items):
        try:
            patch = validate_payload(model=OrderItem, payload=raw, policy=ORDER_ITEM_POLICY, partial=False)
            enforce_rules_line_item(patch)
        except ValidationError as exc:
            raise ValidationError(f"Item {index + 1}: {exc}", details={"index": index, **exc.details}) from exc
        if patch.get("total") is None:
            patch["total"] = quantize_money(patch["unit_price"] * patch["quantity"])
        patch.setdefault("discount", quantize_money(0))
        patches.append(patch)

    products = ProductRepository(session).get_many(p["product_id"] for p in patches)
    for index, patch in enumerate(patches):
        if patch["product_id"] not in products:
            raise ValidationError(
                f"Item {index + 1}: product {patch['product_id']} does not exist",
                details={"index": index, "product_id": patch["product_id"]},
            )
    return patches


def _deduct_stock(
    session: Session,
    order: Order,
    items: list[OrderItem],
    policy: str,
) -> StockSummary:
    summary = StockSummary()
    notes = f"Stock deduction for order {order.order_number}"

    for item in items:
        kwargs = dict(
            product_id=item.product_id,
            quantity=item.quantity,
            mode=MODE_SUBTRACT,
            notes=notes,
            reference_type="order",
            reference_id=order.id,
        )
        if policy == POLICY_ABORT:
            summary.record(item.id, _adjust_stock_inner(session, **kwargs))
            continue

        try:
            with session.begin_nested():
                adjustment = _adjust_stock_inner(session, **kwargs)
        except (InsufficientStockError, NotFoundError) as exc:
            logger.warning("Order %s item %s: stock not deducted: %s", order.order_number, item.id, exc)
            summary.fail(item.id, item.product_id, exc)
            continue
        summary.record(item.id, adjustment)

    return summary


def _apply_status(order: Order, new_status: str, *, enforce: bool) -> None:
    old_status = order.status
    if enforce and new_status != old_status and new_status not in ALLOWED_TRANSITIONS.get(old_status, set()):
        raise ValidationError(
            f"Illegal status transition {old_status} -> {new_status}",
            details={"from": old_status, "to": new_status},
        )

    order.status = new_status
    now = utcnow()
    if new_status == STATUS_PAID:
        if order.paid_at is None:
            order.paid_at = now
        order.payment_status = "paid"
    elif new_status == STATUS_SERVED and order.served_at is None:
        order.served_at = now


def _reconcile_for(session: Session, order: Order, table_ids) -> Optional[Table]:
    """Reconcile each table in table_ids; returns the order's current table."""
    current = None
    exclude = order.id if order.status not in ACTIVE_STATUSES else None
    for table_id in sorted({t for t in table_ids if t is not None}):
        table = table_service.reconcile_table(session, table_id, exclude_order_id=exclude)
        if table_id == order.table_id:
            current = table
    return current


def _run(session: Session, op, commit: bool):
    if not commit:
        return op()
    try:
        return run_with_retry(session, op)
    except ServiceError:
        session.rollback()
        raise


# -- writes ---------------------------------------------------------------


def create_order(
    session: Session,
    header: dict,
    items: list,
    *,
    stock_policy: Optional[str] = None,
    commit: bool = True,
) -> OrderResult:
    policy = _resolve_stock_policy(stock_policy)

    patch = validate_payload(model=Order, payload=header, policy=ORDER_CREATE_POLICY, partial=False)
    enforce_rules_amounts(patch, _AMOUNT_FIELDS)
    _require_status(patch.setdefault("status", STATUS_PENDING))

    if patch.get("sales_channel") is None:
        patch["sales_channel"] = CHANNEL_TABLE if patch.get("table_id") is not None else CHANNEL_POS
    elif patch["sales_channel"] not in SALES_CHANNELS:
        raise ValidationError(
            f"sales_channel must be one of {', '.join(SALES_CHANNELS)}",
            details={"sales_channel": patch["sales_channel"]},
        )

    item_patches = _validate_items(session, items)

    if patch.get("table_id") is not None and TableRepository(session).get(patch["table_id"]) is None:
        raise NotFoundError("Table not found", details={"table_id": patch["table_id"]})

    orders = OrderRepository(session)
    if orders.number_exists(patch["order_number"]):
        raise ConflictError("Order number already exists", details={"order_number": patch["order_number"]})

    if patch.get("price_include_tax") is None:
        patch["price_include_tax"] = bool(get_store_settings(session).price_includes_tax)

    def _op():
        order = Order(**patch)
        _apply_status(order, order.status, enforce=False)
        try:
            orders.add(order)
        except IntegrityError as exc:
            raise ConflictError(
                "Order number already exists",
                details={"order_number": patch["order_number"]},
            ) from exc

        created = orders.add_items(order.id, [OrderItem(**p) for p in item_patches])
        stock = _deduct_stock(session, order, created, policy)

        table = None
        if order.table_id is not None and order.sales_channel == CHANNEL_TABLE:
            if order.status in ACTIVE_STATUSES:
                table = table_service.set_status(session, order.table_id, table_service.TABLE_OCCUPIED, commit=False)
            else:
                table = _reconcile_for(session, order, [order.table_id])

        if commit:
            session.commit()

        if stock.failed:
            logger.warning(
                "Order %s created with %d stock failure(s)",
                order.order_number,
                len(stock.failed),
            )
        return OrderResult(order=order, items=created, stock=stock, table=table)

    return _run(session, _op, commit)


def update_status(
    session: Session,
    order_id: Union[int, str],
    new_status: str,
    *,
    enforce_transitions: Optional[bool] = None,
    commit: bool = True,
) -> Union[Order, TemporaryOrder]:
    """
    Move an order to new_status.

    Ids with the "temp-" prefix belong to orders the client has not
    persisted yet: nothing is read or written and a TemporaryOrder
    reflecting the requested status is returned.
    """
    _require_status(new_status)

    if isinstance(order_id, str) and order_id.startswith(TEMP_ORDER_PREFIX):
        paid = new_status == STATUS_PAID
        logger.info("Status %s for temporary order %s (not persisted)", new_status, order_id)
        return TemporaryOrder(
            id=order_id,
            order_number=f"TEMP-{order_id[len(TEMP_ORDER_PREFIX):]}",
            status=new_status,
            payment_method="cash" if paid else None,
            payment_status="paid" if paid else "pending",
            paid_at=utcnow() if paid else None,
        )

    key = _parse_order_id(order_id)
    if enforce_transitions is None:
        enforce_transitions = bool(_setting("ENFORCE_STATUS_TRANSITIONS", False))

    def _op():
        order = OrderRepository(session).get_for_update(key)
        if order is None:
            raise NotFoundError("Order not found", details={"order_id": key})

        _apply_status(order, new_status, enforce=enforce_transitions)
        session.flush()
        _reconcile_for(session, order, [order.table_id])

        if commit:
            session.commit()
        return order

    return _run(session, _op, commit)


def update_order(
    session: Session,
    order_id: int,
    changes: dict,
    *,
    enforce_transitions: Optional[bool] = None,
    commit: bool = True,
) -> Order:
    """
    Edit header fields exactly as given. A status in changes goes through
    the same rules and side effects as update_status; moving the order to
    another table reconciles both tables.
    """
    patch = validate_payload(model=Order, payload=changes, policy=ORDER_UPDATE_POLICY, partial=True)
    enforce_rules_amounts(patch, _AMOUNT_FIELDS)

    new_status = patch.pop("status", None)
    if new_status is not None:
        _require_status(new_status)
    if patch.get("sales_channel") is not None and patch["sales_channel"] not in SALES_CHANNELS:
        raise ValidationError(
            f"sales_channel must be one of {', '.join(SALES_CHANNELS)}",
            details={"sales_channel": patch["sales_channel"]},
        )
    if patch.get("table_id") is not None and TableRepository(session).get(patch["table_id"]) is None:
        raise NotFoundError("Table not found", details={"table_id": patch["table_id"]})

    if enforce_transitions is None:
        enforce_transitions = bool(_setting("ENFORCE_STATUS_TRANSITIONS", False))

    def _op():
        order = OrderRepository(session).get_for_update(order_id)
        if order is None:
            raise NotFoundError("Order not found", details={"order_id": order_id})

        fields = dict(patch)
        if order.paid_at is not None and order.status == STATUS_PAID and "paid_at" in fields:
            logger.info("Order %s is paid; keeping paid_at", order.order_number)
            fields.pop("paid_at")

        previous_table = order.table_id
        for key, value in fields.items():
            setattr(order, key, value)
        if new_status is not None:
            _apply_status(order, new_status, enforce=enforce_transitions)
        session.flush()

        if new_status is not None or previous_table != order.table_id:
            _reconcile_for(session, order, [previous_table, order.table_id])

        if commit:
            session.commit()
        return order

    return _run(session, _op, commit)


def add_items(session: Session, order_id: int, items: list, *, commit: bool = True) -> list[OrderItem]:
    """Append items. Header totals and stock are left to the caller."""
    patches = _validate_items(session, items)
    if not patches:
        raise ValidationError("items must not be empty")

    orders = OrderRepository(session)
    if orders.get(order_id) is None:
        raise NotFoundError("Order not found", details={"order_id": order_id})

    created = orders.add_items(order_id, [OrderItem(**p) for p in patches])
    if commit:
        session.commit()
    return created


def remove_item(session: Session, item_id: int, *, commit: bool = True) -> bool:
    """Delete one item. Stock already deducted for it is not returned."""
    orders = OrderRepository(session)
    item = orders.get_item(item_id)
    if item is None:
        return False

    orders.delete_item(item)
    if commit:
        session.commit()
    return True


# -- reads ----------------------------------------------------------------


def get_order(session: Session, order_id: int) -> Order:
    order = OrderRepository(session).get(order_id)
    if order is None:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def get_order_by_number(session: Session, order_number: str) -> Order:
    order = OrderRepository(session).get_by_number(order_number)
    if order is None:
        raise NotFoundError("Order not found", details={"order_number": order_number})
    return order


def list_orders(
    session: Session,
    *,
    table_id: Optional[int] = None,
    status: Optional[str] = None,
    sales_channel: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[Order]:
    try:
        return OrderRepository(session).list(
            table_id=table_id,
            status=status,
            sales_channel=sales_channel,
            start=start,
            end=end,
        )
    except SQLAlchemyError:
        logger.exception("Failed to list orders")
        return []


def get_order_items(session: Session, order_id: int) -> list[OrderItem]:
    try:
        return OrderRepository(session).items(order_id)
    except SQLAlchemyError:
        logger.exception("Failed to load items for order %s", order_id)
        return []


def get_items_for_orders(session: Session, order_ids) -> list[OrderItem]:
    try:
        return OrderRepository(session).items_for_orders(order_ids)
    except SQLAlchemyError:
        logger.exception("Failed to load order items")
        return []


def count_active_orders(session: Session) -> int:
    """Orders still in service, across all dates."""
    try:
        return OrderRepository(session).count_active()
    except SQLAlchemyError:
        logger.exception("Failed to count active orders")
        return 0
