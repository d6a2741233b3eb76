# Overview: Purchase receipts (goods in from suppliers) and receiving them into stock.

"""
Purchase Receipt Service

LIFECYCLE (recomputed from the items on every receive):
1. pending:            nothing received yet
2. partially_received: some item has received_quantity > 0
3. received:           every item has received_quantity >= quantity;
                       actual_delivery_date is stamped

RECEIVING:
- One call runs in ONE transaction; any invalid line aborts all of it.
- Each line must belong to the receipt, with 0 <= received_quantity <= quantity.
- received_quantity is the new running total for the line. Stock goes up by
  the increase over the previous total (tracked products only). Lowering the
  total does not take stock back.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import PurchaseReceipt, PurchaseReceiptItem
from ..repositories import ProductRepository, PurchaseReceiptRepository
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ServiceError,
    ValidationError,
    enforce_rules_amounts,
    validate_payload,
)
from .concurrency import run_with_retry
from .stock_service import MODE_ADD, _adjust_stock_inner

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_PARTIALLY_RECEIVED = "partially_received"
STATUS_RECEIVED = "received"

AUDIT_TYPE_RECEIPT = "purchase_receipt"


RECEIPT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"receipt_number", "supplier_name", "expected_delivery_date", "notes"}),
    required_on_create=frozenset({"receipt_number"}),
)

RECEIPT_ITEM_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"product_id", "product_name", "quantity", "unit_price"}),
    required_on_create=frozenset({"quantity"}),
)


@dataclass
class ReceiveResult:
    receipt: PurchaseReceipt
    status: str
    stock: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": True,
            "status": self.status,
            "receipt": self.receipt.to_dict(),
            "stock": self.stock,
        }


def create_purchase_receipt(session: Session, header: dict, items: list, *, commit: bool = True) -> PurchaseReceipt:
    patch = validate_payload(model=PurchaseReceipt, payload=header, policy=RECEIPT_POLICY, partial=False)

    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    products = ProductRepository(session)
    item_patches = []
    for index, raw in enumerate(items):
        item = validate_payload(model=PurchaseReceiptItem, payload=raw, policy=RECEIPT_ITEM_POLICY, partial=False)
        if item["quantity"] <= 0:
            raise ValidationError(f"Item {index + 1}: quantity must be a positive integer", details={"index": index})
        enforce_rules_amounts(item, ("unit_price",))

        if item.get("product_id") is not None:
            product = products.get(item["product_id"])
            if product is None:
                raise ValidationError(
                    f"Item {index + 1}: product {item['product_id']} does not exist",
                    details={"index": index, "product_id": item["product_id"]},
                )
            if not item.get("product_name"):
                item["product_name"] = product.name
        elif not item.get("product_name"):
            raise ValidationError(f"Item {index + 1}: product_id or product_name is required", details={"index": index})
        item_patches.append(item)

    repo = PurchaseReceiptRepository(session)
    if repo.number_exists(patch["receipt_number"]):
        raise ConflictError("Receipt number already exists", details={"receipt_number": patch["receipt_number"]})

    receipt = PurchaseReceipt(status=STATUS_PENDING, **patch)
    receipt.items = [PurchaseReceiptItem(received_quantity=0, **item) for item in item_patches]
    try:
        repo.add(receipt)
    except IntegrityError as exc:
        session.rollback()
        raise ConflictError(
            "Receipt number already exists",
            details={"receipt_number": patch["receipt_number"]},
        ) from exc

    if commit:
        session.commit()
    return receipt


def _parse_received(raw, index: int) -> tuple[int, int]:
    if not isinstance(raw, dict):
        raise ValidationError(f"Line {index + 1}: expected an object", details={"index": index})

    item_id = raw.get("id")
    received = raw.get("received_quantity")
    for name, value in (("id", item_id), ("received_quantity", received)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"Line {index + 1}: {name} must be an integer", details={"index": index})
    return item_id, received


def _status_for(items) -> str:
    if items and all(item.received_quantity >= item.quantity for item in items):
        return STATUS_RECEIVED
    if any(item.received_quantity > 0 for item in items):
        return STATUS_PARTIALLY_RECEIVED
    return STATUS_PENDING


def receive_items(session: Session, receipt_id: int, received: list, *, commit: bool = True) -> ReceiveResult:
    if not isinstance(received, list) or not received:
        raise ValidationError("items must be a non-empty list")
    lines = [_parse_received(raw, index) for index, raw in enumerate(received)]

    def _op():
        repo = PurchaseReceiptRepository(session)
        receipt = repo.get_for_update(receipt_id)
        if receipt is None:
            raise NotFoundError("Purchase receipt not found", details={"receipt_id": receipt_id})

        items = repo.items_by_id(receipt_id)
        stock = []

        for item_id, received_quantity in lines:
            item = items.get(item_id)
            if item is None:
                raise NotFoundError(
                    f"Purchase receipt item with ID {item_id} not found",
                    details={"receipt_id": receipt_id, "item_id": item_id},
                )
            if received_quantity < 0:
                raise ValidationError(
                    f"Received quantity cannot be negative for item {item_id}",
                    details={"item_id": item_id},
                )
            if received_quantity > item.quantity:
                raise ValidationError(
                    f"Received quantity ({received_quantity}) cannot exceed ordered quantity "
                    f"({item.quantity}) for item {item_id}",
                    details={"item_id": item_id, "quantity": item.quantity},
                )

            increase = received_quantity - (item.received_quantity or 0)
            item.received_quantity = received_quantity
            session.flush()

            if item.product_id is not None and increase > 0:
                adjustment = _adjust_stock_inner(
                    session,
                    product_id=item.product_id,
                    quantity=increase,
                    mode=MODE_ADD,
                    notes=f"Received {increase} units from PO {receipt.receipt_number}",
                    reference_type="purchase_order",
                    reference_id=receipt.id,
                    audit_type=AUDIT_TYPE_RECEIPT,
                )
                stock.append({"item_id": item.id, **adjustment.to_dict()})

        status = _status_for(list(items.values()))
        receipt.status = status
        if status == STATUS_RECEIVED and receipt.actual_delivery_date is None:
            receipt.actual_delivery_date = utcnow()
        session.flush()

        if commit:
            session.commit()
        logger.info("Purchase receipt %s is %s", receipt.receipt_number, status)
        return ReceiveResult(receipt=receipt, status=status, stock=stock)

    if not commit:
        return _op()
    try:
        return run_with_retry(session, _op)
    except ServiceError:
        session.rollback()
        raise


def get_purchase_receipt(session: Session, receipt_id: int) -> PurchaseReceipt:
    receipt = PurchaseReceiptRepository(session).get(receipt_id)
    if receipt is None:
        raise NotFoundError("Purchase receipt not found", details={"receipt_id": receipt_id})
    return receipt
