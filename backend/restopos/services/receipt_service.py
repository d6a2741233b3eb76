"""
Point-of-sale receipt recorder.

A Transaction is written once, together with its items, and never changed.
Stock is deducted per item in its own savepoint; a shortfall never undoes
the receipt (the receipt is the record of the sale) and is reported in
result.stock.failed instead.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Transaction, TransactionItem
from ..money import quantize_money
from ..repositories import ProductRepository, TransactionRepository
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
from .concurrency import run_with_retry
from .stock_service import MODE_SUBTRACT, StockSummary, _adjust_stock_inner

logger = logging.getLogger(__name__)


TRANSACTION_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "transaction_code",
        "subtotal",
        "tax",
        "total",
        "payment_method",
        "amount_received",
        "change_amount",
        "cashier_name",
        "notes",
    }),
    required_on_create=frozenset({"transaction_code", "total"}),
)

TRANSACTION_ITEM_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"product_id", "product_name", "quantity", "unit_price", "total"}),
    required_on_create=frozenset({"product_id", "quantity", "unit_price"}),
)


@dataclass
class ReceiptResult:
    transaction: Transaction
    items: list
    stock: StockSummary

    def to_dict(self) -> dict:
        data = self.transaction.to_dict()
        data["items"] = [item.to_dict() for item in self.items]
        data["stock"] = self.stock.to_dict()
        return data


def _validate_items(session: Session, items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    patches = []
    for index, raw in enumerate(items):
        try:
            patch = validate_payload(
                model=TransactionItem,
                payload=raw,
                policy=TRANSACTION_ITEM_POLICY,
                partial=False,
            )
            enforce_rules_line_item(patch)
        except ValidationError as exc:
            raise ValidationError(f"Item {index + 1}: {exc}", details={"index": index, **exc.details}) from exc
        if patch.get("total") is None:
            patch["total"] = quantize_money(patch["unit_price"] * patch["quantity"])
        patches.append(patch)

    products = ProductRepository(session).get_many(p["product_id"] for p in patches)
    for index, patch in enumerate(patches):
        product = products.get(patch["product_id"])
        if product is None:
            raise ValidationError(
                f"Item {index + 1}: product {patch['product_id']} does not exist",
                details={"index": index, "product_id": patch["product_id"]},
            )
        if not patch.get("product_name"):
            patch["product_name"] = product.name
    return patches


def record_transaction(session: Session, header: dict, items: list, *, commit: bool = True) -> ReceiptResult:
    patch = validate_payload(model=Transaction, payload=header, policy=TRANSACTION_POLICY, partial=False)
    enforce_rules_amounts(patch, ("subtotal", "tax", "total", "amount_received", "change_amount"))
    item_patches = _validate_items(session, items)

    repo = TransactionRepository(session)
    code = patch["transaction_code"]
    if repo.code_exists(code):
        raise ConflictError("Transaction code already exists", details={"transaction_code": code})

    def _op():
        transaction = Transaction(**patch)
        try:
            repo.add(transaction)
        except IntegrityError as exc:
            raise ConflictError("Transaction code already exists", details={"transaction_code": code}) from exc

        summary = StockSummary()
        recorded = []
        for position, item_patch in enumerate(item_patches, start=1):
            item = repo.add_item(TransactionItem(transaction_id=transaction.id, position=position, **item_patch))
            recorded.append(item)

            try:
                with session.begin_nested():
                    adjustment = _adjust_stock_inner(
                        session,
                        product_id=item.product_id,
                        quantity=item.quantity,
                        mode=MODE_SUBTRACT,
                        notes=f"Stock deduction for transaction {code}",
                        reference_type="transaction",
                        reference_id=transaction.id,
                    )
            except (InsufficientStockError, NotFoundError) as exc:
                logger.warning("Transaction %s item %d: stock not deducted: %s", code, position, exc)
                summary.fail(item.id, item.product_id, exc)
                continue
            summary.record(item.id, adjustment)

        if commit:
            session.commit()
        return ReceiptResult(transaction=transaction, items=recorded, stock=summary)

    if not commit:
        return _op()
    try:
        return run_with_retry(session, _op)
    except ServiceError:
        session.rollback()
        raise


def get_transaction(session: Session, transaction_id: int) -> Transaction:
    transaction = TransactionRepository(session).get(transaction_id)
    if transaction is None:
        raise NotFoundError("Transaction not found", details={"transaction_id": transaction_id})
    return transaction


def get_transaction_by_code(session: Session, code: str) -> Transaction:
    transaction = TransactionRepository(session).get_by_code(code)
    if transaction is None:
        raise NotFoundError("Transaction not found", details={"transaction_code": code})
    return transaction


def list_transactions(session: Session, *, limit: Optional[int] = 100) -> list[Transaction]:
    try:
        return TransactionRepository(session).list(limit=limit or 100)
    except SQLAlchemyError:
        logger.exception("Failed to list transactions")
        return []
