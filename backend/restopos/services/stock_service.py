# Overview: Product catalog and the stock ledger (the only writer of Product.stock).

"""
Stock Ledger Invariants

- Product.stock is mutated only here, by single guarded statements:
    subtract: UPDATE ... SET stock = stock - q WHERE id = :id AND stock >= q
    add:      UPDATE ... SET stock = stock + q WHERE id = :id
    set:      row locked, then UPDATE ... SET stock = :value
  A subtract that matches no row is InsufficientStockError (or NotFoundError
  when the product is gone). Stock of a tracked product never goes below 0.
- Products with track_inventory = False are a no-op: the call returns the
  unchanged product with skipped=True so callers never branch on the flag.
- Every mutation that carries notes appends one InventoryTransaction. The
  audit row is written inside a SAVEPOINT; if it fails the failure is logged
  and reported on the result, and the stock write stands.

Tax fields:
- price_includes_tax: before = price / (1 + rate/100), after = price
- otherwise:          before = price, after = price * (1 + rate/100)
- rate 0 never divides. Both fields are rounded half-up to 0.01.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import InventoryTransaction, Product
from ..money import quantize_money, to_decimal
from ..repositories import ProductRepository
from ..validation import (
    ConflictError,
    InsufficientStockError,
    ModelValidationPolicy,
    NotFoundError,
    ServiceError,
    ValidationError,
    enforce_rules_amounts,
    parse_tax_rate,
    validate_payload,
)
from .concurrency import run_with_retry
from .settings_service import get_store_settings

logger = logging.getLogger(__name__)

MODE_ADD = "add"
MODE_SUBTRACT = "subtract"
MODE_SET = "set"
STOCK_MODES = (MODE_ADD, MODE_SUBTRACT, MODE_SET)


PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "sku",
        "name",
        "description",
        "price",
        "tax_rate",
        "price_includes_tax",
        "stock",
        "track_inventory",
        "is_active",
    }),
    required_on_create=frozenset({"sku", "name", "price"}),
)

# Stock is not editable through the catalog; use adjust_stock
PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_CREATE_POLICY.writable_fields - {"stock"},
)


@dataclass(frozen=True)
class TaxFields:
    before_tax_price: Decimal
    after_tax_price: Decimal


def compute_tax_fields(price, tax_rate, price_includes_tax: bool) -> TaxFields:
    price = to_decimal(price)
    rate = parse_tax_rate(tax_rate)
    factor = Decimal("1") + rate / Decimal("100")

    if price_includes_tax:
        before = price / factor if rate > 0 else price
        after = price
    else:
        before = price
        after = price * factor

    return TaxFields(
        before_tax_price=quantize_money(before),
        after_tax_price=quantize_money(after),
    )


@dataclass
class StockSummary:
    """Per-item outcome of the stock deductions of one multi-item write."""
    applied: list = field(default_factory=list)
    failed: list = field(default_factory=list)
    skipped: list = field(default_factory=list)

    def record(self, item_id: Optional[int], adjustment: "StockAdjustment") -> None:
        entry = {"item_id": item_id, **adjustment.to_dict()}
        if adjustment.skipped:
            self.skipped.append(entry)
        else:
            self.applied.append(entry)

    def fail(self, item_id: Optional[int], product_id: int, error: ServiceError) -> None:
        self.failed.append({
            "item_id": item_id,
            "product_id": product_id,
            "error": str(error),
            "details": error.details,
        })

    def to_dict(self) -> dict:
        return {"applied": self.applied, "failed": self.failed, "skipped": self.skipped}


@dataclass
class StockAdjustment:
    """Outcome of one stock ledger call."""
    product: Product
    mode: str
    quantity: int
    previous_stock: int
    new_stock: int
    skipped: bool = False
    audit_recorded: bool = False
    audit_error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "product_id": self.product.id,
            "product_name": self.product.name,
            "mode": self.mode,
            "quantity": self.quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "skipped": self.skipped,
            "audit_recorded": self.audit_recorded,
            "audit_error": self.audit_error,
        }


def _require_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer", details={"quantity": quantity})
    return quantity


def _record_audit(
    session: Session,
    repo: ProductRepository,
    *,
    product: Product,
    mode: str,
    quantity: int,
    previous_stock: int,
    new_stock: int,
    notes: str,
    reference_type: Optional[str],
    reference_id: Optional[int],
) -> Optional[str]:
    """Append the audit row in a savepoint. Returns the error text on failure."""
    try:
        with session.begin_nested():
            repo.add_inventory_transaction(InventoryTransaction(
                product_id=product.id,
                type=mode,
                quantity=quantity,
                previous_stock=previous_stock,
                new_stock=new_stock,
                notes=notes[:255],
                reference_type=reference_type,
                reference_id=reference_id,
            ))
    except SQLAlchemyError as exc:
        logger.warning(
            "Stock audit row failed for product %s (%s %s): %s",
            product.id, mode, quantity, exc,
        )
        return str(exc)
    return None


def _adjust_stock_inner(
    session: Session,
    *,
    product_id: int,
    quantity: int,
    mode: str,
    notes: Optional[str] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
    audit_type: Optional[str] = None,
) -> StockAdjustment:
    repo = ProductRepository(session)

    product = repo.get(product_id)
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})

    if not product.track_inventory:
        return StockAdjustment(
            product=product,
            mode=mode,
            quantity=quantity,
            previous_stock=product.stock,
            new_stock=product.stock,
            skipped=True,
        )

    if mode == MODE_SUBTRACT:
        amount = abs(quantity)
        if repo.subtract_stock(product_id, amount) == 0:
            product = repo.reload(product_id)
            if product is None:
                raise NotFoundError("Product not found", details={"product_id": product_id})
            raise InsufficientStockError(
                product_id=product.id,
                product_name=product.name,
                available=product.stock,
                required=amount,
            )
        product = repo.reload(product_id)
        new_stock = product.stock
        previous_stock = new_stock + amount

    elif mode == MODE_ADD:
        amount = abs(quantity)
        if repo.increment_stock(product_id, amount) == 0:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        product = repo.reload(product_id)
        new_stock = product.stock
        previous_stock = new_stock - amount

    else:
        if quantity < 0:
            raise ValidationError("stock cannot be set below zero", details={"quantity": quantity})
        amount = quantity
        locked = repo.get_for_update(product_id)
        if locked is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        previous_stock = locked.stock
        repo.set_stock(product_id, amount)
        product = repo.reload(product_id)
        new_stock = product.stock

    result = StockAdjustment(
        product=product,
        mode=mode,
        quantity=amount,
        previous_stock=previous_stock,
        new_stock=new_stock,
    )

    if notes:
        error = _record_audit(
            session,
            repo,
            product=product,
            mode=audit_type or mode,
            quantity=amount,
            previous_stock=previous_stock,
            new_stock=new_stock,
            notes=notes,
            reference_type=reference_type,
            reference_id=reference_id,
        )
        result.audit_recorded = error is None
        result.audit_error = error

    return result


def adjust_stock(
    session: Session,
    product_id: int,
    quantity: int,
    mode: str = MODE_SUBTRACT,
    *,
    notes: Optional[str] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
    audit_type: Optional[str] = None,
    commit: bool = True,
) -> StockAdjustment:
    """
    The one entry point for stock changes.

    With commit=False the change joins the caller's transaction and errors
    propagate without touching it; with commit=True the change is committed
    (retrying lock conflicts) and a failure rolls the session back.
    """
    if mode not in STOCK_MODES:
        raise ValidationError(f"mode must be one of {', '.join(STOCK_MODES)}", details={"mode": mode})
    quantity = _require_quantity(quantity)

    def _op():
        return _adjust_stock_inner(
            session,
            product_id=product_id,
            quantity=quantity,
            mode=mode,
            notes=notes,
            reference_type=reference_type,
            reference_id=reference_id,
            audit_type=audit_type,
        )

    if not commit:
        return _op()

    def _op_commit():
        result = _op()
        session.commit()
        return result

    try:
        return run_with_retry(session, _op_commit)
    except ServiceError:
        session.rollback()
        raise


# -- catalog --------------------------------------------------------------


def _resolve_tax_inputs(session: Session, patch: dict, product: Optional[Product]) -> tuple[str, bool]:
    """
    Tax rate and inclusion flag for a catalog write: the payload's value,
    else the product's current value, else the store default.
    """
    settings = None

    if patch.get("tax_rate") is not None:
        rate = patch["tax_rate"]
    elif product is not None and product.tax_rate is not None:
        rate = product.tax_rate
    else:
        settings = get_store_settings(session)
        rate = settings.tax_rate

    if patch.get("price_includes_tax") is not None:
        includes = patch["price_includes_tax"]
    elif product is not None and product.price_includes_tax is not None:
        includes = product.price_includes_tax
    else:
        settings = settings or get_store_settings(session)
        includes = settings.price_includes_tax

    return f"{parse_tax_rate(rate):.2f}", bool(includes)


def create_product(session: Session, payload: dict, *, commit: bool = True) -> Product:
    patch = validate_payload(
        model=Product,
        payload=payload,
        policy=PRODUCT_CREATE_POLICY,
        partial=False,
    )
    enforce_rules_amounts(patch, ("price",))
    initial_stock = patch.pop("stock", None) or 0
    if initial_stock < 0:
        raise ValidationError("stock must be >= 0")

    repo = ProductRepository(session)
    if repo.get_by_sku(patch["sku"]) is not None:
        raise ConflictError("SKU already exists", details={"sku": patch["sku"]})

    tax_rate, includes = _resolve_tax_inputs(session, patch, None)
    fields = compute_tax_fields(patch["price"], tax_rate, includes)

    patch.update(
        tax_rate=tax_rate,
        price_includes_tax=includes,
        before_tax_price=fields.before_tax_price,
        after_tax_price=fields.after_tax_price,
        stock=initial_stock,
    )
    product = Product(**patch)

    try:
        repo.add(product)
    except IntegrityError as exc:
        session.rollback()
        raise ConflictError("SKU already exists", details={"sku": patch["sku"]}) from exc

    if initial_stock and product.track_inventory:
        _record_audit(
            session,
            repo,
            product=product,
            mode=MODE_SET,
            quantity=initial_stock,
            previous_stock=0,
            new_stock=initial_stock,
            notes="Initial stock",
            reference_type=None,
            reference_id=None,
        )

    if commit:
        session.commit()
    return product


def update_product(session: Session, product_id: int, payload: dict, *, commit: bool = True) -> Product:
    """
    Catalog edit. Whenever price, tax_rate or price_includes_tax is part of
    the edit, before/after-tax prices are derived again.
    """
    patch = validate_payload(
        model=Product,
        payload=payload,
        policy=PRODUCT_UPDATE_POLICY,
        partial=True,
    )
    enforce_rules_amounts(patch, ("price",))

    def _op():
        repo = ProductRepository(session)
        product = repo.get(product_id)
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})

        if "sku" in patch and patch["sku"] != product.sku and repo.get_by_sku(patch["sku"]) is not None:
            raise ConflictError("SKU already exists", details={"sku": patch["sku"]})

        changes = dict(patch)
        if {"price", "tax_rate", "price_includes_tax"} & changes.keys():
            tax_rate, includes = _resolve_tax_inputs(session, changes, product)
            fields = compute_tax_fields(changes.get("price", product.price), tax_rate, includes)
            changes.update(
                tax_rate=tax_rate,
                price_includes_tax=includes,
                before_tax_price=fields.before_tax_price,
                after_tax_price=fields.after_tax_price,
            )

        for key, value in changes.items():
            setattr(product, key, value)
        session.flush()

        if commit:
            session.commit()
        return product

    if not commit:
        return _op()
    try:
        return run_with_retry(session, _op)
    except ServiceError:
        session.rollback()
        raise


def delete_product(session: Session, product_id: int, *, commit: bool = True) -> str:
    """
    Remove a product from the catalog.

    Blocked with ConflictError while any order or receipt item references
    it. A product that only has stock history (audit rows, purchase lines)
    is deactivated instead of deleted, so that history keeps its product.

    Returns "deleted" or "deactivated".
    """
    repo = ProductRepository(session)
    product = repo.get(product_id)
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})

    if repo.is_referenced(product_id):
        raise ConflictError(
            "Cannot delete product that is referenced by orders or transactions",
            details={"product_id": product_id},
        )

    if repo.has_stock_history(product_id):
        product.is_active = False
        outcome = "deactivated"
    else:
        repo.delete(product)
        outcome = "deleted"

    session.flush()
    if commit:
        session.commit()
    logger.info("Product %s %s", product_id, outcome)
    return outcome


def get_product(session: Session, product_id: int) -> Product:
    product = ProductRepository(session).get(product_id)
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def list_products(session: Session, *, active_only: bool = False) -> list[Product]:
    try:
        return ProductRepository(session).list(active_only=active_only)
    except SQLAlchemyError:
        logger.exception("Failed to list products")
        return []


def list_inventory_transactions(
    session: Session, *, product_id: Optional[int] = None, limit: int = 100
) -> list[InventoryTransaction]:
    try:
        return ProductRepository(session).list_inventory_transactions(product_id=product_id, limit=limit)
    except SQLAlchemyError:
        logger.exception("Failed to list inventory transactions")
        return []
