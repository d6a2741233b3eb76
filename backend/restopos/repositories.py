"""
Per-entity data access, each bound to one SQLAlchemy session.

Services never reach for a global session; they build the repository they
need from the session they were handed (normally a tenant-scoped session
opened by TenantRegistry).
"""
from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session, joinedload

from .models import (
    InventoryTransaction,
    Order,
    OrderItem,
    Product,
    PurchaseReceipt,
    PurchaseReceiptItem,
    Table,
    Transaction,
    TransactionItem,
)
from .services.concurrency import lock_for_update
from .time_utils import utcnow

# Statuses that keep a table occupied
ACTIVE_STATUSES = ("pending", "confirmed", "preparing", "ready", "served")
# Only dine-in orders hold a table
TABLE_CHANNEL = "table"


class ProductRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, product_id: int) -> Optional[Product]:
        return self.session.get(Product, product_id)

    def get_for_update(self, product_id: int) -> Optional[Product]:
        query = self.session.query(Product).filter_by(id=product_id)
        return lock_for_update(query).populate_existing().first()

    def reload(self, product_id: int) -> Optional[Product]:
        """Re-read a row after a Core-level UPDATE so the identity map is current."""
        return self.session.get(Product, product_id, populate_existing=True)

    def get_by_sku(self, sku: str) -> Optional[Product]:
        return self.session.query(Product).filter_by(sku=sku).first()

    def get_many(self, product_ids: Iterable[int]) -> dict[int, Product]:
        ids = set(product_ids)
        if not ids:
            return {}
        rows = self.session.query(Product).filter(Product.id.in_(ids)).all()
        return {p.id: p for p in rows}

    def list(self, *, active_only: bool = False) -> list[Product]:
        query = self.session.query(Product)
        if active_only:
            query = query.filter(Product.is_active.is_(True))
        return query.order_by(Product.name.asc(), Product.id.asc()).all()

    def add(self, product: Product) -> Product:
        self.session.add(product)
        self.session.flush()
        return product

    def delete(self, product: Product) -> None:
        self.session.delete(product)
        self.session.flush()

    def is_referenced(self, product_id: int) -> bool:
        in_orders = self.session.query(OrderItem.id).filter_by(product_id=product_id).first()
        if in_orders is not None:
            return True
        in_receipts = self.session.query(TransactionItem.id).filter_by(product_id=product_id).first()
        return in_receipts is not None

    def has_stock_history(self, product_id: int) -> bool:
        audit = self.session.query(InventoryTransaction.id).filter_by(product_id=product_id).first()
        if audit is not None:
            return True
        purchased = self.session.query(PurchaseReceiptItem.id).filter_by(product_id=product_id).first()
        return purchased is not None

    # Guarded single-statement stock writes. Each returns the affected row
    # count; the version counter moves with every write so concurrent ORM
    # edits of the same product fail their optimistic check.

    def subtract_stock(self, product_id: int, quantity: int) -> int:
        table = Product.__table__
        stmt = (
            update(table)
            .where(table.c.id == product_id, table.c.stock >= quantity)
            .values(
                stock=table.c.stock - quantity,
                version_id=table.c.version_id + 1,
                updated_at=utcnow(),
            )
        )
        return self.session.execute(stmt).rowcount

    def increment_stock(self, product_id: int, quantity: int) -> int:
        table = Product.__table__
        stmt = (
            update(table)
            .where(table.c.id == product_id)
            .values(
                stock=table.c.stock + quantity,
                version_id=table.c.version_id + 1,
                updated_at=utcnow(),
            )
        )
        return self.session.execute(stmt).rowcount

    def set_stock(self, product_id: int, value: int) -> int:
        table = Product.__table__
        stmt = (
            update(table)
            .where(table.c.id == product_id)
            .values(
                stock=value,
                version_id=table.c.version_id + 1,
                updated_at=utcnow(),
            )
        )
        return self.session.execute(stmt).rowcount

    def add_inventory_transaction(self, row: InventoryTransaction) -> InventoryTransaction:
        self.session.add(row)
        self.session.flush()
        return row

    def list_inventory_transactions(
        self, *, product_id: Optional[int] = None, limit: int = 100
    ) -> list[InventoryTransaction]:
        query = self.session.query(InventoryTransaction)
        if product_id is not None:
            query = query.filter_by(product_id=product_id)
        return (
            query.order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
            .limit(limit)
            .all()
        )


class OrderRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, order_id: int) -> Optional[Order]:
        return self.session.get(Order, order_id)

    def get_for_update(self, order_id: int) -> Optional[Order]:
        query = self.session.query(Order).filter_by(id=order_id)
        return lock_for_update(query).populate_existing().first()

    def get_by_number(self, order_number: str) -> Optional[Order]:
        return self.session.query(Order).filter_by(order_number=order_number).first()

    def number_exists(self, order_number: str) -> bool:
        return self.session.query(Order.id).filter_by(order_number=order_number).first() is not None

    def list(
        self,
        *,
        table_id: Optional[int] = None,
        status: Optional[str] = None,
        sales_channel: Optional[str] = None,
        start: Optional[object] = None,
        end: Optional[object] = None,
    ) -> list[Order]:
        query = self.session.query(Order)
        if table_id is not None:
            query = query.filter(Order.table_id == table_id)
        if status is not None:
            query = query.filter(Order.status == status)
        if sales_channel is not None:
            query = query.filter(Order.sales_channel == sales_channel)
        if start is not None:
            query = query.filter(Order.ordered_at >= start)
        if end is not None:
            query = query.filter(Order.ordered_at <= end)
        return query.order_by(Order.ordered_at.desc(), Order.id.desc()).all()

    def add(self, order: Order) -> Order:
        self.session.add(order)
        self.session.flush()
        return order

    def add_items(self, order_id: int, items: list[OrderItem]) -> list[OrderItem]:
        for item in items:
            item.order_id = order_id
        self.session.add_all(items)
        self.session.flush()
        return items

    def items(self, order_id: int) -> list[OrderItem]:
        return (
            self.session.query(OrderItem)
            .options(joinedload(OrderItem.product))
            .filter(OrderItem.order_id == order_id)
            .order_by(OrderItem.id.asc())
            .all()
        )

    def items_for_orders(self, order_ids: Iterable[int]) -> list[OrderItem]:
        ids = list(order_ids)
        if not ids:
            return []
        return (
            self.session.query(OrderItem)
            .options(joinedload(OrderItem.product))
            .filter(OrderItem.order_id.in_(ids))
            .order_by(OrderItem.order_id.asc(), OrderItem.id.asc())
            .all()
        )

    def get_item(self, item_id: int) -> Optional[OrderItem]:
        return self.session.get(OrderItem, item_id)

    def delete_item(self, item: OrderItem) -> None:
        self.session.delete(item)
        self.session.flush()

    def count_active(self) -> int:
        return int(self.session.query(func.count(Order.id)).filter(Order.status.in_(ACTIVE_STATUSES)).scalar() or 0)

    def count_active_on_table(self, table_id: int, *, exclude_order_id: Optional[int] = None) -> int:
        query = self.session.query(func.count(Order.id)).filter(
            Order.table_id == table_id,
            Order.status.in_(ACTIVE_STATUSES),
            Order.sales_channel == TABLE_CHANNEL,
        )
        if exclude_order_id is not None:
            query = query.filter(Order.id != exclude_order_id)
        return int(query.scalar() or 0)


class TableRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, table_id: int) -> Optional[Table]:
        return self.session.get(Table, table_id)

    def get_for_update(self, table_id: int) -> Optional[Table]:
        query = self.session.query(Table).filter_by(id=table_id)
        return lock_for_update(query).populate_existing().first()

    def get_by_number(self, table_number: str) -> Optional[Table]:
        return self.session.query(Table).filter_by(table_number=table_number).first()

    def list(self, *, status: Optional[str] = None) -> list[Table]:
        query = self.session.query(Table)
        if status is not None:
            query = query.filter(Table.status == status)
        return query.order_by(Table.table_number.asc()).all()

    def add(self, table: Table) -> Table:
        self.session.add(table)
        self.session.flush()
        return table


class TransactionRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, transaction_id: int) -> Optional[Transaction]:
        return self.session.get(Transaction, transaction_id)

    def get_by_code(self, code: str) -> Optional[Transaction]:
        return self.session.query(Transaction).filter_by(transaction_code=code).first()

    def code_exists(self, code: str) -> bool:
        return self.session.query(Transaction.id).filter_by(transaction_code=code).first() is not None

    def list(self, *, limit: int = 100) -> list[Transaction]:
        return (
            self.session.query(Transaction)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .limit(limit)
            .all()
        )

    def add(self, transaction: Transaction) -> Transaction:
        self.session.add(transaction)
        self.session.flush()
        return transaction

    def add_item(self, item: TransactionItem) -> TransactionItem:
        self.session.add(item)
        self.session.flush()
        return item


class PurchaseReceiptRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, receipt_id: int) -> Optional[PurchaseReceipt]:
        return self.session.get(PurchaseReceipt, receipt_id)

    def get_for_update(self, receipt_id: int) -> Optional[PurchaseReceipt]:
        query = self.session.query(PurchaseReceipt).filter_by(id=receipt_id)
        return lock_for_update(query).populate_existing().first()

    def number_exists(self, receipt_number: str) -> bool:
        return (
            self.session.query(PurchaseReceipt.id).filter_by(receipt_number=receipt_number).first()
            is not None
        )

    def items_by_id(self, receipt_id: int) -> dict[int, PurchaseReceiptItem]:
        rows = (
            self.session.query(PurchaseReceiptItem)
            .filter_by(receipt_id=receipt_id)
            .order_by(PurchaseReceiptItem.id.asc())
            .all()
        )
        return {row.id: row for row in rows}

    def add(self, receipt: PurchaseReceipt) -> PurchaseReceipt:
        self.session.add(receipt)
        self.session.flush()
        return receipt
