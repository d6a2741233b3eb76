from __future__ import annotations

from ..extensions import db
from restopos.money import money_str
from restopos.time_utils import to_utc_z, utcnow


class Order(db.Model):
    """
    Dine-in / POS order header.

    Amounts (subtotal, tax, discount, total) are stored exactly as the client
    computed them; the server never recomputes them.

    Once status reaches "paid", paid_at is set and not moved by later
    transitions to "paid".
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_table_status", "table_id", "status"),
        db.Index("ix_orders_status_ordered", "status", "ordered_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    order_number = db.Column(db.String(64), nullable=False, unique=True)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    # Null for non-table (POS) sales
    table_id = db.Column(db.Integer, db.ForeignKey("tables.id"), nullable=True, index=True)

    employee_id = db.Column(db.Integer, nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_count = db.Column(db.Integer, nullable=True)

    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    tax = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending")
    price_include_tax = db.Column(db.Boolean, nullable=False, default=False)
    sales_channel = db.Column(db.String(16), nullable=False, default="pos")  # table, pos

    notes = db.Column(db.Text, nullable=True)

    ordered_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    served_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    table = db.relationship("Table")
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status} table_id={self.table_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "status": self.status,
            "table_id": self.table_id,
            "employee_id": self.employee_id,
            "customer_name": self.customer_name,
            "customer_count": self.customer_count,
            "subtotal": money_str(self.subtotal),
            "tax": money_str(self.tax),
            "discount": money_str(self.discount),
            "total": money_str(self.total),
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "price_include_tax": self.price_include_tax,
            "sales_channel": self.sales_channel,
            "notes": self.notes,
            "ordered_at": to_utc_z(self.ordered_at),
            "served_at": to_utc_z(self.served_at),
            "paid_at": to_utc_z(self.paid_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class OrderItem(db.Model):
    """
    One order line. discount is the absolute amount allocated to this line
    from the order-level discount.
    """
    __tablename__ = "order_items"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer,
        db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(14, 2), nullable=False)
    total = db.Column(db.Numeric(14, 2), nullable=False)
    discount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")

    @property
    def product_name(self) -> str:
        return self.product.name if self.product is not None else "Unknown Product"

    @property
    def product_sku(self) -> str:
        return self.product.sku if self.product is not None else ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "total": money_str(self.total),
            "discount": money_str(self.discount),
            "notes": self.notes,
        }
