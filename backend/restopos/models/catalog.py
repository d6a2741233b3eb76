from __future__ import annotations

from ..extensions import db
from restopos.money import money_str
from restopos.time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Product master data and the single stored stock count.

    PRICE FIELDS:
    - price is what the menu shows; whether it already contains tax is
      governed by price_includes_tax
    - before_tax_price / after_tax_price are derived from (price, tax_rate,
      price_includes_tax) on every catalog write, never set directly
    - tax_rate is a percent string ("8.00")

    STOCK:
    - stock is only ever changed through the stock ledger
      (services/stock_service.py), which keeps stock >= 0 for tracked products
    - products with track_inventory = False are never decremented
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    price = db.Column(db.Numeric(14, 2), nullable=False)
    before_tax_price = db.Column(db.Numeric(14, 2), nullable=True)
    after_tax_price = db.Column(db.Numeric(14, 2), nullable=True)
    tax_rate = db.Column(db.String(16), nullable=False, default="0")
    price_includes_tax = db.Column(db.Boolean, nullable=False, default=False)

    stock = db.Column(db.Integer, nullable=False, default=0)
    track_inventory = db.Column(db.Boolean, nullable=False, default=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "price": money_str(self.price),
            "before_tax_price": money_str(self.before_tax_price),
            "after_tax_price": money_str(self.after_tax_price),
            "tax_rate": self.tax_rate,
            "price_includes_tax": self.price_includes_tax,
            "stock": self.stock,
            "track_inventory": self.track_inventory,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
