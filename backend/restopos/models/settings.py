from __future__ import annotations

from ..extensions import db
from restopos.time_utils import to_utc_z, utcnow


DEFAULT_STORE_NAME = "RestoPOS"
DEFAULT_CURRENCY = "VND"
DEFAULT_TAX_RATE = "8.00"


class StoreSettings(db.Model):
    """
    Store-wide defaults (one row per tenant database).

    Supplies the default tax rate / price_includes_tax for new products and
    the default price_include_tax for new orders.
    """
    __tablename__ = "store_settings"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)

    store_name = db.Column(db.String(255), nullable=False, default=DEFAULT_STORE_NAME)
    address = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    currency = db.Column(db.String(8), nullable=False, default=DEFAULT_CURRENCY)
    tax_rate = db.Column(db.String(16), nullable=False, default=DEFAULT_TAX_RATE)
    price_includes_tax = db.Column(db.Boolean, nullable=False, default=False)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "store_name": self.store_name,
            "address": self.address,
            "phone": self.phone,
            "currency": self.currency,
            "tax_rate": self.tax_rate,
            "price_includes_tax": self.price_includes_tax,
            "updated_at": to_utc_z(self.updated_at),
        }
