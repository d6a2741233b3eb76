from __future__ import annotations

from ..extensions import db
from restopos.time_utils import to_utc_z, utcnow


class Table(db.Model):
    """
    Dining table.

    status is derived state: a table is "occupied" iff at least one order on
    it has an active status. It is recomputed by table_service.reconcile_table
    on order status transitions rather than counted incrementally.
    """
    __tablename__ = "tables"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    table_number = db.Column(db.String(32), nullable=False, unique=True)
    capacity = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="available", index=True)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )

    def __repr__(self) -> str:
        return f"<Table id={self.id} number={self.table_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "table_number": self.table_number,
            "capacity": self.capacity,
            "status": self.status,
            "updated_at": to_utc_z(self.updated_at),
        }
