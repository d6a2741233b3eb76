from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Table
from ..repositories import OrderRepository, TableRepository
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_payload,
)

logger = logging.getLogger(__name__)

TABLE_AVAILABLE = "available"
TABLE_OCCUPIED = "occupied"
TABLE_STATUSES = (TABLE_AVAILABLE, TABLE_OCCUPIED)


TABLE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"table_number", "capacity", "status"}),
    required_on_create=frozenset({"table_number"}),
)


def _require_status(status) -> str:
    if status not in TABLE_STATUSES:
        raise ValidationError(
            f"status must be one of {', '.join(TABLE_STATUSES)}",
            details={"status": status},
        )
    return status


def create_table(session: Session, payload: dict, *, commit: bool = True) -> Table:
    patch = validate_payload(model=Table, payload=payload, policy=TABLE_POLICY, partial=False)
    if "status" in patch:
        _require_status(patch["status"])
    if patch.get("capacity") is not None and patch["capacity"] <= 0:
        raise ValidationError("capacity must be a positive integer")

    repo = TableRepository(session)
    if repo.get_by_number(patch["table_number"]) is not None:
        raise ConflictError("Table number already exists", details={"table_number": patch["table_number"]})

    table = Table(**patch)
    try:
        repo.add(table)
    except IntegrityError as exc:
        session.rollback()
        raise ConflictError("Table number already exists", details={"table_number": patch["table_number"]}) from exc

    if commit:
        session.commit()
    return table


def get_table(session: Session, table_id: int) -> Table:
    table = TableRepository(session).get(table_id)
    if table is None:
        raise NotFoundError("Table not found", details={"table_id": table_id})
    return table


def list_tables(session: Session, *, status: Optional[str] = None) -> list[Table]:
    try:
        return TableRepository(session).list(status=status)
    except SQLAlchemyError:
        logger.exception("Failed to list tables")
        return []


def set_status(session: Session, table_id: int, status: str, *, commit: bool = True) -> Table:
    """Direct override of a table's occupancy (order creation, admin correction)."""
    _require_status(status)

    table = TableRepository(session).get_for_update(table_id)
    if table is None:
        raise NotFoundError("Table not found", details={"table_id": table_id})

    if table.status != status:
        table.status = status
        session.flush()

    if commit:
        session.commit()
    return table


def reconcile_table(
    session: Session,
    table_id: int,
    *,
    exclude_order_id: Optional[int] = None,
    commit: bool = False,
) -> Optional[Table]:
    """
    Recompute a table's status from the orders referencing it.

    Counts orders on the table with an active status (ignoring
    exclude_order_id); none left -> available, any -> occupied. The table
    row stays locked until the caller's transaction ends, so two
    reconciliations of the same table are serialized where the database
    supports row locks.

    A table that no longer exists is logged and skipped (returns None).
    """
    table = TableRepository(session).get_for_update(table_id)
    if table is None:
        logger.warning("Reconciliation skipped: table %s not found", table_id)
        return None

    remaining = OrderRepository(session).count_active_on_table(table_id, exclude_order_id=exclude_order_id)
    target = TABLE_OCCUPIED if remaining > 0 else TABLE_AVAILABLE

    if table.status != target:
        logger.info("Table %s: %s -> %s (%d active orders)", table.table_number, table.status, target, remaining)
        table.status = target
        session.flush()

    if commit:
        session.commit()
    return table
