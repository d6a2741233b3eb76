# Overview: Pytest coverage for order creation, status transitions and table occupancy.

"""
Order Service Tests

Test Coverage:
- create_order: one transaction, stock failure policies, validation before writes
- update_status: idempotent payment, temporary ids, strict transitions
- table occupancy follows the active orders on the table
- add_items / remove_item leave stock alone
"""

from decimal import Decimal

import pytest
from restopos.models import InventoryTransaction, Order, OrderItem, Product, Table
from restopos.services import order_service
from restopos.services.order_service import TemporaryOrder
from restopos.validation import ConflictError, InsufficientStockError, NotFoundError, ValidationError

from conftest import line, order_header


class TestCreateOrder:
    def test_creates_order_items_and_deducts_stock(self, db_session, store_settings, pho):
        result = order_service.create_order(db_session, order_header("ORD-1"), [line(pho, 2)])

        assert result.order.id is not None
        assert result.order.status == "pending"
        assert result.order.sales_channel == "pos"
        assert len(result.items) == 1
        assert result.items[0].total == Decimal("100000.00")
        assert result.stock.failed == []
        assert [a["new_stock"] for a in result.stock.applied] == [8]

        db_session.expire_all()
        assert db_session.get(Product, pho.id).stock == 8
        audit = db_session.query(InventoryTransaction).one()
        assert audit.reference_type == "order"
        assert audit.reference_id == result.order.id
        assert audit.notes == "Stock deduction for order ORD-1"

    def test_header_amounts_stored_as_sent(self, db_session, store_settings, pho):
        header = order_header("ORD-2", subtotal="1.00", tax="2.00", discount="3.00", total="4.00")
        order = order_service.create_order(db_session, header, [line(pho)]).order

        db_session.expire_all()
        stored = db_session.get(Order, order.id)
        assert (stored.subtotal, stored.tax, stored.discount, stored.total) == (
            Decimal("1.00"), Decimal("2.00"), Decimal("3.00"), Decimal("4.00"),
        )

    def test_price_include_tax_defaults_from_settings(self, db_session, store_settings):
        store_settings.price_includes_tax = True
        db_session.commit()

        order = order_service.create_order(db_session, order_header("ORD-3"), []).order
        assert order.price_include_tax is True

    def test_created_as_paid_stamps_paid_at(self, db_session, store_settings):
        order_id = order_service.create_order(db_session, order_header("ORD-PAID", status="paid"), []).order.id

        db_session.expire_all()
        stored = db_session.get(Order, order_id)
        assert stored.status == "paid"
        assert stored.paid_at is not None
        assert stored.payment_status == "paid"

    def test_created_as_served_stamps_served_at(self, db_session, store_settings):
        order = order_service.create_order(db_session, order_header("ORD-SRV", status="served"), []).order

        assert order.served_at is not None
        assert order.paid_at is None

    def test_explicit_paid_at_is_kept(self, db_session, store_settings):
        header = order_header("ORD-PAT", status="paid", paid_at="2026-10-01T09:30:00Z")
        order = order_service.create_order(db_session, header, []).order

        assert order.paid_at.replace(tzinfo=None).isoformat() == "2026-10-01T09:30:00"

    def test_continue_policy_keeps_order_and_reports_shortfall(self, db_session, store_settings, pho, coffee):
        result = order_service.create_order(
            db_session,
            order_header("ORD-4"),
            [line(pho, 1), line(coffee, 5)],
            stock_policy="continue",
        )

        assert len(result.items) == 2
        assert [a["product_id"] for a in result.stock.applied] == [pho.id]
        assert len(result.stock.failed) == 1
        failure = result.stock.failed[0]
        assert failure["product_id"] == coffee.id
        assert failure["details"]["available"] == 2
        assert failure["details"]["required"] == 5

        db_session.expire_all()
        assert db_session.get(Product, pho.id).stock == 9
        assert db_session.get(Product, coffee.id).stock == 2
        assert db_session.query(OrderItem).count() == 2

    def test_abort_policy_rolls_back_everything(self, db_session, store_settings, pho, coffee, table_one):
        with pytest.raises(InsufficientStockError):
            order_service.create_order(
                db_session,
                order_header("ORD-5", table_id=table_one.id),
                [line(pho, 1), line(coffee, 5)],
                stock_policy="abort",
            )

        db_session.expire_all()
        assert db_session.query(Order).count() == 0
        assert db_session.query(OrderItem).count() == 0
        assert db_session.query(InventoryTransaction).count() == 0
        assert db_session.get(Product, pho.id).stock == 10
        assert db_session.get(Table, table_one.id).status == "available"

    def test_policy_from_config(self, app, db_session, store_settings, coffee):
        app.config["STOCK_FAILURE_POLICY"] = "abort"
        try:
            with pytest.raises(InsufficientStockError):
                order_service.create_order(db_session, order_header("ORD-6"), [line(coffee, 3)])
        finally:
            app.config["STOCK_FAILURE_POLICY"] = "continue"

    def test_untracked_item_is_skipped(self, db_session, store_settings, napkin):
        result = order_service.create_order(db_session, order_header("ORD-7"), [line(napkin, 50)])
        assert len(result.stock.skipped) == 1
        assert result.stock.failed == []

    def test_table_order_occupies_table(self, db_session, store_settings, pho, table_one):
        result = order_service.create_order(db_session, order_header("ORD-8", table_id=table_one.id), [line(pho)])

        assert result.order.sales_channel == "table"
        assert result.table.status == "occupied"
        db_session.expire_all()
        assert db_session.get(Table, table_one.id).status == "occupied"

    def test_unknown_product_rejected_before_write(self, db_session, store_settings, pho):
        bad = {"product_id": 9999, "quantity": 1, "unit_price": "1"}
        with pytest.raises(ValidationError) as excinfo:
            order_service.create_order(db_session, order_header("ORD-9"), [line(pho), bad])

        assert excinfo.value.details["product_id"] == 9999
        db_session.expire_all()
        assert db_session.query(Order).count() == 0
        assert db_session.get(Product, pho.id).stock == 10

    @pytest.mark.parametrize("item", [
        {"quantity": 0, "unit_price": "1"},
        {"quantity": -2, "unit_price": "1"},
        {"quantity": 1, "unit_price": "-1"},
        {"quantity": 1.5, "unit_price": "1"},
    ])
    def test_invalid_items(self, db_session, store_settings, pho, item):
        with pytest.raises(ValidationError):
            order_service.create_order(db_session, order_header("ORD-10"), [{"product_id": pho.id, **item}])

    def test_unknown_table(self, db_session, store_settings):
        with pytest.raises(NotFoundError):
            order_service.create_order(db_session, order_header("ORD-11", table_id=9999), [])

    def test_duplicate_number(self, db_session, store_settings):
        order_service.create_order(db_session, order_header("ORD-12"), [])
        with pytest.raises(ConflictError):
            order_service.create_order(db_session, order_header("ORD-12"), [])

    def test_invalid_status_and_channel(self, db_session, store_settings):
        with pytest.raises(ValidationError):
            order_service.create_order(db_session, order_header("ORD-13", status="eaten"), [])
        with pytest.raises(ValidationError):
            order_service.create_order(db_session, order_header("ORD-14", sales_channel="drive-thru"), [])


class TestUpdateStatus:
    def test_two_orders_on_one_table(self, db_session, store_settings, pho, table_one):
        """Table stays occupied until the last active order on it is paid."""
        first = order_service.create_order(db_session, order_header("T-1", table_id=table_one.id), [line(pho)]).order
        second = order_service.create_order(db_session, order_header("T-2", table_id=table_one.id), [line(pho)]).order

        order_service.update_status(db_session, first.id, "paid")
        db_session.expire_all()
        assert db_session.get(Table, table_one.id).status == "occupied"

        order_service.update_status(db_session, second.id, "paid")
        db_session.expire_all()
        assert db_session.get(Table, table_one.id).status == "available"

    def test_cancel_releases_table(self, db_session, store_settings, table_one):
        order = order_service.create_order(db_session, order_header("T-3", table_id=table_one.id), []).order

        order_service.update_status(db_session, order.id, "cancelled")
        db_session.expire_all()
        assert db_session.get(Table, table_one.id).status == "available"

    def test_reopening_reoccupies_table(self, db_session, store_settings, table_one):
        order = order_service.create_order(db_session, order_header("T-4", table_id=table_one.id), []).order
        order_service.update_status(db_session, order.id, "cancelled")

        order_service.update_status(db_session, order.id, "preparing")
        db_session.expire_all()
        assert db_session.get(Table, table_one.id).status == "occupied"

    def test_paid_is_idempotent(self, db_session, store_settings, pho):
        order = order_service.create_order(db_session, order_header("P-1"), [line(pho)]).order

        first = order_service.update_status(db_session, order.id, "paid")
        paid_at = first.paid_at
        assert paid_at is not None
        assert first.payment_status == "paid"

        second = order_service.update_status(db_session, str(order.id), "paid")
        assert second.paid_at == paid_at
        assert second.status == "paid"

        db_session.expire_all()
        assert db_session.get(Product, pho.id).stock == 9
        assert db_session.query(InventoryTransaction).count() == 1

    def test_served_stamps_served_at(self, db_session, store_settings):
        order = order_service.create_order(db_session, order_header("S-1"), []).order
        served = order_service.update_status(db_session, order.id, "served")
        assert served.served_at is not None

    def test_temporary_id_is_not_persisted(self, db_session, store_settings):
        result = order_service.update_status(db_session, "temp-123", "paid")

        assert isinstance(result, TemporaryOrder)
        assert result.status == "paid"
        assert result.payment_status == "paid"
        assert result.paid_at is not None
        assert result.to_dict()["is_temporary"] is True
        assert db_session.query(Order).count() == 0

    def test_unknown_order(self, db_session):
        with pytest.raises(NotFoundError):
            order_service.update_status(db_session, 9999, "paid")
        with pytest.raises(NotFoundError):
            order_service.update_status(db_session, "not-a-number", "paid")

    def test_unknown_status(self, db_session, store_settings):
        order = order_service.create_order(db_session, order_header("S-2"), []).order
        with pytest.raises(ValidationError):
            order_service.update_status(db_session, order.id, "teleported")

    def test_permissive_by_default(self, db_session, store_settings):
        order = order_service.create_order(db_session, order_header("S-3"), []).order
        order_service.update_status(db_session, order.id, "cancelled")
        reopened = order_service.update_status(db_session, order.id, "pending")
        assert reopened.status == "pending"

    def test_strict_transitions(self, db_session, store_settings):
        order = order_service.create_order(db_session, order_header("S-4"), []).order
        order_service.update_status(db_session, order.id, "cancelled", enforce_transitions=True)

        with pytest.raises(ValidationError) as excinfo:
            order_service.update_status(db_session, order.id, "pending", enforce_transitions=True)
        assert excinfo.value.details == {"from": "cancelled", "to": "pending"}

        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "cancelled"


class TestUpdateOrder:
    def test_edit_header_fields(self, db_session, store_settings):
        order = order_service.create_order(db_session, order_header("U-1"), []).order

        updated = order_service.update_order(
            db_session, order.id, {"customer_name": "Lan", "total": "99000", "payment_method": "card"}
        )
        assert updated.customer_name == "Lan"
        assert updated.total == Decimal("99000")
        assert updated.payment_method == "card"

    def test_move_table_reconciles_both(self, db_session, store_settings, table_one, table_two):
        order = order_service.create_order(db_session, order_header("U-2", table_id=table_one.id), []).order

        order_service.update_order(db_session, order.id, {"table_id": table_two.id})
        db_session.expire_all()
        assert db_session.get(Table, table_one.id).status == "available"
        assert db_session.get(Table, table_two.id).status == "occupied"

    def test_paid_at_kept_once_paid(self, db_session, store_settings):
        order = order_service.create_order(db_session, order_header("U-3"), []).order
        paid_at = order_service.update_status(db_session, order.id, "paid").paid_at

        updated = order_service.update_order(db_session, order.id, {"paid_at": "2020-01-01T00:00:00Z"})
        assert updated.paid_at == paid_at

    def test_order_number_not_editable(self, db_session, store_settings):
        order = order_service.create_order(db_session, order_header("U-4"), []).order
        with pytest.raises(ValidationError):
            order_service.update_order(db_session, order.id, {"order_number": "U-5"})


class TestItems:
    def test_add_items_leaves_stock_and_totals(self, db_session, store_settings, pho):
        order = order_service.create_order(db_session, order_header("I-1"), [line(pho)]).order

        added = order_service.add_items(db_session, order.id, [line(pho, 3)])
        assert len(added) == 1

        db_session.expire_all()
        assert db_session.get(Product, pho.id).stock == 9
        assert db_session.get(Order, order.id).total == Decimal("108000.00")
        assert len(order_service.get_order_items(db_session, order.id)) == 2

    def test_add_items_requires_items(self, db_session, store_settings):
        order = order_service.create_order(db_session, order_header("I-2"), []).order
        with pytest.raises(ValidationError):
            order_service.add_items(db_session, order.id, [])

    def test_remove_item_keeps_stock(self, db_session, store_settings, pho):
        result = order_service.create_order(db_session, order_header("I-3"), [line(pho, 2)])

        assert order_service.remove_item(db_session, result.items[0].id) is True
        assert order_service.remove_item(db_session, result.items[0].id) is False

        db_session.expire_all()
        assert db_session.get(Product, pho.id).stock == 8
        assert order_service.get_order_items(db_session, result.order.id) == []


class TestReads:
    def test_list_filters(self, db_session, store_settings, table_one):
        order_service.create_order(db_session, order_header("R-1", table_id=table_one.id), [])
        order_service.create_order(db_session, order_header("R-2"), [])

        assert [o.order_number for o in order_service.list_orders(db_session, table_id=table_one.id)] == ["R-1"]
        assert [o.order_number for o in order_service.list_orders(db_session, sales_channel="pos")] == ["R-2"]
        assert len(order_service.list_orders(db_session, status="pending")) == 2

    def test_get_by_number(self, db_session, store_settings):
        order_service.create_order(db_session, order_header("R-3"), [])
        assert order_service.get_order_by_number(db_session, "R-3").order_number == "R-3"
        with pytest.raises(NotFoundError):
            order_service.get_order_by_number(db_session, "missing")

    def test_item_product_name_fallback(self, db_session, store_settings, pho):
        result = order_service.create_order(db_session, order_header("R-4"), [line(pho)])
        item = order_service.get_order_items(db_session, result.order.id)[0]
        assert item.product_name == "Pho Bo"
        assert item.to_dict()["product_sku"] == "PHO-001"
