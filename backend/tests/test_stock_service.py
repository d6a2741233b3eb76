# Overview: Pytest coverage for the stock ledger and catalog writes.

"""
Stock Ledger Tests

- subtract never drives a tracked product below zero
- untracked products are skipped, not failed
- every noted mutation leaves one audit row
- before/after-tax prices stay consistent on create and update
"""

from decimal import Decimal

import pytest
from restopos.models import InventoryTransaction, Product
from restopos.services import stock_service
from restopos.services.stock_service import MODE_ADD, MODE_SET, MODE_SUBTRACT, compute_tax_fields
from restopos.validation import ConflictError, InsufficientStockError, NotFoundError, ValidationError

from conftest import make_product


class TestAdjustStock:
    def test_subtract_decrements_and_audits(self, db_session, pho):
        result = stock_service.adjust_stock(
            db_session, pho.id, 3, MODE_SUBTRACT, notes="Wastage", reference_type="manual"
        )

        assert result.previous_stock == 10
        assert result.new_stock == 7
        assert result.audit_recorded is True
        assert db_session.get(Product, pho.id).stock == 7

        audit = db_session.query(InventoryTransaction).filter_by(product_id=pho.id).one()
        assert audit.type == "subtract"
        assert audit.quantity == 3
        assert (audit.previous_stock, audit.new_stock) == (10, 7)
        assert audit.notes == "Wastage"

    def test_over_subtract_fails_and_leaves_stock(self, db_session, coffee):
        """Stock non-negativity: over-subtract raises and changes nothing."""
        with pytest.raises(InsufficientStockError) as excinfo:
            stock_service.adjust_stock(db_session, coffee.id, 5, MODE_SUBTRACT, notes="Sale")

        assert excinfo.value.available == 2
        assert excinfo.value.required == 5
        assert "Insufficient stock for Ca Phe Sua Da. Available: 2, Required: 5" == str(excinfo.value)

        db_session.expire_all()
        assert db_session.get(Product, coffee.id).stock == 2
        assert db_session.query(InventoryTransaction).count() == 0

    def test_subtract_exact_stock_reaches_zero(self, db_session, coffee):
        result = stock_service.adjust_stock(db_session, coffee.id, 2)
        assert result.new_stock == 0

        with pytest.raises(InsufficientStockError):
            stock_service.adjust_stock(db_session, coffee.id, 1)

        db_session.expire_all()
        assert db_session.get(Product, coffee.id).stock == 0

    def test_add_and_set(self, db_session, pho):
        added = stock_service.adjust_stock(db_session, pho.id, 5, MODE_ADD, notes="Delivery")
        assert (added.previous_stock, added.new_stock) == (10, 15)

        reset = stock_service.adjust_stock(db_session, pho.id, 4, MODE_SET, notes="Count")
        assert (reset.previous_stock, reset.new_stock) == (15, 4)

        types = [row.type for row in db_session.query(InventoryTransaction).order_by(InventoryTransaction.id)]
        assert types == ["add", "set"]

    def test_set_below_zero_rejected(self, db_session, pho):
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(db_session, pho.id, -1, MODE_SET)

    def test_without_notes_no_audit_row(self, db_session, pho):
        result = stock_service.adjust_stock(db_session, pho.id, 1)
        assert result.audit_recorded is False
        assert db_session.query(InventoryTransaction).count() == 0

    def test_untracked_product_is_skipped(self, db_session, napkin):
        result = stock_service.adjust_stock(db_session, napkin.id, 100, notes="Sale")

        assert result.skipped is True
        assert result.new_stock == 0
        assert db_session.query(InventoryTransaction).count() == 0

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            stock_service.adjust_stock(db_session, 9999, 1)

    def test_invalid_mode_and_quantity(self, db_session, pho):
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(db_session, pho.id, 1, "multiply")
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(db_session, pho.id, 1.5)

    def test_version_moves_with_stock(self, db_session, pho):
        before = pho.version_id
        stock_service.adjust_stock(db_session, pho.id, 1)
        assert db_session.get(Product, pho.id).version_id == before + 1


class TestTaxFields:
    @pytest.mark.parametrize("includes", [True, False])
    def test_after_is_before_times_rate(self, includes):
        fields = compute_tax_fields(Decimal("54000"), "8", includes)
        expected_after = (fields.before_tax_price * Decimal("1.08")).quantize(Decimal("0.01"))
        assert abs(fields.after_tax_price - expected_after) <= Decimal("0.01")

    def test_inclusive_price(self):
        fields = compute_tax_fields("108000", "8.00", True)
        assert fields.before_tax_price == Decimal("100000.00")
        assert fields.after_tax_price == Decimal("108000.00")

    def test_exclusive_price(self):
        fields = compute_tax_fields("100000", "8.00", False)
        assert fields.before_tax_price == Decimal("100000.00")
        assert fields.after_tax_price == Decimal("108000.00")

    def test_zero_rate(self):
        fields = compute_tax_fields("12345.67", "0", True)
        assert fields.before_tax_price == fields.after_tax_price == Decimal("12345.67")

    def test_rate_out_of_range(self):
        with pytest.raises(ValidationError):
            compute_tax_fields("100", "150", False)


class TestCatalog:
    def test_create_uses_store_defaults(self, db_session, store_settings):
        product = stock_service.create_product(db_session, {"sku": "BM-01", "name": "Banh Mi", "price": "30000"})

        assert product.tax_rate == "8.00"
        assert product.price_includes_tax is False
        assert product.before_tax_price == Decimal("30000.00")
        assert product.after_tax_price == Decimal("32400.00")
        assert product.stock == 0

    def test_create_with_initial_stock_audits(self, db_session, store_settings):
        product = stock_service.create_product(
            db_session,
            {"sku": "BM-02", "name": "Banh Mi Op La", "price": "35000", "stock": 12},
        )

        audit = db_session.query(InventoryTransaction).filter_by(product_id=product.id).one()
        assert audit.type == "set"
        assert audit.new_stock == 12
        assert audit.notes == "Initial stock"

    def test_duplicate_sku(self, db_session, store_settings, pho):
        with pytest.raises(ConflictError):
            stock_service.create_product(db_session, {"sku": "PHO-001", "name": "Again", "price": "1"})

    def test_missing_required_fields(self, db_session):
        with pytest.raises(ValidationError) as excinfo:
            stock_service.create_product(db_session, {"name": "No SKU"})
        assert "price" in str(excinfo.value)
        assert "sku" in str(excinfo.value)

    def test_negative_price_rejected(self, db_session, store_settings):
        with pytest.raises(ValidationError):
            stock_service.create_product(db_session, {"sku": "X", "name": "X", "price": "-1"})

    def test_update_rederives_tax_fields(self, db_session, store_settings):
        product = stock_service.create_product(
            db_session,
            {"sku": "TRA-01", "name": "Tra Da", "price": "10000", "tax_rate": "10", "price_includes_tax": True},
        )
        assert product.before_tax_price == Decimal("9090.91")

        updated = stock_service.update_product(db_session, product.id, {"price_includes_tax": False})
        assert updated.tax_rate == "10.00"
        assert updated.before_tax_price == Decimal("10000.00")
        assert updated.after_tax_price == Decimal("11000.00")

        updated = stock_service.update_product(db_session, product.id, {"price": "20000"})
        assert updated.after_tax_price == Decimal("22000.00")

    def test_update_cannot_touch_stock(self, db_session, pho):
        with pytest.raises(ValidationError):
            stock_service.update_product(db_session, pho.id, {"stock": 999})

    def test_update_name_keeps_prices(self, db_session, pho):
        updated = stock_service.update_product(db_session, pho.id, {"name": "Pho Ga"})
        assert updated.name == "Pho Ga"
        assert updated.after_tax_price == Decimal("50000.00")

    def test_delete_unused_product(self, db_session):
        product = make_product(db_session, "DEL-1", "Gone")
        assert stock_service.delete_product(db_session, product.id) == "deleted"
        assert db_session.get(Product, product.id) is None

    def test_delete_with_history_deactivates(self, db_session, pho):
        stock_service.adjust_stock(db_session, pho.id, 1, notes="Wastage")

        assert stock_service.delete_product(db_session, pho.id) == "deactivated"
        assert db_session.get(Product, pho.id).is_active is False
        assert [p.id for p in stock_service.list_products(db_session, active_only=True)] == []

    def test_list_inventory_transactions_filters(self, db_session, pho, coffee):
        stock_service.adjust_stock(db_session, pho.id, 1, notes="a")
        stock_service.adjust_stock(db_session, coffee.id, 1, notes="b")

        rows = stock_service.list_inventory_transactions(db_session, product_id=coffee.id)
        assert [r.notes for r in rows] == ["b"]
