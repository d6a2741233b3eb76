# Overview: Pytest coverage for the revenue / discount arithmetic (no database).

from datetime import datetime
from decimal import Decimal

from restopos.services import revenue_service


def _item(item_id, name, unit_price, quantity=1, order_id=1):
    return {
        "id": item_id,
        "order_id": order_id,
        "product_id": item_id,
        "product_name": name,
        "unit_price": unit_price,
        "quantity": quantity,
    }


class TestNetRevenue:
    def test_price_includes_tax(self):
        order = {"total": "110000", "tax": "10000", "price_include_tax": True}
        assert revenue_service.net_revenue(order) == Decimal("100000")

    def test_price_excludes_tax(self):
        order = {"total": "110000", "tax": "10000", "price_include_tax": False}
        assert revenue_service.net_revenue(order) == Decimal("110000")


class TestAllocateDiscount:
    def test_remainder_goes_to_last_item(self):
        order = {"id": 1, "discount": "100"}
        items = [_item(1, "A", "33"), _item(2, "B", "33"), _item(3, "C", "34")]

        lines = revenue_service.allocate_discount(order, items)

        assert [line.discount for line in lines] == [Decimal("33"), Decimal("33"), Decimal("34")]
        assert sum(line.discount for line in lines) == Decimal("100")

    def test_sum_is_exact_for_uneven_split(self):
        order = {"id": 1, "discount": "10000"}
        items = [_item(1, "A", "30000"), _item(2, "B", "30000"), _item(3, "C", "30000")]

        lines = revenue_service.allocate_discount(order, items)

        assert [line.discount for line in lines] == [Decimal("3333"), Decimal("3333"), Decimal("3334")]
        assert sum(line.discount for line in lines) == Decimal("10000")
        assert lines[0].revenue == Decimal("26667")

    def test_half_rounds_up(self):
        order = {"id": 1, "discount": "3"}
        items = [_item(1, "A", "50"), _item(2, "B", "50")]

        lines = revenue_service.allocate_discount(order, items)
        assert [line.discount for line in lines] == [Decimal("2"), Decimal("1")]

    def test_no_discount(self):
        lines = revenue_service.allocate_discount({"discount": None}, [_item(1, "A", "10", 2)])
        assert lines[0].discount == Decimal("0")
        assert lines[0].revenue == Decimal("20")

    def test_zero_line_totals(self):
        order = {"id": 1, "discount": "5"}
        lines = revenue_service.allocate_discount(order, [_item(1, "A", "0"), _item(2, "B", "0")])
        assert [line.discount for line in lines] == [Decimal("0"), Decimal("5")]


class TestTopProducts:
    def test_ranking_by_revenue(self):
        lines = [
            {"product_name": "A", "quantity": 1, "revenue": "500"},
            {"product_name": "B", "quantity": 1, "revenue": "900"},
            {"product_name": "C", "quantity": 1, "revenue": "100"},
        ]

        ranked = revenue_service.top_products(lines, limit=2)
        assert [stat.name for stat in ranked] == ["B", "A"]

    def test_groups_by_name(self):
        lines = [
            {"product_name": "A", "quantity": 2, "revenue": "200"},
            {"product_name": "A", "quantity": 1, "revenue": "100"},
            {"product_name": None, "quantity": 1, "revenue": "50"},
        ]

        ranked = revenue_service.top_products(lines)
        assert ranked[0].name == "A"
        assert ranked[0].quantity == 3
        assert ranked[0].revenue == Decimal("300")
        assert ranked[1].name == "Unknown Product"


class TestReport:
    def _orders(self):
        return [
            {"id": 1, "status": "paid", "total": "110000", "tax": "10000", "discount": "0",
             "price_include_tax": True, "payment_method": "card", "customer_count": 2},
            {"id": 2, "status": "completed", "total": "50000", "tax": "0", "discount": "10000",
             "price_include_tax": False, "payment_method": None, "customer_count": None},
            {"id": 3, "status": "preparing", "total": "30000", "tax": "0", "discount": "0",
             "price_include_tax": False, "payment_method": None, "customer_count": 3},
            {"id": 4, "status": "cancelled", "total": "20000", "tax": "0", "discount": "0",
             "price_include_tax": False, "payment_method": "cash", "customer_count": 1},
        ]

    def test_buckets(self):
        buckets = revenue_service.revenue_buckets(self._orders())

        assert buckets.completed_revenue == Decimal("150000")
        assert buckets.serving_revenue == Decimal("30000")
        assert buckets.cancelled_revenue == Decimal("20000")
        assert buckets.estimated_revenue == Decimal("180000")
        assert (buckets.completed_count, buckets.serving_count, buckets.cancelled_count) == (2, 1, 1)

    def test_payment_methods_count_completed_only(self):
        totals = revenue_service.payment_method_totals(self._orders())

        assert set(totals) == {"card", "cash"}
        assert totals["card"] == {"count": 1, "total": Decimal("110000")}
        assert totals["cash"] == {"count": 1, "total": Decimal("50000")}

    def test_build_report(self):
        items = [
            _item(10, "Pho Bo", "60000", order_id=2),
            _item(11, "Tra Da", "0", order_id=2),
            _item(12, "Banh Mi", "100000", order_id=1),
            _item(13, "Com Tam", "30000", order_id=3),
        ]

        report = revenue_service.build_revenue_report(self._orders(), items, limit=5)

        assert report["revenue"]["completed_revenue"] == "150000.00"
        assert report["payment_methods"]["card"] == {"count": 1, "total": "110000.00"}
        assert [p["name"] for p in report["top_products"]] == ["Banh Mi", "Pho Bo", "Tra Da"]
        assert report["top_products"][1]["revenue"] == "50000.00"
        assert report["top_products"][2]["revenue"] == "0.00"
        assert report["customer_count"] == 7
        assert report["daily_average_revenue"] == "150000.00"
        assert report["active_orders"] == 1

    def test_daily_average_over_range(self):
        days = revenue_service.days_in_range(datetime(2026, 10, 1), datetime(2026, 10, 7, 23, 59))
        report = revenue_service.build_revenue_report(self._orders(), [], days=days, active_orders=4)

        assert days == 7
        assert report["daily_average_revenue"] == "21428.57"
        assert report["active_orders"] == 4

    def test_days_in_range_open_or_reversed(self):
        assert revenue_service.days_in_range(None, datetime(2026, 10, 7)) == 1
        assert revenue_service.days_in_range(datetime(2026, 10, 7), datetime(2026, 10, 1)) == 1
        assert revenue_service.days_in_range(datetime(2026, 10, 7, 8), datetime(2026, 10, 7, 22)) == 1
