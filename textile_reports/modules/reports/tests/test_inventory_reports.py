"""
Tests for the inventory reports: stock valuation, low stock and
inventory movement.
"""

from datetime import date
from decimal import Decimal

from textile_reports.modules.products.models import MovementType
from textile_reports.modules.reports.schemas import DiagnosticCode, ReportKind

from .conftest import JAN_END, JAN_START


# ===== INVENTORY MOVEMENT =====

class TestInventoryMovement:

    def test_incoming_outgoing_scenario(self, report_engine, factory, tenant):
        product = factory.product(tenant.id, "FAB-001", name="Cotton Poplin")
        factory.movement(tenant.id, product, "50", date(2025, 1, 5), unit_cost="10")
        factory.movement(tenant.id, product, "-20", date(2025, 1, 9), unit_cost="10")

        report = report_engine.generate_report(
            tenant.id, ReportKind.INVENTORY_MOVEMENT, start_date=JAN_START, end_date=JAN_END
        )

        [row] = report.rows
        assert row["product_name"] == "Cotton Poplin"
        assert row["incoming"] == Decimal("50.000")
        assert row["outgoing"] == Decimal("20.000")
        assert row["net_change"] == Decimal("30.000")
        assert row["movement_count"] == 2
        assert report.summary["total_movements"] == 2
        assert report.summary["net_change"] == Decimal("30.000")
        assert report.summary["value_change"] == Decimal("300.00")
        assert report.is_consistent

    def test_breakdowns(self, report_engine, factory, tenant):
        product = factory.product(tenant.id, "YRN-001")
        factory.movement(tenant.id, product, "40", date(2025, 1, 2), MovementType.PRODUCTION)
        factory.movement(tenant.id, product, "10", date(2025, 1, 2), MovementType.PURCHASE)
        factory.movement(tenant.id, product, "-5", date(2025, 1, 3), MovementType.DAMAGE)

        report = report_engine.generate_report(
            tenant.id, "inventory_movement", start_date=JAN_START, end_date=JAN_END
        )

        by_type = {b["movement_type"]: b for b in report.breakdowns["by_movement_type"]}
        assert by_type["PRODUCTION"]["quantity"] == Decimal("40.000")
        assert by_type["DAMAGE"]["quantity"] == Decimal("-5.000")
        assert [d["date"] for d in report.breakdowns["daily_trend"]] == [date(2025, 1, 2), date(2025, 1, 3)]
        assert report.breakdowns["daily_trend"][0]["incoming"] == Decimal("50.000")
        assert report.breakdowns["daily_trend"][1]["net_change"] == Decimal("-5.000")

    def test_location_filter(self, report_engine, factory, tenant):
        product = factory.product(tenant.id, "FAB-002")
        factory.movement(tenant.id, product, "10", JAN_START, location="Dye House")
        factory.movement(tenant.id, product, "99", JAN_START, location="Main Warehouse")

        report = report_engine.generate_report(
            tenant.id, "inventory_movement", start_date=JAN_START, end_date=JAN_END,
            options={"location": "Dye House"},
        )

        assert report.summary["incoming"] == Decimal("10.000")
        assert report.summary["location"] == "Dye House"


# ===== LOW STOCK =====

class TestLowStock:

    def test_critical_scenario(self, report_engine, factory, tenant):
        product = factory.product(tenant.id, "FAB-010", reorder_level="20", reorder_quantity="100")
        factory.movement(tenant.id, product, "5", date(2025, 1, 2))

        report = report_engine.generate_report(tenant.id, "low_stock", start_date=JAN_START, end_date=JAN_END)

        [row] = report.rows
        assert row["current_stock"] == Decimal("5.000")
        assert row["shortage"] == Decimal("15.000")
        assert row["status"] == "CRITICAL"
        assert row["reorder_quantity"] == Decimal("100.000")
        assert report.summary["total_low_stock_items"] == 1
        assert report.summary["critical_items"] == 1
        assert report.summary["total_shortage"] == Decimal("15.000")
        assert report.is_consistent

    def test_warning_and_sufficient_stock(self, report_engine, factory, tenant):
        warning = factory.product(tenant.id, "FAB-011", reorder_level="20")
        healthy = factory.product(tenant.id, "FAB-012", reorder_level="20")
        factory.movement(tenant.id, warning, "15", JAN_START)
        factory.movement(tenant.id, healthy, "30", JAN_START)

        report = report_engine.generate_report(tenant.id, "low_stock", start_date=JAN_START, end_date=JAN_END)

        assert [(r["product_code"], r["status"]) for r in report.rows] == [("FAB-011", "WARNING")]
        assert report.summary["critical_items"] == 0

    def test_threshold_fraction_option(self, report_engine, factory, tenant):
        product = factory.product(tenant.id, "FAB-013", reorder_level="20")
        factory.movement(tenant.id, product, "15", JAN_START)

        report = report_engine.generate_report(
            tenant.id, "low_stock", start_date=JAN_START, end_date=JAN_END,
            options={"critical_threshold_fraction": "0.8"},
        )

        assert report.rows[0]["status"] == "CRITICAL"
        assert report.summary["critical_threshold_fraction"] == Decimal("0.8")

    def test_stock_is_evaluated_at_window_end(self, report_engine, factory, tenant):
        product = factory.product(tenant.id, "FAB-014", reorder_level="20")
        factory.movement(tenant.id, product, "25", date(2024, 11, 1))
        factory.movement(tenant.id, product, "-10", date(2025, 1, 15))
        factory.movement(tenant.id, product, "50", date(2025, 2, 1))

        report = report_engine.generate_report(tenant.id, "low_stock", start_date=JAN_START, end_date=JAN_END)

        [row] = report.rows
        assert row["current_stock"] == Decimal("15.000")

    def test_product_without_movements_counts_as_zero_stock(self, report_engine, factory, tenant):
        factory.product(tenant.id, "FAB-015", reorder_level="10")

        report = report_engine.generate_report(tenant.id, "low_stock", start_date=JAN_START, end_date=JAN_END)

        assert report.rows[0]["current_stock"] == Decimal("0.000")
        assert report.rows[0]["status"] == "CRITICAL"


# ===== STOCK VALUATION =====

class TestStockValuation:

    def test_valuation_at_cost(self, report_engine, factory, tenant):
        linen = factory.product(tenant.id, "FAB-020", cost_price="5.50", selling_price="9.00")
        denim = factory.product(tenant.id, "FAB-021", cost_price="12.00", selling_price="20.00")
        empty = factory.product(tenant.id, "FAB-022", cost_price="1.00")
        factory.movement(tenant.id, linen, "10", JAN_START)
        factory.movement(tenant.id, denim, "30", JAN_START)
        factory.movement(tenant.id, denim, "-10", date(2025, 1, 20))
        factory.movement(tenant.id, empty, "5", JAN_START)
        factory.movement(tenant.id, empty, "-5", JAN_START)
        # After the as-of date
        factory.movement(tenant.id, linen, "100", date(2025, 2, 5))

        report = report_engine.generate_report(tenant.id, ReportKind.STOCK_VALUATION, as_of_date=JAN_END)

        assert [(r["product_code"], r["quantity"], r["total_value"]) for r in report.rows] == [
            ("FAB-020", Decimal("10.000"), Decimal("55.00")),
            ("FAB-021", Decimal("20.000"), Decimal("240.00")),
        ]
        assert report.summary["total_value"] == Decimal("295.00")
        assert report.summary["total_items"] == Decimal("30.000")
        assert report.summary["average_value_per_item"] == Decimal("9.83")
        assert report.is_consistent

    def test_valuation_at_selling_price(self, report_engine, factory, tenant):
        linen = factory.product(tenant.id, "FAB-030", cost_price="5.50", selling_price="9.00")
        factory.movement(tenant.id, linen, "10", JAN_START)

        report = report_engine.generate_report(
            tenant.id, "stock_valuation", as_of_date=JAN_END, options={"price_basis": "selling"}
        )

        assert report.summary["total_value"] == Decimal("90.00")
        assert report.summary["price_basis"] == "selling"

    def test_negative_stock_is_out_of_bounds(self, report_engine, factory, tenant):
        product = factory.product(tenant.id, "FAB-040", cost_price="2")
        factory.movement(tenant.id, product, "-3", JAN_START)

        report = report_engine.generate_report(tenant.id, "stock_valuation", as_of_date=JAN_END)

        assert report.rows[0]["quantity"] == Decimal("-3.000")
        assert report.has_diagnostic(DiagnosticCode.OUT_OF_BOUNDS)

    def test_no_stock(self, report_engine, tenant):
        report = report_engine.generate_report(tenant.id, "stock_valuation", as_of_date=JAN_END)

        assert report.rows == []
        assert report.summary["total_value"] == Decimal("0.00")
        assert report.summary["average_value_per_item"] == Decimal("0.00")
