"""
Tests for machine efficiency reporting.
"""

from datetime import date
from decimal import Decimal

import pytest

from textile_reports.modules.reports.schemas import DiagnosticCode
from textile_reports.modules.reports.services.production import efficiency

from .conftest import JAN_END, JAN_START


@pytest.mark.parametrize("runtime,downtime,expected", [
    ("18", "6", Decimal("75")),
    ("0", "0", Decimal("0")),
    ("0", "8", Decimal("0")),
    ("8", "0", Decimal("100")),
    ("10", "-2", Decimal("100")),
])
def test_efficiency_is_bounded(runtime, downtime, expected):
    value = efficiency(Decimal(runtime), Decimal(downtime))
    assert value == expected
    assert Decimal("0") <= value <= Decimal("100")


class TestProductionEfficiency:

    def test_per_machine_efficiency(self, report_engine, factory, tenant):
        loom_a = factory.machine(tenant.id, "LM-A")
        loom_b = factory.machine(tenant.id, "LM-B")
        factory.machine_log(tenant.id, loom_a, date(2025, 1, 2), runtime="18", downtime="6", planned="100", actual="90")
        factory.machine_log(tenant.id, loom_b, date(2025, 1, 2))

        report = report_engine.generate_report(
            tenant.id, "production_efficiency", start_date=JAN_START, end_date=JAN_END
        )

        rows = {r["machine_code"]: r for r in report.rows}
        assert rows["LM-A"]["efficiency"] == Decimal("75.00")
        assert rows["LM-B"]["efficiency"] == Decimal("0.00")
        assert report.summary["overall_efficiency"] == Decimal("75.00")
        assert report.summary["total_runtime_hours"] == Decimal("18.000")
        assert report.summary["total_downtime_hours"] == Decimal("6.000")
        assert report.summary["machines_reported"] == 2
        assert report.summary["production_attainment"] == Decimal("90.00")
        assert report.is_consistent

    def test_daily_breakdown(self, report_engine, factory, tenant):
        loom = factory.machine(tenant.id, "LM-C")
        factory.machine_log(tenant.id, loom, date(2025, 1, 2), runtime="12", downtime="12")
        factory.machine_log(tenant.id, loom, date(2025, 1, 3), runtime="20", downtime="4")

        report = report_engine.generate_report(
            tenant.id, "production_efficiency", start_date=JAN_START, end_date=JAN_END
        )

        assert [(d["date"], d["efficiency"]) for d in report.breakdowns["daily_efficiency"]] == [
            (date(2025, 1, 2), Decimal("50.00")),
            (date(2025, 1, 3), Decimal("83.33")),
        ]
        assert report.rows[0]["efficiency"] == Decimal("66.67")

    def test_log_exceeding_period_is_flagged(self, report_engine, factory, tenant):
        loom = factory.machine(tenant.id, "LM-D")
        log = factory.machine_log(tenant.id, loom, JAN_START, runtime="20", downtime="8")

        report = report_engine.generate_report(
            tenant.id, "production_efficiency", start_date=JAN_START, end_date=JAN_END
        )

        assert report.has_diagnostic(DiagnosticCode.OUT_OF_BOUNDS)
        diagnostic = next(d for d in report.diagnostics if d.check == "hours_within_period")
        assert diagnostic.details["log_ids"] == [str(log.id)]
        assert report.rows[0]["efficiency"] == Decimal("71.43")

    def test_no_logs(self, report_engine, tenant):
        report = report_engine.generate_report(
            tenant.id, "production_efficiency", start_date=JAN_START, end_date=JAN_END
        )

        assert report.rows == []
        assert report.summary["overall_efficiency"] == Decimal("0.00")
        assert report.summary["production_attainment"] == Decimal("0.00")
