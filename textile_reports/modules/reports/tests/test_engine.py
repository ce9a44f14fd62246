"""
Tests for the report engine: request validation, idempotence, tenant
isolation across every report kind, caching and cancellation.
"""

import threading
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from textile_reports.modules.reports.exceptions import (
    EmptyWindow, InvalidReportOptions, ReportCancelled, ScopeViolation, UnsupportedReportKind
)
from textile_reports.modules.reports.schemas import ReportKind, ReportOptions
from textile_reports.modules.reports.services.engine import ReportEngine, normalize_options, normalize_window

from .conftest import JAN_END, JAN_START


def window_for(kind: ReportKind) -> dict:
    if kind.takes_as_of_date:
        return {"as_of_date": JAN_END}
    return {"start_date": JAN_START, "end_date": JAN_END}


def seed_everything(factory, tenant_id):
    """One record of every kind for a tenant"""
    product = factory.product(tenant_id, "FAB-900", cost_price="4", reorder_level="50")
    machine = factory.machine(tenant_id, "LM-900")
    factory.post(tenant_id, date(2025, 1, 10), [("1000", "500", "0"), ("4000", "0", "500")])
    factory.post(tenant_id, date(2025, 1, 11), [("6000", "100", "0"), ("1000", "0", "100")])
    factory.movement(tenant_id, product, "20", date(2025, 1, 5), unit_cost="4")
    factory.machine_log(tenant_id, machine, date(2025, 1, 6), runtime="16", downtime="4")
    factory.invoice(tenant_id, date(2025, 1, 10), total="500", region="West", lines=[
        {"product_id": product.id, "quantity": "25", "unit_price": "20", "unit_cost": "4"},
    ])


def comparable(report):
    return report.model_dump(exclude={"generated_at"})


# ===== REQUEST VALIDATION =====

class TestRequestValidation:

    def test_start_after_end_raises_before_any_read(self, report_engine, tenant, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("reader must not be called")

        monkeypatch.setattr(report_engine.reader, "resolve_tenant", fail)
        monkeypatch.setattr(report_engine.reader, "fetch_many", fail)

        with pytest.raises(EmptyWindow):
            report_engine.generate_report(
                tenant.id, "trial_balance", start_date=JAN_END, end_date=JAN_START
            )

    @pytest.mark.parametrize("kind,dates", [
        ("trial_balance", {}),
        ("trial_balance", {"start_date": JAN_START}),
        ("sales_by_region", {"end_date": JAN_END}),
        ("balance_sheet", {}),
        ("stock_valuation", {"start_date": JAN_START}),
    ])
    def test_missing_dates(self, report_engine, tenant, kind, dates):
        with pytest.raises(EmptyWindow):
            report_engine.generate_report(tenant.id, kind, **dates)

    def test_single_day_window_is_valid(self, report_engine, tenant):
        report = report_engine.generate_report(
            tenant.id, "trial_balance", start_date=JAN_START, end_date=JAN_START
        )
        assert report.window.start_date == report.window.end_date == JAN_START

    def test_iso_date_strings_are_accepted(self, report_engine, tenant):
        report = report_engine.generate_report(
            str(tenant.id), "trial_balance", start_date="2025-01-01", end_date="2025-01-31"
        )
        assert report.window.end_date == JAN_END

    def test_unsupported_kind(self, report_engine, tenant):
        with pytest.raises(UnsupportedReportKind):
            report_engine.generate_report(tenant.id, "general_ledger", start_date=JAN_START, end_date=JAN_END)

    def test_unknown_tenant(self, report_engine):
        with pytest.raises(ScopeViolation):
            report_engine.generate_report(uuid4(), "trial_balance", start_date=JAN_START, end_date=JAN_END)

    def test_missing_tenant(self, report_engine):
        with pytest.raises(ScopeViolation):
            report_engine.generate_report("", "trial_balance", start_date=JAN_START, end_date=JAN_END)

    def test_invalid_options(self, report_engine, tenant):
        with pytest.raises(InvalidReportOptions):
            report_engine.generate_report(
                tenant.id, "low_stock", start_date=JAN_START, end_date=JAN_END,
                options={"critical_threshold_fraction": "1.5"},
            )

    def test_as_of_kinds_accept_end_date(self):
        window = normalize_window(ReportKind.BALANCE_SHEET, end_date=JAN_END)
        assert window.start_date is None
        assert window.end_date == JAN_END

    def test_options_irrelevant_to_kind_are_dropped(self):
        options = ReportOptions(location="Dye House", price_basis="selling", critical_threshold_fraction="0.3")
        assert normalize_options(ReportKind.TRIAL_BALANCE, options) == ReportOptions()
        assert normalize_options(ReportKind.LOW_STOCK, options).critical_threshold_fraction == Decimal("0.3")
        assert normalize_options(ReportKind.LOW_STOCK, options).price_basis.value == "cost"


# ===== REPORT PROPERTIES =====

class TestReportProperties:

    @pytest.mark.parametrize("kind", list(ReportKind))
    def test_empty_data_gives_valid_empty_report(self, report_engine, tenant, kind):
        report = report_engine.generate_report(tenant.id, kind, **window_for(kind))

        assert report.report_kind == kind
        assert report.rows == []
        assert report.diagnostics == []
        assert report.currency == "INR"

    @pytest.mark.parametrize("kind", list(ReportKind))
    def test_tenant_isolation(self, report_engine, factory, tenant, other_tenant, kind):
        seed_everything(factory, other_tenant.id)

        isolated = report_engine.generate_report(tenant.id, kind, **window_for(kind))
        seeded = report_engine.generate_report(other_tenant.id, kind, **window_for(kind))

        assert isolated.rows == []
        assert isolated.tenant_id == tenant.id
        assert seeded.rows != []

    @pytest.mark.parametrize("kind", list(ReportKind))
    def test_repeated_generation_is_idempotent(self, report_engine, factory, tenant, kind):
        seed_everything(factory, tenant.id)

        first = report_engine.generate_report(tenant.id, kind, **window_for(kind))
        second = report_engine.generate_report(tenant.id, kind, **window_for(kind))

        assert comparable(first) == comparable(second)

    def test_catalogue_lists_every_kind(self):
        catalogue = ReportEngine.catalogue()
        assert {entry.kind for entry in catalogue} == set(ReportKind)
        as_of = {entry.kind for entry in catalogue if entry.takes_as_of_date}
        assert as_of == {ReportKind.BALANCE_SHEET, ReportKind.STOCK_VALUATION}


# ===== CANCELLATION =====

class TestCancellation:

    def test_cancelled_request_raises_and_is_not_cached(self, cached_engine, report_cache, tenant):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(ReportCancelled):
            cached_engine.generate_report(
                tenant.id, "trial_balance", start_date=JAN_START, end_date=JAN_END, cancel_event=cancel
            )
        assert len(report_cache) == 0

    def test_cancelled_between_stages(self, cached_engine, report_cache, factory, tenant, monkeypatch):
        factory.entry(tenant.id, JAN_START, "4000", credit="10")
        cancel = threading.Event()
        original = cached_engine.reader.fetch_many

        def fetch_then_cancel(*args, **kwargs):
            records = original(*args, **kwargs)
            cancel.set()
            return records

        monkeypatch.setattr(cached_engine.reader, "fetch_many", fetch_then_cancel)

        with pytest.raises(ReportCancelled):
            cached_engine.generate_report(
                tenant.id, "trial_balance", start_date=JAN_START, end_date=JAN_END, cancel_event=cancel
            )
        assert len(report_cache) == 0


# ===== CACHING =====

class TestCachedEngine:

    def test_repeat_request_served_from_cache(self, cached_engine, factory, tenant):
        factory.entry(tenant.id, JAN_START, "4000", credit="10")

        first = cached_engine.generate_report(tenant.id, "trial_balance", start_date=JAN_START, end_date=JAN_END)
        second = cached_engine.generate_report(tenant.id, "trial_balance", start_date=JAN_START, end_date=JAN_END)

        assert first.cached is False
        assert second.cached is True
        assert second.summary == first.summary

    def test_irrelevant_options_share_cache_entry(self, cached_engine, tenant):
        cached_engine.generate_report(tenant.id, "trial_balance", start_date=JAN_START, end_date=JAN_END)
        second = cached_engine.generate_report(
            tenant.id, "trial_balance", start_date=JAN_START, end_date=JAN_END,
            options={"location": "Dye House"},
        )
        assert second.cached is True

    def test_committed_write_invalidates(self, cached_engine, factory, tenant):
        factory.entry(tenant.id, JAN_START, "4000", credit="10")
        first = cached_engine.generate_report(tenant.id, "trial_balance", start_date=JAN_START, end_date=JAN_END)

        factory.entry(tenant.id, JAN_END, "1000", debit="10")
        second = cached_engine.generate_report(tenant.id, "trial_balance", start_date=JAN_START, end_date=JAN_END)

        assert second.cached is False
        assert second.data_version > first.data_version
        assert second.summary["total_debits"] == Decimal("10.00")

    def test_write_for_other_tenant_keeps_cache(self, cached_engine, factory, tenant, other_tenant):
        cached_engine.generate_report(tenant.id, "trial_balance", start_date=JAN_START, end_date=JAN_END)
        factory.entry(other_tenant.id, JAN_START, "1000", debit="10")

        again = cached_engine.generate_report(tenant.id, "trial_balance", start_date=JAN_START, end_date=JAN_END)

        assert again.cached is True

    def test_refresh_recomputes(self, cached_engine, tenant):
        cached_engine.generate_report(tenant.id, "trial_balance", start_date=JAN_START, end_date=JAN_END)
        refreshed = cached_engine.generate_report(
            tenant.id, "trial_balance", start_date=JAN_START, end_date=JAN_END, refresh=True
        )
        assert refreshed.cached is False

    def test_manual_invalidation(self, cached_engine, tenant):
        cached_engine.generate_report(tenant.id, "trial_balance", start_date=JAN_START, end_date=JAN_END)

        outcome = cached_engine.invalidate_tenant(tenant.id)

        assert outcome["evicted_entries"] == 1
        again = cached_engine.generate_report(tenant.id, "trial_balance", start_date=JAN_START, end_date=JAN_END)
        assert again.cached is False
