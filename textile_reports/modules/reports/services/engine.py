"""
Report engine

Entry point for report generation: validates the request, resolves the
tenant, reads the records each builder needs, builds, validates and caches
the report.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.orm import Session

from textile_reports.core.config import settings
from textile_reports.modules.reports.exceptions import (
    EmptyWindow, InvalidReportOptions, ReportCancelled, ReportError, UnsupportedReportKind
)
from textile_reports.modules.reports.schemas import (
    ReportKind, ReportKindInfo, ReportOptions, ReportResult, ReportWindow
)
from textile_reports.modules.reports.services.base import BaseReportBuilder, ReportContext
from textile_reports.modules.reports.services.cache import ReportCache, register_cache_invalidation
from textile_reports.modules.reports.services.classifier import AccountClassifier
from textile_reports.modules.reports.services.financial import (
    BalanceSheetBuilder, CashFlowBuilder, ProfitLossBuilder, TrialBalanceBuilder
)
from textile_reports.modules.reports.services.inventory import (
    InventoryMovementBuilder, LowStockBuilder, StockValuationBuilder
)
from textile_reports.modules.reports.services.production import ProductionEfficiencyBuilder
from textile_reports.modules.reports.services.reader import (
    RecordKind, ScopedRecordReader, TenantInfo, coerce_tenant_id
)
from textile_reports.modules.reports.services.sales import (
    ProductPerformanceBuilder, SalesByRegionBuilder
)
from textile_reports.modules.reports.services.validator import InvariantValidator

logger = logging.getLogger(__name__)

BUILDERS: Dict[ReportKind, BaseReportBuilder] = {
    builder.kind: builder for builder in (
        TrialBalanceBuilder(),
        ProfitLossBuilder(),
        BalanceSheetBuilder(),
        CashFlowBuilder(),
        StockValuationBuilder(),
        LowStockBuilder(),
        InventoryMovementBuilder(),
        SalesByRegionBuilder(),
        ProductPerformanceBuilder(),
        ProductionEfficiencyBuilder(),
    )
}

# Options that influence each kind; the rest are dropped before keying the cache
INVENTORY_KINDS = frozenset({
    ReportKind.STOCK_VALUATION,
    ReportKind.LOW_STOCK,
    ReportKind.INVENTORY_MOVEMENT,
})

DateLike = Union[date, str, None]


def _parse_date(value: DateLike, name: str) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise EmptyWindow(f"Invalid {name}: {value!r}")


def resolve_kind(report_kind: Union[ReportKind, str]) -> ReportKind:
    try:
        kind = ReportKind(report_kind)
    except ValueError:
        raise UnsupportedReportKind(f"Unsupported report kind: {report_kind}")
    if kind not in BUILDERS:
        raise UnsupportedReportKind(f"Unsupported report kind: {report_kind}")
    return kind


def normalize_window(
    kind: ReportKind,
    start_date: DateLike = None,
    end_date: DateLike = None,
    as_of_date: DateLike = None,
) -> ReportWindow:
    """
    Build the closed window a report covers.

    As-of kinds cover everything up to ``as_of_date`` (``end_date`` is
    accepted in its place). Range kinds need both ends with start <= end.
    """
    start_date = _parse_date(start_date, "start_date")
    end_date = _parse_date(end_date, "end_date")
    as_of_date = _parse_date(as_of_date, "as_of_date")

    if kind.takes_as_of_date:
        as_of = as_of_date or end_date
        if as_of is None:
            raise EmptyWindow(f"{kind.value} requires as_of_date")
        return ReportWindow(start_date=None, end_date=as_of)

    if start_date is None or end_date is None:
        raise EmptyWindow(f"{kind.value} requires start_date and end_date")
    if start_date > end_date:
        raise EmptyWindow(f"start_date {start_date} is after end_date {end_date}")
    return ReportWindow(start_date=start_date, end_date=end_date)


def normalize_options(kind: ReportKind, options: Union[ReportOptions, Mapping[str, Any], None]) -> ReportOptions:
    """Validate options and keep only the ones the report kind uses"""
    if options is None:
        options = ReportOptions()
    elif not isinstance(options, ReportOptions):
        try:
            options = ReportOptions(**dict(options))
        except ValidationError as e:
            raise InvalidReportOptions(f"Invalid report options: {e}")

    relevant: Dict[str, Any] = {}
    if kind in INVENTORY_KINDS:
        relevant["location"] = options.location
    if kind == ReportKind.STOCK_VALUATION:
        relevant["price_basis"] = options.price_basis
    if kind == ReportKind.LOW_STOCK:
        relevant["critical_threshold_fraction"] = options.critical_threshold_fraction
    return ReportOptions(**relevant)


class ReportEngine:
    """
    Generates reports for one tenant at a time.

    Safe to call concurrently. The only shared mutable state is the cache.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        cache: Optional[ReportCache] = None,
        classifier: Optional[AccountClassifier] = None,
        validator: Optional[InvariantValidator] = None,
        reader: Optional[ScopedRecordReader] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.reader = reader or ScopedRecordReader(
            session_factory, timeout_seconds=timeout_seconds, executor=executor
        )
        self.cache = cache
        self.classifier = classifier or AccountClassifier()
        self.validator = validator or InvariantValidator()

    def close(self) -> None:
        self.reader.close()

    @staticmethod
    def catalogue() -> List[ReportKindInfo]:
        return [
            ReportKindInfo(
                kind=kind,
                title=builder.title,
                takes_as_of_date=kind.takes_as_of_date,
                financial=kind.is_financial,
            )
            for kind, builder in BUILDERS.items()
        ]

    def generate_report(
        self,
        tenant_id: Union[UUID, str],
        report_kind: Union[ReportKind, str],
        *,
        start_date: DateLike = None,
        end_date: DateLike = None,
        as_of_date: DateLike = None,
        options: Union[ReportOptions, Mapping[str, Any], None] = None,
        cancel_event: Optional[threading.Event] = None,
        refresh: bool = False,
    ) -> ReportResult:
        """
        Generate one report for one tenant.

        Request validation (tenant format, kind, window, options) happens
        before any read. Raises a ReportError subclass on failure;
        inconsistent data is reported through the result's diagnostics.
        """
        tenant_uuid = coerce_tenant_id(tenant_id)
        kind = resolve_kind(report_kind)
        window = normalize_window(kind, start_date, end_date, as_of_date)
        options = normalize_options(kind, options)
        self._check_cancelled(cancel_event)

        tenant = self.reader.resolve_tenant(tenant_uuid)

        def compute(version: int) -> ReportResult:
            return self._compute(tenant, kind, window, options, version, cancel_event)

        if self.cache is None:
            return compute(0)
        base_key = (kind.value, window.key, options.key)
        return self.cache.get_or_compute(
            tenant.tenant_id, base_key, compute, refresh=refresh, cancel_event=cancel_event
        )

    def invalidate_tenant(self, tenant_id: Union[UUID, str]) -> Dict[str, Any]:
        tenant_uuid = coerce_tenant_id(tenant_id)
        if self.cache is None:
            return {"tenant_id": tenant_uuid, "evicted_entries": 0, "data_version": 0}
        evicted, version = self.cache.invalidate_tenant(tenant_uuid)
        return {"tenant_id": tenant_uuid, "evicted_entries": evicted, "data_version": version}

    def _compute(
        self,
        tenant: TenantInfo,
        kind: ReportKind,
        window: ReportWindow,
        options: ReportOptions,
        version: int,
        cancel_event: Optional[threading.Event],
    ) -> ReportResult:
        builder = BUILDERS[kind]
        started = time.perf_counter()
        logger.info(
            f"Generating {kind.value} report for tenant {tenant.tenant_id} "
            f"window={window.start_date}..{window.end_date}"
        )
        try:
            self._check_cancelled(cancel_event)
            records = self.reader.fetch_many(
                tenant.tenant_id, builder.requirements(window), cancel_event=cancel_event
            )
            self._check_cancelled(cancel_event)

            accounts = {}
            if kind.is_financial:
                accounts = self.classifier.classify_all(records.get(RecordKind.LEDGER_ENTRY, []))

            ctx = ReportContext(
                tenant=tenant,
                kind=kind,
                window=window,
                options=options,
                records=records,
                classifier=self.classifier,
                accounts=accounts,
            )
            output = builder.build(ctx)
            self._check_cancelled(cancel_event)

            diagnostics = self.validator.validate(ctx, output)
            self._check_cancelled(cancel_event)
        except ReportCancelled:
            logger.info(f"{kind.value} report for tenant {tenant.tenant_id} cancelled")
            raise
        except ReportError as e:
            logger.error(f"Failed to generate {kind.value} report for tenant {tenant.tenant_id}: {e}", exc_info=True)
            raise

        result = ReportResult(
            report_kind=kind,
            tenant_id=tenant.tenant_id,
            currency=tenant.currency,
            window=window,
            as_of_date=window.end_date if kind.takes_as_of_date else None,
            summary=output.summary,
            rows=output.rows,
            breakdowns=output.breakdowns,
            diagnostics=diagnostics,
            generated_at=datetime.now(timezone.utc),
            data_version=version,
        )
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"Generated {kind.value} report for tenant {tenant.tenant_id} "
            f"in {elapsed_ms:.1f}ms ({len(result.rows)} rows, {len(diagnostics)} diagnostics)"
        )
        return result

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ReportCancelled("Report request cancelled")


_engine: Optional[ReportEngine] = None
_engine_lock = threading.Lock()


def get_report_engine() -> ReportEngine:
    """Process-wide engine bound to the application database"""
    global _engine
    if _engine is None:
        with _engine_lock:
            if _engine is None:
                from textile_reports.database.database import SessionLocal

                cache = None
                if settings.REPORT_CACHE_ENABLED:
                    cache = ReportCache()
                    register_cache_invalidation(cache, SessionLocal)
                _engine = ReportEngine(SessionLocal, cache=cache)
    return _engine
