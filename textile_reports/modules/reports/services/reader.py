"""
Scoped record reader for Reports module

The only data-access boundary of the report engine. Every query is filtered
by tenant and, for dated records, by a closed date window. Results are
returned as frozen dataclasses detached from the ORM session.
"""

import enum
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, List, Mapping, Optional, Union
from uuid import UUID

from sqlalchemy import and_, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from textile_reports.core.config import settings
from textile_reports.modules.company.models import Company
from textile_reports.modules.invoices.models import Invoice, InvoiceLineItem
from textile_reports.modules.ledger.models import LedgerEntry
from textile_reports.modules.machines.models import Machine, MachineLog
from textile_reports.modules.products.models import Product, StockMovement
from textile_reports.modules.reports.exceptions import (
    EmptyWindow, ReportCancelled, ReportError, ReportTimeout, ScopeViolation
)
from textile_reports.modules.reports.schemas import ReportWindow
from textile_reports.modules.reports.utils import to_decimal

logger = logging.getLogger(__name__)


class RecordKind(str, enum.Enum):
    LEDGER_ENTRY = "ledger_entry"
    STOCK_MOVEMENT = "stock_movement"
    MACHINE_LOG = "machine_log"
    INVOICE = "invoice"
    INVOICE_LINE = "invoice_line"
    PRODUCT = "product"
    MACHINE = "machine"

    @property
    def is_reference(self) -> bool:
        """Reference data is read without a date window"""
        return self in (RecordKind.PRODUCT, RecordKind.MACHINE)


@dataclass(frozen=True)
class TenantInfo:
    tenant_id: UUID
    name: str
    currency: str


@dataclass(frozen=True)
class LedgerRecord:
    id: UUID
    tenant_id: UUID
    entry_date: date
    account_code: str
    account_name: str
    debit: Decimal
    credit: Decimal
    source_type: str
    source_id: Optional[str]


@dataclass(frozen=True)
class StockMovementRecord:
    id: UUID
    tenant_id: UUID
    product_id: UUID
    location: Optional[str]
    quantity: Decimal
    movement_type: str
    unit_cost: Decimal
    movement_date: date


@dataclass(frozen=True)
class MachineLogRecord:
    id: UUID
    tenant_id: UUID
    machine_id: UUID
    log_date: date
    runtime_hours: Decimal
    downtime_hours: Decimal
    period_hours: Decimal
    planned_quantity: Decimal
    actual_quantity: Decimal


@dataclass(frozen=True)
class InvoiceRecord:
    id: UUID
    tenant_id: UUID
    invoice_number: str
    customer_name: Optional[str]
    region: Optional[str]
    invoice_date: date
    status: str
    total_amount: Decimal


@dataclass(frozen=True)
class InvoiceLineRecord:
    id: UUID
    tenant_id: UUID
    invoice_id: UUID
    invoice_date: date
    invoice_status: str
    product_id: Optional[UUID]
    description: Optional[str]
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal
    unit_cost: Optional[Decimal]


@dataclass(frozen=True)
class ProductRecord:
    id: UUID
    tenant_id: UUID
    name: str
    product_code: str
    category: Optional[str]
    unit_of_measure: Optional[str]
    selling_price: Decimal
    cost_price: Decimal
    reorder_level: Decimal
    reorder_quantity: Decimal


@dataclass(frozen=True)
class MachineRecord:
    id: UUID
    tenant_id: UUID
    machine_code: str
    name: str
    machine_type: Optional[str]
    location: Optional[str]


def coerce_tenant_id(tenant_id: Union[UUID, str, None]) -> UUID:
    """Validate the shape of a tenant identifier. Raises ScopeViolation."""
    if tenant_id is None or (isinstance(tenant_id, str) and not tenant_id.strip()):
        raise ScopeViolation("Tenant ID is required", tenant_id=tenant_id)
    if isinstance(tenant_id, UUID):
        return tenant_id
    try:
        return UUID(str(tenant_id).strip())
    except (ValueError, AttributeError, TypeError):
        raise ScopeViolation(f"Invalid tenant ID format: {tenant_id!r}", tenant_id=tenant_id)


class ScopedRecordReader:
    """
    Read-only, tenant-scoped access to the raw transactional records.

    Each fetch opens its own short-lived session. On PostgreSQL the session
    runs at REPEATABLE READ with a statement timeout so one fetch observes
    one consistent snapshot. Every fetch is also bounded on the client side
    by ``timeout_seconds``.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        timeout_seconds: Optional[float] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        default_currency: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.REPORT_READ_TIMEOUT_SECONDS
        self.default_currency = default_currency or settings.DEFAULT_CURRENCY
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=settings.REPORT_MAX_WORKERS,
            thread_name_prefix="report-reader",
        )

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve_tenant(self, tenant_id: Union[UUID, str, None]) -> TenantInfo:
        """Resolve a tenant ID to an active company or raise ScopeViolation"""
        tenant_uuid = coerce_tenant_id(tenant_id)
        company = self._run_bounded("company", self._load_company, tenant_uuid)
        if company is None:
            raise ScopeViolation(f"Company {tenant_uuid} not found or inactive", tenant_id=tenant_uuid)
        return company

    def fetch(
        self,
        tenant_id: Union[UUID, str],
        kind: RecordKind,
        window: Optional[ReportWindow] = None,
    ) -> list:
        """
        Fetch active records of one kind for one tenant.

        Dated kinds require a window and include records whose date lies in
        [window.start_date, window.end_date]; an open start means "from the
        beginning". Reference kinds ignore the window.
        """
        tenant_uuid = coerce_tenant_id(tenant_id)
        kind = RecordKind(kind)
        self._check_window(kind, window)
        return self._run_bounded(kind.value, self._load, tenant_uuid, kind, window)

    def fetch_many(
        self,
        tenant_id: Union[UUID, str],
        requests: Mapping[RecordKind, Optional[ReportWindow]],
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[RecordKind, list]:
        """Fetch several record kinds concurrently, one session per kind"""
        tenant_uuid = coerce_tenant_id(tenant_id)
        for kind, window in requests.items():
            self._check_window(RecordKind(kind), window)

        futures: Dict[RecordKind, Future] = {
            RecordKind(kind): self._executor.submit(self._load, tenant_uuid, RecordKind(kind), window)
            for kind, window in requests.items()
        }
        results: Dict[RecordKind, list] = {}
        try:
            for kind, future in futures.items():
                results[kind] = self._wait(kind.value, future)
                if cancel_event is not None and cancel_event.is_set():
                    raise ReportCancelled("Report request cancelled while reading records")
        except ReportError:
            for future in futures.values():
                future.cancel()
            raise
        return results

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_window(self, kind: RecordKind, window: Optional[ReportWindow]) -> None:
        if not kind.is_reference and window is None:
            raise EmptyWindow(f"A date window is required to read {kind.value} records")

    def _run_bounded(self, label: str, fn, *args):
        return self._wait(label, self._executor.submit(fn, *args))

    def _wait(self, label: str, future: Future):
        try:
            return future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            future.cancel()
            logger.error(f"Timed out reading {label} records after {self.timeout_seconds}s")
            raise ReportTimeout(label, self.timeout_seconds)

    def _open_session(self) -> Session:
        session = self.session_factory()
        bind = session.get_bind()
        if bind.dialect.name == "postgresql":
            session.connection(execution_options={"isolation_level": "REPEATABLE READ"})
            timeout_ms = max(1, int(self.timeout_seconds * 1000))
            session.execute(text("SET TRANSACTION READ ONLY"))
            session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))
        return session

    def _load_company(self, tenant_id: UUID) -> Optional[TenantInfo]:
        session = None
        try:
            session = self._open_session()
            company = session.query(Company).filter(
                Company.id == tenant_id,
                Company.is_active.is_(True)
            ).first()
            if company is None:
                return None
            return TenantInfo(
                tenant_id=company.id,
                name=company.name,
                currency=(company.currency_code or self.default_currency).upper(),
            )
        except SQLAlchemyError as e:
            logger.error(f"Database error resolving tenant {tenant_id}: {e}", exc_info=True)
            raise ReportError(f"Failed to resolve tenant: {e}")
        finally:
            if session is not None:
                session.close()

    def _load(self, tenant_id: UUID, kind: RecordKind, window: Optional[ReportWindow]) -> list:
        session = None
        try:
            session = self._open_session()
            loader = getattr(self, f"_load_{kind.value}")
            records = loader(session, tenant_id, window)
            logger.debug(f"Read {len(records)} {kind.value} records for tenant {tenant_id}")
            return records
        except SQLAlchemyError as e:
            logger.error(f"Database error reading {kind.value} for tenant {tenant_id}: {e}", exc_info=True)
            raise ReportError(f"Failed to read {kind.value} records: {e}")
        finally:
            if session is not None:
                session.rollback()
                session.close()

    def _apply_date_filter(self, query, date_field, window: ReportWindow):
        """Apply closed date range filter to a query"""
        if window.start_date is None:
            return query.filter(date_field <= window.end_date)
        return query.filter(
            and_(
                date_field >= window.start_date,
                date_field <= window.end_date
            )
        )

    def _load_ledger_entry(self, session: Session, tenant_id: UUID, window: ReportWindow) -> List[LedgerRecord]:
        query = session.query(LedgerEntry).filter(
            LedgerEntry.tenant_id == tenant_id,
            LedgerEntry.is_active.is_(True)
        )
        query = self._apply_date_filter(query, LedgerEntry.entry_date, window)
        return [
            LedgerRecord(
                id=row.id,
                tenant_id=row.tenant_id,
                entry_date=row.entry_date,
                account_code=row.account_code,
                account_name=row.account_name,
                debit=to_decimal(row.debit),
                credit=to_decimal(row.credit),
                source_type=row.source_type,
                source_id=row.source_id,
            )
            for row in query.order_by(LedgerEntry.entry_date, LedgerEntry.account_code, LedgerEntry.id)
        ]

    def _load_stock_movement(self, session: Session, tenant_id: UUID, window: ReportWindow) -> List[StockMovementRecord]:
        query = session.query(StockMovement).filter(
            StockMovement.tenant_id == tenant_id,
            StockMovement.is_active.is_(True)
        )
        query = self._apply_date_filter(query, StockMovement.movement_date, window)
        return [
            StockMovementRecord(
                id=row.id,
                tenant_id=row.tenant_id,
                product_id=row.product_id,
                location=row.location,
                quantity=to_decimal(row.quantity),
                movement_type=row.movement_type,
                unit_cost=to_decimal(row.unit_cost),
                movement_date=row.movement_date,
            )
            for row in query.order_by(StockMovement.movement_date, StockMovement.id)
        ]

    def _load_machine_log(self, session: Session, tenant_id: UUID, window: ReportWindow) -> List[MachineLogRecord]:
        query = session.query(MachineLog).filter(
            MachineLog.tenant_id == tenant_id,
            MachineLog.is_active.is_(True)
        )
        query = self._apply_date_filter(query, MachineLog.log_date, window)
        return [
            MachineLogRecord(
                id=row.id,
                tenant_id=row.tenant_id,
                machine_id=row.machine_id,
                log_date=row.log_date,
                runtime_hours=to_decimal(row.runtime_hours),
                downtime_hours=to_decimal(row.downtime_hours),
                period_hours=(
                    to_decimal(row.period_hours) if row.period_hours is not None
                    else settings.MACHINE_DEFAULT_PERIOD_HOURS
                ),
                planned_quantity=to_decimal(row.planned_quantity),
                actual_quantity=to_decimal(row.actual_quantity),
            )
            for row in query.order_by(MachineLog.log_date, MachineLog.id)
        ]

    def _load_invoice(self, session: Session, tenant_id: UUID, window: ReportWindow) -> List[InvoiceRecord]:
        query = session.query(Invoice).filter(
            Invoice.tenant_id == tenant_id,
            Invoice.is_active.is_(True)
        )
        query = self._apply_date_filter(query, Invoice.invoice_date, window)
        return [
            InvoiceRecord(
                id=row.id,
                tenant_id=row.tenant_id,
                invoice_number=row.invoice_number,
                customer_name=row.customer_name,
                region=row.region,
                invoice_date=row.invoice_date,
                status=row.status,
                total_amount=to_decimal(row.total_amount),
            )
            for row in query.order_by(Invoice.invoice_date, Invoice.id)
        ]

    def _load_invoice_line(self, session: Session, tenant_id: UUID, window: ReportWindow) -> List[InvoiceLineRecord]:
        query = session.query(
            InvoiceLineItem, Invoice.invoice_date, Invoice.status
        ).join(
            Invoice, InvoiceLineItem.invoice_id == Invoice.id
        ).filter(
            Invoice.tenant_id == tenant_id,
            InvoiceLineItem.tenant_id == tenant_id,
            Invoice.is_active.is_(True)
        )
        query = self._apply_date_filter(query, Invoice.invoice_date, window)
        return [
            InvoiceLineRecord(
                id=line.id,
                tenant_id=line.tenant_id,
                invoice_id=line.invoice_id,
                invoice_date=invoice_date,
                invoice_status=status,
                product_id=line.product_id,
                description=line.description,
                quantity=to_decimal(line.quantity),
                unit_price=to_decimal(line.unit_price),
                line_total=to_decimal(line.line_total),
                unit_cost=to_decimal(line.unit_cost) if line.unit_cost is not None else None,
            )
            for line, invoice_date, status in query.order_by(Invoice.invoice_date, InvoiceLineItem.id)
        ]

    def _load_product(self, session: Session, tenant_id: UUID, window: Optional[ReportWindow]) -> List[ProductRecord]:
        query = session.query(Product).filter(
            Product.tenant_id == tenant_id,
            Product.is_active.is_(True)
        )
        return [
            ProductRecord(
                id=row.id,
                tenant_id=row.tenant_id,
                name=row.name,
                product_code=row.product_code,
                category=row.category,
                unit_of_measure=row.unit_of_measure,
                selling_price=to_decimal(row.selling_price),
                cost_price=to_decimal(row.cost_price),
                reorder_level=to_decimal(row.reorder_level),
                reorder_quantity=to_decimal(row.reorder_quantity),
            )
            for row in query.order_by(Product.product_code)
        ]

    def _load_machine(self, session: Session, tenant_id: UUID, window: Optional[ReportWindow]) -> List[MachineRecord]:
        query = session.query(Machine).filter(
            Machine.tenant_id == tenant_id,
            Machine.is_active.is_(True)
        )
        return [
            MachineRecord(
                id=row.id,
                tenant_id=row.tenant_id,
                machine_code=row.machine_code,
                name=row.name,
                machine_type=row.machine_type,
                location=row.location,
            )
            for row in query.order_by(Machine.machine_code)
        ]
