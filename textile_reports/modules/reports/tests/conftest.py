"""
Shared fixtures for the Reports module tests.

Every test gets a fresh in-memory SQLite database. Readers use a single
worker thread so that the shared StaticPool connection is never used by
two threads at once.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")

from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Tuple
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from textile_reports.database.database import Base
from textile_reports.modules.company.models import Company
from textile_reports.modules.invoices.models import Invoice, InvoiceLineItem, InvoiceStatus
from textile_reports.modules.ledger.models import LedgerEntry
from textile_reports.modules.machines.models import Machine, MachineLog
from textile_reports.modules.products.models import MovementType, Product, StockMovement
from textile_reports.modules.reports.services.cache import ReportCache, register_cache_invalidation
from textile_reports.modules.reports.services.classifier import CHART_OF_ACCOUNTS
from textile_reports.modules.reports.services.engine import ReportEngine
from textile_reports.modules.reports.services.reader import ScopedRecordReader

JAN_START = date(2025, 1, 1)
JAN_END = date(2025, 1, 31)


# ===== DATABASE =====

@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


# ===== ENGINE =====

@pytest.fixture
def reader_executor():
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="test-reader")
    yield executor
    executor.shutdown(wait=True)


@pytest.fixture
def reader(session_factory, reader_executor):
    return ScopedRecordReader(session_factory, timeout_seconds=5, executor=reader_executor)


@pytest.fixture
def report_engine(session_factory, reader):
    """Engine without a cache"""
    return ReportEngine(session_factory, reader=reader)


@pytest.fixture
def report_cache():
    return ReportCache(ttl_seconds=60, max_entries=100)


@pytest.fixture
def cached_engine(session_factory, reader, report_cache):
    remove = register_cache_invalidation(report_cache, session_factory)
    yield ReportEngine(session_factory, cache=report_cache, reader=reader)
    remove()


# ===== DATA FACTORY =====

class DataFactory:
    """Creates committed records for tests"""

    def __init__(self, session):
        self.session = session

    def _save(self, *objects):
        self.session.add_all(objects)
        self.session.commit()
        return objects[0] if len(objects) == 1 else objects

    def company(self, name: Optional[str] = None, currency: str = "INR", is_active: bool = True) -> Company:
        return self._save(Company(
            id=uuid4(),
            name=name or f"Mill {uuid4().hex[:8]}",
            currency_code=currency,
            is_active=is_active,
        ))

    def entry(
        self,
        tenant_id,
        entry_date: date,
        account_code: str,
        debit="0",
        credit="0",
        source_id: Optional[str] = None,
        source_type: str = "journal",
        is_active: bool = True,
    ) -> LedgerEntry:
        account = CHART_OF_ACCOUNTS.get(account_code)
        return self._save(LedgerEntry(
            tenant_id=tenant_id,
            entry_date=entry_date,
            account_code=account_code,
            account_name=account.name if account else "Unmapped",
            debit=Decimal(debit),
            credit=Decimal(credit),
            source_type=source_type,
            source_id=source_id,
            is_active=is_active,
        ))

    def post(
        self,
        tenant_id,
        entry_date: date,
        lines: Iterable[Tuple[str, str, str]],
        source_id: Optional[str] = None,
        source_type: str = "journal",
    ):
        """Post one document: lines are (account_code, debit, credit)"""
        source_id = source_id or f"DOC-{uuid4().hex[:8]}"
        return [
            self.entry(tenant_id, entry_date, code, debit, credit, source_id=source_id, source_type=source_type)
            for code, debit, credit in lines
        ]

    def product(
        self,
        tenant_id,
        code: str,
        name: Optional[str] = None,
        category: Optional[str] = "Fabric",
        cost_price="0",
        selling_price="0",
        reorder_level="0",
        reorder_quantity="0",
        is_active: bool = True,
    ) -> Product:
        return self._save(Product(
            tenant_id=tenant_id,
            product_code=code,
            name=name or f"Product {code}",
            category=category,
            unit_of_measure="meters",
            cost_price=Decimal(cost_price),
            selling_price=Decimal(selling_price),
            reorder_level=Decimal(reorder_level),
            reorder_quantity=Decimal(reorder_quantity),
            is_active=is_active,
        ))

    def movement(
        self,
        tenant_id,
        product: Product,
        quantity,
        movement_date: date,
        movement_type: Optional[MovementType] = None,
        location: Optional[str] = "Main Warehouse",
        unit_cost="0",
        is_active: bool = True,
    ) -> StockMovement:
        quantity = Decimal(quantity)
        if movement_type is None:
            movement_type = MovementType.PURCHASE if quantity >= 0 else MovementType.SALE
        return self._save(StockMovement(
            tenant_id=tenant_id,
            product_id=product.id,
            quantity=quantity,
            movement_type=movement_type.value,
            movement_date=movement_date,
            location=location,
            unit_cost=Decimal(unit_cost),
            is_active=is_active,
        ))

    def machine(self, tenant_id, code: str, name: Optional[str] = None, location: str = "Weaving Shed") -> Machine:
        return self._save(Machine(
            tenant_id=tenant_id,
            machine_code=code,
            name=name or f"Loom {code}",
            machine_type="Loom",
            location=location,
        ))

    def machine_log(
        self,
        tenant_id,
        machine: Machine,
        log_date: date,
        runtime="0",
        downtime="0",
        period="24",
        planned="0",
        actual="0",
    ) -> MachineLog:
        return self._save(MachineLog(
            tenant_id=tenant_id,
            machine_id=machine.id,
            log_date=log_date,
            runtime_hours=Decimal(runtime),
            downtime_hours=Decimal(downtime),
            period_hours=Decimal(period),
            planned_quantity=Decimal(planned),
            actual_quantity=Decimal(actual),
        ))

    def invoice(
        self,
        tenant_id,
        invoice_date: date,
        total="0",
        region: Optional[str] = None,
        status: InvoiceStatus = InvoiceStatus.SENT,
        lines: Iterable[dict] = (),
    ) -> Invoice:
        invoice = Invoice(
            tenant_id=tenant_id,
            invoice_number=f"INV-{uuid4().hex[:8]}",
            customer_name="Customer",
            region=region,
            invoice_date=invoice_date,
            status=status.value,
            total_amount=Decimal(total),
        )
        for line in lines:
            quantity = Decimal(line["quantity"])
            unit_price = Decimal(line["unit_price"])
            unit_cost = line.get("unit_cost")
            invoice.line_items.append(InvoiceLineItem(
                tenant_id=tenant_id,
                product_id=line.get("product_id"),
                description=line.get("description"),
                quantity=quantity,
                unit_price=unit_price,
                line_total=Decimal(line.get("line_total", quantity * unit_price)),
                unit_cost=Decimal(unit_cost) if unit_cost is not None else None,
            ))
        return self._save(invoice)


@pytest.fixture
def factory(db):
    return DataFactory(db)


@pytest.fixture
def tenant(factory):
    return factory.company(name="Sunrise Textiles")


@pytest.fixture
def other_tenant(factory):
    return factory.company(name="Blue River Mills")
