"""
Base builder class for Reports module

Provides the context shared by all report builders: the resolved tenant,
the normalized window and options, the records fetched for the report and
the rounding helpers bound to the tenant currency.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from textile_reports.core.config import settings
from textile_reports.modules.reports.schemas import ReportKind, ReportOptions, ReportWindow
from textile_reports.modules.reports.services.classifier import Account, AccountClassifier
from textile_reports.modules.reports.services.reader import RecordKind, TenantInfo
from textile_reports.modules.reports.utils import (
    percentage, quantize_money, quantize_percent, quantize_quantity
)


@dataclass
class ReportContext:
    tenant: TenantInfo
    kind: ReportKind
    window: ReportWindow
    options: ReportOptions
    records: Dict[RecordKind, list]
    classifier: AccountClassifier
    accounts: Dict[str, Account] = field(default_factory=dict)

    @property
    def currency(self) -> str:
        return self.tenant.currency

    def money(self, value) -> Decimal:
        return quantize_money(value, self.currency)

    def qty(self, value) -> Decimal:
        return quantize_quantity(value)

    def pct(self, value) -> Decimal:
        return quantize_percent(value)

    def share(self, part, total) -> Decimal:
        return percentage(part, total)

    def get(self, kind: RecordKind) -> list:
        return self.records.get(kind, [])

    @property
    def critical_fraction(self) -> Decimal:
        if self.options.critical_threshold_fraction is not None:
            return self.options.critical_threshold_fraction
        return settings.LOW_STOCK_CRITICAL_FRACTION


@dataclass
class ReportOutput:
    summary: Dict[str, Any] = field(default_factory=dict)
    rows: List[Dict[str, Any]] = field(default_factory=list)
    breakdowns: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)


class BaseReportBuilder:
    """Base class for all report builders"""

    kind: ReportKind
    title: str = ""

    def requirements(self, window: ReportWindow) -> Dict[RecordKind, Optional[ReportWindow]]:
        """Record kinds this builder reads, each with the window to read it over"""
        raise NotImplementedError

    def build(self, ctx: ReportContext) -> ReportOutput:
        raise NotImplementedError

    def _product_name(self, products: Dict, product_id) -> str:
        product = products.get(product_id)
        return product.name if product else "Unknown Product"
