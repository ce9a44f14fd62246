"""
Pydantic schemas for the Reports module

Defines the report kind catalogue, request options and the report result
returned by the engine and by every report endpoint.
"""

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator


class ReportKind(str, enum.Enum):
    """Closed set of report kinds. Each one maps to exactly one builder."""
    TRIAL_BALANCE = "trial_balance"
    PROFIT_LOSS = "profit_loss"
    BALANCE_SHEET = "balance_sheet"
    CASH_FLOW = "cash_flow"
    STOCK_VALUATION = "stock_valuation"
    LOW_STOCK = "low_stock"
    INVENTORY_MOVEMENT = "inventory_movement"
    SALES_BY_REGION = "sales_by_region"
    PRODUCT_PERFORMANCE = "product_performance"
    PRODUCTION_EFFICIENCY = "production_efficiency"

    @property
    def takes_as_of_date(self) -> bool:
        return self in AS_OF_KINDS

    @property
    def is_financial(self) -> bool:
        return self in FINANCIAL_KINDS


AS_OF_KINDS = frozenset({ReportKind.BALANCE_SHEET, ReportKind.STOCK_VALUATION})

FINANCIAL_KINDS = frozenset({
    ReportKind.TRIAL_BALANCE,
    ReportKind.PROFIT_LOSS,
    ReportKind.BALANCE_SHEET,
    ReportKind.CASH_FLOW,
})


class PriceBasis(str, enum.Enum):
    COST = "cost"
    SELLING = "selling"


class ReportWindow(BaseModel):
    """
    Closed date window [start_date, end_date].

    ``start_date`` is None for as-of reports, which cover every record up to
    and including ``end_date``.
    """
    start_date: Optional[date] = Field(None, description="Inclusive start, None for as-of reports")
    end_date: date = Field(..., description="Inclusive end (or the as-of date)")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_order(self):
        if self.start_date is not None and self.start_date > self.end_date:
            raise ValueError("end_date must be greater than or equal to start_date")
        return self

    def contains(self, value: date) -> bool:
        if self.start_date is not None and value < self.start_date:
            return False
        return value <= self.end_date

    @property
    def key(self) -> tuple:
        return (
            self.start_date.isoformat() if self.start_date else None,
            self.end_date.isoformat(),
        )


class ReportOptions(BaseModel):
    """Per-request knobs shared by all report kinds. Unused options are ignored."""
    location: Optional[str] = Field(None, description="Restrict inventory reports to one location")
    price_basis: PriceBasis = Field(PriceBasis.COST, description="Unit price used for stock valuation")
    critical_threshold_fraction: Optional[Decimal] = Field(
        None, ge=0, le=1, description="Low stock CRITICAL threshold as a fraction of the reorder level"
    )

    model_config = {"frozen": True}

    @field_validator("location")
    @classmethod
    def normalize_location(cls, v):
        if v is not None:
            v = v.strip()
            return v or None
        return v

    @property
    def key(self) -> tuple:
        return (
            self.location,
            self.price_basis.value,
            str(self.critical_threshold_fraction) if self.critical_threshold_fraction is not None else None,
        )


class DiagnosticCode(str, enum.Enum):
    UNBALANCED = "UNBALANCED"
    OUT_OF_BOUNDS = "OUT_OF_BOUNDS"


class Diagnostic(BaseModel):
    """Post-hoc invariant violation attached to a computed report."""
    code: DiagnosticCode
    check: str = Field(description="Name of the failed check")
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class ReportResult(BaseModel):
    """Report returned by the engine. Ephemeral: computed on demand, optionally cached."""
    report_kind: ReportKind
    tenant_id: UUID
    currency: str
    window: ReportWindow
    as_of_date: Optional[date] = None
    summary: Dict[str, Any] = Field(default_factory=dict)
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    breakdowns: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    diagnostics: List[Diagnostic] = Field(default_factory=list)
    generated_at: datetime
    data_version: int = 0
    cached: bool = False

    @property
    def is_consistent(self) -> bool:
        return not self.diagnostics

    def has_diagnostic(self, code: DiagnosticCode) -> bool:
        return any(d.code == code for d in self.diagnostics)


class ReportKindInfo(BaseModel):
    """Catalogue entry for one report kind"""
    kind: ReportKind
    title: str
    takes_as_of_date: bool
    financial: bool


class CacheInvalidationResponse(BaseModel):
    tenant_id: UUID
    evicted_entries: int
    data_version: int
