"""
Reports Router

FastAPI router exposing the report engine. Contains no aggregation logic:
it parses the request, calls the engine and maps engine failures to HTTP
status codes.
"""

from datetime import date
from decimal import Decimal
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from textile_reports.dependencies.companyDependencies import TenantId
from ..exceptions import (
    EmptyWindow,
    InvalidReportOptions,
    ReportCancelled,
    ReportError,
    ReportTimeout,
    ScopeViolation,
    UnknownAccount,
    UnsupportedReportKind,
)
from ..schemas import (
    CacheInvalidationResponse,
    PriceBasis,
    ReportKindInfo,
    ReportOptions,
    ReportResult,
)
from ..services.engine import ReportEngine, get_report_engine


router = APIRouter(prefix="/reports", tags=["Reports"])

ReportEngineDep = Annotated[ReportEngine, Depends(get_report_engine)]

ERROR_STATUS = (
    (ScopeViolation, status.HTTP_400_BAD_REQUEST),
    (EmptyWindow, status.HTTP_400_BAD_REQUEST),
    (InvalidReportOptions, status.HTTP_400_BAD_REQUEST),
    (UnsupportedReportKind, status.HTTP_404_NOT_FOUND),
    (UnknownAccount, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ReportTimeout, status.HTTP_504_GATEWAY_TIMEOUT),
    (ReportCancelled, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def to_http_exception(error: ReportError) -> HTTPException:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Error generating report: {error}"
    )


@router.get("", response_model=List[ReportKindInfo])
def list_report_kinds():
    """List the supported report kinds."""
    return ReportEngine.catalogue()


@router.post("/cache/invalidate", response_model=CacheInvalidationResponse)
def invalidate_report_cache(
    tenant_id: TenantId,
    engine: ReportEngineDep,
):
    """Drop every cached report of the current company."""
    try:
        return CacheInvalidationResponse(**engine.invalidate_tenant(tenant_id))
    except ReportError as e:
        raise to_http_exception(e)


@router.get("/{report_kind}", response_model=ReportResult)
def get_report(
    report_kind: str,
    tenant_id: TenantId,
    engine: ReportEngineDep,
    start_date: Optional[date] = Query(None, description="Start of the report period (inclusive)"),
    end_date: Optional[date] = Query(None, description="End of the report period (inclusive)"),
    as_of_date: Optional[date] = Query(None, description="As-of date for balance sheet and stock valuation"),
    location: Optional[str] = Query(None, description="Restrict inventory reports to one location"),
    price_basis: PriceBasis = Query(PriceBasis.COST, description="Unit price used for stock valuation"),
    critical_threshold_fraction: Optional[Decimal] = Query(
        None, ge=0, le=1, description="Low stock CRITICAL threshold as a fraction of reorder level"
    ),
    refresh: bool = Query(False, description="Bypass the report cache"),
):
    """Generate one report for the current company."""
    options = ReportOptions(
        location=location,
        price_basis=price_basis,
        critical_threshold_fraction=critical_threshold_fraction,
    )
    try:
        return engine.generate_report(
            tenant_id,
            report_kind,
            start_date=start_date,
            end_date=end_date,
            as_of_date=as_of_date,
            options=options,
            refresh=refresh,
        )
    except ReportError as e:
        raise to_http_exception(e)
