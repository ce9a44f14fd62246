"""
Celery tasks for background report generation.
"""
import logging
from typing import Any, Dict, Optional

from textile_reports.core.celery import celery_app
from textile_reports.modules.reports.exceptions import ReportError
from textile_reports.modules.reports.services.engine import get_report_engine

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="reports.generate_report")
def generate_report_task(
    self,
    tenant_id: str,
    report_kind: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    as_of_date: Optional[str] = None,
    options: Optional[Dict[str, Any]] = None,
    refresh: bool = False,
):
    """
    Generate a report in the background.

    Dates are ISO strings. Engine failures, timeouts included, are returned
    as a failed result; retrying is left to whoever enqueued the task.
    """
    try:
        result = get_report_engine().generate_report(
            tenant_id,
            report_kind,
            start_date=start_date,
            end_date=end_date,
            as_of_date=as_of_date,
            options=options,
            refresh=refresh,
        )
        logger.info(f"Background {report_kind} report generated for tenant {tenant_id} (task {self.request.id})")
        return {"status": "success", "report": result.model_dump(mode="json")}

    except ReportError as exc:
        logger.error(f"Background {report_kind} report failed for tenant {tenant_id}: {exc}")
        return {"status": "failed", "error_type": type(exc).__name__, "error": str(exc)}
