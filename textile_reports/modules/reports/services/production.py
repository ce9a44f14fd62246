"""
Production Report Builders

Machine efficiency and production attainment from machine logs.
"""

from decimal import Decimal
from typing import Dict, List, Optional

from textile_reports.modules.reports.schemas import ReportKind, ReportWindow
from textile_reports.modules.reports.services.aggregator import COUNT, aggregate
from textile_reports.modules.reports.services.base import (
    BaseReportBuilder, ReportContext, ReportOutput
)
from textile_reports.modules.reports.services.reader import MachineLogRecord, RecordKind
from textile_reports.modules.reports.utils import HUNDRED, ZERO, clamp, safe_divide

LOG_MEASURES = {
    "runtime": lambda log: log.runtime_hours,
    "downtime": lambda log: log.downtime_hours,
    "planned": lambda log: log.planned_quantity,
    "actual": lambda log: log.actual_quantity,
    "logs": COUNT,
}


def efficiency(runtime: Decimal, downtime: Decimal) -> Decimal:
    """
    runtime / (runtime + downtime) * 100, clamped to [0, 100].

    Returns 0 when no hours were logged.
    """
    total = runtime + downtime
    if total <= 0:
        return ZERO
    return clamp(safe_divide(runtime, total) * HUNDRED)


class ProductionEfficiencyBuilder(BaseReportBuilder):
    """Per-machine runtime efficiency over a date range"""

    kind = ReportKind.PRODUCTION_EFFICIENCY
    title = "Production Efficiency"

    def requirements(self, window: ReportWindow) -> Dict[RecordKind, Optional[ReportWindow]]:
        return {RecordKind.MACHINE_LOG: window, RecordKind.MACHINE: None}

    def build(self, ctx: ReportContext) -> ReportOutput:
        machines = {m.id: m for m in ctx.get(RecordKind.MACHINE)}
        logs: List[MachineLogRecord] = ctx.get(RecordKind.MACHINE_LOG)
        groups = aggregate(logs, lambda log: log.machine_id, LOG_MEASURES)

        rows = []
        for machine_id, totals in groups.items():
            machine = machines.get(machine_id)
            rows.append({
                "machine_id": machine_id,
                "machine_code": machine.machine_code if machine else None,
                "machine_name": machine.name if machine else "Unknown Machine",
                "location": machine.location if machine else None,
                "log_count": int(totals["logs"]),
                "runtime_hours": ctx.qty(totals["runtime"]),
                "downtime_hours": ctx.qty(totals["downtime"]),
                "efficiency": ctx.pct(efficiency(totals["runtime"], totals["downtime"])),
                "planned_quantity": ctx.qty(totals["planned"]),
                "actual_quantity": ctx.qty(totals["actual"]),
            })
        rows.sort(key=lambda r: (r["machine_code"] is None, r["machine_code"] or "", str(r["machine_id"])))

        total_runtime = sum((g["runtime"] for g in groups.values()), ZERO)
        total_downtime = sum((g["downtime"] for g in groups.values()), ZERO)
        planned = sum((g["planned"] for g in groups.values()), ZERO)
        actual = sum((g["actual"] for g in groups.values()), ZERO)

        return ReportOutput(
            summary={
                "overall_efficiency": ctx.pct(efficiency(total_runtime, total_downtime)),
                "total_runtime_hours": ctx.qty(total_runtime),
                "total_downtime_hours": ctx.qty(total_downtime),
                "machines_reported": len(rows),
                "planned_production": ctx.qty(planned),
                "actual_production": ctx.qty(actual),
                "production_attainment": ctx.pct(safe_divide(actual, planned) * HUNDRED),
            },
            rows=rows,
            breakdowns={"daily_efficiency": self._daily_efficiency(ctx, logs)},
        )

    def _daily_efficiency(self, ctx: ReportContext, logs: List[MachineLogRecord]) -> List[Dict]:
        groups = aggregate(logs, lambda log: log.log_date, LOG_MEASURES)
        return [
            {
                "date": day,
                "runtime_hours": ctx.qty(groups[day]["runtime"]),
                "downtime_hours": ctx.qty(groups[day]["downtime"]),
                "efficiency": ctx.pct(efficiency(groups[day]["runtime"], groups[day]["downtime"])),
            }
            for day in sorted(groups)
        ]
