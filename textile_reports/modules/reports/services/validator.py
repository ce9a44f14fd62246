"""
Invariant validator for built reports.

Checks run after a builder has assembled its output. Violations never
discard the report: they are attached to it as diagnostics.
"""

import logging
from typing import Callable, Dict, List

from textile_reports.core.config import settings
from textile_reports.modules.reports.schemas import Diagnostic, DiagnosticCode, ReportKind
from textile_reports.modules.reports.services.base import ReportContext, ReportOutput
from textile_reports.modules.reports.services.inventory import signed_total
from textile_reports.modules.reports.services.reader import RecordKind
from textile_reports.modules.reports.utils import HUNDRED, ZERO

logger = logging.getLogger(__name__)

# Cap on record ids listed in one diagnostic
MAX_LISTED_IDS = 50

Check = Callable[[ReportContext, ReportOutput], List[Diagnostic]]


def _unbalanced(check: str, message: str, **details) -> Diagnostic:
    return Diagnostic(code=DiagnosticCode.UNBALANCED, check=check, message=message, details=details)


def _out_of_bounds(check: str, message: str, **details) -> Diagnostic:
    return Diagnostic(code=DiagnosticCode.OUT_OF_BOUNDS, check=check, message=message, details=details)


def _ids(records) -> List[str]:
    return [str(r) for r in records][:MAX_LISTED_IDS]


def _check_percentages(rows: List[Dict], field: str, label: str, enforce_sum: bool) -> List[Diagnostic]:
    diagnostics = []
    outside = [r for r in rows if not (ZERO <= r[field] <= HUNDRED)]
    if outside:
        diagnostics.append(_out_of_bounds(
            f"{label}_percentage_bounds",
            f"{len(outside)} {label} percentage(s) outside [0, 100]",
            values=[str(r[field]) for r in outside],
        ))
    if enforce_sum and rows:
        total = sum((r[field] for r in rows), ZERO)
        tolerance = settings.REGION_PERCENT_TOLERANCE
        if abs(total - HUNDRED) > tolerance:
            diagnostics.append(_out_of_bounds(
                f"{label}_percentage_sum",
                f"{label} percentages sum to {total}, expected 100 +/- {tolerance}",
                total=str(total),
                tolerance=str(tolerance),
            ))
    return diagnostics


def check_malformed_entries(ctx: ReportContext, output: ReportOutput) -> List[Diagnostic]:
    malformed = [e.id for e in ctx.get(RecordKind.LEDGER_ENTRY) if not ctx.classifier.is_well_formed(e)]
    if not malformed:
        return []
    return [_out_of_bounds(
        "well_formed_entries",
        f"{len(malformed)} ledger entr{'y' if len(malformed) == 1 else 'ies'} without exactly one non-negative side",
        entry_ids=_ids(malformed),
    )]


def check_trial_balance(ctx: ReportContext, output: ReportOutput) -> List[Diagnostic]:
    diagnostics = []
    difference = output.summary["difference"]
    if not output.summary["is_balanced"]:
        diagnostics.append(_unbalanced(
            "debits_equal_credits",
            f"Total debits differ from total credits by {difference}",
            total_debits=str(output.summary["total_debits"]),
            total_credits=str(output.summary["total_credits"]),
            difference=str(difference),
        ))
    return diagnostics + check_malformed_entries(ctx, output)


def check_balance_sheet(ctx: ReportContext, output: ReportOutput) -> List[Diagnostic]:
    diagnostics = []
    difference = output.summary["difference"]
    if not output.summary["is_balanced"]:
        diagnostics.append(_unbalanced(
            "assets_equal_liabilities_and_equity",
            f"Assets differ from liabilities and equity by {difference}",
            total_assets=str(output.summary["total_assets"]),
            total_liabilities_and_equity=str(output.summary["total_liabilities_and_equity"]),
            difference=str(difference),
        ))
    return diagnostics + check_malformed_entries(ctx, output)


def check_cash_flow(ctx: ReportContext, output: ReportOutput) -> List[Diagnostic]:
    diagnostics = []
    summary = output.summary
    attributed = (
        summary["operating_activities"]
        + summary["investing_activities"]
        + summary["financing_activities"]
    )
    if not summary["is_reconciled"]:
        diagnostics.append(_unbalanced(
            "activities_equal_net_cash_flow",
            f"Activities total {attributed} but net cash flow is {summary['net_cash_flow']}",
            attributed=str(attributed),
            net_cash_flow=str(summary["net_cash_flow"]),
            unexplained=str(summary["unexplained_cash"]),
        ))
    return diagnostics + check_malformed_entries(ctx, output)


def check_stock_valuation(ctx: ReportContext, output: ReportOutput) -> List[Diagnostic]:
    negative = [r for r in output.rows if r["quantity"] < 0]
    if not negative:
        return []
    return [_out_of_bounds(
        "non_negative_stock",
        f"{len(negative)} product(s) with negative quantity on hand",
        product_codes=[r["product_code"] for r in negative],
    )]


def check_low_stock(ctx: ReportContext, output: ReportOutput) -> List[Diagnostic]:
    diagnostics = []
    negative_shortage = [r for r in output.rows if r["shortage"] < 0]
    if negative_shortage:
        diagnostics.append(_out_of_bounds(
            "non_negative_shortage",
            f"{len(negative_shortage)} product(s) with negative shortage",
            product_codes=[r["product_code"] for r in negative_shortage],
        ))
    negative_stock = [r for r in output.rows if r["current_stock"] < 0]
    if negative_stock:
        diagnostics.append(_out_of_bounds(
            "non_negative_stock",
            f"{len(negative_stock)} product(s) with negative stock",
            product_codes=[r["product_code"] for r in negative_stock],
        ))
    return diagnostics


def check_inventory_movement(ctx: ReportContext, output: ReportOutput) -> List[Diagnostic]:
    diagnostics = []
    movements = ctx.get(RecordKind.STOCK_MOVEMENT)
    if ctx.options.location:
        movements = [m for m in movements if (m.location or "").strip() == ctx.options.location]

    by_product: Dict = {}
    for movement in movements:
        by_product.setdefault(movement.product_id, []).append(movement)

    mismatched = []
    for row in output.rows:
        raw = ctx.qty(signed_total(by_product.get(row["product_id"], [])))
        if row["net_change"] != raw:
            mismatched.append(str(row["product_id"]))
    if mismatched:
        diagnostics.append(_unbalanced(
            "product_net_change",
            f"Net change differs from signed movement total for {len(mismatched)} product(s)",
            product_ids=mismatched[:MAX_LISTED_IDS],
        ))

    overall = ctx.qty(signed_total(movements))
    if output.summary["net_change"] != overall:
        diagnostics.append(_unbalanced(
            "overall_net_change",
            f"Net change {output.summary['net_change']} differs from signed movement total {overall}",
            net_change=str(output.summary["net_change"]),
            signed_total=str(overall),
        ))
    return diagnostics


def check_sales_by_region(ctx: ReportContext, output: ReportOutput) -> List[Diagnostic]:
    enforce_sum = output.summary["total_revenue"] > 0
    return _check_percentages(output.rows, "percentage", "region", enforce_sum)


def check_product_performance(ctx: ReportContext, output: ReportOutput) -> List[Diagnostic]:
    categories = output.breakdowns.get("category_performance", [])
    enforce_sum = output.summary["total_revenue"] > 0
    return _check_percentages(categories, "percentage", "category", enforce_sum)


def check_production_efficiency(ctx: ReportContext, output: ReportOutput) -> List[Diagnostic]:
    diagnostics = []
    logs = ctx.get(RecordKind.MACHINE_LOG)

    over_period = [
        log for log in logs
        if log.runtime_hours + log.downtime_hours > log.period_hours
    ]
    if over_period:
        diagnostics.append(_out_of_bounds(
            "hours_within_period",
            f"{len(over_period)} machine log(s) record more hours than their period",
            log_ids=_ids(log.id for log in over_period),
        ))

    negative = [log for log in logs if log.runtime_hours < 0 or log.downtime_hours < 0]
    if negative:
        diagnostics.append(_out_of_bounds(
            "non_negative_hours",
            f"{len(negative)} machine log(s) with negative hours",
            log_ids=_ids(log.id for log in negative),
        ))

    efficiencies = [r["efficiency"] for r in output.rows] + [output.summary["overall_efficiency"]]
    if any(not (ZERO <= value <= HUNDRED) for value in efficiencies):
        diagnostics.append(_out_of_bounds(
            "efficiency_bounds",
            "Efficiency outside [0, 100]",
        ))
    return diagnostics


CHECKS: Dict[ReportKind, List[Check]] = {
    ReportKind.TRIAL_BALANCE: [check_trial_balance],
    ReportKind.PROFIT_LOSS: [check_malformed_entries],
    ReportKind.BALANCE_SHEET: [check_balance_sheet],
    ReportKind.CASH_FLOW: [check_cash_flow],
    ReportKind.STOCK_VALUATION: [check_stock_valuation],
    ReportKind.LOW_STOCK: [check_low_stock],
    ReportKind.INVENTORY_MOVEMENT: [check_inventory_movement],
    ReportKind.SALES_BY_REGION: [check_sales_by_region],
    ReportKind.PRODUCT_PERFORMANCE: [check_product_performance],
    ReportKind.PRODUCTION_EFFICIENCY: [check_production_efficiency],
}


class InvariantValidator:
    """Runs the per-kind checks for a built report"""

    def __init__(self, checks: Dict[ReportKind, List[Check]] = None):
        self.checks = checks if checks is not None else CHECKS

    def validate(self, ctx: ReportContext, output: ReportOutput) -> List[Diagnostic]:
        diagnostics: List[Diagnostic] = []
        for check in self.checks.get(ctx.kind, []):
            diagnostics.extend(check(ctx, output))
        for diagnostic in diagnostics:
            logger.warning(
                f"Report {ctx.kind.value} for tenant {ctx.tenant.tenant_id}: "
                f"{diagnostic.code.value} {diagnostic.check} - {diagnostic.message}"
            )
        return diagnostics
