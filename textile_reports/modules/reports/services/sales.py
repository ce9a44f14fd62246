"""
Sales Report Builders

Handles sales by region and product performance reports. Draft and
cancelled invoices never count as sales.
"""

from decimal import Decimal
from typing import Dict, List, Optional

from textile_reports.modules.invoices.models import InvoiceStatus
from textile_reports.modules.reports.schemas import ReportKind, ReportWindow
from textile_reports.modules.reports.services.aggregator import COUNT, aggregate
from textile_reports.modules.reports.services.base import (
    BaseReportBuilder, ReportContext, ReportOutput
)
from textile_reports.modules.reports.services.reader import InvoiceLineRecord, RecordKind
from textile_reports.modules.reports.utils import ZERO, safe_divide

EXCLUDED_STATUSES = frozenset({InvoiceStatus.DRAFT.value, InvoiceStatus.CANCELLED.value})

UNKNOWN_REGION = "Unknown"


def _region(invoice) -> str:
    region = (invoice.region or "").strip()
    return region or UNKNOWN_REGION


class SalesByRegionBuilder(BaseReportBuilder):
    """Invoice revenue and order count per customer region"""

    kind = ReportKind.SALES_BY_REGION
    title = "Sales by Region"

    def requirements(self, window: ReportWindow) -> Dict[RecordKind, Optional[ReportWindow]]:
        return {RecordKind.INVOICE: window}

    def build(self, ctx: ReportContext) -> ReportOutput:
        invoices = [
            i for i in ctx.get(RecordKind.INVOICE)
            if i.status not in EXCLUDED_STATUSES
        ]
        groups = aggregate(invoices, _region, {
            "revenue": lambda i: i.total_amount,
            "orders": COUNT,
        })

        total_revenue = ctx.money(sum((g["revenue"] for g in groups.values()), ZERO))
        rows = []
        for region, totals in groups.items():
            revenue = ctx.money(totals["revenue"])
            orders = int(totals["orders"])
            rows.append({
                "region": region,
                "revenue": revenue,
                "order_count": orders,
                "average_order_value": ctx.money(safe_divide(revenue, orders)),
                "percentage": ctx.share(revenue, total_revenue),
            })
        rows.sort(key=lambda r: (-r["revenue"], r["region"]))

        return ReportOutput(
            summary={
                "total_revenue": total_revenue,
                "total_orders": len(invoices),
                "region_count": len(rows),
                "average_order_value": ctx.money(safe_divide(total_revenue, len(invoices))),
                "top_region": rows[0]["region"] if rows else None,
            },
            rows=rows,
        )


class ProductPerformanceBuilder(BaseReportBuilder):
    """
    Quantity, revenue, cost and profit per product from invoice lines.

    Line cost uses the unit cost captured on the line and falls back to
    the product's current cost price.
    """

    kind = ReportKind.PRODUCT_PERFORMANCE
    title = "Product Performance"

    def requirements(self, window: ReportWindow) -> Dict[RecordKind, Optional[ReportWindow]]:
        return {RecordKind.INVOICE_LINE: window, RecordKind.PRODUCT: None}

    def build(self, ctx: ReportContext) -> ReportOutput:
        products = {p.id: p for p in ctx.get(RecordKind.PRODUCT)}
        lines = [
            line for line in ctx.get(RecordKind.INVOICE_LINE)
            if line.invoice_status not in EXCLUDED_STATUSES
        ]

        def line_cost(line: InvoiceLineRecord) -> Decimal:
            unit_cost = line.unit_cost
            if unit_cost is None:
                product = products.get(line.product_id)
                unit_cost = product.cost_price if product else ZERO
            return line.quantity * unit_cost

        groups = aggregate(lines, lambda line: line.product_id, {
            "quantity": lambda line: line.quantity,
            "revenue": lambda line: line.line_total,
            "cost": line_cost,
            "lines": COUNT,
        })

        rows = []
        for product_id, totals in groups.items():
            product = products.get(product_id)
            revenue = ctx.money(totals["revenue"])
            cost = ctx.money(totals["cost"])
            profit = revenue - cost
            rows.append({
                "product_id": product_id,
                "product_code": product.product_code if product else None,
                "product_name": product.name if product else ("Unassigned" if product_id is None else "Unknown Product"),
                "category": (product.category if product else None) or "Uncategorized",
                "quantity": ctx.qty(totals["quantity"]),
                "revenue": revenue,
                "cost": cost,
                "profit": profit,
                "profit_margin": ctx.share(profit, revenue),
                "line_count": int(totals["lines"]),
            })
        rows.sort(key=lambda r: (-r["revenue"], r["product_code"] or "", str(r["product_id"])))
        for rank, row in enumerate(rows, start=1):
            row["rank"] = rank

        total_revenue = sum((r["revenue"] for r in rows), ZERO)
        total_cost = sum((r["cost"] for r in rows), ZERO)
        total_profit = total_revenue - total_cost

        return ReportOutput(
            summary={
                "total_revenue": ctx.money(total_revenue),
                "total_cost": ctx.money(total_cost),
                "total_profit": ctx.money(total_profit),
                "average_profit_margin": ctx.share(total_profit, total_revenue),
                "products_analyzed": len(rows),
                "top_product": rows[0]["product_name"] if rows else None,
            },
            rows=rows,
            breakdowns={"category_performance": self._category_performance(ctx, rows, total_revenue)},
        )

    def _category_performance(self, ctx: ReportContext, rows: List[Dict], total_revenue: Decimal) -> List[Dict]:
        groups = aggregate(rows, lambda r: r["category"], {
            "revenue": lambda r: r["revenue"],
            "profit": lambda r: r["profit"],
            "products": COUNT,
        })
        result = [
            {
                "category": category,
                "products": int(totals["products"]),
                "revenue": ctx.money(totals["revenue"]),
                "profit": ctx.money(totals["profit"]),
                "percentage": ctx.share(totals["revenue"], total_revenue),
            }
            for category, totals in groups.items()
        ]
        result.sort(key=lambda c: (-c["revenue"], c["category"]))
        return result
