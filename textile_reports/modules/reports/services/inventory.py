"""
Inventory Report Builders

Handles stock valuation, low stock alerts and inventory movement reports.
Stock on hand is always derived from the signed stock movements.
"""

from decimal import Decimal
from typing import Dict, List, Optional

from textile_reports.modules.reports.schemas import PriceBasis, ReportKind, ReportWindow
from textile_reports.modules.reports.services.aggregator import COUNT, aggregate
from textile_reports.modules.reports.services.base import (
    BaseReportBuilder, ReportContext, ReportOutput
)
from textile_reports.modules.reports.services.reader import RecordKind, StockMovementRecord
from textile_reports.modules.reports.utils import ZERO, safe_divide


class InventoryBuilderMixin:
    """Helpers shared by the inventory builders"""

    def _movements(self, ctx: ReportContext) -> List[StockMovementRecord]:
        movements = ctx.get(RecordKind.STOCK_MOVEMENT)
        location = ctx.options.location
        if location:
            movements = [m for m in movements if (m.location or "").strip() == location]
        return movements

    def _products(self, ctx: ReportContext) -> Dict:
        return {p.id: p for p in ctx.get(RecordKind.PRODUCT)}

    def _on_hand(self, movements: List[StockMovementRecord]) -> Dict:
        groups = aggregate(movements, lambda m: m.product_id, {"quantity": lambda m: m.quantity})
        return {product_id: totals["quantity"] for product_id, totals in groups.items()}


class StockValuationBuilder(InventoryBuilderMixin, BaseReportBuilder):
    """Quantity on hand and its value per product as of a date"""

    kind = ReportKind.STOCK_VALUATION
    title = "Stock Valuation"

    def requirements(self, window: ReportWindow) -> Dict[RecordKind, Optional[ReportWindow]]:
        return {
            RecordKind.STOCK_MOVEMENT: ReportWindow(start_date=None, end_date=window.end_date),
            RecordKind.PRODUCT: None,
        }

    def build(self, ctx: ReportContext) -> ReportOutput:
        products = self._products(ctx)
        on_hand = self._on_hand(self._movements(ctx))
        use_selling = ctx.options.price_basis == PriceBasis.SELLING

        rows = []
        total_value = ZERO
        total_items = ZERO
        for product in sorted(products.values(), key=lambda p: p.product_code):
            quantity = ctx.qty(on_hand.get(product.id, ZERO))
            if quantity == 0:
                continue
            unit_price = product.selling_price if use_selling else product.cost_price
            value = ctx.money(quantity * unit_price)
            total_value += value
            total_items += quantity
            rows.append({
                "product_id": product.id,
                "product_code": product.product_code,
                "product_name": product.name,
                "category": product.category or "Uncategorized",
                "unit_of_measure": product.unit_of_measure,
                "quantity": quantity,
                "unit_price": ctx.money(unit_price),
                "total_value": value,
            })

        categories = aggregate(rows, lambda r: r["category"], {
            "quantity": lambda r: r["quantity"],
            "total_value": lambda r: r["total_value"],
            "products": COUNT,
        })
        by_category = [
            {
                "category": name,
                "products": int(categories[name]["products"]),
                "quantity": ctx.qty(categories[name]["quantity"]),
                "total_value": ctx.money(categories[name]["total_value"]),
                "percentage": ctx.share(categories[name]["total_value"], total_value),
            }
            for name in sorted(categories)
        ]

        return ReportOutput(
            summary={
                "total_value": ctx.money(total_value),
                "total_items": ctx.qty(total_items),
                "products_in_stock": len(rows),
                "average_value_per_item": ctx.money(safe_divide(total_value, total_items)),
                "price_basis": ctx.options.price_basis.value,
                "location": ctx.options.location,
            },
            rows=rows,
            breakdowns={"by_category": by_category},
        )


class LowStockBuilder(InventoryBuilderMixin, BaseReportBuilder):
    """
    Products whose stock at the end of the window is below reorder level.

    Stock is evaluated from every movement up to the window end. A product
    is CRITICAL when its stock is at or below reorder_level times the
    critical threshold fraction, otherwise WARNING.
    """

    kind = ReportKind.LOW_STOCK
    title = "Low Stock Alert"

    def requirements(self, window: ReportWindow) -> Dict[RecordKind, Optional[ReportWindow]]:
        return {
            RecordKind.STOCK_MOVEMENT: ReportWindow(start_date=None, end_date=window.end_date),
            RecordKind.PRODUCT: None,
        }

    def build(self, ctx: ReportContext) -> ReportOutput:
        products = self._products(ctx)
        on_hand = self._on_hand(self._movements(ctx))
        fraction = ctx.critical_fraction

        rows = []
        for product in products.values():
            current_stock = ctx.qty(on_hand.get(product.id, ZERO))
            reorder_level = ctx.qty(product.reorder_level)
            if current_stock >= reorder_level:
                continue
            shortage = max(ZERO, reorder_level - current_stock)
            critical = current_stock <= reorder_level * fraction
            rows.append({
                "product_id": product.id,
                "product_code": product.product_code,
                "product_name": product.name,
                "category": product.category or "Uncategorized",
                "current_stock": current_stock,
                "reorder_level": reorder_level,
                "reorder_quantity": ctx.qty(product.reorder_quantity),
                "shortage": ctx.qty(shortage),
                "status": "CRITICAL" if critical else "WARNING",
            })

        rows.sort(key=lambda r: (r["status"] != "CRITICAL", -r["shortage"], r["product_code"]))
        critical_items = sum(1 for r in rows if r["status"] == "CRITICAL")

        return ReportOutput(
            summary={
                "total_low_stock_items": len(rows),
                "critical_items": critical_items,
                "warning_items": len(rows) - critical_items,
                "total_shortage": ctx.qty(sum((r["shortage"] for r in rows), ZERO)),
                "critical_threshold_fraction": fraction,
                "location": ctx.options.location,
            },
            rows=rows,
        )


class InventoryMovementBuilder(InventoryBuilderMixin, BaseReportBuilder):
    """Incoming, outgoing and net stock movement per product over a date range"""

    kind = ReportKind.INVENTORY_MOVEMENT
    title = "Inventory Movement"

    MEASURES = {
        "incoming": lambda m: m.quantity if m.quantity > 0 else ZERO,
        "outgoing": lambda m: -m.quantity if m.quantity < 0 else ZERO,
        "value_change": lambda m: m.quantity * m.unit_cost,
        "movements": COUNT,
    }

    def requirements(self, window: ReportWindow) -> Dict[RecordKind, Optional[ReportWindow]]:
        return {RecordKind.STOCK_MOVEMENT: window, RecordKind.PRODUCT: None}

    def build(self, ctx: ReportContext) -> ReportOutput:
        movements = self._movements(ctx)
        products = self._products(ctx)
        groups = aggregate(movements, lambda m: m.product_id, self.MEASURES)

        rows = []
        total_incoming = ZERO
        total_outgoing = ZERO
        total_value_change = ZERO
        for product_id, totals in groups.items():
            product = products.get(product_id)
            incoming = ctx.qty(totals["incoming"])
            outgoing = ctx.qty(totals["outgoing"])
            value_change = ctx.money(totals["value_change"])
            total_incoming += incoming
            total_outgoing += outgoing
            total_value_change += value_change
            rows.append({
                "product_id": product_id,
                "product_code": product.product_code if product else None,
                "product_name": self._product_name(products, product_id),
                "movement_count": int(totals["movements"]),
                "incoming": incoming,
                "outgoing": outgoing,
                "net_change": incoming - outgoing,
                "value_change": value_change,
            })
        rows.sort(key=lambda r: (r["product_code"] is None, r["product_code"] or "", str(r["product_id"])))

        return ReportOutput(
            summary={
                "total_movements": len(movements),
                "products_moved": len(rows),
                "incoming": ctx.qty(total_incoming),
                "outgoing": ctx.qty(total_outgoing),
                "net_change": ctx.qty(total_incoming - total_outgoing),
                "value_change": ctx.money(total_value_change),
                "location": ctx.options.location,
            },
            rows=rows,
            breakdowns={
                "by_movement_type": self._by_movement_type(ctx, movements),
                "daily_trend": self._daily_trend(ctx, movements),
            },
        )

    def _by_movement_type(self, ctx: ReportContext, movements: List[StockMovementRecord]) -> List[Dict]:
        groups = aggregate(movements, lambda m: m.movement_type, {
            "quantity": lambda m: m.quantity,
            "movements": COUNT,
        })
        return [
            {
                "movement_type": movement_type,
                "movement_count": int(groups[movement_type]["movements"]),
                "quantity": ctx.qty(groups[movement_type]["quantity"]),
            }
            for movement_type in sorted(groups)
        ]

    def _daily_trend(self, ctx: ReportContext, movements: List[StockMovementRecord]) -> List[Dict]:
        groups = aggregate(movements, lambda m: m.movement_date, self.MEASURES)
        trend = []
        for day in sorted(groups):
            incoming = ctx.qty(groups[day]["incoming"])
            outgoing = ctx.qty(groups[day]["outgoing"])
            trend.append({
                "date": day,
                "incoming": incoming,
                "outgoing": outgoing,
                "net_change": incoming - outgoing,
            })
        return trend


def signed_total(movements: List[StockMovementRecord]) -> Decimal:
    return sum((m.quantity for m in movements), ZERO)
