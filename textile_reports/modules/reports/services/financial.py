"""
Financial Report Builders

Builds the ledger-based reports: trial balance, profit & loss, balance
sheet and cash flow. Every ledger entry has already been classified
against the chart of accounts when these builders run.
"""

from decimal import Decimal
from typing import Dict, List, Optional

from textile_reports.modules.reports.schemas import ReportKind, ReportWindow
from textile_reports.modules.reports.services.aggregator import COUNT, aggregate, merge
from textile_reports.modules.reports.services.base import (
    BaseReportBuilder, ReportContext, ReportOutput
)
from textile_reports.modules.reports.services.classifier import (
    AccountCategory, AccountType, CashFlowActivity
)
from textile_reports.modules.reports.services.reader import LedgerRecord, RecordKind
from textile_reports.modules.reports.utils import ZERO, month_key

LEDGER_MEASURES = {
    "debit": lambda e: e.debit,
    "credit": lambda e: e.credit,
    "entries": COUNT,
}

CASH_FLOW_ACTIVITIES = (
    CashFlowActivity.OPERATING,
    CashFlowActivity.INVESTING,
    CashFlowActivity.FINANCING,
)


def _by_account(entries: List[LedgerRecord]) -> Dict[str, Dict[str, Decimal]]:
    return aggregate(entries, lambda e: e.account_code.strip(), LEDGER_MEASURES)


class TrialBalanceBuilder(BaseReportBuilder):
    """Per-account debit and credit totals over a date range"""

    kind = ReportKind.TRIAL_BALANCE
    title = "Trial Balance"

    def requirements(self, window: ReportWindow) -> Dict[RecordKind, Optional[ReportWindow]]:
        return {RecordKind.LEDGER_ENTRY: window}

    def build(self, ctx: ReportContext) -> ReportOutput:
        entries = ctx.get(RecordKind.LEDGER_ENTRY)
        groups = _by_account(entries)

        rows = []
        total_debits = ZERO
        total_credits = ZERO
        for code in sorted(groups):
            totals = groups[code]
            if totals["debit"] == 0 and totals["credit"] == 0:
                continue
            account = ctx.accounts[code]
            # Totals run on unrounded amounts; rounding is for presentation only
            total_debits += totals["debit"]
            total_credits += totals["credit"]
            rows.append({
                "account_code": account.code,
                "account_name": account.name,
                "account_type": account.type.value,
                "debit": ctx.money(totals["debit"]),
                "credit": ctx.money(totals["credit"]),
                "balance": ctx.money(ctx.classifier.signed_balance(account, totals["debit"], totals["credit"])),
            })

        malformed = sum(1 for e in entries if not ctx.classifier.is_well_formed(e))
        difference = total_debits - total_credits

        return ReportOutput(
            summary={
                "total_debits": ctx.money(total_debits),
                "total_credits": ctx.money(total_credits),
                "difference": ctx.money(difference),
                "is_balanced": difference == 0,
                "entry_count": len(entries),
                "malformed_entries": malformed,
            },
            rows=rows,
        )


class ProfitLossBuilder(BaseReportBuilder):
    """Revenue, cost of goods sold and operating expenses over a date range"""

    kind = ReportKind.PROFIT_LOSS
    title = "Profit & Loss"

    SECTIONS = (
        ("revenue", AccountCategory.REVENUE),
        ("cost_of_goods_sold", AccountCategory.COST_OF_GOODS_SOLD),
        ("operating_expenses", AccountCategory.OPERATING_EXPENSE),
    )

    def requirements(self, window: ReportWindow) -> Dict[RecordKind, Optional[ReportWindow]]:
        return {RecordKind.LEDGER_ENTRY: window}

    def _section_amount(self, account, debit: Decimal, credit: Decimal) -> Decimal:
        # Revenue is reported credit-positive, expenses debit-positive
        if account.type == AccountType.REVENUE:
            return credit - debit
        return debit - credit

    def build(self, ctx: ReportContext) -> ReportOutput:
        entries = ctx.get(RecordKind.LEDGER_ENTRY)
        groups = _by_account(entries)

        section_rows: Dict[str, List[tuple]] = {name: [] for name, _ in self.SECTIONS}
        section_totals: Dict[str, Decimal] = {name: ZERO for name, _ in self.SECTIONS}
        for code in sorted(groups):
            account = ctx.accounts[code]
            section = next((name for name, cat in self.SECTIONS if cat == account.category), None)
            if section is None:
                continue
            amount = self._section_amount(account, groups[code]["debit"], groups[code]["credit"])
            section_totals[section] += amount
            section_rows[section].append((account, amount))

        rows = []
        for name, _ in self.SECTIONS:
            for account, amount in section_rows[name]:
                rows.append({
                    "section": name,
                    "account_code": account.code,
                    "account_name": account.name,
                    "amount": ctx.money(amount),
                    "percentage": ctx.share(amount, section_totals[name]),
                })

        revenue = section_totals["revenue"]
        cogs = section_totals["cost_of_goods_sold"]
        operating_expenses = section_totals["operating_expenses"]
        gross_profit = revenue - cogs
        net_profit = gross_profit - operating_expenses

        return ReportOutput(
            summary={
                "revenue": ctx.money(revenue),
                "cost_of_goods_sold": ctx.money(cogs),
                "gross_profit": ctx.money(gross_profit),
                "gross_margin": ctx.share(gross_profit, revenue),
                "operating_expenses": ctx.money(operating_expenses),
                "net_profit": ctx.money(net_profit),
                "profit_margin": ctx.share(net_profit, revenue),
            },
            rows=rows,
            breakdowns={"period_comparison": self._period_comparison(ctx, entries)},
        )

    def _period_comparison(self, ctx: ReportContext, entries: List[LedgerRecord]) -> List[Dict]:
        """Monthly revenue, expenses and profit"""
        def revenue(e):
            account = ctx.accounts[e.account_code.strip()]
            return e.credit - e.debit if account.type == AccountType.REVENUE else ZERO

        def expenses(e):
            account = ctx.accounts[e.account_code.strip()]
            return e.debit - e.credit if account.type == AccountType.EXPENSE else ZERO

        months = aggregate(entries, lambda e: month_key(e.entry_date), {
            "revenue": revenue,
            "expenses": expenses,
        })
        result = []
        for period in sorted(months):
            period_revenue = months[period]["revenue"]
            period_expenses = months[period]["expenses"]
            result.append({
                "period": period,
                "revenue": ctx.money(period_revenue),
                "expenses": ctx.money(period_expenses),
                "profit": ctx.money(period_revenue - period_expenses),
            })
        return result


class BalanceSheetBuilder(BaseReportBuilder):
    """Cumulative balances of assets, liabilities and equity as of a date"""

    kind = ReportKind.BALANCE_SHEET
    title = "Balance Sheet"

    SECTION_BY_TYPE = {
        AccountType.ASSET: "assets",
        AccountType.LIABILITY: "liabilities",
        AccountType.EQUITY: "equity",
    }

    def requirements(self, window: ReportWindow) -> Dict[RecordKind, Optional[ReportWindow]]:
        return {RecordKind.LEDGER_ENTRY: ReportWindow(start_date=None, end_date=window.end_date)}

    def build(self, ctx: ReportContext) -> ReportOutput:
        entries = ctx.get(RecordKind.LEDGER_ENTRY)
        groups = _by_account(entries)

        totals = {"assets": ZERO, "liabilities": ZERO, "equity": ZERO}
        rows = []
        current_earnings = ZERO
        for code in sorted(groups):
            account = ctx.accounts[code]
            debit = groups[code]["debit"]
            credit = groups[code]["credit"]

            if account.type == AccountType.REVENUE:
                current_earnings += credit - debit
                continue
            if account.type == AccountType.EXPENSE:
                current_earnings -= debit - credit
                continue

            section = self.SECTION_BY_TYPE[account.type]
            # Contra accounts reduce their section total
            if account.type == AccountType.ASSET:
                amount = debit - credit
            else:
                amount = credit - debit
            if amount == 0:
                continue
            totals[section] += amount
            rows.append({
                "section": section,
                "account_code": account.code,
                "account_name": account.name,
                "category": account.category.value,
                "balance": ctx.money(amount),
            })

        if current_earnings != 0:
            totals["equity"] += current_earnings
            rows.append({
                "section": "equity",
                "account_code": None,
                "account_name": "Current Earnings",
                "category": AccountCategory.EQUITY.value,
                "balance": ctx.money(current_earnings),
            })

        section_order = {"assets": 0, "liabilities": 1, "equity": 2}
        rows.sort(key=lambda r: (section_order[r["section"]], r["account_code"] is None, r["account_code"] or ""))

        liabilities_and_equity = totals["liabilities"] + totals["equity"]
        difference = totals["assets"] - liabilities_and_equity
        return ReportOutput(
            summary={
                "total_assets": ctx.money(totals["assets"]),
                "total_liabilities": ctx.money(totals["liabilities"]),
                "total_equity": ctx.money(totals["equity"]),
                "current_earnings": ctx.money(current_earnings),
                "total_liabilities_and_equity": ctx.money(liabilities_and_equity),
                "difference": ctx.money(difference),
                "is_balanced": difference == 0,
            },
            rows=rows,
        )


class CashFlowBuilder(BaseReportBuilder):
    """
    Direct-method cash flow statement over a date range.

    Every posting document that touches a cash account is attributed to the
    activities of its non-cash lines: each non-cash line contributes
    (credit - debit) to the activity of its account. Entries without a
    source document cannot be attributed.
    """

    kind = ReportKind.CASH_FLOW
    title = "Cash Flow Statement"

    def requirements(self, window: ReportWindow) -> Dict[RecordKind, Optional[ReportWindow]]:
        # Entries before the window give the opening cash balance
        return {RecordKind.LEDGER_ENTRY: ReportWindow(start_date=None, end_date=window.end_date)}

    def _is_cash(self, ctx: ReportContext, entry: LedgerRecord) -> bool:
        return ctx.accounts[entry.account_code.strip()].category == AccountCategory.CASH

    def build(self, ctx: ReportContext) -> ReportOutput:
        entries = ctx.get(RecordKind.LEDGER_ENTRY)
        start = ctx.window.start_date
        before = [e for e in entries if start is not None and e.entry_date < start]
        within = [e for e in entries if ctx.window.contains(e.entry_date)]

        beginning_cash = sum((e.debit - e.credit for e in before if self._is_cash(ctx, e)), ZERO)
        net_cash_flow = sum((e.debit - e.credit for e in within if self._is_cash(ctx, e)), ZERO)

        # Group in-window lines by posting document
        documents: Dict[tuple, List[LedgerRecord]] = {}
        for entry in within:
            key = (entry.source_type, entry.source_id) if entry.source_id else ("entry", str(entry.id))
            documents.setdefault(key, []).append(entry)

        partials = []
        unattributed_documents = 0
        for lines in documents.values():
            if not any(self._is_cash(ctx, line) for line in lines):
                continue
            non_cash = [line for line in lines if not self._is_cash(ctx, line)]
            if not non_cash:
                if sum((line.debit - line.credit for line in lines), ZERO) != 0:
                    unattributed_documents += 1
                continue
            partials.append(aggregate(
                non_cash,
                lambda line: line.account_code.strip(),
                {"amount": lambda line: line.credit - line.debit},
            ))
        by_account = merge(*partials)

        activity_totals = {activity: ZERO for activity in CASH_FLOW_ACTIVITIES}
        rows = []
        for code in sorted(by_account, key=lambda c: (CASH_FLOW_ACTIVITIES.index(ctx.accounts[c].cash_flow_activity), c)):
            account = ctx.accounts[code]
            amount = by_account[code]["amount"]
            activity_totals[account.cash_flow_activity] += amount
            if amount == 0:
                continue
            rows.append({
                "activity": account.cash_flow_activity.value,
                "account_code": account.code,
                "account_name": account.name,
                "amount": ctx.money(amount),
            })

        unexplained = net_cash_flow - sum(activity_totals.values(), ZERO)
        beginning = ctx.money(beginning_cash)
        net = ctx.money(net_cash_flow)
        return ReportOutput(
            summary={
                "operating_activities": ctx.money(activity_totals[CashFlowActivity.OPERATING]),
                "investing_activities": ctx.money(activity_totals[CashFlowActivity.INVESTING]),
                "financing_activities": ctx.money(activity_totals[CashFlowActivity.FINANCING]),
                "net_cash_flow": net,
                "beginning_cash_balance": beginning,
                "ending_cash_balance": ctx.money(beginning_cash + net_cash_flow),
                "unexplained_cash": ctx.money(unexplained),
                "is_reconciled": unexplained == 0,
                "unattributed_documents": unattributed_documents,
            },
            rows=rows,
        )
