"""
Account classifier for financial reports

Maps ledger entries to the chart of accounts and to their debit/credit
polarity. The chart is static reference data defined in code.
"""

import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional

from textile_reports.modules.reports.exceptions import ReportError, UnknownAccount


class AccountType(str, enum.Enum):
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"


class NormalBalance(str, enum.Enum):
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class AccountCategory(str, enum.Enum):
    CASH = "cash"
    RECEIVABLE = "receivable"
    INVENTORY = "inventory"
    FIXED_ASSET = "fixed_asset"
    CONTRA_ASSET = "contra_asset"
    CURRENT_LIABILITY = "current_liability"
    LONG_TERM_LIABILITY = "long_term_liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    COST_OF_GOODS_SOLD = "cost_of_goods_sold"
    OPERATING_EXPENSE = "operating_expense"


class CashFlowActivity(str, enum.Enum):
    OPERATING = "operating"
    INVESTING = "investing"
    FINANCING = "financing"
    CASH = "cash"


@dataclass(frozen=True)
class Account:
    code: str
    name: str
    type: AccountType
    normal_balance: NormalBalance
    category: AccountCategory
    cash_flow_activity: CashFlowActivity


def _account(code, name, type_, category, activity, normal_balance=None) -> Account:
    if normal_balance is None:
        normal_balance = (
            NormalBalance.DEBIT if type_ in (AccountType.ASSET, AccountType.EXPENSE)
            else NormalBalance.CREDIT
        )
    return Account(code, name, type_, normal_balance, category, activity)


CHART_OF_ACCOUNTS: Dict[str, Account] = {
    a.code: a for a in (
        # Assets
        _account("1000", "Cash", AccountType.ASSET, AccountCategory.CASH, CashFlowActivity.CASH),
        _account("1010", "Bank Accounts", AccountType.ASSET, AccountCategory.CASH, CashFlowActivity.CASH),
        _account("1100", "Accounts Receivable", AccountType.ASSET, AccountCategory.RECEIVABLE, CashFlowActivity.OPERATING),
        _account("1200", "Inventory", AccountType.ASSET, AccountCategory.INVENTORY, CashFlowActivity.OPERATING),
        _account("1500", "Property & Equipment", AccountType.ASSET, AccountCategory.FIXED_ASSET, CashFlowActivity.INVESTING),
        _account(
            "1600", "Accumulated Depreciation", AccountType.ASSET, AccountCategory.CONTRA_ASSET,
            CashFlowActivity.INVESTING, normal_balance=NormalBalance.CREDIT
        ),
        # Liabilities
        _account("2000", "Accounts Payable", AccountType.LIABILITY, AccountCategory.CURRENT_LIABILITY, CashFlowActivity.OPERATING),
        _account("2100", "Accrued Expenses", AccountType.LIABILITY, AccountCategory.CURRENT_LIABILITY, CashFlowActivity.OPERATING),
        _account("2200", "Taxes Payable", AccountType.LIABILITY, AccountCategory.CURRENT_LIABILITY, CashFlowActivity.OPERATING),
        _account("2500", "Long-term Loans", AccountType.LIABILITY, AccountCategory.LONG_TERM_LIABILITY, CashFlowActivity.FINANCING),
        # Equity
        _account("3000", "Owner's Capital", AccountType.EQUITY, AccountCategory.EQUITY, CashFlowActivity.FINANCING),
        _account("3100", "Retained Earnings", AccountType.EQUITY, AccountCategory.EQUITY, CashFlowActivity.FINANCING),
        # Revenue
        _account("4000", "Sales Revenue", AccountType.REVENUE, AccountCategory.REVENUE, CashFlowActivity.OPERATING),
        _account("4100", "Other Income", AccountType.REVENUE, AccountCategory.REVENUE, CashFlowActivity.OPERATING),
        # Expenses
        _account("5000", "Cost of Goods Sold", AccountType.EXPENSE, AccountCategory.COST_OF_GOODS_SOLD, CashFlowActivity.OPERATING),
        _account("6000", "Operating Expenses", AccountType.EXPENSE, AccountCategory.OPERATING_EXPENSE, CashFlowActivity.OPERATING),
        _account("6100", "Salaries and Wages", AccountType.EXPENSE, AccountCategory.OPERATING_EXPENSE, CashFlowActivity.OPERATING),
        _account("6200", "Utilities", AccountType.EXPENSE, AccountCategory.OPERATING_EXPENSE, CashFlowActivity.OPERATING),
        _account("6300", "Depreciation Expense", AccountType.EXPENSE, AccountCategory.OPERATING_EXPENSE, CashFlowActivity.OPERATING),
        _account("6400", "Machine Maintenance", AccountType.EXPENSE, AccountCategory.OPERATING_EXPENSE, CashFlowActivity.OPERATING),
    )
}


class AccountClassifier:
    """Pure, deterministic lookup of ledger entries against a chart of accounts"""

    def __init__(self, chart: Optional[Mapping[str, Account]] = None):
        self.chart = dict(chart if chart is not None else CHART_OF_ACCOUNTS)

    def account(self, code: str) -> Account:
        account = self.chart.get((code or "").strip())
        if account is None:
            raise UnknownAccount([code])
        return account

    def classify(self, entry) -> Account:
        """Return the account an entry posts to. Raises UnknownAccount."""
        return self.account(entry.account_code)

    def classify_all(self, entries: Iterable) -> Dict[str, Account]:
        """
        Classify every entry, collecting all unknown codes before failing.

        Returns a mapping of account code to Account for the codes seen.
        """
        accounts: Dict[str, Account] = {}
        unknown: List[str] = []
        for entry in entries:
            code = (entry.account_code or "").strip()
            if code in accounts:
                continue
            account = self.chart.get(code)
            if account is None:
                unknown.append(entry.account_code)
            else:
                accounts[code] = account
        if unknown:
            raise UnknownAccount(unknown)
        return accounts

    @staticmethod
    def is_well_formed(entry) -> bool:
        """Exactly one of debit/credit is nonzero and neither is negative"""
        debit, credit = entry.debit, entry.credit
        if debit < 0 or credit < 0:
            return False
        return (debit != 0) != (credit != 0)

    def polarity(self, entry) -> NormalBalance:
        if not self.is_well_formed(entry):
            raise ReportError(
                f"Malformed ledger entry {getattr(entry, 'id', '?')}: "
                f"debit={entry.debit} credit={entry.credit}"
            )
        return NormalBalance.DEBIT if entry.debit != 0 else NormalBalance.CREDIT

    @staticmethod
    def signed_balance(account: Account, debit: Decimal, credit: Decimal) -> Decimal:
        """Balance expressed in the account's normal-balance sign"""
        if account.normal_balance == NormalBalance.DEBIT:
            return debit - credit
        return credit - debit
