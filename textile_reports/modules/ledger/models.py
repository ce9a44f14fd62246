from textile_reports.database.database import Base
from sqlalchemy import Column, String, Date, Numeric, Index, CheckConstraint
from textile_reports.common.mixins import BaseMixin
import enum


class LedgerSourceType(str, enum.Enum):
    INVOICE = "invoice"
    BILL = "bill"
    PAYMENT = "payment"
    JOURNAL = "journal"


class LedgerEntry(Base, BaseMixin):
    """
    One debit or credit posting derived from an invoice, bill or payment.

    Entries are written by the posting services and are immutable once
    posted. All lines produced by one posting share ``source_id``.
    """
    __tablename__ = "ledger_entries"

    entry_date = Column(Date, nullable=False)
    account_code = Column(String(20), nullable=False)
    account_name = Column(String(120), nullable=False)
    debit = Column(Numeric(15, 2), nullable=False, default=0)
    credit = Column(Numeric(15, 2), nullable=False, default=0)

    source_type = Column(String(20), nullable=False, default=LedgerSourceType.JOURNAL.value)
    source_id = Column(String(64), nullable=True)
    description = Column(String(255), nullable=True)

    __table_args__ = (
        Index("idx_ledger_entries_tenant_date", "tenant_id", "entry_date"),
        CheckConstraint("debit >= 0 AND credit >= 0", name="ck_ledger_entries_non_negative"),
    )
