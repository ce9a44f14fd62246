from textile_reports.database.database import Base
from sqlalchemy import Column, String, Date, Numeric, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship
from textile_reports.common.mixins import BaseMixin, TimestampMixin, TenantMixin
from uuid import uuid4
import enum


class InvoiceStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class Invoice(Base, BaseMixin):
    __tablename__ = "invoices"

    invoice_number = Column(String(50), nullable=False)
    customer_name = Column(String(200), nullable=True)
    region = Column(String(100), nullable=True)  # Customer billing region
    invoice_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default=InvoiceStatus.SENT.value)
    total_amount = Column(Numeric(15, 2), nullable=False, default=0)

    line_items = relationship("InvoiceLineItem", back_populates="invoice", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_invoices_tenant_date", "tenant_id", "invoice_date"),
    )


class InvoiceLineItem(Base, TenantMixin, TimestampMixin):
    __tablename__ = "invoice_line_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(Uuid(as_uuid=True), ForeignKey("invoices.id"), nullable=False, index=True)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id"), nullable=True)

    description = Column(String(200), nullable=True)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)
    line_total = Column(Numeric(15, 2), nullable=False)  # quantity * unit_price after discounts
    unit_cost = Column(Numeric(15, 2), nullable=True)  # Cost at time of sale, if known

    invoice = relationship("Invoice", back_populates="line_items")
