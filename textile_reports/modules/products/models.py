from textile_reports.database.database import Base
from sqlalchemy import Column, String, Date, Numeric, ForeignKey, Index, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from textile_reports.common.mixins import BaseMixin
import enum


class MovementType(str, enum.Enum):
    PURCHASE = "PURCHASE"
    PRODUCTION = "PRODUCTION"
    RETURN = "RETURN"
    TRANSFER_IN = "TRANSFER_IN"
    SALE = "SALE"
    TRANSFER_OUT = "TRANSFER_OUT"
    DAMAGE = "DAMAGE"
    ADJUSTMENT = "ADJUSTMENT"


class Product(Base, BaseMixin):
    __tablename__ = "products"

    name = Column(String(150), nullable=False)
    product_code = Column(String(50), nullable=False)
    category = Column(String(80), nullable=True)  # Fabric, Yarn, Garment, ...
    unit_of_measure = Column(String(20), nullable=True)  # meters, kg, pcs
    selling_price = Column(Numeric(15, 2), nullable=False, default=0)
    cost_price = Column(Numeric(15, 2), nullable=False, default=0)
    reorder_level = Column(Numeric(12, 3), nullable=False, default=0)
    reorder_quantity = Column(Numeric(12, 3), nullable=False, default=0)

    movements = relationship("StockMovement", back_populates="product")

    __table_args__ = (
        UniqueConstraint("tenant_id", "product_code", name="uq_product_tenant_code"),
    )


class StockMovement(Base, BaseMixin):
    __tablename__ = "stock_movements"

    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id"), nullable=False)
    location = Column(String(100), nullable=True)
    quantity = Column(Numeric(12, 3), nullable=False)  # Signed: positive incoming, negative outgoing
    movement_type = Column(String(20), nullable=False)
    unit_cost = Column(Numeric(15, 2), nullable=True)
    movement_date = Column(Date, nullable=False)
    reference = Column(String(100), nullable=True)  # Order, invoice, etc.

    product = relationship("Product", back_populates="movements")

    __table_args__ = (
        Index("idx_stock_movements_tenant_date", "tenant_id", "movement_date"),
    )
