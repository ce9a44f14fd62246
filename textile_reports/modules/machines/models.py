from textile_reports.database.database import Base
from sqlalchemy import Column, String, Date, Numeric, ForeignKey, Index, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from textile_reports.common.mixins import BaseMixin


class Machine(Base, BaseMixin):
    __tablename__ = "machines"

    machine_code = Column(String(50), nullable=False)
    name = Column(String(150), nullable=False)
    machine_type = Column(String(50), nullable=True)  # Loom, Spinning, Dyeing, ...
    location = Column(String(100), nullable=True)

    logs = relationship("MachineLog", back_populates="machine")

    __table_args__ = (
        UniqueConstraint("tenant_id", "machine_code", name="uq_machine_tenant_code"),
    )


class MachineLog(Base, BaseMixin):
    """Daily runtime/downtime record for a machine."""
    __tablename__ = "machine_logs"

    machine_id = Column(Uuid(as_uuid=True), ForeignKey("machines.id"), nullable=False)
    log_date = Column(Date, nullable=False)
    runtime_hours = Column(Numeric(6, 2), nullable=False, default=0)
    downtime_hours = Column(Numeric(6, 2), nullable=False, default=0)
    period_hours = Column(Numeric(6, 2), nullable=False, default=24)
    planned_quantity = Column(Numeric(12, 3), nullable=False, default=0)
    actual_quantity = Column(Numeric(12, 3), nullable=False, default=0)

    machine = relationship("Machine", back_populates="logs")

    __table_args__ = (
        Index("idx_machine_logs_tenant_date", "tenant_id", "log_date"),
    )
