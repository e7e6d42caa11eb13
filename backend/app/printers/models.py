from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, JSONType, new_id


class PrinterConfig(Base):
    __tablename__ = "printer_configs"
    __table_args__ = (UniqueConstraint("tenant_id", "zabbix_host_id", name="uq_printer_configs_tenant_host"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    dashboard_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("dashboards.id"), nullable=True)
    zabbix_host_id: Mapped[str] = mapped_column(String(64), nullable=False)
    host_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    # pages printed before monitoring started; billing counter = base + live
    base_counter: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class BillingLog(Base):
    """Monthly billing snapshot. Rows are only ever inserted."""

    __tablename__ = "billing_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    total_pages: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    entries: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    snapshot_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
