from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import JSON, Date, DateTime, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from billsight.shared.db.base import Base


class ConsumptionSnapshot(Base):
    """Current-month consumption and forecast totals as seen on one import."""

    __tablename__ = "consumption_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    snapshot_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    current_total: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal("0"))
    forecast_total: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String, default="EUR")
    # {"current": [...], "forecast": [...]} as returned by the provider
    raw_data: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=True
    )


class ConsumptionHistory(Base):
    """One closed consumption period. The table is replaced on every history sync."""

    __tablename__ = "consumption_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    period_start: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)
    period_end: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    service_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    total: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String, default="EUR")
    raw_data: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=True
    )


class AccountBalance(Base):
    __tablename__ = "account_balances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    snapshot_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    debt_balance: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal("0"))
    credit_balance: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal("0"))
    deposit_total: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String, default="EUR")


class CreditMovement(Base):
    __tablename__ = "credit_movements"

    # "<balanceId>_<movementId>"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    balance_name: Mapped[str] = mapped_column(String, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal("0"))
    movement_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    description: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    movement_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)


class CloudConsumption(Base):
    """
    Month-to-date usage of a cloud project (`/cloud/project/{id}/usage/current`).

    Rows of a project are replaced as a whole on each sync. Monthly-billed
    usage carries a `_monthly` suffix on its resource_type.
    """

    __tablename__ = "cloud_consumption"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    resource_type: Mapped[str] = mapped_column(String, nullable=False)
    resource_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    # Flavor or plan reference, e.g. "l4-90"
    resource_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal("0"))
    unit: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal("0"))
    total_price: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal("0"))
    region: Mapped[Optional[str]] = mapped_column(String, nullable=True)


class CloudQuota(Base):
    __tablename__ = "cloud_quotas"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    region: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    max_cores: Mapped[int] = mapped_column(Integer, default=0)
    max_instances: Mapped[int] = mapped_column(Integer, default=0)
    max_ram_mb: Mapped[int] = mapped_column(Integer, default=0)
    used_cores: Mapped[int] = mapped_column(Integer, default=0)
    used_instances: Mapped[int] = mapped_column(Integer, default=0)
    used_ram_mb: Mapped[int] = mapped_column(Integer, default=0)
    synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
