from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billsight.shared.db.base import Base


class Project(Base):
    """A public-cloud project known to the account (`/cloud/project`)."""

    __tablename__ = "projects"

    # Typically a 32-char hex token; matches BillDetail.domain for cloud charges.
    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Bill(Base):
    __tablename__ = "bills"

    id: Mapped[str] = mapped_column(String, primary_key=True)  # provider billId
    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # Financials (DECIMAL for money!)
    price_without_tax: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal("0"))
    price_with_tax: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal("0"))
    tax: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String, default="EUR")
    pdf_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    html_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # Populated by the account import (bill payment endpoint)
    payment_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    payment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    payment_status: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    imported_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    details: Mapped[List["BillDetail"]] = relationship(
        back_populates="bill", cascade="all, delete-orphan", passive_deletes=True
    )


class BillDetail(Base):
    """One classified billing line."""

    __tablename__ = "bill_details"

    # Composite provider identity: "<bill_id>_<detail_id>"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    bill_id: Mapped[str] = mapped_column(
        ForeignKey("bills.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Set only when `domain` is a known cloud project id.
    project_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("projects.id"), nullable=True, index=True
    )

    domain: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 8), nullable=True)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal("0"))
    total_price: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal("0"))

    service_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String, nullable=False, index=True)

    bill: Mapped["Bill"] = relationship(back_populates="details")
