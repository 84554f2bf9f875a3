from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Date, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from billsight.shared.db.base import Base


class ImportType(str, Enum):
    FULL = "full"
    DIFFERENTIAL = "differential"
    PERIOD = "period"


class ImportStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class ImportLog(Base):
    """Audit record of one ingestion pass. Rows are never deleted."""

    __tablename__ = "import_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    type: Mapped[str] = mapped_column(String, nullable=False)
    from_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    to_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    bills_imported: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    details_imported: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    projects_imported: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failures: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    status: Mapped[str] = mapped_column(
        String, default=ImportStatus.RUNNING.value, nullable=False, index=True
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "from_date": self.from_date.isoformat() if self.from_date else None,
            "to_date": self.to_date.isoformat() if self.to_date else None,
            "bills_imported": self.bills_imported,
            "details_imported": self.details_imported,
            "projects_imported": self.projects_imported,
            "failures": self.failures,
            "error_message": self.error_message,
        }
