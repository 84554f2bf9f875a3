from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from billsight.shared.db.base import Base


class InventoryResource(Base):
    """
    A provisioned resource confirmed by inventory sync.

    `id` is the service name as it appears in BillDetail.domain, which is what
    makes the row usable as a resource-type override.
    """

    __tablename__ = "inventory_resources"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    resource_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    # Owning service, e.g. the pcc-... id for private cloud hosts/datastores
    parent_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class CloudInstance(Base):
    """Public-cloud instance of a project; feeds GPU flavor tags."""

    __tablename__ = "cloud_instances"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    project_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    flavor: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    # planCode without billing suffix, e.g. "l4-90"
    plan_code: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    region: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
