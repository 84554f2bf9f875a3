from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from billsight.shared.adapters.feed_utils import (
    parse_day,
    parse_timestamp,
    price_currency,
    price_value,
    strip_plan_suffix,
)
from billsight.shared.core.currency import to_decimal


class ProjectRecord(BaseModel):
    """A cloud project as returned by `/cloud/project/{id}`."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, project_id: str, payload: Dict[str, Any]) -> "ProjectRecord":
        description = payload.get("description") or None
        return cls(
            id=project_id,
            name=description or project_id,
            description=description,
            status=payload.get("status"),
            created_at=parse_timestamp(payload.get("creationDate")),
        )


class BillRecord(BaseModel):
    """Bill metadata from `/me/bill/{id}`."""

    model_config = ConfigDict(frozen=True)

    id: str
    bill_date: date
    price_without_tax: Decimal = Decimal("0")
    price_with_tax: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    currency: str = "EUR"
    pdf_url: Optional[str] = None
    html_url: Optional[str] = None

    @classmethod
    def from_api(cls, bill_id: str, payload: Dict[str, Any]) -> "BillRecord":
        bill_date = parse_day(payload.get("date"))
        if bill_date is None:
            raise ValueError(f"bill {bill_id} has no usable date: {payload.get('date')!r}")
        return cls(
            id=payload.get("billId") or bill_id,
            bill_date=bill_date,
            price_without_tax=price_value(payload.get("priceWithoutTax")),
            price_with_tax=price_value(payload.get("priceWithTax")),
            tax=price_value(payload.get("tax")),
            currency=price_currency(payload.get("priceWithoutTax")),
            pdf_url=payload.get("pdfUrl"),
            html_url=payload.get("url"),
        )


class BillLineRecord(BaseModel):
    """One raw billing line from `/me/bill/{id}/details/{detailId}`."""

    model_config = ConfigDict(frozen=True)

    id: str
    domain: Optional[str] = None
    description: Optional[str] = None
    quantity: Optional[Decimal] = None
    unit_price: Decimal = Decimal("0")
    total_price: Decimal = Decimal("0")

    @field_validator("quantity", mode="before")
    @classmethod
    def _coerce_quantity(cls, value: Any) -> Optional[Decimal]:
        if value is None or value == "":
            return None
        return to_decimal(value)

    @classmethod
    def from_api(cls, detail_id: str, payload: Dict[str, Any]) -> "BillLineRecord":
        return cls(
            id=str(payload.get("billDetailId") or detail_id),
            domain=payload.get("domain"),
            description=payload.get("description"),
            quantity=payload.get("quantity"),
            unit_price=price_value(payload.get("unitPrice")),
            total_price=price_value(payload.get("totalPrice")),
        )


class PaymentRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    payment_type: Optional[str] = None
    payment_date: Optional[date] = None

    @property
    def status(self) -> str:
        return "paid" if self.payment_type else "pending"

    @classmethod
    def from_api(cls, payload: Optional[Dict[str, Any]]) -> "PaymentRecord":
        payload = payload or {}
        return cls(
            payment_type=payload.get("paymentType") or None,
            payment_date=parse_day(payload.get("paymentDate")),
        )


class CloudInstanceRecord(BaseModel):
    """Instance of a cloud project (`/cloud/project/{id}/instance`)."""

    model_config = ConfigDict(frozen=True)

    id: str
    project_id: str
    name: Optional[str] = None
    flavor: Optional[str] = None
    plan_code: Optional[str] = None
    region: Optional[str] = None
    status: Optional[str] = None

    @classmethod
    def from_api(cls, project_id: str, payload: Dict[str, Any]) -> "CloudInstanceRecord":
        flavor = payload.get("flavor") or {}
        flavor_name = flavor.get("name") if isinstance(flavor, dict) else None
        return cls(
            id=str(payload["id"]),
            project_id=project_id,
            name=payload.get("name") or None,
            flavor=flavor_name or payload.get("flavorId") or None,
            plan_code=strip_plan_suffix(payload.get("planCode")) or None,
            region=payload.get("region") or None,
            status=payload.get("status") or None,
        )


class InventoryItem(BaseModel):
    """A provisioned resource found during inventory sync."""

    model_config = ConfigDict(frozen=True)

    id: str
    resource_type: str
    display_name: Optional[str] = None
    parent_id: Optional[str] = None
    state: Optional[str] = None


class CreditMovementRecord(BaseModel):
    """Movement of a credit balance (`/me/credit/balance/{id}/movement/{movementId}`)."""

    model_config = ConfigDict(frozen=True)

    id: str
    balance_name: str
    amount: Decimal = Decimal("0")
    movement_date: Optional[datetime] = None
    description: Optional[str] = None
    movement_type: Optional[str] = None

    @classmethod
    def from_api(
        cls, balance_id: str, movement_id: str, payload: Dict[str, Any]
    ) -> "CreditMovementRecord":
        return cls(
            id=f"{balance_id}_{movement_id}",
            balance_name=balance_id,
            amount=price_value(payload.get("amount")),
            movement_date=parse_timestamp(payload.get("creationDate")),
            description=payload.get("description") or None,
            movement_type=payload.get("type") or None,
        )


class CloudUsageRecord(BaseModel):
    """One detail of a project's month-to-date usage."""

    model_config = ConfigDict(frozen=True)

    project_id: str
    resource_type: str
    resource_id: Optional[str] = None
    resource_name: Optional[str] = None
    quantity: Decimal = Decimal("0")
    unit: Optional[str] = None
    total_price: Decimal = Decimal("0")
    region: Optional[str] = None

    @classmethod
    def from_api(
        cls,
        project_id: str,
        resource_type: str,
        item: Dict[str, Any],
        detail: Dict[str, Any],
    ) -> "CloudUsageRecord":
        quantity = detail.get("quantity") or {}
        resource_id = (
            detail.get("instanceId") or detail.get("resourceId") or detail.get("volumeId")
        )
        return cls(
            project_id=project_id,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id else None,
            resource_name=item.get("reference") or None,
            quantity=price_value(quantity),
            unit=quantity.get("unit") if isinstance(quantity, dict) else None,
            total_price=price_value(detail.get("totalPrice")),
            region=item.get("region") or None,
        )


class CloudQuotaRecord(BaseModel):
    """Instance quota of a project in one region (`/cloud/project/{id}/quota`)."""

    model_config = ConfigDict(frozen=True)

    project_id: str
    region: Optional[str] = None
    max_cores: int = 0
    max_instances: int = 0
    max_ram_mb: int = 0
    used_cores: int = 0
    used_instances: int = 0
    used_ram_mb: int = 0

    @classmethod
    def from_api(cls, project_id: str, payload: Dict[str, Any]) -> "CloudQuotaRecord":
        instance = payload.get("instance") or {}
        return cls(
            project_id=project_id,
            region=payload.get("region") or None,
            max_cores=instance.get("maxCores") or 0,
            max_instances=instance.get("maxInstances") or 0,
            max_ram_mb=instance.get("maxRam") or 0,
            used_cores=instance.get("usedCores") or 0,
            used_instances=instance.get("usedInstances") or 0,
            used_ram_mb=instance.get("usedRAM") or 0,
        )
