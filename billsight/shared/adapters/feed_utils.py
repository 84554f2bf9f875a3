from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional, TypeVar

from billsight.shared.core.currency import to_decimal
from billsight.shared.core.exceptions import ExternalAPIError

T = TypeVar("T")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Best-effort timestamp normalization for API payloads.

    Accepts datetimes (naive treated as UTC) and ISO8601 strings ("Z" supported).
    Returns None for anything else so missing provider fields stay missing.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def parse_day(value: Any) -> Optional[date]:
    """Calendar day of an API date or datetime string ("2025-01-15T00:00:00+01:00")."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return date.fromisoformat(value.split("T", 1)[0])
        except ValueError:
            return None
    return None


def price_value(price: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Amount of a provider price object ({"value": 12.5, "currencyCode": "EUR"})."""
    if isinstance(price, dict):
        return to_decimal(price.get("value"), default)
    return to_decimal(price, default)


def price_currency(price: Any, default: str = "EUR") -> str:
    if isinstance(price, dict) and price.get("currencyCode"):
        return str(price["currencyCode"])
    return default


def strip_plan_suffix(plan_code: Optional[str]) -> Optional[str]:
    """Drop the billing-mode suffix of an instance plan code ("l4-90.consumption" -> "l4-90")."""
    if not plan_code:
        return plan_code
    for suffix in (".consumption", ".monthly.postpaid"):
        if plan_code.endswith(suffix):
            return plan_code[: -len(suffix)]
    return plan_code


def parse_payload(what: str, build: Callable[[], T]) -> T:
    """Run a record constructor, reporting a bad payload as an upstream error."""
    try:
        return build()
    except (ValueError, TypeError, KeyError, AttributeError) as exc:
        # pydantic.ValidationError is a ValueError
        raise ExternalAPIError(
            f"Malformed {what} payload: {exc}",
            code="malformed_payload",
            details={"payload": what},
        ) from exc


def as_dict(payload: Any) -> dict[str, Any]:
    return payload if isinstance(payload, dict) else {}


def as_list(payload: Any) -> list[Any]:
    return payload if isinstance(payload, list) else []
