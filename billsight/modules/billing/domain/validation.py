import re
from datetime import date
from typing import Any, Optional

from billsight.shared.core.exceptions import InvalidDateRangeError

DATE_REGEX = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _parse_date(value: str, label: str) -> date:
    if not DATE_REGEX.match(value):
        raise InvalidDateRangeError(
            f"Invalid '{label}' date format: {value}. Expected YYYY-MM-DD",
            details={"field": label},
        )
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise InvalidDateRangeError(
            f"Invalid '{label}' date: {value}", details={"field": label}
        ) from None


def validate_date_range(
    from_date: Optional[str | date], to_date: Optional[str | date]
) -> tuple[date, date]:
    """
    Validate `from`/`to` query values and return them as dates.

    Both are required, must be YYYY-MM-DD calendar dates, and from <= to.
    Date objects are accepted for in-process callers.
    """
    if not from_date or not to_date:
        raise InvalidDateRangeError("from and to parameters are required")
    if isinstance(from_date, date):
        from_date = from_date.isoformat()
    if isinstance(to_date, date):
        to_date = to_date.isoformat()

    start = _parse_date(str(from_date), "from")
    end = _parse_date(str(to_date), "to")

    if start > end:
        raise InvalidDateRangeError(
            f"'from' date ({from_date}) must be before or equal to 'to' date ({to_date})"
        )
    return start, end


def parse_trailing_months(value: Any, default: int = 6) -> int:
    """Parse a trailing-months value; anything unusable falls back to `default`."""
    try:
        months = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return months if months > 0 else default
