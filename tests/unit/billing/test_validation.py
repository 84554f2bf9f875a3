from datetime import date

import pytest

from billsight.modules.billing.domain.validation import (
    DATE_REGEX,
    parse_trailing_months,
    validate_date_range,
)
from billsight.shared.core.exceptions import InvalidDateRangeError


def test_valid_range_returns_dates():
    assert validate_date_range("2024-01-01", "2024-12-31") == (date(2024, 1, 1), date(2024, 12, 31))


def test_same_day_range_is_valid():
    assert validate_date_range("2024-06-15", "2024-06-15") == (date(2024, 6, 15), date(2024, 6, 15))


def test_date_objects_are_accepted():
    assert validate_date_range(date(2024, 1, 1), "2024-01-31") == (date(2024, 1, 1), date(2024, 1, 31))


@pytest.mark.parametrize("from_date, to_date", [(None, "2024-01-01"), ("2024-01-01", None), ("", "")])
def test_missing_parameters_are_rejected(from_date, to_date):
    with pytest.raises(InvalidDateRangeError) as exc:
        validate_date_range(from_date, to_date)
    assert "required" in exc.value.message
    assert exc.value.to_dict()["code"] == "invalid_date_range"


def test_bad_from_format_names_the_field():
    with pytest.raises(InvalidDateRangeError) as exc:
        validate_date_range("2024/01/01", "2024-12-31")
    assert exc.value.message == "Invalid 'from' date format: 2024/01/01. Expected YYYY-MM-DD"


def test_bad_to_format_names_the_field():
    with pytest.raises(InvalidDateRangeError) as exc:
        validate_date_range("2024-01-01", "31-12-2024")
    assert "Invalid" in exc.value.message
    assert "'to'" in exc.value.message


def test_reversed_range_is_rejected():
    with pytest.raises(InvalidDateRangeError) as exc:
        validate_date_range("2024-12-31", "2024-01-01")
    assert "before or equal" in exc.value.message
    assert exc.value.status_code == 400


def test_impossible_calendar_date_is_rejected():
    with pytest.raises(InvalidDateRangeError) as exc:
        validate_date_range("2024-02-30", "2024-12-31")
    assert exc.value.message == "Invalid 'from' date: 2024-02-30"


@pytest.mark.parametrize("value", ["2024-01-15", "2024-12-31", "1999-06-01"])
def test_date_regex_accepts_iso_days(value):
    assert DATE_REGEX.match(value)


@pytest.mark.parametrize("value", ["24-01-15", "2024/01/15", "01-15-2024", "2024-1-15", "2024-01-5"])
def test_date_regex_rejects_other_shapes(value):
    assert not DATE_REGEX.match(value)


@pytest.mark.parametrize(
    "value, expected",
    [("12", 12), (3, 3), (" 4 ", 4), ("abc", 6), (None, 6), ("0", 6), ("-2", 6), ("2.5", 6)],
)
def test_parse_trailing_months_falls_back_to_default(value, expected):
    assert parse_trailing_months(value) == expected


def test_parse_trailing_months_custom_default():
    assert parse_trailing_months("nope", default=12) == 12
