from decimal import Decimal

import pytest

from billsight.shared.core.currency import quantize_money, round_money, to_decimal


@pytest.mark.parametrize(
    "value, expected",
    [
        ("33.335", 33.34),
        (Decimal("33.334"), 33.33),
        (33.335, 33.34),
        ("-0.005", -0.01),
        ("-12.345", -12.35),
        (0, 0.0),
        (None, 0.0),
    ],
)
def test_round_money_is_half_away_from_zero(value, expected):
    assert round_money(value) == expected


def test_quantize_money_keeps_decimal():
    assert quantize_money("10") == Decimal("10.00")


@pytest.mark.parametrize("value", ["abc", object(), ""])
def test_to_decimal_falls_back_to_default(value):
    assert to_decimal(value) == Decimal("0")
    assert to_decimal(value, Decimal("1")) == Decimal("1")


def test_to_decimal_keeps_float_repr():
    assert to_decimal(0.1) == Decimal("0.1")


@pytest.mark.parametrize("value", ["NaN", "Infinity", "-inf", float("nan"), float("inf"), Decimal("NaN"), Decimal("-Infinity")])
def test_non_finite_values_use_default(value):
    assert to_decimal(value) == Decimal("0")
    assert round_money(value) == 0.0
