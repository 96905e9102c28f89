from decimal import Decimal

import pytest

from x402_agents.amounts import USDC_DECIMALS, format_units, parse_units, to_decimal


@pytest.mark.parametrize(
    "amount,expected",
    [
        ("0.05", 50000),
        ("$0.05", 50000),
        ("1", 1000000),
        ("0.000001", 1),
        (2, 2000000),
        (Decimal("0.15"), 150000),
        (" 0.10 ", 100000),
    ],
)
def test_parse_units(amount, expected):
    assert parse_units(amount, USDC_DECIMALS) == expected


def test_parse_units_other_decimals():
    assert parse_units("1.5", 18) == 1500000000000000000


@pytest.mark.parametrize("amount", ["abc", "", "0.0000001", "NaN", "Infinity"])
def test_parse_units_rejects(amount):
    with pytest.raises(ValueError):
        parse_units(amount)


@pytest.mark.parametrize(
    "value,expected",
    [
        (50000, "0.05"),
        ("50000", "0.05"),
        (1000000, "1"),
        (10000000, "10"),
        (1, "0.000001"),
        (0, "0"),
        (1234567, "1.234567"),
    ],
)
def test_format_units(value, expected):
    assert format_units(value) == expected


def test_to_decimal():
    assert to_decimal("150000") == Decimal("0.15")
    assert to_decimal(150000) > Decimal("0.10")
