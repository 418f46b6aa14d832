from decimal import Decimal

import pytest

from cotacao.quality.numbers import (
    InvalidNumberError,
    format_decimal_br,
    parse_decimal_br,
    percent,
    to_decimal,
    to_optional_decimal,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("12,34", Decimal("12.34")),
        ("1.234,50", Decimal("1234.50")),
        (" 7 ", Decimal("7")),
        ("-0,05", Decimal("-0.05")),
        ("1 234,5", Decimal("1234.5")),
    ],
)
def test_parse_decimal_br(raw, expected):
    assert parse_decimal_br(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", "abc", "1,2,3", "NaN", "Infinity"])
def test_parse_decimal_br_rejects(raw):
    with pytest.raises(InvalidNumberError):
        parse_decimal_br(raw)


def test_format_and_parse_back():
    text = format_decimal_br(1234.5)
    assert text == "1.234,50"
    assert parse_decimal_br(text) == Decimal("1234.5")


def test_format_decimal_br_variants():
    assert format_decimal_br(Decimal("1234.5"), grouped=False) == "1234,50"
    assert format_decimal_br(Decimal("0.005")) == "0,01"
    assert format_decimal_br(-1234.5) == "-1.234,50"
    assert format_decimal_br("10,3") == "10,30"


def test_to_decimal():
    assert to_decimal(None) is None
    assert to_decimal(3) == Decimal(3)
    assert to_decimal(0.1) == Decimal("0.1")
    assert to_decimal("2,5") == Decimal("2.5")
    with pytest.raises(InvalidNumberError):
        to_decimal(True)
    with pytest.raises(InvalidNumberError):
        to_decimal(float("nan"))


def test_to_optional_decimal_blank():
    assert to_optional_decimal("  ") is None
    assert to_optional_decimal("0,05") == Decimal("0.05")


@pytest.mark.parametrize(
    "part,total,expected",
    [(3, 4, 75), (1, 2, 50), (0, 0, 0), (5, 0, 0), (1, 3, 33), (2, 3, 67), (1, 8, 13), (4, 4, 100)],
)
def test_percent_rounds_half_up(part, total, expected):
    assert percent(part, total) == expected
