"""Tests for amount format presets."""

import pytest

from ledgermatch.utils.amount_parser import AMOUNT_FORMATS, AmountFormat, parse_amount


@pytest.mark.parametrize(
    "raw,fmt,expected",
    [
        ("1.234,56", "de", 123456),
        ("-50,00 €", "de", -5000),
        ("12,50-", "de", -1250),
        ("EUR 12,00", "de", 1200),
        ("1 234,56", "de-space", 123456),
        ("1,234.56", "us", 123456),
        ("$1,234.56", "us", 123456),
        ("-$5.00", "us", -500),
        ("1 234.56", "us-space", 123456),
        ("(1,234.56)", "accounting", -123456),
        ("(1.234,56)", "accounting-de", -123456),
        ("1234.56", "simple", 123456),
        ("1234,56", "simple-comma", 123456),
        ("+7,5", "de", 750),
    ],
)
def test_parse_amount_presets(raw, fmt, expected):
    assert parse_amount(raw, fmt) == expected


@pytest.mark.parametrize(
    "raw,fmt",
    [
        ("", "de"),
        (None, "de"),
        ("abc", "de"),
        ("12.5.0", "us"),
        ("1,2", "simple"),
        ("--5", "de"),
        ("12,50", "unknown-format"),
    ],
)
def test_parse_amount_invalid_returns_none(raw, fmt):
    assert parse_amount(raw, fmt) is None


def test_parse_amount_accepts_format_object():
    layout = AmountFormat(decimal_separator=",", thousands_separator="'")
    assert parse_amount("1'234,50", layout) == 123450


def test_all_presets_are_registered():
    assert set(AMOUNT_FORMATS) == {
        "de",
        "de-space",
        "us",
        "us-space",
        "accounting",
        "accounting-de",
        "simple",
        "simple-comma",
    }
