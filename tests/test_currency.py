"""Tests for historical currency conversion."""

from datetime import date

import pytest

from ledgermatch.utils.currency import (
    convert_currency,
    get_available_currencies,
    get_exchange_rate,
)


def test_convert_eur_to_usd_uses_month_rate():
    result = convert_currency(10000, "EUR", "USD", date(2024, 1, 15))
    assert result.amount == 10875
    assert result.currency == "USD"
    assert result.rate_date == "2024-01"


def test_convert_usd_to_eur_inverts_rate():
    result = convert_currency(10875, "usd", "eur", date(2024, 1, 31))
    assert result.amount == 10000


def test_cross_rate_via_eur():
    rate, rate_date = get_exchange_rate("USD", "GBP", date(2024, 1, 1))
    assert rate == pytest.approx(0.8570 / 1.0875)
    assert rate_date == "2024-01"


def test_same_currency_is_identity():
    result = convert_currency(1234, "EUR", "EUR", date(1999, 1, 1))
    assert result.amount == 1234
    assert result.rate == 1.0


def test_missing_month_falls_back_to_prior_month():
    result = convert_currency(10000, "EUR", "USD", date(2025, 3, 10))
    assert result is not None
    assert result.rate_date == "2025-01"


def test_fallback_window_is_limited():
    assert convert_currency(10000, "EUR", "USD", date(2025, 5, 1)) is None


def test_rate_before_table_returns_none():
    # 12 months before the first table entry (2022-01)
    assert convert_currency(10000, "EUR", "USD", date(2021, 1, 15)) is None


def test_unknown_currency_returns_none():
    assert convert_currency(10000, "EUR", "XYZ", date(2024, 1, 15)) is None
    assert get_exchange_rate("XYZ", "USD", date(2024, 1, 15)) is None


def test_available_currencies():
    assert get_available_currencies() == ["CHF", "EUR", "GBP", "JPY", "USD"]


def test_explicit_empty_table_has_no_rates():
    assert get_exchange_rate("EUR", "USD", date(2024, 1, 15), rates_table={}) is None
    assert get_exchange_rate("EUR", "EUR", date(2024, 1, 15), rates_table={}) == (1.0, "n/a")


def test_custom_table_replaces_builtin_rates():
    table = {"2024-01": {"USD": 2.0}}
    assert get_exchange_rate("EUR", "USD", date(2024, 1, 15), rates_table=table) == (2.0, "2024-01")
