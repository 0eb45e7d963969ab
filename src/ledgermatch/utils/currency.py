"""Currency conversion with historical monthly rates.

Rates are approximate monthly averages of the ECB reference rates with EUR
as base (1 EUR = X units). They are meant for reconciliation, not for tax
reporting.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from dateutil.relativedelta import relativedelta

from ledgermatch.config import CURRENCY_FALLBACK_MONTHS
from ledgermatch.utils.date_parser import month_key

logger = logging.getLogger(__name__)

BASE_CURRENCY = "EUR"

EUR_RATES: dict[str, dict[str, float]] = {
    "2022-01": {"USD": 1.1315, "GBP": 0.8365, "CHF": 1.0365, "JPY": 130.35},
    "2022-02": {"USD": 1.1355, "GBP": 0.8395, "CHF": 1.0450, "JPY": 130.45},
    "2022-03": {"USD": 1.1025, "GBP": 0.8365, "CHF": 1.0245, "JPY": 129.75},
    "2022-04": {"USD": 1.0815, "GBP": 0.8365, "CHF": 1.0225, "JPY": 135.75},
    "2022-05": {"USD": 1.0595, "GBP": 0.8495, "CHF": 1.0305, "JPY": 135.40},
    "2022-06": {"USD": 1.0575, "GBP": 0.8535, "CHF": 1.0175, "JPY": 140.80},
    "2022-07": {"USD": 1.0175, "GBP": 0.8465, "CHF": 0.9835, "JPY": 138.60},
    "2022-08": {"USD": 1.0135, "GBP": 0.8455, "CHF": 0.9670, "JPY": 136.85},
    "2022-09": {"USD": 0.9955, "GBP": 0.8745, "CHF": 0.9680, "JPY": 141.75},
    "2022-10": {"USD": 0.9845, "GBP": 0.8715, "CHF": 0.9845, "JPY": 146.35},
    "2022-11": {"USD": 1.0195, "GBP": 0.8675, "CHF": 0.9805, "JPY": 145.25},
    "2022-12": {"USD": 1.0565, "GBP": 0.8695, "CHF": 0.9875, "JPY": 143.25},
    "2023-01": {"USD": 1.0845, "GBP": 0.8820, "CHF": 0.9985, "JPY": 140.75},
    "2023-02": {"USD": 1.0725, "GBP": 0.8860, "CHF": 0.9880, "JPY": 142.50},
    "2023-03": {"USD": 1.0725, "GBP": 0.8765, "CHF": 0.9920, "JPY": 143.80},
    "2023-04": {"USD": 1.0950, "GBP": 0.8795, "CHF": 0.9820, "JPY": 147.40},
    "2023-05": {"USD": 1.0865, "GBP": 0.8695, "CHF": 0.9740, "JPY": 149.90},
    "2023-06": {"USD": 1.0870, "GBP": 0.8585, "CHF": 0.9760, "JPY": 156.65},
    "2023-07": {"USD": 1.1065, "GBP": 0.8595, "CHF": 0.9590, "JPY": 156.35},
    "2023-08": {"USD": 1.0905, "GBP": 0.8575, "CHF": 0.9580, "JPY": 158.10},
    "2023-09": {"USD": 1.0705, "GBP": 0.8645, "CHF": 0.9595, "JPY": 157.90},
    "2023-10": {"USD": 1.0575, "GBP": 0.8695, "CHF": 0.9505, "JPY": 158.60},
    "2023-11": {"USD": 1.0820, "GBP": 0.8705, "CHF": 0.9610, "JPY": 162.10},
    "2023-12": {"USD": 1.0920, "GBP": 0.8625, "CHF": 0.9440, "JPY": 158.25},
    "2024-01": {"USD": 1.0875, "GBP": 0.8570, "CHF": 0.9375, "JPY": 160.50},
    "2024-02": {"USD": 1.0775, "GBP": 0.8545, "CHF": 0.9430, "JPY": 161.20},
    "2024-03": {"USD": 1.0850, "GBP": 0.8555, "CHF": 0.9665, "JPY": 163.40},
    "2024-04": {"USD": 1.0725, "GBP": 0.8565, "CHF": 0.9745, "JPY": 166.10},
    "2024-05": {"USD": 1.0830, "GBP": 0.8530, "CHF": 0.9810, "JPY": 169.90},
    "2024-06": {"USD": 1.0750, "GBP": 0.8455, "CHF": 0.9585, "JPY": 170.80},
    "2024-07": {"USD": 1.0850, "GBP": 0.8430, "CHF": 0.9680, "JPY": 170.25},
    "2024-08": {"USD": 1.0990, "GBP": 0.8535, "CHF": 0.9440, "JPY": 161.50},
    "2024-09": {"USD": 1.1075, "GBP": 0.8420, "CHF": 0.9395, "JPY": 160.30},
    "2024-10": {"USD": 1.0875, "GBP": 0.8370, "CHF": 0.9395, "JPY": 163.50},
    "2024-11": {"USD": 1.0590, "GBP": 0.8345, "CHF": 0.9365, "JPY": 163.20},
    "2024-12": {"USD": 1.0480, "GBP": 0.8290, "CHF": 0.9310, "JPY": 162.75},
    "2025-01": {"USD": 1.0350, "GBP": 0.8385, "CHF": 0.9415, "JPY": 163.00},
}


@dataclass(frozen=True)
class ConversionResult:
    """Converted amount and the rate used."""

    amount: int
    currency: str
    rate: float
    rate_date: str


def _rates_for_month(
    on: date, fallback_months: int, rates_table: dict[str, dict[str, float]]
) -> Optional[tuple[dict[str, float], str]]:
    for months_back in range(fallback_months + 1):
        key = month_key(on - relativedelta(months=months_back))
        if key in rates_table:
            return rates_table[key], key
    return None


def get_exchange_rate(
    from_currency: str,
    to_currency: str,
    on: date,
    fallback_months: int = CURRENCY_FALLBACK_MONTHS,
    rates_table: Optional[dict[str, dict[str, float]]] = None,
) -> Optional[tuple[float, str]]:
    """Look up the rate converting from_currency into to_currency.

    Uses the month of `on`, falling back to up to `fallback_months` earlier
    months. Returns None when no month in that window has rates for both
    currencies.

    Returns:
        (rate, rate_date) where rate_date is "YYYY-MM", or "n/a" for a
        same-currency conversion
    """
    source = from_currency.upper()
    target = to_currency.upper()
    if source == target:
        return 1.0, "n/a"

    table = EUR_RATES if rates_table is None else rates_table
    found = _rates_for_month(on, fallback_months, table)
    if found is None:
        logger.debug("No %s->%s rate within %d months of %s", source, target, fallback_months, on)
        return None
    rates, rate_date = found

    if source == BASE_CURRENCY:
        if target not in rates:
            return None
        return rates[target], rate_date
    if target == BASE_CURRENCY:
        if source not in rates:
            return None
        return 1 / rates[source], rate_date
    if source not in rates or target not in rates:
        return None
    return rates[target] / rates[source], rate_date


def convert_currency(
    amount: int,
    from_currency: str,
    to_currency: str,
    on: date,
    fallback_months: int = CURRENCY_FALLBACK_MONTHS,
) -> Optional[ConversionResult]:
    """Convert an amount in cents between currencies.

    Returns None when the conversion is not possible; callers must treat that
    as "no comparison", never as zero.
    """
    found = get_exchange_rate(from_currency, to_currency, on, fallback_months)
    if found is None:
        return None
    rate, rate_date = found
    return ConversionResult(
        amount=round(amount * rate),
        currency=to_currency.upper(),
        rate=rate,
        rate_date=rate_date,
    )


def get_available_currencies() -> list[str]:
    """Currencies the rate table can convert between."""
    currencies = {BASE_CURRENCY}
    for rates in EUR_RATES.values():
        currencies.update(rates)
    return sorted(currencies)
