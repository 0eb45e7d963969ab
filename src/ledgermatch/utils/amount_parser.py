"""Amount parsing utilities.

Bank exports format amounts in many ways. Each supported layout is a named
preset; parsing always yields integer cents, or None when the string does
not fit the preset.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Literal, Optional, Union

from ledgermatch.utils.normalization import to_cents


@dataclass(frozen=True)
class AmountFormat:
    """Layout of a formatted amount string."""

    decimal_separator: str
    thousands_separator: Optional[str]
    negative_format: Literal["minus", "parentheses"] = "minus"
    currency_position: Literal["before", "after", "none"] = "none"


AMOUNT_FORMATS: dict[str, AmountFormat] = {
    "de": AmountFormat(",", ".", currency_position="after"),
    "de-space": AmountFormat(",", " ", currency_position="after"),
    "us": AmountFormat(".", ",", currency_position="before"),
    "us-space": AmountFormat(".", " ", currency_position="before"),
    "accounting": AmountFormat(".", ",", negative_format="parentheses", currency_position="before"),
    "accounting-de": AmountFormat(",", ".", negative_format="parentheses", currency_position="after"),
    "simple": AmountFormat(".", None),
    "simple-comma": AmountFormat(",", None),
}

DEFAULT_AMOUNT_FORMAT = "de"

_CURRENCY_RE = re.compile(r"[€$£¥]|\b(?:EUR|USD|GBP|CHF|JPY)\b", re.IGNORECASE)
_NUMBER_RE = re.compile(r"^\d+(?:\.\d+)?$")


def get_amount_format(name: str) -> Optional[AmountFormat]:
    """Look up an amount format preset by name."""
    return AMOUNT_FORMATS.get(name)


def parse_amount(
    amount_str: Optional[str], fmt: Union[str, AmountFormat] = DEFAULT_AMOUNT_FORMAT
) -> Optional[int]:
    """Parse a formatted amount string into integer cents.

    Handles currency symbols and codes, a leading or trailing minus sign, and
    parentheses for negatives when the format uses them:
    - "1.234,56" (de) -> 123456
    - "-50,00 €" (de) -> -5000
    - "(1,234.56)" (accounting) -> -123456
    - "12,50-" (de) -> -1250

    Args:
        amount_str: Amount string as found in the export
        fmt: Preset name or AmountFormat

    Returns:
        Amount in cents, or None if the string cannot be parsed
    """
    if not amount_str or not amount_str.strip():
        return None

    if isinstance(fmt, str):
        layout = AMOUNT_FORMATS.get(fmt)
        if layout is None:
            return None
    else:
        layout = fmt

    text = amount_str.strip().replace("\u00a0", " ")
    text = _CURRENCY_RE.sub("", text).strip()

    negative = False
    if layout.negative_format == "parentheses" and text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1].strip()
    if text.startswith("-"):
        negative = not negative
        text = text[1:].strip()
    elif text.startswith("+"):
        text = text[1:].strip()
    if text.endswith("-"):
        negative = not negative
        text = text[:-1].strip()
    # Symbol may sit between sign and digits, e.g. "-€ 5,00"
    text = _CURRENCY_RE.sub("", text).strip()

    if layout.thousands_separator == " ":
        text = "".join(text.split())
    elif layout.thousands_separator:
        text = text.replace(layout.thousands_separator, "")
        text = text.replace("'", "")

    if layout.decimal_separator != ".":
        if "." in text:
            return None
        text = text.replace(layout.decimal_separator, ".")

    if not _NUMBER_RE.match(text):
        return None

    try:
        cents = to_cents(Decimal(text))
    except InvalidOperation:
        return None
    return -cents if negative else cents
