"""Tests for identifier, name and amount normalization."""

from decimal import Decimal

import pytest

from ledgermatch.utils.normalization import (
    domains_match,
    extract_root_domain,
    format_cents,
    format_iban,
    iban_in,
    ibans_match,
    is_valid_iban,
    normalize_company_name,
    normalize_iban,
    normalize_vat_id,
    strip_legal_suffixes,
    to_cents,
    vat_ids_match,
)


def test_normalize_iban_strips_whitespace_and_uppercases():
    assert normalize_iban("at61 1904 3002 3457 3201") == "AT611904300234573201"
    assert normalize_iban(None) == ""
    assert normalize_iban("") == ""


def test_normalize_vat_id_drops_punctuation():
    assert normalize_vat_id("atu 123.456-78") == "ATU12345678"


def test_vat_ids_match_is_exact_after_normalization():
    assert vat_ids_match("ATU12345678", "atu-123 456 78")
    assert not vat_ids_match("ATU12345678", "ATU12345679")
    assert not vat_ids_match(None, None)
    assert not vat_ids_match("", "")


def test_ibans_match_and_iban_in():
    assert ibans_match("AT61 1904 3002 3457 3201", "at611904300234573201")
    assert not ibans_match(None, "AT611904300234573201")
    assert iban_in("at61 1904 3002 3457 3201", ["DE89370400440532013000", "AT611904300234573201"])
    assert not iban_in("", ["AT611904300234573201"])


@pytest.mark.parametrize(
    "iban,valid",
    [
        ("AT61 1904 3002 3457 3201", True),
        ("DE89 3704 0044 0532 0130 00", True),
        ("DE89 3704 0044 0532 0130 0", False),
        ("XX12", False),
        (None, False),
    ],
)
def test_is_valid_iban(iban, valid):
    assert is_valid_iban(iban) is valid


def test_format_iban_groups_of_four():
    assert format_iban("AT611904300234573201") == "AT61 1904 3002 3457 3201"
    assert format_iban(None) == "—"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Müller & Söhne GmbH", "mueller soehne"),
        ("NETFLIX Inc.", "netflix"),
        ("Acme Holding GmbH & Co. KG", "acme holding"),
        ("Amazon EU S.a.r.l.", "amazon eu"),
        (None, ""),
    ],
)
def test_normalize_company_name(raw, expected):
    assert normalize_company_name(raw) == expected


def test_strip_legal_suffixes_keeps_bare_suffix_name():
    assert strip_legal_suffixes("AG") == "AG"


def test_extract_root_domain():
    assert extract_root_domain("https://www.amazon.de/gp/css") == "amazon.de"
    assert extract_root_domain("billing@amazon.de") == "amazon.de"
    assert extract_root_domain(None) == ""


def test_domains_match_allows_subdomains():
    assert domains_match("mail.netflix.com", "netflix.com")
    assert domains_match("info@netflix.com", "https://www.netflix.com")
    assert not domains_match("netflix.com", "notnetflix.com")
    assert not domains_match("", "netflix.com")


def test_to_cents_and_format_cents():
    assert to_cents(Decimal("12.345")) == 1235
    assert to_cents(Decimal("-0.5")) == -50
    assert format_cents(-1234) == "-12.34"
    assert format_cents(5) == "0.05"
