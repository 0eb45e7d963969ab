"""Utility functions for ledgermatch."""

from ledgermatch.utils.amount_parser import parse_amount
from ledgermatch.utils.currency import convert_currency
from ledgermatch.utils.date_parser import parse_date
from ledgermatch.utils.dedup import generate_dedupe_hash
from ledgermatch.utils.fuzzy import calculate_company_name_similarity
from ledgermatch.utils.glob import glob_match
from ledgermatch.utils.normalization import normalize_iban, normalize_vat_id, vat_ids_match

__all__ = [
    "parse_amount",
    "parse_date",
    "convert_currency",
    "generate_dedupe_hash",
    "calculate_company_name_similarity",
    "glob_match",
    "normalize_iban",
    "normalize_vat_id",
    "vat_ids_match",
]
