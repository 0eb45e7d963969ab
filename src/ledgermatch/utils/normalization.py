"""Canonical forms for identifiers, names and amounts used in comparisons."""

import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

UMLAUT_MAP = {"ä": "ae", "ö": "oe", "ü": "ue", "ß": "ss"}

# Longest first so "g.m.b.h." wins over "h."
LEGAL_SUFFIXES = sorted(
    [
        "gmbh",
        "g.m.b.h.",
        "ges.m.b.h.",
        "mbh",
        "ag",
        "kg",
        "ohg",
        "og",
        "e.u.",
        "e.k.",
        "& co kg",
        "& co. kg",
        "& co ohg",
        "& co. ohg",
        "& co",
        "& co.",
        "ltd",
        "ltd.",
        "limited",
        "inc",
        "inc.",
        "incorporated",
        "corp",
        "corp.",
        "corporation",
        "llc",
        "llp",
        "plc",
        "co",
        "co.",
        "company",
        "s.a.",
        "sa",
        "sarl",
        "s.a.r.l.",
        "sas",
        "srl",
        "s.r.l.",
        "spa",
        "s.p.a.",
        "s.l.",
        "b.v.",
        "bv",
        "n.v.",
        "nv",
    ],
    key=len,
    reverse=True,
)

_LEGAL_SUFFIX_RE = re.compile(
    r"[\s,]+(?:" + "|".join(re.escape(s) for s in LEGAL_SUFFIXES) + r")\s*$"
)

IBAN_PATTERN = re.compile(r"^[A-Z]{2}\d{2}[A-Z0-9]{11,28}$")

IBAN_COUNTRY_LENGTHS = {
    "AT": 20,
    "DE": 22,
    "CH": 21,
    "FR": 27,
    "IT": 27,
    "ES": 24,
    "NL": 18,
    "BE": 16,
    "GB": 22,
}


def normalize_iban(iban: Optional[str]) -> str:
    """Uppercase an IBAN and remove all whitespace."""
    if not iban:
        return ""
    return "".join(iban.split()).upper()


def normalize_vat_id(vat_id: Optional[str]) -> str:
    """Uppercase a VAT ID and strip everything that is not A-Z or 0-9."""
    if not vat_id:
        return ""
    return re.sub(r"[^A-Z0-9]", "", vat_id.upper())


def vat_ids_match(a: Optional[str], b: Optional[str]) -> bool:
    """Exact comparison of two VAT IDs after normalization. Never fuzzy."""
    na = normalize_vat_id(a)
    return bool(na) and na == normalize_vat_id(b)


def ibans_match(a: Optional[str], b: Optional[str]) -> bool:
    """Exact comparison of two IBANs after normalization."""
    na = normalize_iban(a)
    return bool(na) and na == normalize_iban(b)


def iban_in(iban: Optional[str], candidates: Iterable[str]) -> bool:
    """Check whether an IBAN equals any of the candidates after normalization."""
    target = normalize_iban(iban)
    if not target:
        return False
    return any(normalize_iban(candidate) == target for candidate in candidates)


def is_valid_iban(iban: Optional[str]) -> bool:
    """Check IBAN shape and, for known countries, its length."""
    normalized = normalize_iban(iban)
    if not IBAN_PATTERN.match(normalized):
        return False
    expected = IBAN_COUNTRY_LENGTHS.get(normalized[:2])
    return expected is None or len(normalized) == expected


def format_iban(iban: Optional[str]) -> str:
    """Format an IBAN in groups of four characters for display."""
    normalized = normalize_iban(iban)
    if not normalized:
        return "—"
    return " ".join(normalized[i : i + 4] for i in range(0, len(normalized), 4))


def fold_umlauts(text: str) -> str:
    """Lowercase text and replace German umlauts and sharp s."""
    folded = text.lower()
    for umlaut, replacement in UMLAUT_MAP.items():
        folded = folded.replace(umlaut, replacement)
    return folded


def strip_legal_suffixes(name: str) -> str:
    """Remove trailing legal-entity suffixes such as GmbH or Inc."""
    stripped = name.strip()
    while True:
        shorter = _LEGAL_SUFFIX_RE.sub("", stripped)
        if shorter == stripped or not shorter:
            return stripped
        stripped = shorter.strip()


def normalize_company_name(name: Optional[str]) -> str:
    """Canonical form of a company name for fuzzy comparison.

    Lowercases, strips legal suffixes, folds umlauts, turns punctuation into
    spaces and collapses whitespace. "Müller & Söhne GmbH" becomes
    "mueller soehne".
    """
    if not name:
        return ""
    normalized = strip_legal_suffixes(name.lower())
    normalized = fold_umlauts(normalized)
    normalized = re.sub(r"[^a-z0-9]+", " ", normalized)
    return " ".join(normalized.split())


def extract_root_domain(value: Optional[str]) -> str:
    """Reduce a URL, e-mail address or host to its bare domain.

    "https://www.amazon.de/path" and "billing@amazon.de" both become
    "amazon.de".
    """
    if not value:
        return ""
    domain = value.strip().lower()
    if "@" in domain:
        domain = domain.rsplit("@", 1)[1]
    domain = re.sub(r"^https?://", "", domain)
    domain = domain.split("/")[0].split("?")[0]
    if domain.startswith("www."):
        domain = domain[4:]
    return domain


def domains_match(a: Optional[str], b: Optional[str]) -> bool:
    """Compare two domains, treating subdomains as matching their parent."""
    d1 = extract_root_domain(a)
    d2 = extract_root_domain(b)
    if not d1 or not d2:
        return False
    return d1 == d2 or d1.endswith(f".{d2}") or d2.endswith(f".{d1}")


def to_cents(amount: Decimal) -> int:
    """Convert a decimal amount to integer cents, rounding half up."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_cents(cents: int) -> str:
    """Render integer cents as a plain decimal string, e.g. -1234 -> "-12.34"."""
    sign = "-" if cents < 0 else ""
    whole, fraction = divmod(abs(cents), 100)
    return f"{sign}{whole}.{fraction:02d}"
