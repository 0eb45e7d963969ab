"""Transaction fingerprints for duplicate detection across imports."""

import hashlib
from datetime import date
from typing import Iterable, Optional

from ledgermatch.utils.normalization import normalize_iban


def account_identifier(iban: Optional[str], source_id: str) -> str:
    """Identifier of the account a transaction was booked on.

    The IBAN when known, otherwise the source's own id. Sources without an
    IBAN (credit cards, some API accounts) hash with their id instead.
    """
    normalized = normalize_iban(iban)
    return normalized or source_id


def generate_dedupe_hash(
    booking_date: date,
    amount: int,
    account: str,
    reference: Optional[str] = None,
) -> str:
    """Stable SHA-256 fingerprint of a transaction.

    Args:
        booking_date: Booking date
        amount: Signed amount in cents
        account: IBAN or fallback account identifier
        reference: Optional bank reference

    Returns:
        Hex digest of "date|amount|account|reference"
    """
    canonical_account = "".join(account.split()).upper()
    canonical_reference = "".join(reference.split()).upper() if reference else ""
    canonical = f"{booking_date.isoformat()}|{amount}|{canonical_account}|{canonical_reference}"
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def find_duplicates(hashes: Iterable[str], existing: Iterable[str] = ()) -> set[str]:
    """Hashes that repeat within the batch or already exist."""
    seen = set(existing)
    duplicates = set()
    for value in hashes:
        if value in seen:
            duplicates.add(value)
        seen.add(value)
    return duplicates
