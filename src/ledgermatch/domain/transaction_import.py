"""Transaction import with duplicate detection.

Every imported record gets a dedupe hash over date, amount, account and
reference. The account is the source IBAN, or the source id for sources
without one. Records whose hash already exists (from an earlier CSV upload
or a bank sync covering the same days) are skipped.
"""

import csv
import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Iterable, Optional

from ledgermatch.context import OperationsContext
from ledgermatch.domain.entities import Transaction, new_id, utcnow
from ledgermatch.domain.partner_matching import PartnerMatchingService
from ledgermatch.domain.source import SourceService
from ledgermatch.utils.amount_parser import DEFAULT_AMOUNT_FORMAT, get_amount_format, parse_amount
from ledgermatch.utils.date_parser import parse_date
from ledgermatch.utils.dedup import account_identifier, generate_dedupe_hash

logger = logging.getLogger(__name__)

DEFAULT_COLUMNS = {
    "date": "date",
    "amount": "amount",
    "name": "name",
    "reference": "reference",
    "partner": "partner",
    "partner_iban": "partner_iban",
    "currency": "currency",
}
REQUIRED_COLUMNS = ("date", "amount", "name")


@dataclass(frozen=True)
class RawTransaction:
    """A transaction as delivered by a CSV export or a bank API."""

    date: date
    amount: int
    name: str
    currency: Optional[str] = None
    reference: Optional[str] = None
    partner: Optional[str] = None
    partner_iban: Optional[str] = None


class TransactionImportService:
    """Service for importing transactions into a source."""

    def __init__(self, ctx: OperationsContext):
        """Initialize transaction import service.

        Args:
            ctx: Operations context
        """
        self.ctx = ctx
        self.repo = ctx.repo
        self.source_service = SourceService(ctx)
        self.partner_service = PartnerMatchingService(ctx)

    def import_records(
        self, records: Iterable[RawTransaction], source_id: str, match_partners: bool = True
    ) -> dict[str, Any]:
        """Store new records and skip duplicates.

        Args:
            records: Parsed transactions
            source_id: Source the records belong to
            match_partners: Run partner matching on the imported transactions

        Returns:
            Dict with import statistics:
            - imported: number of transactions imported
            - skipped: number of duplicates skipped
            - matched: number of imported transactions given a partner
            - errors: list of error messages
            - transaction_ids: ids of the imported transactions
        """
        source = self.source_service.get_source(source_id)
        account = account_identifier(source.iban, source.id)
        records = list(records)
        hashes = [
            generate_dedupe_hash(r.date, r.amount, account, r.reference) for r in records
        ]
        seen = self.repo.find_existing_dedupe_hashes(self.ctx.user_id, hashes)

        imported_ids = []
        skipped = 0
        now = utcnow()
        with self.repo.transaction():
            for record, dedupe_hash in zip(records, hashes):
                if dedupe_hash in seen:
                    skipped += 1
                    continue
                seen.add(dedupe_hash)
                transaction = Transaction(
                    id=new_id(),
                    user_id=self.ctx.user_id,
                    source_id=source.id,
                    date=record.date,
                    amount=record.amount,
                    currency=(record.currency or source.currency).upper(),
                    name=record.name,
                    reference=record.reference,
                    partner=record.partner,
                    partner_iban=record.partner_iban,
                    dedupe_hash=dedupe_hash,
                    imported_at=now,
                )
                self.repo.add_transaction(transaction)
                imported_ids.append(transaction.id)

        logger.info(
            "Imported %d transactions into source %s, skipped %d duplicates",
            len(imported_ids),
            source.id,
            skipped,
        )

        matched = 0
        if match_partners and imported_ids:
            partners = self.partner_service.candidate_partners()
            for transaction_id in imported_ids:
                _, after = self.partner_service.match_transaction(transaction_id, partners)
                if after.partner_id is not None:
                    matched += 1

        return {
            "imported": len(imported_ids),
            "skipped": skipped,
            "matched": matched,
            "errors": [],
            "transaction_ids": imported_ids,
        }

    def import_csv(
        self,
        csv_file_path: str,
        source_id: str,
        amount_format: str = DEFAULT_AMOUNT_FORMAT,
        dayfirst: bool = True,
        columns: Optional[dict[str, str]] = None,
        match_partners: bool = True,
    ) -> dict[str, Any]:
        """Import transactions from a CSV file.

        Args:
            csv_file_path: Path to CSV file
            source_id: Source to import into
            amount_format: Amount format preset name (de, us, ...)
            dayfirst: Read ambiguous dates as day-month-year
            columns: Field name -> CSV column name overrides
            match_partners: Run partner matching on the imported transactions

        Returns:
            Dict with imported/skipped counts and row errors

        Raises:
            ValueError: If the amount format is unknown or columns are missing
            FileNotFoundError: If CSV file doesn't exist
        """
        if get_amount_format(amount_format) is None:
            raise ValueError(f"Unknown amount format '{amount_format}'")
        column_map = {**DEFAULT_COLUMNS, **(columns or {})}

        csv_path = Path(csv_file_path)
        if not csv_path.exists():
            raise FileNotFoundError(f"CSV file not found: {csv_file_path}")

        records = []
        errors = []
        with open(csv_path, "r", encoding="utf-8-sig", newline="") as f:
            sample = f.read(1024)
            f.seek(0)
            try:
                delimiter = csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
            except csv.Error:
                delimiter = ","

            reader = csv.DictReader(f, delimiter=delimiter)
            if reader.fieldnames is None:
                raise ValueError("CSV file has no columns")
            missing = [
                column_map[field]
                for field in REQUIRED_COLUMNS
                if column_map[field] not in reader.fieldnames
            ]
            if missing:
                raise ValueError(f"CSV file missing required columns: {', '.join(missing)}")

            for row_num, row in enumerate(reader, start=2):
                values = {
                    field: (row.get(column) or "").strip() or None
                    for field, column in column_map.items()
                }
                booking_date = parse_date(values["date"], dayfirst=dayfirst)
                if booking_date is None:
                    errors.append(f"Row {row_num}: Invalid date '{values['date']}'")
                    continue
                amount = parse_amount(values["amount"], amount_format)
                if amount is None:
                    errors.append(f"Row {row_num}: Invalid amount '{values['amount']}'")
                    continue
                if not values["name"]:
                    errors.append(f"Row {row_num}: Missing name")
                    continue
                records.append(
                    RawTransaction(
                        date=booking_date,
                        amount=amount,
                        name=values["name"],
                        currency=values["currency"],
                        reference=values["reference"],
                        partner=values["partner"],
                        partner_iban=values["partner_iban"],
                    )
                )

        result = self.import_records(records, source_id, match_partners=match_partners)
        result["errors"] = errors
        return result
