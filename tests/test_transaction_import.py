"""Tests for transaction import and duplicate detection."""

from datetime import date

import pytest

from ledgermatch.domain.errors import NotFoundError, ValidationError
from ledgermatch.domain.source import SourceService
from ledgermatch.domain.transaction_import import RawTransaction, TransactionImportService

GERMAN_COLUMNS = {
    "date": "Buchungsdatum",
    "amount": "Betrag",
    "name": "Buchungstext",
    "partner": "Auftraggeber",
    "partner_iban": "IBAN",
    "reference": "Referenz",
}


@pytest.fixture
def service(ctx):
    return TransactionImportService(ctx)


@pytest.fixture
def bank_export(fixtures_dir):
    return str(fixtures_dir / "bank_export_de.csv")


def test_import_german_bank_export(service, memory_repo, sample_source, bank_export, add_partner):
    netflix = add_partner("Netflix", ibans=("NL22ABNA0123456789",))

    result = service.import_csv(bank_export, sample_source.id, columns=GERMAN_COLUMNS)

    assert result["imported"] == 4
    assert result["skipped"] == 0
    assert result["errors"] == []
    assert result["matched"] == 1
    transactions = memory_repo.list_transactions("user-1")
    assert [t.amount for t in transactions] == [-450, 250000, -123456, -1299]
    assert transactions[-1].date == date(2024, 1, 15)
    assert transactions[-1].partner_id == netflix.id
    assert transactions[0].partner is None
    assert all(t.currency == "EUR" for t in transactions)
    assert all(t.dedupe_hash for t in transactions)


def test_reimport_skips_everything(service, memory_repo, sample_source, bank_export):
    service.import_csv(bank_export, sample_source.id, columns=GERMAN_COLUMNS)

    result = service.import_csv(bank_export, sample_source.id, columns=GERMAN_COLUMNS)

    assert result["imported"] == 0
    assert result["skipped"] == 4
    assert len(memory_repo.list_transactions("user-1")) == 4


def test_duplicates_within_one_batch(service, sample_source):
    record = RawTransaction(date=date(2024, 1, 15), amount=-1299, name="NETFLIX", reference="R1")
    other = RawTransaction(date=date(2024, 1, 15), amount=-1299, name="NETFLIX", reference="R2")

    result = service.import_records([record, record, other], sample_source.id)

    assert result["imported"] == 2
    assert result["skipped"] == 1


def test_row_errors_are_collected(service, sample_source, tmp_path):
    csv_file = tmp_path / "export.csv"
    csv_file.write_text(
        "date;amount;name\n"
        "2024-01-15;12,50;Coffee\n"
        "not a date;1,00;Broken date\n"
        "2024-01-16;abc;Broken amount\n"
        "2024-01-17;3,00;\n",
        encoding="utf-8",
    )

    result = service.import_csv(str(csv_file), sample_source.id)

    assert result["imported"] == 1
    assert result["errors"] == [
        "Row 3: Invalid date 'not a date'",
        "Row 4: Invalid amount 'abc'",
        "Row 5: Missing name",
    ]


def test_missing_required_columns(service, sample_source, bank_export):
    with pytest.raises(ValueError, match="Buchungsdatum|date"):
        service.import_csv(bank_export, sample_source.id)


def test_unknown_amount_format(service, sample_source, bank_export):
    with pytest.raises(ValueError, match="Unknown amount format"):
        service.import_csv(bank_export, sample_source.id, amount_format="roman")


def test_missing_file(service, sample_source):
    with pytest.raises(FileNotFoundError):
        service.import_csv("/nonexistent/export.csv", sample_source.id)


def test_source_must_belong_to_user(service, memory_repo, ctx):
    with pytest.raises(NotFoundError):
        service.import_records([], "missing")

    other_ctx = ctx.__class__(repo=memory_repo, user_id="user-2", settings=ctx.settings)
    foreign = SourceService(other_ctx).create_source("Foreign Account")
    with pytest.raises(ValidationError):
        service.import_records([], foreign.id)


def test_sources_without_iban_hash_on_source_id(service, memory_repo, ctx):
    cash = SourceService(ctx).create_source("Cash")
    record = RawTransaction(date=date(2024, 1, 15), amount=-500, name="Kaffee")

    service.import_records([record], cash.id, match_partners=False)

    stored = memory_repo.list_transactions("user-1")[0]
    assert stored.source_id == cash.id
    assert stored.partner_suggestions == ()
