"""Tests for the command line interface."""

import re

import pytest

from ledgermatch.cli.main import cli
from ledgermatch.database.factories import create_sqlite_repository

COLUMN_ARGS = [
    "--column", "date=Buchungsdatum",
    "--column", "amount=Betrag",
    "--column", "name=Buchungstext",
    "--column", "partner=Auftraggeber",
    "--column", "partner_iban=IBAN",
    "--column", "reference=Referenz",
]


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "cli.db")


@pytest.fixture
def run(cli_runner, db_path):
    def _run(*args):
        return cli_runner.invoke(cli, ["--db-path", db_path, "--user", "user-1", *args])

    return _run


def created_id(output):
    return re.search(r"\(ID: ([^,)]+)", output).group(1)


def test_help_lists_commands(cli_runner):
    result = cli_runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "source" in result.output
    assert "partner" in result.output


def test_source_add_and_list(run):
    assert "No sources found." in run("source", "list").output

    result = run("source", "add", "Business Account", "--iban", "AT61 1904 3002 3457 3201")
    assert result.exit_code == 0
    assert "Created source 'Business Account'" in result.output

    listing = run("source", "list").output
    assert "Business Account" in listing


def test_invalid_iban_exits_with_error(run):
    result = run("source", "add", "Broken", "--iban", "AT12")
    assert result.exit_code == 1
    assert "Error:" in result.output


def test_import_and_assign_partner(run, db_path, fixtures_dir):
    run("source", "add", "Business Account", "--iban", "AT611904300234573201")
    netflix = created_id(run("partner", "add", "Netflix").output)
    run("partner", "add", "Hausverwaltung Huber", "--iban", "AT483200000012345864")

    result = run(
        "import", str(fixtures_dir / "bank_export_de.csv"), "--source", "Business Account", *COLUMN_ARGS
    )
    assert result.exit_code == 0, result.output
    assert "Imported: 4 transactions" in result.output
    assert "Matched: 1 to partners" in result.output

    again = run(
        "import", str(fixtures_dir / "bank_export_de.csv"), "--source", "Business Account", *COLUMN_ARGS
    )
    assert "Skipped: 4 duplicates" in again.output

    repo = create_sqlite_repository(database_path=db_path)
    repo.connect()
    try:
        netflix_tx = next(t for t in repo.list_transactions("user-1") if t.name.startswith("NETFLIX"))
    finally:
        repo.disconnect()

    assigned = run("partner", "assign", netflix_tx.id, netflix)
    assert assigned.exit_code == 0, assigned.output
    assert f"Assigned partner {netflix} to transaction {netflix_tx.id}" in assigned.output
    assert re.search(r"Learned pattern '\*netflix[^']*' \(60%\)", assigned.output)

    patterns = run("partner", "patterns", netflix)
    assert "*netflix" in patterns.output


def test_invalid_column_mapping(run, fixtures_dir):
    run("source", "add", "Business Account")
    result = run(
        "import", str(fixtures_dir / "bank_export_de.csv"), "--source", "Business Account",
        "--column", "colour=Farbe",
    )
    assert result.exit_code == 1
    assert "Invalid column mapping 'colour=Farbe'" in result.output


def test_assign_unknown_transaction(run):
    partner = created_id(run("partner", "add", "Netflix").output)
    result = run("partner", "assign", "missing", partner)
    assert result.exit_code == 1
    assert "Error:" in result.output


def test_category_init_is_idempotent(run):
    first = run("category", "init")
    assert first.exit_code == 0
    assert "Created 9 categories, 0 already existed" in first.output
    assert "Created 0 categories, 9 already existed" in run("category", "init").output


def test_user_set_and_show(run):
    assert "Nothing to update." in run("user", "set").output

    result = run("user", "set", "--name", "Jane Doe", "--vat-id", "ATU12345678")
    assert result.exit_code == 0, result.output
    assert "Updated user data" in result.output
    assert "Re-evaluated 0 files, 0 changed" in result.output

    shown = run("user", "show").output
    assert "Name:         Jane Doe" in shown
    assert "VAT ids:      ATU12345678" in shown


def test_users_are_isolated(cli_runner, db_path, run):
    run("source", "add", "Business Account")
    result = cli_runner.invoke(cli, ["--db-path", db_path, "--user", "user-2", "source", "list"])
    assert "No sources found." in result.output


def test_file_add_and_match(run, db_path, fixtures_dir):
    run("source", "add", "Business Account", "--iban", "AT611904300234573201")
    run(
        "import", str(fixtures_dir / "bank_export_de.csv"), "--source", "Business Account",
        "--no-match", *COLUMN_ARGS,
    )
    added = run("file", "add", "netflix.pdf", "--amount", "12,99", "--date", "2024-01-15")
    assert added.exit_code == 0, added.output
    file_id = created_id(added.output)

    repo = create_sqlite_repository(database_path=db_path)
    repo.connect()
    try:
        netflix_tx = next(t for t in repo.list_transactions("user-1") if t.name.startswith("NETFLIX"))
    finally:
        repo.disconnect()

    matched = run("file", "match", file_id)
    assert matched.exit_code == 0, matched.output
    assert netflix_tx.id in matched.output
    assert "Strong" in matched.output

    scored = run("score-files", netflix_tx.id, file_id)
    assert "Exact amount match" in scored.output


def test_file_add_rejects_bad_amount(run):
    result = run("file", "add", "invoice.pdf", "--amount", "twelve")
    assert result.exit_code == 1
    assert "Invalid amount 'twelve'" in result.output
