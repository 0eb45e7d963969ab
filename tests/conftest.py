"""Shared pytest fixtures for ledgermatch tests."""

import os
import tempfile
from datetime import date
from pathlib import Path

import pytest

from ledgermatch.config import MatchingSettings
from ledgermatch.context import OperationsContext
from ledgermatch.database.factories import create_sqlite_repository
from ledgermatch.database.memory import InMemoryRepository
from ledgermatch.domain.entities import File, Partner, Source, Transaction, new_id
from ledgermatch.utils.dedup import generate_dedupe_hash

USER_ID = "user-1"


@pytest.fixture
def settings():
    """Default matching settings, independent of the environment."""
    return MatchingSettings(_env_file=None)


@pytest.fixture
def memory_repo():
    """Create an empty in-memory repository."""
    return InMemoryRepository()


@pytest.fixture
def ctx(memory_repo, settings):
    """Operations context for USER_ID on the in-memory repository."""
    return OperationsContext(repo=memory_repo, user_id=USER_ID, settings=settings)


@pytest.fixture
def temp_db():
    """Create a temporary SQLite repository for testing."""
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    repo = create_sqlite_repository(database_path=db_path)
    # Store the path for tests that need it
    repo.database_path = db_path
    repo.connect()

    yield repo

    repo.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def sample_source(memory_repo):
    """A bank account source of USER_ID."""
    source = Source(id="src-1", user_id=USER_ID, name="Business Account", iban="AT611904300234573201")
    memory_repo.create_source(source)
    return source


@pytest.fixture
def add_transaction(memory_repo, sample_source):
    """Factory storing a transaction in the in-memory repository."""

    def _add(name="NETFLIX.COM", amount=-1299, booking_date=date(2024, 3, 10), **fields):
        fields.setdefault("id", new_id())
        fields.setdefault("user_id", USER_ID)
        fields.setdefault("currency", "EUR")
        transaction = Transaction(
            source_id=sample_source.id,
            date=booking_date,
            amount=amount,
            name=name,
            dedupe_hash=generate_dedupe_hash(
                booking_date, amount, sample_source.iban, fields["id"]
            ),
            **fields,
        )
        memory_repo.add_transaction(transaction)
        return transaction

    return _add


@pytest.fixture
def add_partner(memory_repo):
    """Factory storing a partner (user-scoped unless user_id=None)."""

    def _add(name, **fields):
        fields.setdefault("id", new_id())
        fields.setdefault("user_id", USER_ID)
        partner = Partner(name=name, **fields)
        memory_repo.add_partner(partner)
        return partner

    return _add


@pytest.fixture
def add_file(memory_repo):
    """Factory storing an extracted file."""

    def _add(file_name="invoice.pdf", **fields):
        fields.setdefault("id", new_id())
        fields.setdefault("user_id", USER_ID)
        fields.setdefault("extraction_complete", True)
        file = File(file_name=file_name, **fields)
        memory_repo.add_file(file)
        return file

    return _add


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()


@pytest.fixture
def api_client(memory_repo):
    """FastAPI test client backed by the in-memory repository."""
    from fastapi.testclient import TestClient

    from ledgermatch.api import create_app, get_repository

    app = create_app()
    app.dependency_overrides[get_repository] = lambda: memory_repo
    with TestClient(app) as client:
        yield client


@pytest.fixture
def fixtures_dir():
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"
