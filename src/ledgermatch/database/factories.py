"""Repository factory functions."""

import os
from pathlib import Path
from typing import Optional

from ledgermatch.database.sqlalchemy_db import SQLAlchemyRepository


def create_sqlite_repository(database_path: Optional[str] = None) -> SQLAlchemyRepository:
    """Create a SQLite-backed repository.

    Args:
        database_path: Path to SQLite database file. If None, checks LEDGERMATCH_DB_PATH
            environment variable, then defaults to ~/.ledgermatch/ledgermatch.db

    Returns:
        SQLAlchemyRepository instance configured for SQLite
    """
    if database_path is None:
        database_path = os.environ.get("LEDGERMATCH_DB_PATH")

    if database_path is None:
        db_dir = Path.home() / ".ledgermatch"
        db_dir.mkdir(exist_ok=True)
        database_path = str(db_dir / "ledgermatch.db")

    return SQLAlchemyRepository(f"sqlite:///{database_path}")
