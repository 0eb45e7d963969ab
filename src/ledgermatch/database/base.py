"""Abstract repository interface.

Matching services only talk to this interface, so they run unchanged against
SQLAlchemy or the in-memory fake used in tests.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import date
from typing import Optional

# Import entities directly to avoid circular import through domain/__init__.py
from ledgermatch.domain.entities import (
    File,
    NoReceiptCategory,
    Partner,
    Source,
    Transaction,
    UserData,
)


@dataclass(frozen=True)
class PageCursor:
    """Position after the last record of a page.

    Transactions page by (date desc, id desc); files page by id ascending and
    leave sort_date unset.
    """

    id: str
    sort_date: Optional[date] = None


class Repository(ABC):
    """Abstract storage interface for ledgermatch."""

    @abstractmethod
    def connect(self) -> None:
        """Connect to the store."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the store."""
        pass

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """Atomic unit of work.

        Writes inside the block are applied together or not at all. Nested
        blocks join the outermost one.
        """
        pass

    # User data
    @abstractmethod
    def get_user_data(self, user_id: str) -> Optional[UserData]:
        """Get the identity record of a user."""
        pass

    @abstractmethod
    def save_user_data(self, user_data: UserData) -> None:
        """Create or replace the identity record of a user."""
        pass

    # Sources
    @abstractmethod
    def create_source(self, source: Source) -> str:
        """Store a new source. Returns source ID."""
        pass

    @abstractmethod
    def get_source(self, source_id: str) -> Optional[Source]:
        """Get source by ID."""
        pass

    @abstractmethod
    def list_sources(self, user_id: str) -> list[Source]:
        """List all sources of a user."""
        pass

    @abstractmethod
    def find_active_source_ibans(self, user_id: str) -> list[str]:
        """IBANs of the user's active sources, normalized."""
        pass

    # Transactions
    @abstractmethod
    def add_transaction(self, transaction: Transaction) -> str:
        """Store a new transaction. Returns transaction ID."""
        pass

    @abstractmethod
    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        """Get transaction by ID."""
        pass

    @abstractmethod
    def save_transaction(self, transaction: Transaction) -> None:
        """Replace the stored state of an existing transaction."""
        pass

    @abstractmethod
    def find_existing_dedupe_hashes(self, user_id: str, hashes: list[str]) -> set[str]:
        """Return the subset of hashes already stored for the user."""
        pass

    @abstractmethod
    def find_unassigned_transactions_page(
        self, user_id: str, start_after: Optional[PageCursor], limit: int
    ) -> list[Transaction]:
        """Page of transactions without a partner, newest first."""
        pass

    @abstractmethod
    def find_uncategorized_transactions_page(
        self, user_id: str, start_after: Optional[PageCursor], limit: int
    ) -> list[Transaction]:
        """Page of transactions without a category and without files, newest first."""
        pass

    @abstractmethod
    def find_transactions_by_partner(self, user_id: str, partner_id: str) -> list[Transaction]:
        """All transactions of a user assigned to a partner."""
        pass

    @abstractmethod
    def find_transactions_in_range(
        self, user_id: str, start_date: date, end_date: date
    ) -> list[Transaction]:
        """Transactions booked between two dates (inclusive)."""
        pass

    @abstractmethod
    def list_transactions(self, user_id: str) -> list[Transaction]:
        """All transactions of a user, newest first."""
        pass

    # Partners
    @abstractmethod
    def add_partner(self, partner: Partner) -> str:
        """Store a new partner. Returns partner ID."""
        pass

    @abstractmethod
    def get_partner(self, partner_id: str) -> Optional[Partner]:
        """Get partner by ID."""
        pass

    @abstractmethod
    def save_partner(self, partner: Partner) -> None:
        """Replace the stored state of an existing partner."""
        pass

    @abstractmethod
    def find_partners_by_user(self, user_id: str) -> list[Partner]:
        """Active user-scoped partners."""
        pass

    @abstractmethod
    def find_global_partners(self) -> list[Partner]:
        """Active global partners."""
        pass

    # No-receipt categories
    @abstractmethod
    def add_category(self, category: NoReceiptCategory) -> str:
        """Store a new category. Returns category ID."""
        pass

    @abstractmethod
    def get_category(self, category_id: str) -> Optional[NoReceiptCategory]:
        """Get category by ID."""
        pass

    @abstractmethod
    def save_category(self, category: NoReceiptCategory) -> None:
        """Replace the stored state of an existing category."""
        pass

    @abstractmethod
    def find_categories_by_user(self, user_id: str) -> list[NoReceiptCategory]:
        """All no-receipt categories of a user."""
        pass

    # Files
    @abstractmethod
    def add_file(self, file: File) -> str:
        """Store a new file. Returns file ID."""
        pass

    @abstractmethod
    def get_file(self, file_id: str) -> Optional[File]:
        """Get file by ID."""
        pass

    @abstractmethod
    def save_file(self, file: File) -> None:
        """Replace the stored state of an existing file."""
        pass

    @abstractmethod
    def find_extracted_files_page(
        self, user_id: str, start_after: Optional[PageCursor], limit: int
    ) -> list[File]:
        """Page of files with completed extraction that are not marked "not an invoice"."""
        pass

    @abstractmethod
    def list_files(self, user_id: str) -> list[File]:
        """All files of a user."""
        pass
