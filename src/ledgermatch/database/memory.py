"""In-memory repository for tests and previews."""

import threading
from contextlib import contextmanager
from datetime import date
from typing import Iterator, Optional

from ledgermatch.database.base import PageCursor, Repository
from ledgermatch.domain.entities import (
    File,
    NoReceiptCategory,
    Partner,
    Source,
    Transaction,
    UserData,
)
from ledgermatch.domain.errors import (
    NotFoundError,
    category_not_found,
    file_not_found,
    partner_not_found,
    transaction_not_found,
)
from ledgermatch.utils.normalization import normalize_iban


class InMemoryRepository(Repository):
    """Dictionary-backed implementation of the Repository interface.

    Entities are immutable, so stored objects are handed out directly.
    `write_count` counts every add/save call.
    """

    def __init__(self):
        self.user_data: dict[str, UserData] = {}
        self.sources: dict[str, Source] = {}
        self.transactions: dict[str, Transaction] = {}
        self.partners: dict[str, Partner] = {}
        self.categories: dict[str, NoReceiptCategory] = {}
        self.files: dict[str, File] = {}
        self.write_count = 0
        self._lock = threading.RLock()
        self._snapshot: Optional[tuple] = None
        self._depth = 0

    def connect(self) -> None:
        """Connect to the store."""
        pass

    def disconnect(self) -> None:
        """Disconnect from the store."""
        pass

    def _state(self) -> tuple:
        return (
            dict(self.user_data),
            dict(self.sources),
            dict(self.transactions),
            dict(self.partners),
            dict(self.categories),
            dict(self.files),
            self.write_count,
        )

    def _restore(self, state: tuple) -> None:
        (
            self.user_data,
            self.sources,
            self.transactions,
            self.partners,
            self.categories,
            self.files,
            self.write_count,
        ) = state

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            if self._depth == 0:
                self._snapshot = self._state()
            self._depth += 1
            try:
                yield
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    self._restore(self._snapshot)
                    self._snapshot = None
                raise
            self._depth -= 1
            if self._depth == 0:
                self._snapshot = None

    def _write(self) -> None:
        self.write_count += 1

    # User data
    def get_user_data(self, user_id: str) -> Optional[UserData]:
        return self.user_data.get(user_id)

    def save_user_data(self, user_data: UserData) -> None:
        with self._lock:
            self.user_data[user_data.user_id] = user_data
            self._write()

    # Sources
    def create_source(self, source: Source) -> str:
        with self._lock:
            self.sources[source.id] = source
            self._write()
        return source.id

    def get_source(self, source_id: str) -> Optional[Source]:
        return self.sources.get(source_id)

    def list_sources(self, user_id: str) -> list[Source]:
        return sorted(
            (s for s in self.sources.values() if s.user_id == user_id), key=lambda s: s.name
        )

    def find_active_source_ibans(self, user_id: str) -> list[str]:
        return [
            normalize_iban(s.iban)
            for s in self.sources.values()
            if s.user_id == user_id and s.is_active and s.iban
        ]

    # Transactions
    def add_transaction(self, transaction: Transaction) -> str:
        with self._lock:
            self.transactions[transaction.id] = transaction
            self._write()
        return transaction.id

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self.transactions.get(transaction_id)

    def save_transaction(self, transaction: Transaction) -> None:
        with self._lock:
            if transaction.id not in self.transactions:
                raise NotFoundError(transaction_not_found(transaction.id))
            self.transactions[transaction.id] = transaction
            self._write()

    def find_existing_dedupe_hashes(self, user_id: str, hashes: list[str]) -> set[str]:
        wanted = set(hashes)
        return {
            t.dedupe_hash
            for t in self.transactions.values()
            if t.user_id == user_id and t.dedupe_hash in wanted
        }

    def _newest_first(self, user_id: str) -> list[Transaction]:
        return sorted(
            (t for t in self.transactions.values() if t.user_id == user_id),
            key=lambda t: (t.date, t.id),
            reverse=True,
        )

    def _page(
        self, rows: list[Transaction], start_after: Optional[PageCursor], limit: int
    ) -> list[Transaction]:
        if start_after is not None:
            position = (start_after.sort_date, start_after.id)
            rows = [t for t in rows if (t.date, t.id) < position]
        return rows[:limit]

    def find_unassigned_transactions_page(
        self, user_id: str, start_after: Optional[PageCursor], limit: int
    ) -> list[Transaction]:
        rows = [t for t in self._newest_first(user_id) if t.partner_id is None]
        return self._page(rows, start_after, limit)

    def find_uncategorized_transactions_page(
        self, user_id: str, start_after: Optional[PageCursor], limit: int
    ) -> list[Transaction]:
        rows = [
            t
            for t in self._newest_first(user_id)
            if t.no_receipt_category_id is None and not t.file_ids
        ]
        return self._page(rows, start_after, limit)

    def find_transactions_by_partner(self, user_id: str, partner_id: str) -> list[Transaction]:
        return [t for t in self._newest_first(user_id) if t.partner_id == partner_id]

    def find_transactions_in_range(
        self, user_id: str, start_date: date, end_date: date
    ) -> list[Transaction]:
        return [t for t in self._newest_first(user_id) if start_date <= t.date <= end_date]

    def list_transactions(self, user_id: str) -> list[Transaction]:
        return self._newest_first(user_id)

    # Partners
    def add_partner(self, partner: Partner) -> str:
        with self._lock:
            self.partners[partner.id] = partner
            self._write()
        return partner.id

    def get_partner(self, partner_id: str) -> Optional[Partner]:
        return self.partners.get(partner_id)

    def save_partner(self, partner: Partner) -> None:
        with self._lock:
            if partner.id not in self.partners:
                raise NotFoundError(partner_not_found(partner.id))
            self.partners[partner.id] = partner
            self._write()

    def find_partners_by_user(self, user_id: str) -> list[Partner]:
        return sorted(
            (p for p in self.partners.values() if p.user_id == user_id and p.is_active),
            key=lambda p: p.name,
        )

    def find_global_partners(self) -> list[Partner]:
        return sorted(
            (p for p in self.partners.values() if p.user_id is None and p.is_active),
            key=lambda p: p.name,
        )

    # No-receipt categories
    def add_category(self, category: NoReceiptCategory) -> str:
        with self._lock:
            self.categories[category.id] = category
            self._write()
        return category.id

    def get_category(self, category_id: str) -> Optional[NoReceiptCategory]:
        return self.categories.get(category_id)

    def save_category(self, category: NoReceiptCategory) -> None:
        with self._lock:
            if category.id not in self.categories:
                raise NotFoundError(category_not_found(category.id))
            self.categories[category.id] = category
            self._write()

    def find_categories_by_user(self, user_id: str) -> list[NoReceiptCategory]:
        return sorted(
            (c for c in self.categories.values() if c.user_id == user_id),
            key=lambda c: c.name,
        )

    # Files
    def add_file(self, file: File) -> str:
        with self._lock:
            self.files[file.id] = file
            self._write()
        return file.id

    def get_file(self, file_id: str) -> Optional[File]:
        return self.files.get(file_id)

    def save_file(self, file: File) -> None:
        with self._lock:
            if file.id not in self.files:
                raise NotFoundError(file_not_found(file.id))
            self.files[file.id] = file
            self._write()

    def find_extracted_files_page(
        self, user_id: str, start_after: Optional[PageCursor], limit: int
    ) -> list[File]:
        rows = sorted(
            (
                f
                for f in self.files.values()
                if f.user_id == user_id and f.extraction_complete and not f.is_not_invoice
            ),
            key=lambda f: f.id,
        )
        if start_after is not None:
            rows = [f for f in rows if f.id > start_after.id]
        return rows[:limit]

    def list_files(self, user_id: str) -> list[File]:
        return sorted((f for f in self.files.values() if f.user_id == user_id), key=lambda f: f.id)
