"""Paginated bulk passes over large record sets.

A pass walks a cursor-ordered query page by page, processes each page inside
one unit of work and stops when the data runs out, the record cap is reached
or the time budget is spent. The returned cursor lets a later call resume
where this one stopped.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, Sequence, TypeVar

from ledgermatch.database.base import PageCursor, Repository

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BulkResult:
    """Counters of one bulk pass."""

    processed: int = 0
    matched: int = 0
    failed: int = 0
    truncated: bool = False
    cursor: Optional[PageCursor] = None

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "matched": self.matched,
            "failed": self.failed,
            "truncated": self.truncated,
            "cursor": self.cursor,
        }


class PagedRunner(Generic[T]):
    """Runs a per-record callback over every page of a query.

    Args:
        repo: Repository providing the unit of work
        fetch_page: Callable (start_after, limit) -> records
        cursor_for: Callable building the resume cursor from a record
        page_size: Records per page (and per unit of work)
        max_processed: Safety cap on records handled in one run
        time_budget: Wall-clock seconds after which the run stops
        name: Label for log messages
    """

    def __init__(
        self,
        repo: Repository,
        fetch_page: Callable[[Optional[PageCursor], int], Sequence[T]],
        cursor_for: Callable[[T], PageCursor],
        page_size: int,
        max_processed: int,
        time_budget: float,
        name: str = "bulk pass",
    ):
        self.repo = repo
        self.fetch_page = fetch_page
        self.cursor_for = cursor_for
        self.page_size = page_size
        self.max_processed = max_processed
        self.time_budget = time_budget
        self.name = name

    def run(self, process: Callable[[T], bool], start_after: Optional[PageCursor] = None) -> BulkResult:
        """Process records until done or a budget is exhausted.

        `process` returns True when the record counted as matched. A record
        that raises is logged, counted as failed and skipped.
        """
        result = BulkResult(cursor=start_after)
        deadline = time.monotonic() + self.time_budget
        logger.info("Starting %s", self.name)

        while True:
            remaining = self.max_processed - result.processed
            if remaining <= 0:
                result.truncated = True
                break
            limit = min(self.page_size, remaining)
            page = self.fetch_page(result.cursor, limit)
            if not page:
                break

            with self.repo.transaction():
                for record in page:
                    try:
                        if process(record):
                            result.matched += 1
                    except Exception:
                        logger.exception("%s failed for %s", self.name, getattr(record, "id", record))
                        result.failed += 1
                    result.processed += 1

            result.cursor = self.cursor_for(page[-1])
            if len(page) < limit:
                break
            if time.monotonic() >= deadline:
                result.truncated = True
                break

        if result.truncated:
            logger.warning(
                "%s stopped early after %d records; resume from cursor %s",
                self.name,
                result.processed,
                result.cursor,
            )
        logger.info(
            "Finished %s: processed=%d matched=%d failed=%d",
            self.name,
            result.processed,
            result.matched,
            result.failed,
        )
        return result


def transaction_cursor(transaction) -> PageCursor:
    """Cursor for the (date desc, id desc) transaction order."""
    return PageCursor(id=transaction.id, sort_date=transaction.date)


def file_cursor(file) -> PageCursor:
    """Cursor for the id-ordered file pages."""
    return PageCursor(id=file.id)
