"""No-receipt category matching.

Categories are per-user copies of a fixed set of templates (bank fees,
payroll, taxes, ...). A transaction that will never get a receipt is matched
to a category through the partner linkage stored on the category and through
glob patterns learned from manual assignments.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from ledgermatch.config import MatchingSettings
from ledgermatch.context import OperationsContext
from ledgermatch.database.base import PageCursor
from ledgermatch.domain.bulk import BulkResult, PagedRunner, transaction_cursor
from ledgermatch.domain.entities import (
    CategorySuggestion,
    LearnedPattern,
    ManualRemoval,
    NoReceiptCategory,
    Transaction,
    new_id,
    utcnow,
)
from ledgermatch.domain.errors import (
    NotFoundError,
    ValidationError,
    category_not_found,
    foreign_entity,
    transaction_not_found,
)
from ledgermatch.domain.pattern_learning import derive_pattern, is_generic_pattern, reinforce_or_add
from ledgermatch.utils.glob import glob_match, pattern_key

logger = logging.getLogger(__name__)

RECEIPT_LOST = "receipt-lost"
NO_FILE_PATTERNS_BOOST = 8

# Unlearning after a removal
SOURCE_LOSS_PENALTY = 5
SOURCE_LOSS_FLOOR = 50
FALSE_POSITIVE_PENALTY = 15
FALSE_POSITIVE_FLOOR = 40


@dataclass(frozen=True)
class CategoryTemplate:
    id: str
    name: str
    description: str


CATEGORY_TEMPLATES = (
    CategoryTemplate(
        "bank-fees",
        "Bank & Payment Fees",
        "Fees charged by banks, payment processors, or financial services",
    ),
    CategoryTemplate(
        "interest", "Interest", "Interest charged or paid by banks and financial institutions"
    ),
    CategoryTemplate(
        "internal-transfers", "Internal Transfers", "Money transfers between your own accounts"
    ),
    CategoryTemplate(
        "payment-provider-settlements",
        "Payment Provider Settlements",
        "Automated payouts and fee settlements from payment providers",
    ),
    CategoryTemplate(
        "taxes-government",
        "Taxes & Government Payments",
        "Tax payments and fees to public authorities",
    ),
    CategoryTemplate(
        "payroll", "Payroll Payments", "Salary payments and employment-related contributions"
    ),
    CategoryTemplate(
        "private-personal",
        "Private or Personal Spending",
        "Personal expenses paid with the business account",
    ),
    CategoryTemplate("zero-value", "Zero-Value Transactions", "Transactions with no financial impact"),
    CategoryTemplate(
        RECEIPT_LOST,
        "Receipt Lost",
        "Receipt was lost or unavailable - requires documentation",
    ),
)


def usage_boost(transaction_count: int, max_boost: int) -> int:
    """Logarithmic boost for frequently used categories.

    10 transactions give 5 points, 100 give 10 (the default cap).
    """
    if transaction_count <= 0:
        return 0
    return min(max_boost, round(math.log10(transaction_count + 1) * 5))


def is_eligible(transaction: Transaction) -> bool:
    """Only transactions without a category and without files get matched."""
    return transaction.no_receipt_category_id is None and not transaction.file_ids


def category_pattern_confidence(patterns: Sequence[LearnedPattern], text: str) -> int:
    return max((p.confidence for p in patterns if glob_match(p.pattern, text)), default=0)


def score_category(
    transaction: Transaction,
    category: NoReceiptCategory,
    settings: MatchingSettings,
    partner_file_pattern_counts: Optional[dict[str, int]] = None,
) -> Optional[CategorySuggestion]:
    """Score one category for a transaction, or None below the suggestion threshold."""
    if category.template_id == RECEIPT_LOST or not category.is_active:
        return None
    if category.is_removed_for_transaction(transaction.id):
        return None

    partner_match = (
        transaction.partner_id is not None and transaction.partner_id in category.matched_partner_ids
    )
    pattern_confidence = category_pattern_confidence(
        category.learned_patterns, transaction.match_text()
    )

    if partner_match and pattern_confidence:
        confidence = pattern_confidence + settings.combined_match_bonus
        source = "partner+pattern"
    elif partner_match:
        confidence = settings.category_partner_confidence
        source = "partner"
    elif pattern_confidence:
        confidence = pattern_confidence
        source = "pattern"
    else:
        return None

    confidence += usage_boost(category.transaction_count, settings.usage_boost_max)
    # Partners never seen with a receipt are likely no-receipt partners
    if (
        partner_match
        and partner_file_pattern_counts is not None
        and partner_file_pattern_counts.get(transaction.partner_id) == 0
    ):
        confidence += NO_FILE_PATTERNS_BOOST
    confidence = min(100, confidence)

    if confidence < settings.category_suggestion_threshold:
        return None
    return CategorySuggestion(
        category_id=category.id,
        template_id=category.template_id,
        confidence=confidence,
        source=source,
    )


def match_categories(
    transaction: Transaction,
    categories: Sequence[NoReceiptCategory],
    settings: MatchingSettings,
    partner_file_pattern_counts: Optional[dict[str, int]] = None,
) -> list[CategorySuggestion]:
    """Rank categories for a transaction, best first."""
    suggestions = []
    for category in categories:
        suggestion = score_category(transaction, category, settings, partner_file_pattern_counts)
        if suggestion is not None:
            suggestions.append(suggestion)
    suggestions.sort(key=lambda s: (-s.confidence, s.template_id, s.category_id))
    return suggestions[: settings.max_category_suggestions]


def apply_category_matches(
    transaction: Transaction, suggestions: list[CategorySuggestion], settings: MatchingSettings
) -> Transaction:
    """Return the transaction with suggestions and, if clear enough, a category."""
    if not is_eligible(transaction):
        return transaction
    updated = replace(transaction, category_suggestions=tuple(suggestions))
    top = suggestions[0] if suggestions else None
    if top is not None and top.confidence >= settings.category_auto_apply_threshold:
        updated = replace(
            updated,
            no_receipt_category_id=top.category_id,
            no_receipt_category_template_id=top.template_id,
            no_receipt_category_confidence=top.confidence,
            no_receipt_category_matched_by="auto",
        )
    return updated


def unlearn_patterns(
    patterns: Sequence[LearnedPattern], transaction_id: str, text: str
) -> tuple[LearnedPattern, ...]:
    """Weaken patterns after the user detached a transaction from a category.

    A pattern learned from the transaction loses that source (and is dropped
    when none remain). A pattern that merely matched the text is treated as
    a false positive and loses more confidence.
    """
    kept = []
    for learned in patterns:
        if transaction_id in learned.source_transaction_ids:
            sources = tuple(i for i in learned.source_transaction_ids if i != transaction_id)
            if not sources and not learned.source_file_ids:
                logger.info("Dropping category pattern %s: no sources left", learned.pattern)
                continue
            learned = replace(
                learned,
                source_transaction_ids=sources,
                confidence=max(SOURCE_LOSS_FLOOR, learned.confidence - SOURCE_LOSS_PENALTY),
            )
        elif glob_match(learned.pattern, text):
            confidence = max(FALSE_POSITIVE_FLOOR, learned.confidence - FALSE_POSITIVE_PENALTY)
            if confidence <= FALSE_POSITIVE_FLOOR:
                logger.info("Dropping category pattern %s: confidence too low", learned.pattern)
                continue
            learned = replace(learned, confidence=confidence)
        kept.append(learned)
    return tuple(kept)


class CategoryMatchingService:
    """Service for no-receipt category management and matching."""

    def __init__(self, ctx: OperationsContext):
        """Initialize category matching service.

        Args:
            ctx: Operations context
        """
        self.ctx = ctx
        self.repo = ctx.repo
        self.settings = ctx.settings

    def initialize_categories(self) -> dict:
        """Create the user's categories from the templates.

        Existing categories are left alone, so calling this twice creates
        nothing the second time.

        Returns:
            {"created": int, "skipped": int}
        """
        existing = {c.template_id for c in self.repo.find_categories_by_user(self.ctx.user_id)}
        created = 0
        with self.repo.transaction():
            for template in CATEGORY_TEMPLATES:
                if template.id in existing:
                    continue
                self.repo.add_category(
                    NoReceiptCategory(
                        id=new_id(),
                        user_id=self.ctx.user_id,
                        template_id=template.id,
                        name=template.name,
                    )
                )
                created += 1
        skipped = len(CATEGORY_TEMPLATES) - created
        logger.info("Initialized %d categories, skipped %d existing", created, skipped)
        return {"created": created, "skipped": skipped}

    def list_categories(self) -> list[NoReceiptCategory]:
        """All categories of the user, sorted by name."""
        return self.repo.find_categories_by_user(self.ctx.user_id)

    def get_category(self, category_id: str) -> NoReceiptCategory:
        category = self.repo.get_category(category_id)
        if category is None:
            raise NotFoundError(category_not_found(category_id))
        if category.user_id != self.ctx.user_id:
            raise ValidationError(foreign_entity("Category", category_id))
        return category

    def find_by_template(self, template_id: str) -> Optional[NoReceiptCategory]:
        return next(
            (c for c in self.list_categories() if c.template_id == template_id and c.is_active),
            None,
        )

    def _get_transaction(self, transaction_id: str) -> Transaction:
        transaction = self.repo.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(transaction_not_found(transaction_id))
        if transaction.user_id != self.ctx.user_id:
            raise ValidationError(foreign_entity("Transaction", transaction_id))
        return transaction

    def _partner_file_pattern_counts(self) -> dict[str, int]:
        return {
            p.id: sum(1 for learned in p.learned_patterns if learned.source_file_ids)
            for p in self.repo.find_partners_by_user(self.ctx.user_id)
        }

    def _record_auto_assignment(self, transaction: Transaction) -> None:
        category = self.repo.get_category(transaction.no_receipt_category_id)
        if category is None:
            raise NotFoundError(category_not_found(transaction.no_receipt_category_id))
        partner_ids = category.matched_partner_ids
        if transaction.partner_id and transaction.partner_id not in partner_ids:
            partner_ids = partner_ids + (transaction.partner_id,)
        self.repo.save_category(
            replace(
                category,
                matched_partner_ids=partner_ids,
                transaction_count=category.transaction_count + 1,
            )
        )

    def _match_current(
        self,
        current: Transaction,
        categories: Sequence[NoReceiptCategory],
        file_pattern_counts: dict[str, int],
    ) -> Transaction:
        if not is_eligible(current):
            return current
        suggestions = match_categories(current, categories, self.settings, file_pattern_counts)
        updated = apply_category_matches(current, suggestions, self.settings)
        if updated == current:
            logger.debug("No category change for transaction %s", current.id)
            return current
        self.repo.save_transaction(updated)
        if updated.no_receipt_category_id is not None:
            self._record_auto_assignment(updated)
            logger.info(
                "Auto-assigned category %s to transaction %s (%d)",
                updated.no_receipt_category_template_id,
                current.id,
                updated.no_receipt_category_confidence,
            )
        return updated

    def match_transaction(self, transaction_id: str) -> tuple[Transaction, Transaction]:
        """Match one transaction to categories and persist the outcome.

        Returns:
            (before, after) transaction states
        """
        categories = self.list_categories()
        counts = self._partner_file_pattern_counts()
        with self.repo.transaction():
            current = self._get_transaction(transaction_id)
            updated = self._match_current(current, categories, counts)
        return current, updated

    def assign_category(self, transaction_id: str, category_id: str) -> tuple[Transaction, Transaction]:
        """Manually assign a category to a transaction.

        The transaction's partner is linked to the category so later
        transactions from the same partner match directly.

        Returns:
            (before, after) transaction states
        """
        with self.repo.transaction():
            category = self.get_category(category_id)
            current = self._get_transaction(transaction_id)
            previous_id = current.no_receipt_category_id
            if previous_id and previous_id != category_id:
                previous = self.repo.get_category(previous_id)
                if previous is not None:
                    self.repo.save_category(
                        replace(previous, transaction_count=max(0, previous.transaction_count - 1))
                    )

            partner_ids = category.matched_partner_ids
            if current.partner_id and current.partner_id not in partner_ids:
                partner_ids = partner_ids + (current.partner_id,)
                logger.info("Linked partner %s to category %s", current.partner_id, category_id)
            count = category.transaction_count + (0 if previous_id == category_id else 1)
            self.repo.save_category(
                replace(category, matched_partner_ids=partner_ids, transaction_count=count)
            )

            updated = replace(
                current,
                no_receipt_category_id=category.id,
                no_receipt_category_template_id=category.template_id,
                no_receipt_category_confidence=100,
                no_receipt_category_matched_by="manual",
            )
            self.repo.save_transaction(updated)
        return current, updated

    def remove_category(self, transaction_id: str) -> tuple[Transaction, Transaction]:
        """Detach the category from a transaction.

        The transaction is recorded as a manual removal on the category and
        the category's patterns are weakened for its text.

        Returns:
            (before, after) transaction states
        """
        with self.repo.transaction():
            current = self._get_transaction(transaction_id)
            category_id = current.no_receipt_category_id
            if category_id is None:
                raise ValidationError(f"Transaction {transaction_id} has no category")
            category = self.repo.get_category(category_id)
            if category is not None:
                removals = category.manual_removals
                if not category.is_removed_for_transaction(current.id):
                    removals = removals + (
                        ManualRemoval(
                            transaction_id=current.id,
                            removed_at=utcnow(),
                            name=current.name,
                            partner=current.partner,
                            reference=current.reference,
                        ),
                    )
                self.repo.save_category(
                    replace(
                        category,
                        manual_removals=removals,
                        learned_patterns=unlearn_patterns(
                            category.learned_patterns, current.id, current.match_text()
                        ),
                        transaction_count=max(0, category.transaction_count - 1),
                    )
                )
            updated = replace(
                current,
                no_receipt_category_id=None,
                no_receipt_category_template_id=None,
                no_receipt_category_confidence=None,
                no_receipt_category_matched_by=None,
                category_suggestions=tuple(
                    s for s in current.category_suggestions if s.category_id != category_id
                ),
            )
            self.repo.save_transaction(updated)
        logger.info("Removed category %s from transaction %s", category_id, transaction_id)
        return current, updated

    def learn_from_transaction(self, transaction_id: str) -> Optional[LearnedPattern]:
        """Learn a category pattern from a manually categorized transaction."""
        transaction = self._get_transaction(transaction_id)
        if transaction.no_receipt_category_id is None:
            raise ValidationError(f"Transaction {transaction_id} has no category")
        pattern = derive_pattern(transaction.partner or transaction.name)
        if pattern is None:
            return None
        if is_generic_pattern(pattern):
            logger.warning("Rejected generic category pattern %s", pattern)
            return None

        with self.repo.transaction():
            category = self.get_category(transaction.no_receipt_category_id)
            if any(glob_match(pattern, r.match_text()) for r in category.manual_removals):
                logger.warning(
                    "Rejected category pattern %s for %s: matches a removed transaction",
                    pattern,
                    category.id,
                )
                return None
            patterns = reinforce_or_add(
                category.learned_patterns, pattern, self.settings, transaction_id=transaction.id
            )
            self.repo.save_category(replace(category, learned_patterns=patterns))
        learned = next(p for p in patterns if pattern_key(p.pattern) == pattern_key(pattern))
        logger.info(
            "Learned category pattern %s for %s (confidence %d)",
            learned.pattern,
            category.template_id,
            learned.confidence,
        )
        return learned

    def apply_category_patterns(self, start_after: Optional[PageCursor] = None) -> BulkResult:
        """Match every uncategorized transaction without files against the categories.

        Args:
            start_after: Resume cursor from a previous truncated run

        Returns:
            BulkResult with processed/matched/failed counts and the cursor
        """
        categories = self.list_categories()
        counts = self._partner_file_pattern_counts()

        def process(record: Transaction) -> bool:
            current = self.repo.get_transaction(record.id)
            if current is None:
                return False
            updated = self._match_current(current, categories, counts)
            return updated.no_receipt_category_id is not None and current.no_receipt_category_id is None

        runner = PagedRunner(
            self.repo,
            lambda cursor, limit: self.repo.find_uncategorized_transactions_page(
                self.ctx.user_id, cursor, limit
            ),
            transaction_cursor,
            page_size=self.settings.bulk_page_size,
            max_processed=self.settings.bulk_max_processed,
            time_budget=self.settings.bulk_time_budget_seconds,
            name="category pattern pass",
        )
        return runner.run(process, start_after)
