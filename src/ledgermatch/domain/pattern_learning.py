"""Learning glob patterns from confirmed partner matches.

A manual confirmation turns the bank label (or the invoice partner name) of a
record into a pattern such as ``*netflix*`` and stores it on the partner. An
equal pattern is reinforced instead of duplicated. The bulk pass then
re-applies all patterns to the user's unassigned transactions.
"""

import logging
import re
from dataclasses import replace
from datetime import datetime
from typing import Optional, Sequence

from ledgermatch.config import MatchingSettings
from ledgermatch.context import OperationsContext
from ledgermatch.domain.bulk import BulkResult, PagedRunner, transaction_cursor
from ledgermatch.domain.entities import (
    LearnedPattern,
    Partner,
    PartnerSuggestion,
    Transaction,
    utcnow,
)
from ledgermatch.domain.errors import (
    NotFoundError,
    ValidationError,
    file_not_found,
    foreign_entity,
    partner_not_found,
    pattern_not_found,
    transaction_not_found,
)
from ledgermatch.domain.partner_matching import (
    PartnerMatch,
    best_pattern_confidence,
    match_partners,
    subject_from_transaction,
)
from ledgermatch.database.base import PageCursor
from ledgermatch.utils.glob import build_match_text, glob_match, pattern_key
from ledgermatch.utils.normalization import LEGAL_SUFFIXES, fold_umlauts

logger = logging.getLogger(__name__)

MAX_PATTERN_TOKENS = 2
MIN_TOKEN_LENGTH = 3

GENERIC_BANKING_TERMS = (
    "rechnung",
    "rechner",
    "rechn",
    "ueberweisung",
    "überweisung",
    "lastschrift",
    "gutschrift",
    "zahlung",
    "bezahlung",
    "abbuchung",
    "einzahlung",
    "auszahlung",
    "konto",
    "sepa",
    "mandat",
    "referenz",
    "verwendung",
    "betrag",
    "iban",
    "bic",
    "nr",
)

WEB_NOISE = {"com", "www", "net", "org", "de", "at", "http", "https"}

_SUFFIX_TOKENS = {s.strip(".") for s in LEGAL_SUFFIXES if re.fullmatch(r"[a-z.]+", s)}


def _is_generic_part(part: str) -> bool:
    return any(
        part == term or term.startswith(part) or part.startswith(term)
        for term in GENERIC_BANKING_TERMS
    )


def is_generic_pattern(pattern: str) -> bool:
    """True if a pattern consists only of generic banking vocabulary.

    Such patterns ("*rechnung*", "*sepa*lastschrift*") would match half of
    any bank statement. Parts shorter than two characters are ignored.
    """
    parts = [p for p in re.split(r"[*\s]+", fold_umlauts(pattern)) if len(p) >= 2]
    if not parts:
        return True
    return all(_is_generic_part(part) for part in parts)


def _is_distinguishing(token: str) -> bool:
    if len(token) < MIN_TOKEN_LENGTH or any(ch.isdigit() for ch in token):
        return False
    if token in _SUFFIX_TOKENS or token in WEB_NOISE:
        return False
    return not _is_generic_part(token)


def derive_pattern(label: Optional[str]) -> Optional[str]:
    """Build a glob pattern from the distinguishing tokens of a label.

    "PayPal Europe S.a.r.l. 1002345" becomes "*paypal*europe*". Returns None
    when the label has no usable token.
    """
    if not label:
        return None
    tokens = [t for t in re.split(r"[^a-z0-9]+", fold_umlauts(label)) if _is_distinguishing(t)]
    if not tokens:
        return None
    return "*" + "*".join(tokens[:MAX_PATTERN_TOKENS]) + "*"


def reinforce_or_add(
    patterns: Sequence[LearnedPattern],
    pattern: str,
    settings: MatchingSettings,
    transaction_id: Optional[str] = None,
    file_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> tuple[LearnedPattern, ...]:
    """Return the pattern list with the pattern reinforced or appended.

    An existing equal pattern gains confidence (capped) and usage, and the
    source ids are merged. A new pattern starts at the base confidence.
    """
    key = pattern_key(pattern)
    new_tx_ids = (transaction_id,) if transaction_id else ()
    new_file_ids = (file_id,) if file_id else ()
    updated = []
    found = False
    for learned in patterns:
        if not found and pattern_key(learned.pattern) == key:
            found = True
            learned = replace(
                learned,
                confidence=min(
                    settings.max_pattern_confidence,
                    learned.confidence + settings.pattern_reinforcement_step,
                ),
                usage_count=learned.usage_count + 1,
                source_transaction_ids=_merge_ids(learned.source_transaction_ids, new_tx_ids),
                source_file_ids=_merge_ids(learned.source_file_ids, new_file_ids),
            )
        updated.append(learned)
    if not found:
        updated.append(
            LearnedPattern(
                pattern=key,
                confidence=settings.new_pattern_confidence,
                source_transaction_ids=new_tx_ids,
                source_file_ids=new_file_ids,
                created_at=now or utcnow(),
                usage_count=1,
            )
        )
    return tuple(updated)


def _merge_ids(existing: tuple[str, ...], new: tuple[str, ...]) -> tuple[str, ...]:
    return existing + tuple(i for i in new if i not in existing)


def matches_removed_record(pattern: str, partner: Partner) -> bool:
    """True if the pattern would hit a record the user detached from the partner."""
    if any(glob_match(pattern, removal.match_text()) for removal in partner.manual_removals):
        return True
    return any(
        glob_match(pattern, build_match_text(removal.extracted_partner))
        for removal in partner.manual_file_removals
    )


def merge_pattern_matches(
    transaction: Transaction, matches: list[PartnerMatch], settings: MatchingSettings
) -> Transaction:
    """Fold pattern matches into the stored suggestions of a transaction.

    Suggestions from other signals are kept; a partner's entry is only
    replaced by a higher confidence. The top pattern match is auto-applied
    at or above the threshold.
    """
    by_partner: dict[str, PartnerSuggestion] = {s.partner_id: s for s in transaction.partner_suggestions}
    for match in matches:
        existing = by_partner.get(match.partner_id)
        if existing is None or match.confidence > existing.confidence:
            by_partner[match.partner_id] = match.to_suggestion()
    ranked = sorted(
        by_partner.values(),
        key=lambda s: (-s.confidence, 0 if s.partner_type == "user" else 1, s.partner_id),
    )[: settings.max_partner_suggestions]
    updated = replace(transaction, partner_suggestions=tuple(ranked))

    top = matches[0] if matches else None
    if top is not None and top.confidence >= settings.partner_auto_apply_threshold:
        updated = replace(
            updated,
            partner_id=top.partner_id,
            partner_type=top.partner_type,
            partner_matched_by="auto",
            partner_match_confidence=top.confidence,
        )
    return updated


class PatternLearningService:
    """Service for learning, deleting and re-applying partner patterns."""

    def __init__(self, ctx: OperationsContext):
        """Initialize pattern learning service.

        Args:
            ctx: Operations context
        """
        self.ctx = ctx
        self.repo = ctx.repo
        self.settings = ctx.settings

    def _get_own_partner(self, partner_id: str) -> Partner:
        partner = self.repo.get_partner(partner_id)
        if partner is None:
            raise NotFoundError(partner_not_found(partner_id))
        if partner.user_id != self.ctx.user_id:
            raise ValidationError(foreign_entity("Partner", partner_id))
        return partner

    def _learn(
        self,
        partner_id: str,
        label: Optional[str],
        transaction_id: Optional[str] = None,
        file_id: Optional[str] = None,
    ) -> Optional[LearnedPattern]:
        partner = self.repo.get_partner(partner_id)
        if partner is None:
            raise NotFoundError(partner_not_found(partner_id))
        if partner.user_id is None:
            logger.debug("Not learning patterns for global partner %s", partner_id)
            return None
        if partner.user_id != self.ctx.user_id:
            raise ValidationError(foreign_entity("Partner", partner_id))

        pattern = derive_pattern(label)
        if pattern is None:
            logger.debug("No distinguishing tokens in %r", label)
            return None
        if is_generic_pattern(pattern):
            logger.warning("Rejected generic pattern %s for partner %s", pattern, partner_id)
            return None

        with self.repo.transaction():
            partner = self._get_own_partner(partner_id)
            if matches_removed_record(pattern, partner):
                logger.warning(
                    "Rejected pattern %s for partner %s: matches a removed record",
                    pattern,
                    partner_id,
                )
                return None
            patterns = reinforce_or_add(
                partner.learned_patterns, pattern, self.settings, transaction_id, file_id
            )
            self.repo.save_partner(replace(partner, learned_patterns=patterns))

        learned = next(p for p in patterns if pattern_key(p.pattern) == pattern_key(pattern))
        logger.info(
            "Learned pattern %s for partner %s (confidence %d, used %d times)",
            learned.pattern,
            partner_id,
            learned.confidence,
            learned.usage_count,
        )
        return learned

    def learn_from_transaction(self, transaction_id: str) -> Optional[LearnedPattern]:
        """Learn a pattern from a transaction's confirmed partner.

        Returns:
            The new or reinforced pattern, or None if nothing was learned
        """
        transaction = self.repo.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(transaction_not_found(transaction_id))
        if transaction.user_id != self.ctx.user_id:
            raise ValidationError(foreign_entity("Transaction", transaction_id))
        if transaction.partner_id is None:
            raise ValidationError(f"Transaction {transaction_id} has no partner")
        return self._learn(
            transaction.partner_id,
            transaction.partner or transaction.name,
            transaction_id=transaction.id,
        )

    def learn_from_file(self, file_id: str) -> Optional[LearnedPattern]:
        """Learn a pattern from a file's confirmed partner and extracted name."""
        file = self.repo.get_file(file_id)
        if file is None:
            raise NotFoundError(file_not_found(file_id))
        if file.user_id != self.ctx.user_id:
            raise ValidationError(foreign_entity("File", file_id))
        if file.partner_id is None:
            raise ValidationError(f"File {file_id} has no partner")
        return self._learn(file.partner_id, file.extracted_partner, file_id=file.id)

    def delete_pattern(self, partner_id: str, pattern: str) -> tuple[Partner, Partner]:
        """Remove a learned pattern from a user partner.

        Returns:
            (before, after) partner states
        """
        key = pattern_key(pattern)
        with self.repo.transaction():
            partner = self._get_own_partner(partner_id)
            remaining = tuple(p for p in partner.learned_patterns if pattern_key(p.pattern) != key)
            if len(remaining) == len(partner.learned_patterns):
                raise NotFoundError(pattern_not_found(pattern, partner_id))
            updated = replace(partner, learned_patterns=remaining)
            self.repo.save_partner(updated)
        logger.info("Deleted pattern %s from partner %s", key, partner_id)
        return partner, updated

    def cascade_unassign(self, partner_id: str) -> int:
        """Unassign transactions whose automatic pattern match no longer holds.

        Only automatic assignments made by a pattern are touched; manual ones
        and matches from other signals stay.

        Returns:
            Number of transactions unassigned
        """
        partner = self.repo.get_partner(partner_id)
        if partner is None:
            raise NotFoundError(partner_not_found(partner_id))
        unassigned = 0
        with self.repo.transaction():
            for transaction in self.repo.find_transactions_by_partner(self.ctx.user_id, partner_id):
                if transaction.partner_matched_by != "auto":
                    continue
                by_pattern = any(
                    s.partner_id == partner_id and s.source == "pattern"
                    for s in transaction.partner_suggestions
                )
                if not by_pattern:
                    continue
                if best_pattern_confidence(partner.learned_patterns, transaction.match_text()):
                    continue
                self.repo.save_transaction(
                    replace(
                        transaction,
                        partner_id=None,
                        partner_type=None,
                        partner_matched_by=None,
                        partner_match_confidence=None,
                        partner_suggestions=tuple(
                            s for s in transaction.partner_suggestions if s.partner_id != partner_id
                        ),
                    )
                )
                unassigned += 1
        if unassigned:
            logger.info("Unassigned %d transactions from partner %s", unassigned, partner_id)
        return unassigned

    def apply_patterns(self, start_after: Optional[PageCursor] = None) -> BulkResult:
        """Re-apply every learned pattern to the user's unassigned transactions.

        Walks all unassigned transactions newest first in pages. Each record
        is re-read right before writing and skipped if it got a partner in
        the meantime. Records whose outcome did not change are not written,
        so a second run without new patterns writes nothing.

        Args:
            start_after: Resume cursor from a previous truncated run

        Returns:
            BulkResult with processed/matched/failed counts and the cursor
        """
        partners = [
            p
            for p in self.repo.find_partners_by_user(self.ctx.user_id) + self.repo.find_global_partners()
            if p.learned_patterns
        ]
        if not partners:
            logger.info("No learned patterns for user %s", self.ctx.user_id)
            return BulkResult(cursor=start_after)

        def process(record: Transaction) -> bool:
            current = self.repo.get_transaction(record.id)
            if current is None or current.partner_id is not None:
                return False
            if current.partner_matched_by == "manual":
                return False
            matches = match_partners(
                subject_from_transaction(current), partners, self.settings, patterns_only=True
            )
            updated = merge_pattern_matches(current, matches, self.settings)
            if updated == current:
                logger.debug("No change for transaction %s", current.id)
                return False
            self.repo.save_transaction(updated)
            return updated.partner_id is not None

        runner = PagedRunner(
            self.repo,
            lambda cursor, limit: self.repo.find_unassigned_transactions_page(
                self.ctx.user_id, cursor, limit
            ),
            transaction_cursor,
            page_size=self.settings.bulk_page_size,
            max_processed=self.settings.bulk_max_processed,
            time_budget=self.settings.bulk_time_budget_seconds,
            name="partner pattern pass",
        )
        return runner.run(process, start_after)
