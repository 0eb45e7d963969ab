"""Partner matching engine.

Scores every candidate partner (the user's own and the global ones) against
a transaction or a file, keeps the best signal per partner and ranks the
results. Manual removals are a hard suppression: a partner the user removed
from a record is never scored for that record again.
"""

import logging
import re
from dataclasses import dataclass, replace
from typing import Literal, Optional, Sequence

from ledgermatch.config import MatchingSettings
from ledgermatch.context import OperationsContext
from ledgermatch.domain.entities import (
    File,
    ManualFileRemoval,
    ManualRemoval,
    Partner,
    PartnerSuggestion,
    PartnerType,
    Transaction,
    new_id,
    utcnow,
)
from ledgermatch.domain.errors import (
    NotFoundError,
    ValidationError,
    file_not_found,
    foreign_entity,
    partner_not_found,
    transaction_not_found,
)
from ledgermatch.utils.fuzzy import find_best_name_match
from ledgermatch.utils.glob import build_match_text, glob_match
from ledgermatch.utils.normalization import (
    domains_match,
    extract_root_domain,
    fold_umlauts,
    iban_in,
    normalize_company_name,
    vat_ids_match,
)

logger = logging.getLogger(__name__)

IBAN_CONFIDENCE = 100
VAT_CONFIDENCE = 95
WEBSITE_CONFIDENCE = 90
NAME_IN_TEXT_SIMILARITY = 95
NAME_CONFIDENCE_FLOOR = 60
NAME_CONFIDENCE_CEILING = 90
MIN_NAME_LENGTH_IN_TEXT = 3

# Lower wins when two signals give the same confidence
SOURCE_PRIORITY = {"iban": 0, "vatId": 1, "pattern": 2, "website": 3, "emailDomain": 3, "name": 4}


@dataclass(frozen=True)
class MatchSubject:
    """The fields of a transaction or file that partner matching looks at."""

    id: str
    kind: Literal["transaction", "file"]
    text: str
    label: Optional[str] = None
    name: Optional[str] = None
    iban: Optional[str] = None
    vat_id: Optional[str] = None
    domain: Optional[str] = None


@dataclass(frozen=True)
class PartnerMatch:
    """Best signal found for one partner."""

    partner_id: str
    partner_type: PartnerType
    partner_name: str
    confidence: int
    source: str

    def to_suggestion(self) -> PartnerSuggestion:
        return PartnerSuggestion(
            partner_id=self.partner_id,
            partner_type=self.partner_type,
            confidence=self.confidence,
            source=self.source,
        )


def subject_from_transaction(transaction: Transaction) -> MatchSubject:
    """Describe a transaction for partner matching."""
    return MatchSubject(
        id=transaction.id,
        kind="transaction",
        text=transaction.match_text(),
        label=transaction.partner,
        name=transaction.name,
        iban=transaction.partner_iban,
    )


def subject_from_file(file: File) -> MatchSubject:
    """Describe a file for partner matching."""
    domain = file.extracted_website or (extract_root_domain(file.email_from) or None)
    return MatchSubject(
        id=file.id,
        kind="file",
        text=build_match_text(file.extracted_partner, file.file_name),
        label=file.extracted_partner,
        iban=file.extracted_iban,
        vat_id=file.extracted_vat_id,
        domain=domain,
    )


def is_suppressed(subject: MatchSubject, partner: Partner) -> bool:
    """True if the user removed this partner from the subject before."""
    if subject.kind == "transaction":
        return partner.is_removed_for_transaction(subject.id)
    return partner.is_removed_for_file(subject.id)


def best_pattern_confidence(partner_patterns, text: str) -> int:
    """Highest confidence among patterns matching the text (0 if none)."""
    best = 0
    for learned in partner_patterns:
        if not glob_match(learned.pattern, text):
            continue
        if any(glob_match(excluded, text) for excluded in learned.exclude):
            continue
        best = max(best, learned.confidence)
    return best


def _word_text(text: str) -> str:
    return " " + " ".join(re.sub(r"[^a-z0-9]+", " ", fold_umlauts(text)).split()) + " "


def name_confidence(similarity: int) -> int:
    """Scale a name similarity (60-100) into the 60-90 confidence range."""
    scaled = NAME_CONFIDENCE_FLOOR + (similarity - 60) * (
        (NAME_CONFIDENCE_CEILING - NAME_CONFIDENCE_FLOOR) / 40
    )
    return max(NAME_CONFIDENCE_FLOOR, min(NAME_CONFIDENCE_CEILING, round(scaled)))


def _name_similarity(subject: MatchSubject, partner: Partner, settings: MatchingSettings) -> int:
    names = [n for n in (partner.name, *partner.aliases) if n]
    words = _word_text(subject.text)
    for name in names:
        normalized = normalize_company_name(name)
        if len(normalized) >= MIN_NAME_LENGTH_IN_TEXT and f" {normalized} " in words:
            return NAME_IN_TEXT_SIMILARITY

    if subject.label:
        found = find_best_name_match(subject.label, names, settings.name_match_min_similarity)
    elif subject.name:
        found = find_best_name_match(subject.name, names, settings.transaction_name_min_similarity)
    else:
        found = None
    return found[1] if found else 0


def _website_signal(subject: MatchSubject, partner: Partner) -> Optional[str]:
    if subject.kind == "file":
        domains = [d for d in (partner.website, *partner.email_domains) if d]
        if subject.domain and any(domains_match(subject.domain, d) for d in domains):
            return "emailDomain"
        return None
    website = extract_root_domain(partner.website)
    if website and website in subject.text:
        return "website"
    return None


def score_partner(
    subject: MatchSubject,
    partner: Partner,
    settings: MatchingSettings,
    patterns_only: bool = False,
) -> Optional[PartnerMatch]:
    """Best match of one partner against a subject.

    Returns None when nothing matches or the partner was manually removed
    from the subject.
    """
    if is_suppressed(subject, partner):
        return None

    signals: list[tuple[int, str]] = []
    pattern_confidence = best_pattern_confidence(partner.learned_patterns, subject.text)
    if pattern_confidence:
        signals.append((pattern_confidence, "pattern"))

    if not patterns_only:
        if subject.iban and iban_in(subject.iban, partner.ibans):
            signals.append((IBAN_CONFIDENCE, "iban"))
        if vat_ids_match(subject.vat_id, partner.vat_id):
            signals.append((VAT_CONFIDENCE, "vatId"))
        website_source = _website_signal(subject, partner)
        if website_source:
            signals.append((WEBSITE_CONFIDENCE, website_source))
        similarity = _name_similarity(subject, partner, settings)
        if similarity:
            signals.append((name_confidence(similarity), "name"))

    if not signals:
        return None
    confidence, source = min(signals, key=lambda s: (-s[0], SOURCE_PRIORITY.get(s[1], 9)))
    return PartnerMatch(
        partner_id=partner.id,
        partner_type=partner.partner_type,
        partner_name=partner.name,
        confidence=confidence,
        source=source,
    )


def rank_matches(matches: list[PartnerMatch], limit: int) -> list[PartnerMatch]:
    """Sort by confidence; on ties user partners come before global ones."""
    ordered = sorted(
        matches,
        key=lambda m: (-m.confidence, 0 if m.partner_type == "user" else 1, m.partner_name, m.partner_id),
    )
    return ordered[:limit]


def match_partners(
    subject: MatchSubject,
    partners: Sequence[Partner],
    settings: MatchingSettings,
    patterns_only: bool = False,
) -> list[PartnerMatch]:
    """Rank partners for a subject.

    Args:
        subject: Transaction or file description
        partners: User and global partners to consider
        settings: Matching thresholds
        patterns_only: Only evaluate learned patterns

    Returns:
        At most max_partner_suggestions matches, best first
    """
    matches = []
    for partner in partners:
        match = score_partner(subject, partner, settings, patterns_only)
        if match is not None:
            logger.debug(
                "Partner %s scored %d via %s for %s",
                partner.id,
                match.confidence,
                match.source,
                subject.id,
            )
            matches.append(match)
    return rank_matches(matches, settings.max_partner_suggestions)


def apply_partner_matches(
    transaction: Transaction, matches: list[PartnerMatch], settings: MatchingSettings
) -> Transaction:
    """Return the transaction with suggestions written and, if clear enough, a partner.

    Transactions that already have a partner (manual or automatic) are
    returned unchanged.
    """
    if transaction.partner_id is not None or transaction.partner_matched_by == "manual":
        return transaction
    updated = replace(transaction, partner_suggestions=tuple(m.to_suggestion() for m in matches))
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


class PartnerMatchingService:
    """Service for matching transactions and files to partners."""

    def __init__(self, ctx: OperationsContext):
        """Initialize partner matching service.

        Args:
            ctx: Operations context
        """
        self.ctx = ctx
        self.repo = ctx.repo
        self.settings = ctx.settings

    def candidate_partners(self) -> list[Partner]:
        """User partners followed by global partners."""
        return self.repo.find_partners_by_user(self.ctx.user_id) + self.repo.find_global_partners()

    def _get_transaction(self, transaction_id: str) -> Transaction:
        transaction = self.repo.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(transaction_not_found(transaction_id))
        if transaction.user_id != self.ctx.user_id:
            raise ValidationError(foreign_entity("Transaction", transaction_id))
        return transaction

    def _get_file(self, file_id: str) -> File:
        file = self.repo.get_file(file_id)
        if file is None:
            raise NotFoundError(file_not_found(file_id))
        if file.user_id != self.ctx.user_id:
            raise ValidationError(foreign_entity("File", file_id))
        return file

    def _get_partner(self, partner_id: str) -> Partner:
        partner = self.repo.get_partner(partner_id)
        if partner is None:
            raise NotFoundError(partner_not_found(partner_id))
        if partner.user_id is not None and partner.user_id != self.ctx.user_id:
            raise ValidationError(foreign_entity("Partner", partner_id))
        return partner

    def create_partner(
        self,
        name: str,
        aliases: Sequence[str] = (),
        vat_id: Optional[str] = None,
        ibans: Sequence[str] = (),
        website: Optional[str] = None,
        email_domains: Sequence[str] = (),
        is_global: bool = False,
    ) -> Partner:
        """Create a user partner, or a global one when is_global is set."""
        if not name or not name.strip():
            raise ValidationError("Partner name must not be empty")
        partner = Partner(
            id=new_id(),
            name=name.strip(),
            user_id=None if is_global else self.ctx.user_id,
            aliases=tuple(aliases),
            vat_id=vat_id,
            ibans=tuple(ibans),
            website=website,
            email_domains=tuple(email_domains),
            created_at=utcnow(),
        )
        self.repo.add_partner(partner)
        return partner

    def match_transaction(
        self,
        transaction_id: str,
        partners: Optional[Sequence[Partner]] = None,
        patterns_only: bool = False,
    ) -> tuple[Transaction, Transaction]:
        """Match one transaction and store suggestions or an automatic assignment.

        The transaction is re-read inside a unit of work right before writing,
        so a partner assigned meanwhile (manually or otherwise) is kept.
        Nothing is written when the result equals the stored state.

        Returns:
            (before, after) transaction states
        """
        if partners is None:
            partners = self.candidate_partners()
        with self.repo.transaction():
            current = self._get_transaction(transaction_id)
            if current.partner_id is not None:
                return current, current
            matches = match_partners(
                subject_from_transaction(current), partners, self.settings, patterns_only
            )
            updated = apply_partner_matches(current, matches, self.settings)
            if updated != current:
                self.repo.save_transaction(updated)
                if updated.partner_id is not None:
                    logger.info(
                        "Auto-assigned partner %s to transaction %s (%d)",
                        updated.partner_id,
                        transaction_id,
                        updated.partner_match_confidence,
                    )
            return current, updated

    def assign_partner(self, transaction_id: str, partner_id: str) -> tuple[Transaction, Transaction]:
        """Manually assign a partner. Manual assignments are never overridden.

        Returns:
            (before, after) transaction states
        """
        partner = self._get_partner(partner_id)
        with self.repo.transaction():
            current = self._get_transaction(transaction_id)
            updated = replace(
                current,
                partner_id=partner.id,
                partner_type=partner.partner_type,
                partner_matched_by="manual",
                partner_match_confidence=None,
            )
            if updated != current:
                self.repo.save_transaction(updated)
        return current, updated

    def remove_partner(self, transaction_id: str) -> tuple[Transaction, Transaction]:
        """Detach the partner and record a manual removal on it.

        The removal keeps a snapshot of the transaction text and stops the
        partner from ever being suggested for this transaction again.

        Returns:
            (before, after) transaction states
        """
        with self.repo.transaction():
            current = self._get_transaction(transaction_id)
            if current.partner_id is None:
                raise ValidationError(f"Transaction {transaction_id} has no partner")
            partner = self.repo.get_partner(current.partner_id)
            if partner is not None and not partner.is_removed_for_transaction(current.id):
                removal = ManualRemoval(
                    transaction_id=current.id,
                    removed_at=utcnow(),
                    name=current.name,
                    partner=current.partner,
                    reference=current.reference,
                )
                self.repo.save_partner(
                    replace(partner, manual_removals=partner.manual_removals + (removal,))
                )
            updated = replace(
                current,
                partner_id=None,
                partner_type=None,
                partner_matched_by=None,
                partner_match_confidence=None,
                partner_suggestions=tuple(
                    s for s in current.partner_suggestions if s.partner_id != current.partner_id
                ),
            )
            self.repo.save_transaction(updated)
        logger.info("Removed partner %s from transaction %s", current.partner_id, transaction_id)
        return current, updated

    def match_file(self, file_id: str) -> tuple[File, File]:
        """Match a file to partners using its extracted fields.

        Returns:
            (before, after) file states
        """
        partners = self.candidate_partners()
        with self.repo.transaction():
            current = self._get_file(file_id)
            if current.partner_id is not None:
                return current, current
            matches = match_partners(subject_from_file(current), partners, self.settings)
            updated = replace(current, partner_suggestions=tuple(m.to_suggestion() for m in matches))
            top = matches[0] if matches else None
            if top is not None and top.confidence >= self.settings.partner_auto_apply_threshold:
                updated = replace(
                    updated,
                    partner_id=top.partner_id,
                    partner_type=top.partner_type,
                    partner_matched_by="auto",
                    partner_match_confidence=top.confidence,
                )
            if updated != current:
                self.repo.save_file(updated)
        return current, updated

    def assign_file_partner(self, file_id: str, partner_id: str) -> tuple[File, File]:
        """Manually assign a partner to a file."""
        partner = self._get_partner(partner_id)
        with self.repo.transaction():
            current = self._get_file(file_id)
            updated = replace(
                current,
                partner_id=partner.id,
                partner_type=partner.partner_type,
                partner_matched_by="manual",
                partner_match_confidence=None,
            )
            if updated != current:
                self.repo.save_file(updated)
        return current, updated

    def remove_file_partner(self, file_id: str) -> tuple[File, File]:
        """Detach the partner from a file and record a manual file removal."""
        with self.repo.transaction():
            current = self._get_file(file_id)
            if current.partner_id is None:
                raise ValidationError(f"File {file_id} has no partner")
            partner = self.repo.get_partner(current.partner_id)
            if partner is not None and not partner.is_removed_for_file(current.id):
                removal = ManualFileRemoval(
                    file_id=current.id,
                    removed_at=utcnow(),
                    extracted_partner=current.extracted_partner,
                )
                self.repo.save_partner(
                    replace(partner, manual_file_removals=partner.manual_file_removals + (removal,))
                )
            updated = replace(
                current,
                partner_id=None,
                partner_type=None,
                partner_matched_by=None,
                partner_match_confidence=None,
                partner_suggestions=tuple(
                    s for s in current.partner_suggestions if s.partner_id != current.partner_id
                ),
            )
            self.repo.save_file(updated)
        return current, updated
