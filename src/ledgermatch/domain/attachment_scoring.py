"""Scoring of receipts and e-mail attachments against bank transactions.

Points (0-100 scale) per signal:

    amount      exact (±1 cent) 55, within 1% 48, within 5% 35, within 10% 20
    date        same day 25, ≤3 days 20, ≤7 days 12, ≤14 days 5
    name        similarity ≥90 15, ≥75 12, ≥60 8
    e-mail      sender domain registered for the partner 15
    IBAN        exact match 35
    VAT ID      exact match 30
    context     keyword in filename 8 / subject 5 / e-mail text 3,
                amount written in the e-mail 8, partner named in the e-mail 5,
                receipt-like mime type 3, upstream "possible invoice" hint 5

An exact amount lifts the total to at least the "Strong" threshold, and an
exact IBAN or VAT ID match lifts it to at least 90; both floors apply before
the multipliers. An amount off by more than 50% multiplies the total by 0.4.
E-mails far from the booking date are discounted by a date multiplier.
When currencies differ and no rate is known, the amount is not compared.
"""

import logging
import re
from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Iterable, Optional

from ledgermatch.config import MatchingSettings, get_settings
from ledgermatch.context import OperationsContext
from ledgermatch.domain.entities import (
    File,
    Partner,
    ScoredAttachment,
    Transaction,
    TransactionSuggestion,
    new_id,
    utcnow,
)
from ledgermatch.domain.errors import (
    NotFoundError,
    ValidationError,
    file_not_found,
    foreign_entity,
    transaction_not_found,
)
from ledgermatch.utils.currency import convert_currency
from ledgermatch.utils.fuzzy import calculate_company_name_similarity
from ledgermatch.utils.normalization import (
    domains_match,
    extract_root_domain,
    format_cents,
    iban_in,
    normalize_company_name,
    vat_ids_match,
)

logger = logging.getLogger(__name__)

AMOUNT_EXACT = 55
AMOUNT_BANDS = ((0.01, 48), (0.05, 35), (0.10, 20))
AMOUNT_MISMATCH_RATIO = 0.5
AMOUNT_MISMATCH_FACTOR = 0.4
DATE_BANDS = ((0, 25), (3, 20), (7, 12), (14, 5))
NAME_BANDS = ((90, 15), (75, 12), (60, 8))
EMAIL_DOMAIN_MATCH = 15
IBAN_MATCH = 35
VAT_MATCH = 30
IDENTIFIER_FLOOR = 90
KEYWORD_IN_FILENAME = 8
KEYWORD_IN_SUBJECT = 5
KEYWORD_IN_EMAIL_TEXT = 3
AMOUNT_IN_EMAIL = 8
PARTNER_IN_EMAIL = 5
RECEIPT_MIME_TYPE = 3
POSSIBLE_INVOICE_HINT = 5
MAX_SCORE = 100

RECEIPT_KEYWORDS = ("invoice", "rechnung", "receipt", "beleg", "quittung", "faktura", "bon", "bill")

# (max days, multiplier) for e-mails sent before / after the booking date
EMAIL_BEFORE_MULTIPLIERS = ((14, 1.0), (30, 0.95), (60, 0.9), (90, 0.85), (180, 0.75))
EMAIL_BEFORE_FLOOR = 0.6
EMAIL_AFTER_MULTIPLIERS = ((7, 1.0), (14, 0.9), (30, 0.75), (60, 0.55), (90, 0.4))
EMAIL_AFTER_FLOOR = 0.3

STRONG = "Strong"
LIKELY = "Likely"


@dataclass(frozen=True)
class AttachmentCandidate:
    """Everything known about a receipt candidate; any field may be missing."""

    key: str
    filename: Optional[str] = None
    mime_type: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    document_date: Optional[date] = None
    partner_name: Optional[str] = None
    vat_id: Optional[str] = None
    iban: Optional[str] = None
    email_subject: Optional[str] = None
    email_from: Optional[str] = None
    email_text: Optional[str] = None
    email_date: Optional[date] = None
    possible_invoice: bool = False


def candidate_from_file(file: File) -> AttachmentCandidate:
    """Build a scoring candidate from a stored file."""
    return AttachmentCandidate(
        key=file.id,
        filename=file.file_name,
        mime_type=file.mime_type,
        amount=file.extracted_amount,
        currency=file.extracted_currency,
        document_date=file.extracted_date,
        partner_name=file.extracted_partner,
        vat_id=file.extracted_vat_id,
        iban=file.extracted_iban,
        email_subject=file.email_subject,
        email_from=file.email_from,
        email_text=file.email_text or file.extracted_text,
        email_date=file.email_date,
        possible_invoice=file.possible_invoice,
    )


def label_for_score(score: int, strong_threshold: int, likely_threshold: int) -> Optional[str]:
    """Map a score to "Strong", "Likely" or None."""
    if score >= strong_threshold:
        return STRONG
    if score >= likely_threshold:
        return LIKELY
    return None


def _amount_signal(
    candidate: AttachmentCandidate, transaction: Transaction, reasons: list[str]
) -> tuple[int, bool]:
    """Points for the amount and whether it is a clear mismatch."""
    if candidate.amount is None or transaction.amount == 0:
        return 0, False

    amount = abs(candidate.amount)
    tx_currency = (transaction.currency or "EUR").upper()
    currency = (candidate.currency or tx_currency).upper()
    suffix = ""
    if currency != tx_currency:
        converted = convert_currency(amount, currency, tx_currency, transaction.date)
        if converted is None:
            reasons.append(f"No {currency}->{tx_currency} rate, amount not compared")
            return 0, False
        amount = abs(converted.amount)
        suffix = f" ({currency} converted at {converted.rate:.4f})"

    target = abs(transaction.amount)
    if abs(amount - target) <= 1:
        reasons.append(f"Exact amount match{suffix}")
        return AMOUNT_EXACT, False

    difference = abs(amount - target) / target
    for limit, points in AMOUNT_BANDS:
        if difference <= limit:
            reasons.append(f"Amount within {round(limit * 100)}%{suffix}")
            return points, False
    if difference > AMOUNT_MISMATCH_RATIO:
        reasons.append(f"Amount differs by {round(difference * 100)}%{suffix}")
        return 0, True
    return 0, False


def _date_signal(candidate: AttachmentCandidate, transaction: Transaction, reasons: list[str]) -> int:
    if candidate.document_date is None:
        return 0
    days = abs((candidate.document_date - transaction.date).days)
    for limit, points in DATE_BANDS:
        if days <= limit:
            reasons.append("Same day" if days == 0 else f"Date within {limit} days")
            return points
    return 0


def _name_signal(
    candidate: AttachmentCandidate,
    transaction: Transaction,
    partner: Optional[Partner],
    reasons: list[str],
) -> int:
    if not candidate.partner_name:
        return 0
    if partner is not None:
        names = [partner.name, *partner.aliases]
    else:
        names = [n for n in (transaction.partner, transaction.name) if n]
    best = max(
        (calculate_company_name_similarity(candidate.partner_name, n) for n in names),
        default=0,
    )
    for limit, points in NAME_BANDS:
        if best >= limit:
            reasons.append(f"Name similarity {best}%")
            return points
    return 0


def _email_domain_signal(
    candidate: AttachmentCandidate, partner: Optional[Partner], reasons: list[str]
) -> int:
    if partner is None or not candidate.email_from:
        return 0
    sender = extract_root_domain(candidate.email_from)
    domains = list(partner.email_domains)
    if partner.website:
        domains.append(partner.website)
    if any(domains_match(sender, domain) for domain in domains):
        reasons.append(f"Sender domain {sender} belongs to partner")
        return EMAIL_DOMAIN_MATCH
    return 0


def _identifier_signals(
    candidate: AttachmentCandidate,
    transaction: Transaction,
    partner: Optional[Partner],
    reasons: list[str],
) -> tuple[int, bool]:
    """Points for IBAN and VAT ID and whether either matched exactly."""
    points = 0
    known_ibans = [i for i in (transaction.partner_iban,) if i]
    if partner is not None:
        known_ibans.extend(partner.ibans)
    if candidate.iban and iban_in(candidate.iban, known_ibans):
        reasons.append("IBAN matches")
        points += IBAN_MATCH
    if partner is not None and vat_ids_match(candidate.vat_id, partner.vat_id):
        reasons.append("VAT ID matches")
        points += VAT_MATCH
    return points, points > 0


def _amount_variants(cents: int) -> list[str]:
    plain = format_cents(abs(cents))
    whole, fraction = plain.split(".")
    grouped = f"{int(whole):,}"
    return list(
        dict.fromkeys(
            [
                plain,
                f"{whole},{fraction}",
                f"{grouped}.{fraction}",
                f"{grouped.replace(',', '.')},{fraction}",
            ]
        )
    )


def _contains_keyword(text: Optional[str]) -> bool:
    if not text:
        return False
    lowered = text.lower()
    return any(re.search(rf"\b{keyword}", lowered) for keyword in RECEIPT_KEYWORDS)


def _context_signals(
    candidate: AttachmentCandidate,
    transaction: Transaction,
    partner: Optional[Partner],
    reasons: list[str],
) -> int:
    points = 0
    if _contains_keyword(candidate.filename):
        reasons.append("Receipt keyword in filename")
        points += KEYWORD_IN_FILENAME
    if _contains_keyword(candidate.email_subject):
        reasons.append("Receipt keyword in subject")
        points += KEYWORD_IN_SUBJECT
    elif _contains_keyword(candidate.email_text):
        reasons.append("Receipt keyword in e-mail")
        points += KEYWORD_IN_EMAIL_TEXT

    if candidate.mime_type and (
        candidate.mime_type == "application/pdf" or candidate.mime_type.startswith("image/")
    ):
        points += RECEIPT_MIME_TYPE

    email_text = " ".join(t for t in (candidate.email_subject, candidate.email_text) if t)
    if email_text:
        if any(variant in email_text for variant in _amount_variants(transaction.amount)):
            reasons.append("Amount mentioned in e-mail")
            points += AMOUNT_IN_EMAIL
        partner_label = partner.name if partner is not None else transaction.partner
        tokens = [t for t in normalize_company_name(partner_label).split() if len(t) >= 3]
        lowered = normalize_company_name(email_text)
        if tokens and all(token in lowered for token in tokens):
            reasons.append("Partner named in e-mail")
            points += PARTNER_IN_EMAIL

    if candidate.possible_invoice:
        reasons.append("Marked as possible invoice")
        points += POSSIBLE_INVOICE_HINT
    return points


def _email_date_multiplier(
    candidate: AttachmentCandidate, transaction: Transaction, reasons: list[str]
) -> float:
    if candidate.email_date is None:
        return 1.0
    delta = (candidate.email_date - transaction.date).days
    if delta < 0:
        bands, floor, days = EMAIL_BEFORE_MULTIPLIERS, EMAIL_BEFORE_FLOOR, -delta
    else:
        bands, floor, days = EMAIL_AFTER_MULTIPLIERS, EMAIL_AFTER_FLOOR, delta
    multiplier = next((m for limit, m in bands if days <= limit), floor)
    if multiplier < 1.0:
        reasons.append(f"E-mail {days} days {'before' if delta < 0 else 'after'} booking")
    return multiplier


def score_attachment(
    candidate: AttachmentCandidate,
    transaction: Transaction,
    partner: Optional[Partner] = None,
    settings: Optional[MatchingSettings] = None,
) -> ScoredAttachment:
    """Score one candidate against a transaction.

    Pure function: nothing is persisted. Missing fields on the candidate
    simply contribute nothing.

    Args:
        candidate: Attachment or file to score
        transaction: Bank transaction
        partner: Partner assigned to the transaction, if known
        settings: Label thresholds; defaults to the process settings

    Returns:
        ScoredAttachment with score 0-100, label and reasons
    """
    if settings is None:
        settings = get_settings()
    reasons: list[str] = []

    amount_points, amount_mismatch = _amount_signal(candidate, transaction, reasons)
    identifier_points, identifier_match = _identifier_signals(
        candidate, transaction, partner, reasons
    )
    raw = (
        amount_points
        + _date_signal(candidate, transaction, reasons)
        + _name_signal(candidate, transaction, partner, reasons)
        + _email_domain_signal(candidate, partner, reasons)
        + identifier_points
        + _context_signals(candidate, transaction, partner, reasons)
    )
    if amount_points == AMOUNT_EXACT:
        raw = max(raw, settings.strong_label_threshold)
    if identifier_match:
        raw = max(raw, IDENTIFIER_FLOOR)
    multiplier = _email_date_multiplier(candidate, transaction, reasons)
    if amount_mismatch:
        multiplier *= AMOUNT_MISMATCH_FACTOR

    score = min(MAX_SCORE, round(raw * multiplier))
    label = label_for_score(score, settings.strong_label_threshold, settings.likely_label_threshold)
    return ScoredAttachment(key=candidate.key, score=score, label=label, reasons=tuple(reasons))


def score_attachments(
    candidates: Iterable[AttachmentCandidate],
    transaction: Transaction,
    partner: Optional[Partner] = None,
    settings: Optional[MatchingSettings] = None,
) -> list[ScoredAttachment]:
    """Score several candidates and return them best first."""
    scored = [score_attachment(c, transaction, partner, settings) for c in candidates]
    return sorted(scored, key=lambda s: s.score, reverse=True)


class AttachmentMatchingService:
    """Connects files to transactions."""

    def __init__(self, ctx: OperationsContext):
        """Initialize attachment matching service.

        Args:
            ctx: Operations context
        """
        self.ctx = ctx
        self.repo = ctx.repo
        self.settings = ctx.settings

    def _get_file(self, file_id: str) -> File:
        file = self.repo.get_file(file_id)
        if file is None:
            raise NotFoundError(file_not_found(file_id))
        if file.user_id != self.ctx.user_id:
            raise ValidationError(foreign_entity("File", file_id))
        return file

    def _get_transaction(self, transaction_id: str) -> Transaction:
        transaction = self.repo.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(transaction_not_found(transaction_id))
        if transaction.user_id != self.ctx.user_id:
            raise ValidationError(foreign_entity("Transaction", transaction_id))
        return transaction

    def add_file(self, file_name: str, **fields) -> File:
        """Register a file with the fields extraction produced for it.

        Args:
            file_name: Original file name
            **fields: Any File field (extracted_amount, extracted_partner, ...)

        Returns:
            Stored file
        """
        if not file_name or not file_name.strip():
            raise ValidationError("File name must not be empty")
        file = File(
            id=new_id(),
            user_id=self.ctx.user_id,
            file_name=file_name.strip(),
            created_at=utcnow(),
            **fields,
        )
        self.repo.add_file(file)
        return file

    def get_file(self, file_id: str) -> File:
        """Get an own file by ID."""
        return self._get_file(file_id)

    def rank_transactions(self, file: File) -> list[TransactionSuggestion]:
        """Score transactions near the file date and keep the likely ones.

        Args:
            file: File to find transactions for

        Returns:
            Suggestions sorted by confidence, at most max_transaction_suggestions
        """
        anchor = file.extracted_date or file.email_date
        if anchor is None:
            logger.debug("File %s has no date, skipping transaction search", file.id)
            return []
        window = timedelta(days=self.settings.attachment_date_window_days)
        transactions = self.repo.find_transactions_in_range(
            self.ctx.user_id, anchor - window, anchor + window
        )
        candidate = candidate_from_file(file)
        partners: dict[str, Optional[Partner]] = {}
        suggestions = []
        for transaction in transactions:
            partner = None
            if transaction.partner_id:
                if transaction.partner_id not in partners:
                    partners[transaction.partner_id] = self.repo.get_partner(transaction.partner_id)
                partner = partners[transaction.partner_id]
            scored = score_attachment(candidate, transaction, partner, self.settings)
            if scored.score >= self.settings.likely_label_threshold:
                suggestions.append(
                    TransactionSuggestion(
                        transaction_id=transaction.id, confidence=scored.score, label=scored.label
                    )
                )
        suggestions.sort(key=lambda s: (-s.confidence, s.transaction_id))
        return suggestions[: self.settings.max_transaction_suggestions]

    def match_file(self, file_id: str) -> list[TransactionSuggestion]:
        """Store transaction suggestions for a file and auto-connect a clear winner.

        A file that is already connected keeps its connections; only its
        suggestions are refreshed.

        Returns:
            The stored suggestions
        """
        file = self._get_file(file_id)
        suggestions = self.rank_transactions(file)
        with self.repo.transaction():
            current = self._get_file(file_id)
            if tuple(suggestions) != current.transaction_suggestions:
                current = replace(current, transaction_suggestions=tuple(suggestions))
                self.repo.save_file(current)
            top = suggestions[0] if suggestions else None
            if (
                top is not None
                and not current.transaction_ids
                and top.confidence >= self.settings.attachment_auto_connect_threshold
            ):
                logger.info(
                    "Auto-connecting file %s to transaction %s (%d)",
                    file_id,
                    top.transaction_id,
                    top.confidence,
                )
                self.connect(file_id, top.transaction_id)
        return suggestions

    def connect(self, file_id: str, transaction_id: str) -> None:
        """Link a file and a transaction on both sides."""
        with self.repo.transaction():
            file = self._get_file(file_id)
            transaction = self._get_transaction(transaction_id)
            if transaction_id not in file.transaction_ids:
                self.repo.save_file(
                    replace(file, transaction_ids=file.transaction_ids + (transaction_id,))
                )
            if file_id not in transaction.file_ids:
                self.repo.save_transaction(
                    replace(transaction, file_ids=transaction.file_ids + (file_id,))
                )

    def disconnect(self, file_id: str, transaction_id: str) -> None:
        """Remove the link between a file and a transaction."""
        with self.repo.transaction():
            file = self._get_file(file_id)
            transaction = self._get_transaction(transaction_id)
            if transaction_id in file.transaction_ids:
                self.repo.save_file(
                    replace(
                        file,
                        transaction_ids=tuple(t for t in file.transaction_ids if t != transaction_id),
                    )
                )
            if file_id in transaction.file_ids:
                self.repo.save_transaction(
                    replace(
                        transaction, file_ids=tuple(f for f in transaction.file_ids if f != file_id)
                    )
                )


