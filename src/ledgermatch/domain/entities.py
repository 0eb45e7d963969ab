"""Domain model entities for ledgermatch.

These are pure data classes, independent of the storage schema. Lists are
held as tuples so entities stay immutable; services produce changed copies
with dataclasses.replace and hand them back to the repository.
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Literal, Optional

from ledgermatch.utils.glob import build_match_text

PartnerType = Literal["user", "global"]
MatchedBy = Literal["manual", "auto"]
InvoiceDirection = Literal["incoming", "outgoing", "unknown"]
UserAccountRole = Literal["issuer", "recipient"]


def new_id() -> str:
    """Generate a new entity id."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    """Current time in UTC."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class LearnedPattern:
    """Glob pattern learned from confirmed matches."""

    pattern: str
    confidence: int
    source_transaction_ids: tuple[str, ...] = ()
    source_file_ids: tuple[str, ...] = ()
    created_at: Optional[datetime] = None
    usage_count: int = 1
    # Static patterns on global partners may carry exclusions
    exclude: tuple[str, ...] = ()


@dataclass(frozen=True)
class ManualRemoval:
    """A transaction the user explicitly detached from a partner or category.

    Keeps a snapshot of the text the match was made on, so learned patterns
    can be checked against it later.
    """

    transaction_id: str
    removed_at: Optional[datetime] = None
    name: Optional[str] = None
    partner: Optional[str] = None
    reference: Optional[str] = None

    def match_text(self) -> str:
        return build_match_text(self.name, self.partner, self.reference)


@dataclass(frozen=True)
class ManualFileRemoval:
    """A file the user explicitly detached from a partner."""

    file_id: str
    removed_at: Optional[datetime] = None
    extracted_partner: Optional[str] = None


@dataclass(frozen=True)
class PartnerSuggestion:
    """Ranked partner candidate stored on a transaction or file."""

    partner_id: str
    partner_type: PartnerType
    confidence: int
    source: str


@dataclass(frozen=True)
class CategorySuggestion:
    """Ranked no-receipt category candidate stored on a transaction."""

    category_id: str
    template_id: str
    confidence: int
    source: str


@dataclass(frozen=True)
class TransactionSuggestion:
    """Ranked transaction candidate stored on a file."""

    transaction_id: str
    confidence: int
    label: Optional[str]


@dataclass(frozen=True)
class Source:
    """Bank account or other transaction source."""

    id: str
    user_id: str
    name: str
    iban: Optional[str] = None
    currency: str = "EUR"
    is_active: bool = True
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Transaction:
    """Bank transaction domain entity.

    Date, amount, currency, texts and source never change after import.
    Everything from partner_id on is matching state.
    """

    id: str
    user_id: str
    source_id: str
    date: date
    amount: int
    currency: str
    name: str
    reference: Optional[str] = None
    partner: Optional[str] = None
    partner_iban: Optional[str] = None
    dedupe_hash: str = ""
    partner_id: Optional[str] = None
    partner_type: Optional[PartnerType] = None
    partner_matched_by: Optional[MatchedBy] = None
    partner_match_confidence: Optional[int] = None
    partner_suggestions: tuple[PartnerSuggestion, ...] = ()
    no_receipt_category_id: Optional[str] = None
    no_receipt_category_template_id: Optional[str] = None
    no_receipt_category_confidence: Optional[int] = None
    no_receipt_category_matched_by: Optional[MatchedBy] = None
    category_suggestions: tuple[CategorySuggestion, ...] = ()
    file_ids: tuple[str, ...] = ()
    imported_at: Optional[datetime] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.no_receipt_category_id or self.file_ids)

    def match_text(self) -> str:
        """Lowercased name, partner label and reference for pattern matching."""
        return build_match_text(self.name, self.partner, self.reference)


@dataclass(frozen=True)
class Partner:
    """Counterparty entity. Global partners have no user_id."""

    id: str
    name: str
    user_id: Optional[str] = None
    aliases: tuple[str, ...] = ()
    vat_id: Optional[str] = None
    ibans: tuple[str, ...] = ()
    website: Optional[str] = None
    email_domains: tuple[str, ...] = ()
    learned_patterns: tuple[LearnedPattern, ...] = ()
    manual_removals: tuple[ManualRemoval, ...] = ()
    manual_file_removals: tuple[ManualFileRemoval, ...] = ()
    is_active: bool = True
    created_at: Optional[datetime] = None

    @property
    def partner_type(self) -> PartnerType:
        return "global" if self.user_id is None else "user"

    def is_removed_for_transaction(self, transaction_id: str) -> bool:
        return any(r.transaction_id == transaction_id for r in self.manual_removals)

    def is_removed_for_file(self, file_id: str) -> bool:
        return any(r.file_id == file_id for r in self.manual_file_removals)


@dataclass(frozen=True)
class NoReceiptCategory:
    """Per-user instance of a no-receipt category template."""

    id: str
    user_id: str
    template_id: str
    name: str
    matched_partner_ids: tuple[str, ...] = ()
    learned_patterns: tuple[LearnedPattern, ...] = ()
    manual_removals: tuple[ManualRemoval, ...] = ()
    is_active: bool = True
    transaction_count: int = 0

    def is_removed_for_transaction(self, transaction_id: str) -> bool:
        return any(r.transaction_id == transaction_id for r in self.manual_removals)


@dataclass(frozen=True)
class ExtractedEntity:
    """Issuer or recipient block extracted from an invoice."""

    name: Optional[str] = None
    vat_id: Optional[str] = None
    iban: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None


@dataclass(frozen=True)
class File:
    """Receipt or invoice with the fields extraction produced for it."""

    id: str
    user_id: str
    file_name: str
    mime_type: Optional[str] = None
    extracted_amount: Optional[int] = None
    extracted_currency: Optional[str] = None
    extracted_date: Optional[date] = None
    extracted_partner: Optional[str] = None
    extracted_vat_id: Optional[str] = None
    extracted_iban: Optional[str] = None
    extracted_website: Optional[str] = None
    extracted_text: Optional[str] = None
    extracted_issuer: Optional[ExtractedEntity] = None
    extracted_recipient: Optional[ExtractedEntity] = None
    extraction_complete: bool = False
    is_not_invoice: bool = False
    invoice_direction: InvoiceDirection = "unknown"
    matched_user_account: Optional[UserAccountRole] = None
    transaction_ids: tuple[str, ...] = ()
    transaction_suggestions: tuple[TransactionSuggestion, ...] = ()
    partner_id: Optional[str] = None
    partner_type: Optional[PartnerType] = None
    partner_matched_by: Optional[MatchedBy] = None
    partner_match_confidence: Optional[int] = None
    partner_suggestions: tuple[PartnerSuggestion, ...] = ()
    email_subject: Optional[str] = None
    email_from: Optional[str] = None
    email_text: Optional[str] = None
    email_date: Optional[date] = None
    possible_invoice: bool = False
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class UserData:
    """The user's own identity, used to tell "me" apart from counterparties."""

    user_id: str
    name: Optional[str] = None
    company_name: Optional[str] = None
    aliases: tuple[str, ...] = ()
    vat_ids: tuple[str, ...] = ()
    ibans: tuple[str, ...] = ()
    own_emails: tuple[str, ...] = ()


@dataclass(frozen=True)
class CounterpartyResult:
    """Outcome of resolving which invoice party is the counterparty."""

    counterparty: Optional[ExtractedEntity]
    matched_user_account: Optional[UserAccountRole]
    invoice_direction: InvoiceDirection


@dataclass(frozen=True)
class ScoredAttachment:
    """Score of one attachment against a transaction."""

    key: str
    score: int
    label: Optional[str]
    reasons: tuple[str, ...] = ()
