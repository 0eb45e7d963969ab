"""Counterparty resolution for invoices.

An invoice names an issuer and a recipient. One of them is usually the user;
the other is the counterparty the file should be matched against. The user is
recognised by VAT id, IBAN (entered by hand or taken from connected bank
sources), own e-mail address and finally by name.
"""

import logging
from dataclasses import replace
from typing import Iterable, Optional

from ledgermatch.context import OperationsContext
from ledgermatch.database.base import PageCursor
from ledgermatch.domain.bulk import BulkResult, PagedRunner, file_cursor
from ledgermatch.domain.entities import CounterpartyResult, ExtractedEntity, File, UserData
from ledgermatch.domain.errors import ValidationError
from ledgermatch.utils.normalization import iban_in, vat_ids_match

logger = logging.getLogger(__name__)

USER_DATA_MATCH_FIELDS = ("name", "company_name", "aliases", "vat_ids", "ibans", "own_emails")


def _contains_either_way(a: str, b: str) -> bool:
    return a in b or b in a


def _name_matches(entity_name: str, user_data: UserData) -> bool:
    name = entity_name.lower().strip()
    if not name:
        return False
    for own in (user_data.company_name, user_data.name, *user_data.aliases):
        if own and own.strip() and _contains_either_way(name, own.lower().strip()):
            return True
    return False


def entity_matches_user_data(
    entity: Optional[ExtractedEntity], user_data: UserData, source_ibans: Iterable[str] = ()
) -> bool:
    """Check whether an invoice party is the user.

    Signals in order of strength: VAT id, IBAN (manual and from sources),
    own e-mail address, name/company name/alias containment.
    """
    if entity is None:
        return False
    if entity.vat_id and any(vat_ids_match(entity.vat_id, own) for own in user_data.vat_ids):
        logger.debug("VAT id match: %s", entity.vat_id)
        return True
    if entity.iban and (
        iban_in(entity.iban, user_data.ibans) or iban_in(entity.iban, source_ibans)
    ):
        logger.debug("IBAN match: %s", entity.iban)
        return True
    if entity.email:
        email = entity.email.strip().lower()
        if any(email == own.strip().lower() for own in user_data.own_emails if own):
            logger.debug("Own e-mail match: %s", entity.email)
            return True
    if entity.name and _name_matches(entity.name, user_data):
        logger.debug("Name match: %s", entity.name)
        return True
    return False


def determine_counterparty(
    issuer: Optional[ExtractedEntity],
    recipient: Optional[ExtractedEntity],
    user_data: Optional[UserData],
    source_ibans: Iterable[str] = (),
) -> CounterpartyResult:
    """Decide which party is the counterparty and the invoice direction.

    | issuer is user | recipient is user | direction | counterparty | user account |
    | yes            | no                | outgoing  | recipient    | issuer       |
    | no             | yes               | incoming  | issuer       | recipient    |
    | yes            | yes               | outgoing  | recipient    | issuer       |
    | no             | no                | unknown   | issuer       | None         |
    """
    if user_data is None:
        return CounterpartyResult(issuer, None, "unknown")
    source_ibans = list(source_ibans)
    issuer_is_user = entity_matches_user_data(issuer, user_data, source_ibans)
    recipient_is_user = entity_matches_user_data(recipient, user_data, source_ibans)

    if issuer_is_user:
        # Both matching is a self-invoice, treated as outgoing
        return CounterpartyResult(recipient, "issuer", "outgoing")
    if recipient_is_user:
        return CounterpartyResult(issuer, "recipient", "incoming")
    return CounterpartyResult(issuer, None, "unknown")


def determine_invoice_direction(extracted_partner: Optional[str], user_data: Optional[UserData]) -> str:
    """Direction for files that only carry a partner name.

    A partner name that matches the user means the user issued the invoice.
    """
    if not extracted_partner or user_data is None:
        return "unknown"
    if _name_matches(extracted_partner, user_data):
        return "outgoing"
    return "incoming"


def apply_counterparty(file: File, result: CounterpartyResult) -> File:
    """Return the file with direction, user account and partner fields set."""
    updated = replace(
        file,
        invoice_direction=result.invoice_direction,
        matched_user_account=result.matched_user_account,
    )
    if result.counterparty is not None:
        updated = replace(
            updated,
            extracted_partner=result.counterparty.name,
            extracted_vat_id=result.counterparty.vat_id,
            extracted_iban=result.counterparty.iban,
        )
    return updated


def user_data_changed(before: Optional[UserData], after: Optional[UserData]) -> bool:
    """True if any field used for counterparty resolution differs."""
    if before is None or after is None:
        return before is not after
    return any(getattr(before, f) != getattr(after, f) for f in USER_DATA_MATCH_FIELDS)


class CounterpartyService:
    """Service for the user's identity data and counterparty re-evaluation."""

    def __init__(self, ctx: OperationsContext):
        """Initialize counterparty service.

        Args:
            ctx: Operations context
        """
        self.ctx = ctx
        self.repo = ctx.repo
        self.settings = ctx.settings

    def get_user_data(self) -> UserData:
        """Stored identity of the user, or an empty one."""
        return self.repo.get_user_data(self.ctx.user_id) or UserData(user_id=self.ctx.user_id)

    def update_user_data(self, **fields) -> tuple[UserData, UserData]:
        """Update identity fields (name, company_name, aliases, vat_ids, ibans, own_emails).

        Returns:
            (before, after) user data states
        """
        unknown = set(fields) - set(USER_DATA_MATCH_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown user data fields: {', '.join(sorted(unknown))}")
        for key in ("aliases", "vat_ids", "ibans", "own_emails"):
            if key in fields and fields[key] is not None:
                fields[key] = tuple(v.strip() for v in fields[key] if v and v.strip())
        with self.repo.transaction():
            before = self.get_user_data()
            after = replace(before, **fields)
            if after != before:
                self.repo.save_user_data(after)
        return before, after

    def resolve_file(
        self, file: File, user_data: Optional[UserData] = None, source_ibans=None
    ) -> CounterpartyResult:
        """Counterparty result for one file."""
        if user_data is None:
            user_data = self.repo.get_user_data(self.ctx.user_id)
        if source_ibans is None:
            source_ibans = self.repo.find_active_source_ibans(self.ctx.user_id)
        if file.extracted_issuer is None and file.extracted_recipient is None:
            direction = determine_invoice_direction(file.extracted_partner, user_data)
            return CounterpartyResult(None, None, direction)
        return determine_counterparty(
            file.extracted_issuer, file.extracted_recipient, user_data, source_ibans
        )

    def reevaluate_files(self, start_after: Optional[PageCursor] = None) -> BulkResult:
        """Re-run counterparty resolution over all extracted invoice files.

        Files without issuer and recipient are skipped. Files whose result did
        not change are not written. At most counterparty_max_files are
        handled per run; the returned cursor resumes the rest.
        """
        user_data = self.repo.get_user_data(self.ctx.user_id)
        source_ibans = self.repo.find_active_source_ibans(self.ctx.user_id)
        logger.info(
            "Re-evaluating counterparties for user %s (%d source IBANs)",
            self.ctx.user_id,
            len(source_ibans),
        )

        def process(record: File) -> bool:
            current = self.repo.get_file(record.id)
            if current is None:
                return False
            if current.extracted_issuer is None and current.extracted_recipient is None:
                return False
            result = determine_counterparty(
                current.extracted_issuer, current.extracted_recipient, user_data, source_ibans
            )
            updated = apply_counterparty(current, result)
            if updated == current:
                return False
            self.repo.save_file(updated)
            return True

        runner = PagedRunner(
            self.repo,
            lambda cursor, limit: self.repo.find_extracted_files_page(self.ctx.user_id, cursor, limit),
            file_cursor,
            page_size=self.settings.counterparty_batch_size,
            max_processed=self.settings.counterparty_max_files,
            time_budget=self.settings.bulk_time_budget_seconds,
            name="counterparty re-evaluation",
        )
        return runner.run(process, start_after)
