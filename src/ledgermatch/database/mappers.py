"""Mapper functions to convert between domain entities and SQLAlchemy models.

Embedded values are stored as JSON documents with camelCase keys, e.g. a
learned pattern is {"pattern", "confidence", "sourceTransactionIds",
"sourceFileIds", "createdAt", "usageCount"}.
"""

from datetime import datetime
from typing import Any, Optional

from ledgermatch.domain import entities as domain
from ledgermatch.database.models import (
    File as ORMFile,
    NoReceiptCategory as ORMNoReceiptCategory,
    Partner as ORMPartner,
    Source as ORMSource,
    Transaction as ORMTransaction,
    UserData as ORMUserData,
)


def _dt_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _str_to_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


# Embedded documents


def pattern_to_document(pattern: domain.LearnedPattern) -> dict[str, Any]:
    """Convert a LearnedPattern to its stored document."""
    document = {
        "pattern": pattern.pattern,
        "confidence": pattern.confidence,
        "sourceTransactionIds": list(pattern.source_transaction_ids),
        "sourceFileIds": list(pattern.source_file_ids),
        "createdAt": _dt_to_str(pattern.created_at),
        "usageCount": pattern.usage_count,
    }
    if pattern.exclude:
        document["exclude"] = list(pattern.exclude)
    return document


def pattern_from_document(document: dict[str, Any]) -> domain.LearnedPattern:
    """Convert a stored document to a LearnedPattern."""
    return domain.LearnedPattern(
        pattern=document["pattern"],
        confidence=int(document.get("confidence") or 0),
        source_transaction_ids=tuple(document.get("sourceTransactionIds") or ()),
        source_file_ids=tuple(document.get("sourceFileIds") or ()),
        created_at=_str_to_dt(document.get("createdAt")),
        usage_count=int(document.get("usageCount") or 0),
        exclude=tuple(document.get("exclude") or ()),
    )


def removal_to_document(removal: domain.ManualRemoval) -> dict[str, Any]:
    """Convert a ManualRemoval to its stored document."""
    return {
        "transactionId": removal.transaction_id,
        "removedAt": _dt_to_str(removal.removed_at),
        "name": removal.name,
        "partner": removal.partner,
        "reference": removal.reference,
    }


def removal_from_document(document: dict[str, Any]) -> domain.ManualRemoval:
    """Convert a stored document to a ManualRemoval."""
    return domain.ManualRemoval(
        transaction_id=document["transactionId"],
        removed_at=_str_to_dt(document.get("removedAt")),
        name=document.get("name"),
        partner=document.get("partner"),
        reference=document.get("reference"),
    )


def file_removal_to_document(removal: domain.ManualFileRemoval) -> dict[str, Any]:
    """Convert a ManualFileRemoval to its stored document."""
    return {
        "fileId": removal.file_id,
        "removedAt": _dt_to_str(removal.removed_at),
        "extractedPartner": removal.extracted_partner,
    }


def file_removal_from_document(document: dict[str, Any]) -> domain.ManualFileRemoval:
    """Convert a stored document to a ManualFileRemoval."""
    return domain.ManualFileRemoval(
        file_id=document["fileId"],
        removed_at=_str_to_dt(document.get("removedAt")),
        extracted_partner=document.get("extractedPartner"),
    )


def partner_suggestion_to_document(suggestion: domain.PartnerSuggestion) -> dict[str, Any]:
    """Convert a PartnerSuggestion to its stored document."""
    return {
        "partnerId": suggestion.partner_id,
        "partnerType": suggestion.partner_type,
        "confidence": suggestion.confidence,
        "source": suggestion.source,
    }


def partner_suggestion_from_document(document: dict[str, Any]) -> domain.PartnerSuggestion:
    """Convert a stored document to a PartnerSuggestion."""
    return domain.PartnerSuggestion(
        partner_id=document["partnerId"],
        partner_type=document["partnerType"],
        confidence=int(document["confidence"]),
        source=document["source"],
    )


def category_suggestion_to_document(suggestion: domain.CategorySuggestion) -> dict[str, Any]:
    """Convert a CategorySuggestion to its stored document."""
    return {
        "categoryId": suggestion.category_id,
        "templateId": suggestion.template_id,
        "confidence": suggestion.confidence,
        "source": suggestion.source,
    }


def category_suggestion_from_document(document: dict[str, Any]) -> domain.CategorySuggestion:
    """Convert a stored document to a CategorySuggestion."""
    return domain.CategorySuggestion(
        category_id=document["categoryId"],
        template_id=document["templateId"],
        confidence=int(document["confidence"]),
        source=document["source"],
    )


def transaction_suggestion_to_document(
    suggestion: domain.TransactionSuggestion,
) -> dict[str, Any]:
    """Convert a TransactionSuggestion to its stored document."""
    return {
        "transactionId": suggestion.transaction_id,
        "confidence": suggestion.confidence,
        "label": suggestion.label,
    }


def transaction_suggestion_from_document(
    document: dict[str, Any],
) -> domain.TransactionSuggestion:
    """Convert a stored document to a TransactionSuggestion."""
    return domain.TransactionSuggestion(
        transaction_id=document["transactionId"],
        confidence=int(document["confidence"]),
        label=document.get("label"),
    )


def entity_to_document(entity: Optional[domain.ExtractedEntity]) -> Optional[dict[str, Any]]:
    """Convert an ExtractedEntity to its stored document."""
    if entity is None:
        return None
    return {
        "name": entity.name,
        "vatId": entity.vat_id,
        "iban": entity.iban,
        "email": entity.email,
        "address": entity.address,
    }


def entity_from_document(document: Optional[dict[str, Any]]) -> Optional[domain.ExtractedEntity]:
    """Convert a stored document to an ExtractedEntity."""
    if not document:
        return None
    return domain.ExtractedEntity(
        name=document.get("name"),
        vat_id=document.get("vatId"),
        iban=document.get("iban"),
        email=document.get("email"),
        address=document.get("address"),
    )


# Rows


def user_data_to_domain(orm_user_data: ORMUserData) -> domain.UserData:
    """Convert SQLAlchemy UserData model to domain UserData entity."""
    return domain.UserData(
        user_id=orm_user_data.user_id,
        name=orm_user_data.name,
        company_name=orm_user_data.company_name,
        aliases=tuple(orm_user_data.aliases or ()),
        vat_ids=tuple(orm_user_data.vat_ids or ()),
        ibans=tuple(orm_user_data.ibans or ()),
        own_emails=tuple(orm_user_data.own_emails or ()),
    )


def apply_user_data(orm_user_data: ORMUserData, user_data: domain.UserData) -> None:
    """Copy a domain UserData onto its SQLAlchemy model."""
    orm_user_data.user_id = user_data.user_id
    orm_user_data.name = user_data.name
    orm_user_data.company_name = user_data.company_name
    orm_user_data.aliases = list(user_data.aliases)
    orm_user_data.vat_ids = list(user_data.vat_ids)
    orm_user_data.ibans = list(user_data.ibans)
    orm_user_data.own_emails = list(user_data.own_emails)


def source_to_domain(orm_source: ORMSource) -> domain.Source:
    """Convert SQLAlchemy Source model to domain Source entity."""
    return domain.Source(
        id=orm_source.id,
        user_id=orm_source.user_id,
        name=orm_source.name,
        iban=orm_source.iban,
        currency=orm_source.currency,
        is_active=orm_source.is_active,
        created_at=orm_source.created_at,
    )


def transaction_to_domain(orm_transaction: ORMTransaction) -> domain.Transaction:
    """Convert SQLAlchemy Transaction model to domain Transaction entity."""
    return domain.Transaction(
        id=orm_transaction.id,
        user_id=orm_transaction.user_id,
        source_id=orm_transaction.source_id,
        date=orm_transaction.date,
        amount=orm_transaction.amount,
        currency=orm_transaction.currency,
        name=orm_transaction.name,
        reference=orm_transaction.reference,
        partner=orm_transaction.partner,
        partner_iban=orm_transaction.partner_iban,
        dedupe_hash=orm_transaction.dedupe_hash,
        partner_id=orm_transaction.partner_id,
        partner_type=orm_transaction.partner_type,
        partner_matched_by=orm_transaction.partner_matched_by,
        partner_match_confidence=orm_transaction.partner_match_confidence,
        partner_suggestions=tuple(
            partner_suggestion_from_document(d) for d in orm_transaction.partner_suggestions or ()
        ),
        no_receipt_category_id=orm_transaction.no_receipt_category_id,
        no_receipt_category_template_id=orm_transaction.no_receipt_category_template_id,
        no_receipt_category_confidence=orm_transaction.no_receipt_category_confidence,
        no_receipt_category_matched_by=orm_transaction.no_receipt_category_matched_by,
        category_suggestions=tuple(
            category_suggestion_from_document(d) for d in orm_transaction.category_suggestions or ()
        ),
        file_ids=tuple(orm_transaction.file_ids or ()),
        imported_at=orm_transaction.imported_at,
    )


def apply_transaction(orm_transaction: ORMTransaction, transaction: domain.Transaction) -> None:
    """Copy a domain Transaction onto its SQLAlchemy model."""
    orm_transaction.id = transaction.id
    orm_transaction.user_id = transaction.user_id
    orm_transaction.source_id = transaction.source_id
    orm_transaction.date = transaction.date
    orm_transaction.amount = transaction.amount
    orm_transaction.currency = transaction.currency
    orm_transaction.name = transaction.name
    orm_transaction.reference = transaction.reference
    orm_transaction.partner = transaction.partner
    orm_transaction.partner_iban = transaction.partner_iban
    orm_transaction.dedupe_hash = transaction.dedupe_hash
    orm_transaction.partner_id = transaction.partner_id
    orm_transaction.partner_type = transaction.partner_type
    orm_transaction.partner_matched_by = transaction.partner_matched_by
    orm_transaction.partner_match_confidence = transaction.partner_match_confidence
    orm_transaction.partner_suggestions = [
        partner_suggestion_to_document(s) for s in transaction.partner_suggestions
    ]
    orm_transaction.no_receipt_category_id = transaction.no_receipt_category_id
    orm_transaction.no_receipt_category_template_id = transaction.no_receipt_category_template_id
    orm_transaction.no_receipt_category_confidence = transaction.no_receipt_category_confidence
    orm_transaction.no_receipt_category_matched_by = transaction.no_receipt_category_matched_by
    orm_transaction.category_suggestions = [
        category_suggestion_to_document(s) for s in transaction.category_suggestions
    ]
    orm_transaction.file_ids = list(transaction.file_ids)
    orm_transaction.is_complete = transaction.is_complete
    if transaction.imported_at is not None:
        orm_transaction.imported_at = transaction.imported_at


def partner_to_domain(orm_partner: ORMPartner) -> domain.Partner:
    """Convert SQLAlchemy Partner model to domain Partner entity."""
    return domain.Partner(
        id=orm_partner.id,
        name=orm_partner.name,
        user_id=orm_partner.user_id,
        aliases=tuple(orm_partner.aliases or ()),
        vat_id=orm_partner.vat_id,
        ibans=tuple(orm_partner.ibans or ()),
        website=orm_partner.website,
        email_domains=tuple(orm_partner.email_domains or ()),
        learned_patterns=tuple(pattern_from_document(d) for d in orm_partner.learned_patterns or ()),
        manual_removals=tuple(removal_from_document(d) for d in orm_partner.manual_removals or ()),
        manual_file_removals=tuple(
            file_removal_from_document(d) for d in orm_partner.manual_file_removals or ()
        ),
        is_active=orm_partner.is_active,
        created_at=orm_partner.created_at,
    )


def apply_partner(orm_partner: ORMPartner, partner: domain.Partner) -> None:
    """Copy a domain Partner onto its SQLAlchemy model."""
    orm_partner.id = partner.id
    orm_partner.name = partner.name
    orm_partner.user_id = partner.user_id
    orm_partner.aliases = list(partner.aliases)
    orm_partner.vat_id = partner.vat_id
    orm_partner.ibans = list(partner.ibans)
    orm_partner.website = partner.website
    orm_partner.email_domains = list(partner.email_domains)
    orm_partner.learned_patterns = [pattern_to_document(p) for p in partner.learned_patterns]
    orm_partner.manual_removals = [removal_to_document(r) for r in partner.manual_removals]
    orm_partner.manual_file_removals = [
        file_removal_to_document(r) for r in partner.manual_file_removals
    ]
    orm_partner.is_active = partner.is_active
    if partner.created_at is not None:
        orm_partner.created_at = partner.created_at


def category_to_domain(orm_category: ORMNoReceiptCategory) -> domain.NoReceiptCategory:
    """Convert SQLAlchemy NoReceiptCategory model to domain entity."""
    return domain.NoReceiptCategory(
        id=orm_category.id,
        user_id=orm_category.user_id,
        template_id=orm_category.template_id,
        name=orm_category.name,
        matched_partner_ids=tuple(orm_category.matched_partner_ids or ()),
        learned_patterns=tuple(pattern_from_document(d) for d in orm_category.learned_patterns or ()),
        manual_removals=tuple(removal_from_document(d) for d in orm_category.manual_removals or ()),
        is_active=orm_category.is_active,
        transaction_count=orm_category.transaction_count,
    )


def apply_category(orm_category: ORMNoReceiptCategory, category: domain.NoReceiptCategory) -> None:
    """Copy a domain NoReceiptCategory onto its SQLAlchemy model."""
    orm_category.id = category.id
    orm_category.user_id = category.user_id
    orm_category.template_id = category.template_id
    orm_category.name = category.name
    orm_category.matched_partner_ids = list(category.matched_partner_ids)
    orm_category.learned_patterns = [pattern_to_document(p) for p in category.learned_patterns]
    orm_category.manual_removals = [removal_to_document(r) for r in category.manual_removals]
    orm_category.is_active = category.is_active
    orm_category.transaction_count = category.transaction_count


def file_to_domain(orm_file: ORMFile) -> domain.File:
    """Convert SQLAlchemy File model to domain File entity."""
    return domain.File(
        id=orm_file.id,
        user_id=orm_file.user_id,
        file_name=orm_file.file_name,
        mime_type=orm_file.mime_type,
        extracted_amount=orm_file.extracted_amount,
        extracted_currency=orm_file.extracted_currency,
        extracted_date=orm_file.extracted_date,
        extracted_partner=orm_file.extracted_partner,
        extracted_vat_id=orm_file.extracted_vat_id,
        extracted_iban=orm_file.extracted_iban,
        extracted_website=orm_file.extracted_website,
        extracted_text=orm_file.extracted_text,
        extracted_issuer=entity_from_document(orm_file.extracted_issuer),
        extracted_recipient=entity_from_document(orm_file.extracted_recipient),
        extraction_complete=orm_file.extraction_complete,
        is_not_invoice=orm_file.is_not_invoice,
        invoice_direction=orm_file.invoice_direction,
        matched_user_account=orm_file.matched_user_account,
        transaction_ids=tuple(orm_file.transaction_ids or ()),
        transaction_suggestions=tuple(
            transaction_suggestion_from_document(d) for d in orm_file.transaction_suggestions or ()
        ),
        partner_id=orm_file.partner_id,
        partner_type=orm_file.partner_type,
        partner_matched_by=orm_file.partner_matched_by,
        partner_match_confidence=orm_file.partner_match_confidence,
        partner_suggestions=tuple(
            partner_suggestion_from_document(d) for d in orm_file.partner_suggestions or ()
        ),
        email_subject=orm_file.email_subject,
        email_from=orm_file.email_from,
        email_text=orm_file.email_text,
        email_date=orm_file.email_date,
        possible_invoice=orm_file.possible_invoice,
        created_at=orm_file.created_at,
    )


def apply_file(orm_file: ORMFile, file: domain.File) -> None:
    """Copy a domain File onto its SQLAlchemy model."""
    orm_file.id = file.id
    orm_file.user_id = file.user_id
    orm_file.file_name = file.file_name
    orm_file.mime_type = file.mime_type
    orm_file.extracted_amount = file.extracted_amount
    orm_file.extracted_currency = file.extracted_currency
    orm_file.extracted_date = file.extracted_date
    orm_file.extracted_partner = file.extracted_partner
    orm_file.extracted_vat_id = file.extracted_vat_id
    orm_file.extracted_iban = file.extracted_iban
    orm_file.extracted_website = file.extracted_website
    orm_file.extracted_text = file.extracted_text
    orm_file.extracted_issuer = entity_to_document(file.extracted_issuer)
    orm_file.extracted_recipient = entity_to_document(file.extracted_recipient)
    orm_file.extraction_complete = file.extraction_complete
    orm_file.is_not_invoice = file.is_not_invoice
    orm_file.invoice_direction = file.invoice_direction
    orm_file.matched_user_account = file.matched_user_account
    orm_file.transaction_ids = list(file.transaction_ids)
    orm_file.transaction_suggestions = [
        transaction_suggestion_to_document(s) for s in file.transaction_suggestions
    ]
    orm_file.partner_id = file.partner_id
    orm_file.partner_type = file.partner_type
    orm_file.partner_matched_by = file.partner_matched_by
    orm_file.partner_match_confidence = file.partner_match_confidence
    orm_file.partner_suggestions = [partner_suggestion_to_document(s) for s in file.partner_suggestions]
    orm_file.email_subject = file.email_subject
    orm_file.email_from = file.email_from
    orm_file.email_text = file.email_text
    orm_file.email_date = file.email_date
    orm_file.possible_invoice = file.possible_invoice
    if file.created_at is not None:
        orm_file.created_at = file.created_at
