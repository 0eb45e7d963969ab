"""Shared domain error messages and error types."""


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested domain entity does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as a duplicate import or an existing manual match."""


def transaction_not_found(transaction_id: str) -> str:
    """Return message for missing transaction."""
    return f"Transaction {transaction_id} not found"


def partner_not_found(partner_id: str) -> str:
    """Return message for missing partner."""
    return f"Partner {partner_id} not found"


def category_not_found(category_id: str) -> str:
    """Return message for missing category."""
    return f"Category {category_id} not found"


def file_not_found(file_id: str) -> str:
    """Return message for missing file."""
    return f"File {file_id} not found"


def source_not_found(source_id: str) -> str:
    """Return message for missing source."""
    return f"Source {source_id} not found"


def pattern_not_found(pattern: str, owner_id: str) -> str:
    """Return message for a learned pattern that does not exist."""
    return f"Pattern '{pattern}' not found on {owner_id}"


def foreign_entity(kind: str, entity_id: str) -> str:
    """Return message for an entity owned by another user."""
    return f"{kind} {entity_id} does not belong to the current user"
