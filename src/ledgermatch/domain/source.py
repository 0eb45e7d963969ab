"""Source (bank account) domain service."""

from typing import Optional

from ledgermatch.context import OperationsContext
from ledgermatch.domain.entities import Source, new_id, utcnow
from ledgermatch.domain.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    foreign_entity,
    source_not_found,
)
from ledgermatch.utils.normalization import is_valid_iban, normalize_iban


class SourceService:
    """Service for managing transaction sources."""

    def __init__(self, ctx: OperationsContext):
        """Initialize source service.

        Args:
            ctx: Operations context
        """
        self.ctx = ctx
        self.repo = ctx.repo

    def create_source(self, name: str, iban: Optional[str] = None, currency: str = "EUR") -> Source:
        """Create a new source.

        Args:
            name: Source name
            iban: Account IBAN, if the source has one
            currency: Account currency code

        Returns:
            Created source

        Raises:
            ValidationError: If the IBAN is malformed
            ConflictError: If a source with the same name exists
        """
        if not name or not name.strip():
            raise ValidationError("Source name must not be empty")
        for existing in self.repo.list_sources(self.ctx.user_id):
            if existing.name == name.strip():
                raise ConflictError(f"Source with name '{name}' already exists")

        normalized = normalize_iban(iban) or None
        if normalized and not is_valid_iban(normalized):
            raise ValidationError(f"Invalid IBAN: {iban}")

        source = Source(
            id=new_id(),
            user_id=self.ctx.user_id,
            name=name.strip(),
            iban=normalized,
            currency=currency.upper(),
            created_at=utcnow(),
        )
        self.repo.create_source(source)
        return source

    def get_source(self, source_id: str) -> Source:
        """Get an own source by ID.

        Raises:
            NotFoundError: If the source does not exist
        """
        source = self.repo.get_source(source_id)
        if source is None:
            raise NotFoundError(source_not_found(source_id))
        if source.user_id != self.ctx.user_id:
            raise ValidationError(foreign_entity("Source", source_id))
        return source

    def find_source(self, name_or_id: str) -> Source:
        """Resolve a source by exact name or ID."""
        for source in self.repo.list_sources(self.ctx.user_id):
            if source.name == name_or_id or source.id == name_or_id:
                return source
        raise NotFoundError(source_not_found(name_or_id))

    def list_sources(self) -> list[Source]:
        """List all sources of the user."""
        return self.repo.list_sources(self.ctx.user_id)
