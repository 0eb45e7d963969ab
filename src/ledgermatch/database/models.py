"""SQLAlchemy models for the ledgermatch database.

Embedded lists (learned patterns, manual removals, suggestions, extracted
entities) live in JSON columns using the camelCase document shape the
matching data has always been stored in.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker

Base = declarative_base()


class UserData(Base):
    """The user's own identity record."""

    __tablename__ = "user_data"

    user_id = Column(String, primary_key=True)
    name = Column(String, nullable=True)
    company_name = Column(String, nullable=True)
    aliases = Column(JSON, default=list, nullable=False)
    vat_ids = Column(JSON, default=list, nullable=False)
    ibans = Column(JSON, default=list, nullable=False)
    own_emails = Column(JSON, default=list, nullable=False)
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )


class Source(Base):
    """Bank account or other transaction source."""

    __tablename__ = "sources"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    iban = Column(String, nullable=True)
    currency = Column(String, default="EUR", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    # Transactions are only ever deleted together with their source
    transactions = relationship("Transaction", back_populates="source", cascade="all, delete-orphan")


class Transaction(Base):
    """Imported bank transaction with its matching state."""

    __tablename__ = "transactions"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    source_id = Column(String, ForeignKey("sources.id"), nullable=False)
    date = Column(Date, nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    currency = Column(String, default="EUR", nullable=False)
    name = Column(String, nullable=False)
    reference = Column(String, nullable=True)
    partner = Column(String, nullable=True)
    partner_iban = Column(String, nullable=True)
    dedupe_hash = Column(String, nullable=False)

    partner_id = Column(String, nullable=True, index=True)
    partner_type = Column(String, nullable=True)
    partner_matched_by = Column(String, nullable=True)
    partner_match_confidence = Column(Integer, nullable=True)
    partner_suggestions = Column(JSON, default=list, nullable=False)

    no_receipt_category_id = Column(String, nullable=True)
    no_receipt_category_template_id = Column(String, nullable=True)
    no_receipt_category_confidence = Column(Integer, nullable=True)
    no_receipt_category_matched_by = Column(String, nullable=True)
    category_suggestions = Column(JSON, default=list, nullable=False)

    file_ids = Column(JSON, default=list, nullable=False)
    is_complete = Column(Boolean, default=False, nullable=False)
    imported_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)
    version = Column(Integer, nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "dedupe_hash", name="uq_user_dedupe_hash"),)
    __mapper_args__ = {"version_id_col": version}

    source = relationship("Source", back_populates="transactions")


class Partner(Base):
    """User-scoped (user_id set) or global (user_id NULL) partner."""

    __tablename__ = "partners"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=True, index=True)
    name = Column(String, nullable=False)
    aliases = Column(JSON, default=list, nullable=False)
    vat_id = Column(String, nullable=True)
    ibans = Column(JSON, default=list, nullable=False)
    website = Column(String, nullable=True)
    email_domains = Column(JSON, default=list, nullable=False)
    learned_patterns = Column(JSON, default=list, nullable=False)
    manual_removals = Column(JSON, default=list, nullable=False)
    manual_file_removals = Column(JSON, default=list, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class NoReceiptCategory(Base):
    """Per-user instance of a no-receipt category template."""

    __tablename__ = "no_receipt_categories"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    template_id = Column(String, nullable=False)
    name = Column(String, nullable=False)
    matched_partner_ids = Column(JSON, default=list, nullable=False)
    learned_patterns = Column(JSON, default=list, nullable=False)
    manual_removals = Column(JSON, default=list, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    transaction_count = Column(Integer, default=0, nullable=False)
    version = Column(Integer, nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "template_id", name="uq_user_template"),)
    __mapper_args__ = {"version_id_col": version}


class File(Base):
    """Uploaded or e-mailed receipt with extraction results."""

    __tablename__ = "files"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    file_name = Column(String, nullable=False)
    mime_type = Column(String, nullable=True)
    extracted_amount = Column(Integer, nullable=True)
    extracted_currency = Column(String, nullable=True)
    extracted_date = Column(Date, nullable=True)
    extracted_partner = Column(String, nullable=True)
    extracted_vat_id = Column(String, nullable=True)
    extracted_iban = Column(String, nullable=True)
    extracted_website = Column(String, nullable=True)
    extracted_text = Column(String, nullable=True)
    extracted_issuer = Column(JSON, nullable=True)
    extracted_recipient = Column(JSON, nullable=True)
    extraction_complete = Column(Boolean, default=False, nullable=False)
    is_not_invoice = Column(Boolean, default=False, nullable=False)
    invoice_direction = Column(String, default="unknown", nullable=False)
    matched_user_account = Column(String, nullable=True)
    transaction_ids = Column(JSON, default=list, nullable=False)
    transaction_suggestions = Column(JSON, default=list, nullable=False)
    partner_id = Column(String, nullable=True)
    partner_type = Column(String, nullable=True)
    partner_matched_by = Column(String, nullable=True)
    partner_match_confidence = Column(Integer, nullable=True)
    partner_suggestions = Column(JSON, default=list, nullable=False)
    email_subject = Column(String, nullable=True)
    email_from = Column(String, nullable=True)
    email_text = Column(String, nullable=True)
    email_date = Column(Date, nullable=True)
    possible_invoice = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    engine = create_engine(database_url, echo=False)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
