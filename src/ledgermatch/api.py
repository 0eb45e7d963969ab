"""HTTP entry points.

Thin wrappers around the matching services:

- ``POST /score-files`` scores attachment candidates against one transaction
  without persisting anything.
- ``POST /apply-patterns`` runs the bulk pattern pass over the calling
  user's transactions.

The acting user is taken from the ``X-User-Id`` header; authentication
happens in front of this service.
"""

import logging
from datetime import date
from typing import Iterator, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ledgermatch.config import get_settings
from ledgermatch.context import OperationsContext
from ledgermatch.database.base import Repository
from ledgermatch.database.factories import create_sqlite_repository
from ledgermatch.domain.attachment_scoring import AttachmentCandidate, score_attachments
from ledgermatch.domain.category_matching import CategoryMatchingService
from ledgermatch.domain.entities import Partner, Transaction
from ledgermatch.domain.errors import DomainError, NotFoundError
from ledgermatch.domain.pattern_learning import PatternLearningService

logger = logging.getLogger(__name__)

router = APIRouter()


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AttachmentIn(CamelModel):
    key: str
    filename: Optional[str] = None
    mime_type: Optional[str] = None
    amount: Optional[int] = Field(None, description="Amount in cents")
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

    def to_candidate(self) -> AttachmentCandidate:
        return AttachmentCandidate(**self.model_dump())


class TransactionIn(CamelModel):
    id: str = "request"
    date: date
    amount: int = Field(..., description="Signed amount in cents")
    currency: str = "EUR"
    name: str = ""
    reference: Optional[str] = None
    partner: Optional[str] = None
    partner_iban: Optional[str] = None

    def to_entity(self, user_id: str) -> Transaction:
        return Transaction(
            id=self.id,
            user_id=user_id,
            source_id="",
            date=self.date,
            amount=self.amount,
            currency=self.currency.upper(),
            name=self.name,
            reference=self.reference,
            partner=self.partner,
            partner_iban=self.partner_iban,
        )


class PartnerIn(CamelModel):
    id: str = "request"
    name: str
    aliases: list[str] = []
    vat_id: Optional[str] = None
    ibans: list[str] = []
    website: Optional[str] = None
    email_domains: list[str] = []

    def to_entity(self, user_id: str) -> Partner:
        return Partner(
            id=self.id,
            name=self.name,
            user_id=user_id,
            aliases=tuple(self.aliases),
            vat_id=self.vat_id,
            ibans=tuple(self.ibans),
            website=self.website,
            email_domains=tuple(self.email_domains),
        )


class ScoreFilesRequest(CamelModel):
    attachments: list[AttachmentIn]
    transaction: TransactionIn
    partner: Optional[PartnerIn] = None


class ScoredAttachmentOut(CamelModel):
    key: str
    score: int
    label: Optional[str] = None
    reasons: list[str] = []


class ScoreFilesResponse(CamelModel):
    scores: list[ScoredAttachmentOut]


class ApplyPatternsResponse(CamelModel):
    processed: int
    matched: int
    failed: int = 0
    truncated: bool = False


def get_repository() -> Iterator[Repository]:
    """Request-scoped repository. Tests override this dependency."""
    repo = create_sqlite_repository(database_path=get_settings().db_path)
    repo.connect()
    try:
        yield repo
    finally:
        repo.disconnect()


def get_user_id(x_user_id: str = Header(..., alias="X-User-Id")) -> str:
    if not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing user id")
    return x_user_id.strip()


def get_operations_context(
    repo: Repository = Depends(get_repository),
    user_id: str = Depends(get_user_id),
) -> OperationsContext:
    return OperationsContext(repo=repo, user_id=user_id, settings=get_settings())


def _http_error(error: DomainError) -> HTTPException:
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))


@router.post("/score-files", response_model=ScoreFilesResponse, response_model_by_alias=True)
def score_files(request: ScoreFilesRequest, user_id: str = Depends(get_user_id)):
    """Score attachment candidates against a transaction. Nothing is stored."""
    transaction = request.transaction.to_entity(user_id)
    partner = request.partner.to_entity(user_id) if request.partner else None
    scored = score_attachments(
        [a.to_candidate() for a in request.attachments], transaction, partner, get_settings()
    )
    logger.debug("Scored %d attachments for user %s", len(scored), user_id)
    return ScoreFilesResponse(
        scores=[
            ScoredAttachmentOut(key=s.key, score=s.score, label=s.label, reasons=list(s.reasons))
            for s in scored
        ]
    )


@router.post("/apply-patterns", response_model=ApplyPatternsResponse)
def apply_patterns(ops: OperationsContext = Depends(get_operations_context)):
    """Apply learned partner patterns to all of the user's unassigned transactions."""
    try:
        result = PatternLearningService(ops).apply_patterns()
        if result.matched:
            CategoryMatchingService(ops).apply_category_patterns()
    except DomainError as e:
        raise _http_error(e)
    return ApplyPatternsResponse(
        processed=result.processed,
        matched=result.matched,
        failed=result.failed,
        truncated=result.truncated,
    )


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    app = FastAPI(
        title="ledgermatch",
        description="Matching engine for bank transactions, receipts and partners",
        version="0.1.0",
    )
    app.include_router(router, tags=["Matching"])
    return app
