"""
Temporary storage for import sessions.

An uploaded CSV is parsed once; the resulting plan is kept in memory
with TTL expiration while the operator reviews it, then executed.
Single-process only: sessions do not survive a restart.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional
import structlog

from config import settings
from exceptions import ImportInProgressError, ImportSessionNotFoundError
from models.imports import (
    ImportProgressResponse,
    ImportResultResponse,
    ImportSessionResponse,
    ProductDraftResponse,
    ProposedCategoryResponse,
)
from services.reconciliation_service import ReconciliationPlan

logger = structlog.get_logger(__name__)


@dataclass
class ImportSession:
    """One uploaded CSV under review."""
    session_id: str
    business_id: str
    user_id: Optional[str]
    plan: ReconciliationPlan
    preview: list[dict] = field(default_factory=list)
    expires_at: datetime = field(default_factory=datetime.now)

    running: bool = False
    phase: Optional[str] = None
    completed: int = 0
    total: int = 0
    last_result: Optional[ImportResultResponse] = None

    def ensure_idle(self) -> None:
        """Raise ImportInProgressError while an import is writing this plan."""
        if self.running:
            raise ImportInProgressError(self.session_id)

    def start(self) -> None:
        self.ensure_idle()
        self.running = True
        self.phase = None
        self.completed = 0
        self.total = 0

    def finish(self, result: Optional[ImportResultResponse]) -> None:
        self.running = False
        if result is not None:
            self.last_result = result

    def report_progress(self, phase: str, completed: int, total: int) -> None:
        self.phase = phase
        self.completed = completed
        self.total = total

    def to_response(self) -> ImportSessionResponse:
        plan = self.plan
        return ImportSessionResponse(
            session_id=self.session_id,
            business_id=self.business_id,
            preview=self.preview,
            products=[
                ProductDraftResponse.from_draft(i, p)
                for i, p in enumerate(plan.products)
            ],
            proposed_categories=[
                ProposedCategoryResponse(
                    key=p.key,
                    label=p.label,
                    name=p.name,
                    slug=p.slug,
                    path=p.path,
                    parent_existing_id=p.parent_existing_id,
                    parent_key=p.parent_key,
                    depth=p.depth,
                    create=plan.choices.get(p.key, False),
                )
                for p in plan.proposals
            ],
            summary=plan.summary(),
        )

    def progress(self) -> ImportProgressResponse:
        return ImportProgressResponse(
            session_id=self.session_id,
            running=self.running,
            completed=self.completed,
            total=self.total,
            phase=self.phase,
        )


_sessions: dict[str, ImportSession] = {}


def create_session(
    plan: ReconciliationPlan,
    business_id: str,
    user_id: Optional[str] = None,
    preview: Optional[list[dict]] = None,
    ttl_minutes: Optional[int] = None,
) -> ImportSession:
    """Store a plan, return its session."""
    ttl = ttl_minutes or settings.import_session_ttl_minutes
    session = ImportSession(
        session_id=str(uuid.uuid4()),
        business_id=business_id,
        user_id=user_id,
        plan=plan,
        preview=preview or [],
        expires_at=datetime.now() + timedelta(minutes=ttl),
    )
    _sessions[session.session_id] = session
    _cleanup_expired()

    logger.info(
        "import_session_created",
        session_id=session.session_id,
        business_id=business_id,
        products=len(plan.products)
    )
    return session


def get_session(session_id: str) -> ImportSession:
    """
    Retrieve a live session.

    Raises:
        ImportSessionNotFoundError: If expired or not found
    """
    session = _sessions.get(session_id)
    if session is None:
        raise ImportSessionNotFoundError(session_id)
    # A running import keeps its session alive
    if datetime.now() > session.expires_at and not session.running:
        del _sessions[session_id]
        raise ImportSessionNotFoundError(session_id)
    return session


def delete_session(session_id: str) -> None:
    """Remove session after import or cancel."""
    session = _sessions.get(session_id)
    if session is not None:
        session.ensure_idle()
    _sessions.pop(session_id, None)


def clear_sessions() -> None:
    _sessions.clear()


def _cleanup_expired() -> None:
    """Remove all expired idle sessions."""
    now = datetime.now()
    expired = [k for k, s in _sessions.items() if now > s.expires_at and not s.running]
    for k in expired:
        del _sessions[k]
