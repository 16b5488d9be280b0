"""Administrative endpoints for sessions and the attempt ledger."""
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session as DbSession

from assessment_api.database import get_db
from assessment_api.dependencies.auth import require_staff
from assessment_api.models.assessments import AbandonResponse, AttemptResponse, SweepResponse
from assessment_api.models.db.content import ScopeType
from assessment_api.models.db.user import User
from assessment_api.routes.sessions import abandon_view
from assessment_api.services import certificate_service, ledger_service, session_service
from assessment_api.services.certificate_renderer import (
    CertificateRenderer,
    get_certificate_renderer,
)
from assessment_api.services.notification_service import Notifier, get_notifier

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/sessions/{session_id}/abandon", response_model=AbandonResponse)
def admin_abandon_session(
    session_id: str,
    current_user: Annotated[User, Depends(require_staff)],
    db: Annotated[DbSession, Depends(get_db)],
) -> AbandonResponse:
    """Abandon any learner's session."""
    session = session_service.abandon_session(
        db, current_user, session_id, as_admin=True
    )
    return abandon_view(session)


@router.post("/sessions/sweep", response_model=SweepResponse)
def sweep_sessions(
    current_user: Annotated[User, Depends(require_staff)],
    db: Annotated[DbSession, Depends(get_db)],
    renderer: Annotated[CertificateRenderer, Depends(get_certificate_renderer)],
    notifier: Annotated[Notifier, Depends(get_notifier)],
) -> SweepResponse:
    """Run the stale-session sweep and certificate retry now."""
    expired = session_service.expire_stale_sessions(db)
    issued = certificate_service.retry_pending_certificates(db, renderer, notifier)
    return SweepResponse(expired=expired, certificatesIssued=issued)


@router.get("/users/{user_id}/attempts", response_model=list[AttemptResponse])
def list_user_attempts(
    user_id: int,
    current_user: Annotated[User, Depends(require_staff)],
    db: Annotated[DbSession, Depends(get_db)],
    course_id: Annotated[int | None, Query(alias="courseId")] = None,
    scope_type: Annotated[ScopeType | None, Query(alias="scopeType")] = None,
    scope_id: Annotated[int | None, Query(alias="scopeId")] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[AttemptResponse]:
    """Attempt ledger for a learner, newest first."""
    records = ledger_service.list_attempts(
        db, user_id, course_id, scope_type, scope_id, limit=limit, offset=offset
    )
    return [
        AttemptResponse(
            id=record.id,
            sessionId=record.session_id,
            courseId=record.course_id,
            scopeType=record.scope_type,
            scopeId=record.scope_id,
            attemptedAt=record.attempted_at,
            outcome=record.outcome,
            score=record.score,
            correctCount=record.correct_count,
            totalQuestions=record.total_questions,
            passed=record.passed,
            abandoned=record.abandoned,
        )
        for record in records
    ]
