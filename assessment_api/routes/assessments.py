"""Eligibility and session start for chapter tests and final exams."""
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session as DbSession

from assessment_api.database import get_db
from assessment_api.dependencies.auth import require_learner
from assessment_api.models.assessments import EligibilityResponse, SessionResponse
from assessment_api.models.db.user import User
from assessment_api.routes.sessions import session_view
from assessment_api.services import session_service
from assessment_api.services.content_service import parse_scope_type, resolve_scope
from assessment_api.services.eligibility_service import check_eligibility

router = APIRouter(prefix="/api/assessments/{scope_type}/{scope_id}", tags=["assessments"])


@router.get("/eligibility", response_model=EligibilityResponse)
def get_eligibility(
    scope_type: str,
    scope_id: int,
    current_user: Annotated[User, Depends(require_learner)],
    db: Annotated[DbSession, Depends(get_db)],
) -> EligibilityResponse:
    """Whether the learner may start this assessment now, and if not, why."""
    scope = resolve_scope(db, parse_scope_type(scope_type), scope_id)
    result = check_eligibility(db, current_user, scope)
    return EligibilityResponse(
        scopeType=scope.scope_type.value,
        scopeId=scope.scope_id,
        canStart=result.can_start,
        reason=result.reason,
        retryAfterSeconds=result.retry_after_seconds,
        retryAt=result.retry_at,
        activeSessionId=result.active_session_id,
    )


@router.post("/sessions", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
def start_session(
    scope_type: str,
    scope_id: int,
    response: Response,
    current_user: Annotated[User, Depends(require_learner)],
    db: Annotated[DbSession, Depends(get_db)],
) -> SessionResponse:
    """Start a session, or resume the running one (200 instead of 201)."""
    result = session_service.start_session(
        db, current_user, parse_scope_type(scope_type), scope_id
    )
    if result.resumed:
        response.status_code = status.HTTP_200_OK
    return session_view(result.session, resumed=result.resumed)
