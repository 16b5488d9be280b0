"""Assessment session endpoints: view, answer, submit, abandon."""
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session as DbSession

from assessment_api.database import get_db
from assessment_api.dependencies.auth import get_current_user, require_learner
from assessment_api.models.assessments import (
    AbandonRequest,
    AbandonResponse,
    AnswerRequest,
    AnswerResponse,
    ReviewItemResponse,
    SessionQuestion,
    SessionResponse,
    SubmitRequest,
    SubmitResponse,
)
from assessment_api.models.certificates import CertificateResponse
from assessment_api.models.db.session import AssessmentSession
from assessment_api.models.db.user import User
from assessment_api.services import session_service
from assessment_api.services.certificate_renderer import (
    CertificateRenderer,
    get_certificate_renderer,
)
from assessment_api.services.notification_service import Notifier, get_notifier
from assessment_api.utils.time_utils import seconds_until, utc_now

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


def session_view(session: AssessmentSession, resumed: bool = False) -> SessionResponse:
    """Session payload without correct answers."""
    return SessionResponse(
        sessionId=session.id,
        scopeType=session.scope_type,
        scopeId=session.scope_id,
        courseId=session.course_id,
        status=session.status,
        startedAt=session.started_at,
        expiresAt=session.expires_at,
        finishedAt=session.finished_at,
        abandonReason=session.abandon_reason,
        remainingSeconds=seconds_until(session.expires_at, utc_now()) if session.is_active else 0,
        resumed=resumed,
        questions=[
            SessionQuestion(
                questionId=slot.question_id,
                position=slot.position,
                text=slot.question_text,
                options=slot.options,
                selectedAnswer=slot.selected_answer,
                timeSpentSeconds=slot.time_spent_seconds,
            )
            for slot in session.answers
        ],
    )


def abandon_view(session: AssessmentSession) -> AbandonResponse:
    return AbandonResponse(
        sessionId=session.id,
        status=session.status,
        abandonReason=session.abandon_reason,
        finishedAt=session.finished_at,
    )


@router.get("/{session_id}", response_model=SessionResponse)
def get_session(
    session_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[DbSession, Depends(get_db)],
) -> SessionResponse:
    """Current session state. A session past its deadline is expired on read."""
    session = session_service.get_session(db, current_user, session_id)
    return session_view(session)


@router.put("/{session_id}/answers/{question_id}", response_model=AnswerResponse)
def record_answer(
    session_id: str,
    question_id: int,
    payload: AnswerRequest,
    current_user: Annotated[User, Depends(require_learner)],
    db: Annotated[DbSession, Depends(get_db)],
) -> AnswerResponse:
    """Save the answer for one question."""
    slot = session_service.record_answer(
        db,
        current_user,
        session_id,
        question_id,
        payload.selectedAnswer,
        payload.timeSpentSeconds,
    )
    return AnswerResponse(
        sessionId=session_id,
        questionId=slot.question_id,
        selectedAnswer=slot.selected_answer,
        timeSpentSeconds=slot.time_spent_seconds,
        answeredAt=slot.answered_at,
    )


@router.post("/{session_id}/submit", response_model=SubmitResponse)
def submit_session(
    session_id: str,
    current_user: Annotated[User, Depends(require_learner)],
    db: Annotated[DbSession, Depends(get_db)],
    renderer: Annotated[CertificateRenderer, Depends(get_certificate_renderer)],
    notifier: Annotated[Notifier, Depends(get_notifier)],
    payload: SubmitRequest | None = None,
) -> SubmitResponse:
    """Submit and grade a session."""
    answers = None
    if payload is not None and payload.answers is not None:
        answers = [
            session_service.AnswerSubmission(
                question_id=item.questionId,
                selected_answer=item.selectedAnswer,
                time_spent_seconds=item.timeSpentSeconds,
            )
            for item in payload.answers
        ]

    result = session_service.submit_session(
        db, current_user, session_id, answers, renderer=renderer, notifier=notifier
    )
    grading = result.grading
    return SubmitResponse(
        sessionId=result.session.id,
        status=result.session.status,
        score=grading.score,
        correctCount=grading.correct_count,
        totalQuestions=grading.total_questions,
        passed=grading.passed,
        passingScore=grading.passing_score,
        courseCompleted=grading.course_completed,
        certificateStatus=result.certificate_status,
        certificates=[
            CertificateResponse.from_certificate(certificate)
            for certificate in result.certificates
        ],
        review=[
            ReviewItemResponse(
                questionId=item.question_id,
                questionText=item.question_text,
                options=item.options,
                selectedAnswer=item.selected_answer,
                correctAnswer=item.correct_answer,
                isCorrect=item.is_correct,
                explanation=item.explanation,
            )
            for item in grading.review
        ],
    )


@router.post("/{session_id}/abandon", response_model=AbandonResponse)
def abandon_session(
    session_id: str,
    current_user: Annotated[User, Depends(require_learner)],
    db: Annotated[DbSession, Depends(get_db)],
    payload: AbandonRequest | None = None,
) -> AbandonResponse:
    """Abandon a session (tab hidden, navigation away, or by choice)."""
    reason = payload.reason if payload is not None else "user"
    session = session_service.abandon_session(db, current_user, session_id, reason)
    return abandon_view(session)
