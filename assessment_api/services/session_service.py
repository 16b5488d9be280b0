"""Service layer for timed assessment sessions.

Every state change is a conditional UPDATE on (status, expires_at), so
concurrent submit, abandon, expiry and sweep requests cannot both win and the
attempt ledger gets exactly one record per session.
"""
import logging
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session as DbSession

from assessment_api.config import SECONDS_PER_QUESTION, SESSION_BUFFER_SECONDS
from assessment_api.errors import (
    AlreadyActive,
    GradingInvariantViolation,
    RenderError,
    SessionExpired,
    SessionNotActive,
    SessionNotFound,
)
from assessment_api.models.db.certificate import Certificate
from assessment_api.models.db.content import ScopeType
from assessment_api.models.db.session import (
    AbandonReason,
    AssessmentSession,
    SessionAnswer,
    SessionStatus,
    live_session_clause,
    stale_session_clause,
)
from assessment_api.models.db.user import User
from assessment_api.services import certificate_service, ledger_service, question_bank
from assessment_api.services.certificate_renderer import (
    CertificateRenderer,
    get_certificate_renderer,
)
from assessment_api.services.content_service import AssessmentScope, resolve_scope
from assessment_api.services.eligibility_service import check_eligibility, find_live_session
from assessment_api.services.grading_service import GradingResult, grade_session
from assessment_api.services.notification_service import Notifier, get_notifier
from assessment_api.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

SWEEP_BATCH_SIZE = 200


@dataclass
class StartResult:
    session: AssessmentSession
    resumed: bool = False


@dataclass
class AnswerSubmission:
    """One entry of a full answer sequence sent with submit."""

    question_id: int
    selected_answer: int | None = None
    time_spent_seconds: int = 0


@dataclass
class SubmissionResult:
    session: AssessmentSession
    grading: GradingResult
    # None unless the submission passed a final exam
    certificate_status: str | None = None
    certificates: list[Certificate] = field(default_factory=list)


def session_duration(question_count: int) -> timedelta:
    """Hard time limit for a session with the given number of questions."""
    return timedelta(seconds=SECONDS_PER_QUESTION * question_count + SESSION_BUFFER_SECONDS)


def expire_if_stale(db: DbSession, session: AssessmentSession, now: datetime) -> bool:
    """
    Expire a session that is still active past its deadline.

    Returns True only for the caller whose update won; that caller writes the
    expired attempt, dated at the deadline so every detection path yields the
    same cooldown.
    """
    if not session.is_stale(now):
        return False

    result = db.execute(
        update(AssessmentSession)
        .where(AssessmentSession.id == session.id, stale_session_clause(now))
        .values(status=SessionStatus.EXPIRED.value, finished_at=session.expires_at)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        db.refresh(session)
        return False

    ledger_service.add_attempt(
        db, session, outcome=SessionStatus.EXPIRED, attempted_at=session.expires_at
    )
    db.commit()
    db.refresh(session)
    logger.info(
        f"Expired session {session.id} for user {session.user_id} "
        f"({session.scope_type} {session.scope_id})"
    )
    return True


def get_session(
    db: DbSession,
    user: User,
    session_id: str,
    now: datetime | None = None,
    allow_staff: bool = True,
) -> AssessmentSession:
    """
    Load a session for its owner (or staff), expiring it first if stale.

    Raises:
        SessionNotFound: Unknown id, or the session belongs to someone else.
    """
    now = now or utc_now()
    session = db.get(AssessmentSession, session_id)
    if session is None:
        raise SessionNotFound(session_id)
    if session.user_id != user.id and not (allow_staff and user.is_staff):
        raise SessionNotFound(session_id)

    expire_if_stale(db, session, now)
    return session


def _raise_unless_active(session: AssessmentSession) -> None:
    if session.status == SessionStatus.EXPIRED.value:
        raise SessionExpired(session.id)
    if not session.is_active:
        raise SessionNotActive(session.id, session.status)


def _raise_after_lost_update(db: DbSession, session: AssessmentSession, now: datetime) -> None:
    """A conditional update matched nothing: work out why and raise."""
    db.rollback()
    db.refresh(session)
    expire_if_stale(db, session, now)
    _raise_unless_active(session)
    raise SessionNotActive(session.id, session.status)


def _expire_stale_for_scope(
    db: DbSession, user_id: int, scope: AssessmentScope, now: datetime
) -> None:
    stmt = select(AssessmentSession).where(
        AssessmentSession.user_id == user_id,
        AssessmentSession.scope_type == scope.scope_type.value,
        AssessmentSession.scope_id == scope.scope_id,
        stale_session_clause(now),
    )
    for session in list(db.execute(stmt).scalars().all()):
        expire_if_stale(db, session, now)


def start_session(
    db: DbSession,
    user: User,
    scope_type: ScopeType | str,
    scope_id: int,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> StartResult:
    """
    Start a chapter test or final exam, or resume the one already running.

    Raises:
        ScopeNotFound: Unknown or unpublished chapter/course.
        NotEligible: Prerequisites unmet or cooldown running.
        QuestionBankError: Not enough questions for the scope.
        AlreadyActive: A concurrent request created the session first.
    """
    now = now or utc_now()
    scope = resolve_scope(db, scope_type, scope_id)

    _expire_stale_for_scope(db, user.id, scope, now)

    live = find_live_session(db, user.id, scope, now)
    if live is not None:
        logger.info(f"Resuming session {live.id} for user {user.id}")
        return StartResult(session=live, resumed=True)

    eligibility = check_eligibility(db, user, scope, now)
    if eligibility.active_session_id:
        raise AlreadyActive(eligibility.active_session_id)
    eligibility.raise_for_status()

    questions = question_bank.sample(
        db, scope.scope_id, scope.scope_type, scope.question_count, rng=rng
    )

    session = AssessmentSession(
        id=str(uuid.uuid4()),
        user_id=user.id,
        course_id=scope.course_id,
        scope_type=scope.scope_type.value,
        scope_id=scope.scope_id,
        started_at=now,
        expires_at=now + session_duration(len(questions)),
        last_activity_at=now,
        status=SessionStatus.ACTIVE.value,
    )
    session.question_ids = [question.id for question in questions]

    for position, question in enumerate(questions):
        slot = SessionAnswer(
            question_id=question.id,
            position=position,
            question_text=question.text,
            correct_option_index=question.correct_answer,
            explanation=question.explanation,
            difficulty=question.difficulty,
        )
        slot.options = question.options
        session.answers.append(slot)

    db.add(session)
    try:
        db.commit()
    except IntegrityError:
        # The partial unique index rejected a second active session
        db.rollback()
        winner = find_live_session(db, user.id, scope, now)
        logger.info(f"Concurrent start for user {user.id} lost to another request")
        raise AlreadyActive(winner.id if winner else None) from None

    db.refresh(session)
    logger.info(
        f"Started session {session.id} for user {user.id} "
        f"({scope.scope_type.value} {scope.scope_id}, {len(questions)} questions, "
        f"expires {session.expires_at.isoformat()})"
    )
    return StartResult(session=session, resumed=False)


def _find_slot(session: AssessmentSession, question_id: int) -> SessionAnswer:
    for slot in session.answers:
        if slot.question_id == question_id:
            return slot
    logger.error(f"Question {question_id} is not part of session {session.id}")
    raise GradingInvariantViolation(
        "Question is not part of this session", sessionId=session.id, questionId=question_id
    )


def _check_option(session: AssessmentSession, slot: SessionAnswer, selected: int | None) -> None:
    if selected is None:
        return
    if not 0 <= selected < len(slot.options):
        logger.error(
            f"Option {selected} out of range for question {slot.question_id} "
            f"in session {session.id}"
        )
        raise GradingInvariantViolation(
            "Selected option is out of range",
            sessionId=session.id,
            questionId=slot.question_id,
            selectedAnswer=selected,
        )


def record_answer(
    db: DbSession,
    user: User,
    session_id: str,
    question_id: int,
    selected_answer: int | None,
    time_spent_seconds: int = 0,
    now: datetime | None = None,
) -> SessionAnswer:
    """
    Save the answer for one question slot (last write wins).

    Raises:
        SessionExpired: The deadline has passed.
        SessionNotActive: The session is already submitted or abandoned.
        GradingInvariantViolation: Unknown question or option out of range.
    """
    now = now or utc_now()
    session = get_session(db, user, session_id, now, allow_staff=False)
    _raise_unless_active(session)

    slot = _find_slot(session, question_id)
    _check_option(session, slot, selected_answer)

    # Holds the row until commit, so a concurrent submit sees this answer or rejects it
    result = db.execute(
        update(AssessmentSession)
        .where(AssessmentSession.id == session.id, live_session_clause(now))
        .values(last_activity_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        _raise_after_lost_update(db, session, now)

    slot.selected_answer = selected_answer
    slot.time_spent_seconds = max(0, int(time_spent_seconds or 0))
    slot.answered_at = now
    db.commit()
    db.refresh(slot)
    return slot


def _validate_submission(
    session: AssessmentSession, answers: list[AnswerSubmission]
) -> None:
    submitted_ids = [answer.question_id for answer in answers]
    if len(set(submitted_ids)) != len(submitted_ids) or sorted(submitted_ids) != sorted(
        session.question_ids
    ):
        logger.error(
            f"Submitted answers for session {session.id} do not cover its questions exactly once"
        )
        raise GradingInvariantViolation(
            "Answers must contain exactly one entry per session question",
            sessionId=session.id,
            expected=len(session.question_ids),
            received=len(submitted_ids),
        )
    for answer in answers:
        _check_option(session, _find_slot(session, answer.question_id), answer.selected_answer)


def submit_session(
    db: DbSession,
    user: User,
    session_id: str,
    answers: list[AnswerSubmission] | None = None,
    now: datetime | None = None,
    renderer: CertificateRenderer | None = None,
    notifier: Notifier | None = None,
) -> SubmissionResult:
    """
    Submit a session, grade it and, for a passed final exam, issue certificates.

    Grading commits together with the status change. Certificate problems
    never fail the submission; they are reported as a pending status.

    Raises:
        SessionExpired: The deadline has passed.
        SessionNotActive: The session is already submitted or abandoned.
        GradingInvariantViolation: The answer sequence does not match the questions.
    """
    now = now or utc_now()
    session = get_session(db, user, session_id, now, allow_staff=False)
    _raise_unless_active(session)

    if answers is not None:
        _validate_submission(session, answers)

    scope = resolve_scope(db, session.scope_type, session.scope_id, published_only=False)

    result = db.execute(
        update(AssessmentSession)
        .where(AssessmentSession.id == session.id, live_session_clause(now))
        .values(
            status=SessionStatus.SUBMITTED.value,
            finished_at=now,
            last_activity_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        _raise_after_lost_update(db, session, now)

    try:
        if answers is not None:
            for answer in answers:
                slot = _find_slot(session, answer.question_id)
                slot.selected_answer = answer.selected_answer
                slot.time_spent_seconds = max(0, int(answer.time_spent_seconds or 0))
                slot.answered_at = now
        grading = grade_session(db, session, scope, now)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(session)
    logger.info(f"Submitted session {session.id} for user {user.id}")

    submission = SubmissionResult(session=session, grading=grading)
    if scope.scope_type == ScopeType.FINAL and grading.passed:
        _issue_after_submit(db, user, scope, submission, renderer, notifier, now)
    return submission


def _issue_after_submit(
    db: DbSession,
    user: User,
    scope: AssessmentScope,
    submission: SubmissionResult,
    renderer: CertificateRenderer | None,
    notifier: Notifier | None,
    now: datetime,
) -> None:
    try:
        issuance = certificate_service.issue_certificates(
            db,
            user,
            scope.course,
            renderer or get_certificate_renderer(),
            notifier or get_notifier(),
            now=now,
        )
    except (RenderError, SQLAlchemyError) as exc:
        db.rollback()
        logger.error(
            f"Certificate issuance failed after session {submission.session.id}, "
            f"left pending: {exc}"
        )
        submission.certificate_status = certificate_service.IssuanceStatus.PENDING
        return
    submission.certificate_status = issuance.status
    submission.certificates = issuance.certificates


def abandon_session(
    db: DbSession,
    user: User,
    session_id: str,
    reason: AbandonReason | str = AbandonReason.USER,
    now: datetime | None = None,
    as_admin: bool = False,
) -> AssessmentSession:
    """
    Abandon an active session. Irreversible; counts as a failed attempt.

    Learners abandon their own sessions; staff pass as_admin to abandon anyone's,
    which always records the admin reason.

    Raises:
        SessionExpired: The deadline had already passed (the session is expired instead).
        SessionNotActive: The session is already submitted or abandoned.
    """
    now = now or utc_now()
    reason = AbandonReason.ADMIN if as_admin else AbandonReason(reason)
    if reason == AbandonReason.ADMIN and not as_admin:
        raise ValueError("Only staff may abandon with the admin reason")

    session = get_session(db, user, session_id, now, allow_staff=as_admin)
    _raise_unless_active(session)

    result = db.execute(
        update(AssessmentSession)
        .where(AssessmentSession.id == session.id, live_session_clause(now))
        .values(
            status=SessionStatus.ABANDONED.value,
            finished_at=now,
            abandon_reason=reason.value,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        _raise_after_lost_update(db, session, now)

    ledger_service.add_attempt(db, session, outcome=SessionStatus.ABANDONED, attempted_at=now)
    db.commit()
    db.refresh(session)
    logger.info(
        f"Abandoned session {session.id} for user {session.user_id} "
        f"(reason={reason.value}, by user {user.id})"
    )
    return session


def expire_stale_sessions(
    db: DbSession, now: datetime | None = None, batch_size: int = SWEEP_BATCH_SIZE
) -> int:
    """Expire every stale session (up to batch_size). Returns how many this call expired."""
    now = now or utc_now()
    stmt = (
        select(AssessmentSession)
        .where(stale_session_clause(now))
        .order_by(AssessmentSession.expires_at)
        .limit(batch_size)
    )
    expired = 0
    for session in list(db.execute(stmt).scalars().all()):
        if expire_if_stale(db, session, now):
            expired += 1
    if expired:
        logger.info(f"Sweep expired {expired} stale sessions")
    return expired
