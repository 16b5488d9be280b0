"""Attempt ledger: append-only attempt records and the cooldowns derived from them."""
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session as DbSession

from assessment_api.models.db.attempt import AttemptRecord
from assessment_api.models.db.content import ScopeType
from assessment_api.models.db.session import (
    AssessmentSession,
    SessionStatus,
    stale_session_clause,
)
from assessment_api.services.content_service import AssessmentScope
from assessment_api.utils.time_utils import as_utc


def add_attempt(
    db: DbSession,
    session: AssessmentSession,
    outcome: SessionStatus,
    attempted_at: datetime,
    score: int | None = None,
    correct_count: int = 0,
    total_questions: int = 0,
    passed: bool = False,
) -> AttemptRecord:
    """
    Append the attempt for a session that just reached a terminal state.
    Abandoned and expired attempts carry no score and count as failures.
    Does not commit; the caller commits together with the status transition.
    """
    record = AttemptRecord(
        user_id=session.user_id,
        course_id=session.course_id,
        scope_type=session.scope_type,
        scope_id=session.scope_id,
        session_id=session.id,
        attempted_at=attempted_at,
        outcome=outcome.value,
        score=score,
        correct_count=correct_count,
        total_questions=total_questions or len(session.question_ids),
        passed=passed,
        abandoned=outcome in (SessionStatus.ABANDONED, SessionStatus.EXPIRED),
    )
    db.add(record)
    return record


def list_attempts(
    db: DbSession,
    user_id: int,
    course_id: int | None = None,
    scope_type: ScopeType | None = None,
    scope_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[AttemptRecord]:
    """Get attempts for a user, newest first, optionally filtered by course or scope."""
    query = select(AttemptRecord).where(AttemptRecord.user_id == user_id)

    if course_id is not None:
        query = query.where(AttemptRecord.course_id == course_id)
    if scope_type is not None:
        query = query.where(AttemptRecord.scope_type == ScopeType(scope_type).value)
    if scope_id is not None:
        query = query.where(AttemptRecord.scope_id == scope_id)

    query = (
        query.order_by(AttemptRecord.attempted_at.desc(), AttemptRecord.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(db.execute(query).scalars().all())


def count_attempts(
    db: DbSession, user_id: int, scope_type: ScopeType, scope_id: int
) -> int:
    """Count attempts for one scope."""
    query = select(func.count(AttemptRecord.id)).where(
        AttemptRecord.user_id == user_id,
        AttemptRecord.scope_type == ScopeType(scope_type).value,
        AttemptRecord.scope_id == scope_id,
    )
    return db.execute(query).scalar() or 0


def count_session_attempts(db: DbSession, session_id: str) -> int:
    """Number of ledger entries for a session (0 while active, 1 afterwards)."""
    query = select(func.count(AttemptRecord.id)).where(AttemptRecord.session_id == session_id)
    return db.execute(query).scalar() or 0


def best_score(db: DbSession, user_id: int, scope_type: ScopeType, scope_id: int) -> int | None:
    """Highest graded score for a scope, or None if never graded."""
    query = select(func.max(AttemptRecord.score)).where(
        AttemptRecord.user_id == user_id,
        AttemptRecord.scope_type == ScopeType(scope_type).value,
        AttemptRecord.scope_id == scope_id,
    )
    return db.execute(query).scalar()


def latest_attempt(
    db: DbSession, user_id: int, scope_type: ScopeType, scope_id: int
) -> AttemptRecord | None:
    """Most recent graded, abandoned or expired attempt for a scope."""
    query = (
        select(AttemptRecord)
        .where(
            AttemptRecord.user_id == user_id,
            AttemptRecord.scope_type == ScopeType(scope_type).value,
            AttemptRecord.scope_id == scope_id,
        )
        .order_by(AttemptRecord.attempted_at.desc(), AttemptRecord.id.desc())
        .limit(1)
    )
    return db.execute(query).scalars().first()


def cooldown_until(
    db: DbSession, user_id: int, scope: AssessmentScope, now: datetime
) -> datetime | None:
    """
    When the user may next start this scope, or None if no cooldown applies.

    A session still marked active but past its deadline counts as an expired
    attempt at its expires_at, so the answer does not depend on whether the
    sweep has run yet.
    """
    last_attempt_at: datetime | None = None

    record = latest_attempt(db, user_id, scope.scope_type, scope.scope_id)
    if record is not None:
        last_attempt_at = as_utc(record.attempted_at)

    stale_deadline = db.execute(
        select(func.max(AssessmentSession.expires_at)).where(
            AssessmentSession.user_id == user_id,
            AssessmentSession.scope_type == scope.scope_type.value,
            AssessmentSession.scope_id == scope.scope_id,
            stale_session_clause(now),
        )
    ).scalar()
    if stale_deadline is not None:
        stale_deadline = as_utc(stale_deadline)
        if last_attempt_at is None or stale_deadline > last_attempt_at:
            last_attempt_at = stale_deadline

    if last_attempt_at is None:
        return None

    available_at = last_attempt_at + scope.cooldown
    if available_at <= as_utc(now):
        return None
    return available_at
