"""Eligibility gate for chapter tests and the final exam.

Read-only: it never expires sessions or writes progress, so it is safe to
call from dashboards as often as needed.
"""
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session as DbSession

from assessment_api.errors import NotEligible
from assessment_api.models.db.content import ScopeType
from assessment_api.models.db.session import AssessmentSession, live_session_clause
from assessment_api.models.db.user import User
from assessment_api.services import ledger_service, progress_service
from assessment_api.services.content_service import AssessmentScope, published_chapters
from assessment_api.utils.time_utils import seconds_until, utc_now


@dataclass
class EligibilityResult:
    """Outcome of the gate. reason is set whenever can_start is False."""

    can_start: bool
    reason: str | None = None
    retry_after_seconds: int | None = None
    retry_at: datetime | None = None
    active_session_id: str | None = None

    def raise_for_status(self) -> None:
        """Raise NotEligible if the gate is closed."""
        if not self.can_start:
            raise NotEligible(self.reason, self.retry_after_seconds, self.retry_at)


def find_live_session(
    db: DbSession, user_id: int, scope: AssessmentScope, now: datetime
) -> AssessmentSession | None:
    """Active session for the scope that is still within its deadline."""
    stmt = select(AssessmentSession).where(
        AssessmentSession.user_id == user_id,
        AssessmentSession.scope_type == scope.scope_type.value,
        AssessmentSession.scope_id == scope.scope_id,
        live_session_clause(now),
    )
    return db.execute(stmt).scalars().first()


def check_prerequisites(db: DbSession, user: User, scope: AssessmentScope) -> str | None:
    """Return the reason the prerequisites are unmet, or None."""
    progress = progress_service.find_progress(db, user.id, scope.course_id)
    completed = progress.completed_lesson_ids if progress else set()
    passed = progress.passed_chapter_ids if progress else set()

    if scope.scope_type == ScopeType.CHAPTER:
        lesson_ids = {lesson.id for lesson in scope.chapter.lessons}
        if not lesson_ids <= completed:
            return "You must complete all lessons in this chapter before taking the test"
        return None

    chapters = published_chapters(scope.course)
    if not all(lesson.id in completed for chapter in chapters for lesson in chapter.lessons):
        return "You must complete all lessons before taking the final exam"
    if not all(chapter.id in passed for chapter in chapters):
        return "You must pass all chapter tests before taking the final exam"
    return None


def check_eligibility(
    db: DbSession,
    user: User,
    scope: AssessmentScope,
    now: datetime | None = None,
) -> EligibilityResult:
    """
    Decide whether the user may start a new session for the scope.

    Checks in order: prerequisites, an already-running session, cooldown.
    """
    now = now or utc_now()

    reason = check_prerequisites(db, user, scope)
    if reason:
        return EligibilityResult(can_start=False, reason=reason)

    live = find_live_session(db, user.id, scope, now)
    if live is not None:
        return EligibilityResult(
            can_start=False,
            reason="You already have an active test session",
            active_session_id=live.id,
        )

    available_at = ledger_service.cooldown_until(db, user.id, scope, now)
    if available_at is not None:
        label = "Test" if scope.scope_type == ScopeType.CHAPTER else "Final exam"
        return EligibilityResult(
            can_start=False,
            reason=f"{label} is on cooldown",
            retry_after_seconds=seconds_until(available_at, now),
            retry_at=available_at,
        )

    return EligibilityResult(can_start=True)
