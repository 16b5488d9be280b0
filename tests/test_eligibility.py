from datetime import timedelta

import pytest
from conftest import NOW, answers_for, complete_all_lessons, complete_chapter_lessons

from assessment_api.errors import NotEligible
from assessment_api.models.db.content import ScopeType
from assessment_api.services import session_service
from assessment_api.services.content_service import resolve_scope
from assessment_api.services.eligibility_service import check_eligibility


def test_chapter_test_requires_all_lessons(db, course, student) -> None:
    chapter = course.chapters[0]
    scope = resolve_scope(db, ScopeType.CHAPTER, chapter.id)

    result = check_eligibility(db, student, scope, now=NOW)
    assert not result.can_start
    assert "complete all lessons" in result.reason

    complete_chapter_lessons(db, student, chapter)
    assert check_eligibility(db, student, scope, now=NOW).can_start


def test_final_exam_requires_every_chapter_passed(db, course, student) -> None:
    complete_all_lessons(db, student, course)
    scope = resolve_scope(db, ScopeType.FINAL, course.id)

    result = check_eligibility(db, student, scope, now=NOW)
    assert not result.can_start
    assert result.reason == "You must pass all chapter tests before taking the final exam"


def test_running_session_blocks_with_its_id(db, course, student) -> None:
    chapter = course.chapters[0]
    complete_chapter_lessons(db, student, chapter)
    started = session_service.start_session(db, student, ScopeType.CHAPTER, chapter.id, now=NOW)

    scope = resolve_scope(db, ScopeType.CHAPTER, chapter.id)
    result = check_eligibility(db, student, scope, now=NOW + timedelta(minutes=1))
    assert not result.can_start
    assert result.active_session_id == started.session.id


def test_cooldown_boundary_after_failed_attempt(db, course, student) -> None:
    chapter = course.chapters[0]
    complete_chapter_lessons(db, student, chapter)
    started = session_service.start_session(db, student, ScopeType.CHAPTER, chapter.id, now=NOW)
    submitted_at = NOW + timedelta(minutes=5)
    session_service.submit_session(
        db, student, started.session.id, answers_for(started.session, correct=5), now=submitted_at
    )

    scope = resolve_scope(db, ScopeType.CHAPTER, chapter.id)

    blocked = check_eligibility(db, student, scope, now=submitted_at + timedelta(hours=1))
    assert not blocked.can_start
    assert blocked.reason == "Test is on cooldown"
    assert blocked.retry_after_seconds == 2 * 60 * 60
    assert blocked.retry_at == submitted_at + timedelta(hours=3)

    almost = check_eligibility(
        db, student, scope, now=submitted_at + timedelta(hours=3) - timedelta(milliseconds=300)
    )
    assert not almost.can_start
    assert almost.retry_after_seconds == 1

    assert check_eligibility(db, student, scope, now=submitted_at + timedelta(hours=3)).can_start


def test_unswept_expired_session_counts_as_failure(db, course, student) -> None:
    chapter = course.chapters[0]
    complete_chapter_lessons(db, student, chapter)
    started = session_service.start_session(db, student, ScopeType.CHAPTER, chapter.id, now=NOW)
    deadline = started.session.expires_at

    scope = resolve_scope(db, ScopeType.CHAPTER, chapter.id)
    result = check_eligibility(db, student, scope, now=deadline + timedelta(minutes=10))

    assert not result.can_start
    assert result.reason == "Test is on cooldown"
    # The gate never writes: the session is still marked active until someone expires it
    db.refresh(started.session)
    assert started.session.status == "active"


def test_passing_attempt_also_starts_cooldown(db, course, student) -> None:
    chapter = course.chapters[0]
    complete_chapter_lessons(db, student, chapter)
    started = session_service.start_session(db, student, ScopeType.CHAPTER, chapter.id, now=NOW)
    session_service.submit_session(
        db, student, started.session.id, answers_for(started.session), now=NOW + timedelta(minutes=5)
    )

    scope = resolve_scope(db, ScopeType.CHAPTER, chapter.id)
    result = check_eligibility(db, student, scope, now=NOW + timedelta(minutes=6))
    assert result.can_start is False
    assert result.reason == "Test is on cooldown"
    assert result.retry_after_seconds == 3 * 60 * 60 - 60

    with pytest.raises(NotEligible):
        session_service.start_session(
            db, student, ScopeType.CHAPTER, chapter.id, now=NOW + timedelta(minutes=6)
        )
