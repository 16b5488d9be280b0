from datetime import timedelta

from conftest import NOW, answers_for, complete_chapter_lessons

from assessment_api.models.db.content import ScopeType
from assessment_api.services import progress_service, session_service


def test_lesson_completion_is_idempotent(db, course, student) -> None:
    lesson = course.chapters[0].lessons[0]

    progress_service.mark_lesson_completed(db, student, lesson, now=NOW)
    progress = progress_service.mark_lesson_completed(db, student, lesson, now=NOW)

    assert progress.completed_lesson_ids == {lesson.id}
    assert progress.current_chapter_number == 1
    assert progress.current_lesson_number == 2


def test_summary_next_action_walks_the_course(db, course, student) -> None:
    summary = progress_service.build_progress_summary(db, student, course, now=NOW)
    assert summary["nextAction"]["type"] == "lesson"
    assert summary["nextAction"]["lessonNumber"] == 1

    chapter = course.chapters[0]
    complete_chapter_lessons(db, student, chapter)
    summary = progress_service.build_progress_summary(db, student, course, now=NOW)
    assert summary["nextAction"] == {
        "type": "chapter-test",
        "chapterNumber": 1,
        "message": "Take Chapter 1 Test",
    }
    assert summary["chapters"][0]["allLessonsCompleted"]


def test_summary_reports_attempts_and_cooldown(db, course, student) -> None:
    chapter = course.chapters[0]
    complete_chapter_lessons(db, student, chapter)
    session = session_service.start_session(
        db, student, ScopeType.CHAPTER, chapter.id, now=NOW
    ).session
    session_service.submit_session(
        db, student, session.id, answers_for(session, correct=10), now=NOW + timedelta(minutes=5)
    )

    summary = progress_service.build_progress_summary(
        db, student, course, now=NOW + timedelta(minutes=5)
    )
    first = summary["chapters"][0]

    assert first["testAttempts"] == 1
    assert first["testBestScore"] == 50
    assert not first["testPassed"]
    assert first["retryAfterSeconds"] == 3 * 60 * 60
    assert summary["finalExam"]["attempts"] == []
    assert not summary["courseCompleted"]
