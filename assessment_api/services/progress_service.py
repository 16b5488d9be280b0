"""Course progress: lesson completion, chapter passes and the progress overview."""
import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DbSession, selectinload

from assessment_api.models.db.content import Chapter, Course, Lesson, ScopeType
from assessment_api.models.db.progress import ChapterPass, CourseProgress, LessonCompletion
from assessment_api.models.db.user import User
from assessment_api.services import ledger_service
from assessment_api.services.content_service import published_chapters, resolve_scope
from assessment_api.utils.time_utils import seconds_until, utc_now

logger = logging.getLogger(__name__)


def find_progress(db: DbSession, user_id: int, course_id: int) -> CourseProgress | None:
    """Get progress record with completions loaded, without creating one."""
    stmt = (
        select(CourseProgress)
        .options(
            selectinload(CourseProgress.completed_lessons),
            selectinload(CourseProgress.passed_chapters),
        )
        .where(CourseProgress.user_id == user_id, CourseProgress.course_id == course_id)
    )
    return db.execute(stmt).scalar_one_or_none()


def ensure_progress(db: DbSession, user_id: int, course_id: int) -> CourseProgress:
    """Get or add a progress record inside the caller's transaction (no commit)."""
    progress = find_progress(db, user_id, course_id)
    if progress:
        return progress

    progress = CourseProgress(user_id=user_id, course_id=course_id)
    db.add(progress)
    db.flush()
    return progress


def get_or_create_progress(db: DbSession, user_id: int, course_id: int) -> CourseProgress:
    """Get existing progress or create and commit a new one."""
    progress = find_progress(db, user_id, course_id)
    if progress:
        return progress

    progress = CourseProgress(user_id=user_id, course_id=course_id)
    db.add(progress)
    try:
        db.commit()
    except IntegrityError:
        # Created concurrently by another request
        db.rollback()
        return find_progress(db, user_id, course_id)
    return find_progress(db, user_id, course_id)


def mark_lesson_completed(
    db: DbSession, user: User, lesson: Lesson, now: datetime | None = None
) -> CourseProgress:
    """Record a completed lesson (idempotent) and move the progress pointers."""
    now = now or utc_now()
    chapter = lesson.chapter
    course = chapter.course
    progress = get_or_create_progress(db, user.id, course.id)

    if lesson.id not in progress.completed_lesson_ids:
        progress.completed_lessons.append(
            LessonCompletion(lesson_id=lesson.id, completed_at=now)
        )
        advance_pointers(progress, course)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
        else:
            logger.info(f"User {user.id} completed lesson {lesson.id}")
        progress = find_progress(db, user.id, course.id)

    return progress


def record_chapter_pass(
    db: DbSession,
    progress: CourseProgress,
    chapter: Chapter,
    score: int,
    now: datetime,
) -> bool:
    """Mark a chapter test passed (first pass wins). Does not commit."""
    if chapter.id in progress.passed_chapter_ids:
        return False
    progress.passed_chapters.append(
        ChapterPass(chapter_id=chapter.id, score=score, passed_at=now)
    )
    advance_pointers(progress, chapter.course)
    return True


def advance_pointers(progress: CourseProgress, course: Course) -> None:
    """Point current chapter/lesson at the first unfinished item of the course."""
    completed = progress.completed_lesson_ids
    passed = progress.passed_chapter_ids

    for chapter in published_chapters(course):
        for lesson in chapter.lessons:
            if lesson.id not in completed:
                progress.current_chapter_number = chapter.chapter_number
                progress.current_lesson_number = lesson.lesson_number
                return
        if chapter.id not in passed:
            progress.current_chapter_number = chapter.chapter_number
            progress.current_lesson_number = len(chapter.lessons) + 1
            return

    chapters = published_chapters(course)
    if chapters:
        last = chapters[-1]
        progress.current_chapter_number = last.chapter_number
        progress.current_lesson_number = len(last.lessons) + 1


def build_progress_summary(
    db: DbSession, user: User, course: Course, now: datetime | None = None
) -> dict[str, object]:
    """Detailed progress overview with the learner's next action."""
    now = now or utc_now()
    progress = find_progress(db, user.id, course.id)
    completed = progress.completed_lesson_ids if progress else set()
    passed = progress.passed_chapter_ids if progress else set()

    chapters_progress = []
    for chapter in published_chapters(course):
        lessons = [
            {
                "lessonId": lesson.id,
                "lessonNumber": lesson.lesson_number,
                "title": lesson.title,
                "completed": lesson.id in completed,
            }
            for lesson in chapter.lessons
        ]
        scope = resolve_scope(db, ScopeType.CHAPTER, chapter.id)
        available_at = ledger_service.cooldown_until(db, user.id, scope, now)
        chapters_progress.append(
            {
                "chapterId": chapter.id,
                "chapterNumber": chapter.chapter_number,
                "title": chapter.title,
                "totalLessons": len(lessons),
                "completedLessons": sum(1 for item in lessons if item["completed"]),
                "allLessonsCompleted": all(item["completed"] for item in lessons),
                "testPassed": chapter.id in passed,
                "testAttempts": ledger_service.count_attempts(
                    db, user.id, ScopeType.CHAPTER, chapter.id
                ),
                "testBestScore": ledger_service.best_score(
                    db, user.id, ScopeType.CHAPTER, chapter.id
                ),
                "retryAfterSeconds": seconds_until(available_at, now) if available_at else 0,
                "lessons": lessons,
            }
        )

    final_attempts = ledger_service.list_attempts(
        db, user.id, scope_type=ScopeType.FINAL, scope_id=course.id
    )
    final_scope = resolve_scope(db, ScopeType.FINAL, course.id)
    final_available_at = ledger_service.cooldown_until(db, user.id, final_scope, now)
    final_passed = any(attempt.passed for attempt in final_attempts)

    return {
        "courseId": course.id,
        "courseTitle": course.title,
        "currentChapter": progress.current_chapter_number if progress else 1,
        "currentLesson": progress.current_lesson_number if progress else 1,
        "courseCompleted": bool(progress and progress.course_completed),
        "completedAt": progress.completed_at if progress else None,
        "certificateIssued": bool(progress and progress.certificate_issued),
        "chapters": chapters_progress,
        "finalExam": {
            "attempts": [
                {
                    "score": attempt.score,
                    "passed": attempt.passed,
                    "outcome": attempt.outcome,
                    "attemptedAt": attempt.attempted_at,
                }
                for attempt in final_attempts
            ],
            "passed": final_passed,
            "bestScore": progress.final_exam_best_score if progress else None,
            "retryAfterSeconds": (
                seconds_until(final_available_at, now) if final_available_at else 0
            ),
        },
        "nextAction": _next_action(chapters_progress, final_passed),
    }


def _next_action(chapters: list[dict[str, object]], final_passed: bool) -> dict[str, object]:
    for chapter in chapters:
        next_lesson = next((item for item in chapter["lessons"] if not item["completed"]), None)
        if next_lesson:
            return {
                "type": "lesson",
                "chapterNumber": chapter["chapterNumber"],
                "lessonNumber": next_lesson["lessonNumber"],
                "message": f"Continue with Lesson {next_lesson['lessonNumber']}: {next_lesson['title']}",
            }
        if not chapter["testPassed"]:
            return {
                "type": "chapter-test",
                "chapterNumber": chapter["chapterNumber"],
                "message": f"Take Chapter {chapter['chapterNumber']} Test",
            }

    if final_passed:
        return {"type": "completed", "message": "Congratulations! You've completed the course."}
    return {"type": "final-exam", "message": "Take the Final Exam to earn your certificates"}
