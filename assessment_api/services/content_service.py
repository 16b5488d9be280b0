"""Service layer for course content: scope lookup and course import."""
import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session as DbSession, selectinload

from assessment_api.config import (
    CHAPTER_TEST_COOLDOWN_HOURS,
    CHAPTER_TEST_PASSING_SCORE,
    CHAPTER_TEST_QUESTION_COUNT,
    FINAL_EXAM_COOLDOWN_HOURS,
    FINAL_EXAM_PASSING_SCORE,
    FINAL_EXAM_QUESTION_COUNT,
)
from assessment_api.errors import ScopeNotFound
from assessment_api.models.db.content import Chapter, Course, Lesson, Question, ScopeType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssessmentScope:
    """Resolved chapter test or final exam with its effective settings."""

    scope_type: ScopeType
    scope_id: int
    course: Course
    chapter: Chapter | None
    question_count: int
    passing_score: int
    cooldown: timedelta

    @property
    def course_id(self) -> int:
        return self.course.id


def parse_scope_type(value: str) -> ScopeType:
    """Parse scope type from a path parameter."""
    try:
        return ScopeType(value)
    except ValueError:
        raise ScopeNotFound(f"Unknown assessment type: {value}") from None


def get_course(db: DbSession, course_id: int) -> Course | None:
    """Get course with chapters and lessons loaded."""
    stmt = (
        select(Course)
        .options(selectinload(Course.chapters).selectinload(Chapter.lessons))
        .where(Course.id == course_id)
    )
    return db.execute(stmt).scalar_one_or_none()


def get_chapter(db: DbSession, chapter_id: int) -> Chapter | None:
    """Get chapter with lessons and course loaded."""
    stmt = (
        select(Chapter)
        .options(selectinload(Chapter.lessons), selectinload(Chapter.course))
        .where(Chapter.id == chapter_id)
    )
    return db.execute(stmt).scalar_one_or_none()


def get_lesson(db: DbSession, lesson_id: int) -> Lesson | None:
    """Get lesson by ID."""
    return db.get(Lesson, lesson_id)


def resolve_scope(
    db: DbSession,
    scope_type: ScopeType | str,
    scope_id: int,
    published_only: bool = True,
) -> AssessmentScope:
    """
    Resolve a chapter test or final exam.

    Sessions already running are graded against unpublished content too,
    so submit passes published_only=False.

    Raises:
        ScopeNotFound: If the chapter or course does not exist, or is
            unpublished while published_only is set.
    """
    scope_type = ScopeType(scope_type)

    if scope_type == ScopeType.CHAPTER:
        chapter = get_chapter(db, scope_id)
        if chapter is None or (published_only and not chapter.is_published):
            raise ScopeNotFound("Chapter not found")
        if published_only and not chapter.course.is_published:
            raise ScopeNotFound("Course not found")
        return AssessmentScope(
            scope_type=scope_type,
            scope_id=chapter.id,
            course=chapter.course,
            chapter=chapter,
            question_count=chapter.test_question_count or CHAPTER_TEST_QUESTION_COUNT,
            passing_score=_pick(chapter.test_passing_score, CHAPTER_TEST_PASSING_SCORE),
            cooldown=timedelta(
                hours=_pick(chapter.test_cooldown_hours, CHAPTER_TEST_COOLDOWN_HOURS)
            ),
        )

    course = get_course(db, scope_id)
    if course is None or (published_only and not course.is_published):
        raise ScopeNotFound("Course not found")
    return AssessmentScope(
        scope_type=scope_type,
        scope_id=course.id,
        course=course,
        chapter=None,
        question_count=course.exam_question_count or FINAL_EXAM_QUESTION_COUNT,
        passing_score=_pick(course.exam_passing_score, FINAL_EXAM_PASSING_SCORE),
        cooldown=timedelta(hours=_pick(course.exam_cooldown_hours, FINAL_EXAM_COOLDOWN_HOURS)),
    )


def _pick(override: int | None, default: int) -> int:
    # 0 is a valid override (no cooldown), so test for None explicitly
    return default if override is None else override


def import_course(db: DbSession, payload: dict[str, object]) -> Course:
    """
    Create a course from a JSON payload.

    Expected shape::

        {
          "title": "...",
          "complianceCertificateTitle": "...",        # optional
          "finalExam": {"questionCount": 50, "passingScore": 80,
                        "cooldownHours": 24, "questions": [...]},
          "chapters": [
            {"title": "...", "lessons": ["Lesson title", ...],
             "test": {"questionCount": 20, "passingScore": 70,
                      "cooldownHours": 3, "questions": [...]}}
          ]
        }

    Each question is {"text", "options": [4 strings], "correctAnswer": index,
    "explanation"?, "difficulty"?}.
    """
    title = payload.get("title")
    if not isinstance(title, str) or not title.strip():
        raise ValueError("Course title is required")

    final_exam = _section(payload.get("finalExam"), "finalExam")
    course = Course(
        title=title.strip(),
        compliance_certificate_title=payload.get("complianceCertificateTitle"),
        exam_question_count=final_exam.get("questionCount"),
        exam_passing_score=final_exam.get("passingScore"),
        exam_cooldown_hours=final_exam.get("cooldownHours"),
    )
    db.add(course)
    db.flush()

    chapters = _entries(payload.get("chapters"), "chapters")
    for chapter_number, chapter_data in enumerate(chapters, start=1):
        if not isinstance(chapter_data, dict):
            raise ValueError(f"Chapter {chapter_number} must be an object")
        test = _section(chapter_data.get("test"), f"Chapter {chapter_number} test")
        chapter = Chapter(
            course_id=course.id,
            chapter_number=chapter_number,
            title=chapter_data.get("title") or f"Chapter {chapter_number}",
            test_question_count=test.get("questionCount"),
            test_passing_score=test.get("passingScore"),
            test_cooldown_hours=test.get("cooldownHours"),
        )
        db.add(chapter)
        db.flush()

        lessons = _entries(chapter_data.get("lessons"), f"Chapter {chapter_number} lessons")
        for lesson_number, lesson_title in enumerate(lessons, start=1):
            if not isinstance(lesson_title, str):
                raise ValueError(f"Chapter {chapter_number} lesson titles must be strings")
            db.add(Lesson(chapter_id=chapter.id, lesson_number=lesson_number, title=lesson_title))

        questions = _entries(test.get("questions"), f"Chapter {chapter_number} questions")
        _add_questions(db, ScopeType.CHAPTER, chapter.id, questions)

    questions = _entries(final_exam.get("questions"), "finalExam questions")
    _add_questions(db, ScopeType.FINAL, course.id, questions)

    db.commit()
    db.refresh(course)
    logger.info(f"Imported course {course.id} '{course.title}' with {len(chapters)} chapters")
    return course


def _section(value: object, name: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{name} must be an object")
    return value


def _entries(value: object, name: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{name} must be a list")
    return value


def _add_questions(
    db: DbSession, scope_type: ScopeType, scope_id: int, questions: list[object]
) -> None:
    for item in questions:
        if not isinstance(item, dict):
            raise ValueError("Each question must be an object")
        options = item.get("options")
        if not isinstance(options, list) or len(options) != 4:
            raise ValueError("A question must have exactly 4 options")
        correct = item.get("correctAnswer")
        if not isinstance(correct, int) or not 0 <= correct < len(options):
            raise ValueError("correctAnswer must be an option index between 0 and 3")

        question = Question(
            scope_type=scope_type.value,
            scope_id=scope_id,
            text=str(item.get("text", "")),
            correct_answer=correct,
            explanation=item.get("explanation"),
            difficulty=item.get("difficulty"),
        )
        question.options = [str(option) for option in options]
        db.add(question)


def published_chapters(course: Course) -> list[Chapter]:
    """Chapters that count towards prerequisites and progress, in order."""
    return [chapter for chapter in course.chapters if chapter.is_published]
