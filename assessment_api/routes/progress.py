"""Lesson completion and course progress endpoints."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session as DbSession

from assessment_api.database import get_db
from assessment_api.dependencies.auth import require_learner
from assessment_api.models.db.user import User
from assessment_api.models.progress import LessonCompleteResponse
from assessment_api.services import content_service, progress_service

router = APIRouter(prefix="/api", tags=["progress"])


@router.post("/lessons/{lesson_id}/complete", response_model=LessonCompleteResponse)
def complete_lesson(
    lesson_id: int,
    current_user: Annotated[User, Depends(require_learner)],
    db: Annotated[DbSession, Depends(get_db)],
) -> LessonCompleteResponse:
    """Mark a lesson completed. Repeated calls are harmless."""
    lesson = content_service.get_lesson(db, lesson_id)
    if lesson is None or not lesson.chapter.is_published or not lesson.chapter.course.is_published:
        raise HTTPException(status_code=404, detail="Lesson not found")

    progress = progress_service.mark_lesson_completed(db, current_user, lesson)
    return LessonCompleteResponse(
        lessonId=lesson.id,
        courseId=progress.course_id,
        currentChapter=progress.current_chapter_number,
        currentLesson=progress.current_lesson_number,
        completedLessons=len(progress.completed_lesson_ids),
    )


@router.get("/courses/{course_id}/progress")
def get_course_progress(
    course_id: int,
    current_user: Annotated[User, Depends(require_learner)],
    db: Annotated[DbSession, Depends(get_db)],
) -> dict[str, object]:
    """Detailed progress with the learner's next action."""
    course = content_service.get_course(db, course_id)
    if course is None or not course.is_published:
        raise HTTPException(status_code=404, detail="Course not found")
    return progress_service.build_progress_summary(db, current_user, course)
