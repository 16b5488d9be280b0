"""Course progress Pydantic models."""
from pydantic import BaseModel


class LessonCompleteResponse(BaseModel):
    lessonId: int
    courseId: int
    currentChapter: int
    currentLesson: int
    completedLessons: int
