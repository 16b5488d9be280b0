"""Database models."""
from assessment_api.models.db.user import User, UserRole
from assessment_api.models.db.content import Chapter, Course, Lesson, Question, ScopeType
from assessment_api.models.db.session import (
    AbandonReason,
    AssessmentSession,
    SessionAnswer,
    SessionStatus,
)
from assessment_api.models.db.attempt import AttemptRecord
from assessment_api.models.db.progress import ChapterPass, CourseProgress, LessonCompletion
from assessment_api.models.db.certificate import Certificate, CertificateKind

__all__ = [
    "User",
    "UserRole",
    "Chapter",
    "Course",
    "Lesson",
    "Question",
    "ScopeType",
    "AbandonReason",
    "AssessmentSession",
    "SessionAnswer",
    "SessionStatus",
    "AttemptRecord",
    "ChapterPass",
    "CourseProgress",
    "LessonCompletion",
    "Certificate",
    "CertificateKind",
]
