"""
Course progress models.
"""

from __future__ import annotations

from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assessment_api.database import Base


class CourseProgress(Base):
    """
    Per user+course progress record.
    certificate_issued only flips to True once every certificate image exists.
    """

    __tablename__ = "course_progress"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    course_id: Mapped[int] = mapped_column(
        ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True
    )

    current_chapter_number: Mapped[int] = mapped_column(default=1, nullable=False)
    current_lesson_number: Mapped[int] = mapped_column(default=1, nullable=False)

    final_exam_best_score: Mapped[int | None] = mapped_column(nullable=True)
    course_completed: Mapped[bool] = mapped_column(default=False, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    certificate_issued: Mapped[bool] = mapped_column(default=False, nullable=False)
    certificate_issued_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )

    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_progress_user_course"),
    )

    completed_lessons: Mapped[list["LessonCompletion"]] = relationship(
        "LessonCompletion", back_populates="progress", cascade="all, delete-orphan"
    )
    passed_chapters: Mapped[list["ChapterPass"]] = relationship(
        "ChapterPass", back_populates="progress", cascade="all, delete-orphan"
    )

    @property
    def completed_lesson_ids(self) -> set[int]:
        return {item.lesson_id for item in self.completed_lessons}

    @property
    def passed_chapter_ids(self) -> set[int]:
        return {item.chapter_id for item in self.passed_chapters}


class LessonCompletion(Base):
    """A lesson the learner has completed."""

    __tablename__ = "lesson_completions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    progress_id: Mapped[int] = mapped_column(
        ForeignKey("course_progress.id", ondelete="CASCADE"), nullable=False, index=True
    )
    lesson_id: Mapped[int] = mapped_column(
        ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False
    )
    completed_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("progress_id", "lesson_id", name="uq_progress_lesson"),
    )

    progress: Mapped["CourseProgress"] = relationship(
        "CourseProgress", back_populates="completed_lessons"
    )


class ChapterPass(Base):
    """A chapter whose test the learner has passed (first passing attempt)."""

    __tablename__ = "chapter_passes"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    progress_id: Mapped[int] = mapped_column(
        ForeignKey("course_progress.id", ondelete="CASCADE"), nullable=False, index=True
    )
    chapter_id: Mapped[int] = mapped_column(
        ForeignKey("chapters.id", ondelete="CASCADE"), nullable=False
    )
    score: Mapped[int] = mapped_column(nullable=False)
    passed_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("progress_id", "chapter_id", name="uq_progress_chapter"),
    )

    progress: Mapped["CourseProgress"] = relationship(
        "CourseProgress", back_populates="passed_chapters"
    )
