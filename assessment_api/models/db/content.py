"""
Course content models: courses, chapters, lessons and the question bank.

Content is edited elsewhere; the assessment engine only reads it.
"""

from __future__ import annotations

import enum
import json
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assessment_api.database import Base


class ScopeType(str, enum.Enum):
    """What an assessment is bound to."""

    CHAPTER = "chapter"  # chapter test, scope_id is a chapter id
    FINAL = "final"  # final exam, scope_id is a course id


class Course(Base):
    """A course with its final exam settings."""

    __tablename__ = "courses"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    is_published: Mapped[bool] = mapped_column(default=True, nullable=False)

    # Second certificate issued alongside the main one, if configured
    compliance_certificate_title: Mapped[str | None] = mapped_column(
        String(200), nullable=True
    )

    # Final exam overrides; None falls back to config defaults
    exam_question_count: Mapped[int | None] = mapped_column(nullable=True)
    exam_passing_score: Mapped[int | None] = mapped_column(nullable=True)
    exam_cooldown_hours: Mapped[int | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    chapters: Mapped[list["Chapter"]] = relationship(
        "Chapter",
        back_populates="course",
        cascade="all, delete-orphan",
        order_by="Chapter.chapter_number",
    )


class Chapter(Base):
    """A chapter and its chapter test settings."""

    __tablename__ = "chapters"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    course_id: Mapped[int] = mapped_column(
        ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    chapter_number: Mapped[int] = mapped_column(nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    is_published: Mapped[bool] = mapped_column(default=True, nullable=False)

    # Chapter test overrides; None falls back to config defaults
    test_question_count: Mapped[int | None] = mapped_column(nullable=True)
    test_passing_score: Mapped[int | None] = mapped_column(nullable=True)
    test_cooldown_hours: Mapped[int | None] = mapped_column(nullable=True)

    course: Mapped["Course"] = relationship("Course", back_populates="chapters")
    lessons: Mapped[list["Lesson"]] = relationship(
        "Lesson",
        back_populates="chapter",
        cascade="all, delete-orphan",
        order_by="Lesson.lesson_number",
    )


class Lesson(Base):
    """A lesson; completing every lesson unlocks the chapter test."""

    __tablename__ = "lessons"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    chapter_id: Mapped[int] = mapped_column(
        ForeignKey("chapters.id", ondelete="CASCADE"), nullable=False, index=True
    )
    lesson_number: Mapped[int] = mapped_column(nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)

    chapter: Mapped["Chapter"] = relationship("Chapter", back_populates="lessons")


class Question(Base):
    """
    Multiple-choice question in a chapter test or final exam pool.
    correct_answer is an index into options.
    """

    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    scope_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    scope_id: Mapped[int] = mapped_column(nullable=False, index=True)

    text: Mapped[str] = mapped_column(Text, nullable=False)
    options_json: Mapped[str] = mapped_column(Text, nullable=False)
    correct_answer: Mapped[int] = mapped_column(nullable=False)
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    difficulty: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    @property
    def options(self) -> list[str]:
        """Parse options from JSON."""
        try:
            return json.loads(self.options_json)
        except (json.JSONDecodeError, TypeError):
            return []

    @options.setter
    def options(self, value: list[str]) -> None:
        """Serialize options to JSON."""
        self.options_json = json.dumps(value, ensure_ascii=False)
