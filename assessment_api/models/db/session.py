"""
AssessmentSession and SessionAnswer database models.

A session is one timed sitting of a chapter test or final exam. Its question
set is frozen at creation: every slot keeps a snapshot of the question so
grading never depends on later edits to the bank.
"""

from __future__ import annotations

import enum
import json
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint, and_
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assessment_api.database import Base
from assessment_api.utils.time_utils import as_utc

if TYPE_CHECKING:
    from assessment_api.models.db.user import User


class SessionStatus(str, enum.Enum):
    """Lifecycle state of an assessment session. Everything but ACTIVE is terminal."""

    ACTIVE = "active"
    SUBMITTED = "submitted"
    ABANDONED = "abandoned"
    EXPIRED = "expired"


class AbandonReason(str, enum.Enum):
    """Why a session was abandoned."""

    TAB_HIDDEN = "tab_hidden"
    NAVIGATION = "navigation"
    USER = "user"
    ADMIN = "admin"


class AssessmentSession(Base):
    """
    Timed assessment session record.
    At most one ACTIVE row may exist per (user, scope_type, scope_id).
    """

    __tablename__ = "assessment_sessions"

    # Primary key - UUID string
    id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)

    # References
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    course_id: Mapped[int] = mapped_column(
        ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    scope_type: Mapped[str] = mapped_column(String(20), nullable=False)
    scope_id: Mapped[int] = mapped_column(nullable=False)

    # Frozen question order (list of question ids)
    question_ids_json: Mapped[str] = mapped_column(Text, nullable=False)

    # Timing
    started_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, index=True
    )
    last_activity_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    finished_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )

    # Status
    status: Mapped[str] = mapped_column(
        String(20), default=SessionStatus.ACTIVE.value, nullable=False, index=True
    )
    abandon_reason: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Relationships
    user: Mapped["User"] = relationship("User", foreign_keys=[user_id])
    answers: Mapped[list["SessionAnswer"]] = relationship(
        "SessionAnswer",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="SessionAnswer.position",
    )

    __table_args__ = (
        Index(
            "uq_active_session_per_scope",
            "user_id",
            "scope_type",
            "scope_id",
            unique=True,
            sqlite_where=sa.text("status = 'active'"),
            postgresql_where=sa.text("status = 'active'"),
        ),
    )

    @property
    def question_ids(self) -> list[int]:
        """Parse frozen question order from JSON."""
        try:
            return json.loads(self.question_ids_json)
        except (json.JSONDecodeError, TypeError):
            return []

    @question_ids.setter
    def question_ids(self, value: list[int]) -> None:
        """Serialize frozen question order to JSON."""
        self.question_ids_json = json.dumps(list(value))

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE.value

    def is_stale(self, now: datetime) -> bool:
        """Still marked active but past its hard deadline."""
        return self.is_active and as_utc(now) >= as_utc(self.expires_at)


def stale_session_clause(now: datetime):
    """
    SQL form of AssessmentSession.is_stale. The lazy check and the sweep both
    use it so they can never disagree about which sessions are expired.
    """
    return and_(
        AssessmentSession.status == SessionStatus.ACTIVE.value,
        AssessmentSession.expires_at <= now,
    )


def live_session_clause(now: datetime):
    """Active and still within its deadline."""
    return and_(
        AssessmentSession.status == SessionStatus.ACTIVE.value,
        AssessmentSession.expires_at > now,
    )


class SessionAnswer(Base):
    """
    One answer slot within a session.
    Stores the selected option plus a snapshot of the question for grading and review.
    """

    __tablename__ = "session_answers"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("assessment_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Question reference
    question_id: Mapped[int] = mapped_column(nullable=False)
    position: Mapped[int] = mapped_column(nullable=False)  # Order shown in session

    # Answer data
    selected_answer: Mapped[int | None] = mapped_column(nullable=True)  # Option index
    time_spent_seconds: Mapped[int] = mapped_column(default=0, nullable=False)
    answered_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )

    # Question snapshot (frozen at session start)
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    options_json: Mapped[str] = mapped_column(Text, nullable=False)
    correct_option_index: Mapped[int] = mapped_column(nullable=False)
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    difficulty: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Constraints
    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_session_question"),
    )

    # Relationships
    session: Mapped["AssessmentSession"] = relationship(
        "AssessmentSession", back_populates="answers"
    )

    @property
    def options(self) -> list[Any]:
        """Parse options from JSON."""
        try:
            return json.loads(self.options_json)
        except (json.JSONDecodeError, TypeError):
            return []

    @options.setter
    def options(self, value: list[Any] | None) -> None:
        """Serialize options to JSON."""
        self.options_json = json.dumps(value or [], ensure_ascii=False)

    @property
    def is_correct(self) -> bool:
        return (
            self.selected_answer is not None
            and self.selected_answer == self.correct_option_index
        )
