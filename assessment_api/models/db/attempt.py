"""
AttemptRecord database model: the append-only attempt ledger.
"""

from __future__ import annotations

from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from assessment_api.database import Base


class AttemptRecord(Base):
    """
    One row per terminal session (submitted, abandoned or expired).
    Drives cooldowns and best-score displays; never updated after insert.
    """

    __tablename__ = "attempt_records"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    course_id: Mapped[int] = mapped_column(
        ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    scope_type: Mapped[str] = mapped_column(String(20), nullable=False)
    scope_id: Mapped[int] = mapped_column(nullable=False)

    # unique: a session is recorded exactly once
    session_id: Mapped[str] = mapped_column(
        ForeignKey("assessment_sessions.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )

    attempted_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    outcome: Mapped[str] = mapped_column(String(20), nullable=False)

    # Results (score is None for abandoned and expired attempts)
    score: Mapped[int | None] = mapped_column(nullable=True)
    correct_count: Mapped[int] = mapped_column(default=0, nullable=False)
    total_questions: Mapped[int] = mapped_column(default=0, nullable=False)
    passed: Mapped[bool] = mapped_column(default=False, nullable=False)
    abandoned: Mapped[bool] = mapped_column(default=False, nullable=False)

    __table_args__ = (
        Index(
            "ix_attempt_records_scope",
            "user_id",
            "scope_type",
            "scope_id",
            "attempted_at",
        ),
    )
