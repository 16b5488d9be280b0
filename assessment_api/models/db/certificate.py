"""
Certificate database model.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from assessment_api.database import Base


class CertificateKind(str, enum.Enum):
    """Kinds of certificate a course can award."""

    MAIN = "main"
    COMPLIANCE = "compliance"  # Only when the course defines a compliance title


class Certificate(Base):
    """
    Issued certificate. Number and verification code are minted once per
    (user, course, kind) and never change; image_url stays NULL until the
    renderer succeeds.
    """

    __tablename__ = "certificates"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    course_id: Mapped[int] = mapped_column(
        ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    certificate_number: Mapped[str] = mapped_column(
        String(32), unique=True, index=True, nullable=False
    )
    verification_code: Mapped[str] = mapped_column(
        String(16), unique=True, index=True, nullable=False
    )

    # Data printed on the certificate
    user_name: Mapped[str] = mapped_column(String(100), nullable=False)
    user_email: Mapped[str] = mapped_column(String(255), nullable=False)
    course_title: Mapped[str] = mapped_column(String(200), nullable=False)
    completion_date: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False
    )
    score: Mapped[int] = mapped_column(nullable=False)
    issued_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # Rendering
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    render_claimed_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", "kind", name="uq_certificate_user_kind"),
    )

    @property
    def is_rendered(self) -> bool:
        return self.image_url is not None
