"""User database model."""
from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from assessment_api.database import Base


class UserRole(str, enum.Enum):
    """Roles issued by the identity layer."""

    USER = "User"
    STUDENT = "Student"
    ADMIN = "Admin"
    SUPERVISOR = "SuperVisor"


# Roles allowed to sit chapter tests and the final exam
LEARNER_ROLES = {UserRole.STUDENT.value, UserRole.ADMIN.value, UserRole.SUPERVISOR.value}
# Roles allowed to act on other learners' sessions
STAFF_ROLES = {UserRole.ADMIN.value, UserRole.SUPERVISOR.value}


class User(Base):
    """User model for authentication."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), default=UserRole.USER.value, nullable=False
    )
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    @property
    def is_learner(self) -> bool:
        return self.role in LEARNER_ROLES

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
