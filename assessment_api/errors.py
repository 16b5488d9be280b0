"""Assessment error types.

Services raise these directly; each one is an HTTPException whose detail is a
dict with a stable ``code`` so clients can render a retry path.
"""
from datetime import datetime

from fastapi import HTTPException, status


class AssessmentError(HTTPException):
    """Base class for assessment engine failures."""

    code = "assessment_error"
    status_code_default = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **extra: object) -> None:
        detail = {"code": self.code, "message": message}
        detail.update({key: value for key, value in extra.items() if value is not None})
        super().__init__(status_code=self.status_code_default, detail=detail)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class NotEligible(AssessmentError):
    """Prerequisite or cooldown unmet."""

    code = "not_eligible"
    status_code_default = status.HTTP_403_FORBIDDEN

    def __init__(
        self,
        reason: str,
        retry_after_seconds: int | None = None,
        retry_at: datetime | None = None,
    ) -> None:
        super().__init__(
            reason,
            retryAfterSeconds=retry_after_seconds,
            retryAt=retry_at.isoformat() if retry_at else None,
        )
        self.reason = reason
        self.retry_after_seconds = retry_after_seconds
        self.retry_at = retry_at
        if retry_after_seconds:
            self.headers = {"Retry-After": str(retry_after_seconds)}


class AlreadyActive(AssessmentError):
    """Lost a concurrent start; the client should resume the winner."""

    code = "already_active"
    status_code_default = status.HTTP_409_CONFLICT

    def __init__(self, session_id: str | None = None) -> None:
        super().__init__("An active session already exists for this assessment", sessionId=session_id)
        self.session_id = session_id


class SessionNotFound(AssessmentError):
    code = "session_not_found"
    status_code_default = status.HTTP_404_NOT_FOUND

    def __init__(self, session_id: str) -> None:
        super().__init__("Session not found", sessionId=session_id)


class SessionNotActive(AssessmentError):
    """Session already reached a terminal state."""

    code = "session_not_active"
    status_code_default = status.HTTP_409_CONFLICT

    def __init__(self, session_id: str, session_status: str) -> None:
        super().__init__(
            f"Session is {session_status}", sessionId=session_id, status=session_status
        )
        self.session_status = session_status


class SessionExpired(AssessmentError):
    """Session deadline passed; it can no longer be answered or submitted."""

    code = "session_expired"
    status_code_default = status.HTTP_410_GONE

    def __init__(self, session_id: str) -> None:
        super().__init__("Session time limit has passed", sessionId=session_id)


class GradingInvariantViolation(AssessmentError):
    """Client answers do not match the frozen question set."""

    code = "grading_invariant_violation"
    status_code_default = status.HTTP_422_UNPROCESSABLE_ENTITY


class QuestionBankError(AssessmentError):
    """Not enough questions to build a session."""

    code = "question_bank_unavailable"
    status_code_default = status.HTTP_503_SERVICE_UNAVAILABLE


class ScopeNotFound(AssessmentError):
    code = "scope_not_found"
    status_code_default = status.HTTP_404_NOT_FOUND


class RenderError(Exception):
    """Certificate renderer failed (template, asset or upload problem). Retryable."""


class NotifyError(Exception):
    """Notification delivery failed. Never rolls anything back."""
