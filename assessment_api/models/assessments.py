"""Assessment session Pydantic models."""
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from assessment_api.models.certificates import CertificateResponse


class EligibilityResponse(BaseModel):
    """Result of the eligibility gate."""

    scopeType: str
    scopeId: int
    canStart: bool
    reason: str | None = None
    retryAfterSeconds: int | None = None
    retryAt: datetime | None = None
    activeSessionId: str | None = None


class SessionQuestion(BaseModel):
    """Question as shown during a session (no correct answer)."""

    questionId: int
    position: int
    text: str
    options: list[str]
    selectedAnswer: int | None = None
    timeSpentSeconds: int = 0


class SessionResponse(BaseModel):
    """Current state of a session."""

    sessionId: str
    scopeType: str
    scopeId: int
    courseId: int
    status: str
    startedAt: datetime
    expiresAt: datetime
    finishedAt: datetime | None = None
    abandonReason: str | None = None
    remainingSeconds: int
    resumed: bool = False
    questions: list[SessionQuestion]


class AnswerRequest(BaseModel):
    """Answer for a single question slot; null clears it."""

    selectedAnswer: int | None = None
    timeSpentSeconds: int = Field(0, ge=0)


class AnswerResponse(BaseModel):
    sessionId: str
    questionId: int
    selectedAnswer: int | None = None
    timeSpentSeconds: int
    answeredAt: datetime | None = None


class SubmittedAnswer(BaseModel):
    questionId: int
    selectedAnswer: int | None = None
    timeSpentSeconds: int = Field(0, ge=0)


class SubmitRequest(BaseModel):
    """Optional full answer sequence; omit to grade the saved answers."""

    answers: list[SubmittedAnswer] | None = None


class ReviewItemResponse(BaseModel):
    questionId: int
    questionText: str
    options: list[str]
    selectedAnswer: int | None = None
    correctAnswer: int
    isCorrect: bool
    explanation: str | None = None


class SubmitResponse(BaseModel):
    """Graded result of a submitted session."""

    sessionId: str
    status: str
    score: int
    correctCount: int
    totalQuestions: int
    passed: bool
    passingScore: int
    courseCompleted: bool
    certificateStatus: str | None = None
    certificates: list[CertificateResponse] = Field(default_factory=list)
    review: list[ReviewItemResponse]


class AbandonRequest(BaseModel):
    reason: Literal["tab_hidden", "navigation", "user"] = "user"


class AbandonResponse(BaseModel):
    sessionId: str
    status: str
    abandonReason: str | None = None
    finishedAt: datetime | None = None


class AttemptResponse(BaseModel):
    """One attempt ledger entry."""

    id: int
    sessionId: str
    courseId: int
    scopeType: str
    scopeId: int
    attemptedAt: datetime
    outcome: str
    score: int | None = None
    correctCount: int
    totalQuestions: int
    passed: bool
    abandoned: bool


class SweepResponse(BaseModel):
    expired: int
    certificatesIssued: int
