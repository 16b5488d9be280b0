"""Pydantic models."""
from assessment_api.models.assessments import (
    AbandonRequest,
    AbandonResponse,
    AnswerRequest,
    AnswerResponse,
    AttemptResponse,
    EligibilityResponse,
    ReviewItemResponse,
    SessionQuestion,
    SessionResponse,
    SubmitRequest,
    SubmitResponse,
    SubmittedAnswer,
    SweepResponse,
)
from assessment_api.models.auth import TokenResponse, UserLogin, UserRegister, UserResponse
from assessment_api.models.certificates import (
    CertificateIssueResponse,
    CertificateListResponse,
    CertificateResponse,
    CertificateVerifyResponse,
)
from assessment_api.models.progress import LessonCompleteResponse

__all__ = [
    "AbandonRequest",
    "AbandonResponse",
    "AnswerRequest",
    "AnswerResponse",
    "AttemptResponse",
    "CertificateIssueResponse",
    "CertificateListResponse",
    "CertificateResponse",
    "CertificateVerifyResponse",
    "EligibilityResponse",
    "LessonCompleteResponse",
    "ReviewItemResponse",
    "SessionQuestion",
    "SessionResponse",
    "SubmitRequest",
    "SubmitResponse",
    "SubmittedAnswer",
    "SweepResponse",
    "TokenResponse",
    "UserLogin",
    "UserRegister",
    "UserResponse",
]
