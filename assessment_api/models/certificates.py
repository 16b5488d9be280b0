"""Certificate Pydantic models."""
from datetime import datetime

from pydantic import BaseModel, Field

from assessment_api.models.db.certificate import Certificate


class CertificateResponse(BaseModel):
    """One issued (or pending) certificate."""

    kind: str
    certificateNumber: str
    verificationCode: str
    userName: str
    courseTitle: str
    completionDate: datetime
    score: int
    issuedAt: datetime
    imageUrl: str | None = None

    @classmethod
    def from_certificate(cls, certificate: Certificate) -> "CertificateResponse":
        return cls(
            kind=certificate.kind,
            certificateNumber=certificate.certificate_number,
            verificationCode=certificate.verification_code,
            userName=certificate.user_name,
            courseTitle=certificate.course_title,
            completionDate=certificate.completion_date,
            score=certificate.score,
            issuedAt=certificate.issued_at,
            imageUrl=certificate.image_url,
        )


class CertificateListResponse(BaseModel):
    courseId: int
    certificateIssued: bool
    certificates: list[CertificateResponse]


class CertificateIssueResponse(BaseModel):
    """Outcome of an issuance retry: issued, pending or not_eligible."""

    status: str
    certificates: list[CertificateResponse] = Field(default_factory=list)


class CertificateVerifyResponse(BaseModel):
    valid: bool
    certificate: CertificateResponse | None = None
