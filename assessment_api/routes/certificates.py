"""Certificate listing, issuance retry and public verification."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session as DbSession

from assessment_api.database import get_db
from assessment_api.dependencies.auth import require_learner
from assessment_api.models.certificates import (
    CertificateIssueResponse,
    CertificateListResponse,
    CertificateResponse,
    CertificateVerifyResponse,
)
from assessment_api.models.db.user import User
from assessment_api.services import certificate_service, content_service, progress_service
from assessment_api.services.certificate_renderer import (
    CertificateRenderer,
    get_certificate_renderer,
)
from assessment_api.services.notification_service import Notifier, get_notifier

router = APIRouter(prefix="/api", tags=["certificates"])


@router.get("/courses/{course_id}/certificates", response_model=CertificateListResponse)
def list_course_certificates(
    course_id: int,
    current_user: Annotated[User, Depends(require_learner)],
    db: Annotated[DbSession, Depends(get_db)],
) -> CertificateListResponse:
    """The learner's certificates for a course."""
    progress = progress_service.find_progress(db, current_user.id, course_id)
    certificates = certificate_service.list_certificates(db, current_user.id, course_id)
    return CertificateListResponse(
        courseId=course_id,
        certificateIssued=bool(progress and progress.certificate_issued),
        certificates=[CertificateResponse.from_certificate(item) for item in certificates],
    )


@router.post("/courses/{course_id}/certificates/issue", response_model=CertificateIssueResponse)
def issue_course_certificates(
    course_id: int,
    current_user: Annotated[User, Depends(require_learner)],
    db: Annotated[DbSession, Depends(get_db)],
    renderer: Annotated[CertificateRenderer, Depends(get_certificate_renderer)],
    notifier: Annotated[Notifier, Depends(get_notifier)],
) -> CertificateIssueResponse:
    """Issue certificates for a completed course, retrying a pending render."""
    course = content_service.get_course(db, course_id)
    if course is None:
        raise HTTPException(status_code=404, detail="Course not found")

    result = certificate_service.issue_certificates(db, current_user, course, renderer, notifier)
    if result.status == certificate_service.IssuanceStatus.NOT_ELIGIBLE:
        raise HTTPException(status_code=403, detail="Pass the final exam to earn certificates")
    return CertificateIssueResponse(
        status=result.status,
        certificates=[CertificateResponse.from_certificate(item) for item in result.certificates],
    )


@router.get("/certificates/verify", response_model=CertificateVerifyResponse)
def verify_certificate(
    db: Annotated[DbSession, Depends(get_db)],
    certificate_number: Annotated[str, Query(alias="certificateNumber", min_length=1)],
    verification_code: Annotated[str, Query(alias="verificationCode", min_length=1)],
) -> CertificateVerifyResponse:
    """Public certificate verification."""
    certificate = certificate_service.verify_certificate(db, certificate_number, verification_code)
    if certificate is None:
        return CertificateVerifyResponse(valid=False)
    return CertificateVerifyResponse(
        valid=True, certificate=CertificateResponse.from_certificate(certificate)
    )
