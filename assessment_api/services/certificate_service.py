"""Certificate issuance, lookup and verification.

Issuance is idempotent per (user, course, kind):
- the certificate row (and so its number and verification code) is minted at
  most once, guarded by a unique constraint;
- each image is rendered under a short claim so concurrent retries do not
  render the same certificate twice;
- certificate_issued flips with a conditional update once every image exists,
  and only the request that flips it notifies the learner.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DbSession

from assessment_api.config import CERTIFICATE_RENDER_LEASE_SECONDS
from assessment_api.errors import NotifyError, RenderError
from assessment_api.models.db.certificate import Certificate, CertificateKind
from assessment_api.models.db.content import Course
from assessment_api.models.db.progress import CourseProgress
from assessment_api.models.db.user import User
from assessment_api.services import progress_service
from assessment_api.services.certificate_renderer import CertificateData, CertificateRenderer
from assessment_api.services.notification_service import Notifier
from assessment_api.utils.codes import generate_certificate_number, generate_verification_code
from assessment_api.utils.time_utils import as_utc, utc_now

logger = logging.getLogger(__name__)

MINT_ATTEMPTS = 3


class IssuanceStatus:
    ISSUED = "issued"
    PENDING = "pending"
    NOT_ELIGIBLE = "not_eligible"


@dataclass
class IssuanceResult:
    status: str
    certificates: list[Certificate] = field(default_factory=list)
    newly_issued: bool = False


def certificate_kinds(course: Course) -> list[tuple[CertificateKind, str]]:
    """Certificate kinds the course awards, with the title printed on each."""
    kinds = [(CertificateKind.MAIN, course.title)]
    if course.compliance_certificate_title:
        kinds.append((CertificateKind.COMPLIANCE, course.compliance_certificate_title))
    return kinds


def list_certificates(db: DbSession, user_id: int, course_id: int) -> list[Certificate]:
    """Certificates of a user for a course, main first."""
    stmt = (
        select(Certificate)
        .where(Certificate.user_id == user_id, Certificate.course_id == course_id)
        .order_by(Certificate.id)
    )
    return list(db.execute(stmt).scalars().all())


def get_certificate(
    db: DbSession, user_id: int, course_id: int, kind: CertificateKind
) -> Certificate | None:
    stmt = select(Certificate).where(
        Certificate.user_id == user_id,
        Certificate.course_id == course_id,
        Certificate.kind == kind.value,
    )
    return db.execute(stmt).scalar_one_or_none()


def verify_certificate(
    db: DbSession, certificate_number: str, verification_code: str
) -> Certificate | None:
    """Public lookup by certificate number and verification code."""
    stmt = select(Certificate).where(
        Certificate.certificate_number == certificate_number.strip().upper(),
        Certificate.verification_code == verification_code.strip().upper(),
    )
    return db.execute(stmt).scalar_one_or_none()


def _get_or_mint(
    db: DbSession,
    user: User,
    course: Course,
    progress: CourseProgress,
    kind: CertificateKind,
    title: str,
    now: datetime,
) -> Certificate:
    """Return the (user, course, kind) certificate, minting it on first call."""
    for _ in range(MINT_ATTEMPTS):
        existing = get_certificate(db, user.id, course.id, kind)
        if existing:
            return existing

        certificate = Certificate(
            user_id=user.id,
            course_id=course.id,
            kind=kind.value,
            certificate_number=generate_certificate_number(now),
            verification_code=generate_verification_code(),
            user_name=user.name,
            user_email=user.email,
            course_title=title,
            completion_date=progress.completed_at or now,
            score=progress.final_exam_best_score or 0,
            issued_at=now,
        )
        db.add(certificate)
        try:
            db.commit()
        except IntegrityError:
            # Lost a concurrent mint, or a random number collided; re-read and retry
            db.rollback()
            continue
        logger.info(
            f"Minted {kind.value} certificate {certificate.certificate_number} "
            f"for user {user.id} course {course.id}"
        )
        return certificate

    existing = get_certificate(db, user.id, course.id, kind)
    if existing:
        return existing
    raise RenderError(f"Could not mint a unique {kind.value} certificate number")


def _claim_render(db: DbSession, certificate: Certificate, now: datetime) -> bool:
    """Take the render lease for a certificate that has no image yet."""
    lease_cutoff = now - timedelta(seconds=CERTIFICATE_RENDER_LEASE_SECONDS)
    result = db.execute(
        update(Certificate)
        .where(
            Certificate.id == certificate.id,
            Certificate.image_url.is_(None),
            or_(
                Certificate.render_claimed_at.is_(None),
                Certificate.render_claimed_at < lease_cutoff,
            ),
        )
        .values(render_claimed_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def _release_claim(db: DbSession, certificate: Certificate) -> None:
    db.execute(
        update(Certificate)
        .where(Certificate.id == certificate.id, Certificate.image_url.is_(None))
        .values(render_claimed_at=None)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def certificate_data(certificate: Certificate) -> CertificateData:
    return CertificateData(
        kind=certificate.kind,
        user_name=certificate.user_name,
        course_title=certificate.course_title,
        completion_date=as_utc(certificate.completion_date),
        certificate_number=certificate.certificate_number,
        verification_code=certificate.verification_code,
        score=certificate.score,
    )


def issue_certificates(
    db: DbSession,
    user: User,
    course: Course,
    renderer: CertificateRenderer,
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> IssuanceResult:
    """
    Issue every certificate the course awards to a learner who completed it.

    Safe to call any number of times. Renderer failures leave the issuance
    pending (certificate_issued stays False) for a later retry.
    """
    now = now or utc_now()
    progress = progress_service.find_progress(db, user.id, course.id)
    if progress is None or not progress.course_completed:
        return IssuanceResult(status=IssuanceStatus.NOT_ELIGIBLE)

    if progress.certificate_issued:
        return IssuanceResult(
            status=IssuanceStatus.ISSUED,
            certificates=list_certificates(db, user.id, course.id),
        )

    certificates = [
        _get_or_mint(db, user, course, progress, kind, title, now)
        for kind, title in certificate_kinds(course)
    ]

    pending = False
    for certificate in certificates:
        db.refresh(certificate)
        if certificate.is_rendered:
            continue
        if not _claim_render(db, certificate, now):
            # Another request is rendering it right now
            pending = True
            continue
        try:
            image_url = renderer.render(certificate_data(certificate))
        except RenderError as exc:
            logger.warning(
                f"Rendering certificate {certificate.certificate_number} failed, "
                f"will retry later: {exc}"
            )
            _release_claim(db, certificate)
            pending = True
            continue
        certificate.image_url = image_url
        db.commit()

    if pending:
        return IssuanceResult(status=IssuanceStatus.PENDING, certificates=certificates)

    result = db.execute(
        update(CourseProgress)
        .where(
            CourseProgress.id == progress.id,
            CourseProgress.certificate_issued == False,  # noqa: E712
        )
        .values(certificate_issued=True, certificate_issued_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    newly_issued = result.rowcount == 1

    if newly_issued:
        logger.info(f"Certificates issued for user {user.id} course {course.id}")
        if notifier is not None:
            try:
                notifier.send_certificates(user, certificates)
            except NotifyError as exc:
                logger.error(f"Failed to send certificate notice to {user.email}: {exc}")

    return IssuanceResult(
        status=IssuanceStatus.ISSUED,
        certificates=certificates,
        newly_issued=newly_issued,
    )


def retry_pending_certificates(
    db: DbSession,
    renderer: CertificateRenderer,
    notifier: Notifier | None = None,
    now: datetime | None = None,
    limit: int = 50,
) -> int:
    """Retry issuance for completed courses whose certificates are still pending."""
    stmt = (
        select(CourseProgress)
        .where(
            CourseProgress.course_completed == True,  # noqa: E712
            CourseProgress.certificate_issued == False,  # noqa: E712
        )
        .order_by(CourseProgress.completed_at)
        .limit(limit)
    )
    issued = 0
    for progress in list(db.execute(stmt).scalars().all()):
        user = db.get(User, progress.user_id)
        course = db.get(Course, progress.course_id)
        if user is None or course is None:
            continue
        result = issue_certificates(db, user, course, renderer, notifier, now)
        if result.newly_issued:
            issued += 1
    return issued
