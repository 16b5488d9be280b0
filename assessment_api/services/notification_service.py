"""Learner notifications (best effort)."""
import logging
from typing import Protocol

from assessment_api.models.db.certificate import Certificate
from assessment_api.models.db.user import User

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def send_certificates(self, user: User, certificates: list[Certificate]) -> None:
        """Deliver the certificate notice, or raise NotifyError."""
        ...


class LoggingNotifier:
    """Default notifier: email delivery lives outside this service, so just log."""

    def send_certificates(self, user: User, certificates: list[Certificate]) -> None:
        numbers = ", ".join(certificate.certificate_number for certificate in certificates)
        logger.info(f"Certificate notice for {user.email}: {numbers}")


_default_notifier: Notifier | None = None


def get_notifier() -> Notifier:
    """FastAPI dependency returning the configured notifier."""
    global _default_notifier
    if _default_notifier is None:
        _default_notifier = LoggingNotifier()
    return _default_notifier
