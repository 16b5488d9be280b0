"""Background sweep: expires stale sessions and retries pending certificates."""
import logging
import threading
import time

from sqlalchemy.exc import SQLAlchemyError

from assessment_api.config import (
    SESSION_SWEEP_INITIAL_DELAY_SECONDS,
    SESSION_SWEEP_INTERVAL_SECONDS,
)
from assessment_api.database import SessionLocal
from assessment_api.services import certificate_service, session_service
from assessment_api.services.certificate_renderer import get_certificate_renderer
from assessment_api.services.notification_service import get_notifier

logger = logging.getLogger(__name__)


def run_sweep() -> tuple[int, int]:
    """
    Run one sweep pass in its own database session.

    Returns:
        Tuple of (sessions expired, certificate issuances completed)
    """
    db = SessionLocal()
    try:
        expired = session_service.expire_stale_sessions(db)
        issued = certificate_service.retry_pending_certificates(
            db, get_certificate_renderer(), get_notifier()
        )
        if issued:
            logger.info(f"Sweep completed {issued} pending certificate issuances")
        return expired, issued
    finally:
        db.close()


def schedule_session_sweep() -> threading.Thread:
    """Start the periodic sweep on a daemon thread."""

    def _worker() -> None:
        time.sleep(SESSION_SWEEP_INITIAL_DELAY_SECONDS)
        while True:
            try:
                run_sweep()
            except SQLAlchemyError as e:
                logger.error(f"Session sweep failed: {e}")
            except Exception:
                logger.exception("Unexpected error in session sweep")
            time.sleep(SESSION_SWEEP_INTERVAL_SECONDS)

    thread = threading.Thread(
        target=_worker,
        name="session_sweep",
        daemon=True,
    )
    thread.start()
    return thread
