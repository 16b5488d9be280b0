"""Certificate number and verification code generation."""
import secrets
from datetime import datetime

from assessment_api.config import CERTIFICATE_PREFIX


def generate_certificate_number(issued_at: datetime, prefix: str | None = None) -> str:
    """Format: PREFIX-YYYY-XXXXXX (six uppercase hex digits)."""
    prefix = prefix or CERTIFICATE_PREFIX
    return f"{prefix}-{issued_at.year}-{secrets.token_hex(3).upper()}"


def generate_verification_code() -> str:
    """Eight-character uppercase hex code printed on the certificate."""
    return secrets.token_hex(4).upper()
