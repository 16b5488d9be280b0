"""Application configuration and constants."""
import os
from pathlib import Path


def _parse_int_env(name: str, default: int) -> int:
    """Parse integer from environment variable."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# Database
DB_DIR = Path(os.environ.get("DB_DIR", Path.cwd() / "data"))
DB_DIR.mkdir(parents=True, exist_ok=True)
DATABASE_URL = os.environ.get(
    "DATABASE_URL", f"sqlite:///{DB_DIR / 'academy.db'}"
)

# Authentication
SECRET_KEY = os.environ.get(
    "SECRET_KEY",
    "CHANGE_ME_IN_PRODUCTION_USE_openssl_rand_hex_32"
)
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = _parse_int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 60)

# Assessment sessions
CHAPTER_TEST_QUESTION_COUNT = _parse_int_env("CHAPTER_TEST_QUESTION_COUNT", 20)
FINAL_EXAM_QUESTION_COUNT = _parse_int_env("FINAL_EXAM_QUESTION_COUNT", 50)
SECONDS_PER_QUESTION = _parse_int_env("SECONDS_PER_QUESTION", 60)
SESSION_BUFFER_SECONDS = _parse_int_env("SESSION_BUFFER_SECONDS", 20 * 60)

# Grading and retry throttling
CHAPTER_TEST_PASSING_SCORE = _parse_int_env("CHAPTER_TEST_PASSING_SCORE", 70)
FINAL_EXAM_PASSING_SCORE = _parse_int_env("FINAL_EXAM_PASSING_SCORE", 80)
CHAPTER_TEST_COOLDOWN_HOURS = _parse_int_env("CHAPTER_TEST_COOLDOWN_HOURS", 3)
FINAL_EXAM_COOLDOWN_HOURS = _parse_int_env("FINAL_EXAM_COOLDOWN_HOURS", 24)

# Background sweep of stale sessions and pending certificates
SESSION_SWEEP_INTERVAL_SECONDS = _parse_int_env("SESSION_SWEEP_INTERVAL_SECONDS", 60)
SESSION_SWEEP_INITIAL_DELAY_SECONDS = _parse_int_env(
    "SESSION_SWEEP_INITIAL_DELAY_SECONDS", 10
)

# Certificates
CERTIFICATE_PREFIX = os.environ.get("CERTIFICATE_PREFIX", "MIC")
CERTIFICATES_DIR = Path(
    os.environ.get("CERTIFICATES_DIR", Path.cwd() / "data" / "certificates")
)
CERTIFICATES_DIR.mkdir(parents=True, exist_ok=True)
CERTIFICATE_UPLOAD_URL = os.environ.get("CERTIFICATE_UPLOAD_URL")
CERTIFICATE_UPLOAD_TOKEN = os.environ.get("CERTIFICATE_UPLOAD_TOKEN")
CERTIFICATE_RENDER_LEASE_SECONDS = _parse_int_env("CERTIFICATE_RENDER_LEASE_SECONDS", 300)
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173")
