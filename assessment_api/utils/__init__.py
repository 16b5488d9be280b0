"""Utility modules."""
from assessment_api.utils.codes import (
    generate_certificate_number,
    generate_verification_code,
)
from assessment_api.utils.json_utils import json_load, read_json_file
from assessment_api.utils.time_utils import as_utc, seconds_until, utc_now

__all__ = [
    "generate_certificate_number",
    "generate_verification_code",
    "json_load",
    "read_json_file",
    "as_utc",
    "seconds_until",
    "utc_now",
]
