"""
Utility functions and helpers for the Codeforces progress tracker
"""

from .date_utils import utc_now, from_timestamp, parse_datetime, format_datetime, days_since
from .validation_utils import validate_email, validate_handle_format, normalize_handle, normalize_email

__all__ = [
    'utc_now',
    'from_timestamp',
    'parse_datetime',
    'format_datetime',
    'days_since',
    'validate_email',
    'validate_handle_format',
    'normalize_handle',
    'normalize_email',
]
