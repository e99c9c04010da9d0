"""Validation utilities."""

from __future__ import annotations

import re


HANDLE_PATTERN = re.compile(r'^[A-Za-z0-9_.\-]{3,24}$')


def validate_email(email: str) -> bool:
    """Validate email address format."""
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return bool(re.match(pattern, email))


def validate_handle_format(handle: str) -> bool:
    """Check a Codeforces handle: 3-24 letters, digits, '_', '-' or '.'."""
    return bool(HANDLE_PATTERN.match(handle.strip()))


def normalize_handle(handle: str) -> str:
    """Handles are stored trimmed and lower-cased."""
    return handle.strip().lower()


def normalize_email(email: str) -> str:
    return email.strip().lower()
