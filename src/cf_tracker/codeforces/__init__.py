"""Codeforces API access and payload normalization."""

from .client import CodeforcesAPIError, CodeforcesClient
from .transformer import normalize_contests, normalize_submissions

__all__ = [
    "CodeforcesAPIError",
    "CodeforcesClient",
    "normalize_contests",
    "normalize_submissions",
]
