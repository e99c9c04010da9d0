"""Client for the Codeforces public API with pacing and retry logic."""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Final, List, Optional

import requests
from loguru import logger


class CodeforcesAPIError(Exception):
    """Raised when the Codeforces API keeps failing after all retries."""
    pass


# Substrings of FAILED envelope comments that mean "nothing to fetch" rather than an outage.
EMPTY_RESULT_MARKERS: Final[tuple[str, ...]] = ("not found", "has no rating changes")


class CodeforcesClient:
    """Thin wrapper around ``user.info``, ``user.status`` and ``user.rating``.

    Every call sleeps ``call_delay_seconds`` before its first attempt and then
    makes up to ``max_retries`` further attempts, ``retry_delay_seconds`` apart.
    """

    DEFAULT_BASE_URL: Final[str] = "https://codeforces.com/api"
    USER_AGENT: Final[str] = "Student-Progress-Management-System"
    SUBMISSIONS_PAGE_SIZE: Final[int] = 10000

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        call_delay_seconds: float = 0.5,
        retry_delay_seconds: float = 2.0,
        max_retries: int = 3,
        timeout_seconds: float = 10.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("Max retries cannot be negative")
        if timeout_seconds <= 0:
            raise ValueError("Timeout must be positive")

        self.base_url: str = base_url.rstrip("/")
        self.call_delay_seconds: float = call_delay_seconds
        self.retry_delay_seconds: float = retry_delay_seconds
        self.max_retries: int = max_retries
        self.timeout_seconds: float = timeout_seconds
        self._sleep: Callable[[float], None] = sleep

        if session is None:
            session = requests.Session()
            session.headers.update({"User-Agent": self.USER_AGENT})
        self.session: requests.Session = session

    def fetch_user_info(self, handle: str) -> Optional[Dict[str, Any]]:
        """Return the ``user.info`` record of ``handle``, or None if it does not exist.

        Raises:
            CodeforcesAPIError: If the API keeps failing.
        """
        if not handle or not handle.strip():
            return None

        result = self._call("user.info", {"handles": handle.strip()})
        if not result:
            return None
        return result[0]

    def fetch_submissions(self, handle: str) -> List[Dict[str, Any]]:
        """Return the full raw submission history of ``handle``, newest first.

        Raises:
            CodeforcesAPIError: If the API keeps failing.
        """
        if not handle or not handle.strip():
            return []

        result = self._call(
            "user.status",
            {"handle": handle.strip(), "from": 1, "count": self.SUBMISSIONS_PAGE_SIZE},
        )
        return list(result or [])

    def fetch_contests(self, handle: str) -> List[Dict[str, Any]]:
        """Return the raw rating-change history of ``handle``.

        Raises:
            CodeforcesAPIError: If the API keeps failing.
        """
        if not handle or not handle.strip():
            return []

        result = self._call("user.rating", {"handle": handle.strip()})
        return list(result or [])

    def validate_handle(self, handle: str) -> bool:
        """Check whether ``handle`` exists on Codeforces.

        An unreachable API counts as "not valid"; callers that want to tell the
        two apart should use ``fetch_user_info`` directly.
        """
        try:
            return self.fetch_user_info(handle) is not None
        except CodeforcesAPIError as e:
            logger.warning(f"Could not validate Codeforces handle {handle}: {e}")
            return False

    def _call(self, method: str, params: Dict[str, Any]) -> Optional[Any]:
        """Call an API method and return the envelope's ``result``.

        Returns:
            The result payload, or None when the API reports that the
            requested user or history does not exist.

        Raises:
            CodeforcesAPIError: When every attempt failed.
        """
        url: str = f"{self.base_url}/{method}"
        attempts: int = self.max_retries + 1
        last_error: Exception | None = None

        self._sleep(self.call_delay_seconds)

        for attempt in range(1, attempts + 1):
            try:
                response: requests.Response = self.session.get(
                    url, params=params, timeout=self.timeout_seconds
                )
                # FAILED envelopes arrive with HTTP 400, so read the body first.
                payload: Dict[str, Any] = response.json()

                if payload.get("status") == "OK":
                    return payload.get("result")

                comment: str = str(payload.get("comment") or f"HTTP {response.status_code}")
                if any(marker in comment.lower() for marker in EMPTY_RESULT_MARKERS):
                    logger.debug(f"Codeforces {method} returned no data: {comment}")
                    return None

                raise CodeforcesAPIError(f"Codeforces API error: {comment}")

            except (requests.RequestException, ValueError, CodeforcesAPIError) as e:
                last_error = e
                logger.warning(f"Codeforces {method} attempt {attempt}/{attempts} failed: {e}")

                if attempt < attempts:
                    self._sleep(self.retry_delay_seconds)

        logger.error(f"Codeforces {method} failed after {attempts} attempts")
        raise CodeforcesAPIError(
            f"Codeforces {method} failed after {attempts} attempts: {last_error}"
        ) from last_error
