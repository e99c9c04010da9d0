"""Tests for the Codeforces API client and payload normalization."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List
from unittest.mock import Mock

import pytest
import requests
from loguru import logger

from cf_tracker.codeforces.client import CodeforcesAPIError, CodeforcesClient
from cf_tracker.codeforces.transformer import normalize_contests, normalize_submissions

# Configure loguru for testing
logger.remove()
logger.add("test_codeforces_client.log", level="DEBUG")


def make_response(payload: Dict[str, Any], status_code: int = 200) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload
    return response


def make_client(*responses: Any, max_retries: int = 3) -> tuple[CodeforcesClient, Mock, List[float]]:
    """Client whose session returns ``responses`` in order and whose sleeps are recorded."""
    session = Mock()
    session.get.side_effect = list(responses)
    sleeps: List[float] = []
    client = CodeforcesClient(
        "https://codeforces.example/api/",
        call_delay_seconds=0.5,
        retry_delay_seconds=2.0,
        max_retries=max_retries,
        session=session,
        sleep=sleeps.append,
    )
    return client, session, sleeps


def test_fetch_user_info_ok() -> None:
    client, session, sleeps = make_client(
        make_response({"status": "OK", "result": [{"handle": "tourist", "rating": 3800}]})
    )

    info = client.fetch_user_info("tourist")

    assert info == {"handle": "tourist", "rating": 3800}
    assert sleeps == [0.5]
    args, kwargs = session.get.call_args
    assert args[0] == "https://codeforces.example/api/user.info"
    assert kwargs["params"] == {"handles": "tourist"}
    assert kwargs["timeout"] == 10.0


def test_fetch_submissions_requests_full_history() -> None:
    client, session, _ = make_client(make_response({"status": "OK", "result": [{"id": 1}]}))

    assert client.fetch_submissions("tourist") == [{"id": 1}]
    _, kwargs = session.get.call_args
    assert kwargs["params"] == {"handle": "tourist", "from": 1, "count": 10000}


def test_unknown_handle_returns_empty_results() -> None:
    not_found = {"status": "FAILED", "comment": "handles: User with handle nobody_xyz not found"}
    client, session, _ = make_client(
        make_response(not_found, 400),
        make_response(not_found, 400),
        make_response({"status": "FAILED", "comment": "handle: User nobody_xyz has no rating changes"}, 400),
    )

    assert client.fetch_user_info("nobody_xyz") is None
    assert client.fetch_submissions("nobody_xyz") == []
    assert client.fetch_contests("nobody_xyz") == []
    assert session.get.call_count == 3


def test_empty_handle_skips_the_api() -> None:
    client, session, _ = make_client()

    assert client.fetch_user_info("  ") is None
    assert client.fetch_submissions("") == []
    assert client.fetch_contests("") == []
    session.get.assert_not_called()


def test_retries_then_succeeds() -> None:
    client, session, sleeps = make_client(
        requests.ConnectionError("connection reset"),
        make_response({"status": "FAILED", "comment": "Call limit exceeded"}, 503),
        make_response({"status": "OK", "result": []}),
    )

    assert client.fetch_contests("tourist") == []
    assert session.get.call_count == 3
    assert sleeps == [0.5, 2.0, 2.0]


def test_gives_up_after_max_retries() -> None:
    client, session, sleeps = make_client(
        *[requests.Timeout("timed out") for _ in range(3)],
        max_retries=2,
    )

    with pytest.raises(CodeforcesAPIError) as exc_info:
        client.fetch_user_info("tourist")

    assert session.get.call_count == 3
    assert sleeps == [0.5, 2.0, 2.0]
    assert isinstance(exc_info.value.__cause__, requests.Timeout)


def test_invalid_json_is_retried() -> None:
    broken = Mock()
    broken.status_code = 502
    broken.json.side_effect = ValueError("Expecting value")
    client, session, _ = make_client(broken, make_response({"status": "OK", "result": [{"handle": "a"}]}))

    assert client.fetch_user_info("a") == {"handle": "a"}
    assert session.get.call_count == 2


def test_validate_handle() -> None:
    client, _, _ = make_client(
        make_response({"status": "OK", "result": [{"handle": "tourist"}]}),
        make_response({"status": "FAILED", "comment": "handles: User with handle zz not found"}),
    )
    assert client.validate_handle("tourist")
    assert not client.validate_handle("zz")

    failing, _, _ = make_client(*[requests.ConnectionError("down") for _ in range(2)], max_retries=1)
    assert not failing.validate_handle("tourist")


def test_client_rejects_bad_settings() -> None:
    with pytest.raises(ValueError):
        CodeforcesClient(max_retries=-1)
    with pytest.raises(ValueError):
        CodeforcesClient(timeout_seconds=0)


def test_normalize_submission_fields() -> None:
    raw = {
        "id": 42,
        "contestId": 1520,
        "creationTimeSeconds": 1700000000,
        "problem": {"contestId": 1520, "index": "B", "name": "Ordinary Numbers", "rating": 800,
                    "tags": ["brute force", "math"]},
        "verdict": "OK",
        "programmingLanguage": "Python 3",
    }

    [record] = normalize_submissions([raw])

    assert record.submission_id == 42
    assert record.problem_id == "1520B"
    assert record.problem_rating == 800
    assert record.is_accepted
    assert record.tags == ("brute force", "math")
    assert record.submitted_at == datetime.fromtimestamp(1700000000, tz=timezone.utc)


def test_normalization_is_idempotent() -> None:
    raw_submissions = [{
        "id": 7, "creationTimeSeconds": 1700000000, "verdict": "WRONG_ANSWER",
        "problem": {"contestId": 1, "index": "A", "name": "Theatre Square"},
    }]
    raw_contests = [{
        "contestId": 1, "contestName": "Round 1", "rank": 3, "oldRating": 1400,
        "newRating": 1480, "ratingUpdateTimeSeconds": 1700000000,
    }]

    submissions = normalize_submissions(raw_submissions)
    contests = normalize_contests(raw_contests)

    assert normalize_submissions(submissions) == submissions
    assert normalize_submissions([s.to_dict() for s in submissions]) == submissions
    assert normalize_contests(contests) == contests
    assert normalize_contests([c.to_dict() for c in contests]) == contests
    assert contests[0].rating_change == 80
    assert contests[0].unsolved_problems == 0
