from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import pytest

from src.services.rate_limit.detector import (
    RateLimitDetector,
    RateLimitType,
    detect_rate_limit_type,
)


def test_retry_after_seconds() -> None:
    info = detect_rate_limit_type({"Retry-After": "30"})
    assert info.limit_type == RateLimitType.RPM
    assert info.retry_after == 30


def test_retry_after_http_date() -> None:
    later = datetime.now(timezone.utc) + timedelta(seconds=120)
    info = detect_rate_limit_type(httpx.Headers({"retry-after": format_datetime(later, usegmt=True)}))

    assert info.retry_after is not None
    assert 100 < info.retry_after <= 120


def test_invalid_retry_after_is_ignored() -> None:
    info = detect_rate_limit_type({"retry-after": "soon"})
    assert info.retry_after is None
    assert info.limit_type == RateLimitType.UNKNOWN


def test_exhausted_quota() -> None:
    info = detect_rate_limit_type({"retry-after": "7200", "x-ratelimit-remaining": "0"})
    assert info.limit_type == RateLimitType.QUOTA
    assert info.remaining == 0


def test_openai_style_headers() -> None:
    info = detect_rate_limit_type(
        {"x-ratelimit-limit-requests": "60", "x-ratelimit-remaining-requests": "0"}
    )
    assert info.limit_type == RateLimitType.RPM
    assert info.limit_value == 60
    assert info.retry_after is None


def test_no_headers() -> None:
    assert detect_rate_limit_type(None).limit_type == RateLimitType.UNKNOWN


class _WithStatus(Exception):
    def __init__(self, status: int) -> None:
        super().__init__("upstream error")
        self.status = status


@pytest.mark.parametrize(("status", "expected"), [(429, True), (500, False)])
def test_status_attribute(status: int, expected: bool) -> None:
    assert RateLimitDetector.is_rate_limit_error(_WithStatus(status)) is expected
    assert RateLimitDetector.extract_status_code(_WithStatus(status)) == status


def test_extract_status_code_missing() -> None:
    assert RateLimitDetector.extract_status_code(RuntimeError("x")) is None
