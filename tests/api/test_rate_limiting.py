"""Rate limiting tests.

Verifies the token bucket on progress mutation routes:
1. Requests within the bucket capacity succeed
2. Requests exceeding capacity get 429 Too Many Requests
3. The 429 response includes a Retry-After header
4. Buckets are per user
"""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from coursehub.services.rate_limiter import InMemoryRateLimiter, RateLimitConfig
from tests.conftest import auth, seed_course, seed_user


@pytest.fixture
def time_url(client: TestClient) -> str:
    course = seed_course()
    client.post(f"/v1/courses/{course.id}/enroll", headers=auth())
    return f"/v1/progress/courses/{course.id}/time"


def test_requests_within_limit_succeed(client: TestClient, time_url: str) -> None:
    for _ in range(5):
        resp = client.patch(time_url, json={"minutes": 1}, headers=auth())
        assert resp.status_code == 200
        assert resp.headers["x-ratelimit-limit"] == "60"


def test_requests_over_limit_get_429(client: TestClient, time_url: str) -> None:
    statuses = [
        client.patch(time_url, json={"minutes": 1}, headers=auth()).status_code
        for _ in range(65)
    ]
    assert 200 in statuses
    assert 429 in statuses


def test_429_includes_retry_after_header(client: TestClient, time_url: str) -> None:
    last_resp = None
    for _ in range(70):
        last_resp = client.patch(time_url, json={"minutes": 1}, headers=auth())
    assert last_resp is not None
    assert last_resp.status_code == 429
    assert int(last_resp.headers["retry-after"]) > 0
    assert last_resp.headers["x-ratelimit-remaining"] == "0"


def test_different_users_have_separate_buckets(client: TestClient, time_url: str) -> None:
    for _ in range(65):
        client.patch(time_url, json={"minutes": 1}, headers=auth())

    seed_user("student-b")
    course_id = time_url.split("/")[4]
    client.post(f"/v1/courses/{course_id}/enroll", headers=auth("student-b"))
    resp = client.patch(time_url, json={"minutes": 1}, headers=auth("student-b"))
    assert resp.status_code == 200


def test_reads_are_not_limited(client: TestClient, time_url: str) -> None:
    for _ in range(65):
        client.patch(time_url, json={"minutes": 1}, headers=auth())
    assert client.get("/v1/progress/me", headers=auth()).status_code == 200


def test_bucket_refills() -> None:
    limiter = InMemoryRateLimiter()
    config = RateLimitConfig(capacity=1, refill_rate=1000.0)

    async def scenario() -> bool:
        await limiter.check("user:x", config)
        await asyncio.sleep(0.01)
        return (await limiter.check("user:x", config)).allowed

    assert asyncio.run(scenario()) is True


def test_empty_bucket_reports_retry_after() -> None:
    limiter = InMemoryRateLimiter()
    config = RateLimitConfig(capacity=1, refill_rate=0.5)

    async def scenario():
        await limiter.check("ip:1.2.3.4", config)
        return await limiter.check("ip:1.2.3.4", config)

    result = asyncio.run(scenario())
    assert not result.allowed
    assert result.remaining == 0
    assert 0 < result.retry_after <= 2
