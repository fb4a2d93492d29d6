"""Liveness, readiness and SLO status.

/health answers "is the process alive": it always returns 200 and reports
degraded dependencies in the body, since a restart would not fix a
database or Redis outage.

/ready answers "should traffic be routed here": 503 when the database is
configured but unreachable.  Redis is not critical; every Redis consumer
has an in-memory fallback.

SLO figures are computed from this process's Prometheus registry, so with
several replicas each one reports only its own share of traffic.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response, status
from prometheus_client import REGISTRY
from sqlalchemy import text

from coursehub.core.metrics import QUEUE_DEPTH
from coursehub.core.slo import (
    evaluate_availability,
    evaluate_certificate_issuance,
    evaluate_latency,
)
from coursehub.db.engine import engine
from coursehub.db.redis import redis_pool
from coursehub.services.task_queue import RECONCILIATION_QUEUE, task_queue

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _sum_samples(sample_name: str, label_filter: dict | None = None) -> float:
    """Sum every sample called ``sample_name`` whose labels match the filter."""
    total = 0.0
    for metric in REGISTRY.collect():
        for sample in metric.samples:
            if sample.name != sample_name:
                continue
            if label_filter and not all(
                sample.labels.get(k) == v for k, v in label_filter.items()
            ):
                continue
            total += sample.value
    return total


async def _check_database() -> str:
    if engine is None:
        return "not_configured"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Database health check failed")
        return "degraded"
    return "ok"


async def _check_redis() -> str:
    if redis_pool is None:
        return "not_configured"
    try:
        await redis_pool.ping()  # type: ignore[misc]
    except Exception:
        logger.exception("Redis health check failed")
        return "degraded"
    return "ok"


@router.get("/health")
async def health() -> dict:
    checks = {
        "database": await _check_database(),
        "redis": await _check_redis(),
    }
    overall = "degraded" if "degraded" in checks.values() else "ok"

    depth = await task_queue.queue_length(RECONCILIATION_QUEUE)
    QUEUE_DEPTH.labels(queue_name=RECONCILIATION_QUEUE).set(depth)

    total = _sum_samples("http_requests_total")
    errors = sum(
        _sum_samples("http_requests_total", {"status_code": str(code)})
        for code in range(500, 512)
    )

    # Only sum and count are available in-process; avg * 2 stands in for p95
    duration_sum = _sum_samples("http_request_duration_seconds_sum")
    duration_count = _sum_samples("http_request_duration_seconds_count")
    p95_estimate_ms = (
        duration_sum / duration_count * 1000 * 2.0 if duration_count else 0.0
    )

    issued = _sum_samples("certificates_issued_total", {"trigger": "automatic"})
    failed = _sum_samples("certificate_issuance_failures_total")

    slos = {}
    for s in (
        evaluate_availability(int(total), int(errors)),
        evaluate_latency(p95_estimate_ms),
        evaluate_certificate_issuance(int(issued), int(failed)),
    ):
        slos[s.slo.name] = {
            "current": s.current,
            "target": s.slo.target,
            "healthy": s.healthy,
        }

    return {
        "status": overall,
        "checks": checks,
        "queues": {RECONCILIATION_QUEUE: depth},
        "slos": slos,
    }


@router.get("/ready")
async def ready() -> Response:
    if await _check_database() == "degraded":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
