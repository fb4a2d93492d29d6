"""Prometheus scrape endpoint (text exposition format).

Exposes the counters in coursehub/core/metrics.py alongside the default
process collectors.  Not rate limited and not itself counted by
MetricsMiddleware.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
