"""Rate limiting as a route dependency.

Only routes that declare the dependency are limited; health, metrics and
public verification are not.  Buckets are keyed by the token's subject
when a bearer token is present, else by client IP.
"""

from __future__ import annotations

import logging

import jwt as pyjwt
from fastapi import HTTPException, Request, Response, status

from coursehub.core.metrics import RATE_LIMIT_HITS
from coursehub.services.rate_limiter import RateLimitConfig, rate_limiter

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG = RateLimitConfig()


def require_rate_limit(config: RateLimitConfig = _DEFAULT_CONFIG):
    """Dependency factory.

    Usage: ``dependencies=[Depends(require_rate_limit())]``
    """

    async def _check(request: Request, response: Response) -> None:
        key = _build_key(request)
        result = await rate_limiter.check(key, config)

        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)

        if not result.allowed:
            RATE_LIMIT_HITS.labels(key_type=key.split(":", 1)[0]).inc()
            logger.warning("Rate limit exceeded key=%s", key)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Rate limit exceeded",
                headers={
                    "Retry-After": str(int(result.retry_after) + 1),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

    return _check


def _build_key(request: Request) -> str:
    # Unverified decode: the subject only picks a bucket.  A forged token
    # gets its own bucket and is rejected by require_user anyway.
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        try:
            claims = pyjwt.decode(
                auth_header[7:], options={"verify_signature": False}
            )
        except pyjwt.InvalidTokenError:
            claims = {}
        sub = claims.get("sub")
        if sub:
            return f"user:{sub}"

    client_ip = request.client.host if request.client else "unknown"
    return f"ip:{client_ip}"
