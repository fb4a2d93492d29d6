"""Domain exception -> HTTPException translation.

Routers wrap service calls as::

    try:
        ...
    except CourseHubError as e:
        raise to_http(e) from None
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from coursehub.core.errors import (
    ConflictError,
    CourseHubError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

# Most specific first; ConflictError covers its subclasses
_STATUS_BY_ERROR: tuple[tuple[type[CourseHubError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidArgumentError, 422),
    (ConflictError, status.HTTP_409_CONFLICT),
    (PreconditionError, status.HTTP_412_PRECONDITION_FAILED),
    (UpstreamError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
)


def to_http(exc: CourseHubError) -> HTTPException:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            break
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if isinstance(exc, PermissionDeniedError):
        detail = "Insufficient permissions"
    else:
        detail = str(exc) or type(exc).__name__
    logger.warning("%s -> %d: %s", type(exc).__name__, code, detail)
    return HTTPException(status_code=code, detail=detail)
