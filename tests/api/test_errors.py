"""Domain error -> HTTP status translation."""

from __future__ import annotations

import importlib
import warnings

import pytest

import coursehub.api.errors as errors_module
from coursehub.api.errors import to_http
from coursehub.core.errors import (
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionError,
    UpstreamError,
)


@pytest.mark.parametrize(
    "error,status_code",
    [
        (NotFoundError("missing"), 404),
        (InvalidArgumentError("bad"), 422),
        (ConflictError("taken"), 409),
        (PreconditionError("not yet"), 412),
        (UpstreamError("down"), 503),
        (PermissionDeniedError("no"), 403),
    ],
)
def test_status_mapping(error, status_code: int) -> None:
    assert to_http(error).status_code == status_code


def test_permission_detail_is_generic() -> None:
    assert to_http(PermissionDeniedError("not your course")).detail == (
        "Insufficient permissions"
    )


def test_import_raises_no_deprecation_warnings() -> None:
    with warnings.catch_warnings():
        warnings.simplefilter("error", DeprecationWarning)
        importlib.reload(errors_module)
