"""Domain exceptions shared by services and repositories.

Services raise these; routers translate them into HTTP responses
(see coursehub/api/errors.py).  Nothing below the API layer knows about
status codes.
"""

from __future__ import annotations


class CourseHubError(Exception):
    """Base exception for coursehub domain errors."""


class NotFoundError(CourseHubError):
    """Enrollment, course, student, module or certificate does not exist."""


class InvalidArgumentError(CourseHubError, ValueError):
    """Caller supplied a value outside the accepted range."""


class ConflictError(CourseHubError):
    """The write collides with existing state."""


class VersionConflictError(ConflictError):
    """Stored document version differs from the one the caller read."""


class DuplicateKeyError(ConflictError):
    """A uniqueness constraint rejected an insert.

    ``field`` names the violated constraint so callers can tell an
    identity collision (regenerate and retry) from a duplicate
    student/course pair (someone else already wrote it).
    """

    def __init__(self, field: str, message: str | None = None) -> None:
        super().__init__(message or f"duplicate {field}")
        self.field = field


class PreconditionError(CourseHubError):
    """The target is not in a state that allows the operation."""


class UpstreamError(CourseHubError):
    """A collaborator (catalog, directory, store) failed or timed out."""


class PermissionDeniedError(CourseHubError):
    """The policy rejected the actor for this action and resource."""
