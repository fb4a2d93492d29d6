from __future__ import annotations

import pytest

from coursehub.core.errors import PermissionDeniedError
from coursehub.core.policy import RULES, Resource, policy
from coursehub.models.principal import Principal

_STUDENT = Principal(user_id="s1", roles=frozenset({"student"}))
_INSTRUCTOR = Principal(user_id="i1", roles=frozenset({"instructor"}))
_ADMIN = Principal(user_id="a1", roles=frozenset({"admin"}))

_OWN = Resource(student_id="s1", instructor_id="i1")
_FOREIGN = Resource(student_id="s2", instructor_id="i2")


@pytest.mark.parametrize(
    ("action", "student", "instructor"),
    [
        ("course:create", False, True),
        ("progress:enroll", True, False),
        ("progress:read", True, True),
        ("progress:record", True, False),
        ("progress:override_module", False, True),
        ("progress:update_scores", False, True),
        ("progress:course_stats", False, True),
        ("certificate:issue", False, True),
        ("certificate:read", True, True),
        ("certificate:share", True, False),
        ("certificate:revoke", False, True),
        ("certificate:list_all", False, False),
        ("certificate:analytics", False, False),
    ],
)
def test_role_table(action: str, student: bool, instructor: bool) -> None:
    assert policy.allows(_STUDENT, action, _OWN) is student
    assert policy.allows(_INSTRUCTOR, action, _OWN) is instructor
    assert policy.allows(_ADMIN, action, _FOREIGN) is True


def test_every_action_is_covered() -> None:
    assert len(RULES) == 13


def test_relationships_are_enforced() -> None:
    assert not policy.allows(_STUDENT, "progress:read", _FOREIGN)
    assert not policy.allows(_INSTRUCTOR, "progress:read", _FOREIGN)


def test_instructor_rule_needs_a_known_instructor() -> None:
    assert not policy.allows(_INSTRUCTOR, "certificate:revoke", Resource(student_id="s1"))


def test_authorize_raises() -> None:
    with pytest.raises(PermissionDeniedError):
        policy.authorize(_STUDENT, "certificate:list_all")


def test_unknown_action_is_a_programming_error() -> None:
    with pytest.raises(KeyError):
        policy.allows(_ADMIN, "course:delete", _OWN)
