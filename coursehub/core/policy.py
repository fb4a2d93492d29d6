"""Declarative authorization policy.

Every handler asks one question, ``policy.authorize(principal, action,
resource)``, instead of comparing roles inline.  A rule admits an actor
when the actor holds one of the rule's roles AND satisfies the rule's
relationship to the resource:

  owner       actor is the student the resource belongs to
  instructor  actor is the instructor of the resource's course
  any         no relationship required

Admins are admitted by every rule.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from coursehub.core.errors import PermissionDeniedError
from coursehub.models.principal import Principal

logger = logging.getLogger(__name__)

Relation = Literal["owner", "instructor", "any"]


@dataclass(frozen=True, slots=True)
class Resource:
    """What an action touches, reduced to the fields rules inspect."""

    student_id: str | None = None
    instructor_id: str | None = None


@dataclass(frozen=True, slots=True)
class Grant:
    role: str
    relation: Relation = "any"


RULES: dict[str, tuple[Grant, ...]] = {
    "course:create": (Grant("instructor"),),
    "progress:enroll": (Grant("student", "owner"),),
    "progress:read": (
        Grant("student", "owner"),
        Grant("instructor", "instructor"),
    ),
    "progress:record": (Grant("student", "owner"),),
    "progress:override_module": (Grant("instructor", "instructor"),),
    "progress:update_scores": (Grant("instructor", "instructor"),),
    "progress:course_stats": (Grant("instructor", "instructor"),),
    "certificate:issue": (Grant("instructor", "instructor"),),
    "certificate:read": (
        Grant("student", "owner"),
        Grant("instructor", "instructor"),
    ),
    "certificate:share": (Grant("student", "owner"),),
    "certificate:revoke": (Grant("instructor", "instructor"),),
    "certificate:list_all": (),
    "certificate:analytics": (),
}


class Policy:
    def __init__(self, rules: dict[str, tuple[Grant, ...]]) -> None:
        self._rules = rules

    def allows(self, principal: Principal, action: str, resource: Resource) -> bool:
        if action not in self._rules:
            raise KeyError(f"unknown action {action!r}")
        if principal.is_admin():
            return True
        return any(
            self._grant_matches(grant, principal, resource)
            for grant in self._rules[action]
        )

    def authorize(
        self, principal: Principal, action: str, resource: Resource | None = None
    ) -> None:
        if not self.allows(principal, action, resource or Resource()):
            logger.warning(
                "Access denied: user=%s roles=%s action=%s",
                principal.user_id,
                sorted(principal.roles),
                action,
            )
            raise PermissionDeniedError(action)

    @staticmethod
    def _grant_matches(grant: Grant, principal: Principal, resource: Resource) -> bool:
        if not principal.has_role(grant.role):
            return False
        if grant.relation == "owner":
            return resource.student_id == principal.user_id
        if grant.relation == "instructor":
            return (
                resource.instructor_id is not None
                and resource.instructor_id == principal.user_id
            )
        return True


policy = Policy(RULES)
