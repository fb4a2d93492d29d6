from __future__ import annotations

import asyncio
import sys
from dataclasses import replace
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from coursehub.main import app
from coursehub.models.course import Course, CourseModule
from coursehub.models.user import User
from coursehub.services import token_service
from coursehub.services.cache import cache_service
from coursehub.services.locks import keyed_lock
from coursehub.services.rate_limiter import rate_limiter
from coursehub.services.task_queue import task_queue
from coursehub.wiring import (
    certificate_repo,
    course_catalog,
    enrollment_repo,
    user_directory,
)

# Ensure repo root is on sys.path so `import coursehub` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_repositories() -> None:
    """Empty the in-memory repositories between tests."""
    for repo in (enrollment_repo, certificate_repo, course_catalog, user_directory):
        repo.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_infrastructure() -> None:
    """Clear cache entries, queued tasks, rate limit buckets and locks."""
    for component in (cache_service, task_queue, rate_limiter, keyed_lock):
        component.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    username: str = "test-student",
    roles: list[str] | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=username, roles=roles)


def auth(username: str = "test-student", roles: list[str] | None = None) -> dict:
    return {"Authorization": f"Bearer {mint_token(username, roles)}"}


@pytest.fixture
def token() -> str:
    """Token with the default student role."""
    return mint_token()


@pytest.fixture
def admin_token() -> str:
    return mint_token(username="test-admin", roles=["admin"])


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------


def seed_user(
    user_id: str,
    *,
    first_name: str = "",
    last_name: str = "",
    role: str = "student",
) -> User:
    user = User.new(
        id=user_id,
        email=f"{user_id}@example.com",
        first_name=first_name,
        last_name=last_name,
        role=role,
    )
    return asyncio.run(user_directory.add(user))


def seed_course(
    *,
    instructor_id: str = "test-instructor",
    lessons_per_module: tuple[int, ...] = (2, 2),
    slug: str = "intro-to-testing",
    title: str = "Intro to Testing",
    grading: str = "letter",
    status: str = "published",
    seed_people: bool = True,
) -> Course:
    """Persist a course whose module i has lessons_per_module[i] lessons.

    Lesson ids are ``m{i}-l{j}``.  With seed_people the instructor and
    the default test student are added to the user directory too.
    """
    if seed_people:
        seed_user(instructor_id, first_name="Ada", last_name="Lovelace", role="instructor")
        seed_user("test-student", first_name="Grace", last_name="Hopper")
    modules = tuple(
        CourseModule.new(
            title=f"Module {i}",
            position=i,
            lesson_ids=tuple(f"m{i}-l{j}" for j in range(count)),
        )
        for i, count in enumerate(lessons_per_module)
    )
    course = Course.new(
        slug=slug,
        title=title,
        instructor_id=instructor_id,
        modules=modules,
        duration_hours=45,
        grading=grading,
        skills=("pytest", "fixtures"),
    )
    if status != "published":
        course = replace(course, status=status)
    return asyncio.run(course_catalog.add(course))
