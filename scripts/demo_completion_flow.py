"""Demo: walk a learner from enrollment to a verified certificate.

Runs in-process against the in-memory repositories using FastAPI
TestClient; leave DATABASE_URL and REDIS_URL unset.

Run with:
    python scripts/demo_completion_flow.py
"""

from __future__ import annotations

import asyncio

from fastapi.testclient import TestClient

from coursehub.main import app
from coursehub.models.user import User
from coursehub.services import token_service
from coursehub.wiring import user_directory


def _seed_users() -> None:
    async def seed() -> None:
        await user_directory.add(
            User.new(
                id="demo-instructor",
                email="ada@example.com",
                first_name="Ada",
                last_name="Lovelace",
                role="instructor",
            )
        )
        await user_directory.add(
            User.new(
                id="demo-student",
                email="grace@example.com",
                first_name="Grace",
                last_name="Hopper",
            )
        )

    asyncio.run(seed())


def _auth(sub: str, roles: list[str]) -> dict[str, str]:
    token = token_service.create_access_token(sub=sub, roles=roles)
    return {"Authorization": f"Bearer {token}"}


def main() -> None:
    client = TestClient(app)
    _seed_users()
    instructor = _auth("demo-instructor", ["instructor"])
    student = _auth("demo-student", ["student"])

    # ── Step 1: instructor publishes a two-module course ────────────
    r = client.post(
        "/v1/courses",
        json={
            "slug": "compilers-101",
            "title": "Compilers 101",
            "duration_hours": 30,
            "skills": ["parsing", "code generation"],
            "modules": [
                {"title": "Lexing", "lesson_ids": ["l1", "l2"]},
                {"title": "Parsing", "lesson_ids": ["l3"]},
            ],
        },
        headers=instructor,
    )
    course = r.json()
    print(f"1. POST /v1/courses                → {r.status_code}  id={course['id']}")

    # ── Step 2: student enrolls ──────────────────────────────────────
    r = client.post(f"/v1/courses/{course['id']}/enroll", headers=student)
    print(f"2. POST .../enroll                 → {r.status_code}")

    # ── Step 3: student completes every lesson ──────────────────────
    for module in course["modules"]:
        for lesson_id in module["lesson_ids"]:
            r = client.patch(
                f"/v1/progress/courses/{course['id']}/modules/{module['id']}"
                f"/lessons/{lesson_id}/complete",
                json={"time_spent": 20},
                headers=student,
            )
            body = r.json()
            print(
                f"3. complete {lesson_id:<4}                   → {r.status_code}"
                f"  completion={body['completion_percentage']}%"
                f"  certificate={body['certificate_generated']}"
            )

    # ── Step 4: the certificate was issued automatically ────────────
    r = client.get("/v1/certificates/me", headers=student)
    cert = r.json()["items"][0]
    print(
        f"4. GET  /v1/certificates/me        → {r.status_code}"
        f"  number={cert['certificate_number']} grade={cert['performance']['grade']}"
    )

    # ── Step 5: anyone can verify it ────────────────────────────────
    r = client.get(f"/v1/certificates/verify/{cert['verification_code']}")
    print(f"5. GET  /v1/certificates/verify/…  → {r.status_code}  {r.json()['student_name']}")


if __name__ == "__main__":
    main()
