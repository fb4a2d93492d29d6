from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest
from prometheus_client import REGISTRY

from coursehub.core.errors import (
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    PreconditionError,
    UpstreamError,
)
from coursehub.models.certificate import CertificateIdentity
from coursehub.repos.certificate_repo import CertificateFilter, Page
from coursehub.repos.user_directory import InMemoryUserDirectory
from coursehub.services import certificate_service as certificate_module
from coursehub.services.task_queue import RECONCILIATION_QUEUE
from tests.services.conftest import START, Stack, build_stack

_DAY = 24 * 60 * 60


def _sample(name: str, labels: dict | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


# ---------------------------------------------------------------------------
# Automatic issuance
# ---------------------------------------------------------------------------


def test_certificate_carries_course_and_student_facts(stack: Stack) -> None:
    before = _sample("certificates_issued_total", {"trigger": "automatic"})

    async def scenario() -> None:
        course = await stack.seed((1, 1), grading="pass_fail")
        await stack.progress.enroll("s1", course.id)
        record = await stack.complete_all("s1", course)
        cert = await stack.certificate_service.get(record.certificate_id)

        assert cert.student_name == "Grace Hopper"
        assert cert.instructor_name == "Ada Lovelace"
        assert cert.course_name == "Compilers"
        assert cert.issuer_name == "Test Academy"
        assert cert.performance.final_score == 85
        assert cert.performance.grade == "Pass"
        assert cert.certificate_number.startswith("CERT-202603-")
        assert cert.verification.url == (
            f"https://learn.example.com/verify/{cert.verification_code}"
        )
        assert cert.enrollment_date == START

    asyncio.run(scenario())
    assert _sample("certificates_issued_total", {"trigger": "automatic"}) == before + 1


def test_failed_issuance_schedules_reconciliation(stack: Stack) -> None:
    before = _sample(
        "certificate_issuance_failures_total", {"reason": "NotFoundError"}
    )

    async def scenario() -> None:
        course = await stack.seed((1,))
        await stack.progress.enroll("s1", course.id)
        missing = stack.directory._by_id.pop("s1")

        # The progress write itself still succeeds
        record = await stack.complete_all("s1", course)
        assert record.completion_percentage == 100
        assert not record.certificate_generated
        assert await stack.certificates.list_all() == []
        assert await stack.queue.queue_length(RECONCILIATION_QUEUE) == 1

        task = await stack.queue.dequeue(RECONCILIATION_QUEUE)
        assert task.payload == {"student_id": "s1", "course_id": course.id}

        await stack.directory.add(missing)
        cert = await stack.certificate_service.reconcile("s1", course.id)
        assert cert is not None
        record = await stack.progress.get_progress("s1", course.id)
        assert record.certificate_id == cert.id

    asyncio.run(scenario())
    assert (
        _sample("certificate_issuance_failures_total", {"reason": "NotFoundError"})
        == before + 1
    )


class _SlowDirectory(InMemoryUserDirectory):
    async def get_display_name(self, user_id: str) -> str:
        await asyncio.sleep(1)
        return await super().get_display_name(user_id)


def test_slow_directory_fails_issuance_not_progress() -> None:
    stack = build_stack(directory=_SlowDirectory(), lookup_timeout=0.05)

    async def scenario() -> None:
        course = await stack.seed((1,))
        await stack.progress.enroll("s1", course.id)
        record = await stack.complete_all("s1", course)
        assert record.completion_percentage == 100
        assert not record.certificate_generated
        assert await stack.queue.queue_length(RECONCILIATION_QUEUE) == 1

    asyncio.run(scenario())


def test_existing_certificate_is_linked_not_duplicated(stack: Stack) -> None:
    async def scenario() -> None:
        course = await stack.seed((1,))
        await stack.progress.enroll("s1", course.id)
        record = await stack.complete_all("s1", course)
        original = record.certificate_id

        # Lose the back-link, as if the process died between the two writes
        stack.enrollments._by_key[record.key] = replace(
            record, certificate_generated=False, certificate_id=None
        )

        record = await stack.progress.add_time_spent("s1", course.id, 5)
        assert record.certificate_id == original
        assert len(await stack.certificates.list_all()) == 1

    asyncio.run(scenario())


# ---------------------------------------------------------------------------
# Identity collisions
# ---------------------------------------------------------------------------


def test_identity_collision_is_retried(
    stack: Stack, monkeypatch: pytest.MonkeyPatch
) -> None:
    before = _sample(
        "certificate_identity_collisions_total", {"field": "certificate_number"}
    )

    async def scenario() -> None:
        course = await stack.seed((1,))
        await stack.seed((1,), student_id="s2")
        for sid in ("s1", "s2"):
            await stack.progress.enroll(sid, course.id)
        first = await stack.complete_all("s1", course)
        taken = await stack.certificate_service.get(first.certificate_id)

        fresh = CertificateIdentity(
            certificate_number="CERT-209901-0002", verification_code="FRESHCODE2"
        )
        identities = iter(
            [
                CertificateIdentity(
                    certificate_number=taken.certificate_number,
                    verification_code="UNUSEDCODE1",
                ),
                fresh,
            ]
        )
        monkeypatch.setattr(certificate_module, "new_identity", lambda now: next(identities))

        second = await stack.complete_all("s2", course)
        cert = await stack.certificate_service.get(second.certificate_id)
        assert cert.certificate_number == fresh.certificate_number

    asyncio.run(scenario())
    assert (
        _sample("certificate_identity_collisions_total", {"field": "certificate_number"})
        == before + 1
    )


def test_identity_collisions_exhaust_attempts(monkeypatch: pytest.MonkeyPatch) -> None:
    stack = build_stack(max_identity_attempts=3)

    async def scenario() -> None:
        course = await stack.seed((1,))
        await stack.seed((1,), student_id="s2")
        for sid in ("s1", "s2"):
            await stack.progress.enroll(sid, course.id)
        first = await stack.complete_all("s1", course)
        taken = await stack.certificate_service.get(first.certificate_id)
        monkeypatch.setattr(
            certificate_module,
            "new_identity",
            lambda now: CertificateIdentity(
                certificate_number="CERT-209901-0001",
                verification_code=taken.verification_code,
            ),
        )

        stack.detach_trigger()
        await stack.complete_all("s2", course)
        with pytest.raises(ConflictError, match="unique certificate identity"):
            await stack.certificate_service.issue_manually("s2", course.id)
        assert len(await stack.certificates.list_all()) == 1

    asyncio.run(scenario())


# ---------------------------------------------------------------------------
# Manual issuance and reconciliation
# ---------------------------------------------------------------------------


def test_issue_manually(stack: Stack) -> None:
    async def scenario() -> None:
        course = await stack.seed((1, 1))
        stack.detach_trigger()
        await stack.progress.enroll("s1", course.id)
        with pytest.raises(PreconditionError, match="not completed"):
            await stack.certificate_service.issue_manually("s1", course.id)

        await stack.complete_all("s1", course)
        cert = await stack.certificate_service.issue_manually("s1", course.id)
        assert cert.status == "issued"
        record = await stack.progress.get_progress("s1", course.id)
        assert record.certificate_id == cert.id

        with pytest.raises(ConflictError, match="already issued"):
            await stack.certificate_service.issue_manually("s1", course.id)
        assert len(await stack.certificates.list_all()) == 1

    asyncio.run(scenario())


def test_issue_manually_rejects_revoked_pair(stack: Stack) -> None:
    async def scenario() -> None:
        course = await stack.seed((1,))
        await stack.progress.enroll("s1", course.id)
        record = await stack.complete_all("s1", course)
        await stack.certificate_service.revoke(record.certificate_id, None)

        with pytest.raises(ConflictError, match="already issued"):
            await stack.certificate_service.issue_manually("s1", course.id)

    asyncio.run(scenario())


def test_issue_manually_rejects_unlinked_certificate(stack: Stack) -> None:
    async def scenario() -> None:
        course = await stack.seed((1,))
        await stack.progress.enroll("s1", course.id)
        record = await stack.complete_all("s1", course)
        stack.enrollments._by_key[record.key] = replace(
            record, certificate_generated=False, certificate_id=None
        )

        with pytest.raises(ConflictError, match="already issued"):
            await stack.certificate_service.issue_manually("s1", course.id)
        assert len(await stack.certificates.list_all()) == 1

    asyncio.run(scenario())


def test_issue_manually_surfaces_slow_directory() -> None:
    stack = build_stack(directory=_SlowDirectory(), lookup_timeout=0.05)

    async def scenario() -> None:
        course = await stack.seed((1,))
        await stack.progress.enroll("s1", course.id)
        await stack.complete_all("s1", course)
        await stack.queue.dequeue(RECONCILIATION_QUEUE)

        with pytest.raises(UpstreamError):
            await stack.certificate_service.issue_manually("s1", course.id)

        record = await stack.progress.get_progress("s1", course.id)
        assert not record.certificate_generated
        assert record.certificate_id is None
        assert await stack.certificates.list_all() == []
        # Manual failures surface to the caller instead of being queued
        assert await stack.queue.queue_length(RECONCILIATION_QUEUE) == 0

    asyncio.run(scenario())


def test_issue_manually_requires_enrollment(stack: Stack) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(stack.certificate_service.issue_manually("s1", "c1"))


def test_reconcile_without_work(stack: Stack) -> None:
    async def scenario() -> None:
        assert await stack.certificate_service.reconcile("s1", "c1") is None

        course = await stack.seed((1, 1))
        await stack.progress.enroll("s1", course.id)
        assert await stack.certificate_service.reconcile("s1", course.id) is None

        await stack.complete_all("s1", course)
        assert await stack.certificate_service.reconcile("s1", course.id) is None
        assert len(await stack.certificates.list_all()) == 1

    asyncio.run(scenario())


# ---------------------------------------------------------------------------
# Verification and revocation
# ---------------------------------------------------------------------------


async def _issued(stack: Stack, student_id: str = "s1"):
    course = await stack.seed((1,), student_id=student_id)
    await stack.progress.enroll(student_id, course.id)
    record = await stack.complete_all(student_id, course)
    return await stack.certificate_service.get(record.certificate_id)


def test_verify_counts_successful_lookups(stack: Stack) -> None:
    async def scenario() -> None:
        cert = await _issued(stack)
        verified = await stack.certificate_service.verify(cert.verification_code)
        assert verified.id == cert.id
        assert verified.analytics.verification_count == 1

        verified = await stack.certificate_service.verify(
            f"  {cert.verification_code.lower()} "
        )
        assert verified.analytics.verification_count == 2

        with pytest.raises(NotFoundError):
            await stack.certificate_service.verify("NOPE")
        stored = await stack.certificate_service.get(cert.id)
        assert stored.analytics.verification_count == 2

    asyncio.run(scenario())


def test_revoked_certificate_does_not_verify(stack: Stack) -> None:
    async def scenario() -> None:
        cert = await _issued(stack)
        revoked = await stack.certificate_service.revoke(cert.id, "  ")
        assert revoked.status == "revoked"
        assert revoked.revocation_reason == "Revoked by administrator"

        with pytest.raises(NotFoundError):
            await stack.certificate_service.verify(cert.verification_code)
        with pytest.raises(PreconditionError):
            await stack.certificate_service.revoke(cert.id, "again")

        # The enrollment keeps its link so the trigger never fires again
        record = await stack.progress.get_progress("s1", cert.course_id)
        assert record.certificate_generated

    asyncio.run(scenario())


def test_revoke_unknown_certificate(stack: Stack) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(stack.certificate_service.revoke("missing", "x"))


# ---------------------------------------------------------------------------
# Tracking
# ---------------------------------------------------------------------------


def test_tracking_counters(stack: Stack) -> None:
    async def scenario() -> None:
        cert = await _issued(stack)
        stack.clock.advance(60)
        viewed = await stack.certificate_service.track_view(cert.id)
        assert viewed.analytics.view_count == 1
        assert viewed.analytics.last_viewed == START + 60

        downloaded = await stack.certificate_service.track_download(cert.id)
        assert downloaded.analytics.download_count == 1
        shared = await stack.certificate_service.track_share(cert.id)
        assert shared.analytics.share_count == 1

        await stack.certificate_service.revoke(cert.id, "fraud")
        with pytest.raises(PreconditionError):
            await stack.certificate_service.track_download(cert.id)
        with pytest.raises(PreconditionError):
            await stack.certificate_service.track_share(cert.id)

    asyncio.run(scenario())


def test_counters_survive_revocation_write(stack: Stack) -> None:
    async def scenario() -> None:
        cert = await _issued(stack)
        await stack.certificate_service.track_view(cert.id)
        revoked = await stack.certificate_service.revoke(cert.id, "fraud")
        assert revoked.analytics.view_count == 1

    asyncio.run(scenario())


# ---------------------------------------------------------------------------
# Listings and analytics
# ---------------------------------------------------------------------------


def test_list_for_student_filters_by_status(stack: Stack) -> None:
    async def scenario() -> None:
        first = await _issued(stack)
        await _issued(stack)
        await stack.certificate_service.revoke(first.id, "x")

        items, total = await stack.certificate_service.list_for_student(
            "s1", status=None, page=Page()
        )
        assert total == 2
        assert len(items) == 2

        items, total = await stack.certificate_service.list_for_student(
            "s1", status="revoked", page=Page()
        )
        assert total == 1
        assert items[0].id == first.id

    asyncio.run(scenario())


def test_list_all_paginates_and_sorts(stack: Stack) -> None:
    async def scenario() -> None:
        issued = []
        for _ in range(5):
            issued.append(await _issued(stack))
            stack.clock.advance(10)

        items, total = await stack.certificate_service.list_all(
            CertificateFilter(), Page(number=2, size=2)
        )
        assert total == 5
        assert [c.id for c in items] == [issued[2].id, issued[1].id]

        items, _ = await stack.certificate_service.list_all(
            CertificateFilter(issued_from=START + 30),
            Page(size=10, descending=False),
        )
        assert [c.id for c in items] == [issued[3].id, issued[4].id]

    asyncio.run(scenario())


def test_analytics_overview(stack: Stack) -> None:
    async def scenario() -> None:
        first = await _issued(stack)
        await _issued(stack, student_id="s2")
        third = await _issued(stack, student_id="s3")
        await stack.certificate_service.revoke(third.id, "x")

        overview = await stack.certificate_service.analytics_overview("30d")
        assert overview.total_certificates == 3
        assert overview.issued_certificates == 2
        assert overview.revoked_certificates == 1
        assert overview.recent_certificates == 2
        assert overview.issuance_rate == 66.67
        assert len(overview.popular_courses) == 2
        assert first.course_id in {p.course_id for p in overview.popular_courses}
        assert all(p.average_score == 85 for p in overview.popular_courses)
        assert len(overview.top_performers) == 2

        stack.clock.advance(31 * _DAY)
        later = await stack.certificate_service.analytics_overview("30d")
        assert later.recent_certificates == 0
        assert (await stack.certificate_service.analytics_overview("1y")).recent_certificates == 2

    asyncio.run(scenario())


def test_analytics_rejects_unknown_timeframe(stack: Stack) -> None:
    with pytest.raises(InvalidArgumentError):
        asyncio.run(stack.certificate_service.analytics_overview("2w"))


def test_analytics_with_no_certificates(stack: Stack) -> None:
    overview = asyncio.run(stack.certificate_service.analytics_overview())
    assert overview.total_certificates == 0
    assert overview.issuance_rate == 0.0
    assert overview.popular_courses == []
