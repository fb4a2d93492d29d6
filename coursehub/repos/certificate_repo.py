from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Protocol

from coursehub.core.errors import DuplicateKeyError, NotFoundError, VersionConflictError
from coursehub.models.certificate import Certificate

# Sortable columns for the admin listing
SORT_FIELDS = ("issued_date", "created_at", "final_score", "certificate_number")

ANALYTICS_COUNTERS = ("view_count", "download_count", "share_count", "verification_count")


@dataclass(frozen=True, slots=True)
class CertificateFilter:
    status: str | None = None
    student_id: str | None = None
    course_id: str | None = None
    instructor_id: str | None = None
    issued_from: int | None = None
    issued_to: int | None = None

    def matches(self, cert: Certificate) -> bool:
        if self.status is not None and cert.status != self.status:
            return False
        if self.student_id is not None and cert.student_id != self.student_id:
            return False
        if self.course_id is not None and cert.course_id != self.course_id:
            return False
        if self.instructor_id is not None and cert.instructor_id != self.instructor_id:
            return False
        if self.issued_from is not None and (
            cert.issued_date is None or cert.issued_date < self.issued_from
        ):
            return False
        if self.issued_to is not None and (
            cert.issued_date is None or cert.issued_date > self.issued_to
        ):
            return False
        return True


@dataclass(frozen=True, slots=True)
class Page:
    number: int = 1
    size: int = 10
    sort_by: str = "issued_date"
    descending: bool = True

    @property
    def offset(self) -> int:
        return (self.number - 1) * self.size


def sort_value(cert: Certificate, field: str):
    if field == "final_score":
        return cert.performance.final_score
    value = getattr(cert, field)
    if value is None:
        return "" if field == "certificate_number" else 0
    return value


class CertificateRepo(Protocol):
    async def get(self, certificate_id: str) -> Certificate | None: ...
    async def get_by_pair(self, student_id: str, course_id: str) -> Certificate | None: ...
    async def get_by_verification_code(self, code: str) -> Certificate | None: ...
    async def list(self, flt: CertificateFilter, page: Page) -> list[Certificate]: ...
    async def count(self, flt: CertificateFilter) -> int: ...
    async def list_all(self) -> list[Certificate]: ...
    async def add(self, cert: Certificate) -> Certificate:
        """Insert; DuplicateKeyError.field names the violated unique key."""
        ...
    async def update(self, cert: Certificate) -> Certificate: ...
    async def increment_analytics(
        self, certificate_id: str, counter: str, *, timestamp: int | None = None
    ) -> Certificate: ...


class InMemoryCertificateRepo:
    def __init__(self) -> None:
        self._by_id: dict[str, Certificate] = {}

    async def get(self, certificate_id: str) -> Certificate | None:
        return self._by_id.get(certificate_id)

    async def get_by_pair(self, student_id: str, course_id: str) -> Certificate | None:
        for c in self._by_id.values():
            if c.student_id == student_id and c.course_id == course_id:
                return c
        return None

    async def get_by_verification_code(self, code: str) -> Certificate | None:
        wanted = code.upper()
        for c in self._by_id.values():
            if c.verification.code is not None and c.verification.code.upper() == wanted:
                return c
        return None

    async def list(self, flt: CertificateFilter, page: Page) -> list[Certificate]:
        matched = [c for c in self._by_id.values() if flt.matches(c)]
        matched.sort(key=lambda c: sort_value(c, page.sort_by), reverse=page.descending)
        return matched[page.offset : page.offset + page.size]

    async def count(self, flt: CertificateFilter) -> int:
        return sum(1 for c in self._by_id.values() if flt.matches(c))

    async def list_all(self) -> list[Certificate]:
        return list(self._by_id.values())

    async def add(self, cert: Certificate) -> Certificate:
        for c in self._by_id.values():
            if c.student_id == cert.student_id and c.course_id == cert.course_id:
                raise DuplicateKeyError("student_course")
            if (
                cert.certificate_number is not None
                and c.certificate_number == cert.certificate_number
            ):
                raise DuplicateKeyError("certificate_number")
            if (
                cert.verification.code is not None
                and c.verification.code is not None
                and c.verification.code.upper() == cert.verification.code.upper()
            ):
                raise DuplicateKeyError("verification_code")
        stored = replace(cert, version=1)
        self._by_id[cert.id] = stored
        return stored

    async def update(self, cert: Certificate) -> Certificate:
        current = self._by_id.get(cert.id)
        if current is None:
            raise NotFoundError("certificate not found")
        if current.version != cert.version:
            raise VersionConflictError(
                f"certificate version {cert.version} is stale (now {current.version})"
            )
        # Counters move independently of versioned writes
        stored = replace(cert, analytics=current.analytics, version=cert.version + 1)
        self._by_id[cert.id] = stored
        return stored

    async def increment_analytics(
        self, certificate_id: str, counter: str, *, timestamp: int | None = None
    ) -> Certificate:
        if counter not in ANALYTICS_COUNTERS:
            raise ValueError(f"unknown analytics counter {counter!r}")
        current = self._by_id.get(certificate_id)
        if current is None:
            raise NotFoundError("certificate not found")
        changes: dict[str, int] = {counter: getattr(current.analytics, counter) + 1}
        if timestamp is not None and counter == "view_count":
            changes["last_viewed"] = timestamp
        if timestamp is not None and counter == "download_count":
            changes["last_downloaded"] = timestamp
        stored = replace(current, analytics=replace(current.analytics, **changes))
        self._by_id[certificate_id] = stored
        return stored

    def clear(self) -> None:
        self._by_id.clear()

