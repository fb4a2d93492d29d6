from __future__ import annotations

from dataclasses import replace
from typing import Protocol

from coursehub.core.errors import DuplicateKeyError, NotFoundError, VersionConflictError
from coursehub.models.enrollment import EnrollmentRecord


class EnrollmentRepo(Protocol):
    async def get(self, student_id: str, course_id: str) -> EnrollmentRecord | None: ...
    async def list_by_student(self, student_id: str) -> list[EnrollmentRecord]: ...
    async def list_by_course(self, course_id: str) -> list[EnrollmentRecord]: ...
    async def add(self, record: EnrollmentRecord) -> EnrollmentRecord: ...
    async def update(self, record: EnrollmentRecord) -> EnrollmentRecord:
        """Compare-and-swap on ``record.version``.

        Stores the record with version + 1 and returns it.  Raises
        VersionConflictError when the stored version is not ``record.version``.
        """
        ...


class InMemoryEnrollmentRepo:
    def __init__(self) -> None:
        self._by_key: dict[tuple[str, str], EnrollmentRecord] = {}

    async def get(self, student_id: str, course_id: str) -> EnrollmentRecord | None:
        return self._by_key.get((student_id, course_id))

    async def list_by_student(self, student_id: str) -> list[EnrollmentRecord]:
        return [r for r in self._by_key.values() if r.student_id == student_id]

    async def list_by_course(self, course_id: str) -> list[EnrollmentRecord]:
        return [r for r in self._by_key.values() if r.course_id == course_id]

    async def add(self, record: EnrollmentRecord) -> EnrollmentRecord:
        if record.key in self._by_key:
            raise DuplicateKeyError("student_course")
        stored = replace(record, version=1)
        self._by_key[record.key] = stored
        return stored

    async def update(self, record: EnrollmentRecord) -> EnrollmentRecord:
        current = self._by_key.get(record.key)
        if current is None:
            raise NotFoundError("enrollment not found")
        if current.version != record.version:
            raise VersionConflictError(
                f"enrollment version {record.version} is stale (now {current.version})"
            )
        stored = replace(record, version=record.version + 1)
        self._by_key[record.key] = stored
        return stored

    def clear(self) -> None:
        self._by_key.clear()
