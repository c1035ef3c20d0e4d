from __future__ import annotations

from typing import Protocol
from uuid import UUID

from app.models.enrollment import Enrollment, EnrollmentStatus


class DuplicateEnrollmentError(ValueError):
    """(user_id, course_id) already has an enrollment."""


class EnrollmentRepo(Protocol):
    async def get(self, enrollment_id: UUID) -> Enrollment | None: ...
    async def get_for_update(self, enrollment_id: UUID) -> Enrollment | None: ...
    async def get_by_user_course(
        self, user_id: UUID, course_id: UUID
    ) -> Enrollment | None: ...
    async def add(self, enrollment: Enrollment) -> None: ...
    async def save(self, enrollment: Enrollment) -> None: ...
    async def list(
        self,
        *,
        course_id: UUID | None = None,
        user_id: UUID | None = None,
        status: EnrollmentStatus | None = None,
    ) -> list[Enrollment]: ...


class InMemoryEnrollmentRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Enrollment] = {}

    def clear(self) -> None:
        self._by_id.clear()

    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        return self._by_id.get(enrollment_id)

    async def get_for_update(self, enrollment_id: UUID) -> Enrollment | None:
        # Single process: the service's KeyedLock already serializes.
        return self._by_id.get(enrollment_id)

    async def get_by_user_course(
        self, user_id: UUID, course_id: UUID
    ) -> Enrollment | None:
        return next(
            (
                e
                for e in self._by_id.values()
                if e.user_id == user_id and e.course_id == course_id
            ),
            None,
        )

    async def add(self, enrollment: Enrollment) -> None:
        if await self.get_by_user_course(enrollment.user_id, enrollment.course_id):
            raise DuplicateEnrollmentError("enrollment already exists")
        self._by_id[enrollment.id] = enrollment

    async def save(self, enrollment: Enrollment) -> None:
        if enrollment.id not in self._by_id:
            raise KeyError("enrollment not found")
        self._by_id[enrollment.id] = enrollment

    async def list(
        self,
        *,
        course_id: UUID | None = None,
        user_id: UUID | None = None,
        status: EnrollmentStatus | None = None,
    ) -> list[Enrollment]:
        found = [
            e
            for e in self._by_id.values()
            if (course_id is None or e.course_id == course_id)
            and (user_id is None or e.user_id == user_id)
            and (status is None or e.status == status)
        ]
        return sorted(found, key=lambda e: e.enrolled_at, reverse=True)
