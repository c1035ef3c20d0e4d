"""PostgreSQL implementation of EnrollmentRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import EnrollmentRow
from app.models.enrollment import Enrollment, EnrollmentStatus
from app.repos.enrollment_repo import DuplicateEnrollmentError


class PgEnrollmentRepo:
    """Satisfies the EnrollmentRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        row = await self._session.get(EnrollmentRow, enrollment_id)
        return _row_to_enrollment(row) if row is not None else None

    async def get_for_update(self, enrollment_id: UUID) -> Enrollment | None:
        """Row-locks the enrollment until the request transaction ends."""
        stmt = (
            select(EnrollmentRow)
            .where(EnrollmentRow.id == enrollment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_enrollment(row) if row is not None else None

    async def get_by_user_course(
        self, user_id: UUID, course_id: UUID
    ) -> Enrollment | None:
        stmt = select(EnrollmentRow).where(
            EnrollmentRow.user_id == user_id, EnrollmentRow.course_id == course_id
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_enrollment(row) if row is not None else None

    async def add(self, enrollment: Enrollment) -> None:
        row = EnrollmentRow(
            id=enrollment.id,
            user_id=enrollment.user_id,
            course_id=enrollment.course_id,
            status=enrollment.status.value,
            progress_percent=enrollment.progress_percent,
            enrolled_at=enrollment.enrolled_at,
            completed_at=enrollment.completed_at,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
        except IntegrityError:
            raise DuplicateEnrollmentError("enrollment already exists") from None

    async def save(self, enrollment: Enrollment) -> None:
        row = await self._session.get(EnrollmentRow, enrollment.id)
        if row is None:
            raise KeyError("enrollment not found")
        row.status = enrollment.status.value
        row.progress_percent = enrollment.progress_percent
        row.completed_at = enrollment.completed_at
        await self._session.flush()

    async def list(
        self,
        *,
        course_id: UUID | None = None,
        user_id: UUID | None = None,
        status: EnrollmentStatus | None = None,
    ) -> list[Enrollment]:
        stmt = select(EnrollmentRow).order_by(EnrollmentRow.enrolled_at.desc())
        if course_id is not None:
            stmt = stmt.where(EnrollmentRow.course_id == course_id)
        if user_id is not None:
            stmt = stmt.where(EnrollmentRow.user_id == user_id)
        if status is not None:
            stmt = stmt.where(EnrollmentRow.status == status.value)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_enrollment(r) for r in rows]


def _row_to_enrollment(row: EnrollmentRow) -> Enrollment:
    return Enrollment(
        id=row.id,
        user_id=row.user_id,
        course_id=row.course_id,
        enrolled_at=row.enrolled_at,
        status=EnrollmentStatus(row.status),
        progress_percent=row.progress_percent,
        completed_at=row.completed_at,
    )
