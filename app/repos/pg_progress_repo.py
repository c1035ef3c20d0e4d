"""PostgreSQL implementation of ProgressRepo."""

from __future__ import annotations

from collections.abc import Collection
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import ProgressEventRow, ProgressSummaryRow
from app.models.progress import EventType, ProgressEvent, ProgressSummary


class PgProgressRepo:
    """Satisfies the ProgressRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append_event(self, event: ProgressEvent) -> ProgressEvent:
        row = ProgressEventRow(
            id=event.id,
            enrollment_id=event.enrollment_id,
            lesson_content_id=event.lesson_content_id,
            event_type=event.event_type.value,
            occurred_at=event.occurred_at,
            is_completed=event.is_completed,
            watched_duration=event.watched_duration,
            total_duration=event.total_duration,
            metadata_json=event.metadata,
        )
        self._session.add(row)
        await self._session.flush()  # assigns row.sequence
        return _row_to_event(row)

    async def list_events(
        self,
        enrollment_id: UUID,
        content_ids: Collection[UUID] | None = None,
    ) -> list[ProgressEvent]:
        stmt = (
            select(ProgressEventRow)
            .where(ProgressEventRow.enrollment_id == enrollment_id)
            .order_by(ProgressEventRow.occurred_at, ProgressEventRow.sequence)
        )
        if content_ids is not None:
            if not content_ids:
                return []
            stmt = stmt.where(ProgressEventRow.lesson_content_id.in_(content_ids))
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_event(r) for r in rows]

    async def get_summary(
        self, enrollment_id: UUID, lesson_id: UUID
    ) -> ProgressSummary | None:
        row = await self._get_summary_row(enrollment_id, lesson_id)
        return _row_to_summary(row) if row is not None else None

    async def save_summary(self, summary: ProgressSummary) -> None:
        row = await self._get_summary_row(summary.enrollment_id, summary.lesson_id)
        if row is None:
            row = ProgressSummaryRow(
                id=summary.id,
                enrollment_id=summary.enrollment_id,
                lesson_id=summary.lesson_id,
            )
            self._session.add(row)
        row.completion_percent = summary.completion_percent
        row.is_completed = summary.is_completed
        row.quiz_score = summary.quiz_score
        row.last_accessed_at = summary.last_accessed_at
        row.completed_at = summary.completed_at
        await self._session.flush()

    async def list_summaries(
        self,
        enrollment_id: UUID,
        lesson_ids: Collection[UUID] | None = None,
    ) -> list[ProgressSummary]:
        stmt = select(ProgressSummaryRow).where(
            ProgressSummaryRow.enrollment_id == enrollment_id
        )
        if lesson_ids is not None:
            if not lesson_ids:
                return []
            stmt = stmt.where(ProgressSummaryRow.lesson_id.in_(lesson_ids))
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_summary(r) for r in rows]

    async def _get_summary_row(
        self, enrollment_id: UUID, lesson_id: UUID
    ) -> ProgressSummaryRow | None:
        stmt = select(ProgressSummaryRow).where(
            ProgressSummaryRow.enrollment_id == enrollment_id,
            ProgressSummaryRow.lesson_id == lesson_id,
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()


def _row_to_event(row: ProgressEventRow) -> ProgressEvent:
    return ProgressEvent(
        id=row.id,
        enrollment_id=row.enrollment_id,
        lesson_content_id=row.lesson_content_id,
        event_type=EventType(row.event_type),
        occurred_at=row.occurred_at,
        is_completed=row.is_completed,
        watched_duration=row.watched_duration,
        total_duration=row.total_duration,
        metadata=row.metadata_json,
        sequence=row.sequence,
    )


def _row_to_summary(row: ProgressSummaryRow) -> ProgressSummary:
    return ProgressSummary(
        id=row.id,
        enrollment_id=row.enrollment_id,
        lesson_id=row.lesson_id,
        completion_percent=row.completion_percent,
        is_completed=row.is_completed,
        quiz_score=row.quiz_score,
        last_accessed_at=row.last_accessed_at,
        completed_at=row.completed_at,
    )
