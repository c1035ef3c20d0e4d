from __future__ import annotations

from collections.abc import Collection
from dataclasses import replace
from itertools import count
from typing import Protocol
from uuid import UUID

from app.models.progress import ProgressEvent, ProgressSummary


class ProgressRepo(Protocol):
    async def append_event(self, event: ProgressEvent) -> ProgressEvent:
        """Append to the log; returns the event with its sequence assigned."""
        ...

    async def list_events(
        self,
        enrollment_id: UUID,
        content_ids: Collection[UUID] | None = None,
    ) -> list[ProgressEvent]:
        """Events oldest first, ordered by (occurred_at, sequence)."""
        ...

    async def get_summary(
        self, enrollment_id: UUID, lesson_id: UUID
    ) -> ProgressSummary | None: ...

    async def save_summary(self, summary: ProgressSummary) -> None:
        """Insert or replace the row for (enrollment_id, lesson_id)."""
        ...

    async def list_summaries(
        self,
        enrollment_id: UUID,
        lesson_ids: Collection[UUID] | None = None,
    ) -> list[ProgressSummary]: ...


class InMemoryProgressRepo:
    def __init__(self) -> None:
        self._events: list[ProgressEvent] = []
        self._summaries: dict[tuple[UUID, UUID], ProgressSummary] = {}
        self._sequence = count(1)

    def clear(self) -> None:
        self._events.clear()
        self._summaries.clear()
        self._sequence = count(1)

    async def append_event(self, event: ProgressEvent) -> ProgressEvent:
        stored = replace(event, sequence=next(self._sequence))
        self._events.append(stored)
        return stored

    async def list_events(
        self,
        enrollment_id: UUID,
        content_ids: Collection[UUID] | None = None,
    ) -> list[ProgressEvent]:
        wanted = set(content_ids) if content_ids is not None else None
        found = [
            e
            for e in self._events
            if e.enrollment_id == enrollment_id
            and (wanted is None or e.lesson_content_id in wanted)
        ]
        return sorted(found, key=lambda e: e.order_key)

    async def get_summary(
        self, enrollment_id: UUID, lesson_id: UUID
    ) -> ProgressSummary | None:
        return self._summaries.get((enrollment_id, lesson_id))

    async def save_summary(self, summary: ProgressSummary) -> None:
        self._summaries[(summary.enrollment_id, summary.lesson_id)] = summary

    async def list_summaries(
        self,
        enrollment_id: UUID,
        lesson_ids: Collection[UUID] | None = None,
    ) -> list[ProgressSummary]:
        wanted = set(lesson_ids) if lesson_ids is not None else None
        return [
            s
            for (eid, lid), s in self._summaries.items()
            if eid == enrollment_id and (wanted is None or lid in wanted)
        ]
