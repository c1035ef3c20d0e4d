from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from typing import Any
from uuid import UUID, uuid4


class EventType(StrEnum):
    VIEW = "VIEW"
    DOWNLOAD = "DOWNLOAD"
    QUIZ_START = "QUIZ_START"
    QUIZ_SUBMIT = "QUIZ_SUBMIT"
    COMPLETED = "COMPLETED"


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """One entry in the append-only event log, the source of truth for progress.

    `sequence` is assigned by the store on append (0 until then) and breaks
    ties between events that share an `occurred_at` second.
    """

    id: UUID
    enrollment_id: UUID
    lesson_content_id: UUID
    event_type: EventType
    occurred_at: int
    is_completed: bool = False
    watched_duration: float | None = None
    total_duration: float | None = None
    metadata: dict[str, Any] | None = None
    sequence: int = 0

    @staticmethod
    def new(
        *,
        enrollment_id: UUID,
        lesson_content_id: UUID,
        event_type: EventType,
        occurred_at: int,
        is_completed: bool,
        watched_duration: float | None = None,
        total_duration: float | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ProgressEvent:
        return ProgressEvent(
            id=uuid4(),
            enrollment_id=enrollment_id,
            lesson_content_id=lesson_content_id,
            event_type=event_type,
            occurred_at=occurred_at,
            is_completed=is_completed,
            watched_duration=watched_duration,
            total_duration=total_duration,
            metadata=metadata,
        )

    @property
    def order_key(self) -> tuple[int, int]:
        return (self.occurred_at, self.sequence)


@dataclass(frozen=True, slots=True)
class ProgressSummary:
    """Projection / read model for one (enrollment, lesson) pair.

    Derived from progress_events and quiz attempts.  The event log is the
    source of truth; this row makes reads fast.
    """

    id: UUID
    enrollment_id: UUID
    lesson_id: UUID
    completion_percent: Decimal = Decimal("0.00")
    is_completed: bool = False
    quiz_score: Decimal | None = None
    last_accessed_at: int | None = None
    completed_at: int | None = None

    @staticmethod
    def new(*, enrollment_id: UUID, lesson_id: UUID) -> ProgressSummary:
        return ProgressSummary(
            id=uuid4(), enrollment_id=enrollment_id, lesson_id=lesson_id
        )
