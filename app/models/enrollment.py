from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from uuid import UUID, uuid4


class EnrollmentStatus(StrEnum):
    ENROLLED = "ENROLLED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    DROPPED = "DROPPED"  # administrative; never set or cleared by recomputation


@dataclass(frozen=True, slots=True)
class Enrollment:
    """A learner's registration in a course.

    progress_percent is derived from lesson summaries and is only ever
    written by the enrollment aggregator.  completed_at is set once.
    """

    id: UUID
    user_id: UUID
    course_id: UUID
    enrolled_at: int
    status: EnrollmentStatus = EnrollmentStatus.ENROLLED
    progress_percent: Decimal = Decimal("0.00")
    completed_at: int | None = None

    @staticmethod
    def new(*, user_id: UUID, course_id: UUID, enrolled_at: int) -> Enrollment:
        return Enrollment(
            id=uuid4(),
            user_id=user_id,
            course_id=course_id,
            enrolled_at=enrolled_at,
        )
