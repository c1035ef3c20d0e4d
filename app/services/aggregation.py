"""Pure roll-up functions: content events → lesson summary → enrollment.

Nothing here touches storage.  progress_service feeds these functions
what it reads from the repos and writes back what they return, both for
the incremental path (one event arrives) and for a full rebuild.  Given
the same inputs and the same `now`, every function returns the same
value, so recomputing twice is a no-op.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable
from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from app.models.course import LessonContent
from app.models.enrollment import Enrollment, EnrollmentStatus
from app.models.progress import ProgressEvent, ProgressSummary
from app.models.quiz import AttemptStatus, QuizAttempt

HUNDRED = Decimal(100)
_QUANTUM = Decimal("0.01")
_ZERO = Decimal("0.00")
_FULL = Decimal("100.00")


@dataclass(frozen=True, slots=True)
class LessonProgress:
    completion_percent: Decimal
    is_completed: bool
    quiz_score: Decimal | None = None


def percent(done: int, total: int) -> Decimal:
    """done/total as a two-decimal percentage; 0 when there is nothing to do."""
    if total <= 0:
        return _ZERO
    return (Decimal(done) * HUNDRED / Decimal(total)).quantize(
        _QUANTUM, rounding=ROUND_HALF_UP
    )


def latest_events(events: Iterable[ProgressEvent]) -> dict[UUID, ProgressEvent]:
    """Most recent event per content item, by (occurred_at, sequence)."""
    latest: dict[UUID, ProgressEvent] = {}
    for event in events:
        current = latest.get(event.lesson_content_id)
        if current is None or event.order_key > current.order_key:
            latest[event.lesson_content_id] = event
    return latest


def latest_passed_attempt(attempts: Iterable[QuizAttempt]) -> QuizAttempt | None:
    passed = [
        a for a in attempts if a.status == AttemptStatus.GRADED and a.passed is True
    ]
    if not passed:
        return None
    return max(passed, key=lambda a: (a.submitted_at or 0, a.attempt_number))


def compute_lesson_progress(
    contents: Iterable[LessonContent],
    events: Iterable[ProgressEvent],
    attempts: Iterable[QuizAttempt] = (),
) -> LessonProgress:
    """Roll up required content of one lesson for one enrollment.

    `events` and `attempts` must already be scoped to the enrollment;
    `attempts` to quizzes attached to the lesson.  A passed attempt
    completes the lesson regardless of the content tally.
    """
    required = [c for c in contents if c.is_required]
    latest = latest_events(events)
    done = 0
    for content in required:
        event = latest.get(content.id)
        if event is not None and event.is_completed:
            done += 1

    passed = latest_passed_attempt(attempts)
    if passed is not None:
        return LessonProgress(
            completion_percent=_FULL, is_completed=True, quiz_score=passed.score
        )

    # Completion compares counts; the rounded percent is for display only.
    return LessonProgress(
        completion_percent=percent(done, len(required)),
        is_completed=bool(required) and done == len(required),
    )


def apply_lesson_progress(
    existing: ProgressSummary | None,
    *,
    enrollment_id: UUID,
    lesson_id: UUID,
    progress: LessonProgress,
    now: int,
) -> ProgressSummary:
    """Create-or-update a summary.  completed_at is sticky once set."""
    summary = existing or ProgressSummary.new(
        enrollment_id=enrollment_id, lesson_id=lesson_id
    )
    completed_at = summary.completed_at
    if progress.is_completed and completed_at is None:
        completed_at = now
    return replace(
        summary,
        completion_percent=progress.completion_percent,
        is_completed=progress.is_completed,
        quiz_score=progress.quiz_score,
        last_accessed_at=now,
        completed_at=completed_at,
    )


def mark_quiz_passed(
    existing: ProgressSummary | None,
    *,
    enrollment_id: UUID,
    lesson_id: UUID,
    score: Decimal,
    now: int,
) -> ProgressSummary:
    """Direct write made by a passing quiz submission."""
    return apply_lesson_progress(
        existing,
        enrollment_id=enrollment_id,
        lesson_id=lesson_id,
        progress=LessonProgress(
            completion_percent=_FULL, is_completed=True, quiz_score=score
        ),
        now=now,
    )


@dataclass(frozen=True, slots=True)
class EnrollmentProgress:
    progress_percent: Decimal
    completed_lessons: int
    required_lessons: int

    @property
    def is_completed(self) -> bool:
        return (
            self.required_lessons > 0
            and self.completed_lessons == self.required_lessons
        )


def compute_enrollment_progress(
    required_lesson_ids: Collection[UUID],
    summaries: Iterable[ProgressSummary],
) -> EnrollmentProgress:
    required = set(required_lesson_ids)
    completed = {
        s.lesson_id for s in summaries if s.is_completed and s.lesson_id in required
    }
    return EnrollmentProgress(
        progress_percent=percent(len(completed), len(required)),
        completed_lessons=len(completed),
        required_lessons=len(required),
    )


def status_for(progress: EnrollmentProgress) -> EnrollmentStatus:
    if progress.is_completed:
        return EnrollmentStatus.COMPLETED
    if progress.completed_lessons > 0:
        return EnrollmentStatus.IN_PROGRESS
    # A drop back to 0 regresses IN_PROGRESS to ENROLLED.
    return EnrollmentStatus.ENROLLED


def apply_enrollment_progress(
    enrollment: Enrollment, progress: EnrollmentProgress, *, now: int
) -> Enrollment:
    """Write the derived percent; move status unless the enrollment is DROPPED."""
    if enrollment.status == EnrollmentStatus.DROPPED:
        return replace(enrollment, progress_percent=progress.progress_percent)

    status = status_for(progress)
    completed_at = enrollment.completed_at
    if status == EnrollmentStatus.COMPLETED and completed_at is None:
        completed_at = now
    return replace(
        enrollment,
        progress_percent=progress.progress_percent,
        status=status,
        completed_at=completed_at,
    )
