"""Pure roll-up functions: lesson and enrollment progress."""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from uuid import uuid4

from app.models.course import ContentType, LessonContent
from app.models.enrollment import Enrollment, EnrollmentStatus
from app.models.progress import EventType, ProgressEvent, ProgressSummary
from app.models.quiz import AttemptStatus, QuizAttempt
from app.services.aggregation import (
    EnrollmentProgress,
    LessonProgress,
    apply_enrollment_progress,
    apply_lesson_progress,
    compute_enrollment_progress,
    compute_lesson_progress,
    latest_events,
    percent,
)

ENROLLMENT_ID = uuid4()
LESSON_ID = uuid4()


def _content(*, is_required: bool = True) -> LessonContent:
    return LessonContent.new(
        lesson_id=LESSON_ID,
        content_type=ContentType.TEXT,
        position=1,
        title="t",
        is_required=is_required,
    )


def _event(
    content: LessonContent, *, at: int, seq: int, completed: bool
) -> ProgressEvent:
    event = ProgressEvent.new(
        enrollment_id=ENROLLMENT_ID,
        lesson_content_id=content.id,
        event_type=EventType.VIEW,
        occurred_at=at,
        is_completed=completed,
    )
    return replace(event, sequence=seq)


def _attempt(*, passed: bool, score: str, submitted_at: int = 50) -> QuizAttempt:
    attempt = QuizAttempt.new(
        quiz_id=uuid4(),
        enrollment_id=ENROLLMENT_ID,
        attempt_number=1,
        max_score=Decimal("10.00"),
        started_at=10,
    )
    return replace(
        attempt,
        status=AttemptStatus.GRADED,
        passed=passed,
        score=Decimal(score),
        submitted_at=submitted_at,
    )


def _summary(lesson_id, *, completed: bool) -> ProgressSummary:
    return replace(
        ProgressSummary.new(enrollment_id=ENROLLMENT_ID, lesson_id=lesson_id),
        is_completed=completed,
    )


# ---- percent ----


def test_percent_rounds_half_up_to_two_places() -> None:
    assert percent(1, 3) == Decimal("33.33")
    assert percent(2, 3) == Decimal("66.67")
    assert percent(1, 8) == Decimal("12.50")


def test_percent_with_nothing_required_is_zero() -> None:
    assert percent(0, 0) == Decimal("0.00")


# ---- lesson roll-up ----


def test_lesson_counts_only_required_content() -> None:
    required = _content()
    optional = _content(is_required=False)
    events = [
        _event(optional, at=1, seq=1, completed=True),
    ]
    progress = compute_lesson_progress([required, optional], events)
    assert progress.completion_percent == Decimal("0.00")
    assert progress.is_completed is False


def test_lesson_with_no_required_content_is_zero_not_complete() -> None:
    progress = compute_lesson_progress([_content(is_required=False)], [])
    assert progress == LessonProgress(Decimal("0.00"), False)


def test_latest_event_wins_over_earlier_completion() -> None:
    item = _content()
    events = [
        _event(item, at=1, seq=1, completed=True),
        _event(item, at=2, seq=2, completed=False),
    ]
    progress = compute_lesson_progress([item], events)
    assert progress.is_completed is False


def test_same_second_tie_broken_by_sequence() -> None:
    item = _content()
    first = _event(item, at=5, seq=7, completed=False)
    second = _event(item, at=5, seq=8, completed=True)
    # Input order does not matter, only (occurred_at, sequence)
    assert latest_events([second, first])[item.id] is second
    progress = compute_lesson_progress([item], [second, first])
    assert progress.is_completed is True


def test_passed_attempt_overrides_content_tally() -> None:
    item = _content()
    progress = compute_lesson_progress(
        [item], [], [_attempt(passed=True, score="9.00")]
    )
    assert progress.completion_percent == Decimal("100.00")
    assert progress.is_completed is True
    assert progress.quiz_score == Decimal("9.00")


def test_failed_attempt_does_not_override() -> None:
    item = _content()
    progress = compute_lesson_progress(
        [item], [], [_attempt(passed=False, score="2.00")]
    )
    assert progress.is_completed is False
    assert progress.quiz_score is None


def test_latest_passed_attempt_supplies_score() -> None:
    early = _attempt(passed=True, score="7.00", submitted_at=10)
    late = _attempt(passed=True, score="10.00", submitted_at=20)
    progress = compute_lesson_progress([_content()], [], [late, early])
    assert progress.quiz_score == Decimal("10.00")


def test_lesson_one_item_short_is_not_complete_even_if_it_rounds_to_100() -> None:
    items = [_content() for _ in range(20001)]
    events = [
        _event(item, at=1, seq=n, completed=True)
        for n, item in enumerate(items[:-1], start=1)
    ]
    progress = compute_lesson_progress(items, events)
    assert progress.completion_percent == Decimal("100.00")
    assert progress.is_completed is False


def test_completed_at_is_sticky() -> None:
    done = LessonProgress(Decimal("100.00"), True)
    undone = LessonProgress(Decimal("50.00"), False)

    first = apply_lesson_progress(
        None, enrollment_id=ENROLLMENT_ID, lesson_id=LESSON_ID, progress=done, now=100
    )
    regressed = apply_lesson_progress(
        first,
        enrollment_id=ENROLLMENT_ID,
        lesson_id=LESSON_ID,
        progress=undone,
        now=200,
    )
    again = apply_lesson_progress(
        regressed,
        enrollment_id=ENROLLMENT_ID,
        lesson_id=LESSON_ID,
        progress=done,
        now=300,
    )

    assert first.completed_at == 100
    assert regressed.is_completed is False
    assert regressed.completed_at == 100
    assert again.completed_at == 100
    assert again.last_accessed_at == 300
    assert again.id == first.id


def test_applying_same_progress_twice_is_a_no_op() -> None:
    progress = LessonProgress(Decimal("50.00"), False)
    once = apply_lesson_progress(
        None,
        enrollment_id=ENROLLMENT_ID,
        lesson_id=LESSON_ID,
        progress=progress,
        now=10,
    )
    twice = apply_lesson_progress(
        once,
        enrollment_id=ENROLLMENT_ID,
        lesson_id=LESSON_ID,
        progress=progress,
        now=10,
    )
    assert once == twice


# ---- enrollment roll-up ----


def _enrollment() -> Enrollment:
    return Enrollment.new(user_id=uuid4(), course_id=uuid4(), enrolled_at=1)


def _progress(done: int, total: int) -> EnrollmentProgress:
    return EnrollmentProgress(percent(done, total), done, total)


def test_enrollment_percent_ignores_optional_lessons() -> None:
    a, b, optional = uuid4(), uuid4(), uuid4()
    summaries = [
        _summary(a, completed=True),
        _summary(optional, completed=True),
        _summary(b, completed=False),
    ]
    progress = compute_enrollment_progress([a, b], summaries)
    assert progress == EnrollmentProgress(Decimal("50.00"), 1, 2)
    assert progress.is_completed is False


def test_enrollment_with_no_required_lessons_is_zero() -> None:
    progress = compute_enrollment_progress([], [])
    assert progress.progress_percent == Decimal("0.00")
    assert progress.is_completed is False


def test_enrollment_status_moves_with_percent() -> None:
    enrollment = _enrollment()
    started = apply_enrollment_progress(enrollment, _progress(1, 2), now=10)
    finished = apply_enrollment_progress(started, _progress(2, 2), now=20)

    assert started.status == EnrollmentStatus.IN_PROGRESS
    assert started.completed_at is None
    assert finished.status == EnrollmentStatus.COMPLETED
    assert finished.completed_at == 20


def test_enrollment_regresses_but_keeps_completed_at() -> None:
    finished = apply_enrollment_progress(_enrollment(), _progress(2, 2), now=20)
    regressed = apply_enrollment_progress(finished, _progress(1, 2), now=30)
    back_to_zero = apply_enrollment_progress(regressed, _progress(0, 2), now=40)

    assert regressed.status == EnrollmentStatus.IN_PROGRESS
    assert regressed.completed_at == 20
    assert back_to_zero.status == EnrollmentStatus.ENROLLED


def test_dropped_enrollment_keeps_status_but_updates_percent() -> None:
    dropped = replace(_enrollment(), status=EnrollmentStatus.DROPPED)
    updated = apply_enrollment_progress(dropped, _progress(2, 2), now=50)
    assert updated.status == EnrollmentStatus.DROPPED
    assert updated.progress_percent == Decimal("100.00")
    assert updated.completed_at is None


def test_enrollment_one_lesson_short_stays_in_progress() -> None:
    required = [uuid4() for _ in range(20001)]
    summaries = [_summary(lesson_id, completed=True) for lesson_id in required[1:]]
    progress = compute_enrollment_progress(required, summaries)
    updated = apply_enrollment_progress(_enrollment(), progress, now=10)

    assert progress.progress_percent == Decimal("100.00")
    assert updated.status == EnrollmentStatus.IN_PROGRESS
    assert updated.completed_at is None


def test_enrollment_started_below_rounding_is_in_progress() -> None:
    updated = apply_enrollment_progress(_enrollment(), _progress(1, 30000), now=10)
    assert updated.progress_percent == Decimal("0.00")
    assert updated.status == EnrollmentStatus.IN_PROGRESS
