"""Progress tracking: event ingestion, recomputation, and summary queries.

Write path for one event::

    track_event
      → classify_event          (does this event complete the content?)
      → progress.append_event   (the log is the source of truth)
      → update_lesson_summary   (re-tally the lesson from the log)
      → update_enrollment_progress

All of it runs under the enrollment's lock so concurrent events for one
learner serialize.  The functions named update_* assume the caller holds
that lock; quiz_service reuses them from inside its own critical section.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from app.core.metrics import ENROLLMENT_COMPLETIONS, PROGRESS_EVENTS, RECOMPUTE_DURATION
from app.models.course import CourseModule, Lesson, LessonContent
from app.models.enrollment import Enrollment
from app.models.progress import EventType, ProgressEvent, ProgressSummary
from app.repos.registry import Repos
from app.services import aggregation
from app.services.completion import classify_event
from app.services.errors import InvalidStateError, NotFoundError
from app.services.locks import enrollment_locks

logger = logging.getLogger(__name__)


def now_ts() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


@dataclass(frozen=True, slots=True)
class TrackedEvent:
    event: ProgressEvent
    summary: ProgressSummary
    enrollment: Enrollment


@dataclass(frozen=True, slots=True)
class LessonSummaryView:
    summary: ProgressSummary
    lesson: Lesson
    module: CourseModule


@dataclass(frozen=True, slots=True)
class ContentHistory:
    content: LessonContent
    events: list[ProgressEvent]  # newest first


@dataclass(frozen=True, slots=True)
class LessonDetail:
    summary: ProgressSummary
    lesson: Lesson
    contents: list[ContentHistory]


# ---------------------------------------------------------------------------
# Lock-held building blocks
# ---------------------------------------------------------------------------


async def update_lesson_summary(
    repos: Repos, enrollment: Enrollment, lesson_id: UUID, now: int
) -> ProgressSummary:
    """Recompute one lesson summary from the event log and quiz attempts."""
    with RECOMPUTE_DURATION.labels(scope="lesson").time():
        contents = await repos.catalog.list_contents(lesson_id)
        events = await repos.progress.list_events(
            enrollment.id, [c.id for c in contents]
        )
        quizzes = await repos.quizzes.list_quizzes(lesson_id)
        attempts = []
        if quizzes:
            attempts = await repos.quizzes.list_attempts(
                quiz_ids=[q.id for q in quizzes], enrollment_id=enrollment.id
            )

        progress = aggregation.compute_lesson_progress(contents, events, attempts)
        existing = await repos.progress.get_summary(enrollment.id, lesson_id)
        summary = aggregation.apply_lesson_progress(
            existing,
            enrollment_id=enrollment.id,
            lesson_id=lesson_id,
            progress=progress,
            now=now,
        )
        await repos.progress.save_summary(summary)

    logger.debug(
        "Lesson summary enrollment=%s lesson=%s percent=%s completed=%s",
        enrollment.id,
        lesson_id,
        summary.completion_percent,
        summary.is_completed,
    )
    return summary


async def update_enrollment_progress(
    repos: Repos, enrollment: Enrollment, now: int
) -> Enrollment:
    """Recompute the enrollment percent from required-lesson summaries."""
    with RECOMPUTE_DURATION.labels(scope="enrollment").time():
        lessons = await repos.catalog.list_lessons(enrollment.course_id)
        required_ids = [lesson.id for lesson in lessons if lesson.is_required]
        summaries = await repos.progress.list_summaries(enrollment.id, required_ids)
        progress = aggregation.compute_enrollment_progress(required_ids, summaries)
        updated = aggregation.apply_enrollment_progress(enrollment, progress, now=now)
        await repos.enrollments.save(updated)

    if updated.completed_at is not None and enrollment.completed_at is None:
        ENROLLMENT_COMPLETIONS.inc()
        logger.info(
            "Enrollment completed enrollment=%s course=%s",
            updated.id,
            updated.course_id,
        )
    return updated


async def _load_enrollment(repos: Repos, enrollment_id: UUID) -> Enrollment:
    enrollment = await repos.enrollments.get_for_update(enrollment_id)
    if enrollment is None:
        raise NotFoundError("enrollment")
    return enrollment


async def course_of_lesson(repos: Repos, lesson_id: UUID) -> UUID | None:
    lesson = await repos.catalog.get_lesson(lesson_id)
    if lesson is None:
        return None
    module = await repos.catalog.get_module(lesson.module_id)
    return module.course_id if module is not None else None


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------


async def track_event(
    repos: Repos,
    *,
    enrollment_id: UUID,
    lesson_content_id: UUID,
    event_type: EventType,
    watched_duration: float | None = None,
    total_duration: float | None = None,
    metadata: dict[str, Any] | None = None,
    now: int | None = None,
) -> TrackedEvent:
    """Record a learner interaction and bring the derived state up to date.

    Raises NotFoundError for an unknown enrollment or content item and
    InvalidStateError when the content belongs to a different course.
    """
    ts = now if now is not None else now_ts()

    async with enrollment_locks.hold(enrollment_id):
        enrollment = await _load_enrollment(repos, enrollment_id)
        content = await repos.catalog.get_content(lesson_content_id)
        if content is None:
            raise NotFoundError("content")
        if await course_of_lesson(repos, content.lesson_id) != enrollment.course_id:
            raise InvalidStateError(
                "content does not belong to the enrollment's course",
                "content_not_in_course",
            )

        is_completed = classify_event(
            content,
            event_type,
            watched_duration=watched_duration,
            total_duration=total_duration,
        )
        event = await repos.progress.append_event(
            ProgressEvent.new(
                enrollment_id=enrollment.id,
                lesson_content_id=content.id,
                event_type=event_type,
                occurred_at=ts,
                is_completed=is_completed,
                watched_duration=watched_duration,
                total_duration=total_duration,
                metadata=metadata,
            )
        )
        PROGRESS_EVENTS.labels(
            content_type=content.content_type.value,
            completed=str(is_completed).lower(),
        ).inc()

        summary = await update_lesson_summary(repos, enrollment, content.lesson_id, ts)
        enrollment = await update_enrollment_progress(repos, enrollment, ts)

    logger.info(
        "Tracked event=%s type=%s content=%s completed=%s",
        event.id,
        event_type,
        content.id,
        is_completed,
        extra={"enrollment_id": str(enrollment_id)},
    )
    return TrackedEvent(event=event, summary=summary, enrollment=enrollment)


async def recompute_lesson(
    repos: Repos, enrollment_id: UUID, lesson_id: UUID, *, now: int | None = None
) -> ProgressSummary:
    ts = now if now is not None else now_ts()
    async with enrollment_locks.hold(enrollment_id):
        enrollment = await _load_enrollment(repos, enrollment_id)
        if await repos.catalog.get_lesson(lesson_id) is None:
            raise NotFoundError("lesson")
        return await update_lesson_summary(repos, enrollment, lesson_id, ts)


async def recompute_enrollment(
    repos: Repos, enrollment_id: UUID, *, now: int | None = None
) -> Enrollment:
    ts = now if now is not None else now_ts()
    async with enrollment_locks.hold(enrollment_id):
        enrollment = await _load_enrollment(repos, enrollment_id)
        return await update_enrollment_progress(repos, enrollment, ts)


async def rebuild_enrollment(
    repos: Repos, enrollment_id: UUID, *, now: int | None = None
) -> Enrollment:
    """Recompute every touched lesson summary, then the enrollment.

    A lesson is touched when it already has a summary, has events for any
    of its content, or has an attempt on one of its quizzes.  Untouched
    lessons would recompute to 0% and are left without a row.
    """
    ts = now if now is not None else now_ts()
    async with enrollment_locks.hold(enrollment_id):
        enrollment = await _load_enrollment(repos, enrollment_id)
        with RECOMPUTE_DURATION.labels(scope="rebuild").time():
            lessons = await repos.catalog.list_lessons(enrollment.course_id)
            touched = {
                s.lesson_id
                for s in await repos.progress.list_summaries(enrollment.id)
            }
            events = await repos.progress.list_events(enrollment.id)
            event_content_ids = {e.lesson_content_id for e in events}
            attempts = await repos.quizzes.list_attempts(enrollment_id=enrollment.id)
            attempted_quiz_ids = {a.quiz_id for a in attempts}

            for lesson in lessons:
                if lesson.id in touched:
                    continue
                contents = await repos.catalog.list_contents(lesson.id)
                if any(c.id in event_content_ids for c in contents):
                    touched.add(lesson.id)
                    continue
                quizzes = await repos.quizzes.list_quizzes(lesson.id)
                if any(q.id in attempted_quiz_ids for q in quizzes):
                    touched.add(lesson.id)

            for lesson in lessons:
                if lesson.id in touched:
                    await update_lesson_summary(repos, enrollment, lesson.id, ts)
            enrollment = await update_enrollment_progress(repos, enrollment, ts)

    logger.info(
        "Rebuilt progress for enrollment=%s lessons=%d percent=%s",
        enrollment.id,
        len(touched),
        enrollment.progress_percent,
    )
    return enrollment


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_summaries(
    repos: Repos, enrollment_id: UUID, lesson_id: UUID | None = None
) -> list[LessonSummaryView]:
    """Lesson summaries for an enrollment in course order.

    Ordered by module position, then lesson position.  Lessons without a
    summary row are omitted.
    """
    enrollment = await repos.enrollments.get(enrollment_id)
    if enrollment is None:
        raise NotFoundError("enrollment")

    modules = {m.id: m for m in await repos.catalog.list_modules(enrollment.course_id)}
    lessons = await repos.catalog.list_lessons(enrollment.course_id)
    lesson_ids = [lesson_id] if lesson_id is not None else None
    by_lesson = {
        s.lesson_id: s
        for s in await repos.progress.list_summaries(enrollment.id, lesson_ids)
    }

    views: list[LessonSummaryView] = []
    for lesson in lessons:
        summary = by_lesson.get(lesson.id)
        if summary is None:
            continue
        views.append(
            LessonSummaryView(
                summary=summary, lesson=lesson, module=modules[lesson.module_id]
            )
        )
    return views


async def get_detailed_progress(
    repos: Repos, enrollment_id: UUID, lesson_id: UUID
) -> LessonDetail:
    """One lesson's summary with each content item's event history."""
    summary = await repos.progress.get_summary(enrollment_id, lesson_id)
    if summary is None:
        raise NotFoundError("progress")
    lesson = await repos.catalog.get_lesson(lesson_id)
    if lesson is None:
        raise NotFoundError("lesson")

    contents = await repos.catalog.list_contents(lesson_id)
    events = await repos.progress.list_events(enrollment_id, [c.id for c in contents])
    history: dict[UUID, list[ProgressEvent]] = {c.id: [] for c in contents}
    for event in reversed(events):
        history[event.lesson_content_id].append(event)

    return LessonDetail(
        summary=summary,
        lesson=lesson,
        contents=[ContentHistory(content=c, events=history[c.id]) for c in contents],
    )
