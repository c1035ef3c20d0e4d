"""Event ingestion and recomputation against in-memory repos."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from decimal import Decimal
from uuid import uuid4

import pytest

from app.models.course import ContentType
from app.models.enrollment import EnrollmentStatus
from app.models.progress import EventType
from app.repos.catalog_repo import InMemoryCatalogRepo
from app.repos.enrollment_repo import InMemoryEnrollmentRepo
from app.repos.progress_repo import InMemoryProgressRepo
from app.repos.quiz_repo import InMemoryQuizRepo
from app.repos.registry import Repos
from app.services import progress_service
from app.services.errors import InvalidStateError, NotFoundError
from tests.conftest import (
    add_content,
    add_course,
    add_enrollment,
    add_lesson,
    add_module,
    run,
)


async def _text_and_video_lesson(repos: Repos):
    course = await add_course(repos)
    module = await add_module(repos, course)
    lesson = await add_lesson(repos, module)
    text = await add_content(repos, lesson, ContentType.TEXT, position=1)
    video = await add_content(
        repos, lesson, ContentType.VIDEO, position=2, media_duration=100
    )
    enrollment = await add_enrollment(repos, course)
    return course, lesson, text, video, enrollment


def test_text_then_video_completes_lesson(repos: Repos) -> None:
    async def scenario():
        _, lesson, text, video, enrollment = await _text_and_video_lesson(repos)

        first = await progress_service.track_event(
            repos,
            enrollment_id=enrollment.id,
            lesson_content_id=text.id,
            event_type=EventType.VIEW,
            now=100,
        )
        second = await progress_service.track_event(
            repos,
            enrollment_id=enrollment.id,
            lesson_content_id=video.id,
            event_type=EventType.VIEW,
            watched_duration=85,
            now=200,
        )
        return first, second

    first, second = run(scenario())

    assert first.event.is_completed is True
    assert first.summary.completion_percent == Decimal("50.00")
    assert first.summary.is_completed is False
    assert first.enrollment.status == EnrollmentStatus.ENROLLED
    assert first.enrollment.progress_percent == Decimal("0.00")

    assert second.summary.completion_percent == Decimal("100.00")
    assert second.summary.completed_at == 200
    assert second.enrollment.status == EnrollmentStatus.COMPLETED
    assert second.enrollment.progress_percent == Decimal("100.00")
    assert second.enrollment.completed_at == 200


def test_enrollment_moves_through_statuses(repos: Repos) -> None:
    async def scenario():
        course = await add_course(repos)
        module = await add_module(repos, course)
        lesson_a = await add_lesson(repos, module, position=1)
        lesson_b = await add_lesson(repos, module, position=2)
        optional = await add_lesson(repos, module, position=3, is_required=False)
        text_a = await add_content(repos, lesson_a, ContentType.TEXT)
        text_b = await add_content(repos, lesson_b, ContentType.TEXT)
        text_opt = await add_content(repos, optional, ContentType.TEXT)
        enrollment = await add_enrollment(repos, course)

        statuses = []
        for ts, content in ((10, text_opt), (20, text_a), (30, text_b)):
            tracked = await progress_service.track_event(
                repos,
                enrollment_id=enrollment.id,
                lesson_content_id=content.id,
                event_type=EventType.VIEW,
                now=ts,
            )
            statuses.append(
                (tracked.enrollment.status, tracked.enrollment.progress_percent)
            )
        # Viewing again must not move completed_at
        again = await progress_service.track_event(
            repos,
            enrollment_id=enrollment.id,
            lesson_content_id=text_a.id,
            event_type=EventType.VIEW,
            now=40,
        )
        return statuses, again

    statuses, again = run(scenario())
    assert statuses == [
        (EnrollmentStatus.ENROLLED, Decimal("0.00")),
        (EnrollmentStatus.IN_PROGRESS, Decimal("50.00")),
        (EnrollmentStatus.COMPLETED, Decimal("100.00")),
    ]
    assert again.enrollment.completed_at == 30


def test_partial_rewatch_regresses_progress(repos: Repos) -> None:
    async def scenario():
        _, lesson, _, video, enrollment = await _text_and_video_lesson(repos)
        await progress_service.track_event(
            repos,
            enrollment_id=enrollment.id,
            lesson_content_id=video.id,
            event_type=EventType.VIEW,
            watched_duration=90,
            now=10,
        )
        return await progress_service.track_event(
            repos,
            enrollment_id=enrollment.id,
            lesson_content_id=video.id,
            event_type=EventType.VIEW,
            watched_duration=10,
            now=20,
        )

    tracked = run(scenario())
    assert tracked.event.is_completed is False
    assert tracked.summary.completion_percent == Decimal("0.00")
    assert tracked.enrollment.status == EnrollmentStatus.ENROLLED


def test_events_in_the_same_second_use_arrival_order(repos: Repos) -> None:
    async def scenario():
        _, _, _, video, enrollment = await _text_and_video_lesson(repos)
        await progress_service.track_event(
            repos,
            enrollment_id=enrollment.id,
            lesson_content_id=video.id,
            event_type=EventType.VIEW,
            watched_duration=10,
            now=50,
        )
        return await progress_service.track_event(
            repos,
            enrollment_id=enrollment.id,
            lesson_content_id=video.id,
            event_type=EventType.VIEW,
            watched_duration=95,
            now=50,
        )

    tracked = run(scenario())
    assert tracked.summary.completion_percent == Decimal("50.00")


def test_dropped_enrollment_keeps_status(repos: Repos) -> None:
    async def scenario():
        _, _, text, video, enrollment = await _text_and_video_lesson(repos)
        await repos.enrollments.save(
            replace(enrollment, status=EnrollmentStatus.DROPPED)
        )
        for content in (text, video):
            tracked = await progress_service.track_event(
                repos,
                enrollment_id=enrollment.id,
                lesson_content_id=content.id,
                event_type=EventType.VIEW,
                watched_duration=100,
                now=10,
            )
        return tracked

    tracked = run(scenario())
    assert tracked.enrollment.status == EnrollmentStatus.DROPPED
    assert tracked.enrollment.progress_percent == Decimal("100.00")
    assert tracked.enrollment.completed_at is None


def test_unknown_enrollment_raises(repos: Repos) -> None:
    async def scenario():
        _, _, text, _, _ = await _text_and_video_lesson(repos)
        await progress_service.track_event(
            repos,
            enrollment_id=uuid4(),
            lesson_content_id=text.id,
            event_type=EventType.VIEW,
        )

    with pytest.raises(NotFoundError) as exc:
        run(scenario())
    assert exc.value.entity == "enrollment"


def test_unknown_content_raises(repos: Repos) -> None:
    async def scenario():
        _, _, _, _, enrollment = await _text_and_video_lesson(repos)
        await progress_service.track_event(
            repos,
            enrollment_id=enrollment.id,
            lesson_content_id=uuid4(),
            event_type=EventType.VIEW,
        )

    with pytest.raises(NotFoundError) as exc:
        run(scenario())
    assert exc.value.entity == "content"


def test_content_from_another_course_is_rejected(repos: Repos) -> None:
    async def scenario():
        _, _, _, _, enrollment = await _text_and_video_lesson(repos)
        _, _, foreign, _, _ = await _text_and_video_lesson(repos)
        await progress_service.track_event(
            repos,
            enrollment_id=enrollment.id,
            lesson_content_id=foreign.id,
            event_type=EventType.VIEW,
        )

    with pytest.raises(InvalidStateError) as exc:
        run(scenario())
    assert exc.value.code == "content_not_in_course"


def test_failed_ingestion_appends_nothing(repos: Repos) -> None:
    async def scenario():
        _, _, _, _, enrollment = await _text_and_video_lesson(repos)
        _, _, foreign, _, _ = await _text_and_video_lesson(repos)
        with pytest.raises(InvalidStateError):
            await progress_service.track_event(
                repos,
                enrollment_id=enrollment.id,
                lesson_content_id=foreign.id,
                event_type=EventType.VIEW,
            )
        return await repos.progress.list_events(enrollment.id)

    assert run(scenario()) == []


def test_recompute_is_idempotent(repos: Repos) -> None:
    async def scenario():
        _, lesson, text, _, enrollment = await _text_and_video_lesson(repos)
        await progress_service.track_event(
            repos,
            enrollment_id=enrollment.id,
            lesson_content_id=text.id,
            event_type=EventType.VIEW,
            now=10,
        )
        once = await progress_service.recompute_lesson(
            repos, enrollment.id, lesson.id, now=99
        )
        twice = await progress_service.recompute_lesson(
            repos, enrollment.id, lesson.id, now=99
        )
        e1 = await progress_service.recompute_enrollment(repos, enrollment.id, now=99)
        e2 = await progress_service.recompute_enrollment(repos, enrollment.id, now=99)
        return once, twice, e1, e2

    once, twice, e1, e2 = run(scenario())
    assert once == twice
    assert e1 == e2
    assert once.completion_percent == Decimal("50.00")


def test_recompute_unknown_lesson_raises(repos: Repos) -> None:
    async def scenario():
        _, _, _, _, enrollment = await _text_and_video_lesson(repos)
        await progress_service.recompute_lesson(repos, enrollment.id, uuid4())

    with pytest.raises(NotFoundError) as exc:
        run(scenario())
    assert exc.value.entity == "lesson"


def test_rebuild_repairs_a_corrupted_summary(repos: Repos) -> None:
    async def scenario():
        _, lesson, text, video, enrollment = await _text_and_video_lesson(repos)
        for content in (text, video):
            await progress_service.track_event(
                repos,
                enrollment_id=enrollment.id,
                lesson_content_id=content.id,
                event_type=EventType.VIEW,
                watched_duration=100,
                now=10,
            )
        good = await repos.progress.get_summary(enrollment.id, lesson.id)
        await repos.progress.save_summary(
            replace(good, completion_percent=Decimal("3.00"), is_completed=False)
        )
        rebuilt = await progress_service.rebuild_enrollment(
            repos, enrollment.id, now=10
        )
        summary = await repos.progress.get_summary(enrollment.id, lesson.id)
        return good, rebuilt, summary

    good, rebuilt, summary = run(scenario())
    assert summary.completion_percent == good.completion_percent
    assert summary.is_completed is True
    assert summary.completed_at == good.completed_at
    assert rebuilt.progress_percent == Decimal("100.00")


def test_rebuild_leaves_untouched_lessons_without_rows(repos: Repos) -> None:
    async def scenario():
        _, lesson, text, _, enrollment = await _text_and_video_lesson(repos)
        module = await repos.catalog.get_module(lesson.module_id)
        await add_lesson(repos, module, position=2)
        await progress_service.track_event(
            repos,
            enrollment_id=enrollment.id,
            lesson_content_id=text.id,
            event_type=EventType.VIEW,
            now=10,
        )
        await progress_service.rebuild_enrollment(repos, enrollment.id, now=20)
        return await repos.progress.list_summaries(enrollment.id)

    summaries = run(scenario())
    assert len(summaries) == 1


class _SlowProgressRepo(InMemoryProgressRepo):
    """Yields to the event loop on every read so unlocked writers interleave."""

    async def list_events(self, enrollment_id, content_ids=None):
        await asyncio.sleep(0)
        return await super().list_events(enrollment_id, content_ids)

    async def list_summaries(self, enrollment_id, lesson_ids=None):
        await asyncio.sleep(0)
        return await super().list_summaries(enrollment_id, lesson_ids)


def test_concurrent_events_reach_the_final_state() -> None:
    base = Repos(
        catalog=InMemoryCatalogRepo(),
        enrollments=InMemoryEnrollmentRepo(),
        progress=_SlowProgressRepo(),
        quizzes=InMemoryQuizRepo(),
    )

    async def scenario():
        course = await add_course(base)
        module = await add_module(base, course)
        texts = []
        for position in range(1, 6):
            lesson = await add_lesson(base, module, position=position)
            texts.append(await add_content(base, lesson, ContentType.TEXT))
        enrollment = await add_enrollment(base, course)

        await asyncio.gather(
            *(
                progress_service.track_event(
                    base,
                    enrollment_id=enrollment.id,
                    lesson_content_id=text.id,
                    event_type=EventType.VIEW,
                    now=10,
                )
                for text in texts
            )
        )
        return await base.enrollments.get(enrollment.id)

    enrollment = run(scenario())
    assert enrollment.progress_percent == Decimal("100.00")
    assert enrollment.status == EnrollmentStatus.COMPLETED


def test_summaries_are_in_course_order(repos: Repos) -> None:
    async def scenario():
        course = await add_course(repos)
        second_module = await add_module(repos, course, position=2)
        first_module = await add_module(repos, course, position=1)
        late = await add_lesson(repos, second_module, position=1)
        early_b = await add_lesson(repos, first_module, position=2)
        early_a = await add_lesson(repos, first_module, position=1)
        enrollment = await add_enrollment(repos, course)
        for lesson in (late, early_b, early_a):
            content = await add_content(repos, lesson, ContentType.TEXT)
            await progress_service.track_event(
                repos,
                enrollment_id=enrollment.id,
                lesson_content_id=content.id,
                event_type=EventType.VIEW,
                now=10,
            )
        views = await progress_service.get_summaries(repos, enrollment.id)
        only = await progress_service.get_summaries(
            repos, enrollment.id, lesson_id=late.id
        )
        return [v.lesson.id for v in views], [early_a.id, early_b.id, late.id], only

    got, expected, only = run(scenario())
    assert got == expected
    assert len(only) == 1
    assert only[0].module.position == 2


def test_summaries_for_unknown_enrollment_raise(repos: Repos) -> None:
    with pytest.raises(NotFoundError):
        run(progress_service.get_summaries(repos, uuid4()))


def test_detailed_progress_lists_events_newest_first(repos: Repos) -> None:
    async def scenario():
        _, lesson, text, video, enrollment = await _text_and_video_lesson(repos)
        for ts, watched in ((10, 20), (20, 90)):
            await progress_service.track_event(
                repos,
                enrollment_id=enrollment.id,
                lesson_content_id=video.id,
                event_type=EventType.VIEW,
                watched_duration=watched,
                now=ts,
            )
        return await progress_service.get_detailed_progress(
            repos, enrollment.id, lesson.id
        )

    detail = run(scenario())
    assert detail.summary.completion_percent == Decimal("50.00")
    by_type = {h.content.content_type: h for h in detail.contents}
    assert by_type[ContentType.TEXT].events == []
    assert [e.occurred_at for e in by_type[ContentType.VIDEO].events] == [20, 10]


def test_detailed_progress_without_summary_raises(repos: Repos) -> None:
    async def scenario():
        _, lesson, _, _, enrollment = await _text_and_video_lesson(repos)
        await progress_service.get_detailed_progress(repos, enrollment.id, lesson.id)

    with pytest.raises(NotFoundError) as exc:
        run(scenario())
    assert exc.value.entity == "progress"
