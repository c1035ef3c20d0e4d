"""Progress event ingestion and summary queries.

  POST /v1/progress/events
    -> classify, append to the log, recompute lesson and enrollment
    -> invalidate cached summaries for the enrollment
    -> 201 {progress_event, is_completed}

  GET /v1/progress/summary?enrollment_id=...&lesson_id=...
    -> read-through cache (hit → return; miss → query → populate → return)
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from functools import partial
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from app.api.dependencies import get_repos
from app.core.config import SETTINGS
from app.models.progress import EventType, ProgressEvent, ProgressSummary
from app.repos.registry import Repos
from app.services import progress_service
from app.services.cache import (
    cached_summary,
    invalidate_progress,
    store_summary,
    summary_cache_key,
)
from app.services.errors import InvalidStateError, NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/progress", tags=["progress"])


class ProgressEventIn(BaseModel):
    enrollment_id: UUID
    lesson_content_id: UUID
    event_type: EventType
    watched_duration: float | None = Field(default=None, ge=0)
    total_duration: float | None = Field(default=None, ge=0)
    metadata: dict[str, Any] | None = None


class ProgressEventOut(BaseModel):
    id: UUID
    enrollment_id: UUID
    lesson_content_id: UUID
    event_type: EventType
    occurred_at: int
    sequence: int
    is_completed: bool
    watched_duration: float | None
    total_duration: float | None
    metadata: dict[str, Any] | None


class TrackEventOut(BaseModel):
    progress_event: ProgressEventOut
    is_completed: bool


class SummaryOut(BaseModel):
    id: UUID
    enrollment_id: UUID
    lesson_id: UUID
    completion_percent: Decimal
    is_completed: bool
    quiz_score: Decimal | None
    last_accessed_at: int | None
    completed_at: int | None


class LessonSummaryOut(SummaryOut):
    lesson_title: str
    lesson_position: int
    module_id: UUID
    module_title: str
    module_position: int


class ContentProgressOut(BaseModel):
    id: UUID
    title: str
    content_type: str
    position: int
    is_required: bool
    events: list[ProgressEventOut]


class LessonDetailOut(BaseModel):
    summary: SummaryOut
    lesson_title: str
    contents: list[ContentProgressOut]


def event_out(event: ProgressEvent) -> ProgressEventOut:
    return ProgressEventOut(
        id=event.id,
        enrollment_id=event.enrollment_id,
        lesson_content_id=event.lesson_content_id,
        event_type=event.event_type,
        occurred_at=event.occurred_at,
        sequence=event.sequence,
        is_completed=event.is_completed,
        watched_duration=event.watched_duration,
        total_duration=event.total_duration,
        metadata=event.metadata,
    )


def summary_out(summary: ProgressSummary) -> SummaryOut:
    return SummaryOut(
        id=summary.id,
        enrollment_id=summary.enrollment_id,
        lesson_id=summary.lesson_id,
        completion_percent=summary.completion_percent,
        is_completed=summary.is_completed,
        quiz_score=summary.quiz_score,
        last_accessed_at=summary.last_accessed_at,
        completed_at=summary.completed_at,
    )


@router.post(
    "/events",
    response_model=TrackEventOut,
    status_code=status.HTTP_201_CREATED,
)
async def track_event(
    body: ProgressEventIn,
    repos: Annotated[Repos, Depends(get_repos)],
) -> TrackEventOut:
    try:
        tracked = await progress_service.track_event(
            repos,
            enrollment_id=body.enrollment_id,
            lesson_content_id=body.lesson_content_id,
            event_type=body.event_type,
            watched_duration=body.watched_duration,
            total_duration=body.total_duration,
            metadata=body.metadata,
        )
    except NotFoundError as e:
        logger.warning("Progress event rejected: %s", e.message)
        raise HTTPException(status_code=404, detail=e.message) from None
    except InvalidStateError as e:
        logger.warning("Progress event rejected: %s", e.message)
        raise HTTPException(status_code=400, detail=e.message) from None

    repos.on_commit(partial(invalidate_progress, body.enrollment_id))

    return TrackEventOut(
        progress_event=event_out(tracked.event),
        is_completed=tracked.event.is_completed,
    )


@router.get("/summary", response_model=list[LessonSummaryOut])
async def get_summary(
    repos: Annotated[Repos, Depends(get_repos)],
    enrollment_id: Annotated[UUID, Query()],
    lesson_id: Annotated[UUID | None, Query()] = None,
) -> list[LessonSummaryOut]:
    """Lesson summaries in course order, read through the cache."""
    cache_key = summary_cache_key(enrollment_id, lesson_id)

    cached = await cached_summary(cache_key)
    if cached is not None:
        return [LessonSummaryOut(**s) for s in json.loads(cached)]

    try:
        views = await progress_service.get_summaries(repos, enrollment_id, lesson_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message) from None

    result = [
        LessonSummaryOut(
            **summary_out(v.summary).model_dump(),
            lesson_title=v.lesson.title,
            lesson_position=v.lesson.position,
            module_id=v.module.id,
            module_title=v.module.title,
            module_position=v.module.position,
        )
        for v in views
    ]

    await store_summary(
        cache_key,
        json.dumps([s.model_dump(mode="json") for s in result]),
        SETTINGS.summary_cache_ttl,
    )
    return result


@router.get("/{enrollment_id}/lessons/{lesson_id}", response_model=LessonDetailOut)
async def get_lesson_progress(
    enrollment_id: UUID,
    lesson_id: UUID,
    repos: Annotated[Repos, Depends(get_repos)],
) -> LessonDetailOut:
    try:
        detail = await progress_service.get_detailed_progress(
            repos, enrollment_id, lesson_id
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message) from None

    return LessonDetailOut(
        summary=summary_out(detail.summary),
        lesson_title=detail.lesson.title,
        contents=[
            ContentProgressOut(
                id=h.content.id,
                title=h.content.title,
                content_type=h.content.content_type.value,
                position=h.content.position,
                is_required=h.content.is_required,
                events=[event_out(e) for e in h.events],
            )
            for h in detail.contents
        ],
    )
