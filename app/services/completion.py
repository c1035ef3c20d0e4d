"""Per-event completion rules, one per content kind."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import assert_never

from app.models.course import ContentType, LessonContent
from app.models.progress import EventType

logger = logging.getLogger(__name__)

VIDEO_COMPLETION_THRESHOLD = Decimal(80)  # percent of the video watched

_FILE_COMPLETING_EVENTS = frozenset({EventType.DOWNLOAD, EventType.VIEW})


def classify_event(
    content: LessonContent,
    event_type: EventType,
    *,
    watched_duration: float | None = None,
    total_duration: float | None = None,
) -> bool:
    """Return whether this event completes `content` for the learner."""
    match content.content_type:
        case ContentType.VIDEO:
            return _video_completed(content, watched_duration, total_duration)
        case ContentType.FILE:
            return event_type in _FILE_COMPLETING_EVENTS
        case ContentType.TEXT:
            return event_type == EventType.VIEW
        case ContentType.QUIZ:
            # Decided by grading, not by tracking events.
            return False
        case _:
            assert_never(content.content_type)


def _video_completed(
    content: LessonContent,
    watched_duration: float | None,
    total_duration: float | None,
) -> bool:
    duration = _positive(content.media_duration)
    if duration is None:
        duration = _positive(total_duration)
    watched = _positive(watched_duration)

    if duration is None or watched is None:
        logger.debug(
            "Video completion undecidable content=%s duration=%s watched=%s",
            content.id,
            duration,
            watched,
        )
        return False

    # Cross-multiplied so 80.00% is exactly on the line.
    return watched * 100 >= duration * VIDEO_COMPLETION_THRESHOLD


def _positive(value: float | int | None) -> Decimal | None:
    if value is None:
        return None
    d = Decimal(str(value))
    return d if d > 0 else None
