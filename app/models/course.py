from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from uuid import UUID, uuid4


class CourseStatus(StrEnum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


class ContentType(StrEnum):
    """Closed set of lesson content kinds.

    Each kind has its own completion rule in app/services/completion.py.
    Adding a member here without a matching rule fails type checking there.
    """

    FILE = "FILE"
    VIDEO = "VIDEO"
    TEXT = "TEXT"
    QUIZ = "QUIZ"


@dataclass(frozen=True, slots=True)
class Course:
    id: UUID
    slug: str
    title: str
    status: CourseStatus = CourseStatus.DRAFT

    @staticmethod
    def new(
        *, slug: str, title: str, status: CourseStatus = CourseStatus.DRAFT
    ) -> Course:
        return Course(id=uuid4(), slug=slug, title=title, status=status)


@dataclass(frozen=True, slots=True)
class CourseModule:
    id: UUID
    course_id: UUID
    position: int
    title: str

    @staticmethod
    def new(*, course_id: UUID, position: int, title: str) -> CourseModule:
        return CourseModule(
            id=uuid4(), course_id=course_id, position=position, title=title
        )


@dataclass(frozen=True, slots=True)
class Lesson:
    id: UUID
    module_id: UUID
    position: int
    title: str
    is_required: bool = True
    estimated_duration: int | None = None  # minutes

    @staticmethod
    def new(
        *,
        module_id: UUID,
        position: int,
        title: str,
        is_required: bool = True,
        estimated_duration: int | None = None,
    ) -> Lesson:
        return Lesson(
            id=uuid4(),
            module_id=module_id,
            position=position,
            title=title,
            is_required=is_required,
            estimated_duration=estimated_duration,
        )


@dataclass(frozen=True, slots=True)
class LessonContent:
    id: UUID
    lesson_id: UUID
    content_type: ContentType
    position: int
    title: str
    is_required: bool = True
    media_duration: int | None = None  # seconds, registered length of a VIDEO
    quiz_id: UUID | None = None  # set on QUIZ items

    @staticmethod
    def new(
        *,
        lesson_id: UUID,
        content_type: ContentType,
        position: int,
        title: str,
        is_required: bool = True,
        media_duration: int | None = None,
        quiz_id: UUID | None = None,
    ) -> LessonContent:
        return LessonContent(
            id=uuid4(),
            lesson_id=lesson_id,
            content_type=content_type,
            position=position,
            title=title,
            is_required=is_required,
            media_duration=media_duration,
            quiz_id=quiz_id,
        )
