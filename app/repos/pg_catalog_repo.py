"""PostgreSQL implementation of CatalogRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import CourseModuleRow, CourseRow, LessonContentRow, LessonRow
from app.models.course import (
    ContentType,
    Course,
    CourseModule,
    CourseStatus,
    Lesson,
    LessonContent,
)


class PgCatalogRepo:
    """Satisfies the CatalogRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_course(self, course_id: UUID) -> Course | None:
        row = await self._session.get(CourseRow, course_id)
        return _row_to_course(row) if row is not None else None

    async def get_course_by_slug(self, slug: str) -> Course | None:
        stmt = select(CourseRow).where(CourseRow.slug == slug)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_course(row) if row is not None else None

    async def list_courses(self) -> list[Course]:
        stmt = select(CourseRow).order_by(CourseRow.slug)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_course(r) for r in rows]

    async def add_course(self, course: Course) -> None:
        row = CourseRow(
            id=course.id,
            slug=course.slug,
            title=course.title,
            status=course.status.value,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
        except IntegrityError:
            raise ValueError("slug already exists") from None

    async def save_course(self, course: Course) -> None:
        row = await self._session.get(CourseRow, course.id)
        if row is None:
            raise KeyError("course not found")
        row.title = course.title
        row.status = course.status.value
        await self._session.flush()

    async def add_module(self, module: CourseModule) -> None:
        self._session.add(
            CourseModuleRow(
                id=module.id,
                course_id=module.course_id,
                position=module.position,
                title=module.title,
            )
        )
        await self._session.flush()

    async def add_lesson(self, lesson: Lesson) -> None:
        self._session.add(
            LessonRow(
                id=lesson.id,
                module_id=lesson.module_id,
                position=lesson.position,
                title=lesson.title,
                is_required=lesson.is_required,
                estimated_duration=lesson.estimated_duration,
            )
        )
        await self._session.flush()

    async def add_content(self, content: LessonContent) -> None:
        self._session.add(
            LessonContentRow(
                id=content.id,
                lesson_id=content.lesson_id,
                content_type=content.content_type.value,
                position=content.position,
                title=content.title,
                is_required=content.is_required,
                media_duration=content.media_duration,
                quiz_id=content.quiz_id,
            )
        )
        await self._session.flush()

    async def get_module(self, module_id: UUID) -> CourseModule | None:
        row = await self._session.get(CourseModuleRow, module_id)
        return _row_to_module(row) if row is not None else None

    async def list_modules(self, course_id: UUID) -> list[CourseModule]:
        stmt = (
            select(CourseModuleRow)
            .where(CourseModuleRow.course_id == course_id)
            .order_by(CourseModuleRow.position)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_module(r) for r in rows]

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None:
        row = await self._session.get(LessonRow, lesson_id)
        return _row_to_lesson(row) if row is not None else None

    async def list_lessons(self, course_id: UUID) -> list[Lesson]:
        stmt = (
            select(LessonRow)
            .join(CourseModuleRow, LessonRow.module_id == CourseModuleRow.id)
            .where(CourseModuleRow.course_id == course_id)
            .order_by(CourseModuleRow.position, LessonRow.position)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_lesson(r) for r in rows]

    async def get_content(self, content_id: UUID) -> LessonContent | None:
        row = await self._session.get(LessonContentRow, content_id)
        return _row_to_content(row) if row is not None else None

    async def list_contents(self, lesson_id: UUID) -> list[LessonContent]:
        stmt = (
            select(LessonContentRow)
            .where(LessonContentRow.lesson_id == lesson_id)
            .order_by(LessonContentRow.position)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_content(r) for r in rows]


def _row_to_course(row: CourseRow) -> Course:
    return Course(
        id=row.id, slug=row.slug, title=row.title, status=CourseStatus(row.status)
    )


def _row_to_module(row: CourseModuleRow) -> CourseModule:
    return CourseModule(
        id=row.id, course_id=row.course_id, position=row.position, title=row.title
    )


def _row_to_lesson(row: LessonRow) -> Lesson:
    return Lesson(
        id=row.id,
        module_id=row.module_id,
        position=row.position,
        title=row.title,
        is_required=row.is_required,
        estimated_duration=row.estimated_duration,
    )


def _row_to_content(row: LessonContentRow) -> LessonContent:
    return LessonContent(
        id=row.id,
        lesson_id=row.lesson_id,
        content_type=ContentType(row.content_type),
        position=row.position,
        title=row.title,
        is_required=row.is_required,
        media_duration=row.media_duration,
        quiz_id=row.quiz_id,
    )
