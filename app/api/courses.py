"""Course catalog endpoints.

The progress core only reads the catalog; these endpoints exist so a
course outline (modules → lessons → contents) can be authored in one
request and inspected afterwards.  Positions come from list order.
A course is enrollable once published; publishing needs at least one module.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from app.api.dependencies import get_repos
from app.models.course import (
    ContentType,
    Course,
    CourseModule,
    CourseStatus,
    Lesson,
    LessonContent,
)
from app.repos.registry import Repos

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/courses", tags=["courses"])


# --- Pydantic schemas ---


class ContentIn(BaseModel):
    title: str
    content_type: ContentType
    is_required: bool = True
    media_duration: int | None = Field(default=None, gt=0)
    quiz_id: UUID | None = None


class LessonIn(BaseModel):
    title: str
    is_required: bool = True
    estimated_duration: int | None = None
    contents: list[ContentIn] = []


class ModuleIn(BaseModel):
    title: str
    lessons: list[LessonIn] = []


class CourseIn(BaseModel):
    slug: str = Field(min_length=1, max_length=255)
    title: str = Field(min_length=1, max_length=500)
    status: CourseStatus = CourseStatus.DRAFT
    modules: list[ModuleIn] = []


class CourseOut(BaseModel):
    id: UUID
    slug: str
    title: str
    status: CourseStatus


class ContentOut(BaseModel):
    id: UUID
    title: str
    content_type: ContentType
    position: int
    is_required: bool
    media_duration: int | None
    quiz_id: UUID | None


class LessonOut(BaseModel):
    id: UUID
    title: str
    position: int
    is_required: bool
    estimated_duration: int | None
    contents: list[ContentOut]


class ModuleOut(BaseModel):
    id: UUID
    title: str
    position: int
    lessons: list[LessonOut]


class CourseOutlineOut(CourseOut):
    modules: list[ModuleOut]


def _course_out(course: Course) -> CourseOut:
    return CourseOut(
        id=course.id, slug=course.slug, title=course.title, status=course.status
    )


async def _outline(repos: Repos, course: Course) -> CourseOutlineOut:
    modules: list[ModuleOut] = []
    lessons = await repos.catalog.list_lessons(course.id)
    for module in await repos.catalog.list_modules(course.id):
        lesson_outs = []
        for lesson in (x for x in lessons if x.module_id == module.id):
            contents = await repos.catalog.list_contents(lesson.id)
            lesson_outs.append(
                LessonOut(
                    id=lesson.id,
                    title=lesson.title,
                    position=lesson.position,
                    is_required=lesson.is_required,
                    estimated_duration=lesson.estimated_duration,
                    contents=[
                        ContentOut(
                            id=c.id,
                            title=c.title,
                            content_type=c.content_type,
                            position=c.position,
                            is_required=c.is_required,
                            media_duration=c.media_duration,
                            quiz_id=c.quiz_id,
                        )
                        for c in contents
                    ],
                )
            )
        modules.append(
            ModuleOut(
                id=module.id,
                title=module.title,
                position=module.position,
                lessons=lesson_outs,
            )
        )
    return CourseOutlineOut(**_course_out(course).model_dump(), modules=modules)


# --- Endpoints ---


@router.post("", response_model=CourseOutlineOut, status_code=status.HTTP_201_CREATED)
async def create_course(
    body: CourseIn,
    repos: Annotated[Repos, Depends(get_repos)],
) -> CourseOutlineOut:
    """Create a course together with its full outline."""
    course = Course.new(slug=body.slug, title=body.title, status=body.status)
    try:
        await repos.catalog.add_course(course)
    except ValueError:
        logger.warning("Course slug already taken: %s", body.slug)
        raise HTTPException(status_code=409, detail="slug already taken") from None

    for m_pos, m in enumerate(body.modules, start=1):
        module = CourseModule.new(course_id=course.id, position=m_pos, title=m.title)
        await repos.catalog.add_module(module)
        for l_pos, lesson_in in enumerate(m.lessons, start=1):
            lesson = Lesson.new(
                module_id=module.id,
                position=l_pos,
                title=lesson_in.title,
                is_required=lesson_in.is_required,
                estimated_duration=lesson_in.estimated_duration,
            )
            await repos.catalog.add_lesson(lesson)
            for c_pos, c in enumerate(lesson_in.contents, start=1):
                await repos.catalog.add_content(
                    LessonContent.new(
                        lesson_id=lesson.id,
                        content_type=c.content_type,
                        position=c_pos,
                        title=c.title,
                        is_required=c.is_required,
                        media_duration=c.media_duration,
                        quiz_id=c.quiz_id,
                    )
                )

    logger.info("Created course=%s slug=%s", course.id, course.slug)
    return await _outline(repos, course)


@router.get("", response_model=list[CourseOut])
async def list_courses(
    repos: Annotated[Repos, Depends(get_repos)],
) -> list[CourseOut]:
    return [_course_out(c) for c in await repos.catalog.list_courses()]


@router.get("/{course_id}", response_model=CourseOutlineOut)
async def get_course(
    course_id: UUID,
    repos: Annotated[Repos, Depends(get_repos)],
) -> CourseOutlineOut:
    course = await repos.catalog.get_course(course_id)
    if course is None:
        raise HTTPException(status_code=404, detail="course not found")
    return await _outline(repos, course)


@router.put("/{course_id}/publish", response_model=CourseOut)
async def publish_course(
    course_id: UUID,
    repos: Annotated[Repos, Depends(get_repos)],
) -> CourseOut:
    course = await repos.catalog.get_course(course_id)
    if course is None:
        raise HTTPException(status_code=404, detail="course not found")
    if course.status == CourseStatus.PUBLISHED:
        return _course_out(course)
    if not await repos.catalog.list_modules(course.id):
        logger.warning("Publish rejected course=%s: no modules", course.id)
        raise HTTPException(
            status_code=400, detail="cannot publish a course without modules"
        )

    published = replace(course, status=CourseStatus.PUBLISHED)
    await repos.catalog.save_course(published)
    logger.info(
        "Published course=%s previous_status=%s", course.id, course.status
    )
    return _course_out(published)
