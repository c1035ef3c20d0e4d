from __future__ import annotations

from typing import Protocol
from uuid import UUID

from app.models.course import Course, CourseModule, Lesson, LessonContent


class CatalogRepo(Protocol):
    """Course structure: courses → modules → lessons → contents.

    Read-only from the progress core's point of view; the add_* methods
    exist for authoring and seeding.
    """

    async def get_course(self, course_id: UUID) -> Course | None: ...
    async def get_course_by_slug(self, slug: str) -> Course | None: ...
    async def list_courses(self) -> list[Course]: ...
    async def add_course(self, course: Course) -> None: ...
    async def save_course(self, course: Course) -> None: ...
    async def add_module(self, module: CourseModule) -> None: ...
    async def add_lesson(self, lesson: Lesson) -> None: ...
    async def add_content(self, content: LessonContent) -> None: ...
    async def get_module(self, module_id: UUID) -> CourseModule | None: ...
    async def list_modules(self, course_id: UUID) -> list[CourseModule]: ...
    async def get_lesson(self, lesson_id: UUID) -> Lesson | None: ...
    async def list_lessons(self, course_id: UUID) -> list[Lesson]: ...
    async def get_content(self, content_id: UUID) -> LessonContent | None: ...
    async def list_contents(self, lesson_id: UUID) -> list[LessonContent]: ...


class InMemoryCatalogRepo:
    def __init__(self) -> None:
        self._courses: dict[UUID, Course] = {}
        self._modules: dict[UUID, CourseModule] = {}
        self._lessons: dict[UUID, Lesson] = {}
        self._contents: dict[UUID, LessonContent] = {}

    def clear(self) -> None:
        self._courses.clear()
        self._modules.clear()
        self._lessons.clear()
        self._contents.clear()

    async def get_course(self, course_id: UUID) -> Course | None:
        return self._courses.get(course_id)

    async def get_course_by_slug(self, slug: str) -> Course | None:
        return next((c for c in self._courses.values() if c.slug == slug), None)

    async def list_courses(self) -> list[Course]:
        return list(self._courses.values())

    async def add_course(self, course: Course) -> None:
        if await self.get_course_by_slug(course.slug) is not None:
            raise ValueError("slug already exists")
        self._courses[course.id] = course

    async def save_course(self, course: Course) -> None:
        if course.id not in self._courses:
            raise KeyError("course not found")
        self._courses[course.id] = course

    async def add_module(self, module: CourseModule) -> None:
        self._modules[module.id] = module

    async def add_lesson(self, lesson: Lesson) -> None:
        self._lessons[lesson.id] = lesson

    async def add_content(self, content: LessonContent) -> None:
        self._contents[content.id] = content

    async def get_module(self, module_id: UUID) -> CourseModule | None:
        return self._modules.get(module_id)

    async def list_modules(self, course_id: UUID) -> list[CourseModule]:
        modules = [m for m in self._modules.values() if m.course_id == course_id]
        return sorted(modules, key=lambda m: m.position)

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None:
        return self._lessons.get(lesson_id)

    async def list_lessons(self, course_id: UUID) -> list[Lesson]:
        lessons: list[Lesson] = []
        for module in await self.list_modules(course_id):
            in_module = [
                lesson
                for lesson in self._lessons.values()
                if lesson.module_id == module.id
            ]
            lessons.extend(sorted(in_module, key=lambda lesson: lesson.position))
        return lessons

    async def get_content(self, content_id: UUID) -> LessonContent | None:
        return self._contents.get(content_id)

    async def list_contents(self, lesson_id: UUID) -> list[LessonContent]:
        contents = [c for c in self._contents.values() if c.lesson_id == lesson_id]
        return sorted(contents, key=lambda c: c.position)
