from __future__ import annotations

import asyncio
from collections.abc import Iterator
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from app.api.dependencies import (
    MEMORY_REPOS,
    catalog_repo,
    enrollment_repo,
    progress_repo,
    quiz_repo,
)
from app.main import app
from app.models.course import (
    ContentType,
    Course,
    CourseModule,
    CourseStatus,
    Lesson,
    LessonContent,
)
from app.models.enrollment import Enrollment
from app.models.quiz import QuestionType, Quiz, QuizOption, QuizQuestion
from app.repos.registry import Repos, in_memory_repos
from app.services.cache import InMemoryCacheService, cache_service


@pytest.fixture(autouse=True)
def reset_repos() -> None:
    """Clear the in-memory repos the API uses between tests."""
    catalog_repo.clear()
    enrollment_repo.clear()
    progress_repo.clear()
    quiz_repo.clear()


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear cache between tests."""
    if isinstance(cache_service, InMemoryCacheService):
        cache_service.clear()


@pytest.fixture(autouse=True)
def reset_dependency_overrides() -> Iterator[None]:
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def repos() -> Repos:
    """Fresh repos for service-level tests; not shared with the API."""
    return in_memory_repos()


@pytest.fixture
def api_repos() -> Repos:
    """The repos the API reads and writes when no database is configured."""
    return MEMORY_REPOS


def run(coro):
    """Drive a coroutine from a sync test."""
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Catalog / enrollment / quiz builders
# ---------------------------------------------------------------------------


async def add_course(
    repos: Repos,
    *,
    slug: str | None = None,
    status: CourseStatus = CourseStatus.PUBLISHED,
) -> Course:
    course = Course.new(
        slug=slug or f"course-{uuid4().hex[:8]}", title="Course", status=status
    )
    await repos.catalog.add_course(course)
    return course


async def add_module(
    repos: Repos, course: Course, *, position: int = 1
) -> CourseModule:
    module = CourseModule.new(
        course_id=course.id, position=position, title=f"Module {position}"
    )
    await repos.catalog.add_module(module)
    return module


async def add_lesson(
    repos: Repos,
    module: CourseModule,
    *,
    position: int = 1,
    is_required: bool = True,
) -> Lesson:
    lesson = Lesson.new(
        module_id=module.id,
        position=position,
        title=f"Lesson {position}",
        is_required=is_required,
    )
    await repos.catalog.add_lesson(lesson)
    return lesson


async def add_content(
    repos: Repos,
    lesson: Lesson,
    content_type: ContentType,
    *,
    position: int = 1,
    is_required: bool = True,
    media_duration: int | None = None,
    quiz_id: UUID | None = None,
) -> LessonContent:
    content = LessonContent.new(
        lesson_id=lesson.id,
        content_type=content_type,
        position=position,
        title=f"{content_type.value.title()} {position}",
        is_required=is_required,
        media_duration=media_duration,
        quiz_id=quiz_id,
    )
    await repos.catalog.add_content(content)
    return content


async def add_enrollment(
    repos: Repos, course: Course, *, user_id: UUID | None = None
) -> Enrollment:
    enrollment = Enrollment.new(
        user_id=user_id or uuid4(), course_id=course.id, enrolled_at=1_000
    )
    await repos.enrollments.add(enrollment)
    return enrollment


async def add_quiz(
    repos: Repos,
    lesson: Lesson,
    *,
    questions: int = 2,
    pass_score: Decimal = Decimal("70.00"),
    max_attempts: int = 3,
    quiz_id: UUID | None = None,
) -> tuple[Quiz, list[QuizQuestion]]:
    """Multiple-choice quiz; each question's first option is correct."""
    quiz = Quiz(
        id=quiz_id or uuid4(),
        lesson_id=lesson.id,
        title="Quiz",
        pass_score=pass_score,
        max_attempts=max_attempts,
    )
    built: list[QuizQuestion] = []
    for n in range(1, questions + 1):
        question_id = uuid4()
        options = (
            QuizOption.new(
                question_id=question_id,
                option_text="right",
                is_correct=True,
                position=1,
            ),
            QuizOption.new(
                question_id=question_id,
                option_text="wrong",
                is_correct=False,
                position=2,
            ),
        )
        built.append(
            QuizQuestion(
                id=question_id,
                quiz_id=quiz.id,
                question_text=f"Question {n}",
                question_type=QuestionType.MULTIPLE_CHOICE,
                points=Decimal("1.00"),
                position=n,
                options=options,
            )
        )
    await repos.quizzes.add_quiz(quiz, built)
    return quiz, built


def right(question: QuizQuestion) -> UUID:
    return next(o.id for o in question.options if o.is_correct)


def wrong(question: QuizQuestion) -> UUID:
    return next(o.id for o in question.options if not o.is_correct)


# ---------------------------------------------------------------------------
# API helpers
# ---------------------------------------------------------------------------


def post_course(
    client: TestClient,
    lessons: list[list[dict]],
    *,
    status: str = "PUBLISHED",
) -> dict:
    """Create a one-module course; each inner list is one lesson's contents."""
    payload = {
        "slug": f"course-{uuid4().hex[:8]}",
        "title": "Course",
        "status": status,
        "modules": [
            {
                "title": "Module",
                "lessons": [
                    {"title": f"Lesson {n}", "contents": contents}
                    for n, contents in enumerate(lessons, start=1)
                ],
            }
        ],
    }
    resp = client.post("/v1/courses", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def post_enrollment(
    client: TestClient, course_id: str, *, user_id: UUID | None = None
) -> dict:
    resp = client.post(
        "/v1/enrollments",
        json={"user_id": str(user_id or uuid4()), "course_id": course_id},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def post_event(
    client: TestClient,
    enrollment_id: str,
    content_id: str,
    event_type: str = "VIEW",
    **extra: object,
):
    return client.post(
        "/v1/progress/events",
        json={
            "enrollment_id": enrollment_id,
            "lesson_content_id": content_id,
            "event_type": event_type,
            **extra,
        },
    )
