"""The set of repositories one request works against.

Services take a Repos instead of four separate arguments.  The API layer
builds it per request: PostgreSQL repos sharing one session (one
transaction) when DATABASE_URL is set, otherwise the module-level
in-memory repos.

Work that must only happen once the request's writes are visible to
other readers (cache invalidation) is queued with on_commit; get_repos
runs it after the commit and drops it when the request fails.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from app.repos.catalog_repo import CatalogRepo, InMemoryCatalogRepo
from app.repos.enrollment_repo import EnrollmentRepo, InMemoryEnrollmentRepo
from app.repos.progress_repo import InMemoryProgressRepo, ProgressRepo
from app.repos.quiz_repo import InMemoryQuizRepo, QuizRepo

AfterCommit = Callable[[], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class Repos:
    catalog: CatalogRepo
    enrollments: EnrollmentRepo
    progress: ProgressRepo
    quizzes: QuizRepo
    after_commit: list[AfterCommit] = field(default_factory=list)

    def on_commit(self, callback: AfterCommit) -> None:
        self.after_commit.append(callback)

    async def run_after_commit(self) -> None:
        callbacks = list(self.after_commit)
        self.after_commit.clear()
        for callback in callbacks:
            await callback()


def in_memory_repos() -> Repos:
    return Repos(
        catalog=InMemoryCatalogRepo(),
        enrollments=InMemoryEnrollmentRepo(),
        progress=InMemoryProgressRepo(),
        quizzes=InMemoryQuizRepo(),
    )
