"""Shared FastAPI dependencies.

get_repos yields the Repos bundle for one request.  With DATABASE_URL set
every repo shares one AsyncSession, so the whole request is a single
transaction: committed when the handler returns, rolled back when it
raises.  Without a database the module-level in-memory repos are used;
tests reset them through the autouse fixture in conftest.py.

Either way, callbacks queued with Repos.on_commit run only after the
handler succeeded (and, with a database, after the commit).
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from dataclasses import replace

from app.core.config import SETTINGS
from app.db.engine import async_session_factory
from app.repos.catalog_repo import InMemoryCatalogRepo
from app.repos.enrollment_repo import InMemoryEnrollmentRepo
from app.repos.pg_catalog_repo import PgCatalogRepo
from app.repos.pg_enrollment_repo import PgEnrollmentRepo
from app.repos.pg_progress_repo import PgProgressRepo
from app.repos.pg_quiz_repo import PgQuizRepo
from app.repos.progress_repo import InMemoryProgressRepo
from app.repos.quiz_repo import InMemoryQuizRepo
from app.repos.registry import Repos


# --- In-memory singletons (used when DATABASE_URL is not set) ---

catalog_repo = InMemoryCatalogRepo()
enrollment_repo = InMemoryEnrollmentRepo()
progress_repo = InMemoryProgressRepo()
quiz_repo = InMemoryQuizRepo()

MEMORY_REPOS = Repos(
    catalog=catalog_repo,
    enrollments=enrollment_repo,
    progress=progress_repo,
    quizzes=quiz_repo,
)


async def get_repos() -> AsyncGenerator[Repos, None]:
    if async_session_factory is None:
        # Fresh bundle over the shared stores, so on_commit work is per request.
        repos = replace(MEMORY_REPOS, after_commit=[])
        yield repos
        await repos.run_after_commit()
        return

    async with async_session_factory() as session:
        repos = Repos(
            catalog=PgCatalogRepo(session),
            enrollments=PgEnrollmentRepo(session),
            progress=PgProgressRepo(session),
            quizzes=PgQuizRepo(session),
        )
        try:
            yield repos
            await session.commit()
        except Exception:
            await session.rollback()
            raise
    await repos.run_after_commit()


def chain_enrollment_on_quiz_pass() -> bool:
    """Read per request so tests can override it with dependency_overrides."""
    return SETTINGS.chain_enrollment_on_quiz_pass
