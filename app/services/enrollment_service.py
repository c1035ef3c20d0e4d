from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from uuid import UUID

from app.models.course import CourseStatus
from app.models.enrollment import Enrollment, EnrollmentStatus
from app.models.progress import ProgressSummary
from app.repos.enrollment_repo import DuplicateEnrollmentError
from app.repos.registry import Repos
from app.services.errors import AlreadyEnrolledError, InvalidStateError, NotFoundError
from app.services.locks import enrollment_locks
from app.services.progress_service import now_ts

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EnrollmentDetail:
    enrollment: Enrollment
    summaries: list[ProgressSummary]


@dataclass(frozen=True, slots=True)
class BulkEnrollFailure:
    user_id: UUID
    error: str


@dataclass(frozen=True, slots=True)
class BulkEnrollment:
    enrollments: list[Enrollment]
    errors: list[BulkEnrollFailure]


async def _check_enrollable(repos: Repos, course_id: UUID) -> None:
    course = await repos.catalog.get_course(course_id)
    if course is None:
        raise NotFoundError("course")
    if course.status != CourseStatus.PUBLISHED:
        raise InvalidStateError("course is not published", "course_not_published")


async def enroll(
    repos: Repos, *, user_id: UUID, course_id: UUID, now: int | None = None
) -> Enrollment:
    """Register a user in a published course."""
    await _check_enrollable(repos, course_id)

    if await repos.enrollments.get_by_user_course(user_id, course_id) is not None:
        raise AlreadyEnrolledError()

    enrollment = Enrollment.new(
        user_id=user_id,
        course_id=course_id,
        enrolled_at=now if now is not None else now_ts(),
    )
    try:
        await repos.enrollments.add(enrollment)
    except DuplicateEnrollmentError:
        # Lost a race with a concurrent enroll for the same pair.
        raise AlreadyEnrolledError() from None

    logger.info(
        "Enrolled user=%s course=%s",
        user_id,
        course_id,
        extra={"enrollment_id": str(enrollment.id)},
    )
    return enrollment


async def bulk_enroll(
    repos: Repos,
    *,
    user_ids: list[UUID],
    course_id: UUID,
    now: int | None = None,
) -> BulkEnrollment:
    """Enroll several users in one course, collecting per-user failures.

    An unknown or unpublished course fails the whole call; a user who is
    already enrolled (or listed twice) is reported and skipped.
    """
    await _check_enrollable(repos, course_id)
    ts = now if now is not None else now_ts()
    created: list[Enrollment] = []
    errors: list[BulkEnrollFailure] = []
    for user_id in user_ids:
        try:
            enrollment = await enroll(
                repos, user_id=user_id, course_id=course_id, now=ts
            )
        except AlreadyEnrolledError as e:
            errors.append(BulkEnrollFailure(user_id=user_id, error=e.message))
            continue
        created.append(enrollment)

    logger.info(
        "Bulk enrolled course=%s created=%d failed=%d",
        course_id,
        len(created),
        len(errors),
    )
    return BulkEnrollment(enrollments=created, errors=errors)


async def drop(repos: Repos, enrollment_id: UUID) -> Enrollment:
    """Administrative drop.  Idempotent; progress is kept."""
    async with enrollment_locks.hold(enrollment_id):
        enrollment = await repos.enrollments.get_for_update(enrollment_id)
        if enrollment is None:
            raise NotFoundError("enrollment")
        if enrollment.status == EnrollmentStatus.DROPPED:
            return enrollment
        dropped = replace(enrollment, status=EnrollmentStatus.DROPPED)
        await repos.enrollments.save(dropped)

    logger.info(
        "Dropped enrollment previous_status=%s",
        enrollment.status,
        extra={"enrollment_id": str(enrollment_id)},
    )
    return dropped


async def get_enrollment(repos: Repos, enrollment_id: UUID) -> EnrollmentDetail:
    enrollment = await repos.enrollments.get(enrollment_id)
    if enrollment is None:
        raise NotFoundError("enrollment")
    summaries = await repos.progress.list_summaries(enrollment_id)
    return EnrollmentDetail(enrollment=enrollment, summaries=summaries)


async def list_enrollments(
    repos: Repos,
    *,
    course_id: UUID | None = None,
    user_id: UUID | None = None,
    status: EnrollmentStatus | None = None,
) -> list[Enrollment]:
    return await repos.enrollments.list(
        course_id=course_id, user_id=user_id, status=status
    )
