"""Enrollment endpoints: enroll (one or many), list, inspect, drop, rebuild."""

from __future__ import annotations

import logging
from decimal import Decimal
from functools import partial
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from app.api.dependencies import get_repos
from app.api.progress import SummaryOut, summary_out
from app.models.enrollment import Enrollment, EnrollmentStatus
from app.repos.registry import Repos
from app.services import enrollment_service, progress_service
from app.services.cache import invalidate_progress
from app.services.errors import AlreadyEnrolledError, InvalidStateError, NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])


class EnrollIn(BaseModel):
    user_id: UUID
    course_id: UUID


class EnrollmentOut(BaseModel):
    id: UUID
    user_id: UUID
    course_id: UUID
    status: EnrollmentStatus
    progress_percent: Decimal
    enrolled_at: int
    completed_at: int | None


class BulkEnrollIn(BaseModel):
    course_id: UUID
    user_ids: list[UUID] = Field(min_length=1)


class BulkEnrollErrorOut(BaseModel):
    user_id: UUID
    error: str


class BulkEnrollOut(BaseModel):
    created: int
    failed: int
    enrollments: list[EnrollmentOut]
    errors: list[BulkEnrollErrorOut]


class EnrollmentDetailOut(EnrollmentOut):
    summaries: list[SummaryOut]


def enrollment_out(enrollment: Enrollment) -> EnrollmentOut:
    return EnrollmentOut(
        id=enrollment.id,
        user_id=enrollment.user_id,
        course_id=enrollment.course_id,
        status=enrollment.status,
        progress_percent=enrollment.progress_percent,
        enrolled_at=enrollment.enrolled_at,
        completed_at=enrollment.completed_at,
    )


@router.post("", response_model=EnrollmentOut, status_code=status.HTTP_201_CREATED)
async def enroll(
    body: EnrollIn,
    repos: Annotated[Repos, Depends(get_repos)],
) -> EnrollmentOut:
    try:
        enrollment = await enrollment_service.enroll(
            repos, user_id=body.user_id, course_id=body.course_id
        )
    except NotFoundError as e:
        logger.warning("Enrollment rejected: %s", e.message)
        raise HTTPException(status_code=404, detail=e.message) from None
    except AlreadyEnrolledError as e:
        logger.warning("Enrollment rejected: user=%s %s", body.user_id, e.message)
        raise HTTPException(status_code=409, detail=e.message) from None
    except InvalidStateError as e:
        logger.warning("Enrollment rejected: %s", e.message)
        raise HTTPException(status_code=400, detail=e.message) from None
    return enrollment_out(enrollment)


@router.post(
    "/bulk", response_model=BulkEnrollOut, status_code=status.HTTP_201_CREATED
)
async def bulk_enroll(
    body: BulkEnrollIn,
    repos: Annotated[Repos, Depends(get_repos)],
) -> BulkEnrollOut:
    """Enroll many users at once; users already enrolled are reported, not fatal."""
    try:
        result = await enrollment_service.bulk_enroll(
            repos, user_ids=body.user_ids, course_id=body.course_id
        )
    except NotFoundError as e:
        logger.warning("Bulk enrollment rejected: %s", e.message)
        raise HTTPException(status_code=404, detail=e.message) from None
    except InvalidStateError as e:
        logger.warning("Bulk enrollment rejected: %s", e.message)
        raise HTTPException(status_code=400, detail=e.message) from None
    return BulkEnrollOut(
        created=len(result.enrollments),
        failed=len(result.errors),
        enrollments=[enrollment_out(e) for e in result.enrollments],
        errors=[
            BulkEnrollErrorOut(user_id=f.user_id, error=f.error) for f in result.errors
        ],
    )


@router.get("", response_model=list[EnrollmentOut])
async def list_enrollments(
    repos: Annotated[Repos, Depends(get_repos)],
    course_id: Annotated[UUID | None, Query()] = None,
    user_id: Annotated[UUID | None, Query()] = None,
    status_filter: Annotated[EnrollmentStatus | None, Query(alias="status")] = None,
) -> list[EnrollmentOut]:
    enrollments = await enrollment_service.list_enrollments(
        repos, course_id=course_id, user_id=user_id, status=status_filter
    )
    return [enrollment_out(e) for e in enrollments]


@router.get("/{enrollment_id}", response_model=EnrollmentDetailOut)
async def get_enrollment(
    enrollment_id: UUID,
    repos: Annotated[Repos, Depends(get_repos)],
) -> EnrollmentDetailOut:
    try:
        detail = await enrollment_service.get_enrollment(repos, enrollment_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message) from None
    return EnrollmentDetailOut(
        **enrollment_out(detail.enrollment).model_dump(),
        summaries=[summary_out(s) for s in detail.summaries],
    )


@router.delete("/{enrollment_id}", response_model=EnrollmentOut)
async def drop_enrollment(
    enrollment_id: UUID,
    repos: Annotated[Repos, Depends(get_repos)],
) -> EnrollmentOut:
    try:
        enrollment = await enrollment_service.drop(repos, enrollment_id)
    except NotFoundError as e:
        logger.warning("Drop rejected: %s", e.message)
        raise HTTPException(status_code=404, detail=e.message) from None
    repos.on_commit(partial(invalidate_progress, enrollment_id))
    return enrollment_out(enrollment)


@router.post("/{enrollment_id}/rebuild", response_model=EnrollmentOut)
async def rebuild_enrollment(
    enrollment_id: UUID,
    repos: Annotated[Repos, Depends(get_repos)],
) -> EnrollmentOut:
    """Recompute every lesson summary and the enrollment from the log."""
    try:
        enrollment = await progress_service.rebuild_enrollment(repos, enrollment_id)
    except NotFoundError as e:
        logger.warning("Rebuild rejected: %s", e.message)
        raise HTTPException(status_code=404, detail=e.message) from None
    repos.on_commit(partial(invalidate_progress, enrollment_id))
    return enrollment_out(enrollment)
