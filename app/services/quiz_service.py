"""Quiz attempts: start, submit and grade, and the progress side effects.

A passing submission writes the lesson summary directly (100%, with the
attempt's score) and, when enabled, re-runs the enrollment roll-up in the
same critical section.  Every submission also appends a QUIZ_SUBMIT event
for each QUIZ content item bound to the quiz, so the event log stays the
complete record and a later rebuild arrives at the same summary.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace
from decimal import Decimal
from uuid import UUID

from app.core.metrics import QUIZ_ATTEMPTS_GRADED
from app.models.course import ContentType
from app.models.enrollment import Enrollment
from app.models.progress import EventType, ProgressEvent, ProgressSummary
from app.models.quiz import (
    AttemptStatus,
    Quiz,
    QuizAttempt,
    QuizQuestion,
    QuizResponse,
)
from app.repos.quiz_repo import AttemptNumberTakenError
from app.repos.registry import Repos
from app.services import aggregation, grading
from app.services.errors import InvalidStateError, NotFoundError
from app.services.locks import attempt_locks, enrollment_locks
from app.services.progress_service import (
    course_of_lesson,
    now_ts,
    update_enrollment_progress,
)

logger = logging.getLogger(__name__)

# Recount-and-retry budget when another writer takes our attempt number.
_NUMBERING_RETRIES = 3


@dataclass(frozen=True, slots=True)
class StartedAttempt:
    attempt: QuizAttempt
    quiz: Quiz
    questions: list[QuizQuestion]


@dataclass(frozen=True, slots=True)
class GradedAttempt:
    attempt: QuizAttempt
    responses: list[QuizResponse]
    summary: ProgressSummary | None = None  # only written on a pass
    enrollment: Enrollment | None = None  # only when the roll-up ran


async def get_quiz(repos: Repos, quiz_id: UUID) -> tuple[Quiz, list[QuizQuestion]]:
    quiz = await repos.quizzes.get_quiz(quiz_id)
    if quiz is None:
        raise NotFoundError("quiz")
    return quiz, await repos.quizzes.list_questions(quiz_id)


async def update_quiz(
    repos: Repos, quiz: Quiz, questions: list[QuizQuestion] | None = None
) -> tuple[Quiz, list[QuizQuestion]]:
    """Edit quiz settings, and optionally swap in a new question set.

    Attempts already started keep their frozen max_score.  Questions cannot
    be replaced once any attempt has been graded, since its responses point
    at them.
    """
    if await repos.quizzes.get_quiz(quiz.id) is None:
        raise NotFoundError("quiz")
    if questions is not None:
        attempts = await repos.quizzes.list_attempts(quiz_ids=[quiz.id])
        if any(a.status == AttemptStatus.GRADED for a in attempts):
            raise InvalidStateError(
                "questions cannot be replaced after attempts were graded",
                "quiz_has_graded_attempts",
            )

    await repos.quizzes.update_quiz(quiz, questions)
    logger.info(
        "Updated quiz=%s questions_replaced=%s", quiz.id, questions is not None
    )
    return quiz, await repos.quizzes.list_questions(quiz.id)


async def start_attempt(
    repos: Repos,
    *,
    quiz_id: UUID,
    enrollment_id: UUID,
    now: int | None = None,
) -> StartedAttempt:
    """Open the next numbered attempt, enforcing quiz.max_attempts.

    max_score is frozen on the attempt here; later edits to the quiz do
    not change how this attempt is graded.
    """
    ts = now if now is not None else now_ts()
    quiz, questions = await get_quiz(repos, quiz_id)
    enrollment = await repos.enrollments.get(enrollment_id)
    if enrollment is None:
        raise NotFoundError("enrollment")
    if await course_of_lesson(repos, quiz.lesson_id) != enrollment.course_id:
        raise InvalidStateError(
            "quiz does not belong to the enrollment's course", "quiz_not_in_course"
        )
    ceiling = grading.max_score(questions)

    async with attempt_locks.hold((quiz_id, enrollment_id)):
        for _ in range(_NUMBERING_RETRIES):
            prior = await repos.quizzes.count_attempts(quiz_id, enrollment_id)
            if prior >= quiz.max_attempts:
                raise InvalidStateError(
                    "maximum attempts reached", "max_attempts_reached"
                )
            attempt = QuizAttempt.new(
                quiz_id=quiz_id,
                enrollment_id=enrollment_id,
                attempt_number=prior + 1,
                max_score=ceiling,
                started_at=ts,
            )
            try:
                await repos.quizzes.add_attempt(attempt)
            except AttemptNumberTakenError:
                logger.warning(
                    "Attempt number %d taken quiz=%s enrollment=%s, recounting",
                    attempt.attempt_number,
                    quiz_id,
                    enrollment_id,
                )
                continue

            logger.info(
                "Started attempt=%s number=%d quiz=%s",
                attempt.id,
                attempt.attempt_number,
                quiz_id,
                extra={"enrollment_id": str(enrollment_id)},
            )
            return StartedAttempt(attempt=attempt, quiz=quiz, questions=questions)

    raise InvalidStateError(
        "could not allocate an attempt number", "attempt_number_conflict"
    )


async def submit_attempt(
    repos: Repos,
    *,
    attempt_id: UUID,
    answers: Iterable[grading.SubmittedAnswer],
    chain_enrollment: bool = True,
    now: int | None = None,
) -> GradedAttempt:
    """Grade an IN_PROGRESS attempt and apply its progress effects.

    Raises NotFoundError for an unknown attempt and InvalidStateError when
    the attempt was already submitted.
    """
    ts = now if now is not None else now_ts()
    found = await repos.quizzes.get_attempt(attempt_id)
    if found is None:
        raise NotFoundError("attempt")

    async with enrollment_locks.hold(found.enrollment_id):
        # Row-lock the enrollment as track_event does, then the attempt.  The
        # status is re-read under the lock: a concurrent submit may have won.
        locked = await repos.enrollments.get_for_update(found.enrollment_id)
        if locked is None:
            raise NotFoundError("enrollment")
        attempt = await repos.quizzes.get_attempt_for_update(attempt_id)
        if attempt is None:
            raise NotFoundError("attempt")
        if attempt.status != AttemptStatus.IN_PROGRESS:
            raise InvalidStateError("attempt already submitted", "already_submitted")

        quiz, questions = await get_quiz(repos, attempt.quiz_id)
        responses = grading.grade_responses(attempt.id, questions, answers, now=ts)
        score = grading.total_score(responses)
        passed = grading.is_passing(score, attempt.max_score, quiz.pass_score)

        await repos.quizzes.add_responses(responses)
        graded = replace(
            attempt,
            status=AttemptStatus.GRADED,
            score=score,
            passed=passed,
            submitted_at=ts,
        )
        await repos.quizzes.save_attempt(graded)
        QUIZ_ATTEMPTS_GRADED.labels(passed=str(passed).lower()).inc()

        await _log_submission(repos, quiz, graded, score, ts)

        summary = None
        enrollment = None
        if passed:
            existing = await repos.progress.get_summary(
                attempt.enrollment_id, quiz.lesson_id
            )
            summary = aggregation.mark_quiz_passed(
                existing,
                enrollment_id=attempt.enrollment_id,
                lesson_id=quiz.lesson_id,
                score=score,
                now=ts,
            )
            await repos.progress.save_summary(summary)

            if chain_enrollment:
                enrollment = await update_enrollment_progress(repos, locked, ts)

    logger.info(
        "Graded attempt=%s score=%s/%s passed=%s",
        graded.id,
        score,
        graded.max_score,
        passed,
        extra={"enrollment_id": str(graded.enrollment_id)},
    )
    return GradedAttempt(
        attempt=graded, responses=responses, summary=summary, enrollment=enrollment
    )


async def _log_submission(
    repos: Repos, quiz: Quiz, attempt: QuizAttempt, score: Decimal, now: int
) -> None:
    """Append QUIZ_SUBMIT for each QUIZ content item bound to this quiz."""
    for content in await repos.catalog.list_contents(quiz.lesson_id):
        if content.content_type != ContentType.QUIZ or content.quiz_id != quiz.id:
            continue
        await repos.progress.append_event(
            ProgressEvent.new(
                enrollment_id=attempt.enrollment_id,
                lesson_content_id=content.id,
                event_type=EventType.QUIZ_SUBMIT,
                occurred_at=now,
                is_completed=bool(attempt.passed),
                metadata={"attempt_id": str(attempt.id), "score": str(score)},
            )
        )


async def list_attempts(
    repos: Repos,
    *,
    quiz_id: UUID | None = None,
    enrollment_id: UUID | None = None,
) -> list[QuizAttempt]:
    quiz_ids = [quiz_id] if quiz_id is not None else None
    return await repos.quizzes.list_attempts(
        quiz_ids=quiz_ids, enrollment_id=enrollment_id
    )


async def get_attempt(
    repos: Repos, attempt_id: UUID
) -> tuple[QuizAttempt, list[QuizResponse]]:
    attempt = await repos.quizzes.get_attempt(attempt_id)
    if attempt is None:
        raise NotFoundError("attempt")
    return attempt, await repos.quizzes.list_responses(attempt_id)
