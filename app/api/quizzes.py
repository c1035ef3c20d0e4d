"""Quiz authoring, attempts, and grading endpoints.

  PUT  /v1/quizzes/{quiz_id}                  edit settings or questions
  POST /v1/quizzes/{quiz_id}/attempts         start (201, no answer key)
  POST /v1/quizzes/attempts/{attempt_id}/submit grade and apply progress

The static /attempts routes are declared before /{quiz_id} so they are
not captured by the path parameter.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from decimal import Decimal
from functools import partial
from typing import Annotated
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from app.api.dependencies import chain_enrollment_on_quiz_pass, get_repos
from app.api.enrollments import EnrollmentOut, enrollment_out
from app.api.progress import SummaryOut, summary_out
from app.models.quiz import (
    AttemptStatus,
    QuestionType,
    Quiz,
    QuizAttempt,
    QuizOption,
    QuizQuestion,
    QuizResponse,
)
from app.repos.registry import Repos
from app.services import quiz_service
from app.services.cache import invalidate_progress
from app.services.errors import InvalidStateError, NotFoundError
from app.services.grading import SubmittedAnswer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/quizzes", tags=["quizzes"])


# --- Pydantic schemas ---


class OptionIn(BaseModel):
    option_text: str
    is_correct: bool = False


class QuestionIn(BaseModel):
    question_text: str
    question_type: QuestionType = QuestionType.MULTIPLE_CHOICE
    points: Decimal = Field(default=Decimal("1.00"), ge=0, decimal_places=2)
    options: list[OptionIn] = []


class QuizIn(BaseModel):
    # Optional client-chosen id so QUIZ content can reference the quiz
    # before it exists.
    id: UUID | None = None
    lesson_id: UUID
    title: str = Field(min_length=1)
    description: str | None = None
    pass_score: Decimal = Field(default=Decimal("70.00"), ge=0, le=100)
    time_limit: int | None = Field(default=None, gt=0)
    max_attempts: int = Field(default=3, ge=1)
    shuffle_questions: bool = False
    questions: list[QuestionIn] = []


class QuizUpdateIn(BaseModel):
    """Only the fields sent are changed; questions, when sent, replace the set."""

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    pass_score: Decimal | None = Field(default=None, ge=0, le=100)
    time_limit: int | None = Field(default=None, gt=0)
    max_attempts: int | None = Field(default=None, ge=1)
    shuffle_questions: bool | None = None
    questions: list[QuestionIn] | None = None


class OptionOut(BaseModel):
    id: UUID
    option_text: str
    position: int


class KeyedOptionOut(OptionOut):
    is_correct: bool


class QuestionOut(BaseModel):
    id: UUID
    question_text: str
    question_type: QuestionType
    points: Decimal
    position: int
    options: list[KeyedOptionOut | OptionOut]  # key only with include_answers


class QuizOut(BaseModel):
    id: UUID
    lesson_id: UUID
    title: str
    description: str | None
    pass_score: Decimal
    time_limit: int | None
    max_attempts: int
    shuffle_questions: bool
    questions: list[QuestionOut]


class QuizListItemOut(BaseModel):
    id: UUID
    lesson_id: UUID
    title: str
    pass_score: Decimal
    max_attempts: int


class StartAttemptIn(BaseModel):
    enrollment_id: UUID


class AttemptOut(BaseModel):
    id: UUID
    quiz_id: UUID
    enrollment_id: UUID
    attempt_number: int
    status: AttemptStatus
    score: Decimal | None
    max_score: Decimal
    passed: bool | None
    started_at: int
    submitted_at: int | None


class StartedAttemptOut(BaseModel):
    attempt: AttemptOut
    quiz: QuizOut


class AnswerIn(BaseModel):
    question_id: UUID
    option_id: UUID | None = None
    answer_text: str | None = None


class SubmitIn(BaseModel):
    responses: list[AnswerIn] = []


class ResponseOut(BaseModel):
    id: UUID
    question_id: UUID
    option_id: UUID | None
    answer_text: str | None
    is_correct: bool | None
    points_earned: Decimal


class GradedAttemptOut(AttemptOut):
    responses: list[ResponseOut]


class SubmitOut(BaseModel):
    attempt: GradedAttemptOut
    passed: bool
    summary: SummaryOut | None
    enrollment: EnrollmentOut | None


# --- Converters ---


def _option_out(option: QuizOption, include_answers: bool) -> OptionOut:
    if include_answers:
        return KeyedOptionOut(
            id=option.id,
            option_text=option.option_text,
            position=option.position,
            is_correct=option.is_correct,
        )
    return OptionOut(
        id=option.id, option_text=option.option_text, position=option.position
    )


def _quiz_out(
    quiz: Quiz, questions: list[QuizQuestion], *, include_answers: bool
) -> QuizOut:
    return QuizOut(
        id=quiz.id,
        lesson_id=quiz.lesson_id,
        title=quiz.title,
        description=quiz.description,
        pass_score=quiz.pass_score,
        time_limit=quiz.time_limit,
        max_attempts=quiz.max_attempts,
        shuffle_questions=quiz.shuffle_questions,
        questions=[
            QuestionOut(
                id=q.id,
                question_text=q.question_text,
                question_type=q.question_type,
                points=q.points,
                position=q.position,
                options=[_option_out(o, include_answers) for o in q.options],
            )
            for q in questions
        ],
    )


def _attempt_out(attempt: QuizAttempt) -> AttemptOut:
    return AttemptOut(
        id=attempt.id,
        quiz_id=attempt.quiz_id,
        enrollment_id=attempt.enrollment_id,
        attempt_number=attempt.attempt_number,
        status=attempt.status,
        score=attempt.score,
        max_score=attempt.max_score,
        passed=attempt.passed,
        started_at=attempt.started_at,
        submitted_at=attempt.submitted_at,
    )


def _graded_out(
    attempt: QuizAttempt, responses: list[QuizResponse]
) -> GradedAttemptOut:
    return GradedAttemptOut(
        **_attempt_out(attempt).model_dump(),
        responses=[
            ResponseOut(
                id=r.id,
                question_id=r.question_id,
                option_id=r.option_id,
                answer_text=r.answer_text,
                is_correct=r.is_correct,
                points_earned=r.points_earned,
            )
            for r in responses
        ],
    )


def _build_questions(
    quiz_id: UUID, questions: list[QuestionIn]
) -> list[QuizQuestion]:
    """Positions come from list order."""
    built: list[QuizQuestion] = []
    for q_pos, q in enumerate(questions, start=1):
        question_id = uuid4()
        options = tuple(
            QuizOption.new(
                question_id=question_id,
                option_text=o.option_text,
                is_correct=o.is_correct,
                position=o_pos,
            )
            for o_pos, o in enumerate(q.options, start=1)
        )
        built.append(
            QuizQuestion(
                id=question_id,
                quiz_id=quiz_id,
                question_text=q.question_text,
                question_type=q.question_type,
                points=q.points,
                position=q_pos,
                options=options,
            )
        )
    return built


# --- Authoring ---


@router.post("", response_model=QuizOut, status_code=status.HTTP_201_CREATED)
async def create_quiz(
    body: QuizIn,
    repos: Annotated[Repos, Depends(get_repos)],
) -> QuizOut:
    if await repos.catalog.get_lesson(body.lesson_id) is None:
        raise HTTPException(status_code=404, detail="lesson not found")
    if body.id is not None and await repos.quizzes.get_quiz(body.id) is not None:
        raise HTTPException(status_code=409, detail="quiz id already exists")

    quiz = Quiz(
        id=body.id or uuid4(),
        lesson_id=body.lesson_id,
        title=body.title,
        description=body.description,
        pass_score=body.pass_score,
        time_limit=body.time_limit,
        max_attempts=body.max_attempts,
        shuffle_questions=body.shuffle_questions,
    )
    questions = _build_questions(quiz.id, body.questions)
    await repos.quizzes.add_quiz(quiz, questions)
    logger.info(
        "Created quiz=%s lesson=%s questions=%d",
        quiz.id,
        quiz.lesson_id,
        len(questions),
    )
    return _quiz_out(quiz, questions, include_answers=True)


@router.get("", response_model=list[QuizListItemOut])
async def list_quizzes(
    repos: Annotated[Repos, Depends(get_repos)],
    lesson_id: Annotated[UUID | None, Query()] = None,
) -> list[QuizListItemOut]:
    return [
        QuizListItemOut(
            id=q.id,
            lesson_id=q.lesson_id,
            title=q.title,
            pass_score=q.pass_score,
            max_attempts=q.max_attempts,
        )
        for q in await repos.quizzes.list_quizzes(lesson_id)
    ]


# --- Attempts (static paths first) ---


@router.get("/attempts", response_model=list[AttemptOut])
async def list_attempts(
    repos: Annotated[Repos, Depends(get_repos)],
    quiz_id: Annotated[UUID | None, Query()] = None,
    enrollment_id: Annotated[UUID | None, Query()] = None,
) -> list[AttemptOut]:
    attempts = await quiz_service.list_attempts(
        repos, quiz_id=quiz_id, enrollment_id=enrollment_id
    )
    return [_attempt_out(a) for a in attempts]


@router.get("/attempts/{attempt_id}", response_model=GradedAttemptOut)
async def get_attempt(
    attempt_id: UUID,
    repos: Annotated[Repos, Depends(get_repos)],
) -> GradedAttemptOut:
    try:
        attempt, responses = await quiz_service.get_attempt(repos, attempt_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message) from None
    return _graded_out(attempt, responses)


@router.post("/attempts/{attempt_id}/submit", response_model=SubmitOut)
async def submit_attempt(
    attempt_id: UUID,
    body: SubmitIn,
    repos: Annotated[Repos, Depends(get_repos)],
    chain: Annotated[bool, Depends(chain_enrollment_on_quiz_pass)],
) -> SubmitOut:
    try:
        graded = await quiz_service.submit_attempt(
            repos,
            attempt_id=attempt_id,
            answers=[
                SubmittedAnswer(
                    question_id=a.question_id,
                    option_id=a.option_id,
                    answer_text=a.answer_text,
                )
                for a in body.responses
            ],
            chain_enrollment=chain,
        )
    except NotFoundError as e:
        logger.warning("Submit rejected attempt=%s: %s", attempt_id, e.message)
        raise HTTPException(status_code=404, detail=e.message) from None
    except InvalidStateError as e:
        logger.warning("Submit rejected attempt=%s: %s", attempt_id, e.message)
        raise HTTPException(status_code=400, detail=e.message) from None

    repos.on_commit(partial(invalidate_progress, graded.attempt.enrollment_id))

    return SubmitOut(
        attempt=_graded_out(graded.attempt, graded.responses),
        passed=bool(graded.attempt.passed),
        summary=summary_out(graded.summary) if graded.summary else None,
        enrollment=enrollment_out(graded.enrollment) if graded.enrollment else None,
    )


# --- Per-quiz routes ---


@router.get("/{quiz_id}", response_model=QuizOut)
async def get_quiz(
    quiz_id: UUID,
    repos: Annotated[Repos, Depends(get_repos)],
    include_answers: Annotated[bool, Query()] = False,
) -> QuizOut:
    try:
        quiz, questions = await quiz_service.get_quiz(repos, quiz_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message) from None
    return _quiz_out(quiz, questions, include_answers=include_answers)


@router.post(
    "/{quiz_id}/attempts",
    response_model=StartedAttemptOut,
    status_code=status.HTTP_201_CREATED,
)
async def start_attempt(
    quiz_id: UUID,
    body: StartAttemptIn,
    repos: Annotated[Repos, Depends(get_repos)],
) -> StartedAttemptOut:
    try:
        started = await quiz_service.start_attempt(
            repos, quiz_id=quiz_id, enrollment_id=body.enrollment_id
        )
    except NotFoundError as e:
        logger.warning("Attempt rejected quiz=%s: %s", quiz_id, e.message)
        raise HTTPException(status_code=404, detail=e.message) from None
    except InvalidStateError as e:
        logger.warning("Attempt rejected quiz=%s: %s", quiz_id, e.message)
        raise HTTPException(status_code=400, detail=e.message) from None

    return StartedAttemptOut(
        attempt=_attempt_out(started.attempt),
        quiz=_quiz_out(started.quiz, started.questions, include_answers=False),
    )


# Nullable on the quiz itself, so an explicit null clears them.
_CLEARABLE = frozenset({"description", "time_limit"})


@router.put("/{quiz_id}", response_model=QuizOut)
async def update_quiz(
    quiz_id: UUID,
    body: QuizUpdateIn,
    repos: Annotated[Repos, Depends(get_repos)],
) -> QuizOut:
    try:
        quiz, _ = await quiz_service.get_quiz(repos, quiz_id)
        changes = {
            field: value
            for field, value in body.model_dump(
                exclude_unset=True, exclude={"questions"}
            ).items()
            if value is not None or field in _CLEARABLE
        }
        questions = (
            _build_questions(quiz_id, body.questions)
            if body.questions is not None
            else None
        )
        quiz, stored = await quiz_service.update_quiz(
            repos, replace(quiz, **changes), questions
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message) from None
    except InvalidStateError as e:
        logger.warning("Quiz update rejected quiz=%s: %s", quiz_id, e.message)
        raise HTTPException(status_code=400, detail=e.message) from None
    return _quiz_out(quiz, stored, include_answers=True)
