from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from uuid import UUID, uuid4


class QuestionType(StrEnum):
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    TRUE_FALSE = "TRUE_FALSE"
    SHORT_ANSWER = "SHORT_ANSWER"  # stored, never auto-graded


class AttemptStatus(StrEnum):
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"  # kept for storage compatibility; grading skips it
    GRADED = "GRADED"


@dataclass(frozen=True, slots=True)
class Quiz:
    id: UUID
    lesson_id: UUID
    title: str
    description: str | None = None
    pass_score: Decimal = Decimal("70.00")  # percent of max_score
    time_limit: int | None = None  # minutes
    max_attempts: int = 3
    shuffle_questions: bool = False

    @staticmethod
    def new(
        *,
        lesson_id: UUID,
        title: str,
        description: str | None = None,
        pass_score: Decimal = Decimal("70.00"),
        time_limit: int | None = None,
        max_attempts: int = 3,
        shuffle_questions: bool = False,
    ) -> Quiz:
        return Quiz(
            id=uuid4(),
            lesson_id=lesson_id,
            title=title,
            description=description,
            pass_score=pass_score,
            time_limit=time_limit,
            max_attempts=max_attempts,
            shuffle_questions=shuffle_questions,
        )


@dataclass(frozen=True, slots=True)
class QuizOption:
    id: UUID
    question_id: UUID
    option_text: str
    is_correct: bool = False  # the answer key
    position: int = 0

    @staticmethod
    def new(
        *, question_id: UUID, option_text: str, is_correct: bool, position: int
    ) -> QuizOption:
        return QuizOption(
            id=uuid4(),
            question_id=question_id,
            option_text=option_text,
            is_correct=is_correct,
            position=position,
        )


@dataclass(frozen=True, slots=True)
class QuizQuestion:
    id: UUID
    quiz_id: UUID
    question_text: str
    question_type: QuestionType = QuestionType.MULTIPLE_CHOICE
    points: Decimal = Decimal("1.00")
    position: int = 0
    options: tuple[QuizOption, ...] = ()

    def option(self, option_id: UUID | None) -> QuizOption | None:
        if option_id is None:
            return None
        return next((o for o in self.options if o.id == option_id), None)


@dataclass(frozen=True, slots=True)
class QuizAttempt:
    id: UUID
    quiz_id: UUID
    enrollment_id: UUID
    attempt_number: int
    max_score: Decimal  # frozen when the attempt starts
    started_at: int
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    score: Decimal | None = None
    passed: bool | None = None
    submitted_at: int | None = None

    @staticmethod
    def new(
        *,
        quiz_id: UUID,
        enrollment_id: UUID,
        attempt_number: int,
        max_score: Decimal,
        started_at: int,
    ) -> QuizAttempt:
        return QuizAttempt(
            id=uuid4(),
            quiz_id=quiz_id,
            enrollment_id=enrollment_id,
            attempt_number=attempt_number,
            max_score=max_score,
            started_at=started_at,
        )


@dataclass(frozen=True, slots=True)
class QuizResponse:
    id: UUID
    attempt_id: UUID
    question_id: UUID
    answered_at: int
    option_id: UUID | None = None
    answer_text: str | None = None
    is_correct: bool | None = None  # None = not auto-gradable
    points_earned: Decimal = Decimal("0.00")
