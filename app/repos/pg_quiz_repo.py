"""PostgreSQL implementation of QuizRepo."""

from __future__ import annotations

from collections.abc import Collection
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import (
    QuizAttemptRow,
    QuizOptionRow,
    QuizQuestionRow,
    QuizResponseRow,
    QuizRow,
)
from app.models.quiz import (
    AttemptStatus,
    QuestionType,
    Quiz,
    QuizAttempt,
    QuizOption,
    QuizQuestion,
    QuizResponse,
)
from app.repos.quiz_repo import AttemptNumberTakenError


class PgQuizRepo:
    """Satisfies the QuizRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add_quiz(self, quiz: Quiz, questions: list[QuizQuestion]) -> None:
        self._session.add(
            QuizRow(
                id=quiz.id,
                lesson_id=quiz.lesson_id,
                title=quiz.title,
                description=quiz.description,
                pass_score=quiz.pass_score,
                time_limit=quiz.time_limit,
                max_attempts=quiz.max_attempts,
                shuffle_questions=quiz.shuffle_questions,
            )
        )
        self._add_questions(quiz.id, questions)
        await self._session.flush()

    async def update_quiz(
        self, quiz: Quiz, questions: list[QuizQuestion] | None = None
    ) -> None:
        row = await self._session.get(QuizRow, quiz.id)
        if row is None:
            raise KeyError("quiz not found")
        row.title = quiz.title
        row.description = quiz.description
        row.pass_score = quiz.pass_score
        row.time_limit = quiz.time_limit
        row.max_attempts = quiz.max_attempts
        row.shuffle_questions = quiz.shuffle_questions
        if questions is not None:
            old_ids = select(QuizQuestionRow.id).where(
                QuizQuestionRow.quiz_id == quiz.id
            )
            await self._session.execute(
                delete(QuizOptionRow).where(QuizOptionRow.question_id.in_(old_ids))
            )
            await self._session.execute(
                delete(QuizQuestionRow).where(QuizQuestionRow.quiz_id == quiz.id)
            )
            self._add_questions(quiz.id, questions)
        await self._session.flush()

    def _add_questions(self, quiz_id: UUID, questions: list[QuizQuestion]) -> None:
        for q in questions:
            self._session.add(
                QuizQuestionRow(
                    id=q.id,
                    quiz_id=quiz_id,
                    question_text=q.question_text,
                    question_type=q.question_type.value,
                    points=q.points,
                    position=q.position,
                )
            )
            for o in q.options:
                self._session.add(
                    QuizOptionRow(
                        id=o.id,
                        question_id=q.id,
                        option_text=o.option_text,
                        is_correct=o.is_correct,
                        position=o.position,
                    )
                )

    async def get_quiz(self, quiz_id: UUID) -> Quiz | None:
        row = await self._session.get(QuizRow, quiz_id)
        return _row_to_quiz(row) if row is not None else None

    async def list_quizzes(self, lesson_id: UUID | None = None) -> list[Quiz]:
        stmt = select(QuizRow).order_by(QuizRow.title)
        if lesson_id is not None:
            stmt = stmt.where(QuizRow.lesson_id == lesson_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_quiz(r) for r in rows]

    async def list_questions(self, quiz_id: UUID) -> list[QuizQuestion]:
        q_stmt = (
            select(QuizQuestionRow)
            .where(QuizQuestionRow.quiz_id == quiz_id)
            .order_by(QuizQuestionRow.position)
        )
        question_rows = (await self._session.execute(q_stmt)).scalars().all()
        if not question_rows:
            return []

        o_stmt = (
            select(QuizOptionRow)
            .where(QuizOptionRow.question_id.in_([r.id for r in question_rows]))
            .order_by(QuizOptionRow.position)
        )
        options: dict[UUID, list[QuizOption]] = {}
        for o in (await self._session.execute(o_stmt)).scalars().all():
            options.setdefault(o.question_id, []).append(_row_to_option(o))

        return [
            _row_to_question(r, tuple(options.get(r.id, ()))) for r in question_rows
        ]

    async def count_attempts(self, quiz_id: UUID, enrollment_id: UUID) -> int:
        stmt = select(func.count()).where(
            QuizAttemptRow.quiz_id == quiz_id,
            QuizAttemptRow.enrollment_id == enrollment_id,
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def add_attempt(self, attempt: QuizAttempt) -> None:
        row = QuizAttemptRow(
            id=attempt.id,
            quiz_id=attempt.quiz_id,
            enrollment_id=attempt.enrollment_id,
            attempt_number=attempt.attempt_number,
            status=attempt.status.value,
            max_score=attempt.max_score,
            started_at=attempt.started_at,
        )
        # Savepoint: a unique violation must not poison the request transaction.
        try:
            async with self._session.begin_nested():
                self._session.add(row)
        except IntegrityError:
            raise AttemptNumberTakenError("attempt number already used") from None

    async def get_attempt(self, attempt_id: UUID) -> QuizAttempt | None:
        row = await self._session.get(QuizAttemptRow, attempt_id)
        return _row_to_attempt(row) if row is not None else None

    async def get_attempt_for_update(self, attempt_id: UUID) -> QuizAttempt | None:
        # populate_existing: the row may already sit in the identity map with
        # the status read before the lock was granted.
        stmt = (
            select(QuizAttemptRow)
            .where(QuizAttemptRow.id == attempt_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_attempt(row) if row is not None else None

    async def save_attempt(self, attempt: QuizAttempt) -> None:
        row = await self._session.get(QuizAttemptRow, attempt.id)
        if row is None:
            raise KeyError("attempt not found")
        row.status = attempt.status.value
        row.score = attempt.score
        row.passed = attempt.passed
        row.submitted_at = attempt.submitted_at
        await self._session.flush()

    async def list_attempts(
        self,
        *,
        quiz_ids: Collection[UUID] | None = None,
        enrollment_id: UUID | None = None,
    ) -> list[QuizAttempt]:
        stmt = select(QuizAttemptRow).order_by(
            QuizAttemptRow.started_at.desc(), QuizAttemptRow.attempt_number.desc()
        )
        if quiz_ids is not None:
            if not quiz_ids:
                return []
            stmt = stmt.where(QuizAttemptRow.quiz_id.in_(quiz_ids))
        if enrollment_id is not None:
            stmt = stmt.where(QuizAttemptRow.enrollment_id == enrollment_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_attempt(r) for r in rows]

    async def add_responses(self, responses: list[QuizResponse]) -> None:
        self._session.add_all(
            QuizResponseRow(
                id=r.id,
                attempt_id=r.attempt_id,
                question_id=r.question_id,
                option_id=r.option_id,
                answer_text=r.answer_text,
                is_correct=r.is_correct,
                points_earned=r.points_earned,
                answered_at=r.answered_at,
            )
            for r in responses
        )
        await self._session.flush()

    async def list_responses(self, attempt_id: UUID) -> list[QuizResponse]:
        stmt = select(QuizResponseRow).where(QuizResponseRow.attempt_id == attempt_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_response(r) for r in rows]


def _row_to_quiz(row: QuizRow) -> Quiz:
    return Quiz(
        id=row.id,
        lesson_id=row.lesson_id,
        title=row.title,
        description=row.description,
        pass_score=row.pass_score,
        time_limit=row.time_limit,
        max_attempts=row.max_attempts,
        shuffle_questions=row.shuffle_questions,
    )


def _row_to_option(row: QuizOptionRow) -> QuizOption:
    return QuizOption(
        id=row.id,
        question_id=row.question_id,
        option_text=row.option_text,
        is_correct=row.is_correct,
        position=row.position,
    )


def _row_to_question(
    row: QuizQuestionRow, options: tuple[QuizOption, ...]
) -> QuizQuestion:
    return QuizQuestion(
        id=row.id,
        quiz_id=row.quiz_id,
        question_text=row.question_text,
        question_type=QuestionType(row.question_type),
        points=row.points,
        position=row.position,
        options=options,
    )


def _row_to_attempt(row: QuizAttemptRow) -> QuizAttempt:
    return QuizAttempt(
        id=row.id,
        quiz_id=row.quiz_id,
        enrollment_id=row.enrollment_id,
        attempt_number=row.attempt_number,
        max_score=row.max_score,
        started_at=row.started_at,
        status=AttemptStatus(row.status),
        score=row.score,
        passed=row.passed,
        submitted_at=row.submitted_at,
    )


def _row_to_response(row: QuizResponseRow) -> QuizResponse:
    return QuizResponse(
        id=row.id,
        attempt_id=row.attempt_id,
        question_id=row.question_id,
        answered_at=row.answered_at,
        option_id=row.option_id,
        answer_text=row.answer_text,
        is_correct=row.is_correct,
        points_earned=row.points_earned,
    )
