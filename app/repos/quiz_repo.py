from __future__ import annotations

from collections.abc import Collection
from typing import Protocol
from uuid import UUID

from app.models.quiz import Quiz, QuizAttempt, QuizQuestion, QuizResponse


class AttemptNumberTakenError(ValueError):
    """(quiz_id, enrollment_id, attempt_number) is already used."""


class QuizRepo(Protocol):
    async def add_quiz(self, quiz: Quiz, questions: list[QuizQuestion]) -> None:
        """Store a quiz with its questions and their options."""
        ...

    async def update_quiz(
        self, quiz: Quiz, questions: list[QuizQuestion] | None = None
    ) -> None:
        """Overwrite quiz settings; replace the question set when given."""
        ...

    async def get_quiz(self, quiz_id: UUID) -> Quiz | None: ...
    async def list_quizzes(self, lesson_id: UUID | None = None) -> list[Quiz]: ...
    async def list_questions(self, quiz_id: UUID) -> list[QuizQuestion]: ...
    async def count_attempts(self, quiz_id: UUID, enrollment_id: UUID) -> int: ...

    async def add_attempt(self, attempt: QuizAttempt) -> None:
        """Raises AttemptNumberTakenError when the number is already used."""
        ...

    async def get_attempt(self, attempt_id: UUID) -> QuizAttempt | None: ...

    async def get_attempt_for_update(self, attempt_id: UUID) -> QuizAttempt | None:
        """Fresh read that row-locks the attempt until the transaction ends."""
        ...

    async def save_attempt(self, attempt: QuizAttempt) -> None: ...

    async def list_attempts(
        self,
        *,
        quiz_ids: Collection[UUID] | None = None,
        enrollment_id: UUID | None = None,
    ) -> list[QuizAttempt]:
        """Newest first."""
        ...

    async def add_responses(self, responses: list[QuizResponse]) -> None: ...
    async def list_responses(self, attempt_id: UUID) -> list[QuizResponse]: ...


class InMemoryQuizRepo:
    def __init__(self) -> None:
        self._quizzes: dict[UUID, Quiz] = {}
        self._questions: dict[UUID, list[QuizQuestion]] = {}
        self._attempts: dict[UUID, QuizAttempt] = {}
        self._responses: dict[UUID, list[QuizResponse]] = {}

    def clear(self) -> None:
        self._quizzes.clear()
        self._questions.clear()
        self._attempts.clear()
        self._responses.clear()

    async def add_quiz(self, quiz: Quiz, questions: list[QuizQuestion]) -> None:
        self._quizzes[quiz.id] = quiz
        self._questions[quiz.id] = sorted(questions, key=lambda q: q.position)

    async def update_quiz(
        self, quiz: Quiz, questions: list[QuizQuestion] | None = None
    ) -> None:
        if quiz.id not in self._quizzes:
            raise KeyError("quiz not found")
        self._quizzes[quiz.id] = quiz
        if questions is not None:
            self._questions[quiz.id] = sorted(questions, key=lambda q: q.position)

    async def get_quiz(self, quiz_id: UUID) -> Quiz | None:
        return self._quizzes.get(quiz_id)

    async def list_quizzes(self, lesson_id: UUID | None = None) -> list[Quiz]:
        return [
            q
            for q in self._quizzes.values()
            if lesson_id is None or q.lesson_id == lesson_id
        ]

    async def list_questions(self, quiz_id: UUID) -> list[QuizQuestion]:
        return list(self._questions.get(quiz_id, []))

    async def count_attempts(self, quiz_id: UUID, enrollment_id: UUID) -> int:
        return sum(
            1
            for a in self._attempts.values()
            if a.quiz_id == quiz_id and a.enrollment_id == enrollment_id
        )

    async def add_attempt(self, attempt: QuizAttempt) -> None:
        for existing in self._attempts.values():
            if (
                existing.quiz_id == attempt.quiz_id
                and existing.enrollment_id == attempt.enrollment_id
                and existing.attempt_number == attempt.attempt_number
            ):
                raise AttemptNumberTakenError("attempt number already used")
        self._attempts[attempt.id] = attempt

    async def get_attempt(self, attempt_id: UUID) -> QuizAttempt | None:
        return self._attempts.get(attempt_id)

    async def get_attempt_for_update(self, attempt_id: UUID) -> QuizAttempt | None:
        return self._attempts.get(attempt_id)

    async def save_attempt(self, attempt: QuizAttempt) -> None:
        if attempt.id not in self._attempts:
            raise KeyError("attempt not found")
        self._attempts[attempt.id] = attempt

    async def list_attempts(
        self,
        *,
        quiz_ids: Collection[UUID] | None = None,
        enrollment_id: UUID | None = None,
    ) -> list[QuizAttempt]:
        wanted = set(quiz_ids) if quiz_ids is not None else None
        found = [
            a
            for a in self._attempts.values()
            if (wanted is None or a.quiz_id in wanted)
            and (enrollment_id is None or a.enrollment_id == enrollment_id)
        ]
        return sorted(
            found, key=lambda a: (a.started_at, a.attempt_number), reverse=True
        )

    async def add_responses(self, responses: list[QuizResponse]) -> None:
        for response in responses:
            self._responses.setdefault(response.attempt_id, []).append(response)

    async def list_responses(self, attempt_id: UUID) -> list[QuizResponse]:
        return list(self._responses.get(attempt_id, []))
