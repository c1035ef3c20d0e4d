from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

from app.models.quiz import QuestionType, QuizQuestion, QuizResponse

logger = logging.getLogger(__name__)

_HUNDRED = Decimal(100)
_ZERO = Decimal("0.00")

# Graded by looking up is_correct on the selected option.
AUTO_GRADED_TYPES = frozenset({QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE})


@dataclass(frozen=True, slots=True)
class SubmittedAnswer:
    question_id: UUID
    option_id: UUID | None = None
    answer_text: str | None = None


def max_score(questions: Iterable[QuizQuestion]) -> Decimal:
    return sum((q.points for q in questions), _ZERO)


def grade_answer(
    question: QuizQuestion, answer: SubmittedAnswer
) -> tuple[bool | None, Decimal]:
    """Return (is_correct, points_earned) for one answer.

    SHORT_ANSWER has no automatic rule: it comes back as (None, 0) and
    waits for manual grading.
    """
    if question.question_type not in AUTO_GRADED_TYPES:
        logger.debug(
            "Question %s type=%s left ungraded",
            question.id,
            question.question_type,
        )
        return None, _ZERO

    selected = question.option(answer.option_id)
    if selected is not None and selected.is_correct:
        return True, question.points
    return False, _ZERO


def grade_responses(
    attempt_id: UUID,
    questions: Iterable[QuizQuestion],
    answers: Iterable[SubmittedAnswer],
    *,
    now: int,
) -> list[QuizResponse]:
    """Grade submitted answers into one response row per answered question.

    Answers to questions outside the quiz are dropped, and only the first
    answer to a question counts.  Unanswered questions get no row and
    contribute nothing to the score.
    """
    by_id = {q.id: q for q in questions}
    responses: list[QuizResponse] = []
    seen: set[UUID] = set()

    for answer in answers:
        question = by_id.get(answer.question_id)
        if question is None:
            logger.warning(
                "Ignoring answer for unknown question=%s attempt=%s",
                answer.question_id,
                attempt_id,
            )
            continue
        if question.id in seen:
            continue
        seen.add(question.id)

        is_correct, points = grade_answer(question, answer)
        responses.append(
            QuizResponse(
                id=uuid4(),
                attempt_id=attempt_id,
                question_id=question.id,
                answered_at=now,
                option_id=answer.option_id,
                answer_text=answer.answer_text,
                is_correct=is_correct,
                points_earned=points,
            )
        )

    return responses


def total_score(responses: Iterable[QuizResponse]) -> Decimal:
    return sum((r.points_earned for r in responses), _ZERO)


def is_passing(score: Decimal, max_score: Decimal, pass_score: Decimal) -> bool:
    """score/max_score*100 >= pass_score, compared without division."""
    if max_score <= 0:
        return _ZERO >= pass_score
    return score * _HUNDRED >= pass_score * max_score
