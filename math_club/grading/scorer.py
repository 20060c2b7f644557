"""
Answer scorer for objective question types.

Maps (question, answer) to (is_correct, points_earned) with no I/O.
Essays are not scored here; see `math_club.grading.essay`.
"""

import logging
from decimal import Decimal
from typing import NamedTuple

from math_club.answers import encode_answer
from math_club.grading.content import has_essay_content
from math_club.models import (
    Answer,
    EssayAnswer,
    NoAnswer,
    Question,
    QuestionType,
    SubAnswerMap,
)

logger = logging.getLogger(__name__)

# Fraction of the question's points by number of statements judged correctly.
# Not proportional: 1 đúng = 0.1 | 2 đúng = 0.25 | 3 đúng = 0.5 | 4 đúng = 1
TRUE_FALSE_SCORE_TABLE: dict[int, Decimal] = {
    0: Decimal("0"),
    1: Decimal("0.1"),
    2: Decimal("0.25"),
    3: Decimal("0.5"),
    4: Decimal("1"),
}

TRUE_FALSE_STATEMENT_COUNT = 4


class ScoredAnswer(NamedTuple):
    """Result of scoring a single objective answer."""

    is_correct: bool
    points_earned: Decimal


INCORRECT = ScoredAnswer(is_correct=False, points_earned=Decimal(0))


def score_answer(question: Question, answer: Answer) -> ScoredAnswer:
    """
    Score an answer against the question's key.

    Unanswered questions and essays score zero. Unexpected answer shapes
    degrade to incorrect rather than raising.
    """
    if isinstance(answer, NoAnswer):
        return INCORRECT

    if question.type == QuestionType.ESSAY:
        return INCORRECT

    if question.is_compound_true_false:
        return _score_compound_true_false(question, answer)

    # multiple-choice, fill-in and simple true-false: exact string match
    is_correct = encode_answer(answer) == str(question.correct_answer)
    return ScoredAnswer(is_correct, question.points if is_correct else Decimal(0))


def count_correct_statements(question: Question, answer: Answer) -> int:
    """Count statements whose submitted boolean equals the authored value."""
    if not isinstance(answer, SubAnswerMap) or answer.malformed:
        return 0
    return sum(
        1
        for sub in question.sub_questions or ()
        if answer.marks.get(sub.label) is sub.correct
    )


def _score_compound_true_false(question: Question, answer: Answer) -> ScoredAnswer:
    statement_count = len(question.sub_questions or ())
    if statement_count != TRUE_FALSE_STATEMENT_COUNT:
        logger.warning(
            "Question %s has %d true-false statements; score table assumes %d",
            question.id,
            statement_count,
            TRUE_FALSE_STATEMENT_COUNT,
        )

    correct = count_correct_statements(question, answer)
    fraction = TRUE_FALSE_SCORE_TABLE.get(correct, Decimal(0))
    return ScoredAnswer(
        is_correct=correct == TRUE_FALSE_STATEMENT_COUNT,
        points_earned=fraction * question.points,
    )


def needs_essay_grading(question: Question, answer: Answer) -> bool:
    """True when the question is an essay and the student wrote something."""
    return (
        question.type == QuestionType.ESSAY
        and isinstance(answer, EssayAnswer)
        and has_essay_content(answer.html)
    )
