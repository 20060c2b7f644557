"""
Submission grading engine - the core orchestrator.

Walks an exam's questions in authored order, scores objective answers
synchronously and grades essays one at a time, then aggregates the result.
Essays are never graded concurrently: progress is reported as
"grading essay N of M", which requires in-order completion.
"""

import logging
from collections.abc import Callable, Mapping
from decimal import Decimal
from typing import Protocol

from math_club.answers import decode_answers, encode_answer
from math_club.config import Settings
from math_club.grading.essay import EssayGrader
from math_club.grading.scorer import needs_essay_grading, score_answer
from math_club.models import (
    Answer,
    EssayAnswer,
    EssayGradeRequest,
    EssayGradeResult,
    Exam,
    Question,
    QuestionResult,
    SubmissionResult,
)

logger = logging.getLogger(__name__)

GRADING_FAILED_FEEDBACK = "Lỗi khi chấm tự động. Vui lòng liên hệ giáo viên để được chấm lại."

# Share of the maximum an essay must earn to count as correct
ESSAY_CORRECT_RATIO = Decimal("0.8")

ProgressCallback = Callable[[int, int, Question], None]


class EssayGradingPort(Protocol):
    """Anything that can grade one essay asynchronously."""

    async def grade(self, request: EssayGradeRequest) -> EssayGradeResult: ...


class SubmissionGrader:
    """
    Grades a complete exam submission.

    Objective questions go through the pure scorer; essays with content go
    through the essay grading port, strictly sequentially. A failed essay
    grade degrades to zero points with feedback asking the student to
    contact the teacher; it is never retried and never aborts the submission.
    """

    def __init__(
        self,
        essay_grader: EssayGradingPort | None = None,
        settings: Settings | None = None,
    ):
        """
        Initialize the submission grader.

        Args:
            essay_grader: Essay grading port. An `EssayGrader` is built from settings if not provided.
            settings: Configuration settings, used only to build the default essay grader.
        """
        self._essay_grader: EssayGradingPort = essay_grader or EssayGrader(settings)

    async def grade(
        self,
        exam: Exam,
        answers: Mapping[str, object],
        time_spent_seconds: int = 0,
        on_progress: ProgressCallback | None = None,
    ) -> SubmissionResult:
        """
        Grade every question of an exam.

        Args:
            exam: The exam being submitted.
            answers: Submitted answers by question id (raw or already decoded).
            time_spent_seconds: Elapsed time to record with the result.
            on_progress: Called as (n, m, question) before the n-th of m essay grading calls.

        Returns:
            SubmissionResult with one QuestionResult per question, in order.
        """
        decoded = decode_answers(exam, answers)
        essays = [q for q in exam.questions if needs_essay_grading(q, decoded[q.id])]
        essay_position = 0

        results: list[QuestionResult] = []
        score = Decimal(0)

        for question in exam.questions:
            answer = decoded[question.id]

            if needs_essay_grading(question, answer):
                essay_position += 1
                if on_progress is not None:
                    on_progress(essay_position, len(essays), question)
                result = await self._grade_essay(question, answer)  # type: ignore[arg-type]
            else:
                result = self._score_objective(question, answer)

            score += result.points_earned
            results.append(result)

        logger.info(
            "Graded exam %s: %s/%s (%d essays)",
            exam.id,
            score,
            exam.total_points,
            len(essays),
        )

        return SubmissionResult(
            exam_id=exam.id,
            results=tuple(results),
            score=score,
            max_score=exam.total_points,
            time_spent_seconds=time_spent_seconds,
        )

    def _score_objective(self, question: Question, answer: Answer) -> QuestionResult:
        scored = score_answer(question, answer)
        return QuestionResult(
            question_id=question.id,
            user_answer=encode_answer(answer),
            is_correct=scored.is_correct,
            points_earned=scored.points_earned,
        )

    async def _grade_essay(self, question: Question, answer: EssayAnswer) -> QuestionResult:
        user_answer = encode_answer(answer)

        try:
            request = EssayGradeRequest(
                question_text=question.question,
                student_answer=answer.html,
                sample_answer=question.sample_answer or "",
                rubric=question.rubric or "",
                max_points=question.points,
            )
            graded = await self._essay_grader.grade(request)
        except Exception:
            # Any grading failure degrades this essay; it never aborts the submission
            logger.exception("Essay grading failed for question %s", question.id)
            return QuestionResult(
                question_id=question.id,
                user_answer=user_answer,
                is_correct=False,
                points_earned=Decimal(0),
                ai_feedback=GRADING_FAILED_FEEDBACK,
                needs_manual_grading=True,
            )

        return QuestionResult(
            question_id=question.id,
            user_answer=user_answer,
            is_correct=graded.score >= question.points * ESSAY_CORRECT_RATIO,
            points_earned=graded.score,
            ai_feedback=graded.feedback,
            needs_manual_grading=graded.needs_manual_grading,
        )
