"""
A student's in-progress exam attempt.

Answers are held in memory until the session completion is persisted.
If persistence fails the attempt keeps its answers (and its graded result)
so submission can be retried.
"""

import logging
import time
from collections.abc import Callable

from math_club.answers import decode_answer
from math_club.grading.engine import ProgressCallback, SubmissionGrader
from math_club.models import (
    Answer,
    Exam,
    ExamSession,
    NoAnswer,
    Question,
    SubmissionResult,
)
from math_club.sessions.service import ExamSessionService
from math_club.sessions.store import PersistenceError

logger = logging.getLogger(__name__)

SUBMIT_FAILED_MESSAGE = "Không thể nộp bài. Vui lòng thử lại."


class SubmissionError(Exception):
    """Raised when a graded submission could not be persisted."""

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)


class AttemptClosedError(Exception):
    """Raised when modifying an attempt that was already submitted."""


class ExamAttempt:
    """
    Tracks one student's answers and elapsed time for one exam.

    Time is client-local wall-clock tracking against the exam duration;
    running out of time triggers the same submission path as a manual submit.
    """

    def __init__(
        self,
        exam: Exam,
        session: ExamSession,
        service: ExamSessionService,
        grader: SubmissionGrader,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._exam = exam
        self._session = session
        self._service = service
        self._grader = grader
        self._clock = clock
        self._started = clock()
        self._answers: dict[str, Answer] = {}
        self._graded: SubmissionResult | None = None
        self._submitted = False

    @classmethod
    async def start(
        cls,
        exam: Exam,
        student_name: str,
        service: ExamSessionService,
        grader: SubmissionGrader,
        student_id: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "ExamAttempt":
        """Open a new session for the exam and start the clock."""
        session = await service.start_session(exam.id, student_name, student_id)
        return cls(exam, session, service, grader, clock=clock)

    @property
    def exam(self) -> Exam:
        return self._exam

    @property
    def session(self) -> ExamSession:
        return self._session

    @property
    def submitted(self) -> bool:
        return self._submitted

    def set_answer(self, question_id: str, raw: object) -> Answer:
        """Record (or replace) the answer to one question."""
        if self._submitted:
            raise AttemptClosedError(f"Attempt for session {self._session.id} was already submitted")

        question = self._exam.get_question(question_id)
        if question is None:
            raise KeyError(f"Unknown question: {question_id}")

        answer = decode_answer(question, raw)
        self._answers[question_id] = answer
        self._graded = None
        return answer

    def answer(self, question_id: str) -> Answer:
        return self._answers.get(question_id, NoAnswer())

    def unanswered(self) -> list[Question]:
        return [
            q for q in self._exam.questions if isinstance(self.answer(q.id), NoAnswer)
        ]

    def elapsed_seconds(self) -> int:
        return int(self._clock() - self._started)

    def remaining_seconds(self) -> int:
        return max(0, self._exam.duration * 60 - self.elapsed_seconds())

    def is_expired(self) -> bool:
        return self.remaining_seconds() == 0

    async def submit(self, on_progress: ProgressCallback | None = None) -> SubmissionResult:
        """
        Grade the attempt and persist the session completion.

        Grading happens once; a retry after a persistence failure reuses the
        graded result unless an answer changed in between.

        Raises:
            AttemptClosedError: If the attempt was already submitted.
            SubmissionError: If the completion could not be persisted.
        """
        if self._submitted:
            raise AttemptClosedError(f"Attempt for session {self._session.id} was already submitted")

        if self._graded is None:
            time_spent = min(self.elapsed_seconds(), self._exam.duration * 60)
            self._graded = await self._grader.grade(
                self._exam,
                self._answers,
                time_spent_seconds=time_spent,
                on_progress=on_progress,
            )

        try:
            self._session = await self._service.complete_session(
                self._graded.to_completion(self._session.id)
            )
        except PersistenceError as e:
            logger.error("Could not persist session %s: %s", self._session.id, e)
            raise SubmissionError(SUBMIT_FAILED_MESSAGE, cause=e) from e

        self._submitted = True
        return self._graded

    async def submit_if_expired(
        self, on_progress: ProgressCallback | None = None
    ) -> SubmissionResult | None:
        """Submit automatically once time runs out; None while time remains."""
        if self._submitted or not self.is_expired():
            return None
        logger.info("Time is up for session %s; submitting", self._session.id)
        return await self.submit(on_progress)
