"""
Exam session service.

Implements the session lifecycle on top of a `SessionStore`:
in_progress -> completed (exactly once) or in_progress -> abandoned.
Starting a session keeps only the latest attempt per (student, exam).
"""

import logging
from decimal import Decimal

from math_club.models import (
    ExamSession,
    QuestionResult,
    SessionCompletion,
    SessionDetail,
    SessionStatus,
    StudentAnswer,
    utcnow,
)
from math_club.sessions.store import SessionStore

logger = logging.getLogger(__name__)


class SessionNotFoundError(LookupError):
    """Raised when a session or exam id does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class SessionStateError(Exception):
    """Raised when an operation is not allowed in the session's current status."""

    def __init__(self, session_id: str, status: SessionStatus, action: str):
        self.session_id = session_id
        self.status = status
        super().__init__(f"Cannot {action} session {session_id} in status '{status.value}'")


class ExamSessionService:
    """Creates, updates and queries exam sessions through an injected store."""

    def __init__(self, store: SessionStore):
        self._store = store

    @property
    def store(self) -> SessionStore:
        return self._store

    async def start_session(
        self,
        exam_id: str,
        student_name: str,
        student_id: str | None = None,
    ) -> ExamSession:
        """
        Create a new in-progress session.

        When `student_id` is given, previous sessions of that student for
        this exam are deleted first, answers before sessions. The delete and
        the insert are separate steps; a failure in between leaves the
        student with no session for the exam.

        Raises:
            SessionNotFoundError: If the exam does not exist.
            PersistenceError: If the store fails.
        """
        if await self._store.get_exam(exam_id) is None:
            raise SessionNotFoundError("Exam", exam_id)

        if student_id:
            previous = await self._store.find_sessions(exam_id=exam_id, student_id=student_id)
            if previous:
                session_ids = [s.id for s in previous]
                await self._store.delete_answers(session_ids)
                await self._store.delete_sessions(session_ids)
                logger.info(
                    "Removed %d previous session(s) of student %s for exam %s",
                    len(session_ids),
                    student_id,
                    exam_id,
                )

        session = ExamSession(
            exam_id=exam_id,
            student_id=student_id,
            student_name=student_name,
            status=SessionStatus.IN_PROGRESS,
            started_at=utcnow(),
        )
        return await self._store.insert_session(session)

    async def save_answer(self, session_id: str, result: QuestionResult) -> StudentAnswer:
        """Upsert one answer of an in-progress session."""
        session = await self._require_session(session_id)
        if session.status != SessionStatus.IN_PROGRESS:
            raise SessionStateError(session_id, session.status, "save an answer to")

        answer = StudentAnswer.from_result(session_id, result)
        await self._store.upsert_answers([answer])
        return answer

    async def complete_session(self, completion: SessionCompletion) -> ExamSession:
        """
        Upsert all answers of a session, then mark it completed.

        The status changes last, so a failed write leaves the session in
        progress and the same completion can be retried.

        Raises:
            SessionNotFoundError: If the session does not exist.
            SessionStateError: If the session is not in progress.
            PersistenceError: If the store fails.
        """
        session = await self._require_session(completion.session_id)
        if session.status != SessionStatus.IN_PROGRESS:
            raise SessionStateError(session.id, session.status, "complete")

        if completion.answers:
            await self._store.upsert_answers(
                [StudentAnswer.from_result(session.id, r) for r in completion.answers]
            )

        completed = session.model_copy(
            update={
                "status": SessionStatus.COMPLETED,
                "completed_at": utcnow(),
                "time_spent": completion.time_spent_seconds,
                "score": completion.total_score,
                "total_score": completion.max_score,
                "percentage": completion.percentage,
            }
        )
        await self._store.update_session(completed)

        logger.info(
            "Completed session %s: %s/%s",
            session.id,
            completion.total_score,
            completion.max_score,
        )
        return completed

    async def abandon_session(self, session_id: str) -> ExamSession:
        session = await self._require_session(session_id)
        if session.status != SessionStatus.IN_PROGRESS:
            raise SessionStateError(session_id, session.status, "abandon")
        return await self._store.update_session(
            session.model_copy(update={"status": SessionStatus.ABANDONED})
        )

    async def get_result(self, session_id: str) -> SessionDetail:
        """Session with its answers (in question order) and its exam."""
        session = await self._require_session(session_id)
        exam = await self._store.get_exam(session.exam_id)
        answers = await self._store.get_answers(session_id)

        if exam is not None:
            order = {q.id: i for i, q in enumerate(exam.questions)}
            answers.sort(key=lambda a: order.get(a.question_id, len(order)))

        return SessionDetail(session=session, answers=tuple(answers), exam=exam)

    async def student_history(self, student_id: str) -> list[ExamSession]:
        """Completed sessions of a student, newest first."""
        sessions = await self._store.find_sessions(
            student_id=student_id, status=SessionStatus.COMPLETED
        )
        return _newest_first(sessions)

    async def exam_submissions(self, exam_id: str) -> list[ExamSession]:
        """Completed sessions of an exam, newest first."""
        sessions = await self._store.find_sessions(exam_id=exam_id, status=SessionStatus.COMPLETED)
        return _newest_first(sessions)

    async def _require_session(self, session_id: str) -> ExamSession:
        session = await self._store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError("Session", session_id)
        return session


def _newest_first(sessions: list[ExamSession]) -> list[ExamSession]:
    return sorted(sessions, key=lambda s: s.completed_at or s.started_at, reverse=True)


def average_percentage(sessions: list[ExamSession]) -> float:
    """Mean percentage over completed sessions, 0 when there are none."""
    if not sessions:
        return 0.0
    total = sum((Decimal(str(s.percentage)) for s in sessions), Decimal(0))
    return float(total / len(sessions))
