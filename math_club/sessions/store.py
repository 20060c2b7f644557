"""
Session storage port and its implementations.

The grading core never touches storage directly; sessions, answers and
exams are persisted through a `SessionStore`. Answers are upserted by
(session_id, question_id), so saving the same answer twice overwrites it.
"""

import logging
import os
import tempfile
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field, ValidationError

from math_club.models import Exam, ExamSession, SessionStatus, StudentAnswer

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Raised when the session store cannot read or write data."""

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)


class SessionStore(Protocol):
    """Async persistence port for exams, sessions and student answers."""

    async def save_exam(self, exam: Exam) -> Exam: ...

    async def get_exam(self, exam_id: str) -> Exam | None: ...

    async def list_exams(self, published_only: bool = False) -> list[Exam]: ...

    async def delete_exam(self, exam_id: str) -> bool: ...

    async def insert_session(self, session: ExamSession) -> ExamSession: ...

    async def get_session(self, session_id: str) -> ExamSession | None: ...

    async def update_session(self, session: ExamSession) -> ExamSession: ...

    async def find_sessions(
        self,
        *,
        exam_id: str | None = None,
        student_id: str | None = None,
        status: SessionStatus | None = None,
    ) -> list[ExamSession]: ...

    async def delete_sessions(self, session_ids: Sequence[str]) -> int: ...

    async def upsert_answers(self, answers: Sequence[StudentAnswer]) -> None: ...

    async def get_answers(self, session_id: str) -> list[StudentAnswer]: ...

    async def delete_answers(self, session_ids: Sequence[str]) -> int: ...


class InMemorySessionStore:
    """Session store kept in process memory."""

    def __init__(self) -> None:
        self._exams: dict[str, Exam] = {}
        self._sessions: dict[str, ExamSession] = {}
        self._answers: dict[tuple[str, str], StudentAnswer] = {}

    # ==========================================================================
    # Exams
    # ==========================================================================

    async def save_exam(self, exam: Exam) -> Exam:
        with self._transaction():
            self._exams[exam.id] = exam
        return exam

    async def get_exam(self, exam_id: str) -> Exam | None:
        return self._exams.get(exam_id)

    async def list_exams(self, published_only: bool = False) -> list[Exam]:
        exams = [e for e in self._exams.values() if e.is_published or not published_only]
        return sorted(exams, key=lambda e: e.created_at, reverse=True)

    async def delete_exam(self, exam_id: str) -> bool:
        if exam_id not in self._exams:
            return False
        with self._transaction():
            del self._exams[exam_id]
        return True

    # ==========================================================================
    # Sessions
    # ==========================================================================

    async def insert_session(self, session: ExamSession) -> ExamSession:
        if session.id in self._sessions:
            raise PersistenceError(f"Session already exists: {session.id}")
        with self._transaction():
            self._sessions[session.id] = session
        return session

    async def get_session(self, session_id: str) -> ExamSession | None:
        return self._sessions.get(session_id)

    async def update_session(self, session: ExamSession) -> ExamSession:
        if session.id not in self._sessions:
            raise PersistenceError(f"Session does not exist: {session.id}")
        with self._transaction():
            self._sessions[session.id] = session
        return session

    async def find_sessions(
        self,
        *,
        exam_id: str | None = None,
        student_id: str | None = None,
        status: SessionStatus | None = None,
    ) -> list[ExamSession]:
        return [
            s
            for s in self._sessions.values()
            if (exam_id is None or s.exam_id == exam_id)
            and (student_id is None or s.student_id == student_id)
            and (status is None or s.status == status)
        ]

    async def delete_sessions(self, session_ids: Sequence[str]) -> int:
        targets = [sid for sid in dict.fromkeys(session_ids) if sid in self._sessions]
        if not targets:
            return 0
        with self._transaction():
            for sid in targets:
                del self._sessions[sid]
        return len(targets)

    # ==========================================================================
    # Answers
    # ==========================================================================

    async def upsert_answers(self, answers: Sequence[StudentAnswer]) -> None:
        if not answers:
            return
        with self._transaction():
            for answer in answers:
                self._answers[(answer.session_id, answer.question_id)] = answer

    async def get_answers(self, session_id: str) -> list[StudentAnswer]:
        return [a for (sid, _), a in self._answers.items() if sid == session_id]

    async def delete_answers(self, session_ids: Sequence[str]) -> int:
        targets = set(session_ids)
        keys = [key for key in self._answers if key[0] in targets]
        if not keys:
            return 0
        with self._transaction():
            for key in keys:
                del self._answers[key]
        return len(keys)

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """Apply a mutation, restoring the previous state if it cannot be persisted."""
        snapshot = (dict(self._exams), dict(self._sessions), dict(self._answers))
        yield
        try:
            self._persist()
        except PersistenceError:
            self._exams, self._sessions, self._answers = snapshot
            raise

    def _persist(self) -> None:
        """Hook called after every mutation."""


class _StoreDocument(BaseModel):
    exams: list[Exam] = Field(default_factory=list)
    sessions: list[ExamSession] = Field(default_factory=list)
    answers: list[StudentAnswer] = Field(default_factory=list)


class JsonFileSessionStore(InMemorySessionStore):
    """
    Session store backed by a single JSON document.

    The whole document is rewritten after each mutation, via a temporary
    file and an atomic rename.
    """

    def __init__(self, path: Path | str):
        super().__init__()
        self._path = Path(path)
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            document = _StoreDocument.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise PersistenceError(f"Could not load session store '{self._path}': {e}", cause=e) from e

        self._exams = {e.id: e for e in document.exams}
        self._sessions = {s.id: s for s in document.sessions}
        self._answers = {(a.session_id, a.question_id): a for a in document.answers}
        logger.debug(
            "Loaded %d exams, %d sessions from %s",
            len(self._exams),
            len(self._sessions),
            self._path,
        )

    def _persist(self) -> None:
        document = _StoreDocument(
            exams=list(self._exams.values()),
            sessions=list(self._sessions.values()),
            answers=list(self._answers.values()),
        )
        tmp_name: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(document.model_dump_json(by_alias=True, indent=2))
            os.replace(tmp_name, self._path)
        except OSError as e:
            logger.error("Failed to write session store %s: %s", self._path, e)
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise PersistenceError(f"Could not write session store '{self._path}': {e}", cause=e) from e
