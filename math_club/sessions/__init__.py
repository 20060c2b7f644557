"""
Sessions Module.

Exam session lifecycle, the storage port and in-progress attempts.
"""

from math_club.sessions.attempt import AttemptClosedError, ExamAttempt, SubmissionError
from math_club.sessions.service import (
    ExamSessionService,
    SessionNotFoundError,
    SessionStateError,
)
from math_club.sessions.store import (
    InMemorySessionStore,
    JsonFileSessionStore,
    PersistenceError,
    SessionStore,
)

__all__ = [
    "AttemptClosedError",
    "ExamAttempt",
    "ExamSessionService",
    "InMemorySessionStore",
    "JsonFileSessionStore",
    "PersistenceError",
    "SessionNotFoundError",
    "SessionStateError",
    "SessionStore",
    "SubmissionError",
]
