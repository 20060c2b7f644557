"""
Tests for in-progress exam attempts and submission.
"""

from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from math_club.grading import SubmissionGrader
from math_club.models import ChoiceAnswer, Exam, NoAnswer, SessionStatus
from math_club.sessions import (
    AttemptClosedError,
    ExamAttempt,
    ExamSessionService,
    InMemorySessionStore,
    JsonFileSessionStore,
    PersistenceError,
    SubmissionError,
)
from math_club.sessions.attempt import SUBMIT_FAILED_MESSAGE


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


async def _start(
    exam: Exam, store: InMemorySessionStore, grader: SubmissionGrader, clock: FakeClock
) -> ExamAttempt:
    await store.save_exam(exam)
    return await ExamAttempt.start(
        exam, "An", ExamSessionService(store), grader, student_id="st-1", clock=clock
    )


class TestExamAttempt:
    """Tests for ExamAttempt."""

    @pytest.mark.asyncio
    async def test_submit_persists_completion(
        self, objective_exam: Exam, store: InMemorySessionStore, clock: FakeClock, recording_grader
    ) -> None:
        attempt = await _start(objective_exam, store, SubmissionGrader(recording_grader), clock)
        attempt.set_answer("q-mc", "0")
        attempt.set_answer("q-fill", "42")
        attempt.set_answer("q-tf", {"a": True, "b": True, "c": True, "d": True})
        clock.now += 125

        result = await attempt.submit()

        assert result.score == Decimal("3.25")
        assert result.time_spent_seconds == 125
        assert attempt.submitted

        session = await store.get_session(attempt.session.id)
        assert session is not None
        assert session.status == SessionStatus.COMPLETED
        assert session.score == Decimal("3.25")
        assert session.percentage == 81.25
        answers = {a.question_id: a for a in await store.get_answers(session.id)}
        assert answers["q-mc"].is_correct
        assert answers["q-tf"].points_earned == Decimal("0.25")

    @pytest.mark.asyncio
    async def test_answers_can_be_replaced(
        self, objective_exam: Exam, store: InMemorySessionStore, clock: FakeClock, recording_grader
    ) -> None:
        attempt = await _start(objective_exam, store, SubmissionGrader(recording_grader), clock)

        attempt.set_answer("q-mc", 2)
        attempt.set_answer("q-mc", 0)

        assert attempt.answer("q-mc") == ChoiceAnswer(index=0)
        assert isinstance(attempt.answer("q-fill"), NoAnswer)
        assert [q.id for q in attempt.unanswered()] == ["q-fill", "q-tf"]

    @pytest.mark.asyncio
    async def test_unknown_question_rejected(
        self, objective_exam: Exam, store: InMemorySessionStore, clock: FakeClock, recording_grader
    ) -> None:
        attempt = await _start(objective_exam, store, SubmissionGrader(recording_grader), clock)

        with pytest.raises(KeyError):
            attempt.set_answer("q-missing", 1)

    @pytest.mark.asyncio
    async def test_persistence_failure_keeps_answers_for_retry(
        self, essay_exam: Exam, store: InMemorySessionStore, clock: FakeClock, recording_grader
    ) -> None:
        attempt = await _start(essay_exam, store, SubmissionGrader(recording_grader), clock)
        attempt.set_answer("q-mc", 0)
        attempt.set_answer("q-essay-1", "<p>x = 2</p>")

        with patch.object(
            store, "update_session", AsyncMock(side_effect=PersistenceError("disk full"))
        ):
            with pytest.raises(SubmissionError, match=SUBMIT_FAILED_MESSAGE) as exc_info:
                await attempt.submit()

        assert isinstance(exc_info.value.cause, PersistenceError)
        assert not attempt.submitted
        assert attempt.answer("q-essay-1").kind == "essay"

        result = await attempt.submit()

        assert result.score == Decimal("4")
        # The graded result is reused; the essay is not sent a second time
        assert len(recording_grader.calls) == 1
        session = await store.get_session(attempt.session.id)
        assert session is not None
        assert session.status == SessionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_disk_failure_on_file_store_can_be_retried(
        self, essay_exam: Exam, temp_dir: Path, clock: FakeClock, recording_grader
    ) -> None:
        path = temp_dir / "sessions.json"
        file_store = JsonFileSessionStore(path)
        attempt = await _start(essay_exam, file_store, SubmissionGrader(recording_grader), clock)
        attempt.set_answer("q-mc", 0)
        attempt.set_answer("q-essay-1", "<p>x = 2</p>")

        with patch("math_club.sessions.store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(SubmissionError):
                await attempt.submit()

        assert not attempt.submitted
        pending = await file_store.get_session(attempt.session.id)
        assert pending is not None
        assert pending.status == SessionStatus.IN_PROGRESS

        result = await attempt.submit()

        assert result.score == Decimal("4")
        assert len(recording_grader.calls) == 1
        reloaded = JsonFileSessionStore(path)
        session = await reloaded.get_session(attempt.session.id)
        assert session is not None
        assert session.status == SessionStatus.COMPLETED
        assert len(await reloaded.get_answers(session.id)) == 4
        assert list(temp_dir.glob("*.tmp")) == []

    @pytest.mark.asyncio
    async def test_changing_an_answer_regrades(
        self, essay_exam: Exam, store: InMemorySessionStore, clock: FakeClock, recording_grader
    ) -> None:
        attempt = await _start(essay_exam, store, SubmissionGrader(recording_grader), clock)
        attempt.set_answer("q-essay-1", "một")

        with patch.object(store, "update_session", AsyncMock(side_effect=PersistenceError("x"))):
            with pytest.raises(SubmissionError):
                await attempt.submit()

        attempt.set_answer("q-essay-2", "hai")
        await attempt.submit()

        assert [c.question_text for c in recording_grader.calls] == ["Bài 1", "Bài 1", "Bài 2"]

    @pytest.mark.asyncio
    async def test_submitted_attempt_is_closed(
        self, objective_exam: Exam, store: InMemorySessionStore, clock: FakeClock, recording_grader
    ) -> None:
        attempt = await _start(objective_exam, store, SubmissionGrader(recording_grader), clock)
        await attempt.submit()

        with pytest.raises(AttemptClosedError):
            attempt.set_answer("q-mc", 0)
        with pytest.raises(AttemptClosedError):
            await attempt.submit()

    @pytest.mark.asyncio
    async def test_time_limit(
        self, objective_exam: Exam, store: InMemorySessionStore, clock: FakeClock, recording_grader
    ) -> None:
        attempt = await _start(objective_exam, store, SubmissionGrader(recording_grader), clock)

        assert attempt.remaining_seconds() == 15 * 60
        assert await attempt.submit_if_expired() is None

        clock.now += 15 * 60 + 30
        assert attempt.is_expired()
        assert attempt.remaining_seconds() == 0

        result = await attempt.submit_if_expired()

        assert result is not None
        assert result.time_spent_seconds == 15 * 60
        assert attempt.submitted
        assert await attempt.submit_if_expired() is None

    @pytest.mark.asyncio
    async def test_progress_callback_reaches_grader(
        self, essay_exam: Exam, store: InMemorySessionStore, clock: FakeClock, recording_grader
    ) -> None:
        attempt = await _start(essay_exam, store, SubmissionGrader(recording_grader), clock)
        attempt.set_answer("q-essay-2", "hai")
        seen: list[tuple[int, int]] = []

        await attempt.submit(lambda n, m, _q: seen.append((n, m)))

        assert seen == [(1, 1)]
