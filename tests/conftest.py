"""
Pytest configuration and fixtures.

Provides common test fixtures for all test modules.
"""

import asyncio
import tempfile
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace
from typing import Callable, Generator
from unittest.mock import AsyncMock, MagicMock

import pytest

from math_club.config import Settings
from math_club.grading.llm_client import LLMClient, LLMError
from math_club.models import (
    EssayGradeRequest,
    EssayGradeResult,
    Exam,
    Question,
    QuestionType,
    SubQuestion,
)


# ==============================================================================
# Directory Fixtures
# ==============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ==============================================================================
# Question and Exam Fixtures
# ==============================================================================


@pytest.fixture
def mc_question() -> Question:
    """Multiple-choice question worth 2 points, correct option 0."""
    return Question(
        id="q-mc",
        question="Tập nghiệm của $x^2 - 1 = 0$ là",
        type=QuestionType.MULTIPLE_CHOICE,
        options=("A. $\\{-1; 1\\}$", "B. $\\{1\\}$", "C. $\\{-1\\}$", "D. $\\emptyset$"),
        correct_answer=0,
        explanation="$x^2 = 1 \\Leftrightarrow x = \\pm 1$",
        points=Decimal("2"),
    )


@pytest.fixture
def fill_in_question() -> Question:
    """Fill-in question worth 1 point, expected answer "42"."""
    return Question(
        id="q-fill",
        question="Tính $6 \\cdot 7$",
        type=QuestionType.FILL_IN,
        correct_answer="42",
        points=Decimal("1"),
    )


@pytest.fixture
def true_false_question() -> Question:
    """Compound true-false question with four statements, worth 1 point."""
    return Question(
        id="q-tf",
        question="Cho hàm số $y = x^2$. Xét tính đúng sai của các mệnh đề sau",
        type=QuestionType.TRUE_FALSE,
        sub_questions=(
            SubQuestion(label="a", content="Hàm số đồng biến trên $(0; +\\infty)$", correct=True),
            SubQuestion(label="b", content="Đồ thị đi qua $(1; 2)$", correct=False),
            SubQuestion(label="c", content="Hàm số có giá trị nhỏ nhất bằng 0", correct=True),
            SubQuestion(label="d", content="Hàm số là hàm lẻ", correct=False),
        ),
        points=Decimal("1"),
    )


@pytest.fixture
def essay_question() -> Question:
    """Essay question worth 3 points with a sample answer."""
    return Question(
        id="q-essay",
        question="Giải phương trình $x^2 - 5x + 6 = 0$",
        type=QuestionType.ESSAY,
        sample_answer="<p>$\\Delta = 1$, $x = 2$ hoặc $x = 3$</p>",
        rubric="Tính $\\Delta$: 1đ. Tìm nghiệm: 2đ",
        points=Decimal("3"),
    )


@pytest.fixture
def objective_exam(
    mc_question: Question, fill_in_question: Question, true_false_question: Question
) -> Exam:
    """Exam with one question of each objective kind, 4 points in total."""
    return Exam(
        id="exam-objective",
        title="Kiểm tra 15 phút",
        duration=15,
        questions=(mc_question, fill_in_question, true_false_question),
    )


@pytest.fixture
def essay_exam(mc_question: Question) -> Exam:
    """Exam with one multiple-choice question followed by three essays."""
    essays = tuple(
        Question(
            id=f"q-essay-{i}",
            question=f"Bài {i}",
            type=QuestionType.ESSAY,
            sample_answer=f"Lời giải bài {i}",
            points=Decimal("2"),
        )
        for i in range(1, 4)
    )
    return Exam(id="exam-essay", title="Kiểm tra 45 phút", duration=45, questions=(mc_question, *essays))


# ==============================================================================
# Settings Fixtures
# ==============================================================================


@pytest.fixture
def test_settings(temp_dir: Path) -> Settings:
    """Create test settings with mocked values."""
    return Settings(
        openai_api_key="test-api-key-for-testing",
        openai_base_url="https://test.api.local/v1/",
        grading_model="test-grading-model",
        vision_model="test-vision-model",
        extraction_model="test-extraction-model",
        chat_model="test-chat-model",
        data_directory=temp_dir / "data",
    )


# ==============================================================================
# Mock Fixtures
# ==============================================================================


def _completion(content: str | None, finish_reason: str = "stop") -> SimpleNamespace:
    """Shape of an OpenAI chat completion response, as far as the client reads it."""
    return SimpleNamespace(
        choices=[
            SimpleNamespace(
                message=SimpleNamespace(content=content),
                finish_reason=finish_reason,
            )
        ]
    )


@pytest.fixture
def make_completion() -> Callable[..., SimpleNamespace]:
    return _completion


@pytest.fixture
def mock_openai() -> MagicMock:
    """Mock AsyncOpenAI client to avoid actual API calls."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=_completion('{"score": 0, "feedback": ""}')
    )
    return client


@pytest.fixture
def llm_client(test_settings: Settings, mock_openai: MagicMock) -> LLMClient:
    return LLMClient(test_settings, client=mock_openai)


class RecordingEssayGrader:
    """
    Essay grading port that records every call.

    Tracks how many calls are in flight at once so tests can assert that
    essays are never graded concurrently.
    """

    def __init__(self, score: Decimal = Decimal("2"), fail_for: tuple[str, ...] = ()):
        self.score = score
        self.fail_for = set(fail_for)
        self.calls: list[EssayGradeRequest] = []
        self.active = 0
        self.max_active = 0

    async def grade(self, request: EssayGradeRequest) -> EssayGradeResult:
        self.calls.append(request)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            # Yield to the event loop so overlapping calls would be observable
            await asyncio.sleep(0)
            if request.question_text in self.fail_for:
                raise LLMError("Request timed out after 1 attempt(s)", retryable=True)
            return EssayGradeResult(score=self.score, feedback="Làm tốt")
        finally:
            self.active -= 1


@pytest.fixture
def recording_grader() -> RecordingEssayGrader:
    return RecordingEssayGrader()


@pytest.fixture
def make_recording_grader() -> type[RecordingEssayGrader]:
    return RecordingEssayGrader


# ==============================================================================
# File Fixtures
# ==============================================================================


@pytest.fixture
def sample_exam_text() -> str:
    """Exam document text with questions and a grading guide."""
    return """ĐỀ KIỂM TRA TOÁN 10

Câu 1. Tập nghiệm của phương trình x^2 - 1 = 0 là
A. {-1; 1}   B. {1}   C. {-1}   D. rỗng

Câu 2. Giải phương trình x^2 - 5x + 6 = 0.

HƯỚNG DẪN CHẤM
Câu 1: A
Câu 2: Delta = 1, x = 2 hoặc x = 3 (1 điểm)
"""


@pytest.fixture
def sample_txt_file(temp_dir: Path, sample_exam_text: str) -> Path:
    file_path = temp_dir / "de-thi.txt"
    file_path.write_text(sample_exam_text, encoding="utf-8")
    return file_path


@pytest.fixture
def empty_file(temp_dir: Path) -> Path:
    file_path = temp_dir / "empty.txt"
    file_path.write_text("", encoding="utf-8")
    return file_path


@pytest.fixture
def whitespace_file(temp_dir: Path) -> Path:
    file_path = temp_dir / "whitespace.txt"
    file_path.write_text("   \n\t\n   ", encoding="utf-8")
    return file_path

