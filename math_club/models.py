"""
Pydantic models for Math Club Grader.

These models define the schemas for:
- Exams, questions and compound true-false sub-questions
- Typed student answers (decoded once at the boundary)
- Per-question results, essay grading requests and results
- Exam sessions, persisted answers and session completions

Point values are Decimal throughout so partial-credit sums stay exact.
Field aliases follow the camelCase wire format of the exam JSON documents.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Union
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

ANSWER_KEY_MARKERS = ("HƯỚNG DẪN CHẤM", "ĐÁP ÁN")


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


def to_decimal(v: Any) -> Decimal:
    """Convert numeric values to Decimal for precision."""
    if isinstance(v, Decimal):
        return v
    return Decimal(str(v))


class CamelModel(BaseModel):
    """Frozen base model accepting both snake_case names and camelCase aliases."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ==============================================================================
# Exam Models
# ==============================================================================


class QuestionType(str, Enum):
    """Question types supported by the exam format."""

    MULTIPLE_CHOICE = "multiple-choice"
    TRUE_FALSE = "true-false"
    FILL_IN = "fill-in"
    ESSAY = "essay"


class SubQuestion(CamelModel):
    """One true/false statement of a compound true-false question."""

    label: str = Field(..., min_length=1, max_length=1, description="Statement label (a, b, c, d)")

    content: str | None = Field(default=None, description="The statement text")

    correct: bool = Field(..., description="True if the statement is true")


class Question(CamelModel):
    """
    A single exam question.

    `correct_answer` is an option index for multiple-choice (and simple
    true-false) questions, and the expected string for fill-in questions.
    Essays carry a sample answer and an optional rubric instead.
    """

    id: str = Field(default_factory=new_id, min_length=1)

    question: str = Field(..., description="Prompt text, may contain rich text and LaTeX")

    type: QuestionType = Field(default=QuestionType.MULTIPLE_CHOICE)

    options: tuple[str, ...] = Field(default=())

    correct_answer: int | str = Field(default=0)

    explanation: str = Field(default="")

    points: Decimal = Field(default=Decimal("1"), gt=0, le=100)

    sub_questions: tuple[SubQuestion, ...] | None = Field(default=None)

    rubric: str | None = Field(default=None)

    sample_answer: str | None = Field(default=None)

    image_url: str | None = Field(default=None)

    image_description: str | None = Field(default=None)

    @field_validator("points", mode="before")
    @classmethod
    def convert_points(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @model_validator(mode="after")
    def validate_shape(self) -> "Question":
        """Enforce per-type invariants and normalize multiple-choice answer keys."""
        if self.type == QuestionType.MULTIPLE_CHOICE:
            if len(self.options) < 2:
                raise ValueError(
                    f"Multiple-choice question '{self.id}' needs at least 2 options, "
                    f"got {len(self.options)}"
                )
            if isinstance(self.correct_answer, str):
                try:
                    index = int(self.correct_answer.strip())
                except ValueError:
                    index = 0
                # Use object.__setattr__ because model is frozen
                object.__setattr__(self, "correct_answer", index)
        return self

    @property
    def is_compound_true_false(self) -> bool:
        return self.type == QuestionType.TRUE_FALSE and bool(self.sub_questions)


class Exam(CamelModel):
    """An authored, ordered set of questions with a time limit."""

    id: str = Field(default_factory=new_id, min_length=1)

    title: str = Field(default="Đề thi mới", min_length=1, max_length=500)

    description: str = Field(default="")

    grade: int = Field(default=10, ge=10, le=12, description="School year (10, 11, 12)")

    subject: str = Field(default="Toán")

    duration: int = Field(default=60, gt=0, description="Time limit in minutes")

    questions: tuple[Question, ...] = Field(default=())

    author: str = Field(default="")

    is_published: bool = Field(default=False)

    created_at: datetime = Field(default_factory=utcnow)

    updated_at: datetime = Field(default_factory=utcnow)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_points(self) -> Decimal:
        """Sum of all question points."""
        return sum((q.points for q in self.questions), Decimal(0))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def question_count(self) -> int:
        return len(self.questions)

    def get_question(self, question_id: str) -> Question | None:
        for question in self.questions:
            if question.id == question_id:
                return question
        return None


# ==============================================================================
# Answer Models
# ==============================================================================


class ChoiceAnswer(BaseModel):
    """A selected option index (multiple-choice or simple true-false)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["choice"] = "choice"
    index: int


class TextAnswer(BaseModel):
    """Literal text (fill-in, or an option value that is not an index)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    text: str


class SubAnswerMap(BaseModel):
    """Per-statement booleans for a compound true-false question."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["sub-answers"] = "sub-answers"
    marks: dict[str, bool] = Field(default_factory=dict)
    malformed: bool = False
    raw: str | None = None


class EssayAnswer(BaseModel):
    """Rich-text essay answer, possibly with inline images."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["essay"] = "essay"
    html: str


class NoAnswer(BaseModel):
    """The student left the question blank."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["none"] = "none"


Answer = Annotated[
    Union[ChoiceAnswer, TextAnswer, SubAnswerMap, EssayAnswer, NoAnswer],
    Field(discriminator="kind"),
]


# ==============================================================================
# Grading Result Models
# ==============================================================================


class QuestionResult(CamelModel):
    """Outcome of scoring or grading one question in a submission."""

    question_id: str

    user_answer: str = Field(default="", description="Stringified submitted answer")

    is_correct: bool = False

    points_earned: Decimal = Field(default=Decimal(0), ge=0)

    ai_feedback: str | None = None

    needs_manual_grading: bool = False

    @field_validator("points_earned", mode="before")
    @classmethod
    def convert_points(cls, v: Any) -> Decimal:
        return to_decimal(v)


class EssayGradeRequest(CamelModel):
    """Input of the essay grading boundary."""

    question_text: str = Field(..., min_length=1)

    student_answer: str = Field(..., min_length=1)

    sample_answer: str = Field(default="")

    rubric: str = Field(default="")

    max_points: Decimal = Field(..., gt=0)

    @field_validator("sample_answer", "rubric", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("max_points", mode="before")
    @classmethod
    def convert_points(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @property
    def has_grading_material(self) -> bool:
        return bool(self.sample_answer.strip() or self.rubric.strip())


class EssayGradeResult(CamelModel):
    """Output of the essay grading boundary."""

    score: Decimal = Field(..., ge=0)

    feedback: str = Field(default="")

    needs_manual_grading: bool = False

    @field_validator("score", mode="before")
    @classmethod
    def convert_score(cls, v: Any) -> Decimal:
        return to_decimal(v)


class SubmissionResult(CamelModel):
    """Aggregate outcome of grading a whole exam submission."""

    exam_id: str

    results: tuple[QuestionResult, ...]

    score: Decimal = Field(..., ge=0)

    max_score: Decimal = Field(..., ge=0)

    time_spent_seconds: int = Field(default=0, ge=0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def percentage(self) -> float:
        if self.max_score == 0:
            return 0.0
        return float(self.score / self.max_score * 100)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def pending_manual_count(self) -> int:
        """Number of questions that still need a teacher's grading."""
        return sum(1 for r in self.results if r.needs_manual_grading)

    def to_completion(self, session_id: str) -> "SessionCompletion":
        return SessionCompletion(
            session_id=session_id,
            answers=self.results,
            total_score=self.score,
            max_score=self.max_score,
            time_spent_seconds=self.time_spent_seconds,
        )


# ==============================================================================
# Session Models
# ==============================================================================


class SessionStatus(str, Enum):
    """Lifecycle of an exam session."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class ExamSession(CamelModel):
    """One student's attempt at one exam."""

    id: str = Field(default_factory=new_id)

    exam_id: str

    student_id: str | None = None

    student_name: str = Field(..., min_length=1)

    status: SessionStatus = SessionStatus.IN_PROGRESS

    started_at: datetime = Field(default_factory=utcnow)

    completed_at: datetime | None = None

    time_spent: int = Field(default=0, ge=0, description="Seconds spent on the exam")

    score: Decimal = Field(default=Decimal(0), ge=0)

    total_score: Decimal = Field(default=Decimal(0), ge=0)

    percentage: float = Field(default=0.0, ge=0.0)

    @field_validator("score", "total_score", mode="before")
    @classmethod
    def convert_points(cls, v: Any) -> Decimal:
        return to_decimal(v)


class StudentAnswer(CamelModel):
    """Persisted answer row, unique per (session_id, question_id)."""

    session_id: str

    question_id: str

    user_answer: str = ""

    is_correct: bool = False

    points_earned: Decimal = Field(default=Decimal(0), ge=0)

    ai_feedback: str | None = None

    @field_validator("points_earned", mode="before")
    @classmethod
    def convert_points(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @classmethod
    def from_result(cls, session_id: str, result: QuestionResult) -> "StudentAnswer":
        return cls(
            session_id=session_id,
            question_id=result.question_id,
            user_answer=result.user_answer,
            is_correct=result.is_correct,
            points_earned=result.points_earned,
            ai_feedback=result.ai_feedback,
        )


class SessionCompletion(CamelModel):
    """Request to persist a finished session together with its answers."""

    session_id: str

    answers: tuple[QuestionResult, ...] = Field(default=())

    total_score: Decimal = Field(..., ge=0, description="Points earned")

    max_score: Decimal = Field(..., ge=0, description="Points possible")

    time_spent_seconds: int = Field(default=0, ge=0)

    @field_validator("total_score", "max_score", mode="before")
    @classmethod
    def convert_points(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def percentage(self) -> float:
        if self.max_score == 0:
            return 0.0
        return float(self.total_score / self.max_score * 100)


class SessionDetail(CamelModel):
    """A session with its persisted answers and the exam it belongs to."""

    session: ExamSession

    answers: tuple[StudentAnswer, ...] = Field(default=())

    exam: Exam | None = None


# ==============================================================================
# Document Extraction Models
# ==============================================================================


class ExtractedDocument(BaseModel):
    """
    Result of extracting text from an exam document.

    Contains the extracted text and metadata about the source.
    """

    model_config = ConfigDict(frozen=True)

    content: str = Field(..., description="Extracted text content")

    source_path: str = Field(..., description="Path to the source document")

    file_extension: str = Field(..., description="File extension of the source document")

    extracted_at: datetime = Field(default_factory=utcnow)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def character_count(self) -> int:
        return len(self.content)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_answer_key(self) -> bool:
        """Whether the document contains a grading guide section."""
        upper = self.content.upper()
        return any(marker in upper for marker in ANSWER_KEY_MARKERS)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_empty(self) -> bool:
        return len(self.content.strip()) == 0
