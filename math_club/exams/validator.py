"""
Exam validation module.

Checks that an exam can be graded automatically before it is published:
every objective question needs a usable answer key and every essay needs
material for the grader to compare against.
"""

from math_club.grading.content import strip_html
from math_club.grading.scorer import TRUE_FALSE_STATEMENT_COUNT
from math_club.models import Exam, Question, QuestionType


class ExamValidationError(Exception):
    """Raised when exam validation fails."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        message = "Exam validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        super().__init__(message)


class ExamValidator:
    """
    Validates exams for completeness and gradability.

    Checks:
    1. The exam has a title and at least one question
    2. Question ids are unique
    3. Multiple-choice answer keys point at an existing option
    4. Compound true-false questions have four uniquely labelled statements
    5. Fill-in questions have an expected answer
    6. Essays have a sample answer or a rubric
    """

    def validate(self, exam: Exam) -> tuple[bool, list[str]]:
        """
        Validate an exam and return any issues found.

        Args:
            exam: The exam to validate.

        Returns:
            Tuple of (is_valid, list of issues).
        """
        issues: list[str] = []

        if not exam.title.strip():
            issues.append("Exam title is empty")

        if not exam.questions:
            issues.append("Exam has no questions")

        issues.extend(self._check_duplicate_ids(exam))

        for number, question in enumerate(exam.questions, start=1):
            issues.extend(self._validate_question(question, number))

        return len(issues) == 0, issues

    def validate_or_raise(self, exam: Exam) -> None:
        """
        Validate an exam and raise if invalid.

        Raises:
            ExamValidationError: If validation fails.
        """
        is_valid, issues = self.validate(exam)
        if not is_valid:
            raise ExamValidationError(issues)

    def _validate_question(self, question: Question, number: int) -> list[str]:
        issues: list[str] = []
        prefix = f"Question {number} ({question.id})"

        if not strip_html(question.question) and not question.image_url:
            issues.append(f"{prefix}: Question text is empty")

        if question.type == QuestionType.MULTIPLE_CHOICE:
            index = question.correct_answer
            if not isinstance(index, int) or not 0 <= index < len(question.options):
                issues.append(
                    f"{prefix}: Correct answer {index!r} is not an option index "
                    f"(0-{len(question.options) - 1})"
                )

        elif question.is_compound_true_false:
            issues.extend(self._validate_statements(question, prefix))

        elif question.type == QuestionType.TRUE_FALSE:
            if str(question.correct_answer).strip() == "":
                issues.append(f"{prefix}: True-false question has no correct answer")

        elif question.type == QuestionType.FILL_IN:
            if str(question.correct_answer).strip() == "":
                issues.append(f"{prefix}: Fill-in question has no expected answer")

        elif question.type == QuestionType.ESSAY:
            sample = strip_html(question.sample_answer or "")
            rubric = strip_html(question.rubric or "")
            if not sample and not rubric:
                issues.append(
                    f"{prefix}: Essay has neither a sample answer nor a rubric "
                    "and will always need manual grading"
                )

        return issues

    def _validate_statements(self, question: Question, prefix: str) -> list[str]:
        issues: list[str] = []
        statements = question.sub_questions or ()

        if len(statements) != TRUE_FALSE_STATEMENT_COUNT:
            issues.append(
                f"{prefix}: Expected {TRUE_FALSE_STATEMENT_COUNT} statements, "
                f"got {len(statements)}"
            )

        seen: set[str] = set()
        for statement in statements:
            label = statement.label.lower()
            if label in seen:
                issues.append(f"{prefix}: Duplicate statement label '{statement.label}'")
            seen.add(label)

        return issues

    def _check_duplicate_ids(self, exam: Exam) -> list[str]:
        issues: list[str] = []
        seen: dict[str, int] = {}

        for number, question in enumerate(exam.questions, start=1):
            if question.id in seen:
                issues.append(
                    f"Duplicate question id: '{question.id}' "
                    f"(appears at positions {seen[question.id]} and {number})"
                )
            else:
                seen[question.id] = number

        return issues
