"""
Unit tests for the objective answer scorer.

Covers exact-match scoring, the compound true-false partial credit table
and the essay-content checks used to decide what goes to the AI grader.
"""

from decimal import Decimal

import pytest

from math_club.grading.content import extract_inline_images, has_essay_content, strip_html
from math_club.grading.scorer import (
    TRUE_FALSE_SCORE_TABLE,
    count_correct_statements,
    needs_essay_grading,
    score_answer,
)
from math_club.models import (
    ChoiceAnswer,
    EssayAnswer,
    NoAnswer,
    Question,
    QuestionType,
    SubAnswerMap,
    SubQuestion,
    TextAnswer,
)

PIXEL = "data:image/png;base64,iVBORw0KGgo="


class TestMultipleChoice:
    """Tests for multiple-choice scoring."""

    def test_correct_index_earns_full_points(self, mc_question: Question) -> None:
        scored = score_answer(mc_question, ChoiceAnswer(index=0))

        assert scored.is_correct
        assert scored.points_earned == Decimal("2")

    @pytest.mark.parametrize("index", [1, 2, 3, 7, -1])
    def test_any_other_index_earns_nothing(self, mc_question: Question, index: int) -> None:
        scored = score_answer(mc_question, ChoiceAnswer(index=index))

        assert not scored.is_correct
        assert scored.points_earned == Decimal(0)

    def test_non_index_text_never_matches(self, mc_question: Question) -> None:
        scored = score_answer(mc_question, TextAnswer(text="A"))

        assert not scored.is_correct

    def test_unanswered_scores_zero(self, mc_question: Question) -> None:
        scored = score_answer(mc_question, NoAnswer())

        assert scored.points_earned == Decimal(0)
        assert not scored.is_correct


class TestFillIn:
    """Tests for fill-in scoring."""

    def test_exact_match(self, fill_in_question: Question) -> None:
        scored = score_answer(fill_in_question, TextAnswer(text="42"))

        assert scored.is_correct
        assert scored.points_earned == Decimal("1")

    @pytest.mark.parametrize("text", ["42 ", " 42", "42.0", "Forty-two"])
    def test_no_normalization(self, fill_in_question: Question, text: str) -> None:
        assert score_answer(fill_in_question, TextAnswer(text=text)).points_earned == 0

    def test_case_sensitive(self) -> None:
        question = Question(id="q", question="?", type=QuestionType.FILL_IN, correct_answer="5")

        assert score_answer(question, TextAnswer(text="5")).is_correct
        assert not score_answer(question, TextAnswer(text="Five")).is_correct

        named = Question(id="q2", question="?", type=QuestionType.FILL_IN, correct_answer="Hai")
        assert not score_answer(named, TextAnswer(text="hai")).is_correct


class TestSimpleTrueFalse:
    """Tests for true-false questions without statements."""

    def test_option_index_match(self) -> None:
        question = Question(id="q", question="?", type=QuestionType.TRUE_FALSE, correct_answer=1)

        assert score_answer(question, ChoiceAnswer(index=1)).is_correct
        assert not score_answer(question, ChoiceAnswer(index=0)).is_correct

    def test_text_match(self) -> None:
        question = Question(id="q", question="?", type=QuestionType.TRUE_FALSE, correct_answer="true")

        assert score_answer(question, TextAnswer(text="true")).is_correct
        assert not score_answer(question, TextAnswer(text="True")).is_correct


class TestCompoundTrueFalse:
    """Tests for the non-proportional true-false partial credit table."""

    @pytest.mark.parametrize(
        ("marks", "expected_points", "expected_correct"),
        [
            ({"a": False, "b": True, "c": False, "d": True}, Decimal("0"), False),
            ({"a": True, "b": True, "c": False, "d": True}, Decimal("0.1"), False),
            ({"a": True, "b": False, "c": False, "d": True}, Decimal("0.25"), False),
            ({"a": True, "b": False, "c": True, "d": True}, Decimal("0.5"), False),
            ({"a": True, "b": False, "c": True, "d": False}, Decimal("1"), True),
        ],
    )
    def test_score_table(
        self,
        true_false_question: Question,
        marks: dict[str, bool],
        expected_points: Decimal,
        expected_correct: bool,
    ) -> None:
        scored = score_answer(true_false_question, SubAnswerMap(marks=marks))

        assert scored.points_earned == expected_points
        assert scored.is_correct is expected_correct

    def test_table_scales_with_points(self, true_false_question: Question) -> None:
        question = true_false_question.model_copy(update={"points": Decimal("4")})
        marks = {"a": True, "b": False, "c": False, "d": True}

        assert score_answer(question, SubAnswerMap(marks=marks)).points_earned == Decimal("1.00")

    def test_missing_labels_count_as_wrong(self, true_false_question: Question) -> None:
        scored = score_answer(true_false_question, SubAnswerMap(marks={"a": True}))

        assert scored.points_earned == Decimal("0.1")

    def test_malformed_answer_scores_zero(self, true_false_question: Question) -> None:
        answer = SubAnswerMap(malformed=True, raw="{not json")

        assert count_correct_statements(true_false_question, answer) == 0
        assert score_answer(true_false_question, answer).points_earned == 0

    def test_wrong_answer_shape_scores_zero(self, true_false_question: Question) -> None:
        assert score_answer(true_false_question, ChoiceAnswer(index=0)).points_earned == 0

    def test_unusual_statement_count_uses_table_by_count(self, caplog: pytest.LogCaptureFixture) -> None:
        question = Question(
            id="q-three",
            question="?",
            type=QuestionType.TRUE_FALSE,
            sub_questions=(
                SubQuestion(label="a", correct=True),
                SubQuestion(label="b", correct=True),
                SubQuestion(label="c", correct=False),
            ),
        )
        answer = SubAnswerMap(marks={"a": True, "b": True, "c": False})

        scored = score_answer(question, answer)

        assert scored.points_earned == TRUE_FALSE_SCORE_TABLE[3]
        assert not scored.is_correct
        assert "3 true-false statements" in caplog.text


class TestEssayScoring:
    """Essays are graded elsewhere; the scorer only decides what needs grading."""

    def test_essay_is_not_scored(self, essay_question: Question) -> None:
        scored = score_answer(essay_question, EssayAnswer(html="<p>x = 2</p>"))

        assert scored.points_earned == 0
        assert not scored.is_correct

    def test_needs_grading_with_text(self, essay_question: Question) -> None:
        assert needs_essay_grading(essay_question, EssayAnswer(html="<p>x = 2</p>"))

    def test_needs_grading_with_image_only(self, essay_question: Question) -> None:
        assert needs_essay_grading(essay_question, EssayAnswer(html=f'<p><img src="{PIXEL}"></p>'))

    def test_empty_markup_needs_no_grading(self, essay_question: Question) -> None:
        assert not needs_essay_grading(essay_question, EssayAnswer(html="<p><br></p>&nbsp;"))
        assert not needs_essay_grading(essay_question, NoAnswer())

    def test_objective_question_never_needs_essay_grading(self, mc_question: Question) -> None:
        assert not needs_essay_grading(mc_question, EssayAnswer(html="text"))


class TestContentHelpers:
    """Tests for rich-text helpers."""

    def test_strip_html_keeps_line_breaks(self) -> None:
        assert strip_html("<p>Dòng 1</p><p>Dòng&nbsp;2<br/>Dòng 3</p>") == "Dòng 1\nDòng 2\nDòng 3"

    def test_extract_inline_images(self) -> None:
        html = f'<p>Bài làm</p><img src="{PIXEL}"><img src="https://example.com/a.png">'

        assert extract_inline_images(html) == [PIXEL]

    def test_has_essay_content(self) -> None:
        assert has_essay_content("x")
        assert not has_essay_content("")
        assert not has_essay_content(None)
        assert not has_essay_content("<p> </p>")
