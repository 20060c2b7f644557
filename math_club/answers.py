"""
Answer decoding at the submission boundary.

Submitted answers arrive in their stored, stringified form (an option index,
literal text, a JSON map of statement labels to booleans, or rich text).
They are decoded once per question type into typed variants so the scorer
never re-parses strings.
"""

import json
import logging
import re
from collections.abc import Mapping

from math_club.models import (
    Answer,
    ChoiceAnswer,
    EssayAnswer,
    Exam,
    NoAnswer,
    Question,
    QuestionType,
    SubAnswerMap,
    TextAnswer,
)

logger = logging.getLogger(__name__)

# Canonical integer text only, so "01" stays text and never equals "1"
_INDEX_PATTERN = re.compile(r"0|-?[1-9]\d*")

_ANSWER_TYPES = (ChoiceAnswer, TextAnswer, SubAnswerMap, EssayAnswer, NoAnswer)


def decode_answer(question: Question, raw: object) -> Answer:
    """
    Decode a raw submitted value for the given question.

    Never raises: unexpected shapes decode to a variant that simply
    does not match the answer key.
    """
    if isinstance(raw, _ANSWER_TYPES):
        return raw

    if raw is None or raw == "":
        return NoAnswer()

    if question.is_compound_true_false:
        return _decode_sub_answers(raw)

    if question.type == QuestionType.ESSAY:
        return EssayAnswer(html=str(raw))

    if question.type == QuestionType.FILL_IN:
        return TextAnswer(text=str(raw))

    # multiple-choice and simple true-false
    if isinstance(raw, bool):
        return TextAnswer(text=str(raw).lower())
    if isinstance(raw, int):
        return ChoiceAnswer(index=raw)

    text = str(raw)
    if _INDEX_PATTERN.fullmatch(text):
        return ChoiceAnswer(index=int(text))
    return TextAnswer(text=text)


def _decode_sub_answers(raw: object) -> SubAnswerMap:
    if isinstance(raw, Mapping):
        data: object = raw
        text = None
    else:
        text = str(raw)
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.debug("Unparseable true-false answer: %r", text)
            return SubAnswerMap(malformed=True, raw=text)

    if not isinstance(data, Mapping):
        return SubAnswerMap(malformed=True, raw=text)

    marks = {str(k): v for k, v in data.items() if isinstance(v, bool)}
    return SubAnswerMap(marks=marks, raw=text)


def decode_answers(exam: Exam, raw_answers: Mapping[str, object]) -> dict[str, Answer]:
    """Decode every submitted answer of an exam, keyed by question id."""
    decoded: dict[str, Answer] = {}
    for question in exam.questions:
        decoded[question.id] = decode_answer(question, raw_answers.get(question.id))

    unknown = set(raw_answers) - set(decoded)
    if unknown:
        logger.warning("Ignoring answers for unknown questions: %s", sorted(unknown))
    return decoded


def encode_answer(answer: Answer) -> str:
    """Produce the stringified form persisted as `user_answer`."""
    if isinstance(answer, ChoiceAnswer):
        return str(answer.index)
    if isinstance(answer, TextAnswer):
        return answer.text
    if isinstance(answer, SubAnswerMap):
        if answer.malformed:
            return answer.raw or ""
        return json.dumps(answer.marks, ensure_ascii=False)
    if isinstance(answer, EssayAnswer):
        return answer.html
    return ""
