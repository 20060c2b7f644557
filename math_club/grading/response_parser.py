"""
Response parser for essay grading output.

Parses the JSON object returned by the model and turns it into a bounded
score: coerced to a number, clamped to [0, max_points] and rounded to the
nearest quarter point. An unparseable response never raises; it becomes a
result flagged for manual grading.
"""

import json
import logging
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from math_club.models import EssayGradeResult

logger = logging.getLogger(__name__)

UNPARSEABLE_FEEDBACK = "Không thể chấm điểm tự động. Cần giáo viên chấm thủ công."

QUARTER = Decimal("0.25")

# Leading numeric prefix, the way a lenient float parse reads "2.5 điểm"
_LEADING_NUMBER = re.compile(r"\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)")


class EssayResponseParser:
    """
    Parses essay grading responses.

    Ensures:
    1. The body is valid JSON, otherwise the result needs manual grading
    2. The score is numeric (non-numeric counts as 0)
    3. The score lies within [0, max_points]
    4. The score is a multiple of 0.25
    """

    def parse(self, response: str, max_points: Decimal) -> EssayGradeResult:
        """
        Parse a model response into an EssayGradeResult.

        Args:
            response: Raw response body (expected JSON).
            max_points: Maximum points for the question.

        Returns:
            The bounded result, or a manual-grading result if the body is not valid JSON.
        """
        try:
            data = json.loads(response)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Failed to parse grading response: %r", response)
            return self.manual_result(UNPARSEABLE_FEEDBACK)

        if not isinstance(data, dict):
            # Valid JSON without score or feedback fields reads as an empty grade
            logger.warning("Grading response is not a JSON object: %r", response)
            data = {}

        score = self.bound_score(self.coerce_score(data.get("score")), max_points)
        feedback = data.get("feedback")

        return EssayGradeResult(
            score=score,
            feedback=str(feedback) if feedback else "",
            needs_manual_grading=False,
        )

    @staticmethod
    def manual_result(feedback: str) -> EssayGradeResult:
        return EssayGradeResult(score=Decimal(0), feedback=feedback, needs_manual_grading=True)

    @staticmethod
    def coerce_score(value: Any) -> Decimal:
        """
        Coerce a JSON value to a Decimal score.

        Numbers are taken as-is, strings by their leading numeric prefix;
        anything else (including booleans and NaN) is 0.
        """
        if isinstance(value, bool) or value is None:
            return Decimal(0)

        if isinstance(value, (int, float)):
            text = str(value)
        elif isinstance(value, str):
            stripped = value.strip()
            if stripped.lstrip("+").startswith("Infinity"):
                return Decimal("Infinity")
            if stripped.startswith("-Infinity"):
                return Decimal("-Infinity")
            match = _LEADING_NUMBER.match(value)
            if not match:
                return Decimal(0)
            text = match.group(1)
        else:
            return Decimal(0)

        try:
            score = Decimal(text)
        except InvalidOperation:
            return Decimal(0)
        if score.is_nan():
            return Decimal(0)
        return score

    @staticmethod
    def bound_score(score: Decimal, max_points: Decimal) -> Decimal:
        """Clamp to [0, max_points], then round half-up to the nearest 0.25."""
        clamped = max(Decimal(0), min(max_points, score))
        quarters = (clamped / QUARTER).to_integral_value(rounding=ROUND_HALF_UP)
        # Rounding up must not pass a max that is not a quarter multiple
        if quarters * QUARTER > max_points:
            quarters -= 1
        return quarters * QUARTER
