"""
Grading Module.

Objective answer scoring, AI essay grading and submission aggregation.
"""

from math_club.grading.engine import EssayGradingPort, SubmissionGrader
from math_club.grading.essay import EssayGrader
from math_club.grading.llm_client import LLMClient, LLMError
from math_club.grading.prompt_builder import PromptBuilder
from math_club.grading.response_parser import EssayResponseParser
from math_club.grading.scorer import ScoredAnswer, score_answer

__all__ = [
    "EssayGrader",
    "EssayGradingPort",
    "EssayResponseParser",
    "LLMClient",
    "LLMError",
    "PromptBuilder",
    "ScoredAnswer",
    "SubmissionGrader",
    "score_answer",
]
