"""
Essay grading orchestrator.

Grades one essay answer with a single completion request and guarantees a
well-formed result whenever the request itself succeeds. Transport failures
are raised as `LLMError` so the caller can substitute its own degraded result.
"""

import logging
from decimal import Decimal

from math_club.config import Settings, get_settings
from math_club.grading.content import extract_inline_images
from math_club.grading.llm_client import LLMClient
from math_club.grading.prompt_builder import PromptBuilder
from math_club.grading.response_parser import EssayResponseParser
from math_club.models import EssayGradeRequest, EssayGradeResult

logger = logging.getLogger(__name__)

NO_MATERIAL_FEEDBACK = "Không có đáp án mẫu hoặc thang điểm để chấm bài."


class EssayGrader:
    """
    Grades essay answers against a sample answer and/or rubric.

    Answers that embed photos of handwritten work are sent with their
    images to the vision model; text-only answers use the grading model.
    """

    def __init__(self, settings: Settings | None = None, llm_client: LLMClient | None = None):
        """
        Initialize the essay grader.

        Args:
            settings: Configuration settings. Uses global settings if not provided.
            llm_client: Client used for the grading request. Built from settings if not provided.
        """
        self._settings = settings or get_settings()
        self._llm_client = llm_client or LLMClient(self._settings, max_retries=0)
        self._parser = EssayResponseParser()

    async def grade(self, request: EssayGradeRequest) -> EssayGradeResult:
        """
        Grade a single essay answer.

        Args:
            request: Question, student answer, grading material and max points.

        Returns:
            EssayGradeResult with a score in [0, max_points] on a 0.25 grid.

        Raises:
            LLMError: If the completion request fails or times out.
        """
        if not request.has_grading_material:
            logger.info("No sample answer or rubric; essay needs manual grading")
            return EssayGradeResult(
                score=Decimal(0),
                feedback=NO_MATERIAL_FEEDBACK,
                needs_manual_grading=True,
            )

        image_count = len(extract_inline_images(request.student_answer))
        model = self._settings.vision_model if image_count else self._settings.grading_model
        logger.info("Grading essay with %s (images: %d)", model, image_count)

        completion = await self._llm_client.complete(
            system_prompt=PromptBuilder.get_essay_system_prompt(request.max_points),
            user_content=PromptBuilder.build_essay_content(request),
            model=model,
            temperature=self._settings.grading_temperature,
            max_tokens=self._settings.grading_max_tokens,
            json_mode=True,
        )

        return self._parser.parse(completion.content, request.max_points)
