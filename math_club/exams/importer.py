"""
AI-assisted exam import.

Turns an exam document (questions followed by a "HƯỚNG DẪN CHẤM" answer
key) into a draft `Exam`. The draft is meant to be reviewed by a teacher
before publishing; `ExamValidator` reports what still needs attention.
"""

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from math_club.config import Settings, get_settings
from math_club.extractors import extract_document
from math_club.grading.llm_client import LLMClient
from math_club.grading.prompt_builder import PromptBuilder
from math_club.models import Exam, ExtractedDocument, Question

logger = logging.getLogger(__name__)

REFUSAL_MARKERS = ("i'm sorry", "i cannot", "i can't")


class ExamImportError(Exception):
    """Raised when questions cannot be extracted from a document."""

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)


class ExamImporter:
    """
    Extracts questions and answer keys from exam documents.

    Extraction is a single JSON-mode completion over the whole document
    text. Unlike essay grading, extraction is retried on transient failures.
    """

    def __init__(self, settings: Settings | None = None, llm_client: LLMClient | None = None):
        self._settings = settings or get_settings()
        self._llm_client = llm_client or LLMClient(self._settings, max_retries=2)

    async def import_document(
        self,
        path: Path | str,
        title: str | None = None,
        grade: int = 10,
    ) -> Exam:
        """
        Build a draft exam from a document on disk.

        Args:
            path: PDF, .docx, .txt or .md exam document.
            title: Exam title. Defaults to the file name.
            grade: School year of the exam.

        Returns:
            An unpublished exam holding the extracted questions.

        Raises:
            ExtractionError: If the document cannot be read.
            ExamImportError: If no questions could be extracted.
            LLMError: If the completion request fails.
        """
        path = Path(path)
        document = await asyncio.to_thread(extract_document, path)

        questions = await self.extract_questions(document)
        try:
            return Exam(title=title or path.stem, grade=grade, questions=tuple(questions))
        except ValidationError as e:
            raise ExamImportError(f"Đề thi không hợp lệ: {e}", cause=e) from e

    async def extract_questions(self, document: ExtractedDocument) -> list[Question]:
        """
        Extract the questions of an already-read document.

        Raises:
            ExamImportError: On truncated, filtered, refused or malformed responses.
            LLMError: If the completion request fails.
        """
        if document.is_empty:
            raise ExamImportError("Tài liệu không có nội dung.")

        if not document.has_answer_key:
            logger.warning(
                "No answer key section found in %s; answers will be left empty",
                document.source_path,
            )

        logger.info(
            "Extracting questions from %s (%d characters)",
            document.source_path,
            document.character_count,
        )

        completion = await self._llm_client.complete(
            system_prompt=PromptBuilder.EXTRACTION_SYSTEM_PROMPT,
            user_content=PromptBuilder.build_extraction_prompt(document.content),
            model=self._settings.extraction_model,
            temperature=0.0,
            max_tokens=self._settings.extraction_max_tokens,
            json_mode=True,
        )

        if completion.finish_reason == "length":
            raise ExamImportError("Response quá dài. Vui lòng thử tài liệu có ít trang hơn.")
        if completion.finish_reason == "content_filter":
            raise ExamImportError("Nội dung bị chặn bởi bộ lọc. Vui lòng thử tài liệu khác.")

        text = completion.content.strip()
        lowered = text.lower()
        if any(marker in lowered for marker in REFUSAL_MARKERS):
            raise ExamImportError("AI từ chối xử lý nội dung này. Vui lòng thử tài liệu khác.")

        raw_questions = self._parse_payload(text)
        stamp = int(time.time() * 1000)

        questions: list[Question] = []
        for index, raw in enumerate(raw_questions):
            if not isinstance(raw, dict):
                logger.warning("Skipping question %d: not a JSON object", index + 1)
                continue
            try:
                questions.append(Question.model_validate(_normalize(raw, f"q-{stamp}-{index}")))
            except ValidationError as e:
                logger.warning("Skipping question %d: %s", index + 1, e)

        if not questions:
            raise ExamImportError("Không tìm thấy câu hỏi hợp lệ trong response.")

        logger.info("Extracted %d of %d questions", len(questions), len(raw_questions))
        return questions

    @staticmethod
    def _parse_payload(text: str) -> list[Any]:
        """Questions array from a bare list or a `{"questions": [...]}` object."""
        text = _strip_code_fence(text)
        if text.startswith("#"):
            raise ExamImportError("AI trả về text thay vì JSON. Vui lòng thử lại.")

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ExamImportError(
                f"AI trả về định dạng không hợp lệ: {text[:100]}...", cause=e
            ) from e

        questions = data if isinstance(data, list) else (
            data.get("questions") if isinstance(data, dict) else None
        )
        if not isinstance(questions, list) or not questions:
            raise ExamImportError("Không tìm thấy câu hỏi trong response.")
        return questions


def _strip_code_fence(text: str) -> str:
    if not text.startswith("```"):
        return text
    first_newline = text.find("\n")
    body = text[first_newline + 1:] if first_newline != -1 else text[3:]
    if body.rstrip().endswith("```"):
        body = body.rstrip()[:-3]
    return body.strip()


def _normalize(raw: dict[str, Any], question_id: str) -> dict[str, Any]:
    """Fill extraction defaults the way a teacher would in the editor."""
    sub_questions = raw.get("subQuestions") or None
    if sub_questions:
        sub_questions = [
            {**s, "label": str(s.get("label", "")).strip()[:1]} if isinstance(s, dict) else s
            for s in sub_questions
        ]

    correct_answer = raw.get("correctAnswer")
    if isinstance(correct_answer, float):
        # Numeric fill-in keys such as 2.5 are compared as text
        correct_answer = int(correct_answer) if correct_answer.is_integer() else str(correct_answer)

    return {
        "id": question_id,
        "question": raw.get("question") or "",
        "type": raw.get("type") or "multiple-choice",
        "options": raw.get("options") or [],
        "correctAnswer": 0 if correct_answer is None else correct_answer,
        "explanation": raw.get("explanation") or "",
        "points": raw.get("points") or 1,
        "subQuestions": sub_questions,
        "sampleAnswer": raw.get("sampleAnswer") or None,
        "rubric": raw.get("rubric") or None,
        "imageUrl": raw.get("imageUrl") or None,
        "imageDescription": raw.get("imageDescription") or None,
    }
