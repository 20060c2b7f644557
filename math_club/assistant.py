"""
Explanation assistant.

A Vietnamese math tutor that students can ask about a question after
seeing their result. The conversation may be grounded in one question:
its text, the correct answer, the explanation and the student's answer.
"""

import logging
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from math_club.config import Settings, get_settings
from math_club.grading.content import strip_html
from math_club.grading.llm_client import LLMClient
from math_club.grading.prompt_builder import PromptBuilder
from math_club.models import Question, QuestionType

logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    """One turn of the tutoring conversation."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1)


class QuestionContext(BaseModel):
    """The question a conversation is about."""

    model_config = ConfigDict(frozen=True)

    question: str
    correct_answer: str = ""
    explanation: str = ""
    user_answer: str | None = None

    @classmethod
    def from_question(cls, question: Question, user_answer: str | None = None) -> "QuestionContext":
        """Describe a question's answer key in the form a student reads it."""
        if question.type == QuestionType.MULTIPLE_CHOICE:
            index = question.correct_answer
            in_range = isinstance(index, int) and 0 <= index < len(question.options)
            correct = question.options[index] if in_range else str(index)  # type: ignore[index]
        elif question.is_compound_true_false:
            correct = ", ".join(
                f"{s.label}) {'Đúng' if s.correct else 'Sai'}" for s in question.sub_questions or ()
            )
        elif question.type == QuestionType.ESSAY:
            correct = strip_html(question.sample_answer or "")
        else:
            correct = str(question.correct_answer)

        return cls(
            question=strip_html(question.question),
            correct_answer=correct,
            explanation=strip_html(question.explanation),
            user_answer=user_answer or None,
        )


class ExplainAssistant:
    """Answers students' follow-up questions about exam questions."""

    def __init__(self, settings: Settings | None = None, llm_client: LLMClient | None = None):
        self._settings = settings or get_settings()
        self._llm_client = llm_client or LLMClient(self._settings, max_retries=1)

    async def reply(
        self,
        messages: list[ChatMessage],
        context: QuestionContext | None = None,
    ) -> str:
        """
        Produce the assistant's next turn.

        Args:
            messages: The conversation so far, ending with the student's message.
            context: Question the conversation is grounded in, if any.

        Returns:
            The tutor's reply text.

        Raises:
            ValueError: If the conversation does not end with a student message.
            LLMError: If the completion request fails or returns nothing.
        """
        if not messages or messages[-1].role != "user":
            raise ValueError("Conversation must end with a user message")

        system_prompt = PromptBuilder.build_explain_system_prompt(
            question=context.question if context else None,
            correct_answer=context.correct_answer if context else None,
            explanation=context.explanation if context else None,
            user_answer=context.user_answer if context else None,
        )
        history = [{"role": m.role, "content": m.content} for m in messages[:-1]]

        logger.debug("Explaining with %s (%d earlier turns)", self._settings.chat_model, len(history))
        return await self._llm_client.generate(
            system_prompt,
            messages[-1].content,
            model=self._settings.chat_model,
            temperature=self._settings.chat_temperature,
            history=history,
        )
