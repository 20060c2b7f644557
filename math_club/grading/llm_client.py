"""
LLM client for the OpenAI chat completions API.

Provides an async wrapper around the OpenAI SDK with a bounded request
lifetime, error classification and optional retry with backoff.
Essay grading runs with retries disabled: a failed grade is final.
"""

import asyncio
import logging
from typing import Any, NamedTuple

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    RateLimitError,
)

from math_club.config import Settings, get_settings

logger = logging.getLogger(__name__)

MessageContent = str | list[dict[str, Any]]


class LLMError(Exception):
    """Raised when an LLM API call fails."""

    def __init__(self, message: str, cause: Exception | None = None, retryable: bool = False):
        self.cause = cause
        self.retryable = retryable
        super().__init__(message)


class Completion(NamedTuple):
    """Text of the first choice and why generation stopped."""

    content: str
    finish_reason: str | None


class LLMClient:
    """
    Client for interacting with the completion API.

    Every request is aborted after `request_timeout_seconds`; an aborted
    request surfaces as an `LLMError` like any other transport failure.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        max_retries: int = 0,
        client: AsyncOpenAI | None = None,
    ):
        """
        Initialize the LLM client.

        Args:
            settings: Configuration settings. Uses global settings if not provided.
            max_retries: Retries for retryable failures (0 disables retrying).
            client: Preconfigured SDK client, mainly for tests.
        """
        self._settings = settings or get_settings()
        self._client = client or AsyncOpenAI(
            api_key=self._settings.openai_api_key,
            base_url=self._settings.openai_base_url,
            timeout=self._settings.request_timeout_seconds,
            max_retries=0,
        )

        self._max_retries = max_retries
        self._base_delay = 1.0  # seconds
        self._max_delay = 30.0  # seconds

    async def complete(
        self,
        system_prompt: str,
        user_content: MessageContent,
        *,
        model: str,
        temperature: float,
        max_tokens: int,
        json_mode: bool = False,
        history: list[dict[str, Any]] | None = None,
    ) -> Completion:
        """
        Request a single chat completion.

        Args:
            system_prompt: System message defining the model's role.
            user_content: Text or content parts (text and image_url) of the last user turn.
            model: Model identifier.
            temperature: Sampling temperature.
            max_tokens: Maximum tokens in the response.
            json_mode: Constrain the response to a single JSON object.
            history: Earlier conversation turns placed before the user turn.

        Returns:
            The completion text (possibly empty) and its finish reason.

        Raises:
            LLMError: If the request fails.
        """
        messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        messages.extend(history or [])
        if user_content:
            messages.append({"role": "user", "content": user_content})

        request: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}

        return await self._call_with_retry(request)

    async def generate(
        self,
        system_prompt: str,
        user_content: MessageContent,
        *,
        model: str,
        temperature: float,
        max_tokens: int = 2048,
        history: list[dict[str, Any]] | None = None,
    ) -> str:
        """Like `complete`, but an empty response is an error."""
        completion = await self.complete(
            system_prompt,
            user_content,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            history=history,
        )
        if not completion.content:
            raise LLMError("Empty response from LLM")
        return completion.content

    async def _call_with_retry(self, request: dict[str, Any]) -> Completion:
        last_error: Exception | None = None

        for attempt in range(self._max_retries + 1):
            try:
                response = await self._client.chat.completions.create(**request)

                if not response.choices:
                    return Completion(content="", finish_reason=None)
                choice = response.choices[0]
                return Completion(
                    content=choice.message.content or "",
                    finish_reason=choice.finish_reason,
                )

            except (RateLimitError, APIConnectionError) as e:
                # APITimeoutError is an APIConnectionError
                last_error = e
                if attempt < self._max_retries:
                    await asyncio.sleep(self._calculate_delay(attempt))
                    continue
                if isinstance(e, APITimeoutError):
                    kind = "Request timed out"
                elif isinstance(e, RateLimitError):
                    kind = "Rate limit exceeded"
                else:
                    kind = "Connection failed"
                raise LLMError(
                    f"{kind} after {attempt + 1} attempt(s)",
                    cause=e,
                    retryable=True,
                ) from e

            except APIStatusError as e:
                # Don't retry on client errors
                if 400 <= e.status_code < 500:
                    raise LLMError(f"API error: {e.message}", cause=e, retryable=False) from e

                last_error = e
                if attempt < self._max_retries:
                    await asyncio.sleep(self._calculate_delay(attempt))
                    continue
                raise LLMError(
                    f"API error after {attempt + 1} attempt(s): {e.message}",
                    cause=e,
                    retryable=True,
                ) from e

            except Exception as e:
                raise LLMError(f"Unexpected error: {e}", cause=e, retryable=False) from e

        raise LLMError(f"Failed after {self._max_retries} retries", cause=last_error)

    def _calculate_delay(self, attempt: int) -> float:
        """Exponential backoff delay in seconds for a 0-indexed attempt."""
        delay = self._base_delay * (2**attempt)
        return min(delay, self._max_delay)

    async def health_check(self) -> bool:
        """
        Check if the API is reachable.

        Returns:
            True if API is healthy, False otherwise.
        """
        try:
            response = await self._client.chat.completions.create(
                model=self._settings.grading_model,
                messages=[{"role": "user", "content": "ping"}],
                max_tokens=5,
            )
            return bool(response.choices)
        except Exception as e:
            logger.warning("Health check failed: %s", e)
            return False
