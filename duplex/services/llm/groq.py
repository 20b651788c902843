"""Groq LLM service for conversational replies."""

from __future__ import annotations

import time
from collections.abc import Sequence
from typing import Any

import groq
from groq import AsyncGroq

from duplex.config import Settings, get_settings
from duplex.logging_config import get_logger, preview
from duplex.services.llm.exceptions import (
    LLMAuthenticationError,
    LLMConnectionError,
    LLMRateLimitError,
    LLMServiceError,
)

logger: Any = get_logger(__name__)

ALLOWED_ROLES = frozenset({"user", "assistant"})


class GroqService:
    """Groq chat completions with the configured system prompt."""

    def __init__(
        self,
        settings: Settings | None = None,
        model: str | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._model = model or self._settings.groq_model
        self._client: AsyncGroq | None = None

    @property
    def client(self) -> AsyncGroq:
        """Lazy initialization of AsyncGroq client."""
        if self._client is None:
            if self._settings.groq_api_key is None:
                raise LLMAuthenticationError("GROQ_API_KEY is not set")
            self._client = AsyncGroq(
                api_key=self._settings.groq_api_key.get_secret_value(),
                timeout=30.0,
                max_retries=2,
            )
        return self._client

    async def complete(self, messages: Sequence[dict[str, str]]) -> str:
        """Generate a reply to the conversation so far.

        Raises:
            LLMRateLimitError: When rate limit exceeded
            LLMConnectionError: When API unreachable
            LLMAuthenticationError: When API key invalid
            LLMServiceError: For other API errors or an empty reply
        """
        api_messages = self._format_messages(messages)
        start_time = time.perf_counter()

        try:
            response = await self.client.chat.completions.create(
                messages=api_messages,  # type: ignore[arg-type]
                model=self._model,
                temperature=self._settings.reply_temperature,
                max_tokens=self._settings.reply_max_tokens,
            )

        except groq.RateLimitError as e:
            logger.warning(f"Groq rate limit hit: {e}")
            raise LLMRateLimitError(
                "Rate limit exceeded",
                retry_after=self._extract_retry_after(e),
            ) from e

        except groq.APIConnectionError as e:
            logger.error(f"Groq connection error: {e.__cause__}")
            raise LLMConnectionError("Failed to connect to Groq API") from e

        except groq.AuthenticationError as e:
            logger.error("Groq authentication failed")
            raise LLMAuthenticationError("Invalid Groq API key") from e

        except groq.APIStatusError as e:
            logger.error(f"Groq API error: {e.status_code} - {e.message}")
            raise LLMServiceError(f"Groq API error: {e.status_code}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise LLMServiceError("Empty response from Groq")

        latency_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(f"Reply in {latency_ms:.0f}ms: {preview(content)!r}")
        return content.strip()

    def _format_messages(self, messages: Sequence[dict[str, str]]) -> list[dict[str, str]]:
        """Prepend the system prompt; client-supplied system messages are dropped."""
        api_messages = [{"role": "system", "content": self._settings.system_prompt}]
        for msg in messages:
            if msg.get("role") in ALLOWED_ROLES and msg.get("content"):
                api_messages.append({"role": msg["role"], "content": msg["content"]})
        return api_messages

    def _extract_retry_after(self, error: groq.RateLimitError) -> float:
        """Extract retry-after from rate limit error."""
        if hasattr(error, "response") and error.response:
            retry_after = error.response.headers.get("retry-after")
            if retry_after:
                try:
                    return float(retry_after)
                except ValueError:
                    pass
        return 60.0

    async def health_check(self) -> bool:
        """Check if Groq API is reachable."""
        try:
            response = await self.client.chat.completions.create(
                messages=[{"role": "user", "content": "hi"}],
                model=self._model,
                max_tokens=1,
            )
            return bool(response.choices)
        except Exception as e:
            logger.warning(f"Groq health check failed: {e}")
            return False
