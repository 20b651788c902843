"""LLM services (Groq)."""

from duplex.services.llm.exceptions import (
    LLMAuthenticationError,
    LLMConnectionError,
    LLMRateLimitError,
    LLMServiceError,
)
from duplex.services.llm.groq import GroqService
from duplex.services.llm.protocol import LLMService

__all__ = [
    "GroqService",
    "LLMService",
    "LLMServiceError",
    "LLMRateLimitError",
    "LLMConnectionError",
    "LLMAuthenticationError",
]
