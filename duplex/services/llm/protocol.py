"""LLM service protocol."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol


class LLMService(Protocol):
    """Protocol for reply generation."""

    async def complete(self, messages: Sequence[dict[str, str]]) -> str:
        """Generate the assistant's next reply.

        Args:
            messages: Conversation so far as role/content dicts, oldest first,
                ending with the user's latest turn

        Raises:
            LLMServiceError: If generation fails
        """
        ...

    async def health_check(self) -> bool:
        """Check if the service is operational."""
        ...
