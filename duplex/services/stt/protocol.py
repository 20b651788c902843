"""STT (Speech-to-Text) service protocol and data types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass
class TranscriptMetadata:
    """Metadata collected for one transcription."""

    model: str = ""
    latency_ms: float | None = None
    confidence: float = 0.0
    detected_languages: list[str] = field(default_factory=list)


class STTService(Protocol):
    """Protocol for STT (Speech-to-Text) service implementations."""

    async def transcribe(self, audio: bytes, mime_type: str = "audio/wav") -> str:
        """Transcribe a complete utterance.

        Args:
            audio: Encoded audio file bytes
            mime_type: Container type of `audio`

        Returns:
            The transcript, possibly empty when no speech was recognized

        Raises:
            STTServiceError: If the provider call fails
        """
        ...

    async def close(self) -> None:
        """Close any open connections and clean up resources."""
        ...

    async def health_check(self) -> bool:
        """Check if the service is operational."""
        ...
