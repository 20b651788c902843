"""TTS (Text-to-Speech) service protocol and data types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from duplex.services.tts.exceptions import UnknownVoiceError


class Voice(str, Enum):
    """Reply voices offered to clients."""

    ARIA = "aria"
    RACHEL = "rachel"
    ADAM = "adam"
    JOSH = "josh"
    SARAH = "sarah"

    @classmethod
    def parse(cls, value: str | None, default: Voice | None = None) -> Voice:
        """Resolve a client-supplied voice name.

        Raises:
            UnknownVoiceError: If `value` names no supported voice
        """
        if not value:
            return default or cls.ARIA
        try:
            return cls(value.strip().lower())
        except ValueError as e:
            raise UnknownVoiceError(value) from e


@dataclass
class SynthesisMetadata:
    """Metadata collected for one synthesis."""

    model: str = ""
    voice: str = ""
    input_chars: int = 0
    output_duration_ms: float = 0.0
    total_synthesis_ms: float | None = None


class TTSService(Protocol):
    """Protocol for TTS (Text-to-Speech) service implementations."""

    async def synthesize(self, text: str, voice: Voice = Voice.ARIA) -> bytes:
        """Synthesize text to a complete WAV file.

        Raises:
            TTSServiceError: If synthesis fails
        """
        ...

    async def close(self) -> None:
        """Close any open connections and clean up resources."""
        ...

    async def health_check(self) -> bool:
        """Check if the service is operational."""
        ...
