"""Audio payload types shared by capture, playback and transports."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime


@dataclass(frozen=True, slots=True)
class Utterance:
    """One captured span of user speech, encoded as a single clip.

    Produced by CaptureSession and handed to a transport as a unit.
    """

    audio: bytes
    mime_type: str = "audio/wav"
    sample_rate: int = 16000
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    ended_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def duration_seconds(self) -> float:
        """Wall-clock length of the capture."""
        return (self.ended_at - self.started_at).total_seconds()

    @property
    def filename(self) -> str:
        """Upload filename matching the encoding."""
        extension = self.mime_type.split("/")[-1]
        return f"utterance.{extension}"


@dataclass(frozen=True, slots=True)
class AudioClip:
    """Encoded reply audio received from the backend."""

    data: bytes
    mime_type: str = "audio/wav"

    @property
    def size(self) -> int:
        return len(self.data)
