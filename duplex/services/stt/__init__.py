"""Speech-to-Text services (Deepgram)."""

from duplex.services.stt.deepgram import DeepgramService
from duplex.services.stt.exceptions import STTConfigurationError, STTServiceError
from duplex.services.stt.protocol import STTService, TranscriptMetadata

__all__ = [
    "DeepgramService",
    "STTService",
    "STTServiceError",
    "STTConfigurationError",
    "TranscriptMetadata",
]
