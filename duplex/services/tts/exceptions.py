"""Custom exceptions for TTS services."""


class TTSServiceError(Exception):
    """Base exception for TTS service errors."""

    pass


class TTSSynthesisError(TTSServiceError):
    """Raised when synthesis fails or returns no audio."""

    pass


class TTSConnectionError(TTSServiceError):
    """Raised when the TTS provider is unreachable or not configured."""

    pass


class UnknownVoiceError(TTSServiceError, ValueError):
    """Raised when a requested voice is not one of the supported voices."""

    def __init__(self, voice: str) -> None:
        super().__init__(f"Unknown voice: {voice}")
        self.voice = voice
