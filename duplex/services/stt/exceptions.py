"""Custom exceptions for STT services."""


class STTServiceError(Exception):
    """Base exception for transcription errors."""

    pass


class STTConfigurationError(STTServiceError):
    """Raised when the transcription provider is not configured."""

    pass
