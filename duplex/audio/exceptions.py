"""Custom exceptions for audio hardware and codecs."""


class AudioError(Exception):
    """Base exception for audio I/O errors."""

    pass


class AudioDeviceError(AudioError):
    """Raised when an input or output device cannot be opened."""

    pass


class AudioDecodeError(AudioError):
    """Raised when an encoded clip cannot be decoded."""

    pass
