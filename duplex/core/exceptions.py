"""Error taxonomy for conversation orchestration."""


class ConversationError(Exception):
    """Base exception for conversation session errors."""

    pass


class AudioPermissionError(ConversationError, PermissionError):
    """Raised when the microphone or audio hardware cannot be acquired."""

    pass


class TransportError(ConversationError):
    """Raised when a backend exchange fails or the connection drops."""

    pass


class TransportBusyError(TransportError):
    """Raised when a send is attempted while another exchange is in flight."""

    pass


class TransportTimeoutError(TransportError):
    """Raised when the backend does not answer within the response timeout."""

    def __init__(self, timeout_s: float) -> None:
        super().__init__(f"No response from backend within {timeout_s:g}s")
        self.timeout_s = timeout_s


class FatalConnectionError(TransportError):
    """Raised when reconnection attempts are exhausted."""

    def __init__(self, message: str, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class EmptyInputError(ConversationError):
    """Raised when an utterance transcribes to no speech."""

    pass


class PlaybackError(ConversationError):
    """Raised when a reply clip cannot be decoded or played."""

    pass


def is_recoverable(error: BaseException) -> bool:
    """Whether the session may resume listening after this error."""
    return not isinstance(error, AudioPermissionError | FatalConnectionError)
