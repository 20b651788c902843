"""Transport capability shared by the request/response and streaming clients."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from enum import Enum, auto
from typing import Any, Protocol

from duplex.audio.types import AudioClip, Utterance
from duplex.core.conversation import Message
from duplex.core.exceptions import TransportError


class TransportEvent(Enum):
    """Events a transport publishes to its subscribers."""

    TRANSCRIPTION = auto()  # str: what the user said
    TEXT_RESPONSE = auto()  # str: assistant reply text
    AUDIO_RESPONSE = auto()  # AudioClip: synthesized reply, ends the exchange
    NO_SPEECH = auto()  # None: utterance transcribed to nothing, ends the exchange
    ERROR = auto()  # TransportError: ends the exchange (or reports connection loss)
    CONNECT = auto()  # None
    DISCONNECT = auto()  # None


Handler = Callable[..., Any]


class TransportClient(Protocol):
    """Round trip of one user turn to the conversation backend.

    For every accepted exchange, subscribers see either
    TRANSCRIPTION → TEXT_RESPONSE → AUDIO_RESPONSE (typed input skips
    TRANSCRIPTION), or NO_SPEECH, or ERROR.
    """

    @property
    def is_busy(self) -> bool:
        """True while an exchange is in flight."""
        ...

    @property
    def is_connected(self) -> bool:
        ...

    async def connect(self) -> bool:
        """Establish the connection (no-op for request/response)."""
        ...

    async def send(self, utterance: Utterance, history: Sequence[Message] = ()) -> bool:
        """Submit an utterance.

        Raises:
            TransportBusyError: If a previous exchange has not completed
        """
        ...

    async def send_text(self, text: str, history: Sequence[Message] = ()) -> bool:
        """Submit typed user input."""
        ...

    def abandon(self) -> None:
        """Give up on the in-flight exchange; its late results are dropped."""
        ...

    async def close(self) -> None:
        ...

    def on_transcription(self, handler: Callable[[str], Any]) -> None: ...

    def on_text_response(self, handler: Callable[[str], Any]) -> None: ...

    def on_audio_response(self, handler: Callable[[AudioClip], Any]) -> None: ...

    def on_no_speech(self, handler: Callable[[], Any]) -> None: ...

    def on_error(self, handler: Callable[[TransportError], Any]) -> None: ...

    def on_connect(self, handler: Callable[[], Any]) -> None: ...

    def on_disconnect(self, handler: Callable[[], Any]) -> None: ...
