"""Subscription and single-flight plumbing shared by transport variants."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from typing import Any

from duplex.audio.types import AudioClip
from duplex.core.exceptions import TransportBusyError, TransportError
from duplex.logging_config import get_logger
from duplex.transport.protocol import Handler, TransportEvent

logger: Any = get_logger(__name__)


class BaseTransport:
    """Publishes normalized transport events and enforces single-flight.

    Handlers are synchronous and are invoked in registration order.
    A failing handler is logged and does not prevent later handlers
    from seeing the event.
    """

    def __init__(self) -> None:
        self._handlers: dict[TransportEvent, list[Handler]] = defaultdict(list)
        self._in_flight = False
        self._exchange_id = 0

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------
    def subscribe(self, event: TransportEvent, handler: Handler) -> None:
        self._handlers[event].append(handler)

    def on_transcription(self, handler: Callable[[str], Any]) -> None:
        self.subscribe(TransportEvent.TRANSCRIPTION, handler)

    def on_text_response(self, handler: Callable[[str], Any]) -> None:
        self.subscribe(TransportEvent.TEXT_RESPONSE, handler)

    def on_audio_response(self, handler: Callable[[AudioClip], Any]) -> None:
        self.subscribe(TransportEvent.AUDIO_RESPONSE, handler)

    def on_no_speech(self, handler: Callable[[], Any]) -> None:
        self.subscribe(TransportEvent.NO_SPEECH, handler)

    def on_error(self, handler: Callable[[TransportError], Any]) -> None:
        self.subscribe(TransportEvent.ERROR, handler)

    def on_connect(self, handler: Callable[[], Any]) -> None:
        self.subscribe(TransportEvent.CONNECT, handler)

    def on_disconnect(self, handler: Callable[[], Any]) -> None:
        self.subscribe(TransportEvent.DISCONNECT, handler)

    def _emit(self, event: TransportEvent, *args: Any) -> None:
        for handler in list(self._handlers[event]):
            try:
                handler(*args)
            except Exception:
                logger.exception(f"Transport handler for {event.name} failed")

    def _fail(self, error: TransportError) -> None:
        """Close the current exchange and report why."""
        self._end_exchange()
        logger.warning(f"Transport error: {error}")
        self._emit(TransportEvent.ERROR, error)

    # ------------------------------------------------------------------
    # Single-flight
    # ------------------------------------------------------------------
    @property
    def is_busy(self) -> bool:
        return self._in_flight

    def _begin_exchange(self) -> int:
        if self._in_flight:
            raise TransportBusyError("A previous exchange is still in flight")
        self._in_flight = True
        self._exchange_id += 1
        return self._exchange_id

    def _is_current(self, exchange_id: int) -> bool:
        """Whether results for this exchange should still be delivered."""
        return self._in_flight and exchange_id == self._exchange_id

    def _end_exchange(self) -> None:
        self._in_flight = False

    def abandon(self) -> None:
        if self._in_flight:
            logger.info(f"Abandoning in-flight exchange {self._exchange_id}")
        self._exchange_id += 1
        self._end_exchange()
