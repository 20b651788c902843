"""Streaming transport: one persistent WebSocket for the whole session."""

from __future__ import annotations

import asyncio
import contextlib
import json
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from duplex.audio.types import AudioClip, Utterance
from duplex.config import Settings, get_settings
from duplex.core.conversation import Message
from duplex.core.exceptions import FatalConnectionError, TransportError
from duplex.logging_config import get_logger, preview
from duplex.observability.metrics import record_reconnect
from duplex.transport.base import BaseTransport
from duplex.transport.protocol import TransportEvent

logger: Any = get_logger(__name__)

Connector = Callable[[str], Awaitable[Any]]

CONNECT_ERRORS = (OSError, TimeoutError, WebSocketException)


class StreamingTransport(BaseTransport):
    """Pushes utterances over a WebSocket and receives results as frames.

    Every frame carries the turn id of the exchange it belongs to; frames
    from abandoned or failed turns are dropped. Unexpected disconnects are
    retried with exponential backoff up to `max_reconnect_attempts`.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        connector: Connector | None = None,
    ) -> None:
        super().__init__()
        self._settings = settings or get_settings()
        self._connector = connector or self._open
        self._ws: Any = None
        self._receive_task: asyncio.Task[None] | None = None
        self._closing = False
        # (turn_id, mime_type) of an announced audio frame
        self._pending_audio: tuple[int, str] | None = None

    async def _open(self, url: str) -> Any:
        return await websockets.connect(
            url,
            open_timeout=self._settings.request_timeout_s,
            max_size=None,
        )

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------
    async def connect(self) -> bool:
        """Open the connection, retrying with backoff.

        Returns False once every attempt has failed.
        """
        if self.is_connected:
            return True
        self._closing = False

        attempts = self._settings.max_reconnect_attempts
        for attempt in range(attempts):
            if await self._try_connect():
                return True
            if attempt + 1 < attempts:
                await asyncio.sleep(self._backoff(attempt))

        logger.error(f"Could not connect to {self._settings.stream_url} after {attempts} attempts")
        return False

    async def _try_connect(self) -> bool:
        try:
            ws = await self._connector(self._settings.stream_url)
        except CONNECT_ERRORS as e:
            logger.warning(f"Connection to {self._settings.stream_url} failed: {e}")
            return False

        if self._closing:
            await ws.close()
            return False

        self._ws = ws
        self._receive_task = asyncio.create_task(self._receive_loop(ws), name="stream-receive")
        logger.info(f"Connected to {self._settings.stream_url}")
        self._emit(TransportEvent.CONNECT)
        return True

    def _backoff(self, attempt: int) -> float:
        return self._settings.reconnect_base_delay_s * 2**attempt

    async def _receive_loop(self, ws: Any) -> None:
        try:
            async for message in ws:
                self._handle_frame(message)
        except ConnectionClosed as e:
            logger.warning(f"Stream connection closed: {e}")

        if self._closing or ws is not self._ws:
            return

        self._ws = None
        self._pending_audio = None
        self._emit(TransportEvent.DISCONNECT)
        if self.is_busy:
            self._fail(TransportError("Connection lost during exchange"))
        await self._reconnect()

    async def _reconnect(self) -> None:
        attempts = self._settings.max_reconnect_attempts
        for attempt in range(attempts):
            await asyncio.sleep(self._backoff(attempt))
            if self._closing:
                return
            logger.info(f"Reconnecting (attempt {attempt + 1}/{attempts})")
            if await self._try_connect():
                record_reconnect(True)
                return
            record_reconnect(False)

        self._emit(
            TransportEvent.ERROR,
            FatalConnectionError(
                f"Connection lost and {attempts} reconnection attempts failed",
                attempts=attempts,
            ),
        )

    async def close(self) -> None:
        """Close the connection without reconnecting."""
        self._closing = True
        self.abandon()
        self._pending_audio = None

        task, self._receive_task = self._receive_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        ws, self._ws = self._ws, None
        if ws is not None:
            with contextlib.suppress(*CONNECT_ERRORS):
                await ws.close()
            logger.info("Stream connection closed")

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------
    async def send(self, utterance: Utterance, history: Sequence[Message] = ()) -> bool:
        """Push an utterance as a JSON header followed by one binary frame.

        Raises:
            TransportBusyError: If a previous exchange has not completed
        """
        exchange_id = self._begin_exchange()
        header = {
            "type": "utterance",
            "turn_id": exchange_id,
            "mime_type": utterance.mime_type,
            "history": [m.to_dict() for m in history],
        }
        return await self._push(exchange_id, json.dumps(header), utterance.audio)

    async def send_text(self, text: str, history: Sequence[Message] = ()) -> bool:
        exchange_id = self._begin_exchange()
        frame = {
            "type": "text",
            "turn_id": exchange_id,
            "text": text,
            "history": [m.to_dict() for m in history],
        }
        return await self._push(exchange_id, json.dumps(frame))

    async def _push(self, exchange_id: int, *frames: str | bytes) -> bool:
        ws = self._ws
        if ws is None:
            self._fail(TransportError("Not connected to the conversation stream"))
            return False
        try:
            for frame in frames:
                await ws.send(frame)
        except ConnectionClosed as e:
            if self._is_current(exchange_id):
                self._fail(TransportError(f"Send failed: {e}"))
            return False
        logger.debug(f"Turn {exchange_id} submitted")
        return True

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------
    def _handle_frame(self, message: str | bytes) -> None:
        if isinstance(message, bytes):
            self._handle_audio(message)
            return

        try:
            frame = json.loads(message)
        except ValueError:
            frame = None
        if not isinstance(frame, dict):
            logger.warning(f"Dropping malformed frame: {preview(message)!r}")
            return

        kind = frame.get("type")
        turn_id = frame.get("turn_id")

        if kind == "audio_response":
            # Remember the header even for stale turns so its payload is dropped too
            self._pending_audio = (turn_id, frame.get("mime_type") or "audio/wav")
            return

        if not self._is_current(turn_id):
            logger.debug(f"Dropping {kind} frame for stale turn {turn_id}")
            return

        if kind == "transcription":
            self._emit(TransportEvent.TRANSCRIPTION, frame.get("text", ""))
        elif kind == "text_response":
            self._emit(TransportEvent.TEXT_RESPONSE, frame.get("text", ""))
        elif kind == "no_speech":
            self._end_exchange()
            self._emit(TransportEvent.NO_SPEECH)
        elif kind == "error":
            self._fail(TransportError(frame.get("message") or "Backend error"))
        else:
            logger.warning(f"Unknown frame type: {kind}")

    def _handle_audio(self, data: bytes) -> None:
        pending, self._pending_audio = self._pending_audio, None
        if pending is None:
            logger.warning("Dropping audio frame without a header")
            return

        turn_id, mime_type = pending
        if not self._is_current(turn_id):
            logger.debug(f"Dropping audio for stale turn {turn_id}")
            return

        self._end_exchange()
        self._emit(TransportEvent.AUDIO_RESPONSE, AudioClip(data=data, mime_type=mime_type))
