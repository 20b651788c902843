"""WebSocket handler for streaming conversation turns.

Protocol (every frame carries the client's `turn_id`):
- Client sends {"type": "utterance", "turn_id", "mime_type", "history", "voice"?}
  followed by one binary frame with the encoded utterance, or
  {"type": "text", "turn_id", "text", "history", "voice"?} for typed input
- Server answers with "transcription", "text_response" and an
  "audio_response" header followed by one binary WAV frame; or
  "no_speech"; or "error"
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

from duplex.api.schemas import parse_history
from duplex.logging_config import get_logger, preview
from duplex.observability.metrics import ACTIVE_STREAMS, record_exchange
from duplex.services.backend import BACKEND_ERRORS, ConversationBackend
from duplex.services.tts.protocol import Voice

logger: Any = get_logger(__name__)


@dataclass(slots=True)
class TurnRequest:
    """A parsed client turn header."""

    turn_id: Any
    history: list[dict[str, str]]
    voice: Voice
    mime_type: str = "audio/wav"
    text: str | None = None


class ConversationStream:
    """Serves turns for one connected client, one at a time."""

    def __init__(self, websocket: WebSocket, backend: ConversationBackend) -> None:
        self._websocket = websocket
        self._backend = backend
        self._pending: TurnRequest | None = None

    async def send_frame(self, kind: str, turn_id: Any, **fields: Any) -> None:
        await self._websocket.send_text(json.dumps({"type": kind, "turn_id": turn_id, **fields}))

    async def handle_text(self, data: str) -> None:
        try:
            frame = json.loads(data)
            if not isinstance(frame, dict):
                raise ValueError("frame must be a JSON object")
        except ValueError as e:
            logger.warning(f"Invalid frame: {e}")
            await self.send_frame("error", None, message="Invalid JSON frame")
            return

        kind = frame.get("type")
        turn_id = frame.get("turn_id")
        try:
            request = TurnRequest(
                turn_id=turn_id,
                history=parse_history(frame.get("history")),
                voice=Voice.parse(frame.get("voice"), self._backend.default_voice),
                mime_type=frame.get("mime_type") or "audio/wav",
                text=frame.get("text"),
            )
        except ValueError as e:
            await self.send_frame("error", turn_id, message=f"Invalid request: {e}")
            return

        if kind == "utterance":
            # Audio arrives in the next binary frame
            self._pending = request
        elif kind == "text":
            self._pending = None
            if not (request.text or "").strip():
                await self.send_frame("error", turn_id, message="Message is empty")
                return
            await self.run_turn(request)
        else:
            await self.send_frame("error", turn_id, message=f"Unknown frame type: {kind}")

    async def handle_audio(self, data: bytes) -> None:
        request, self._pending = self._pending, None
        if request is None:
            await self.send_frame("error", None, message="Audio frame without utterance header")
            return
        await self.run_turn(request, data)

    async def run_turn(self, request: TurnRequest, audio: bytes | None = None) -> None:
        """Answer one turn, streaming each result as soon as it is ready."""
        turn_id = request.turn_id
        start_time = time.perf_counter()
        try:
            if audio is not None:
                transcription = await self._backend.transcribe(audio, request.mime_type)
                if not transcription:
                    record_exchange("stream", "empty")
                    await self.send_frame("no_speech", turn_id)
                    return
                await self.send_frame("transcription", turn_id, text=transcription)
            else:
                transcription = (request.text or "").strip()

            reply = await self._backend.reply(request.history, transcription)
            await self.send_frame("text_response", turn_id, text=reply)

            wav = await self._backend.synthesize(reply, request.voice)
            await self.send_frame("audio_response", turn_id, mime_type="audio/wav")
            await self._websocket.send_bytes(wav)

        except BACKEND_ERRORS as e:
            logger.error(f"Turn {turn_id} failed: {e}")
            record_exchange("stream", "error")
            await self.send_frame("error", turn_id, message=str(e))
            return

        record_exchange("stream", "ok", time.perf_counter() - start_time)
        logger.debug(f"Turn {turn_id} answered: {preview(reply)!r}")


async def conversation_stream_endpoint(
    websocket: WebSocket,
    backend: ConversationBackend,
) -> None:
    """Serve a streaming conversation until the client disconnects."""
    await websocket.accept()
    ACTIVE_STREAMS.inc()
    logger.info("Conversation stream connected")
    stream = ConversationStream(websocket, backend)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            if message.get("bytes") is not None:
                await stream.handle_audio(message["bytes"])
            elif message.get("text") is not None:
                await stream.handle_text(message["text"])

    except WebSocketDisconnect:
        logger.info("Client went away mid-turn")

    finally:
        ACTIVE_STREAMS.dec()
        logger.info("Conversation stream disconnected")
