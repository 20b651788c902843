"""Request/response transport: one HTTP exchange per utterance."""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Sequence
from typing import Any

import httpx

from duplex.audio.types import AudioClip, Utterance
from duplex.config import Settings, get_settings
from duplex.core.conversation import Message
from duplex.core.exceptions import TransportError
from duplex.logging_config import get_logger, preview
from duplex.transport.base import BaseTransport
from duplex.transport.protocol import TransportEvent

logger: Any = get_logger(__name__)

EXCHANGE_PATH = "/api/exchange"
CHAT_PATH = "/api/chat"
SPEECH_PATH = "/api/speech"


class RequestResponseTransport(BaseTransport):
    """Submits each utterance with a stateless HTTP call.

    On success the transcription, reply text and reply audio are
    published synchronously, in that order, before `send` returns.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__()
        self._settings = settings or get_settings()
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy initialization of the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._settings.backend_url,
                timeout=self._settings.request_timeout_s,
            )
            self._owns_client = True
        return self._client

    @property
    def is_connected(self) -> bool:
        return True

    async def connect(self) -> bool:
        """Nothing to establish; each exchange is its own request."""
        return True

    async def send(self, utterance: Utterance, history: Sequence[Message] = ()) -> bool:
        """POST the utterance and publish the backend's results.

        Raises:
            TransportBusyError: If a previous exchange has not completed
        """
        exchange_id = self._begin_exchange()
        try:
            response = await self.client.post(
                EXCHANGE_PATH,
                files={"audio": (utterance.filename, utterance.audio, utterance.mime_type)},
                data={
                    "history": json.dumps([m.to_dict() for m in history]),
                    "voice": self._settings.tts_voice,
                },
            )
            if response.is_error:
                if self._is_current(exchange_id):
                    self._fail(TransportError(_error_message(response)))
                return False

            payload = response.json()
            transcription = (payload.get("transcription") or "").strip()
            if not transcription:
                if self._is_current(exchange_id):
                    self._end_exchange()
                    logger.debug("Backend heard no speech")
                    self._emit(TransportEvent.NO_SPEECH)
                return True

            reply = payload.get("response") or ""
            clip = AudioClip(
                data=_decode_audio(payload.get("audio")),
                mime_type=payload.get("mime_type") or "audio/wav",
            )
            if not self._is_current(exchange_id):
                return False

            self._end_exchange()
            logger.debug(f"Exchange complete: {preview(transcription)!r} -> {preview(reply)!r}")
            self._emit(TransportEvent.TRANSCRIPTION, transcription)
            self._emit(TransportEvent.TEXT_RESPONSE, reply)
            self._emit(TransportEvent.AUDIO_RESPONSE, clip)
            return True

        except httpx.HTTPError as e:
            if self._is_current(exchange_id):
                self._fail(TransportError(f"Backend request failed: {e}"))
            return False

        except (ValueError, KeyError, AttributeError) as e:
            # Malformed JSON or base64 in an otherwise successful response
            if self._is_current(exchange_id):
                self._fail(TransportError(f"Malformed backend response: {e}"))
            return False

        finally:
            if exchange_id == self._exchange_id:
                self._end_exchange()

    async def send_text(self, text: str, history: Sequence[Message] = ()) -> bool:
        """Ask for a reply to typed input, then fetch its synthesized audio."""
        exchange_id = self._begin_exchange()
        messages = [m.to_dict() for m in history]
        messages.append({"role": "user", "content": text})
        try:
            response = await self.client.post(CHAT_PATH, json={"messages": messages})
            if response.is_error:
                if self._is_current(exchange_id):
                    self._fail(TransportError(_error_message(response)))
                return False
            reply = response.json()["message"]["content"]

            speech = await self.client.get(
                SPEECH_PATH,
                params={"text": reply, "voice": self._settings.tts_voice},
            )
            if speech.is_error:
                if self._is_current(exchange_id):
                    self._fail(TransportError(_error_message(speech)))
                return False
            clip = AudioClip(
                data=speech.content,
                mime_type=speech.headers.get("content-type", "audio/wav"),
            )
            if not self._is_current(exchange_id):
                return False

            self._end_exchange()
            self._emit(TransportEvent.TEXT_RESPONSE, reply)
            self._emit(TransportEvent.AUDIO_RESPONSE, clip)
            return True

        except httpx.HTTPError as e:
            if self._is_current(exchange_id):
                self._fail(TransportError(f"Backend request failed: {e}"))
            return False

        except (ValueError, KeyError, TypeError) as e:
            if self._is_current(exchange_id):
                self._fail(TransportError(f"Malformed backend response: {e}"))
            return False

        finally:
            if exchange_id == self._exchange_id:
                self._end_exchange()

    async def close(self) -> None:
        """Close the HTTP client if this transport created it."""
        self.abandon()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def _decode_audio(encoded: str | None) -> bytes:
    if not encoded:
        raise ValueError("response has no audio")
    try:
        return base64.b64decode(encoded, validate=True)
    except binascii.Error as e:
        raise ValueError(f"invalid audio encoding: {e}") from e


def _error_message(response: httpx.Response) -> str:
    """Best-effort error text from a failed backend response."""
    try:
        body = response.json()
    except ValueError:
        body = None
    detail = body.get("error") if isinstance(body, dict) else None
    return detail or f"Backend returned HTTP {response.status_code}"
