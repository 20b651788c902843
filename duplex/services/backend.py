"""Server-side conversation backend: transcribe, reply, synthesize."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from duplex.config import Settings, get_settings
from duplex.core.exceptions import EmptyInputError
from duplex.logging_config import get_logger
from duplex.services.llm.exceptions import LLMServiceError
from duplex.services.llm.groq import GroqService
from duplex.services.llm.protocol import LLMService
from duplex.services.stt.deepgram import DeepgramService
from duplex.services.stt.exceptions import STTServiceError
from duplex.services.stt.protocol import STTService
from duplex.services.tts.elevenlabs import ElevenLabsTTSService
from duplex.services.tts.exceptions import TTSServiceError
from duplex.services.tts.protocol import TTSService, Voice

logger: Any = get_logger(__name__)

# Provider failures surfaced to clients as backend errors
BACKEND_ERRORS = (STTServiceError, LLMServiceError, TTSServiceError)


@dataclass(frozen=True, slots=True)
class ExchangeResult:
    """Everything a client needs to complete one turn."""

    transcription: str
    response: str
    audio: bytes
    mime_type: str = "audio/wav"


class ConversationBackend:
    """Runs one user turn through recognition, generation and synthesis.

    Stateless: the client sends the conversation history with every turn.
    """

    def __init__(
        self,
        stt: STTService | None = None,
        llm: LLMService | None = None,
        tts: TTSService | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._stt = stt or DeepgramService(self._settings)
        self._llm = llm or GroqService(self._settings)
        self._tts = tts or ElevenLabsTTSService(self._settings)

    @property
    def default_voice(self) -> Voice:
        return Voice.parse(self._settings.tts_voice)

    async def transcribe(self, audio: bytes, mime_type: str = "audio/wav") -> str:
        """Transcribe an utterance; blank results come back as ""."""
        if not audio:
            return ""
        return (await self._stt.transcribe(audio, mime_type)).strip()

    async def reply(self, history: Sequence[dict[str, str]], user_text: str) -> str:
        messages = [*history, {"role": "user", "content": user_text}]
        return await self._llm.complete(messages)

    async def synthesize(self, text: str, voice: Voice | None = None) -> bytes:
        return await self._tts.synthesize(text, voice or self.default_voice)

    async def exchange(
        self,
        audio: bytes,
        mime_type: str = "audio/wav",
        history: Sequence[dict[str, str]] = (),
        voice: Voice | None = None,
    ) -> ExchangeResult:
        """Answer a spoken turn.

        Raises:
            EmptyInputError: If the utterance contains no recognizable speech
            STTServiceError, LLMServiceError, TTSServiceError: On provider failure
        """
        transcription = await self.transcribe(audio, mime_type)
        if not transcription:
            raise EmptyInputError("No speech recognized in utterance")
        return await self.respond(transcription, history, voice)

    async def respond(
        self,
        text: str,
        history: Sequence[dict[str, str]] = (),
        voice: Voice | None = None,
    ) -> ExchangeResult:
        """Answer a turn whose text is already known (typed or transcribed)."""
        response = await self.reply(history, text)
        audio = await self.synthesize(response, voice)
        logger.info(f"Turn answered ({len(history)} prior messages, {len(audio)} bytes audio)")
        return ExchangeResult(transcription=text, response=response, audio=audio)

    async def close(self) -> None:
        await self._stt.close()
        await self._tts.close()
