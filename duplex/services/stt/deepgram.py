"""Deepgram STT service for complete utterances."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any

from duplex.config import Settings, get_settings
from duplex.logging_config import get_logger, preview
from duplex.services.stt.exceptions import STTConfigurationError, STTServiceError
from duplex.services.stt.protocol import TranscriptMetadata

if TYPE_CHECKING:
    from deepgram import DeepgramClient

logger: Any = get_logger(__name__)


class DeepgramService:
    """Deepgram prerecorded transcription.

    Each utterance is already complete when it reaches the backend, so
    one request per utterance replaces a live WebSocket session.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        model: str | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._model = model or self._settings.deepgram_model
        self._client: DeepgramClient | None = None
        self.last_metadata: TranscriptMetadata | None = None

    @property
    def client(self) -> DeepgramClient:
        """Lazy initialization of Deepgram client."""
        if self._client is None:
            if self._settings.deepgram_api_key is None:
                raise STTConfigurationError("DEEPGRAM_API_KEY is not set")

            from deepgram import DeepgramClient

            self._client = DeepgramClient(
                api_key=self._settings.deepgram_api_key.get_secret_value(),
            )
        return self._client

    async def transcribe(self, audio: bytes, mime_type: str = "audio/wav") -> str:
        """Transcribe a complete utterance.

        Returns:
            The transcript; empty when Deepgram heard no speech

        Raises:
            STTServiceError: If the request fails or the provider is not configured
        """
        from deepgram import PrerecordedOptions

        options = PrerecordedOptions(
            model=self._model,
            language=self._settings.transcription_language,
            smart_format=True,
            punctuate=True,
        )

        start_time = time.perf_counter()
        try:
            response = await asyncio.to_thread(
                self.client.listen.rest.v("1").transcribe_file,
                {"buffer": audio, "mimetype": mime_type},
                options,
            )
        except STTServiceError:
            raise
        except Exception as e:
            logger.error(f"Deepgram transcription failed: {e}")
            raise STTServiceError(f"Transcription failed: {e}") from e

        latency_ms = (time.perf_counter() - start_time) * 1000

        # Extract results
        results = response.results
        channels = results.channels if results else []
        transcript = ""
        metadata = TranscriptMetadata(model=self._model, latency_ms=latency_ms)

        if channels:
            alternatives = channels[0].alternatives
            if alternatives:
                transcript = alternatives[0].transcript or ""
                metadata.confidence = alternatives[0].confidence or 0.0

            detected = getattr(channels[0], "detected_language", None)
            if detected:
                metadata.detected_languages.append(detected)

        self.last_metadata = metadata
        logger.debug(f"Transcribed in {latency_ms:.0f}ms: {preview(transcript)!r}")
        return transcript

    async def close(self) -> None:
        """Close the Deepgram client."""
        self._client = None

    async def health_check(self) -> bool:
        """Check if Deepgram is configured."""
        try:
            _ = self.client
            return True
        except Exception as e:
            logger.error(f"Deepgram health check failed: {e}")
            return False
