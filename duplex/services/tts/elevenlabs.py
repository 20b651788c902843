"""ElevenLabs TTS service implementation for high-naturalness speech."""

from __future__ import annotations

import asyncio
import io
import time
from typing import Any

from duplex.audio.codec import encode_wav
from duplex.config import Settings, get_settings
from duplex.logging_config import get_logger
from duplex.services.tts.exceptions import TTSConnectionError, TTSSynthesisError
from duplex.services.tts.protocol import SynthesisMetadata, Voice

logger: Any = get_logger(__name__)

VOICE_IDS: dict[Voice, str] = {
    Voice.ARIA: "9BWtsMINqrJLrRacOk9x",
    Voice.RACHEL: "21m00Tcm4TlvDq8gAMAM",
    Voice.ADAM: "pNInz6obpgDQGcFmaJgB",
    Voice.JOSH: "TxGEqnHWrfWFTfGW9XjX",
    Voice.SARAH: "EXAVITQu4vr4xnGKZMOK",
}

# Sample rates ElevenLabs offers as raw PCM output
PCM_SAMPLE_RATES = frozenset({16000, 22050, 24000, 44100})


class ElevenLabsTTSService:
    """ElevenLabs TTS returning WAV files ready for playback."""

    def __init__(
        self,
        settings: Settings | None = None,
        model_id: str | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._model_id = model_id or self._settings.elevenlabs_model_id
        self._sample_rate = self._settings.tts_sample_rate
        if self._sample_rate not in PCM_SAMPLE_RATES:
            raise ValueError(f"Unsupported ElevenLabs PCM sample rate: {self._sample_rate}")
        self._client = None
        self.last_metadata: SynthesisMetadata | None = None

    def _get_client(self):
        if self._client is None:
            if not self._settings.elevenlabs_api_key:
                raise TTSConnectionError("ElevenLabs API key is not configured")
            from elevenlabs import ElevenLabs

            self._client = ElevenLabs(
                api_key=self._settings.elevenlabs_api_key.get_secret_value()
            )
        return self._client

    async def synthesize(self, text: str, voice: Voice = Voice.ARIA) -> bytes:
        """Synthesize `text` with `voice` and wrap the PCM as WAV.

        Raises:
            TTSSynthesisError: When no audio is returned
            TTSConnectionError: When ElevenLabs is unreachable or not configured
        """
        start_time = time.perf_counter()
        try:
            pcm = await asyncio.to_thread(self._synthesize_to_pcm, text, VOICE_IDS[voice])
        except TTSConnectionError:
            raise
        except Exception as e:
            logger.error(f"ElevenLabs synthesis error: {e}")
            raise TTSConnectionError(f"ElevenLabs connection failed: {e}") from e

        if not pcm:
            raise TTSSynthesisError("No audio received from ElevenLabs")

        samples = len(pcm) // 2
        self.last_metadata = SynthesisMetadata(
            model=self._model_id,
            voice=voice.value,
            input_chars=len(text),
            output_duration_ms=(samples / self._sample_rate) * 1000,
            total_synthesis_ms=(time.perf_counter() - start_time) * 1000,
        )
        logger.debug(
            f"Synthesized {len(text)} chars as {voice.value} "
            f"({self.last_metadata.output_duration_ms:.0f}ms audio)"
        )
        return encode_wav(pcm, self._sample_rate)

    def _synthesize_to_pcm(self, text: str, voice_id: str) -> bytes:
        client = self._get_client()

        audio_chunks = client.text_to_speech.convert(
            text=text,
            voice_id=voice_id,
            model_id=self._model_id,
            output_format=f"pcm_{self._sample_rate}",
        )

        buffer = io.BytesIO()
        for chunk in audio_chunks:
            buffer.write(chunk)
        return buffer.getvalue()

    async def close(self) -> None:
        self._client = None

    async def health_check(self) -> bool:
        return bool(self._settings.elevenlabs_api_key)
