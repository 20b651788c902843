"""Microphone capture for a single utterance at a time."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from duplex.audio.codec import encode_wav
from duplex.audio.devices import AudioInput
from duplex.audio.exceptions import AudioDeviceError
from duplex.audio.types import Utterance
from duplex.logging_config import get_logger

logger: Any = get_logger(__name__)


class CaptureSession:
    """Owns the microphone stream while recording and yields one Utterance.

    Capture is exclusive: at most one input stream is open per session,
    and it is released as soon as recording stops.
    """

    def __init__(
        self,
        source_factory: Callable[[], AudioInput],
        *,
        sample_rate: int = 16000,
        channels: int = 1,
    ) -> None:
        self._source_factory = source_factory
        self._sample_rate = sample_rate
        self._channels = channels

        self._source: AudioInput | None = None
        self._pump_task: asyncio.Task[None] | None = None
        self._chunks: list[bytes] = []
        self._started_at: datetime | None = None

    def is_currently_recording(self) -> bool:
        return self._source is not None

    async def start_recording(self) -> bool:
        """Open the microphone and start buffering frames.

        Idempotent: returns True without side effects while already recording.
        Returns False if the microphone cannot be acquired.
        """
        if self.is_currently_recording():
            return True

        source = self._source_factory()
        try:
            await source.open()
        except AudioDeviceError as e:
            logger.error(f"Failed to start recording: {e}")
            source.close()
            return False

        self._source = source
        self._chunks = []
        self._started_at = datetime.now(UTC)
        self._pump_task = asyncio.create_task(self._pump(source), name="capture-pump")
        logger.debug("Recording started")
        return True

    async def _pump(self, source: AudioInput) -> None:
        while True:
            chunk = await source.read()
            if chunk is None:
                break
            self._chunks.append(chunk)

    async def stop_recording(self) -> Utterance | None:
        """Release the microphone and finalize buffered audio.

        Returns None when not recording, or when nothing was captured.
        """
        source = self._source
        if source is None:
            return None

        self._source = None
        source.close()

        # Closing the source ends the pump once buffered frames are drained
        if self._pump_task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump_task
            self._pump_task = None

        chunks, self._chunks = self._chunks, []
        started_at = self._started_at or datetime.now(UTC)
        self._started_at = None

        pcm = b"".join(chunks)
        if not pcm:
            logger.debug("Recording stopped with no audio captured")
            return None

        utterance = Utterance(
            audio=encode_wav(pcm, self._sample_rate, self._channels),
            mime_type="audio/wav",
            sample_rate=self._sample_rate,
            started_at=started_at,
            ended_at=datetime.now(UTC),
        )
        logger.debug(
            f"Recording stopped: {len(chunks)} frames, {utterance.duration_seconds:.2f}s"
        )
        return utterance

    async def close(self) -> None:
        """Discard any recording in progress and release the microphone."""
        if self.is_currently_recording():
            await self.stop_recording()
