"""Microphone input and speaker output backed by sounddevice.

The orchestration layer only sees the AudioInput / AudioOutput protocols,
so tests and alternative backends can supply their own implementations.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Protocol

from duplex.audio.buffer import AudioBuffer
from duplex.audio.exceptions import AudioDeviceError
from duplex.logging_config import get_logger

if TYPE_CHECKING:
    import numpy as np
    import sounddevice as sd

logger: Any = get_logger(__name__)


class AudioInput(Protocol):
    """A microphone stream yielding fixed-size int16 PCM frames."""

    async def open(self) -> None:
        """Acquire the device.

        Raises:
            AudioDeviceError: If the device is missing or access is denied
        """
        ...

    async def read(self) -> bytes | None:
        """Next PCM frame, or None once the input is closed."""
        ...

    def close(self) -> None:
        """Release the device. Safe to call more than once."""
        ...


class AudioOutput(Protocol):
    """A single speaker channel."""

    async def play(self, samples: np.ndarray, sample_rate: int) -> None:
        """Play samples, returning when playback reaches its natural end."""
        ...

    def stop(self) -> None:
        """Halt playback immediately."""
        ...

    def close(self) -> None:
        """Release the device."""
        ...


class MicrophoneInput:
    """sounddevice RawInputStream delivering frames into an AudioBuffer."""

    def __init__(
        self,
        *,
        sample_rate: int = 16000,
        frame_ms: int = 30,
        channels: int = 1,
        device: int | str | None = None,
    ) -> None:
        self._sample_rate = sample_rate
        self._frame_samples = int(sample_rate * frame_ms / 1000)
        self._channels = channels
        self._device = device
        self._stream: sd.RawInputStream | None = None
        self._buffer = AudioBuffer(max_size=200)

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    async def open(self) -> None:
        """Start the input stream on the running loop."""
        if self._stream is not None:
            return

        try:
            import sounddevice as sd
        except OSError as e:
            # PortAudio shared library missing
            raise AudioDeviceError(f"Audio backend unavailable: {e}") from e

        loop = asyncio.get_running_loop()
        buffer = self._buffer = AudioBuffer(max_size=200)

        def on_frames(indata: Any, frames: int, time_info: Any, status: Any) -> None:
            if status:
                logger.debug(f"Microphone status: {status}")
            loop.call_soon_threadsafe(buffer.append, bytes(indata))

        try:
            stream = sd.RawInputStream(
                samplerate=self._sample_rate,
                blocksize=self._frame_samples,
                channels=self._channels,
                dtype="int16",
                device=self._device,
                callback=on_frames,
            )
            stream.start()
        except (sd.PortAudioError, ValueError) as e:
            raise AudioDeviceError(f"Microphone unavailable: {e}") from e

        self._stream = stream
        logger.debug(
            f"Microphone opened: {self._sample_rate}Hz, {self._frame_samples} samples/frame"
        )

    async def read(self) -> bytes | None:
        return await self._buffer.get()

    def close(self) -> None:
        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            except Exception as e:
                logger.warning(f"Error closing microphone stream: {e}")
            self._stream = None
            logger.debug("Microphone closed")
        self._buffer.close()


class SpeakerOutput:
    """Plays decoded clips on the default (or configured) output device."""

    def __init__(self, device: int | str | None = None) -> None:
        self._device = device
        self._active = False

    async def play(self, samples: np.ndarray, sample_rate: int) -> None:
        try:
            import sounddevice as sd
        except OSError as e:
            raise AudioDeviceError(f"Audio backend unavailable: {e}") from e

        try:
            sd.play(samples, samplerate=sample_rate, device=self._device)
        except (sd.PortAudioError, ValueError) as e:
            raise AudioDeviceError(f"Speaker unavailable: {e}") from e

        self._active = True
        try:
            # sd.stop() from another task makes wait() return early
            await asyncio.to_thread(sd.wait)
        finally:
            self._active = False

    def stop(self) -> None:
        if not self._active:
            return
        import sounddevice as sd

        sd.stop()
        self._active = False

    def close(self) -> None:
        self.stop()
