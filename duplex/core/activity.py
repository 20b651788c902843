"""Energy-based voice activity detection with a silence hold.

The detector samples microphone frames at a fixed rate, compares each
frame's RMS energy against a threshold and reports the start and end of
speech. Speech only ends after `silence_hold_ms` of continuous quiet, so
short pauses between words never split an utterance.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from duplex.audio.codec import frame_energy
from duplex.audio.devices import AudioInput, MicrophoneInput
from duplex.audio.exceptions import AudioDeviceError
from duplex.config import Settings, get_settings
from duplex.logging_config import get_logger

logger: Any = get_logger(__name__)

SpeechCallback = Callable[[], None]


@dataclass(frozen=True, slots=True)
class ActivityConfig:
    """Detection parameters, fixed for the lifetime of a session."""

    energy_threshold: float = 500.0
    silence_hold_ms: float = 1500.0

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> ActivityConfig:
        """Create config from application settings."""
        s = settings or get_settings()
        return cls(
            energy_threshold=s.energy_threshold,
            silence_hold_ms=s.silence_hold_ms,
        )


def microphone_factory(settings: Settings | None = None) -> Callable[[], AudioInput]:
    """Build a factory producing fresh microphone inputs from settings."""
    s = settings or get_settings()

    def create() -> AudioInput:
        return MicrophoneInput(
            sample_rate=s.sample_rate,
            frame_ms=s.frame_ms,
            device=s.input_device,
        )

    return create


class ActivityDetector:
    """Turns a stream of frame energies into speech start/end callbacks.

    Callbacks are plain callables invoked on the event loop; each fires
    exactly once per detected start or end.
    """

    def __init__(
        self,
        config: ActivityConfig | None = None,
        source_factory: Callable[[], AudioInput] | None = None,
    ) -> None:
        self._config = config or ActivityConfig()
        self._source_factory = source_factory or microphone_factory()
        self._source: AudioInput | None = None
        self._task: asyncio.Task[None] | None = None
        self._silence_timer: asyncio.TimerHandle | None = None
        self._speaking = False
        self._on_start: SpeechCallback | None = None
        self._on_end: SpeechCallback | None = None

    @property
    def config(self) -> ActivityConfig:
        return self._config

    @property
    def speaking(self) -> bool:
        """Whether the detector currently considers the user to be speaking."""
        return self._speaking

    @property
    def active(self) -> bool:
        """Whether an audio source is held and frames are being analysed."""
        return self._source is not None

    async def init(self, on_start: SpeechCallback, on_end: SpeechCallback) -> bool:
        """Acquire the microphone and start analysing frames.

        Returns False, without invoking either callback, when the
        microphone cannot be acquired.
        """
        if self.active:
            self.stop()

        source = self._source_factory()
        try:
            await source.open()
        except AudioDeviceError as e:
            logger.warning(f"Activity detector could not acquire audio input: {e}")
            source.close()
            return False

        self._on_start = on_start
        self._on_end = on_end
        self._source = source
        self._task = asyncio.create_task(self._analyse(source), name="activity-detector")
        logger.debug(
            f"Activity detector armed (threshold={self._config.energy_threshold}, "
            f"hold={self._config.silence_hold_ms}ms)"
        )
        return True

    async def _analyse(self, source: AudioInput) -> None:
        """Feed frame energies until the source closes."""
        while True:
            frame = await source.read()
            if frame is None:
                break
            if source is not self._source:
                break
            self.process_energy(frame_energy(frame))

    def process_energy(self, energy: float) -> None:
        """Apply one frame's energy to the hysteresis state."""
        if energy > self._config.energy_threshold:
            self._cancel_silence_timer()
            if not self._speaking:
                self._speaking = True
                logger.debug(f"Speech started (energy={energy:.0f})")
                if self._on_start:
                    self._on_start()
        elif self._speaking and self._silence_timer is None:
            loop = asyncio.get_running_loop()
            self._silence_timer = loop.call_later(
                self._config.silence_hold_ms / 1000,
                self._on_silence_elapsed,
            )

    def _on_silence_elapsed(self) -> None:
        self._silence_timer = None
        if not self._speaking:
            return
        self._speaking = False
        logger.debug("Speech ended")
        if self._on_end:
            self._on_end()

    def _cancel_silence_timer(self) -> None:
        if self._silence_timer is not None:
            self._silence_timer.cancel()
            self._silence_timer = None

    def stop(self) -> None:
        """Cancel the timer, release the audio input and reset. Idempotent."""
        self._cancel_silence_timer()

        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
            self._task = None

        if self._source is not None:
            self._source.close()
            self._source = None
            logger.debug("Activity detector disarmed")

        self._speaking = False
        self._on_start = None
        self._on_end = None

