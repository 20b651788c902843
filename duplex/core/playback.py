"""Single-channel reply playback."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from typing import Any

from duplex.audio.codec import decode_clip
from duplex.audio.devices import AudioOutput, SpeakerOutput
from duplex.audio.exceptions import AudioDecodeError, AudioDeviceError
from duplex.audio.types import AudioClip
from duplex.core.exceptions import PlaybackError
from duplex.logging_config import get_logger

logger: Any = get_logger(__name__)


class PlaybackSession:
    """Plays at most one clip at a time on a single output channel.

    Starting a new clip supersedes the current one; a superseded or
    stopped clip never reports completion.
    """

    def __init__(self, output_factory: Callable[[], AudioOutput] | None = None) -> None:
        self._output_factory = output_factory or SpeakerOutput
        self._output: AudioOutput | None = None
        self._task: asyncio.Task[None] | None = None
        self._generation = 0

    @property
    def is_playing(self) -> bool:
        return self._task is not None and not self._task.done()

    def _get_output(self) -> AudioOutput:
        """Lazily acquire the output device."""
        if self._output is None:
            self._output = self._output_factory()
        return self._output

    def play(
        self,
        clip: AudioClip,
        on_complete: Callable[[], None],
        on_error: Callable[[PlaybackError], None] | None = None,
    ) -> None:
        """Start playing a clip, replacing anything already playing.

        `on_complete` fires exactly once if the clip reaches its natural end.
        Decode or device failures go to `on_error` instead.
        """
        self._halt()
        self._generation += 1
        self._task = asyncio.create_task(
            self._play(clip, self._generation, on_complete, on_error),
            name=f"playback-{self._generation}",
        )

    async def _play(
        self,
        clip: AudioClip,
        generation: int,
        on_complete: Callable[[], None],
        on_error: Callable[[PlaybackError], None] | None,
    ) -> None:
        try:
            samples, sample_rate = decode_clip(clip.data)
            logger.debug(f"Playing {clip.size} bytes of {clip.mime_type} at {sample_rate}Hz")
            await self._get_output().play(samples, sample_rate)
        except (AudioDecodeError, AudioDeviceError) as e:
            logger.error(f"Playback failed: {e}")
            if generation == self._generation and on_error is not None:
                on_error(PlaybackError(str(e)))
            return

        # Only the current clip may report completion
        if generation == self._generation:
            on_complete()

    def _halt(self) -> None:
        """Invalidate the current clip and silence the device."""
        self._generation += 1
        if self._output is not None:
            self._output.stop()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def stop(self) -> None:
        """Halt playback immediately without reporting completion."""
        if self.is_playing:
            logger.debug("Playback stopped")
        self._halt()

    async def close(self) -> None:
        """Stop playback and release the output device."""
        task = self._task
        self._halt()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._output is not None:
            self._output.close()
            self._output = None
