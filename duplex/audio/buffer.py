"""Bounded async frame buffer between audio callbacks and consumers."""

from __future__ import annotations

import asyncio
import contextlib


class AudioBuffer:
    """Async audio frame buffer that drops the oldest frame when full.

    Device callbacks run on a PortAudio thread and must never block,
    so appends are non-blocking and a slow consumer loses old audio
    rather than stalling the device.
    """

    def __init__(self, max_size: int = 100) -> None:
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue(maxsize=max_size)
        self._closed = False
        self.dropped = 0

    def append(self, chunk: bytes) -> None:
        """Add audio chunk to buffer."""
        if self._closed:
            return
        try:
            self._queue.put_nowait(chunk)
        except asyncio.QueueFull:
            # Drop oldest chunk to make room
            try:
                self._queue.get_nowait()
                self._queue.put_nowait(chunk)
                self.dropped += 1
            except asyncio.QueueEmpty:
                pass

    async def get(self, timeout: float | None = None) -> bytes | None:
        """Get next audio chunk from buffer.

        Returns None on timeout or once the buffer is closed and drained.
        """
        if self._closed and self._queue.empty():
            return None
        try:
            chunk = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except TimeoutError:
            return None
        if chunk is None:
            # Re-post the sentinel so every waiting consumer sees it
            with contextlib.suppress(asyncio.QueueFull):
                self._queue.put_nowait(None)
        return chunk

    def clear(self) -> None:
        """Clear all buffered audio."""
        while not self._queue.empty():
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break

    def close(self) -> None:
        """Close buffer and signal end of stream."""
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            # Make room for the sentinel; consumers stop at close anyway
            with contextlib.suppress(asyncio.QueueEmpty):
                self._queue.get_nowait()
            self._queue.put_nowait(None)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def size(self) -> int:
        """Current buffer size."""
        return self._queue.qsize()
