"""Shared pytest fixtures for duplex tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Generator, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pytest
import pytest_asyncio

from duplex.audio.codec import encode_wav
from duplex.audio.exceptions import AudioDeviceError
from duplex.audio.types import AudioClip, Utterance
from duplex.config import Settings
from duplex.core.activity import ActivityConfig, ActivityDetector
from duplex.core.capture import CaptureSession
from duplex.core.conversation import Message
from duplex.core.coordinator import TurnCoordinator
from duplex.core.exceptions import FatalConnectionError, TransportError
from duplex.core.playback import PlaybackSession
from duplex.services.backend import ConversationBackend
from duplex.services.tts.protocol import Voice
from duplex.transport.base import BaseTransport
from duplex.transport.protocol import TransportEvent

QUIET_FRAME = b"\x01\x00" * 480  # 30ms at 16kHz, far below the speech threshold


def make_wav(samples: int = 1600, sample_rate: int = 16000) -> bytes:
    """A short, valid mono WAV file."""
    return encode_wav(b"\x00\x01" * samples, sample_rate)


def build_settings(**overrides) -> Settings:
    """Create a Settings object with safe test defaults."""
    base = {
        "groq_api_key": "test-groq-key",
        "deepgram_api_key": "test-deepgram-key",
        "elevenlabs_api_key": "test-elevenlabs-key",
        "silence_hold_ms": 20.0,
        "response_timeout_s": 0.2,
        "reconnect_base_delay_s": 0.0,
        "max_reconnect_attempts": 3,
    }
    base.update(overrides)
    return Settings(**base)


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    """Return a factory to build Settings with overrides."""
    return build_settings


@pytest.fixture
def settings(settings_factory: Callable[..., Settings]) -> Settings:
    """Default Settings fixture."""
    return settings_factory()


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def wait_until() -> Callable[..., Any]:
    """Poll a predicate on the running loop until it holds."""
    return _wait_until


@pytest.fixture
def wav_bytes() -> bytes:
    return make_wav()


# =============================================================================
# Audio Hardware Fakes
# =============================================================================


class FakeInput:
    """AudioInput yielding preloaded frames, then blocking until closed."""

    def __init__(
        self,
        frames: Sequence[bytes] = (),
        *,
        fail_open: bool = False,
        open_error: Exception | None = None,
    ) -> None:
        self._frames = list(frames)
        self._fail_open = fail_open
        self._open_error = open_error
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self.opened = False
        self.closed = False

    async def open(self) -> None:
        if self._fail_open:
            raise AudioDeviceError("Permission denied")
        if self._open_error is not None:
            raise self._open_error
        self.opened = True
        for frame in self._frames:
            self._queue.put_nowait(frame)

    async def read(self) -> bytes | None:
        if self.closed and self._queue.empty():
            return None
        return await self._queue.get()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(None)


class FakeOutput:
    """AudioOutput that finishes immediately, or on `finish()` when holding."""

    def __init__(self, hold: bool = False) -> None:
        self.hold = hold
        self.played: list[tuple[np.ndarray, int]] = []
        self.stop_count = 0
        self.closed = False
        self._gates: list[asyncio.Event] = []

    async def play(self, samples: np.ndarray, sample_rate: int) -> None:
        self.played.append((samples, sample_rate))
        gate = asyncio.Event()
        self._gates.append(gate)
        if self.hold:
            await gate.wait()

    def finish(self) -> None:
        for gate in self._gates:
            gate.set()

    def stop(self) -> None:
        self.stop_count += 1
        self.finish()

    def close(self) -> None:
        self.closed = True


@dataclass
class InputFactory:
    """Creates FakeInputs and remembers them."""

    frames: Sequence[bytes] = (QUIET_FRAME,)
    fail_open: bool = False
    open_error: Exception | None = None
    created: list[FakeInput] = field(default_factory=list)

    def __call__(self) -> FakeInput:
        source = FakeInput(self.frames, fail_open=self.fail_open, open_error=self.open_error)
        self.created.append(source)
        return source

    @property
    def open_count(self) -> int:
        return sum(1 for s in self.created if s.opened and not s.closed)


@pytest.fixture
def input_factory() -> type[InputFactory]:
    """Source factory class for detector and capture tests."""
    return InputFactory


@pytest.fixture
def fake_output() -> FakeOutput:
    return FakeOutput()


# =============================================================================
# Transport Fake
# =============================================================================


class FakeTransport(BaseTransport):
    """In-memory transport answering synchronously according to `mode`.

    Modes: reply (default), empty, fail, hang.
    """

    def __init__(self) -> None:
        super().__init__()
        self.mode = "reply"
        self.transcription = "hello"
        self.reply = "hi there"
        self.clip = AudioClip(data=make_wav())
        self.connect_result = True
        self.connected = False
        self.close_count = 0
        self.sent: list[tuple[Utterance, tuple[Message, ...]]] = []
        self.texts: list[tuple[str, tuple[Message, ...]]] = []
        self.last_exchange_id = 0

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def connect(self) -> bool:
        self.connected = self.connect_result
        return self.connect_result

    async def send(self, utterance: Utterance, history: Sequence[Message] = ()) -> bool:
        exchange_id = self._begin_exchange()
        self.sent.append((utterance, tuple(history)))
        return self._respond(exchange_id, self.transcription)

    async def send_text(self, text: str, history: Sequence[Message] = ()) -> bool:
        exchange_id = self._begin_exchange()
        self.texts.append((text, tuple(history)))
        return self._respond(exchange_id, None)

    def _respond(self, exchange_id: int, transcription: str | None) -> bool:
        self.last_exchange_id = exchange_id
        if self.mode == "hang":
            return True
        if self.mode == "empty":
            self._end_exchange()
            self._emit(TransportEvent.NO_SPEECH)
            return True
        if self.mode == "fail":
            self._fail(TransportError("backend unavailable"))
            return False
        self.deliver(exchange_id, transcription)
        return True

    def deliver(self, exchange_id: int, transcription: str | None = None) -> None:
        """Emit results for an exchange unless it has been abandoned."""
        if not self._is_current(exchange_id):
            return
        self._end_exchange()
        if transcription is not None:
            self._emit(TransportEvent.TRANSCRIPTION, transcription)
        self._emit(TransportEvent.TEXT_RESPONSE, self.reply)
        self._emit(TransportEvent.AUDIO_RESPONSE, self.clip)

    def drop_connection(self, *, fatal: bool) -> None:
        self._emit(TransportEvent.DISCONNECT)
        if fatal:
            self.connected = False
            self._emit(
                TransportEvent.ERROR,
                FatalConnectionError("Connection lost and 3 reconnection attempts failed", 3),
            )
        else:
            self._emit(TransportEvent.CONNECT)

    async def close(self) -> None:
        self.close_count += 1
        self.connected = False
        self.abandon()


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


# =============================================================================
# Coordinator Harness
# =============================================================================


@dataclass
class Harness:
    coordinator: TurnCoordinator
    transport: FakeTransport
    detector: ActivityDetector
    capture: CaptureSession
    playback: PlaybackSession
    inputs: InputFactory
    output: FakeOutput
    transitions: list[tuple[Any, Any]]


@pytest_asyncio.fixture
async def harness(settings: Settings):
    """A coordinator wired to fake hardware and a fake transport."""
    inputs = InputFactory()
    output = FakeOutput()
    transport = FakeTransport()
    detector = ActivityDetector(
        ActivityConfig(energy_threshold=500.0, silence_hold_ms=settings.silence_hold_ms),
        source_factory=inputs,
    )
    capture = CaptureSession(inputs, sample_rate=settings.sample_rate)
    playback = PlaybackSession(lambda: output)
    coordinator = TurnCoordinator(
        transport,
        detector,
        capture,
        playback,
        response_timeout_s=settings.response_timeout_s,
    )
    transitions: list[tuple[Any, Any]] = []
    coordinator.add_listener(lambda old, new: transitions.append((old, new)))

    yield Harness(
        coordinator=coordinator,
        transport=transport,
        detector=detector,
        capture=capture,
        playback=playback,
        inputs=inputs,
        output=output,
        transitions=transitions,
    )

    await coordinator.stop_conversation()


# =============================================================================
# Backend Service Fakes
# =============================================================================


class FakeSTT:
    def __init__(self, transcript: str = "hello", error: Exception | None = None) -> None:
        self.transcript = transcript
        self.error = error
        self.calls: list[tuple[bytes, str]] = []

    async def transcribe(self, audio: bytes, mime_type: str = "audio/wav") -> str:
        self.calls.append((audio, mime_type))
        if self.error:
            raise self.error
        return self.transcript

    async def close(self) -> None:
        pass

    async def health_check(self) -> bool:
        return True


class FakeLLM:
    def __init__(self, reply: str = "hi there", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[list[dict[str, str]]] = []

    async def complete(self, messages: Sequence[dict[str, str]]) -> str:
        self.calls.append(list(messages))
        if self.error:
            raise self.error
        return self.reply

    async def health_check(self) -> bool:
        return True


class FakeTTS:
    def __init__(self, audio: bytes | None = None, error: Exception | None = None) -> None:
        self.audio = audio or make_wav()
        self.error = error
        self.calls: list[tuple[str, Voice]] = []

    async def synthesize(self, text: str, voice: Voice = Voice.ARIA) -> bytes:
        self.calls.append((text, voice))
        if self.error:
            raise self.error
        return self.audio

    async def close(self) -> None:
        pass

    async def health_check(self) -> bool:
        return True


@dataclass
class BackendParts:
    backend: ConversationBackend
    stt: FakeSTT
    llm: FakeLLM
    tts: FakeTTS


@pytest.fixture
def backend_factory(settings: Settings) -> Callable[..., BackendParts]:
    """Build a ConversationBackend over fake providers."""

    def build(
        *,
        transcript: str = "hello",
        reply: str = "hi there",
        stt_error: Exception | None = None,
        llm_error: Exception | None = None,
        tts_error: Exception | None = None,
    ) -> BackendParts:
        stt = FakeSTT(transcript, stt_error)
        llm = FakeLLM(reply, llm_error)
        tts = FakeTTS(error=tts_error)
        backend = ConversationBackend(stt=stt, llm=llm, tts=tts, settings=settings)
        return BackendParts(backend=backend, stt=stt, llm=llm, tts=tts)

    return build


@pytest.fixture
def api_backend(backend_factory: Callable[..., BackendParts]) -> BackendParts:
    """Fake-provider backend served by the test client."""
    return backend_factory()


@pytest.fixture
def test_client(settings: Settings, api_backend: BackendParts, monkeypatch) -> Generator:
    """FastAPI TestClient with test settings and a fake-provider backend."""
    from fastapi.testclient import TestClient

    from duplex.api.dependencies import get_backend
    from duplex.config import get_settings
    from duplex.main import create_app

    monkeypatch.setattr("duplex.main.get_settings", lambda: settings)

    app = create_app()
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_backend] = lambda: api_backend.backend

    with TestClient(app) as client:
        yield client
