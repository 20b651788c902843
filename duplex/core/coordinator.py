"""Turn-taking state machine for a voice conversation.

Orchestrates one user turn at a time:
- Listening → speech detected → capturing → utterance sent
- Awaiting the backend → reply recorded → reply spoken
- Back to listening, or into ERROR when something fails

Transitions are planned by the pure `plan_transition` function and
executed by `TurnCoordinator` on a single event-processing task.
Hardware callbacks and transport events never run transitions directly;
they only post events.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING, Any

from duplex.audio.devices import SpeakerOutput
from duplex.audio.types import AudioClip, Utterance
from duplex.config import Settings, get_settings
from duplex.core.activity import ActivityConfig, ActivityDetector, microphone_factory
from duplex.core.capture import CaptureSession
from duplex.core.conversation import Conversation, Message
from duplex.core.exceptions import (
    AudioPermissionError,
    ConversationError,
    EmptyInputError,
    FatalConnectionError,
    PlaybackError,
    TransportBusyError,
    TransportError,
    TransportTimeoutError,
    is_recoverable,
)
from duplex.core.playback import PlaybackSession
from duplex.logging_config import get_logger, preview
from duplex.observability.metrics import record_turn

if TYPE_CHECKING:
    from duplex.transport.protocol import TransportClient

logger: Any = get_logger(__name__)


class SessionState(Enum):
    """State machine for a conversation session."""

    IDLE = auto()  # No session; no hardware or connection held
    LISTENING = auto()  # Detector armed, waiting for speech
    CAPTURING = auto()  # Recording the user's utterance
    AWAITING = auto()  # Exchange in flight, waiting for the reply
    SPEAKING = auto()  # Playing the reply
    ERROR = auto()  # Failed; recoverable errors pass straight back to LISTENING


class TurnEvent(Enum):
    START = auto()
    STOP = auto()
    SPEECH_START = auto()
    SPEECH_END = auto()
    TEXT_SUBMITTED = auto()
    EXCHANGE_SUCCEEDED = auto()
    EXCHANGE_EMPTY = auto()
    EXCHANGE_FAILED = auto()
    RESPONSE_TIMEOUT = auto()
    PLAYBACK_COMPLETE = auto()
    PLAYBACK_FAILED = auto()
    RECOVER = auto()
    PERMISSION_DENIED = auto()
    CONNECTION_LOST = auto()


class TurnAction(Enum):
    OPEN_TRANSPORT = auto()
    ARM_DETECTOR = auto()
    DISARM_DETECTOR = auto()
    START_CAPTURE = auto()
    STOP_CAPTURE = auto()
    START_TIMEOUT = auto()
    CANCEL_TIMEOUT = auto()
    SEND_UTTERANCE = auto()
    SEND_TEXT = auto()
    ABANDON_EXCHANGE = auto()
    RECORD_MESSAGES = auto()
    START_PLAYBACK = auto()
    STOP_PLAYBACK = auto()
    SURFACE_ERROR = auto()
    RESUME = auto()
    RELEASE_ALL = auto()


@dataclass(frozen=True, slots=True)
class Transition:
    """Target state and the actions to run on entering it, in order."""

    target: SessionState
    actions: tuple[TurnAction, ...] = ()


S = SessionState
E = TurnEvent
A = TurnAction

ACTIVE_STATES = frozenset({S.LISTENING, S.CAPTURING, S.AWAITING, S.SPEAKING})

TRANSITIONS: dict[tuple[SessionState, TurnEvent], Transition] = {
    (S.IDLE, E.START): Transition(S.LISTENING, (A.OPEN_TRANSPORT, A.ARM_DETECTOR)),
    (S.ERROR, E.START): Transition(S.LISTENING, (A.OPEN_TRANSPORT, A.ARM_DETECTOR)),
    (S.LISTENING, E.SPEECH_START): Transition(S.CAPTURING, (A.START_CAPTURE,)),
    (S.CAPTURING, E.SPEECH_END): Transition(
        S.AWAITING,
        (A.STOP_CAPTURE, A.DISARM_DETECTOR, A.START_TIMEOUT, A.SEND_UTTERANCE),
    ),
    (S.LISTENING, E.TEXT_SUBMITTED): Transition(
        S.AWAITING,
        (A.DISARM_DETECTOR, A.START_TIMEOUT, A.SEND_TEXT),
    ),
    (S.AWAITING, E.EXCHANGE_SUCCEEDED): Transition(
        S.SPEAKING,
        (A.CANCEL_TIMEOUT, A.RECORD_MESSAGES, A.START_PLAYBACK),
    ),
    (S.AWAITING, E.EXCHANGE_EMPTY): Transition(S.LISTENING, (A.CANCEL_TIMEOUT, A.ARM_DETECTOR)),
    (S.AWAITING, E.EXCHANGE_FAILED): Transition(
        S.ERROR,
        (A.CANCEL_TIMEOUT, A.SURFACE_ERROR, A.RESUME),
    ),
    (S.AWAITING, E.RESPONSE_TIMEOUT): Transition(
        S.ERROR,
        (A.ABANDON_EXCHANGE, A.SURFACE_ERROR, A.RESUME),
    ),
    (S.SPEAKING, E.PLAYBACK_COMPLETE): Transition(S.LISTENING, (A.ARM_DETECTOR,)),
    (S.SPEAKING, E.PLAYBACK_FAILED): Transition(
        S.ERROR,
        (A.STOP_PLAYBACK, A.SURFACE_ERROR, A.RESUME),
    ),
    (S.ERROR, E.RECOVER): Transition(S.LISTENING, (A.ARM_DETECTOR,)),
}

for _state in ACTIVE_STATES:
    TRANSITIONS[(_state, E.PERMISSION_DENIED)] = Transition(S.ERROR, (A.RELEASE_ALL, A.SURFACE_ERROR))
    TRANSITIONS[(_state, E.CONNECTION_LOST)] = Transition(S.ERROR, (A.RELEASE_ALL, A.SURFACE_ERROR))

for _state in SessionState:
    TRANSITIONS[(_state, E.STOP)] = Transition(S.IDLE, (A.RELEASE_ALL,))

del _state


def plan_transition(state: SessionState, event: TurnEvent) -> Transition | None:
    """Look up the transition for an event, or None if it is not valid in `state`."""
    return TRANSITIONS.get((state, event))


# Turn outcomes counted when an exchange leaves AWAITING
_TURN_OUTCOMES = {
    E.EXCHANGE_SUCCEEDED: "completed",
    E.EXCHANGE_EMPTY: "empty",
    E.EXCHANGE_FAILED: "failed",
    E.RESPONSE_TIMEOUT: "timeout",
}


# Follow-up event for an action that raised unexpectedly
_ACTION_FAILURES: dict[TurnAction, tuple[TurnEvent, type[ConversationError]]] = {
    A.OPEN_TRANSPORT: (E.CONNECTION_LOST, FatalConnectionError),
    A.ARM_DETECTOR: (E.PERMISSION_DENIED, AudioPermissionError),
    A.DISARM_DETECTOR: (E.PERMISSION_DENIED, AudioPermissionError),
    A.START_CAPTURE: (E.PERMISSION_DENIED, AudioPermissionError),
    A.STOP_CAPTURE: (E.PERMISSION_DENIED, AudioPermissionError),
    A.RECORD_MESSAGES: (E.PLAYBACK_FAILED, PlaybackError),
    A.START_PLAYBACK: (E.PLAYBACK_FAILED, PlaybackError),
}


@dataclass(slots=True)
class TurnDraft:
    """Results of the in-flight exchange, committed only when it succeeds."""

    utterance: Utterance | None = None
    transcription: str | None = None
    response: str | None = None


@dataclass(slots=True)
class _Queued:
    event: TurnEvent
    payload: Any
    applied: asyncio.Future[bool]


FollowUp = tuple[TurnEvent, Any]
StateListener = Callable[[SessionState, SessionState], None]


class TurnCoordinator:
    """Drives one conversation session through the turn-taking cycle.

    The transport, detector, capture and playback are owned by the
    coordinator for the lifetime of the session and are all released on
    every path into IDLE or terminal ERROR.
    """

    def __init__(
        self,
        transport: TransportClient,
        detector: ActivityDetector,
        capture: CaptureSession,
        playback: PlaybackSession,
        *,
        response_timeout_s: float = 30.0,
    ) -> None:
        self._transport = transport
        self._detector = detector
        self._capture = capture
        self._playback = playback
        self._response_timeout_s = response_timeout_s

        self._state = SessionState.IDLE
        self._conversation = Conversation()
        self._draft: TurnDraft | None = None
        self._last_error: ConversationError | None = None
        self._listeners: list[StateListener] = []

        self._queue: asyncio.Queue[_Queued] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._exchange_task: asyncio.Task[None] | None = None
        self._timeout_handle: asyncio.TimerHandle | None = None

        transport.on_transcription(self._on_transcription)
        transport.on_text_response(self._on_text_response)
        transport.on_audio_response(self._on_audio_response)
        transport.on_no_speech(self._on_no_speech)
        transport.on_error(self._on_transport_error)
        transport.on_connect(lambda: logger.info("Backend connected"))
        transport.on_disconnect(lambda: logger.warning("Backend disconnected"))

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> TurnCoordinator:
        """Wire a coordinator to the microphone, speaker and configured transport."""
        from duplex.transport.factory import create_transport

        s = settings or get_settings()
        microphone = microphone_factory(s)
        return cls(
            transport=create_transport(s),
            detector=ActivityDetector(ActivityConfig.from_settings(s), source_factory=microphone),
            capture=CaptureSession(microphone, sample_rate=s.sample_rate),
            playback=PlaybackSession(lambda: SpeakerOutput(device=s.output_device)),
            response_timeout_s=s.response_timeout_s,
        )

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def messages(self) -> tuple[Message, ...]:
        return self._conversation.messages

    @property
    def is_user_speaking(self) -> bool:
        return self._state is SessionState.CAPTURING

    @property
    def is_active(self) -> bool:
        return self._state in ACTIVE_STATES

    @property
    def last_error(self) -> ConversationError | None:
        """Most recent user-visible error, cleared when a session starts."""
        return self._last_error

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback invoked with (old, new) on every state change."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Upward interface
    # ------------------------------------------------------------------
    async def start_conversation(self) -> bool:
        """Open the transport and start listening.

        Returns False if the microphone or the backend is unavailable; the
        reason is in `last_error`.
        """
        if self.is_active:
            return True
        self._last_error = None
        await self._post(TurnEvent.START)
        return self._state is SessionState.LISTENING

    async def stop_conversation(self) -> None:
        """End the session from any state and release everything. Idempotent."""
        await self._post(TurnEvent.STOP)

    async def send_message(self, text: str) -> bool:
        """Submit typed input as a turn.

        Accepted only while listening; otherwise returns False and records
        the rejection in `last_error`.
        """
        text = text.strip()
        if not text:
            self._last_error = EmptyInputError("Message is empty")
            return False

        if await self._post(TurnEvent.TEXT_SUBMITTED, text):
            return True

        if self._state is SessionState.AWAITING:
            self._last_error = TransportBusyError("Still waiting for the previous reply")
        else:
            self._last_error = ConversationError(
                f"Cannot send a message while {self._state.name.lower()}"
            )
        logger.info(f"Typed message rejected: {self._last_error}")
        return False

    # ------------------------------------------------------------------
    # Event processing
    # ------------------------------------------------------------------
    def _post(self, event: TurnEvent, payload: Any = None) -> asyncio.Future[bool]:
        """Queue an event; the future resolves to whether its transition applied."""
        loop = asyncio.get_running_loop()
        applied: asyncio.Future[bool] = loop.create_future()
        self._queue.put_nowait(_Queued(event, payload, applied))
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._drain(), name="turn-coordinator")
        return applied

    def _post_nowait(self, event: TurnEvent, payload: Any = None) -> None:
        """Fire-and-forget post for callbacks."""
        self._post(event, payload)

    async def _drain(self) -> None:
        while not self._queue.empty():
            item = self._queue.get_nowait()
            applied = False
            try:
                applied = await self._dispatch(item.event, item.payload)
            except Exception:
                logger.exception(f"Unhandled error processing {item.event.name}")
            finally:
                if not item.applied.done():
                    item.applied.set_result(applied)

    async def _dispatch(self, event: TurnEvent, payload: Any) -> bool:
        """Apply an event and any follow-ups it produces, before the next queued event."""
        applied = False
        first = True
        pending: deque[FollowUp] = deque([(event, payload)])
        while pending:
            current, data = pending.popleft()
            transition = plan_transition(self._state, current)
            if transition is None:
                logger.debug(f"Ignoring {current.name} in state {self._state.name}")
                first = False
                continue

            applied = applied or first
            first = False
            if self._state is SessionState.AWAITING and current in _TURN_OUTCOMES:
                record_turn(_TURN_OUTCOMES[current])

            old_state, self._state = self._state, transition.target
            for action in transition.actions:
                try:
                    follow_up = await self._run(action, data)
                except Exception as e:
                    follow_up = self._action_failed(action, e)
                if follow_up is not None:
                    # Remaining actions of this transition are skipped
                    pending.appendleft(follow_up)
                    break
            self._notify(old_state, transition.target)
        return applied

    def _notify(self, old_state: SessionState, new_state: SessionState) -> None:
        """Tell listeners about a state change once its entry actions have run."""
        if old_state is new_state:
            return
        logger.debug(f"Session state: {old_state.name} -> {new_state.name}")
        for listener in list(self._listeners):
            try:
                listener(old_state, new_state)
            except Exception:
                logger.exception("State listener failed")

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------
    async def _run(self, action: TurnAction, payload: Any) -> FollowUp | None:
        if action is A.OPEN_TRANSPORT:
            if not await self._transport.connect():
                return E.CONNECTION_LOST, FatalConnectionError(
                    "Could not connect to the conversation backend"
                )

        elif action is A.ARM_DETECTOR:
            armed = await self._detector.init(self._on_speech_start, self._on_speech_end)
            if not armed:
                return E.PERMISSION_DENIED, AudioPermissionError(
                    "Microphone access was denied or no input device is available"
                )

        elif action is A.DISARM_DETECTOR:
            self._detector.stop()

        elif action is A.START_CAPTURE:
            if not await self._capture.start_recording():
                return E.PERMISSION_DENIED, AudioPermissionError(
                    "Microphone could not be opened for recording"
                )

        elif action is A.STOP_CAPTURE:
            self._draft = TurnDraft(utterance=await self._capture.stop_recording())

        elif action is A.START_TIMEOUT:
            self._cancel_timeout()
            loop = asyncio.get_running_loop()
            self._timeout_handle = loop.call_later(self._response_timeout_s, self._on_response_timeout)

        elif action is A.CANCEL_TIMEOUT:
            self._cancel_timeout()

        elif action is A.SEND_UTTERANCE:
            utterance = self._draft.utterance if self._draft else None
            if utterance is None:
                logger.debug("No audio captured; skipping exchange")
                return E.EXCHANGE_EMPTY, None
            history = self._conversation.messages
            logger.info(f"Sending utterance ({utterance.duration_seconds:.1f}s)")
            self._start_exchange(lambda: self._transport.send(utterance, history))

        elif action is A.SEND_TEXT:
            text: str = payload
            self._draft = TurnDraft(transcription=text)
            history = self._conversation.messages
            logger.info("Sending typed message")
            logger.debug(f"Typed message: {preview(text)!r}")
            self._start_exchange(lambda: self._transport.send_text(text, history))

        elif action is A.ABANDON_EXCHANGE:
            self._cancel_timeout()
            self._transport.abandon()
            await self._cancel_exchange()
            self._draft = None

        elif action is A.RECORD_MESSAGES:
            draft = self._draft or TurnDraft()
            self._conversation.record_turn(draft.transcription or "", draft.response or "")
            logger.debug(
                f"Turn recorded: {preview(draft.transcription or '')!r} -> "
                f"{preview(draft.response or '')!r}"
            )
            self._draft = None

        elif action is A.START_PLAYBACK:
            clip: AudioClip = payload
            self._playback.play(
                clip,
                on_complete=lambda: self._post_nowait(E.PLAYBACK_COMPLETE),
                on_error=lambda error: self._post_nowait(E.PLAYBACK_FAILED, error),
            )

        elif action is A.STOP_PLAYBACK:
            self._playback.stop()

        elif action is A.SURFACE_ERROR:
            self._surface(payload)

        elif action is A.RESUME:
            return E.RECOVER, None

        elif action is A.RELEASE_ALL:
            await self._release_all()

        return None

    def _surface(self, error: ConversationError) -> None:
        self._last_error = error
        if is_recoverable(error):
            logger.warning(f"Turn failed, resuming: {error}")
        else:
            logger.error(f"Session halted: {error}")

    def _action_failed(self, action: TurnAction, error: Exception) -> FollowUp | None:
        """Translate an unexpected action failure into a follow-up event.

        Returns None, and lets the remaining actions run, when the failure
        has no valid transition from the current state.
        """
        logger.opt(exception=error).error(f"Action {action.name} failed")
        event, error_type = _ACTION_FAILURES.get(action, (E.EXCHANGE_FAILED, TransportError))
        if plan_transition(self._state, event) is None:
            return None

        wrapped = error_type(f"{action.name.lower().replace('_', ' ')} failed: {error}")
        wrapped.__cause__ = error
        return event, wrapped

    def _start_exchange(self, send: Callable[[], Awaitable[bool]]) -> None:
        self._exchange_task = asyncio.create_task(self._exchange(send), name="turn-exchange")

    async def _exchange(self, send: Callable[[], Awaitable[bool]]) -> None:
        # Results and failures arrive through the transport's subscriptions
        try:
            await send()
        except TransportError as e:
            self._post_nowait(E.EXCHANGE_FAILED, e)

    async def _cancel_exchange(self) -> None:
        task, self._exchange_task = self._exchange_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _cancel_timeout(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None

    async def _release_all(self) -> None:
        """Release hardware, timers and the connection. Safe from any state.

        Every step runs even if an earlier one fails.
        """
        self._cancel_timeout()
        self._draft = None

        async def detector() -> None:
            self._detector.stop()

        steps = (
            ("detector", detector),
            ("capture", self._capture.close),
            ("playback", self._playback.close),
            ("exchange", self._cancel_exchange),
            ("transport", self._transport.close),
        )
        for name, release in steps:
            try:
                await release()
            except Exception:
                logger.exception(f"Failed to release {name}")
        logger.debug("Session resources released")

    # ------------------------------------------------------------------
    # Callbacks (post only)
    # ------------------------------------------------------------------
    def _on_speech_start(self) -> None:
        self._post_nowait(E.SPEECH_START)

    def _on_speech_end(self) -> None:
        self._post_nowait(E.SPEECH_END)

    def _on_response_timeout(self) -> None:
        self._timeout_handle = None
        self._post_nowait(E.RESPONSE_TIMEOUT, TransportTimeoutError(self._response_timeout_s))

    def _on_transcription(self, text: str) -> None:
        if self._draft is not None:
            self._draft.transcription = text

    def _on_text_response(self, text: str) -> None:
        if self._draft is not None:
            self._draft.response = text

    def _on_audio_response(self, clip: AudioClip) -> None:
        self._post_nowait(E.EXCHANGE_SUCCEEDED, clip)

    def _on_no_speech(self) -> None:
        self._post_nowait(E.EXCHANGE_EMPTY)

    def _on_transport_error(self, error: TransportError) -> None:
        if isinstance(error, FatalConnectionError):
            self._post_nowait(E.CONNECTION_LOST, error)
        else:
            self._post_nowait(E.EXCHANGE_FAILED, error)

