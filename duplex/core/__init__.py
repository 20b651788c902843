"""Core conversation orchestration.

This module provides the turn-taking components:
- ActivityDetector: Energy-based speech start/end detection
- CaptureSession / PlaybackSession: Microphone and speaker ownership
- TurnCoordinator: State machine driving each user turn
"""

from duplex.core.activity import ActivityConfig, ActivityDetector, microphone_factory
from duplex.core.capture import CaptureSession
from duplex.core.conversation import Conversation, Message, Role
from duplex.core.coordinator import (
    SessionState,
    Transition,
    TurnAction,
    TurnCoordinator,
    TurnEvent,
    plan_transition,
)
from duplex.core.exceptions import (
    AudioPermissionError,
    ConversationError,
    EmptyInputError,
    FatalConnectionError,
    PlaybackError,
    TransportBusyError,
    TransportError,
    TransportTimeoutError,
)
from duplex.core.playback import PlaybackSession

__all__ = [
    # Audio ownership
    "ActivityConfig",
    "ActivityDetector",
    "microphone_factory",
    "CaptureSession",
    "PlaybackSession",
    # Conversation
    "Conversation",
    "Message",
    "Role",
    # Coordinator
    "TurnCoordinator",
    "SessionState",
    "TurnEvent",
    "TurnAction",
    "Transition",
    "plan_transition",
    # Errors
    "ConversationError",
    "AudioPermissionError",
    "TransportError",
    "TransportBusyError",
    "TransportTimeoutError",
    "FatalConnectionError",
    "EmptyInputError",
    "PlaybackError",
]
