"""Conversation messages and the append-only session log."""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


class Role(str, Enum):
    """Message role in conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True, slots=True)
class Message:
    """A single message in conversation history."""

    role: Role
    content: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, str]:
        """Wire form used in backend requests."""
        return {"role": self.role.value, "content": self.content}


class Conversation:
    """Ordered, append-only record of a session's messages.

    Entries are only ever appended by the coordinator when a turn
    completes, so list order is turn order even when network replies
    complete out of order.
    """

    def __init__(self) -> None:
        self._messages: list[Message] = []

    def append(self, role: Role, content: str) -> Message:
        message = Message(role=role, content=content)
        self._messages.append(message)
        return message

    def record_turn(self, user_text: str, assistant_text: str) -> tuple[Message, Message]:
        """Append a completed user/assistant exchange."""
        return (
            self.append(Role.USER, user_text),
            self.append(Role.ASSISTANT, assistant_text),
        )

    @property
    def messages(self) -> tuple[Message, ...]:
        """Snapshot of the log; callers cannot mutate the session history."""
        return tuple(self._messages)

    def history(self) -> list[dict[str, str]]:
        return [m.to_dict() for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))
