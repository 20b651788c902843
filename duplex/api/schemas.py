"""Request and response models for the conversation API."""

from __future__ import annotations

import json
from typing import Literal

from pydantic import BaseModel, Field, TypeAdapter


class ChatMessage(BaseModel):
    """One prior message as sent by clients."""

    role: Literal["user", "assistant"]
    content: str


class ExchangeResponse(BaseModel):
    """Result of a spoken turn. Only `transcription` is set when no speech was heard."""

    transcription: str
    response: str | None = None
    audio: str | None = Field(default=None, description="Base64-encoded WAV reply")
    mime_type: str | None = None


class TranscribeResponse(BaseModel):
    transcription: str


class ChatRequest(BaseModel):
    messages: list[ChatMessage] = Field(min_length=1)
    voice: str | None = None


class ChatResponse(BaseModel):
    message: ChatMessage


class ErrorResponse(BaseModel):
    error: str


_history_adapter = TypeAdapter(list[ChatMessage])


def parse_history(raw: str | list | None) -> list[dict[str, str]]:
    """Validate client-supplied history (a JSON string or a decoded list).

    Raises:
        ValueError: If the history is not a list of role/content messages
    """
    if raw is None or raw == "":
        return []
    data = json.loads(raw) if isinstance(raw, str) else raw
    return [m.model_dump() for m in _history_adapter.validate_python(data)]
