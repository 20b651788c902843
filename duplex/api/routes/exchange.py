"""Request/response conversation endpoints.

One stateless call per turn: clients send their history with every
request and the backend keeps nothing between calls.
"""

from __future__ import annotations

import base64
import time
from typing import Any

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import JSONResponse, Response

from duplex.api.dependencies import get_backend
from duplex.api.schemas import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ErrorResponse,
    ExchangeResponse,
    TranscribeResponse,
    parse_history,
)
from duplex.core.exceptions import EmptyInputError
from duplex.logging_config import get_logger
from duplex.observability.metrics import record_exchange
from duplex.services.backend import BACKEND_ERRORS, ConversationBackend
from duplex.services.tts.protocol import Voice

logger: Any = get_logger(__name__)

router = APIRouter()

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


@router.post(
    "/exchange",
    response_model=ExchangeResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
async def exchange(
    audio: UploadFile = File(...),
    history: str = Form("[]"),
    voice: str | None = Form(None),
    backend: ConversationBackend = Depends(get_backend),
) -> ExchangeResponse | JSONResponse:
    """Transcribe an utterance, generate a reply and synthesize it."""
    try:
        messages = parse_history(history)
        selected = Voice.parse(voice, backend.default_voice)
    except ValueError as e:
        return _error(f"Invalid request: {e}", 400)

    data = await audio.read()
    start_time = time.perf_counter()
    try:
        result = await backend.exchange(
            data,
            audio.content_type or "audio/wav",
            messages,
            selected,
        )
    except EmptyInputError:
        record_exchange("exchange", "empty")
        return ExchangeResponse(transcription="")
    except BACKEND_ERRORS as e:
        logger.error(f"Exchange failed: {e}")
        record_exchange("exchange", "error")
        return _error(str(e), 502)

    record_exchange("exchange", "ok", time.perf_counter() - start_time)
    return ExchangeResponse(
        transcription=result.transcription,
        response=result.response,
        audio=base64.b64encode(result.audio).decode("ascii"),
        mime_type=result.mime_type,
    )


@router.post("/transcribe", response_model=TranscribeResponse, responses=ERROR_RESPONSES)
async def transcribe(
    audio: UploadFile = File(...),
    backend: ConversationBackend = Depends(get_backend),
) -> TranscribeResponse | JSONResponse:
    """Transcribe an utterance without replying."""
    data = await audio.read()
    try:
        text = await backend.transcribe(data, audio.content_type or "audio/wav")
    except BACKEND_ERRORS as e:
        logger.error(f"Transcription failed: {e}")
        record_exchange("transcribe", "error")
        return _error(str(e), 502)

    record_exchange("transcribe", "ok" if text else "empty")
    return TranscribeResponse(transcription=text)


@router.post("/chat", response_model=ChatResponse, responses=ERROR_RESPONSES)
async def chat(
    request: ChatRequest,
    backend: ConversationBackend = Depends(get_backend),
) -> ChatResponse | JSONResponse:
    """Reply to a text conversation ending with a user message.

    `voice` is accepted for symmetry with /exchange; audio for the reply
    comes from /speech.
    """
    *history, latest = request.messages
    if latest.role != "user" or not latest.content.strip():
        return _error("Last message must be a non-empty user message", 400)

    try:
        reply = await backend.reply([m.model_dump() for m in history], latest.content)
    except BACKEND_ERRORS as e:
        logger.error(f"Chat failed: {e}")
        record_exchange("chat", "error")
        return _error(str(e), 502)

    record_exchange("chat", "ok")
    return ChatResponse(message=ChatMessage(role="assistant", content=reply))


@router.get(
    "/speech",
    response_class=Response,
    responses={200: {"content": {"audio/wav": {}}}, **ERROR_RESPONSES},
)
async def speech(
    text: str | None = Query(None),
    voice: str | None = Query(None),
    backend: ConversationBackend = Depends(get_backend),
) -> Response:
    """Synthesize `text` and return it as a WAV file."""
    if not text or not text.strip():
        return _error("No text provided", 400)
    try:
        selected = Voice.parse(voice, backend.default_voice)
    except ValueError as e:
        return _error(str(e), 400)

    try:
        audio = await backend.synthesize(text, selected)
    except BACKEND_ERRORS as e:
        logger.error(f"Speech synthesis failed: {e}")
        record_exchange("speech", "error")
        return _error(str(e), 502)

    record_exchange("speech", "ok")
    return Response(content=audio, media_type="audio/wav")
