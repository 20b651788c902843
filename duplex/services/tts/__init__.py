"""Text-to-Speech services (ElevenLabs)."""

from duplex.services.tts.elevenlabs import VOICE_IDS, ElevenLabsTTSService
from duplex.services.tts.exceptions import (
    TTSConnectionError,
    TTSServiceError,
    TTSSynthesisError,
    UnknownVoiceError,
)
from duplex.services.tts.protocol import SynthesisMetadata, TTSService, Voice

__all__ = [
    "ElevenLabsTTSService",
    "TTSService",
    "Voice",
    "VOICE_IDS",
    "SynthesisMetadata",
    "TTSServiceError",
    "TTSSynthesisError",
    "TTSConnectionError",
    "UnknownVoiceError",
]
