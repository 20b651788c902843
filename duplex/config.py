"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables (or a local .env).
The same Settings object serves the voice client and the backend API;
backend API keys are optional so the client can run without them.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ==========================================================================
    # API Keys (backend only)
    # ==========================================================================
    groq_api_key: SecretStr | None = Field(default=None, description="Groq API key for replies")
    deepgram_api_key: SecretStr | None = Field(
        default=None, description="Deepgram API key for transcription"
    )
    elevenlabs_api_key: SecretStr | None = Field(
        default=None, description="ElevenLabs API key for speech synthesis"
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )

    # ==========================================================================
    # Audio Devices
    # ==========================================================================
    sample_rate: int = Field(default=16000, description="Microphone sample rate in Hz")
    frame_ms: int = Field(
        default=30, description="Microphone frame size in ms (activity detector frame rate)"
    )
    input_device: int | str | None = Field(
        default=None, description="sounddevice input device (index or name)"
    )
    output_device: int | str | None = Field(
        default=None, description="sounddevice output device (index or name)"
    )

    # ==========================================================================
    # Voice Activity Detection
    # ==========================================================================
    energy_threshold: float = Field(
        default=500.0,
        description="Frame RMS energy (int16 scale) above which the user is speaking",
    )
    silence_hold_ms: float = Field(
        default=1500.0,
        description="Continuous silence before an utterance is considered finished",
    )

    # ==========================================================================
    # Transport
    # ==========================================================================
    transport_mode: Literal["request", "stream"] = Field(
        default="request",
        description="request = one HTTP exchange per utterance, stream = persistent WebSocket",
    )
    backend_url: str = Field(
        default="http://localhost:8000",
        description="Base URL of the conversation backend (request mode)",
    )
    stream_url: str = Field(
        default="ws://localhost:8000/ws/conversation",
        description="WebSocket endpoint of the conversation backend (stream mode)",
    )
    request_timeout_s: float = Field(
        default=30.0, description="HTTP timeout for a single backend request"
    )
    response_timeout_s: float = Field(
        default=30.0,
        description="Longest wait for a reply before the turn is abandoned",
    )
    max_reconnect_attempts: int = Field(
        default=5, description="Connection attempts before the stream is declared lost"
    )
    reconnect_base_delay_s: float = Field(
        default=1.0, description="Initial reconnect backoff, doubled per attempt"
    )

    # ==========================================================================
    # Backend Models
    # ==========================================================================
    deepgram_model: str = Field(default="nova-2", description="Deepgram transcription model")
    transcription_language: str = Field(default="en", description="Primary spoken language")
    groq_model: str = Field(
        default="llama-3.3-70b-versatile", description="Groq chat model for replies"
    )
    reply_max_tokens: int = Field(default=256, description="Reply length cap (keep low for voice)")
    reply_temperature: float = Field(default=0.7, description="Reply sampling temperature")
    system_prompt: str = Field(
        default=(
            "You are a helpful voice assistant. "
            "Keep answers short and conversational, one or two sentences."
        ),
        description="System prompt prepended to every reply request",
    )
    elevenlabs_model_id: str = Field(
        default="eleven_multilingual_v2", description="ElevenLabs synthesis model"
    )
    tts_voice: str = Field(default="aria", description="Default reply voice (see Voice enum)")
    tts_sample_rate: int = Field(default=24000, description="Sample rate of synthesized replies")

    # ==========================================================================
    # Derived Properties
    # ==========================================================================
    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Use dependency injection in FastAPI:
        settings: Settings = Depends(get_settings)
    """
    return Settings()
