"""Runtime configuration for the voice chat client."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven runtime settings."""

    model_config = SettingsConfigDict(env_prefix="VOICE_CHAT_", env_file=".env", extra="ignore")

    app_name: str = "voice-chat"
    log_level: str = "INFO"
    log_path: str | None = None
    api_base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL of the remote response-generation service.",
    )
    request_timeout_seconds: float = 30.0
    default_language: str = "es-ES"
    supported_languages: list[str] = Field(
        default_factory=lambda: ["es-ES", "en-US", "fr-FR", "de-DE", "it-IT", "pt-BR"]
    )
    voice_enabled: bool = True
    volume: float = Field(default=100.0, ge=0.0, le=100.0)
    max_speech_chars: int = 500
    sampler_frame_rate_hz: float = Field(default=60.0, gt=0.0)
    quality_reference_ceiling: float = Field(default=128.0, gt=0.0)
    fft_size: int = 1024
    microphone_sample_rate: int = 16_000


settings = Settings()
