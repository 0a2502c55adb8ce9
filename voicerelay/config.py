"""voicerelay configuration management."""

import logging
import tempfile
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger("voicerelay.config")


class RelaySettings(BaseSettings):
    """Settings loaded from environment variables or .env file.

    The short variable names of earlier deployments
    (OPENAI_KEY, TELEGRAM_BOT_TOKEN, ELEVEN_PROXY_URL, PORT) are accepted
    alongside the prefixed ones.
    """

    # Secrets
    openai_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("RELAY_OPENAI_API_KEY", "OPENAI_KEY"),
        description="OpenAI API key (chat completions + Whisper)",
    )
    telegram_bot_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("RELAY_TELEGRAM_BOT_TOKEN", "TELEGRAM_BOT_TOKEN"),
        description="Telegram bot token",
    )

    # Text-to-speech proxy (/tg-voice -> mp3)
    tts_proxy_url: str = Field(
        default="https://elevenlabs-proxy.onrender.com",
        validation_alias=AliasChoices("RELAY_TTS_PROXY_URL", "ELEVEN_PROXY_URL"),
        description="ElevenLabs proxy base URL",
    )

    # Keepalive server
    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(
        default=3000,
        validation_alias=AliasChoices("RELAY_PORT", "PORT"),
        description="Keepalive HTTP port",
    )
    debug: bool = Field(default=False, description="Debug mode")

    # Completion
    openai_base_url: str = Field(default="https://api.openai.com/v1", description="OpenAI-compatible base URL")
    chat_model: str = Field(default="gpt-4o", description="Chat completion model")
    temperature: float = Field(default=0.7, description="Sampling temperature")
    max_tokens: int = Field(default=200, description="Max output tokens per reply")

    # Speech
    stt_model: str = Field(default="whisper-1", description="Speech-to-text model")
    ffmpeg_path: str = Field(default="ffmpeg", description="ffmpeg binary used for voice re-encoding")
    temp_dir: str = Field(default_factory=tempfile.gettempdir, description="Scratch directory for audio files")

    model_config = {"env_prefix": "RELAY_", "env_file": ".env", "extra": "ignore", "populate_by_name": True}

    def missing_secrets(self) -> list[str]:
        """Names of required secrets that are not configured."""
        missing = []
        if not self.telegram_bot_token:
            missing.append("TELEGRAM_BOT_TOKEN")
        if not self.openai_api_key:
            missing.append("OPENAI_KEY")
        return missing


def load_settings() -> RelaySettings:
    """Load settings from environment."""
    settings = RelaySettings()

    for name in settings.missing_secrets():
        logger.warning(f"{name} is not set")

    return settings
