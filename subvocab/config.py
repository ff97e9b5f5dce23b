"""
Configuration module for the subtitle vocabulary service.

Uses pydantic-settings to load configuration from environment variables so the
model endpoint, learner level and yt-dlp limits can be tuned without code changes.
"""

import tempfile
from pathlib import Path
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# CEFR scale, index 0 is difficulty 1
CEFR_LEVELS: tuple[str, ...] = ("A1", "A2", "B1", "B2", "C1", "C2")


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    The env_prefix is "SUBVOCAB_", and populate_by_name=True allows using
    field names directly. Fields with an alias are read from the unprefixed
    alias, which keeps the variable names of the Node service this replaces:

    Environment Variables:
        HOST / PORT / LOG_LEVEL: Server binding and verbosity
        API_BASE_URL: Base URL of the OpenAI-compatible chat API
        API_KEY: API key for the chat API (analysis is disabled without it)
        API_MODEL: Model identifier sent with every completion
        API_ENDPOINT: Completion sub-path appended to API_BASE_URL
        USER_LEVEL_MIN / USER_LEVEL_MAX: Learner level range on the 1-6 scale
        WORD_MIN_LENGTH: Shortest word kept in an annotation
        DIFFICULTY_THRESHOLD: Lowest difficulty kept in an annotation
        IGNORED_WORDS: Comma-separated words never annotated
        SUPPORTED_FORMATS: Comma-separated subtitle extensions for uploads
        MAX_FILE_SIZE: Largest subtitle file accepted, in bytes
    """

    # ========== Server Configuration ==========

    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    log_level: str = Field(default="info", alias="LOG_LEVEL")

    # ========== Chat Completion API ==========

    api_base_url: str = Field(default="https://api.deepseek.com/v1", alias="API_BASE_URL")
    api_key: str | None = Field(default=None, alias="API_KEY")
    api_model: str = Field(default="deepseek-chat", alias="API_MODEL")
    api_endpoint: str = Field(default="/chat/completions", alias="API_ENDPOINT")
    api_timeout: float = 30.0

    # Near-deterministic sampling with a bounded answer
    model_temperature: float = 0.1
    model_max_tokens: int = 1000

    # ========== Vocabulary Analysis ==========

    # Learner level range on the 1-6 scale (3-4 is B1-B2, roughly IELTS 5.5)
    user_level_min: int = Field(default=3, ge=1, le=6, alias="USER_LEVEL_MIN")
    user_level_max: int = Field(default=4, ge=1, le=6, alias="USER_LEVEL_MAX")

    difficulty_levels: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "easy": ["A1", "A2", "B1"],
            "medium": ["B2", "C1"],
            "hard": ["C2"],
        }
    )

    word_min_length: int = Field(default=3, alias="WORD_MIN_LENGTH")
    difficulty_threshold: int = Field(default=3, alias="DIFFICULTY_THRESHOLD")
    ignored_words: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["the", "and", "that", "this", "with", "from", "they", "have", "will"],
        alias="IGNORED_WORDS",
    )

    # Sentences beyond this count are dropped, not rejected
    analysis_max_sentences: int = 50
    # Pause after every model call to stay under the upstream rate limit
    analysis_pacing_seconds: float = 0.2

    # ========== Subtitle Files ==========

    supported_formats: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: [".srt", ".vtt", ".txt"],
        alias="SUPPORTED_FORMATS",
    )
    max_file_size: int = Field(default=5 * 1024 * 1024, alias="MAX_FILE_SIZE")

    # ========== yt-dlp Settings ==========

    ytdlp_binary: str = "yt-dlp"
    ytdlp_timeout_seconds: float = 60
    ytdlp_max_output_bytes: int = 2 * 1024 * 1024
    # e.g. "chrome"; needs a browser profile on the host, so off by default
    ytdlp_cookies_browser: str | None = None

    # Root for per-request scratch directories (default: <system temp>/subvocab)
    temp_dir: str | None = None

    # ========== Security Settings ==========

    rate_limit_enabled: bool = True
    rate_limit_per_minute: int = 10
    enable_security_headers: bool = True

    model_config = SettingsConfigDict(
        env_prefix="SUBVOCAB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("ignored_words", "supported_formats", mode="before")
    @classmethod
    def split_comma_list(cls, value):
        """Accept comma-separated strings for list settings."""
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @property
    def temp_root(self) -> Path:
        """Directory under which scratch directories are created."""
        if self.temp_dir:
            return Path(self.temp_dir)
        return Path(tempfile.gettempdir()) / "subvocab"

    @property
    def level_band(self) -> str:
        """CEFR band of the configured learner level, e.g. "B1-B2"."""
        return f"{cefr_label(self.user_level_min)}-{cefr_label(self.user_level_max)}"

    def band_for(self, difficulty: int) -> str | None:
        """Map a 1-6 difficulty to its bucket name ("easy", "medium", "hard")."""
        label = cefr_label(difficulty)
        for band, levels in self.difficulty_levels.items():
            if label in levels:
                return band
        return None


def cefr_label(difficulty: int) -> str:
    """Return the CEFR label for a 1-6 difficulty, clamping out-of-range values."""
    index = min(max(difficulty, 1), len(CEFR_LEVELS)) - 1
    return CEFR_LEVELS[index]


# Global settings instance - loaded at startup with environment variables
settings = Settings()
