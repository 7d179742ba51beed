"""
Parser service settings.

Values come from the environment or app/backend/.env (GROQ_API_KEY, DEBUG, ...).
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # LLM provider (any OpenAI-compatible chat completions endpoint)
    groq_api_key: str | None = None
    llm_base_url: str = "https://api.groq.com/openai/v1"
    text_parser_model: str = "llama-3.3-70b-versatile"
    image_parser_model: str = "meta-llama/llama-4-scout-17b-16e-instruct"
    llm_max_tokens: int = 2048
    llm_timeout_seconds: float = 60.0
    llm_json_mode: bool = True

    # Image acquisition
    image_fetch_timeout_seconds: float = 30.0
    max_image_dimension: int = 2048

    # Verbose error payloads (exception type, message, traceback)
    debug: bool = False

    model_config = SettingsConfigDict(
        # Load from .env file in the backend directory
        env_file=Path(__file__).parent / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
        # Case insensitive environment variable names
        case_sensitive=False,
    )


@lru_cache
def get_settings() -> Settings:
    """Settings are read once per process; tests patch or clear the cache."""
    return Settings()
