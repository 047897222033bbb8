from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_env: str = "dev"
    log_level: str = "INFO"

    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.5-flash"
    gemini_temperature: float = 0.1
    gemini_max_output_tokens: int = 8192

    # Uploads
    upload_dir: str = "./uploads"
    max_upload_bytes: int = 10 * 1024 * 1024
    supported_file_types: list[str] = ["pdf", "docx", "xlsx", "txt"]

    # Pipeline
    text_char_limit: int = 50_000
    result_ttl_seconds: float = 300
    extraction_timeout_seconds: float = 60
    ai_timeout_seconds: float = 120
    fetch_timeout_seconds: float = 30

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
