from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    finbuddy_env: Literal["dev", "prod", "test"] = "dev"
    database_url: str = "sqlite:///finbuddy.db"
    log_level: str = "INFO"

    api_host: str = "0.0.0.0"
    api_port: int = Field(default=8000, ge=1, le=65535)
    request_timeout_seconds: float = Field(default=30.0, ge=1.0, le=300.0)

    message_min_length: int = Field(default=3, ge=1, le=100)
    message_max_length: int = Field(default=1000, ge=10, le=10000)
    max_prompt_tokens: int = Field(default=2000, ge=200, le=32000)

    rate_limit_enabled: bool = True
    rate_limit_max_requests: int = Field(default=10, ge=1, le=10000)
    rate_limit_window_seconds: int = Field(default=60, ge=1, le=86400)

    # News provider (NewsData.io) with Finnhub as secondary
    news_api_key: str | None = None
    finnhub_api_key: str | None = None
    news_country: str = "in"
    news_category: str = "business"
    news_language: str = "en"
    news_batch_size: int = Field(default=10, ge=1, le=50)
    news_fetch_timeout_seconds: float = Field(default=30.0, ge=1.0, le=120.0)
    max_stored_news: int = Field(default=10, ge=1, le=1000)
    max_context_news: int = Field(default=3, ge=1, le=3)
    news_read_timeout_seconds: float = Field(default=5.0, ge=0.1, le=60.0)

    generation_provider: Literal["mock", "huggingface"] = "huggingface"
    hf_api_key: str | None = None
    generation_base_url: str = "https://api-inference.huggingface.co/models"
    generation_model: str = "microsoft/DialoGPT-large"
    generation_fallback_model: str | None = "google/flan-t5-large"
    generation_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    generation_max_new_tokens: int = Field(default=250, ge=16, le=1024)
    generation_timeout_seconds: float = Field(default=25.0, ge=1.0, le=120.0)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
