from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings shared by the API layer and the assistant services."""

    api_prefix: str = "/api"
    app_name: str = "Wedding Command Assistant"
    log_level: str = "INFO"

    # Pending tool calls (cross-instance)
    redis_url: Optional[str] = None
    pending_call_prefix: str = "chatbot:pending-call"
    pending_call_ttl_seconds: int = 300

    # Conversation memory
    memory_cache_capacity: int = 500
    memory_ttl_seconds: int = 3600
    memory_sweep_interval_minutes: int = 30

    # Entity matching
    duplicate_similarity_threshold: float = 0.75

    # Supabase (clients / guests / vendors / events)
    supabase_url: Optional[str] = None
    supabase_service_role_key: Optional[str] = None

    # LLM tool calling
    openai_api_key: Optional[str] = None
    llm_primary_model: str = Field(default="gpt-4o-mini")
    llm_fallback_model: Optional[str] = Field(default="gpt-4o")
    llm_max_tokens: int = 1024
    llm_temperature: float = 0.7

    # Business tool executor
    business_api_base_url: Optional[str] = None
    business_api_timeout_seconds: float = 15.0

    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def split_origins(cls, value):
        if isinstance(value, str):
            items = [item.strip() for item in value.split(",") if item.strip()]
            return items or ["http://localhost:3000"]
        if value is None:
            return ["http://localhost:3000"]
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()
