"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import Literal

from pydantic import RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True

    project_name: str = "Grocery Agent"
    version: str = "0.1.0"

    # Redis (carts, chat history, catalog, semantic cache)
    redis_url: RedisDsn = RedisDsn("redis://localhost:6379/0")

    # LLM APIs
    openai_api_key: str = ""
    chat_model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    llm_timeout_seconds: float = 30.0

    # Reasoning loop
    max_tool_iterations: int = 6

    # Semantic cache
    cache_similarity_threshold: float = 0.9
    cache_scope_by_session: bool = True
    # "tools" picks the TTL from the tools a turn used; "query" from keywords in the query
    cache_ttl_strategy: Literal["tools", "query"] = "tools"

    # Ingredient matching
    ingredient_similarity_threshold: float = 0.6
    max_essential_ingredients: int = 6

    # Data compliance
    sanitizer_failure_policy: Literal["skip_cache", "cache_unsanitized"] = "skip_cache"
    sanitizer_use_llm: bool = True

    # Carts and chat history expire with the session document
    cart_ttl_seconds: int = 24 * 60 * 60

    # Shown in product lines of agent replies
    currency_symbol: str = "₹"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
