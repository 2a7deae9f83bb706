from __future__ import annotations

import tempfile
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_STORAGE_DIRNAME = "voice-agent-memory"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8000, alias="APP_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    db_url: str = Field(default="sqlite+aiosqlite:///./voice_memory.db", alias="DB_URL")

    memory_enabled: bool = Field(default=True, alias="MEMORY_ENABLED")
    # Empty means "<system temp dir>/voice-agent-memory".
    memory_storage_dir: str = Field(default="", alias="MEMORY_STORAGE_DIR")

    flash_memory_interval: int = Field(default=2, ge=1, alias="FLASH_MEMORY_INTERVAL")
    long_term_memory_interval: int = Field(default=10, ge=1, alias="LONG_TERM_MEMORY_INTERVAL")
    flash_max_history_turns: int = Field(default=10, ge=1, alias="FLASH_MAX_HISTORY_TURNS")
    flash_max_memories: int = Field(default=4, ge=1, alias="FLASH_MAX_MEMORIES")
    flash_max_topics_per_memory: int = Field(default=3, ge=1, alias="FLASH_MAX_TOPICS_PER_MEMORY")
    flash_similarity_threshold: float = Field(default=0.85, alias="FLASH_SIMILARITY_THRESHOLD")
    long_term_max_history_events: int = Field(
        default=10, ge=1, alias="LONG_TERM_MAX_HISTORY_EVENTS"
    )
    retrieval_similarity_threshold: float = Field(
        default=0.3, alias="MEMORY_RETRIEVAL_THRESHOLD"
    )
    retrieval_max_context_items: int = Field(default=3, ge=1, alias="MEMORY_RETRIEVAL_MAX_ITEMS")
    merge_similarity_threshold: float = Field(
        default=0.9, alias="RESULT_MERGE_SIMILARITY_THRESHOLD"
    )
    merge_max_flash_memories: int = Field(
        default=200, ge=1, alias="RESULT_MERGE_MAX_FLASH_MEMORIES"
    )
    merge_max_long_term_memories: int = Field(
        default=200, ge=1, alias="RESULT_MERGE_MAX_LONG_TERM_MEMORIES"
    )
    extraction_timeout_sec: float = Field(
        default=30.0, gt=0, alias="MEMORY_EXTRACTION_TIMEOUT_SEC"
    )

    llm_provider: str = Field(default="mock", alias="LLM_PROVIDER")
    llm_model: str = Field(default="mock-1", alias="LLM_MODEL")
    llm_base_url: str = Field(default="", alias="LLM_BASE_URL")
    llm_api_key: str = Field(default="", alias="LLM_API_KEY")
    llm_max_tokens: int = Field(default=800, ge=1, alias="LLM_MAX_TOKENS")
    llm_temperature: float = Field(default=0.7, ge=0, le=2, alias="LLM_TEMPERATURE")
    openai_base_url: str = Field(default="https://api.openai.com", alias="OPENAI_BASE_URL")
    ollama_base_url: str = Field(
        default="http://localhost:11434", alias="OLLAMA_BASE_URL"
    )

    embed_provider: str = Field(default="deterministic", alias="EMBED_PROVIDER")
    embed_model: str = Field(default="deterministic-v1", alias="EMBED_MODEL")
    embed_dim: int = Field(default=64, alias="EMBED_DIM")
    embed_openai_api_key: str = Field(default="", alias="EMBED_OPENAI_API_KEY")

    model_config = SettingsConfigDict(env_file=(".env", "backend/.env"), extra="ignore")

    def resolved_storage_dir(self) -> Path:
        """Return the snapshot directory, defaulting to the platform temp dir."""

        raw = (self.memory_storage_dir or "").strip()
        if raw:
            return Path(raw).expanduser()
        return Path(tempfile.gettempdir()) / DEFAULT_STORAGE_DIRNAME


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()
