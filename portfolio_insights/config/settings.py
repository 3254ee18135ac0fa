"""Application settings using Pydantic."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class ModelSettings(BaseSettings):
    """Model provider configuration shared by every pipeline."""

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ollama_base_url: str = "http://localhost:11434"
    model_name: str = "qwen3:30b"
    temperature: float = 0.2
    request_timeout: int = 120
    num_ctx: int = 8192
    num_predict: int = 4096  # Max tokens to generate
    streaming: bool = False

    # Retry policy for a single node's model call
    max_retries: int = 3
    retry_min_wait: float = 2.0
    retry_max_wait: float = 30.0

    # Write every rendered prompt to <dir>/<node>.md when set
    prompt_record_dir: Path | None = None


class EngineSettings(BaseSettings):
    """Execution engine and logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    run_timeout_seconds: float | None = 300.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = True


@lru_cache
def get_model_settings() -> ModelSettings:
    """Get cached model settings."""
    return ModelSettings()


@lru_cache
def get_engine_settings() -> EngineSettings:
    """Get cached engine settings."""
    return EngineSettings()
