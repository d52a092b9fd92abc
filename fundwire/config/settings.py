"""
Application settings loaded from environment variables.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator


class Settings(BaseSettings):
    """Application configuration from environment."""

    # API Keys
    gemini_api_key: str = ""
    anthropic_api_key: str = ""

    # LLM Settings
    # Options: "gemini" (REST via httpx), "anthropic" (SDK)
    llm_provider: str = "gemini"
    llm_model: str = "gemini-2.0-flash-lite"
    llm_temperature: float = 0.0
    llm_max_tokens: int = 2048
    llm_timeout: int = 90  # Total timeout for generation calls (seconds)
    llm_connect_timeout: int = 30  # Connection timeout (seconds)

    @field_validator("llm_provider", mode="before")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        """Accept provider names in any case."""
        v = (v or "gemini").strip().lower()
        if v not in ("gemini", "anthropic"):
            raise ValueError(f"Unsupported llm_provider: {v}")
        return v

    # Token bucket shaping outbound generation calls
    tokens_per_minute: int = 60000
    chars_per_token: int = 4  # Rough prompt-size estimate for the bucket

    # Retry Controller defaults (seconds)
    retry_max_retries: int = 5
    retry_initial_delay: float = 2.0
    retry_max_delay: float = 60.0

    # Batch Orchestrator
    bulk_batch_size: int = 25  # Messages per checkpointed batch
    interactive_batch_size: int = 5  # Messages per batch for small runs
    batch_delay: float = 5.0  # Floor for the inter-batch delay (seconds)
    max_retries_per_batch: int = 3
    progressive_backoff: float = 1.5  # Delay multiplier on batch failure
    message_delay: float = 0.5  # Pacing between messages inside a batch

    # Interactive runs adapt their own delay between these bounds
    interactive_initial_delay: float = 3.0
    interactive_min_delay: float = 2.0
    interactive_max_delay: float = 30.0
    error_cooldown: float = 2.0  # Extra wait after a message-level error

    # Output locations
    data_dir: str = "./data"
    checkpoint_dir: str = "./checkpoints"

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Create settings instance at import time (singleton pattern)
# All code should import: from ..config.settings import settings
settings = Settings()
