"""
Configuration module for the batch review pipeline.

Loads environment variables and provides centralized settings.
All secrets and configuration are managed through environment variables.
"""

from typing import Annotated, List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Secrets are loaded from environment or .env file.
    Never commit secrets to version control.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    ENVIRONMENT: str = Field(default="development")
    PORT: int = Field(default=8000)
    ALLOWED_ORIGINS: Annotated[List[str], NoDecode] = Field(default=["*"])

    # LLM Configuration
    LLM_PROVIDER: str = Field(default="anthropic")
    ANTHROPIC_API_KEY: str = Field(default="")
    OPENAI_API_KEY: str = Field(default="")
    LLM_MODEL: str = Field(default="claude-sonnet-4-20250514")
    LLM_MAX_TOKENS: int = Field(default=8000, gt=0)
    LLM_TEMPERATURE: float = Field(default=0.1, ge=0.0, le=2.0)
    # No per-call deadline unless one is configured explicitly
    LLM_CALL_TIMEOUT_SECONDS: Optional[float] = Field(default=None, gt=0)
    LLM_NETWORK_RETRY_ATTEMPTS: int = Field(default=3, ge=1)

    # Planning defaults
    MAX_TOKENS_PER_BATCH: int = Field(default=8000, gt=0)
    MAX_FILES_PER_BATCH: int = Field(default=10, gt=0)
    MAX_HUNKS_PER_BATCH: int = Field(default=50, gt=0)
    BATCH_STRATEGY: str = Field(default="mixed")
    PRIORITIZE_FILE_TYPES: Annotated[List[str], NoDecode] = Field(default=["ts", "js", "tsx", "jsx", "py"])
    EXCLUDE_FILE_TYPES: Annotated[List[str], NoDecode] = Field(default=["lock", "log", "tmp"])

    # Batch execution
    BATCH_BASE_DELAY_MS: int = Field(default=2000, ge=0)
    RATE_LIMIT_MAX_RETRIES: int = Field(default=2, ge=0)
    BACKOFF_BASE_MS: int = Field(default=5000, ge=0)
    BACKOFF_MAX_MS: int = Field(default=60000, ge=0)
    BACKOFF_JITTER_MS: int = Field(default=1000, ge=0)
    SUB_BATCH_DELAY_MS: int = Field(default=3000, ge=0)
    MAX_CONSECUTIVE_FAILURES: int = Field(default=3, ge=1)
    REVIEW_DEADLINE_SECONDS: Optional[float] = Field(default=None, gt=0)

    # Review output
    SEVERITY_THRESHOLD: str = Field(default="info")

    # Observability
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="text")
    MASK_SECRETS: bool = Field(default=True)
    METRICS_ENABLED: bool = Field(default=True)

    @field_validator(
        "ALLOWED_ORIGINS",
        "PRIORITIZE_FILE_TYPES",
        "EXCLUDE_FILE_TYPES",
        mode="before",
    )
    @classmethod
    def parse_comma_separated(cls, v):
        """Parse comma-separated list settings into a list."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("BATCH_STRATEGY")
    @classmethod
    def validate_batch_strategy(cls, v: str) -> str:
        """Ensure the batch strategy is one the planner knows."""
        allowed = ["file-based", "size-based", "mixed"]
        if v not in allowed:
            raise ValueError(f"BATCH_STRATEGY must be one of {allowed}")
        return v

    @field_validator("SEVERITY_THRESHOLD")
    @classmethod
    def validate_severity_threshold(cls, v: str) -> str:
        """Ensure the severity threshold is a known severity."""
        allowed = ["info", "warning", "error"]
        if v.lower() not in allowed:
            raise ValueError(f"SEVERITY_THRESHOLD must be one of {allowed}")
        return v.lower()


# Global settings instance
settings = Settings()
