"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GitHubConfig(BaseModel):
    """Pull request lookup and PR comment target."""

    api_url: str = "https://api.github.com"
    repository: str = ""  # "owner/name"
    token: str = ""
    timeout_seconds: float = 15.0

    @property
    def enabled(self) -> bool:
        return bool(self.token and self.repository)


class Settings(BaseSettings):
    """Engine settings loaded from SHIPLINE_* environment variables."""

    log_level: str = Field(default="INFO", description="Logging level")
    stage_timeout_seconds: float = Field(
        default=1800.0, description="Default per-stage timeout"
    )
    max_parallel_stages: int = Field(
        default=4, description="Upper bound on concurrently running stages in a batch"
    )
    working_dir: Path | None = Field(
        default=None, description="Working directory for shell actions"
    )
    history_path: Path | None = Field(
        default=None, description="Append-only JSONL file of finished runs"
    )

    github: GitHubConfig = Field(default_factory=GitHubConfig)

    model_config = SettingsConfigDict(
        env_prefix="SHIPLINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("stage_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("stage_timeout_seconds must be positive")
        return v

    @field_validator("max_parallel_stages")
    @classmethod
    def validate_parallelism(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_parallel_stages must be at least 1")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    return Settings()
