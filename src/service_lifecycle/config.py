"""Environment-driven configuration for the service lifecycle."""

from __future__ import annotations

from typing import Annotated, Any, List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .health import DEFAULT_HEALTH_CHECK_USER_AGENTS, HealthCheckConfig


def _split_csv(value: Any) -> Any:
    if isinstance(value, str):
        return [token.strip() for token in value.split(",") if token.strip()]
    return value


class LifecycleSettings(BaseSettings):
    """Construction-time defaults, overridable from ``LIFECYCLE_*`` variables."""

    model_config = SettingsConfigDict(
        env_prefix="LIFECYCLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    banner: Optional[str] = Field(default=None)
    use_console: bool = Field(default=False)

    shutdown_timeout_ms: int = Field(default=5000, gt=0)
    listener_shutdown_timeout_ms: int = Field(default=30000, gt=0)
    notify_ready: bool = Field(default=False)

    health_check_user_agents: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_HEALTH_CHECK_USER_AGENTS)
    )
    health_check_paths: Annotated[List[str], NoDecode] = Field(default_factory=list)

    host: str = Field(default="0.0.0.0")
    port: int = Field(
        default=8080,
        ge=0,
        le=65535,
        validation_alias=AliasChoices("PORT", "LIFECYCLE_PORT", "port"),
    )

    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @field_validator("health_check_user_agents", "health_check_paths", mode="before")
    @classmethod
    def _parse_string_lists(cls, value: Any) -> Any:
        return _split_csv(value)

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        level = (value or "INFO").upper()
        if level not in valid_levels:
            raise ValueError(f"log_level must be one of {sorted(valid_levels)}")
        return level

    @field_validator("log_format", mode="before")
    @classmethod
    def _normalize_log_format(cls, value: str) -> str:
        log_format = (value or "console").lower()
        if log_format not in {"console", "json"}:
            raise ValueError("log_format must be 'console' or 'json'")
        return log_format

    def health_check_config(self) -> HealthCheckConfig:
        """Build the runtime health-check configuration from these settings."""
        return HealthCheckConfig(
            match_user_agents=self.health_check_user_agents,
            match_paths=self.health_check_paths,
        )
