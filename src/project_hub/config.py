"""Configuration for project-hub with pydantic-settings.

Values are read from environment variables prefixed with ``PROJECT_HUB_``
(or a ``.env`` file).

Usage:
    from project_hub.config import get_settings

    settings = get_settings()
    settings.execution_timeout_sec
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Project hub settings from environment."""

    model_config = SettingsConfigDict(
        env_prefix="PROJECT_HUB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging configuration
    service_name: str = Field(
        default="project_hub",
        description="Service name for structured logging",
    )
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log output format",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )

    # Persistence
    redis_url: str | None = Field(
        default=None,
        description="Redis connection URL; in-memory persistence when unset",
        examples=["redis://localhost:6379/0"],
    )
    redis_key_prefix: str = Field(default="project_hub", description="Namespace for Redis keys")
    projects_key: str = "projects"
    theme_key: str = "theme"
    default_theme: Literal["light", "dark"] = "light"

    # Catalog and execution
    catalog_path: Path | None = Field(
        default=None,
        description="JSON file with the project catalog; built-in catalog when unset",
    )
    scripts_dir: Path = Field(default=Path("."), description="Directory holding project scripts")
    python_executable: str = "python"
    execution_backend: Literal["simulated", "subprocess"] = "simulated"
    install_backend: Literal["simulated", "script"] = "simulated"

    # Simulated bridge behaviour
    simulated_success_rate: float = Field(default=0.9, ge=0.0, le=1.0)
    simulated_min_delay_sec: float = Field(default=1.0, ge=0.0)
    simulated_max_delay_sec: float = Field(default=3.0, ge=0.0)
    simulated_stop_delay_sec: float = Field(default=0.5, ge=0.0)
    install_delay_sec: float = Field(default=2.0, ge=0.0)

    # Collaborator timeouts
    execution_timeout_sec: float = Field(default=5.0, gt=0)
    stop_timeout_sec: float = Field(default=5.0, gt=0)
    install_timeout_sec: float = Field(default=10.0, gt=0)
    persistence_timeout_sec: float = Field(default=3.0, gt=0)
    startup_output_window_sec: float = Field(
        default=1.0,
        ge=0.0,
        description="How long a subprocess run collects output before it counts as started",
    )

    # Fan-out
    run_all_includes_uninstalled: bool = Field(
        default=False,
        description="Let run-all install and start projects that are not installed yet",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper_v

    @model_validator(mode="after")
    def validate_startup_window(self) -> "Settings":
        """A run must be able to finish its startup window before it times out."""
        if self.startup_output_window_sec >= self.execution_timeout_sec:
            raise ValueError(
                "startup_output_window_sec must be shorter than execution_timeout_sec"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
