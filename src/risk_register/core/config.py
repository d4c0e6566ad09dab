"""Configuration management.

Loads from TOML config files + environment variables.
Uses pydantic-settings for validation and env var overriding.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from .errors import ConfigError


# ---------------------------------------------------------------------------
# Sub-configs
# ---------------------------------------------------------------------------

class DatabaseConfig(BaseModel):
    url: str = "sqlite+aiosqlite:///risk_register.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    create_tables: bool = False


class PaginationConfig(BaseModel):
    default_page: int = 1
    default_limit: int = 20
    max_limit: int = 100
    search_limit: int = 50  # Hard cap on free-text search results


class RiskIdConfig(BaseModel):
    prefix: str = "RISK"
    width: int = 3  # Zero padding: RISK-001

    @field_validator("prefix")
    @classmethod
    def _upper_alpha(cls, v: str) -> str:
        if not v.isalpha() or not v.isupper():
            raise ValueError("prefix must be upper-case letters only")
        return v


class ReviewConfig(BaseModel):
    critical_days: int = 30
    high_days: int = 60
    default_days: int = 90


class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """Top-level application settings.

    Loaded from TOML config files, overridden by environment variables.
    """

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    pagination: PaginationConfig = Field(default_factory=PaginationConfig)
    risk_id: RiskIdConfig = Field(default_factory=RiskIdConfig)
    review: ReviewConfig = Field(default_factory=ReviewConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = {"env_prefix": "RISK_REGISTER_", "env_nested_delimiter": "__"}


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load settings from TOML file + env vars.

    Args:
        config_path: Path to TOML config file (optional).
        overrides: Dict of overrides to apply on top.

    Raises:
        ConfigError: If the file is unreadable or values fail validation.
    """
    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            import tomli

            try:
                with open(path, "rb") as f:
                    data = tomli.load(f)
            except tomli.TOMLDecodeError as exc:
                raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc

    if overrides:
        data.update(overrides)

    try:
        return Settings(**data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings: {exc}") from exc
