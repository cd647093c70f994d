"""Configuration settings for meshforge.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

import json
import logging
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_db_url() -> str:
    """Return the default database URL (SQLite)."""
    db_path = Path.home() / ".local" / "share" / "meshforge" / "db.sqlite"
    return f"sqlite:///{db_path}"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the MESHFORGE_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="MESHFORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    db_url: str = Field(
        default_factory=_default_db_url,
        description="Database connection URL",
    )

    # Static registries
    registry_path: Path | None = Field(
        default=None,
        description="Plugin registry file (JSON or YAML)",
    )
    hardware_list_path: Path | None = Field(
        default=None,
        description="Hardware/target list file (JSON or YAML)",
    )
    hierarchy_path: Path | None = Field(
        default=None,
        description="Architecture parent map (JSON)",
    )

    # Compiler dispatch
    github_token: SecretStr | None = Field(
        default=None,
        description="Token used to trigger the compile workflow",
    )
    github_repo: str = Field(
        default="MeshEnvy/mesh-forge",
        description="Repository hosting the compile workflow",
    )
    github_workflow: str = Field(
        default="custom_build.yml",
        description="Workflow file name to dispatch",
    )
    github_ref: str = Field(default="main", description="Git ref to dispatch on")
    github_api_url: str = Field(
        default="https://api.github.com",
        description="GitHub API base URL",
    )
    callback_url: str | None = Field(
        default=None,
        description="Public base URL the workflow reports status back to",
    )
    dispatch_timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Timeout for the dispatch request (seconds)",
    )

    # Webhook
    webhook_token: SecretStr | None = Field(
        default=None,
        description="Bearer token expected on inbound status webhooks",
    )

    # Artifacts
    artifacts_base_url: str = Field(
        default="https://artifacts.example.com",
        description="Base URL of the artifact store",
    )
    url_signing_key: SecretStr | None = Field(
        default=None,
        description="Key used to sign download URLs",
    )
    download_url_ttl: int = Field(
        default=3600,
        ge=60,
        le=86400,
        description="Lifetime of signed download URLs (seconds)",
    )
    product_name: str = Field(
        default="meshtastic",
        description="Product prefix used in download filenames",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    """Apply the configured log level to the root logger.

    Args:
        settings: Optional settings instance; uses default if not provided.
    """
    if settings is None:
        settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger().setLevel(settings.log_level)


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Secret values are masked.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    data = json.loads(settings.model_dump_json())
    for name in ("github_token", "webhook_token", "url_signing_key"):
        if data.get(name) is not None:
            data[name] = "**********"
    return json.dumps(data, indent=2)


__all__ = ["Settings", "configure_logging", "get_settings", "print_settings_json"]
