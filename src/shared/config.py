"""Configuration management for the Member Portal.

Supports YAML configuration files and environment variable overrides.
Configuration is loaded once and cached for performance.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    """HTTP server configuration."""
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    model_config = SettingsConfigDict(
        env_prefix="PORTAL_SERVER_",
        env_file=".env",
        extra="ignore"
    )


class AuthSettings(BaseSettings):
    """Identity/session configuration."""
    secret_key: str = Field(default="change-me-in-production")
    token_expire_minutes: int = Field(default=60, gt=0)
    require_auth: bool = Field(default=True)

    model_config = SettingsConfigDict(
        env_prefix="PORTAL_AUTH_",
        env_file=".env",
        extra="ignore"
    )


class AuditSettings(BaseSettings):
    """Disclosure audit log configuration."""
    enabled: bool = Field(default=True)
    log_path: str = Field(default="logs/disclosures.log")
    buffer_size: int = Field(default=1, gt=0, description="Events buffered before a file flush")
    memory_limit: int = Field(default=1000, gt=0, description="Recent events kept in memory")

    model_config = SettingsConfigDict(
        env_prefix="PORTAL_AUDIT_",
        env_file=".env",
        extra="ignore"
    )


class FavoritesSettings(BaseSettings):
    """Favorites persistence configuration."""
    backend: Literal["memory", "file"] = Field(default="memory")
    path: str = Field(default="data/favorites.json")

    model_config = SettingsConfigDict(
        env_prefix="PORTAL_FAVORITES_",
        env_file=".env",
        extra="ignore"
    )


class SecretStoreSettings(BaseSettings):
    """Secret store collaborator configuration."""
    backend: Literal["memory", "remote"] = Field(default="memory")
    secrets_path: str = Field(default="config/secrets.yaml")
    remote_url: Optional[str] = Field(default=None)
    api_token: Optional[str] = Field(default=None)
    timeout_seconds: float = Field(default=5.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="PORTAL_SECRETS_",
        env_file=".env",
        extra="ignore"
    )


class Settings(BaseSettings):
    """Main application settings."""
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    catalog_path: str = Field(default="config/catalog.yaml")

    # Component settings
    server: ServerSettings = Field(default_factory=ServerSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    audit: AuditSettings = Field(default_factory=AuditSettings)
    favorites: FavoritesSettings = Field(default_factory=FavoritesSettings)
    secrets: SecretStoreSettings = Field(default_factory=SecretStoreSettings)

    model_config = SettingsConfigDict(
        env_prefix="PORTAL_",
        env_file=".env",
        extra="ignore"
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        return cls(**load_yaml_config(path))


def load_yaml_config(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file. A missing file yields an empty mapping."""
    path = Path(path)
    if not path.exists():
        return {}

    with open(path) as f:
        return yaml.safe_load(f) or {}


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    config_path = os.environ.get("PORTAL_CONFIG_PATH", "config/settings.yaml")
    return Settings.from_yaml(config_path)
