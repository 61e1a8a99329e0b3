"""Configuration management for the HITL proxy using Pydantic settings.

This module handles process-wide configuration, loading from environment
variables and .env files with sensible defaults. The per-server table of
downstream launch specs and risk lists lives in ``hitl_proxy.servers``.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Main configuration settings for the HITL proxy.

    Settings are loaded from environment variables and .env files.
    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    hitl_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level for the application",
    )
    hitl_log_file: Path | None = Field(
        default=None,
        description="Optional file path to write JSON logs (defaults to stderr only)",
    )
    hitl_default_server: str = Field(
        default="todo-mcp-server",
        description="Downstream server identifier used when none is given on the command line",
    )
    hitl_servers_file: Path | None = Field(
        default=None,
        description="Optional JSON file with additional downstream server entries",
    )

    # Approval Settings
    approver_identity: str = Field(
        default="bob@tables.fake",
        description="Login of the human who receives approval pushes",
    )
    status_poll_window: float = Field(
        default=10.0,
        description="Maximum seconds a status check waits server-side before returning PENDING",
        gt=0,
        le=300,
    )
    status_poll_interval: float = Field(
        default=4.0,
        description="Seconds to sleep between approval channel queries during a status check",
        gt=0,
        le=60,
    )

    # Okta Configuration
    okta_domain: str = Field(
        default="https://example.okta.com",
        description="Okta org URL used for out-of-band push approval",
    )
    okta_client_id: str = Field(
        default="",
        description="OAuth client ID with the OOB grant enabled",
    )
    okta_client_secret: SecretStr = Field(
        default=SecretStr(""),
        description="OAuth client secret for the approval client",
    )
    okta_timeout: int = Field(
        default=15,
        description="Timeout for Okta API calls in seconds",
        ge=1,
        le=120,
    )

    # Downstream Settings
    access_token: SecretStr = Field(
        default=SecretStr(""),
        description="Bearer credential passed to the downstream server as ACCESS_TOKEN",
    )

    @field_validator("hitl_log_file", "hitl_servers_file", mode="before")
    @classmethod
    def expand_paths(cls, v: str | Path | None) -> Path | None:
        """Expand relative paths to absolute paths."""
        if v is None or v == "":
            return None
        path = Path(v)
        return path.expanduser().resolve()

    @model_validator(mode="after")
    def check_poll_timing(self) -> "Settings":
        """Make sure the poll interval fits inside the poll window."""
        if self.status_poll_interval > self.status_poll_window:
            raise ValueError(
                f"status_poll_interval ({self.status_poll_interval}s) must not exceed "
                f"status_poll_window ({self.status_poll_window}s)"
            )
        return self

    @property
    def okta_base_url(self) -> str:
        """Get the Okta org URL without a trailing slash."""
        return self.okta_domain.rstrip("/")

    def model_dump_safe(self) -> dict[str, str]:
        """Dump settings as a dictionary with safe string representations.

        Useful for logging configuration without exposing sensitive data.
        """
        return {
            "log_level": self.hitl_log_level,
            "log_file": str(self.hitl_log_file) if self.hitl_log_file else "stderr",
            "default_server": self.hitl_default_server,
            "servers_file": str(self.hitl_servers_file) if self.hitl_servers_file else "",
            "approver_identity": self.approver_identity,
            "status_poll_window": f"{self.status_poll_window}s",
            "status_poll_interval": f"{self.status_poll_interval}s",
            "okta_domain": self.okta_domain,
            "okta_client_id": self.okta_client_id,
            "okta_client_secret": "***" if self.okta_client_secret.get_secret_value() else "",
            "access_token": "***" if self.access_token.get_secret_value() else "",
        }


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance.

    Creates and caches the settings on first call.

    Returns:
        Settings: The global settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment/files.

    Useful for testing or when configuration changes at runtime.

    Returns:
        Settings: The newly loaded settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
