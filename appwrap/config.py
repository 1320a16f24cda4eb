"""Configuration settings for appwrap.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.

The provider credentials are also accepted under their conventional Expo
names (EXPO_TOKEN, EAS_PROJECT_ID) so existing deployments keep working.
"""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_db_url() -> str:
    """Return the default database URL (SQLite)."""
    db_path = Path.home() / ".local" / "share" / "appwrap" / "db.sqlite"
    return f"sqlite:///{db_path}"


class ConfigurationError(Exception):
    """Raised when deployment configuration required for an operation is missing.

    This is a server-side fault, never a user input fault.
    """

    def __init__(self, message: str, code: str = "configuration_error") -> None:
        super().__init__(message)
        self.code = code


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the APPWRAP_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="APPWRAP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Storage
    db_url: str = Field(
        default_factory=_default_db_url,
        description="Database connection URL",
    )

    # Operational modes
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    status_mode: Literal["eas", "demo"] = Field(
        default="eas",
        description="Build status source: mirror EAS, or synthesize demo records",
    )

    # Build provider (Expo Application Services)
    expo_token: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("APPWRAP_EXPO_TOKEN", "EXPO_TOKEN"),
        description="EAS API access token",
    )
    eas_project_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("APPWRAP_EAS_PROJECT_ID", "EAS_PROJECT_ID"),
        description="EAS project identifier",
    )
    eas_api_url: str = Field(
        default="https://api.expo.dev",
        description="Base URL of the EAS REST API",
    )
    build_detail_url_template: str = Field(
        default="https://expo.dev/builds/{job_id}",
        description="Link shown to users for a provider build ({job_id} is substituted)",
    )

    # Push notifications
    push_api_url: str = Field(
        default="https://exp.host/--/api/v2/push/send",
        description="Expo push send endpoint",
    )
    expo_push_access_token: SecretStr | None = Field(
        default=None,
        description="Optional access token for enhanced push security",
    )

    # Timeouts (in seconds)
    provider_timeout: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Timeout for outbound provider requests",
    )

    # Client polling
    poll_interval: float = Field(
        default=5.0,
        gt=0,
        description="Seconds between build status polls",
    )
    poll_max_attempts: int = Field(
        default=360,
        ge=1,
        description="Maximum number of status polls before giving up",
    )
    poll_backoff: float = Field(
        default=1.0,
        ge=1.0,
        le=4.0,
        description="Multiplier applied to the poll interval after each attempt",
    )
    poll_max_interval: float = Field(
        default=60.0,
        gt=0,
        description="Upper bound for the backed-off poll interval",
    )

    # HTTP server / client
    api_url: str = Field(
        default="http://127.0.0.1:8000",
        description="Base URL of the appwrap API used by the CLI",
    )
    host: str = Field(default="127.0.0.1", description="Bind address for serve")
    port: int = Field(default=8000, ge=1, le=65535, description="Port for serve")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed to call the API from a browser",
    )

    @property
    def provider_configured(self) -> bool:
        """Whether both EAS credentials are present."""
        try:
            self.require_provider()
        except ConfigurationError:
            return False
        return True

    def require_provider(self) -> tuple[str, str]:
        """Return the EAS token and project id.

        Raises:
            ConfigurationError: If either value is missing.
        """
        token = self.expo_token.get_secret_value() if self.expo_token else ""
        project_id = self.eas_project_id or ""

        missing = []
        if not token:
            missing.append("EXPO_TOKEN")
        if not project_id:
            missing.append("EAS_PROJECT_ID")
        if missing:
            raise ConfigurationError(
                f"Server misconfiguration: missing {', '.join(missing)}",
                code="provider_not_configured",
            )
        return token, project_id


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


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
    return settings.model_dump_json(indent=2)


__all__ = [
    "ConfigurationError",
    "Settings",
    "get_settings",
    "print_settings_json",
]
