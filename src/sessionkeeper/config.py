"""Configuration management with pydantic-settings."""

from typing import Any, Literal

from pydantic import AliasChoices, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sessionkeeper.exceptions import ConfigurationError

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)


class KeepAliveSettings(BaseSettings):
    """sessionkeeper settings loaded from environment variables.

    Durations are expressed in milliseconds in the environment and exposed in
    seconds through the ``*_seconds`` properties.
    """

    # Backend
    api_base_url: str = Field(description="Backend base URL (trailing slash stripped)")
    identity: str = Field(
        validation_alias=AliasChoices("KEEP_ALIVE_EMAIL", "API_USERNAME"),
        description="Login identity (email or username)",
    )
    password: SecretStr = Field(
        validation_alias=AliasChoices("KEEP_ALIVE_PASSWORD", "API_PASSWORD"),
        description="Login secret",
    )
    login_identity_field: Literal["email", "username"] | None = Field(
        default=None,
        description="JSON field name for the identity (inferred when unset)",
    )
    login_remember_me: bool = Field(default=False, description="Send rememberMe on login")
    login_path: str = Field(default="/api/auth/login")
    verify_path: str = Field(default="/api/auth/me")
    logout_path: str = Field(default="/api/auth/logout")
    verify_session: bool = Field(
        default=True,
        description="Verify the fresh credential before counting a login as successful",
    )
    user_agent: str = Field(default=DEFAULT_USER_AGENT)

    # Scheduling
    keep_alive_interval: int = Field(default=840_000, gt=0, description="Cycle interval (ms)")
    failure_retry_delay_ms: int = Field(
        default=60_000,
        gt=0,
        description="Next-run delay after a tick whose login batches all failed (ms)",
    )

    # Timeouts
    login_timeout_ms: int = Field(default=10_000, gt=0)
    logout_timeout_ms: int = Field(default=5_000, gt=0)
    shutdown_logout_timeout_ms: int = Field(default=3_000, gt=0)

    # Retry budgets
    login_max_attempts: int = Field(default=10, ge=1)
    login_retry_base_delay_ms: int = Field(default=5_000, ge=0)
    login_retry_max_delay_ms: int = Field(default=30_000, ge=0)
    logout_max_attempts: int = Field(default=2, ge=1)
    logout_retry_base_delay_ms: int = Field(default=1_000, ge=0)
    logout_retry_max_delay_ms: int = Field(default=5_000, ge=0)
    login_followup_batches: int = Field(
        default=1,
        ge=0,
        description="Extra full login batches attempted after an alert (0 disables)",
    )

    # Status server
    status_host: str = Field(default="0.0.0.0")  # noqa: S104
    port: int = Field(default=3000, ge=0, le=65535)

    # Logging configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["console", "json"] = Field(default="console")
    log_dir: str | None = Field(
        default=None,
        description="Directory for daily-rotated log files (disabled when unset)",
    )
    log_retention_days: int = Field(default=14, ge=1)
    log_error_retention_days: int = Field(default=30, ge=1)
    app_env: str = Field(default="development", description="Deployment environment label")

    # Alerting
    alert_email: str | None = Field(default=None, description="Comma-separated recipients")
    alert_from: str | None = Field(default=None)
    smtp_host: str | None = Field(default=None)
    smtp_port: int = Field(default=587)
    smtp_username: str | None = Field(default=None)
    smtp_password: SecretStr | None = Field(default=None)
    smtp_use_tls: bool = Field(default=True)
    alert_cooldown_ms: int = Field(default=60_000, ge=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("API_BASE_URL must not be empty")
        return value

    @field_validator("identity")
    @classmethod
    def _require_identity(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("login identity must not be empty")
        return value.strip()

    @property
    def identity_field(self) -> str:
        """JSON field used for the identity in the login body."""
        if self.login_identity_field:
            return self.login_identity_field
        return "email" if "@" in self.identity else "username"

    @property
    def interval_seconds(self) -> float:
        return self.keep_alive_interval / 1000

    @property
    def failure_retry_delay_seconds(self) -> float:
        return self.failure_retry_delay_ms / 1000

    @property
    def alert_cooldown_seconds(self) -> float:
        return self.alert_cooldown_ms / 1000

    @property
    def alert_recipients(self) -> list[str]:
        """Parsed ALERT_EMAIL recipients."""
        if not self.alert_email:
            return []
        return [addr.strip() for addr in self.alert_email.split(",") if addr.strip()]

    @property
    def smtp_configured(self) -> bool:
        """Whether alert mail can be sent at all."""
        return bool(self.smtp_host and self.alert_recipients)

    def masked(self) -> dict[str, Any]:
        """Effective configuration with secrets hidden, for display."""
        data = self.model_dump()
        data["password"] = "********"
        if self.smtp_password is not None:
            data["smtp_password"] = "********"
        data["identity_field"] = self.identity_field
        return data


def load_settings() -> KeepAliveSettings:
    """Build settings from the environment.

    Raises:
        ConfigurationError: If required variables are missing or invalid.
    """
    try:
        return KeepAliveSettings()  # type: ignore[call-arg]
    except ValidationError as exc:
        missing: list[str] = []
        invalid: list[str] = []
        for error in exc.errors():
            name = str(error["loc"][0]).upper() if error["loc"] else "?"
            if error["type"] == "missing":
                missing.append(name)
            else:
                invalid.append(f"{name}: {error['msg']}")
        parts = []
        if missing:
            parts.append(f"Missing required environment variables: {', '.join(missing)}")
        if invalid:
            parts.append(f"Invalid configuration: {'; '.join(invalid)}")
        raise ConfigurationError(". ".join(parts)) from exc


# Global settings instance
_settings: KeepAliveSettings | None = None


def get_settings() -> KeepAliveSettings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the global settings instance (useful for testing)."""
    global _settings
    _settings = None
