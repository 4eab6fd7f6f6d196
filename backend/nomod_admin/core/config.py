"""Application configuration and settings management."""
from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_ADMIN_EMAIL = "admin@nomod.local"
DEFAULT_ADMIN_PASSWORD = "nomod-admin"
DEFAULT_ADMIN_NAME = "Site Admin"
DEV_AUTH_SECRET = "nomod-dev-auth-secret"


class ConfigurationError(RuntimeError):
    """Raised when a required setting is missing or unusable."""


class Settings(BaseSettings):
    """Global application settings loaded from environment variables or .env."""

    model_config = SettingsConfigDict(
        env_file=(Path(__file__).resolve().parent.parent / ".." / ".env"),
        env_file_encoding="utf-8",
        env_prefix="NOMOD_",
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = "Nomod Admin"
    environment: str = "development"

    # Authentication
    auth_secret: str | None = None
    admin_email: str | None = None
    admin_password: str | None = None

    # Backing store
    store_backend: Literal["supabase", "sql"] = "supabase"
    supabase_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL"),
    )
    supabase_service_role_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_SECRET_KEY"),
    )
    supabase_timeout_seconds: float = 10.0
    database_url: str = "sqlite+aiosqlite:///./nomod_admin.db"

    # Sessions
    session_max_age_seconds: int = 60 * 60 * 8
    max_sessions_per_user: int = 20
    max_sessions_total: int = 5000

    # Login throttling
    login_window_seconds: int = 15 * 60
    login_max_attempts: int = 5
    login_lockout_seconds: int = 15 * 60

    # Scheduler
    sweep_interval_seconds: int = 15 * 60

    allowed_origins: Annotated[List[str], NoDecode] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: List[str] | str) -> List[str]:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("auth_secret", "admin_email", "admin_password", "supabase_url", "supabase_service_role_key")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def has_custom_admin_credentials(self) -> bool:
        return bool(self.admin_email or self.admin_password)

    def resolve_auth_secret(self) -> str:
        """Return the HMAC secret used to digest session tokens.

        Production deployments must configure ``NOMOD_AUTH_SECRET``; elsewhere the
        admin password (or a fixed development value) stands in for it.
        """

        if self.auth_secret:
            return self.auth_secret
        if self.is_production:
            raise ConfigurationError("NOMOD_AUTH_SECRET must be set in production.")
        return self.admin_password or DEV_AUTH_SECRET

    def default_admin_email(self) -> str:
        return (self.admin_email or DEFAULT_ADMIN_EMAIL).strip().lower()

    def default_admin_password(self) -> str:
        return self.admin_password or DEFAULT_ADMIN_PASSWORD


@lru_cache
def get_settings() -> Settings:
    """Return memoized settings instance."""

    return Settings()
