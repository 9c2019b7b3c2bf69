# config.py - Environment configuration for the Productitask API
# Settings are validated once at startup; an invalid environment stops the process.

import logging
from typing import List, Literal, Optional

from pydantic import ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("productitask.config")

DEFAULT_SESSION_SECRET = "development_secret"
MIN_PRODUCTION_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings read from environment variables and `.env`."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    environment: Literal["development", "test", "production"] = "development"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Sessions
    session_secret: str = DEFAULT_SESSION_SECRET
    session_cookie_name: str = "sid"
    session_max_age_minutes: int = 60 * 24 * 7

    # Storage
    database_url: Optional[str] = None
    storage_backend: Optional[Literal["memory", "sql"]] = None
    database_pool_size: int = 10
    database_pool_timeout: int = 30
    sql_echo: bool = False

    # HTTP
    cors_origin: str = "*"
    rate_limit_max: int = 100
    rate_limit_window_ms: int = 60 * 1000

    # Auth
    login_max_attempts: int = 5
    login_lockout_minutes: int = 15
    bcrypt_rounds: int = 12

    # Logging
    log_level: Literal["debug", "info", "warning", "error"] = "info"
    log_format: Literal["json", "text"] = "json"

    @field_validator("log_level", mode="before")
    @classmethod
    def normalise_log_level(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            return "warning" if v == "warn" else v
        return v

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v):
        """Plain postgresql:// URLs need the asyncpg driver name."""
        if isinstance(v, str):
            v = v.strip() or None
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        if isinstance(v, str) and v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql+asyncpg://", 1)
        return v

    @field_validator("session_secret")
    @classmethod
    def secret_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("SESSION_SECRET must not be empty")
        return v

    @field_validator("bcrypt_rounds")
    @classmethod
    def bcrypt_rounds_in_range(cls, v: int) -> int:
        if not 4 <= v <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31")
        return v

    @model_validator(mode="after")
    def check_required_values(self) -> "Settings":
        if self.resolved_backend == "sql" and not self.database_url:
            raise ValueError("DATABASE_URL is required when using the sql storage backend")
        if self.is_production and (
            self.session_secret == DEFAULT_SESSION_SECRET
            or len(self.session_secret) < MIN_PRODUCTION_SECRET_LENGTH
        ):
            raise ValueError(
                f"SESSION_SECRET must be set to at least {MIN_PRODUCTION_SECRET_LENGTH} characters in production"
            )
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def resolved_backend(self) -> str:
        if self.storage_backend:
            return self.storage_backend
        return "sql" if self.is_production else "memory"

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.cors_origin.split(",") if o.strip()]

    @property
    def rate_limit_window_seconds(self) -> float:
        return self.rate_limit_window_ms / 1000

    def summary(self) -> dict:
        """Startup summary with secrets redacted."""
        return {
            "environment": self.environment,
            "port": self.port,
            "storage_backend": self.resolved_backend,
            "database_url": "[REDACTED]" if self.database_url else "Not provided",
            "log_level": self.log_level,
        }


def load_settings(**overrides) -> Settings:
    """Validate the environment, exiting the process if it is unusable."""
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        for err in exc.errors():
            field = ".".join(str(loc) for loc in err.get("loc", ())) or "settings"
            logger.critical(f"Invalid configuration [{field}]: {err.get('msg')}")
        raise SystemExit(1) from exc

