"""phoneauth configuration - environment driven settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Development-only fallback; production refuses to start without JWT_SECRET_KEY
_DEV_JWT_SECRET = "dev-only-insecure-jwt-secret-change-me-0000"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "phoneauth"
    app_version: str = "0.1.0"
    environment: Literal["development", "production"] = "production"
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: str = ""
    enable_metrics: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///./phoneauth.db"
    db_pool_size: int = Field(default=20, ge=1)
    db_max_overflow: int = Field(default=20, ge=0)
    db_pool_timeout: int = Field(default=30, ge=1)
    db_pool_recycle: int = Field(default=1800, ge=60)

    # Session tokens
    jwt_secret_key: str | None = None
    jwt_algorithm: Literal["HS256", "HS384", "HS512"] = "HS256"
    session_token_expire_days: int = Field(default=30, ge=1)
    session_token_purge_grace_days: int = Field(default=7, ge=0)

    # One-time codes
    otp_length: int = Field(default=6, ge=4, le=10)
    otp_validity_minutes: int = Field(default=5, ge=1)
    otp_max_attempts: int = Field(default=3, ge=1)
    otp_count_expired_attempts: bool = True
    otp_send_limit: int = Field(default=5, ge=1)
    otp_send_window_seconds: int = Field(default=600, ge=1)

    # SMS delivery
    sms_enabled: bool = True
    sms_dev_mode: bool = True
    sms_api_url: str = ""
    sms_api_key: str = ""
    sms_api_secret: str = ""
    sms_sender_id: str = "PHAUTH"
    sms_timeout_seconds: float = Field(default=5.0, gt=0)

    # Operations
    internal_api_key: str | None = None
    sweep_interval_seconds: int = Field(default=300, ge=10)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        # Heroku-style URLs use the sync driver; the app needs async drivers
        if v.startswith("postgres://"):
            v = v.replace("postgres://", "postgresql+asyncpg://", 1)
        elif v.startswith("postgresql://"):
            v = v.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif v.startswith("sqlite:///"):
            v = v.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
        return v

    @field_validator("jwt_secret_key")
    @classmethod
    def validate_jwt_secret_key(cls, v: str | None) -> str | None:
        if v is not None and len(v) < 32:
            raise ValueError("JWT_SECRET_KEY must be at least 32 characters")
        return v

    @field_validator("internal_api_key")
    @classmethod
    def validate_internal_api_key(cls, v: str | None) -> str | None:
        if v == "":
            return None
        if v is not None and len(v) < 32:
            raise ValueError("INTERNAL_API_KEY must be at least 32 characters")
        return v

    @model_validator(mode="after")
    def require_secret_in_production(self) -> "Settings":
        if self.environment == "production" and not self.jwt_secret_key:
            raise ValueError("JWT_SECRET_KEY is required when ENVIRONMENT=production")
        return self

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def effective_jwt_secret_key(self) -> str:
        """JWT signing key, falling back to the dev key outside production."""
        return self.jwt_secret_key or _DEV_JWT_SECRET

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def expose_otp_code(self) -> bool:
        """Whether /otp/send may echo the code back to the caller."""
        return self.is_development

    def check_security_configuration(self) -> list[str]:
        """Return human-readable warnings about risky but allowed settings."""
        warnings: list[str] = []
        if not self.jwt_secret_key:
            warnings.append("JWT_SECRET_KEY not set - using the development signing key")
        if self.expose_otp_code:
            warnings.append("ENVIRONMENT=development - OTP codes are returned in API responses")
        if self.internal_api_key and self.internal_api_key == self.jwt_secret_key:
            warnings.append("INTERNAL_API_KEY equals JWT_SECRET_KEY - use distinct secrets")
        if self.sms_enabled and not self.sms_dev_mode and not self.sms_api_url:
            warnings.append("SMS_DEV_MODE=false but SMS_API_URL is empty - codes go to the log")
        return warnings


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
