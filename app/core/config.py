import re
from datetime import timedelta
from typing import List, Literal, Optional

from loguru import logger
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ALLOWED_ORIGIN = "http://localhost:3000"

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: str) -> timedelta:
    """
    Parses "3600", "45s", "15m", "24h" or "7d" into a timedelta.
    Raises ValueError for anything else.
    """
    match = _DURATION_RE.match(str(value).lower())
    if not match:
        raise ValueError(f"Invalid duration '{value}'. Use seconds or a number with s/m/h/d.")
    amount, unit = match.groups()
    seconds = int(amount) * _DURATION_UNITS[unit]
    if seconds <= 0:
        raise ValueError("Duration must be positive")
    return timedelta(seconds=seconds)


class Settings(BaseSettings):
    PROJECT_NAME: str = "Alra Care Clinic API"
    VERSION: str = "3.0.0"
    API_PREFIX: str = "/api"

    # Server
    PORT: int = 3000
    ENVIRONMENT: Literal["development", "staging", "production", "test"]
    TIMEZONE: str = "Asia/Jakarta"

    # Supabase
    SUPABASE_URL: str
    SUPABASE_ANON_KEY: str
    SUPABASE_SERVICE_ROLE_KEY: str = ""

    # Auth
    JWT_SECRET: str
    JWT_EXPIRATION: str = "24h"
    JWT_ALGORITHM: str = "HS256"

    # Security
    ALLOWED_ORIGINS: str = DEFAULT_ALLOWED_ORIGIN
    COOKIE_DOMAIN: Optional[str] = None
    COOKIE_SECURE: bool = False
    TRUST_PROXY: bool = True

    # Rate limiting (windows in minutes)
    RATE_LIMIT_MAX: int = 100
    RATE_LIMIT_WINDOW: int = 15
    AUTH_RATE_LIMIT_MAX: int = 5
    AUTH_RATE_LIMIT_WINDOW: int = 15
    BOOKING_RATE_LIMIT_MAX: int = 10
    BOOKING_RATE_LIMIT_WINDOW: int = 60
    RATE_LIMIT_REDIS_URL: str = ""

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    @field_validator("JWT_SECRET")
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        if len(v) < 32:
            raise ValueError(
                "JWT_SECRET must be at least 32 characters long. "
                "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
            )
        return v

    @field_validator("JWT_EXPIRATION")
    @classmethod
    def validate_jwt_expiration(cls, v: str) -> str:
        parse_duration(v)
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid LOG_LEVEL '{v}'")
        return upper

    @model_validator(mode="after")
    def warn_on_weak_production_config(self) -> "Settings":
        if self.ENVIRONMENT != "production":
            return self
        if self.ALLOWED_ORIGINS.strip() in ("", DEFAULT_ALLOWED_ORIGIN):
            logger.warning("⚠️ ALLOWED_ORIGINS should be set to your production domain(s)")
        if not self.COOKIE_SECURE:
            logger.warning("⚠️ COOKIE_SECURE should be true in production (requires HTTPS)")
        if not self.SUPABASE_SERVICE_ROLE_KEY:
            logger.warning("⚠️ SUPABASE_SERVICE_ROLE_KEY is recommended for admin operations")
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def allowed_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    @property
    def token_lifetime(self) -> timedelta:
        return parse_duration(self.JWT_EXPIRATION)


settings = Settings()
