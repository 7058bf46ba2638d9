"""
Application settings loaded from environment variables (or a local .env file).
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=True)

    MODE: str = "production"
    APP_NAME: str = "Cafe Loyalty"
    LOG_LEVEL: str = "INFO"

    # Storage
    DATABASE_URL: str = "sqlite+aiosqlite:///./cafe_auth.db"
    DATABASE_ECHO: bool = False
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"

    # Tokens and hashing
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    BCRYPT_ROUNDS: int = 12
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 24 * 60
    TRUSTED_DEVICE_DAYS: int = 30

    # One-time passcodes
    OTP_TTL_MINUTES: int = 10
    OTP_MAX_ATTEMPTS: int = 3

    # Lockout
    LOCKOUT_THRESHOLD: int = 5
    LOCKOUT_MINUTES: int = 15
    FAILED_ATTEMPT_TTL_HOURS: int = 24

    # Signup staging
    SIGNUP_TTL_MINUTES: int = 30
    ALLOWED_SIGNUP_DOMAINS: List[str] = Field(default_factory=lambda: ["gmail.com"])

    # Request rate limits (fixed window, per Redis key)
    RATE_LIMIT_ENABLED: bool = True
    SIGNUP_RATE_LIMIT: int = 3
    SIGNUP_RATE_WINDOW_SEC: int = 60 * 60
    AUTH_RATE_LIMIT: int = 10
    AUTH_RATE_WINDOW_SEC: int = 15 * 60

    # Reverse proxies in front of the app; 0 trusts no X-Forwarded-For entry
    TRUSTED_PROXY_HOPS: int = 0

    # Outbound e-mail
    SMTP_SERVER: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM_EMAIL: Optional[str] = None
    SMTP_FROM_NAME: str = "Cafe Loyalty"
    SMTP_TIMEOUT_SEC: int = 15

    # Error tracking
    SENTRY_DSN: Optional[str] = None
    SENTRY_ENVIRONMENT: Optional[str] = None
    SENTRY_TRACES_SAMPLE_RATE: float = 0.1

    CORS_ORIGINS: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])


settings = Settings()
