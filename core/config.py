# app/core/config.py
from typing import List, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings


PLACEHOLDER_SECRETS = {
    "secret",
    "changeme",
    "change-me",
    "your-secret-key",
    "your-super-secret-jwt-key",
    "fallback-secret",
}


class Settings(BaseSettings):
    APP_NAME: str = "ImpactHub"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Security
    JWT_SECRET: str
    JWT_REFRESH_SECRET: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    ALGORITHM: str = "HS256"
    BCRYPT_ROUNDS: int = 12
    PASSWORD_RESET_EXPIRE_MINUTES: int = 10
    EMAIL_VERIFICATION_EXPIRE_HOURS: int = 24

    # Payments
    STRIPE_SECRET_KEY: str
    STRIPE_WEBHOOK_SECRET: str
    MIN_DONATION_AMOUNT: float = 1.0
    MAX_DONATION_AMOUNT: float = 1_000_000.0
    DEFAULT_CURRENCY: str = "USD"
    PROCESSING_FEE_PERCENT: float = 0.0
    PLATFORM_FEE_PERCENT: float = 5.0

    # Campaigns
    CAMPAIGN_REQUIRE_APPROVAL: bool = True
    CAMPAIGN_MAX_DURATION_DAYS: int = 365

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    REDIS_URL: Optional[str] = None

    # HTTP
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]
    # X-Forwarded-For is only honoured for requests arriving from these addresses
    TRUSTED_PROXIES: List[str] = []
    FRONTEND_URL: str = "http://localhost:5173"

    # Database
    DATABASE_URL: str
    AUTO_CREATE_TABLES: bool = False

    @field_validator("JWT_SECRET", "JWT_REFRESH_SECRET", "STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET")
    @classmethod
    def secret_must_be_set(cls, v: str, info):
        if not v or not v.strip():
            raise ValueError(f"{info.field_name} must not be empty")
        if v.strip().lower() in PLACEHOLDER_SECRETS:
            raise ValueError(f"{info.field_name} is a placeholder value")
        return v

    @field_validator("JWT_SECRET", "JWT_REFRESH_SECRET")
    @classmethod
    def token_secret_length(cls, v: str, info):
        if len(v) < 16:
            raise ValueError(f"{info.field_name} must be at least 16 characters")
        return v

    @model_validator(mode="after")
    def secrets_must_differ(self):
        if self.JWT_SECRET == self.JWT_REFRESH_SECRET:
            raise ValueError("JWT_SECRET and JWT_REFRESH_SECRET must differ")
        if self.MIN_DONATION_AMOUNT > self.MAX_DONATION_AMOUNT:
            raise ValueError("MIN_DONATION_AMOUNT exceeds MAX_DONATION_AMOUNT")
        return self

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
