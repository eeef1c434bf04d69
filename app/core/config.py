# app/core/config.py
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings loaded from environment.

    Required env vars (.env):
      - JWT_SECRET (HS256 secret shared with the auth provider)

    Optional:
      - DATABASE_URL (defaults to a local SQLite file)
      - CRON_SECRET (scheduled job endpoints are disabled without it)
      - loyalty / coupon tuning knobs below
    """

    PROJECT_NAME: str = "Kitchen Orders & Loyalty API"
    API_V1_STR: str = "/api/v1"

    # DB config
    DATABASE_URL: str = "sqlite:///./kitchen.db"
    DB_POOL_SIZE: int = 5
    DB_ECHO: bool = False

    # JWT verification (backend-side)
    JWT_SECRET: str
    JWT_ALG: str = "HS256"

    # Shared secret for /cron/* endpoints
    CRON_SECRET: str | None = None

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Orders
    ORDER_NUMBER_PREFIX: str = "BK"
    # Off = any status may move to any other status (staff corrections).
    ORDER_STRICT_TRANSITIONS: bool = False

    # Wallet / coins
    REDEEM_MIN_COINS: int = 10
    COIN_VALUE: float = 1.0
    REDEEM_COUPON_TTL_DAYS: int = 30
    WALLET_HISTORY_LIMIT: int = 20
    COIN_EXPIRY_DAYS: int = 90
    COIN_EXPIRY_WARNING_DAYS: int = 7

    # Unit of work
    TX_MAX_ATTEMPTS: int = 3

    # Notification outbox
    NOTIFICATION_MAX_ATTEMPTS: int = 3
    # A "sending" entry older than this is assumed orphaned and redelivered
    NOTIFICATION_CLAIM_TIMEOUT_SECONDS: int = 300

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
