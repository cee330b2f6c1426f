"""
Application configuration using Pydantic Settings.

Configuration comes from environment variables, with an optional .env file
as a fallback. Pydantic Settings resolves each value in this order:
  1. Environment variables (highest priority)
  2. .env file values
  3. Defaults defined here (lowest priority)

Usage:
    from ledger.config import settings
    print(settings.DATABASE_URL)
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the Ledger API.

    Required fields (no defaults) MUST be set in .env or environment:
      - SECRET_KEY: Verifies the identity tokens that scope every request
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "Ledger API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # --- Database ---
    # SQLite for local use; any async SQLAlchemy URL works (e.g. postgresql+asyncpg)
    DATABASE_URL: str = "sqlite+aiosqlite:///./ledger.db"

    # --- Identity ---
    # REQUIRED: tokens are issued by the identity provider with this key
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # --- Ledger defaults ---
    DEFAULT_CURRENCY: str = "USD"
    TRANSACTIONS_DEFAULT_LIMIT: int = 100
    MOVEMENTS_DEFAULT_LIMIT: int = 50

    # --- Read cache ---
    # Seconds a cached account listing stays valid; 0 disables caching
    READ_CACHE_TTL_SECONDS: float = 30.0

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # --- CORS ---
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
