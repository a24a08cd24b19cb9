"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. Settings are loaded once and
passed down to the components that need them (directory, signer, processor),
so nothing below the app factory reads the environment on its own.

Usage:
    from interbank_settlement.config import get_settings
    settings = get_settings()
    print(settings.registry_url)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for an interbank settlement node."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 3000

    # --- Database ---
    database_url: str = (
        "postgresql+asyncpg://settlement:settlement_dev"
        "@localhost:5432/interbank_settlement"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Redis (inbound replay protection) ---
    redis_url: str = "redis://localhost:6379/0"
    redis_idempotency_ttl_seconds: int = 259200  # 3 days, matches expiry

    # --- Central registry ---
    registry_url: str = "http://localhost:8080"
    registry_api_key: str = ""
    registry_timeout_seconds: float = 5.0

    # --- This node ---
    bank_prefix: str = "bf5"
    signing_key_path: str = ""
    signing_key_id: str = ""

    # --- Peers ---
    jwks_cache_ttl_seconds: float = 300.0
    outbound_timeout_seconds: float = 0.5
    rates_url: str = "https://api.exchangerate.host/latest"
    rates_timeout_seconds: float = 5.0

    # --- Transaction processor ---
    processor_enabled: bool = True
    processor_interval_seconds: float = 1.0
    processor_concurrency: int = 10
    transaction_expiry_days: int = 3

    # --- Inbound settlement ---
    # False credits the amount exactly as sent by the peer bank.
    inbound_credit_converted_amount: bool = False

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
