"""
Application Configuration — Environment & Settings
Centralizes all config from .env with Pydantic Settings for validation.
"""
from pathlib import Path
from functools import lru_cache
from pydantic_settings import BaseSettings

# Resolve paths relative to backend/ directory
BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # --- Core ---
    APP_NAME: str = "PayLink Reconciliation API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # --- Database ---
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'data' / 'paylink.db'}"

    # --- HTTP ---
    CORS_ORIGINS: list[str] = ["*"]
    CREATE_RATE_LIMIT: int = 10
    CREATE_RATE_WINDOW: int = 60

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # --- PayOS gateway ---
    PAYOS_CLIENT_ID: str = ""
    PAYOS_API_KEY: str = ""
    PAYOS_CHECKSUM_KEY: str = ""
    PAYOS_PARTNER_CODE: str = ""
    GATEWAY_NAME: str = "payos"
    GATEWAY_TIMEOUT_SECONDS: float = 10.0
    WEBHOOK_SIGNATURE_HEADER: str = "x-signature"

    # --- Transactions ---
    DEFAULT_CURRENCY: str = "VND"
    DESCRIPTION_MAX_LENGTH: int = 25
    ORDER_CODE_MAX_ATTEMPTS: int = 3

    # --- Reconciliation poller ---
    STALE_AFTER_SECONDS: int = 900
    POLL_INTERVAL_SECONDS: int = 0      # 0 disables the scheduled sweep
    POLL_BATCH_SIZE: int = 50

    @property
    def gateway_configured(self) -> bool:
        return bool(self.PAYOS_CLIENT_ID and self.PAYOS_API_KEY and self.PAYOS_CHECKSUM_KEY)

    class Config:
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
