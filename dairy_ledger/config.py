"""
Application configuration.

All configuration is loaded from environment variables.
Never hardcode secrets or connection strings in code.
"""

import os
from decimal import Decimal
from functools import lru_cache

from dotenv import load_dotenv

# Load .env file into environment variables
load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Dairy Ledger"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "postgresql://localhost:5432/dairy_ledger"
    )
    # Seconds a SQLite writer waits for the database lock
    SQLITE_BUSY_TIMEOUT: int = int(os.getenv("SQLITE_BUSY_TIMEOUT", "30"))

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Accounting
    COMPANY_CODE: str = os.getenv("COMPANY_CODE", "MAIN")
    BALANCE_TOLERANCE: Decimal = Decimal(os.getenv("BALANCE_TOLERANCE", "0.01"))
    DEFAULT_ROUND_DOWN_UNIT: int = int(os.getenv("DEFAULT_ROUND_DOWN_UNIT", "10"))

    # Retry policy for conflicting concurrent transactions
    MAX_TRANSACTION_RETRIES: int = int(os.getenv("MAX_TRANSACTION_RETRIES", "3"))
    RETRY_BACKOFF_SECONDS: float = float(
        os.getenv("RETRY_BACKOFF_SECONDS", "0.05")
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Return cached settings instance.

    Using lru_cache means the Settings object is created once
    and reused for all subsequent calls. This avoids reading
    environment variables repeatedly.
    """
    return Settings()
