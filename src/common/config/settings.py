"""Application settings and environment variables."""

import os

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file


class Settings:
    DB_HOST: str = os.getenv("DB_HOST", "localhost")
    DB_DATABASE: str = os.getenv("DB_NAME", "seed_ledger_db")
    DB_USER: str = os.getenv("DB_USER", "user")
    DB_PASSWORD: str = os.getenv("DB_PASSWORD", "password")

    # Lot identity
    LOT_ID_PREFIX: str = os.getenv("LOT_ID_PREFIX", "SL")

    # Time handling, resolved with pytz
    TIMEZONE: str = os.getenv("TIMEZONE", "UTC")

    # Expiry monitoring
    EXPIRY_WARNING_DAYS: int = int(os.getenv("EXPIRY_WARNING_DAYS", "30"))
    EXPIRY_CHECK_TIME: str = os.getenv("EXPIRY_CHECK_TIME", "06:00")

    # Logging settings
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")  # INFO, DEBUG, WARNING, ERROR, CRITICAL


settings = Settings()
