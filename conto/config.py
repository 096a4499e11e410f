"""
Application settings.
Values are read once from the environment (and an optional .env file).
"""
from functools import lru_cache
from typing import List
import os

from dotenv import load_dotenv

load_dotenv()


def _as_bool(value: str, default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Runtime configuration for the conto service."""

    def __init__(self):
        # Database
        self.MONGO_URL: str = os.environ.get("MONGO_URL", "mongodb://localhost:27017")
        self.DB_NAME: str = os.environ.get("DB_NAME", "conto_db")

        # Auth (tokens are issued elsewhere, here we only decode them)
        self.SECRET_KEY: str = os.environ.get("SECRET_KEY", "change-me")
        self.ALGORITHM: str = os.environ.get("ALGORITHM", "HS256")

        # Logging
        self.LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")
        self.LOG_FORMAT: str = os.environ.get("LOG_FORMAT", "text")
        self.LOG_FILE: str = os.environ.get("LOG_FILE", "")

        # Computed summary/breakdown cache
        self.CONTO_CACHE_TTL_SECONDS: float = float(os.environ.get("CONTO_CACHE_TTL_SECONDS", "60"))
        self.CONTO_CACHE_ENABLED: bool = _as_bool(os.environ.get("CONTO_CACHE_ENABLED"), True)

        # Upload limits
        self.MAX_UPLOAD_SIZE_MB: int = int(os.environ.get("MAX_UPLOAD_SIZE_MB", "10"))

        self.CORS_ORIGINS: List[str] = [
            origin.strip()
            for origin in os.environ.get("CORS_ORIGINS", "*").split(",")
            if origin.strip()
        ]

    @property
    def max_upload_bytes(self) -> int:
        return self.MAX_UPLOAD_SIZE_MB * 1024 * 1024


@lru_cache()
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()


settings = get_settings()
