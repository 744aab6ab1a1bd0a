"""
Application configuration: environment-aware settings.

All environment variables are read here. A local .env file is loaded first
so development setups do not need to export anything.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).parent

load_dotenv(BASE_DIR / ".env")

DEV_SECRET = "dev-key-change-in-production"


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


class BaseConfig:
    # Core Flask
    SECRET_KEY = os.environ.get("SECRET_KEY", DEV_SECRET)
    APP_VERSION = os.environ.get("APP_VERSION", "1.0.0")
    ENVIRONMENT = "development"
    # Database: SQLite (default) or PostgreSQL (set DATABASE_URL=postgresql://...)
    DATABASE = os.environ.get("DATABASE_URL", str(BASE_DIR / "exam_prep.db"))

    # Bearer tokens
    JWT_SECRET = os.environ.get("JWT_SECRET", "") or SECRET_KEY
    JWT_EXPIRE = os.environ.get("JWT_EXPIRE", "30d")
    JWT_ALGORITHM = "HS256"

    # Request body limit
    MAX_CONTENT_LENGTH = 2 * 1024 * 1024  # 2 MB

    # Logging
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")  # "json" or "text"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # CORS (comma separated origins)
    CORS_ORIGIN = os.environ.get("CORS_ORIGIN", "http://localhost:3000")

    # Rate limiting (defaults to in-memory; set REDIS_URL for Redis-backed)
    REDIS_URL = os.environ.get("REDIS_URL", "")
    RATELIMIT_STORAGE_URI = REDIS_URL or "memory://"
    RATE_LIMIT_WINDOW = _int_env("RATE_LIMIT_WINDOW", 15)  # minutes
    RATE_LIMIT_MAX_REQUESTS = _int_env("RATE_LIMIT_MAX_REQUESTS", 1000)
    RATELIMIT_HEADERS_ENABLED = True

    # Background jobs
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "1") == "1"


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")


class ProductionConfig(BaseConfig):
    DEBUG = False
    ENVIRONMENT = "production"
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")
    RATE_LIMIT_MAX_REQUESTS = _int_env("RATE_LIMIT_MAX_REQUESTS", 100)

    @classmethod
    def validate(cls):
        """Fail fast on missing or insecure configuration in production."""
        errors: list[str] = []

        if cls.SECRET_KEY in (DEV_SECRET, ""):
            errors.append("SECRET_KEY must be set to a secure value in production.")
        if cls.JWT_SECRET in (DEV_SECRET, ""):
            errors.append("JWT_SECRET must be set to a secure value in production.")
        if cls.CORS_ORIGIN.strip() == "*":
            errors.append("CORS_ORIGIN must list explicit origins in production.")

        if errors:
            raise RuntimeError(
                "Production configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            )


class TestingConfig(BaseConfig):
    TESTING = True
    RATELIMIT_ENABLED = False
    ENVIRONMENT = "testing"
    SCHEDULER_ENABLED = False


config_by_name = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}
