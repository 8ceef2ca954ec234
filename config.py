"""
Application configuration — environment-aware settings.

All environment variables are documented here. A local .env file is loaded
automatically (python-dotenv).
"""

from __future__ import annotations

import os
import warnings
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).parent

load_dotenv(BASE_DIR / ".env")

MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10 MiB per note file


class BaseConfig:
    # Core Flask
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-key-change-in-production")
    JSON_SORT_KEYS = False

    # Session security
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    REMEMBER_COOKIE_HTTPONLY = True
    PERMANENT_SESSION_LIFETIME = 86400

    # Upload limits (request cap leaves room for the multipart form fields)
    UPLOAD_DIR = os.environ.get("UPLOAD_DIR", str(BASE_DIR / "uploads"))
    MAX_UPLOAD_BYTES = MAX_UPLOAD_BYTES
    MAX_CONTENT_LENGTH = MAX_UPLOAD_BYTES + 256 * 1024

    # AI assistant
    AI_PROVIDER = os.environ.get("AI_PROVIDER", "openai")  # openai | claude | gemini
    AI_MODEL = os.environ.get("AI_MODEL", "gpt-4o")
    AI_CACHE_TTL = int(os.environ.get("AI_CACHE_TTL", "3600"))
    OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
    ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY", "")
    GOOGLE_API_KEY = os.environ.get("GOOGLE_API_KEY", "")

    # Logging
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")  # "json" or "text"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_SLOW_REQUEST_MS = float(os.environ.get("LOG_SLOW_REQUEST_MS", "1000"))

    # Rate limiting (in-memory unless REDIS_URL is set)
    RATELIMIT_STORAGE_URI = os.environ.get("REDIS_URL", "") or "memory://"


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")


class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True

    @classmethod
    def validate(cls):
        """Fail fast on missing or insecure configuration in production."""
        errors: list[str] = []

        if cls.SECRET_KEY in ("dev-key-change-in-production", ""):
            errors.append("SECRET_KEY must be set to a secure value in production.")

        key_by_provider = {
            "openai": cls.OPENAI_API_KEY,
            "claude": cls.ANTHROPIC_API_KEY,
            "gemini": cls.GOOGLE_API_KEY,
        }
        if cls.AI_PROVIDER not in key_by_provider:
            errors.append(f"AI_PROVIDER must be one of: {', '.join(key_by_provider)}.")
        elif not key_by_provider[cls.AI_PROVIDER]:
            warnings.warn(f"No API key for AI_PROVIDER={cls.AI_PROVIDER}; the assistant will return fallbacks.")

        if errors:
            raise RuntimeError(
                "Production configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            )


class TestingConfig(BaseConfig):
    TESTING = True
    AI_CACHE_TTL = 0
    RATELIMIT_ENABLED = False


config_by_name = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}
