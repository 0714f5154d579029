"""
Contractor Compliance Decision Engine
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'decision_engine_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # Rate-limit storage (Redis in production, memory for dev)
    REDIS_URL = os.getenv("REDIS_URL", "memory://")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Key-value store backing cache, actions, feedback ("memory" or "sql")
    KV_STORE_BACKEND = os.getenv("KV_STORE_BACKEND", "sql")

    # Text-generation provider (defaults used when no enabled config is stored)
    AI_PROVIDER_TIMEOUT = float(os.getenv("AI_PROVIDER_TIMEOUT", "30"))
    AI_PROVIDER_MAX_RETRIES = int(os.getenv("AI_PROVIDER_MAX_RETRIES", "2"))
    AI_RECOMMENDATION_CACHE_TTL = int(os.getenv("AI_RECOMMENDATION_CACHE_TTL", "3600"))
    AI_DATA_RETENTION_DAYS = int(os.getenv("AI_DATA_RETENTION_DAYS", "90"))

    # Workflow integrations (all off unless explicitly enabled)
    CALENDAR_INTEGRATION_ENABLED = _env_bool("CALENDAR_INTEGRATION_ENABLED")
    CALENDAR_INTEGRATION_PROVIDER = os.getenv("CALENDAR_INTEGRATION_PROVIDER", "google")
    CALENDAR_DEFAULT_CALENDAR = os.getenv("CALENDAR_DEFAULT_CALENDAR", "primary")
    EMAIL_INTEGRATION_ENABLED = _env_bool("EMAIL_INTEGRATION_ENABLED")
    EMAIL_INTEGRATION_PROVIDER = os.getenv("EMAIL_INTEGRATION_PROVIDER", "sendgrid")
    EMAIL_DEFAULT_SENDER = os.getenv("EMAIL_DEFAULT_SENDER", "noreply@compliance.local")
    TASK_INTEGRATION_ENABLED = _env_bool("TASK_INTEGRATION_ENABLED")
    TASK_INTEGRATION_PROVIDER = os.getenv("TASK_INTEGRATION_PROVIDER", "jira")
    TASK_DEFAULT_PROJECT = os.getenv("TASK_DEFAULT_PROJECT", "COMPLIANCE")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    KV_STORE_BACKEND = "memory"
    RATELIMIT_ENABLED = False
    AI_PROVIDER_MAX_RETRIES = 1


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
