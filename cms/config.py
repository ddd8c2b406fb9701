"""
Content Management Backend
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])

Every setting can be overridden from the environment; the classes only
decide the defaults per environment.
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'cms_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Random per-process key for development only
_DEV_SECRET = secrets.token_hex(32)


def _database_url(var: str) -> str:
    # postgres:// is not accepted by SQLAlchemy 2.0
    raw = os.getenv(var, "")
    return raw.replace("postgres://", "postgresql://", 1) if raw else ""


def _env_int(var: str, default: int) -> int:
    return int(os.getenv(var, str(default)))


def _env_bool(var: str, default: bool) -> bool:
    raw = os.getenv(var)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Settings shared by every environment."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # ── Database ─────────────────────────────────────────────────────────
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    # ── Identity (tokens are issued by the auth service) ─────────────────
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ACCESS_EXPIRES = _env_int("JWT_ACCESS_EXPIRES", 900)
    JWT_ISSUER = os.getenv("JWT_ISSUER") or None
    JWT_LEEWAY_SECONDS = _env_int("JWT_LEEWAY_SECONDS", 10)

    # ── HTTP surface ─────────────────────────────────────────────────────
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    MAX_CONTENT_LENGTH = _env_int("MAX_CONTENT_LENGTH", 1024 * 1024)
    RATELIMIT_ENABLED = _env_bool("RATELIMIT_ENABLED", True)
    RATELIMIT_STORAGE_URI = os.getenv("REDIS_URL", "memory://")

    # ── Logging ──────────────────────────────────────────────────────────
    LOG_LEVEL = os.getenv("LOG_LEVEL")            # None → per-environment default
    LOG_FORMAT = os.getenv("LOG_FORMAT", "auto")  # auto | json | readable
    SLOW_REQUEST_MS = _env_int("SLOW_REQUEST_MS", 1000)

    # ── Workflow directory paging ────────────────────────────────────────
    WORKFLOW_DEFAULT_PAGE_SIZE = _env_int("WORKFLOW_DEFAULT_PAGE_SIZE", 20)
    WORKFLOW_MAX_PAGE_SIZE = _env_int("WORKFLOW_MAX_PAGE_SIZE", 100)


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url("DATABASE_URL") or _SQLITE_DEV


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    JWT_SECRET_KEY = "test-jwt-secret-key-with-enough-length-for-hs256"
    JWT_ISSUER = None
    RATELIMIT_ENABLED = False
    LOG_LEVEL = "WARNING"


class ProductionConfig(Config):
    """Production: PostgreSQL with a statement timeout, explicit CORS origins."""

    SQLALCHEMY_DATABASE_URI = _database_url("DATABASE_URL") or None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    LOG_FORMAT = os.getenv("LOG_FORMAT", "json")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": _env_int("DB_POOL_SIZE", 5),
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

    @classmethod
    def validate(cls):
        if not cls.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
