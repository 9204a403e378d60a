"""
Use Case Workflow Core Service
Environment-specific settings for the application factory.

Every value can be overridden through an environment variable of the same
name; ``create_app(name)`` instantiates ``config[name]``.
"""

import os
import secrets

PROJECT_ROOT = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_LOCAL_SQLITE = "sqlite:///" + os.path.join(PROJECT_ROOT, "instance", "use_cases.db")


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_flag(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").strip().lower() in ("1", "true", "yes")


def _database_url(raw: str) -> str:
    """Normalise Heroku-style URLs onto the psycopg 3 driver."""
    for prefix in ("postgres://", "postgresql://"):
        if raw.startswith(prefix):
            return "postgresql+psycopg://" + raw[len(prefix):]
    return raw


def _split_csv(raw: str | None) -> list[str]:
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


class Config:
    """Settings shared by every environment."""

    DEBUG = False
    TESTING = False

    # Signing keys; a throwaway key is fine until ProductionConfig
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ACCESS_EXPIRES = _env_int("JWT_ACCESS_EXPIRES", 900)
    JWT_ROLES_CLAIM = os.getenv("JWT_ROLES_CLAIM", "roles")
    JWT_LEEWAY_SECONDS = _env_int("JWT_LEEWAY_SECONDS", 30)
    # Trusted service-to-service callers send this in X-Internal-Token
    INTERNAL_API_TOKEN = os.getenv("INTERNAL_API_TOKEN")

    SQLALCHEMY_DATABASE_URI = _database_url(os.getenv("DATABASE_URL", "")) or _LOCAL_SQLITE
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")

    # Handoff mail; without MAIL_SERVER messages are only logged
    MAIL_SERVER = os.getenv("MAIL_SERVER")
    MAIL_PORT = _env_int("MAIL_PORT", 587)
    MAIL_USE_TLS = _env_flag("MAIL_USE_TLS", True)
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "noreply@use-cases.local")
    REVIEW_TEAM_RECIPIENTS = _split_csv(os.getenv("REVIEW_TEAM_RECIPIENTS"))
    FRONTEND_USE_CASE_DETAIL_URL = os.getenv(
        "FRONTEND_USE_CASE_DETAIL_URL", "http://localhost:3000/use-cases",
    )

    # Collaborating services
    FILE_SERVICE_URL = os.getenv("FILE_SERVICE_URL", "http://localhost:5002")
    USER_SERVICE_URL = os.getenv("USER_SERVICE_URL", "http://localhost:5003")
    GATEWAY_TIMEOUT = _env_int("GATEWAY_TIMEOUT", 10)

    # Upper bound of threads running post-completion side effects
    SIDE_EFFECT_WORKERS = _env_int("SIDE_EFFECT_WORKERS", 4)


class DevelopmentConfig(Config):
    DEBUG = True


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False

    JWT_SECRET_KEY = "test-jwt-secret-key-with-enough-length-for-hs256"
    INTERNAL_API_TOKEN = "test-internal-token"

    MAIL_SERVER = None
    REVIEW_TEAM_RECIPIENTS = ["review-team@use-cases.test"]
    FRONTEND_USE_CASE_DETAIL_URL = "http://frontend.test/use-cases"
    FILE_SERVICE_URL = "http://file-service.test"
    USER_SERVICE_URL = "http://user-service.test"


class ProductionConfig(Config):
    # Empty unless set: the local SQLite fallback is never used in production
    SQLALCHEMY_DATABASE_URI = _database_url(os.getenv("DATABASE_URL", ""))
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_size": _env_int("DB_POOL_SIZE", 5),
        "max_overflow": _env_int("DB_MAX_OVERFLOW", 10),
        "pool_timeout": 20,
    }

    def __init__(self):
        required = {
            "DATABASE_URL": self.SQLALCHEMY_DATABASE_URI,
            "SECRET_KEY": os.getenv("SECRET_KEY"),
            "JWT_SECRET_KEY": self.JWT_SECRET_KEY,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
