"""
QaHub settings, one class per APP_ENV (development, testing, production).

``create_app`` instantiates the selected class, so checks that must fail
fast (production secrets) live in ``__init__``.
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))


def _env_int(name, default):
    return int(os.getenv(name, str(default)))


def _database_url(fallback=None):
    # SQLAlchemy 2 rejects the legacy postgres:// scheme
    url = os.getenv("DATABASE_URL", "")
    return url.replace("postgres://", "postgresql://", 1) if url else fallback


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", secrets.token_hex(32))
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    # Auth
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ACCESS_EXPIRES = _env_int("JWT_ACCESS_EXPIRES", 7 * 24 * 3600)
    PASSWORD_RESET_EXPIRES = _env_int("PASSWORD_RESET_EXPIRES", 3600)
    PASSWORD_HISTORY_DEPTH = _env_int("PASSWORD_HISTORY_DEPTH", 5)
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

    # Logging; unset level/format fall back per environment (see logging_config)
    LOG_LEVEL = os.getenv("LOG_LEVEL")
    LOG_FORMAT = os.getenv("LOG_FORMAT")
    SLOW_REQUEST_MS = _env_int("SLOW_REQUEST_MS", 1000)

    # Editor images
    UPLOAD_DIR = os.getenv("UPLOAD_DIR", os.path.join(basedir, "uploads"))
    EDITOR_IMAGE_STORAGE = os.getenv("EDITOR_IMAGE_STORAGE", "filesystem")  # or "database"
    EDITOR_IMAGE_MAX_BYTES = _env_int("EDITOR_IMAGE_MAX_BYTES", 10 * 1024 * 1024)
    MAX_CONTENT_LENGTH = 12 * 1024 * 1024

    # PRD review bridge; values in the settings table win over these
    GOOGLE_SCRIPT_URL = os.getenv("GOOGLE_SCRIPT_URL")
    GOOGLE_SHEETS_ID = os.getenv("GOOGLE_SHEETS_ID")
    GOOGLE_SHEETS_TAB_NAME = os.getenv("GOOGLE_SHEETS_TAB_NAME", "Review AI")
    CONFLUENCE_URL = os.getenv("CONFLUENCE_URL")

    REDIS_URL = os.getenv("REDIS_URL", "")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # SMTP; without MAIL_SERVER mails are only logged
    MAIL_SERVER = os.getenv("MAIL_SERVER")
    MAIL_PORT = _env_int("MAIL_PORT", 587)
    MAIL_USE_TLS = os.getenv("MAIL_USE_TLS", "true").lower() == "true"
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "noreply@qahub.local")


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(
        f"sqlite:///{os.path.join(basedir, 'instance', 'qahub_dev.db')}"
    )


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "qahub-test-secret"
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    BCRYPT_ROUNDS = 4
    MAIL_SERVER = None
    GOOGLE_SCRIPT_URL = None
    GOOGLE_SHEETS_ID = None
    CONFLUENCE_URL = None


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 20,
    }

    def __init__(self):
        missing = [name for name, value in (
            ("DATABASE_URL", self.SQLALCHEMY_DATABASE_URI),
            ("SECRET_KEY", os.getenv("SECRET_KEY")),
        ) if not value]
        if missing:
            raise RuntimeError(f"Production requires: {', '.join(missing)}")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
