"""
Environment-aware configuration.
Values come from the environment (a .env file is read if present); durations
are given in seconds.
"""
import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()  # Read .env if present

INSECURE_SECRETS = ("dev-secret-change-me", "change-me", "changeme", "secret")


def _bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def _seconds(name: str, default: int) -> timedelta:
    return timedelta(seconds=int(os.getenv(name, str(default))))


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")  # Set a strong key in production
    DEBUG = False
    TESTING = False
    # CORS: in dev we usually allow '*', in prod supply a comma-separated list in env
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    APP_ENV = os.getenv("APP_ENV", "dev")
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///identity.db")

    # tokens
    JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "identity-api")
    ACCESS_TOKEN_EXPIRES = _seconds("ACCESS_TOKEN_EXPIRES_SECONDS", 15 * 60)
    REFRESH_TOKEN_EXPIRES = _seconds("REFRESH_TOKEN_EXPIRES_SECONDS", 7 * 24 * 3600)
    EMAIL_VERIFICATION_EXPIRES = _seconds("EMAIL_VERIFICATION_EXPIRES_SECONDS", 24 * 3600)
    PASSWORD_RESET_EXPIRES = _seconds("PASSWORD_RESET_EXPIRES_SECONDS", 3600)
    ROTATE_REFRESH_TOKENS = _bool("ROTATE_REFRESH_TOKENS", "false")
    REVEAL_UNKNOWN_EMAIL = _bool("REVEAL_UNKNOWN_EMAIL", "true")

    # mail
    MAIL_MODE = os.getenv("MAIL_MODE", "console")
    MAIL_FROM = os.getenv("MAIL_FROM", "noreply@example.com")
    MAIL_FROM_NAME = os.getenv("MAIL_FROM_NAME", "Identity")
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USER = os.getenv("SMTP_USER")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_USE_TLS = _bool("SMTP_USE_TLS", "true")
    APP_URL = os.getenv("APP_URL", "http://localhost:3000")
    API_URL = os.getenv("API_URL", "http://localhost:8000")

    # background side effects (email, audit)
    BACKGROUND_WORKERS = int(os.getenv("BACKGROUND_WORKERS", "4"))
    BACKGROUND_MAX_PENDING = int(os.getenv("BACKGROUND_MAX_PENDING", "1000"))
    SYNC_SIDE_EFFECTS = _bool("SYNC_SIDE_EFFECTS", "false")

    # reverse proxies in front of the app; 0 ignores X-Forwarded-For
    TRUSTED_PROXIES = int(os.getenv("TRUSTED_PROXIES", "0"))

    # push notifications
    PUSH_MODE = os.getenv("PUSH_MODE", "console")
    DEVICE_TOKEN_MAX_IDLE = _seconds("DEVICE_TOKEN_MAX_IDLE_SECONDS", 90 * 24 * 3600)
    NOTIFICATION_RETENTION = _seconds("NOTIFICATION_RETENTION_SECONDS", 30 * 24 * 3600)

    @classmethod
    def validate(cls):
        """Hook for environment specific checks; raises ValueError."""


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    # In dev, propagate exceptions so our error handler has full context
    PROPAGATE_EXCEPTIONS = True


class TestingConfig(BaseConfig):
    TESTING = True
    DATABASE_URL = "sqlite://"
    JWT_SECRET = "test-secret-with-enough-length-for-hs256"
    MAIL_MODE = "console"
    PUSH_MODE = "console"
    TRUSTED_PROXIES = 0
    SYNC_SIDE_EFFECTS = True
    REVEAL_UNKNOWN_EMAIL = True
    ROTATE_REFRESH_TOKENS = False


class ProductionConfig(BaseConfig):
    DEBUG = False

    @classmethod
    def validate(cls):
        if cls.JWT_SECRET in INSECURE_SECRETS:
            raise ValueError("JWT_SECRET is set to a known insecure placeholder value.")


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/test/prod).
    """
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig
