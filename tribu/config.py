import os
from dotenv import load_dotenv

load_dotenv()


def _int_env(name, default):
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return int(value)


def _minutes_env(name, default):
    value = os.environ.get(name)
    if value is None or not value.strip():
        return list(default)
    return [int(part.strip()) for part in value.split(",") if part.strip()]


class Config:
    """Base configuration class with common settings."""
    # Outbox sync worker
    SYNC_BATCH_PER_TICK = _int_env("SYNC_BATCH_PER_TICK", 20)
    SYNC_MAX_ATTEMPTS = _int_env("SYNC_MAX_ATTEMPTS", 8)
    SYNC_BACKOFF_MINUTES = _minutes_env("SYNC_BACKOFF_MINUTES", [0, 1, 2, 5, 10, 20, 40, 80])
    SYNC_LOCK_TIMEOUT = _int_env("SYNC_LOCK_TIMEOUT", 30)  # seconds
    SYNC_INTERVAL_MINUTES = _int_env("SYNC_INTERVAL_MINUTES", 5)
    SYNC_STALE_MINUTES = _int_env("SYNC_STALE_MINUTES", 10)
    SYNC_META_CACHE_TTL = _int_env("SYNC_META_CACHE_TTL", 300)  # seconds

    # Deep link written into the contact's "Tribu Link" field
    TRIBU_WEBAPP_URL = os.environ.get("TRIBU_WEBAPP_URL", "")

    # Google People API (OAuth refresh token flow)
    GOOGLE_CLIENT_ID = os.environ.get("GOOGLE_CLIENT_ID")
    GOOGLE_CLIENT_SECRET = os.environ.get("GOOGLE_CLIENT_SECRET")
    GOOGLE_REFRESH_TOKEN = os.environ.get("GOOGLE_REFRESH_TOKEN")
    PEOPLE_API_TIMEOUT = _int_env("PEOPLE_API_TIMEOUT", 30)

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FILE = os.environ.get("LOG_FILE")

    # CORS configuration
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")


class LocalConfig(Config):
    """Configuration for local development."""
    ENV = "local"
    DEBUG = True


class SandboxConfig(Config):
    """Configuration for sandbox/staging environment."""
    ENV = "sandbox"
    DEBUG = False


class ProductionConfig(Config):
    """Configuration for production environment."""
    ENV = "production"
    DEBUG = False


def get_config():
    """Get the appropriate configuration class based on environment variable.

    Environment is determined by FLASK_ENV or ENVIRONMENT variable:
    - 'local' or 'development' -> LocalConfig
    - 'sandbox' or 'staging' -> SandboxConfig
    - 'production' or 'prod' -> ProductionConfig

    Defaults to LocalConfig if not set.
    """
    env = (os.environ.get("FLASK_ENV") or os.environ.get("ENVIRONMENT", "local")).lower()

    if env in ["local", "development", "dev"]:
        return LocalConfig
    elif env in ["sandbox", "staging", "stage"]:
        return SandboxConfig
    elif env in ["production", "prod"]:
        return ProductionConfig
    else:
        # Default to local for safety
        return LocalConfig
