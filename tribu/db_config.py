"""Database URL and engine options for each environment."""
import os

DEFAULT_SQLITE_URL = "sqlite:///tribu.sqlite"
IN_MEMORY_SQLITE_URLS = ("sqlite://", "sqlite:///:memory:")

# Checked in order; the first one set wins
DATABASE_URL_VARS = {
    "local": ("LOCAL_DATABASE_URL",),
    "sandbox": ("SANDBOX_DATABASE_URL",),
    "production": ("PRODUCTION_DATABASE_URL", "DATABASE_URL"),
}


def get_postgres_engine_options():
    """Engine options for hosted PostgreSQL connections."""
    from sqlalchemy.pool import QueuePool

    return {
        "pool_pre_ping": True,        # Detect and refresh dead connections before use
        "pool_recycle": 280,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 30,           # Wait up to 30s for a connection before raising
        "poolclass": QueuePool,
        "connect_args": {
            "sslmode": "require",
            "connect_timeout": 10,    # Fail fast if DB can't be reached
            "application_name": "tribu_sync",
            "options": "-c statement_timeout=30000"
        },
    }


def get_sqlite_engine_options():
    # The scheduler thread writes outbox rows while request threads save edits
    return {"connect_args": {"check_same_thread": False, "timeout": 30}}


def get_engine_options(database_uri):
    """Engine options matching the URL's backend, or None for defaults."""
    if database_uri in IN_MEMORY_SQLITE_URLS:
        return None
    if database_uri.startswith("sqlite"):
        return get_sqlite_engine_options()
    if database_uri.startswith("postgresql"):
        return get_postgres_engine_options()
    return None


def normalize_database_url(database_uri):
    """SQLAlchemy 2 only accepts the postgresql:// scheme; hosts still hand out postgres://."""
    if database_uri.startswith("postgres://"):
        return "postgresql://" + database_uri[len("postgres://"):]
    return database_uri


def resolve_database_url(environment="local"):
    """
    Database URL for an environment ('local', 'sandbox', 'production').

    Raises:
        ValueError: sandbox/production without a configured URL
    """
    environment = environment if environment in DATABASE_URL_VARS else "local"
    names = DATABASE_URL_VARS[environment]
    for name in names:
        value = os.environ.get(name)
        if value:
            return normalize_database_url(value)

    if environment == "local":
        return DEFAULT_SQLITE_URL
    raise ValueError(f"{' or '.join(names)} must be set for {environment} environment")


def configure_database(app):
    """Configure database settings for the Flask app.

    A SQLALCHEMY_DATABASE_URI already present on the app config (set by a
    test config object) is kept; otherwise the URL comes from the
    environment named by the config's ENV.

    Args:
        app: Flask application instance
    """
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config.setdefault("SQLALCHEMY_ECHO", False)

    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI") or resolve_database_url(app.config.get("ENV", "local"))
    app.config["SQLALCHEMY_DATABASE_URI"] = database_uri

    engine_options = get_engine_options(database_uri)
    if engine_options:
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", engine_options)
