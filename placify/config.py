import os


def _env_int(name, default):
    return int(os.environ.get(name, default))


def _database_url():
    # Railway/Heroku still hand out postgres:// URLs, which SQLAlchemy rejects
    url = os.environ.get("DATABASE_URL", "")
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url or None


class Config:
    """Settings shared by every environment. Values come from os.environ."""

    SECRET_KEY = os.environ.get("SECRET_KEY")
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    # --- Moderation rules ---
    BATCH_MAX_SIZE = _env_int("BATCH_MAX_SIZE", 50)
    REJECTION_NOTES_MIN_LENGTH = _env_int("REJECTION_NOTES_MIN_LENGTH", 10)
    AUDIT_RETENTION_DAYS = _env_int("AUDIT_RETENTION_DAYS", 90)

    # --- Event bus and admin notifications ---
    EVENT_BUS_WORKERS = _env_int("EVENT_BUS_WORKERS", 4)
    EVENT_BUS_QUEUE_SIZE = _env_int("EVENT_BUS_QUEUE_SIZE", 1000)
    NOTIFICATION_SESSION_QUEUE_SIZE = _env_int("NOTIFICATION_SESSION_QUEUE_SIZE", 100)
    SSE_HEARTBEAT_SECONDS = float(os.environ.get("SSE_HEARTBEAT_SECONDS", 15))

    # --- Admin accounts ---
    ADMIN_SETUP_KEY = os.environ.get("ADMIN_SETUP_KEY")
    LOGIN_MAX_ATTEMPTS = _env_int("LOGIN_MAX_ATTEMPTS", 5)
    LOGIN_LOCK_MINUTES = _env_int("LOGIN_LOCK_MINUTES", 120)

    # Admin session cookie; the JSON APIs rely on SameSite instead of CSRF tokens
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = "Lax"
    WTF_CSRF_ENABLED = True

    REQUIRED_ENV = ("SECRET_KEY", "DATABASE_URL")

    @classmethod
    def validate(cls):
        """Raise RuntimeError when required settings are missing or unusable."""
        missing = [name for name in cls.REQUIRED_ENV if not os.environ.get(name)]
        if missing:
            raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")
        if cls.BATCH_MAX_SIZE < 1 or cls.EVENT_BUS_WORKERS < 1:
            raise RuntimeError("BATCH_MAX_SIZE and EVENT_BUS_WORKERS must be at least 1")


class DevConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = Config.SQLALCHEMY_DATABASE_URI or "sqlite:///placify-dev.db"
    REQUIRED_ENV = ("SECRET_KEY",)


class TestConfig(Config):
    """In-memory SQLite, no CSRF, no rate limits, fast SSE heartbeats."""

    TESTING = True
    SECRET_KEY = "placify-test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    SERVER_NAME = "localhost"
    ADMIN_SETUP_KEY = None
    EVENT_BUS_WORKERS = 2
    SSE_HEARTBEAT_SECONDS = 0.1
    LOGIN_MAX_ATTEMPTS = 3
    LOGIN_LOCK_MINUTES = 15
    REQUIRED_ENV = ()


class ProdConfig(Config):
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
