import os


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: Supabase and most PaaS providers hand out
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:5000")

    # --- PayPal ---
    PAYPAL_CLIENT_ID = os.environ.get("PAYPAL_CLIENT_ID")
    PAYPAL_CLIENT_SECRET = os.environ.get("PAYPAL_CLIENT_SECRET")
    PAYPAL_API_BASE = os.environ.get(
        "PAYPAL_API_BASE", "https://api-m.sandbox.paypal.com"
    )
    PAYPAL_DEFAULT_CURRENCY = os.environ.get("PAYPAL_DEFAULT_CURRENCY", "USD")
    PAYPAL_TIMEOUT = float(os.environ.get("PAYPAL_TIMEOUT", 30))

    # --- Supabase ---
    SUPABASE_URL = os.environ.get("SUPABASE_URL")                # e.g. https://xyz.supabase.co
    SUPABASE_SERVICE_KEY = os.environ.get("SUPABASE_SERVICE_KEY") # service_role key for storage

    # --- Uploads ---
    MAX_UPLOAD_MB = int(os.environ.get("MAX_UPLOAD_MB", 10))

    # --- Logging ---
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # --- Chat stream ---
    # Seconds between SSE keep-alive comments when no message arrives.
    CHAT_STREAM_KEEPALIVE = float(os.environ.get("CHAT_STREAM_KEEPALIVE", 15))

    # --- Change feed ---
    # Run the store listener in a background thread. When off, consumers
    # read the store on demand (tests, one-off scripts).
    CHANGE_FEED_LISTENER = os.environ.get("CHANGE_FEED_LISTENER", "1") != "0"
    CHANGE_FEED_POLL_INTERVAL = float(os.environ.get("CHANGE_FEED_POLL_INTERVAL", 0.5))
    CHANGE_FEED_RETENTION_MINUTES = int(os.environ.get("CHANGE_FEED_RETENTION_MINUTES", 60))

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # --- Session / cookies ---
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = "Lax"

    # --- WTF / CSRF ---
    WTF_CSRF_ENABLED = True

    @staticmethod
    def validate():
        """Raise RuntimeError naming any missing required env vars."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
            "PAYPAL_CLIENT_ID",
            "PAYPAL_CLIENT_SECRET",
            "APP_BASE_URL",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False


class TestConfig(Config):
    """Testing — in-memory SQLite, CSRF disabled."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    PAYPAL_CLIENT_ID = "paypal-client-test"
    PAYPAL_CLIENT_SECRET = "paypal-secret-test"
    PAYPAL_API_BASE = "https://api-m.sandbox.paypal.com"
    SUPABASE_URL = None
    SUPABASE_SERVICE_KEY = None
    APP_BASE_URL = "http://localhost:5000"
    WTF_CSRF_ENABLED = False  # disable CSRF for test requests
    RATELIMIT_ENABLED = False  # disable rate limiting in tests
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    SERVER_NAME = "localhost"
    CHAT_STREAM_KEEPALIVE = 0.05
    CHANGE_FEED_LISTENER = False

    @staticmethod
    def validate():
        """Skip validation in test mode — everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
