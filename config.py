import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to app.py as loginguard.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "loginguard.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "loginguard_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 20 minutes
    IDLE_TIMEOUT_SECONDS = 20 * 60

    # Session/cookie security defaults
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    # Risk scoring windows
    RISK_VELOCITY_WINDOW_MINUTES = _env_int("RISK_VELOCITY_WINDOW_MINUTES", 30)
    RISK_BASELINE_DAYS = _env_int("RISK_BASELINE_DAYS", 30)
    RISK_HISTORY_LIMIT = _env_int("RISK_HISTORY_LIMIT", 500)
    SCORING_TIMEOUT_MS = _env_int("SCORING_TIMEOUT_MS", 250)

    # Heuristic thresholds
    VELOCITY_TIERS = ((8, 60, "high"), (5, 40, "high"), (3, 20, "medium"))
    MULTIPLE_IP_TIERS = ((5, 35, "high"), (3, 15, "medium"))
    RAPID_ATTEMPT_TIERS = ((10, 5, 50, "high"), (10, 15, 30, "high"))
    CROSS_ACCOUNT_EMAIL_THRESHOLD = 3
    UNUSUAL_TIME_MIN_SAMPLES = 5
    UNUSUAL_TIME_RARITY = 0.05

    # Alerting policy
    ALERT_HIGH_RISK_THRESHOLD = _env_int("ALERT_HIGH_RISK_THRESHOLD", 70)
    ALERT_MEDIUM_RISK_THRESHOLD = _env_int("ALERT_MEDIUM_RISK_THRESHOLD", 40)
    ALERT_DEDUP_WINDOW_MINUTES = _env_int("ALERT_DEDUP_WINDOW_MINUTES", 60)

    # Pre-emptive blocking
    BLOCK_RISK_THRESHOLD = _env_int("BLOCK_RISK_THRESHOLD", 80)
    BLOCK_WINDOW_MINUTES = _env_int("BLOCK_WINDOW_MINUTES", 60)

    # Storage retry on the attempt-recording path
    STORAGE_RETRY_BACKOFF_SECONDS = float(os.getenv("STORAGE_RETRY_BACKOFF_SECONDS", "0.2"))

    # Geolocation (ipapi-style endpoint, "{ip}" is substituted). Unset disables lookups.
    GEOIP_LOOKUP_URL = os.getenv("GEOIP_LOOKUP_URL")
    GEOIP_TIMEOUT_SECONDS = float(os.getenv("GEOIP_TIMEOUT_SECONDS", "2.0"))

    # Basic app settings
    DEBUG = False


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    BCRYPT_ROUNDS = 4
    STORAGE_RETRY_BACKOFF_SECONDS = 0
    # generous so slow CI runners never trip the degraded path by accident
    SCORING_TIMEOUT_MS = 10_000
    GEOIP_LOOKUP_URL = None
    LOG_LEVEL = "DEBUG"
