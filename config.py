# config.py
import os


def _getenv(key: str, default: str | None = None) -> str | None:
    """Small wrapper to read environment variables."""
    val = os.getenv(key)
    return val if (val is not None and val != "") else default


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _as_int(value: str | None, default: int) -> int:
    if value is None or value == "":
        return default
    return int(value)


def _as_float(value: str | None, default: float) -> float:
    if value is None or value == "":
        return default
    return float(value)


def _normalize_db_url(db_url: str) -> str:
    # Render/Heroku sometimes provide "postgres://"; SQLAlchemy wants "postgresql://"
    if db_url.startswith("postgres://"):
        return db_url.replace("postgres://", "postgresql://", 1)
    return db_url


class BaseConfig:
    # -------------------
    # Core / Flask
    # -------------------
    ENV = _getenv("FLASK_ENV", "development")
    DEBUG = _as_bool(_getenv("FLASK_DEBUG"), default=(ENV != "production"))
    TESTING = _as_bool(_getenv("FLASK_TESTING"), default=False)

    SECRET_KEY = _getenv("SECRET_KEY", "dev-secret-key")
    LOG_LEVEL = _getenv("LOG_LEVEL", "INFO")

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = _getenv("SESSION_COOKIE_SAMESITE", "Lax")

    # JSON API: forms carry no CSRF token
    WTF_CSRF_ENABLED = False

    # -------------------
    # Database
    # -------------------
    _db_url = _getenv("DATABASE_URL", "sqlite:///instance/rewardhub.db")
    SQLALCHEMY_DATABASE_URI = _normalize_db_url(_db_url)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
    }

    # -------------------
    # Mail / SendGrid
    # -------------------
    MAIL_DEFAULT_SENDER = _getenv("MAIL_DEFAULT_SENDER", "")
    SENDGRID_API_KEY = _getenv("SENDGRID_API_KEY", "")
    FRONTEND_URL = _getenv("FRONTEND_URL", "http://localhost:3000")

    # -------------------
    # Razorpay (orders + RazorpayX payouts)
    # -------------------
    RAZORPAY_KEY_ID = _getenv("RAZORPAY_KEY_ID", "")
    RAZORPAY_KEY_SECRET = _getenv("RAZORPAY_KEY_SECRET", "")
    RAZORPAY_WEBHOOK_SECRET = _getenv("RAZORPAY_WEBHOOK_SECRET", "")
    RAZORPAY_ACCOUNT_NUMBER = _getenv("RAZORPAY_ACCOUNT_NUMBER", "")
    RAZORPAY_BASE_URL = _getenv("RAZORPAY_BASE_URL", "https://api.razorpay.com/v1")
    GATEWAY_TIMEOUT_SECONDS = _as_float(_getenv("GATEWAY_TIMEOUT_SECONDS"), default=15.0)
    PAYOUT_MODE = _getenv("PAYOUT_MODE", "IMPS")
    CURRENCY = _getenv("CURRENCY", "INR")

    # 1 coin = 1 rupee = 100 paise
    COIN_MINOR_UNITS = _as_int(_getenv("COIN_MINOR_UNITS"), default=100)

    # -------------------
    # Coins / rewards
    # -------------------
    MIN_WITHDRAWAL_COINS = _as_int(_getenv("MIN_WITHDRAWAL_COINS"), default=500)
    REFERRAL_BONUS_COINS = _as_int(_getenv("REFERRAL_BONUS_COINS"), default=50)
    ACTIVATION_COIN_DIVISOR = _as_int(_getenv("ACTIVATION_COIN_DIVISOR"), default=10)

    LOGIN_REWARD_POLICY = _getenv("LOGIN_REWARD_POLICY", "uniform")
    LOGIN_REWARD_MIN = _as_int(_getenv("LOGIN_REWARD_MIN"), default=1)
    LOGIN_REWARD_MAX = _as_int(_getenv("LOGIN_REWARD_MAX"), default=10)

    # -------------------
    # Ledger maintenance
    # -------------------
    LEDGER_MAX_RETRIES = _as_int(_getenv("LEDGER_MAX_RETRIES"), default=5)
    LEDGER_RETRY_BACKOFF = _as_float(_getenv("LEDGER_RETRY_BACKOFF"), default=0.05)
    LEDGER_RETENTION_DAYS = _as_int(_getenv("LEDGER_RETENTION_DAYS"), default=365)
    RECONCILE_AFTER_MINUTES = _as_int(_getenv("RECONCILE_AFTER_MINUTES"), default=15)


class DevelopmentConfig(BaseConfig):
    ENV = "development"
    DEBUG = True
    LOG_LEVEL = _getenv("LOG_LEVEL", "DEBUG")


class TestingConfig(BaseConfig):
    ENV = "testing"
    DEBUG = False
    TESTING = True

    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret-key"
    RAZORPAY_KEY_ID = "rzp_test_key"
    RAZORPAY_KEY_SECRET = "rzp_test_secret"
    RAZORPAY_WEBHOOK_SECRET = "rzp_webhook_secret"
    RAZORPAY_ACCOUNT_NUMBER = "2323230000000000"
    SENDGRID_API_KEY = ""
    LEDGER_RETRY_BACKOFF = 0.0


class ProductionConfig(BaseConfig):
    ENV = "production"
    DEBUG = False

    SESSION_COOKIE_SECURE = True

    REQUIRED_SETTINGS = (
        "SECRET_KEY",
        "DATABASE_URL",
        "RAZORPAY_KEY_ID",
        "RAZORPAY_KEY_SECRET",
        "RAZORPAY_ACCOUNT_NUMBER",
    )
