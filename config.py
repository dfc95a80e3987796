import os
from datetime import timedelta
from dotenv import load_dotenv

load_dotenv()


def _flag(name, default="false"):
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # --- Flask Core ---
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    SECRET_KEY = os.getenv('SECRET_KEY', 'fallback-secret-key')
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///funding_engine.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # --- JWT (operator identity only, gating lives upstream) ---
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-jwt-secret")
    JWT_TOKEN_LOCATION = ["cookies", "headers"]
    JWT_COOKIE_SECURE = _flag("JWT_COOKIE_SECURE")
    JWT_ACCESS_COOKIE_PATH = "/"
    JWT_COOKIE_CSRF_PROTECT = False
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=1)

    # --- Funding rules ---
    # slack used when comparing cumulative funded/returned amounts to thresholds
    FUNDING_TOLERANCE = os.getenv("FUNDING_TOLERANCE", "0.01")
    BALANCE_CAS_RETRIES = int(os.getenv("BALANCE_CAS_RETRIES", "3"))

    # --- Contractor fee defaults (used when the directory has no terms) ---
    DEFAULT_PLATFORM_FEE_RATE = os.getenv("DEFAULT_PLATFORM_FEE_RATE", "0.0025")
    DEFAULT_PLATFORM_FEE_CAP = os.getenv("DEFAULT_PLATFORM_FEE_CAP", "25000")
    DEFAULT_PARTICIPATION_FEE_RATE_DAILY = os.getenv("DEFAULT_PARTICIPATION_FEE_RATE_DAILY", "0.001")

    # --- Investor fee model used for net XIRR in the finance overview ---
    INVESTOR_MANAGEMENT_FEE_RATE = os.getenv("INVESTOR_MANAGEMENT_FEE_RATE", "0.02")
    INVESTOR_HURDLE_RATE = os.getenv("INVESTOR_HURDLE_RATE", "0.12")
    INVESTOR_PERFORMANCE_FEE_RATE = os.getenv("INVESTOR_PERFORMANCE_FEE_RATE", "0.20")

    # --- Delivery / dispute window (hours) ---
    DISPUTE_WINDOW_DEFAULT_HOURS = int(os.getenv("DISPUTE_WINDOW_DEFAULT_HOURS", "48"))
    DISPUTE_WINDOW_MIN_HOURS = 24
    DISPUTE_WINDOW_MAX_HOURS = 72

    # --- Notification outbox ---
    NOTIFY_API_URL = os.getenv("NOTIFY_API_URL", "")
    NOTIFY_API_KEY = os.getenv("NOTIFY_API_KEY", "")
    NOTIFY_FROM = os.getenv("NOTIFY_FROM", "capital@funding-engine.local")
    OUTBOX_MAX_ATTEMPTS = int(os.getenv("OUTBOX_MAX_ATTEMPTS", "5"))
    OUTBOX_INTERVAL_MINUTES = int(os.getenv("OUTBOX_INTERVAL_MINUTES", "1"))
    DEEMED_DELIVERY_INTERVAL_MINUTES = int(os.getenv("DEEMED_DELIVERY_INTERVAL_MINUTES", "60"))

    # scheduler also starts under the werkzeug reloader main process
    SCHEDULER_ENABLED = _flag("SCHEDULER_ENABLED")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SCHEDULER_ENABLED = False
    NOTIFY_API_URL = ""
