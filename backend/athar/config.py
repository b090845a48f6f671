from __future__ import annotations
import os


def _csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/athar.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///athar.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Telegram bot used for new-donation alerts and one-tap review.
    # Leaving the token or chat id empty disables the channel (alerts are logged only).
    TELEGRAM_BOT_TOKEN = os.environ.get("TELEGRAM_BOT_TOKEN", "")
    TELEGRAM_CHAT_ID = os.environ.get("TELEGRAM_CHAT_ID", "")
    TELEGRAM_WEBHOOK_SECRET = os.environ.get("TELEGRAM_WEBHOOK_SECRET", "")
    TELEGRAM_API_BASE = os.environ.get("TELEGRAM_API_BASE", "https://api.telegram.org")
    TELEGRAM_TIMEOUT_SECONDS = float(os.environ.get("TELEGRAM_TIMEOUT_SECONDS", 10))

    # Campaign economics: one box feeds one family
    BOX_COST = int(os.environ.get("BOX_COST", 250))
    TARGET_BOXES = int(os.environ.get("TARGET_BOXES", 500))
    CURRENCY_LABEL = os.environ.get("CURRENCY_LABEL", "EGP")

    # "Today" on the public counter is the local calendar day of the campaign
    CAMPAIGN_TIMEZONE = os.environ.get("CAMPAIGN_TIMEZONE", "Africa/Cairo")

    PAYMENT_METHODS = _csv(os.environ.get("PAYMENT_METHODS", "InstaPay,Telda,Bank transfer"))

    BASE_DIR = os.path.dirname(os.path.abspath(__file__))
    UPLOAD_FOLDER = os.environ.get(
        "UPLOAD_FOLDER", os.path.join(os.path.dirname(BASE_DIR), "instance", "uploads")
    )
    # Prefix for receipt links sent to the bot; empty means relative to this host
    PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "")
    ALLOWED_RECEIPT_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp", "heic", "pdf"}
    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_CONTENT_LENGTH", 10 * 1024 * 1024))

    CORS_ORIGINS = set(_csv(os.environ.get(
        "CORS_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
    )))
