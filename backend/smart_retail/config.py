# backend/smart_retail/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///smart_retail.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    BCRYPT_ROUNDS = _int_env("BCRYPT_ROUNDS", 12)

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    ]

    # Stock alert thresholds
    LOW_STOCK_THRESHOLD = _int_env("LOW_STOCK_THRESHOLD", 10)
    CRITICAL_STOCK_THRESHOLD = _int_env("CRITICAL_STOCK_THRESHOLD", 3)
    ADMIN_INVENTORY_LOW_STOCK_THRESHOLD = _int_env("ADMIN_INVENTORY_LOW_STOCK_THRESHOLD", 20)
    HQ_LOW_STOCK_THRESHOLD = _int_env("HQ_LOW_STOCK_THRESHOLD", 50)

    # M-Pesa Daraja (STK push). Credentials are required only for payment initiation.
    MPESA_BASE_URL = os.environ.get("MPESA_BASE_URL", "https://sandbox.safaricom.co.ke")
    MPESA_CONSUMER_KEY = os.environ.get("MPESA_CONSUMER_KEY")
    MPESA_CONSUMER_SECRET = os.environ.get("MPESA_CONSUMER_SECRET")
    MPESA_SHORTCODE = os.environ.get("MPESA_SHORTCODE")
    MPESA_PASSKEY = os.environ.get("MPESA_PASSKEY")
    MPESA_CALLBACK_URL = os.environ.get("MPESA_CALLBACK_URL")
    MPESA_TIMEOUT_SECONDS = _int_env("MPESA_TIMEOUT_SECONDS", 15)
