# backend/farmgate/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return int(value)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///farmgate.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # PIN hashing (bcrypt cost factor)
    PIN_HASH_ROUNDS = _env_int("PIN_HASH_ROUNDS", 12)

    # Brute-force lockout: LOCKOUT_THRESHOLD consecutive failures lock the
    # phone number for LOCKOUT_DURATION_MINUTES.
    LOCKOUT_THRESHOLD = _env_int("LOCKOUT_THRESHOLD", 4)
    LOCKOUT_DURATION_MINUTES = _env_int("LOCKOUT_DURATION_MINUTES", 15)

    # Synthesized provider addresses: <phone>@<domain>, customer_<phone>@<domain>
    IDENTITY_EMAIL_DOMAIN = os.environ.get("IDENTITY_EMAIL_DOMAIN", "awadhdairy.com")

    # Hosted session provider ("memory" for local development, "hosted" for GoTrue)
    SESSION_PROVIDER = os.environ.get("SESSION_PROVIDER", "memory")
    SESSION_PROVIDER_URL = os.environ.get("SESSION_PROVIDER_URL")
    SESSION_PROVIDER_SERVICE_KEY = os.environ.get("SESSION_PROVIDER_SERVICE_KEY")
    SESSION_PROVIDER_ANON_KEY = os.environ.get("SESSION_PROVIDER_ANON_KEY")
    SESSION_PROVIDER_TIMEOUT = float(os.environ.get("SESSION_PROVIDER_TIMEOUT", "10"))

    CORS_ALLOWED_ORIGINS = {
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:4173",
        "http://127.0.0.1:4173",
    }


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    PIN_HASH_ROUNDS = 4
    SESSION_PROVIDER = "memory"
