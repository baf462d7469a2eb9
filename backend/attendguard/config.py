# backend/attendguard/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/attendguard.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///attendguard.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # bcrypt cost factor (tests lower this)
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    # Underlying error text is only returned to clients when this is on
    EXPOSE_ERROR_DETAILS = _env_bool("EXPOSE_ERROR_DETAILS", False)

    # Auth tokens
    AUTH_TOKEN_TTL_HOURS = int(os.environ.get("AUTH_TOKEN_TTL_HOURS", "24"))
    AUTH_TOKEN_IDLE_HOURS = int(os.environ.get("AUTH_TOKEN_IDLE_HOURS", "2"))

    # QR tokens rotate every 5 minutes (or at session end if sooner)
    QR_TOKEN_TTL_SECONDS = int(os.environ.get("QR_TOKEN_TTL_SECONDS", "300"))

    # Face biometrics
    FACE_DESCRIPTOR_LENGTH = 128
    FACE_MATCH_THRESHOLD = float(os.environ.get("FACE_MATCH_THRESHOLD", "0.7"))

    # "v1:<fernet key>,v2:<fernet key>"; empty means derive a dev key from SECRET_KEY
    DESCRIPTOR_ENCRYPTION_KEYS = os.environ.get("DESCRIPTOR_ENCRYPTION_KEYS", "")
    DESCRIPTOR_ACTIVE_KEY_ID = os.environ.get("DESCRIPTOR_ACTIVE_KEY_ID", "v1")

    # Session defaults
    DEFAULT_RADIUS_METERS = int(os.environ.get("DEFAULT_RADIUS_METERS", "100"))
    DEFAULT_LATE_THRESHOLD_MINUTES = int(os.environ.get("DEFAULT_LATE_THRESHOLD_MINUTES", "15"))

    # Comma-separated browser origins allowed to call the API (kiosk / admin UI)
    CORS_ALLOWED_ORIGINS = os.environ.get(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173",
    )
