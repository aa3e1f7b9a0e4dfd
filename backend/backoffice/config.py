# backend/backoffice/config.py
from __future__ import annotations
import os


def _optional_int(name: str) -> int | None:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/backoffice.sqlite3 unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///backoffice.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Upper bound for waiting on a product row lock during checkout.
    # None keeps the database default (wait indefinitely). PostgreSQL only.
    STOCK_LOCK_TIMEOUT_MS = _optional_int("STOCK_LOCK_TIMEOUT_MS")

    # Whole-transaction retries on deadlocks / lock errors during sale commit
    SALE_COMMIT_RETRY_ATTEMPTS = int(os.environ.get("SALE_COMMIT_RETRY_ATTEMPTS", "3"))
