# backend/homebase/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the app by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///homebase.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Concurrent writers wait on the SQLite lock instead of failing immediately
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {"timeout": float(os.environ.get("SQLITE_LOCK_TIMEOUT", "30"))},
    }

    # Document numbering: <prefix><year>-<seq:03d>
    INVOICE_NUMBER_PREFIX = os.environ.get("INVOICE_NUMBER_PREFIX", "INV")
    ESTIMATE_NUMBER_PREFIX = os.environ.get("ESTIMATE_NUMBER_PREFIX", "")
    NUMBER_ALLOCATION_MAX_ATTEMPTS = int(os.environ.get("NUMBER_ALLOCATION_MAX_ATTEMPTS", "100"))

    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "SEK")
    INVOICE_DUE_DAYS = int(os.environ.get("INVOICE_DUE_DAYS", "30"))
