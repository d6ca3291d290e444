# backend/stockledger/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location (postgresql://...)
        "sqlite:///stockledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Shared connection pool; created by create_app, disposed by shutdown_app
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # Seconds a single unit of work may run before it is rolled back (0 disables)
    UNIT_OF_WORK_TIMEOUT = float(os.environ.get("UNIT_OF_WORK_TIMEOUT", "10"))
    UNIT_OF_WORK_RETRIES = int(os.environ.get("UNIT_OF_WORK_RETRIES", "3"))

    # Permissive by default: a sale may drive stock below zero (backorder)
    ALLOW_NEGATIVE_STOCK = _env_bool("ALLOW_NEGATIVE_STOCK", True)

    EVENT_QUEUE_SIZE = int(os.environ.get("EVENT_QUEUE_SIZE", "1000"))
    SUBSCRIBER_QUEUE_SIZE = int(os.environ.get("SUBSCRIBER_QUEUE_SIZE", "100"))
    EVENT_KEEPALIVE_SECONDS = float(os.environ.get("EVENT_KEEPALIVE_SECONDS", "15"))

    SNAPSHOT_VERSION = "1.0"

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
