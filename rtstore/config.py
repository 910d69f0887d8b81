"""
Shared configuration for rtstore.
"""

from __future__ import annotations

import logging
import os

LOG_LEVEL = os.environ.get("RTSTORE_LOG_LEVEL", "INFO").strip().upper()

logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO))
logger = logging.getLogger("rtstore")


def _get_bool(env_name: str, default: bool) -> bool:
    value = os.environ.get(env_name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(env_name: str, default: int) -> int:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


# Database settings
DB_BACKEND = os.environ.get("DB_BACKEND", "postgres").strip().lower()
SQLITE_PATH = os.environ.get("SQLITE_PATH", "/data/rtstore.db")
DATABASE_URL = os.environ.get("DATABASE_URL")
DB_POOL_PRE_PING = _get_bool("DB_POOL_PRE_PING", True)

# Database initialization controls
AUTO_MIGRATE_ON_STARTUP = _get_bool("AUTO_MIGRATE_ON_STARTUP", True)

# Schema version recorded in the key/value store by the initial migration
SCHEMA_VERSION_KEY = "schema.version"
SCHEMA_VERSION = "v1000"

# Input limits
MAX_STRING_LENGTH = _get_int("RTSTORE_MAX_STRING_LENGTH", 10000)
MAX_KEY_LENGTH = _get_int("RTSTORE_MAX_KEY_LENGTH", 255)
MAX_LONG_TEXT_LENGTH = _get_int("RTSTORE_MAX_LONG_TEXT_LENGTH", 100000)

# Sequence names shared by every versioned table
BUSINESS_KEY_SEQUENCE = "business_key_seq"
ROW_ID_SEQUENCE = "row_id_seq"


def validate_and_prepare_config() -> None:
    """Validate configuration and apply derived settings at startup."""
    global DATABASE_URL

    errors = []
    if DB_BACKEND not in {"postgres", "sqlite"}:
        errors.append("DB_BACKEND must be 'postgres' or 'sqlite'")

    if not DATABASE_URL:
        if DB_BACKEND == "sqlite":
            if not SQLITE_PATH:
                errors.append("SQLITE_PATH environment variable is required for sqlite")
            else:
                DATABASE_URL = f"sqlite:///{SQLITE_PATH}"
        else:
            errors.append("DATABASE_URL environment variable is required")
    else:
        url_lower = DATABASE_URL.lower()
        is_sqlite_url = url_lower.startswith("sqlite")
        if DB_BACKEND == "sqlite" and not is_sqlite_url:
            errors.append("DATABASE_URL must be a sqlite URL when DB_BACKEND=sqlite")
        if DB_BACKEND == "postgres" and is_sqlite_url:
            errors.append("DATABASE_URL must be a postgres URL when DB_BACKEND=postgres")

    if MAX_KEY_LENGTH <= 0 or MAX_STRING_LENGTH <= 0 or MAX_LONG_TEXT_LENGTH <= 0:
        errors.append("RTSTORE_MAX_* limits must be positive integers")

    if errors:
        raise RuntimeError("Configuration invalid: " + "; ".join(errors))
