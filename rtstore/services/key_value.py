"""
Key/value store services.

Keys and values are vault strings; each key holds exactly one value and a
later write replaces the earlier one. No history is kept.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased

import rtstore.config as config
from rtstore.models import KeyValueEntry, StringVaultEntry
from rtstore.services.shared import (
    _validate_string,
    MAX_STRING_LENGTH,
    logger,
)
from rtstore.services.string_vault import find_string_id, intern_string


@dataclass(frozen=True)
class KeyValueView:
    key: str
    value: str
    key_id: int
    value_id: int


def _view_query():
    key_vault = aliased(StringVaultEntry)
    value_vault = aliased(StringVaultEntry)
    stmt = (
        select(key_vault.value, value_vault.value, KeyValueEntry.key_id, KeyValueEntry.value_id)
        .select_from(KeyValueEntry)
        .join(key_vault, KeyValueEntry.key_id == key_vault.id)
        .join(value_vault, KeyValueEntry.value_id == value_vault.id)
    )
    return stmt, key_vault


def set_key_value(db, key: str, value: str) -> int:
    """Associate ``value`` with ``key``, replacing any previous value. Returns the key id."""
    _validate_string(key, "key", MAX_STRING_LENGTH)
    _validate_string(value, "value", MAX_STRING_LENGTH)

    key_id = intern_string(db, key)
    value_id = intern_string(db, value)

    entry = db.get(KeyValueEntry, key_id)
    if entry is None:
        try:
            with db.begin_nested():
                db.add(KeyValueEntry(key_id=key_id, value_id=value_id))
            return key_id
        except IntegrityError:
            entry = db.get(KeyValueEntry, key_id)
            if entry is None:
                raise
    if entry.value_id != value_id:
        entry.value_id = value_id
        db.flush()
        logger.debug("key_value_replaced", extra={"key_id": key_id, "value_id": value_id})
    return key_id


def get_key_value(db, key: str) -> Optional[str]:
    _validate_string(key, "key", MAX_STRING_LENGTH)
    stmt, key_vault = _view_query()
    row = db.execute(stmt.where(key_vault.value == key)).first()
    return row[1] if row else None


def get_key_value_id(db, key: str) -> Optional[int]:
    """Vault id of the key string, or None if it was never stored."""
    _validate_string(key, "key", MAX_STRING_LENGTH)
    return find_string_id(db, key)


def list_key_values(db) -> list[KeyValueView]:
    stmt, key_vault = _view_query()
    rows = db.execute(stmt.order_by(key_vault.value)).all()
    return [KeyValueView(key=r[0], value=r[1], key_id=r[2], value_id=r[3]) for r in rows]


def record_schema_version(db) -> int:
    return set_key_value(db, config.SCHEMA_VERSION_KEY, config.SCHEMA_VERSION)


def get_schema_version(db) -> Optional[str]:
    return get_key_value(db, config.SCHEMA_VERSION_KEY)
