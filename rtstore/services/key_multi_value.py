"""
Key/multi-value store services.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased

from rtstore.models import KeyMultiValueEntry, StringVaultEntry
from rtstore.services.shared import (
    _validate_string,
    MAX_STRING_LENGTH,
)
from rtstore.services.string_vault import intern_string


def add_key_multi_value(db, key: str, value: str) -> tuple[int, int]:
    """Add ``value`` to the set held by ``key``; re-adding a pair is a no-op."""
    _validate_string(key, "key", MAX_STRING_LENGTH)
    _validate_string(value, "value", MAX_STRING_LENGTH)

    key_id = intern_string(db, key)
    value_id = intern_string(db, value)

    if db.get(KeyMultiValueEntry, (key_id, value_id)) is None:
        try:
            with db.begin_nested():
                db.add(KeyMultiValueEntry(key_id=key_id, value_id=value_id))
        except IntegrityError:
            # Same pair stored concurrently.
            if db.get(KeyMultiValueEntry, (key_id, value_id)) is None:
                raise
    return key_id, value_id


def get_key_multi_values(db, key: str) -> list[str]:
    """All values held by ``key``, ordered by vault id."""
    _validate_string(key, "key", MAX_STRING_LENGTH)
    key_vault = aliased(StringVaultEntry)
    value_vault = aliased(StringVaultEntry)
    stmt = (
        select(value_vault.value)
        .select_from(KeyMultiValueEntry)
        .join(key_vault, KeyMultiValueEntry.key_id == key_vault.id)
        .join(value_vault, KeyMultiValueEntry.value_id == value_vault.id)
        .where(key_vault.value == key)
        .order_by(KeyMultiValueEntry.value_id)
    )
    return list(db.scalars(stmt))
