"""
String vault services.

Every distinct string is stored once in rt_string_vault and referenced by its
integer id everywhere else. Rows are never updated or deleted.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from rtstore.models import DEFAULT_VAULT_STRINGS, NULL_STRING_ID, StringVaultEntry
from rtstore.services.shared import (
    _validate_string,
    MAX_STRING_LENGTH,
    logger,
)


def find_string_id(db, value: str) -> Optional[int]:
    """Vault id of ``value`` without inserting it."""
    return db.scalar(select(StringVaultEntry.id).where(StringVaultEntry.value == value))


def lookup_string(db, string_id: int) -> Optional[str]:
    return db.scalar(select(StringVaultEntry.value).where(StringVaultEntry.id == string_id))


def intern_string(db, value: Optional[str]) -> int:
    """
    Return the vault id for ``value``, inserting it on first use.

    ``None`` maps to the sentinel id without touching storage. A unique
    violation on insert means a concurrent caller stored the same string
    first; the savepoint is rolled back and the winner's id returned.
    """
    if value is None:
        return NULL_STRING_ID
    _validate_string(value, "value", MAX_STRING_LENGTH)

    existing = find_string_id(db, value)
    if existing is not None:
        return existing

    entry = StringVaultEntry(value=value)
    try:
        with db.begin_nested():
            db.add(entry)
    except IntegrityError:
        winner = find_string_id(db, value)
        if winner is None:
            raise
        logger.info("intern_conflict_recovered", extra={"string_id": winner})
        return winner
    return entry.id


def seed_string_vault(db) -> int:
    """Install the default strings in order; returns how many were added."""
    added = 0
    for value in DEFAULT_VAULT_STRINGS:
        if find_string_id(db, value) is not None:
            continue
        db.add(StringVaultEntry(value=value))
        db.flush()
        added += 1
    if added:
        logger.info("string_vault_seeded", extra={"added": added})
    return added
