"""
Public storage operations.

Each operation runs in its own serializable transaction and commits before
returning. Code that needs several operations in one transaction should open
``rtstore.db.transaction()`` and call the component modules directly.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from rtstore.db import get_allocator, transaction
from rtstore.models import describe_row
from rtstore.services import articles, key_multi_value, key_value, string_vault
from rtstore.services.identity import IdentityMapper
from rtstore.services.key_value import KeyValueView
from rtstore.services.shared import logger, storage_operation

UuidLike = Union[uuid.UUID, str]


def install_defaults(db) -> None:
    """Seed the string vault and record the schema version (idempotent)."""
    string_vault.seed_string_vault(db)
    key_value.record_schema_version(db)


# =============================================================================
# Strings and key/value indirection
# =============================================================================

@storage_operation
def intern_string(value: Optional[str]) -> int:
    with transaction() as db:
        return string_vault.intern_string(db, value)


@storage_operation
def lookup_string(string_id: int) -> Optional[str]:
    with transaction() as db:
        return string_vault.lookup_string(db, string_id)


@storage_operation
def set_key_value(key: str, value: str) -> int:
    with transaction() as db:
        return key_value.set_key_value(db, key, value)


@storage_operation
def get_key_value(key: str) -> Optional[str]:
    with transaction() as db:
        return key_value.get_key_value(db, key)


@storage_operation
def get_key_value_id(key: str) -> Optional[int]:
    with transaction() as db:
        return key_value.get_key_value_id(db, key)


@storage_operation
def list_key_values() -> list[KeyValueView]:
    with transaction() as db:
        return key_value.list_key_values(db)


@storage_operation
def get_schema_version() -> Optional[str]:
    with transaction() as db:
        return key_value.get_schema_version(db)


@storage_operation
def add_key_multi_value(key: str, value: str) -> tuple[int, int]:
    with transaction() as db:
        return key_multi_value.add_key_multi_value(db, key, value)


@storage_operation
def get_key_multi_values(key: str) -> list[str]:
    with transaction() as db:
        return key_multi_value.get_key_multi_values(db, key)


# =============================================================================
# Identity
# =============================================================================

@storage_operation
def associate_business_key(external_uuid: UuidLike, type_id: int = 0) -> int:
    with transaction() as db:
        return IdentityMapper(get_allocator()).associate(db, external_uuid, type_id)


# =============================================================================
# Versioned entities
# =============================================================================

@storage_operation
def append_article(
    article_id: str,
    description1: Optional[str],
    description2: Optional[str],
    match_code: Optional[str],
    long_text: Optional[str],
    group: Optional[str],
    external_uuid: UuidLike,
    type_id: int = 0,
    valid_from: Optional[datetime] = None,
    decided_at: Optional[datetime] = None,
) -> uuid.UUID:
    with transaction() as db:
        return articles.append_article(
            db,
            article_id,
            description1,
            description2,
            match_code,
            long_text,
            group,
            external_uuid,
            type_id,
            valid_from=valid_from,
            decided_at=decided_at,
        )


@storage_operation
def append_article_supplier(
    article_id: str,
    supplier_id: str,
    description1: Optional[str],
    description2: Optional[str],
    unit: Optional[str],
    price: Union[Decimal, int, float, str, None],
    external_uuid: UuidLike,
    type_id: int = 0,
    valid_from: Optional[datetime] = None,
    decided_at: Optional[datetime] = None,
) -> uuid.UUID:
    with transaction() as db:
        return articles.append_article_supplier(
            db,
            article_id,
            supplier_id,
            description1,
            description2,
            unit,
            price,
            external_uuid,
            type_id,
            valid_from=valid_from,
            decided_at=decided_at,
        )


@storage_operation
def get_article(article_id: str) -> Optional[dict]:
    with transaction() as db:
        row = articles.get_current_article(db, article_id)
        return describe_row(row) if row is not None else None


@storage_operation
def get_article_history(article_id: str) -> list[dict]:
    with transaction() as db:
        rows = articles.get_article_history(db, article_id)
        logger.debug("article_history_read", extra={"article_id": article_id, "count": len(rows)})
        return [describe_row(row) for row in rows]


@storage_operation
def get_article_supplier(article_id: str, supplier_id: str) -> Optional[dict]:
    with transaction() as db:
        row = articles.get_current_article_supplier(db, article_id, supplier_id)
        return describe_row(row) if row is not None else None


@storage_operation
def get_article_supplier_history(article_id: str, supplier_id: str) -> list[dict]:
    with transaction() as db:
        return [
            describe_row(row)
            for row in articles.get_article_supplier_history(db, article_id, supplier_id)
        ]


__all__ = [
    "install_defaults",
    "intern_string",
    "lookup_string",
    "set_key_value",
    "get_key_value",
    "get_key_value_id",
    "list_key_values",
    "get_schema_version",
    "add_key_multi_value",
    "get_key_multi_values",
    "associate_business_key",
    "append_article",
    "append_article_supplier",
    "get_article",
    "get_article_history",
    "get_article_supplier",
    "get_article_supplier_history",
]
