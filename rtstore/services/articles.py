"""
Article and article-supplier tables.

Both are bi-temporal version chains; they differ only in natural key and
payload. Article is keyed by its article id, ArticleSupplier by the pair
(article id, supplier id).
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional, Union

from rtstore.db import get_allocator
from rtstore.models import Article, ArticleSupplier
from rtstore.sequences import SequenceAllocator
from rtstore.services.identity import IdentityMapper
from rtstore.services.shared import (
    _coerce_price,
    _validate_optional_text,
    MAX_LONG_TEXT_LENGTH,
    MAX_STRING_LENGTH,
)
from rtstore.services.versioning import BiTemporalVersionChain
from rtstore.temporal import utcnow

UuidLike = Union[uuid.UUID, str]


def _chain(
    model: type,
    allocator: Optional[SequenceAllocator],
    clock: Callable[[], datetime],
) -> BiTemporalVersionChain:
    allocator = allocator or get_allocator()
    return BiTemporalVersionChain(
        model,
        identity=IdentityMapper(allocator),
        allocator=allocator,
        clock=clock,
    )


def article_chain(
    allocator: Optional[SequenceAllocator] = None,
    clock: Callable[[], datetime] = utcnow,
) -> BiTemporalVersionChain:
    return _chain(Article, allocator, clock)


def article_supplier_chain(
    allocator: Optional[SequenceAllocator] = None,
    clock: Callable[[], datetime] = utcnow,
) -> BiTemporalVersionChain:
    return _chain(ArticleSupplier, allocator, clock)


# =============================================================================
# Article
# =============================================================================

def append_article(
    db,
    article_id: str,
    description1: Optional[str],
    description2: Optional[str],
    match_code: Optional[str],
    long_text: Optional[str],
    group: Optional[str],
    external_uuid: UuidLike,
    type_id: int = 0,
    *,
    chain: Optional[BiTemporalVersionChain] = None,
    valid_from: Optional[datetime] = None,
    decided_at: Optional[datetime] = None,
) -> uuid.UUID:
    _validate_optional_text(description1, "description1", MAX_STRING_LENGTH)
    _validate_optional_text(description2, "description2", MAX_STRING_LENGTH)
    _validate_optional_text(match_code, "match_code", MAX_STRING_LENGTH)
    _validate_optional_text(long_text, "long_text", MAX_LONG_TEXT_LENGTH)
    _validate_optional_text(group, "group", MAX_STRING_LENGTH)

    chain = chain or article_chain()
    return chain.append(
        db,
        (article_id,),
        {
            "description1": description1,
            "description2": description2,
            "match_code": match_code,
            "long_text": long_text,
            "group": group,
        },
        external_uuid,
        type_id=type_id,
        valid_from=valid_from,
        decided_at=decided_at,
    )


def get_current_article(db, article_id: str, chain: Optional[BiTemporalVersionChain] = None) -> Optional[Article]:
    return (chain or article_chain()).current(db, (article_id,))


def get_article_history(db, article_id: str, chain: Optional[BiTemporalVersionChain] = None) -> list[Article]:
    return (chain or article_chain()).history(db, (article_id,))


def get_article_as_of(
    db,
    article_id: str,
    tx_time: datetime,
    chain: Optional[BiTemporalVersionChain] = None,
) -> Optional[Article]:
    return (chain or article_chain()).as_of(db, (article_id,), tx_time)


# =============================================================================
# Article Supplier
# =============================================================================

def append_article_supplier(
    db,
    article_id: str,
    supplier_id: str,
    description1: Optional[str],
    description2: Optional[str],
    unit: Optional[str],
    price: Union[Decimal, int, float, str, None],
    external_uuid: UuidLike,
    type_id: int = 0,
    *,
    chain: Optional[BiTemporalVersionChain] = None,
    valid_from: Optional[datetime] = None,
    decided_at: Optional[datetime] = None,
) -> uuid.UUID:
    _validate_optional_text(description1, "description1", MAX_STRING_LENGTH)
    _validate_optional_text(description2, "description2", MAX_STRING_LENGTH)
    _validate_optional_text(unit, "unit", MAX_STRING_LENGTH)
    amount = _coerce_price(price)

    chain = chain or article_supplier_chain()
    return chain.append(
        db,
        (article_id, supplier_id),
        {
            "description1": description1,
            "description2": description2,
            "unit": unit,
            "price": amount,
        },
        external_uuid,
        type_id=type_id,
        valid_from=valid_from,
        decided_at=decided_at,
    )


def get_current_article_supplier(
    db,
    article_id: str,
    supplier_id: str,
    chain: Optional[BiTemporalVersionChain] = None,
) -> Optional[ArticleSupplier]:
    return (chain or article_supplier_chain()).current(db, (article_id, supplier_id))


def get_article_supplier_history(
    db,
    article_id: str,
    supplier_id: str,
    chain: Optional[BiTemporalVersionChain] = None,
) -> list[ArticleSupplier]:
    return (chain or article_supplier_chain()).history(db, (article_id, supplier_id))
