import os

os.environ.setdefault("DB_BACKEND", "sqlite")

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from rtstore.db import transaction
from rtstore.errors import ValidationIssue
from rtstore.models import Article, ArticleSupplier, IdentityMapping
from rtstore.services import articles, store


def _append_a1(u, description1="desc1"):
    return store.append_article("A1", description1, "desc2", "code", "long", "grp", u, 1)


def test_article_lifecycle(server_db, db_session):
    u = uuid.uuid4()
    assert _append_a1(u) == u

    first = store.get_article("A1")
    assert first["article_id"] == "A1"
    assert first["type_id"] == 1
    assert first["db_tx_to"] is None
    business_key = first["id"]

    mapped = db_session.scalar(select(IdentityMapping.business_key).where(IdentityMapping.id == u))
    assert mapped == business_key

    # Same content again: nothing is written.
    _append_a1(u)
    assert len(store.get_article_history("A1")) == 1

    _append_a1(u, description1="desc1-CHANGED")
    history = store.get_article_history("A1")
    assert len(history) == 2
    old, new = history
    assert old["id"] == new["id"] == business_key
    assert new["row_id"] > old["row_id"]
    assert old["db_tx_to"] is not None
    assert new["db_tx_to"] is None
    assert new["db_tx_from"] == old["db_tx_to"]
    assert new["description1"] == "desc1-CHANGED"

    current = store.get_article("A1")
    assert current["row_id"] == new["row_id"]

    open_rows = db_session.scalar(
        select(func.count()).select_from(Article).where(Article.id == business_key, Article.db_tx_to.is_(None))
    )
    assert open_rows == 1


def test_unknown_article_is_none(server_db):
    assert store.get_article("nope") is None
    assert store.get_article_history("nope") == []


def test_null_payload_fields_are_content(server_db):
    u = uuid.uuid4()
    store.append_article("N1", None, None, None, None, None, u)
    store.append_article("N1", None, None, None, None, None, u)
    assert len(store.get_article_history("N1")) == 1

    store.append_article("N1", "", None, None, None, None, u)
    assert len(store.get_article_history("N1")) == 2


def test_article_validation(server_db):
    with pytest.raises(ValidationIssue) as excinfo:
        store.append_article("", "d", None, None, None, None, uuid.uuid4())
    assert excinfo.value.field == "article_id"

    with pytest.raises(ValidationIssue) as excinfo:
        store.append_article("A9", 12, None, None, None, None, uuid.uuid4())
    assert excinfo.value.field == "description1"

    with pytest.raises(ValidationIssue):
        store.append_article("A9", "d", None, None, None, None, "bogus")
    assert store.get_article("A9") is None


def test_article_supplier_composite_key(server_db):
    u1, u2 = uuid.uuid4(), uuid.uuid4()
    store.append_article_supplier("A1", "S1", "d1", None, "Stk", "9.99", u1)
    store.append_article_supplier("A1", "S2", "d1", None, "Stk", "9.99", u2)

    s1 = store.get_article_supplier("A1", "S1")
    s2 = store.get_article_supplier("A1", "S2")
    assert s1["id"] != s2["id"]
    assert s1["supplier_id"] == "S1"
    assert Decimal(str(s1["price"])) == Decimal("9.9900")
    assert store.get_article_supplier("A1", "S3") is None


def test_equivalent_prices_are_unchanged(server_db):
    u = uuid.uuid4()
    store.append_article_supplier("P1", "S1", None, None, "kg", "9.99", u)
    store.append_article_supplier("P1", "S1", None, None, "kg", Decimal("9.9900"), u)
    store.append_article_supplier("P1", "S1", None, None, "kg", 9.99, u)
    assert len(store.get_article_supplier_history("P1", "S1")) == 1

    store.append_article_supplier("P1", "S1", None, None, "kg", "10.00", u)
    history = store.get_article_supplier_history("P1", "S1")
    assert len(history) == 2
    assert history[0]["db_tx_to"] == history[1]["db_tx_from"]


def test_invalid_price_rejected(server_db):
    with pytest.raises(ValidationIssue) as excinfo:
        store.append_article_supplier("P2", "S1", None, None, None, "cheap", uuid.uuid4())
    assert excinfo.value.field == "price"


def test_row_ids_shared_across_tables(server_db, db_session):
    store.append_article("X1", "a", None, None, None, None, uuid.uuid4())
    store.append_article_supplier("X1", "S", None, None, None, None, uuid.uuid4())
    store.append_article("X1", "b", None, None, None, None, uuid.uuid4())

    article_rows = db_session.scalars(select(Article.row_id).order_by(Article.row_id)).all()
    supplier_rows = db_session.scalars(select(ArticleSupplier.row_id)).all()
    assert len(article_rows) == 2
    assert len(supplier_rows) == 1
    assert article_rows[0] < supplier_rows[0] < article_rows[1]


def test_entity_kinds_do_not_share_business_keys(server_db):
    store.append_article("K1", None, None, None, None, None, uuid.uuid4())
    store.append_article_supplier("K1", "S", None, None, None, None, uuid.uuid4())
    assert store.get_article("K1")["id"] != store.get_article_supplier("K1", "S")["id"]


def test_as_of_through_service(server_db, ticking_clock):
    chain = articles.article_chain(clock=ticking_clock)
    u = uuid.uuid4()
    with transaction() as db:
        articles.append_article(db, "T1", "v1", None, None, None, None, u, chain=chain)
    with transaction() as db:
        articles.append_article(db, "T1", "v2", None, None, None, None, u, chain=chain)

    with transaction() as db:
        first = articles.get_article_history(db, "T1", chain=chain)[0]
        old = articles.get_article_as_of(db, "T1", first.db_tx_from, chain=chain)
        assert old.description1 == "v1"
        latest = articles.get_article_as_of(db, "T1", first.db_tx_to, chain=chain)
        assert latest.description1 == "v2"


def test_full_precision_price_round_trips_exactly(server_db, db_session):
    u = uuid.uuid4()
    for _ in range(3):
        store.append_article_supplier("P9", "S1", None, None, "kg", "99999999999999.9999", u)
        store.append_article_supplier("P9", "S2", None, None, "kg", "12345678901234.5678", uuid.uuid4())

    assert len(store.get_article_supplier_history("P9", "S1")) == 1
    assert len(store.get_article_supplier_history("P9", "S2")) == 1
    stored = db_session.scalars(
        select(ArticleSupplier.price).where(ArticleSupplier.article_id == "P9").order_by(ArticleSupplier.supplier_id)
    ).all()
    assert stored == [Decimal("99999999999999.9999"), Decimal("12345678901234.5678")]


def test_oversized_price_rejected_before_write(server_db):
    with pytest.raises(ValidationIssue) as excinfo:
        store.append_article_supplier("P10", "S1", None, None, None, "1e20", uuid.uuid4())
    assert excinfo.value.error_type == "out_of_range"
    assert excinfo.value.error_code == "price_too_large"
    assert store.get_article_supplier("P10", "S1") is None
