import os

os.environ.setdefault("DB_BACKEND", "sqlite")

import uuid
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from rtstore.db import get_allocator, transaction
from rtstore.errors import ValidationIssue
from rtstore.models import Article, ArticleSupplier
from rtstore.services.identity import IdentityMapper
from rtstore.services.versioning import AppendOutcome, BiTemporalVersionChain


def _chain(model, clock):
    allocator = get_allocator()
    return BiTemporalVersionChain(
        model,
        identity=IdentityMapper(allocator),
        allocator=allocator,
        clock=clock,
    )


def _article_payload(**overrides):
    payload = {
        "description1": "desc1",
        "description2": "desc2",
        "match_code": "code",
        "long_text": "long",
        "group": "grp",
    }
    payload.update(overrides)
    return payload


def test_new_entity_creates_one_open_row(server_db, ticking_clock):
    chain = _chain(Article, ticking_clock)
    u = uuid.uuid4()
    with transaction() as db:
        result = chain.append_version(db, ("A1",), _article_payload(), u, type_id=1)
        business_key = chain.identity.lookup(db, u)

    assert result.outcome is AppendOutcome.created
    assert result.uuid == u
    row = result.row
    assert row.id == business_key
    assert row.type_id == 1
    assert row.db_tx_time.is_open
    assert row.valid_time.is_open
    assert row.decision_time.is_open
    assert row.db_tx_from == datetime(2024, 1, 1, 12, 0, 0)


def test_unchanged_resubmission_is_noop(server_db, ticking_clock):
    chain = _chain(Article, ticking_clock)
    u = uuid.uuid4()
    with transaction() as db:
        created = chain.append_version(db, ("A1",), _article_payload(), u)
    with transaction() as db:
        again = chain.append_version(db, ("A1",), _article_payload(), u)
        history = chain.history(db, ("A1",))

    assert again.outcome is AppendOutcome.unchanged
    assert again.row.row_id == created.row.row_id
    assert len(history) == 1
    assert history[0].db_tx_to is None


def test_changed_payload_closes_and_appends(server_db, ticking_clock):
    chain = _chain(Article, ticking_clock)
    u = uuid.uuid4()
    with transaction() as db:
        first = chain.append_version(db, ("A1",), _article_payload(), u)
    with transaction() as db:
        second = chain.append_version(db, ("A1",), _article_payload(description1="desc1-CHANGED"), u)
        history = chain.history(db, ("A1",))

    assert second.outcome is AppendOutcome.updated
    assert second.closed_row_id == first.row.row_id
    assert len(history) == 2
    old, new = history
    assert old.row_id == first.row.row_id
    assert new.row_id > old.row_id
    assert new.id == old.id

    assert old.db_tx_from == datetime(2024, 1, 1, 12, 0, 0)
    assert old.db_tx_to == datetime(2024, 1, 1, 12, 0, 1)
    assert old.db_tx_to > old.db_tx_from
    assert new.db_tx_from == old.db_tx_to
    assert new.db_tx_to is None
    assert new.valid_from == datetime(2024, 1, 1, 12, 0, 1)
    assert new.valid_to is None
    # Decision time is carried over from the previous version.
    assert new.decision_from == old.decision_from
    assert new.description1 == "desc1-CHANGED"
    assert old.description1 == "desc1"


def test_transaction_time_segments_are_contiguous(server_db, ticking_clock):
    chain = _chain(Article, ticking_clock)
    u = uuid.uuid4()
    for n in range(4):
        with transaction() as db:
            chain.append(db, ("A7",), _article_payload(long_text=f"rev {n}"), u)
    with transaction() as db:
        history = chain.history(db, ("A7",))

    assert len(history) == 4
    assert [row.db_tx_to is None for row in history] == [False, False, False, True]
    for earlier, later in zip(history, history[1:]):
        assert earlier.db_tx_to == later.db_tx_from
        assert not earlier.db_tx_time.overlaps(later.db_tx_time)
        assert earlier.row_id < later.row_id
        assert earlier.id == later.id


def test_clock_behind_lower_bound_still_closes_non_empty(server_db):
    fixed = datetime(2024, 1, 1, 12, 0, 0)
    chain = _chain(Article, lambda: fixed)
    u = uuid.uuid4()
    with transaction() as db:
        chain.append(db, ("A2",), _article_payload(), u)
    with transaction() as db:
        chain.append(db, ("A2",), _article_payload(group="other"), u)
        old, new = chain.history(db, ("A2",))

    assert old.db_tx_to > old.db_tx_from
    assert new.db_tx_from == old.db_tx_to


def test_as_of_returns_version_current_at_that_time(server_db, ticking_clock):
    chain = _chain(Article, ticking_clock)
    u = uuid.uuid4()
    with transaction() as db:
        chain.append(db, ("A3",), _article_payload(description1="v1"), u)
    with transaction() as db:
        chain.append(db, ("A3",), _article_payload(description1="v2"), u)

    with transaction() as db:
        before = chain.as_of(db, ("A3",), datetime(2024, 1, 1, 11, 59, 59))
        during_v1 = chain.as_of(db, ("A3",), datetime(2024, 1, 1, 12, 0, 0, 500000))
        after = chain.as_of(db, ("A3",), datetime(2030, 1, 1))

    assert before is None
    assert during_v1.description1 == "v1"
    assert after.description1 == "v2"


def test_valid_from_and_decided_at_override(server_db, ticking_clock):
    chain = _chain(Article, ticking_clock)
    u = uuid.uuid4()
    valid_start = datetime(2023, 6, 1)
    decided = datetime(2023, 5, 15)
    with transaction() as db:
        row = chain.append_version(
            db, ("A4",), _article_payload(), u, valid_from=valid_start, decided_at=decided
        ).row
    assert row.valid_from == valid_start
    assert row.decision_from == decided
    assert row.db_tx_from == datetime(2024, 1, 1, 12, 0, 0)

    with transaction() as db:
        found = chain.valid_at(db, ("A4",), datetime(2023, 7, 1))
        missing = chain.valid_at(db, ("A4",), datetime(2023, 1, 1))
    assert found is not None and found.row_id == row.row_id
    assert missing is None


def test_composite_natural_key(server_db, ticking_clock):
    chain = _chain(ArticleSupplier, ticking_clock)
    payload = {"description1": "d", "description2": None, "unit": "Stk", "price": Decimal("1.5000")}
    with transaction() as db:
        a = chain.append_version(db, ("A1", "S1"), payload, uuid.uuid4())
        b = chain.append_version(db, ("A1", "S2"), payload, uuid.uuid4())

    assert a.outcome is AppendOutcome.created
    assert b.outcome is AppendOutcome.created
    assert a.row.id != b.row.id

    with transaction() as db:
        again = chain.append_version(db, ("A1", "S1"), payload, uuid.uuid4())
    assert again.outcome is AppendOutcome.unchanged


def test_natural_key_arity_enforced(server_db, ticking_clock):
    chain = _chain(ArticleSupplier, ticking_clock)
    with transaction() as db:
        with pytest.raises(ValidationIssue) as excinfo:
            chain.current(db, ("A1",))
    assert excinfo.value.error_type == "invalid_arity"


def test_payload_fields_enforced(server_db, ticking_clock):
    chain = _chain(Article, ticking_clock)
    with transaction() as db:
        with pytest.raises(ValidationIssue) as excinfo:
            chain.append(db, ("A1",), {"description1": "only one"}, uuid.uuid4())
    assert excinfo.value.error_type == "invalid_fields"


def test_uuid_bound_to_other_entity_rejected(server_db, ticking_clock):
    chain = _chain(Article, ticking_clock)
    u = uuid.uuid4()
    with transaction() as db:
        chain.append(db, ("A5",), _article_payload(), u)
        business_key = chain.identity.lookup(db, u)
    with pytest.raises(ValidationIssue) as excinfo:
        with transaction() as db:
            chain.append(db, ("A6",), _article_payload(), u)
    assert excinfo.value.error_type == "conflict"
    assert excinfo.value.error_code == "uuid_bound_to_other_entity"
    assert excinfo.value.data["business_key"] == business_key

    with transaction() as db:
        assert chain.current(db, ("A6",)) is None


def test_row_ids_globally_increasing(server_db, ticking_clock, db_session):
    articles = _chain(Article, ticking_clock)
    suppliers = _chain(ArticleSupplier, ticking_clock)
    payload = {"description1": None, "description2": None, "unit": None, "price": None}
    with transaction() as db:
        articles.append(db, ("M1",), _article_payload(), uuid.uuid4())
        suppliers.append(db, ("M1", "S"), payload, uuid.uuid4())
        articles.append(db, ("M1",), _article_payload(match_code="x"), uuid.uuid4())
        suppliers.append(db, ("M1", "S"), dict(payload, unit="kg"), uuid.uuid4())

    article_ids = db_session.scalars(select(Article.row_id).order_by(Article.db_tx_from)).all()
    supplier_ids = db_session.scalars(
        select(ArticleSupplier.row_id).order_by(ArticleSupplier.db_tx_from)
    ).all()
    combined = sorted(article_ids + supplier_ids)
    assert len(set(combined)) == 4
    assert article_ids == sorted(article_ids)
    assert supplier_ids == sorted(supplier_ids)
    assert combined[0] < combined[-1]


def test_ticking_clock_advances(ticking_clock):
    first = ticking_clock()
    assert ticking_clock() - first == timedelta(seconds=1)
