import os

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("AUTO_MIGRATE_ON_STARTUP", "false")

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from rtstore.db import DB, configure, create_store_engine, transaction
from rtstore.models import Base
from rtstore.services.store import install_defaults


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "rtstore.sqlite"


@pytest.fixture
def server_db(db_path):
    engine = create_store_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    previous = (DB.engine, DB.SessionLocal, DB.allocator)
    configure(engine)
    with transaction() as db:
        install_defaults(db)
    try:
        yield engine
    finally:
        DB.engine, DB.SessionLocal, DB.allocator = previous
        engine.dispose()


@pytest.fixture
def db_session(server_db, db_path):
    # Plain engine: reads here must not take the write lock the store engine takes.
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    session = sessionmaker(bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


class TickingClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start):
        self.current = start

    def __call__(self):
        value = self.current
        self.current = value + timedelta(seconds=1)
        return value


@pytest.fixture
def ticking_clock():
    return TickingClock(datetime(2024, 1, 1, 12, 0, 0))
