"""
Database initialization, migration and transaction helpers.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

import rtstore.config as config
from rtstore.sequences import SequenceAllocator, default_allocator

SERIALIZATION_SQLSTATES = {"40001", "40P01"}


class DB:
    """Database state holder (avoids global scoping issues)."""

    engine = None
    SessionLocal = None
    allocator: Optional[SequenceAllocator] = None


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    # Wait for the write lock instead of failing immediately.
    cursor.execute("PRAGMA busy_timeout=5000")
    # Readers are not blocked by the writer.
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
    # Let SQLAlchemy emit BEGIN itself (see _begin_immediate).
    dbapi_connection.isolation_level = None


def _begin_immediate(conn):
    # Take the write lock up front so read-decide-write runs serialized.
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_store_engine(url: str, **kwargs):
    """Create an engine with the isolation the versioning protocol needs."""
    engine_kwargs = {"pool_pre_ping": config.DB_POOL_PRE_PING}
    is_sqlite = url.lower().startswith("sqlite")
    if is_sqlite:
        engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
    else:
        engine_kwargs["isolation_level"] = "SERIALIZABLE"
    engine_kwargs.update(kwargs)
    engine = create_engine(url, **engine_kwargs)
    if is_sqlite:
        event.listen(engine, "connect", _set_sqlite_pragmas)
        event.listen(engine, "begin", _begin_immediate)
    return engine


def configure(engine, allocator: Optional[SequenceAllocator] = None) -> None:
    """Point the module-level DB holder at an engine."""
    DB.engine = engine
    DB.SessionLocal = sessionmaker(bind=engine, autoflush=True, expire_on_commit=False)
    DB.allocator = allocator or default_allocator(engine)


def get_allocator() -> SequenceAllocator:
    if DB.allocator is None:
        raise RuntimeError("Database not initialized; call init_db() first")
    return DB.allocator


@contextmanager
def transaction(session_factory=None) -> Iterator[Session]:
    """One session, one transaction: commit on success, roll back on error."""
    factory = session_factory or DB.SessionLocal
    if factory is None:
        raise RuntimeError("Database not initialized; call init_db() first")
    db = factory()
    try:
        with db.begin():
            yield db
    finally:
        db.close()


def is_serialization_failure(exc: BaseException) -> bool:
    if not isinstance(exc, DBAPIError):
        return False
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code in SERIALIZATION_SQLSTATES:
        return True
    if isinstance(exc, OperationalError) and "database is locked" in str(orig).lower():
        return True
    return False


def _get_alembic_config():
    try:
        from alembic.config import Config
    except ImportError as exc:
        raise RuntimeError("Alembic is required for migrations") from exc

    base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    alembic_cfg = Config(os.path.join(base_dir, "alembic.ini"))
    alembic_cfg.set_main_option("script_location", os.path.join(base_dir, "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", config.DATABASE_URL)
    return alembic_cfg


def _get_schema_revisions(engine) -> tuple[Optional[str], Optional[str]]:
    from alembic.runtime.migration import MigrationContext
    from alembic.script import ScriptDirectory

    alembic_cfg = _get_alembic_config()
    script = ScriptDirectory.from_config(alembic_cfg)
    head_revision = script.get_current_head()
    with engine.connect() as conn:
        context = MigrationContext.configure(conn)
        current_revision = context.get_current_revision()
    return current_revision, head_revision


def _ensure_schema_up_to_date(engine) -> None:
    from alembic import command

    current_rev, head_rev = _get_schema_revisions(engine)
    if current_rev == head_rev:
        return

    if config.AUTO_MIGRATE_ON_STARTUP:
        alembic_cfg = _get_alembic_config()
        command.upgrade(alembic_cfg, "head")
        new_current, _ = _get_schema_revisions(engine)
        if new_current != head_rev:
            raise RuntimeError("Database migration did not reach expected revision")
    else:
        raise RuntimeError(
            f"Database schema out of date (current={current_rev}, expected={head_rev}). "
            "Run 'alembic upgrade head' or set AUTO_MIGRATE_ON_STARTUP=true for dev."
        )


def init_db(allocator: Optional[SequenceAllocator] = None) -> None:
    """Initialize the database connection and bring the schema to head."""
    config.validate_and_prepare_config()

    config.logger.info("Connecting to database...")
    engine = create_store_engine(config.DATABASE_URL)
    configure(engine, allocator)

    _ensure_schema_up_to_date(DB.engine)

    config.logger.info("Database initialized")
