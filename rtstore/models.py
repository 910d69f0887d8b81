"""
rtstore Database Models
PostgreSQL schema (SQLite for development and tests)
"""

from decimal import Decimal

from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, Numeric,
    DateTime, ForeignKey, Index, Sequence, UniqueConstraint, Uuid, text,
)
from sqlalchemy.types import TypeDecorator
from sqlalchemy.orm import declarative_base, declared_attr

import rtstore.config as config
from rtstore.temporal import TimeRange, utcnow

Base = declarative_base()

# Native sequences on PostgreSQL; other engines allocate through SequenceCounter.
BUSINESS_KEY_SEQ = Sequence(config.BUSINESS_KEY_SEQUENCE, metadata=Base.metadata)
ROW_ID_SEQ = Sequence(config.ROW_ID_SEQUENCE, metadata=Base.metadata)

# Seeded into the vault in this order; the empty string receives the sentinel id.
DEFAULT_VAULT_STRINGS = (
    "",
    " ",
    "0", "1", "2", "3", "4", "5", "6", "7", "8", "9",
    "locked",
    "unlocked",
    "maintenance",
    "error",
    "active",
)
NULL_STRING_ID = 1


class ExactDecimal(TypeDecorator):
    """NUMERIC on PostgreSQL; decimal text on SQLite, which would store a REAL."""

    impl = Numeric
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(32))
        return dialect.type_descriptor(self.impl)

    def process_bind_param(self, value, dialect):
        if value is None or dialect.name != "sqlite":
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


# =============================================================================
# String Vault
# =============================================================================

class StringVaultEntry(Base):
    __tablename__ = "rt_string_vault"

    id = Column(Integer, primary_key=True, autoincrement=True)
    value = Column(Text, nullable=False)
    created_on = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("rt_string_vault_idx_value", "value", unique=True),
    )


# =============================================================================
# Key / Value Stores
# =============================================================================

class KeyValueEntry(Base):
    __tablename__ = "rt_key_value"

    key_id = Column(Integer, ForeignKey("rt_string_vault.id"), primary_key=True, autoincrement=False)
    value_id = Column(Integer, ForeignKey("rt_string_vault.id"), nullable=False)


class KeyMultiValueEntry(Base):
    __tablename__ = "rt_key_multiple_value"

    key_id = Column(Integer, ForeignKey("rt_string_vault.id"), primary_key=True, autoincrement=False)
    value_id = Column(Integer, ForeignKey("rt_string_vault.id"), primary_key=True, autoincrement=False)


# =============================================================================
# Identity
# =============================================================================

class IdentityMapping(Base):
    __tablename__ = "uuid_lookup"

    id = Column(Uuid(as_uuid=True), primary_key=True)
    business_key = Column(BigInteger, nullable=False)
    type_id = Column(Integer, default=0, server_default="0", nullable=False)
    time_generated_assigned = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("business_key", name="uq_uuid_lookup_business_key"),
    )


class SequenceCounter(Base):
    """Counter rows backing sequence allocation on engines without sequences."""

    __tablename__ = "rt_sequence_counter"

    name = Column(String(100), primary_key=True)
    value = Column(BigInteger, nullable=False, default=0)


# =============================================================================
# Bi-temporal records
# =============================================================================

class BiTemporalRecord:
    """Columns shared by every versioned table.

    ``id`` is the business key (stable across versions), ``row_id`` identifies
    one physical row. Each range is stored as ``[*_from, *_to)`` with a NULL
    upper bound meaning infinity.
    """

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    row_id = Column(BigInteger, primary_key=True, autoincrement=False)
    valid_from = Column(DateTime, nullable=False, default=utcnow)
    valid_to = Column(DateTime, nullable=True)
    decision_from = Column(DateTime, nullable=False, default=utcnow)
    decision_to = Column(DateTime, nullable=True)
    db_tx_from = Column(DateTime, nullable=False, default=utcnow)
    db_tx_to = Column(DateTime, nullable=True)
    type_id = Column(Integer, nullable=False, default=0, server_default="0")

    @declared_attr
    def __table_args__(cls):
        name = cls.__tablename__
        return (
            UniqueConstraint("row_id", name=f"uq_{name}_row_id"),
            Index(
                f"ux_{name}_open_tx",
                "id",
                unique=True,
                postgresql_where=text("db_tx_to IS NULL"),
                sqlite_where=text("db_tx_to IS NULL"),
            ),
            Index(f"ix_{name}_natural_key", *cls.natural_key_fields, "row_id"),
        )

    @property
    def valid_time(self) -> TimeRange:
        return TimeRange(self.valid_from, self.valid_to)

    @property
    def decision_time(self) -> TimeRange:
        return TimeRange(self.decision_from, self.decision_to)

    @property
    def db_tx_time(self) -> TimeRange:
        return TimeRange(self.db_tx_from, self.db_tx_to)


class Article(BiTemporalRecord, Base):
    __tablename__ = "article"
    natural_key_fields = ("article_id",)
    payload_fields = ("description1", "description2", "match_code", "long_text", "group")

    article_id = Column(String(255), nullable=False)
    description1 = Column(Text)
    description2 = Column(Text)
    match_code = Column(Text)
    long_text = Column(Text)
    group = Column("group", Text)


class ArticleSupplier(BiTemporalRecord, Base):
    __tablename__ = "article_supplier"
    natural_key_fields = ("article_id", "supplier_id")
    payload_fields = ("description1", "description2", "unit", "price")

    article_id = Column(String(255), nullable=False)
    supplier_id = Column(String(255), nullable=False)
    description1 = Column(Text)
    description2 = Column(Text)
    unit = Column(Text)
    price = Column(ExactDecimal(18, 4))


def describe_row(row: BiTemporalRecord) -> dict:
    """Plain-dict view of a versioned row, for logging and callers."""
    payload = {name: getattr(row, name) for name in row.natural_key_fields + row.payload_fields}
    payload.update(
        {
            "id": row.id,
            "row_id": row.row_id,
            "type_id": row.type_id,
            "valid_from": row.valid_from,
            "valid_to": row.valid_to,
            "decision_from": row.decision_from,
            "decision_to": row.decision_to,
            "db_tx_from": row.db_tx_from,
            "db_tx_to": row.db_tx_to,
            "valid_time": str(row.valid_time),
            "decision_time": str(row.decision_time),
            "db_tx_time": str(row.db_tx_time),
        }
    )
    return payload


__all__ = [
    "Base",
    "BUSINESS_KEY_SEQ",
    "ROW_ID_SEQ",
    "DEFAULT_VAULT_STRINGS",
    "NULL_STRING_ID",
    "StringVaultEntry",
    "KeyValueEntry",
    "KeyMultiValueEntry",
    "IdentityMapping",
    "SequenceCounter",
    "ExactDecimal",
    "BiTemporalRecord",
    "Article",
    "ArticleSupplier",
    "describe_row",
]
