"""Add bi-temporal article and article_supplier tables.

Revision ID: 0002_bitemporal_articles
Revises: 0001_core_schema
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0002_bitemporal_articles"
down_revision = "0001_core_schema"
branch_labels = None
depends_on = None


def _bitemporal_columns() -> list:
    return [
        sa.Column("id", sa.BigInteger(), nullable=False),
        sa.Column("row_id", sa.BigInteger(), nullable=False),
        sa.Column("valid_from", sa.DateTime(), nullable=False),
        sa.Column("valid_to", sa.DateTime(), nullable=True),
        sa.Column("decision_from", sa.DateTime(), nullable=False),
        sa.Column("decision_to", sa.DateTime(), nullable=True),
        sa.Column("db_tx_from", sa.DateTime(), nullable=False),
        sa.Column("db_tx_to", sa.DateTime(), nullable=True),
        sa.Column("type_id", sa.Integer(), nullable=False, server_default="0"),
    ]


def _create_bitemporal_table(name: str, natural_key: list[str], *columns) -> None:
    op.create_table(
        name,
        *_bitemporal_columns(),
        *columns,
        sa.PrimaryKeyConstraint("id", "row_id"),
        sa.UniqueConstraint("row_id", name=f"uq_{name}_row_id"),
    )
    # At most one row per business key is open in transaction time.
    op.create_index(
        f"ux_{name}_open_tx",
        name,
        ["id"],
        unique=True,
        postgresql_where=sa.text("db_tx_to IS NULL"),
        sqlite_where=sa.text("db_tx_to IS NULL"),
    )
    op.create_index(f"ix_{name}_natural_key", name, [*natural_key, "row_id"])


def upgrade() -> None:
    _create_bitemporal_table(
        "article",
        ["article_id"],
        sa.Column("article_id", sa.String(length=255), nullable=False),
        sa.Column("description1", sa.Text()),
        sa.Column("description2", sa.Text()),
        sa.Column("match_code", sa.Text()),
        sa.Column("long_text", sa.Text()),
        sa.Column("group", sa.Text()),
    )
    _create_bitemporal_table(
        "article_supplier",
        ["article_id", "supplier_id"],
        sa.Column("article_id", sa.String(length=255), nullable=False),
        sa.Column("supplier_id", sa.String(length=255), nullable=False),
        sa.Column("description1", sa.Text()),
        sa.Column("description2", sa.Text()),
        sa.Column("unit", sa.Text()),
        sa.Column("price", sa.Numeric(18, 4).with_variant(sa.String(length=32), "sqlite")),
    )


def downgrade() -> None:
    for name in ("article_supplier", "article"):
        op.drop_index(f"ix_{name}_natural_key", table_name=name)
        op.drop_index(f"ux_{name}_open_tx", table_name=name)
        op.drop_table(name)
