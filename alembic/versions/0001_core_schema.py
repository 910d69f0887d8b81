"""Create string vault, key/value stores, uuid lookup and sequences.

Revision ID: 0001_core_schema
Revises:
Create Date: 2026-10-19
"""

from datetime import datetime, timezone

from alembic import op
import sqlalchemy as sa
from sqlalchemy.schema import CreateSequence, DropSequence


revision = "0001_core_schema"
down_revision = None
branch_labels = None
depends_on = None


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
SCHEMA_VERSION_KEY = "schema.version"
SCHEMA_VERSION = "v1000"
SEQUENCES = ("business_key_seq", "row_id_seq")


def upgrade() -> None:
    bind = op.get_bind()
    is_postgres = bind.dialect.name == "postgresql"
    uuid_type = sa.Uuid(as_uuid=True)
    now = datetime.now(timezone.utc).replace(tzinfo=None)

    # =============================================================================
    # String Vault
    # =============================================================================
    vault = op.create_table(
        "rt_string_vault",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("created_on", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "rt_string_vault_idx_value",
        "rt_string_vault",
        ["value"],
        unique=True,
    )
    # Row order fixes the ids; the empty string becomes the null sentinel (id 1).
    for value in DEFAULT_VAULT_STRINGS + (SCHEMA_VERSION_KEY, SCHEMA_VERSION):
        op.bulk_insert(vault, [{"value": value, "created_on": now}])

    # =============================================================================
    # Key / Value Stores
    # =============================================================================
    op.create_table(
        "rt_key_value",
        sa.Column("key_id", sa.Integer(), nullable=False),
        sa.Column("value_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("key_id"),
        sa.ForeignKeyConstraint(["key_id"], ["rt_string_vault.id"]),
        sa.ForeignKeyConstraint(["value_id"], ["rt_string_vault.id"]),
    )
    op.create_table(
        "rt_key_multiple_value",
        sa.Column("key_id", sa.Integer(), nullable=False),
        sa.Column("value_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("key_id", "value_id"),
        sa.ForeignKeyConstraint(["key_id"], ["rt_string_vault.id"]),
        sa.ForeignKeyConstraint(["value_id"], ["rt_string_vault.id"]),
    )

    lookup_id = sa.text("SELECT id FROM rt_string_vault WHERE value = :value")
    key_id = bind.execute(lookup_id, {"value": SCHEMA_VERSION_KEY}).scalar_one()
    value_id = bind.execute(lookup_id, {"value": SCHEMA_VERSION}).scalar_one()
    op.execute(
        sa.text("INSERT INTO rt_key_value (key_id, value_id) VALUES (:key_id, :value_id)").bindparams(
            key_id=key_id,
            value_id=value_id,
        )
    )

    # =============================================================================
    # Identity and sequences
    # =============================================================================
    op.create_table(
        "uuid_lookup",
        sa.Column("id", uuid_type, nullable=False),
        sa.Column("business_key", sa.BigInteger(), nullable=False),
        sa.Column("type_id", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("time_generated_assigned", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("business_key", name="uq_uuid_lookup_business_key"),
    )
    op.create_table(
        "rt_sequence_counter",
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("value", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("name"),
    )
    if is_postgres:
        for name in SEQUENCES:
            op.execute(CreateSequence(sa.Sequence(name)))


def downgrade() -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name in SEQUENCES:
            op.execute(DropSequence(sa.Sequence(name)))
    op.drop_table("rt_sequence_counter")
    op.drop_table("uuid_lookup")
    op.drop_table("rt_key_multiple_value")
    op.drop_table("rt_key_value")
    op.drop_index("rt_string_vault_idx_value", table_name="rt_string_vault")
    op.drop_table("rt_string_vault")
