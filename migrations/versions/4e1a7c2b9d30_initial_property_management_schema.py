"""initial property management schema

Revision ID: 4e1a7c2b9d30
Revises:
Create Date: 2026-10-18 09:12:41.508214

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '4e1a7c2b9d30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JsonType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    """Staff users, audit trail, JSON datasets and the relational ledger tables."""
    conn = op.get_bind()
    existing_tables = set(sa.inspect(conn).get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("phone", sa.String(32), nullable=False, unique=True),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("role", sa.String(32), nullable=False, server_default="reception"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("actor_phone", sa.String(32), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("entity_type", sa.String(128), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("reason", sa.String(512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.Column("client_ip", sa.String(64), nullable=True),
        )
        op.create_index("idx_audit_events_entity", "audit_events", ["entity_type", "entity_id"])

    if "app_datasets" not in existing_tables:
        op.create_table(
            "app_datasets",
            sa.Column("key", sa.String(255), primary_key=True),
            sa.Column("data", JsonType, nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "tenants" not in existing_tables:
        op.create_table(
            "tenants",
            sa.Column("id", sa.String(64), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("building", sa.String(255), nullable=True),
            sa.Column("property_id", sa.String(64), nullable=True),
            sa.Column("unit", sa.String(255), nullable=True),
            sa.Column("monthly_rent", sa.Numeric(12, 2), nullable=True),
            sa.Column("due_day", sa.Integer(), nullable=True),
            sa.Column("reference", sa.String(128), nullable=True),
            sa.Column("phone", sa.String(32), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_tenants_name", "tenants", ["name"])
        op.create_index("idx_tenants_property_id", "tenants", ["property_id"])

    if "properties" not in existing_tables:
        op.create_table(
            "properties",
            sa.Column("id", sa.String(64), primary_key=True),
            sa.Column("property_id", sa.String(64), nullable=False, unique=True),
            sa.Column("building", sa.String(255), nullable=True),
            sa.Column("units", sa.Integer(), nullable=True),
            sa.Column("name", sa.String(255), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "units" not in existing_tables:
        op.create_table(
            "units",
            sa.Column("id", sa.String(64), primary_key=True),
            sa.Column("property_id", sa.String(64), nullable=True),
            sa.Column("unit", sa.String(64), nullable=False),
            sa.Column("floor", sa.String(32), nullable=True),
            sa.Column("type", sa.String(64), nullable=True),
            sa.Column("beds", sa.String(32), nullable=True),
            sa.Column("rent", sa.Numeric(12, 2), nullable=True),
            sa.Column("status", sa.String(32), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_units_property_id", "units", ["property_id"])

    if "bank_transactions" not in existing_tables:
        op.create_table(
            "bank_transactions",
            sa.Column("id", sa.String(64), primary_key=True),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("type", sa.String(16), nullable=True),
            sa.Column("property_id", sa.String(64), nullable=True),
            sa.Column("tenant_id", sa.String(64), nullable=True),
            sa.Column("reference", sa.String(255), nullable=True),
            sa.Column("category_id", sa.String(64), nullable=True),
            sa.Column("matched_tenant_id", sa.String(64), nullable=True),
            sa.Column("match_amount", sa.Numeric(12, 2), nullable=True),
            sa.Column("match_note", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_bank_transactions_date", "bank_transactions", ["date"])
        op.create_index("idx_bank_transactions_tenant_id", "bank_transactions", ["tenant_id"])

    if "meter_readings" not in existing_tables:
        op.create_table(
            "meter_readings",
            sa.Column("id", sa.String(64), primary_key=True),
            sa.Column("unit", sa.String(64), nullable=False),
            sa.Column("tenant_id", sa.String(64), nullable=True),
            sa.Column("meter_type", sa.String(32), nullable=False),
            sa.Column("reading_date", sa.Date(), nullable=False),
            sa.Column("reading_value", sa.Numeric(14, 2), nullable=False),
            sa.Column("prev_value", sa.Numeric(14, 2), nullable=False, server_default="0"),
            sa.Column("usage", sa.Numeric(14, 2), nullable=False, server_default="0"),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("proof_url", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_meter_readings_unit_type", "meter_readings", ["unit", "meter_type"])


def downgrade() -> None:
    op.drop_index("idx_meter_readings_unit_type", table_name="meter_readings")
    op.drop_table("meter_readings")
    op.drop_index("idx_bank_transactions_tenant_id", table_name="bank_transactions")
    op.drop_index("idx_bank_transactions_date", table_name="bank_transactions")
    op.drop_table("bank_transactions")
    op.drop_index("idx_units_property_id", table_name="units")
    op.drop_table("units")
    op.drop_table("properties")
    op.drop_index("idx_tenants_property_id", table_name="tenants")
    op.drop_index("idx_tenants_name", table_name="tenants")
    op.drop_table("tenants")
    op.drop_table("app_datasets")
    op.drop_index("idx_audit_events_entity", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_table("users")
