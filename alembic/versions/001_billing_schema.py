"""Add plans, billing keys and the subscription ledger."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "001_billing_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "plans",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_members", sa.Integer(), nullable=False, server_default=sa.text("5")),
        sa.Column(
            "max_storage_mb",
            sa.Float(),
            nullable=False,
            server_default=sa.text("1000"),
        ),
        sa.Column("external_plan_id", sa.String(), nullable=True),
        sa.Column("external_product_id", sa.String(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    plan_table = sa.table(
        "plans",
        sa.column("name", sa.String()),
        sa.column("price", sa.Integer()),
        sa.column("max_members", sa.Integer()),
        sa.column("max_storage_mb", sa.Float()),
    )

    op.bulk_insert(
        plan_table,
        [
            {"name": "Free", "price": 0, "max_members": 5, "max_storage_mb": 1000},
            {"name": "Pro", "price": 9900, "max_members": 20, "max_storage_mb": 10000},
            {"name": "Team", "price": 29900, "max_members": 100, "max_storage_mb": 100000},
        ],
    )

    op.create_table(
        "billing_keys",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("member_id", sa.Integer(), nullable=False),
        sa.Column("bid", sa.String(), nullable=False),
        sa.Column("card_code", sa.String(), nullable=True),
        sa.Column("card_name", sa.String(), nullable=True),
        sa.Column("card_no_masked", sa.String(), nullable=True),
        sa.Column(
            "status",
            sa.String(),
            nullable=False,
            server_default=sa.text("'ACTIVE'"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("removed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_billing_keys_member_id", "billing_keys", ["member_id"])
    op.create_index(
        "uq_billing_keys_one_active",
        "billing_keys",
        ["member_id"],
        unique=True,
        postgresql_where=sa.text("status = 'ACTIVE'"),
        sqlite_where=sa.text("status = 'ACTIVE'"),
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("owner_type", sa.String(), nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("plan_id", sa.Integer(), sa.ForeignKey("plans.id"), nullable=False),
        sa.Column(
            "status",
            sa.String(),
            nullable=False,
            server_default=sa.text("'ACTIVE'"),
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_payment_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("billing_key_member_id", sa.Integer(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )
    op.create_index(
        "ix_subscriptions_owner_status",
        "subscriptions",
        ["owner_type", "owner_id", "status"],
    )
    op.create_index(
        "ix_subscriptions_due", "subscriptions", ["status", "next_payment_date"]
    )
    op.create_index(
        "uq_subscriptions_one_active",
        "subscriptions",
        ["owner_type", "owner_id"],
        unique=True,
        postgresql_where=sa.text("status = 'ACTIVE'"),
        sqlite_where=sa.text("status = 'ACTIVE'"),
    )

    op.create_table(
        "storage_usage",
        sa.Column("owner_type", sa.String(), primary_key=True, nullable=False),
        sa.Column("owner_id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "used_storage_mb",
            sa.Float(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )


def downgrade() -> None:
    op.drop_table("storage_usage")
    op.drop_index("uq_subscriptions_one_active", table_name="subscriptions")
    op.drop_index("ix_subscriptions_due", table_name="subscriptions")
    op.drop_index("ix_subscriptions_owner_status", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_index("uq_billing_keys_one_active", table_name="billing_keys")
    op.drop_index("ix_billing_keys_member_id", table_name="billing_keys")
    op.drop_table("billing_keys")
    op.drop_table("plans")
