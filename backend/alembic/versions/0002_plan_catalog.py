"""plan catalog: descriptions, feature lists, featured flag

Revision ID: 0002_plan_catalog
Revises: 0001_payments_core
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0002_plan_catalog"
down_revision = "0001_payments_core"
branch_labels = None
depends_on = None


def upgrade():
    op.add_column(
        "membership_plans",
        sa.Column("features", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
    )
    op.add_column("subscription_plans", sa.Column("description", sa.Text(), nullable=True))
    op.add_column(
        "subscription_plans",
        sa.Column("features", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
    )
    op.add_column("subscription_plans", sa.Column("is_featured", sa.Boolean(), nullable=False, server_default=sa.text("false")))
    op.create_index("ix_membership_plans_active_price", "membership_plans", ["is_active", "price_cents"])
    op.create_index("ix_subscription_plans_active_price", "subscription_plans", ["is_active", "price_cents"])


def downgrade():
    op.drop_index("ix_subscription_plans_active_price", table_name="subscription_plans")
    op.drop_index("ix_membership_plans_active_price", table_name="membership_plans")
    op.drop_column("subscription_plans", "is_featured")
    op.drop_column("subscription_plans", "features")
    op.drop_column("subscription_plans", "description")
    op.drop_column("membership_plans", "features")
