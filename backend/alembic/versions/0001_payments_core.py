"""payments core: memberships, subscriptions, ad campaigns, webhook ledger

Revision ID: 0001_payments_core
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_payments_core"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def upgrade():
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.create_table(
        "membership_plans",
        sa.Column("id", sa.Uuid(), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("code", sa.Text(), nullable=False, unique=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.Text(), nullable=False, server_default="usd"),
        sa.Column("interval", sa.Text(), nullable=False, server_default="month"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("price_cents > 0", name="ck_membership_plans_price"),
        sa.CheckConstraint("interval IN ('month','year')", name="ck_membership_plans_interval"),
    )

    op.create_table(
        "profiles",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("stripe_customer_id", sa.Text(), nullable=True, unique=True),
        sa.Column("current_subscription_id", sa.Uuid(), nullable=True),
        sa.Column(
            "membership_plan_id",
            sa.Uuid(),
            sa.ForeignKey("membership_plans.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("membership_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("membership_expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "membership_plan_id IS NULL OR membership_expires_at IS NOT NULL",
            name="ck_profiles_membership_expiry",
        ),
    )

    op.create_table(
        "membership_orders",
        sa.Column("id", sa.Uuid(), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("profile_id", sa.Uuid(), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("membership_plan_id", sa.Uuid(), sa.ForeignKey("membership_plans.id"), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.Text(), nullable=False, server_default="usd"),
        sa.Column("stripe_session_id", sa.Text(), nullable=True),
        sa.Column("stripe_payment_intent_id", sa.Text(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('pending','paid','failed','refunded')", name="ck_membership_orders_status"),
        sa.CheckConstraint("status <> 'paid' OR paid_at IS NOT NULL", name="ck_membership_orders_paid_at"),
        sa.UniqueConstraint("stripe_session_id", name="uq_membership_orders_stripe_session_id"),
    )
    op.create_index(
        "ix_membership_orders_profile_created",
        "membership_orders",
        ["profile_id", sa.text("created_at DESC")],
    )

    op.create_table(
        "subscription_plans",
        sa.Column("id", sa.Uuid(), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("code", sa.Text(), nullable=False, unique=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.Text(), nullable=False, server_default="usd"),
        sa.Column("billing_interval", sa.Text(), nullable=False, server_default="month"),
        sa.Column("billing_interval_count", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("stripe_price_id", sa.Text(), nullable=True),
        sa.Column("stripe_product_id", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint(
            "billing_interval IN ('day','week','month','year')",
            name="ck_subscription_plans_interval",
        ),
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Uuid(), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("profile_id", sa.Uuid(), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("subscription_plan_id", sa.Uuid(), sa.ForeignKey("subscription_plans.id"), nullable=False),
        sa.Column("stripe_subscription_id", sa.Text(), nullable=False),
        sa.Column("stripe_customer_id", sa.Text(), nullable=False),
        sa.Column("stripe_price_id", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="incomplete"),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('trialing','active','past_due','canceled','incomplete','incomplete_expired','unpaid')",
            name="ck_subscriptions_status",
        ),
        sa.UniqueConstraint("stripe_subscription_id", name="uq_subscriptions_stripe_subscription_id"),
    )
    op.create_index("ix_subscriptions_profile_status", "subscriptions", ["profile_id", "status"])

    op.create_table(
        "subscription_payments",
        sa.Column("id", sa.Uuid(), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("subscription_id", sa.Uuid(), sa.ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("profile_id", sa.Uuid(), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("stripe_invoice_id", sa.Text(), nullable=False),
        sa.Column("stripe_payment_intent_id", sa.Text(), nullable=True),
        sa.Column("amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("currency", sa.Text(), nullable=False, server_default="usd"),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("billing_reason", sa.Text(), nullable=True),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status IN ('pending','paid','failed','refunded')", name="ck_subscription_payments_status"),
        sa.UniqueConstraint("stripe_invoice_id", name="uq_subscription_payments_stripe_invoice_id"),
    )
    op.create_index(
        "ix_subscription_payments_subscription_created",
        "subscription_payments",
        ["subscription_id", sa.text("created_at DESC")],
    )

    op.create_table(
        "businesses",
        sa.Column("id", sa.Uuid(), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("owner_id", sa.Uuid(), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_businesses_owner", "businesses", ["owner_id"])

    op.create_table(
        "ad_campaigns",
        sa.Column("id", sa.Uuid(), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("business_id", sa.Uuid(), sa.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending_payment"),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("days_purchased", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("daily_rate_cents", sa.Integer(), nullable=False),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_percent", sa.Numeric(5, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("had_membership", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("stripe_session_id", sa.Text(), nullable=True),
        sa.Column("stripe_payment_intent_id", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending_payment','active','expired','cancelled')",
            name="ck_ad_campaigns_status",
        ),
        sa.CheckConstraint("days_purchased >= 0", name="ck_ad_campaigns_days"),
        sa.CheckConstraint("end_at IS NULL OR start_at IS NULL OR end_at > start_at", name="ck_ad_campaigns_window"),
    )
    op.create_index(
        "uq_ad_campaigns_business_open",
        "ad_campaigns",
        ["business_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('active','pending_payment')"),
    )
    op.create_index("ix_ad_campaigns_status_end", "ad_campaigns", ["status", "end_at"])

    op.create_table(
        "ad_purchases",
        sa.Column("id", sa.Uuid(), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("business_id", sa.Uuid(), sa.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("campaign_id", sa.Uuid(), sa.ForeignKey("ad_campaigns.id", ondelete="SET NULL"), nullable=True),
        sa.Column("stripe_session_id", sa.Text(), nullable=False),
        sa.Column("stripe_payment_intent_id", sa.Text(), nullable=True),
        sa.Column("days", sa.Integer(), nullable=False),
        sa.Column("daily_rate_cents", sa.Integer(), nullable=False),
        sa.Column("discount_percent", sa.Numeric(5, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("had_membership", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("days >= 1", name="ck_ad_purchases_days"),
        sa.UniqueConstraint("stripe_session_id", name="uq_ad_purchases_stripe_session_id"),
    )
    op.create_index(
        "ix_ad_purchases_business_created",
        "ad_purchases",
        ["business_id", sa.text("created_at DESC")],
    )

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.Uuid(), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("event_id", sa.Text(), nullable=False),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('processed','ignored','failed')", name="ck_webhook_events_status"),
        sa.UniqueConstraint("event_id", name="uq_webhook_events_event_id"),
    )
    op.create_index(
        "ix_webhook_events_status_received",
        "webhook_events",
        ["status", sa.text("received_at DESC")],
    )


def downgrade():
    op.drop_index("ix_webhook_events_status_received", table_name="webhook_events")
    op.drop_table("webhook_events")
    op.drop_index("ix_ad_purchases_business_created", table_name="ad_purchases")
    op.drop_table("ad_purchases")
    op.drop_index("ix_ad_campaigns_status_end", table_name="ad_campaigns")
    op.drop_index("uq_ad_campaigns_business_open", table_name="ad_campaigns")
    op.drop_table("ad_campaigns")
    op.drop_index("ix_businesses_owner", table_name="businesses")
    op.drop_table("businesses")
    op.drop_index("ix_subscription_payments_subscription_created", table_name="subscription_payments")
    op.drop_table("subscription_payments")
    op.drop_index("ix_subscriptions_profile_status", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_table("subscription_plans")
    op.drop_index("ix_membership_orders_profile_created", table_name="membership_orders")
    op.drop_table("membership_orders")
    op.drop_table("profiles")
    op.drop_table("membership_plans")
