import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, primary_key=True, server_default=sa.text("gen_random_uuid()"))
    code: Mapped[str] = mapped_column(sa.Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(sa.Text, nullable=False)
    price_cents: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    currency: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default="usd")
    billing_interval: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default="month")
    billing_interval_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, server_default=sa.text("1"))
    stripe_price_id: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    stripe_product_id: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    description: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    features: Mapped[list] = mapped_column(postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb"))
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.text("true"))
    is_featured: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.text("false"))
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))
    updated_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))

    __table_args__ = (
        sa.CheckConstraint(
            "billing_interval IN ('day','week','month','year')",
            name="ck_subscription_plans_interval",
        ),
        sa.Index("ix_subscription_plans_active_price", "is_active", "price_cents"),
    )


class Subscription(Base):
    __tablename__ = "subscriptions"

    id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, primary_key=True, server_default=sa.text("gen_random_uuid()"))
    profile_id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    subscription_plan_id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, sa.ForeignKey("subscription_plans.id"), nullable=False)
    stripe_subscription_id: Mapped[str] = mapped_column(sa.Text, nullable=False)
    stripe_customer_id: Mapped[str] = mapped_column(sa.Text, nullable=False)
    stripe_price_id: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    status: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default="incomplete")
    cancel_at_period_end: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.text("false"))
    current_period_start: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    current_period_end: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    canceled_at: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    ended_at: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))
    updated_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))

    __table_args__ = (
        sa.CheckConstraint(
            "status IN ('trialing','active','past_due','canceled','incomplete','incomplete_expired','unpaid')",
            name="ck_subscriptions_status",
        ),
        sa.UniqueConstraint("stripe_subscription_id", name="uq_subscriptions_stripe_subscription_id"),
        sa.Index("ix_subscriptions_profile_status", "profile_id", "status"),
    )


class SubscriptionPayment(Base):
    __tablename__ = "subscription_payments"

    id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, primary_key=True, server_default=sa.text("gen_random_uuid()"))
    subscription_id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, sa.ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False)
    profile_id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    stripe_invoice_id: Mapped[str] = mapped_column(sa.Text, nullable=False)
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    amount_cents: Mapped[int] = mapped_column(sa.Integer, nullable=False, server_default=sa.text("0"))
    currency: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default="usd")
    status: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default="pending")
    billing_reason: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    period_start: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    period_end: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    paid_at: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))

    __table_args__ = (
        sa.CheckConstraint(
            "status IN ('pending','paid','failed','refunded')",
            name="ck_subscription_payments_status",
        ),
        sa.UniqueConstraint("stripe_invoice_id", name="uq_subscription_payments_stripe_invoice_id"),
        sa.Index("ix_subscription_payments_subscription_created", "subscription_id", sa.text("created_at DESC")),
    )
