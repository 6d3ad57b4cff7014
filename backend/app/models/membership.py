import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class MembershipPlan(Base):
    __tablename__ = "membership_plans"

    id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, primary_key=True, server_default=sa.text("gen_random_uuid()"))
    code: Mapped[str] = mapped_column(sa.Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(sa.Text, nullable=False)
    price_cents: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    currency: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default="usd")
    interval: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default="month")
    description: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    features: Mapped[list] = mapped_column(postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb"))
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.text("true"))
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))

    __table_args__ = (
        sa.CheckConstraint("price_cents > 0", name="ck_membership_plans_price"),
        sa.CheckConstraint("interval IN ('month','year')", name="ck_membership_plans_interval"),
        sa.Index("ix_membership_plans_active_price", "is_active", "price_cents"),
    )


class MembershipOrder(Base):
    __tablename__ = "membership_orders"

    id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, primary_key=True, server_default=sa.text("gen_random_uuid()"))
    profile_id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    membership_plan_id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, sa.ForeignKey("membership_plans.id"), nullable=False)
    status: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default="pending")
    amount_cents: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    currency: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default="usd")
    stripe_session_id: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    paid_at: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))
    updated_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))

    __table_args__ = (
        sa.CheckConstraint(
            "status IN ('pending','paid','failed','refunded')",
            name="ck_membership_orders_status",
        ),
        sa.CheckConstraint("status <> 'paid' OR paid_at IS NOT NULL", name="ck_membership_orders_paid_at"),
        sa.UniqueConstraint("stripe_session_id", name="uq_membership_orders_stripe_session_id"),
        sa.Index("ix_membership_orders_profile_created", "profile_id", sa.text("created_at DESC")),
    )
