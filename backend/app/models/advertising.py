import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class Business(Base):
    __tablename__ = "businesses"

    id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, primary_key=True, server_default=sa.text("gen_random_uuid()"))
    owner_id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(sa.Text, nullable=False)
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))

    __table_args__ = (sa.Index("ix_businesses_owner", "owner_id"),)


class AdCampaign(Base):
    __tablename__ = "ad_campaigns"

    id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, primary_key=True, server_default=sa.text("gen_random_uuid()"))
    business_id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, sa.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default="pending_payment")
    start_at: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    end_at: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    days_purchased: Mapped[int] = mapped_column(sa.Integer, nullable=False, server_default=sa.text("0"))
    daily_rate_cents: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    total_amount_cents: Mapped[int] = mapped_column(sa.Integer, nullable=False, server_default=sa.text("0"))
    discount_percent: Mapped[float] = mapped_column(sa.Numeric(5, 2), nullable=False, server_default=sa.text("0"))
    had_membership: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.text("false"))
    stripe_session_id: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))
    updated_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))

    __table_args__ = (
        sa.CheckConstraint(
            "status IN ('pending_payment','active','expired','cancelled')",
            name="ck_ad_campaigns_status",
        ),
        sa.CheckConstraint("days_purchased >= 0", name="ck_ad_campaigns_days"),
        sa.CheckConstraint("end_at IS NULL OR start_at IS NULL OR end_at > start_at", name="ck_ad_campaigns_window"),
        # One open timeline per business
        sa.Index(
            "uq_ad_campaigns_business_open",
            "business_id",
            unique=True,
            postgresql_where=sa.text("status IN ('active','pending_payment')"),
        ),
        sa.Index("ix_ad_campaigns_status_end", "status", "end_at"),
    )


class AdPurchase(Base):
    """One completed advertising checkout; the campaign row only keeps totals."""

    __tablename__ = "ad_purchases"

    id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, primary_key=True, server_default=sa.text("gen_random_uuid()"))
    business_id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, sa.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False)
    campaign_id: Mapped[sa.Uuid | None] = mapped_column(sa.Uuid, sa.ForeignKey("ad_campaigns.id", ondelete="SET NULL"), nullable=True)
    stripe_session_id: Mapped[str] = mapped_column(sa.Text, nullable=False)
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    days: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    daily_rate_cents: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    discount_percent: Mapped[float] = mapped_column(sa.Numeric(5, 2), nullable=False, server_default=sa.text("0"))
    total_amount_cents: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    had_membership: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.text("false"))
    start_at: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    end_at: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))

    __table_args__ = (
        sa.CheckConstraint("days >= 1", name="ck_ad_purchases_days"),
        sa.UniqueConstraint("stripe_session_id", name="uq_ad_purchases_stripe_session_id"),
        sa.Index("ix_ad_purchases_business_created", "business_id", sa.text("created_at DESC")),
    )
