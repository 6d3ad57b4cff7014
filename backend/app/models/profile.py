import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base

class Profile(Base):
    """Application profile; rows are created at signup by the identity side."""

    __tablename__ = "profiles"

    id: Mapped[sa.Uuid] = mapped_column(sa.Uuid, primary_key=True)
    email: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    name: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    stripe_customer_id: Mapped[str | None] = mapped_column(sa.Text, nullable=True, unique=True)
    current_subscription_id: Mapped[sa.Uuid | None] = mapped_column(sa.Uuid, nullable=True)
    membership_plan_id: Mapped[sa.Uuid | None] = mapped_column(
        sa.Uuid,
        sa.ForeignKey("membership_plans.id", ondelete="SET NULL"),
        nullable=True,
    )
    membership_started_at: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    membership_expires_at: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))
    updated_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))

    __table_args__ = (
        sa.CheckConstraint(
            "membership_plan_id IS NULL OR membership_expires_at IS NOT NULL",
            name="ck_profiles_membership_expiry",
        ),
    )
