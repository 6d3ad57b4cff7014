from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

OPEN_CAMPAIGN_STATUSES = ("active", "pending_payment")
SUBSCRIPTION_UPDATABLE_FIELDS = {
    "status",
    "cancel_at_period_end",
    "current_period_start",
    "current_period_end",
    "canceled_at",
    "ended_at",
}


@dataclass(frozen=True)
class ProfileRecord:
    id: str
    email: str | None
    name: str | None
    stripe_customer_id: str | None
    membership_plan_id: str | None
    membership_started_at: datetime | None
    membership_expires_at: datetime | None


@dataclass(frozen=True)
class MembershipPlanRecord:
    id: str
    code: str
    name: str
    price_cents: int
    currency: str
    interval: str
    is_active: bool


@dataclass(frozen=True)
class MembershipOrderRecord:
    id: str
    profile_id: str
    membership_plan_id: str
    status: str
    amount_cents: int
    currency: str
    stripe_session_id: str | None
    stripe_payment_intent_id: str | None
    paid_at: datetime | None


@dataclass(frozen=True)
class SubscriptionPlanRecord:
    id: str
    code: str
    name: str
    price_cents: int
    currency: str
    billing_interval: str
    billing_interval_count: int
    stripe_price_id: str | None
    stripe_product_id: str | None
    is_active: bool


@dataclass(frozen=True)
class SubscriptionRecord:
    id: str
    profile_id: str
    subscription_plan_id: str
    stripe_subscription_id: str
    stripe_customer_id: str
    stripe_price_id: str | None
    status: str
    cancel_at_period_end: bool
    current_period_start: datetime | None
    current_period_end: datetime | None
    canceled_at: datetime | None
    ended_at: datetime | None


@dataclass(frozen=True)
class BusinessRecord:
    id: str
    owner_id: str
    name: str


@dataclass(frozen=True)
class AdCampaignRecord:
    id: str
    business_id: str
    status: str
    start_at: datetime | None
    end_at: datetime | None
    days_purchased: int
    daily_rate_cents: int
    total_amount_cents: int
    discount_percent: float
    had_membership: bool
    stripe_session_id: str | None
    stripe_payment_intent_id: str | None
    created_at: datetime | None = None


class EntitlementStore(Protocol):
    """Single-row reads and writes the reconciliation handlers rely on.

    Every write is atomic on its row. Writes that act as idempotency guards
    report whether a row actually changed instead of raising.
    """

    def get_profile(self, profile_id: str) -> ProfileRecord | None: ...

    def update_profile_membership(
        self, profile_id: str, *, plan_id: str, started_at: datetime, expires_at: datetime
    ) -> bool: ...

    def get_membership_plan(self, plan_id: str) -> MembershipPlanRecord | None: ...

    def get_order(self, order_id: str) -> MembershipOrderRecord | None: ...

    def mark_order_paid(self, order_id: str, *, payment_intent_id: str | None, paid_at: datetime) -> bool: ...

    def mark_order_failed(self, order_id: str) -> bool: ...

    def get_subscription_plan(self, plan_id: str) -> SubscriptionPlanRecord | None: ...

    def get_subscription_by_external_id(self, stripe_subscription_id: str) -> SubscriptionRecord | None: ...

    def create_subscription(
        self,
        *,
        profile_id: str,
        plan_id: str,
        stripe_subscription_id: str,
        stripe_customer_id: str,
        stripe_price_id: str | None,
        status: str,
        current_period_start: datetime | None,
        current_period_end: datetime | None,
    ) -> SubscriptionRecord | None: ...

    def update_subscription(self, subscription_id: str, fields: dict) -> bool: ...

    def upsert_subscription_payment(
        self,
        *,
        subscription_id: str,
        profile_id: str,
        stripe_invoice_id: str,
        stripe_payment_intent_id: str | None,
        amount_cents: int,
        currency: str,
        billing_reason: str | None,
        period_start: datetime | None,
        period_end: datetime | None,
        status: str,
        paid_at: datetime | None,
    ) -> None: ...

    def get_business(self, business_id: str) -> BusinessRecord | None: ...

    def get_active_campaign(self, business_id: str) -> AdCampaignRecord | None: ...

    def claim_ad_purchase(
        self,
        *,
        business_id: str,
        stripe_session_id: str,
        stripe_payment_intent_id: str | None,
        days: int,
        daily_rate_cents: int,
        discount_percent: float,
        total_amount_cents: int,
        had_membership: bool,
    ) -> str | None: ...

    def attach_ad_purchase(self, purchase_id: str, *, campaign_id: str, start_at: datetime, end_at: datetime) -> None: ...

    def create_campaign(
        self,
        *,
        business_id: str,
        start_at: datetime,
        end_at: datetime,
        days: int,
        daily_rate_cents: int,
        total_amount_cents: int,
        discount_percent: float,
        had_membership: bool,
        stripe_session_id: str | None,
        stripe_payment_intent_id: str | None,
    ) -> AdCampaignRecord | None: ...

    def extend_campaign(
        self,
        campaign_id: str,
        *,
        expected_end_at: datetime | None,
        start_at: datetime,
        end_at: datetime,
        days: int,
        daily_rate_cents: int,
        total_amount_cents: int,
        discount_percent: float,
        had_membership: bool,
        stripe_session_id: str | None,
        stripe_payment_intent_id: str | None,
    ) -> bool: ...

    def expire_campaign(self, campaign_id: str) -> bool: ...

    def get_webhook_event_status(self, event_id: str) -> str | None: ...

    def record_webhook_event(
        self, *, event_id: str, event_type: str, status: str, message: str | None, error_message: str | None
    ) -> None: ...


_PROFILE_COLUMNS = """
    id::text AS id,
    email,
    name,
    stripe_customer_id,
    membership_plan_id::text AS membership_plan_id,
    membership_started_at,
    membership_expires_at
"""

_ORDER_COLUMNS = """
    id::text AS id,
    profile_id::text AS profile_id,
    membership_plan_id::text AS membership_plan_id,
    status,
    amount_cents,
    currency,
    stripe_session_id,
    stripe_payment_intent_id,
    paid_at
"""

_SUBSCRIPTION_PLAN_COLUMNS = """
    id::text AS id,
    code,
    name,
    price_cents,
    currency,
    billing_interval,
    billing_interval_count,
    stripe_price_id,
    stripe_product_id,
    is_active
"""

_SUBSCRIPTION_COLUMNS = """
    id::text AS id,
    profile_id::text AS profile_id,
    subscription_plan_id::text AS subscription_plan_id,
    stripe_subscription_id,
    stripe_customer_id,
    stripe_price_id,
    status,
    cancel_at_period_end,
    current_period_start,
    current_period_end,
    canceled_at,
    ended_at
"""

_CAMPAIGN_COLUMNS = """
    id::text AS id,
    business_id::text AS business_id,
    status,
    start_at,
    end_at,
    days_purchased,
    daily_rate_cents,
    total_amount_cents,
    discount_percent,
    had_membership,
    stripe_session_id,
    stripe_payment_intent_id,
    created_at
"""


def _campaign(row) -> AdCampaignRecord:
    data = dict(row)
    data["discount_percent"] = float(data["discount_percent"] or 0)
    return AdCampaignRecord(**data)


class SqlEntitlementStore:
    """PostgreSQL implementation over the request's SQLAlchemy session.

    The store never commits; the caller owns the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    # profiles

    def get_profile(self, profile_id: str) -> ProfileRecord | None:
        row = self.db.execute(
            sa.text(f"SELECT {_PROFILE_COLUMNS} FROM profiles WHERE id=:id"),
            {"id": profile_id},
        ).mappings().first()
        return ProfileRecord(**row) if row else None

    def update_profile_membership(
        self, profile_id: str, *, plan_id: str, started_at: datetime, expires_at: datetime
    ) -> bool:
        result = self.db.execute(
            sa.text(
                """
                UPDATE profiles
                SET membership_plan_id=:plan_id,
                    membership_started_at=:started_at,
                    membership_expires_at=:expires_at,
                    updated_at=now()
                WHERE id=:id
                """
            ),
            {"id": profile_id, "plan_id": plan_id, "started_at": started_at, "expires_at": expires_at},
        )
        return result.rowcount == 1

    def set_profile_customer_id(self, profile_id: str, customer_id: str) -> None:
        self.db.execute(
            sa.text(
                """
                UPDATE profiles
                SET stripe_customer_id=:customer_id, updated_at=now()
                WHERE id=:id AND stripe_customer_id IS NULL
                """
            ),
            {"id": profile_id, "customer_id": customer_id},
        )

    # memberships

    def get_membership_plan(self, plan_id: str) -> MembershipPlanRecord | None:
        row = self.db.execute(
            sa.text(
                """
                SELECT id::text AS id, code, name, price_cents, currency, interval, is_active
                FROM membership_plans
                WHERE id=:id
                """
            ),
            {"id": plan_id},
        ).mappings().first()
        return MembershipPlanRecord(**row) if row else None

    def list_active_membership_plans(self) -> list[dict]:
        rows = self.db.execute(
            sa.text(
                """
                SELECT id::text AS id, code, name, price_cents, currency, interval, description, features
                FROM membership_plans
                WHERE is_active = true
                ORDER BY price_cents ASC, code ASC
                """
            )
        ).mappings().all()
        return [dict(r) for r in rows]

    def create_membership_order(self, *, profile_id: str, plan_id: str, amount_cents: int, currency: str) -> MembershipOrderRecord:
        row = self.db.execute(
            sa.text(
                f"""
                INSERT INTO membership_orders (profile_id, membership_plan_id, status, amount_cents, currency)
                VALUES (:profile_id, :plan_id, 'pending', :amount_cents, :currency)
                RETURNING {_ORDER_COLUMNS}
                """
            ),
            {"profile_id": profile_id, "plan_id": plan_id, "amount_cents": amount_cents, "currency": currency},
        ).mappings().one()
        return MembershipOrderRecord(**row)

    def set_order_session(self, order_id: str, stripe_session_id: str) -> None:
        self.db.execute(
            sa.text(
                """
                UPDATE membership_orders
                SET stripe_session_id=:session_id, updated_at=now()
                WHERE id=:id
                """
            ),
            {"id": order_id, "session_id": stripe_session_id},
        )

    def get_order(self, order_id: str) -> MembershipOrderRecord | None:
        row = self.db.execute(
            sa.text(f"SELECT {_ORDER_COLUMNS} FROM membership_orders WHERE id=:id"),
            {"id": order_id},
        ).mappings().first()
        return MembershipOrderRecord(**row) if row else None

    def mark_order_paid(self, order_id: str, *, payment_intent_id: str | None, paid_at: datetime) -> bool:
        row = self.db.execute(
            sa.text(
                """
                UPDATE membership_orders
                SET status='paid',
                    paid_at=:paid_at,
                    stripe_payment_intent_id=COALESCE(:payment_intent_id, stripe_payment_intent_id),
                    updated_at=now()
                WHERE id=:id AND status='pending'
                RETURNING id::text AS id
                """
            ),
            {"id": order_id, "paid_at": paid_at, "payment_intent_id": payment_intent_id},
        ).mappings().first()
        return row is not None

    def mark_order_failed(self, order_id: str) -> bool:
        row = self.db.execute(
            sa.text(
                """
                UPDATE membership_orders
                SET status='failed', updated_at=now()
                WHERE id=:id AND status='pending'
                RETURNING id::text AS id
                """
            ),
            {"id": order_id},
        ).mappings().first()
        return row is not None

    def has_active_membership(self, profile_id: str, now: datetime) -> bool:
        row = self.db.execute(
            sa.text(
                """
                SELECT
                    EXISTS (
                        SELECT 1 FROM subscriptions
                        WHERE profile_id=:id AND status='active'
                    ) AS has_subscription,
                    EXISTS (
                        SELECT 1 FROM profiles
                        WHERE id=:id
                          AND membership_plan_id IS NOT NULL
                          AND membership_expires_at > :now
                    ) AS has_membership
                """
            ),
            {"id": profile_id, "now": now},
        ).mappings().one()
        return bool(row["has_subscription"] or row["has_membership"])

    # subscriptions

    def get_subscription_plan(self, plan_id: str) -> SubscriptionPlanRecord | None:
        row = self.db.execute(
            sa.text(f"SELECT {_SUBSCRIPTION_PLAN_COLUMNS} FROM subscription_plans WHERE id=:id"),
            {"id": plan_id},
        ).mappings().first()
        return SubscriptionPlanRecord(**row) if row else None

    def list_active_subscription_plans(self) -> list[dict]:
        rows = self.db.execute(
            sa.text(
                """
                SELECT id::text AS id, code, name, price_cents, currency,
                       billing_interval, billing_interval_count, stripe_price_id,
                       description, features, is_featured
                FROM subscription_plans
                WHERE is_active = true
                ORDER BY price_cents ASC, code ASC
                """
            )
        ).mappings().all()
        return [dict(r) for r in rows]

    def get_subscription_by_external_id(self, stripe_subscription_id: str) -> SubscriptionRecord | None:
        row = self.db.execute(
            sa.text(f"SELECT {_SUBSCRIPTION_COLUMNS} FROM subscriptions WHERE stripe_subscription_id=:sub_id"),
            {"sub_id": stripe_subscription_id},
        ).mappings().first()
        return SubscriptionRecord(**row) if row else None

    def get_current_subscription(self, profile_id: str) -> SubscriptionRecord | None:
        row = self.db.execute(
            sa.text(
                f"""
                SELECT {_SUBSCRIPTION_COLUMNS}
                FROM subscriptions
                WHERE profile_id=:profile_id
                  AND status IN ('active','trialing','past_due')
                ORDER BY created_at DESC, id DESC
                LIMIT 1
                """
            ),
            {"profile_id": profile_id},
        ).mappings().first()
        return SubscriptionRecord(**row) if row else None

    def create_subscription(
        self,
        *,
        profile_id: str,
        plan_id: str,
        stripe_subscription_id: str,
        stripe_customer_id: str,
        stripe_price_id: str | None,
        status: str,
        current_period_start: datetime | None,
        current_period_end: datetime | None,
    ) -> SubscriptionRecord | None:
        row = self.db.execute(
            sa.text(
                f"""
                INSERT INTO subscriptions (
                    profile_id,
                    subscription_plan_id,
                    stripe_subscription_id,
                    stripe_customer_id,
                    stripe_price_id,
                    status,
                    cancel_at_period_end,
                    current_period_start,
                    current_period_end
                )
                VALUES (
                    :profile_id,
                    :plan_id,
                    :sub_id,
                    :customer_id,
                    :price_id,
                    :status,
                    false,
                    :period_start,
                    :period_end
                )
                ON CONFLICT (stripe_subscription_id) DO NOTHING
                RETURNING {_SUBSCRIPTION_COLUMNS}
                """
            ),
            {
                "profile_id": profile_id,
                "plan_id": plan_id,
                "sub_id": stripe_subscription_id,
                "customer_id": stripe_customer_id,
                "price_id": stripe_price_id,
                "status": status,
                "period_start": current_period_start,
                "period_end": current_period_end,
            },
        ).mappings().first()
        if not row:
            return None
        self.db.execute(
            sa.text(
                """
                UPDATE profiles
                SET current_subscription_id=:sub_id, updated_at=now()
                WHERE id=:profile_id
                """
            ),
            {"sub_id": row["id"], "profile_id": profile_id},
        )
        return SubscriptionRecord(**row)

    def update_subscription(self, subscription_id: str, fields: dict) -> bool:
        unknown = set(fields) - SUBSCRIPTION_UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported subscription fields: {sorted(unknown)}")
        if not fields:
            return True
        assignments = ", ".join(f"{name}=:{name}" for name in sorted(fields))
        result = self.db.execute(
            sa.text(f"UPDATE subscriptions SET {assignments}, updated_at=now() WHERE id=:id"),
            {"id": subscription_id, **fields},
        )
        return result.rowcount == 1

    def upsert_subscription_payment(
        self,
        *,
        subscription_id: str,
        profile_id: str,
        stripe_invoice_id: str,
        stripe_payment_intent_id: str | None,
        amount_cents: int,
        currency: str,
        billing_reason: str | None,
        period_start: datetime | None,
        period_end: datetime | None,
        status: str,
        paid_at: datetime | None,
    ) -> None:
        self.db.execute(
            sa.text(
                """
                INSERT INTO subscription_payments (
                    subscription_id,
                    profile_id,
                    stripe_invoice_id,
                    stripe_payment_intent_id,
                    amount_cents,
                    currency,
                    status,
                    billing_reason,
                    period_start,
                    period_end,
                    paid_at
                )
                VALUES (
                    :subscription_id,
                    :profile_id,
                    :invoice_id,
                    :payment_intent_id,
                    :amount_cents,
                    :currency,
                    :status,
                    :billing_reason,
                    :period_start,
                    :period_end,
                    :paid_at
                )
                ON CONFLICT (stripe_invoice_id) DO UPDATE
                SET status=CASE
                        WHEN subscription_payments.status='paid' THEN subscription_payments.status
                        ELSE EXCLUDED.status
                    END,
                    stripe_payment_intent_id=COALESCE(EXCLUDED.stripe_payment_intent_id, subscription_payments.stripe_payment_intent_id),
                    paid_at=COALESCE(subscription_payments.paid_at, EXCLUDED.paid_at)
                """
            ),
            {
                "subscription_id": subscription_id,
                "profile_id": profile_id,
                "invoice_id": stripe_invoice_id,
                "payment_intent_id": stripe_payment_intent_id,
                "amount_cents": amount_cents,
                "currency": currency,
                "status": status,
                "billing_reason": billing_reason,
                "period_start": period_start,
                "period_end": period_end,
                "paid_at": paid_at,
            },
        )

    # advertising

    def get_business(self, business_id: str) -> BusinessRecord | None:
        row = self.db.execute(
            sa.text("SELECT id::text AS id, owner_id::text AS owner_id, name FROM businesses WHERE id=:id"),
            {"id": business_id},
        ).mappings().first()
        return BusinessRecord(**row) if row else None

    def get_active_campaign(self, business_id: str) -> AdCampaignRecord | None:
        row = self.db.execute(
            sa.text(
                f"""
                SELECT {_CAMPAIGN_COLUMNS}
                FROM ad_campaigns
                WHERE business_id=:business_id
                  AND status IN ('active','pending_payment')
                ORDER BY created_at DESC, id DESC
                LIMIT 1
                """
            ),
            {"business_id": business_id},
        ).mappings().first()
        return _campaign(row) if row else None

    def claim_ad_purchase(
        self,
        *,
        business_id: str,
        stripe_session_id: str,
        stripe_payment_intent_id: str | None,
        days: int,
        daily_rate_cents: int,
        discount_percent: float,
        total_amount_cents: int,
        had_membership: bool,
    ) -> str | None:
        row = self.db.execute(
            sa.text(
                """
                INSERT INTO ad_purchases (
                    business_id,
                    stripe_session_id,
                    stripe_payment_intent_id,
                    days,
                    daily_rate_cents,
                    discount_percent,
                    total_amount_cents,
                    had_membership
                )
                VALUES (
                    :business_id,
                    :session_id,
                    :payment_intent_id,
                    :days,
                    :rate,
                    :discount,
                    :total,
                    :had_membership
                )
                ON CONFLICT (stripe_session_id) DO NOTHING
                RETURNING id::text AS id
                """
            ),
            {
                "business_id": business_id,
                "session_id": stripe_session_id,
                "payment_intent_id": stripe_payment_intent_id,
                "days": days,
                "rate": daily_rate_cents,
                "discount": discount_percent,
                "total": total_amount_cents,
                "had_membership": had_membership,
            },
        ).mappings().first()
        return row["id"] if row else None

    def attach_ad_purchase(self, purchase_id: str, *, campaign_id: str, start_at: datetime, end_at: datetime) -> None:
        self.db.execute(
            sa.text(
                """
                UPDATE ad_purchases
                SET campaign_id=:campaign_id, start_at=:start_at, end_at=:end_at
                WHERE id=:id
                """
            ),
            {"id": purchase_id, "campaign_id": campaign_id, "start_at": start_at, "end_at": end_at},
        )

    def create_campaign(
        self,
        *,
        business_id: str,
        start_at: datetime,
        end_at: datetime,
        days: int,
        daily_rate_cents: int,
        total_amount_cents: int,
        discount_percent: float,
        had_membership: bool,
        stripe_session_id: str | None,
        stripe_payment_intent_id: str | None,
    ) -> AdCampaignRecord | None:
        # Savepoint: losing the open-campaign uniqueness race must not abort the request transaction.
        try:
            with self.db.begin_nested():
                row = self.db.execute(
                    sa.text(
                        f"""
                        INSERT INTO ad_campaigns (
                            business_id,
                            status,
                            start_at,
                            end_at,
                            days_purchased,
                            daily_rate_cents,
                            total_amount_cents,
                            discount_percent,
                            had_membership,
                            stripe_session_id,
                            stripe_payment_intent_id
                        )
                        VALUES (
                            :business_id,
                            'active',
                            :start_at,
                            :end_at,
                            :days,
                            :rate,
                            :total,
                            :discount,
                            :had_membership,
                            :session_id,
                            :payment_intent_id
                        )
                        RETURNING {_CAMPAIGN_COLUMNS}
                        """
                    ),
                    {
                        "business_id": business_id,
                        "start_at": start_at,
                        "end_at": end_at,
                        "days": days,
                        "rate": daily_rate_cents,
                        "total": total_amount_cents,
                        "discount": discount_percent,
                        "had_membership": had_membership,
                        "session_id": stripe_session_id,
                        "payment_intent_id": stripe_payment_intent_id,
                    },
                ).mappings().one()
        except IntegrityError:
            return None
        return _campaign(row)

    def extend_campaign(
        self,
        campaign_id: str,
        *,
        expected_end_at: datetime | None,
        start_at: datetime,
        end_at: datetime,
        days: int,
        daily_rate_cents: int,
        total_amount_cents: int,
        discount_percent: float,
        had_membership: bool,
        stripe_session_id: str | None,
        stripe_payment_intent_id: str | None,
    ) -> bool:
        row = self.db.execute(
            sa.text(
                """
                UPDATE ad_campaigns
                SET status='active',
                    start_at=COALESCE(start_at, :start_at),
                    end_at=:end_at,
                    days_purchased=days_purchased + :days,
                    total_amount_cents=total_amount_cents + :total,
                    daily_rate_cents=:rate,
                    discount_percent=:discount,
                    had_membership=:had_membership,
                    stripe_session_id=:session_id,
                    stripe_payment_intent_id=:payment_intent_id,
                    updated_at=now()
                WHERE id=:id
                  AND status IN ('active','pending_payment')
                  AND end_at IS NOT DISTINCT FROM :expected_end_at
                RETURNING id::text AS id
                """
            ),
            {
                "id": campaign_id,
                "expected_end_at": expected_end_at,
                "start_at": start_at,
                "end_at": end_at,
                "days": days,
                "total": total_amount_cents,
                "rate": daily_rate_cents,
                "discount": discount_percent,
                "had_membership": had_membership,
                "session_id": stripe_session_id,
                "payment_intent_id": stripe_payment_intent_id,
            },
        ).mappings().first()
        return row is not None

    def expire_campaign(self, campaign_id: str) -> bool:
        row = self.db.execute(
            sa.text(
                """
                UPDATE ad_campaigns
                SET status='expired', updated_at=now()
                WHERE id=:id AND status IN ('active','pending_payment')
                RETURNING id::text AS id
                """
            ),
            {"id": campaign_id},
        ).mappings().first()
        return row is not None

    def expire_lapsed_campaigns(self, now: datetime, *, limit: int = 500) -> int:
        rows = self.db.execute(
            sa.text(
                """
                UPDATE ad_campaigns
                SET status='expired', updated_at=now()
                WHERE id IN (
                    SELECT id FROM ad_campaigns
                    WHERE status='active' AND end_at <= :now
                    ORDER BY end_at ASC
                    LIMIT :limit
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING id
                """
            ),
            {"now": now, "limit": limit},
        ).all()
        return len(rows)

    # webhook ledger

    def get_webhook_event_status(self, event_id: str) -> str | None:
        row = self.db.execute(
            sa.text("SELECT status FROM webhook_events WHERE event_id=:event_id"),
            {"event_id": event_id},
        ).mappings().first()
        return str(row["status"]) if row else None

    def record_webhook_event(
        self, *, event_id: str, event_type: str, status: str, message: str | None, error_message: str | None
    ) -> None:
        self.db.execute(
            sa.text(
                """
                INSERT INTO webhook_events (event_id, event_type, status, message, error_message, processed_at)
                VALUES (:event_id, :event_type, :status, :message, :error_message, now())
                ON CONFLICT (event_id) DO UPDATE
                SET status=CASE
                        WHEN webhook_events.status='processed' THEN webhook_events.status
                        ELSE EXCLUDED.status
                    END,
                    message=EXCLUDED.message,
                    error_message=EXCLUDED.error_message,
                    attempts=webhook_events.attempts + 1,
                    processed_at=now()
                """
            ),
            {
                "event_id": event_id,
                "event_type": event_type,
                "status": status,
                "message": (message or "")[:1000] or None,
                "error_message": (error_message or "")[:1000] or None,
            },
        )
