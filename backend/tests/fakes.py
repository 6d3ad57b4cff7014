from __future__ import annotations

from dataclasses import replace
from datetime import datetime
import itertools

from app.schemas.webhooks import InvoiceObject, StripeEventIn, SubscriptionObject
from app.services.billing_provider import CheckoutSessionRequest, CheckoutSessionResponse
from app.services.entitlement_store import (
    OPEN_CAMPAIGN_STATUSES,
    SUBSCRIPTION_UPDATABLE_FIELDS,
    AdCampaignRecord,
    BusinessRecord,
    MembershipOrderRecord,
    MembershipPlanRecord,
    ProfileRecord,
    SubscriptionPlanRecord,
    SubscriptionRecord,
)


class FakeStore:
    """In-memory EntitlementStore with the same conditional-write rules as the SQL one."""

    def __init__(self):
        self._ids = itertools.count(1)
        self.profiles: dict[str, ProfileRecord] = {}
        self.membership_plans: dict[str, MembershipPlanRecord] = {}
        self.orders: dict[str, MembershipOrderRecord] = {}
        self.subscription_plans: dict[str, SubscriptionPlanRecord] = {}
        self.subscriptions: dict[str, SubscriptionRecord] = {}
        self.payments: dict[str, dict] = {}
        self.businesses: dict[str, BusinessRecord] = {}
        self.campaigns: dict[str, AdCampaignRecord] = {}
        self.purchases: dict[str, dict] = {}
        self.events: dict[str, dict] = {}
        self.plan_extras: dict[str, dict] = {}
        self.profile_updates = 0
        # Hooks run once right before the matching write, to simulate a concurrent request.
        self.before_create_campaign = None
        self.before_extend_campaign = None

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids)}"

    # seeding

    def add_profile(self, *, membership_expires_at: datetime | None = None, membership_started_at: datetime | None = None, plan_id: str | None = None) -> ProfileRecord:
        profile = ProfileRecord(
            id=self._new_id("profile"),
            email="owner@example.com",
            name="Owner",
            stripe_customer_id=None,
            membership_plan_id=plan_id,
            membership_started_at=membership_started_at,
            membership_expires_at=membership_expires_at,
        )
        self.profiles[profile.id] = profile
        return profile

    def add_membership_plan(self, *, interval: str = "month", price_cents: int = 999, is_active: bool = True, features: list[str] | None = None) -> MembershipPlanRecord:
        plan = MembershipPlanRecord(
            id=self._new_id("mplan"),
            code=f"member_{interval}_{price_cents}",
            name=f"Member ({interval})",
            price_cents=price_cents,
            currency="usd",
            interval=interval,
            is_active=is_active,
        )
        self.membership_plans[plan.id] = plan
        self.plan_extras[plan.id] = {"description": None, "features": features or []}
        return plan

    def add_order(self, profile: ProfileRecord, plan: MembershipPlanRecord, *, status: str = "pending") -> MembershipOrderRecord:
        order = MembershipOrderRecord(
            id=self._new_id("order"),
            profile_id=profile.id,
            membership_plan_id=plan.id,
            status=status,
            amount_cents=plan.price_cents,
            currency=plan.currency,
            stripe_session_id=None,
            stripe_payment_intent_id=None,
            paid_at=None,
        )
        self.orders[order.id] = order
        return order

    def add_subscription_plan(
        self,
        *,
        price_id: str | None = "price_pro",
        price_cents: int = 1999,
        interval_count: int = 1,
        is_active: bool = True,
        is_featured: bool = False,
    ) -> SubscriptionPlanRecord:
        plan = SubscriptionPlanRecord(
            id=self._new_id("splan"),
            code=f"pro_{price_cents}",
            name="Pro",
            price_cents=price_cents,
            currency="usd",
            billing_interval="month",
            billing_interval_count=interval_count,
            stripe_price_id=price_id,
            stripe_product_id="prod_pro",
            is_active=is_active,
        )
        self.subscription_plans[plan.id] = plan
        self.plan_extras[plan.id] = {"description": "Everything in Pro", "features": ["priority listing"], "is_featured": is_featured}
        return plan

    def add_subscription(self, profile: ProfileRecord, plan: SubscriptionPlanRecord, *, stripe_subscription_id: str, status: str = "active") -> SubscriptionRecord:
        sub = SubscriptionRecord(
            id=self._new_id("sub"),
            profile_id=profile.id,
            subscription_plan_id=plan.id,
            stripe_subscription_id=stripe_subscription_id,
            stripe_customer_id="cus_1",
            stripe_price_id=plan.stripe_price_id,
            status=status,
            cancel_at_period_end=False,
            current_period_start=None,
            current_period_end=None,
            canceled_at=None,
            ended_at=None,
        )
        self.subscriptions[sub.id] = sub
        return sub

    def add_business(self, owner: ProfileRecord) -> BusinessRecord:
        business = BusinessRecord(id=self._new_id("biz"), owner_id=owner.id, name="Corner Cafe")
        self.businesses[business.id] = business
        return business

    def add_campaign(self, business: BusinessRecord, *, start_at: datetime | None, end_at: datetime | None, days: int, total: int, status: str = "active") -> AdCampaignRecord:
        campaign = AdCampaignRecord(
            id=self._new_id("campaign"),
            business_id=business.id,
            status=status,
            start_at=start_at,
            end_at=end_at,
            days_purchased=days,
            daily_rate_cents=500,
            total_amount_cents=total,
            discount_percent=0.0,
            had_membership=False,
            stripe_session_id=None,
            stripe_payment_intent_id=None,
            created_at=start_at,
        )
        self.campaigns[campaign.id] = campaign
        return campaign

    def open_campaigns(self, business_id: str) -> list[AdCampaignRecord]:
        return [c for c in self.campaigns.values() if c.business_id == business_id and c.status in OPEN_CAMPAIGN_STATUSES]

    # profiles and memberships

    def get_profile(self, profile_id):
        return self.profiles.get(profile_id)

    def update_profile_membership(self, profile_id, *, plan_id, started_at, expires_at):
        if profile_id not in self.profiles:
            return False
        self.profiles[profile_id] = replace(
            self.profiles[profile_id],
            membership_plan_id=plan_id,
            membership_started_at=started_at,
            membership_expires_at=expires_at,
        )
        self.profile_updates += 1
        return True

    def get_membership_plan(self, plan_id):
        return self.membership_plans.get(plan_id)

    def get_order(self, order_id):
        return self.orders.get(order_id)

    def mark_order_paid(self, order_id, *, payment_intent_id, paid_at):
        order = self.orders.get(order_id)
        if order is None or order.status != "pending":
            return False
        self.orders[order_id] = replace(order, status="paid", stripe_payment_intent_id=payment_intent_id, paid_at=paid_at)
        return True

    def mark_order_failed(self, order_id):
        order = self.orders.get(order_id)
        if order is None or order.status != "pending":
            return False
        self.orders[order_id] = replace(order, status="failed")
        return True

    def list_active_membership_plans(self):
        plans = sorted((p for p in self.membership_plans.values() if p.is_active), key=lambda p: (p.price_cents, p.code))
        return [
            dict(id=p.id, code=p.code, name=p.name, price_cents=p.price_cents, currency=p.currency, interval=p.interval, **self.plan_extras[p.id])
            for p in plans
        ]

    def create_membership_order(self, *, profile_id, plan_id, amount_cents, currency):
        order = MembershipOrderRecord(
            id=self._new_id("order"),
            profile_id=profile_id,
            membership_plan_id=plan_id,
            status="pending",
            amount_cents=amount_cents,
            currency=currency,
            stripe_session_id=None,
            stripe_payment_intent_id=None,
            paid_at=None,
        )
        self.orders[order.id] = order
        return order

    def set_order_session(self, order_id, stripe_session_id):
        self.orders[order_id] = replace(self.orders[order_id], stripe_session_id=stripe_session_id)

    def set_profile_customer_id(self, profile_id, customer_id):
        profile = self.profiles[profile_id]
        if profile.stripe_customer_id is None:
            self.profiles[profile_id] = replace(profile, stripe_customer_id=customer_id)

    def has_active_membership(self, profile_id, now):
        if any(s.profile_id == profile_id and s.status == "active" for s in self.subscriptions.values()):
            return True
        profile = self.profiles.get(profile_id)
        return bool(profile and profile.membership_plan_id and profile.membership_expires_at and profile.membership_expires_at > now)

    # subscriptions

    def get_subscription_plan(self, plan_id):
        return self.subscription_plans.get(plan_id)

    def list_active_subscription_plans(self):
        plans = sorted((p for p in self.subscription_plans.values() if p.is_active), key=lambda p: (p.price_cents, p.code))
        return [
            dict(
                id=p.id,
                code=p.code,
                name=p.name,
                price_cents=p.price_cents,
                currency=p.currency,
                billing_interval=p.billing_interval,
                billing_interval_count=p.billing_interval_count,
                stripe_price_id=p.stripe_price_id,
                **self.plan_extras[p.id],
            )
            for p in plans
        ]

    def get_subscription_by_external_id(self, stripe_subscription_id):
        for sub in self.subscriptions.values():
            if sub.stripe_subscription_id == stripe_subscription_id:
                return sub
        return None

    def get_current_subscription(self, profile_id):
        rows = [s for s in self.subscriptions.values() if s.profile_id == profile_id]
        return rows[-1] if rows else None

    def create_subscription(
        self,
        *,
        profile_id,
        plan_id,
        stripe_subscription_id,
        stripe_customer_id,
        stripe_price_id,
        status,
        current_period_start,
        current_period_end,
    ):
        if self.get_subscription_by_external_id(stripe_subscription_id) is not None:
            return None
        sub = SubscriptionRecord(
            id=self._new_id("sub"),
            profile_id=profile_id,
            subscription_plan_id=plan_id,
            stripe_subscription_id=stripe_subscription_id,
            stripe_customer_id=stripe_customer_id,
            stripe_price_id=stripe_price_id,
            status=status,
            cancel_at_period_end=False,
            current_period_start=current_period_start,
            current_period_end=current_period_end,
            canceled_at=None,
            ended_at=None,
        )
        self.subscriptions[sub.id] = sub
        return sub

    def update_subscription(self, subscription_id, fields):
        unknown = set(fields) - SUBSCRIPTION_UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported subscription fields: {sorted(unknown)}")
        if subscription_id not in self.subscriptions:
            return False
        self.subscriptions[subscription_id] = replace(self.subscriptions[subscription_id], **fields)
        return True

    def upsert_subscription_payment(self, *, stripe_invoice_id, status, stripe_payment_intent_id, paid_at, **values):
        existing = self.payments.get(stripe_invoice_id)
        if existing is None:
            self.payments[stripe_invoice_id] = dict(
                values,
                stripe_invoice_id=stripe_invoice_id,
                stripe_payment_intent_id=stripe_payment_intent_id,
                status=status,
                paid_at=paid_at,
            )
            return
        if existing["status"] != "paid":
            existing["status"] = status
        existing["stripe_payment_intent_id"] = stripe_payment_intent_id or existing["stripe_payment_intent_id"]
        existing["paid_at"] = existing["paid_at"] or paid_at

    # advertising

    def get_business(self, business_id):
        return self.businesses.get(business_id)

    def get_active_campaign(self, business_id):
        open_rows = self.open_campaigns(business_id)
        return open_rows[-1] if open_rows else None

    def claim_ad_purchase(self, *, business_id, stripe_session_id, **values):
        if any(p["stripe_session_id"] == stripe_session_id for p in self.purchases.values()):
            return None
        purchase_id = self._new_id("purchase")
        self.purchases[purchase_id] = dict(
            values,
            business_id=business_id,
            stripe_session_id=stripe_session_id,
            campaign_id=None,
            start_at=None,
            end_at=None,
        )
        return purchase_id

    def attach_ad_purchase(self, purchase_id, *, campaign_id, start_at, end_at):
        self.purchases[purchase_id].update(campaign_id=campaign_id, start_at=start_at, end_at=end_at)

    def create_campaign(
        self,
        *,
        business_id,
        start_at,
        end_at,
        days,
        daily_rate_cents,
        total_amount_cents,
        discount_percent,
        had_membership,
        stripe_session_id,
        stripe_payment_intent_id,
    ):
        if self.before_create_campaign is not None:
            hook, self.before_create_campaign = self.before_create_campaign, None
            hook(self)
        if self.open_campaigns(business_id):
            return None
        campaign = AdCampaignRecord(
            id=self._new_id("campaign"),
            business_id=business_id,
            status="active",
            start_at=start_at,
            end_at=end_at,
            days_purchased=days,
            daily_rate_cents=daily_rate_cents,
            total_amount_cents=total_amount_cents,
            discount_percent=discount_percent,
            had_membership=had_membership,
            stripe_session_id=stripe_session_id,
            stripe_payment_intent_id=stripe_payment_intent_id,
            created_at=start_at,
        )
        self.campaigns[campaign.id] = campaign
        return campaign

    def extend_campaign(
        self,
        campaign_id,
        *,
        expected_end_at,
        start_at,
        end_at,
        days,
        daily_rate_cents,
        total_amount_cents,
        discount_percent,
        had_membership,
        stripe_session_id,
        stripe_payment_intent_id,
    ):
        if self.before_extend_campaign is not None:
            hook, self.before_extend_campaign = self.before_extend_campaign, None
            hook(self)
        campaign = self.campaigns.get(campaign_id)
        if campaign is None or campaign.status not in OPEN_CAMPAIGN_STATUSES or campaign.end_at != expected_end_at:
            return False
        self.campaigns[campaign_id] = replace(
            campaign,
            status="active",
            start_at=campaign.start_at or start_at,
            end_at=end_at,
            days_purchased=campaign.days_purchased + days,
            total_amount_cents=campaign.total_amount_cents + total_amount_cents,
            daily_rate_cents=daily_rate_cents,
            discount_percent=discount_percent,
            had_membership=had_membership,
            stripe_session_id=stripe_session_id,
            stripe_payment_intent_id=stripe_payment_intent_id,
        )
        return True

    def expire_campaign(self, campaign_id):
        campaign = self.campaigns.get(campaign_id)
        if campaign is None or campaign.status not in OPEN_CAMPAIGN_STATUSES:
            return False
        self.campaigns[campaign_id] = replace(campaign, status="expired")
        return True

    # webhook ledger

    def get_webhook_event_status(self, event_id):
        row = self.events.get(event_id)
        return row["status"] if row else None

    def record_webhook_event(self, *, event_id, event_type, status, message, error_message):
        row = self.events.get(event_id)
        if row is None:
            self.events[event_id] = dict(event_type=event_type, status=status, message=message, error_message=error_message, attempts=1)
            return
        if row["status"] != "processed":
            row["status"] = status
        row.update(message=message, error_message=error_message, attempts=row["attempts"] + 1)


class FakeProcessor:
    def __init__(self):
        self.subscriptions: dict[str, dict] = {}
        self.invoices: dict[str, dict] = {}
        self.retrieved: list[str] = []

    def retrieve_subscription(self, subscription_id: str) -> SubscriptionObject:
        self.retrieved.append(subscription_id)
        return SubscriptionObject.model_validate(self.subscriptions[subscription_id])

    def retrieve_invoice(self, invoice_id: str) -> InvoiceObject:
        self.retrieved.append(invoice_id)
        return InvoiceObject.model_validate(self.invoices[invoice_id])


def make_event(event_type: str, obj: dict, *, event_id: str = "evt_1") -> StripeEventIn:
    return StripeEventIn.model_validate(
        {"id": event_id, "type": event_type, "created": 1773144000, "data": {"object": obj}}
    )


def checkout_session(
    metadata: dict,
    *,
    session_id: str = "cs_test_1",
    mode: str = "payment",
    payment_status: str = "paid",
    subscription: str | None = None,
    customer: str | None = "cus_1",
    payment_intent: str | None = "pi_1",
) -> dict:
    return {
        "id": session_id,
        "object": "checkout.session",
        "mode": mode,
        "payment_status": payment_status,
        "status": "complete",
        "subscription": subscription,
        "customer": customer,
        "payment_intent": payment_intent,
        "metadata": metadata,
    }


class FakeGateway:
    provider_code = "stripe"

    def __init__(self):
        self.requests: list[CheckoutSessionRequest] = []
        self.customers: list[str] = []

    def create_checkout_session(self, request: CheckoutSessionRequest) -> CheckoutSessionResponse:
        self.requests.append(request)
        session_id = f"cs_test_{len(self.requests)}"
        return CheckoutSessionResponse(session_id=session_id, checkout_url=f"https://checkout.example.com/{session_id}")

    def create_customer(self, *, email, name, profile_id) -> str:
        customer_id = f"cus_{len(self.customers) + 1}"
        self.customers.append(customer_id)
        return customer_id
