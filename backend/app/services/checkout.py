from __future__ import annotations

from datetime import datetime
import logging

from app.core.config import Settings
from app.schemas.payments import AdvertisingSessionIn, MembershipSessionIn, SubscriptionSessionIn
from app.services.billing_provider import CheckoutGateway, CheckoutSessionRequest, CheckoutSessionResponse
from app.services.entitlement_store import SqlEntitlementStore
from app.services.pricing import calculate_price

logger = logging.getLogger(__name__)

BLOCKING_SUBSCRIPTION_STATUSES = {"active", "trialing", "past_due"}


class CheckoutError(Exception):
    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(detail)


def _redirect_urls(settings: Settings) -> tuple[str, str]:
    base = settings.APP_BASE_URL.rstrip("/")
    success = f"{base}{settings.CHECKOUT_SUCCESS_PATH}?session_id={{CHECKOUT_SESSION_ID}}"
    return success, f"{base}{settings.CHECKOUT_CANCEL_PATH}"


def create_membership_session(
    store: SqlEntitlementStore,
    gateway: CheckoutGateway,
    settings: Settings,
    *,
    profile_id: str,
    payload: MembershipSessionIn,
) -> CheckoutSessionResponse:
    plan = store.get_membership_plan(payload.membership_plan_id)
    if plan is None or not plan.is_active:
        raise CheckoutError(404, "Membership plan not found")
    order = store.create_membership_order(
        profile_id=profile_id,
        plan_id=plan.id,
        amount_cents=plan.price_cents,
        currency=plan.currency,
    )
    success_url, cancel_url = _redirect_urls(settings)
    session = gateway.create_checkout_session(
        CheckoutSessionRequest(
            mode="payment",
            success_url=success_url,
            cancel_url=cancel_url,
            amount_cents=plan.price_cents,
            currency=plan.currency,
            description=f"Membership: {plan.name}",
            metadata={
                "productType": "membership",
                "orderId": order.id,
                "profileId": profile_id,
                "membershipPlanId": plan.id,
            },
        )
    )
    store.set_order_session(order.id, session.session_id)
    logger.info("membership checkout created profile=%s order=%s session=%s", profile_id, order.id, session.session_id)
    return session


def create_subscription_session(
    store: SqlEntitlementStore,
    gateway: CheckoutGateway,
    settings: Settings,
    *,
    profile_id: str,
    payload: SubscriptionSessionIn,
) -> CheckoutSessionResponse:
    plan = store.get_subscription_plan(payload.subscription_plan_id)
    if plan is None or not plan.is_active:
        raise CheckoutError(404, "Subscription plan not found")
    if not plan.stripe_price_id:
        raise CheckoutError(400, "Subscription plan has no processor price")
    current = store.get_current_subscription(profile_id)
    if current is not None and current.status in BLOCKING_SUBSCRIPTION_STATUSES:
        raise CheckoutError(409, "Profile already has an active subscription")

    profile = store.get_profile(profile_id)
    if profile is None:
        raise CheckoutError(404, "Profile not found")
    customer_id = profile.stripe_customer_id
    if not customer_id:
        customer_id = gateway.create_customer(email=profile.email, name=profile.name, profile_id=profile_id)
        store.set_profile_customer_id(profile_id, customer_id)

    metadata = {
        "productType": "subscription",
        "profileId": profile_id,
        "subscriptionPlanId": plan.id,
    }
    success_url, cancel_url = _redirect_urls(settings)
    session = gateway.create_checkout_session(
        CheckoutSessionRequest(
            mode="subscription",
            success_url=success_url,
            cancel_url=cancel_url,
            price_id=plan.stripe_price_id,
            customer_id=customer_id,
            metadata=metadata,
            subscription_metadata=metadata,
        )
    )
    logger.info("subscription checkout created profile=%s plan=%s session=%s", profile_id, plan.id, session.session_id)
    return session


def create_advertising_session(
    store: SqlEntitlementStore,
    gateway: CheckoutGateway,
    settings: Settings,
    *,
    profile_id: str,
    payload: AdvertisingSessionIn,
    now: datetime,
) -> CheckoutSessionResponse:
    if payload.days > settings.ADS_MAX_DAYS:
        raise CheckoutError(400, f"days must be between 1 and {settings.ADS_MAX_DAYS}")
    business = store.get_business(payload.business_id)
    if business is None:
        raise CheckoutError(404, "Business not found")
    if business.owner_id != profile_id:
        raise CheckoutError(403, "Business does not belong to the caller")

    has_membership = store.has_active_membership(profile_id, now)
    quote = calculate_price(
        payload.days,
        settings.ADS_DAILY_RATE_CENTS,
        has_membership,
        member_discount_percent=settings.ADS_MEMBER_DISCOUNT_PERCENT,
    )
    success_url, cancel_url = _redirect_urls(settings)
    session = gateway.create_checkout_session(
        CheckoutSessionRequest(
            mode="payment",
            success_url=success_url,
            cancel_url=cancel_url,
            amount_cents=quote.total,
            currency=settings.STRIPE_CURRENCY,
            description=f"Advertising for {business.name}: {payload.days} day(s)",
            metadata={
                "productType": "advertising",
                "userId": profile_id,
                "businessId": business.id,
                "days": str(payload.days),
                "dailyRateCents": str(settings.ADS_DAILY_RATE_CENTS),
                "hasMembership": "true" if has_membership else "false",
                "discountPercent": str(quote.discount_percent),
                "totalAmountCents": str(quote.total),
            },
        )
    )
    logger.info(
        "advertising checkout created business=%s days=%s total=%s session=%s",
        business.id,
        payload.days,
        quote.total,
        session.session_id,
    )
    return session
