from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging

from app.schemas.webhooks import (
    AdvertisingCheckoutMetadata,
    CheckoutSessionObject,
    InvoiceObject,
    MembershipCheckoutMetadata,
    SubscriptionCheckoutMetadata,
    SubscriptionObject,
    epoch_to_datetime,
)
from app.services.billing_provider import ProcessorClient
from app.services.campaign_dates import extend_expiration, resolve_campaign_dates
from app.services.entitlement_store import EntitlementStore, SubscriptionRecord
from app.services.pricing import membership_duration_days

logger = logging.getLogger(__name__)

MAX_CAMPAIGN_ATTEMPTS = 3
RECOVERABLE_SUBSCRIPTION_STATUSES = {"past_due", "unpaid", "incomplete"}


@dataclass(frozen=True)
class WebhookResult:
    success: bool
    message: str
    error: str | None = None
    retryable: bool = False
    handled: bool = True


def ok(message: str, *, handled: bool = True) -> WebhookResult:
    return WebhookResult(success=True, message=message, handled=handled)


def fail(error: str, *, retryable: bool = False) -> WebhookResult:
    return WebhookResult(success=False, message=error, error=error, retryable=retryable)


# membership


def handle_membership_purchase(
    store: EntitlementStore,
    session: CheckoutSessionObject,
    metadata: MembershipCheckoutMetadata,
    *,
    now: datetime,
    tz_name: str | None = None,
) -> WebhookResult:
    """Mark the order paid and push the profile's membership expiry forward.

    The order flip is a conditional ``pending -> paid`` write, so of two
    concurrent deliveries only one reaches the profile update.
    """
    order = store.get_order(metadata.order_id)
    if order is None:
        logger.warning("membership order %s not found (session=%s)", metadata.order_id, session.id)
        return fail("Order not found")
    if order.status == "paid":
        logger.info("membership order %s already paid", order.id)
        return ok("Order already processed")
    if order.status != "pending":
        logger.warning("membership order %s is %s, not payable", order.id, order.status)
        return fail("Order not payable")

    plan = store.get_membership_plan(order.membership_plan_id)
    if plan is None:
        logger.warning("membership plan %s not found for order %s", order.membership_plan_id, order.id)
        return fail("Membership plan not found")
    profile = store.get_profile(order.profile_id)
    if profile is None:
        logger.warning("profile %s not found for order %s", order.profile_id, order.id)
        return fail("Profile not found")

    if not store.mark_order_paid(order.id, payment_intent_id=session.payment_intent, paid_at=now):
        current = store.get_order(order.id)
        if current is not None and current.status == "paid":
            logger.info("membership order %s paid by a concurrent delivery", order.id)
            return ok("Order already processed")
        return fail("Order not payable")

    still_active = profile.membership_expires_at is not None and profile.membership_expires_at > now
    expires_at = extend_expiration(
        profile.membership_expires_at,
        membership_duration_days(plan.interval),
        now,
        tz_name=tz_name,
    )
    started_at = profile.membership_started_at if still_active and profile.membership_started_at else now
    if not store.update_profile_membership(
        profile.id,
        plan_id=plan.id,
        started_at=started_at,
        expires_at=expires_at,
    ):
        return fail("Profile not found")
    logger.info("membership activated profile=%s order=%s expires_at=%s", profile.id, order.id, expires_at.isoformat())
    return ok("Membership activated")


def handle_checkout_closed(
    store: EntitlementStore,
    session: CheckoutSessionObject,
    metadata,
) -> WebhookResult:
    """Expired or failed checkout: a pending membership order becomes failed."""
    if not isinstance(metadata, MembershipCheckoutMetadata):
        return ok("Checkout closed without payment", handled=False)
    if store.mark_order_failed(metadata.order_id):
        logger.info("membership order %s marked failed (session=%s)", metadata.order_id, session.id)
        return ok("Order marked failed")
    order = store.get_order(metadata.order_id)
    if order is None:
        logger.warning("membership order %s not found (session=%s)", metadata.order_id, session.id)
        return fail("Order not found")
    return ok(f"Order already {order.status}")


# subscriptions


def _record_invoice(
    store: EntitlementStore,
    subscription: SubscriptionRecord,
    invoice: InvoiceObject,
    *,
    status: str,
    now: datetime,
) -> None:
    paid = status == "paid"
    store.upsert_subscription_payment(
        subscription_id=subscription.id,
        profile_id=subscription.profile_id,
        stripe_invoice_id=invoice.id,
        stripe_payment_intent_id=invoice.payment_intent,
        amount_cents=(invoice.amount_paid if paid else invoice.amount_due) or 0,
        currency=invoice.currency,
        billing_reason=invoice.billing_reason,
        period_start=epoch_to_datetime(invoice.period_start),
        period_end=epoch_to_datetime(invoice.period_end),
        status=status,
        paid_at=now if paid else None,
    )


def handle_subscription_checkout(
    store: EntitlementStore,
    processor: ProcessorClient,
    session: CheckoutSessionObject,
    metadata: SubscriptionCheckoutMetadata,
    *,
    now: datetime,
) -> WebhookResult:
    if not session.subscription:
        logger.warning("subscription checkout %s has no subscription id", session.id)
        return fail("Missing subscription id")
    if store.get_subscription_by_external_id(session.subscription) is not None:
        logger.info("subscription %s already recorded", session.subscription)
        return ok("Subscription already processed")

    plan = store.get_subscription_plan(metadata.subscription_plan_id)
    if plan is None:
        logger.warning("subscription plan %s not found (session=%s)", metadata.subscription_plan_id, session.id)
        return fail("Subscription plan not found")
    if store.get_profile(metadata.profile_id) is None:
        logger.warning("profile %s not found (session=%s)", metadata.profile_id, session.id)
        return fail("Profile not found")

    remote = processor.retrieve_subscription(session.subscription)
    customer_id = remote.customer or session.customer
    if not customer_id:
        return fail("Missing customer id")

    created = store.create_subscription(
        profile_id=metadata.profile_id,
        plan_id=plan.id,
        stripe_subscription_id=remote.id,
        stripe_customer_id=customer_id,
        stripe_price_id=remote.price_id or plan.stripe_price_id,
        status=remote.status,
        current_period_start=remote.period_start,
        current_period_end=remote.period_end,
    )
    if created is None:
        logger.info("subscription %s recorded by a concurrent delivery", remote.id)
        return ok("Subscription already processed")

    if remote.latest_invoice:
        invoice = processor.retrieve_invoice(remote.latest_invoice)
        _record_invoice(
            store,
            created,
            invoice,
            status="paid" if invoice.status == "paid" else "pending",
            now=now,
        )
    logger.info("subscription created profile=%s stripe_subscription=%s status=%s", created.profile_id, remote.id, remote.status)
    return ok("Subscription created")


def handle_subscription_updated(store: EntitlementStore, remote: SubscriptionObject) -> WebhookResult:
    existing = store.get_subscription_by_external_id(remote.id)
    if existing is None:
        logger.warning("subscription %s not found for update", remote.id)
        return fail("Subscription not found")
    fields = {
        "status": remote.status,
        "cancel_at_period_end": remote.cancel_at_period_end,
        "current_period_start": remote.period_start,
        "current_period_end": remote.period_end,
        "canceled_at": epoch_to_datetime(remote.canceled_at),
    }
    if remote.ended_at:
        fields["ended_at"] = epoch_to_datetime(remote.ended_at)
    store.update_subscription(existing.id, fields)
    logger.info("subscription %s updated status=%s", remote.id, remote.status)
    return ok("Subscription updated")


def handle_subscription_deleted(store: EntitlementStore, remote: SubscriptionObject, *, now: datetime) -> WebhookResult:
    existing = store.get_subscription_by_external_id(remote.id)
    if existing is None:
        logger.info("subscription %s not found for delete; treating as already deleted", remote.id)
        return ok("Subscription already deleted")
    store.update_subscription(
        existing.id,
        {
            "status": "canceled",
            "cancel_at_period_end": False,
            "canceled_at": existing.canceled_at or epoch_to_datetime(remote.canceled_at) or now,
            "ended_at": epoch_to_datetime(remote.ended_at) or now,
        },
    )
    logger.info("subscription %s canceled", remote.id)
    return ok("Subscription canceled")


def handle_invoice_paid(store: EntitlementStore, invoice: InvoiceObject, *, now: datetime) -> WebhookResult:
    subscription_id = invoice.subscription_id
    if not subscription_id:
        return ok("Invoice not linked to a subscription", handled=False)
    existing = store.get_subscription_by_external_id(subscription_id)
    if existing is None:
        logger.warning("subscription %s not found for invoice %s", subscription_id, invoice.id)
        return fail("Subscription not found")
    _record_invoice(store, existing, invoice, status="paid", now=now)
    if existing.status in RECOVERABLE_SUBSCRIPTION_STATUSES:
        store.update_subscription(existing.id, {"status": "active"})
    logger.info("invoice %s paid for subscription %s", invoice.id, subscription_id)
    return ok("Invoice payment recorded")


def handle_invoice_failed(store: EntitlementStore, invoice: InvoiceObject, *, now: datetime) -> WebhookResult:
    subscription_id = invoice.subscription_id
    if not subscription_id:
        return ok("Invoice not linked to a subscription", handled=False)
    existing = store.get_subscription_by_external_id(subscription_id)
    if existing is None:
        logger.warning("subscription %s not found for failed invoice %s", subscription_id, invoice.id)
        return fail("Subscription not found")
    _record_invoice(store, existing, invoice, status="failed", now=now)
    if existing.status != "past_due":
        store.update_subscription(existing.id, {"status": "past_due"})
    logger.warning("invoice %s payment failed for subscription %s", invoice.id, subscription_id)
    return ok("Invoice failure recorded")


# advertising


def handle_advertising_purchase(
    store: EntitlementStore,
    session: CheckoutSessionObject,
    metadata: AdvertisingCheckoutMetadata,
    *,
    now: datetime,
    tz_name: str | None = None,
) -> WebhookResult:
    """Create the business's campaign or extend the open one.

    Price fields come from the checkout metadata and are stored as-is. The
    checkout session id is claimed in the purchase ledger first, so a
    redelivered completion never extends a campaign twice.
    """
    business = store.get_business(metadata.business_id)
    if business is None:
        logger.warning("business %s not found (session=%s)", metadata.business_id, session.id)
        return fail("Business not found")

    purchase_id = store.claim_ad_purchase(
        business_id=business.id,
        stripe_session_id=session.id,
        stripe_payment_intent_id=session.payment_intent,
        days=metadata.days,
        daily_rate_cents=metadata.daily_rate_cents,
        discount_percent=metadata.discount_percent,
        total_amount_cents=metadata.total_amount_cents,
        had_membership=metadata.has_membership,
    )
    if purchase_id is None:
        logger.info("advertising session %s already processed", session.id)
        return ok("Advertising purchase already processed")

    pricing = dict(
        days=metadata.days,
        daily_rate_cents=metadata.daily_rate_cents,
        total_amount_cents=metadata.total_amount_cents,
        discount_percent=metadata.discount_percent,
        had_membership=metadata.has_membership,
        stripe_session_id=session.id,
        stripe_payment_intent_id=session.payment_intent,
    )
    for attempt in range(1, MAX_CAMPAIGN_ATTEMPTS + 1):
        current = store.get_active_campaign(business.id)
        if current is not None and current.end_at is not None and current.end_at <= now:
            # Lapsed run: close it so the new purchase starts its own timeline.
            store.expire_campaign(current.id)
            logger.info("campaign %s lapsed at %s; expired", current.id, current.end_at.isoformat())
            current = None

        window = resolve_campaign_dates(metadata.days, current, now, tz_name=tz_name)
        if current is None:
            created = store.create_campaign(
                business_id=business.id,
                start_at=window.start_at,
                end_at=window.end_at,
                **pricing,
            )
            if created is None:
                logger.info("open campaign for business %s created concurrently (attempt %s)", business.id, attempt)
                continue
            store.attach_ad_purchase(purchase_id, campaign_id=created.id, start_at=window.start_at, end_at=window.end_at)
            logger.info("campaign %s created business=%s days=%s end_at=%s", created.id, business.id, metadata.days, window.end_at.isoformat())
            return ok("Campaign created")

        if store.extend_campaign(
            current.id,
            expected_end_at=current.end_at,
            start_at=window.start_at,
            end_at=window.end_at,
            **pricing,
        ):
            store.attach_ad_purchase(purchase_id, campaign_id=current.id, start_at=window.start_at, end_at=window.end_at)
            logger.info("campaign %s extended business=%s days=%s end_at=%s", current.id, business.id, metadata.days, window.end_at.isoformat())
            return ok("Campaign extended")
        logger.info("campaign %s changed concurrently (attempt %s)", current.id, attempt)

    logger.warning("campaign update for business %s lost %s races (session=%s)", business.id, MAX_CAMPAIGN_ATTEMPTS, session.id)
    return fail("Campaign update conflict", retryable=True)
