from __future__ import annotations

from datetime import datetime
import logging
from typing import Callable

from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from app.core.security import now_utc
from app.schemas.webhooks import (
    AdvertisingCheckoutMetadata,
    CheckoutSessionObject,
    InvoiceObject,
    MembershipCheckoutMetadata,
    MetadataError,
    StripeEventIn,
    SubscriptionCheckoutMetadata,
    SubscriptionObject,
    parse_checkout_metadata,
)
from app.services.billing_provider import TRANSIENT_PROCESSOR_ERRORS, ProcessorClient
from app.services.entitlement_store import EntitlementStore
from app.services.reconciliation import (
    WebhookResult,
    fail,
    handle_advertising_purchase,
    handle_checkout_closed,
    handle_invoice_failed,
    handle_invoice_paid,
    handle_membership_purchase,
    handle_subscription_checkout,
    handle_subscription_deleted,
    handle_subscription_updated,
    ok,
)

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}
CHECKOUT_CLOSED = {"checkout.session.expired", "checkout.session.async_payment_failed"}
INVOICE_PAID = {"invoice.paid", "invoice.payment_succeeded"}
INVOICE_FAILED = {"invoice.payment_failed"}
ACKNOWLEDGED_ONLY = {
    "customer.subscription.created",
    "payment_intent.succeeded",
    "payment_intent.payment_failed",
}
SETTLED_PAYMENT_STATUSES = {"paid", "no_payment_required"}


class WebhookDispatcher:
    """Routes verified processor events to the reconciliation handlers.

    ``dispatch`` never raises: every outcome, including persistence errors, is a
    ``WebhookResult``. Committing or rolling back is left to the caller.
    """

    def __init__(
        self,
        store: EntitlementStore,
        processor: ProcessorClient,
        *,
        clock: Callable[[], datetime] = now_utc,
        tz_name: str | None = None,
    ):
        self.store = store
        self.processor = processor
        self.clock = clock
        self.tz_name = tz_name

    def dispatch(self, event: StripeEventIn) -> WebhookResult:
        logger.info("webhook received type=%s id=%s", event.type, event.id)
        try:
            if self.store.get_webhook_event_status(event.id) == "processed":
                logger.info("webhook %s already processed", event.id)
                return ok("Event already processed", handled=False)
            result = self._route(event)
        except (OperationalError, TimeoutError) as exc:
            logger.exception("webhook %s hit a persistence failure", event.id)
            return fail(str(exc) or "Persistence unavailable", retryable=True)
        except TRANSIENT_PROCESSOR_ERRORS as exc:
            logger.warning("webhook %s hit a transient processor error: %s", event.id, exc)
            return fail(str(exc) or "Payment processor unavailable", retryable=True)
        except MetadataError as exc:
            logger.warning("webhook %s rejected: %s", event.id, exc)
            return fail(str(exc))
        except ValidationError as exc:
            logger.warning("webhook %s carries a malformed %s object", event.id, event.type)
            return fail(f"Malformed event object: {exc.error_count()} error(s)")
        except Exception as exc:
            logger.exception("webhook %s failed unexpectedly", event.id)
            return fail(str(exc) or exc.__class__.__name__)
        if not result.success:
            logger.warning("webhook %s (%s) failed: %s", event.id, event.type, result.error)
        return result

    def record_outcome(self, event: StripeEventIn, result: WebhookResult) -> None:
        if result.success:
            status = "processed" if result.handled else "ignored"
        else:
            status = "failed"
        self.store.record_webhook_event(
            event_id=event.id,
            event_type=event.type,
            status=status,
            message=result.message,
            error_message=result.error,
        )

    def _route(self, event: StripeEventIn) -> WebhookResult:
        obj = event.data.object
        now = self.clock()
        if event.type in CHECKOUT_COMPLETED:
            return self._checkout_completed(CheckoutSessionObject.model_validate(obj), now)
        if event.type in CHECKOUT_CLOSED:
            session = CheckoutSessionObject.model_validate(obj)
            return handle_checkout_closed(self.store, session, parse_checkout_metadata(session.metadata))
        if event.type == "customer.subscription.updated":
            return handle_subscription_updated(self.store, SubscriptionObject.model_validate(obj))
        if event.type == "customer.subscription.deleted":
            return handle_subscription_deleted(self.store, SubscriptionObject.model_validate(obj), now=now)
        if event.type in INVOICE_PAID:
            return handle_invoice_paid(self.store, InvoiceObject.model_validate(obj), now=now)
        if event.type in INVOICE_FAILED:
            return handle_invoice_failed(self.store, InvoiceObject.model_validate(obj), now=now)
        if event.type in ACKNOWLEDGED_ONLY:
            return ok(f"Acknowledged {event.type}", handled=False)
        logger.info("webhook %s has unhandled type %s", event.id, event.type)
        return ok(f"Unhandled event type: {event.type}", handled=False)

    def _checkout_completed(self, session: CheckoutSessionObject, now: datetime) -> WebhookResult:
        if session.mode != "subscription" and session.payment_status not in SETTLED_PAYMENT_STATUSES:
            logger.info("checkout %s completed with payment_status=%s", session.id, session.payment_status)
            return ok("Payment pending", handled=False)
        metadata = parse_checkout_metadata(session.metadata)
        if isinstance(metadata, MembershipCheckoutMetadata):
            return handle_membership_purchase(self.store, session, metadata, now=now, tz_name=self.tz_name)
        if isinstance(metadata, SubscriptionCheckoutMetadata):
            return handle_subscription_checkout(self.store, self.processor, session, metadata, now=now)
        if isinstance(metadata, AdvertisingCheckoutMetadata):
            return handle_advertising_purchase(self.store, session, metadata, now=now, tz_name=self.tz_name)
        logger.info("checkout %s has no managed product type", session.id)
        return ok("Checkout completed for unmanaged product", handled=False)


def webhook_http_outcome(result: WebhookResult, event_type: str | None) -> tuple[int, dict]:
    """Map a handler result to the status code and body sent back to the processor.

    Business failures are acknowledged with 200 so the processor does not retry
    them; only retryable failures ask for redelivery.
    """
    if result.success:
        return 200, {"success": True, "received": True, "eventType": event_type, "message": result.message}
    if result.retryable:
        return 503, {"success": False, "error": result.error or result.message}
    return 200, {"success": False, "error": result.error or result.message}

