from __future__ import annotations

from dataclasses import dataclass, field
import hashlib
import hmac
import logging
import time
from typing import Protocol

import stripe

from app.core.config import Settings
from app.schemas.webhooks import InvoiceObject, SubscriptionObject

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "stripe-signature"

# Processor failures that a later delivery of the same event can get past.
TRANSIENT_PROCESSOR_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError)


class SignatureError(ValueError):
    pass


@dataclass(frozen=True)
class CheckoutSessionRequest:
    mode: str  # payment | subscription
    success_url: str
    cancel_url: str
    metadata: dict[str, str]
    amount_cents: int | None = None
    currency: str | None = None
    description: str | None = None
    price_id: str | None = None
    customer_id: str | None = None
    subscription_metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CheckoutSessionResponse:
    session_id: str
    checkout_url: str | None


class CheckoutGateway(Protocol):
    provider_code: str

    def create_checkout_session(self, request: CheckoutSessionRequest) -> CheckoutSessionResponse:
        ...

    def create_customer(self, *, email: str | None, name: str | None, profile_id: str) -> str:
        ...


class ProcessorClient(Protocol):
    def retrieve_subscription(self, subscription_id: str) -> SubscriptionObject:
        ...

    def retrieve_invoice(self, invoice_id: str) -> InvoiceObject:
        ...


class StripeBillingProvider:
    provider_code = "stripe"

    def __init__(self, api_key: str, *, timeout_seconds: int = 20):
        self._client = stripe.StripeClient(
            api_key,
            http_client=stripe.RequestsClient(timeout=timeout_seconds),
        )

    def create_checkout_session(self, request: CheckoutSessionRequest) -> CheckoutSessionResponse:
        params: dict = {
            "mode": request.mode,
            "success_url": request.success_url,
            "cancel_url": request.cancel_url,
            "metadata": request.metadata,
        }
        if request.customer_id:
            params["customer"] = request.customer_id
        if request.mode == "subscription":
            params["line_items"] = [{"price": request.price_id, "quantity": 1}]
            if request.subscription_metadata:
                params["subscription_data"] = {"metadata": request.subscription_metadata}
        else:
            params["line_items"] = [
                {
                    "price_data": {
                        "currency": request.currency,
                        "unit_amount": request.amount_cents,
                        "product_data": {"name": request.description or "Payment"},
                    },
                    "quantity": 1,
                }
            ]
            params["payment_intent_data"] = {"metadata": request.metadata}
        session = self._client.checkout.sessions.create(params=params)
        return CheckoutSessionResponse(session_id=session.id, checkout_url=session.url)

    def create_customer(self, *, email: str | None, name: str | None, profile_id: str) -> str:
        params: dict = {"metadata": {"profile_id": profile_id}}
        if email:
            params["email"] = email
        if name:
            params["name"] = name
        # One processor customer per profile across retried checkouts.
        customer = self._client.customers.create(
            params=params,
            options={"idempotency_key": f"customer-create-{profile_id}"},
        )
        return customer.id

    def retrieve_subscription(self, subscription_id: str) -> SubscriptionObject:
        sub = self._client.subscriptions.retrieve(subscription_id)
        return SubscriptionObject.model_validate(sub.to_dict())

    def retrieve_invoice(self, invoice_id: str) -> InvoiceObject:
        invoice = self._client.invoices.retrieve(invoice_id)
        return InvoiceObject.model_validate(invoice.to_dict())


class NoopBillingProvider:
    provider_code = "none"

    def create_checkout_session(self, request: CheckoutSessionRequest) -> CheckoutSessionResponse:
        raise NotImplementedError("Payment processor is not configured")

    def create_customer(self, *, email: str | None, name: str | None, profile_id: str) -> str:
        raise NotImplementedError("Payment processor is not configured")

    def retrieve_subscription(self, subscription_id: str) -> SubscriptionObject:
        raise NotImplementedError("Payment processor is not configured")

    def retrieve_invoice(self, invoice_id: str) -> InvoiceObject:
        raise NotImplementedError("Payment processor is not configured")


def get_provider_adapter(settings: Settings) -> StripeBillingProvider | NoopBillingProvider:
    if settings.STRIPE_SECRET_KEY:
        return StripeBillingProvider(settings.STRIPE_SECRET_KEY)
    logger.warning("STRIPE_SECRET_KEY is not set; checkout and processor lookups are disabled")
    return NoopBillingProvider()


def _parse_sig_header(signature_header: str | None) -> tuple[int, list[str]]:
    if not signature_header:
        return (0, [])
    timestamp = 0
    signatures: list[str] = []
    for part in signature_header.split(","):
        if "=" not in part:
            continue
        k, v = part.split("=", 1)
        key = k.strip().lower()
        val = v.strip()
        if key == "t":
            try:
                timestamp = int(val)
            except ValueError:
                timestamp = 0
        elif key == "v1":
            signatures.append(val)
    return (timestamp, signatures)


def compute_signature(raw_body: bytes, secret: str, timestamp: int) -> str:
    payload = f"{timestamp}.".encode("utf-8") + raw_body
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def sign_payload(raw_body: bytes, secret: str, timestamp: int | None = None) -> str:
    """Build a signature header the way the processor does; used by tests and replays."""
    ts = int(time.time()) if timestamp is None else timestamp
    return f"t={ts},v1={compute_signature(raw_body, secret, ts)}"


def verify_hmac_signature(
    raw_body: bytes,
    signature_header: str | None,
    secret: str,
    max_age_seconds: int,
    *,
    now: int | None = None,
) -> None:
    timestamp, signatures = _parse_sig_header(signature_header)
    if timestamp <= 0 or not signatures:
        raise SignatureError("Malformed signature header")
    current = int(time.time()) if now is None else now
    if abs(current - timestamp) > max_age_seconds:
        raise SignatureError("Signature timestamp outside tolerance")
    expected = compute_signature(raw_body, secret, timestamp)
    if not any(hmac.compare_digest(expected, s) for s in signatures):
        raise SignatureError("Signature mismatch")


def verify_webhook_request(settings: Settings, headers, raw_body: bytes) -> None:
    """Raise SignatureError unless the request carries a valid processor signature."""
    signature = headers.get(SIGNATURE_HEADER)
    if not signature:
        raise SignatureError("Missing stripe-signature header")
    secret = settings.STRIPE_WEBHOOK_SECRET
    if not secret:
        if settings.ENV == "dev":
            logger.warning("STRIPE_WEBHOOK_SECRET is not set; accepting unsigned webhook in dev")
            return
        raise SignatureError("Webhook secret is not configured")
    verify_hmac_signature(raw_body, signature, secret, int(settings.STRIPE_WEBHOOK_MAX_AGE_SECONDS))
