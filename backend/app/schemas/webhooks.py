from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter, ValidationError, field_validator


def _expandable_id(value: Any) -> Any:
    # Processor references arrive either as an id or as the expanded object.
    if isinstance(value, dict):
        return value.get("id")
    return value


ExpandableId = Annotated[str | None, BeforeValidator(_expandable_id)]


def epoch_to_datetime(value: int | None) -> datetime | None:
    if value in (None, 0):
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


class _ProcessorObject(BaseModel):
    model_config = ConfigDict(extra="ignore")


class EventData(_ProcessorObject):
    object: dict = Field(default_factory=dict)


class StripeEventIn(_ProcessorObject):
    id: str = Field(..., min_length=3, max_length=255)
    type: str = Field(..., min_length=3, max_length=255)
    created: int | None = None
    livemode: bool = False
    data: EventData = Field(default_factory=EventData)


class CheckoutSessionObject(_ProcessorObject):
    id: str
    mode: str | None = None
    payment_status: str | None = None
    status: str | None = None
    payment_intent: ExpandableId = None
    subscription: ExpandableId = None
    customer: ExpandableId = None
    amount_total: int | None = None
    currency: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def _stringify_metadata(cls, value):
        if not value:
            return {}
        return {str(k): "" if v is None else str(v) for k, v in dict(value).items()}


class SubscriptionObject(_ProcessorObject):
    id: str
    customer: ExpandableId = None
    status: str = "incomplete"
    cancel_at_period_end: bool = False
    current_period_start: int | None = None
    current_period_end: int | None = None
    canceled_at: int | None = None
    ended_at: int | None = None
    latest_invoice: ExpandableId = None
    items: dict = Field(default_factory=dict)
    metadata: dict = Field(default_factory=dict)

    def _first_item(self) -> dict:
        data = self.items.get("data") if isinstance(self.items, dict) else None
        if isinstance(data, list) and data and isinstance(data[0], dict):
            return data[0]
        return {}

    @property
    def price_id(self) -> str | None:
        price = self._first_item().get("price")
        if isinstance(price, dict):
            return price.get("id")
        return price

    @property
    def period_start(self) -> datetime | None:
        # Newer API versions only report the period on subscription items.
        return epoch_to_datetime(self.current_period_start or self._first_item().get("current_period_start"))

    @property
    def period_end(self) -> datetime | None:
        return epoch_to_datetime(self.current_period_end or self._first_item().get("current_period_end"))


class InvoiceObject(_ProcessorObject):
    id: str
    subscription: ExpandableId = None
    customer: ExpandableId = None
    payment_intent: ExpandableId = None
    amount_paid: int = 0
    amount_due: int = 0
    currency: str = "usd"
    billing_reason: str | None = None
    status: str | None = None
    period_start: int | None = None
    period_end: int | None = None
    parent: dict | None = None

    @property
    def subscription_id(self) -> str | None:
        if self.subscription:
            return self.subscription
        details = (self.parent or {}).get("subscription_details") or {}
        return _expandable_id(details.get("subscription"))


class _Metadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class MembershipCheckoutMetadata(_Metadata):
    product_type: Literal["membership"] = Field(alias="productType")
    order_id: str = Field(alias="orderId", min_length=1)
    profile_id: str | None = Field(default=None, alias="profileId")
    membership_plan_id: str | None = Field(default=None, alias="membershipPlanId")


class SubscriptionCheckoutMetadata(_Metadata):
    product_type: Literal["subscription"] = Field(alias="productType")
    profile_id: str = Field(alias="profileId", min_length=1)
    subscription_plan_id: str = Field(alias="subscriptionPlanId", min_length=1)


class AdvertisingCheckoutMetadata(_Metadata):
    product_type: Literal["advertising"] = Field(alias="productType")
    business_id: str = Field(alias="businessId", min_length=1)
    user_id: str | None = Field(default=None, alias="userId")
    days: int = Field(ge=1)
    daily_rate_cents: int = Field(alias="dailyRateCents", ge=1)
    total_amount_cents: int = Field(alias="totalAmountCents", ge=0)
    discount_percent: float = Field(default=0.0, alias="discountPercent", ge=0, le=100)
    has_membership: bool = Field(default=False, alias="hasMembership")


class OtherCheckoutMetadata(_Metadata):
    product_type: Literal["other"] = Field(default="other", alias="productType")


CheckoutMetadata = Annotated[
    Union[
        MembershipCheckoutMetadata,
        SubscriptionCheckoutMetadata,
        AdvertisingCheckoutMetadata,
        OtherCheckoutMetadata,
    ],
    Field(discriminator="product_type"),
]

PRODUCT_TYPES = {"membership", "subscription", "advertising"}

_checkout_metadata = TypeAdapter(CheckoutMetadata)


class MetadataError(ValueError):
    def __init__(self, product_type: str, fields: list[str]):
        self.product_type = product_type
        self.fields = fields
        super().__init__(f"Missing or invalid metadata for {product_type}: {', '.join(fields)}")


def parse_checkout_metadata(metadata: dict[str, str]) -> CheckoutMetadata:
    """Validate the string metadata bag into its per-product schema.

    Unknown or absent product types fall back to ``other``; a known product type
    with missing or malformed fields raises ``MetadataError``.
    """
    raw = {k: v for k, v in (metadata or {}).items() if v not in (None, "")}
    product_type = raw.get("productType")
    if product_type not in PRODUCT_TYPES:
        return OtherCheckoutMetadata()
    try:
        return _checkout_metadata.validate_python(raw)
    except ValidationError as exc:
        fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
        raise MetadataError(product_type, fields) from exc
