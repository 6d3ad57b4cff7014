from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class _CreateSessionBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class MembershipSessionIn(_CreateSessionBase):
    product_type: Literal["membership"] = Field(alias="productType")
    membership_plan_id: str = Field(alias="membershipPlanId", min_length=1, max_length=64)


class SubscriptionSessionIn(_CreateSessionBase):
    product_type: Literal["subscription"] = Field(alias="productType")
    subscription_plan_id: str = Field(alias="subscriptionPlanId", min_length=1, max_length=64)


class AdvertisingSessionIn(_CreateSessionBase):
    product_type: Literal["advertising"] = Field(alias="productType")
    business_id: str = Field(alias="businessId", min_length=1, max_length=64)
    # Upper bound is ADS_MAX_DAYS, checked by the checkout service.
    days: int = Field(ge=1)


CreateSessionIn = Annotated[
    Union[MembershipSessionIn, SubscriptionSessionIn, AdvertisingSessionIn],
    Field(discriminator="product_type"),
]


class CreateSessionOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    session_id: str = Field(serialization_alias="sessionId")
    url: str | None = None


class PaymentConfigOut(BaseModel):
    provider: Literal["none", "stripe"]
    checkout_configured: bool
    webhook_configured: bool
    currency: str
    success_url: str
    cancel_url: str
    ads_daily_rate_cents: int
    ads_member_discount_percent: float
    ads_max_days: int


class StatusOut(BaseModel):
    status: str
    message: str
