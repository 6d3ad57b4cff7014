from pydantic import BaseModel, Field


class MembershipPlanOut(BaseModel):
    id: str
    code: str
    name: str
    amount_cents: int
    display_price: str
    currency: str
    interval: str
    description: str = ""
    features: list[str] = Field(default_factory=list)


class SubscriptionPlanOut(BaseModel):
    id: str
    code: str
    name: str
    amount_cents: int
    display_price: str
    currency: str
    billing_interval: str
    billing_interval_count: int
    billing_period: str
    description: str = ""
    features: list[str] = Field(default_factory=list)
    is_featured: bool = False
    purchasable: bool


class MembershipCatalogOut(BaseModel):
    plans: list[MembershipPlanOut] = Field(default_factory=list)


class SubscriptionCatalogOut(BaseModel):
    plans: list[SubscriptionPlanOut] = Field(default_factory=list)
