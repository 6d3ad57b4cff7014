from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class CampaignStatusOut(BaseModel):
    id: str
    business_id: str
    status: Literal["pending_payment", "active", "expired", "cancelled"]
    start_at: datetime | None = None
    end_at: datetime | None = None
    days_purchased: int
    days_remaining: int
    is_active: bool
    total_amount_cents: int
    daily_rate_cents: int
    discount_applied: bool
