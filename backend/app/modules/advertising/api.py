import math

from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_current_profile_id, get_store
from app.core.security import now_utc
from app.schemas.advertising import CampaignStatusOut
from app.services.entitlement_store import SqlEntitlementStore

router = APIRouter()


@router.get("/businesses/{business_id}/campaign", response_model=CampaignStatusOut | None)
def business_campaign(
    business_id: str,
    profile_id: str = Depends(get_current_profile_id),
    store: SqlEntitlementStore = Depends(get_store),
):
    business = store.get_business(business_id)
    if business is None:
        raise HTTPException(404, "Business not found")
    if business.owner_id != profile_id:
        raise HTTPException(403, "Business does not belong to the caller")

    campaign = store.get_active_campaign(business_id)
    if campaign is None:
        return None
    now = now_utc()
    # Stored status can lag behind end_at until the expiry job runs.
    is_active = campaign.status == "active" and campaign.end_at is not None and campaign.end_at > now
    days_remaining = 0
    if is_active:
        days_remaining = math.ceil((campaign.end_at - now).total_seconds() / 86400)
    return CampaignStatusOut(
        id=campaign.id,
        business_id=campaign.business_id,
        status=campaign.status if is_active or campaign.status != "active" else "expired",
        start_at=campaign.start_at,
        end_at=campaign.end_at,
        days_purchased=campaign.days_purchased,
        days_remaining=days_remaining,
        is_active=is_active,
        total_amount_cents=campaign.total_amount_cents,
        daily_rate_cents=campaign.daily_rate_cents,
        discount_applied=campaign.had_membership or campaign.discount_percent > 0,
    )
