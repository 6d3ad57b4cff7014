from fastapi import APIRouter, Depends

from app.api.deps import get_store
from app.schemas.plans import MembershipCatalogOut, SubscriptionCatalogOut
from app.services.entitlement_store import SqlEntitlementStore
from app.services.plans import get_membership_catalog, get_subscription_catalog

router = APIRouter()


@router.get("/membership-plans", response_model=MembershipCatalogOut)
def membership_plans(store: SqlEntitlementStore = Depends(get_store)):
    return get_membership_catalog(store)


@router.get("/subscription-plans", response_model=SubscriptionCatalogOut)
def subscription_plans(store: SqlEntitlementStore = Depends(get_store)):
    return get_subscription_catalog(store)
