import logging

from fastapi import APIRouter, Body, Depends, HTTPException
import stripe
from sqlalchemy.orm import Session

from app.api.deps import get_container, get_current_profile_id, get_store
from app.core.container import ApplicationContainer
from app.core.security import now_utc
from app.db.session import get_db
from app.schemas.payments import (
    AdvertisingSessionIn,
    CreateSessionIn,
    CreateSessionOut,
    MembershipSessionIn,
    PaymentConfigOut,
    StatusOut,
)
from app.services.checkout import (
    CheckoutError,
    create_advertising_session,
    create_membership_session,
    create_subscription_session,
)
from app.services.entitlement_store import SqlEntitlementStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/create-session", response_model=StatusOut)
def create_session_health():
    return StatusOut(status="ok", message="Payment session endpoint is running")


@router.post("/create-session", response_model=CreateSessionOut, response_model_by_alias=True)
def create_session(
    payload: CreateSessionIn = Body(...),
    profile_id: str = Depends(get_current_profile_id),
    container: ApplicationContainer = Depends(get_container),
    store: SqlEntitlementStore = Depends(get_store),
    db: Session = Depends(get_db),
):
    gateway = container.checkout_gateway
    settings = container.settings
    try:
        if isinstance(payload, MembershipSessionIn):
            session = create_membership_session(store, gateway, settings, profile_id=profile_id, payload=payload)
        elif isinstance(payload, AdvertisingSessionIn):
            session = create_advertising_session(
                store, gateway, settings, profile_id=profile_id, payload=payload, now=now_utc()
            )
        else:
            session = create_subscription_session(store, gateway, settings, profile_id=profile_id, payload=payload)
    except CheckoutError as exc:
        db.rollback()
        raise HTTPException(exc.status_code, exc.detail)
    except NotImplementedError as exc:
        db.rollback()
        raise HTTPException(503, str(exc))
    except stripe.StripeError as exc:
        db.rollback()
        logger.warning("processor rejected checkout for profile %s: %s", profile_id, exc.user_message or exc)
        raise HTTPException(502, "Payment processor error")
    db.commit()
    return CreateSessionOut(session_id=session.session_id, url=session.checkout_url)


@router.get("/config", response_model=PaymentConfigOut)
def payment_config(container: ApplicationContainer = Depends(get_container)):
    settings = container.settings
    base = settings.APP_BASE_URL.rstrip("/")
    return PaymentConfigOut(
        provider=container.checkout_gateway.provider_code,  # type: ignore[arg-type]
        checkout_configured=bool(settings.STRIPE_SECRET_KEY),
        webhook_configured=bool(settings.STRIPE_WEBHOOK_SECRET),
        currency=settings.STRIPE_CURRENCY,
        success_url=f"{base}{settings.CHECKOUT_SUCCESS_PATH}",
        cancel_url=f"{base}{settings.CHECKOUT_CANCEL_PATH}",
        ads_daily_rate_cents=settings.ADS_DAILY_RATE_CENTS,
        ads_member_discount_percent=settings.ADS_MEMBER_DISCOUNT_PERCENT,
        ads_max_days=settings.ADS_MAX_DAYS,
    )
