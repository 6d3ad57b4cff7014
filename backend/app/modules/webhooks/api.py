import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_container, get_store
from app.core.container import ApplicationContainer
from app.db.session import get_db
from app.schemas.payments import StatusOut
from app.schemas.webhooks import StripeEventIn
from app.services.billing_provider import SignatureError, verify_webhook_request
from app.services.entitlement_store import EntitlementStore
from app.services.webhooks import WebhookDispatcher, webhook_http_outcome

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/webhook", response_model=StatusOut)
def webhook_health():
    return StatusOut(status="ok", message="Webhook endpoint is running")


def _ingest(container: ApplicationContainer, store: EntitlementStore, db: Session, headers, raw: bytes) -> JSONResponse:
    try:
        verify_webhook_request(container.settings, headers, raw)
    except SignatureError as exc:
        logger.warning("webhook rejected: %s", exc)
        raise HTTPException(400, "Invalid webhook signature")

    try:
        payload = json.loads(raw)
    except ValueError:
        raise HTTPException(400, "Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(400, "Invalid JSON payload")
    try:
        event = StripeEventIn.model_validate(payload)
    except ValidationError:
        raise HTTPException(400, "Invalid event envelope")

    dispatcher = WebhookDispatcher(
        store,
        container.processor,
        tz_name=container.settings.BILLING_TIMEZONE,
    )
    result = dispatcher.dispatch(event)
    if result.success:
        dispatcher.record_outcome(event, result)
        db.commit()
    else:
        # Nothing from a failed transition is kept; only the ledger row is written.
        db.rollback()
        try:
            dispatcher.record_outcome(event, result)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("could not record failed webhook %s", event.id)

    status_code, body = webhook_http_outcome(result, event.type)
    return JSONResponse(status_code=status_code, content=body)


@router.post("/webhook")
async def webhook_ingest(
    request: Request,
    container: ApplicationContainer = Depends(get_container),
    store: EntitlementStore = Depends(get_store),
    db: Session = Depends(get_db),
):
    raw = await request.body()
    # Handlers block on the database and on processor lookups.
    return await run_in_threadpool(_ingest, container, store, db, request.headers, raw)
