from fastapi import APIRouter
from app.modules.advertising import api as advertising
from app.modules.payments import api as payments
from app.modules.plans import api as plans
from app.modules.webhooks import api as webhooks

router = APIRouter()
router.include_router(payments.router, prefix="/payment", tags=["payments"])
router.include_router(webhooks.router, prefix="/payment", tags=["webhooks"])
router.include_router(advertising.router, prefix="/advertising", tags=["advertising"])
router.include_router(plans.router, tags=["plans"])
