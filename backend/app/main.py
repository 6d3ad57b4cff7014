from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import Response
from starlette.middleware.trustedhost import TrustedHostMiddleware

from app.core.config import settings
from app.core.container import ApplicationContainer
from app.core.logging import configure_logging
from app.api.router import router
from app.db.session import build_engine, build_session_factory
from app.services.billing_provider import get_provider_adapter

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    engine = build_engine(settings)
    provider = get_provider_adapter(settings)
    app.state.container = ApplicationContainer(
        settings=settings,
        session_factory=build_session_factory(engine),
        checkout_gateway=provider,
        processor=provider,
    )
    logger.info("payments api started env=%s provider=%s", settings.ENV, provider.provider_code)
    try:
        yield
    finally:
        engine.dispose()


app = FastAPI(
    title="Payments and Entitlements API",
    version="0.1.0",
    lifespan=lifespan,
)

allowed_hosts = [h.strip() for h in settings.ALLOWED_HOSTS.split(",") if h.strip()]
if not allowed_hosts:
    allowed_hosts = ["*"]
app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response: Response = await call_next(request)
    if settings.SECURITY_HEADERS_ENABLED:
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if settings.ENV != "dev":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response

app.include_router(router)

@app.get("/health")
def health():
    return {"ok": True}
