import logging

from app.core.config import settings


def configure_logging() -> None:
    """Configure process-wide logging defaults."""
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # Request lines are already emitted by uvicorn.access
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
