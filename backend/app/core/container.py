from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session

from app.core.config import Settings
from app.services.billing_provider import CheckoutGateway, ProcessorClient


@dataclass(slots=True)
class ApplicationContainer:
    """Clients built once by the process entry point and shared by requests."""

    settings: Settings
    session_factory: Callable[[], Session]
    checkout_gateway: CheckoutGateway
    processor: ProcessorClient
