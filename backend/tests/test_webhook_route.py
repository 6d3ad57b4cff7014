import asyncio
import json

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app.api.deps import get_container, get_store
from app.core.config import Settings
from app.core.container import ApplicationContainer
from app.db.session import get_db
from app.main import app
from app.services.billing_provider import sign_payload
from tests.fakes import FakeGateway, checkout_session

SECRET = "whsec_route"


class RecordingSession:
    def __init__(self):
        self.calls: list[str] = []

    def commit(self):
        self.calls.append("commit")

    def rollback(self):
        self.calls.append("rollback")


@pytest.fixture
def db() -> RecordingSession:
    return RecordingSession()


@pytest.fixture
def client(store, processor, db):
    container = ApplicationContainer(
        settings=Settings(
            DATABASE_URL="postgresql+psycopg://localhost/test",
            AUTH_JWT_SECRET="x",
            STRIPE_WEBHOOK_SECRET=SECRET,
            ENV="prod",
        ),
        session_factory=lambda: db,
        checkout_gateway=FakeGateway(),
        processor=processor,
    )
    app.dependency_overrides[get_container] = lambda: container
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_db] = lambda: db
    try:
        yield TestClient(app, base_url="http://localhost")
    finally:
        app.dependency_overrides.clear()


def _post(client, event: dict, *, secret: str = SECRET):
    raw = json.dumps(event).encode("utf-8")
    return client.post(
        "/payment/webhook",
        content=raw,
        headers={"Content-Type": "application/json", "stripe-signature": sign_payload(raw, secret)},
    )


def _event(obj: dict, *, event_id: str = "evt_route_1") -> dict:
    return {"id": event_id, "type": "checkout.session.completed", "created": 1773144000, "data": {"object": obj}}


def _advertising(business_id: str) -> dict:
    return checkout_session(
        {
            "productType": "advertising",
            "businessId": business_id,
            "days": "3",
            "dailyRateCents": "500",
            "totalAmountCents": "1500",
            "discountPercent": "0",
            "hasMembership": "false",
        }
    )


def test_bad_signature_never_reaches_the_store(client, store, db):
    business = store.add_business(store.add_profile())

    res = _post(client, _event(_advertising(business.id)), secret="whsec_wrong")

    assert res.status_code == 400
    assert store.events == {}
    assert store.campaigns == {}
    assert store.purchases == {}
    assert db.calls == []


def test_missing_signature_header_is_rejected(client, store, db):
    res = client.post("/payment/webhook", content=b"{}", headers={"Content-Type": "application/json"})
    assert res.status_code == 400
    assert store.events == {}
    assert db.calls == []


def test_success_commits_and_records_processed(client, store, db):
    business = store.add_business(store.add_profile())

    res = _post(client, _event(_advertising(business.id)))

    assert res.status_code == 200
    assert res.json() == {
        "success": True,
        "received": True,
        "eventType": "checkout.session.completed",
        "message": "Campaign created",
    }
    assert db.calls == ["commit"]
    assert store.events["evt_route_1"]["status"] == "processed"


def test_business_failure_rolls_back_and_records_failed(client, store, db):
    res = _post(client, _event(checkout_session({"productType": "membership", "orderId": "order_missing"})))

    assert res.status_code == 200
    assert res.json() == {"success": False, "error": "Order not found"}
    assert db.calls == ["rollback", "commit"]
    assert len(store.events) == 1
    assert store.events["evt_route_1"]["status"] == "failed"
    assert store.events["evt_route_1"]["error_message"] == "Order not found"


def test_persistence_outage_asks_for_redelivery(client, store, db):
    def unreachable(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    store.get_business = unreachable

    res = _post(client, _event(_advertising("biz_1")))

    assert res.status_code == 503
    assert res.json()["success"] is False
    assert db.calls[0] == "rollback"
    assert store.events["evt_route_1"]["status"] == "failed"


def test_malformed_body_is_rejected(client, store, db):
    raw = b"not json"
    res = client.post(
        "/payment/webhook",
        content=raw,
        headers={"Content-Type": "application/json", "stripe-signature": sign_payload(raw, SECRET)},
    )
    assert res.status_code == 400
    assert store.events == {}


def test_handlers_run_off_the_event_loop(client, store, db):
    seen = []
    lookup = store.get_webhook_event_status

    def recording_lookup(event_id):
        try:
            asyncio.get_running_loop()
            seen.append("event loop")
        except RuntimeError:
            seen.append("worker thread")
        return lookup(event_id)

    store.get_webhook_event_status = recording_lookup
    business = store.add_business(store.add_profile())

    res = _post(client, _event(_advertising(business.id)))

    assert res.status_code == 200
    assert seen == ["worker thread"]
