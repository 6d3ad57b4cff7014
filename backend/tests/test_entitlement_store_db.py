from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import sqlalchemy as sa

from app.services.entitlement_store import SqlEntitlementStore

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _profile(db) -> str:
    profile_id = str(uuid4())
    db.execute(
        sa.text("INSERT INTO profiles (id, email, name) VALUES (:id, :email, 'Test')"),
        {"id": profile_id, "email": f"{profile_id[:8]}@example.com"},
    )
    return profile_id


def _business(db, owner_id: str) -> str:
    return db.execute(
        sa.text("INSERT INTO businesses (owner_id, name) VALUES (:owner, 'Corner Cafe') RETURNING id::text"),
        {"owner": owner_id},
    ).scalar_one()


def _membership_plan(db) -> str:
    return db.execute(
        sa.text(
            """
            INSERT INTO membership_plans (code, name, price_cents, interval)
            VALUES (:code, 'Member', 999, 'month')
            RETURNING id::text
            """
        ),
        {"code": f"m_{uuid4().hex[:10]}"},
    ).scalar_one()


def _campaign_args(**overrides):
    values = dict(
        days=7,
        daily_rate_cents=500,
        total_amount_cents=3500,
        discount_percent=0.0,
        had_membership=False,
        stripe_session_id=f"cs_{uuid4().hex}",
        stripe_payment_intent_id=None,
    )
    values.update(overrides)
    return values


def test_order_is_paid_exactly_once(db_session):
    store = SqlEntitlementStore(db_session)
    profile_id = _profile(db_session)
    plan_id = _membership_plan(db_session)
    order = store.create_membership_order(profile_id=profile_id, plan_id=plan_id, amount_cents=999, currency="usd")

    assert store.mark_order_paid(order.id, payment_intent_id="pi_1", paid_at=NOW) is True
    assert store.mark_order_paid(order.id, payment_intent_id="pi_2", paid_at=NOW) is False
    assert store.mark_order_failed(order.id) is False
    paid = store.get_order(order.id)
    assert paid.status == "paid"
    assert paid.stripe_payment_intent_id == "pi_1"


def test_subscription_insert_is_idempotent(db_session):
    store = SqlEntitlementStore(db_session)
    profile_id = _profile(db_session)
    plan_id = db_session.execute(
        sa.text(
            """
            INSERT INTO subscription_plans (code, name, price_cents, stripe_price_id)
            VALUES (:code, 'Pro', 1999, 'price_pro')
            RETURNING id::text
            """
        ),
        {"code": f"s_{uuid4().hex[:10]}"},
    ).scalar_one()
    external_id = f"sub_{uuid4().hex}"
    args = dict(
        profile_id=profile_id,
        plan_id=plan_id,
        stripe_subscription_id=external_id,
        stripe_customer_id="cus_1",
        stripe_price_id="price_pro",
        status="active",
        current_period_start=NOW,
        current_period_end=NOW + timedelta(days=30),
    )

    first = store.create_subscription(**args)
    second = store.create_subscription(**args)

    assert first is not None
    assert second is None
    assert store.get_current_subscription(profile_id).id == first.id
    assert store.has_active_membership(profile_id, NOW) is True
    assert store.update_subscription(first.id, {"status": "past_due"}) is True
    assert store.get_subscription_by_external_id(external_id).status == "past_due"


def test_second_open_campaign_is_refused(db_session):
    store = SqlEntitlementStore(db_session)
    business_id = _business(db_session, _profile(db_session))

    created = store.create_campaign(business_id=business_id, start_at=NOW, end_at=NOW + timedelta(days=7), **_campaign_args())
    duplicate = store.create_campaign(business_id=business_id, start_at=NOW, end_at=NOW + timedelta(days=3), **_campaign_args())

    assert created is not None
    assert duplicate is None
    # The savepoint keeps the outer transaction usable.
    assert store.get_active_campaign(business_id).id == created.id


def test_extension_is_compare_and_swap_on_end(db_session):
    store = SqlEntitlementStore(db_session)
    business_id = _business(db_session, _profile(db_session))
    campaign = store.create_campaign(business_id=business_id, start_at=NOW, end_at=NOW + timedelta(days=7), **_campaign_args())

    stale = store.extend_campaign(
        campaign.id,
        expected_end_at=NOW,
        start_at=NOW,
        end_at=NOW + timedelta(days=10),
        **_campaign_args(days=3, total_amount_cents=1500),
    )
    fresh = store.extend_campaign(
        campaign.id,
        expected_end_at=campaign.end_at,
        start_at=campaign.end_at,
        end_at=campaign.end_at + timedelta(days=3),
        **_campaign_args(days=3, total_amount_cents=1500),
    )

    assert stale is False
    assert fresh is True
    extended = store.get_active_campaign(business_id)
    assert extended.days_purchased == 10
    assert extended.total_amount_cents == 5000
    assert extended.start_at == NOW
    assert extended.end_at == NOW + timedelta(days=10)


def test_purchase_ledger_claims_session_once(db_session):
    store = SqlEntitlementStore(db_session)
    business_id = _business(db_session, _profile(db_session))
    session_id = f"cs_{uuid4().hex}"
    args = dict(
        business_id=business_id,
        stripe_session_id=session_id,
        stripe_payment_intent_id=None,
        days=2,
        daily_rate_cents=500,
        discount_percent=0.0,
        total_amount_cents=1000,
        had_membership=False,
    )

    assert store.claim_ad_purchase(**args) is not None
    assert store.claim_ad_purchase(**args) is None


def test_lapsed_campaigns_are_expired(db_session):
    store = SqlEntitlementStore(db_session)
    business_id = _business(db_session, _profile(db_session))
    campaign = store.create_campaign(
        business_id=business_id,
        start_at=NOW - timedelta(days=10),
        end_at=NOW - timedelta(days=1),
        **_campaign_args(),
    )

    assert store.expire_lapsed_campaigns(NOW) >= 1
    assert store.get_active_campaign(business_id) is None
    assert store.expire_campaign(campaign.id) is False


def test_webhook_ledger_keeps_processed_status(db_session):
    store = SqlEntitlementStore(db_session)
    event_id = f"evt_{uuid4().hex}"

    store.record_webhook_event(event_id=event_id, event_type="invoice.paid", status="failed", message="x", error_message="x")
    assert store.get_webhook_event_status(event_id) == "failed"
    store.record_webhook_event(event_id=event_id, event_type="invoice.paid", status="processed", message="ok", error_message=None)
    store.record_webhook_event(event_id=event_id, event_type="invoice.paid", status="ignored", message="dup", error_message=None)
    assert store.get_webhook_event_status(event_id) == "processed"


def test_active_membership_plans_are_listed_with_features(db_session):
    store = SqlEntitlementStore(db_session)
    code = f"m_{uuid4().hex[:10]}"
    db_session.execute(
        sa.text(
            """
            INSERT INTO membership_plans (code, name, price_cents, interval, features, is_active)
            VALUES (:code, 'Listed', 1, 'year', '["badge"]'::jsonb, true),
                   (:hidden, 'Hidden', 1, 'year', '[]'::jsonb, false)
            """
        ),
        {"code": code, "hidden": f"{code}_off"},
    )

    rows = {row["code"]: row for row in store.list_active_membership_plans()}

    assert rows[code]["features"] == ["badge"]
    assert f"{code}_off" not in rows
    prices = [row["price_cents"] for row in store.list_active_membership_plans()]
    assert prices == sorted(prices)
