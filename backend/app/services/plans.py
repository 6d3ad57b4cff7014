from app.schemas.plans import (
    MembershipCatalogOut,
    MembershipPlanOut,
    SubscriptionCatalogOut,
    SubscriptionPlanOut,
)


def display_price(amount_cents: int, currency: str) -> str:
    amount = f"{amount_cents / 100:.2f}"
    if currency.lower() == "usd":
        return f"${amount}"
    return f"{amount} {currency.upper()}"


def billing_period(interval: str, count: int) -> str:
    if count > 1:
        return f"{count} {interval}s"
    return interval


def _features(value) -> list[str]:
    if not value:
        return []
    return [str(v) for v in value]


def get_membership_catalog(store) -> MembershipCatalogOut:
    return MembershipCatalogOut(
        plans=[
            MembershipPlanOut(
                id=row["id"],
                code=row["code"],
                name=row["name"],
                amount_cents=row["price_cents"],
                display_price=display_price(row["price_cents"], row["currency"]),
                currency=row["currency"],
                interval=row["interval"],
                description=row.get("description") or "",
                features=_features(row.get("features")),
            )
            for row in store.list_active_membership_plans()
        ]
    )


def get_subscription_catalog(store) -> SubscriptionCatalogOut:
    """Active subscription plans, cheapest first.

    Plans without a processor price are listed but flagged as not purchasable,
    since checkout rejects them.
    """
    return SubscriptionCatalogOut(
        plans=[
            SubscriptionPlanOut(
                id=row["id"],
                code=row["code"],
                name=row["name"],
                amount_cents=row["price_cents"],
                display_price=display_price(row["price_cents"], row["currency"]),
                currency=row["currency"],
                billing_interval=row["billing_interval"],
                billing_interval_count=row["billing_interval_count"],
                billing_period=billing_period(row["billing_interval"], row["billing_interval_count"]),
                description=row.get("description") or "",
                features=_features(row.get("features")),
                is_featured=bool(row.get("is_featured")),
                purchasable=bool(row.get("stripe_price_id")),
            )
            for row in store.list_active_subscription_plans()
        ]
    )
