from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

MEMBER_DISCOUNT_PERCENT = 5.0

YEAR_DAYS = 365
DEFAULT_PERIOD_DAYS = 30


@dataclass(frozen=True)
class PriceQuote:
    subtotal: int
    discount_percent: float
    discount_amount: int
    total: int


def calculate_price(
    days: int,
    daily_rate_cents: int,
    has_membership: bool,
    *,
    member_discount_percent: float = MEMBER_DISCOUNT_PERCENT,
) -> PriceQuote:
    """Quote a day-based advertising purchase in minor currency units.

    The discount is rounded half-up on the exact decimal amount, so 7 days at
    500 with membership is 3500 - 175 = 3325 and half cents always round away
    from zero. Callers validate ``days >= 1`` before quoting.
    """
    subtotal = days * daily_rate_cents
    discount_percent = float(member_discount_percent) if has_membership else 0.0
    discount = Decimal(subtotal) * Decimal(str(discount_percent)) / Decimal(100)
    discount_amount = int(discount.quantize(Decimal(1), rounding=ROUND_HALF_UP))
    return PriceQuote(
        subtotal=subtotal,
        discount_percent=discount_percent,
        discount_amount=discount_amount,
        total=subtotal - discount_amount,
    )


def membership_duration_days(interval: str | None) -> int:
    return YEAR_DAYS if (interval or "").strip().lower() == "year" else DEFAULT_PERIOD_DAYS
