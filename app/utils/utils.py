from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from app.config.config import settings


TWO_PLACES = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Parse a money value coming back from the gateway (string, number or null)."""
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def money_str(value: Decimal) -> str:
    """Wallets store balances as decimal strings with two places."""
    return f"{quantize_money(value):.2f}"


def order_earnings(order: dict, include_service_fee: bool = True) -> Decimal:
    earnings = to_decimal(order.get("delivery_fee"))
    if include_service_fee:
        earnings += to_decimal(order.get("service_fee"))
    return earnings


def percentage_of(part: Decimal, whole: Decimal) -> int:
    if not whole:
        return 0
    return int((part / whole * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def local_tz() -> ZoneInfo:
    return ZoneInfo(settings.TZ)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a Hasura timestamptz into an aware datetime in the service timezone."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=local_tz())
    return parsed.astimezone(local_tz())


def join_distinct(values: Iterable[str | None]) -> str:
    """Join non-empty values with ', ' keeping first-seen order."""
    seen: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return ", ".join(seen)
