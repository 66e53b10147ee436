import calendar
import json
import math
from datetime import date, datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP

from fastapi import HTTPException, status

from app.config.config import redis_client, settings
from app.database.gateway import GraphQLGateway
from app.schemas.stats_schema import (
    DailyEarningsResponse,
    EarningsBucket,
    EarningsComponent,
    EarningsGoals,
    EarningsStats,
    EarningsStatsResponse,
    EarningsTotals,
    EarningsWindow,
    GoalProgress,
    OrderCounts,
    PerformanceMetrics,
    PeriodRange,
    StoreEarnings,
)
from app.schemas.status_schema import EarningsPeriod
from app.utils.logger_config import setup_logger
from app.utils.utils import (
    local_tz,
    order_earnings,
    parse_timestamp,
    percentage_of,
    quantize_money,
    to_decimal,
)

logger = setup_logger()


GET_EARNINGS_STATS = """
query GetEarningsStats($shopperId: uuid!, $thirtyDaysAgo: timestamptz!) {
  Orders(where: { shopper_id: { _eq: $shopperId }, status: { _eq: "delivered" } }) {
    id
    service_fee
    delivery_fee
    created_at
    updated_at
    delivery_time
    delivery_photo_url
    Shop { name }
  }
  CompletedOrders: Orders_aggregate(
    where: { shopper_id: { _eq: $shopperId }, status: { _eq: "delivered" } }
  ) {
    aggregate { count }
  }
  CompletedWithPhoto: Orders_aggregate(
    where: {
      shopper_id: { _eq: $shopperId }
      status: { _eq: "delivered" }
      delivery_photo_url: { _is_null: false }
    }
  ) {
    aggregate { count }
  }
  AssignedOrders: Orders_aggregate(
    where: { shopper_id: { _eq: $shopperId }, created_at: { _gte: $thirtyDaysAgo } }
  ) {
    aggregate { count }
  }
  Ratings_aggregate(where: { shopper_id: { _eq: $shopperId } }) {
    aggregate {
      avg { rating }
      count
    }
  }
}
"""

GET_DELIVERED_ORDERS_BETWEEN = """
query GetDeliveredOrdersBetween($shopperId: uuid!, $startDate: timestamptz!, $endDate: timestamptz!) {
  Orders(
    where: {
      shopper_id: { _eq: $shopperId }
      status: { _eq: "delivered" }
      updated_at: { _gte: $startDate, _lte: $endDate }
    }
    order_by: { updated_at: asc }
  ) {
    id
    service_fee
    delivery_fee
    updated_at
  }
}
"""

ON_TIME_TOLERANCE = timedelta(minutes=15)
WEEKDAY_LABELS = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]

# Weights of the performance score; rating is scaled from 0-5 to 0-100 first
RATING_WEIGHT = Decimal("0.30")
ON_TIME_WEIGHT = Decimal("0.25")
ACCURACY_WEIGHT = Decimal("0.20")
ACCEPTANCE_WEIGHT = Decimal("0.25")


def _start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=local_tz())


def _end_of_day(day: date) -> datetime:
    return datetime.combine(day, time.max, tzinfo=local_tz())


def week_window(now: datetime) -> tuple[datetime, datetime]:
    """Sunday 00:00:00 through Saturday 23:59:59.999999 of the week holding `now`."""
    sunday = now.date() - timedelta(days=(now.weekday() + 1) % 7)
    return _start_of_day(sunday), _end_of_day(sunday + timedelta(days=6))


def month_window(now: datetime) -> tuple[datetime, datetime]:
    last_day = calendar.monthrange(now.year, now.month)[1]
    return (
        _start_of_day(date(now.year, now.month, 1)),
        _end_of_day(date(now.year, now.month, last_day)),
    )


def quarter_window(now: datetime) -> tuple[datetime, datetime]:
    first_month = 3 * ((now.month - 1) // 3) + 1
    last_month = first_month + 2
    last_day = calendar.monthrange(now.year, last_month)[1]
    return (
        _start_of_day(date(now.year, first_month, 1)),
        _end_of_day(date(now.year, last_month, last_day)),
    )


def earnings_between(orders: list[dict], start: datetime, end: datetime) -> Decimal:
    """Sum earnings of the orders completed (by `updated_at`) inside the window."""
    total = Decimal("0")
    for order in orders:
        completed_at = parse_timestamp(order.get("updated_at"))
        if completed_at and start <= completed_at <= end:
            total += order_earnings(order)
    return quantize_money(total)


def build_store_breakdown(orders: list[dict], total_earnings: Decimal) -> list[StoreEarnings]:
    """
    Earnings per store, largest first. Beyond three stores the rest are
    folded into a single "Other Stores" entry.
    """
    per_store: dict[str, Decimal] = {}
    for order in orders:
        store = (order.get("Shop") or {}).get("name") or "Unknown Store"
        per_store[store] = per_store.get(store, Decimal("0")) + order_earnings(order)

    ranked = sorted(per_store.items(), key=lambda entry: entry[1], reverse=True)
    if len(ranked) > 3:
        other = sum((amount for _, amount in ranked[3:]), Decimal("0"))
        ranked = ranked[:3] + [("Other Stores", other)]

    return [
        StoreEarnings(
            store=store,
            amount=quantize_money(amount),
            percentage=percentage_of(amount, total_earnings),
        )
        for store, amount in ranked
    ]


def build_earnings_components(orders: list[dict], total_earnings: Decimal) -> list[EarningsComponent]:
    delivery = sum((to_decimal(o.get("delivery_fee")) for o in orders), Decimal("0"))
    service = sum((to_decimal(o.get("service_fee")) for o in orders), Decimal("0"))
    return [
        EarningsComponent(
            type="Delivery Fee",
            amount=quantize_money(delivery),
            percentage=percentage_of(delivery, total_earnings),
        ),
        EarningsComponent(
            type="Service Fee",
            amount=quantize_money(service),
            percentage=percentage_of(service, total_earnings),
        ),
    ]


def average_active_hours(orders: list[dict], completed_count: int) -> float:
    if not completed_count:
        return 0.0
    total_hours = 0.0
    for order in orders:
        started = parse_timestamp(order.get("created_at"))
        finished = parse_timestamp(order.get("updated_at"))
        if started and finished:
            total_hours += (finished - started).total_seconds() / 3600
    return round(total_hours / completed_count, 1)


def goal_progress(current: Decimal, target: Decimal) -> GoalProgress:
    return GoalProgress(
        current=quantize_money(current),
        target=quantize_money(target),
        percentage=percentage_of(current, target),
    )


def on_time_rate(orders: list[dict]) -> int | None:
    """
    Share of delivered orders completed within 15 minutes of their promised
    delivery time. None when no order carries a delivery time.
    """
    scheduled = [o for o in orders if o.get("delivery_time") and o.get("updated_at")]
    if not scheduled:
        return None

    on_time = 0
    for order in scheduled:
        promised = parse_timestamp(order["delivery_time"])
        delivered = parse_timestamp(order["updated_at"])
        if abs(delivered - promised) <= ON_TIME_TOLERANCE:
            on_time += 1
    return percentage_of(Decimal(on_time), Decimal(len(scheduled)))


def performance_score(rating: float, on_time: int, accuracy: int, acceptance: int) -> int:
    score = (
        Decimal(str(rating)) * 20 * RATING_WEIGHT
        + on_time * ON_TIME_WEIGHT
        + accuracy * ACCURACY_WEIGHT
        + acceptance * ACCEPTANCE_WEIGHT
    )
    return max(0, min(100, int(score.quantize(Decimal("1"), rounding=ROUND_HALF_UP))))


def build_performance(
    orders: list[dict],
    rating: float,
    rating_count: int,
    completed_with_photo: int,
    assigned_recent: int,
) -> PerformanceMetrics:
    placeholders = []

    on_time = on_time_rate(orders)
    if on_time is None:
        on_time = 100
        placeholders.append("on_time_delivery")

    if assigned_recent:
        ratio = min(100, percentage_of(Decimal(completed_with_photo), Decimal(assigned_recent)))
    else:
        ratio = 100
    accuracy = ratio
    acceptance = ratio if completed_with_photo else 0

    return PerformanceMetrics(
        customer_rating=rating,
        rating_count=rating_count,
        on_time_delivery=on_time,
        order_accuracy=accuracy,
        acceptance_rate=acceptance,
        performance_score=performance_score(rating, on_time, accuracy, acceptance),
        placeholders=placeholders,
    )


def _aggregate_count(data: dict, key: str) -> int:
    return int(((data.get(key) or {}).get("aggregate") or {}).get("count") or 0)


def build_earnings_stats(data: dict, now: datetime) -> EarningsStats:
    orders = data.get("Orders") or []
    completed_count = _aggregate_count(data, "CompletedOrders")

    total_earnings = quantize_money(
        sum((order_earnings(o) for o in orders), Decimal("0"))
    )

    ratings = (data.get("Ratings_aggregate") or {}).get("aggregate") or {}
    rating = round(float((ratings.get("avg") or {}).get("rating") or 0), 1)

    windows = {
        "week": week_window(now),
        "month": month_window(now),
        "quarter": quarter_window(now),
    }
    window_earnings = {
        name: earnings_between(orders, start, end) for name, (start, end) in windows.items()
    }

    return EarningsStats(
        total_earnings=total_earnings,
        completed_orders=completed_count,
        active_hours=average_active_hours(orders, completed_count),
        rating=rating,
        store_breakdown=build_store_breakdown(orders, total_earnings),
        earnings_components=build_earnings_components(orders, total_earnings),
        week_earnings=window_earnings["week"],
        month_earnings=window_earnings["month"],
        quarter_earnings=window_earnings["quarter"],
        windows={
            name: EarningsWindow(start=start, end=end) for name, (start, end) in windows.items()
        },
        goals=EarningsGoals(
            weekly=goal_progress(window_earnings["week"], settings.WEEKLY_EARNINGS_TARGET),
            monthly=goal_progress(window_earnings["month"], settings.MONTHLY_EARNINGS_TARGET),
            quarterly=goal_progress(window_earnings["quarter"], settings.QUARTERLY_EARNINGS_TARGET),
        ),
        performance=build_performance(
            orders,
            rating=rating,
            rating_count=int(ratings.get("count") or 0),
            completed_with_photo=_aggregate_count(data, "CompletedWithPhoto"),
            assigned_recent=_aggregate_count(data, "AssignedOrders"),
        ),
    )


async def get_earnings_stats(
    gateway: GraphQLGateway, shopper_id: str, now: datetime | None = None
) -> EarningsStatsResponse:
    """Earnings dashboard figures for a shopper, cached in Redis."""
    try:
        cache_key = f"earnings_stats:{shopper_id}"
        cached_data = redis_client.get(cache_key)
        if cached_data:
            return EarningsStatsResponse(**json.loads(cached_data))

        now = (now or datetime.now(local_tz())).astimezone(local_tz())
        data = await gateway.query(
            GET_EARNINGS_STATS,
            {
                "shopperId": shopper_id,
                "thirtyDaysAgo": (now - timedelta(days=30)).isoformat(),
            },
        )

        response = EarningsStatsResponse(stats=build_earnings_stats(data, now))
        redis_client.setex(cache_key, settings.STATS_CACHE_SECONDS, response.model_dump_json())

        return response

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching earnings stats for shopper {shopper_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e)
        )


def period_range(period: EarningsPeriod, now: datetime) -> tuple[datetime, datetime]:
    if period == EarningsPeriod.TODAY:
        return _start_of_day(now.date()), _end_of_day(now.date())

    if period == EarningsPeriod.THIS_WEEK:
        return week_window(now)

    if period == EarningsPeriod.LAST_WEEK:
        start, end = week_window(now)
        return start - timedelta(days=7), end - timedelta(days=7)

    if period == EarningsPeriod.THIS_MONTH:
        return month_window(now)

    # Last month: step back from the first of this month
    first_of_month = date(now.year, now.month, 1)
    return month_window(_start_of_day(first_of_month - timedelta(days=1)))


def bucket_earnings(
    orders: list[dict], period: EarningsPeriod, start: datetime
) -> list[EarningsBucket]:
    """
    Spread earnings over chart buckets: hours for today, weekdays for weeks
    and 7-day blocks for months.
    """
    if period == EarningsPeriod.TODAY:
        labels = [f"{hour}:00" for hour in range(24)]
    elif period in (EarningsPeriod.THIS_WEEK, EarningsPeriod.LAST_WEEK):
        labels = list(WEEKDAY_LABELS)
    else:
        days_in_month = calendar.monthrange(start.year, start.month)[1]
        labels = [f"Week {n + 1}" for n in range(math.ceil(days_in_month / 7))]

    amounts = [Decimal("0")] * len(labels)
    for order in orders:
        completed_at = parse_timestamp(order.get("updated_at"))
        if not completed_at:
            continue
        if period == EarningsPeriod.TODAY:
            index = completed_at.hour
        elif period in (EarningsPeriod.THIS_WEEK, EarningsPeriod.LAST_WEEK):
            index = (completed_at.weekday() + 1) % 7
        else:
            index = (completed_at.day - 1) // 7
        if 0 <= index < len(amounts):
            amounts[index] += order_earnings(order)

    buckets = [
        EarningsBucket(day=label, earnings=quantize_money(amount))
        for label, amount in zip(labels, amounts)
    ]
    if period == EarningsPeriod.TODAY:
        # Every third hour keeps the axis readable; busy hours always show
        buckets = [b for hour, b in enumerate(buckets) if hour % 3 == 0 or b.earnings > 0]
    return buckets


async def get_daily_earnings(
    gateway: GraphQLGateway,
    shopper_id: str,
    period: EarningsPeriod = EarningsPeriod.THIS_WEEK,
    now: datetime | None = None,
) -> DailyEarningsResponse:
    now = (now or datetime.now(local_tz())).astimezone(local_tz())
    start, end = period_range(period, now)

    try:
        data = await gateway.query(
            GET_DELIVERED_ORDERS_BETWEEN,
            {
                "shopperId": shopper_id,
                "startDate": start.isoformat(),
                "endDate": end.isoformat(),
            },
        )
    except Exception as e:
        logger.error(f"Error fetching daily earnings for shopper {shopper_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e)
        )

    orders = data.get("Orders") or []
    completed = quantize_money(sum((order_earnings(o) for o in orders), Decimal("0")))

    return DailyEarningsResponse(
        data=bucket_earnings(orders, period, start),
        period=PeriodRange(start=start, end=end, type=period),
        earnings=EarningsTotals(completed=completed, total=completed),
        order_counts=OrderCounts(completed=len(orders), total=len(orders)),
    )
