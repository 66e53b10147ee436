import json
import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo
from httpx import AsyncClient

from app.schemas.status_schema import EarningsPeriod
from app.services.stats_service import (
    average_active_hours,
    bucket_earnings,
    build_earnings_stats,
    build_performance,
    build_store_breakdown,
    month_window,
    on_time_rate,
    performance_score,
    period_range,
    quarter_window,
    week_window,
)
from app.test.factories import DeliveredOrderFactory, ShopFactory


KIGALI = ZoneInfo("Africa/Kigali")
# A Wednesday
NOW = datetime(2024, 5, 15, 14, 30, tzinfo=KIGALI)


def at(*args) -> str:
    return datetime(*args, tzinfo=KIGALI).isoformat()


def store_order(name: str | None, amount: str) -> dict:
    return DeliveredOrderFactory(
        Shop=ShopFactory(name=name) if name else None,
        service_fee="0",
        delivery_fee=amount,
    )


class TestWindows:
    def test_week_runs_sunday_to_saturday(self):
        start, end = week_window(NOW)

        assert start == datetime(2024, 5, 12, 0, 0, 0, tzinfo=KIGALI)
        assert start.weekday() == 6
        assert end == datetime(2024, 5, 18, 23, 59, 59, 999999, tzinfo=KIGALI)

    def test_week_window_on_a_sunday_starts_that_day(self):
        start, _ = week_window(datetime(2024, 5, 12, 8, 0, tzinfo=KIGALI))
        assert start.date() == datetime(2024, 5, 12).date()

    def test_month_window(self):
        start, end = month_window(datetime(2024, 2, 10, tzinfo=KIGALI))
        assert start == datetime(2024, 2, 1, tzinfo=KIGALI)
        assert end.date() == datetime(2024, 2, 29).date()

    @pytest.mark.parametrize(
        "month,first,last,last_day",
        [(1, 1, 3, 31), (5, 4, 6, 30), (8, 7, 9, 30), (12, 10, 12, 31)],
    )
    def test_quarter_window(self, month, first, last, last_day):
        start, end = quarter_window(datetime(2024, month, 5, tzinfo=KIGALI))
        assert (start.month, start.day) == (first, 1)
        assert (end.month, end.day) == (last, last_day)

    def test_last_week_and_last_month(self):
        start, end = period_range(EarningsPeriod.LAST_WEEK, NOW)
        assert start == datetime(2024, 5, 5, tzinfo=KIGALI)
        assert end.date() == datetime(2024, 5, 11).date()

        start, end = period_range(EarningsPeriod.LAST_MONTH, datetime(2024, 1, 10, tzinfo=KIGALI))
        assert start == datetime(2023, 12, 1, tzinfo=KIGALI)
        assert end.date() == datetime(2023, 12, 31).date()


class TestStoreBreakdown:
    def test_top_three_plus_other_stores(self):
        orders = [
            store_order("Simba", "4000"),
            store_order("Frulep", "3000"),
            store_order("Sawa City", "2000"),
            store_order("Nakumatt", "600"),
            store_order(None, "400"),
        ]

        breakdown = build_store_breakdown(orders, Decimal("10000"))

        assert [s.store for s in breakdown] == ["Simba", "Frulep", "Sawa City", "Other Stores"]
        assert breakdown[-1].amount == Decimal("1000.00")
        assert [s.percentage for s in breakdown] == [40, 30, 20, 10]

    def test_missing_store_name(self):
        breakdown = build_store_breakdown([store_order(None, "500")], Decimal("500"))
        assert breakdown[0].store == "Unknown Store"
        assert breakdown[0].percentage == 100

    def test_percentages_stay_within_rounding(self):
        orders = [store_order(f"Store {n}", "1") for n in range(7)]
        breakdown = build_store_breakdown(orders, Decimal("7"))
        assert sum(s.percentage for s in breakdown) <= 100 + len(breakdown)

    def test_zero_total(self):
        breakdown = build_store_breakdown([store_order("Simba", "0")], Decimal("0"))
        assert breakdown[0].percentage == 0


class TestPerformance:
    def test_score_weights(self):
        # 4.5 * 20 * 0.30 + 90 * 0.25 + 80 * 0.20 + 80 * 0.25 = 27 + 22.5 + 16 + 20
        assert performance_score(4.5, 90, 80, 80) == 86

    def test_score_is_clamped(self):
        assert performance_score(10.0, 100, 100, 100) == 100
        assert performance_score(0.0, 0, 0, 0) == 0

    def test_on_time_within_fifteen_minutes(self):
        orders = [
            DeliveredOrderFactory(delivery_time=at(2024, 5, 1, 12, 0), updated_at=at(2024, 5, 1, 12, 10)),
            DeliveredOrderFactory(delivery_time=at(2024, 5, 1, 12, 0), updated_at=at(2024, 5, 1, 11, 50)),
            DeliveredOrderFactory(delivery_time=at(2024, 5, 1, 12, 0), updated_at=at(2024, 5, 1, 12, 40)),
            DeliveredOrderFactory(delivery_time=None),
        ]
        assert on_time_rate(orders) == 67

    def test_on_time_placeholder_is_reported(self):
        performance = build_performance(
            [DeliveredOrderFactory()], rating=4.0, rating_count=3,
            completed_with_photo=8, assigned_recent=10,
        )

        assert performance.on_time_delivery == 100
        assert performance.placeholders == ["on_time_delivery"]
        assert performance.order_accuracy == 80
        assert performance.acceptance_rate == 80

    def test_no_assigned_and_no_photos(self):
        performance = build_performance(
            [], rating=0.0, rating_count=0, completed_with_photo=0, assigned_recent=0
        )

        assert performance.order_accuracy == 100
        assert performance.acceptance_rate == 0


class TestEarningsStats:
    def stats_data(self) -> dict:
        return {
            "Orders": [
                # This week
                DeliveredOrderFactory(
                    service_fee="300", delivery_fee="700",
                    created_at=at(2024, 5, 13, 9, 0), updated_at=at(2024, 5, 13, 10, 30),
                ),
                # Earlier this month
                DeliveredOrderFactory(
                    service_fee="100", delivery_fee="400",
                    created_at=at(2024, 5, 2, 9, 0), updated_at=at(2024, 5, 2, 9, 30),
                ),
                # Last quarter
                DeliveredOrderFactory(
                    service_fee="0", delivery_fee="2000",
                    created_at=at(2024, 3, 30, 9, 0), updated_at=at(2024, 3, 30, 10, 0),
                ),
            ],
            "CompletedOrders": {"aggregate": {"count": 3}},
            "CompletedWithPhoto": {"aggregate": {"count": 3}},
            "AssignedOrders": {"aggregate": {"count": 4}},
            "Ratings_aggregate": {"aggregate": {"avg": {"rating": 4.66}, "count": 6}},
        }

    def test_totals_and_windows(self):
        stats = build_earnings_stats(self.stats_data(), NOW)

        assert stats.total_earnings == Decimal("3500.00")
        assert stats.completed_orders == 3
        assert stats.active_hours == 1.0
        assert stats.rating == 4.7
        assert stats.week_earnings == Decimal("1000.00")
        assert stats.month_earnings == Decimal("1500.00")
        assert stats.quarter_earnings == Decimal("1500.00")
        assert stats.windows["week"].start == datetime(2024, 5, 12, tzinfo=KIGALI)
        assert [c.type for c in stats.earnings_components] == ["Delivery Fee", "Service Fee"]
        assert stats.earnings_components[0].amount == Decimal("3100.00")
        assert stats.goals.weekly.current == Decimal("1000.00")
        assert stats.goals.weekly.percentage == 2

    def test_average_active_hours_rounds_to_one_decimal(self):
        orders = [
            DeliveredOrderFactory(created_at=at(2024, 5, 1, 9, 0), updated_at=at(2024, 5, 1, 10, 20)),
        ]
        assert average_active_hours(orders, 1) == 1.3
        assert average_active_hours([], 0) == 0.0

    @pytest.mark.asyncio
    async def test_endpoint_caches_the_response(self, client: AsyncClient, fake_gateway, shopper, mock_redis):
        fake_gateway.on("GetEarningsStats", self.stats_data())

        response = await client.get("/api/shopper/earnings-stats")

        assert response.status_code == 200
        assert response.json()["success"] is True
        key, ttl, payload = mock_redis.setex.call_args.args
        assert key == f"earnings_stats:{shopper.id}"
        assert ttl == 300
        assert json.loads(payload)["stats"]["completed_orders"] == 3

    @pytest.mark.asyncio
    async def test_endpoint_serves_cached_stats(self, client: AsyncClient, fake_gateway, mock_redis):
        cached = build_earnings_stats(self.stats_data(), NOW)
        mock_redis.get.return_value = json.dumps({"success": True, "stats": json.loads(cached.model_dump_json())})

        response = await client.get("/api/shopper/earnings-stats")

        assert response.status_code == 200
        assert response.json()["stats"]["completed_orders"] == 3
        assert fake_gateway.queries == []


class TestDailyEarnings:
    def test_today_shows_every_third_hour_and_busy_hours(self):
        start, _ = period_range(EarningsPeriod.TODAY, NOW)
        orders = [DeliveredOrderFactory(updated_at=at(2024, 5, 15, 10, 15))]

        buckets = bucket_earnings(orders, EarningsPeriod.TODAY, start)

        labels = [b.day for b in buckets]
        assert labels == ["0:00", "3:00", "6:00", "9:00", "10:00", "12:00", "15:00", "18:00", "21:00"]
        assert buckets[4].earnings == Decimal("1000.00")

    def test_week_buckets_start_on_sunday(self):
        start, _ = period_range(EarningsPeriod.THIS_WEEK, NOW)
        orders = [
            DeliveredOrderFactory(updated_at=at(2024, 5, 12, 9, 0)),
            DeliveredOrderFactory(updated_at=at(2024, 5, 18, 21, 0)),
        ]

        buckets = bucket_earnings(orders, EarningsPeriod.THIS_WEEK, start)

        assert [b.day for b in buckets] == ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
        assert buckets[0].earnings == Decimal("1000.00")
        assert buckets[6].earnings == Decimal("1000.00")

    def test_month_buckets_are_seven_day_blocks(self):
        start, _ = period_range(EarningsPeriod.THIS_MONTH, NOW)
        orders = [
            DeliveredOrderFactory(updated_at=at(2024, 5, 7, 9, 0)),
            DeliveredOrderFactory(updated_at=at(2024, 5, 8, 9, 0)),
            DeliveredOrderFactory(updated_at=at(2024, 5, 31, 9, 0)),
        ]

        buckets = bucket_earnings(orders, EarningsPeriod.THIS_MONTH, start)

        assert [b.day for b in buckets] == ["Week 1", "Week 2", "Week 3", "Week 4", "Week 5"]
        assert [b.earnings for b in buckets] == [
            Decimal("1000.00"), Decimal("1000.00"), Decimal("0.00"), Decimal("0.00"), Decimal("1000.00"),
        ]

    @pytest.mark.asyncio
    async def test_endpoint(self, client: AsyncClient, fake_gateway):
        fake_gateway.on(
            "GetDeliveredOrdersBetween",
            {"Orders": [DeliveredOrderFactory(), DeliveredOrderFactory()]},
        )

        response = await client.get("/api/shopper/daily-earnings", params={"period": "this-month"})

        assert response.status_code == 200
        data = response.json()
        assert data["period"]["type"] == "this-month"
        assert Decimal(data["earnings"]["completed"]) == Decimal("2000.00")
        assert Decimal(data["earnings"]["active"]) == Decimal("0")
        assert data["order_counts"] == {"active": 0, "completed": 2, "total": 2}

    @pytest.mark.asyncio
    async def test_unknown_period_is_rejected(self, client: AsyncClient):
        response = await client.get("/api/shopper/daily-earnings", params={"period": "yesterday"})
        assert response.status_code == 422
