from pydantic import BaseModel, Field
from typing import List
from datetime import datetime
from decimal import Decimal

from app.schemas.status_schema import EarningsPeriod


class StoreEarnings(BaseModel):
    """Earnings attributed to one store"""

    store: str
    amount: Decimal
    percentage: int


class EarningsComponent(BaseModel):
    type: str
    amount: Decimal
    percentage: int


class GoalProgress(BaseModel):
    current: Decimal
    target: Decimal
    percentage: int


class EarningsGoals(BaseModel):
    weekly: GoalProgress
    monthly: GoalProgress
    quarterly: GoalProgress


class EarningsWindow(BaseModel):
    start: datetime
    end: datetime


class PerformanceMetrics(BaseModel):
    """Inputs and result of the weighted performance score"""

    customer_rating: float = Field(..., description="Average rating, 0-5")
    rating_count: int = 0
    on_time_delivery: int = Field(..., description="Percentage, 0-100")
    order_accuracy: int = Field(..., description="Percentage, 0-100")
    acceptance_rate: int = Field(..., description="Percentage, 0-100")
    performance_score: int = Field(..., description="Weighted score, 0-100")
    placeholders: List[str] = Field(
        default_factory=list,
        description="Metrics reported with a fixed default instead of a computed value",
    )


class EarningsStats(BaseModel):
    total_earnings: Decimal
    completed_orders: int
    active_hours: float
    rating: float
    store_breakdown: List[StoreEarnings]
    earnings_components: List[EarningsComponent]
    week_earnings: Decimal
    month_earnings: Decimal
    quarter_earnings: Decimal
    windows: dict[str, EarningsWindow]
    goals: EarningsGoals
    performance: PerformanceMetrics


class EarningsStatsResponse(BaseModel):
    success: bool = True
    stats: EarningsStats


class EarningsBucket(BaseModel):
    day: str
    earnings: Decimal


class PeriodRange(BaseModel):
    start: datetime
    end: datetime
    type: EarningsPeriod


class EarningsTotals(BaseModel):
    active: Decimal = Decimal("0")
    completed: Decimal
    total: Decimal


class OrderCounts(BaseModel):
    active: int = 0
    completed: int
    total: int


class DailyEarningsResponse(BaseModel):
    success: bool = True
    data: List[EarningsBucket]
    period: PeriodRange
    earnings: EarningsTotals
    order_counts: OrderCounts
