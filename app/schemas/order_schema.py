from datetime import datetime
from decimal import Decimal
from uuid import UUID
from pydantic import BaseModel, Field

from app.schemas.status_schema import OrderType


class ActiveBatchSummary(BaseModel):
    """One display record on the shopper's active batches screen."""

    id: str
    order_type: OrderType
    status: str
    created_at: datetime | None = None
    shop_name: str = ""
    shop_address: str = ""
    customer_name: str = ""
    customer_address: str = ""
    items: int = 0
    total: Decimal = Decimal("0.00")
    earnings: Decimal = Decimal("0.00")
    is_combined: bool = False
    combined_order_id: str | None = None
    order_ids: list[str] = Field(default_factory=list)
    order_count: int = 1
    is_combined_customer: bool = False
    is_skip_shopping: bool = False
    reel_title: str | None = None


class BatchOrderSchema(BaseModel):
    id: str
    order_number: str | None = None
    status: str
    total: Decimal
    service_fee: Decimal
    delivery_fee: Decimal
    shop_name: str | None = None
    customer_id: str | None = None
    customer_name: str | None = None
    items: int = 0


class CombinedBatchResponse(BaseModel):
    combined_order_id: str
    orders: list[BatchOrderSchema]
    total: Decimal
    earnings: Decimal


class VerifyPinSchema(BaseModel):
    order_id: UUID
    pin: str = Field(..., min_length=1, max_length=10)


class VerifyPinResponse(BaseModel):
    verified: bool
    verified_order_ids: list[str]
    pending_order_ids: list[str] = Field(default_factory=list)
