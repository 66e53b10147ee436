from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from app.schemas.status_schema import OrderType


class WalletBalanceSchema(BaseModel):
    available_balance: Decimal
    reserved_balance: Decimal


class WalletSchema(WalletBalanceSchema):
    id: str


class WalletTransactionSchema(BaseModel):
    id: str
    amount: Decimal
    type: str
    status: str
    description: str = ""
    created_at: datetime
    order_id: Optional[str] = None


class WalletHistoryResponse(BaseModel):
    success: bool = True
    wallet: Optional[WalletSchema] = None
    transactions: List[WalletTransactionSchema]


class ProcessPaymentSchema(BaseModel):
    """Shopper-reported payment for the items found in store."""

    order_id: UUID
    order_amount: Decimal = Field(..., ge=0, description="Total of the found items")
    momo_code: str = Field(..., min_length=5)
    private_key: str = Field(..., min_length=1, description="MoMo payment reference")
    order_type: Optional[OrderType] = None


class SettlementSchema(BaseModel):
    original_amount: Decimal
    found_amount: Decimal
    refund_amount: Decimal
    order_ids: List[str]


class RefundSchema(BaseModel):
    id: Optional[str] = None
    order_id: str
    amount: Decimal
    status: str
    reason: str
    generated_by: str = "System"
    is_duplicate: bool = False


class ProcessPaymentResponse(BaseModel):
    success: bool = True
    message: str
    wallet: WalletBalanceSchema
    settlement: SettlementSchema
    refund: Optional[RefundSchema] = None
    refunds: List[RefundSchema] = []


class RefundCreateSchema(BaseModel):
    order_id: UUID
    refund_amount: Decimal
    reason: Optional[str] = None


class RefundCreateResponse(BaseModel):
    success: bool = True
    message: str
    refund: RefundSchema


class PayoutRequestSchema(BaseModel):
    amount: Decimal = Field(..., description="Amount to withdraw from the available balance")


class PayoutSchema(BaseModel):
    payout_id: str
    transaction_id: Optional[str] = None
    amount: Decimal
    previous_balance: Decimal
    new_balance: Decimal
    status: str
    estimated_processing_time: str = "1-3 business days"


class PayoutResponse(BaseModel):
    success: bool = True
    message: str
    data: PayoutSchema
