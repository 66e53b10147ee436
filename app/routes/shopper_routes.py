from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from app.auth.auth import get_current_shopper
from app.database.gateway import GraphQLGateway, get_gateway
from app.schemas.order_schema import (
    ActiveBatchSummary,
    CombinedBatchResponse,
    VerifyPinResponse,
    VerifyPinSchema,
)
from app.schemas.stats_schema import DailyEarningsResponse, EarningsStatsResponse
from app.schemas.status_schema import EarningsPeriod
from app.schemas.transaction_schema import (
    PayoutRequestSchema,
    PayoutResponse,
    ProcessPaymentResponse,
    ProcessPaymentSchema,
    WalletHistoryResponse,
)
from app.schemas.user_schemas import SessionUser
from app.services import order_service, payment_service, stats_service, wallet_service
from app.utils.limiter import limiter


router = APIRouter(prefix="/api/shopper", tags=["Shopper"])


@router.get(
    "/active-batches",
    response_model=list[ActiveBatchSummary],
    status_code=status.HTTP_200_OK,
    summary="List active batches",
    description="Undelivered regular, reel and restaurant orders of the shopper, with combined orders grouped into one record.",
)
async def get_active_batches(
    gateway: GraphQLGateway = Depends(get_gateway),
    current_user: SessionUser = Depends(get_current_shopper),
) -> list[ActiveBatchSummary]:
    return await order_service.get_active_batches(gateway, current_user.id)


@router.get(
    "/batches/{combined_order_id}",
    response_model=CombinedBatchResponse,
    status_code=status.HTTP_200_OK,
)
async def get_combined_batch(
    combined_order_id: UUID,
    gateway: GraphQLGateway = Depends(get_gateway),
    current_user: SessionUser = Depends(get_current_shopper),
) -> CombinedBatchResponse:
    return await order_service.get_combined_batch(
        gateway, current_user.id, str(combined_order_id)
    )


@router.post(
    "/verify-pin",
    response_model=VerifyPinResponse,
    status_code=status.HTTP_200_OK,
)
@limiter.limit("10/minute")
async def verify_pin(
    request: Request,
    payload: VerifyPinSchema,
    gateway: GraphQLGateway = Depends(get_gateway),
    current_user: SessionUser = Depends(get_current_shopper),
) -> VerifyPinResponse:
    """
    Check the customer's delivery PIN. On a combined batch the PIN also
    verifies the other orders of the same customer.
    """
    return await order_service.verify_delivery_pin(
        gateway, current_user.id, str(payload.order_id), payload.pin
    )


@router.post(
    "/process-payment",
    response_model=ProcessPaymentResponse,
    status_code=status.HTTP_200_OK,
    summary="Settle a shopped order",
    description="Debit the reserved balance, record the payment and raise a refund for items not found.",
)
@limiter.limit("5/minute")
async def process_payment(
    request: Request,
    payload: ProcessPaymentSchema,
    gateway: GraphQLGateway = Depends(get_gateway),
    current_user: SessionUser = Depends(get_current_shopper),
) -> ProcessPaymentResponse:
    """
    Settle an order, or the whole combined batch it belongs to.

    - **order_amount**: total of the items actually found
    - **momo_code** / **private_key**: MoMo payment details recorded on the ledger
    - Refund = original total - found amount, one per customer of the batch
    """
    return await payment_service.process_payment(gateway, current_user.id, payload)


@router.get(
    "/earnings-stats",
    response_model=EarningsStatsResponse,
    status_code=status.HTTP_200_OK,
)
async def get_earnings_stats(
    gateway: GraphQLGateway = Depends(get_gateway),
    current_user: SessionUser = Depends(get_current_shopper),
) -> EarningsStatsResponse:
    return await stats_service.get_earnings_stats(gateway, current_user.id)


@router.get(
    "/daily-earnings",
    response_model=DailyEarningsResponse,
    status_code=status.HTTP_200_OK,
)
async def get_daily_earnings(
    period: EarningsPeriod = Query(EarningsPeriod.THIS_WEEK, description="Chart period"),
    gateway: GraphQLGateway = Depends(get_gateway),
    current_user: SessionUser = Depends(get_current_shopper),
) -> DailyEarningsResponse:
    return await stats_service.get_daily_earnings(gateway, current_user.id, period)


@router.get(
    "/wallet",
    response_model=WalletHistoryResponse,
    status_code=status.HTTP_200_OK,
)
async def get_wallet_history(
    gateway: GraphQLGateway = Depends(get_gateway),
    current_user: SessionUser = Depends(get_current_shopper),
) -> WalletHistoryResponse:
    return await wallet_service.get_wallet_history(gateway, current_user.id)


@router.post(
    "/payout",
    response_model=PayoutResponse,
    status_code=status.HTTP_200_OK,
    summary="Request a payout",
)
@limiter.limit("3/minute")
async def request_payout(
    request: Request,
    payload: PayoutRequestSchema,
    gateway: GraphQLGateway = Depends(get_gateway),
    current_user: SessionUser = Depends(get_current_shopper),
) -> PayoutResponse:
    """
    Withdraw part of the available balance. The payout is recorded as pending
    together with a withdrawal on the wallet ledger.
    """
    return await wallet_service.request_payout(gateway, current_user.id, payload)
