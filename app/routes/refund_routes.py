from fastapi import APIRouter, Depends, Request, Response, status

from app.auth.auth import get_current_shopper
from app.database.gateway import GraphQLGateway, get_gateway
from app.schemas.transaction_schema import RefundCreateResponse, RefundCreateSchema
from app.schemas.user_schemas import SessionUser
from app.services import refund_service
from app.utils.limiter import limiter


router = APIRouter(prefix="/api/refunds", tags=["Refunds"])


@router.post(
    "",
    response_model=RefundCreateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={200: {"description": "A refund already existed and is returned unchanged"}},
)
@limiter.limit("5/minute")
async def create_refund(
    request: Request,
    response: Response,
    payload: RefundCreateSchema,
    gateway: GraphQLGateway = Depends(get_gateway),
    current_user: SessionUser = Depends(get_current_shopper),
) -> RefundCreateResponse:
    result, created = await refund_service.create_refund(gateway, current_user, payload)
    if not created:
        response.status_code = status.HTTP_200_OK
    return result
