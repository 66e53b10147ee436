from fastapi import APIRouter, Depends, Request, status

from app.auth.auth import get_current_user
from app.database.gateway import GraphQLGateway, get_gateway
from app.schemas.invoice_schema import InvoiceGenerateSchema, InvoiceResponse
from app.schemas.user_schemas import SessionUser
from app.services import invoice_service
from app.utils.limiter import limiter


router = APIRouter(prefix="/api/invoices", tags=["Invoices"])


@router.post(
    "/generate",
    response_model=InvoiceResponse,
    status_code=status.HTTP_200_OK,
)
@limiter.limit("10/minute")
async def generate_invoice(
    request: Request,
    payload: InvoiceGenerateSchema,
    gateway: GraphQLGateway = Depends(get_gateway),
    current_user: SessionUser = Depends(get_current_user),
) -> InvoiceResponse:
    """Invoice for a delivered order; the shopper or the customer may ask for it."""
    return await invoice_service.generate_invoice(
        gateway, current_user, str(payload.order_id)
    )
