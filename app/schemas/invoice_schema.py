from datetime import datetime
from decimal import Decimal
from uuid import UUID
from pydantic import BaseModel


class InvoiceGenerateSchema(BaseModel):
    order_id: UUID


class InvoiceItemSchema(BaseModel):
    id: str
    name: str
    quantity: int
    unit_price: Decimal
    total: Decimal
    unit: str = "item"


class InvoiceSchema(BaseModel):
    id: str | None = None
    invoice_number: str
    order_id: str
    order_number: str
    customer_id: str | None = None
    customer: str | None = None
    shop: str | None = None
    shop_address: str | None = None
    date_created: datetime | None = None
    date_completed: datetime | None = None
    status: str
    items: list[InvoiceItemSchema]
    subtotal: Decimal
    service_fee: Decimal
    delivery_fee: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal


class InvoiceResponse(BaseModel):
    success: bool = True
    is_duplicate: bool = False
    invoice: InvoiceSchema
