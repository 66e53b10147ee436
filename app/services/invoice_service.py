from datetime import datetime
from decimal import Decimal

from fastapi import HTTPException, status

from app.database.gateway import GraphQLGateway
from app.schemas.invoice_schema import InvoiceItemSchema, InvoiceResponse, InvoiceSchema
from app.schemas.status_schema import InvoiceStatus, OrderStatus
from app.schemas.user_schemas import SessionUser
from app.utils.logger_config import setup_logger
from app.utils.utils import money_str, parse_timestamp, quantize_money, to_decimal

logger = setup_logger()


GET_ORDER_FOR_INVOICE = """
query GetOrderForInvoice($orderId: uuid!) {
  Orders_by_pk(id: $orderId) {
    id
    OrderID
    status
    total
    service_fee
    delivery_fee
    discount
    created_at
    updated_at
    user_id
    shopper_id
    orderedBy { id name }
    Shop { name address }
    Order_Items {
      id
      price
      quantity
      Product { name measurement_unit }
    }
  }
  Invoices(where: { order_id: { _eq: $orderId } }, limit: 1) {
    id
    invoice_number
    invoice_items
    subtotal
    service_fee
    delivery_fee
    discount
    tax
    total_amount
    status
    created_at
  }
}
"""

ADD_INVOICE = """
mutation AddInvoice($invoice: Invoices_insert_input!) {
  insert_Invoices_one(object: $invoice) {
    id
    invoice_number
  }
}
"""


def invoice_number(order: dict, now: datetime) -> str:
    """`INV-{OrderID or last 8 of the id}-{last 6 digits of the epoch millis}`"""
    reference = order.get("OrderID") or str(order["id"])[-8:]
    suffix = str(int(now.timestamp() * 1000))[-6:]
    return f"INV-{reference}-{suffix}"


def build_invoice_items(order: dict) -> list[InvoiceItemSchema]:
    items = []
    for item in order.get("Order_Items") or []:
        product = item.get("Product") or {}
        unit_price = quantize_money(to_decimal(item.get("price")))
        quantity = int(item.get("quantity") or 0)
        items.append(
            InvoiceItemSchema(
                id=str(item["id"]),
                name=product.get("name") or "Unknown item",
                quantity=quantity,
                unit_price=unit_price,
                total=quantize_money(unit_price * quantity),
                unit=product.get("measurement_unit") or "item",
            )
        )
    return items


def build_invoice(order: dict, number: str) -> InvoiceSchema:
    items = build_invoice_items(order)
    subtotal = quantize_money(sum((item.total for item in items), Decimal("0")))
    service_fee = quantize_money(to_decimal(order.get("service_fee")))
    delivery_fee = quantize_money(to_decimal(order.get("delivery_fee")))
    discount = quantize_money(to_decimal(order.get("discount")))
    customer = order.get("orderedBy") or {}
    shop = order.get("Shop") or {}

    return InvoiceSchema(
        invoice_number=number,
        order_id=str(order["id"]),
        order_number=str(order.get("OrderID") or order["id"]),
        customer_id=customer.get("id") or order.get("user_id"),
        customer=customer.get("name"),
        shop=shop.get("name"),
        shop_address=shop.get("address"),
        date_created=parse_timestamp(order.get("created_at")),
        date_completed=parse_timestamp(order.get("updated_at")),
        status=InvoiceStatus.COMPLETED.value,
        items=items,
        subtotal=subtotal,
        service_fee=service_fee,
        delivery_fee=delivery_fee,
        discount=discount,
        tax=Decimal("0.00"),
        total=subtotal + service_fee + delivery_fee - discount,
    )


def invoice_from_row(row: dict, order: dict) -> InvoiceSchema:
    """Rebuild the snapshot of an invoice that was already stored."""
    snapshot = build_invoice(order, row["invoice_number"])
    stored_items = row.get("invoice_items")
    return snapshot.model_copy(
        update={
            "id": row.get("id"),
            "items": [InvoiceItemSchema(**item) for item in stored_items]
            if stored_items
            else snapshot.items,
            "subtotal": quantize_money(to_decimal(row.get("subtotal"))),
            "service_fee": quantize_money(to_decimal(row.get("service_fee"))),
            "delivery_fee": quantize_money(to_decimal(row.get("delivery_fee"))),
            "discount": quantize_money(to_decimal(row.get("discount"))),
            "tax": quantize_money(to_decimal(row.get("tax"))),
            "total": quantize_money(to_decimal(row.get("total_amount"))),
            "status": row.get("status") or snapshot.status,
        }
    )


def invoice_row(invoice: InvoiceSchema) -> dict:
    return {
        "order_id": invoice.order_id,
        "customer_id": invoice.customer_id,
        "invoice_number": invoice.invoice_number,
        "invoice_items": [item.model_dump(mode="json") for item in invoice.items],
        "subtotal": money_str(invoice.subtotal),
        "service_fee": money_str(invoice.service_fee),
        "delivery_fee": money_str(invoice.delivery_fee),
        "discount": money_str(invoice.discount),
        "tax": money_str(invoice.tax),
        "total_amount": money_str(invoice.total),
        "status": invoice.status,
    }


async def generate_invoice(
    gateway: GraphQLGateway,
    current_user: SessionUser,
    order_id: str,
    now: datetime | None = None,
) -> InvoiceResponse:
    """
    Snapshot a delivered order as an invoice.

    Only the order's shopper or customer may ask for it. An order that already
    has an invoice gets the stored one back.
    """
    try:
        data = await gateway.query(GET_ORDER_FOR_INVOICE, {"orderId": order_id})
        order = data.get("Orders_by_pk")
        if not order:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

        if current_user.id not in (order.get("shopper_id"), order.get("user_id")):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You are not allowed to generate an invoice for this order",
            )

        if order.get("status") != OrderStatus.DELIVERED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invoices can only be generated for delivered orders",
            )

        existing = data.get("Invoices") or []
        if existing:
            logger.info(f"Invoice already exists for order {order_id}")
            return InvoiceResponse(is_duplicate=True, invoice=invoice_from_row(existing[0], order))

        invoice = build_invoice(order, invoice_number(order, now or datetime.now()))
        result = await gateway.mutate(ADD_INVOICE, {"invoice": invoice_row(invoice)})
        saved = result.get("insert_Invoices_one") or {}
        logger.info(f"Invoice {invoice.invoice_number} generated for order {order_id}")

        return InvoiceResponse(invoice=invoice.model_copy(update={"id": saved.get("id")}))

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error generating invoice for order {order_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e)
        )
