from decimal import Decimal

from fastapi import HTTPException, status

from app.database.gateway import GraphQLGateway
from app.schemas.status_schema import OrderType, RefundStatus
from app.schemas.transaction_schema import (
    RefundCreateResponse,
    RefundCreateSchema,
    RefundSchema,
)
from app.schemas.user_schemas import SessionUser
from app.utils.logger_config import setup_logger
from app.utils.utils import money_str, quantize_money, to_decimal

logger = setup_logger()


REFUND_FIELDS = """
    id
    order_id
    amount
    status
    reason
    generated_by
"""

GET_EXISTING_REFUNDS = f"""
query GetExistingRefunds($orderIds: [uuid!]!) {{
  Refunds(where: {{ order_id: {{ _in: $orderIds }} }}, order_by: {{ created_at: asc }}) {{
    {REFUND_FIELDS}
  }}
}}
"""

GET_ORDER_FOR_REFUND = """
query GetOrderForRefund($orderId: uuid!) {
  Orders_by_pk(id: $orderId) {
    id
    OrderID
    user_id
    shopper_id
    total
    Shop { name }
    Order_Items {
      quantity
      found
      foundQuantity
      Product { name }
    }
  }
}
"""

CREATE_REFUND = f"""
mutation CreateRefund($refund: Refunds_insert_input!) {{
  insert_Refunds_one(object: $refund) {{
    {REFUND_FIELDS}
  }}
}}
"""


def _missing_quantities(order: dict):
    for item in order.get("Order_Items") or []:
        quantity = int(item.get("quantity") or 0)
        if not item.get("found"):
            missing_qty = quantity
        else:
            found_qty = item.get("foundQuantity")
            if found_qty is None:
                continue
            missing_qty = quantity - int(found_qty)
        if missing_qty > 0:
            yield item, missing_qty


def missing_items(order: dict) -> list[str]:
    """
    List the items of an order that were not delivered in full, as
    `Name (missing quantity)`.
    """
    return [
        f"{(item.get('Product') or {}).get('name') or 'Unknown item'} ({missing_qty})"
        for item, missing_qty in _missing_quantities(order)
    ]


def missing_value(order: dict) -> Decimal:
    """Price of everything `missing_items` lists; 0 when items carry no price."""
    total = Decimal("0")
    for item, missing_qty in _missing_quantities(order):
        total += to_decimal(item.get("price")) * missing_qty
    return quantize_money(total)


def build_refund_reason(
    orders: list[dict],
    original_amount: Decimal,
    found_amount: Decimal,
    order_type: OrderType = OrderType.REGULAR,
) -> str:
    totals = (
        f"Original total: {money_str(original_amount)}, "
        f"found items total: {money_str(found_amount)}."
    )

    if order_type == OrderType.REEL:
        return f"Refund for reel order {orders[0]['id']}: {totals}"

    per_shop: dict[str, list[str]] = {}
    for order in orders:
        items = missing_items(order)
        if items:
            shop = (order.get("Shop") or {}).get("name") or "Unknown Store"
            per_shop.setdefault(shop, []).extend(items)

    reason = "Refund for items not found during shopping."
    if per_shop:
        shops = "; ".join(f"{shop}: {', '.join(items)}" for shop, items in per_shop.items())
        reason += f" {shops}."
    return f"{reason} {totals}"


def refund_row(order_id: str, amount: Decimal, reason: str, user_id: str | None) -> dict:
    return {
        "order_id": order_id,
        "amount": money_str(amount),
        "status": RefundStatus.PENDING.value,
        "reason": reason,
        "generated_by": "System",
        "user_id": user_id,
        "paid": False,
    }


def to_refund_schema(row: dict, is_duplicate: bool = False) -> RefundSchema:
    return RefundSchema(
        id=row.get("id"),
        order_id=row["order_id"],
        amount=quantize_money(to_decimal(row.get("amount"))),
        status=row.get("status") or RefundStatus.PENDING,
        reason=row.get("reason") or "",
        generated_by=row.get("generated_by") or "System",
        is_duplicate=is_duplicate,
    )


async def find_existing_refunds(gateway: GraphQLGateway, order_ids: list[str]) -> list[dict]:
    data = await gateway.query(GET_EXISTING_REFUNDS, {"orderIds": order_ids})
    return data.get("Refunds") or []


async def find_existing_refund(gateway: GraphQLGateway, order_ids: list[str]) -> dict | None:
    """Return the first refund already recorded for any of the given orders."""
    refunds = await find_existing_refunds(gateway, order_ids)
    return refunds[0] if refunds else None


async def create_refund(
    gateway: GraphQLGateway, current_user: SessionUser, payload: RefundCreateSchema
) -> tuple[RefundCreateResponse, bool]:
    """
    Record a refund for an order the caller shopped.

    Returns the response and whether a new row was written. A refund that
    already exists for the order is returned as a duplicate instead.
    """
    order_id = str(payload.order_id)
    amount = quantize_money(payload.refund_amount)

    if amount <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Refund amount must be greater than zero",
        )

    try:
        data = await gateway.query(GET_ORDER_FOR_REFUND, {"orderId": order_id})
        order = data.get("Orders_by_pk")
        if not order:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

        if order.get("shopper_id") != current_user.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You are not assigned to this order",
            )

        existing = await find_existing_refund(gateway, [order_id])
        if existing:
            logger.info(f"Refund already exists for order {order_id}, skipping insert")
            return (
                RefundCreateResponse(
                    message="Refund already exists for this order",
                    refund=to_refund_schema(existing, is_duplicate=True),
                ),
                False,
            )

        reason = payload.reason
        if not reason:
            original = to_decimal(order.get("total"))
            reason = build_refund_reason([order], original, original - amount)

        result = await gateway.mutate(
            CREATE_REFUND,
            {"refund": refund_row(order_id, amount, reason, order.get("user_id"))},
        )
        logger.info(f"Refund of {money_str(amount)} created for order {order_id}")
        return (
            RefundCreateResponse(
                message="Refund created successfully",
                refund=to_refund_schema(result["insert_Refunds_one"]),
            ),
            True,
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating refund for order {order_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e)
        )
