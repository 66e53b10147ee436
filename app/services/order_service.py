import asyncio
from decimal import Decimal

from fastapi import HTTPException, status

from app.database.gateway import GraphQLGateway
from app.schemas.order_schema import (
    ActiveBatchSummary,
    BatchOrderSchema,
    CombinedBatchResponse,
    VerifyPinResponse,
)
from app.schemas.status_schema import OrderStatus, OrderType
from app.utils.logger_config import setup_logger
from app.utils.utils import (
    join_distinct,
    order_earnings,
    parse_timestamp,
    quantize_money,
    to_decimal,
)

logger = setup_logger()


GET_ACTIVE_ORDERS = """
query GetActiveOrders($shopperId: uuid!) {
  Orders(
    where: { shopper_id: { _eq: $shopperId }, status: { _neq: "delivered" } }
    order_by: { created_at: desc }
  ) {
    id
    OrderID
    created_at
    status
    total
    service_fee
    delivery_fee
    combined_order_id
    user_id
    Shop { name address }
    orderedBy { id name }
    Address { street city }
    Order_Items { quantity }
  }
}
"""

GET_ACTIVE_REEL_ORDERS = """
query GetActiveReelOrders($shopperId: uuid!) {
  reel_orders(
    where: { shopper_id: { _eq: $shopperId }, status: { _neq: "delivered" } }
    order_by: { created_at: desc }
  ) {
    id
    OrderID
    created_at
    status
    total
    service_fee
    delivery_fee
    quantity
    user_id
    Reel {
      title
      restaurant_id
      user_id
      Restaurant { name location }
    }
    orderedBy { id name }
    Address { street city }
  }
}
"""

GET_ACTIVE_RESTAURANT_ORDERS = """
query GetActiveRestaurantOrders($shopperId: uuid!) {
  restaurant_orders(
    where: { shopper_id: { _eq: $shopperId }, status: { _neq: "delivered" } }
    order_by: { created_at: desc }
  ) {
    id
    OrderID
    created_at
    status
    total
    delivery_fee
    user_id
    Restaurant { name location }
    orderedBy { id name }
    Address { street city }
    restaurant_order_items { quantity }
  }
}
"""

GET_COMBINED_BATCH = """
query GetCombinedBatch($combinedId: uuid!, $shopperId: uuid!) {
  Orders(
    where: {
      combined_order_id: { _eq: $combinedId }
      shopper_id: { _eq: $shopperId }
    }
    order_by: { created_at: asc }
  ) {
    id
    OrderID
    status
    total
    service_fee
    delivery_fee
    user_id
    pin
    Shop { name }
    orderedBy { id name }
    Order_Items { quantity }
  }
}
"""

GET_ORDER_FOR_PIN = """
query GetOrderForPin($orderId: uuid!) {
  Orders_by_pk(id: $orderId) {
    id
    pin
    user_id
    shopper_id
    combined_order_id
  }
}
"""


def group_orders_by_combined_id(orders: list[dict]) -> tuple[dict[str, list[dict]], list[dict]]:
    """
    Partition regular orders by `combined_order_id`.

    Returns the groups keyed by combined id (insertion ordered, members in
    input order) and the standalone orders that carry no combined id.
    """
    groups: dict[str, list[dict]] = {}
    standalone: list[dict] = []
    for order in orders:
        combined_id = order.get("combined_order_id")
        if combined_id:
            groups.setdefault(combined_id, []).append(order)
        else:
            standalone.append(order)
    return groups, standalone


def _item_count(items: list[dict] | None) -> int:
    return sum(int(item.get("quantity") or 0) for item in items or [])


def _address_line(address: dict | None) -> str:
    if not address:
        return ""
    return join_distinct([address.get("street"), address.get("city")])


def _customer_name(order: dict) -> str:
    return (order.get("orderedBy") or {}).get("name") or ""


def summarize_regular_order(order: dict) -> ActiveBatchSummary:
    shop = order.get("Shop") or {}
    return ActiveBatchSummary(
        id=order["id"],
        order_type=OrderType.REGULAR,
        status=order["status"],
        created_at=parse_timestamp(order.get("created_at")),
        shop_name=shop.get("name") or "",
        shop_address=shop.get("address") or "",
        customer_name=_customer_name(order),
        customer_address=_address_line(order.get("Address")),
        items=_item_count(order.get("Order_Items")),
        total=quantize_money(to_decimal(order.get("total"))),
        earnings=quantize_money(order_earnings(order)),
        order_ids=[order["id"]],
    )


def summarize_combined_group(combined_id: str, members: list[dict]) -> ActiveBatchSummary:
    """Synthesize one record for a combined group, using the first order as the template."""
    template = members[0]
    customer_ids = {member.get("user_id") for member in members}
    return ActiveBatchSummary(
        id=template["id"],
        order_type=OrderType.REGULAR,
        status=template["status"],
        created_at=parse_timestamp(template.get("created_at")),
        shop_name=join_distinct((m.get("Shop") or {}).get("name") for m in members),
        shop_address=join_distinct((m.get("Shop") or {}).get("address") for m in members),
        customer_name=join_distinct(_customer_name(m) for m in members),
        customer_address=join_distinct(_address_line(m.get("Address")) for m in members),
        items=sum(_item_count(m.get("Order_Items")) for m in members),
        total=quantize_money(sum((to_decimal(m.get("total")) for m in members), Decimal("0"))),
        earnings=quantize_money(sum((order_earnings(m) for m in members), Decimal("0"))),
        is_combined=True,
        combined_order_id=combined_id,
        order_ids=[m["id"] for m in members],
        order_count=len(members),
        is_combined_customer=len(customer_ids) == 1,
    )


def summarize_reel_order(order: dict) -> ActiveBatchSummary:
    reel = order.get("Reel") or {}
    restaurant = reel.get("Restaurant") or {}
    return ActiveBatchSummary(
        id=order["id"],
        order_type=OrderType.REEL,
        status=order["status"],
        created_at=parse_timestamp(order.get("created_at")),
        shop_name=restaurant.get("name") or reel.get("title") or "",
        shop_address=restaurant.get("location") or "",
        customer_name=_customer_name(order),
        customer_address=_address_line(order.get("Address")),
        items=int(order.get("quantity") or 0),
        total=quantize_money(to_decimal(order.get("total"))),
        earnings=quantize_money(order_earnings(order)),
        order_ids=[order["id"]],
        is_skip_shopping=bool(reel.get("restaurant_id") or reel.get("user_id")),
        reel_title=reel.get("title"),
    )


def summarize_restaurant_order(order: dict) -> ActiveBatchSummary:
    restaurant = order.get("Restaurant") or {}
    return ActiveBatchSummary(
        id=order["id"],
        order_type=OrderType.RESTAURANT,
        status=order["status"],
        created_at=parse_timestamp(order.get("created_at")),
        shop_name=restaurant.get("name") or "",
        shop_address=restaurant.get("location") or "",
        customer_name=_customer_name(order),
        customer_address=_address_line(order.get("Address")),
        items=_item_count(order.get("restaurant_order_items")),
        total=quantize_money(to_decimal(order.get("total"))),
        # Restaurant orders carry no service fee
        earnings=quantize_money(order_earnings(order, include_service_fee=False)),
        order_ids=[order["id"]],
    )


def build_active_batches(
    regular_orders: list[dict],
    reel_orders: list[dict],
    restaurant_orders: list[dict],
) -> list[ActiveBatchSummary]:
    groups, standalone = group_orders_by_combined_id(regular_orders)

    batches = [summarize_regular_order(order) for order in standalone]
    batches.extend(
        summarize_combined_group(combined_id, members)
        for combined_id, members in groups.items()
    )
    batches.extend(summarize_reel_order(order) for order in reel_orders)
    batches.extend(summarize_restaurant_order(order) for order in restaurant_orders)

    # Newest first; records without a timestamp go last
    batches.sort(key=lambda b: b.created_at.timestamp() if b.created_at else float("-inf"), reverse=True)
    return batches


async def get_active_batches(gateway: GraphQLGateway, shopper_id: str) -> list[ActiveBatchSummary]:
    """
    Fetch the shopper's undelivered regular, reel and restaurant orders
    concurrently and reshape them into display records.

    All three collections must load; any failure is reported as a 500 with
    the upstream error message.
    """
    variables = {"shopperId": shopper_id}
    try:
        regular, reels, restaurants = await asyncio.gather(
            gateway.query(GET_ACTIVE_ORDERS, variables),
            gateway.query(GET_ACTIVE_REEL_ORDERS, variables),
            gateway.query(GET_ACTIVE_RESTAURANT_ORDERS, variables),
        )
    except Exception as e:
        logger.error(f"Error fetching active batches for shopper {shopper_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e)
        )

    return build_active_batches(
        regular.get("Orders") or [],
        reels.get("reel_orders") or [],
        restaurants.get("restaurant_orders") or [],
    )


async def get_combined_batch(
    gateway: GraphQLGateway, shopper_id: str, combined_order_id: str
) -> CombinedBatchResponse:
    try:
        data = await gateway.query(
            GET_COMBINED_BATCH,
            {"combinedId": combined_order_id, "shopperId": shopper_id},
        )
    except Exception as e:
        logger.error(f"Error fetching combined batch {combined_order_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e)
        )

    orders = data.get("Orders") or []
    if not orders:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No orders found for this combined_order_id",
        )

    batch_orders = [
        BatchOrderSchema(
            id=order["id"],
            order_number=str(order["OrderID"]) if order.get("OrderID") is not None else None,
            status=order["status"],
            total=quantize_money(to_decimal(order.get("total"))),
            service_fee=quantize_money(to_decimal(order.get("service_fee"))),
            delivery_fee=quantize_money(to_decimal(order.get("delivery_fee"))),
            shop_name=(order.get("Shop") or {}).get("name"),
            customer_id=order.get("user_id"),
            customer_name=_customer_name(order) or None,
            items=_item_count(order.get("Order_Items")),
        )
        for order in orders
    ]

    return CombinedBatchResponse(
        combined_order_id=combined_order_id,
        orders=batch_orders,
        total=quantize_money(sum((o.total for o in batch_orders), Decimal("0"))),
        earnings=quantize_money(sum((order_earnings(o) for o in orders), Decimal("0"))),
    )


def resolve_pin_scope(order: dict, siblings: list[dict]) -> tuple[list[str], list[str]]:
    """
    Split a batch into the orders a delivery PIN verifies and the ones it does not.

    Orders for the same customer as `order` share one PIN; orders for other
    customers in the same batch keep their own verification.
    """
    if not order.get("combined_order_id"):
        return [order["id"]], []

    customer_id = order.get("user_id")
    verified = [order["id"]]
    pending = []
    for sibling in siblings:
        if sibling["id"] == order["id"]:
            continue
        if sibling.get("status") == OrderStatus.DELIVERED:
            continue
        if sibling.get("user_id") == customer_id:
            verified.append(sibling["id"])
        else:
            pending.append(sibling["id"])
    return verified, pending


async def verify_delivery_pin(
    gateway: GraphQLGateway, shopper_id: str, order_id: str, pin: str
) -> VerifyPinResponse:
    pin = pin.strip()
    if not pin:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Delivery PIN is required"
        )

    try:
        data = await gateway.query(GET_ORDER_FOR_PIN, {"orderId": order_id})
        order = data.get("Orders_by_pk")

        if not order:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

        if order.get("shopper_id") != shopper_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You are not assigned to this order",
            )

        stored_pin = str(order.get("pin") or "").strip()
        if not stored_pin:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No delivery PIN is set for this order",
            )

        if stored_pin != pin:
            logger.warning(f"Delivery PIN mismatch for order {order_id} by shopper {shopper_id}")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Incorrect delivery PIN"
            )

        siblings = []
        if order.get("combined_order_id"):
            batch = await gateway.query(
                GET_COMBINED_BATCH,
                {"combinedId": order["combined_order_id"], "shopperId": shopper_id},
            )
            siblings = batch.get("Orders") or []

        verified, pending = resolve_pin_scope(order, siblings)
        return VerifyPinResponse(verified=True, verified_order_ids=verified, pending_order_ids=pending)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error verifying delivery PIN for order {order_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e)
        )
