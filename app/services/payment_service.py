from decimal import Decimal

from fastapi import HTTPException, status

from app.config.config import settings
from app.database.gateway import GraphQLGateway
from app.schemas.status_schema import OrderType, TransactionStatus, TransactionType
from app.schemas.transaction_schema import (
    ProcessPaymentResponse,
    ProcessPaymentSchema,
    SettlementSchema,
    WalletBalanceSchema,
)
from app.services.refund_service import (
    REFUND_FIELDS,
    build_refund_reason,
    find_existing_refunds,
    missing_value,
    refund_row,
    to_refund_schema,
)
from app.services.wallet_service import get_shopper_wallet
from app.utils.logger_config import setup_logger
from app.utils.utils import money_str, quantize_money, to_decimal

logger = setup_logger("plas.settlement")


ORDER_ITEM_FIELDS = """
    Order_Items {
      quantity
      price
      found
      foundQuantity
      Product { name }
    }
"""

LOCATE_ASSIGNED_ORDER = f"""
query LocateAssignedOrder($orderId: uuid!, $shopperId: uuid!) {{
  Orders(where: {{ id: {{ _eq: $orderId }}, shopper_id: {{ _eq: $shopperId }} }}) {{
    id
    OrderID
    total
    user_id
    combined_order_id
    Shop {{ name }}
    {ORDER_ITEM_FIELDS}
  }}
  reel_orders(where: {{ id: {{ _eq: $orderId }}, shopper_id: {{ _eq: $shopperId }} }}) {{
    id
    OrderID
    total
    user_id
  }}
  restaurant_orders(where: {{ id: {{ _eq: $orderId }}, shopper_id: {{ _eq: $shopperId }} }}) {{
    id
    OrderID
    total
    user_id
    Restaurant {{ name }}
  }}
}}
"""

GET_BATCH_ORDERS = f"""
query GetBatchOrders($combinedId: uuid!, $shopperId: uuid!) {{
  Orders(
    where: {{
      combined_order_id: {{ _eq: $combinedId }}
      shopper_id: {{ _eq: $shopperId }}
    }}
    order_by: {{ created_at: asc }}
  ) {{
    id
    OrderID
    total
    user_id
    combined_order_id
    Shop {{ name }}
    {ORDER_ITEM_FIELDS}
  }}
}}
"""

# Ledger column per order type; reel orders have no reliable foreign key
LEDGER_COLUMNS = {
    OrderType.REGULAR: "related_order_id",
    OrderType.RESTAURANT: "related_restaurant_order_id",
    OrderType.REEL: "related_reel_orderId",
}


def compute_settlement(
    original_amount: Decimal, found_amount: Decimal, reserved_balance: Decimal
) -> tuple[Decimal, Decimal]:
    """
    Work out the refund owed to the customer and the shopper's reserved
    balance after settlement.

    The reservation covered the original order total, so the original amount
    is released from it, not the found amount. A reservation smaller than the
    original total is drained to zero.
    """
    refund_amount = quantize_money(max(Decimal("0"), original_amount - found_amount))
    new_reserved = quantize_money(reserved_balance - original_amount)
    if new_reserved < 0:
        logger.warning(
            f"Reserved balance {money_str(reserved_balance)} is below the original "
            f"amount {money_str(original_amount)}; clamping to 0.00"
        )
        new_reserved = Decimal("0.00")
    return refund_amount, new_reserved


def split_proportionally(weights: list[Decimal], amount: Decimal) -> list[Decimal]:
    """
    Share `amount` in proportion to `weights`, evenly when every weight is
    zero. The last share absorbs rounding so the shares add up to exactly
    `amount`.
    """
    if not weights:
        return []

    amount = quantize_money(amount)
    whole = sum(weights, Decimal("0"))
    shares = []
    for weight in weights[:-1]:
        if whole:
            shares.append(quantize_money(amount * weight / whole))
        else:
            shares.append(quantize_money(amount / len(weights)))
    shares.append(amount - sum(shares, Decimal("0")))
    return shares


def group_by_customer(orders: list[dict], first_order_id: str | None = None) -> list[list[dict]]:
    """
    Group batch orders by the customer who placed them, in batch order. The
    group holding `first_order_id` is moved to the front.
    """
    groups: dict = {}
    for order in orders:
        groups.setdefault(order.get("user_id"), []).append(order)

    grouped = list(groups.values())
    grouped.sort(key=lambda group: all(o["id"] != first_order_id for o in group))
    return grouped


def _orders_total(orders: list[dict]) -> Decimal:
    return quantize_money(sum((to_decimal(o.get("total")) for o in orders), Decimal("0")))


def split_refund_by_customer(groups: list[list[dict]], refund_amount: Decimal) -> list[Decimal]:
    """
    Share a batch refund between its customers.

    Each customer is first owed the price of their own missing items, capped
    at their orders' total. Whatever the item prices do not explain is shared
    in proportion to the remaining headroom of each customer's total, so no
    customer is refunded more than they paid.
    """
    refund_amount = quantize_money(refund_amount)
    totals = [_orders_total(group) for group in groups]
    owed = [
        min(sum((missing_value(o) for o in group), Decimal("0")), total)
        for group, total in zip(groups, totals)
    ]

    if sum(owed, Decimal("0")) >= refund_amount:
        return split_proportionally(owed, refund_amount)

    remainder = refund_amount - sum(owed, Decimal("0"))
    headroom = [total - share for total, share in zip(totals, owed)]
    return [
        quantize_money(share + extra)
        for share, extra in zip(owed, split_proportionally(headroom, remainder))
    ]


def plan_refunds(
    orders: list[dict],
    order_id: str,
    order_type: OrderType,
    refund_amount: Decimal,
    existing_refunds: list[dict],
) -> tuple[list[dict], list[dict]]:
    """
    Work out one refund per customer of a settled batch.

    Returns the rows to insert and the already recorded refunds that stand
    in for a customer's share. A customer's refund is keyed to `order_id`
    when they placed it, otherwise to their first order in the batch.
    """
    groups = group_by_customer(orders, order_id)
    shares = split_refund_by_customer(groups, refund_amount)

    new_rows, duplicates = [], []
    for group, share in zip(groups, shares):
        if share <= 0:
            continue

        group_ids = {o["id"] for o in group}
        existing = next((r for r in existing_refunds if r.get("order_id") in group_ids), None)
        if existing:
            duplicates.append(existing)
            continue

        target = next((o for o in group if o["id"] == order_id), group[0])
        group_original = _orders_total(group)
        reason = build_refund_reason(group, group_original, group_original - share, order_type)
        new_rows.append(refund_row(target["id"], share, reason, target.get("user_id")))

    return new_rows, duplicates


def build_ledger_rows(
    wallet_id: str,
    orders: list[dict],
    order_type: OrderType,
    found_amount: Decimal,
    momo_code: str,
    private_key: str,
) -> list[dict]:
    if order_type == OrderType.REEL and not settings.REEL_LEDGER_ENABLED:
        return []

    column = LEDGER_COLUMNS[order_type]
    shares = split_proportionally([to_decimal(o.get("total")) for o in orders], found_amount)
    return [
        {
            "wallet_id": wallet_id,
            "amount": money_str(share),
            "type": TransactionType.PAYMENT.value,
            "status": TransactionStatus.COMPLETED.value,
            "description": f"Payment for order {order['id']} via MoMo {momo_code} (ref {private_key})",
            column: order["id"],
        }
        for order, share in zip(orders, shares)
    ]


def build_settlement_mutation(include_refund: bool, include_ledger: bool) -> str:
    """
    Compose the single mutation that applies a settlement.

    Hasura runs every top-level field of one mutation in one transaction, so
    the refunds, the wallet update and the ledger rows commit together.
    """
    params = ["$walletId: uuid!", "$reservedBalance: String!"]
    fields = []

    if include_refund:
        params.append("$refunds: [Refunds_insert_input!]!")
        fields.append(
            f"""
  insert_Refunds(objects: $refunds) {{
    returning {{
      {REFUND_FIELDS}
    }}
  }}"""
        )

    fields.append(
        """
  update_Wallets_by_pk(
    pk_columns: { id: $walletId }
    _set: { reserved_balance: $reservedBalance, last_updated: "now()" }
  ) {
    id
    available_balance
    reserved_balance
  }"""
    )

    if include_ledger:
        params.append("$transactions: [Wallet_Transactions_insert_input!]!")
        fields.append(
            """
  insert_Wallet_Transactions(objects: $transactions) {
    affected_rows
  }"""
        )

    return f"mutation SettlePayment({', '.join(params)}) {{{''.join(fields)}\n}}\n"


def _resolve_order(data: dict, requested_type: OrderType | None) -> tuple[dict, OrderType] | None:
    collections = [
        (OrderType.REGULAR, data.get("Orders") or []),
        (OrderType.REEL, data.get("reel_orders") or []),
        (OrderType.RESTAURANT, data.get("restaurant_orders") or []),
    ]
    if requested_type:
        collections.sort(key=lambda c: c[0] != requested_type)

    for order_type, rows in collections:
        if rows:
            return rows[0], order_type
    return None


async def process_payment(
    gateway: GraphQLGateway, shopper_id: str, payload: ProcessPaymentSchema
) -> ProcessPaymentResponse:
    """
    Settle a shopped order (or a whole combined batch) against the
    shopper's reserved balance.

    Every check runs before any write. Each customer of a batch gets their
    own refund. The refunds, the wallet update and the ledger rows are then
    sent in one mutation.
    """
    order_id = str(payload.order_id)

    try:
        found_amount = quantize_money(payload.order_amount)
        data = await gateway.query(
            LOCATE_ASSIGNED_ORDER, {"orderId": order_id, "shopperId": shopper_id}
        )
        resolved = _resolve_order(data, payload.order_type)
        if not resolved:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You are not assigned to this order",
            )
        order, order_type = resolved

        orders = [order]
        if order_type == OrderType.REGULAR and order.get("combined_order_id"):
            batch = await gateway.query(
                GET_BATCH_ORDERS,
                {"combinedId": order["combined_order_id"], "shopperId": shopper_id},
            )
            orders = batch.get("Orders") or [order]

        wallet = await get_shopper_wallet(gateway, shopper_id)
        if not wallet:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Shopper wallet not found"
            )

        reserved = to_decimal(wallet.get("reserved_balance"))
        if reserved < found_amount:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=(
                    f"Insufficient reserved balance: reserved {money_str(reserved)}, "
                    f"required {money_str(found_amount)}"
                ),
            )

        order_ids = [o["id"] for o in orders]
        original_amount = _orders_total(orders)
        refund_amount, new_reserved = compute_settlement(original_amount, found_amount, reserved)

        new_refunds, duplicate_refunds = [], []
        if refund_amount > 0:
            existing_refunds = await find_existing_refunds(gateway, order_ids)
            new_refunds, duplicate_refunds = plan_refunds(
                orders, order_id, order_type, refund_amount, existing_refunds
            )
            if duplicate_refunds:
                logger.info(
                    f"Refund already recorded for {len(duplicate_refunds)} customer(s) "
                    f"of order {order_id}, not inserting again"
                )

        ledger_rows = build_ledger_rows(
            wallet["id"], orders, order_type, found_amount, payload.momo_code, payload.private_key
        )

        variables = {"walletId": wallet["id"], "reservedBalance": money_str(new_reserved)}
        if new_refunds:
            variables["refunds"] = new_refunds
        if ledger_rows:
            variables["transactions"] = ledger_rows

        result = await gateway.mutate(
            build_settlement_mutation(bool(new_refunds), bool(ledger_rows)), variables
        )

        updated_wallet = result.get("update_Wallets_by_pk") or {}
        inserted = (result.get("insert_Refunds") or {}).get("returning") or []
        refunds = [to_refund_schema(row) for row in inserted] + [
            to_refund_schema(row, is_duplicate=True) for row in duplicate_refunds
        ]
        refunds.sort(key=lambda r: r.order_id != order_id)

        logger.info(
            f"Settled {order_type.value} order {order_id} for shopper {shopper_id}: "
            f"original {money_str(original_amount)}, found {money_str(found_amount)}, "
            f"refund {money_str(refund_amount)}"
        )

        message = "Payment processed successfully"
        if new_refunds:
            created = sum((to_decimal(row["amount"]) for row in new_refunds), Decimal("0"))
            message += f". Refund of {money_str(created)} created"
            if len(new_refunds) > 1:
                message += f" across {len(new_refunds)} customers"

        return ProcessPaymentResponse(
            message=message,
            wallet=WalletBalanceSchema(
                available_balance=quantize_money(
                    to_decimal(updated_wallet.get("available_balance", wallet.get("available_balance")))
                ),
                reserved_balance=quantize_money(
                    to_decimal(updated_wallet.get("reserved_balance", money_str(new_reserved)))
                ),
            ),
            settlement=SettlementSchema(
                original_amount=original_amount,
                found_amount=found_amount,
                refund_amount=refund_amount,
                order_ids=order_ids,
            ),
            refund=refunds[0] if refunds else None,
            refunds=refunds,
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error processing payment for order {order_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e)
        )
