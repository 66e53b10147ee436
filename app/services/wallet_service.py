from decimal import Decimal
from uuid import uuid4

from fastapi import HTTPException, status

from app.database.gateway import GraphQLGateway
from app.schemas.status_schema import PayoutStatus, TransactionStatus, TransactionType
from app.schemas.transaction_schema import (
    PayoutRequestSchema,
    PayoutResponse,
    PayoutSchema,
    WalletHistoryResponse,
    WalletSchema,
    WalletTransactionSchema,
)
from app.utils.logger_config import setup_logger
from app.utils.utils import money_str, parse_timestamp, quantize_money, to_decimal

logger = setup_logger()


GET_SHOPPER_WALLET = """
query GetShopperWallet($shopperId: uuid!) {
  Wallets(where: { shopper_id: { _eq: $shopperId } }) {
    id
    available_balance
    reserved_balance
  }
}
"""

GET_WALLET_HISTORY = """
query GetWalletHistory($shopperId: uuid!) {
  Wallets(where: { shopper_id: { _eq: $shopperId } }) {
    id
    available_balance
    reserved_balance
  }
  Wallet_Transactions(
    where: { Wallet: { shopper_id: { _eq: $shopperId } } }
    order_by: { created_at: desc }
  ) {
    id
    amount
    type
    status
    description
    created_at
    related_order_id
    related_restaurant_order_id
  }
}
"""

REQUEST_PAYOUT = """
mutation RequestPayout(
  $walletId: uuid!
  $availableBalance: String!
  $payout: payouts_insert_input!
  $transaction: Wallet_Transactions_insert_input!
) {
  update_Wallets_by_pk(
    pk_columns: { id: $walletId }
    _set: { available_balance: $availableBalance, last_updated: "now()" }
  ) {
    id
    available_balance
    reserved_balance
  }
  insert_payouts_one(object: $payout) {
    id
    amount
    status
    created_at
  }
  insert_Wallet_Transactions_one(object: $transaction) {
    id
  }
}
"""


async def get_shopper_wallet(gateway: GraphQLGateway, shopper_id: str) -> dict | None:
    """Return the raw wallet row of a shopper, or None when they have none."""
    data = await gateway.query(GET_SHOPPER_WALLET, {"shopperId": shopper_id})
    wallets = data.get("Wallets") or []
    return wallets[0] if wallets else None


def to_wallet_schema(wallet: dict) -> WalletSchema:
    return WalletSchema(
        id=wallet["id"],
        available_balance=quantize_money(to_decimal(wallet.get("available_balance"))),
        reserved_balance=quantize_money(to_decimal(wallet.get("reserved_balance"))),
    )


async def get_wallet_history(gateway: GraphQLGateway, shopper_id: str) -> WalletHistoryResponse:
    try:
        data = await gateway.query(GET_WALLET_HISTORY, {"shopperId": shopper_id})
    except Exception as e:
        logger.error(f"Error fetching wallet history for shopper {shopper_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e)
        )

    wallets = data.get("Wallets") or []
    transactions = [
        WalletTransactionSchema(
            id=tx["id"],
            amount=quantize_money(to_decimal(tx.get("amount"))),
            type=tx.get("type") or "",
            status=tx.get("status") or "",
            description=tx.get("description") or "",
            created_at=parse_timestamp(tx["created_at"]),
            order_id=tx.get("related_order_id") or tx.get("related_restaurant_order_id"),
        )
        for tx in data.get("Wallet_Transactions") or []
    ]

    return WalletHistoryResponse(
        wallet=to_wallet_schema(wallets[0]) if wallets else None,
        transactions=transactions,
    )


def payout_rows(wallet_id: str, shopper_id: str, payout_id: str, amount: Decimal) -> tuple[dict, dict]:
    """The payout request and its pending withdrawal ledger row."""
    payout = {
        "id": payout_id,
        "wallet_id": wallet_id,
        "user_id": shopper_id,
        "amount": money_str(amount),
        "status": PayoutStatus.PENDING.value,
    }
    transaction = {
        "wallet_id": wallet_id,
        "amount": money_str(amount),
        "type": TransactionType.WITHDRAWAL.value,
        "status": TransactionStatus.PENDING.value,
        "description": f"Payout request #{payout_id[:8]} - Processing",
    }
    return payout, transaction


async def request_payout(
    gateway: GraphQLGateway, shopper_id: str, payload: PayoutRequestSchema
) -> PayoutResponse:
    """
    Withdraw from the shopper's available balance.

    The balance debit, the payout request and the withdrawal ledger row are
    sent in one mutation.
    """
    try:
        amount = quantize_money(payload.amount)
        if amount <= 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Amount must be a positive number",
            )

        wallet = await get_shopper_wallet(gateway, shopper_id)
        if not wallet:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Shopper wallet not found"
            )

        available = quantize_money(to_decimal(wallet.get("available_balance")))
        if available < amount:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=(
                    f"Requested amount ({money_str(amount)}) exceeds available "
                    f"balance ({money_str(available)})"
                ),
            )

        new_balance = available - amount
        payout, transaction = payout_rows(wallet["id"], shopper_id, str(uuid4()), amount)
        result = await gateway.mutate(
            REQUEST_PAYOUT,
            {
                "walletId": wallet["id"],
                "availableBalance": money_str(new_balance),
                "payout": payout,
                "transaction": transaction,
            },
        )

        created = result.get("insert_payouts_one") or payout
        logger.info(
            f"Payout {created['id']} of {money_str(amount)} requested by shopper {shopper_id}: "
            f"balance {money_str(available)} -> {money_str(new_balance)}"
        )

        return PayoutResponse(
            message="Payout request submitted successfully",
            data=PayoutSchema(
                payout_id=created["id"],
                transaction_id=(result.get("insert_Wallet_Transactions_one") or {}).get("id"),
                amount=amount,
                previous_balance=available,
                new_balance=new_balance,
                status=created.get("status") or PayoutStatus.PENDING.value,
            ),
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error processing payout request for shopper {shopper_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e)
        )
