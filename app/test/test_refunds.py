import pytest
from decimal import Decimal
from httpx import AsyncClient

from app.test.factories import (
    OrderFactory,
    OrderItemFactory,
    ProductFactory,
    RefundFactory,
    ShopFactory,
    new_id,
)


BASE_URL = "/api/refunds"


def create_refund_response(variables: dict) -> dict:
    return {"insert_Refunds_one": {"id": new_id(), **variables["refund"]}}


class TestCreateRefund:
    @pytest.mark.asyncio
    async def test_new_refund_is_created(self, client: AsyncClient, fake_gateway, shopper):
        order = OrderFactory(shopper_id=shopper.id)
        fake_gateway.on("GetOrderForRefund", {"Orders_by_pk": order})
        fake_gateway.on("GetExistingRefunds", {"Refunds": []})
        fake_gateway.on("CreateRefund", create_refund_response)

        response = await client.post(
            BASE_URL,
            json={"order_id": order["id"], "refund_amount": "800", "reason": "Milk was out of stock"},
        )

        assert response.status_code == 201
        refund = response.json()["refund"]
        assert Decimal(refund["amount"]) == Decimal("800.00")
        assert refund["status"] == "pending"
        assert refund["generated_by"] == "System"
        assert refund["is_duplicate"] is False

        _, variables = fake_gateway.mutations[0]
        assert variables["refund"]["paid"] is False
        assert variables["refund"]["reason"] == "Milk was out of stock"
        assert variables["refund"]["user_id"] == order["user_id"]

    @pytest.mark.asyncio
    async def test_reason_is_built_from_items_when_missing(self, client: AsyncClient, fake_gateway, shopper):
        order = OrderFactory(
            shopper_id=shopper.id,
            total="5000.00",
            Shop=ShopFactory(name="FreshMart"),
            Order_Items=[OrderItemFactory(quantity=2, found=False, Product=ProductFactory(name="Milk"))],
        )
        fake_gateway.on("GetOrderForRefund", {"Orders_by_pk": order})
        fake_gateway.on("GetExistingRefunds", {"Refunds": []})
        fake_gateway.on("CreateRefund", create_refund_response)

        response = await client.post(BASE_URL, json={"order_id": order["id"], "refund_amount": "800"})

        assert response.status_code == 201
        assert response.json()["refund"]["reason"] == (
            "Refund for items not found during shopping. FreshMart: Milk (2). "
            "Original total: 5000.00, found items total: 4200.00."
        )

    @pytest.mark.asyncio
    async def test_existing_refund_is_returned(self, client: AsyncClient, fake_gateway, shopper):
        order = OrderFactory(shopper_id=shopper.id)
        existing = RefundFactory(order_id=order["id"])
        fake_gateway.on("GetOrderForRefund", {"Orders_by_pk": order})
        fake_gateway.on("GetExistingRefunds", {"Refunds": [existing]})

        response = await client.post(BASE_URL, json={"order_id": order["id"], "refund_amount": "800"})

        assert response.status_code == 200
        assert response.json()["refund"]["is_duplicate"] is True
        assert response.json()["refund"]["id"] == existing["id"]
        assert fake_gateway.mutations == []

    @pytest.mark.parametrize("amount", ["0", "-5"])
    @pytest.mark.asyncio
    async def test_amount_must_be_positive(self, client: AsyncClient, fake_gateway, amount):
        response = await client.post(BASE_URL, json={"order_id": new_id(), "refund_amount": amount})

        assert response.status_code == 400
        assert fake_gateway.queries == []

    @pytest.mark.asyncio
    async def test_order_of_another_shopper(self, client: AsyncClient, fake_gateway):
        order = OrderFactory(shopper_id=new_id())
        fake_gateway.on("GetOrderForRefund", {"Orders_by_pk": order})

        response = await client.post(BASE_URL, json={"order_id": order["id"], "refund_amount": "800"})

        assert response.status_code == 403
        assert fake_gateway.mutations == []

    @pytest.mark.asyncio
    async def test_unknown_order(self, client: AsyncClient, fake_gateway):
        fake_gateway.on("GetOrderForRefund", {"Orders_by_pk": None})

        response = await client.post(BASE_URL, json={"order_id": new_id(), "refund_amount": "800"})

        assert response.status_code == 404
