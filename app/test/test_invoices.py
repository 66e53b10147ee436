import re
import pytest
from datetime import datetime
from decimal import Decimal
from httpx import AsyncClient

from app.services.invoice_service import build_invoice, invoice_number
from app.test.factories import OrderFactory, OrderItemFactory, ProductFactory, new_id


BASE_URL = "/api/invoices/generate"


def delivered_order(**kwargs) -> dict:
    defaults = dict(
        status="delivered",
        service_fee="300.00",
        delivery_fee="700.00",
        discount="200.00",
        Order_Items=[
            OrderItemFactory(quantity=2, price="1500.00", Product=ProductFactory(name="Rice", measurement_unit="kg")),
            OrderItemFactory(quantity=1, price="2000.00", Product=ProductFactory(name="Oil", measurement_unit=None)),
        ],
    )
    defaults.update(kwargs)
    return OrderFactory(**defaults)


class TestInvoiceSnapshot:
    def test_totals(self):
        invoice = build_invoice(delivered_order(), "INV-1-123456")

        assert invoice.subtotal == Decimal("5000.00")
        assert invoice.tax == Decimal("0.00")
        assert invoice.discount == Decimal("200.00")
        assert invoice.total == Decimal("5800.00")
        assert [(i.name, i.unit, i.total) for i in invoice.items] == [
            ("Rice", "kg", Decimal("3000.00")),
            ("Oil", "item", Decimal("2000.00")),
        ]

    def test_number_uses_order_number_or_id_tail(self):
        now = datetime(2024, 5, 15, 12, 0)
        assert re.fullmatch(r"INV-1042-\d{6}", invoice_number({"id": new_id(), "OrderID": 1042}, now))

        order_id = new_id()
        number = invoice_number({"id": order_id, "OrderID": None}, now)
        assert number.startswith(f"INV-{order_id[-8:]}-")


class TestGenerateInvoice:
    @pytest.mark.asyncio
    async def test_shopper_generates_invoice(self, client: AsyncClient, fake_gateway, shopper):
        order = delivered_order(shopper_id=shopper.id)
        saved_id = new_id()
        fake_gateway.on("GetOrderForInvoice", {"Orders_by_pk": order, "Invoices": []})
        fake_gateway.on("AddInvoice", {"insert_Invoices_one": {"id": saved_id, "invoice_number": "x"}})

        response = await client.post(BASE_URL, json={"order_id": order["id"]})

        assert response.status_code == 200
        data = response.json()
        assert data["is_duplicate"] is False
        assert data["invoice"]["id"] == saved_id
        assert Decimal(data["invoice"]["total"]) == Decimal("5800.00")

        _, variables = fake_gateway.mutations[0]
        assert variables["invoice"]["total_amount"] == "5800.00"
        assert variables["invoice"]["tax"] == "0.00"
        assert variables["invoice"]["status"] == "completed"

    @pytest.mark.asyncio
    async def test_existing_invoice_is_returned(self, client: AsyncClient, fake_gateway, shopper):
        order = delivered_order(shopper_id=shopper.id)
        stored = {
            "id": new_id(),
            "invoice_number": "INV-1042-654321",
            "invoice_items": [],
            "subtotal": "5000.00",
            "service_fee": "300.00",
            "delivery_fee": "700.00",
            "discount": "200.00",
            "tax": "0.00",
            "total_amount": "5800.00",
            "status": "completed",
        }
        fake_gateway.on("GetOrderForInvoice", {"Orders_by_pk": order, "Invoices": [stored]})

        response = await client.post(BASE_URL, json={"order_id": order["id"]})

        assert response.status_code == 200
        assert response.json()["is_duplicate"] is True
        assert response.json()["invoice"]["invoice_number"] == "INV-1042-654321"
        assert fake_gateway.mutations == []

    @pytest.mark.asyncio
    async def test_order_must_be_delivered(self, client: AsyncClient, fake_gateway, shopper):
        order = delivered_order(shopper_id=shopper.id, status="on_the_way")
        fake_gateway.on("GetOrderForInvoice", {"Orders_by_pk": order, "Invoices": []})

        response = await client.post(BASE_URL, json={"order_id": order["id"]})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_stranger_is_forbidden(self, client: AsyncClient, fake_gateway):
        order = delivered_order(shopper_id=new_id())
        fake_gateway.on("GetOrderForInvoice", {"Orders_by_pk": order, "Invoices": []})

        response = await client.post(BASE_URL, json={"order_id": order["id"]})

        assert response.status_code == 403


class TestCustomerInvoice:
    @pytest.fixture
    def current_user(self, customer):
        return customer

    @pytest.mark.asyncio
    async def test_customer_generates_invoice(self, client: AsyncClient, fake_gateway, customer):
        order = delivered_order(shopper_id=new_id(), user_id=customer.id)
        fake_gateway.on("GetOrderForInvoice", {"Orders_by_pk": order, "Invoices": []})
        fake_gateway.on("AddInvoice", {"insert_Invoices_one": {"id": new_id()}})

        response = await client.post(BASE_URL, json={"order_id": order["id"]})

        assert response.status_code == 200
        assert response.json()["invoice"]["customer_id"] == customer.id
