import os

os.environ.setdefault("TEST", "true")
os.environ.setdefault("TZ", "Africa/Kigali")

import copy
import re
from typing import AsyncGenerator
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from app.auth.auth import get_current_user
from app.database.gateway import get_gateway
from app.main import app
from app.schemas.status_schema import UserRole
from app.schemas.user_schemas import SessionUser


OPERATION_NAME = re.compile(r"\b(?:query|mutation)\s+(\w+)")


def operation_name(document: str) -> str:
    match = OPERATION_NAME.search(document)
    return match.group(1) if match else ""


class FakeGateway:
    """
    Stands in for the GraphQL gateway.

    Responses are registered per operation name, either as data, as a
    callable taking the variables, or as an exception to raise. Every call is
    recorded so tests can assert on what was sent.
    """

    def __init__(self):
        self.responses: dict = {}
        self.queries: list[tuple[str, dict]] = []
        self.mutations: list[tuple[str, dict]] = []

    def on(self, name: str, response) -> "FakeGateway":
        self.responses[name] = response
        return self

    def _respond(self, document: str, variables: dict | None):
        response = self.responses.get(operation_name(document), {})
        if isinstance(response, Exception):
            raise response
        if callable(response):
            response = response(variables or {})
        return copy.deepcopy(response)

    async def query(self, document: str, variables: dict | None = None) -> dict:
        self.queries.append((operation_name(document), variables or {}))
        return self._respond(document, variables)

    async def mutate(self, document: str, variables: dict | None = None) -> dict:
        self.mutations.append((document, variables or {}))
        return self._respond(document, variables)

    def queried(self, name: str) -> list[dict]:
        return [variables for op, variables in self.queries if op == name]

    async def aclose(self) -> None:
        pass


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def shopper() -> SessionUser:
    return SessionUser(id=str(uuid4()), role=UserRole.SHOPPER.value, name="Test Shopper")


@pytest.fixture
def customer() -> SessionUser:
    return SessionUser(id=str(uuid4()), role=UserRole.CUSTOMER.value, name="Test Customer")


@pytest.fixture
def current_user(shopper: SessionUser) -> SessionUser:
    """The identity requests are made as; override in a test module to change it."""
    return shopper


@pytest.fixture(autouse=True)
def mock_redis():
    """Keep tests away from a real Redis; the stats cache starts empty."""
    fake_redis = MagicMock()
    fake_redis.get.return_value = None
    with patch("app.services.stats_service.redis_client", fake_redis):
        yield fake_redis


@pytest_asyncio.fixture(scope="function")
async def client(
    fake_gateway: FakeGateway, current_user: SessionUser
) -> AsyncGenerator[AsyncClient, None]:
    """
    Test client with the gateway replaced by the fake and the session
    resolved to `current_user`.
    """

    async def override_get_gateway() -> FakeGateway:
        return fake_gateway

    async def override_get_current_user() -> SessionUser:
        return current_user

    app.dependency_overrides[get_gateway] = override_get_gateway
    app.dependency_overrides[get_current_user] = override_get_current_user
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def anonymous_client(fake_gateway: FakeGateway) -> AsyncGenerator[AsyncClient, None]:
    """Test client that goes through real session token decoding."""

    async def override_get_gateway() -> FakeGateway:
        return fake_gateway

    app.dependency_overrides[get_gateway] = override_get_gateway
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
