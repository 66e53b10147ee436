from typing import Any

import httpx

from app.config.config import settings
from app.database.errors import GatewayError
from app.utils.logger_config import setup_logger
from app.utils.middleware import with_gateway_retry

logger = setup_logger()


class GraphQLGateway:
    """
    Shared client for the Hasura GraphQL endpoint.

    Every read and write of the service goes through this client using the
    admin secret. Reads go through `query` and are retried on transport
    failures; writes go through `mutate` and are sent exactly once.
    """

    def __init__(
        self,
        url: str,
        admin_secret: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self._client = httpx.AsyncClient(
            headers={
                "Content-Type": "application/json",
                "x-hasura-admin-secret": admin_secret,
            },
            timeout=timeout,
            transport=transport,
        )

    async def _execute(self, document: str, variables: dict | None = None) -> dict[str, Any]:
        response = await self._client.post(
            self.url, json={"query": document, "variables": variables or {}}
        )

        if response.status_code >= 400:
            raise GatewayError(
                f"GraphQL gateway returned HTTP {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        payload = response.json()
        errors = payload.get("errors")
        if errors:
            raise GatewayError(
                errors[0].get("message", "Unknown GraphQL error"),
                status_code=response.status_code,
                errors=errors,
            )

        return payload.get("data") or {}

    @with_gateway_retry()
    async def query(self, document: str, variables: dict | None = None) -> dict[str, Any]:
        return await self._execute(document, variables)

    async def mutate(self, document: str, variables: dict | None = None) -> dict[str, Any]:
        return await self._execute(document, variables)

    async def aclose(self) -> None:
        await self._client.aclose()


gateway = GraphQLGateway(
    url=settings.HASURA_GRAPHQL_URL,
    admin_secret=settings.HASURA_GRAPHQL_ADMIN_SECRET,
    timeout=settings.HASURA_TIMEOUT_SECONDS,
)


async def get_gateway() -> GraphQLGateway:
    return gateway
