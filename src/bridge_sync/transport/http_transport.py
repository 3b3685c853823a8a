"""
http_transport.py - HTTP bridge client.

The bridge is a single endpoint that accepts one JSON document per
POST: {action, host, user, password, database, port, sql?} with
action one of "test", "query", "execute_sql", and answers
{success, message?, data?, code?}.
"""

import asyncio
import json
import logging

import httpx

from bridge_sync.errors import NetworkError, RemoteExecutionError, SyncTimeoutError
from bridge_sync.models import BridgeResponse, ConnectionCheck, Record, RemoteConfig
from bridge_sync.transport.base import RemoteStoreProtocol

logger = logging.getLogger(__name__)

ACTION_TEST = "test"
ACTION_QUERY = "query"
ACTION_EXECUTE = "execute_sql"


def encode_request(action: str, config: RemoteConfig, sql: str | None = None) -> bytes:
    """Serialize one bridge request body."""
    payload = {"action": action, **config.connection_params()}
    if sql is not None:
        payload["sql"] = sql
    return json.dumps(payload).encode("utf-8")


class BridgeClient(RemoteStoreProtocol):
    """
    RemoteStoreProtocol over the HTTP bridge.

    Every call carries its own timeout, a deadline for the whole
    request including a slowly streamed body. On expiry the request
    is cancelled and SyncTimeoutError is raised.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(transport=transport)

    @property
    def name(self) -> str:
        return "HTTP bridge"

    def payload_size(self, config: RemoteConfig, sql: str) -> int:
        return len(encode_request(ACTION_EXECUTE, config, sql))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _post(self, config: RemoteConfig, body: bytes, timeout: float) -> BridgeResponse:
        url = config.api_url
        try:
            # httpx timeouts apply per phase; wait_for bounds the whole request
            response = await asyncio.wait_for(
                self._client.post(
                    url,
                    content=body,
                    headers={"Content-Type": "application/json"},
                    timeout=timeout,
                ),
                timeout=timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise SyncTimeoutError(
                f"No answer from the bridge within {timeout:g}s", url=url, timeout=timeout
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkError(f"Bridge request failed: {e}", url=url) from e

        try:
            envelope = BridgeResponse.from_json(response.json())
        except ValueError as e:
            raise NetworkError(
                "Bridge returned an invalid response",
                url=url,
                status_code=response.status_code,
            ) from e

        if response.is_error and envelope.success:
            raise NetworkError("Bridge returned an HTTP error", url=url, status_code=response.status_code)
        return envelope

    async def test_connection(self, config: RemoteConfig, timeout: float) -> ConnectionCheck:
        envelope = await self._post(config, encode_request(ACTION_TEST, config), timeout)
        if not envelope.success:
            logger.info("Bridge connection test failed: %s", envelope.message)
        return ConnectionCheck(ok=envelope.success, message=envelope.message, code=envelope.code)

    async def query(self, config: RemoteConfig, sql: str, timeout: float) -> list[Record]:
        envelope = await self._post(config, encode_request(ACTION_QUERY, config, sql), timeout)
        if not envelope.success:
            raise RemoteExecutionError(envelope.message or "Query failed", code=envelope.code)
        return envelope.data

    async def execute_script(self, config: RemoteConfig, sql: str, timeout: float) -> BridgeResponse:
        envelope = await self._post(config, encode_request(ACTION_EXECUTE, config, sql), timeout)
        if not envelope.success:
            raise RemoteExecutionError(envelope.message or "Script execution failed", code=envelope.code)
        return envelope
