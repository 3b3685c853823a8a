"""
conftest.py - pytest fixtures for bridge_sync tests.
"""

import asyncio
import json
import os
import re
import tempfile
from unittest.mock import Mock

import httpx
import pytest

from bridge_sync import BridgeClient, RemoteConfig, SQLiteLocalStore, SyncManager
from bridge_sync.manager import save_remote_config
from bridge_sync.metrics import MetricsRegistry, SyncMetrics
from bridge_sync.notify import Notifier

BRIDGE_URL = "https://bridge.example.test/api.php"

_TABLE_RE = re.compile(r"FROM\s+`?(\w+)`?", re.IGNORECASE)


class FakeBridge:
    """
    In-memory stand-in for the HTTP bridge, served through httpx.MockTransport.

    Remote tables live in `tables`; a table absent from it answers with
    the MySQL "doesn't exist" message.
    """

    def __init__(self):
        self.requests: list[dict] = []
        self.tables: dict[str, list[dict]] = {}
        self.query_failures: dict[str, str] = {}
        self.executed: list[str] = []
        self.execute_response: dict = {"success": True, "message": "SQL executed successfully"}
        self.test_response: dict = {"success": True, "message": "Connection successful!"}
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.entered: asyncio.Event | None = None

    @property
    def request_count(self) -> int:
        return len(self.requests)

    def actions(self) -> list[str]:
        return [r["action"] for r in self.requests]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.requests.append(payload)
        if self.entered is not None:
            self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error

        action = payload.get("action")
        if action == "test":
            return httpx.Response(200, json=self.test_response)
        if action == "execute_sql":
            self.executed.append(payload["sql"])
            return httpx.Response(200, json=self.execute_response)
        if action == "query":
            table = _TABLE_RE.search(payload["sql"]).group(1)
            if table in self.query_failures:
                return httpx.Response(200, json={"success": False, "message": self.query_failures[table]})
            if table not in self.tables:
                return httpx.Response(200, json={
                    "success": False,
                    "message": f"Error: SQLSTATE[42S02]: Base table or view not found: 1146 Table 'obras.{table}' doesn't exist",
                })
            return httpx.Response(200, json={"success": True, "data": self.tables[table]})
        return httpx.Response(200, json={"success": False, "message": "Unknown action"})


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test databases."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def store(temp_dir):
    """Create an initialized local store in a temp directory."""
    store = SQLiteLocalStore(os.path.join(temp_dir, "local.db"))
    store.initialize()
    yield store
    store.close()


@pytest.fixture
def remote_config():
    return RemoteConfig(
        api_url=BRIDGE_URL,
        host="db.example.test",
        port="3306",
        user="obras",
        password="secret",
        database="obras",
    )


@pytest.fixture
def configured_store(store, remote_config):
    """Local store with the bridge settings saved."""
    save_remote_config(store, remote_config)
    return store


@pytest.fixture
def bridge():
    return FakeBridge()


@pytest.fixture
def notifier():
    return Mock(spec=Notifier)


@pytest.fixture
def manager(configured_store, bridge, notifier):
    """SyncManager talking to the fake bridge, with its own metrics registry."""
    client = BridgeClient(transport=bridge.transport())
    manager = SyncManager(
        configured_store,
        remote=client,
        notifier=notifier,
        metrics=SyncMetrics(MetricsRegistry()),
    )
    yield manager
    asyncio.run(client.aclose())
