"""
test_transport.py - Tests for the HTTP bridge client.
"""

import asyncio
import json
from dataclasses import replace

import httpx
import pytest

from bridge_sync.errors import NetworkError, RemoteExecutionError, SyncTimeoutError
from bridge_sync.transport import BridgeClient, encode_request, is_missing_table_message


def _client(handler) -> BridgeClient:
    return BridgeClient(transport=httpx.MockTransport(handler))


def _run(client: BridgeClient, coro_factory):
    async def _go():
        try:
            return await coro_factory(client)
        finally:
            await client.aclose()
    return asyncio.run(_go())


class TestRequestEncoding:
    def test_encode_request(self, remote_config):
        body = json.loads(encode_request("query", remote_config, "SELECT 1"))
        assert body == {
            "action": "query",
            "host": "db.example.test",
            "user": "obras",
            "password": "secret",
            "database": "obras",
            "port": "3306",
            "sql": "SELECT 1",
        }

    def test_test_action_has_no_sql(self, remote_config):
        body = json.loads(encode_request("test", remote_config))
        assert "sql" not in body

    def test_payload_size_counts_request_body(self, remote_config):
        client = BridgeClient()
        sql = "INSERT INTO t VALUES ('ñ');"
        assert client.payload_size(remote_config, sql) == len(encode_request("execute_sql", remote_config, sql))
        asyncio.run(client.aclose())


class TestBridgeClient:
    def test_query_returns_rows(self, remote_config):
        seen = {}

        def handler(request):
            seen["content_type"] = request.headers["content-type"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "data": [{"id": 1}]})

        rows = _run(_client(handler), lambda c: c.query(remote_config, "SELECT * FROM `x`", timeout=5))
        assert rows == [{"id": 1}]
        assert seen["content_type"] == "application/json"
        assert seen["body"]["action"] == "query"

    def test_query_failure_raises_remote_error(self, remote_config):
        def handler(request):
            return httpx.Response(200, json={"success": False, "message": "Access denied"})

        with pytest.raises(RemoteExecutionError) as exc_info:
            _run(_client(handler), lambda c: c.query(remote_config, "SELECT 1", timeout=5))
        assert exc_info.value.message == "Access denied"

    def test_execute_failure_raises_remote_error(self, remote_config):
        def handler(request):
            return httpx.Response(500, json={"success": False, "message": "Syntax error near ..."})

        with pytest.raises(RemoteExecutionError):
            _run(_client(handler), lambda c: c.execute_script(remote_config, "BAD", timeout=5))

    def test_timeout(self, remote_config):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(SyncTimeoutError) as exc_info:
            _run(_client(handler), lambda c: c.query(remote_config, "SELECT 1", timeout=30))
        assert exc_info.value.timeout == 30

    def test_connection_error(self, remote_config):
        def handler(request):
            raise httpx.ConnectError("name resolution failed", request=request)

        with pytest.raises(NetworkError) as exc_info:
            _run(_client(handler), lambda c: c.execute_script(remote_config, "SELECT 1", timeout=5))
        assert not isinstance(exc_info.value, SyncTimeoutError)

    def test_non_json_body(self, remote_config):
        def handler(request):
            return httpx.Response(200, text="<b>Fatal error</b>")

        with pytest.raises(NetworkError) as exc_info:
            _run(_client(handler), lambda c: c.query(remote_config, "SELECT 1", timeout=5))
        assert exc_info.value.status_code == 200

    def test_http_error_status_with_success(self, remote_config):
        def handler(request):
            return httpx.Response(502, json={"success": True})

        with pytest.raises(NetworkError) as exc_info:
            _run(_client(handler), lambda c: c.query(remote_config, "SELECT 1", timeout=5))
        assert exc_info.value.status_code == 502

    def test_test_connection_reports_missing_database(self, remote_config):
        def handler(request):
            return httpx.Response(200, json={
                "success": False,
                "code": "DB_NOT_FOUND",
                "message": "Connected to the server, but the database 'obras' does not exist.",
            })

        check = _run(_client(handler), lambda c: c.test_connection(remote_config, timeout=5))
        assert not check.ok
        assert check.database_missing

    def test_test_connection_success(self, remote_config):
        def handler(request):
            assert json.loads(request.content)["action"] == "test"
            return httpx.Response(200, json={"success": True, "message": "Connection successful!"})

        check = _run(_client(handler), lambda c: c.test_connection(remote_config, timeout=5))
        assert check.ok
        assert check.message == "Connection successful!"


class TestMissingTableMessage:
    def test_markers(self):
        assert is_missing_table_message("Table 'obras.loans' doesn't exist")
        assert is_missing_table_message("La tabla no existe")
        assert is_missing_table_message("no such table: loans")

    def test_other_messages(self):
        assert not is_missing_table_message(None)
        assert not is_missing_table_message("Access denied for user")
        assert not is_missing_table_message("Unknown database 'obras'")


class TestRequestDeadline:
    """The call timeout bounds the whole request, not each read."""

    def test_slow_body_times_out(self, remote_config):
        body = b'{"success": true, "message": "slow body"}'

        async def trickle(reader, writer):
            await reader.readuntil(b"\r\n\r\n")
            writer.write(
                b"HTTP/1.1 200 OK\r\nContent-Type: application/json\r\n"
                b"Content-Length: %d\r\n\r\n" % len(body)
            )
            try:
                for byte in body:
                    if writer.is_closing():
                        break
                    writer.write(bytes([byte]))
                    await writer.drain()
                    await asyncio.sleep(0.15)
            except ConnectionError:
                pass
            finally:
                writer.close()

        async def _scenario():
            server = await asyncio.start_server(trickle, "127.0.0.1", 0)
            port = server.sockets[0].getsockname()[1]
            config = replace(remote_config, api_url=f"http://127.0.0.1:{port}/api.php")
            http = httpx.AsyncClient(trust_env=False)
            client = BridgeClient(client=http)
            loop = asyncio.get_running_loop()
            started = loop.time()
            try:
                with pytest.raises(SyncTimeoutError):
                    await client.execute_script(config, "SELECT 1", timeout=0.5)
                return loop.time() - started
            finally:
                await http.aclose()
                server.close()
                await server.wait_closed()

        assert asyncio.run(_scenario()) < 1.5
