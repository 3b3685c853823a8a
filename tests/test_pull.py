"""
test_pull.py - Tests for the pull coordinator.
"""

import asyncio
from dataclasses import replace
from datetime import date

import httpx

from bridge_sync.models import SessionState, SyncDirection


def _remote_settings(remote_config):
    return [
        {"id": i, "key": key, "value": value}
        for i, (key, value) in enumerate(remote_config.to_settings().items(), start=1)
    ]


class TestPull:
    def test_structured_details_decoded(self, manager, bridge, configured_store, remote_config):
        bridge.tables = {
            "payrolls": [{
                "id": 1,
                "projectId": "p1",
                "startDate": "2024-05-01",
                "endDate": "2024-05-15",
                "totalAmount": "500.00",
                "status": "paid",
                "details": '[{"workerId":1,"amount":500}]',
            }],
            "settings": _remote_settings(remote_config),
        }

        assert asyncio.run(manager.pull_from_remote()) is True

        rows = configured_store.read_all("payrolls")
        assert len(rows) == 1
        assert rows[0]["details"] == [{"workerId": 1, "amount": 500}]
        assert rows[0]["startDate"] == date(2024, 5, 1)
        assert rows[0]["totalAmount"] == 500.0
        assert manager.last_session.direction is SyncDirection.PULL
        assert manager.last_session.state is SessionState.SUCCESS

    def test_queries_every_catalog_table(self, manager, bridge, configured_store):
        asyncio.run(manager.pull_from_remote())

        queried = sorted(r["sql"] for r in bridge.requests)
        expected = sorted(f"SELECT * FROM `{t.name}`" for t in configured_store.catalog)
        assert queried == expected
        assert set(bridge.actions()) == {"query"}

    def test_missing_tables_become_empty(self, manager, bridge, configured_store, notifier):
        configured_store.insert_rows("loans", [{"id": 1, "entity": "Banco"}])
        bridge.tables = {"workerRoles": [{"id": 7, "name": "Painter"}]}

        assert asyncio.run(manager.pull_from_remote()) is True

        assert configured_store.count("loans") == 0
        assert configured_store.read_all("workerRoles") == [{"id": 7, "name": "Painter"}]
        notifier.success.assert_called_once_with("Download completed")

    def test_other_remote_error_aborts_without_local_change(self, manager, bridge, configured_store, notifier):
        configured_store.insert_rows("clients", [{"id": 1, "name": "ACME"}])
        bridge.tables = {"clients": []}
        bridge.query_failures = {"loans": "Access denied for user 'obras'"}

        assert asyncio.run(manager.pull_from_remote()) is False

        assert configured_store.count("clients") == 1
        message = notifier.error.call_args[0][0]
        assert "Error downloading table loans" in message
        assert "Access denied" in message

    def test_timeout_aborts_without_local_change(self, manager, bridge, configured_store, notifier):
        configured_store.insert_rows("clients", [{"id": 1, "name": "ACME"}])
        bridge.error = httpx.ReadTimeout("timed out")

        assert asyncio.run(manager.pull_from_remote()) is False

        assert configured_store.count("clients") == 1
        assert notifier.error.call_args[0][0] == "Timed out waiting for the remote server"
        assert not manager.is_syncing

    def test_apply_failure_keeps_previous_snapshot(self, manager, bridge, configured_store, notifier):
        configured_store.insert_rows("clients", [{"id": 1, "name": "ACME"}])
        bridge.tables = {
            "clients": [{"id": 2, "name": "New"}],
            "workerRoles": [{"id": 1, "name": "a"}, {"id": 1, "name": "b"}],
        }

        assert asyncio.run(manager.pull_from_remote()) is False

        assert [r["name"] for r in configured_store.read_all("clients")] == ["ACME"]
        assert notifier.error.call_args[0][0].startswith("Local database error")
        assert manager.metrics.operations_total.get(direction="pull", outcome="local_error") == 1

    def test_pull_skipped_while_push_in_progress(self, manager, bridge, notifier):
        async def _scenario():
            async with manager.session(SyncDirection.PUSH):
                return await manager.pull_from_remote()

        assert asyncio.run(_scenario()) is False
        assert bridge.request_count == 0

    def test_explicit_config_overrides_settings(self, manager, bridge, remote_config):
        asyncio.run(manager.pull_from_remote(config=replace(remote_config, database="other")))

        assert {r["database"] for r in bridge.requests} == {"other"}

    def test_rows_pulled_metric(self, manager, bridge):
        bridge.tables = {"workerRoles": [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}]}

        asyncio.run(manager.pull_from_remote(show_feedback=False))

        assert manager.metrics.rows_pulled_total.get(table="workerRoles") == 2
