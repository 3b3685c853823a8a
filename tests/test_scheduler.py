"""
test_scheduler.py - Tests for auto-sync scheduling.
"""

import asyncio
from dataclasses import replace

import httpx
import pytest

from bridge_sync.connectivity import ConnectivityMonitor
from bridge_sync.manager import save_remote_config
from bridge_sync.scheduler import (
    AutoSyncScheduler,
    process_scheduler,
    start_auto_sync,
    stop_auto_sync,
)

LONG_INTERVAL = 3600


class TestAutoSyncScheduler:
    def test_restart_keeps_single_listener(self, manager):
        monitor = ConnectivityMonitor()
        scheduler = AutoSyncScheduler(manager, monitor=monitor)

        async def _scenario():
            await scheduler.start(LONG_INTERVAL)
            first_task = scheduler._task
            await scheduler.start(LONG_INTERVAL)
            assert first_task.done()
            assert scheduler.is_running
            assert monitor.listener_count == 1
            await scheduler.stop()

        asyncio.run(_scenario())
        assert monitor.listener_count == 0
        assert not scheduler.is_running

    def test_reconnect_triggers_one_silent_push(self, manager, bridge, notifier):
        monitor = ConnectivityMonitor(online=False)
        scheduler = AutoSyncScheduler(manager, monitor=monitor)

        async def _scenario():
            await scheduler.start(LONG_INTERVAL)
            monitor.set_online(True)
            await monitor.wait_listeners()
            await scheduler.stop()

        asyncio.run(_scenario())
        assert scheduler.reconnect_pushes == 1
        assert bridge.actions() == ["execute_sql"]
        notifier.info.assert_not_called()
        notifier.success.assert_not_called()

    def test_repeated_online_events_do_not_refire(self, manager, bridge):
        monitor = ConnectivityMonitor(online=True)
        scheduler = AutoSyncScheduler(manager, monitor=monitor)

        async def _scenario():
            await scheduler.start(LONG_INTERVAL)
            monitor.set_online(True)
            monitor.set_online(True)
            await monitor.wait_listeners()
            await scheduler.stop()

        asyncio.run(_scenario())
        assert bridge.request_count == 0

    def test_stop_deregisters_listener(self, manager, bridge):
        monitor = ConnectivityMonitor(online=False)
        scheduler = AutoSyncScheduler(manager, monitor=monitor)

        async def _scenario():
            await scheduler.start(LONG_INTERVAL)
            await scheduler.stop()
            monitor.set_online(True)
            await monitor.wait_listeners()

        asyncio.run(_scenario())
        assert bridge.request_count == 0

    def test_stop_without_start(self, manager):
        scheduler = AutoSyncScheduler(manager)
        asyncio.run(scheduler.stop())
        assert not scheduler.is_running

    def test_interval_ticks_push(self, manager, bridge):
        scheduler = AutoSyncScheduler(manager, monitor=ConnectivityMonitor())

        async def _scenario():
            await scheduler.start(0.05)
            await asyncio.sleep(0.3)
            await scheduler.stop()

        asyncio.run(_scenario())
        assert scheduler.ticks >= 2
        assert 1 <= bridge.request_count <= scheduler.ticks
        assert set(bridge.actions()) == {"execute_sql"}

    def test_failing_push_keeps_loop_running(self, manager, bridge):
        bridge.error = httpx.ConnectError("offline")
        scheduler = AutoSyncScheduler(manager, monitor=ConnectivityMonitor())

        async def _scenario():
            await scheduler.start(0.05)
            await asyncio.sleep(0.3)
            running = scheduler.is_running
            await scheduler.stop()
            return running

        assert asyncio.run(_scenario()) is True
        assert scheduler.ticks >= 2
        assert not manager.is_syncing

    def test_tick_during_sync_is_skipped(self, manager, bridge):
        scheduler = AutoSyncScheduler(manager, monitor=ConnectivityMonitor())

        async def _scenario():
            bridge.gate = asyncio.Event()
            bridge.entered = asyncio.Event()
            first = asyncio.ensure_future(manager.push_to_remote(show_feedback=False))
            await bridge.entered.wait()
            await scheduler.start(0.05)
            await asyncio.sleep(0.2)
            bridge.gate.set()
            await first
            await scheduler.stop()

        asyncio.run(_scenario())
        assert manager.metrics.operations_total.get(direction="push", outcome="busy") >= 1

    def test_invalid_interval(self, manager):
        scheduler = AutoSyncScheduler(manager)
        with pytest.raises(ValueError):
            asyncio.run(scheduler.start(0))


class TestProcessScheduler:
    def test_start_is_idempotent_per_manager(self, manager):
        monitor = ConnectivityMonitor()

        async def _scenario():
            first = await start_auto_sync(manager, LONG_INTERVAL, monitor=monitor)
            second = await start_auto_sync(manager, LONG_INTERVAL, monitor=monitor)
            assert first is second
            assert process_scheduler() is first
            assert monitor.listener_count == 1
            await stop_auto_sync()

        asyncio.run(_scenario())
        assert process_scheduler() is None
        assert monitor.listener_count == 0

    def test_turning_on_reachability_checks_rebuilds_scheduler(self, manager, configured_store, remote_config):
        # Point the reachability check at a local closed port, not the bridge host
        save_remote_config(configured_store, replace(remote_config, api_url="http://127.0.0.1:9/api.php"))
        monitor = ConnectivityMonitor()

        async def _scenario():
            first = await start_auto_sync(manager, LONG_INTERVAL, monitor=monitor)
            second = await start_auto_sync(manager, LONG_INTERVAL, probe=True)
            assert second is not first
            assert second.probe
            assert second.monitor is monitor
            assert not first.is_running
            assert monitor.listener_count == 1
            await stop_auto_sync()

        asyncio.run(_scenario())
        assert process_scheduler() is None
        assert monitor.listener_count == 0

    def test_stop_when_not_started(self):
        asyncio.run(stop_auto_sync())
        assert process_scheduler() is None
