"""
scheduler.py - Background auto-sync.

Pushes silently on a fixed interval and immediately when connectivity
is restored. Ticks that land while a sync is in flight are no-ops
through the manager's single-flight guard; they are not queued. The
scheduler never pulls: pulling discards local data and stays an
explicit user action.
"""

import asyncio
import logging

from bridge_sync.config import AUTO_SYNC_INTERVAL_SECONDS
from bridge_sync.connectivity import ConnectivityMonitor
from bridge_sync.errors import SyncError
from bridge_sync.manager import SyncManager

logger = logging.getLogger(__name__)


class AutoSyncScheduler:
    """
    Interval and reconnect driven silent pushes for one SyncManager.

    At most one loop task and one connectivity listener are registered
    at a time; start() tears down a previous registration first.
    """

    def __init__(
        self,
        manager: SyncManager,
        monitor: ConnectivityMonitor | None = None,
        probe: bool = False,
    ):
        self._manager = manager
        self._monitor = monitor or ConnectivityMonitor()
        self._probe = probe
        self._interval = AUTO_SYNC_INTERVAL_SECONDS
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None
        self._listener_registered = False
        self.ticks = 0
        self.reconnect_pushes = 0

    @property
    def manager(self) -> SyncManager:
        return self._manager

    @property
    def monitor(self) -> ConnectivityMonitor:
        return self._monitor

    @property
    def probe(self) -> bool:
        return self._probe

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, interval_seconds: float = AUTO_SYNC_INTERVAL_SECONDS) -> None:
        """Start (or restart) the auto-sync loop. Must run on the event loop."""
        if interval_seconds <= 0:
            raise ValueError("Auto-sync interval must be positive")

        await self.stop()

        self._interval = interval_seconds
        self._monitor.add_listener(self._on_online)
        self._listener_registered = True

        if self._probe:
            try:
                api_url = self._manager.load_config().api_url
            except SyncError as e:
                logger.warning("Cannot read bridge URL for the connectivity probe: %s", e)
                api_url = ""
            if api_url:
                self._monitor.set_probe_from_url(api_url)
            self._monitor.start()

        self._stop_event = asyncio.Event()
        self._task = asyncio.ensure_future(self._run())
        logger.info("Auto-sync started (interval=%ss)", interval_seconds)

    async def stop(self) -> None:
        """Stop the loop and deregister the connectivity listener."""
        if self._listener_registered:
            self._monitor.remove_listener(self._on_online)
            self._listener_registered = False

        if self._probe:
            await self._monitor.stop()

        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Auto-sync stopped")

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
                break
            except asyncio.TimeoutError:
                pass
            self.ticks += 1
            logger.debug("Triggering auto-sync (tick %d)", self.ticks)
            await self._silent_push()

    async def _silent_push(self) -> bool:
        try:
            return await self._manager.push_to_remote(show_feedback=False)
        except Exception:
            # push_to_remote reports its own failures; anything else
            # must not kill the loop
            logger.exception("Auto-sync push raised")
            return False

    def _on_online(self):
        logger.info("Network restored, triggering immediate sync")
        self.reconnect_pushes += 1
        return self._silent_push()


_process_scheduler: AutoSyncScheduler | None = None


def process_scheduler() -> AutoSyncScheduler | None:
    """The process-wide scheduler, if one was started."""
    return _process_scheduler


async def start_auto_sync(
    manager: SyncManager,
    interval_seconds: float = AUTO_SYNC_INTERVAL_SECONDS,
    monitor: ConnectivityMonitor | None = None,
    probe: bool = False,
) -> AutoSyncScheduler:
    """
    Start the process-wide scheduler.

    The running scheduler is restarted in place when it serves the same
    manager, monitor and probe setting; otherwise it is stopped and replaced.
    """
    global _process_scheduler
    if _process_scheduler is not None and (
        _process_scheduler.manager is not manager
        or _process_scheduler.probe != probe
        or (monitor is not None and _process_scheduler.monitor is not monitor)
    ):
        if monitor is None:
            monitor = _process_scheduler.monitor
        await _process_scheduler.stop()
        _process_scheduler = None
    if _process_scheduler is None:
        _process_scheduler = AutoSyncScheduler(manager, monitor=monitor, probe=probe)
    await _process_scheduler.start(interval_seconds)
    return _process_scheduler


async def stop_auto_sync() -> None:
    global _process_scheduler
    if _process_scheduler is not None:
        await _process_scheduler.stop()
        _process_scheduler = None
