"""
connectivity.py - Online/offline tracking for the auto-sync scheduler.

The monitor fires its listeners on offline -> online transitions. The
host application can feed network events with set_online(), or start
the probe loop, which periodically opens a TCP connection to the
bridge host.
"""

import asyncio
import inspect
import logging
import time
from typing import Awaitable, Callable, Union
from urllib.parse import urlparse

from bridge_sync.config import PROBE_INTERVAL_SECONDS, PROBE_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

Listener = Callable[[], Union[None, Awaitable[None]]]


class ConnectivityMonitor:
    """
    Tracks whether the bridge host is reachable.

    Listeners may be plain or async callables. Async listeners are
    scheduled as tasks on the running loop.
    """

    def __init__(
        self,
        probe_url: str | None = None,
        probe_interval: float = PROBE_INTERVAL_SECONDS,
        probe_timeout: float = PROBE_TIMEOUT_SECONDS,
        online: bool = True,
    ):
        self._probe_host: str | None = None
        self._probe_port: int = 443
        self._probe_interval = probe_interval
        self._probe_timeout = probe_timeout
        self._online = online
        self._changed_at = time.time()
        self._listeners: list[Listener] = []
        self._pending: set[asyncio.Task] = set()
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None
        if probe_url:
            self.set_probe_from_url(probe_url)

    @property
    def online(self) -> bool:
        return self._online

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def set_probe_from_url(self, url: str) -> None:
        """Derive the probe target from the bridge URL."""
        parsed = urlparse(url)
        self._probe_host = parsed.hostname
        if parsed.port:
            self._probe_port = parsed.port
        else:
            self._probe_port = 80 if parsed.scheme == "http" else 443

    def add_listener(self, listener: Listener) -> None:
        """Register a callback fired when connectivity is restored."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def set_online(self, online: bool) -> None:
        """Record the current state; listeners fire on offline -> online."""
        was_online = self._online
        self._online = online
        if online == was_online:
            return
        self._changed_at = time.time()
        if online:
            logger.info("Network connectivity restored")
            self._fire()
        else:
            logger.info("Network connectivity lost")

    def _fire(self) -> None:
        for listener in list(self._listeners):
            try:
                result = listener()
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._pending.add(task)
                    task.add_done_callback(self._listener_done)
            except Exception as exc:
                logger.warning("Connectivity listener failed: %s", exc)

    def _listener_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Connectivity listener failed: %s", task.exception())

    async def wait_listeners(self) -> None:
        """Wait for async listeners fired so far."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # -------------------------------------------------------------------------
    # Probe loop
    # -------------------------------------------------------------------------

    async def probe(self) -> bool:
        """Single probe: TCP connect to the probe target."""
        if not self._probe_host:
            # No probe target configured, assume online
            return True
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self._probe_host, self._probe_port),
                timeout=self._probe_timeout,
            )
        except (OSError, asyncio.TimeoutError):
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    def start(self) -> None:
        """Start the probe loop on the running event loop."""
        if self._task is not None and not self._task.done():
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.ensure_future(self._probe_loop())

    async def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _probe_loop(self) -> None:
        logger.debug("Connectivity probe started (%s:%s)", self._probe_host, self._probe_port)
        while not self._stop_event.is_set():
            self.set_online(await self.probe())
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._probe_interval)
            except asyncio.TimeoutError:
                continue
