"""
manager.py - Push and pull coordinators.

A SyncManager owns the single-flight guard: at most one push or pull
runs at a time per manager. Both coordinators catch every failure,
release the guard in a finally path and return a boolean, so a
background tick can never crash its caller.

Push replaces the remote store with a full dump of the local store.
The dump runs remotely as one non-atomic script: a failure partway
through leaves the remote store partially rewritten until the next
successful push.

Pull fetches every table first and only then replaces the local store
in one transaction, so the local store never mixes two snapshots.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Sequence

from bridge_sync.catalog import TableDescriptor, quote_identifier
from bridge_sync.codec import decode_row
from bridge_sync.config import REMOTE_SETTING_KEYS, SETTING_API_URL, SyncOptions
from bridge_sync.db.store import LocalStore
from bridge_sync.dump import build_dump
from bridge_sync.errors import (
    ConfigurationError,
    LocalTransactionError,
    NetworkError,
    RemoteExecutionError,
    SyncBusyError,
    SyncError,
    SyncTimeoutError,
    describe_error,
)
from bridge_sync.metrics import SyncMetrics, get_registry
from bridge_sync.models import (
    ConnectionCheck,
    Record,
    RemoteConfig,
    SessionState,
    Snapshot,
    SyncDirection,
    SyncSession,
)
from bridge_sync.notify import LoggingNotifier, Notifier
from bridge_sync.transport.base import RemoteStoreProtocol, is_missing_table_message
from bridge_sync.transport.http_transport import BridgeClient

logger = logging.getLogger(__name__)


def load_remote_config(store: LocalStore) -> RemoteConfig:
    """Read the remote configuration from the local settings table."""
    return RemoteConfig.from_settings(store.get_settings(REMOTE_SETTING_KEYS))


def save_remote_config(store: LocalStore, config: RemoteConfig) -> None:
    for key, value in config.to_settings().items():
        store.set_setting(key, value)
    logger.info("Remote configuration saved (bridge=%s)", config.api_url or "<unset>")


def _outcome(exc: BaseException) -> str:
    if isinstance(exc, ConfigurationError):
        return "config_error"
    if isinstance(exc, SyncTimeoutError):
        return "timeout"
    if isinstance(exc, NetworkError):
        return "network_error"
    if isinstance(exc, RemoteExecutionError):
        return "remote_error"
    if isinstance(exc, LocalTransactionError):
        return "local_error"
    return "error"


class SyncManager:
    """
    Full-replace synchronization between a local store and a remote store.

    Remote connection settings are read from the local store before
    every call, so configuration edits apply on the next sync.
    """

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteStoreProtocol | None = None,
        options: SyncOptions | None = None,
        notifier: Notifier | None = None,
        metrics: SyncMetrics | None = None,
    ):
        self._store = store
        self._owns_remote = remote is None
        self._remote = remote or BridgeClient()
        self._options = options or SyncOptions()
        self._notifier = notifier or LoggingNotifier()
        self._metrics = metrics or SyncMetrics(get_registry())
        self._session: SyncSession | None = None
        self.last_session: SyncSession | None = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_remote:
            await self._remote.aclose()

    @property
    def store(self) -> LocalStore:
        return self._store

    @property
    def options(self) -> SyncOptions:
        return self._options

    @property
    def metrics(self) -> SyncMetrics:
        return self._metrics

    @property
    def is_syncing(self) -> bool:
        return self._session is not None

    @property
    def current_session(self) -> SyncSession | None:
        return self._session

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def load_config(self) -> RemoteConfig:
        return load_remote_config(self._store)

    def save_config(self, config: RemoteConfig) -> None:
        save_remote_config(self._store, config)

    @staticmethod
    def _require_bridge(config: RemoteConfig) -> None:
        if not config.api_url:
            raise ConfigurationError("Bridge URL is not configured", setting=SETTING_API_URL)

    # -------------------------------------------------------------------------
    # Single-flight guard
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def session(self, direction: SyncDirection) -> AsyncIterator[SyncSession]:
        """
        Claim the single-flight guard for one sync attempt.

        Raises:
            SyncBusyError: If another sync holds the guard
        """
        # No await between the check and the claim
        if self._session is not None:
            raise SyncBusyError(self._session.direction.value)
        session = SyncSession(direction=direction, state=SessionState.RUNNING)
        self._session = session
        try:
            yield session
        except BaseException as e:
            session.fail(e)
            raise
        else:
            if session.state is SessionState.RUNNING:
                session.succeed()
        finally:
            self._session = None
            self.last_session = session

    def _skip_busy(self, direction: SyncDirection, show_feedback: bool) -> bool:
        logger.info("%s skipped: a synchronization is already running", direction.value.capitalize())
        self._metrics.operations_total.inc(direction=direction.value, outcome="busy")
        if show_feedback:
            self._notifier.info(describe_error(SyncBusyError()))
        return False

    def _elapsed(self) -> float:
        return self.last_session.duration if self.last_session is not None else 0.0

    def _report_failure(self, direction: SyncDirection, exc: BaseException, show_feedback: bool) -> bool:
        outcome = _outcome(exc)
        self._metrics.operations_total.inc(direction=direction.value, outcome=outcome)
        if isinstance(exc, SyncError):
            logger.warning(
                "%s failed after %.2fs (%s): %s",
                direction.value.capitalize(), self._elapsed(), outcome, exc,
            )
        else:
            logger.exception("%s failed unexpectedly", direction.value.capitalize())
        if show_feedback:
            self._notifier.error(describe_error(exc))
        return False

    def _report_success(self, direction: SyncDirection) -> bool:
        logger.info("%s finished in %.2fs", direction.value.capitalize(), self._elapsed())
        self._metrics.operations_total.inc(direction=direction.value, outcome="success")
        self._metrics.last_success_timestamp.set(time.time(), direction=direction.value)
        return True

    # -------------------------------------------------------------------------
    # Push
    # -------------------------------------------------------------------------

    async def push_to_remote(self, show_feedback: bool = True) -> bool:
        """
        Replace the remote store with the current local snapshot.

        Args:
            show_feedback: Report progress and failures through the notifier.
                Scheduler-triggered pushes pass False and only log.

        Returns:
            True on success or when there is nothing to sync, False otherwise
        """
        if self.is_syncing:
            return self._skip_busy(SyncDirection.PUSH, show_feedback)

        try:
            async with self.session(SyncDirection.PUSH):
                with self._metrics.duration_seconds.time(direction="push"):
                    await self._push(show_feedback)
        except SyncBusyError:
            return self._skip_busy(SyncDirection.PUSH, show_feedback)
        except Exception as e:
            return self._report_failure(SyncDirection.PUSH, e, show_feedback)
        return self._report_success(SyncDirection.PUSH)

    async def _push(self, show_feedback: bool) -> None:
        config = self.load_config()
        self._require_bridge(config)

        if show_feedback:
            self._notifier.info("Uploading local data...")

        dump = build_dump(self._store)
        if dump is None:
            logger.info("Push: nothing to sync")
            return

        size = self._remote.payload_size(config, dump.sql)
        self._metrics.payload_bytes.observe(size)
        logger.info("Push payload size: %.2f MB", size / (1024 * 1024))
        if size > self._options.payload_warning_bytes:
            logger.warning(
                "Push payload is large (%d bytes > %d); the bridge may reject it",
                size, self._options.payload_warning_bytes,
            )
            if show_feedback:
                self._notifier.warning("The data is large; the upload may fail if the server has low limits.")

        await self._remote.execute_script(config, dump.sql, timeout=self._options.push_timeout)

        logger.info(
            "Push completed: %d rows in %d tables via %s",
            dump.stats.rows, dump.stats.tables, self._remote.name,
        )
        if show_feedback:
            self._notifier.success("Synchronization completed")

    # -------------------------------------------------------------------------
    # Pull
    # -------------------------------------------------------------------------

    async def pull_from_remote(
        self, config: RemoteConfig | None = None, show_feedback: bool = True
    ) -> bool:
        """
        Replace the local store with the current remote snapshot.

        Destructive: every local row is discarded. Only user-initiated.

        Args:
            config: Connection to use instead of the stored settings
            show_feedback: Report progress and failures through the notifier

        Returns:
            True on success, False on any failure or when busy
        """
        if self.is_syncing:
            return self._skip_busy(SyncDirection.PULL, show_feedback)

        try:
            async with self.session(SyncDirection.PULL):
                with self._metrics.duration_seconds.time(direction="pull"):
                    await self._pull(config, show_feedback)
        except SyncBusyError:
            return self._skip_busy(SyncDirection.PULL, show_feedback)
        except Exception as e:
            return self._report_failure(SyncDirection.PULL, e, show_feedback)
        return self._report_success(SyncDirection.PULL)

    async def _pull(self, config: RemoteConfig | None, show_feedback: bool) -> None:
        config = config or self.load_config()
        self._require_bridge(config)

        if show_feedback:
            self._notifier.info("Downloading data from the server...")

        fetched = await self._fetch_all(config, self._store.catalog)

        snapshot: Snapshot = {}
        for table in self._store.catalog:
            snapshot[table.name] = [decode_row(table, row) for row in fetched[table.name]]

        self._store.replace_all(snapshot)

        logger.info(
            "Pull completed: %d rows in %d tables",
            sum(len(rows) for rows in snapshot.values()), len(snapshot),
        )
        if show_feedback:
            self._notifier.success("Download completed")

    async def _fetch_all(
        self, config: RemoteConfig, tables: Sequence[TableDescriptor]
    ) -> dict[str, list[Record]]:
        semaphore = asyncio.Semaphore(self._options.pull_concurrency)

        async def _bounded(table: TableDescriptor) -> tuple[str, list[Record]]:
            async with semaphore:
                return table.name, await self._fetch_table(config, table)

        tasks = [asyncio.ensure_future(_bounded(table)) for table in tables]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return dict(results)

    async def _fetch_table(self, config: RemoteConfig, table: TableDescriptor) -> list[Record]:
        sql = f"SELECT * FROM {quote_identifier(table.name)}"
        try:
            rows = await self._remote.query(config, sql, timeout=self._options.pull_table_timeout)
        except RemoteExecutionError as e:
            if is_missing_table_message(e.message):
                logger.info("Remote table %s does not exist yet, treating as empty", table.name)
                return []
            raise RemoteExecutionError(
                f"Error downloading table {table.name}: {e.message}",
                code=e.code,
                table_name=table.name,
            ) from e

        for row in rows:
            if not isinstance(row, dict):
                raise NetworkError(f"Bridge returned a malformed row for table {table.name}")
        self._metrics.rows_pulled_total.inc(len(rows), table=table.name)
        logger.debug("Fetched %d rows from %s", len(rows), table.name)
        return rows

    # -------------------------------------------------------------------------
    # Connection test
    # -------------------------------------------------------------------------

    async def test_connection(self, config: RemoteConfig | None = None) -> ConnectionCheck:
        """Ask the bridge to check the connection; never raises SyncError."""
        config = config or self.load_config()
        try:
            self._require_bridge(config)
            check = await self._remote.test_connection(config, timeout=self._options.test_timeout)
        except SyncError as e:
            logger.warning("Connection test failed: %s", e)
            return ConnectionCheck(ok=False, message=describe_error(e))
        if check.database_missing:
            logger.info("Bridge reachable but database %r does not exist", config.database)
        return check
