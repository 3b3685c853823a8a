"""
errors.py - Domain-specific exceptions for bridge_sync.

All exceptions inherit from SyncError for unified handling.
Each exception type represents a distinct failure mode of a sync call.
"""

from typing import Any


class SyncError(Exception):
    """Base exception for all bridge_sync errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} [{context_str}]"
        return self.message


class ConfigurationError(SyncError):
    """
    Raised when the remote configuration is unusable.

    Typically the bridge URL is unset. No network I/O is attempted.
    """

    def __init__(self, message: str, setting: str | None = None) -> None:
        context = {}
        if setting is not None:
            context["setting"] = setting
        super().__init__(message, context=context)
        self.setting = setting


class SyncBusyError(SyncError):
    """Raised when a sync is requested while another one is in flight."""

    def __init__(self, running: str | None = None) -> None:
        context = {}
        if running is not None:
            context["running"] = running
        super().__init__("A synchronization is already in progress", context=context)
        self.running = running


class NetworkError(SyncError):
    """
    Raised when the bridge cannot be reached or answers garbage.

    Covers DNS/connection failures, non-2xx statuses and bodies
    that are not the bridge's JSON envelope.
    """

    def __init__(
        self, message: str, url: str | None = None, status_code: int | None = None
    ) -> None:
        context = {}
        if url is not None:
            context["url"] = url
        if status_code is not None:
            context["status_code"] = status_code
        super().__init__(message, context=context)
        self.url = url
        self.status_code = status_code


class SyncTimeoutError(NetworkError):
    """Raised when a bridge request is aborted after its timeout."""

    def __init__(self, message: str, url: str | None = None, timeout: float | None = None) -> None:
        super().__init__(message, url=url)
        if timeout is not None:
            self.context["timeout"] = timeout
        self.timeout = timeout


class RemoteExecutionError(SyncError):
    """
    Raised when the bridge answers success=false.

    The message is the one provided by the bridge, kept verbatim.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        table_name: str | None = None,
    ) -> None:
        context = {}
        if code is not None:
            context["code"] = code
        if table_name is not None:
            context["table_name"] = table_name
        super().__init__(message, context=context)
        self.code = code
        self.table_name = table_name


class DatabaseError(SyncError):
    """
    Raised when a local database operation fails unexpectedly.

    This wraps SQLite errors with additional context about
    what operation was being attempted.
    """

    def __init__(
        self, message: str, operation: str | None = None, sql: str | None = None
    ) -> None:
        context = {}
        if operation is not None:
            context["operation"] = operation
        if sql is not None:
            # Truncate long SQL for readability
            context["sql"] = sql[:200] + "..." if len(sql) > 200 else sql
        super().__init__(message, context=context)
        self.operation = operation
        self.sql = sql


class LocalTransactionError(DatabaseError):
    """
    Raised when the local apply transaction of a pull fails.

    The transaction is rolled back; the previous local snapshot is intact.
    """

    def __init__(self, message: str, table_name: str | None = None) -> None:
        super().__init__(message, operation="replace_all")
        if table_name is not None:
            self.context["table_name"] = table_name
        self.table_name = table_name


class SchemaError(SyncError):
    """Raised when the table catalog is invalid or a table is unknown."""

    def __init__(self, message: str, table_name: str | None = None) -> None:
        context = {}
        if table_name is not None:
            context["table_name"] = table_name
        super().__init__(message, context=context)
        self.table_name = table_name


def describe_error(exc: BaseException) -> str:
    """Short user-facing description of a sync failure."""
    if isinstance(exc, ConfigurationError):
        return f"Configuration error: {exc.message}"
    if isinstance(exc, SyncBusyError):
        return "Synchronization already in progress"
    if isinstance(exc, SyncTimeoutError):
        return "Timed out waiting for the remote server"
    if isinstance(exc, NetworkError):
        return f"Connection error: could not reach the server ({exc.message})"
    if isinstance(exc, RemoteExecutionError):
        return f"Remote error: {exc.message or 'unknown error'}"
    if isinstance(exc, LocalTransactionError):
        return f"Local database error, previous data kept: {exc.message}"
    if isinstance(exc, SyncError):
        return exc.message
    return f"Unexpected error: {exc}"
