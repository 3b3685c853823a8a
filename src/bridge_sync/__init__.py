"""
bridge_sync - Full-replace synchronization between a local SQLite store
and a remote relational database reached through an HTTP bridge.
"""

from bridge_sync.catalog import CATALOG, ColumnSpec, SemanticType, TableDescriptor
from bridge_sync.config import SyncOptions
from bridge_sync.connectivity import ConnectivityMonitor
from bridge_sync.db.store import LocalStore, SQLiteLocalStore
from bridge_sync.dump import build_dump, generate_dump
from bridge_sync.errors import (
    ConfigurationError,
    DatabaseError,
    LocalTransactionError,
    NetworkError,
    RemoteExecutionError,
    SchemaError,
    SyncBusyError,
    SyncError,
    SyncTimeoutError,
)
from bridge_sync.manager import SyncManager
from bridge_sync.models import RemoteConfig, SyncDirection, SyncSession
from bridge_sync.scheduler import AutoSyncScheduler, start_auto_sync, stop_auto_sync
from bridge_sync.transport import BridgeClient, RemoteStoreProtocol

__version__ = "0.3.0"
__all__ = [
    # Catalog
    "CATALOG",
    "ColumnSpec",
    "SemanticType",
    "TableDescriptor",
    # Core
    "SyncManager",
    "SyncOptions",
    "RemoteConfig",
    "SyncDirection",
    "SyncSession",
    "build_dump",
    "generate_dump",
    # Stores and transports
    "LocalStore",
    "SQLiteLocalStore",
    "RemoteStoreProtocol",
    "BridgeClient",
    # Scheduling
    "AutoSyncScheduler",
    "ConnectivityMonitor",
    "start_auto_sync",
    "stop_auto_sync",
    # Errors
    "SyncError",
    "ConfigurationError",
    "SyncBusyError",
    "NetworkError",
    "SyncTimeoutError",
    "RemoteExecutionError",
    "LocalTransactionError",
    "DatabaseError",
    "SchemaError",
]
