"""
base.py - Abstract interface to the remote relational store.

The coordinators only talk to a RemoteStoreProtocol. The shipped
implementation posts SQL to the HTTP bridge; another transport (for
example a structured batch-upsert RPC) can be substituted without
touching push or pull.
"""

from abc import ABC, abstractmethod

from bridge_sync.config import MISSING_TABLE_MARKERS
from bridge_sync.models import BridgeResponse, ConnectionCheck, Record, RemoteConfig


class RemoteStoreProtocol(ABC):
    """
    Remote store access used by the sync coordinators.

    Implementations must raise:
    - SyncTimeoutError when a call exceeds its timeout
    - NetworkError when the remote cannot be reached
    - RemoteExecutionError when the remote reports a failure
    """

    @abstractmethod
    async def test_connection(self, config: RemoteConfig, timeout: float) -> ConnectionCheck:
        """Check credentials and database existence."""
        pass

    @abstractmethod
    async def query(self, config: RemoteConfig, sql: str, timeout: float) -> list[Record]:
        """
        Run a read query.

        Returns:
            Raw rows as returned by the remote store
        """
        pass

    @abstractmethod
    async def execute_script(self, config: RemoteConfig, sql: str, timeout: float) -> BridgeResponse:
        """Run a multi-statement script. Not atomic on the remote side."""
        pass

    def payload_size(self, config: RemoteConfig, sql: str) -> int:
        """Bytes that execute_script would send for this script."""
        return len(sql.encode("utf-8"))

    async def aclose(self) -> None:
        """Release network resources."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Transport name for logging."""
        pass


def is_missing_table_message(message: str | None) -> bool:
    """True when a remote error message says the table does not exist."""
    if not message:
        return False
    lowered = message.lower()
    return any(marker in lowered for marker in MISSING_TABLE_MARKERS)
