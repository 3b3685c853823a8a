"""
config.py - Configuration constants for bridge_sync.

Module-level constants are immutable defaults. Per-manager overrides
live in SyncOptions; remote connection settings are read from the
local settings table on every sync call.
"""

from dataclasses import dataclass
from typing import Final

# Network timeouts (seconds)
PUSH_TIMEOUT_SECONDS: Final[float] = 60.0
PULL_TABLE_TIMEOUT_SECONDS: Final[float] = 30.0
TEST_TIMEOUT_SECONDS: Final[float] = 15.0

# Advisory threshold for the serialized push payload.
# The bridge's own limits are unknown, so exceeding it only warns.
PAYLOAD_WARNING_BYTES: Final[int] = 8 * 1024 * 1024

# Auto-sync defaults
AUTO_SYNC_INTERVAL_SECONDS: Final[float] = 300.0
PROBE_INTERVAL_SECONDS: Final[float] = 15.0
PROBE_TIMEOUT_SECONDS: Final[float] = 3.0

# Maximum number of table queries in flight during a pull
PULL_CONCURRENCY: Final[int] = 4

DEFAULT_REMOTE_PORT: Final[str] = "3306"

# Keys of the local settings table holding the bridge configuration
SETTING_API_URL: Final[str] = "remote_api_url"
SETTING_HOST: Final[str] = "remote_db_host"
SETTING_PORT: Final[str] = "remote_db_port"
SETTING_USER: Final[str] = "remote_db_user"
SETTING_PASSWORD: Final[str] = "remote_db_password"
SETTING_DATABASE: Final[str] = "remote_db_name"

REMOTE_SETTING_KEYS: Final[tuple[str, ...]] = (
    SETTING_API_URL,
    SETTING_HOST,
    SETTING_PORT,
    SETTING_USER,
    SETTING_PASSWORD,
    SETTING_DATABASE,
)

# Table holding key/value application settings
SETTINGS_TABLE: Final[str] = "settings"

# SQLite PRAGMA settings for the local store
SQLITE_PRAGMAS: Final[dict[str, str]] = {
    "journal_mode": "WAL",
    "synchronous": "NORMAL",
    "foreign_keys": "OFF",
    "busy_timeout": "5000",
}

# Remote error messages meaning "table not created yet"
MISSING_TABLE_MARKERS: Final[tuple[str, ...]] = (
    "doesn't exist",
    "no existe",
    "no such table",
)


@dataclass
class SyncOptions:
    """Tunables for a SyncManager."""
    push_timeout: float = PUSH_TIMEOUT_SECONDS
    pull_table_timeout: float = PULL_TABLE_TIMEOUT_SECONDS
    test_timeout: float = TEST_TIMEOUT_SECONDS
    payload_warning_bytes: int = PAYLOAD_WARNING_BYTES
    pull_concurrency: int = PULL_CONCURRENCY

    def __post_init__(self) -> None:
        if self.push_timeout <= 0 or self.pull_table_timeout <= 0 or self.test_timeout <= 0:
            raise ValueError("Timeouts must be positive")
        if self.pull_concurrency < 1:
            raise ValueError("Pull concurrency must be at least 1")
