"""
models.py - Data model shared by the sync components.

Records are plain dicts keyed by column name. Values are limited to
the closed set below, mirroring the catalog's semantic types.
"""

import time
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Union

from bridge_sync.config import (
    DEFAULT_REMOTE_PORT,
    SETTING_API_URL,
    SETTING_DATABASE,
    SETTING_HOST,
    SETTING_PASSWORD,
    SETTING_PORT,
    SETTING_USER,
)

Value = Union[None, int, float, str, bool, date, datetime, dict, list]
Record = dict[str, Value]
Snapshot = dict[str, list[Record]]


class SyncDirection(Enum):
    PUSH = "push"
    PULL = "pull"


class SessionState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class SyncSession:
    """
    One in-flight sync attempt.

    Held by the SyncManager while running and released in a finally
    path regardless of outcome.
    """
    direction: SyncDirection
    started_at: float = field(default_factory=time.time)
    state: SessionState = SessionState.IDLE
    last_error: str | None = None
    finished_at: float | None = None

    @property
    def duration(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.time()
        return end - self.started_at

    def succeed(self) -> None:
        self.state = SessionState.SUCCESS
        self.finished_at = time.time()

    def fail(self, error: BaseException | str) -> None:
        self.state = SessionState.FAILED
        self.last_error = str(error)
        self.finished_at = time.time()


@dataclass(frozen=True)
class RemoteConfig:
    """Connection parameters for the bridge and the database behind it."""
    api_url: str = ""
    host: str = ""
    port: str = DEFAULT_REMOTE_PORT
    user: str = ""
    password: str = ""
    database: str = ""

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "RemoteConfig":
        """Build from a settings mapping; missing or empty keys use defaults."""
        def _get(key: str, default: str = "") -> str:
            value = settings.get(key)
            if value is None or value == "":
                return default
            return str(value).strip()

        return cls(
            api_url=_get(SETTING_API_URL),
            host=_get(SETTING_HOST),
            port=_get(SETTING_PORT, DEFAULT_REMOTE_PORT),
            user=_get(SETTING_USER),
            password=_get(SETTING_PASSWORD),
            database=_get(SETTING_DATABASE),
        )

    def to_settings(self) -> dict[str, str]:
        return {
            SETTING_API_URL: self.api_url,
            SETTING_HOST: self.host,
            SETTING_PORT: self.port,
            SETTING_USER: self.user,
            SETTING_PASSWORD: self.password,
            SETTING_DATABASE: self.database,
        }

    def connection_params(self) -> dict[str, str]:
        """Connection fields sent with every bridge request."""
        return {
            "host": self.host,
            "user": self.user,
            "password": self.password,
            "database": self.database,
            "port": self.port,
        }

    def redacted(self) -> dict[str, str]:
        data = self.to_settings()
        if data.get(SETTING_PASSWORD):
            data[SETTING_PASSWORD] = "********"
        return data


@dataclass
class BridgeResponse:
    """Parsed JSON envelope returned by the bridge."""
    success: bool
    message: str | None = None
    data: list[Record] = field(default_factory=list)
    code: str | None = None

    @classmethod
    def from_json(cls, payload: Any) -> "BridgeResponse":
        if not isinstance(payload, dict) or "success" not in payload:
            raise ValueError("Bridge response is not a {success, ...} object")
        data = payload.get("data") or []
        if not isinstance(data, list):
            raise ValueError("Bridge response 'data' is not a list")
        message = payload.get("message")
        code = payload.get("code")
        return cls(
            success=bool(payload["success"]),
            message=str(message) if message is not None else None,
            data=data,
            code=str(code) if code is not None else None,
        )


@dataclass(frozen=True)
class ConnectionCheck:
    """Result of a bridge 'test' action."""
    ok: bool
    message: str | None = None
    code: str | None = None

    @property
    def database_missing(self) -> bool:
        return self.code == "DB_NOT_FOUND"
