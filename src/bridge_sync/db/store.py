"""
store.py - Local embedded store holding the synchronized tables.

LocalStore is the interface the sync engine depends on: read every row
of a table, atomically replace the whole dataset, read settings.
SQLiteLocalStore implements it on top of one SQLite connection, with
table layouts derived from the catalog.
"""

import logging
import sqlite3
from abc import ABC, abstractmethod
from typing import Any, Iterable, Mapping, Sequence

from bridge_sync.catalog import CATALOG, TableDescriptor, get_table
from bridge_sync.codec import decode_row, to_storage
from bridge_sync.config import SETTINGS_TABLE
from bridge_sync.db.connection import create_connection, execute_in_transaction
from bridge_sync.errors import DatabaseError, LocalTransactionError
from bridge_sync.models import Record, Snapshot

logger = logging.getLogger(__name__)


class LocalStore(ABC):
    """Local transactional store consumed and produced by the sync engine."""

    @property
    @abstractmethod
    def catalog(self) -> tuple[TableDescriptor, ...]:
        """Tables held by this store."""
        pass

    @abstractmethod
    def read_all(self, table_name: str) -> list[Record]:
        """Return every row of a table, decoded to local values."""
        pass

    @abstractmethod
    def replace_all(self, snapshot: Snapshot) -> None:
        """
        Replace every catalog table with the rows of the snapshot.

        Must be atomic: on failure the previous contents stay visible.
        """
        pass

    @abstractmethod
    def get_settings(self, keys: Iterable[str]) -> dict[str, Any]:
        """Read key/value settings."""
        pass

    @abstractmethod
    def set_setting(self, key: str, value: Any) -> None:
        pass


class SQLiteLocalStore(LocalStore):
    """
    SQLite implementation of the local store.

    Cells are converted with the codec: structured values are kept as
    JSON text, dates as ISO strings, booleans as 0/1.
    """

    def __init__(self, db_path: str, catalog: Sequence[TableDescriptor] = CATALOG):
        self._db_path = db_path
        self._catalog = tuple(catalog)
        self._conn: sqlite3.Connection | None = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def catalog(self) -> tuple[TableDescriptor, ...]:
        return self._catalog

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = create_connection(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def initialize(self) -> None:
        """Create every catalog table. Idempotent."""
        try:
            for table in self._catalog:
                self.connection.execute(table.local_create_table_sql())
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to create local tables: {e}",
                operation="create_tables",
            ) from e
        logger.debug("Local store initialized at %s", self._db_path)

    def _table(self, table_name: str) -> TableDescriptor:
        return get_table(table_name, self._catalog)

    def read_all(self, table_name: str) -> list[Record]:
        table = self._table(table_name)
        cols = ", ".join(f'"{c}"' for c in table.column_names)
        sql = f'SELECT {cols} FROM "{table.name}" ORDER BY "id"'
        try:
            rows = self.connection.execute(sql).fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to read table {table.name}: {e}", operation="read", sql=sql) from e
        return [decode_row(table, dict(row)) for row in rows]

    def count(self, table_name: str) -> int:
        table = self._table(table_name)
        try:
            return self.connection.execute(f'SELECT COUNT(*) FROM "{table.name}"').fetchone()[0]
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to count table {table.name}: {e}", operation="count") from e

    def _insert_sql(self, table: TableDescriptor) -> str:
        cols = ", ".join(f'"{c}"' for c in table.column_names)
        placeholders = ", ".join("?" for _ in table.columns)
        return f'INSERT INTO "{table.name}" ({cols}) VALUES ({placeholders})'

    def _storage_tuple(self, table: TableDescriptor, record: Mapping[str, Any]) -> tuple:
        return tuple(to_storage(record.get(c.name), c.semantic_type) for c in table.columns)

    def insert_rows(self, table_name: str, rows: Iterable[Mapping[str, Any]]) -> int:
        """Insert application rows into one table in a single transaction."""
        table = self._table(table_name)
        params = [self._storage_tuple(table, row) for row in rows]
        sql = self._insert_sql(table)

        def _insert(conn: sqlite3.Connection) -> int:
            conn.executemany(sql, params)
            return len(params)

        try:
            return execute_in_transaction(self.connection, _insert)
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to insert into {table.name}: {e}", operation="insert", sql=sql) from e

    def replace_all(self, snapshot: Snapshot) -> None:
        current = {"table": None}

        def _replace(conn: sqlite3.Connection) -> None:
            for table in self._catalog:
                current["table"] = table.name
                conn.execute(f'DELETE FROM "{table.name}"')
                rows = snapshot.get(table.name) or []
                if rows:
                    conn.executemany(
                        self._insert_sql(table),
                        [self._storage_tuple(table, row) for row in rows],
                    )

        try:
            execute_in_transaction(self.connection, _replace)
        except (sqlite3.Error, DatabaseError, TypeError, ValueError) as e:
            raise LocalTransactionError(
                f"Failed to apply snapshot: {e}", table_name=current["table"]
            ) from e
        logger.info(
            "Replaced local dataset: %d rows across %d tables",
            sum(len(snapshot.get(t.name) or []) for t in self._catalog),
            len(self._catalog),
        )

    def get_settings(self, keys: Iterable[str]) -> dict[str, Any]:
        wanted = list(keys)
        if not wanted:
            return {}
        placeholders = ", ".join("?" for _ in wanted)
        sql = f'SELECT "key", "value" FROM "{SETTINGS_TABLE}" WHERE "key" IN ({placeholders}) ORDER BY "id"'
        try:
            rows = self.connection.execute(sql, wanted).fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to read settings: {e}", operation="settings", sql=sql) from e
        # Later rows win when a key is duplicated
        return {row["key"]: row["value"] for row in rows}

    def set_setting(self, key: str, value: Any) -> None:
        stored = None if value is None else str(value)

        def _upsert(conn: sqlite3.Connection) -> None:
            cur = conn.execute(
                f'UPDATE "{SETTINGS_TABLE}" SET "value" = ? WHERE "key" = ?', (stored, key)
            )
            if cur.rowcount == 0:
                conn.execute(
                    f'INSERT INTO "{SETTINGS_TABLE}" ("key", "value") VALUES (?, ?)', (key, stored)
                )

        try:
            execute_in_transaction(self.connection, _upsert)
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to write setting {key}: {e}", operation="settings") from e
