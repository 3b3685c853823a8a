"""
connection.py - SQLite connection management for the local store.

Connections use WAL mode and manual transaction control so that the
pull apply phase can wrap every table in one explicit transaction.
"""

import logging
import sqlite3
from typing import Any, Callable

from bridge_sync.config import SQLITE_PRAGMAS
from bridge_sync.errors import DatabaseError

logger = logging.getLogger("bridge_sync.db")


def create_connection(db_path: str) -> sqlite3.Connection:
    """
    Create a new SQLite connection with proper configuration.

    Args:
        db_path: Path to SQLite database file

    Returns:
        Configured sqlite3.Connection

    Raises:
        DatabaseError: If connection fails
    """
    try:
        conn = sqlite3.connect(
            db_path,
            isolation_level=None,  # Manual transaction control
            check_same_thread=False,
        )
    except sqlite3.Error as e:
        raise DatabaseError(
            f"Failed to connect to database: {e}",
            operation="connect",
        ) from e

    conn.row_factory = sqlite3.Row
    _apply_pragmas(conn)
    return conn


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    for pragma, value in SQLITE_PRAGMAS.items():
        try:
            conn.execute(f"PRAGMA {pragma} = {value}")
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to set PRAGMA {pragma}: {e}",
                operation="pragma",
                sql=f"PRAGMA {pragma} = {value}",
            ) from e


def execute_in_transaction(
    conn: sqlite3.Connection,
    operation: Callable[[sqlite3.Connection], Any],
) -> Any:
    """
    Execute an operation within an IMMEDIATE transaction.

    Ensures atomicity: all changes commit or all rollback. Exceptions
    raised by the operation propagate unchanged after the rollback.

    Args:
        conn: SQLite connection
        operation: Callable that performs database operations

    Returns:
        Result of operation

    Raises:
        DatabaseError: If the transaction cannot be opened or committed
    """
    try:
        conn.execute("BEGIN IMMEDIATE")
    except sqlite3.Error as e:
        raise DatabaseError(f"Failed to begin transaction: {e}", operation="begin") from e

    try:
        result = operation(conn)
    except BaseException:
        conn.execute("ROLLBACK")
        logger.debug("Transaction rolled back")
        raise

    try:
        conn.execute("COMMIT")
    except sqlite3.Error as e:
        conn.execute("ROLLBACK")
        raise DatabaseError(f"Failed to commit transaction: {e}", operation="commit") from e
    return result


def verify_integrity(conn: sqlite3.Connection) -> bool:
    """Run SQLite integrity check."""
    try:
        result = conn.execute("PRAGMA integrity_check").fetchone()
        return result is not None and result[0] == "ok"
    except sqlite3.Error:
        return False
