"""
db - Local SQLite store used as the source and target of synchronization.
"""

from bridge_sync.db.store import LocalStore, SQLiteLocalStore

__all__ = ["LocalStore", "SQLiteLocalStore"]
