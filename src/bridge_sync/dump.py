"""
dump.py - Full-snapshot dump generation for push.

Walks the catalog in declaration order and renders every local row
into one self-contained MySQL script: each table is dropped and
recreated, then filled with a single multi-row INSERT. Foreign key
checks are disabled for the duration of the script so table order
does not have to follow dependency order.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence

from bridge_sync.catalog import TableDescriptor, quote_identifier
from bridge_sync.codec import encode_values
from bridge_sync.db.store import LocalStore

logger = logging.getLogger(__name__)

DUMP_PREAMBLE = "SET FOREIGN_KEY_CHECKS=0;\n\n"
DUMP_POSTAMBLE = "SET FOREIGN_KEY_CHECKS=1;\n"


@dataclass(frozen=True)
class DumpStats:
    tables: int
    rows: int
    rows_per_table: dict[str, int]

    @property
    def empty_tables(self) -> list[str]:
        return [name for name, count in self.rows_per_table.items() if count == 0]


@dataclass(frozen=True)
class Dump:
    sql: str
    stats: DumpStats

    @property
    def size_bytes(self) -> int:
        return len(self.sql.encode("utf-8"))


def _table_chunk(table: TableDescriptor, rows: list) -> str:
    chunk = f"-- Table: {table.name}\n"
    chunk += table.drop_table_sql()
    chunk += table.create_table_sql()
    if rows:
        cols = ", ".join(quote_identifier(c) for c in table.column_names)
        chunk += f"INSERT INTO {quote_identifier(table.name)} ({cols}) VALUES \n"
        chunk += ",\n".join(encode_values(table, row) for row in rows) + ";\n"
    return chunk + "\n"


def build_dump(
    store: LocalStore,
    catalog: Sequence[TableDescriptor] | None = None,
    generated_at: datetime | None = None,
) -> Dump | None:
    """
    Build the dump script and its statistics.

    Read-only over the local store. A failure reading any table
    propagates; no partial dump is returned.

    Returns:
        Dump, or None when there is no table to synchronize
    """
    tables = tuple(catalog) if catalog is not None else store.catalog
    if not tables:
        return None

    stamp = (generated_at or datetime.now(timezone.utc)).isoformat()
    parts = [
        "-- Database export for MySQL\n",
        f"-- Generated on {stamp}\n\n",
        DUMP_PREAMBLE,
    ]
    rows_per_table: dict[str, int] = {}
    for table in tables:
        rows = store.read_all(table.name)
        rows_per_table[table.name] = len(rows)
        parts.append(_table_chunk(table, rows))
    parts.append(DUMP_POSTAMBLE)

    stats = DumpStats(
        tables=len(tables),
        rows=sum(rows_per_table.values()),
        rows_per_table=rows_per_table,
    )
    logger.debug("Generated dump: %d tables, %d rows", stats.tables, stats.rows)
    return Dump(sql="".join(parts), stats=stats)


def generate_dump(
    store: LocalStore,
    catalog: Sequence[TableDescriptor] | None = None,
    generated_at: datetime | None = None,
) -> str | None:
    """Return the dump script text, or None when there is nothing to sync."""
    dump = build_dump(store, catalog, generated_at)
    return dump.sql if dump is not None else None
