"""
catalog.py - Declarative description of every synchronized table.

The catalog drives the dump generator (remote DDL and insert column
order), the pull coordinator (which tables to query, how to decode
their cells) and the local store (SQLite table creation).

Column order in a TableDescriptor is the positional order of every
bulk-insert tuple; encode and decode paths share it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Final, Iterable

from bridge_sync.errors import SchemaError


class SemanticType(Enum):
    INTEGER = "integer"
    DECIMAL = "decimal"
    TEXT = "text"
    DATE = "date"
    DATETIME = "datetime"
    BOOLEAN = "boolean"
    STRUCTURED = "structured"


_DEFAULT_REMOTE_TYPES: Final[dict[SemanticType, str]] = {
    SemanticType.INTEGER: "INT",
    SemanticType.DECIMAL: "DECIMAL(15,2)",
    SemanticType.TEXT: "VARCHAR(255)",
    SemanticType.DATE: "DATE",
    SemanticType.DATETIME: "DATETIME",
    SemanticType.BOOLEAN: "TINYINT(1)",
    SemanticType.STRUCTURED: "JSON",
}

_LOCAL_TYPES: Final[dict[SemanticType, str]] = {
    SemanticType.INTEGER: "INTEGER",
    SemanticType.DECIMAL: "REAL",
    SemanticType.TEXT: "TEXT",
    SemanticType.DATE: "TEXT",
    SemanticType.DATETIME: "TEXT",
    SemanticType.BOOLEAN: "INTEGER",
    SemanticType.STRUCTURED: "TEXT",
}

PRIMARY_KEY: Final[str] = "id"


@dataclass(frozen=True)
class ColumnSpec:
    name: str
    semantic_type: SemanticType
    sql_type: str | None = None

    @property
    def remote_type(self) -> str:
        if self.name == PRIMARY_KEY:
            return "INT AUTO_INCREMENT PRIMARY KEY"
        return self.sql_type or _DEFAULT_REMOTE_TYPES[self.semantic_type]

    @property
    def local_type(self) -> str:
        if self.name == PRIMARY_KEY:
            return "INTEGER PRIMARY KEY"
        return _LOCAL_TYPES[self.semantic_type]


@dataclass(frozen=True)
class TableDescriptor:
    name: str
    columns: tuple[ColumnSpec, ...]

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(c.name for c in self.columns)

    @property
    def structured_columns(self) -> frozenset[str]:
        return frozenset(
            c.name for c in self.columns if c.semantic_type is SemanticType.STRUCTURED
        )

    def column(self, name: str) -> ColumnSpec:
        for col in self.columns:
            if col.name == name:
                return col
        raise SchemaError(f"Unknown column {name!r}", table_name=self.name)

    def drop_table_sql(self) -> str:
        return f"DROP TABLE IF EXISTS {quote_identifier(self.name)};\n"

    def create_table_sql(self) -> str:
        lines = [
            f"  {quote_identifier(c.name)} {c.remote_type}" for c in self.columns
        ]
        return f"CREATE TABLE {quote_identifier(self.name)} (\n" + ",\n".join(lines) + "\n);\n"

    def local_create_table_sql(self) -> str:
        cols = ", ".join(f'"{c.name}" {c.local_type}' for c in self.columns)
        return f'CREATE TABLE IF NOT EXISTS "{self.name}" ({cols})'


def quote_identifier(name: str) -> str:
    """Backtick-quote a remote (MySQL) identifier."""
    return "`" + name.replace("`", "``") + "`"


def _table(name: str, *columns: tuple) -> TableDescriptor:
    specs = [ColumnSpec(PRIMARY_KEY, SemanticType.INTEGER)]
    specs.extend(ColumnSpec(*col) for col in columns)
    return TableDescriptor(name, tuple(specs))


_I = SemanticType.INTEGER
_N = SemanticType.DECIMAL
_T = SemanticType.TEXT
_D = SemanticType.DATE
_DT = SemanticType.DATETIME
_J = SemanticType.STRUCTURED

# Declaration order is the dump order. Foreign key checks are disabled
# around the dump, so it does not need to follow dependency order.
CATALOG: Final[tuple[TableDescriptor, ...]] = (
    _table(
        "projects",
        ("name", _T), ("client", _T), ("clientEmail", _T), ("clientPhone", _T),
        ("clientType", _T, "VARCHAR(50)"), ("address", _T, "TEXT"),
        ("projectType", _T, "VARCHAR(100)"),
        ("areaM2", _N, "DECIMAL(10,2)"), ("areaMl", _N, "DECIMAL(10,2)"),
        ("costoDirecto", _N), ("gastosGeneralesPorc", _N, "DECIMAL(5,2)"),
        ("utilidadPorc", _N, "DECIMAL(5,2)"),
        ("startDate", _D), ("endDate", _D), ("location", _T), ("resident", _T),
        ("value", _N), ("balance", _N), ("status", _T, "VARCHAR(50)"),
        ("progress", _I), ("description", _T, "TEXT"),
    ),
    _table(
        "inventory",
        ("projectId", _T, "VARCHAR(50)"), ("name", _T), ("category", _T, "VARCHAR(100)"),
        ("quantity", _N), ("unit", _T, "VARCHAR(50)"), ("status", _T, "VARCHAR(50)"),
        ("date", _D), ("minStock", _N), ("supplierId", _T, "VARCHAR(50)"),
    ),
    _table(
        "transactions",
        ("projectId", _T, "VARCHAR(50)"), ("type", _T, "VARCHAR(50)"),
        ("category", _T, "VARCHAR(100)"), ("amount", _N), ("date", _D),
        ("description", _T, "TEXT"),
    ),
    _table(
        "workers",
        ("name", _T), ("role", _T, "VARCHAR(100)"), ("documentNumber", _T, "VARCHAR(50)"),
        ("dailyRate", _N, "DECIMAL(10,2)"), ("photo", _T, "LONGTEXT"),
        ("projectId", _T, "VARCHAR(50)"), ("status", _T, "VARCHAR(50)"),
    ),
    _table(
        "users",
        ("name", _T), ("username", _T, "VARCHAR(100)"), ("role", _T, "VARCHAR(100)"),
        ("email", _T), ("status", _T, "VARCHAR(50)"), ("password", _T),
        ("projectId", _T, "VARCHAR(50)"),
    ),
    _table(
        "clients",
        ("name", _T), ("email", _T), ("phone", _T, "VARCHAR(50)"),
        ("address", _T, "TEXT"), ("type", _T, "VARCHAR(50)"),
    ),
    _table(
        "suppliers",
        ("name", _T), ("contact", _T), ("phone", _T, "VARCHAR(50)"), ("email", _T),
        ("address", _T, "TEXT"),
    ),
    _table(
        "payrolls",
        ("projectId", _T, "VARCHAR(50)"), ("startDate", _D), ("endDate", _D),
        ("totalAmount", _N), ("status", _T, "VARCHAR(50)"), ("details", _J),
    ),
    _table(
        "dailyLogs",
        ("projectId", _T, "VARCHAR(50)"), ("date", _D), ("activities", _T, "TEXT"),
        ("incidents", _T, "TEXT"), ("weather", _T, "VARCHAR(100)"),
        ("photos", _J), ("usedMaterials", _J),
    ),
    _table(
        "attendance",
        ("projectId", _T, "VARCHAR(50)"), ("dailyLogId", _I), ("workerId", _I),
        ("workerName", _T), ("workerRole", _T, "VARCHAR(100)"), ("date", _D),
        ("status", _T, "VARCHAR(50)"), ("notes", _T, "TEXT"),
    ),
    _table(
        "categories",
        ("name", _T), ("type", _T, "VARCHAR(50)"), ("classification", _T, "VARCHAR(100)"),
    ),
    _table(
        "loans",
        ("entity", _T), ("type", _T, "VARCHAR(50)"), ("amount", _N), ("date", _D),
        ("dueDate", _D), ("status", _T, "VARCHAR(50)"), ("description", _T, "TEXT"),
        ("installments", _I), ("interestRate", _N, "DECIMAL(5,2)"),
    ),
    _table(
        "inventoryMovements",
        ("projectId", _T, "VARCHAR(50)"), ("inventoryId", _I), ("itemName", _T),
        ("type", _T, "VARCHAR(50)"), ("quantity", _N), ("unit", _T, "VARCHAR(50)"),
        ("date", _DT), ("reference", _T), ("notes", _T, "TEXT"),
        ("user", _T, "VARCHAR(100)"),
    ),
    _table(
        "returns",
        ("projectId", _T, "VARCHAR(50)"), ("name", _T), ("receiver", _T),
        ("dateOut", _D), ("quantity", _N), ("unit", _T, "VARCHAR(50)"),
        ("status", _T, "VARCHAR(50)"),
    ),
    _table(
        "roles",
        ("name", _T), ("description", _T, "TEXT"), ("permissions", _J),
        ("status", _T, "VARCHAR(50)"),
    ),
    _table(
        "settings",
        ("key", _T), ("value", _T, "LONGTEXT"),
    ),
    _table(
        "workerRoles",
        ("name", _T),
    ),
)


def validate_catalog(catalog: Iterable[TableDescriptor]) -> None:
    """
    Check catalog consistency.

    Raises:
        SchemaError: On duplicate tables or columns, or a missing id column
    """
    seen: set[str] = set()
    for table in catalog:
        if table.name in seen:
            raise SchemaError("Duplicate table in catalog", table_name=table.name)
        seen.add(table.name)

        names = table.column_names
        if len(set(names)) != len(names):
            raise SchemaError("Duplicate column in table", table_name=table.name)
        if PRIMARY_KEY not in names:
            raise SchemaError(f"Table has no {PRIMARY_KEY!r} column", table_name=table.name)


def get_table(name: str, catalog: Iterable[TableDescriptor] = CATALOG) -> TableDescriptor:
    for table in catalog:
        if table.name == name:
            return table
    raise SchemaError("Unknown table", table_name=name)


validate_catalog(CATALOG)
