"""
test_catalog.py - Tests for the table catalog.
"""

import pytest

from bridge_sync.catalog import (
    CATALOG,
    ColumnSpec,
    SemanticType,
    TableDescriptor,
    get_table,
    validate_catalog,
)
from bridge_sync.errors import SchemaError


class TestCatalog:
    def test_table_order(self):
        names = [t.name for t in CATALOG]
        assert names[:3] == ["projects", "inventory", "transactions"]
        assert names[-3:] == ["roles", "settings", "workerRoles"]
        assert len(names) == 17

    def test_every_table_starts_with_id(self):
        for table in CATALOG:
            assert table.column_names[0] == "id"
            assert table.columns[0].remote_type == "INT AUTO_INCREMENT PRIMARY KEY"

    def test_structured_columns(self):
        assert get_table("payrolls").structured_columns == {"details"}
        assert get_table("dailyLogs").structured_columns == {"photos", "usedMaterials"}
        assert get_table("roles").structured_columns == {"permissions"}
        assert get_table("projects").structured_columns == frozenset()

    def test_movement_date_is_datetime(self):
        column = get_table("inventoryMovements").column("date")
        assert column.semantic_type is SemanticType.DATETIME
        assert column.remote_type == "DATETIME"

    def test_create_table_sql(self):
        sql = get_table("settings").create_table_sql()
        assert sql.startswith("CREATE TABLE `settings` (\n")
        assert "`key` VARCHAR(255)" in sql
        assert "`value` LONGTEXT" in sql

    def test_local_create_table_sql(self):
        sql = get_table("workerRoles").local_create_table_sql()
        assert sql == 'CREATE TABLE IF NOT EXISTS "workerRoles" ("id" INTEGER PRIMARY KEY, "name" TEXT)'

    def test_unknown_table_and_column(self):
        with pytest.raises(SchemaError):
            get_table("nope")
        with pytest.raises(SchemaError):
            get_table("projects").column("nope")


class TestValidateCatalog:
    def _table(self, name, *names):
        return TableDescriptor(name, tuple(ColumnSpec(n, SemanticType.TEXT) for n in names))

    def test_valid(self):
        validate_catalog([self._table("a", "id", "x"), self._table("b", "id")])

    def test_duplicate_table(self):
        with pytest.raises(SchemaError):
            validate_catalog([self._table("a", "id"), self._table("a", "id")])

    def test_duplicate_column(self):
        with pytest.raises(SchemaError):
            validate_catalog([self._table("a", "id", "x", "x")])

    def test_missing_id(self):
        with pytest.raises(SchemaError):
            validate_catalog([self._table("a", "x")])
