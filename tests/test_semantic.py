"""
Tests for semantic-layer metadata and index lookup.
"""

import os
import sqlite3
import tempfile

import pytest

from cube_ai_gateway.semantic.indexes import IndexInfo, SqliteIndexMetadataProvider, format_index_info
from cube_ai_gateway.semantic.metadata import (
    StaticCubeMetadataProvider,
    CubeMeta,
    YamlCubeMetadataProvider,
    load_cube_definitions,
)


class TestCubeDefinitions:
    """Test loading cube definitions from YAML."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write(self, content):
        path = os.path.join(self.temp_dir, "cubes.yaml")
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        return path

    def test_bundled_model_loads(self):
        """The packaged demo model parses and qualifies member names."""
        cubes = YamlCubeMetadataProvider().get_metadata()

        names = [cube.name for cube in cubes]
        assert names == ["Employees", "Departments", "Productivity", "TimeEntries"]

        employees = cubes[0]
        measure_names = [m.name for m in employees.measures]
        assert "Employees.count" in measure_names
        created_at = next(d for d in employees.dimensions if d.name == "Employees.createdAt")
        assert created_at.type == "time"
        assert created_at.title == "Hire Date"

    def test_members_keep_file_order(self):
        path = self._write(
            "cubes:\n"
            "  Orders:\n"
            "    title: Orders\n"
            "    measures:\n"
            "      total: {type: sum}\n"
            "      count: {type: count, title: Order Count}\n"
            "    dimensions:\n"
            "      status: {type: string, description: Fulfilment state}\n"
        )

        cubes = load_cube_definitions(path)

        assert len(cubes) == 1
        assert [m.name for m in cubes[0].measures] == ["Orders.total", "Orders.count"]
        assert cubes[0].measures[1].title == "Order Count"
        assert cubes[0].dimensions[0].description == "Fulfilment state"
        assert cubes[0].description is None

    def test_cube_without_members(self):
        path = self._write("cubes:\n  Empty:\n    title: Nothing here\n")

        cube = load_cube_definitions(path)[0]

        assert cube.measures == []
        assert cube.dimensions == []

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            load_cube_definitions(os.path.join(self.temp_dir, "nope.yaml"))

    def test_missing_cubes_key(self):
        path = self._write("models: {}\n")
        with pytest.raises(ValueError, match="must contain a 'cubes' mapping"):
            load_cube_definitions(path)

    def test_unknown_cube_key(self):
        path = self._write("cubes:\n  Orders:\n    sql: SELECT 1\n")
        with pytest.raises(ValueError, match="Unknown keys in cube 'Orders'"):
            load_cube_definitions(path)

    def test_member_without_type(self):
        path = self._write("cubes:\n  Orders:\n    measures:\n      count: {title: Count}\n")
        with pytest.raises(ValueError, match="Missing required 'type' in Orders.measures.count"):
            load_cube_definitions(path)

    def test_static_provider_returns_copy(self):
        provider = StaticCubeMetadataProvider([CubeMeta(name="Orders")])

        first = provider.get_metadata()
        first.append(CubeMeta(name="Extra"))

        assert [c.name for c in provider.get_metadata()] == ["Orders"]


class TestSqliteIndexMetadata:
    """Test reading index definitions from a SQLite catalog."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "analytics.db")
        conn = sqlite3.connect(self.db_path)
        try:
            conn.executescript("""
                CREATE TABLE employees (
                    id INTEGER,
                    email TEXT UNIQUE,
                    department_id INTEGER,
                    created_at TEXT,
                    PRIMARY KEY (id, department_id)
                );
                CREATE INDEX idx_employees_dept_created ON employees (department_id, created_at);
                CREATE TABLE departments (id INTEGER, name TEXT);
            """)
            conn.commit()
        finally:
            conn.close()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_lists_indexes_with_columns_and_flags(self):
        indexes = SqliteIndexMetadataProvider(self.db_path).list_indexes(["employees"])

        by_name = {index.index_name: index for index in indexes}
        assert by_name["idx_employees_dept_created"].columns == ["department_id", "created_at"]
        assert not by_name["idx_employees_dept_created"].is_unique

        primary = [index for index in indexes if index.is_primary]
        assert len(primary) == 1
        assert primary[0].columns == ["id", "department_id"]
        assert primary[0].is_unique

        unique = [index for index in indexes if index.is_unique and not index.is_primary]
        assert len(unique) == 1
        assert unique[0].columns == ["email"]

    def test_indexes_sorted_by_name(self):
        indexes = SqliteIndexMetadataProvider(self.db_path).list_indexes(["employees"])

        names = [index.index_name for index in indexes]
        assert names == sorted(names)

    def test_table_without_indexes(self):
        assert SqliteIndexMetadataProvider(self.db_path).list_indexes(["departments"]) == []

    def test_unknown_table(self):
        assert SqliteIndexMetadataProvider(self.db_path).list_indexes(["missing"]) == []

    def test_no_tables(self):
        assert SqliteIndexMetadataProvider(self.db_path).list_indexes([]) == []


class TestFormatIndexInfo:
    """Test index rendering for the analysis prompt."""

    def test_empty(self):
        assert format_index_info([]) == "No indexes found on the referenced tables."

    def test_flags(self):
        text = format_index_info([
            IndexInfo("employees", "pk_employees", ["id"], is_unique=True, is_primary=True),
            IndexInfo("employees", "uq_email", ["email"], is_unique=True),
            IndexInfo("employees", "idx_dept", ["department_id", "created_at"]),
        ])

        assert text.splitlines() == [
            "- employees: pk_employees (id) [PRIMARY KEY]",
            "- employees: uq_email (email) [UNIQUE]",
            "- employees: idx_dept (department_id, created_at)",
        ]
