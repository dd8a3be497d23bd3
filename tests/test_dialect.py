"""Tests for ``dbmanager.dialect``: settings-table SQL per engine."""

from __future__ import annotations

import sqlite3

import pytest

from dbmanager.dialect import (
    PostgreSQLDialect,
    SQLiteDialect,
    _SettingsTableDialect,
    get_dialect,
    register_dialect,
)
from dbmanager.options import DbManagerOptions


class TestGetDialect:
    def test_known_engines(self):
        assert isinstance(get_dialect("sqlite"), SQLiteDialect)
        assert isinstance(get_dialect("PostgreSQL"), PostgreSQLDialect)
        assert isinstance(get_dialect("postgres"), PostgreSQLDialect)

    def test_unknown_engine(self):
        with pytest.raises(ValueError, match="Unknown dialect"):
            get_dialect("oracle")

    def test_register_custom(self):
        class MySQLite(SQLiteDialect):
            name = "mysqlite"

        register_dialect("MySQLite", MySQLite())
        assert get_dialect("mysqlite").name == "mysqlite"

    def test_incomplete_dialect_rejected(self):
        class NoQuoting(_SettingsTableDialect):
            name = "noquoting"

            def parameter(self, name: str) -> str:
                return "?"

        with pytest.raises(TypeError, match="abstract"):
            NoQuoting()


class TestQuoting:
    def test_sqlite(self):
        dialect = SQLiteDialect()
        assert dialect.quote("Name") == "[Name]"
        assert dialect.quote("odd]name") == "[odd]]name]"
        assert dialect.parameter("version") == ":version"

    def test_postgresql(self):
        dialect = PostgreSQLDialect()
        assert dialect.quote("Name") == '"Name"'
        assert dialect.quote('a"b') == '"a""b"'
        assert dialect.parameter("version") == "%(version)s"


class TestSettingsTableScripts:
    """Run the SQLite scripts against a real in-memory database."""

    @pytest.fixture
    def conn(self):
        conn = sqlite3.connect(":memory:")
        yield conn
        conn.close()

    def _run_detection(self, conn, options):
        results = []
        for command in SQLiteDialect().version_detection_commands(options):
            row = conn.execute(command).fetchone()
            value = row[0] if row else None
            results.append(value)
            if value is None or int(value) <= 0:
                break
        return results

    def test_detection_on_empty_database(self, conn):
        assert self._run_detection(conn, DbManagerOptions()) == [0]

    def test_creation_then_detection(self, conn):
        options = DbManagerOptions()
        for command in SQLiteDialect().creation_commands(options):
            conn.execute(command)
        assert self._run_detection(conn, options) == [1, 1, "0"]

    def test_creation_is_idempotent(self, conn):
        options = DbManagerOptions()
        for _ in range(2):
            for command in SQLiteDialect().creation_commands(options):
                conn.execute(command)
        assert conn.execute("SELECT count(*) FROM [_DatabaseSettings]").fetchone()[0] == 1

    def test_missing_version_row_is_damaged(self, conn):
        options = DbManagerOptions()
        for command in SQLiteDialect().creation_commands(options):
            conn.execute(command)
        conn.execute("DELETE FROM [_DatabaseSettings]")
        assert self._run_detection(conn, options) == [1, -1]

    def test_set_version_command(self, conn):
        options = DbManagerOptions()
        dialect = SQLiteDialect()
        for command in dialect.creation_commands(options):
            conn.execute(command)
        conn.execute(
            dialect.set_version_command(options), {"version": "4", "key": options.version_key}
        )
        assert self._run_detection(conn, options)[-1] == "4"

    def test_custom_table_names(self, conn):
        options = DbManagerOptions(version_table="Meta", name_column="K", value_column="V", version_key="schema")
        for command in SQLiteDialect().creation_commands(options):
            conn.execute(command)
        assert conn.execute("SELECT [V] FROM [Meta] WHERE [K] = 'schema'").fetchone()[0] == "0"

    def test_postgresql_scripts_reference_current_schema(self):
        commands = PostgreSQLDialect().version_detection_commands(DbManagerOptions())
        assert "information_schema.tables" in commands[0]
        assert '"_DatabaseSettings"' in commands[2]

    def test_cleanup_commands(self):
        assert SQLiteDialect().cleanup_commands() == ["VACUUM;", "ANALYZE;", "REINDEX;"]
        assert PostgreSQLDialect().cleanup_commands() == ["VACUUM ANALYZE;"]
