"""SQL dialects: the engine-specific scripts behind the default collaborators.

The default version detector, creator, cleanup processor and version
recording all work against a small settings table::

    _DatabaseSettings
    ┌────┬──────────────────┬───────┐
    │ Id │ Name             │ Value │
    ├────┼──────────────────┼───────┤
    │  1 │ Database.Version │ 3     │
    └────┴──────────────────┴───────┘

A ``Dialect`` renders the scripts for that table (names taken from
``DbManagerOptions``) plus the engine's parameter placeholder style, so the
collaborators themselves stay engine-agnostic.

Examples:
    >>> d = get_dialect("sqlite")
    >>> d.parameter("version")
    ':version'
    >>> get_dialect("postgresql").parameter("version")
    '%(version)s'
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Protocol, runtime_checkable

from dbmanager.options import DbManagerOptions


@runtime_checkable
class Dialect(Protocol):
    """Engine-specific SQL for the settings-table conventions."""

    @property
    def name(self) -> str:
        ...

    def quote(self, identifier: str) -> str:
        """Quote a table or column name."""
        ...

    def parameter(self, name: str) -> str:
        """Named placeholder for a bound parameter."""
        ...

    def version_detection_commands(self, options: DbManagerOptions) -> list[str]:
        """Scalar commands run one at a time; detection stops at the first result ``<= 0``.

        The first yields ``1`` when the settings table exists and ``0``
        (new database) otherwise, the second ``1`` when the version row
        exists and ``-1`` (damaged) otherwise, the last the stored version.
        """
        ...

    def creation_commands(self, options: DbManagerOptions) -> list[str]:
        """Idempotent commands creating the settings table at version 0."""
        ...

    def cleanup_commands(self) -> list[str]:
        """Maintenance commands run outside a transaction."""
        ...

    def set_version_command(self, options: DbManagerOptions) -> str:
        """Command storing parameter ``version`` under the version key."""
        ...


class _SettingsTableDialect(ABC):
    """Shared rendering; subclasses supply quoting, placeholders and introspection."""

    name = ""

    @abstractmethod
    def quote(self, identifier: str) -> str:
        ...

    @abstractmethod
    def parameter(self, name: str) -> str:
        ...

    @abstractmethod
    def _table_exists_count(self, table: str) -> str:
        ...

    def _literal(self, value: str) -> str:
        return "'" + value.replace("'", "''") + "'"

    def version_detection_commands(self, options: DbManagerOptions) -> list[str]:
        table = self.quote(options.version_table)
        name_col = self.quote(options.name_column)
        value_col = self.quote(options.value_column)
        key = self._literal(options.version_key)
        return [
            f"SELECT ({self._table_exists_count(options.version_table)});",
            f"SELECT CASE WHEN count(*) > 0 THEN 1 ELSE -1 END FROM {table} WHERE {name_col} = {key};",
            f"SELECT {value_col} FROM {table} WHERE {name_col} = {key};",
        ]

    def creation_commands(self, options: DbManagerOptions) -> list[str]:
        table = self.quote(options.version_table)
        name_col = self.quote(options.name_column)
        value_col = self.quote(options.value_column)
        key = self._literal(options.version_key)
        return [
            self._create_table(table, name_col, value_col),
            f"INSERT INTO {table} ({name_col}, {value_col}) "
            f"SELECT {key}, '0' WHERE NOT EXISTS "
            f"(SELECT 1 FROM {table} WHERE {name_col} = {key});",
        ]

    @abstractmethod
    def _create_table(self, table: str, name_col: str, value_col: str) -> str:
        ...

    @abstractmethod
    def cleanup_commands(self) -> list[str]:
        ...

    def set_version_command(self, options: DbManagerOptions) -> str:
        table = self.quote(options.version_table)
        name_col = self.quote(options.name_column)
        value_col = self.quote(options.value_column)
        return (
            f"UPDATE {table} SET {value_col} = {self.parameter('version')} "
            f"WHERE {name_col} = {self.parameter('key')};"
        )


class SQLiteDialect(_SettingsTableDialect):
    """SQLite: ``[brackets]`` quoting, ``:name`` placeholders."""

    name = "sqlite"

    def quote(self, identifier: str) -> str:
        return "[" + identifier.replace("]", "]]") + "]"

    def parameter(self, name: str) -> str:
        return f":{name}"

    def _table_exists_count(self, table: str) -> str:
        return (
            "SELECT count(*) FROM sqlite_master "
            f"WHERE type = 'table' AND name = {self._literal(table)}"
        )

    def _create_table(self, table: str, name_col: str, value_col: str) -> str:
        return (
            f"CREATE TABLE IF NOT EXISTS {table} ("
            "[Id] INTEGER PRIMARY KEY ASC ON CONFLICT ROLLBACK AUTOINCREMENT, "
            f"{name_col} TEXT NOT NULL ON CONFLICT ROLLBACK UNIQUE ON CONFLICT ROLLBACK, "
            f"{value_col} TEXT NULL);"
        )

    def cleanup_commands(self) -> list[str]:
        return ["VACUUM;", "ANALYZE;", "REINDEX;"]


class PostgreSQLDialect(_SettingsTableDialect):
    """PostgreSQL: ``"double quote"`` quoting, ``%(name)s`` placeholders (psycopg2)."""

    name = "postgresql"

    def quote(self, identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    def parameter(self, name: str) -> str:
        return f"%({name})s"

    def _table_exists_count(self, table: str) -> str:
        return (
            "SELECT count(*) FROM information_schema.tables "
            f"WHERE table_schema = current_schema() AND table_name = {self._literal(table)}"
        )

    def _create_table(self, table: str, name_col: str, value_col: str) -> str:
        return (
            f"CREATE TABLE IF NOT EXISTS {table} ("
            '"Id" SERIAL PRIMARY KEY, '
            f"{name_col} TEXT NOT NULL UNIQUE, "
            f"{value_col} TEXT NULL);"
        )

    def cleanup_commands(self) -> list[str]:
        return ["VACUUM ANALYZE;"]


_DIALECTS: dict[str, Dialect] = {
    "sqlite": SQLiteDialect(),
    "postgresql": PostgreSQLDialect(),
    "postgres": PostgreSQLDialect(),  # alias
}


def get_dialect(engine: str) -> Dialect:
    """Get a dialect by engine name.

    Raises:
        ValueError: If ``engine`` is not recognised.
    """
    key = engine.lower() if isinstance(engine, str) else engine.value
    if key not in _DIALECTS:
        raise ValueError(
            f"Unknown dialect '{engine}'. Supported: {sorted(set(_DIALECTS) - {'postgres'})}"
        )
    return _DIALECTS[key]


def register_dialect(name: str, dialect: Dialect) -> None:
    """Register a custom dialect implementation."""
    _DIALECTS[name.lower()] = dialect


__all__ = [
    "Dialect",
    "SQLiteDialect",
    "PostgreSQLDialect",
    "get_dialect",
    "register_dialect",
]
