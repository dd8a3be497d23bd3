"""SQLite engine adapter."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

from dbmanager.batches.commands import ParameterCollection
from dbmanager.batches.types import ExecutionType, IsolationLevel
from dbmanager.errors import DatabaseConnectionError
from dbmanager.protocols import Connection

from .base import DatabaseAdapter
from .types import DatabaseConfig, EngineType, SQLiteType

MEMORY = ":memory:"


def split_statements(script: str) -> list[str]:
    """Split a command into complete SQL statements.

    ``sqlite3`` executes one statement per call; ``executescript`` would
    commit a pending transaction, so statements are executed one by one.
    """
    statements: list[str] = []
    buffer = ""
    for piece in script.split(";"):
        buffer += piece + ";"
        if sqlite3.complete_statement(buffer):
            if buffer.strip(" \t\r\n;"):
                statements.append(buffer.strip())
            buffer = ""
    rest = buffer[:-1].strip()  # drop the ';' appended to the last piece
    if rest:
        statements.append(rest)
    return statements


class SQLiteAdapter(DatabaseAdapter):
    """
    SQLite adapter using the built-in ``sqlite3`` module.

    Connections run in autocommit mode (``isolation_level=None``) and
    transactions are started explicitly with ``BEGIN``. Read-only
    connections use ``mode=ro`` URIs. A missing or zero-length file is
    reported as a non-existing database without connecting.

    An in-memory database lives only as long as a connection to it, so
    memory targets share one connection across operations until
    :meth:`close`.
    """

    def __init__(
        self,
        path: str | Path = MEMORY,
        *,
        timeout: float = 5.0,
        foreign_keys: bool = True,
        **kwargs: Any,
    ):
        config = DatabaseConfig(
            engine=EngineType.SQLITE,
            path=str(path),
            connect_timeout=timeout,
            options=kwargs,
        )
        super().__init__(config)
        self._foreign_keys = foreign_keys
        self._shared: sqlite3.Connection | None = None

    @property
    def path(self) -> str:
        return self._config.path or MEMORY

    @property
    def is_memory(self) -> bool:
        return self.path == MEMORY or "mode=memory" in self.path

    @property
    def supports_read_only(self) -> bool:
        return not self.is_memory

    @property
    def supports_backup(self) -> bool:
        return True

    @property
    def default_isolation_level(self) -> IsolationLevel | None:
        return IsolationLevel.SERIALIZABLE

    def database_exists(self) -> bool | None:
        if self.is_memory:
            return None if self._shared is not None else False
        if self.path.startswith("file:"):
            return None
        file = Path(self.path)
        return file.is_file() and file.stat().st_size > 0

    def _open(self, read_only: bool) -> Connection:
        if self._shared is not None:
            return self._shared

        target = self.path
        uri = target.startswith("file:")
        if read_only and not uri:
            target = Path(target).resolve().as_uri() + "?mode=ro"
            uri = True

        try:
            conn = sqlite3.connect(
                target,
                timeout=self._config.connect_timeout,
                isolation_level=None,
                check_same_thread=False,
                uri=uri,
            )
        except sqlite3.Error as e:
            raise DatabaseConnectionError(
                f"Failed to connect to SQLite: {e}",
                cause=e,
            ).with_context(engine="sqlite", path=self.path) from e

        conn.row_factory = sqlite3.Row
        if self._foreign_keys:
            conn.execute("PRAGMA foreign_keys = ON")
        if self.is_memory:
            self._shared = conn
        return conn

    def _release(self, conn: Connection) -> None:
        if conn is not self._shared:
            conn.close()

    def close(self) -> None:
        """Close the shared connection of a memory target, discarding its data."""
        if self._shared is not None:
            self._shared.close()
            self._shared = None

    def _begin(self, conn: Connection, isolation_level: IsolationLevel | None) -> None:
        # SQLite is serializable; read-uncommitted only matters with shared cache
        uncommitted = isolation_level is IsolationLevel.READ_UNCOMMITTED
        conn.execute(f"PRAGMA read_uncommitted = {1 if uncommitted else 0}")
        conn.execute("BEGIN")

    def _commit(self, conn: Connection) -> None:
        if conn.in_transaction:
            conn.execute("COMMIT")

    def _rollback(self, conn: Connection) -> None:
        # ON CONFLICT ROLLBACK clauses may already have ended the transaction
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    def _coerce(self, type_: Any, value: Any) -> Any:
        if type_ is None:
            return value
        return SQLiteType(type_).coerce(value)

    def execute(
        self,
        conn: Connection,
        script: str,
        execution_type: ExecutionType = ExecutionType.NON_QUERY,
        parameters: ParameterCollection | None = None,
    ) -> Any:
        bound = self.bind_parameters(parameters)
        statements = split_statements(script)
        affected = -1
        result: Any = None if execution_type is not ExecutionType.READER else []

        for statement in statements:
            cursor = conn.cursor()
            try:
                cursor.execute(statement, bound)
                if execution_type is ExecutionType.NON_QUERY:
                    if cursor.rowcount >= 0:
                        affected = max(affected, 0) + cursor.rowcount
                elif cursor.description is not None:
                    result = self._shape(cursor, execution_type)
            finally:
                cursor.close()

        return affected if execution_type is ExecutionType.NON_QUERY else result

    def _shape(self, cursor: Any, execution_type: ExecutionType) -> Any:
        if execution_type is ExecutionType.READER and cursor.description is not None:
            return [dict(row) for row in cursor.fetchall()]
        return super()._shape(cursor, execution_type)

    def backup(self, source: Connection, target: str | Path) -> None:
        """Copy the database behind ``source`` to ``target`` with the online backup API."""
        destination = sqlite3.connect(str(target))
        try:
            source.backup(destination)
        finally:
            destination.close()


__all__ = [
    "SQLiteAdapter",
    "split_statements",
]
