"""Database adapter base class.

Manifesto:
    The manager core is engine-agnostic. An adapter owns everything a
    driver needs: opening (read-only) connections, starting transactions
    at an isolation level, binding typed parameters and turning a cursor
    into a NonQuery / Scalar / Reader result.

Features:
    - ``connect(read_only)`` context manager, connection closed on every exit
    - ``begin_transaction()`` returning an ``AdapterTransaction`` handle
    - ``execute()`` dispatching on ``ExecutionType`` with materialised rows
    - Capability flags (``supports_read_only``, ``supports_backup``)

Tags:
    dbmanager, database, abstract-base, adapter-pattern

Doc-Types:
    api-reference
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from dbmanager.batches.commands import ParameterCollection
from dbmanager.batches.types import ExecutionType, IsolationLevel
from dbmanager.dialect import Dialect, get_dialect
from dbmanager.logging import get_logger
from dbmanager.protocols import Connection

from .types import DatabaseConfig, EngineType

logger = get_logger(__name__)


class AdapterTransaction:
    """Handle for an ambient transaction opened by an adapter."""

    def __init__(
        self,
        adapter: DatabaseAdapter,
        connection: Connection,
        isolation_level: IsolationLevel | None,
    ):
        self._adapter = adapter
        self._connection = connection
        self._isolation_level = isolation_level
        self._active = True

    @property
    def connection(self) -> Connection:
        return self._connection

    @property
    def isolation_level(self) -> IsolationLevel | None:
        return self._isolation_level

    @property
    def is_active(self) -> bool:
        return self._active

    def commit(self) -> None:
        if not self._active:
            raise RuntimeError("Transaction already finished")
        self._active = False
        self._adapter._commit(self._connection)

    def rollback(self) -> None:
        if not self._active:
            return
        self._active = False
        self._adapter._rollback(self._connection)

    def force_rollback(self) -> None:
        """Roll back even after a failed commit left the handle inactive."""
        self._active = False
        self._adapter._rollback(self._connection)


class DatabaseAdapter(ABC):
    """
    Abstract base class for engine adapters.

    Subclasses implement ``_open``, ``_begin`` and ``database_exists``;
    cursor handling and result shaping are shared.
    """

    def __init__(self, config: DatabaseConfig):
        self._config = config
        self._dialect: Dialect = get_dialect(config.engine.value)

    @property
    def config(self) -> DatabaseConfig:
        return self._config

    @property
    def engine(self) -> EngineType:
        return self._config.engine

    @property
    def dialect(self) -> Dialect:
        """SQL dialect for this adapter's engine."""
        return self._dialect

    @property
    def supports_read_only(self) -> bool:
        return False

    @property
    def supports_backup(self) -> bool:
        return False

    @property
    def default_isolation_level(self) -> IsolationLevel | None:
        return IsolationLevel.READ_COMMITTED

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def database_exists(self) -> bool | None:
        """Whether the target database exists; ``None`` if only a connection can tell."""
        return None

    @abstractmethod
    def _open(self, read_only: bool) -> Connection:
        """Open a new connection; raise ``DatabaseConnectionError`` on failure."""
        ...

    @contextmanager
    def connect(self, read_only: bool = False) -> Iterator[Connection]:
        """Open a connection for one operation and close it afterwards.

        ``read_only`` is ignored when the engine cannot open read-only
        connections.
        """
        read_only = read_only and self.supports_read_only
        conn = self._open(read_only)
        logger.debug("adapter.connected", engine=self.engine.value, read_only=read_only)
        try:
            yield conn
        finally:
            self._release(conn)

    def _release(self, conn: Connection) -> None:
        conn.close()

    def close(self) -> None:
        """Release resources held between operations."""

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @abstractmethod
    def _begin(self, conn: Connection, isolation_level: IsolationLevel | None) -> None:
        ...

    def _commit(self, conn: Connection) -> None:
        conn.commit()

    def _rollback(self, conn: Connection) -> None:
        conn.rollback()

    def begin_transaction(
        self,
        conn: Connection,
        isolation_level: IsolationLevel | None = None,
    ) -> AdapterTransaction:
        level = isolation_level or self.default_isolation_level
        self._begin(conn, level)
        return AdapterTransaction(self, conn, level)

    @contextmanager
    def transaction(
        self,
        conn: Connection,
        isolation_level: IsolationLevel | None = None,
    ) -> Iterator[AdapterTransaction]:
        """Transaction context manager: commit on success, rollback on error."""
        txn = self.begin_transaction(conn, isolation_level)
        try:
            yield txn
            if txn.is_active:
                txn.commit()
        except Exception:
            txn.rollback()
            raise

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def bind_parameters(self, parameters: ParameterCollection | None) -> dict[str, Any] | tuple:
        """Driver-ready parameters (named style)."""
        if not parameters:
            return ()
        return {p.name: self._coerce(p.type, p.value) for p in parameters}

    def _coerce(self, type_: Any, value: Any) -> Any:
        return value

    def execute(
        self,
        conn: Connection,
        script: str,
        execution_type: ExecutionType = ExecutionType.NON_QUERY,
        parameters: ParameterCollection | None = None,
    ) -> Any:
        """Execute a script command and shape its result.

        NonQuery -> affected rows (``-1`` when not applicable),
        Scalar -> first column of first row (``None`` if no rows),
        Reader -> list of row dicts.
        """
        bound = self.bind_parameters(parameters)
        cursor = conn.cursor()
        try:
            cursor.execute(script, bound)
            return self._shape(cursor, execution_type)
        finally:
            cursor.close()

    def _shape(self, cursor: Any, execution_type: ExecutionType) -> Any:
        match execution_type:
            case ExecutionType.NON_QUERY:
                return cursor.rowcount if cursor.rowcount is not None else -1
            case ExecutionType.SCALAR:
                if cursor.description is None:
                    return None
                row = cursor.fetchone()
                return None if row is None else row[0]
            case ExecutionType.READER:
                if cursor.description is None:
                    return []
                columns = [desc[0] for desc in cursor.description]
                return [dict(zip(columns, row, strict=False)) for row in cursor.fetchall()]
        raise ValueError(f"Unknown execution type: {execution_type}")

    def describe(self) -> str:
        return self._config.describe()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.describe()!r})"


__all__ = [
    "AdapterTransaction",
    "DatabaseAdapter",
]
