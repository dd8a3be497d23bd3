"""PostgreSQL engine adapter."""

from __future__ import annotations

from typing import Any

from dbmanager.batches.commands import ParameterCollection
from dbmanager.batches.types import IsolationLevel
from dbmanager.errors import ConfigurationError, DatabaseConnectionError
from dbmanager.protocols import Connection

from .base import DatabaseAdapter
from .types import DatabaseConfig, EngineType, PostgreSQLType


class PostgreSQLAdapter(DatabaseAdapter):
    """
    PostgreSQL adapter using psycopg2.

    Connections run with ``autocommit=True``; ambient transactions are
    opened explicitly with ``BEGIN ISOLATION LEVEL ...`` so commands that
    disallow a transaction (``VACUUM``, ``CREATE DATABASE``) can run on the
    same connection type.
    """

    def __init__(
        self,
        dsn: str | None = None,
        *,
        host: str = "localhost",
        port: int = 5432,
        database: str = "",
        username: str | None = None,
        password: str | None = None,
        connect_timeout: float = 10.0,
        **kwargs: Any,
    ):
        config = DatabaseConfig(
            engine=EngineType.POSTGRESQL,
            dsn=dsn,
            host=host,
            port=port,
            database=database,
            username=username,
            password=password,
            connect_timeout=connect_timeout,
            options=kwargs,
        )
        super().__init__(config)

    @property
    def supports_read_only(self) -> bool:
        return True

    def _open(self, read_only: bool) -> Connection:
        try:
            import psycopg2
        except ImportError:
            raise ConfigurationError(
                "psycopg2 is required for PostgreSQL. Install with: pip install dbmanager[postgresql]"
            ) from None

        cfg = self._config
        try:
            if cfg.dsn:
                conn = psycopg2.connect(
                    cfg.dsn, connect_timeout=int(cfg.connect_timeout), **cfg.options
                )
            else:
                conn = psycopg2.connect(
                    host=cfg.host,
                    port=cfg.port,
                    dbname=cfg.database,
                    user=cfg.username,
                    password=cfg.password,
                    connect_timeout=int(cfg.connect_timeout),
                    **cfg.options,
                )
        except psycopg2.Error as e:
            raise DatabaseConnectionError(
                f"Failed to connect to PostgreSQL: {e}",
                cause=e,
            ).with_context(engine="postgresql", target=self.describe()) from e

        conn.autocommit = True
        if read_only:
            conn.set_session(readonly=True)
        return conn

    def _begin(self, conn: Connection, isolation_level: IsolationLevel | None) -> None:
        sql = "BEGIN"
        if isolation_level is not None:
            sql += f" ISOLATION LEVEL {isolation_level.sql}"
        with conn.cursor() as cursor:
            cursor.execute(sql)

    def _commit(self, conn: Connection) -> None:
        with conn.cursor() as cursor:
            cursor.execute("COMMIT")

    def _rollback(self, conn: Connection) -> None:
        with conn.cursor() as cursor:
            cursor.execute("ROLLBACK")

    def bind_parameters(self, parameters: ParameterCollection | None) -> dict[str, Any] | None:
        # None disables %-interpolation so literal '%' in scripts survives
        if not parameters:
            return None
        return super().bind_parameters(parameters)

    def _coerce(self, type_: Any, value: Any) -> Any:
        if type_ is None or value is None:
            return value
        from psycopg2.extras import Json

        match PostgreSQLType(type_):
            case PostgreSQLType.BYTEA:
                return memoryview(bytes(value))
            case PostgreSQLType.JSONB:
                return Json(value)
            case _:
                return value


__all__ = [
    "PostgreSQLAdapter",
]
