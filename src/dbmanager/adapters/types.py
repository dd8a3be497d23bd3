"""Engine types, parameter types and connection configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from dbmanager.errors import ConfigurationError


class EngineType(str, Enum):
    """Supported database engines."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


class SQLiteType(str, Enum):
    """SQLite storage classes usable as ``CommandParameter.type``."""

    INTEGER = "integer"
    REAL = "real"
    TEXT = "text"
    BLOB = "blob"
    NULL = "null"

    def coerce(self, value: Any) -> Any:
        if value is None or self is SQLiteType.NULL:
            return None
        match self:
            case SQLiteType.INTEGER:
                return int(value)
            case SQLiteType.REAL:
                return float(value)
            case SQLiteType.TEXT:
                return str(value)
            case SQLiteType.BLOB:
                return value if isinstance(value, bytes) else bytes(value)


class PostgreSQLType(str, Enum):
    """PostgreSQL type names usable as ``CommandParameter.type``.

    psycopg2 adapts Python values itself; only ``BYTEA`` and ``JSONB`` need
    wrapping, which the adapter does when binding.
    """

    INTEGER = "integer"
    BIGINT = "bigint"
    NUMERIC = "numeric"
    TEXT = "text"
    BOOLEAN = "boolean"
    BYTEA = "bytea"
    TIMESTAMPTZ = "timestamptz"
    JSONB = "jsonb"


@dataclass
class DatabaseConfig:
    """
    Configuration for database connections.

    Different fields are used by different engines.
    """

    engine: EngineType = EngineType.SQLITE

    # SQLite
    path: str | None = None

    # PostgreSQL
    dsn: str | None = None
    host: str = "localhost"
    port: int = 5432
    database: str = ""
    username: str | None = None
    password: str | None = None

    connect_timeout: float = 10.0

    # Extra options (driver-specific)
    options: dict[str, Any] = field(default_factory=dict)

    def describe(self) -> str:
        """Connection target for logs, without credentials."""
        match self.engine:
            case EngineType.SQLITE:
                return self.path or ":memory:"
            case EngineType.POSTGRESQL:
                if self.dsn:
                    return "postgresql (dsn)"
                return f"postgresql://{self.host}:{self.port}/{self.database}"
            case _:
                raise ConfigurationError(f"Unsupported engine: {self.engine}")


__all__ = [
    "EngineType",
    "SQLiteType",
    "PostgreSQLType",
    "DatabaseConfig",
]
