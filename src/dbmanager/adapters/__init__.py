"""Engine adapters: the only code that talks to database drivers."""

from .base import AdapterTransaction, DatabaseAdapter
from .postgresql import PostgreSQLAdapter
from .registry import AdapterRegistry, adapter_registry, get_adapter
from .sqlite import SQLiteAdapter
from .types import DatabaseConfig, EngineType, PostgreSQLType, SQLiteType

__all__ = [
    "AdapterTransaction",
    "DatabaseAdapter",
    "SQLiteAdapter",
    "PostgreSQLAdapter",
    "AdapterRegistry",
    "adapter_registry",
    "get_adapter",
    "DatabaseConfig",
    "EngineType",
    "SQLiteType",
    "PostgreSQLType",
]
