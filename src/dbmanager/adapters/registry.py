"""Engine adapter registry and factory.

Manifesto:
    Callers (builder, settings, CLI) name an engine as a string. The
    registry maps engine names to adapter classes and ``get_adapter()``
    creates a configured instance.

Features:
    - ``AdapterRegistry`` singleton with pre-registered defaults
    - ``register()`` for custom / third-party adapters
    - ``get_adapter()`` factory: engine name + kwargs → adapter

Tags:
    dbmanager, database, registry, factory, singleton

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Any

from dbmanager.errors import ConfigurationError

from .base import DatabaseAdapter
from .postgresql import PostgreSQLAdapter
from .sqlite import SQLiteAdapter
from .types import EngineType


class AdapterRegistry:
    """
    Registry for engine adapter factories.

    Pre-registered adapters:
    - ``sqlite``: :class:`SQLiteAdapter`
    - ``postgresql`` / ``postgres``: :class:`PostgreSQLAdapter`
    """

    def __init__(self):
        self._factories: dict[str, type[DatabaseAdapter]] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        self._factories["sqlite"] = SQLiteAdapter
        self._factories["postgresql"] = PostgreSQLAdapter
        self._factories["postgres"] = PostgreSQLAdapter  # Alias

    def register(self, name: str, adapter_class: type[DatabaseAdapter]) -> None:
        """Register an adapter factory."""
        self._factories[name.lower()] = adapter_class

    def create(self, name: str, **kwargs: Any) -> DatabaseAdapter:
        """Create an adapter by name."""
        name = name.lower()
        if name not in self._factories:
            raise ConfigurationError(f"Unknown database engine: {name}")
        return self._factories[name](**kwargs)

    def list_adapters(self) -> list[str]:
        return sorted(self._factories.keys())


adapter_registry = AdapterRegistry()


def get_adapter(engine: EngineType | str, **kwargs: Any) -> DatabaseAdapter:
    """
    Get an engine adapter by name.

    Usage:
        adapter = get_adapter(EngineType.SQLITE, path="app.db")
        adapter = get_adapter("postgresql", dsn="dbname=app")
    """
    name = engine.value if isinstance(engine, EngineType) else engine
    return adapter_registry.create(name, **kwargs)


__all__ = [
    "AdapterRegistry",
    "adapter_registry",
    "get_adapter",
]
