"""
Capability contracts between the manager core and engine drivers.

The core never imports a driver. It talks to DB-API2 style connections
through these protocols, and engine adapters (``dbmanager.adapters``) are
the only place that knows about ``sqlite3`` or ``psycopg2``.

Architecture:
    ::

        protocols.py
        ├── Cursor       : execute / fetchone / fetchall / description / rowcount
        ├── Connection   : cursor / execute / commit / rollback / close
        └── Transaction  : handle passed to callbacks inside an ambient transaction

    Implementations:
        sqlite3.Connection, psycopg2 connection   → Connection
        dbmanager.adapters.base.AdapterTransaction → Transaction

Guardrails:
    ❌ DON'T: import sqlite3 / psycopg2 outside dbmanager.adapters
    ✅ DO: type collaborator code against these protocols

Tags:
    protocol, connection, transaction, dbmanager, contracts

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from dbmanager.batches.types import IsolationLevel


@runtime_checkable
class Cursor(Protocol):
    """Minimal DB-API2 cursor."""

    description: Any
    rowcount: int

    def execute(self, sql: str, params: Any = ...) -> Any:
        ...

    def fetchone(self) -> Any:
        ...

    def fetchall(self) -> list:
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class Connection(Protocol):
    """Minimal synchronous DB-API2 connection."""

    def cursor(self) -> Any:
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class Transaction(Protocol):
    """An open ambient transaction on a connection."""

    @property
    def connection(self) -> Connection:
        ...

    @property
    def isolation_level(self) -> IsolationLevel | None:
        ...

    @property
    def is_active(self) -> bool:
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...


__all__ = [
    "Cursor",
    "Connection",
    "Transaction",
]
