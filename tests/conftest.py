"""
Shared pytest fixtures for dbmanager tests.

This module provides:
- File-backed SQLite databases under ``tmp_path``
- Managers composed from the fixture script directories
- Logging / settings isolation between tests
"""

from __future__ import annotations

import os
import sqlite3
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
import structlog

from dbmanager.builder import DbManagerBuilder
from dbmanager.manager import DbManager
from dbmanager.settings import clear_settings_cache

FIXTURES = Path(__file__).parent / "fixtures"
SCRIPTS_DIR = FIXTURES / "scripts"
BROKEN_SCRIPTS_DIR = FIXTURES / "broken_scripts"


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark every test without an explicit marker as a unit test."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_logging_and_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Keep CLI-configured logging and cached settings from leaking between tests."""
    for key in list(os.environ):
        if key.startswith("DBMANAGER_"):
            monkeypatch.delenv(key)
    clear_settings_cache()
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    clear_settings_cache()


# =============================================================================
# Databases
# =============================================================================


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path of a not-yet-existing SQLite database."""
    return tmp_path / "test.db"


@pytest.fixture
def scripts_dir() -> Path:
    return SCRIPTS_DIR


@pytest.fixture
def broken_scripts_dir() -> Path:
    return BROKEN_SCRIPTS_DIR


def _query(path: Path, sql: str, params: tuple = ()) -> list[tuple]:
    conn = sqlite3.connect(path)
    try:
        return conn.execute(sql, params).fetchall()
    finally:
        conn.close()


@pytest.fixture
def query(db_path: Path) -> Callable[..., list[tuple]]:
    """Run a query against the test database with a plain sqlite3 connection."""
    return lambda sql, params=(): _query(db_path, sql, params)


@pytest.fixture
def execute_sql(db_path: Path) -> Callable[..., None]:
    """Run and commit a statement against the test database, bypassing the manager."""

    def run(sql: str, params: tuple = ()) -> None:
        conn = sqlite3.connect(db_path)
        try:
            with conn:
                conn.execute(sql, params)
        finally:
            conn.close()

    return run


@pytest.fixture
def stored_version(db_path: Path) -> Callable[[], str | None]:
    """Version string straight from the settings table."""

    def read() -> str | None:
        rows = _query(
            db_path,
            "SELECT [Value] FROM [_DatabaseSettings] WHERE [Name] = 'Database.Version'",
        )
        return rows[0][0] if rows else None

    return read


@pytest.fixture
def table_exists(db_path: Path) -> Callable[[str], bool]:
    def check(table: str) -> bool:
        rows = _query(
            db_path,
            "SELECT count(*) FROM sqlite_master WHERE type = 'table' AND name = ?",
            (table,),
        )
        return rows[0][0] > 0

    return check


# =============================================================================
# Managers
# =============================================================================


@pytest.fixture
def manager(db_path: Path) -> Generator[DbManager, None, None]:
    """Manager for the fixture scripts with a batch-name upgrader (versions 0..3)."""
    mgr = (
        DbManagerBuilder()
        .use_sqlite(db_path)
        .use_script_directory(SCRIPTS_DIR)
        .use_version_upgrader()
        .build()
    )
    mgr.initialize()
    yield mgr
    mgr.close()


@pytest.fixture
def ready_manager(manager: DbManager) -> DbManager:
    """Fixture manager already upgraded to the newest version."""
    manager.upgrade().raise_for_error()
    return manager


@pytest.fixture
def plain_manager(db_path: Path) -> Generator[DbManager, None, None]:
    """Manager without an upgrader over in-memory batches, database created."""
    mgr = DbManagerBuilder().use_sqlite(db_path).use_batches().build()
    mgr.initialize()
    mgr.create()
    yield mgr
    mgr.close()
