"""
CLI utility helpers: manager construction and output formatting.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, NoReturn

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from dbmanager.builder import DbManagerBuilder
from dbmanager.errors import DbManagerError, categorize_error, is_retryable
from dbmanager.logging import configure_logging
from dbmanager.manager import DbManager
from dbmanager.settings import DbManagerSettings, get_settings

console = Console()
err_console = Console(stderr=True)


# ── Manager helper ───────────────────────────────────────────────────────


def load_settings(
    database: str | None = None,
    engine: str | None = None,
    scripts: list[Path] | None = None,
) -> DbManagerSettings:
    """Settings from the environment, with command-line overrides applied."""
    overrides: dict[str, Any] = {}
    if engine:
        overrides["engine"] = engine
    if database:
        # A URL or key=value string is a PostgreSQL DSN
        if "://" in database or "=" in database:
            overrides["dsn"] = database
        else:
            overrides["database"] = database
    if scripts:
        overrides["script_dirs"] = scripts
    if not overrides:
        return get_settings()
    return DbManagerSettings(**overrides)


def open_manager(
    database: str | None = None,
    engine: str | None = None,
    scripts: list[Path] | None = None,
) -> DbManager:
    """Build and initialize a manager for a CLI command."""
    try:
        settings = load_settings(database, engine, scripts)
    except ValidationError as e:
        fail(f"Invalid settings: {e.errors()[0]['msg']}", code="CONFIG")

    configure_logging(settings.log_level, json_format=settings.log_format == "json")
    try:
        manager = DbManagerBuilder.from_settings(settings).build()
    except DbManagerError as e:
        fail_error(e)

    manager.initialize()
    return manager


# ── Output helpers ───────────────────────────────────────────────────────


def fail(message: str, *, code: str = "ERROR") -> NoReturn:
    err_console.print(f"[bold red]Error[/bold red] ({code}): {escape(message)}")
    raise typer.Exit(code=1)


def fail_error(error: Exception) -> NoReturn:
    """Exit with the message and category of ``error``."""
    message = error.message if isinstance(error, DbManagerError) else str(error)
    if is_retryable(error):
        message += " (transient; retrying may succeed)"
    fail(message, code=categorize_error(error).value)


def output_data(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a dict or a list of dicts to the terminal."""
    if as_json:
        console.print_json(json.dumps(data, default=str))
        return

    if isinstance(data, list):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        _print_table(data, title=title)
    elif isinstance(data, dict):
        _print_dict(data, title=title)
    else:
        console.print(str(data))


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list[dict[str, Any]], *, title: str = "") -> None:
    """Render a list of dicts as a Rich table."""
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in items[0]:
        table.add_column(str(col), overflow="fold")
    for item in items:
        table.add_row(*(escape(str(v)) for v in item.values()))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {escape(str(v))}")
