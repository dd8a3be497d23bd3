"""
Root Typer application for the dbmanager CLI.

Every command builds a manager from ``DBMANAGER_*`` settings plus the
command-line overrides, detects the database state and acts on it.
Logs go to stderr; results (``--json`` included) go to stdout.
"""

from __future__ import annotations

from pathlib import Path

import typer
from typer import Typer

from dbmanager.cli.utils import console, fail, fail_error, open_manager, output_data
from dbmanager.errors import DbManagerError

app = Typer(
    name="dbmanager",
    help="dbmanager: database lifecycle management (state, upgrades, batches).",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("dbmanager")
        except PackageNotFoundError:
            v = "0.1.0"
        typer.echo(f"dbmanager {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """dbmanager CLI: inspect, create, upgrade and maintain databases."""


# ── Commands ─────────────────────────────────────────────────────────────


@app.command()
def status(
    database: str | None = typer.Option(None, "--database", "-d", help="SQLite path or PostgreSQL DSN"),
    engine: str | None = typer.Option(None, "--engine", help="sqlite | postgresql"),
    scripts: list[Path] | None = typer.Option(None, "--scripts", "-s", help="Script directory (repeatable)"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Show the database state and version."""
    manager = open_manager(database, engine, scripts)
    output_data(manager.describe(), as_json=json_out, title="Database Status")
    if manager.state.is_error:
        raise typer.Exit(code=1)


@app.command()
def upgrade(
    to: int | None = typer.Option(None, "--to", help="Target version (default: newest)"),
    database: str | None = typer.Option(None, "--database", "-d"),
    engine: str | None = typer.Option(None, "--engine"),
    scripts: list[Path] | None = typer.Option(None, "--scripts", "-s"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Upgrade the database step by step."""
    manager = open_manager(database, engine, scripts)
    try:
        result = manager.upgrade(to)
    except DbManagerError as e:
        fail_error(e)

    output_data(result.to_dict(), as_json=json_out, title="Upgrade")
    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def create(
    database: str | None = typer.Option(None, "--database", "-d"),
    engine: str | None = typer.Option(None, "--engine"),
    scripts: list[Path] | None = typer.Option(None, "--scripts", "-s"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Create a new database at version 0."""
    manager = open_manager(database, engine, scripts)
    try:
        ok = manager.create()
    except DbManagerError as e:
        fail_error(e)
    _report("create", ok, manager.describe(), json_out)


@app.command()
def cleanup(
    database: str | None = typer.Option(None, "--database", "-d"),
    engine: str | None = typer.Option(None, "--engine"),
    scripts: list[Path] | None = typer.Option(None, "--scripts", "-s"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run database maintenance (vacuum, statistics, reindex)."""
    manager = open_manager(database, engine, scripts)
    try:
        ok = manager.cleanup()
    except DbManagerError as e:
        fail_error(e)
    _report("cleanup", ok, manager.describe(), json_out)


@app.command()
def backup(
    target: Path = typer.Argument(..., help="Backup file to write"),
    database: str | None = typer.Option(None, "--database", "-d"),
    engine: str | None = typer.Option(None, "--engine"),
    scripts: list[Path] | None = typer.Option(None, "--scripts", "-s"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Back the database up to TARGET (SQLite only)."""
    manager = open_manager(database, engine, scripts)
    try:
        ok = manager.backup(target)
    except DbManagerError as e:
        fail_error(e)
    _report("backup", ok, {"target": str(target)}, json_out)


@app.command()
def run(
    batch: str = typer.Argument(..., help="Batch name"),
    result: bool = typer.Option(False, "--result", help="Show the last command's result"),
    read_only: bool = typer.Option(False, "--read-only", help="Use a read-only connection"),
    database: str | None = typer.Option(None, "--database", "-d"),
    engine: str | None = typer.Option(None, "--engine"),
    scripts: list[Path] | None = typer.Option(None, "--scripts", "-s"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Execute a located batch."""
    manager = open_manager(database, engine, scripts)
    try:
        located = manager.get_batch(batch)
        outcome = manager.execute_batch(located, want_result=result, read_only=read_only)
    except DbManagerError as e:
        fail_error(e)
    if not outcome.success:
        fail(outcome.error.message if outcome.error else "Batch failed", code="BATCH")

    if result and isinstance(outcome.value, list) and not json_out:
        output_data(outcome.value, title=located.name or batch)
    else:
        output_data(outcome.to_dict(), as_json=json_out, title=f"Batch {located.name or batch}")


@app.command()
def batches(
    database: str | None = typer.Option(None, "--database", "-d"),
    engine: str | None = typer.Option(None, "--engine"),
    scripts: list[Path] | None = typer.Option(None, "--scripts", "-s"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List the batches the configured locators know."""
    manager = open_manager(database, engine, scripts)
    names = manager.get_batch_names()
    output_data([{"name": name} for name in names], as_json=json_out, title="Batches")


def _report(operation: str, ok: bool, data: dict, as_json: bool) -> None:
    if as_json:
        output_data({"operation": operation, "success": ok, **data}, as_json=True)
    elif ok:
        console.print(f"[green]{operation} succeeded[/green]")
    if not ok:
        fail(f"{operation} failed or is not supported", code="FAILED")
