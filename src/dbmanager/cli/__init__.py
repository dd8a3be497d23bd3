"""
CLI layer for dbmanager.

A Typer application whose commands build a ``DbManager`` from settings
and delegate to it. This package only handles terminal transport:
argument parsing, coloured output and table formatting.

Entry point::

    dbmanager --help
"""

from dbmanager.cli.app import app

__all__ = ["app"]
