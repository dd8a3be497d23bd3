"""dbmanager -- database lifecycle management.

Manifesto:
    Applications that own a database need the same few things: find out
    what state the database is in, bring it forward to the schema version
    the code expects, and run multi-step scripts and callbacks with clear
    transaction semantics. ``dbmanager`` does exactly that for SQLite and
    PostgreSQL, and stops safely at the first failure.

Architecture::

    Layer 1 -- Types & Errors
        errors.py          Structured error hierarchy (DbManagerError, ...)
        state.py           DbState
        protocols.py       Connection / Transaction capability protocols

    Layer 2 -- Batches
        batches/           Commands, batches, results, batch locators

    Layer 3 -- Engines
        adapters/          SQLite and PostgreSQL adapters + registry
        dialect.py         Default settings-table scripts per engine

    Layer 4 -- Collaborators
        versioning.py      Version detectors
        upgrading.py       Version upgraders (one step per call)
        creation.py        Creators
        cleanup.py         Cleanup processors
        backup.py          Backup creators

    Layer 5 -- Composition
        manager.py         DbManager (state machine, upgrade loop, execution)
        builder.py         DbManagerBuilder (validated composition)
        options.py         DbManagerOptions
        settings.py        DbManagerSettings (pydantic-settings)
        logging.py         structlog configuration
        cli/               Typer CLI

Examples:
    >>> from dbmanager import DbManagerBuilder
    >>> manager = (
    ...     DbManagerBuilder()
    ...     .use_sqlite("app.db")
    ...     .use_script_directory("sql")
    ...     .use_version_upgrader()
    ...     .build()
    ... )
    >>> manager.initialize()
    >>> manager.upgrade().raise_for_error()

Tags:
    database, lifecycle, migrations, sqlite, postgresql, dbmanager

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

__version__ = "0.1.0"

from dbmanager.adapters import DatabaseAdapter, PostgreSQLAdapter, SQLiteAdapter
from dbmanager.backup import BackupCreator, SQLiteBackupCreator
from dbmanager.batches import (
    Batch,
    BatchCommand,
    BatchResult,
    CodeResult,
    CommandResult,
    ExecutionType,
    IsolationLevel,
    ParameterCollection,
    TransactionRequirement,
    callback_batch,
)
from dbmanager.builder import Contract, DbManagerBuilder, Registration
from dbmanager.cleanup import CleanupProcessor, ScriptCleanupProcessor
from dbmanager.creation import Creator, ScriptCreator
from dbmanager.errors import (
    BatchCommandError,
    BatchNotFoundError,
    BatchTransactionConflictError,
    ConfigurationError,
    DatabaseConnectionError,
    DbManagerError,
    NotSupportedError,
    StateConflictError,
    UpgradeStepError,
    VersionOutOfRangeError,
)
from dbmanager.manager import DbManager, UpgradeResult
from dbmanager.options import DbManagerOptions
from dbmanager.state import DbState
from dbmanager.upgrading import BatchNameVersionUpgrader, VersionUpgrader
from dbmanager.versioning import ScriptVersionDetector, VersionDetection, VersionDetector

__all__ = [
    "__version__",
    # Manager
    "DbManager",
    "DbManagerBuilder",
    "DbManagerOptions",
    "DbState",
    "UpgradeResult",
    "Contract",
    "Registration",
    # Batches
    "Batch",
    "BatchCommand",
    "BatchResult",
    "CodeResult",
    "CommandResult",
    "ExecutionType",
    "IsolationLevel",
    "ParameterCollection",
    "TransactionRequirement",
    "callback_batch",
    # Engines
    "DatabaseAdapter",
    "SQLiteAdapter",
    "PostgreSQLAdapter",
    # Collaborators
    "VersionDetector",
    "VersionDetection",
    "ScriptVersionDetector",
    "VersionUpgrader",
    "BatchNameVersionUpgrader",
    "BackupCreator",
    "SQLiteBackupCreator",
    "CleanupProcessor",
    "ScriptCleanupProcessor",
    "Creator",
    "ScriptCreator",
    # Errors
    "DbManagerError",
    "ConfigurationError",
    "DatabaseConnectionError",
    "UpgradeStepError",
    "BatchCommandError",
    "BatchNotFoundError",
    "BatchTransactionConflictError",
    "StateConflictError",
    "VersionOutOfRangeError",
    "NotSupportedError",
]
