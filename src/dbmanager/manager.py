"""
Database manager: state machine, upgrade loop and batch execution.

Manifesto:
    A database is found in some state and driven forward, one version at a
    time, toward the newest version the upgrader knows. Every step is a
    batch, every batch runs under an explicit transaction policy, and a
    failure stops everything at the last good version.

    - **Derived state:** ``DbState`` is computed from version detection,
      never set by callers
    - **Forward-only:** no rollback across steps, no down-migrations
    - **Explicit transactions:** a batch either runs in one ambient
      transaction or each command runs autonomously
    - **Optional collaborators:** a missing backup creator, cleanup
      processor, upgrader or creator is ``None`` and guarded here

Architecture:
    ::

        detect_state()
          │  adapter.database_exists() ── False ──► version 0
          │  adapter.connect()         ── error ──► CONNECTION_ERROR
          ▼
        VersionDetector.detect(manager) ──► VersionDetection
          │
          ▼  version vs upgrader min/max
        NEW | READY | OUTDATED | TOO_OLD | TOO_NEW | READY_UNKNOWN | DAMAGED_OR_INVALID

        upgrade(target)
          while version < target:
              VersionUpgrader.upgrade(manager, version)   ── False ──► stop
              detect_state()                              ── version != v+1 ──► stop

        execute_batch(batch)
          resolve_transaction_requirement()   (conflict raised before any I/O)
          connect(read_only) ─► [BEGIN] ─► command 0..n ─► [COMMIT | ROLLBACK]

Examples:
    >>> manager = DbManagerBuilder().use_sqlite("app.db").use_script_directory("sql").build()
    >>> manager.initialize()
    <DbState.NEW: 'new'>
    >>> manager.upgrade().success
    True
    >>> manager.state
    <DbState.READY: 'ready'>

Tags:
    database, lifecycle, state-machine, upgrade, batch, transaction, dbmanager

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from dbmanager.adapters.base import AdapterTransaction, DatabaseAdapter
from dbmanager.batches import (
    Batch,
    BatchCommand,
    BatchLocator,
    BatchResult,
    CodeResult,
    CommandResult,
    IsolationLevel,
    TransactionRequirement,
)
from dbmanager.dialect import Dialect
from dbmanager.errors import (
    BatchCommandError,
    BatchNotFoundError,
    DatabaseConnectionError,
    NotSupportedError,
    StateConflictError,
    UpgradeStepError,
    VersionDetectionError,
    VersionOutOfRangeError,
)
from dbmanager.logging import LogContext, get_logger
from dbmanager.options import DbManagerOptions
from dbmanager.protocols import Connection
from dbmanager.state import DbState
from dbmanager.versioning import VersionDetection, VersionDetector

if TYPE_CHECKING:
    from dbmanager.backup import BackupCreator
    from dbmanager.cleanup import CleanupProcessor
    from dbmanager.creation import Creator
    from dbmanager.upgrading import VersionUpgrader

logger = get_logger(__name__)


@dataclass
class UpgradeResult:
    """Result of ``DbManager.upgrade``.

    ``steps`` lists the source versions that were upgraded successfully.
    On failure the database stays at ``final_version``.
    """

    source_version: int
    target_version: int
    final_version: int = -1
    steps: list[int] = field(default_factory=list)
    error: UpgradeStepError | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def failed_version(self) -> int | None:
        return self.error.source_version if self.error else None

    def raise_for_error(self) -> UpgradeResult:
        if self.error is not None:
            raise self.error
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "source_version": self.source_version,
            "target_version": self.target_version,
            "final_version": self.final_version,
            "steps": list(self.steps),
            "error": self.error.to_dict() if self.error else None,
        }

    def __bool__(self) -> bool:
        return self.success


class DbManager:
    """
    Manages one database through its lifecycle.

    Build instances with ``DbManagerBuilder``; it validates the composition
    before anything touches the database. A manager is not thread-safe.

    Args:
        adapter: Engine adapter (connections, transactions, execution)
        version_detector: Reports the current version
        batch_locator: Resolves batch names
        options: Options for the default collaborators
        version_upgrader: Optional; without it upgrades are not supported
        backup_creator: Optional; without it ``backup()`` returns False
        cleanup_processor: Optional; without it ``cleanup()`` returns False
        creator: Optional; without it ``create()`` returns False
    """

    def __init__(
        self,
        adapter: DatabaseAdapter,
        version_detector: VersionDetector,
        batch_locator: BatchLocator,
        *,
        options: DbManagerOptions | None = None,
        version_upgrader: VersionUpgrader | None = None,
        backup_creator: BackupCreator | None = None,
        cleanup_processor: CleanupProcessor | None = None,
        creator: Creator | None = None,
    ):
        self._adapter = adapter
        self._version_detector = version_detector
        self._batch_locator = batch_locator
        self._options = options or DbManagerOptions()
        self._version_upgrader = version_upgrader
        self._backup_creator = backup_creator
        self._cleanup_processor = cleanup_processor
        self._creator = creator

        self._state = DbState.UNINITIALIZED
        self._version = -1
        self._initial_state = DbState.UNINITIALIZED
        self._initial_version = -1

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    @property
    def adapter(self) -> DatabaseAdapter:
        return self._adapter

    @property
    def dialect(self) -> Dialect:
        return self._adapter.dialect

    @property
    def options(self) -> DbManagerOptions:
        return self._options

    @property
    def batch_locator(self) -> BatchLocator:
        return self._batch_locator

    @property
    def version_detector(self) -> VersionDetector:
        return self._version_detector

    @property
    def version_upgrader(self) -> VersionUpgrader | None:
        return self._version_upgrader

    @property
    def backup_creator(self) -> BackupCreator | None:
        return self._backup_creator

    @property
    def cleanup_processor(self) -> CleanupProcessor | None:
        return self._cleanup_processor

    @property
    def creator(self) -> Creator | None:
        return self._creator

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> DbState:
        return self._state

    @property
    def version(self) -> int:
        return self._version

    @property
    def initial_state(self) -> DbState:
        """State found by the last ``initialize()``."""
        return self._initial_state

    @property
    def initial_version(self) -> int:
        """Version found by the last ``initialize()``."""
        return self._initial_version

    @property
    def min_version(self) -> int:
        if self._version_upgrader is None:
            return -1
        return self._version_upgrader.get_min_version(self)

    @property
    def max_version(self) -> int:
        if self._version_upgrader is None:
            return -1
        return self._version_upgrader.get_max_version(self)

    @property
    def is_ready(self) -> bool:
        return self._state.is_ready

    @property
    def supports_upgrade(self) -> bool:
        return self._version_upgrader is not None

    @property
    def supports_backup(self) -> bool:
        return self._backup_creator is not None and self._adapter.supports_backup

    @property
    def supports_cleanup(self) -> bool:
        return self._cleanup_processor is not None

    @property
    def supports_create(self) -> bool:
        return self._creator is not None

    @property
    def supports_read_only(self) -> bool:
        return self._adapter.supports_read_only

    @property
    def can_upgrade(self) -> bool:
        return (
            self.supports_upgrade
            and (self.is_ready or self._state is DbState.NEW)
            and 0 <= self._version < self.max_version
        )

    def on_state_changed(self, old: DbState, new: DbState) -> None:
        """Hook for subclasses; called after every state change."""

    def on_version_changed(self, old: int, new: int) -> None:
        """Hook for subclasses; called after every version change."""

    def _set_state(self, state: DbState, version: int) -> None:
        old_state, old_version = self._state, self._version
        self._state, self._version = state, version

        if old_state is not state:
            logger.info("db.state_changed", old=old_state.value, new=state.value)
            self.on_state_changed(old_state, state)
        if old_version != version:
            logger.info("db.version_changed", old=old_version, new=version)
            self.on_version_changed(old_version, version)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> DbState:
        """(Re)detect state and version and remember them as the initial ones."""
        logger.debug("db.initializing", target=self._adapter.describe())
        if self._state is not DbState.UNINITIALIZED:
            self.close()
        state = self.detect_state()
        self._initial_state = self._state
        self._initial_version = self._version
        return state

    def detect_state(self) -> DbState:
        """Run version detection and derive the state from its outcome."""
        detection = self._detect()
        state, version = self._derive_state(detection)
        self._set_state(state, version)
        return state

    def _detect(self) -> VersionDetection:
        if self._adapter.database_exists() is False:
            return VersionDetection.of(0)

        try:
            with self._adapter.connect(read_only=True):
                pass
        except DatabaseConnectionError as e:
            logger.error("db.connection_failed", target=self._adapter.describe(), error=e.message)
            return VersionDetection(
                valid=False, version=-1, state=DbState.CONNECTION_ERROR, error=e.message
            )

        try:
            return self._version_detector.detect(self)
        except DatabaseConnectionError as e:
            logger.error("db.connection_failed", target=self._adapter.describe(), error=e.message)
            return VersionDetection(
                valid=False, version=-1, state=DbState.CONNECTION_ERROR, error=e.message
            )
        except Exception as e:
            error = VersionDetectionError(f"Version detection failed: {e}", cause=e)
            logger.error("db.detection_failed", **error.to_dict())
            return VersionDetection.invalid(error.message)

    def _derive_state(self, detection: VersionDetection) -> tuple[DbState, int]:
        if detection.state is DbState.CONNECTION_ERROR:
            return DbState.CONNECTION_ERROR, -1
        if (
            not detection.valid
            or detection.version < 0
            or detection.state is DbState.DAMAGED_OR_INVALID
        ):
            return DbState.DAMAGED_OR_INVALID, -1
        if detection.state is not None:
            return detection.state, detection.version

        version = detection.version
        if version == 0:
            return DbState.NEW, 0
        if self._version_upgrader is None:
            return DbState.READY_UNKNOWN, version

        min_version, max_version = self.min_version, self.max_version
        if version < min_version:
            return DbState.TOO_OLD, version
        if version < max_version:
            return DbState.OUTDATED, version
        if version == max_version:
            return DbState.READY, version
        return DbState.TOO_NEW, version

    def close(self) -> None:
        logger.debug("db.closing")
        self._adapter.close()
        self._set_state(DbState.UNINITIALIZED, -1)
        self._initial_state = DbState.UNINITIALIZED
        self._initial_version = -1

    def __enter__(self) -> DbManager:
        if self._state is DbState.UNINITIALIZED:
            self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    @contextmanager
    def connection(self, read_only: bool = False) -> Iterator[Connection]:
        """Scoped connection, closed on every exit path."""
        with self._adapter.connect(read_only=read_only) as conn:
            yield conn

    @contextmanager
    def transaction(
        self,
        read_only: bool = False,
        isolation_level: IsolationLevel | None = None,
    ) -> Iterator[tuple[Connection, AdapterTransaction]]:
        """Scoped connection plus transaction: commit on success, rollback on error."""
        level = isolation_level or self._options.default_isolation_level
        with self.connection(read_only) as conn, self._adapter.transaction(conn, level) as txn:
            yield conn, txn

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def create_batch(self, name: str | None = None) -> Batch:
        return Batch(name=name)

    def find_batch(self, name: str, command_separator: str | None = None) -> Batch | None:
        return self._batch_locator.get_batch(
            name, command_separator or self._options.command_separator
        )

    def get_batch(self, name: str, command_separator: str | None = None) -> Batch:
        """Locate a batch by name.

        Raises:
            BatchNotFoundError: No locator knows the name.
        """
        batch = self.find_batch(name, command_separator)
        if batch is None:
            raise BatchNotFoundError(name)
        return batch

    def get_batch_names(self) -> list[str]:
        return self._batch_locator.get_names()

    def execute_batch(
        self,
        batch: Batch,
        want_result: bool = False,
        read_only: bool = False,
    ) -> BatchResult:
        """Execute a batch under its resolved transaction policy.

        Command failures are reported in the returned ``BatchResult``;
        ``completed`` tells how many commands ran. Without an ambient
        transaction those commands stay committed.

        Raises:
            BatchTransactionConflictError: Commands both require and
                disallow a transaction (raised before connecting).
            DatabaseConnectionError: No connection could be opened.
        """
        return self.execute_batch_on(self._adapter, batch, want_result, read_only)

    def execute_batch_on(
        self,
        adapter: DatabaseAdapter,
        batch: Batch,
        want_result: bool = False,
        read_only: bool = False,
    ) -> BatchResult:
        """Execute a batch against another database of the same engine (e.g. a backup copy)."""
        requirement = batch.resolve_transaction_requirement()
        if requirement is TransactionRequirement.DONT_CARE:
            requirement = self._options.default_transaction_requirement
        use_transaction = requirement is TransactionRequirement.REQUIRED
        isolation_level = batch.isolation_level or self._options.default_isolation_level

        result = BatchResult(batch_name=batch.name, total=len(batch), transaction=requirement)
        if batch.is_empty:
            return result

        with LogContext(batch=batch.name or "<unnamed>"):
            logger.debug(
                "batch.started",
                commands=len(batch),
                transaction=requirement.value,
                read_only=read_only,
            )
            with adapter.connect(read_only=read_only) as conn:
                txn = (
                    adapter.begin_transaction(conn, isolation_level)
                    if use_transaction
                    else None
                )
                try:
                    self._run_commands(adapter, conn, txn, batch, want_result, result)
                    if txn is not None and result.success:
                        self._commit(txn, batch, result)
                finally:
                    if txn is not None and txn.is_active:
                        txn.rollback()

            if result.success:
                logger.debug("batch.finished", completed=result.completed)
            else:
                logger.error(
                    "batch.failed",
                    completed=result.completed,
                    total=result.total,
                    rolled_back=result.rolled_back,
                    **(result.error.to_dict() if result.error else {}),
                )
        return result

    def _run_commands(
        self,
        adapter: DatabaseAdapter,
        conn: Connection,
        txn: AdapterTransaction | None,
        batch: Batch,
        want_result: bool,
        result: BatchResult,
    ) -> None:
        for index, command in enumerate(batch):
            outcome, cause = self._run_command(adapter, conn, txn, index, command)
            result.command_results.append(outcome)
            if not outcome.success:
                rolled_back = False
                if txn is not None:
                    txn.rollback()
                    rolled_back = True
                result.rolled_back = rolled_back
                result.error = BatchCommandError(
                    f"Command {index} ({command.describe()}) failed: {outcome.error}",
                    command_index=index,
                    completed=index,
                    rolled_back=rolled_back,
                    cause=cause,
                ).with_context(batch=batch.name)
                return
            if want_result:
                result.value = outcome.value

    def _run_command(
        self,
        adapter: DatabaseAdapter,
        conn: Connection,
        txn: AdapterTransaction | None,
        index: int,
        command: BatchCommand,
    ) -> tuple[CommandResult, Exception | None]:
        try:
            if command.script is not None:
                value = adapter.execute(
                    conn, command.script, command.execution_type, command.parameters
                )
                return CommandResult(index=index, value=value), None

            value = command.code(conn, txn, command.parameters)
            if isinstance(value, CodeResult):
                if value.error:
                    return CommandResult(index=index, value=value.value, error=value.error), None
                value = value.value
            return CommandResult(index=index, value=value), None
        except Exception as e:
            return CommandResult(index=index, error=str(e) or type(e).__name__), e

    def _commit(self, txn: AdapterTransaction, batch: Batch, result: BatchResult) -> None:
        try:
            txn.commit()
        except Exception as e:
            txn.force_rollback()
            result.rolled_back = True
            last = len(batch) - 1
            result.command_results[last].error = f"commit failed: {e}"
            result.error = BatchCommandError(
                f"Commit of batch {batch.name or '<unnamed>'} failed: {e}",
                command_index=last,
                completed=last,
                rolled_back=True,
                cause=e,
            ).with_context(batch=batch.name)

    # ------------------------------------------------------------------
    # Upgrade
    # ------------------------------------------------------------------

    def upgrade(self, version: int | None = None) -> UpgradeResult:
        """Upgrade step by step to ``version`` (default: ``max_version``).

        Stops at the first failing step; the database stays at the last
        version reached. A no-op success when already at the target.

        Raises:
            StateConflictError: Not initialized, or not in a state that allows upgrades.
            NotSupportedError: No upgrader configured.
            VersionOutOfRangeError: Current or target version outside the supported range.
        """
        if self._state is DbState.UNINITIALIZED:
            raise StateConflictError("Manager must be initialized before upgrading")
        if self._version_upgrader is None:
            raise NotSupportedError("No version upgrader configured").with_context(
                state=self._state.value
            )
        if self._state in (DbState.TOO_OLD, DbState.TOO_NEW):
            raise VersionOutOfRangeError(
                f"Database version {self._version} is outside the supported range "
                f"{self.min_version}..{self.max_version}"
            ).with_context(state=self._state.value, version=self._version)
        if not (self.is_ready or self._state is DbState.NEW):
            raise StateConflictError(
                f"Cannot upgrade a database in state {self._state.value}"
            ).with_context(state=self._state.value, version=self._version)

        min_version, max_version = self.min_version, self.max_version
        target = max_version if version is None else version
        if target < min_version or target > max_version:
            raise VersionOutOfRangeError(
                f"Target version {target} is outside the supported range "
                f"{min_version}..{max_version}"
            ).with_context(version=self._version)
        if target < self._version:
            raise VersionOutOfRangeError(
                f"Target version {target} is lower than the current version {self._version}"
            ).with_context(version=self._version)

        result = UpgradeResult(source_version=self._version, target_version=target)
        if self._version == target:
            result.final_version = self._version
            logger.info("upgrade.not_required", version=self._version)
            return result

        logger.info("upgrade.started", source_version=self._version, target_version=target)

        if self._state is DbState.NEW and self._creator is not None:
            if not self._creator.perform(self):
                result.error = UpgradeStepError(
                    "Database creation failed", source_version=0
                )
            self.detect_state()

        current = self._version
        while result.success and current < target:
            ok = self._version_upgrader.upgrade(self, current)
            self.detect_state()
            if not ok:
                result.error = UpgradeStepError(
                    f"Upgrade step {current} -> {current + 1} failed",
                    source_version=current,
                )
            elif self._version != current + 1:
                result.error = UpgradeStepError(
                    f"Upgrade step {current} -> {current + 1} left the database "
                    f"at version {self._version}",
                    source_version=current,
                )
            else:
                result.steps.append(current)
                current = self._version

        result.final_version = self._version
        if result.success:
            logger.info("upgrade.finished", version=self._version, steps=len(result.steps))
        else:
            logger.error("upgrade.failed", final_version=self._version, **result.error.to_dict())
        return result

    # ------------------------------------------------------------------
    # Optional operations
    # ------------------------------------------------------------------

    def backup(self, target: Any) -> bool:
        """Back up the database to ``target``; ``False`` if unsupported or failed."""
        if self._state is DbState.UNINITIALIZED:
            raise StateConflictError("Manager must be initialized before a backup")
        if not self.supports_backup:
            logger.warning("backup.not_supported", engine=self._adapter.engine.value)
            return False
        if not self._backup_creator.applies_to(self):
            return False
        ok = self._backup_creator.perform(self, target)
        self.detect_state()
        return ok

    def cleanup(self) -> bool:
        """Run database maintenance; ``False`` if unsupported or failed."""
        if not (self.is_ready or self._state is DbState.NEW):
            raise StateConflictError(
                f"Cannot clean up a database in state {self._state.value}"
            ).with_context(state=self._state.value)
        if self._cleanup_processor is None:
            logger.warning("cleanup.not_supported")
            return False
        if not self._cleanup_processor.applies_to(self):
            return False
        ok = self._cleanup_processor.perform(self)
        self.detect_state()
        return ok

    def create(self) -> bool:
        """Create a new database at version 0; ``False`` if unsupported or failed."""
        if self._state is not DbState.NEW:
            raise StateConflictError(
                f"Only a new database can be created; state is {self._state.value}"
            ).with_context(state=self._state.value)
        if self._creator is None:
            logger.warning("create.not_supported")
            return False
        ok = self._creator.perform(self)
        self.detect_state()
        return ok

    def describe(self) -> dict[str, Any]:
        """Snapshot for status output."""
        return {
            "target": self._adapter.describe(),
            "engine": self._adapter.engine.value,
            "state": self._state.value,
            "version": self._version,
            "initial_state": self._initial_state.value,
            "initial_version": self._initial_version,
            "min_version": self.min_version,
            "max_version": self.max_version,
            "can_upgrade": self.can_upgrade,
            "supports_backup": self.supports_backup,
            "supports_cleanup": self.supports_cleanup,
            "supports_create": self.supports_create,
            "supports_read_only": self.supports_read_only,
        }

    def __repr__(self) -> str:
        return f"DbManager({self._adapter.describe()!r}, state={self._state.value}, version={self._version})"


__all__ = [
    "DbManager",
    "DbState",
    "UpgradeResult",
    "BatchResult",
]
