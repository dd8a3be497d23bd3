"""
Composition builder: assembles a validated ``DbManager``.

Manifesto:
    A manager is only as sound as its composition. The builder collects
    registrations through fluent ``use_*`` calls and refuses to build
    anything incomplete or contradictory, before a single connection is
    opened.

Architecture:
    ::

        use_sqlite() / use_postgresql() / use_adapter()      ENGINE
          └── with_defaults: detector, creator, cleanup (+ SQLite backup)
        use_version_detector()                                VERSION_DETECTOR
        use_script_directory() / use_batches() / ...          TEMPORARY_BATCH_LOCATOR
        use_version_upgrader() / use_backup_creator() / ...   optional contracts

        build()
          1. merge temporary locators -> one AggregateBatchLocator (BATCH_LOCATOR)
          2. reject surviving temporary registrations
          3. drop defaults shadowed by explicit registrations
          4. count: ENGINE, VERSION_DETECTOR, BATCH_LOCATOR exactly once;
             everything else at most once
          5. components needing scripts need a script-capable locator
          6. min_version <= max_version (component bounds and upgrader)

Examples:
    >>> manager = (
    ...     DbManagerBuilder()
    ...     .use_sqlite("app.db")
    ...     .use_script_directory("sql")
    ...     .use_version_upgrader()
    ...     .build()
    ... )

Tags:
    builder, composition, validation, dependency-injection, dbmanager

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import ModuleType
from typing import Any

from dbmanager.adapters import DatabaseAdapter, EngineType, get_adapter
from dbmanager.backup import BackupCreator, SQLiteBackupCreator
from dbmanager.batches import (
    AggregateBatchLocator,
    BatchLocator,
    CallbackBatchLocator,
    DictionaryBatchLocator,
    DirectoryScriptBatchLocator,
    PackageScriptBatchLocator,
)
from dbmanager.cleanup import CleanupProcessor, ScriptCleanupProcessor
from dbmanager.components import ManagerComponent
from dbmanager.creation import Creator, ScriptCreator
from dbmanager.errors import (
    ConfigurationError,
    DuplicateRegistrationError,
    InvalidVersionRangeError,
    MissingRegistrationError,
    TemporaryRegistrationError,
)
from dbmanager.logging import get_logger
from dbmanager.manager import DbManager
from dbmanager.options import DbManagerOptions
from dbmanager.settings import DbManagerSettings
from dbmanager.upgrading import BatchNameVersionUpgrader, VersionUpgrader
from dbmanager.versioning import ScriptVersionDetector, VersionDetector

logger = get_logger(__name__)


class Contract(str, Enum):
    """Roles a registration can fill."""

    ENGINE = "engine"
    VERSION_DETECTOR = "version_detector"
    BATCH_LOCATOR = "batch_locator"
    TEMPORARY_BATCH_LOCATOR = "temporary_batch_locator"
    BACKUP_CREATOR = "backup_creator"
    CLEANUP_PROCESSOR = "cleanup_processor"
    VERSION_UPGRADER = "version_upgrader"
    CREATOR = "creator"
    OPTIONS = "options"


MANDATORY_CONTRACTS = (Contract.ENGINE, Contract.VERSION_DETECTOR, Contract.BATCH_LOCATOR)
OPTIONAL_CONTRACTS = (
    Contract.BACKUP_CREATOR,
    Contract.CLEANUP_PROCESSOR,
    Contract.VERSION_UPGRADER,
    Contract.CREATOR,
    Contract.OPTIONS,
)

_EXPECTED_TYPES: dict[Contract, type] = {
    Contract.ENGINE: DatabaseAdapter,
    Contract.VERSION_DETECTOR: VersionDetector,
    Contract.BATCH_LOCATOR: BatchLocator,
    Contract.TEMPORARY_BATCH_LOCATOR: BatchLocator,
    Contract.BACKUP_CREATOR: BackupCreator,
    Contract.CLEANUP_PROCESSOR: CleanupProcessor,
    Contract.VERSION_UPGRADER: VersionUpgrader,
    Contract.CREATOR: Creator,
    Contract.OPTIONS: DbManagerOptions,
}


@dataclass(frozen=True)
class Registration:
    """One row of the registration table.

    ``temporary`` rows must be resolved during ``build()``; ``default`` rows
    give way to explicit registrations of the same contract.
    """

    contract: Contract
    instance: Any
    temporary: bool = False
    default: bool = False


class DbManagerBuilder:
    """
    Fluent builder for ``DbManager``.

    Every ``use_*`` method returns the builder. ``build()`` validates the
    registration table and may run only once.
    """

    def __init__(self) -> None:
        self._registrations: list[Registration] = []
        self._built = False

    @property
    def registrations(self) -> tuple[Registration, ...]:
        return tuple(self._registrations)

    @property
    def already_built(self) -> bool:
        return self._built

    def register(
        self,
        contract: Contract | str,
        instance: Any,
        *,
        temporary: bool = False,
        default: bool = False,
    ) -> DbManagerBuilder:
        """Add a raw registration; the ``use_*`` methods all end up here."""
        if self._built:
            raise ConfigurationError("Builder was already used to build a manager")
        contract = Contract(contract)
        expected = _EXPECTED_TYPES[contract]
        if not isinstance(instance, expected):
            raise TypeError(
                f"{contract.value} registration must be a {expected.__name__}, "
                f"got {type(instance).__name__}"
            )
        self._registrations.append(Registration(contract, instance, temporary, default))
        return self

    # ------------------------------------------------------------------
    # Engine
    # ------------------------------------------------------------------

    def use_adapter(self, adapter: DatabaseAdapter) -> DbManagerBuilder:
        return self.register(Contract.ENGINE, adapter)

    def use_engine(
        self,
        engine: EngineType | str,
        *,
        with_defaults: bool = True,
        **kwargs: Any,
    ) -> DbManagerBuilder:
        """Engine adapter created by name from the adapter registry.

        ``with_defaults`` registers the settings-table collaborators (and a
        backup creator where the engine supports backups).
        """
        adapter = get_adapter(engine, **kwargs)
        self.use_adapter(adapter)
        if with_defaults:
            self._register_defaults(adapter)
        return self

    def use_sqlite(
        self,
        path: str | Path = ":memory:",
        *,
        with_defaults: bool = True,
        **kwargs: Any,
    ) -> DbManagerBuilder:
        """SQLite engine; a ``:memory:`` database lives until the manager is closed."""
        return self.use_engine(EngineType.SQLITE, with_defaults=with_defaults, path=path, **kwargs)

    def use_postgresql(
        self,
        dsn: str | None = None,
        *,
        with_defaults: bool = True,
        **kwargs: Any,
    ) -> DbManagerBuilder:
        """PostgreSQL engine (needs the ``postgresql`` extra at connect time)."""
        return self.use_engine(EngineType.POSTGRESQL, with_defaults=with_defaults, dsn=dsn, **kwargs)

    def _register_defaults(self, adapter: DatabaseAdapter) -> None:
        self.register(Contract.VERSION_DETECTOR, ScriptVersionDetector(), default=True)
        self.register(Contract.CREATOR, ScriptCreator(), default=True)
        self.register(Contract.CLEANUP_PROCESSOR, ScriptCleanupProcessor(), default=True)
        if adapter.supports_backup:
            self.register(Contract.BACKUP_CREATOR, SQLiteBackupCreator(), default=True)

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def use_options(self, options: DbManagerOptions | None = None, **changes: Any) -> DbManagerBuilder:
        """Register manager options; keyword arguments override fields."""
        options = options or DbManagerOptions()
        if changes:
            options = options.with_changes(**changes)
        return self.register(Contract.OPTIONS, options)

    def use_version_detector(self, detector: VersionDetector | None = None) -> DbManagerBuilder:
        return self.register(Contract.VERSION_DETECTOR, detector or ScriptVersionDetector())

    def use_version_upgrader(
        self,
        upgrader: VersionUpgrader | None = None,
        *,
        record_version: bool = False,
    ) -> DbManagerBuilder:
        """Register an upgrader; by default one discovering steps by batch name."""
        return self.register(
            Contract.VERSION_UPGRADER,
            upgrader or BatchNameVersionUpgrader(record_version=record_version),
        )

    def use_backup_creator(self, creator: BackupCreator | None = None) -> DbManagerBuilder:
        return self.register(Contract.BACKUP_CREATOR, creator or SQLiteBackupCreator())

    def use_cleanup_processor(self, processor: CleanupProcessor | None = None) -> DbManagerBuilder:
        return self.register(Contract.CLEANUP_PROCESSOR, processor or ScriptCleanupProcessor())

    def use_creator(self, creator: Creator | None = None) -> DbManagerBuilder:
        return self.register(Contract.CREATOR, creator or ScriptCreator())

    # ------------------------------------------------------------------
    # Batch locators (merged during build)
    # ------------------------------------------------------------------

    def use_batch_locator(self, locator: BatchLocator) -> DbManagerBuilder:
        return self.register(Contract.TEMPORARY_BATCH_LOCATOR, locator, temporary=True)

    def use_script_directory(self, *directories: str | Path, recursive: bool = False) -> DbManagerBuilder:
        if not directories:
            raise ValueError("At least one script directory is required")
        return self.use_batch_locator(DirectoryScriptBatchLocator(*directories, recursive=recursive))

    def use_package_scripts(
        self,
        package: str | ModuleType,
        subdirectory: str | None = None,
    ) -> DbManagerBuilder:
        return self.use_batch_locator(PackageScriptBatchLocator(package, subdirectory))

    def use_batches(
        self,
        configure: Callable[[DictionaryBatchLocator], Any] | None = None,
        *,
        scripts: dict[str, str] | None = None,
        callbacks: dict[str, Any] | None = None,
    ) -> DbManagerBuilder:
        """In-memory batches; ``configure`` receives the locator to fill."""
        locator = DictionaryBatchLocator(scripts=scripts, callbacks=callbacks)
        if configure is not None:
            configure(locator)
        return self.use_batch_locator(locator)

    def use_callback_batches(self, *sources: ModuleType | type | Callable[..., Any]) -> DbManagerBuilder:
        return self.use_batch_locator(CallbackBatchLocator(*sources))

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @classmethod
    def from_settings(cls, settings: DbManagerSettings) -> DbManagerBuilder:
        """Builder pre-populated from ``DbManagerSettings``.

        Script directories register a locator and a batch-name upgrader;
        without them an empty in-memory locator is used.
        """
        builder = cls()
        builder.use_engine(settings.engine, **settings.adapter_kwargs())
        builder.use_options(settings.to_options())

        if settings.script_dirs:
            builder.use_script_directory(*settings.script_dirs)
            builder.use_version_upgrader(record_version=settings.record_version)
        else:
            builder.use_batches()
        return builder

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def build(self) -> DbManager:
        """Validate the registrations and construct the manager.

        Raises:
            ConfigurationError: Missing, duplicate or unresolved registrations,
                components without a script locator, or an invalid version range.
        """
        if self._built:
            raise ConfigurationError("Builder was already used to build a manager")

        registrations = self._resolve(self._registrations)
        resolved = {r.contract: r.instance for r in registrations}

        locator: BatchLocator = resolved[Contract.BATCH_LOCATOR]
        components: list[ManagerComponent] = [
            r.instance for r in registrations if isinstance(r.instance, ManagerComponent)
        ]
        self._validate_components(components, locator)

        manager = DbManager(
            resolved[Contract.ENGINE],
            resolved[Contract.VERSION_DETECTOR],
            locator,
            options=resolved.get(Contract.OPTIONS),
            version_upgrader=resolved.get(Contract.VERSION_UPGRADER),
            backup_creator=resolved.get(Contract.BACKUP_CREATOR),
            cleanup_processor=resolved.get(Contract.CLEANUP_PROCESSOR),
            creator=resolved.get(Contract.CREATOR),
        )
        if manager.version_upgrader is not None:
            min_version, max_version = manager.min_version, manager.max_version
            if min_version > max_version:
                raise InvalidVersionRangeError(min_version, max_version)

        self._built = True
        logger.info(
            "builder.built",
            target=manager.adapter.describe(),
            contracts=sorted(c.value for c in resolved),
        )
        return manager

    def _resolve(self, registrations: Iterable[Registration]) -> list[Registration]:
        registrations = list(registrations)

        locators = [r.instance for r in registrations if r.contract is Contract.TEMPORARY_BATCH_LOCATOR]
        registrations = [r for r in registrations if r.contract is not Contract.TEMPORARY_BATCH_LOCATOR]
        if locators:
            registrations.append(Registration(Contract.BATCH_LOCATOR, AggregateBatchLocator(locators)))

        for r in registrations:
            if r.temporary:
                raise TemporaryRegistrationError(r.contract.value)

        explicit = {r.contract for r in registrations if not r.default}
        registrations = [r for r in registrations if not (r.default and r.contract in explicit)]

        counts = Counter(r.contract for r in registrations)
        for contract in MANDATORY_CONTRACTS:
            if counts[contract] == 0:
                raise MissingRegistrationError(contract.value)
        for contract, count in counts.items():
            if count > 1:
                raise DuplicateRegistrationError(contract.value, count)
        return registrations

    def _validate_components(self, components: list[ManagerComponent], locator: BatchLocator) -> None:
        for component in components:
            if component.requires_script_locator and not locator.provides_scripts:
                raise ConfigurationError(
                    f"{component.component_name} needs a script batch locator, "
                    "but only callback locators are registered"
                )
            if (
                component.min_version is not None
                and component.max_version is not None
                and component.min_version > component.max_version
            ):
                raise InvalidVersionRangeError(component.min_version, component.max_version).with_context(
                    component=component.component_name
                )


__all__ = [
    "Contract",
    "Registration",
    "DbManagerBuilder",
]
