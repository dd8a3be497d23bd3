"""Tests for ``dbmanager.builder``: composition and validation."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from structlog.testing import capture_logs

from dbmanager.adapters import PostgreSQLAdapter, SQLiteAdapter, adapter_registry
from dbmanager.backup import SQLiteBackupCreator
from dbmanager.batches import AggregateBatchLocator, DictionaryBatchLocator
from dbmanager.builder import Contract, DbManagerBuilder, Registration
from dbmanager.cleanup import ScriptCleanupProcessor
from dbmanager.creation import ScriptCreator
from dbmanager.errors import (
    ConfigurationError,
    DuplicateRegistrationError,
    InvalidVersionRangeError,
    MissingRegistrationError,
    TemporaryRegistrationError,
)
from dbmanager.settings import DbManagerSettings
from dbmanager.upgrading import BatchNameVersionUpgrader, VersionUpgrader
from dbmanager.versioning import ScriptVersionDetector

SCRIPTS_DIR = Path(__file__).parent / "fixtures" / "scripts"


def _seed(connection, transaction, parameters):
    return None


class FixedRangeUpgrader(VersionUpgrader):
    def __init__(self, min_version, max_version):
        self._min, self._max = min_version, max_version

    def get_min_version(self, manager):
        return self._min

    def get_max_version(self, manager):
        return self._max

    def upgrade(self, manager, source_version):
        return False


class TestRegister:
    def test_fluent(self):
        builder = DbManagerBuilder()
        assert builder.use_sqlite() is builder
        assert builder.use_batches() is builder

    def test_defaults_marked(self):
        builder = DbManagerBuilder().use_sqlite()
        contracts = {r.contract: r for r in builder.registrations}
        assert not contracts[Contract.ENGINE].default
        assert contracts[Contract.VERSION_DETECTOR].default
        assert contracts[Contract.BACKUP_CREATOR].default

    def test_type_checked(self):
        with pytest.raises(TypeError, match="version_detector"):
            DbManagerBuilder().register(Contract.VERSION_DETECTOR, object())

    def test_string_contract(self):
        builder = DbManagerBuilder().register("creator", ScriptCreator())
        assert builder.registrations == (Registration(Contract.CREATOR, builder.registrations[0].instance),)

    def test_script_directory_required(self):
        with pytest.raises(ValueError):
            DbManagerBuilder().use_script_directory()


class TestBuild:
    def test_minimal(self):
        manager = DbManagerBuilder().use_sqlite().use_batches().build()
        assert isinstance(manager.adapter, SQLiteAdapter)
        assert isinstance(manager.version_detector, ScriptVersionDetector)
        assert isinstance(manager.creator, ScriptCreator)
        assert isinstance(manager.cleanup_processor, ScriptCleanupProcessor)
        assert isinstance(manager.backup_creator, SQLiteBackupCreator)
        assert manager.version_upgrader is None

    def test_temporary_locators_merged(self):
        manager = (
            DbManagerBuilder()
            .use_sqlite()
            .use_batches(scripts={"A": "SELECT 1;"})
            .use_batches(scripts={"B": "SELECT 2;"})
            .build()
        )
        assert isinstance(manager.batch_locator, AggregateBatchLocator)
        assert manager.get_batch_names() == ["A", "B"]

    def test_explicit_replaces_default(self):
        detector = ScriptVersionDetector()
        manager = DbManagerBuilder().use_sqlite().use_version_detector(detector).use_batches().build()
        assert manager.version_detector is detector

    def test_no_defaults(self):
        manager = (
            DbManagerBuilder()
            .use_sqlite(with_defaults=False)
            .use_version_detector()
            .use_batches()
            .build()
        )
        assert manager.creator is None
        assert manager.cleanup_processor is None
        assert manager.backup_creator is None

    def test_options(self):
        manager = DbManagerBuilder().use_sqlite().use_options(version_table="Meta").use_batches().build()
        assert manager.options.version_table == "Meta"

    def test_postgresql(self):
        manager = DbManagerBuilder().use_postgresql(host="db", database="app").use_batches().build()
        assert isinstance(manager.adapter, PostgreSQLAdapter)
        assert manager.dialect.name == "postgresql"

    def test_engine_by_name(self):
        manager = DbManagerBuilder().use_engine("postgres", dsn="dbname=app").use_batches().build()
        assert isinstance(manager.adapter, PostgreSQLAdapter)
        assert manager.backup_creator is None

    def test_registered_engine(self, db_path):
        class TracingSQLiteAdapter(SQLiteAdapter):
            pass

        with patch.dict(adapter_registry._factories, {"tracing": TracingSQLiteAdapter}):
            manager = DbManagerBuilder().use_engine("tracing", path=db_path).use_batches().build()
        assert isinstance(manager.adapter, TracingSQLiteAdapter)
        assert isinstance(manager.backup_creator, SQLiteBackupCreator)

    def test_unknown_engine(self):
        with pytest.raises(ConfigurationError, match="Unknown database engine"):
            DbManagerBuilder().use_engine("oracle")

    def test_built_event_logged(self):
        with capture_logs() as logs:
            DbManagerBuilder().use_sqlite().use_batches().build()
        assert logs[-1]["event"] == "builder.built"
        assert "engine" in logs[-1]["contracts"]


class TestValidation:
    def test_missing_engine(self):
        with pytest.raises(MissingRegistrationError, match="engine"):
            DbManagerBuilder().use_version_detector().use_batches().build()

    def test_missing_detector(self):
        with pytest.raises(MissingRegistrationError, match="version_detector"):
            DbManagerBuilder().use_sqlite(with_defaults=False).use_batches().build()

    def test_missing_locator(self):
        with pytest.raises(MissingRegistrationError, match="batch_locator"):
            DbManagerBuilder().use_sqlite().build()

    def test_duplicate_engine(self):
        with pytest.raises(DuplicateRegistrationError) as exc_info:
            DbManagerBuilder().use_sqlite().use_adapter(SQLiteAdapter()).use_batches().build()
        assert exc_info.value.contract == "engine"
        assert exc_info.value.count == 2

    def test_duplicate_detector(self):
        with pytest.raises(DuplicateRegistrationError, match="version_detector"):
            (
                DbManagerBuilder()
                .use_sqlite()
                .use_version_detector()
                .use_version_detector()
                .use_batches()
                .build()
            )

    def test_duplicate_optional(self):
        with pytest.raises(DuplicateRegistrationError, match="version_upgrader"):
            (
                DbManagerBuilder()
                .use_sqlite()
                .use_batches()
                .use_version_upgrader()
                .use_version_upgrader()
                .build()
            )

    def test_direct_and_temporary_locator(self):
        with pytest.raises(DuplicateRegistrationError, match="batch_locator"):
            (
                DbManagerBuilder()
                .use_sqlite()
                .register(Contract.BATCH_LOCATOR, DictionaryBatchLocator())
                .use_batches()
                .build()
            )

    def test_direct_locator(self):
        locator = DictionaryBatchLocator()
        manager = DbManagerBuilder().use_sqlite().register(Contract.BATCH_LOCATOR, locator).build()
        assert manager.batch_locator is locator

    def test_unresolved_temporary(self):
        builder = DbManagerBuilder().use_sqlite().use_batches()
        builder.register(Contract.CREATOR, ScriptCreator(), temporary=True)
        with pytest.raises(TemporaryRegistrationError, match="creator"):
            builder.build()

    def test_callback_locator_cannot_serve_upgrader(self):
        with pytest.raises(ConfigurationError, match="BatchNameVersionUpgrader needs a script batch locator"):
            DbManagerBuilder().use_sqlite().use_callback_batches(_seed).use_version_upgrader().build()

    def test_callback_locator_with_script_locator(self):
        manager = (
            DbManagerBuilder()
            .use_sqlite()
            .use_callback_batches(_seed)
            .use_script_directory(SCRIPTS_DIR)
            .use_version_upgrader()
            .build()
        )
        assert manager.max_version == 3

    def test_named_detector_needs_script_locator(self):
        with pytest.raises(ConfigurationError):
            (
                DbManagerBuilder()
                .use_sqlite()
                .use_version_detector(ScriptVersionDetector("DetectVersion"))
                .use_callback_batches(_seed)
                .build()
            )

    def test_invalid_upgrader_range(self):
        with pytest.raises(InvalidVersionRangeError):
            DbManagerBuilder().use_sqlite().use_batches().use_version_upgrader(FixedRangeUpgrader(5, 2)).build()

    def test_invalid_component_bounds(self):
        processor = ScriptCleanupProcessor()
        processor.min_version, processor.max_version = 4, 1
        with pytest.raises(InvalidVersionRangeError) as exc_info:
            DbManagerBuilder().use_sqlite().use_cleanup_processor(processor).use_batches().build()
        assert exc_info.value.context.metadata["component"] == "ScriptCleanupProcessor"


class TestBuildOnce:
    def test_second_build_rejected(self):
        builder = DbManagerBuilder().use_sqlite().use_batches()
        builder.build()
        assert builder.already_built
        with pytest.raises(ConfigurationError, match="already"):
            builder.build()

    def test_register_after_build_rejected(self):
        builder = DbManagerBuilder().use_sqlite().use_batches()
        builder.build()
        with pytest.raises(ConfigurationError):
            builder.use_version_upgrader()

    def test_failed_build_not_marked(self):
        builder = DbManagerBuilder().use_sqlite()
        with pytest.raises(MissingRegistrationError):
            builder.build()
        assert not builder.already_built
        builder.use_batches().build()
        assert builder.already_built


class TestFromSettings:
    def test_sqlite_with_scripts(self, db_path):
        settings = DbManagerSettings(
            _env_file=None,
            database=str(db_path),
            script_dirs=[SCRIPTS_DIR],
            record_version=True,
            cleanup_batch="Maintenance",
        )
        manager = DbManagerBuilder.from_settings(settings).build()
        assert manager.adapter.path == str(db_path)
        assert isinstance(manager.version_upgrader, BatchNameVersionUpgrader)
        assert manager.version_upgrader.record_version
        assert manager.options.cleanup_batch == "Maintenance"
        assert manager.max_version == 3

    def test_without_scripts(self):
        settings = DbManagerSettings(_env_file=None, database=":memory:")
        manager = DbManagerBuilder.from_settings(settings).build()
        assert manager.version_upgrader is None
        assert manager.get_batch_names() == []

    def test_postgresql(self):
        settings = DbManagerSettings(_env_file=None, engine="postgresql", dsn="dbname=app")
        manager = DbManagerBuilder.from_settings(settings).build()
        assert isinstance(manager.adapter, PostgreSQLAdapter)
        assert manager.adapter.config.dsn == "dbname=app"
