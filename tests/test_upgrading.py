"""Tests for ``dbmanager.upgrading``: batch-name upgrade steps."""

from __future__ import annotations

import pytest

from dbmanager.builder import DbManagerBuilder
from dbmanager.errors import ConfigurationError
from dbmanager.state import DbState
from dbmanager.upgrading import BatchNameVersionUpgrader


def _manager(db_path, scripts, upgrader=None):
    return (
        DbManagerBuilder()
        .use_sqlite(db_path)
        .use_batches(scripts=scripts)
        .use_version_upgrader(upgrader or BatchNameVersionUpgrader(record_version=True))
        .build()
    )


class TestGetSteps:
    def test_fixture_directory(self, manager):
        upgrader = manager.version_upgrader
        assert upgrader.get_steps(manager) == {
            0: "Upgrade0000",
            1: "Upgrade0001",
            2: "Upgrade0002",
        }
        assert upgrader.get_min_version(manager) == 0
        assert upgrader.get_max_version(manager) == 3

    def test_no_steps(self, plain_manager):
        upgrader = BatchNameVersionUpgrader()
        assert upgrader.get_steps(plain_manager) == {}
        assert upgrader.get_min_version(plain_manager) == -1
        assert upgrader.get_max_version(plain_manager) == -1

    def test_steps_may_start_above_zero(self, db_path):
        manager = _manager(db_path, {"Upgrade0004": "SELECT 1;", "Upgrade0005": "SELECT 1;"})
        assert manager.min_version == 4
        assert manager.max_version == 6

    def test_duplicate_source_version_rejected(self, db_path):
        with pytest.raises(ConfigurationError, match="Ambiguous upgrade steps for version 1"):
            _manager(db_path, {"Upgrade0000": "SELECT 1;", "Upgrade0001": "SELECT 1;", "Upgrade0001b": "SELECT 1;"})

    def test_gap_rejected(self, db_path):
        with pytest.raises(ConfigurationError, match="missing version 1"):
            _manager(db_path, {"Upgrade0000": "SELECT 1;", "Upgrade0002": "SELECT 1;"})

    def test_custom_name_format(self, db_path):
        upgrader = BatchNameVersionUpgrader(r"step_(?P<source_version>\d+)")
        manager = _manager(db_path, {"Step_0": "SELECT 1;", "step_1": "SELECT 1;", "Upgrade0009": "SELECT 1;"}, upgrader)
        assert upgrader.get_steps(manager) == {0: "Step_0", 1: "step_1"}

    def test_name_format_from_options(self, db_path):
        manager = (
            DbManagerBuilder()
            .use_sqlite(db_path)
            .use_options(upgrade_name_format=r"v(?P<source_version>\d+)_.*")
            .use_batches(scripts={"v0_init": "SELECT 1;", "v1_more": "SELECT 1;"})
            .use_version_upgrader()
            .build()
        )
        assert manager.max_version == 2


class TestUpgradeStep:
    def test_record_version(self, db_path, stored_version, table_exists):
        manager = _manager(
            db_path,
            {
                "Upgrade0000": "CREATE TABLE [A] ([X] INTEGER);",
                "Upgrade0001": "CREATE TABLE [B] ([X] INTEGER);",
            },
        )
        manager.initialize()
        result = manager.upgrade()

        assert result.success
        assert result.steps == [0, 1]
        assert stored_version() == "2"
        assert table_exists("A") and table_exists("B")
        assert manager.state is DbState.READY

    def test_record_version_does_not_touch_located_batch(self, db_path):
        manager = _manager(db_path, {"Upgrade0000": "CREATE TABLE [A] ([X] INTEGER);"})
        manager.initialize()
        manager.upgrade()
        assert len(manager.get_batch("Upgrade0000")) == 1

    def test_missing_step_returns_false(self, manager):
        manager.create()
        assert manager.version_upgrader.upgrade(manager, 7) is False

    def test_failing_step_returns_false(self, db_path):
        manager = _manager(db_path, {"Upgrade0000": "INSERT INTO [Nope] VALUES (1);"})
        manager.initialize()
        manager.create()
        assert manager.version_upgrader.upgrade(manager, 0) is False
        assert manager.detect_state() is DbState.NEW

    def test_requires_script_locator(self):
        assert BatchNameVersionUpgrader.requires_script_locator
