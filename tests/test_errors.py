"""Tests for ``dbmanager.errors``: hierarchy, categories and context."""

from __future__ import annotations

import pytest

from dbmanager.errors import (
    BatchCommandError,
    BatchError,
    BatchNotFoundError,
    BatchTransactionConflictError,
    ConfigurationError,
    DatabaseConnectionError,
    DbManagerError,
    DuplicateRegistrationError,
    ErrorCategory,
    InvalidVersionRangeError,
    MissingRegistrationError,
    NotSupportedError,
    StateConflictError,
    UpgradeStepError,
    VersionOutOfRangeError,
    categorize_error,
    is_retryable,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        ("error", "base"),
        [
            (MissingRegistrationError("engine"), ConfigurationError),
            (DuplicateRegistrationError("creator", 2), ConfigurationError),
            (InvalidVersionRangeError(3, 1), ConfigurationError),
            (BatchTransactionConflictError("x"), BatchError),
            (BatchNotFoundError("x"), BatchError),
            (VersionOutOfRangeError("x"), StateConflictError),
            (NotSupportedError("x"), StateConflictError),
            (UpgradeStepError("x", source_version=1), DbManagerError),
        ],
    )
    def test_subclassing(self, error, base):
        assert isinstance(error, base)
        assert isinstance(error, DbManagerError)

    def test_categories(self):
        assert ConfigurationError("x").category is ErrorCategory.CONFIG
        assert DatabaseConnectionError("x").category is ErrorCategory.DATABASE
        assert UpgradeStepError("x", source_version=0).category is ErrorCategory.UPGRADE
        assert BatchCommandError("x", command_index=0, completed=0).category is ErrorCategory.BATCH
        assert StateConflictError("x").category is ErrorCategory.STATE


class TestErrorDetails:
    def test_messages(self):
        assert "engine" in str(MissingRegistrationError("engine"))
        assert "2 times" in str(DuplicateRegistrationError("creator", 2))
        assert str(BatchNotFoundError("Seed")) == "Batch not found: Seed"

    def test_structured_attributes(self):
        error = BatchCommandError("boom", command_index=2, completed=2, rolled_back=True)
        assert error.context.command_index == 2
        assert error.rolled_back
        assert UpgradeStepError("x", source_version=4).context.version == 4
        assert BatchNotFoundError("Seed").context.batch == "Seed"

    def test_cause_chained(self):
        cause = OSError("disk")
        error = DatabaseConnectionError("down", cause=cause)
        assert error.__cause__ is cause
        assert error.to_dict()["cause"] == "disk"

    def test_with_context(self):
        error = StateConflictError("nope").with_context(state="new", target="app.db")
        assert error.context.state == "new"
        assert error.context.metadata == {"target": "app.db"}

    def test_to_dict(self):
        data = UpgradeStepError("step failed", source_version=3).to_dict()
        assert data == {
            "error_type": "UpgradeStepError",
            "message": "step failed",
            "category": "UPGRADE",
            "retryable": False,
            "context": {"version": 3},
        }


class TestHelpers:
    def test_is_retryable(self):
        assert is_retryable(DatabaseConnectionError("x"))
        assert not is_retryable(ConfigurationError("x"))
        assert is_retryable(TimeoutError())
        assert not is_retryable(ValueError())

    def test_categorize(self):
        assert categorize_error(BatchNotFoundError("x")) is ErrorCategory.BATCH
        assert categorize_error(OSError()) is ErrorCategory.DATABASE
        assert categorize_error(TypeError()) is ErrorCategory.CONFIG
        assert categorize_error(RuntimeError()) is ErrorCategory.UNKNOWN
