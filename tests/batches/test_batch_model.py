"""Tests for ``dbmanager.batches``: commands, parameters, batches and results."""

from __future__ import annotations

import pytest

from dbmanager.adapters.types import SQLiteType
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
)
from dbmanager.errors import BatchCommandError, BatchTransactionConflictError


def _noop(connection, transaction, parameters):
    return None


class TestEnumParsing:
    @pytest.mark.parametrize("raw", ["NonQuery", "non_query", "NON-QUERY", "nonquery"])
    def test_execution_type_spellings(self, raw):
        assert ExecutionType.parse(raw) is ExecutionType.NON_QUERY

    def test_transaction_requirement_spellings(self):
        assert TransactionRequirement.parse("DontCare") is TransactionRequirement.DONT_CARE
        assert TransactionRequirement.parse("Disallowed") is TransactionRequirement.DISALLOWED

    def test_parse_passes_members_through(self):
        assert IsolationLevel.parse(IsolationLevel.SERIALIZABLE) is IsolationLevel.SERIALIZABLE

    def test_parse_invalid(self):
        with pytest.raises(ValueError, match="Invalid ExecutionType"):
            ExecutionType.parse("sometimes")

    def test_isolation_sql(self):
        assert IsolationLevel.REPEATABLE_READ.sql == "REPEATABLE READ"


class TestParameterCollection:
    def test_names_case_insensitive(self):
        params = ParameterCollection()
        params.add("Version", 3)
        assert "version" in params
        assert params["VERSION"].value == 3
        assert params.get("vErSiOn").name == "Version"

    def test_add_replaces(self):
        params = ParameterCollection({"key": "a"})
        params.add("KEY", "b", SQLiteType.TEXT)
        assert len(params) == 1
        assert params["key"].value == "b"
        assert params["key"].type is SQLiteType.TEXT

    def test_remove_and_clear(self):
        params = ParameterCollection({"a": 1, "b": 2})
        assert params.remove("A") is True
        assert params.remove("A") is False
        params.clear()
        assert len(params) == 0

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            ParameterCollection().add("  ", 1)

    def test_missing_key_raises_keyerror(self):
        with pytest.raises(KeyError):
            ParameterCollection()["nope"]

    def test_as_dict_and_copy(self):
        params = ParameterCollection({"a": 1})
        clone = params.copy()
        clone.add("b", 2)
        assert params.as_dict() == {"a": 1}
        assert clone.as_dict() == {"a": 1, "b": 2}
        assert params != clone


class TestBatchCommand:
    def test_needs_script_or_code(self):
        with pytest.raises(ValueError):
            BatchCommand()

    def test_rejects_script_and_code(self):
        with pytest.raises(ValueError):
            BatchCommand(script="SELECT 1;", code=_noop)

    def test_rejects_blank_script(self):
        with pytest.raises(ValueError):
            BatchCommand(script="   ")

    def test_code_must_be_callable(self):
        with pytest.raises(TypeError):
            BatchCommand(code="not callable")

    def test_string_enums_parsed(self):
        command = BatchCommand(
            script="SELECT 1;",
            execution_type="Scalar",
            transaction_requirement="Required",
            isolation_level="Serializable",
        )
        assert command.execution_type is ExecutionType.SCALAR
        assert command.transaction_requirement is TransactionRequirement.REQUIRED
        assert command.isolation_level is IsolationLevel.SERIALIZABLE

    def test_dict_parameters_converted(self):
        command = BatchCommand(script="SELECT :a;", parameters={"a": 1})
        assert isinstance(command.parameters, ParameterCollection)
        assert command.parameters["a"].value == 1

    def test_describe(self):
        assert BatchCommand(script="SELECT 1;\nSELECT 2;").describe() == "SELECT 1;"
        assert BatchCommand(code=_noop).describe() == "_noop"

    def test_kind(self):
        assert BatchCommand(script="SELECT 1;").is_script
        assert BatchCommand(code=_noop).is_code


class TestTransactionResolution:
    def _batch(self, *requirements):
        batch = Batch(name="b")
        for requirement in requirements:
            batch.add_script("SELECT 1;", transaction_requirement=requirement)
        return batch

    def test_empty_is_dont_care(self):
        assert Batch().resolve_transaction_requirement() is TransactionRequirement.DONT_CARE

    def test_required_wins_over_dont_care(self):
        batch = self._batch(TransactionRequirement.REQUIRED, TransactionRequirement.DONT_CARE)
        assert batch.resolve_transaction_requirement() is TransactionRequirement.REQUIRED

    def test_dont_care_then_disallowed(self):
        batch = self._batch(TransactionRequirement.DONT_CARE, TransactionRequirement.DISALLOWED)
        assert batch.resolve_transaction_requirement() is TransactionRequirement.DISALLOWED

    def test_required_and_disallowed_conflict(self):
        batch = self._batch(
            TransactionRequirement.REQUIRED,
            TransactionRequirement.DONT_CARE,
            TransactionRequirement.DISALLOWED,
        )
        with pytest.raises(BatchTransactionConflictError) as exc_info:
            batch.resolve_transaction_requirement()
        assert exc_info.value.context.command_index == 2
        assert exc_info.value.context.batch == "b"


class TestBatch:
    def test_order_preserved(self):
        batch = Batch()
        first = batch.add_script("SELECT 1;")
        second = batch.add_code(_noop)
        assert batch.commands == (first, second)
        assert batch[1] is second
        assert len(batch) == 2

    def test_add_rejects_non_commands(self):
        with pytest.raises(TypeError):
            Batch().add("SELECT 1;")

    def test_isolation_level_is_last_override(self):
        batch = Batch()
        batch.add_script("SELECT 1;", isolation_level=IsolationLevel.READ_COMMITTED)
        batch.add_script("SELECT 2;", isolation_level=IsolationLevel.SERIALIZABLE)
        batch.add_script("SELECT 3;")
        assert batch.isolation_level is IsolationLevel.SERIALIZABLE

    def test_split_commands(self):
        batch = Batch.from_commands(
            BatchCommand(script="SELECT 1;"), BatchCommand(script="SELECT 2;"), name="pair"
        )
        parts = batch.split_commands()
        assert [len(p) for p in parts] == [1, 1]
        assert parts[1][0] is batch[1]
        assert all(p.name == "pair" for p in parts)

    def test_clone_is_independent(self):
        batch = Batch(name="a")
        batch.add_script("SELECT 1;")
        clone = batch.clone("b")
        clone.add_script("SELECT 2;")
        assert len(batch) == 1
        assert clone.name == "b"

    def test_iteration_snapshot(self):
        batch = Batch()
        batch.add_script("SELECT 1;")
        for _ in batch:
            batch.add_script("SELECT 2;")
        assert len(batch) == 2


class TestCodeResult:
    def test_success(self):
        assert CodeResult(value=3).success
        assert not CodeResult(error="boom").success


class TestBatchResult:
    def test_success_and_completed(self):
        result = BatchResult(batch_name="b", total=2)
        result.command_results.append(CommandResult(index=0, value=1))
        result.command_results.append(CommandResult(index=1, value=2))
        assert result
        assert result.completed == 2
        assert result.fully_executed

    def test_failure(self):
        error = BatchCommandError("boom", command_index=1, completed=1)
        result = BatchResult(batch_name="b", total=3, error=error)
        result.command_results.append(CommandResult(index=0, value=1))
        result.command_results.append(CommandResult(index=1, error="boom"))
        assert not result
        assert result.completed == 1
        assert not result.fully_executed
        with pytest.raises(BatchCommandError):
            result.raise_for_error()

    def test_to_dict(self):
        result = BatchResult(batch_name="b", total=1, transaction=TransactionRequirement.REQUIRED)
        data = result.to_dict()
        assert data["batch"] == "b"
        assert data["transaction"] == "required"
        assert data["error"] is None
