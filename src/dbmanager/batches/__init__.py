"""Batches, commands and batch locators."""

from .batch import Batch
from .commands import BatchCommand, CodeCallback, CodeResult, CommandParameter, ParameterCollection
from .locators import (
    AggregateBatchLocator,
    BatchLocator,
    CallbackBatch,
    CallbackBatchLocator,
    DictionaryBatchLocator,
    DirectoryScriptBatchLocator,
    PackageScriptBatchLocator,
    ScriptBatchLocator,
    callback_batch,
    split_script,
)
from .result import BatchResult, CommandResult
from .types import ExecutionType, IsolationLevel, TransactionRequirement

__all__ = [
    "Batch",
    "BatchCommand",
    "CodeCallback",
    "CodeResult",
    "CommandParameter",
    "ParameterCollection",
    "BatchLocator",
    "AggregateBatchLocator",
    "CallbackBatch",
    "CallbackBatchLocator",
    "DictionaryBatchLocator",
    "DirectoryScriptBatchLocator",
    "PackageScriptBatchLocator",
    "ScriptBatchLocator",
    "callback_batch",
    "split_script",
    "BatchResult",
    "CommandResult",
    "ExecutionType",
    "IsolationLevel",
    "TransactionRequirement",
]
