"""Outcome of a batch execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from dbmanager.errors import BatchCommandError

from .types import TransactionRequirement


@dataclass
class CommandResult:
    """Outcome of one executed command."""

    index: int
    value: Any = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class BatchResult:
    """Result of ``DbManager.execute_batch``.

    ``completed`` counts commands that finished successfully before the
    batch stopped. Without an ambient transaction those commands stay
    committed; with one, ``rolled_back`` tells whether they were undone.
    """

    batch_name: str | None = None
    total: int = 0
    transaction: TransactionRequirement = TransactionRequirement.DONT_CARE
    command_results: list[CommandResult] = field(default_factory=list)
    value: Any = None
    error: BatchCommandError | None = None
    rolled_back: bool = False

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def completed(self) -> int:
        return sum(1 for r in self.command_results if r.success)

    @property
    def fully_executed(self) -> bool:
        return self.success and self.completed == self.total

    def raise_for_error(self) -> BatchResult:
        """Raise the captured ``BatchCommandError``, if any."""
        if self.error is not None:
            raise self.error
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch": self.batch_name,
            "success": self.success,
            "completed": self.completed,
            "total": self.total,
            "transaction": self.transaction.value,
            "rolled_back": self.rolled_back,
            "value": self.value,
            "error": self.error.to_dict() if self.error else None,
        }

    def __bool__(self) -> bool:
        return self.success


__all__ = [
    "CommandResult",
    "BatchResult",
]
