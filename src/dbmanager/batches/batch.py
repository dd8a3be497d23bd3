"""Batch model and transaction-requirement resolution.

A ``Batch`` is an ordered sequence of ``BatchCommand``; insertion order is
execution order. Execution never mutates a batch, so the same batch can be
executed repeatedly.

Transaction resolution merges per-command requirements left to right::

    DONT_CARE  + X          -> X
    REQUIRED   + REQUIRED   -> REQUIRED
    DISALLOWED + DISALLOWED -> DISALLOWED
    REQUIRED   + DISALLOWED -> BatchTransactionConflictError

The conflict is raised before any connection is opened.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any

from dbmanager.errors import BatchTransactionConflictError

from .commands import BatchCommand, CodeCallback, ParameterCollection
from .types import ExecutionType, IsolationLevel, TransactionRequirement


class Batch:
    """Ordered set of commands executed as one logical unit."""

    def __init__(self, name: str | None = None, commands: Iterable[BatchCommand] | None = None):
        self.name = name
        self._commands: list[BatchCommand] = []
        for command in commands or ():
            self.add(command)

    @classmethod
    def from_commands(cls, *commands: BatchCommand, name: str | None = None) -> Batch:
        return cls(name=name, commands=commands)

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def add(self, command: BatchCommand) -> BatchCommand:
        if not isinstance(command, BatchCommand):
            raise TypeError(f"Expected BatchCommand, got {type(command).__name__}")
        self._commands.append(command)
        return command

    def add_script(
        self,
        script: str,
        execution_type: ExecutionType | str = ExecutionType.NON_QUERY,
        transaction_requirement: TransactionRequirement | str = TransactionRequirement.DONT_CARE,
        isolation_level: IsolationLevel | str | None = None,
        parameters: ParameterCollection | dict[str, Any] | None = None,
    ) -> BatchCommand:
        """Append a script command."""
        return self.add(
            BatchCommand(
                script=script,
                execution_type=execution_type,
                transaction_requirement=transaction_requirement,
                isolation_level=isolation_level,
                parameters=ParameterCollection() if parameters is None else parameters,
            )
        )

    def add_code(
        self,
        callback: CodeCallback,
        execution_type: ExecutionType | str = ExecutionType.NON_QUERY,
        transaction_requirement: TransactionRequirement | str = TransactionRequirement.DONT_CARE,
        isolation_level: IsolationLevel | str | None = None,
        parameters: ParameterCollection | dict[str, Any] | None = None,
    ) -> BatchCommand:
        """Append a callback command."""
        return self.add(
            BatchCommand(
                code=callback,
                execution_type=execution_type,
                transaction_requirement=transaction_requirement,
                isolation_level=isolation_level,
                parameters=ParameterCollection() if parameters is None else parameters,
            )
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def commands(self) -> tuple[BatchCommand, ...]:
        return tuple(self._commands)

    @property
    def is_empty(self) -> bool:
        return not self._commands

    def resolve_transaction_requirement(self) -> TransactionRequirement:
        """Merge the per-command requirements.

        Returns ``DONT_CARE`` when no command expresses a hard signal.

        Raises:
            BatchTransactionConflictError: A command requires a transaction
                and another one disallows it.
        """
        resolved = TransactionRequirement.DONT_CARE
        for index, command in enumerate(self._commands):
            requirement = command.transaction_requirement
            if requirement is TransactionRequirement.DONT_CARE:
                continue
            if resolved is TransactionRequirement.DONT_CARE:
                resolved = requirement
            elif resolved is not requirement:
                raise BatchTransactionConflictError(
                    f"Batch {self.name or '<unnamed>'} mixes commands that require "
                    f"and disallow a transaction"
                ).with_context(batch=self.name, command_index=index)
        return resolved

    @property
    def isolation_level(self) -> IsolationLevel | None:
        """Last explicit per-command isolation override, if any."""
        level = None
        for command in self._commands:
            if command.isolation_level is not None:
                level = command.isolation_level
        return level

    def split_commands(self) -> list[Batch]:
        """One single-command batch per command, in order."""
        return [Batch(name=self.name, commands=[command]) for command in self._commands]

    def clone(self, name: str | None = None) -> Batch:
        return Batch(name=name if name is not None else self.name, commands=self._commands)

    def extend(self, other: Batch) -> Batch:
        for command in other:
            self.add(command)
        return self

    def __iter__(self) -> Iterator[BatchCommand]:
        return iter(tuple(self._commands))

    def __len__(self) -> int:
        return len(self._commands)

    def __getitem__(self, index: int) -> BatchCommand:
        return self._commands[index]

    def __repr__(self) -> str:
        return f"Batch(name={self.name!r}, commands={len(self._commands)})"


__all__ = [
    "Batch",
]
