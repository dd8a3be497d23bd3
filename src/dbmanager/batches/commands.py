"""Batch commands, their parameters and callback results.

A command is either a raw **script** sent verbatim to the engine or a
Python **callback** invoked with the live connection. Never both, never
neither.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

from .types import ExecutionType, IsolationLevel, TransactionRequirement


@dataclass(frozen=True)
class CommandParameter:
    """A named, typed parameter.

    ``type`` is an engine-specific enum member (e.g. ``SQLiteType.TEXT``) or
    ``None`` to let the driver infer it.
    """

    name: str
    value: Any = None
    type: Any = None


class ParameterCollection:
    """Ordered parameter set with case-insensitive names."""

    def __init__(self, parameters: dict[str, Any] | list[CommandParameter] | None = None):
        self._items: dict[str, CommandParameter] = {}
        if isinstance(parameters, dict):
            for name, value in parameters.items():
                self.add(name, value)
        elif parameters:
            for parameter in parameters:
                self._set(parameter)

    def _set(self, parameter: CommandParameter) -> CommandParameter:
        name = parameter.name.strip() if parameter.name else ""
        if not name:
            raise ValueError("Parameter name must not be empty")
        self._items[name.lower()] = parameter
        return parameter

    def add(self, name: str, value: Any = None, type: Any = None) -> CommandParameter:
        """Add or replace a parameter."""
        return self._set(CommandParameter(name=name, value=value, type=type))

    def get(self, name: str) -> CommandParameter | None:
        return self._items.get(name.lower())

    def remove(self, name: str) -> bool:
        return self._items.pop(name.lower(), None) is not None

    def clear(self) -> None:
        self._items.clear()

    def as_dict(self) -> dict[str, Any]:
        """Name -> value mapping for driver binding (names as declared)."""
        return {p.name: p.value for p in self._items.values()}

    def copy(self) -> ParameterCollection:
        return ParameterCollection(list(self._items.values()))

    def __getitem__(self, name: str) -> CommandParameter:
        try:
            return self._items[name.lower()]
        except KeyError:
            raise KeyError(name) from None

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._items

    def __iter__(self) -> Iterator[CommandParameter]:
        return iter(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParameterCollection):
            return NotImplemented
        return list(self._items.items()) == list(other._items.items())

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"ParameterCollection({[p.name for p in self]})"


@dataclass(frozen=True)
class CodeResult:
    """Return type for callbacks that need to report a failure without raising."""

    value: Any = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return not self.error


# (connection, transaction or None, parameters) -> value | CodeResult
CodeCallback = Callable[[Any, Any, ParameterCollection], Any]


@dataclass(frozen=True, eq=False)
class BatchCommand:
    """One step of a batch."""

    script: str | None = None
    code: CodeCallback | None = None
    execution_type: ExecutionType = ExecutionType.NON_QUERY
    transaction_requirement: TransactionRequirement = TransactionRequirement.DONT_CARE
    isolation_level: IsolationLevel | None = None
    parameters: ParameterCollection = field(default_factory=ParameterCollection)

    def __post_init__(self) -> None:
        if (self.script is None) == (self.code is None):
            raise ValueError("A command needs exactly one of script or code")
        if self.script is not None and not self.script.strip():
            raise ValueError("Script command must not be empty")
        if self.code is not None and not callable(self.code):
            raise TypeError(f"Command code must be callable, got {type(self.code).__name__}")
        # Accept plain strings ("Scalar") for the enum fields
        object.__setattr__(self, "execution_type", ExecutionType.parse(self.execution_type))
        object.__setattr__(
            self,
            "transaction_requirement",
            TransactionRequirement.parse(self.transaction_requirement),
        )
        if self.isolation_level is not None:
            object.__setattr__(self, "isolation_level", IsolationLevel.parse(self.isolation_level))
        if not isinstance(self.parameters, ParameterCollection):
            object.__setattr__(self, "parameters", ParameterCollection(self.parameters))

    @property
    def is_script(self) -> bool:
        return self.script is not None

    @property
    def is_code(self) -> bool:
        return self.code is not None

    def describe(self) -> str:
        """Short human-readable description for logs."""
        if self.script is not None:
            first_line = self.script.strip().splitlines()[0]
            return first_line if len(first_line) <= 60 else first_line[:57] + "..."
        return getattr(self.code, "__qualname__", repr(self.code))


__all__ = [
    "CommandParameter",
    "ParameterCollection",
    "CodeResult",
    "CodeCallback",
    "BatchCommand",
]
