"""Enumerations shared by batches, commands and engine adapters."""

from __future__ import annotations

from enum import Enum


def _normalize(value: str) -> str:
    return "".join(ch for ch in value.lower() if ch.isalnum())


class _ParseableEnum(str, Enum):
    """String enum accepting ``NonQuery``, ``non_query`` and ``NON-QUERY`` alike."""

    @classmethod
    def parse(cls, value: str | _ParseableEnum):
        if isinstance(value, cls):
            return value
        key = _normalize(str(value))
        for member in cls:
            if _normalize(member.name) == key or _normalize(member.value) == key:
                return member
        valid = ", ".join(m.name for m in cls)
        raise ValueError(f"Invalid {cls.__name__}: {value!r} (expected one of {valid})")


class ExecutionType(_ParseableEnum):
    """How a command is executed and what it yields."""

    NON_QUERY = "non_query"   # affected row count, -1 when not applicable
    SCALAR = "scalar"         # first column of first row
    READER = "reader"         # all rows, fully materialised


class TransactionRequirement(_ParseableEnum):
    """Per-command transaction policy, merged across a batch."""

    DONT_CARE = "dont_care"
    REQUIRED = "required"
    DISALLOWED = "disallowed"


class IsolationLevel(_ParseableEnum):
    """Transaction isolation levels understood by the adapters."""

    READ_UNCOMMITTED = "read_uncommitted"
    READ_COMMITTED = "read_committed"
    REPEATABLE_READ = "repeatable_read"
    SERIALIZABLE = "serializable"

    @property
    def sql(self) -> str:
        """SQL spelling, e.g. ``READ COMMITTED``."""
        return self.name.replace("_", " ")


__all__ = [
    "ExecutionType",
    "TransactionRequirement",
    "IsolationLevel",
]
