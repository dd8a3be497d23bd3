"""
Structured error types for dbmanager.

Every failure the manager can report is a typed exception carrying a
category, a retry hint, structured context and an optional chained cause.
Callers branch on the type (``StateConflictError`` vs
``BatchTransactionConflictError``) and log ``to_dict()`` for observability.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                        DbManagerError                         │
        │        (category, retryable, context, cause)                 │
        ├──────────────────────────────────────────────────────────────┤
        │  ConfigurationError          DatabaseConnectionError         │
        │  (CONFIG)                    (DATABASE, retryable)           │
        │    MissingRegistrationError                                  │
        │    DuplicateRegistrationError VersionDetectionError          │
        │    TemporaryRegistrationError (DATABASE)                     │
        │    InvalidVersionRangeError                                  │
        │                              UpgradeStepError (UPGRADE)      │
        │  BatchError (BATCH)                                          │
        │    BatchTransactionConflictError                             │
        │    BatchCommandError         StateConflictError (STATE)      │
        │    BatchNotFoundError        VersionOutOfRangeError (STATE)  │
        │                              NotSupportedError (STATE)       │
        └──────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ DON'T: Raise plain Exception from manager code
    ✅ DO: Raise the narrowest DbManagerError subclass

    ❌ DON'T: Drop the driver exception when wrapping it
    ✅ DO: Pass it as ``cause=`` so ``__cause__`` is chained

Examples:
    >>> err = UpgradeStepError("step failed", source_version=3)
    >>> err.source_version
    3
    >>> err.to_dict()["category"]
    'UPGRADE'

Tags:
    error-handling, exception-hierarchy, dbmanager

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for classification and log routing."""

    CONFIG = "CONFIG"             # Builder / options problems
    DATABASE = "DATABASE"         # Connection, detection
    UPGRADE = "UPGRADE"           # Upgrade step failures
    BATCH = "BATCH"               # Batch resolution / execution
    STATE = "STATE"               # Operation illegal in current state
    INTERNAL = "INTERNAL"         # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        batch: Name of the batch being executed, if any
        command_index: Zero-based index of the failing command
        state: Database state at the time of the error
        version: Database version at the time of the error
        engine: Engine name (``sqlite``, ``postgresql``)
        metadata: Additional key-value pairs
    """

    batch: str | None = None
    command_index: int | None = None
    state: str | None = None
    version: int | None = None
    engine: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["batch", "command_index", "state", "version", "engine"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class DbManagerError(Exception):
    """
    Base exception for all dbmanager errors.

    Subclasses set ``default_category`` and ``default_retryable``. Nothing in
    dbmanager retries automatically; ``retryable`` is a hint for callers.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> DbManagerError:
        """
        Add context to this error (fluent API).

        Usage:
            raise BatchNotFoundError("missing").with_context(batch="Cleanup")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigurationError(DbManagerError):
    """Invalid or incomplete manager composition. Never retryable."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingRegistrationError(ConfigurationError):
    """A mandatory contract has no registration."""

    def __init__(self, contract: str, **kwargs: Any):
        super().__init__(f"No registration for mandatory contract: {contract}", **kwargs)
        self.contract = contract


class DuplicateRegistrationError(ConfigurationError):
    """A single-instance contract has more than one registration."""

    def __init__(self, contract: str, count: int, **kwargs: Any):
        super().__init__(
            f"Contract {contract} registered {count} times, at most one allowed",
            **kwargs,
        )
        self.contract = contract
        self.count = count


class TemporaryRegistrationError(ConfigurationError):
    """A temporary registration was not resolved during build."""

    def __init__(self, contract: str, **kwargs: Any):
        super().__init__(f"Unresolved temporary registration: {contract}", **kwargs)
        self.contract = contract


class InvalidVersionRangeError(ConfigurationError):
    """The upgrader reports ``min_version > max_version``."""

    def __init__(self, min_version: int, max_version: int, **kwargs: Any):
        super().__init__(
            f"Minimum version {min_version} is greater than maximum version {max_version}",
            **kwargs,
        )
        self.min_version = min_version
        self.max_version = max_version


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseConnectionError(DbManagerError):
    """The database could not be reached. Maps to ``CONNECTION_ERROR``."""

    default_category = ErrorCategory.DATABASE
    default_retryable = True


class VersionDetectionError(DbManagerError):
    """Version detection failed. Maps to ``DAMAGED_OR_INVALID``."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


# =============================================================================
# UPGRADE ERRORS
# =============================================================================


class UpgradeStepError(DbManagerError):
    """A single upgrade step failed or left the database at an unexpected version."""

    default_category = ErrorCategory.UPGRADE
    default_retryable = False

    def __init__(self, message: str, *, source_version: int, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.source_version = source_version
        self.context.version = source_version


# =============================================================================
# BATCH ERRORS
# =============================================================================


class BatchError(DbManagerError):
    """Base for batch resolution and execution errors."""

    default_category = ErrorCategory.BATCH
    default_retryable = False


class BatchTransactionConflictError(BatchError):
    """A batch mixes ``REQUIRED`` and ``DISALLOWED`` commands."""

    pass


class BatchCommandError(BatchError):
    """A command of a batch failed during execution."""

    def __init__(
        self,
        message: str,
        *,
        command_index: int,
        completed: int,
        rolled_back: bool = False,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.command_index = command_index
        self.completed = completed
        self.rolled_back = rolled_back
        self.context.command_index = command_index


class BatchNotFoundError(BatchError):
    """No locator knows a batch with the requested name."""

    def __init__(self, name: str, **kwargs: Any):
        super().__init__(f"Batch not found: {name}", **kwargs)
        self.name = name
        self.context.batch = name


# =============================================================================
# STATE ERRORS
# =============================================================================


class StateConflictError(DbManagerError):
    """The operation is not legal in the manager's current state."""

    default_category = ErrorCategory.STATE
    default_retryable = False


class VersionOutOfRangeError(StateConflictError):
    """Current or target version lies outside the supported range."""

    pass


class NotSupportedError(StateConflictError):
    """The optional collaborator needed for the operation is not configured."""

    pass


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, DbManagerError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, DbManagerError):
        return error.category
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.DATABASE
    if isinstance(error, (ValueError, TypeError)):
        return ErrorCategory.CONFIG
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "DbManagerError",
    # Config
    "ConfigurationError",
    "MissingRegistrationError",
    "DuplicateRegistrationError",
    "TemporaryRegistrationError",
    "InvalidVersionRangeError",
    # Database
    "DatabaseConnectionError",
    "VersionDetectionError",
    # Upgrade
    "UpgradeStepError",
    # Batch
    "BatchError",
    "BatchTransactionConflictError",
    "BatchCommandError",
    "BatchNotFoundError",
    # State
    "StateConflictError",
    "VersionOutOfRangeError",
    "NotSupportedError",
    # Utilities
    "is_retryable",
    "categorize_error",
]
