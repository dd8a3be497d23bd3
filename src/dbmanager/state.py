"""Database readiness states."""

from __future__ import annotations

from enum import Enum


class DbState(str, Enum):
    """
    Readiness of the managed database, derived from version detection.

    Never set by application code; ``DbManager.detect_state()`` is the only
    writer.

    Attributes:
        UNINITIALIZED: Not detected yet, or closed
        NEW: Database does not exist yet (version 0)
        READY: At the newest version the upgrader supports
        OUTDATED: Supported, but older than the newest version
        READY_UNKNOWN: Usable, but no upgrader to judge the version
        TOO_OLD: Older than the oldest version the upgrader can start from
        TOO_NEW: Newer than the newest version the upgrader knows
        DAMAGED_OR_INVALID: Version detection failed or reported garbage
        CONNECTION_ERROR: The database could not be reached
    """

    UNINITIALIZED = "uninitialized"
    NEW = "new"
    READY = "ready"
    OUTDATED = "outdated"
    READY_UNKNOWN = "ready_unknown"
    TOO_OLD = "too_old"
    TOO_NEW = "too_new"
    DAMAGED_OR_INVALID = "damaged_or_invalid"
    CONNECTION_ERROR = "connection_error"

    # Aliases for the "ready, newest" / "ready, older" naming
    READY_NEW = "ready"
    READY_OLD = "outdated"

    @property
    def is_ready(self) -> bool:
        return self in (DbState.READY, DbState.OUTDATED, DbState.READY_UNKNOWN)

    @property
    def is_error(self) -> bool:
        return self in (DbState.DAMAGED_OR_INVALID, DbState.CONNECTION_ERROR)


__all__ = [
    "DbState",
]
