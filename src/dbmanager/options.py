"""Manager options shared by the default collaborators."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace

from dbmanager.batches.locators import DEFAULT_COMMAND_SEPARATOR
from dbmanager.batches.types import IsolationLevel, TransactionRequirement
from dbmanager.errors import ConfigurationError

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


@dataclass(frozen=True)
class DbManagerOptions:
    """
    Options for a manager and its default collaborators.

    Attributes:
        version_table: Settings table holding the version row
        name_column: Key column of the settings table
        value_column: Value column of the settings table
        version_key: Key of the version row
        version_detection_batch: Batch name replacing the default detection script
        creation_batch: Batch name replacing the default creation script
        cleanup_batch: Batch name replacing the default cleanup script
        backup_preprocessing_batch: Batch run on the source before a backup
        backup_postprocessing_batch: Batch run on the copy after a backup
        upgrade_name_format: Regex with a ``source_version`` group selecting upgrade batches
        command_separator: Line separating commands in script batches
        default_isolation_level: Isolation for ambient transactions without an override
        default_transaction_requirement: Policy when no command gives a hard signal
    """

    version_table: str = "_DatabaseSettings"
    name_column: str = "Name"
    value_column: str = "Value"
    version_key: str = "Database.Version"

    version_detection_batch: str | None = None
    creation_batch: str | None = None
    cleanup_batch: str | None = None
    backup_preprocessing_batch: str | None = None
    backup_postprocessing_batch: str | None = None

    upgrade_name_format: str = r".+?(?P<source_version>\d{4}).*"
    command_separator: str | None = DEFAULT_COMMAND_SEPARATOR

    default_isolation_level: IsolationLevel | None = IsolationLevel.READ_COMMITTED
    default_transaction_requirement: TransactionRequirement = TransactionRequirement.REQUIRED

    def __post_init__(self) -> None:
        for attr in ("version_table", "name_column", "value_column"):
            value = getattr(self, attr)
            if not value or not _IDENTIFIER.match(value):
                raise ConfigurationError(f"Invalid identifier for {attr}: {value!r}")
        if not self.version_key:
            raise ConfigurationError("version_key must not be empty")

        try:
            pattern = re.compile(self.upgrade_name_format)
        except re.error as e:
            raise ConfigurationError(f"Invalid upgrade_name_format: {e}", cause=e) from e
        if "source_version" not in pattern.groupindex:
            raise ConfigurationError("upgrade_name_format needs a 'source_version' group")

        if self.default_isolation_level is not None:
            object.__setattr__(
                self, "default_isolation_level", IsolationLevel.parse(self.default_isolation_level)
            )
        requirement = TransactionRequirement.parse(self.default_transaction_requirement)
        object.__setattr__(self, "default_transaction_requirement", requirement)

    def with_changes(self, **changes) -> DbManagerOptions:
        return replace(self, **changes)


__all__ = [
    "DbManagerOptions",
]
