"""
Version upgraders: advance a database by exactly one version per call.

``BatchNameVersionUpgrader`` discovers its steps from batch names::

    Upgrade0000.sql   0 -> 1
    Upgrade0001.sql   1 -> 2
    Upgrade0002.sql   2 -> 3      min_version = 0, max_version = 3

The source version is taken from the ``source_version`` group of
``DbManagerOptions.upgrade_name_format`` (default ``.+?(?P<source_version>\\d{4}).*``).
Steps must be unique and contiguous.

Examples:
    >>> upgrader = BatchNameVersionUpgrader(record_version=True)
    >>> upgrader.upgrade(manager, 1)   # runs Upgrade0001, stores version 2
    True

Tags:
    upgrade, migration, forward-only, dbmanager

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from dbmanager.batches import ParameterCollection
from dbmanager.components import ManagerComponent
from dbmanager.errors import ConfigurationError, DbManagerError
from dbmanager.logging import get_logger

if TYPE_CHECKING:
    from dbmanager.manager import DbManager

logger = get_logger(__name__)


class VersionUpgrader(ManagerComponent, ABC):
    """At most one per manager. Steps are forward-only."""

    @abstractmethod
    def get_min_version(self, manager: DbManager) -> int:
        """Lowest version an upgrade can start from (``-1`` if none)."""
        ...

    @abstractmethod
    def get_max_version(self, manager: DbManager) -> int:
        """Newest version reachable (``-1`` if none)."""
        ...

    @abstractmethod
    def upgrade(self, manager: DbManager, source_version: int) -> bool:
        """Upgrade from ``source_version`` to ``source_version + 1``.

        Returns ``False`` on failure; details go to the log.
        """
        ...


class BatchNameVersionUpgrader(VersionUpgrader):
    """Upgrade steps are located batches whose names carry the source version.

    Args:
        name_format: Regex overriding ``DbManagerOptions.upgrade_name_format``
        record_version: Append a command storing the new version to every step
    """

    requires_script_locator = True

    def __init__(self, name_format: str | None = None, *, record_version: bool = False):
        self.name_format = name_format
        self.record_version = record_version

    def _pattern(self, manager: DbManager) -> re.Pattern[str]:
        return re.compile(self.name_format or manager.options.upgrade_name_format, re.IGNORECASE)

    def get_steps(self, manager: DbManager) -> dict[int, str]:
        """Source version -> batch name, sorted by version.

        Raises:
            ConfigurationError: Duplicate or non-contiguous source versions.
        """
        pattern = self._pattern(manager)
        steps: dict[int, str] = {}
        for name in manager.get_batch_names():
            match = pattern.match(name)
            if match is None:
                continue
            source_version = int(match.group("source_version"))
            if source_version in steps:
                raise ConfigurationError(
                    f"Ambiguous upgrade steps for version {source_version}: "
                    f"{steps[source_version]}, {name}"
                )
            steps[source_version] = name

        versions = sorted(steps)
        for previous, current in zip(versions, versions[1:]):
            if current != previous + 1:
                raise ConfigurationError(
                    f"Upgrade steps are not contiguous: missing version {previous + 1}"
                )
        return {v: steps[v] for v in versions}

    def get_min_version(self, manager: DbManager) -> int:
        steps = self.get_steps(manager)
        return min(steps) if steps else -1

    def get_max_version(self, manager: DbManager) -> int:
        steps = self.get_steps(manager)
        return max(steps) + 1 if steps else -1

    def upgrade(self, manager: DbManager, source_version: int) -> bool:
        try:
            name = self.get_steps(manager).get(source_version)
            if name is None:
                logger.error("upgrade.step_missing", source_version=source_version)
                return False

            batch = manager.get_batch(name)
            if self.record_version:
                parameters = ParameterCollection()
                parameters.add("version", str(source_version + 1))
                parameters.add("key", manager.options.version_key)
                batch.add_script(
                    manager.dialect.set_version_command(manager.options),
                    parameters=parameters,
                )

            logger.info(
                "upgrade.step_started",
                batch=name,
                source_version=source_version,
                target_version=source_version + 1,
            )
            result = manager.execute_batch(batch)
            if not result:
                logger.error(
                    "upgrade.step_failed",
                    batch=name,
                    source_version=source_version,
                    completed=result.completed,
                    error=result.error.message if result.error else None,
                )
                return False
            return True
        except DbManagerError as e:
            logger.error(
                "upgrade.step_failed",
                source_version=source_version,
                error=e.message,
                error_type=type(e).__name__,
            )
            return False


__all__ = [
    "VersionUpgrader",
    "BatchNameVersionUpgrader",
]
