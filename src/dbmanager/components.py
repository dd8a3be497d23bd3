"""Common base for the collaborators a manager is composed of."""

from __future__ import annotations

from typing import TYPE_CHECKING

from dbmanager.logging import get_logger

if TYPE_CHECKING:
    from dbmanager.manager import DbManager

logger = get_logger(__name__)


class ManagerComponent:
    """
    Base for detectors, upgraders and processors.

    ``requires_script_locator`` tells the builder that the component looks
    batches up by name, so building without any batch locator is a
    configuration error. ``min_version`` / ``max_version`` bound the database
    versions a processor accepts (inclusive, ``None`` = unbounded).
    """

    requires_script_locator: bool = False
    min_version: int | None = None
    max_version: int | None = None

    @property
    def component_name(self) -> str:
        return type(self).__name__

    def applies_to(self, manager: DbManager) -> bool:
        """Whether the manager's current version lies within this component's bounds."""
        version = manager.version
        if self.min_version is not None and version < self.min_version:
            logger.warning(
                "component.version_below_bound",
                component=self.component_name,
                version=version,
                min_version=self.min_version,
            )
            return False
        if self.max_version is not None and version > self.max_version:
            logger.warning(
                "component.version_above_bound",
                component=self.component_name,
                version=version,
                max_version=self.max_version,
            )
            return False
        return True

    def __repr__(self) -> str:
        return f"{self.component_name}()"


__all__ = [
    "ManagerComponent",
]
