"""Creators: bring a non-existing database to version 0."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from dbmanager.batches import Batch, TransactionRequirement
from dbmanager.components import ManagerComponent
from dbmanager.errors import DbManagerError
from dbmanager.logging import get_logger

if TYPE_CHECKING:
    from dbmanager.manager import DbManager

logger = get_logger(__name__)


class Creator(ManagerComponent, ABC):
    """At most one per manager."""

    @abstractmethod
    def perform(self, manager: DbManager) -> bool:
        ...


class ScriptCreator(Creator):
    """Runs a located creation batch, or the dialect's settings-table script.

    The default script is idempotent and leaves the database at version 0.
    """

    def __init__(self, batch_name: str | None = None):
        self.batch_name = batch_name

    @property
    def requires_script_locator(self) -> bool:  # type: ignore[override]
        return self.batch_name is not None

    def _resolve(self, manager: DbManager) -> Batch:
        name = self.batch_name or manager.options.creation_batch
        if name:
            return manager.get_batch(name)
        batch = Batch(name="<creation>")
        for command in manager.dialect.creation_commands(manager.options):
            batch.add_script(command, transaction_requirement=TransactionRequirement.DISALLOWED)
        return batch

    def perform(self, manager: DbManager) -> bool:
        try:
            result = manager.execute_batch(self._resolve(manager))
        except DbManagerError as e:
            logger.error("creation.failed", error=e.message, error_type=type(e).__name__)
            return False
        if not result:
            logger.error("creation.failed", error=result.error.message if result.error else None)
        return result.success


__all__ = [
    "Creator",
    "ScriptCreator",
]
