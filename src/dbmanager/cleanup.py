"""Cleanup processors: database maintenance (vacuum, statistics, reindex)."""

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


class CleanupProcessor(ManagerComponent, ABC):
    """At most one per manager."""

    @abstractmethod
    def perform(self, manager: DbManager) -> bool:
        ...


class ScriptCleanupProcessor(CleanupProcessor):
    """Runs a located cleanup batch, or the dialect's maintenance commands.

    The default commands run outside any transaction (``VACUUM`` refuses
    to run inside one).
    """

    def __init__(self, batch_name: str | None = None):
        self.batch_name = batch_name

    @property
    def requires_script_locator(self) -> bool:  # type: ignore[override]
        return self.batch_name is not None

    def _resolve(self, manager: DbManager) -> Batch:
        name = self.batch_name or manager.options.cleanup_batch
        if name:
            return manager.get_batch(name)
        batch = Batch(name="<cleanup>")
        for command in manager.dialect.cleanup_commands():
            batch.add_script(command, transaction_requirement=TransactionRequirement.DISALLOWED)
        return batch

    def perform(self, manager: DbManager) -> bool:
        try:
            result = manager.execute_batch(self._resolve(manager))
        except DbManagerError as e:
            logger.error("cleanup.failed", error=e.message, error_type=type(e).__name__)
            return False
        if not result:
            logger.error("cleanup.failed", error=result.error.message if result.error else None)
        return result.success


__all__ = [
    "CleanupProcessor",
    "ScriptCleanupProcessor",
]
