"""Backup creators."""

from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dbmanager.adapters.sqlite import SQLiteAdapter
from dbmanager.components import ManagerComponent
from dbmanager.errors import DbManagerError
from dbmanager.logging import get_logger

if TYPE_CHECKING:
    from dbmanager.manager import DbManager

logger = get_logger(__name__)


class BackupCreator(ManagerComponent, ABC):
    """At most one per manager."""

    @abstractmethod
    def perform(self, manager: DbManager, target: Any) -> bool:
        """Back the database up to ``target``. Returns ``False`` on failure."""
        ...


class SQLiteBackupCreator(BackupCreator):
    """
    Copies a SQLite database with the online backup API.

    The source is read through a read-only connection. An optional
    pre-processing batch runs against the source first; an optional
    post-processing batch runs against the finished copy.

    Args:
        preprocessing_batch: Batch name run on the source before copying
        postprocessing_batch: Batch name run on the copy afterwards
    """

    def __init__(
        self,
        preprocessing_batch: str | None = None,
        postprocessing_batch: str | None = None,
    ):
        self.preprocessing_batch = preprocessing_batch
        self.postprocessing_batch = postprocessing_batch

    @property
    def requires_script_locator(self) -> bool:  # type: ignore[override]
        return bool(self.preprocessing_batch or self.postprocessing_batch)

    def perform(self, manager: DbManager, target: Any) -> bool:
        adapter = manager.adapter
        if not isinstance(adapter, SQLiteAdapter):
            logger.error("backup.unsupported_engine", engine=adapter.engine.value)
            return False

        target_path = Path(target)
        pre = self.preprocessing_batch or manager.options.backup_preprocessing_batch
        post = self.postprocessing_batch or manager.options.backup_postprocessing_batch
        try:
            if pre:
                result = manager.execute_batch(manager.get_batch(pre))
                if not result:
                    logger.error("backup.preprocessing_failed", batch=pre)
                    return False

            with manager.connection(read_only=True) as conn:
                adapter.backup(conn, target_path)

            if post:
                result = manager.execute_batch_on(SQLiteAdapter(target_path), manager.get_batch(post))
                if not result:
                    logger.error("backup.postprocessing_failed", batch=post, target=str(target_path))
                    return False
        except (DbManagerError, sqlite3.Error, OSError) as e:
            logger.error("backup.failed", target=str(target_path), error=str(e))
            return False

        logger.info("backup.created", target=str(target_path))
        return True


__all__ = [
    "BackupCreator",
    "SQLiteBackupCreator",
]
