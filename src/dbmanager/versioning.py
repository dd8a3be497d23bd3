"""Version detectors: report the current schema version of a database."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from dbmanager.batches import Batch, ExecutionType, TransactionRequirement
from dbmanager.components import ManagerComponent
from dbmanager.logging import get_logger
from dbmanager.state import DbState

if TYPE_CHECKING:
    from dbmanager.manager import DbManager

logger = get_logger(__name__)


@dataclass(frozen=True)
class VersionDetection:
    """Outcome of a detection run.

    ``state`` lets a detector force a state (typically
    ``DAMAGED_OR_INVALID``); ``None`` lets the manager derive it from the
    version.
    """

    valid: bool
    version: int = -1
    state: DbState | None = None
    error: str | None = None

    @classmethod
    def of(cls, version: int) -> VersionDetection:
        return cls(valid=True, version=version)

    @classmethod
    def invalid(cls, error: str | None = None) -> VersionDetection:
        return cls(valid=False, version=-1, state=DbState.DAMAGED_OR_INVALID, error=error)


class VersionDetector(ManagerComponent, ABC):
    """Exactly one per manager."""

    @abstractmethod
    def detect(self, manager: DbManager) -> VersionDetection:
        ...


def _to_version(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return -1
    try:
        return int(str(value).strip())
    except ValueError:
        return -1


class ScriptVersionDetector(VersionDetector):
    """
    Detects the version by running scalar commands one at a time.

    Each result becomes the candidate version; detection stops at the first
    result ``<= 0``. Without a custom batch the dialect's settings-table
    detection script is used.

    Args:
        batch_name: Name of a located batch replacing the default detection script
        batch: Explicit batch replacing the default detection script
    """

    def __init__(self, batch_name: str | None = None, batch: Batch | None = None):
        self.batch_name = batch_name
        self.batch = batch

    @property
    def requires_script_locator(self) -> bool:  # type: ignore[override]
        return self.batch is None and self.batch_name is not None

    def _resolve(self, manager: DbManager) -> Batch:
        if self.batch is not None and not self.batch.is_empty:
            return self.batch
        name = self.batch_name or manager.options.version_detection_batch
        if name:
            return manager.get_batch(name)

        batch = Batch(name="<version-detection>")
        for command in manager.dialect.version_detection_commands(manager.options):
            batch.add_script(
                command,
                execution_type=ExecutionType.SCALAR,
                transaction_requirement=TransactionRequirement.DISALLOWED,
            )
        return batch

    def detect(self, manager: DbManager) -> VersionDetection:
        version = -1
        for step in self._resolve(manager).split_commands():
            result = manager.execute_batch(step, want_result=True, read_only=True)
            if not result:
                logger.error(
                    "version.detection_failed",
                    error=result.error.message if result.error else None,
                )
                return VersionDetection.invalid(result.error.message if result.error else None)
            version = _to_version(result.value)
            if version <= 0:
                break
        return VersionDetection.of(version)


__all__ = [
    "VersionDetection",
    "VersionDetector",
    "ScriptVersionDetector",
]
