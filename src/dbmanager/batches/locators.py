"""
Batch locators: resolve a logical batch name to a ``Batch``.

Batch names are matched case-insensitively. Every locator shares the same
script format::

    /* DBMANAGER:ExecutionType=Scalar */
    SELECT count(*) FROM [_DatabaseSettings];
    GO
    /* DBMANAGER:TransactionRequirement=Disallowed */
    VACUUM;

- a line consisting only of ``GO`` (case-insensitive, surrounding whitespace
  allowed) separates commands; pieces are trimmed and empty pieces dropped
- ``/* DBMANAGER:<Key>=<Value> */`` directives are stripped from the command
  text; supported keys are ``ExecutionType`` (default ``NonQuery``),
  ``TransactionRequirement`` and ``IsolationLevel``

Architecture:
    ::

        BatchLocator (ABC)
        ├── DictionaryBatchLocator     in-memory scripts and callbacks
        ├── ScriptBatchLocator         *.sql files in directories / packages
        │     ├── DirectoryScriptBatchLocator
        │     └── PackageScriptBatchLocator   (importlib.resources)
        ├── CallbackBatchLocator       @callback_batch functions, CallbackBatch classes
        └── AggregateBatchLocator      first hit wins, names unioned

Examples:
    >>> locator = DictionaryBatchLocator()
    >>> locator.add_script("Count", "/* DBMANAGER:ExecutionType=Scalar */ SELECT 1;")
    >>> locator.get_batch("count")[0].execution_type
    <ExecutionType.SCALAR: 'scalar'>

Tags:
    batch, locator, scripts, callbacks, dbmanager

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import inspect
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from types import ModuleType
from typing import Any, ClassVar

from dbmanager.logging import get_logger

from .batch import Batch
from .commands import BatchCommand, CodeCallback, ParameterCollection
from .types import ExecutionType, IsolationLevel, TransactionRequirement

logger = get_logger(__name__)

DEFAULT_COMMAND_SEPARATOR = "GO"
DEFAULT_SCRIPT_NAME_FORMAT = r"(?P<name>^.+?)(\.+[^.]*)(sql$)"

_DIRECTIVE = re.compile(
    r"/\*\s*DBMANAGER\s*:\s*(?P<key>[A-Za-z_]+)\s*=\s*(?P<value>[^*]*?)\s*\*/",
    re.IGNORECASE,
)


def split_script(script: str | None, separator: str | None = DEFAULT_COMMAND_SEPARATOR) -> list[str]:
    """Split a script into command texts on separator lines.

    With no separator the whole (trimmed) script is one command.
    """
    if script is None:
        return []
    script = script.replace("\r\n", "\n").replace("\r", "\n")
    if not script.strip():
        return []
    if separator is None or not separator.strip():
        return [script.strip()]
    pattern = re.compile(
        r"^[ \t]*" + re.escape(separator.strip()) + r"[ \t]*$",
        re.IGNORECASE | re.MULTILINE,
    )
    return [piece.strip() for piece in pattern.split(script) if piece.strip()]


def parse_directives(text: str) -> tuple[str, dict[str, str]]:
    """Strip ``DBMANAGER`` directives from a command, returning text and options."""
    options: dict[str, str] = {}
    for match in _DIRECTIVE.finditer(text):
        options[match.group("key").lower()] = match.group("value")
    return _DIRECTIVE.sub("", text).strip(), options


def parse_command(
    text: str,
    *,
    transaction_requirement: TransactionRequirement | None = None,
    parameters: ParameterCollection | None = None,
) -> BatchCommand | None:
    """Build a script command from raw text, honouring its directives.

    An explicit ``transaction_requirement`` overrides the directive.
    Returns ``None`` when only directives and whitespace remain.
    """
    script, options = parse_directives(text)
    if not script:
        return None

    execution_type = ExecutionType.parse(options.get("executiontype", ExecutionType.NON_QUERY))
    if transaction_requirement is None:
        transaction_requirement = TransactionRequirement.parse(
            options.get("transactionrequirement", TransactionRequirement.DONT_CARE)
        )
    isolation_level = options.get("isolationlevel")

    return BatchCommand(
        script=script,
        execution_type=execution_type,
        transaction_requirement=transaction_requirement,
        isolation_level=IsolationLevel.parse(isolation_level) if isolation_level else None,
        parameters=parameters.copy() if parameters is not None else ParameterCollection(),
    )


class BatchLocator(ABC):
    """Resolves batch names to batches.

    Subclasses implement ``_iter_names`` and ``_fill_batch``; the public
    methods validate arguments and handle case-insensitive de-duplication.
    ``provides_scripts`` is False for locators that only supply callbacks.
    """

    provides_scripts: bool = True

    def __init__(self, command_separator: str | None = DEFAULT_COMMAND_SEPARATOR):
        self.command_separator = command_separator

    def get_batch(self, name: str, command_separator: str | None = None) -> Batch | None:
        """Return the named batch, or ``None`` if this locator does not know it."""
        if name is None or not str(name).strip():
            raise ValueError("Batch name must not be empty")
        if command_separator is not None and not command_separator.strip():
            raise ValueError("Command separator must not be blank")

        separator = command_separator or self.command_separator
        batch = Batch(name=name)
        if not self._fill_batch(batch, name, separator):
            return None
        return batch

    def get_names(self) -> list[str]:
        """Known batch names, de-duplicated case-insensitively, sorted."""
        seen: dict[str, str] = {}
        for name in self._iter_names():
            if name is not None:
                seen.setdefault(name.lower(), name)
        return sorted(seen.values(), key=str.lower)

    def has_batch(self, name: str) -> bool:
        return name.lower() in {n.lower() for n in self.get_names()}

    def _add_script(
        self,
        batch: Batch,
        script: str,
        separator: str | None,
        transaction_requirement: TransactionRequirement | None = None,
    ) -> int:
        added = 0
        for piece in split_script(script, separator):
            command = parse_command(piece, transaction_requirement=transaction_requirement)
            if command is not None:
                batch.add(command)
                added += 1
        return added

    @abstractmethod
    def _iter_names(self) -> Iterable[str]:
        ...

    @abstractmethod
    def _fill_batch(self, batch: Batch, name: str, command_separator: str | None) -> bool:
        ...


class _NameDict(dict):
    """dict keyed case-insensitively, remembering the original spelling."""

    def __init__(self, items: dict[str, Any] | None = None):
        super().__init__()
        self._display: dict[str, str] = {}
        for key, value in (items or {}).items():
            self[key] = value

    def __setitem__(self, key: str, value: Any) -> None:
        self._display[key.lower()] = key
        super().__setitem__(key.lower(), value)

    def __getitem__(self, key: str) -> Any:
        return super().__getitem__(key.lower())

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and super().__contains__(key.lower())

    def get(self, key: str, default: Any = None) -> Any:
        return super().get(key.lower(), default)

    def display_names(self) -> list[str]:
        return [self._display[k] for k in self.keys()]


class DictionaryBatchLocator(BatchLocator):
    """Batches held in memory: scripts, callbacks and per-name transaction requirements.

    When a name has both a script and callbacks, the script commands come first.
    """

    def __init__(
        self,
        scripts: dict[str, str] | None = None,
        callbacks: dict[str, CodeCallback | list[CodeCallback]] | None = None,
        transaction_requirements: dict[str, TransactionRequirement] | None = None,
        command_separator: str | None = DEFAULT_COMMAND_SEPARATOR,
    ):
        super().__init__(command_separator)
        self.scripts = _NameDict(scripts)
        self.callbacks = _NameDict(
            {k: (v if isinstance(v, list) else [v]) for k, v in (callbacks or {}).items()}
        )
        self.transaction_requirements = _NameDict(transaction_requirements)

    def add_script(
        self,
        name: str,
        script: str,
        transaction_requirement: TransactionRequirement | None = None,
    ) -> DictionaryBatchLocator:
        self.scripts[name] = script
        if transaction_requirement is not None:
            self.transaction_requirements[name] = TransactionRequirement.parse(transaction_requirement)
        return self

    def add_callback(
        self,
        name: str,
        callback: CodeCallback,
        transaction_requirement: TransactionRequirement | None = None,
    ) -> DictionaryBatchLocator:
        existing = self.callbacks.get(name) or []
        self.callbacks[name] = existing + [callback]
        if transaction_requirement is not None:
            self.transaction_requirements[name] = TransactionRequirement.parse(transaction_requirement)
        return self

    def _iter_names(self) -> Iterable[str]:
        yield from self.scripts.display_names()
        yield from self.callbacks.display_names()

    def _fill_batch(self, batch: Batch, name: str, command_separator: str | None) -> bool:
        if name not in self.scripts and name not in self.callbacks:
            return False

        requirement = self.transaction_requirements.get(name)
        if name in self.scripts:
            self._add_script(batch, self.scripts[name], command_separator, requirement)
        for callback in self.callbacks.get(name) or []:
            batch.add_code(
                callback,
                transaction_requirement=requirement or TransactionRequirement.DONT_CARE,
            )
        return True


class ScriptBatchLocator(BatchLocator):
    """Batches read from ``*.sql`` files under one or more roots.

    A root is anything with ``iterdir()``, ``is_file()``, ``name`` and
    ``read_text()``: a ``pathlib.Path`` or an ``importlib.resources``
    traversable. The batch name is extracted from the file name with
    ``name_format`` (group ``name``); ``Upgrade0003.sql`` -> ``Upgrade0003``.
    """

    def __init__(
        self,
        roots: Iterable[Any],
        *,
        recursive: bool = False,
        encoding: str = "utf-8",
        name_format: str = DEFAULT_SCRIPT_NAME_FORMAT,
        command_separator: str | None = DEFAULT_COMMAND_SEPARATOR,
    ):
        super().__init__(command_separator)
        self.roots = list(roots)
        self.recursive = recursive
        self.encoding = encoding
        self.name_format = re.compile(name_format, re.IGNORECASE)

    def _iter_files(self) -> Iterator[Any]:
        stack = [root for root in self.roots if root.is_dir()]
        while stack:
            current = stack.pop(0)
            for entry in sorted(current.iterdir(), key=lambda e: e.name):
                if entry.is_file():
                    yield entry
                elif self.recursive and entry.is_dir():
                    stack.append(entry)

    def _batch_name(self, file_name: str) -> str | None:
        match = self.name_format.match(file_name)
        if match is None:
            return None
        name = match.group("name")
        return name if name and name.strip() else None

    def _iter_names(self) -> Iterable[str]:
        for entry in self._iter_files():
            name = self._batch_name(entry.name)
            if name is not None:
                yield name

    def _fill_batch(self, batch: Batch, name: str, command_separator: str | None) -> bool:
        for entry in self._iter_files():
            candidate = self._batch_name(entry.name)
            if candidate is None or candidate.lower() != name.lower():
                continue
            script = entry.read_text(encoding=self.encoding)
            added = self._add_script(batch, script, command_separator)
            logger.debug("locator.script_loaded", batch=name, file=entry.name, commands=added)
            return True
        return False


class DirectoryScriptBatchLocator(ScriptBatchLocator):
    """Script batches from filesystem directories."""

    def __init__(self, *directories: str | Path, **kwargs: Any):
        super().__init__([Path(d) for d in directories], **kwargs)


class PackageScriptBatchLocator(ScriptBatchLocator):
    """Script batches shipped as package resources.

    Usage:
        PackageScriptBatchLocator("myapp.db", "scripts")
    """

    def __init__(self, package: str | ModuleType, subdirectory: str | None = None, **kwargs: Any):
        root = resources.files(package)
        if subdirectory:
            for part in subdirectory.replace("\\", "/").split("/"):
                if part:
                    root = root.joinpath(part)
        super().__init__([root], **kwargs)


# =============================================================================
# CALLBACK BATCHES
# =============================================================================


@dataclass(frozen=True)
class CallbackBatchInfo:
    """Metadata attached to a callback by ``@callback_batch``."""

    name: str | None = None
    transaction_requirement: TransactionRequirement = TransactionRequirement.DONT_CARE
    isolation_level: IsolationLevel | None = None
    execution_type: ExecutionType = ExecutionType.NON_QUERY


_CALLBACK_ATTR = "__dbmanager_batch__"


class CallbackBatch(ABC):
    """Class-based callback batch.

    A fresh instance is created for every execution. Class attributes
    provide the defaults ``@callback_batch`` can override.
    """

    batch_name: ClassVar[str | None] = None
    transaction_requirement: ClassVar[TransactionRequirement] = TransactionRequirement.DONT_CARE
    isolation_level: ClassVar[IsolationLevel | None] = None
    execution_type: ClassVar[ExecutionType] = ExecutionType.NON_QUERY

    @abstractmethod
    def execute(self, connection: Any, transaction: Any, parameters: ParameterCollection) -> Any:
        ...


def callback_batch(
    name: str | None = None,
    *,
    transaction_requirement: TransactionRequirement | str = TransactionRequirement.DONT_CARE,
    isolation_level: IsolationLevel | str | None = None,
    execution_type: ExecutionType | str = ExecutionType.NON_QUERY,
) -> Callable[[Any], Any]:
    """Mark a function or ``CallbackBatch`` subclass as a named batch.

    Usage:
        @callback_batch("SeedDefaults", transaction_requirement="Required")
        def seed(connection, transaction, parameters):
            connection.execute("INSERT INTO ...")
    """
    info = CallbackBatchInfo(
        name=name,
        transaction_requirement=TransactionRequirement.parse(transaction_requirement),
        isolation_level=IsolationLevel.parse(isolation_level) if isolation_level else None,
        execution_type=ExecutionType.parse(execution_type),
    )

    def decorator(target: Any) -> Any:
        setattr(target, _CALLBACK_ATTR, info)
        return target

    return decorator


def _info_for(target: Any) -> CallbackBatchInfo:
    info = getattr(target, _CALLBACK_ATTR, None)
    if inspect.isclass(target) and issubclass(target, CallbackBatch):
        # Decorator overrides the class attributes when present
        if info is not None and info.name is not None:
            return info
        base = info or CallbackBatchInfo(
            transaction_requirement=target.transaction_requirement,
            isolation_level=target.isolation_level,
            execution_type=target.execution_type,
        )
        return CallbackBatchInfo(
            name=target.batch_name or target.__name__,
            transaction_requirement=base.transaction_requirement,
            isolation_level=base.isolation_level,
            execution_type=base.execution_type,
        )
    if info is None:
        info = CallbackBatchInfo()
    if info.name is None:
        return CallbackBatchInfo(
            name=target.__name__,
            transaction_requirement=info.transaction_requirement,
            isolation_level=info.isolation_level,
            execution_type=info.execution_type,
        )
    return info


class CallbackBatchLocator(BatchLocator):
    """Batches backed by Python callables.

    Sources may be modules (scanned for ``@callback_batch`` functions and
    concrete ``CallbackBatch`` subclasses defined in them), ``CallbackBatch``
    subclasses or decorated functions.
    """

    provides_scripts = False

    def __init__(self, *sources: ModuleType | type | Callable[..., Any]):
        super().__init__(command_separator=None)
        self._entries: dict[str, tuple[str, Any, CallbackBatchInfo]] = {}
        for source in sources:
            if inspect.ismodule(source):
                self.scan(source)
            else:
                self.register(source)

    def register(self, target: Any, name: str | None = None) -> CallbackBatchLocator:
        if not callable(target):
            raise TypeError(f"Callback batch must be callable, got {type(target).__name__}")
        if inspect.isclass(target) and not issubclass(target, CallbackBatch):
            raise TypeError(f"{target.__name__} does not derive from CallbackBatch")
        info = _info_for(target)
        batch_name = name or info.name
        self._entries[batch_name.lower()] = (batch_name, target, info)
        return self

    def scan(self, module: ModuleType) -> CallbackBatchLocator:
        for _, member in inspect.getmembers(module):
            if getattr(member, "__module__", None) != module.__name__:
                continue
            if inspect.isclass(member):
                if issubclass(member, CallbackBatch) and not inspect.isabstract(member):
                    self.register(member)
            elif inspect.isfunction(member) and hasattr(member, _CALLBACK_ATTR):
                self.register(member)
        return self

    def _iter_names(self) -> Iterable[str]:
        return [display for display, _, _ in self._entries.values()]

    def _fill_batch(self, batch: Batch, name: str, command_separator: str | None) -> bool:
        entry = self._entries.get(name.lower())
        if entry is None:
            return False
        _, target, info = entry

        if inspect.isclass(target):
            def callback(connection: Any, transaction: Any, parameters: ParameterCollection) -> Any:
                return target().execute(connection, transaction, parameters)
            callback.__qualname__ = target.__qualname__
        else:
            callback = target

        batch.add_code(
            callback,
            execution_type=info.execution_type,
            transaction_requirement=info.transaction_requirement,
            isolation_level=info.isolation_level,
        )
        return True


class AggregateBatchLocator(BatchLocator):
    """Queries several locators in order; the first one that knows a name wins."""

    def __init__(self, locators: Iterable[BatchLocator] | None = None):
        super().__init__()
        self.locators: list[BatchLocator] = list(locators or [])

    @property
    def provides_scripts(self) -> bool:  # type: ignore[override]
        return any(locator.provides_scripts for locator in self.locators)

    def add(self, locator: BatchLocator) -> AggregateBatchLocator:
        self.locators.append(locator)
        return self

    def get_batch(self, name: str, command_separator: str | None = None) -> Batch | None:
        if name is None or not str(name).strip():
            raise ValueError("Batch name must not be empty")
        for locator in self.locators:
            batch = locator.get_batch(name, command_separator)
            if batch is not None:
                return batch
        return None

    def _iter_names(self) -> Iterable[str]:
        for locator in self.locators:
            yield from locator.get_names()

    def _fill_batch(self, batch: Batch, name: str, command_separator: str | None) -> bool:
        found = self.get_batch(name, command_separator)
        if found is None:
            return False
        batch.extend(found)
        return True


__all__ = [
    "DEFAULT_COMMAND_SEPARATOR",
    "split_script",
    "parse_directives",
    "parse_command",
    "BatchLocator",
    "DictionaryBatchLocator",
    "ScriptBatchLocator",
    "DirectoryScriptBatchLocator",
    "PackageScriptBatchLocator",
    "CallbackBatch",
    "CallbackBatchInfo",
    "callback_batch",
    "CallbackBatchLocator",
    "AggregateBatchLocator",
]
