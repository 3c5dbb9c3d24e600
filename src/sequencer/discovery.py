"""Operation discovery from timestamped operation files.

Operation files are named ``<YYYY_MM_DD_HHMMSS>_<name>.py`` and expose a
module-level ``operation`` attribute holding an ``Operation`` instance.
"""

from __future__ import annotations

import hashlib
import importlib.util
import logging
import re
import sys
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from pathlib import Path

from sequencer.errors import DuplicateOperationError, InvalidOperationError
from sequencer.models import (
    Capability,
    MigrationDescriptor,
    OperationDescriptor,
    OperationState,
    Task,
)
from sequencer.operation import Operation
from sequencer.store import ExecutionStateStore

logger = logging.getLogger(__name__)

OPERATION_FILE_PATTERN = re.compile(r"^(?P<timestamp>\d{4}_\d{2}_\d{2}_\d{6})_(?P<name>\w+)\.py$")

# Latest-record states that take an operation out of the pending set.
_SETTLED_STATES = frozenset({OperationState.COMPLETED, OperationState.SKIPPED})

_MODULE_PREFIX = "_sequencer_operation"


class OperationLoader:
    """Load operation instances from files, caching one instance per file."""

    def __init__(self) -> None:
        self._cache: dict[Path, Operation] = {}

    def load(self, location: Path) -> Operation:
        """Import an operation file and return its ``operation`` attribute.

        Args:
            location: Path to the operation file.

        Returns:
            The operation instance.

        Raises:
            InvalidOperationError: If the file cannot be imported or does not
                expose an ``Operation`` instance.

        """
        location = location.resolve()
        if location in self._cache:
            return self._cache[location]

        digest = hashlib.sha1(str(location).encode()).hexdigest()[:12]
        module_name = f"{_MODULE_PREFIX}_{location.stem}_{digest}"
        spec = importlib.util.spec_from_file_location(module_name, location)
        if spec is None or spec.loader is None:
            raise InvalidOperationError(f"Cannot load operation file: {location}")

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise InvalidOperationError(
                f"Failed to import operation file {location}: {e}"
            ) from e

        instance = getattr(module, "operation", None)
        if not isinstance(instance, Operation):
            raise InvalidOperationError(
                f"Operation file {location} must define a module-level 'operation' "
                f"that is an Operation instance"
            )

        self._cache[location] = instance
        return instance


class MigrationSource(ABC):
    """Provider of infrastructure migrations interleaved with operations.

    Migrations are applied directly by the orchestrator and never get an
    execution record; the source tracks what has been applied.
    """

    @abstractmethod
    def pending(self) -> list[MigrationDescriptor]:
        """Return migrations not yet applied, sorted by timestamp."""
        ...

    @abstractmethod
    def apply(self, migration: MigrationDescriptor) -> None:
        """Apply a single migration."""
        ...


class OperationDiscovery:
    """Discover operations in one or more directories."""

    def __init__(
        self,
        paths: Sequence[Path],
        store: ExecutionStateStore,
        loader: OperationLoader | None = None,
    ) -> None:
        """Initialise discovery.

        Args:
            paths: Directories scanned in order; files within a directory are
                scanned by name.
            store: State store consulted for completed operations.
            loader: Loader used to read capabilities from each operation.

        """
        self._paths = list(paths)
        self._store = store
        self._loader = loader or OperationLoader()

    @property
    def loader(self) -> OperationLoader:
        """The loader used to instantiate operations."""
        return self._loader

    def discover(self) -> list[OperationDescriptor]:
        """Return every discovered operation, stably sorted by timestamp.

        Raises:
            DuplicateOperationError: If two files share an identity.
            InvalidOperationError: If a file does not expose an operation.

        """
        descriptors: list[OperationDescriptor] = []
        seen: dict[str, Path] = {}

        for directory in self._paths:
            if not directory.is_dir():
                logger.debug("Skipping missing operations directory: %s", directory)
                continue

            for file_path in sorted(directory.glob("*.py")):
                if OPERATION_FILE_PATTERN.match(file_path.name) is None:
                    continue

                identity = file_path.stem
                if identity in seen:
                    raise DuplicateOperationError(
                        f"Operation '{identity}' is defined in both "
                        f"{seen[identity]} and {file_path}"
                    )
                seen[identity] = file_path
                descriptors.append(describe_operation(file_path, self._loader))

        descriptors.sort(key=lambda d: d.timestamp)
        logger.debug("Discovered %d operations", len(descriptors))
        return descriptors

    async def list_pending(
        self, include_completed: bool = False
    ) -> list[OperationDescriptor]:
        """Return operations that still need to run.

        An operation is pending unless its latest execution record is
        completed or skipped.

        Args:
            include_completed: Return every discovered operation instead.

        """
        descriptors = self.discover()
        if include_completed:
            return descriptors
        return await self.filter_pending(descriptors)

    async def filter_pending(
        self, descriptors: Iterable[OperationDescriptor]
    ) -> list[OperationDescriptor]:
        """Keep the descriptors whose latest record is not completed or skipped."""
        pending: list[OperationDescriptor] = []
        for descriptor in descriptors:
            latest = await self._store.find_by_identity(descriptor.identity)
            if latest is None or latest.state not in _SETTLED_STATES:
                pending.append(descriptor)
        return pending


def merge_tasks(
    operations: Iterable[OperationDescriptor],
    migrations: Iterable[MigrationDescriptor] = (),
) -> list[Task]:
    """Merge operations and migrations into one timestamp-ordered task list.

    Migrations sort before operations sharing a timestamp.
    """
    tasks = [Task.for_migration(m) for m in migrations]
    tasks.extend(Task.for_operation(op) for op in operations)
    return sorted(tasks, key=lambda t: (t.timestamp, t.type != "migration"))


def describe_operation(location: Path, loader: OperationLoader) -> OperationDescriptor:
    """Build the descriptor for a single operation file.

    Raises:
        InvalidOperationError: If the file name lacks a timestamp prefix, or
            the file does not expose an operation.

    """
    match = OPERATION_FILE_PATTERN.match(location.name)
    if match is None:
        raise InvalidOperationError(
            f"Operation file name must look like YYYY_MM_DD_HHMMSS_name.py: {location.name}"
        )

    instance = loader.load(location)
    dependencies: tuple[str, ...] = ()
    execute_at = None
    if instance.supports(Capability.HAS_DEPENDENCIES):
        dependencies = tuple(instance.depends_on())  # type: ignore[attr-defined]
    if instance.supports(Capability.SCHEDULED):
        execute_at = instance.execute_at()  # type: ignore[attr-defined]

    return OperationDescriptor(
        identity=location.stem,
        timestamp=match["timestamp"],
        name=match["name"],
        location=location,
        capabilities=instance.capabilities,
        dependencies=dependencies,
        execute_at=execute_at,
    )
