"""Resolve discovered tasks into an execution order or dependency waves."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from sequencer.dag import DependencyGraph
from sequencer.models import Task

logger = logging.getLogger(__name__)


class DependencyResolver:
    """Order tasks so that every dependency runs before its dependents.

    Resolution fails with a ``ConfigurationError`` subclass before any task is
    returned, so callers never see a partial order.
    """

    def __init__(self, known: Iterable[str] = ()) -> None:
        """Initialise the resolver.

        Args:
            known: Identities of every discovered operation. Dependencies on
                known operations outside the resolved tasks are treated as
                already satisfied.

        """
        self._known = frozenset(known)

    def build_graph(self, tasks: Sequence[Task]) -> DependencyGraph:
        """Build and validate the dependency graph for ``tasks``."""
        graph = DependencyGraph(tasks, self._known)
        graph.validate()
        return graph

    def sort_by_dependencies(self, tasks: Sequence[Task]) -> list[Task]:
        """Return tasks in a dependency-respecting, timestamp-stable order.

        Args:
            tasks: Tasks sorted by timestamp.

        Returns:
            The same tasks with every dependency placed before its dependents.

        Raises:
            CircularDependencyError: If the tasks' dependencies form a cycle.
            MissingDependencyError: If a dependency is not a known operation.

        """
        graph = DependencyGraph(tasks, self._known)
        by_identity = {task.identity: task for task in tasks}
        return [by_identity[identity] for identity in graph.topological_order()]

    def partition_into_waves(self, tasks: Sequence[Task]) -> list[list[Task]]:
        """Group tasks into the fewest waves that respect every dependency.

        A task's wave index is strictly greater than that of each dependency;
        within a wave, tasks keep their timestamp order.

        Raises:
            CircularDependencyError: If the tasks' dependencies form a cycle.
            MissingDependencyError: If a dependency is not a known operation.

        """
        levels = DependencyGraph(tasks, self._known).levels()
        waves: list[list[Task]] = [[] for _ in range(max(levels.values(), default=-1) + 1)]
        for task in tasks:
            waves[levels[task.identity]].append(task)

        logger.debug("Partitioned %d tasks into %d waves", len(tasks), len(waves))
        return waves
