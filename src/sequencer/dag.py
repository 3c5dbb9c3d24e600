"""Dependency graph for operation ordering.

This module provides the DependencyGraph class that builds and validates the
dependency graph from resolved tasks.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from sequencer.errors import CircularDependencyError, MissingDependencyError
from sequencer.models import Task

_FILE_SUFFIX = ".py"


class DependencyGraph:
    """Directed graph of tasks, with edges from each task to its dependencies.

    Dependency references may name an operation by identity or by file name.
    References to operations in ``known`` but outside ``tasks`` (typically
    operations completed by an earlier run) are satisfied externally and add
    no edge.
    """

    def __init__(self, tasks: Sequence[Task], known: Iterable[str] = ()) -> None:
        """Build the graph.

        Args:
            tasks: Tasks to order, sorted by timestamp.
            known: Identities of every discovered operation, including ones
                not being executed.

        Raises:
            MissingDependencyError: If a reference matches no known operation.

        """
        self._tasks = list(tasks)
        self._order = {task.identity: index for index, task in enumerate(self._tasks)}
        self._known = set(known) | set(self._order)
        self._graph: dict[str, list[str]] = {}
        self._reverse_graph: dict[str, list[str]] = {}

        self._build_graph()

    def _build_graph(self) -> None:
        """Build the forward and reverse dependency graphs."""
        for identity in self._order:
            self._graph[identity] = []
            self._reverse_graph[identity] = []

        for task in self._tasks:
            deps = {self._resolve_reference(task.identity, ref) for ref in task.dependencies}
            in_scope = sorted((dep for dep in deps if dep in self._order), key=self._order.__getitem__)
            self._graph[task.identity] = in_scope
            for dep in in_scope:
                self._reverse_graph[dep].append(task.identity)

    def _resolve_reference(self, dependent: str, reference: str) -> str:
        identity = reference.removesuffix(_FILE_SUFFIX)
        if identity not in self._known:
            raise MissingDependencyError(
                f"Operation '{dependent}' depends on '{reference}', "
                f"which is not a discovered operation"
            )
        return identity

    def validate(self) -> None:
        """Validate the graph has no cycles.

        Walks every task depth first, tracking the nodes on the current path
        (``visiting``) and the nodes already proven acyclic (``visited``).

        Raises:
            CircularDependencyError: If a dependency path returns to a node on
                the current path.

        """
        self.topological_order()

    def topological_order(self) -> list[str]:
        """Return identities in dependency order, stable on input order.

        Dependencies are emitted before their dependents; tasks without a path
        between them keep their input (timestamp) order.

        Raises:
            CircularDependencyError: If a cycle is detected.

        """
        visiting: set[str] = set()
        visited: set[str] = set()
        path: list[str] = []
        ordered: list[str] = []

        def visit(identity: str) -> None:
            if identity in visited:
                return
            if identity in visiting:
                raise CircularDependencyError([*path[path.index(identity) :], identity])

            visiting.add(identity)
            path.append(identity)
            for dependency in self._graph[identity]:
                visit(dependency)
            path.pop()
            visiting.discard(identity)
            visited.add(identity)
            ordered.append(identity)

        for task in self._tasks:
            visit(task.identity)
        return ordered

    def levels(self) -> dict[str, int]:
        """Compute each task's wave index by longest-path layering.

        Roots are at level 0; every other task sits one level above its
        deepest dependency.

        Raises:
            CircularDependencyError: If a cycle is detected.

        """
        level: dict[str, int] = {}
        for identity in self.topological_order():
            deps = self._graph[identity]
            level[identity] = 1 + max(level[dep] for dep in deps) if deps else 0
        return level

    def get_dependencies(self, identity: str) -> set[str]:
        """Get the tasks that this task depends on."""
        return set(self._graph.get(identity, ()))

    def get_dependents(self, identity: str) -> set[str]:
        """Get the tasks that depend on this task."""
        return set(self._reverse_graph.get(identity, ()))

    def get_transitive_dependents(self, identity: str) -> list[str]:
        """Get every task reachable through dependents, in input order."""
        found: set[str] = set()
        queue = list(self._reverse_graph.get(identity, ()))
        while queue:
            current = queue.pop()
            if current in found:
                continue
            found.add(current)
            queue.extend(self._reverse_graph.get(current, ()))
        return sorted(found, key=self._order.__getitem__)

    def get_depth(self) -> int:
        """Get the number of waves needed to run every task."""
        if not self._tasks:
            return 0
        return 1 + max(self.levels().values())
