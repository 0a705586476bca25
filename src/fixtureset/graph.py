"""Dependency graph resolution.

Expands a request for fixtures into its transitive closure and orders the
result so that every fixture comes after the fixtures it depends on. Ordering
uses Kahn's algorithm; when nodes remain after the traversal, the graph has a
cycle and one is reported in full rather than looping forever.
"""

from collections import deque
from typing import TYPE_CHECKING, Iterable, Mapping

from fixtureset.domain import FixtureDefinition
from fixtureset.errors import CyclicDependency, FixtureNotFound
from fixtureset.similarity import closest_name

if TYPE_CHECKING:
    from fixtureset.registry import FixtureRegistry

__all__ = ["resolve", "topological_order"]


class _DependencyGraph:
    """
    Internal helper to represent and traverse a directed graph of fixture dependencies.

    Each node is a qualified fixture name; each node maps to the set of nodes it
    depends on. Nodes are traversed in the order they were added wherever the
    dependencies allow it, so the output is deterministic.
    """

    def __init__(self):
        self._dependencies: dict[str, set[str]] = {}

    def add_dependencies(self, dependee: str, dependencies: Iterable[str]):
        """
        Add a node and the nodes it depends on.

        Args:
            dependee: The qualified name whose dependencies are being registered.
            dependencies: Qualified names this dependee depends on.
        """
        self._dependencies.setdefault(dependee, set()).update(dependencies)

    def traverse(self) -> list[str]:
        """
        Perform a topological traversal of the dependency graph.

        Returns:
            Qualified names in an order where all dependencies of each node come
            before the node itself.

        Raises:
            CyclicDependency: If any nodes remain that can never become ready.
        """
        remaining = {
            node: {dependency for dependency in dependencies if dependency in self._dependencies}
            for node, dependencies in self._dependencies.items()
        }
        dependents: dict[str, list[str]] = {node: [] for node in remaining}
        for node, dependencies in remaining.items():
            for dependency in dependencies:
                dependents[dependency].append(node)

        ready = deque(node for node, dependencies in remaining.items() if not dependencies)
        order = []

        while ready:
            next_item = ready.popleft()
            order.append(next_item)
            del remaining[next_item]

            for dependent in dependents[next_item]:
                dependencies = remaining[dependent]
                dependencies.discard(next_item)
                if not dependencies:
                    ready.append(dependent)

        if remaining:
            raise CyclicDependency(_find_cycle(remaining))

        return order


def _find_cycle(remaining: Mapping[str, set[str]]) -> list[str]:
    """Follow unresolved dependencies from any leftover node until one repeats.

    Every leftover node still has a leftover dependency, so the walk must
    eventually revisit a node.
    """
    path: list[str] = []
    seen: dict[str, int] = {}
    node = next(iter(remaining))
    while node not in seen:
        seen[node] = len(path)
        path.append(node)
        node = min(remaining[node])
    return path[seen[node]:] + [node]


def topological_order(edges: Mapping[str, Iterable[str]]) -> list[str]:
    """Order the keys of `edges` so that each comes after its dependencies.

    Args:
        edges: Mapping from a node to the nodes it depends on. Dependencies that
            are not themselves keys are treated as already satisfied.

    Raises:
        CyclicDependency: If the nodes form a cycle.
    """
    graph = _DependencyGraph()
    for node, dependencies in edges.items():
        graph.add_dependencies(node, dependencies)
    return graph.traverse()


def resolve(requested: Iterable[str], registry: "FixtureRegistry") -> list[FixtureDefinition]:
    """Resolve requested fixture names into an ordered list of definitions.

    Every dependency of every included definition appears exactly once, and
    always before the definitions that depend on it. The context sentinel is
    never a node.

    Args:
        requested: Local fixture names, resolved against the registry's visible
            fixtures.
        registry: A merged registry whose definitions are all qualified.

    Returns:
        The definitions needed for the request, in creation order.

    Raises:
        FixtureNotFound: If a requested name or a dependency cannot be found.
        CyclicDependency: If the dependencies form a cycle.
    """
    included: dict[str, FixtureDefinition] = {}
    pending = deque(registry.resolve_name(name) for name in requested)

    while pending:
        qualified_name = pending.popleft()
        if qualified_name in included:
            continue
        definition = _lookup(registry, qualified_name)
        included[qualified_name] = definition
        pending.extend(_graph_dependencies(definition, registry.context_name))

    order = topological_order(
        {
            qualified_name: _graph_dependencies(definition, registry.context_name)
            for qualified_name, definition in included.items()
        }
    )
    return [included[qualified_name] for qualified_name in order]


def _lookup(registry: "FixtureRegistry", qualified_name: str) -> FixtureDefinition:
    try:
        return registry[qualified_name]
    except KeyError:
        raise FixtureNotFound(
            qualified_name, closest_name(qualified_name, registry.qualified_names())
        ) from None


def _graph_dependencies(definition: FixtureDefinition, context_name: str) -> list[str]:
    return [
        dependency
        for dependency in definition.qualified_dependency_names or ()
        if dependency != context_name
    ]
