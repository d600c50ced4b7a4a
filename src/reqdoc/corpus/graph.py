"""Deterministic ``depends_on`` graph over requirement IDs."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from heapq import heapify, heappop, heappush

from reqdoc.domain.errors import CycleError


class DependencyGraph:
    """Arena of requirement IDs with edges stored as ``(dependency, dependent)`` pairs.

    Documents never reference each other directly; every traversal goes through
    the ID arena so the graph can be built once per resolution pass and shared
    read-only.
    """

    __slots__ = ("_nodes", "_dependents", "_dependencies")

    def __init__(
        self,
        nodes: Iterable[str] | None = None,
        edges: Iterable[tuple[str, str]] | None = None,
    ) -> None:
        self._nodes: set[str] = set()
        self._dependents: dict[str, set[str]] = {}
        self._dependencies: dict[str, set[str]] = {}

        if nodes is not None:
            for node_id in nodes:
                self.add_node(node_id)
        if edges is not None:
            for dependency, dependent in edges:
                self.add_edge(dependency, dependent)

    @classmethod
    def from_dependencies(cls, depends_on: Mapping[str, Sequence[str]]) -> DependencyGraph:
        """Build from ``{document_id: depends_on}``."""
        graph = cls(nodes=depends_on)
        for document_id, dependencies in depends_on.items():
            for dependency in dependencies:
                graph.add_edge(dependency, document_id)
        return graph

    @property
    def nodes(self) -> tuple[str, ...]:
        return tuple(sorted(self._nodes))

    @property
    def edges(self) -> tuple[tuple[str, str], ...]:
        """All edges as ``(dependency, dependent)`` pairs in deterministic order."""
        return tuple(
            (dependency, dependent)
            for dependency in sorted(self._nodes)
            for dependent in sorted(self._dependents[dependency])
        )

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def add_node(self, node_id: str) -> None:
        if not node_id:
            raise ValueError("requirement id must be non-empty")
        if node_id in self._nodes:
            return
        self._nodes.add(node_id)
        self._dependents[node_id] = set()
        self._dependencies[node_id] = set()

    def add_edge(self, dependency: str, dependent: str) -> None:
        """Record that ``dependent`` lists ``dependency`` in ``depends_on``."""
        self.add_node(dependency)
        self.add_node(dependent)
        self._dependents[dependency].add(dependent)
        self._dependencies[dependent].add(dependency)

    def topological_order(self) -> tuple[str, ...]:
        """Dependencies first, ties broken by ID; raises ``CycleError``."""
        indegree = {node: len(self._dependencies[node]) for node in self._nodes}
        ready = [node for node, degree in indegree.items() if degree == 0]
        heapify(ready)

        order: list[str] = []
        while ready:
            node = heappop(ready)
            order.append(node)
            for dependent in sorted(self._dependents[node]):
                indegree[dependent] -= 1
                if indegree[dependent] == 0:
                    heappush(ready, dependent)

        if len(order) != len(self._nodes):
            raise CycleError(self.detect_cycles()[0])
        return tuple(order)

    def detect_cycles(self) -> tuple[tuple[str, ...], ...]:
        """Return every elementary cycle found by DFS as an open ID sequence.

        Each cycle is rotated to start at its smallest ID, so ``A -> B -> A``
        is always reported as ``("A", "B")``.
        """
        state: dict[str, int] = {}
        stack: list[str] = []
        stack_index: dict[str, int] = {}
        cycles: dict[tuple[str, ...], None] = {}

        for start in sorted(self._nodes):
            if state.get(start, 0) != 0:
                continue

            state[start] = 1
            stack.append(start)
            stack_index[start] = 0
            frames: list[tuple[str, Iterator[str]]] = [
                (start, iter(sorted(self._dependencies[start])))
            ]

            while frames:
                node, neighbours = frames[-1]
                try:
                    neighbour = next(neighbours)
                except StopIteration:
                    frames.pop()
                    state[node] = 2
                    stack.pop()
                    del stack_index[node]
                    continue

                neighbour_state = state.get(neighbour, 0)
                if neighbour_state == 0:
                    state[neighbour] = 1
                    stack_index[neighbour] = len(stack)
                    stack.append(neighbour)
                    frames.append((neighbour, iter(sorted(self._dependencies[neighbour]))))
                elif neighbour_state == 1:
                    cycle = tuple(stack[stack_index[neighbour] :])
                    cycles[_canonical(cycle)] = None

        return tuple(sorted(cycles))

    def dependencies(self, node_id: str, *, transitive: bool = False) -> tuple[str, ...]:
        """IDs ``node_id`` depends on, directly or through ``depends_on`` chains."""
        self._require(node_id)
        if not transitive:
            return tuple(sorted(self._dependencies[node_id]))
        return self._closure(node_id, self._dependencies)

    def dependents(self, node_id: str, *, transitive: bool = False) -> tuple[str, ...]:
        self._require(node_id)
        if not transitive:
            return tuple(sorted(self._dependents[node_id]))
        return self._closure(node_id, self._dependents)

    def to_dict(self) -> dict[str, object]:
        return {
            "nodes": list(self.nodes),
            "edges": [[dependency, dependent] for dependency, dependent in self.edges],
        }

    def _closure(self, node_id: str, adjacency: Mapping[str, set[str]]) -> tuple[str, ...]:
        visited: set[str] = set()
        pending = list(adjacency[node_id])
        while pending:
            node = pending.pop()
            if node in visited:
                continue
            visited.add(node)
            pending.extend(neighbour for neighbour in adjacency[node] if neighbour not in visited)
        visited.discard(node_id)
        return tuple(sorted(visited))

    def _require(self, node_id: str) -> None:
        if node_id not in self._nodes:
            raise KeyError(f"unknown requirement: {node_id}")


def _canonical(cycle: Sequence[str]) -> tuple[str, ...]:
    core = tuple(cycle)
    best = core
    for offset in range(1, len(core)):
        rotated = core[offset:] + core[:offset]
        if rotated < best:
            best = rotated
    return best


__all__ = ["DependencyGraph"]
